"""
Corpus Store with interchangeable SQLite (FTS5) and PostgreSQL backends

One call site for every caller: execute(sql, params) -> QueryResult.
Callers write canonical SQL with numbered placeholders ($1, $2, ...) and
ILIKE; each backend translates that at this boundary and nowhere else.
Values are always bound as parameters, never spliced into the query text.

Backend-specific full-text syntax is exposed through ``store.dialect`` so the
retrieval layer never needs to know which backend is active.
"""

import re
import time
import logging
import sqlite3
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Sequence
from dataclasses import dataclass, field
from contextlib import contextmanager

import psycopg2
import psycopg2.extras
import psycopg2.pool

from .config import CorpusConfig
from .patterns import SNIPPET_START, SNIPPET_END, SNIPPET_ELLIPSIS, SNIPPET_WORDS

logger = logging.getLogger(__name__)

_PLACEHOLDER = re.compile(r"\$(\d+)")
_ILIKE = re.compile(r"\sILIKE\s", re.IGNORECASE)

UNIT_ARTICLE = "article"
UNIT_RECITAL = "recital"


class StoreUnavailableError(Exception):
    """Store unreachable, busy or timed out. Safe for the caller to retry."""

    def __init__(self, message: str, backend: str):
        super().__init__(message)
        self.backend = backend


class QueryFaultError(Exception):
    """A malformed query reached the store. Always a programming error."""

    def __init__(self, message: str, sql: str):
        super().__init__(message)
        self.sql = sql


@dataclass
class QueryResult:
    """Rows (as plain dicts) plus the affected/returned row count."""
    rows: list[dict] = field(default_factory=list)
    row_count: int = 0

    def first(self) -> Optional[dict]:
        return self.rows[0] if self.rows else None


def _check_placeholders(sql: str, params: Sequence) -> None:
    indexes = [int(n) for n in _PLACEHOLDER.findall(sql)]
    if indexes and max(indexes) > len(params):
        raise QueryFaultError(
            f"Query references ${max(indexes)} but only {len(params)} parameters were bound",
            sql=sql,
        )


# =============================================================================
# Dialects
# =============================================================================

class SQLiteDialect:
    """FTS5 syntax: implicit-AND terms, OR, trailing * for prefixes."""
    name = "sqlite"

    def match_expression(self, tokens: list[str], conjunctive: bool) -> str:
        quoted = [f'"{token}"' for token in tokens]
        if conjunctive:
            return " ".join(quoted)
        return " OR ".join(f"{term}*" for term in quoted)

    def unit_search_sql(self, unit: str, document_count: int) -> str:
        """SQL for one unit kind. $1 = match expression, then documents, then limit."""
        doc_placeholders = ", ".join(f"${i + 2}" for i in range(document_count))
        limit_placeholder = f"${document_count + 2}"
        snippet_args = f"'{SNIPPET_START}', '{SNIPPET_END}', '{SNIPPET_ELLIPSIS}', {SNIPPET_WORDS}"

        if unit == UNIT_ARTICLE:
            doc_filter = f" AND a.document_id IN ({doc_placeholders})" if document_count else ""
            return f"""
            SELECT
                a.document_id AS document,
                a.article_number AS unit,
                a.title AS title,
                snippet(articles_fts, 3, {snippet_args}) AS snippet,
                -bm25(articles_fts) AS relevance,
                'article' AS kind
            FROM articles_fts
            JOIN articles a ON a.id = articles_fts.rowid
            WHERE articles_fts MATCH $1{doc_filter}
            ORDER BY bm25(articles_fts), a.id
            LIMIT {limit_placeholder}
            """

        doc_filter = f" AND r.document_id IN ({doc_placeholders})" if document_count else ""
        return f"""
        SELECT
            r.document_id AS document,
            CAST(r.ordinal AS TEXT) AS unit,
            'Recital ' || r.ordinal AS title,
            snippet(recitals_fts, 2, {snippet_args}) AS snippet,
            -bm25(recitals_fts) AS relevance,
            'recital' AS kind
        FROM recitals_fts
        JOIN recitals r ON r.id = recitals_fts.rowid
        WHERE recitals_fts MATCH $1{doc_filter}
        ORDER BY bm25(recitals_fts), r.id
        LIMIT {limit_placeholder}
        """


class PostgresDialect:
    """tsquery syntax: & for AND, | for OR, :* for prefixes."""
    name = "postgres"

    def __init__(self, fts_language: str = "english"):
        self.fts_language = fts_language

    def match_expression(self, tokens: list[str], conjunctive: bool) -> str:
        if conjunctive:
            return " & ".join(tokens)
        return " | ".join(f"{token}:*" for token in tokens)

    def unit_search_sql(self, unit: str, document_count: int) -> str:
        """SQL for one unit kind. $1 = tsquery text, then documents, then limit."""
        lang = self.fts_language
        doc_placeholders = ", ".join(f"${i + 2}" for i in range(document_count))
        limit_placeholder = f"${document_count + 2}"
        headline_opts = (
            f"'StartSel={SNIPPET_START}, StopSel={SNIPPET_END}, "
            f"MaxWords={SNIPPET_WORDS}, MinWords=16'"
        )

        if unit == UNIT_ARTICLE:
            doc_filter = f" AND a.document_id IN ({doc_placeholders})" if document_count else ""
            vector = f"to_tsvector('{lang}', COALESCE(a.title, '') || ' ' || a.body)"
            return f"""
            SELECT
                a.document_id AS document,
                a.article_number AS unit,
                a.title AS title,
                ts_headline('{lang}', a.body, to_tsquery('{lang}', $1), {headline_opts}) AS snippet,
                ts_rank({vector}, to_tsquery('{lang}', $1)) AS relevance,
                'article' AS kind
            FROM articles a
            WHERE {vector} @@ to_tsquery('{lang}', $1){doc_filter}
            ORDER BY relevance DESC, a.id
            LIMIT {limit_placeholder}
            """

        doc_filter = f" AND r.document_id IN ({doc_placeholders})" if document_count else ""
        vector = f"to_tsvector('{lang}', r.body)"
        return f"""
        SELECT
            r.document_id AS document,
            r.ordinal::TEXT AS unit,
            'Recital ' || r.ordinal AS title,
            ts_headline('{lang}', r.body, to_tsquery('{lang}', $1), {headline_opts}) AS snippet,
            ts_rank({vector}, to_tsquery('{lang}', $1)) AS relevance,
            'recital' AS kind
        FROM recitals r
        WHERE {vector} @@ to_tsquery('{lang}', $1){doc_filter}
        ORDER BY relevance DESC, r.id
        LIMIT {limit_placeholder}
        """


# =============================================================================
# Store interface
# =============================================================================

class TransactionSession:
    """Executes statements inside one open transaction."""

    def __init__(self, run):
        self._run = run

    def execute(self, sql: str, params: Optional[Sequence] = None) -> QueryResult:
        return self._run(sql, list(params or []))


class CorpusStore(ABC):
    """
    Uniform query interface over the corpus.

    Usage:
        store = create_store(CorpusConfig.from_env())
        result = store.execute(
            "SELECT * FROM articles WHERE document_id = $1", ["GDPR"]
        )
    """

    backend = "abstract"
    dialect = None

    @abstractmethod
    def connect(self) -> None:
        """Open connections (idempotent)."""

    @abstractmethod
    def close(self) -> None:
        """Release every connection."""

    @abstractmethod
    def initialize_schema(self) -> None:
        """Create relations, full-text indexes and their maintenance hooks."""

    @abstractmethod
    def execute(self, sql: str, params: Optional[Sequence] = None) -> QueryResult:
        """Run one parameterized statement and return its rows."""

    @abstractmethod
    def transaction(self):
        """Context manager yielding a TransactionSession; commits on success."""

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False


# =============================================================================
# SQLite backend
# =============================================================================

SQLITE_SCHEMA = """
CREATE TABLE IF NOT EXISTS documents (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    source_version TEXT,
    effective_date TEXT,
    ingested_at TEXT
);

CREATE TABLE IF NOT EXISTS articles (
    id INTEGER PRIMARY KEY,
    document_id TEXT NOT NULL REFERENCES documents(id),
    article_number TEXT NOT NULL,
    position INTEGER NOT NULL,
    title TEXT,
    body TEXT NOT NULL,
    chapter TEXT,
    UNIQUE(document_id, article_number)
);

CREATE TABLE IF NOT EXISTS recitals (
    id INTEGER PRIMARY KEY,
    document_id TEXT NOT NULL REFERENCES documents(id),
    ordinal INTEGER NOT NULL CHECK(ordinal > 0),
    body TEXT NOT NULL,
    UNIQUE(document_id, ordinal)
);

CREATE TABLE IF NOT EXISTS definitions (
    id INTEGER PRIMARY KEY,
    document_id TEXT NOT NULL,
    term TEXT NOT NULL,
    definition TEXT NOT NULL,
    article_number TEXT NOT NULL,
    UNIQUE(document_id, term),
    FOREIGN KEY (document_id, article_number) REFERENCES articles(document_id, article_number)
);

CREATE TABLE IF NOT EXISTS article_references (
    id INTEGER PRIMARY KEY,
    source_document TEXT NOT NULL,
    source_article TEXT NOT NULL,
    target_document TEXT,
    target_article TEXT,
    target_subdivision TEXT NOT NULL DEFAULT '',
    raw_text TEXT NOT NULL,
    kind TEXT NOT NULL CHECK(kind IN ('explicit', 'self', 'override')),
    position INTEGER NOT NULL,
    FOREIGN KEY (source_document, source_article) REFERENCES articles(document_id, article_number)
);

CREATE INDEX IF NOT EXISTS idx_references_source
    ON article_references(source_document, source_article);
CREATE INDEX IF NOT EXISTS idx_references_target
    ON article_references(target_document, target_article);

CREATE TABLE IF NOT EXISTS control_mappings (
    id INTEGER PRIMARY KEY,
    control_id TEXT NOT NULL,
    control_name TEXT NOT NULL,
    document_id TEXT NOT NULL,
    articles TEXT NOT NULL,
    coverage TEXT NOT NULL CHECK(coverage IN ('full', 'partial', 'related')),
    notes TEXT
);

CREATE INDEX IF NOT EXISTS idx_control_mappings_control
    ON control_mappings(control_id, document_id);

-- Full-text indexes, kept in lockstep with their base tables by triggers
CREATE VIRTUAL TABLE IF NOT EXISTS articles_fts USING fts5(
    document_id UNINDEXED,
    article_number UNINDEXED,
    title,
    body,
    content='articles',
    content_rowid='id'
);

CREATE TRIGGER IF NOT EXISTS articles_ai AFTER INSERT ON articles BEGIN
    INSERT INTO articles_fts(rowid, document_id, article_number, title, body)
    VALUES (new.id, new.document_id, new.article_number, new.title, new.body);
END;

CREATE TRIGGER IF NOT EXISTS articles_ad AFTER DELETE ON articles BEGIN
    INSERT INTO articles_fts(articles_fts, rowid, document_id, article_number, title, body)
    VALUES ('delete', old.id, old.document_id, old.article_number, old.title, old.body);
END;

CREATE TRIGGER IF NOT EXISTS articles_au AFTER UPDATE ON articles BEGIN
    INSERT INTO articles_fts(articles_fts, rowid, document_id, article_number, title, body)
    VALUES ('delete', old.id, old.document_id, old.article_number, old.title, old.body);
    INSERT INTO articles_fts(rowid, document_id, article_number, title, body)
    VALUES (new.id, new.document_id, new.article_number, new.title, new.body);
END;

CREATE VIRTUAL TABLE IF NOT EXISTS recitals_fts USING fts5(
    document_id UNINDEXED,
    ordinal UNINDEXED,
    body,
    content='recitals',
    content_rowid='id'
);

CREATE TRIGGER IF NOT EXISTS recitals_ai AFTER INSERT ON recitals BEGIN
    INSERT INTO recitals_fts(rowid, document_id, ordinal, body)
    VALUES (new.id, new.document_id, new.ordinal, new.body);
END;

CREATE TRIGGER IF NOT EXISTS recitals_ad AFTER DELETE ON recitals BEGIN
    INSERT INTO recitals_fts(recitals_fts, rowid, document_id, ordinal, body)
    VALUES ('delete', old.id, old.document_id, old.ordinal, old.body);
END;

CREATE TRIGGER IF NOT EXISTS recitals_au AFTER UPDATE ON recitals BEGIN
    INSERT INTO recitals_fts(recitals_fts, rowid, document_id, ordinal, body)
    VALUES ('delete', old.id, old.document_id, old.ordinal, old.body);
    INSERT INTO recitals_fts(rowid, document_id, ordinal, body)
    VALUES (new.id, new.document_id, new.ordinal, new.body);
END;
"""

# OperationalError messages that mean "try again later" rather than "bad SQL"
_SQLITE_UNAVAILABLE_MARKERS = (
    "locked",
    "busy",
    "unable to open",
    "interrupted",
    "disk i/o",
)


class SQLiteCorpusStore(CorpusStore):
    """
    Embedded single-file backend using SQLite FTS5.

    Serving stores are opened read-only so any number of threads and
    processes can read the same file; each thread gets its own connection.
    """

    backend = "sqlite"

    def __init__(self, path: str, read_only: bool = True, timeout_seconds: float = 5.0):
        self.path = str(path)
        self.read_only = read_only
        self.timeout_seconds = timeout_seconds
        self.dialect = SQLiteDialect()
        self._local = threading.local()
        self._connections: list[sqlite3.Connection] = []
        self._lock = threading.Lock()

    def connect(self) -> None:
        self._connection()

    def _connection(self) -> sqlite3.Connection:
        conn = getattr(self._local, "conn", None)
        if conn is not None:
            return conn

        try:
            if self.read_only:
                uri = f"file:{Path(self.path).as_posix()}?mode=ro"
                conn = sqlite3.connect(
                    uri, uri=True, check_same_thread=False,
                    timeout=self.timeout_seconds, isolation_level=None,
                )
            else:
                Path(self.path).parent.mkdir(parents=True, exist_ok=True)
                conn = sqlite3.connect(
                    self.path, check_same_thread=False,
                    timeout=self.timeout_seconds, isolation_level=None,
                )
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA foreign_keys = ON")
        except sqlite3.Error as e:
            logger.error(f"SQLite connection failed ({self.path}): {e}")
            raise StoreUnavailableError(f"Cannot open corpus database: {e}", self.backend) from e

        self._local.conn = conn
        with self._lock:
            self._connections.append(conn)
        logger.debug(f"Opened SQLite connection to {self.path} (read_only={self.read_only})")
        return conn

    def close(self) -> None:
        with self._lock:
            for conn in self._connections:
                conn.close()
            self._connections = []
        self._local = threading.local()

    def initialize_schema(self) -> None:
        conn = self._connection()
        try:
            conn.executescript(SQLITE_SCHEMA)
            logger.info("Schema initialized successfully")
        except sqlite3.Error as e:
            logger.error(f"Schema initialization failed: {e}")
            raise self._translate_error(e, SQLITE_SCHEMA) from e

    def execute(self, sql: str, params: Optional[Sequence] = None) -> QueryResult:
        return self._run(self._connection(), sql, list(params or []))

    @contextmanager
    def transaction(self):
        conn = self._connection()
        self._run(conn, "BEGIN IMMEDIATE", [])
        try:
            yield TransactionSession(lambda sql, params: self._run(conn, sql, params))
        except BaseException:
            conn.rollback()
            raise
        try:
            self._run(conn, "COMMIT", [])
        except (StoreUnavailableError, QueryFaultError):
            conn.rollback()
            raise

    def _run(self, conn: sqlite3.Connection, sql: str, params: list) -> QueryResult:
        _check_placeholders(sql, params)
        # $1 -> ?1 keeps positional numbering; SQLite LIKE is already case-insensitive
        sqlite_sql = _ILIKE.sub(" LIKE ", _PLACEHOLDER.sub(r"?\1", sql))

        deadline = time.monotonic() + self.timeout_seconds
        conn.set_progress_handler(lambda: 1 if time.monotonic() > deadline else 0, 1000)
        try:
            cur = conn.execute(sqlite_sql, params)
            if cur.description is None:
                return QueryResult(rows=[], row_count=max(cur.rowcount, 0))
            rows = [dict(row) for row in cur.fetchall()]
            return QueryResult(rows=rows, row_count=len(rows))
        except sqlite3.Error as e:
            raise self._translate_error(e, sql) from e
        finally:
            conn.set_progress_handler(None, 0)

    def _translate_error(self, error: sqlite3.Error, sql: str) -> Exception:
        message = str(error)
        if isinstance(error, sqlite3.OperationalError) and any(
            marker in message.lower() for marker in _SQLITE_UNAVAILABLE_MARKERS
        ):
            logger.error(f"SQLite unavailable: {message}")
            return StoreUnavailableError(message, self.backend)
        logger.error(f"SQLite query failed: {message}")
        return QueryFaultError(message, sql=sql)


# =============================================================================
# PostgreSQL backend
# =============================================================================

def _postgres_schema(fts_language: str) -> str:
    return f"""
    CREATE TABLE IF NOT EXISTS documents (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        source_version TEXT,
        effective_date TEXT,
        ingested_at TEXT
    );

    CREATE TABLE IF NOT EXISTS articles (
        id BIGSERIAL PRIMARY KEY,
        document_id TEXT NOT NULL REFERENCES documents(id),
        article_number TEXT NOT NULL,
        position INT NOT NULL,
        title TEXT,
        body TEXT NOT NULL,
        chapter TEXT,
        UNIQUE(document_id, article_number)
    );

    CREATE TABLE IF NOT EXISTS recitals (
        id BIGSERIAL PRIMARY KEY,
        document_id TEXT NOT NULL REFERENCES documents(id),
        ordinal INT NOT NULL CHECK(ordinal > 0),
        body TEXT NOT NULL,
        UNIQUE(document_id, ordinal)
    );

    CREATE TABLE IF NOT EXISTS definitions (
        id BIGSERIAL PRIMARY KEY,
        document_id TEXT NOT NULL,
        term TEXT NOT NULL,
        definition TEXT NOT NULL,
        article_number TEXT NOT NULL,
        UNIQUE(document_id, term),
        FOREIGN KEY (document_id, article_number) REFERENCES articles(document_id, article_number)
    );

    CREATE TABLE IF NOT EXISTS article_references (
        id BIGSERIAL PRIMARY KEY,
        source_document TEXT NOT NULL,
        source_article TEXT NOT NULL,
        target_document TEXT,
        target_article TEXT,
        target_subdivision TEXT NOT NULL DEFAULT '',
        raw_text TEXT NOT NULL,
        kind TEXT NOT NULL CHECK(kind IN ('explicit', 'self', 'override')),
        position INT NOT NULL,
        FOREIGN KEY (source_document, source_article) REFERENCES articles(document_id, article_number)
    );

    CREATE INDEX IF NOT EXISTS idx_references_source
        ON article_references(source_document, source_article);
    CREATE INDEX IF NOT EXISTS idx_references_target
        ON article_references(target_document, target_article);

    CREATE TABLE IF NOT EXISTS control_mappings (
        id BIGSERIAL PRIMARY KEY,
        control_id TEXT NOT NULL,
        control_name TEXT NOT NULL,
        document_id TEXT NOT NULL,
        articles TEXT NOT NULL,
        coverage TEXT NOT NULL CHECK(coverage IN ('full', 'partial', 'related')),
        notes TEXT
    );

    CREATE INDEX IF NOT EXISTS idx_control_mappings_control
        ON control_mappings(control_id, document_id);

    -- Expression indexes; PostgreSQL maintains them on every write
    CREATE INDEX IF NOT EXISTS idx_articles_fts
        ON articles
        USING GIN (to_tsvector('{fts_language}', COALESCE(title, '') || ' ' || body));

    CREATE INDEX IF NOT EXISTS idx_recitals_fts
        ON recitals
        USING GIN (to_tsvector('{fts_language}', body));
    """


class PostgresCorpusStore(CorpusStore):
    """
    Networked backend on PostgreSQL full-text search.

    A bounded ThreadedConnectionPool serves concurrent readers; every
    statement runs under SET LOCAL statement_timeout so one slow query
    cannot hold a pooled connection indefinitely.
    """

    backend = "postgres"

    def __init__(
        self,
        connection_string: str,
        pool_min_connections: int = 1,
        pool_max_connections: int = 10,
        timeout_seconds: float = 5.0,
        fts_language: str = "english",
    ):
        self._connection_string = connection_string
        self.pool_min_connections = pool_min_connections
        self.pool_max_connections = pool_max_connections
        self.timeout_seconds = timeout_seconds
        self.dialect = PostgresDialect(fts_language)
        self._pool = None

    def connect(self) -> None:
        if self._pool is not None:
            return
        try:
            self._pool = psycopg2.pool.ThreadedConnectionPool(
                minconn=self.pool_min_connections,
                maxconn=self.pool_max_connections,
                dsn=self._connection_string,
                connect_timeout=max(1, int(self.timeout_seconds)),
                cursor_factory=psycopg2.extras.RealDictCursor,
            )
            logger.info(
                f"Connection pool initialized (min={self.pool_min_connections}, "
                f"max={self.pool_max_connections})"
            )
        except psycopg2.Error as e:
            logger.error(f"Database connection failed: {e}")
            raise StoreUnavailableError(f"Cannot connect to PostgreSQL: {e}", self.backend) from e

    def close(self) -> None:
        if self._pool:
            self._pool.closeall()
            self._pool = None
            logger.info("Connection pool closed")

    def _acquire(self):
        if self._pool is None:
            self.connect()
        try:
            return self._pool.getconn()
        except (psycopg2.pool.PoolError, psycopg2.OperationalError) as e:
            logger.error(f"No database connection available: {e}")
            raise StoreUnavailableError(f"No database connection available: {e}", self.backend) from e

    def _release(self, conn) -> None:
        if self._pool and conn:
            self._pool.putconn(conn, close=bool(conn.closed))

    def _safe_rollback(self, conn) -> None:
        """Rollback a connection, ignoring errors if the connection is dead."""
        try:
            conn.rollback()
        except (psycopg2.InterfaceError, psycopg2.OperationalError):
            pass

    def initialize_schema(self) -> None:
        conn = self._acquire()
        try:
            with conn.cursor() as cur:
                cur.execute(_postgres_schema(self.dialect.fts_language))
            conn.commit()
            logger.info("Schema initialized successfully")
        except psycopg2.Error as e:
            self._safe_rollback(conn)
            logger.error(f"Schema initialization failed: {e}")
            raise self._translate_error(e, "schema") from e
        finally:
            self._release(conn)

    def execute(self, sql: str, params: Optional[Sequence] = None) -> QueryResult:
        conn = self._acquire()
        try:
            result = self._run(conn, sql, list(params or []))
            conn.commit()
            return result
        except (StoreUnavailableError, QueryFaultError):
            self._safe_rollback(conn)
            raise
        except psycopg2.Error as e:
            self._safe_rollback(conn)
            raise self._translate_error(e, sql) from e
        finally:
            self._release(conn)

    @contextmanager
    def transaction(self):
        conn = self._acquire()
        try:
            yield TransactionSession(lambda sql, params: self._run(conn, sql, params))
            conn.commit()
        except psycopg2.Error as e:
            self._safe_rollback(conn)
            raise self._translate_error(e, "COMMIT") from e
        except BaseException:
            self._safe_rollback(conn)
            raise
        finally:
            self._release(conn)

    def _run(self, conn, sql: str, params: list) -> QueryResult:
        query, bound = self._translate(sql, params)
        try:
            with conn.cursor() as cur:
                cur.execute(
                    "SET LOCAL statement_timeout = %s",
                    (int(self.timeout_seconds * 1000),),
                )
                cur.execute(query, bound)
                if cur.description is None:
                    return QueryResult(rows=[], row_count=max(cur.rowcount, 0))
                rows = [dict(row) for row in cur.fetchall()]
                return QueryResult(rows=rows, row_count=len(rows))
        except psycopg2.Error as e:
            raise self._translate_error(e, sql) from e

    def _translate(self, sql: str, params: list):
        """$1 -> %(p1)s with a dict of values; literal % is escaped."""
        _check_placeholders(sql, params)
        if not params:
            return sql, None
        query = _PLACEHOLDER.sub(r"%(p\1)s", sql.replace("%", "%%"))
        bound = {f"p{i + 1}": value for i, value in enumerate(params)}
        return query, bound

    def _translate_error(self, error: Exception, sql: str) -> Exception:
        if isinstance(error, (psycopg2.OperationalError, psycopg2.InterfaceError)):
            logger.error(f"PostgreSQL unavailable: {error}")
            return StoreUnavailableError(str(error), self.backend)
        logger.error(f"PostgreSQL query failed: {error}")
        return QueryFaultError(str(error), sql=sql)


def create_store(config: Optional[CorpusConfig] = None, read_only: bool = True) -> CorpusStore:
    """Build the backend named by the configuration."""
    config = config or CorpusConfig.from_env()

    if config.backend == "postgres":
        if not config.connection_string:
            raise ValueError("POSTGRES_URL or DATABASE_URL is required for the postgres backend")
        return PostgresCorpusStore(
            config.connection_string,
            pool_min_connections=config.pool_min_connections,
            pool_max_connections=config.pool_max_connections,
            timeout_seconds=config.query_timeout_seconds,
            fts_language=config.validated_fts_language(),
        )

    return SQLiteCorpusStore(
        config.db_path,
        read_only=read_only,
        timeout_seconds=config.query_timeout_seconds,
    )
