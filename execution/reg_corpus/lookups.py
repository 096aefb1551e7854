"""
Direct Lookups over the Regulation Corpus

Point reads that complement ranked search: a single Article or Recital,
defined terms, the citation neighbourhood of an article, control mappings,
document listings and side-by-side topic comparison.

Not-found is always a None return, never an exception.
"""

import json
import logging
from typing import Optional

from .corpus_store import CorpusStore, UNIT_ARTICLE
from .retriever import RegulationRetriever
from .patterns import TIMELINE_PATTERNS, SNIPPET_START, SNIPPET_END

logger = logging.getLogger(__name__)

MAX_RECITAL_ORDINAL = 10000
COMPARE_HITS_PER_DOCUMENT = 5


def _like_pattern(term: str) -> str:
    """%term% with LIKE wildcards in the term escaped."""
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def extract_timelines(text: str) -> list[str]:
    """Deadline phrases ("72 hours", "without undue delay") in first-seen order."""
    found: list[str] = []
    for pattern in TIMELINE_PATTERNS:
        for match in pattern.finditer(text or ""):
            phrase = match.group(0)
            if phrase.lower() not in (f.lower() for f in found):
                found.append(phrase)
    return found


class RegulationLookups:
    """
    Point lookups against a CorpusStore.

    Usage:
        lookups = RegulationLookups(store)
        article = lookups.get_article("GDPR", "33")
        if article is None:
            ...
    """

    def __init__(self, store: CorpusStore, retriever: Optional[RegulationRetriever] = None):
        self.store = store
        self.retriever = retriever or RegulationRetriever(store)

    # =========================================================================
    # Articles and Recitals
    # =========================================================================

    def get_article(self, document: str, number: str) -> Optional[dict]:
        """Full article with its outgoing references, or None."""
        document = document.strip().upper()
        number = str(number).strip().lower()

        row = self.store.execute(
            """
            SELECT document_id, article_number, title, body, chapter
            FROM articles
            WHERE document_id = $1 AND LOWER(article_number) = $2
            """,
            [document, number],
        ).first()
        if row is None:
            return None

        return {
            "document": row["document_id"],
            "number": row["article_number"],
            "title": row["title"],
            "body": row["body"],
            "chapter": row["chapter"],
            "references": self._outgoing(row["document_id"], row["article_number"]),
        }

    def get_recital(self, document: str, ordinal) -> Optional[dict]:
        """Recital by ordinal; anything but an int in 1..10000 is simply not found."""
        if isinstance(ordinal, bool) or not isinstance(ordinal, int):
            return None
        if ordinal < 1 or ordinal > MAX_RECITAL_ORDINAL:
            return None

        row = self.store.execute(
            "SELECT document_id, ordinal, body FROM recitals WHERE document_id = $1 AND ordinal = $2",
            [document.strip().upper(), ordinal],
        ).first()
        if row is None:
            return None
        return {"document": row["document_id"], "ordinal": row["ordinal"], "body": row["body"]}

    # =========================================================================
    # Definitions and References
    # =========================================================================

    def get_definitions(self, term: str, document: Optional[str] = None) -> list[dict]:
        """Definitions whose term contains `term`, case-insensitively."""
        sql = """
            SELECT document_id, term, definition, article_number
            FROM definitions
            WHERE term ILIKE $1 ESCAPE '\\'
        """
        params = [_like_pattern(term.strip())]
        if document:
            sql += " AND document_id = $2"
            params.append(document.strip().upper())
        sql += " ORDER BY document_id, term"

        rows = self.store.execute(sql, params).rows
        return [
            {
                "document": r["document_id"],
                "term": r["term"],
                "definition": r["definition"],
                "article": r["article_number"],
            }
            for r in rows
        ]

    def get_references(self, document: str, article: str) -> Optional[dict]:
        """Outgoing and incoming citation edges of one article, or None."""
        document = document.strip().upper()
        article = str(article).strip().lower()

        row = self.store.execute(
            "SELECT article_number FROM articles WHERE document_id = $1 AND LOWER(article_number) = $2",
            [document, article],
        ).first()
        if row is None:
            return None

        incoming = self.store.execute(
            """
            SELECT source_document, source_article, target_document, target_article,
                   target_subdivision, raw_text, kind
            FROM article_references
            WHERE target_document = $1 AND LOWER(target_article) = $2
            ORDER BY source_document, position
            """,
            [document, article],
        ).rows

        return {
            "document": document,
            "article": row["article_number"],
            "outgoing": self._outgoing(document, row["article_number"]),
            "incoming": incoming,
        }

    def _outgoing(self, document: str, article_number: str) -> list[dict]:
        return self.store.execute(
            """
            SELECT source_document, source_article, target_document, target_article,
                   target_subdivision, raw_text, kind
            FROM article_references
            WHERE source_document = $1 AND source_article = $2
            ORDER BY position
            """,
            [document, article_number],
        ).rows

    # =========================================================================
    # Control Mappings
    # =========================================================================

    def map_controls(self, control: Optional[str] = None, document: Optional[str] = None) -> list[dict]:
        """Control mappings grouped by control id."""
        sql = """
            SELECT control_id, control_name, document_id, articles, coverage, notes
            FROM control_mappings
            WHERE 1=1
        """
        params = []
        if control:
            params.append(control.strip().upper())
            sql += f" AND control_id = ${len(params)}"
        if document:
            params.append(document.strip().upper())
            sql += f" AND document_id = ${len(params)}"
        sql += " ORDER BY control_id, document_id, id"

        grouped: dict[str, dict] = {}
        for row in self.store.execute(sql, params).rows:
            entry = grouped.setdefault(row["control_id"], {
                "control_id": row["control_id"],
                "control_name": row["control_name"],
                "mappings": [],
            })
            entry["mappings"].append({
                "document": row["document_id"],
                "articles": json.loads(row["articles"]),
                "coverage": row["coverage"],
                "notes": row["notes"],
            })
        return list(grouped.values())

    # =========================================================================
    # Documents
    # =========================================================================

    def list_documents(self, document: Optional[str] = None) -> list[dict]:
        """
        Documents with their article counts.

        When a single document is requested its articles are also grouped
        by chapter, in source order.
        """
        sql = """
            SELECT d.id AS document_id, d.name, d.source_version, d.effective_date,
                   COUNT(a.id) AS article_count
            FROM documents d
            LEFT JOIN articles a ON a.document_id = d.id
        """
        params = []
        if document:
            params.append(document.strip().upper())
            sql += " WHERE d.id = $1"
        sql += " GROUP BY d.id, d.name, d.source_version, d.effective_date ORDER BY d.id"

        documents = [
            {
                "document": r["document_id"],
                "name": r["name"],
                "source_version": r["source_version"],
                "effective_date": r["effective_date"],
                "article_count": int(r["article_count"]),
            }
            for r in self.store.execute(sql, params).rows
        ]

        if document and documents:
            documents[0]["chapters"] = self._chapters(documents[0]["document"])
        return documents

    def _chapters(self, document: str) -> list[dict]:
        rows = self.store.execute(
            "SELECT article_number, chapter FROM articles WHERE document_id = $1 ORDER BY position",
            [document],
        ).rows

        chapters: list[dict] = []
        for row in rows:
            label = row["chapter"]
            if not chapters or chapters[-1]["chapter"] != label:
                chapters.append({"chapter": label, "articles": []})
            chapters[-1]["articles"].append(row["article_number"])
        return chapters

    # =========================================================================
    # Comparison
    # =========================================================================

    def compare_requirements(self, topic: str, documents: list[str]) -> list[dict]:
        """
        For each document: its top matching articles for the topic, their
        snippets, and the deadline phrases found in those articles' full text.
        """
        comparisons = []
        for document in documents:
            document = document.strip().upper()
            hits = self.retriever.search(topic, limit=COMPARE_HITS_PER_DOCUMENT, documents=[document])
            articles = [h for h in hits if h.kind == UNIT_ARTICLE]

            full_text = []
            for hit in articles:
                row = self.store.execute(
                    "SELECT body FROM articles WHERE document_id = $1 AND article_number = $2",
                    [document, hit.unit],
                ).first()
                if row:
                    full_text.append(row["body"])

            comparisons.append({
                "document": document,
                "articles": [h.unit for h in articles],
                "requirements": [
                    h.snippet.replace(SNIPPET_START, "").replace(SNIPPET_END, "")
                    for h in articles
                ],
                "timelines": extract_timelines(" ".join(full_text)),
            })

        logger.info(f"Compared '{topic[:50]}' across {len(comparisons)} documents")
        return comparisons
