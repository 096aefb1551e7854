"""
Configuration for the Regulation Corpus

Defaults live on the dataclass; deployments override them through
environment variables (optionally loaded from a .env file).
"""

import os
import logging
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

SUPPORTED_BACKENDS = ("sqlite", "postgres")

# Whitelist of PostgreSQL text search configs (interpolated into SQL, so never
# taken verbatim from the environment)
VALID_FTS_CONFIGS = frozenset({"english", "simple"})


@dataclass
class CorpusConfig:
    """Settings for storage, retrieval and throttling."""
    backend: str = "sqlite"
    db_path: str = "data/regulations.db"
    connection_string: Optional[str] = None
    pool_min_connections: int = 1
    pool_max_connections: int = 10
    query_timeout_seconds: float = 5.0
    default_limit: int = 10
    max_limit: int = 1000
    rate_limit_requests: int = 100
    rate_limit_window_seconds: float = 60.0
    fts_language: str = "english"

    @classmethod
    def from_env(cls, dotenv_path: Optional[str] = None) -> "CorpusConfig":
        """Build a config from environment variables."""
        load_dotenv(dotenv_path)
        defaults = cls()

        backend = os.getenv("CORPUS_BACKEND", defaults.backend).strip().lower()
        if backend not in SUPPORTED_BACKENDS:
            raise ValueError(
                f"Unsupported CORPUS_BACKEND '{backend}'. "
                f"Expected one of: {', '.join(SUPPORTED_BACKENDS)}"
            )

        config = cls(
            backend=backend,
            db_path=os.getenv("CORPUS_DB_PATH", defaults.db_path),
            connection_string=os.getenv("POSTGRES_URL") or os.getenv("DATABASE_URL"),
            pool_min_connections=int(os.getenv("CORPUS_POOL_MIN", defaults.pool_min_connections)),
            pool_max_connections=int(os.getenv("CORPUS_POOL_MAX", defaults.pool_max_connections)),
            query_timeout_seconds=float(os.getenv("QUERY_TIMEOUT_SECONDS", defaults.query_timeout_seconds)),
            default_limit=int(os.getenv("SEARCH_DEFAULT_LIMIT", defaults.default_limit)),
            max_limit=int(os.getenv("SEARCH_MAX_LIMIT", defaults.max_limit)),
            rate_limit_requests=int(os.getenv("RATE_LIMIT_REQUESTS", defaults.rate_limit_requests)),
            rate_limit_window_seconds=float(
                os.getenv("RATE_LIMIT_WINDOW_SECONDS", defaults.rate_limit_window_seconds)
            ),
            fts_language=os.getenv("FTS_LANGUAGE", defaults.fts_language),
        )
        config.fts_language = config.validated_fts_language()
        return config

    def validated_fts_language(self) -> str:
        """Return fts_language if whitelisted, otherwise 'english'."""
        if self.fts_language not in VALID_FTS_CONFIGS:
            logger.warning(f"Invalid FTS language '{self.fts_language}', falling back to 'english'")
            return "english"
        return self.fts_language
