"""
Adaptive Lexical Retriever for Regulatory Text

Turns a free-text question into a full-text query whose strictness depends
on how many significant words it contains:

- 1-3 words: every word must appear (exact form)
- 4+ words: any word may appear (prefix form); the engine's tf-idf style
  ranking still puts passages matching several words first

Articles and Recitals are searched separately and merged, Articles first
when their relevance is effectively tied.
"""

import re
import logging
from typing import Optional
from dataclasses import dataclass

from .corpus_store import CorpusStore, UNIT_ARTICLE, UNIT_RECITAL
from .patterns import STOPWORDS, MIN_TOKEN_LENGTH, MAX_QUERY_TOKENS, CONJUNCTIVE_MAX_TOKENS

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 10
MAX_LIMIT = 1000

# Relevance scores closer than this count as the same rank
RELEVANCE_TIE_EPSILON = 0.01

_QUOTES = re.compile(r"[\"'‘’“”]")
_NON_WORD = re.compile(r"\W+")

_KIND_ORDER = {UNIT_ARTICLE: 0, UNIT_RECITAL: 1}


@dataclass
class SearchHit:
    """One ranked search result."""
    document: str
    unit: str
    title: Optional[str]
    snippet: str
    kind: str
    relevance: float

    def to_dict(self) -> dict:
        return {
            "document": self.document,
            "unit": self.unit,
            "title": self.title,
            "snippet": self.snippet,
            "kind": self.kind,
        }


def tokenize(query: str) -> list[str]:
    """Significant lower-case word tokens, in query order."""
    text = _QUOTES.sub("", query or "").replace("-", " ")
    tokens = []
    for raw in text.split():
        for token in _NON_WORD.split(raw.lower()):
            if len(token) < MIN_TOKEN_LENGTH or token in STOPWORDS:
                continue
            tokens.append(token)
    return tokens[:MAX_QUERY_TOKENS]


class RegulationRetriever:
    """
    Ranked full-text search over Articles and Recitals.

    Usage:
        retriever = RegulationRetriever(store)
        hits = retriever.search("incident reporting", limit=5, documents=["GDPR"])
    """

    def __init__(
        self,
        store: CorpusStore,
        default_limit: int = DEFAULT_LIMIT,
        max_limit: int = MAX_LIMIT,
    ):
        self.store = store
        self.default_limit = default_limit
        self.max_limit = max_limit

    def resolve_limit(self, limit: Optional[int]) -> int:
        if limit is None:
            return min(self.default_limit, self.max_limit)
        return min(limit, self.max_limit)

    def build_match_expression(self, tokens: list[str]) -> str:
        conjunctive = len(tokens) <= CONJUNCTIVE_MAX_TOKENS
        return self.store.dialect.match_expression(tokens, conjunctive)

    def search(
        self,
        query: str,
        limit: Optional[int] = None,
        documents: Optional[list[str]] = None,
    ) -> list[SearchHit]:
        """
        Search the corpus.

        Args:
            query: Free-text question or keywords
            limit: Max hits (None = default, <= 0 = none, clamped to the ceiling)
            documents: Restrict to these document ids (empty = all)

        Returns:
            Hits ordered by relevance, Articles before Recitals on ties

        Raises:
            StoreUnavailableError: Backend unreachable or timed out
            QueryFaultError: Malformed query reached the backend
        """
        limit = self.resolve_limit(limit)
        if limit <= 0:
            return []

        tokens = tokenize(query)
        if not tokens:
            logger.debug(f"No significant tokens in query '{query}'")
            return []

        document_ids = sorted({d.strip().upper() for d in (documents or []) if d and d.strip()})
        expression = self.build_match_expression(tokens)
        params = [expression, *document_ids, limit]

        hits: list[SearchHit] = []
        for unit in (UNIT_ARTICLE, UNIT_RECITAL):
            sql = self.store.dialect.unit_search_sql(unit, len(document_ids))
            result = self.store.execute(sql, params)
            hits.extend(self._to_hit(row) for row in result.rows)

        merged = self._merge(hits)[:limit]
        logger.info(
            f"Search '{query[:50]}' ({len(tokens)} tokens, "
            f"{'AND' if len(tokens) <= CONJUNCTIVE_MAX_TOKENS else 'OR'}): "
            f"{len(merged)} hits"
        )
        return merged

    def _to_hit(self, row: dict) -> SearchHit:
        return SearchHit(
            document=row["document"],
            unit=str(row["unit"]),
            title=row.get("title"),
            snippet=row.get("snippet") or "",
            kind=row["kind"],
            relevance=float(row.get("relevance") or 0.0),
        )

    def _merge(self, hits: list[SearchHit]) -> list[SearchHit]:
        """Order by relevance; near-equal scores put Articles first."""
        ordered = sorted(hits, key=lambda h: -h.relevance)

        # Bubble Articles ahead of Recitals inside runs of tied scores
        merged: list[SearchHit] = []
        run: list[SearchHit] = []
        for hit in ordered:
            if run and run[0].relevance - hit.relevance > RELEVANCE_TIE_EPSILON:
                merged.extend(sorted(run, key=lambda h: _KIND_ORDER.get(h.kind, 2)))
                run = []
            run.append(hit)
        merged.extend(sorted(run, key=lambda h: _KIND_ORDER.get(h.kind, 2)))
        return merged


# CLI for testing
if __name__ == "__main__":
    import sys

    from .config import CorpusConfig
    from .corpus_store import create_store

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
    )

    if len(sys.argv) < 2:
        print("Usage: python -m execution.reg_corpus.retriever <query> [DOCUMENT ...]")
        sys.exit(1)

    config = CorpusConfig.from_env()
    with create_store(config) as store:
        retriever = RegulationRetriever(store, config.default_limit, config.max_limit)
        for hit in retriever.search(sys.argv[1], documents=sys.argv[2:]):
            print(f"[{hit.relevance:.3f}] {hit.document} {hit.kind} {hit.unit}: {hit.title}")
            print(f"    {hit.snippet}")
