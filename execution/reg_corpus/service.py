"""
Regulation Service - transport-agnostic facade over the corpus

Validates raw payloads with the pydantic models in api_models, applies
per-client throttling to search, and delegates to the retriever and lookups.
Any HTTP or RPC layer only needs to translate payloads and exceptions.
"""

import logging
from typing import Optional

from .config import CorpusConfig
from .corpus_store import CorpusStore, create_store, UNIT_RECITAL
from .retriever import RegulationRetriever
from .lookups import RegulationLookups
from .patterns import RECITAL_ORDINAL
from .throttle import RequestThrottle
from .api_models import (
    SearchRequest,
    SearchResultItem,
    UnitLookupRequest,
    ControlMappingRequest,
    DefinitionsRequest,
    ReferencesRequest,
    CompareRequest,
)

logger = logging.getLogger(__name__)


class RegulationService:
    """
    Caches one store, retriever, lookups and throttle per service instance.

    Usage:
        service = RegulationService(CorpusConfig.from_env())
        hits = service.search({"query": "breach notification"}, client_id="key-1")
    """

    def __init__(
        self,
        config: Optional[CorpusConfig] = None,
        store: Optional[CorpusStore] = None,
        throttle: Optional[RequestThrottle] = None,
    ):
        self.config = config or CorpusConfig.from_env()
        self._store = store
        self._retriever = None
        self._lookups = None
        self.throttle = throttle or RequestThrottle(
            limit=self.config.rate_limit_requests,
            window_seconds=self.config.rate_limit_window_seconds,
            sweep_interval_seconds=self.config.rate_limit_window_seconds,
        )

    def get_store(self) -> CorpusStore:
        if self._store is None:
            self._store = create_store(self.config, read_only=True)
            self._store.connect()
        return self._store

    def get_retriever(self) -> RegulationRetriever:
        if self._retriever is None:
            self._retriever = RegulationRetriever(
                self.get_store(),
                default_limit=self.config.default_limit,
                max_limit=self.config.max_limit,
            )
        return self._retriever

    def get_lookups(self) -> RegulationLookups:
        if self._lookups is None:
            self._lookups = RegulationLookups(self.get_store(), self.get_retriever())
        return self._lookups

    def close(self) -> None:
        if self._store is not None:
            self._store.close()
            self._store = None
            self._retriever = None
            self._lookups = None

    # =========================================================================
    # Operations
    # =========================================================================

    def search(self, payload: dict, client_id: str) -> list[dict]:
        """
        Ranked search, throttled per client.

        Raises:
            RateLimitedError: Client exhausted its window
            pydantic.ValidationError: Malformed payload
        """
        self.throttle.enforce(client_id)
        request = SearchRequest.model_validate(payload)

        hits = self.get_retriever().search(
            request.query,
            limit=request.limit,
            documents=request.documents,
        )
        return [SearchResultItem(**hit.to_dict()).model_dump() for hit in hits]

    def get_unit(self, payload: dict) -> Optional[dict]:
        """One Article or Recital in full, or None when it does not exist."""
        request = UnitLookupRequest.model_validate(payload)
        lookups = self.get_lookups()

        if request.kind == UNIT_RECITAL:
            if not RECITAL_ORDINAL.fullmatch(request.unit):
                return None
            return lookups.get_recital(request.document, int(request.unit))
        return lookups.get_article(request.document, request.unit)

    def map_controls(self, payload: dict) -> list[dict]:
        request = ControlMappingRequest.model_validate(payload)
        return self.get_lookups().map_controls(request.control, request.document)

    def get_definitions(self, payload: dict) -> list[dict]:
        request = DefinitionsRequest.model_validate(payload)
        return self.get_lookups().get_definitions(request.term, request.document)

    def get_references(self, payload: dict) -> Optional[dict]:
        request = ReferencesRequest.model_validate(payload)
        return self.get_lookups().get_references(request.document, request.article)

    def compare(self, payload: dict) -> dict:
        request = CompareRequest.model_validate(payload)
        return {
            "topic": request.topic,
            "documents": self.get_lookups().compare_requirements(request.topic, request.documents),
        }

    def list_documents(self, document: Optional[str] = None) -> list[dict]:
        return self.get_lookups().list_documents(document)
