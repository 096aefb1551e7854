"""
Tests for execution/reg_corpus/service.py and api_models.py

Covers: boundary normalisation and validation, throttled search,
        unit lookups, control mappings, definitions, references,
        comparison and lazy store construction.
"""

from unittest.mock import patch

import pytest
from pydantic import ValidationError

from tests.conftest import INJECTION_PAYLOADS, table_counts


@pytest.fixture
def service(corpus_store, clock):
    from execution.reg_corpus.config import CorpusConfig
    from execution.reg_corpus.service import RegulationService
    from execution.reg_corpus.throttle import RequestThrottle

    return RegulationService(
        config=CorpusConfig(),
        store=corpus_store,
        throttle=RequestThrottle(limit=3, window_seconds=60, clock=clock),
    )


# ---------------------------------------------------------------------------
# Boundary models
# ---------------------------------------------------------------------------

class TestApiModels:
    """Case normalisation and validation at the boundary."""

    def test_search_request_defaults(self):
        from execution.reg_corpus.api_models import SearchRequest
        req = SearchRequest()
        assert req.query == ""
        assert req.limit is None
        assert req.documents == []

    def test_search_documents_upper_cased(self):
        from execution.reg_corpus.api_models import SearchRequest
        req = SearchRequest(query="breach", documents=["gdpr", " nis2", ""])
        assert req.documents == ["GDPR", "NIS2"]

    def test_unit_lookup_normalisation(self):
        from execution.reg_corpus.api_models import UnitLookupRequest
        req = UnitLookupRequest(document="gdpr", unit="10A", kind="Article")
        assert (req.document, req.unit, req.kind) == ("GDPR", "10a", "article")

    def test_unit_lookup_accepts_integer_unit(self):
        from execution.reg_corpus.api_models import UnitLookupRequest
        req = UnitLookupRequest(document="GDPR", unit=33)
        assert req.unit == "33"

    def test_unit_lookup_rejects_unknown_kind(self):
        from execution.reg_corpus.api_models import UnitLookupRequest
        with pytest.raises(ValidationError):
            UnitLookupRequest(document="GDPR", unit="1", kind="annex")

    def test_control_request_upper_cases(self):
        from execution.reg_corpus.api_models import ControlMappingRequest
        req = ControlMappingRequest(control="a.5.24", document=" ")
        assert req.control == "A.5.24"
        assert req.document is None

    def test_compare_requires_two_documents(self):
        from execution.reg_corpus.api_models import CompareRequest
        with pytest.raises(ValidationError):
            CompareRequest(topic="breach", documents=["GDPR"])

    def test_definitions_requires_term(self):
        from execution.reg_corpus.api_models import DefinitionsRequest
        with pytest.raises(ValidationError):
            DefinitionsRequest(term="")


# ---------------------------------------------------------------------------
# Search
# ---------------------------------------------------------------------------

class TestServiceSearch:
    """Throttled search through the facade."""

    def test_search_returns_plain_dicts(self, service):
        results = service.search({"query": "breach notification", "documents": ["gdpr"]}, client_id="k1")
        assert results
        assert set(results[0]) == {"document", "unit", "title", "snippet", "kind"}
        assert all(r["document"] == "GDPR" for r in results)

    def test_search_empty_query(self, service):
        assert service.search({"query": "   "}, client_id="k1") == []

    def test_search_throttled_per_client(self, service, clock):
        from execution.reg_corpus.throttle import RateLimitedError
        for _ in range(3):
            service.search({"query": "breach"}, client_id="k1")
        with pytest.raises(RateLimitedError) as exc_info:
            service.search({"query": "breach"}, client_id="k1")
        assert exc_info.value.reset_at == clock.now + 60

        assert service.search({"query": "breach"}, client_id="k2")

    def test_search_invalid_payload(self, service):
        with pytest.raises(ValidationError):
            service.search({"query": "breach", "limit": "lots"}, client_id="k1")


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------

class TestServiceLookups:
    """Non-search operations."""

    def test_get_article_unit(self, service):
        article = service.get_unit({"document": "gdpr", "unit": "34"})
        assert article["number"] == "34"
        assert article["references"][0]["kind"] == "override"

    def test_get_recital_unit(self, service):
        recital = service.get_unit({"document": "GDPR", "unit": "2", "kind": "recital"})
        assert recital["ordinal"] == 2

    def test_get_recital_non_numeric_unit(self, service):
        assert service.get_unit({"document": "GDPR", "unit": "two", "kind": "recital"}) is None

    @pytest.mark.parametrize("unit", ["²", "٣", "1" * 5000, "123456"])
    def test_get_recital_non_ascii_or_oversized_unit(self, service, unit):
        assert service.get_unit({"document": "GDPR", "unit": unit, "kind": "recital"}) is None

    def test_get_unit_not_found(self, service):
        assert service.get_unit({"document": "GDPR", "unit": "404"}) is None

    @pytest.mark.parametrize("payload", INJECTION_PAYLOADS)
    @pytest.mark.parametrize("kind", ["article", "recital"])
    def test_injection_as_document_is_harmless(self, service, corpus_store, payload, kind):
        before = table_counts(corpus_store)
        assert service.get_unit({"document": payload, "unit": "1", "kind": kind}) is None
        assert table_counts(corpus_store) == before

    def test_map_controls(self, service):
        controls = service.map_controls({"control": "a.5.24"})
        assert controls[0]["control_id"] == "A.5.24"
        assert len(controls[0]["mappings"]) == 2

    def test_get_definitions(self, service):
        results = service.get_definitions({"term": "breach", "document": "gdpr"})
        assert [d["term"] for d in results] == ["personal data breach"]

    def test_get_references(self, service):
        refs = service.get_references({"document": "nis2", "article": "23"})
        assert refs["outgoing"][0]["target_document"] == "GDPR"

    def test_compare(self, service):
        result = service.compare({"topic": "breach notification", "documents": ["GDPR", "nis2"]})
        assert result["topic"] == "breach notification"
        assert [c["document"] for c in result["documents"]] == ["GDPR", "NIS2"]

    def test_list_documents(self, service):
        assert [d["document"] for d in service.list_documents()] == ["GDPR", "NIS2"]


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------

class TestServiceConstruction:
    """Store creation from configuration."""

    def test_store_created_lazily_from_config(self, populated_db):
        from execution.reg_corpus.config import CorpusConfig
        from execution.reg_corpus.corpus_store import create_store
        from execution.reg_corpus.service import RegulationService

        with patch("execution.reg_corpus.service.create_store", wraps=create_store) as factory:
            service = RegulationService(config=CorpusConfig(db_path=populated_db))
            factory.assert_not_called()
            assert service.get_unit({"document": "GDPR", "unit": "1"})["number"] == "1"
            factory.assert_called_once()
            service.close()

    def test_default_throttle_uses_config(self):
        from execution.reg_corpus.config import CorpusConfig
        from execution.reg_corpus.service import RegulationService
        service = RegulationService(config=CorpusConfig(rate_limit_requests=2))
        assert service.throttle.check("x").remaining == 1
