"""
Tests for execution/reg_corpus/lookups.py

Covers: article and recital retrieval (with not-found sentinels),
        definitions, reference neighbourhoods, control mapping grouping,
        document listings, requirement comparison and timeline extraction.
"""

import pytest

from tests.conftest import INJECTION_PAYLOADS, table_counts


# ---------------------------------------------------------------------------
# Articles and recitals
# ---------------------------------------------------------------------------

class TestArticleLookup:
    """get_article and get_recital."""

    def test_get_article(self, lookups):
        article = lookups.get_article("GDPR", "33")
        assert article["document"] == "GDPR"
        assert article["number"] == "33"
        assert article["title"] == "Notification of a personal data breach to the supervisory authority"
        assert article["chapter"] == "IV"
        assert "72 hours" in article["body"]

    def test_get_article_includes_outgoing_references(self, lookups):
        article = lookups.get_article("GDPR", "33")
        targets = [(r["target_article"], r["target_subdivision"]) for r in article["references"]]
        assert targets == [("55", ""), ("33", "(1)")]

    def test_get_article_normalises_case(self, lookups):
        assert lookups.get_article("gdpr", "33")["document"] == "GDPR"

    def test_missing_article_is_none(self, lookups):
        assert lookups.get_article("GDPR", "999") is None

    def test_missing_document_is_none(self, lookups):
        assert lookups.get_article("UNKNOWN", "1") is None

    def test_get_recital(self, lookups):
        recital = lookups.get_recital("GDPR", 1)
        assert recital == {
            "document": "GDPR",
            "ordinal": 1,
            "body": "The protection of natural persons in relation to the processing "
                    "of personal data is a fundamental right.",
        }

    @pytest.mark.parametrize("ordinal", [0, -1, 10001, "1", 1.0, None, True])
    def test_invalid_recital_ordinal_is_none(self, lookups, ordinal):
        assert lookups.get_recital("GDPR", ordinal) is None

    def test_missing_recital_is_none(self, lookups):
        assert lookups.get_recital("GDPR", 99) is None

    @pytest.mark.parametrize("payload", INJECTION_PAYLOADS)
    def test_injection_as_document_is_harmless(self, lookups, corpus_store, payload):
        before = table_counts(corpus_store)
        assert lookups.get_article(payload, "1") is None
        assert lookups.get_recital(payload, 1) is None
        assert table_counts(corpus_store) == before


# ---------------------------------------------------------------------------
# Definitions and references
# ---------------------------------------------------------------------------

class TestDefinitionsAndReferences:
    """get_definitions and get_references."""

    def test_definitions_containment(self, lookups):
        terms = [d["term"] for d in lookups.get_definitions("personal data")]
        assert terms == ["personal data", "personal data breach"]

    def test_definitions_case_insensitive(self, lookups):
        results = lookups.get_definitions("PROCESSING")
        assert [d["term"] for d in results] == ["processing"]
        assert results[0]["article"] == "4"
        assert results[0]["document"] == "GDPR"

    def test_definitions_document_filter(self, lookups):
        assert lookups.get_definitions("personal data", document="NIS2") == []

    def test_definitions_wildcards_are_literal(self, lookups):
        assert lookups.get_definitions("%") == []
        assert lookups.get_definitions("_") == []

    def test_references_incoming_and_outgoing(self, lookups):
        refs = lookups.get_references("GDPR", "33")
        assert refs["article"] == "33"
        assert len(refs["outgoing"]) == 2

        incoming = {(r["source_document"], r["source_article"], r["kind"]) for r in refs["incoming"]}
        assert ("NIS2", "23", "explicit") in incoming
        assert ("GDPR", "34", "override") in incoming
        assert ("GDPR", "33", "self") in incoming

    def test_references_for_missing_article_is_none(self, lookups):
        assert lookups.get_references("GDPR", "999") is None


# ---------------------------------------------------------------------------
# Control mappings and documents
# ---------------------------------------------------------------------------

class TestControlsAndDocuments:
    """map_controls and list_documents."""

    def test_grouped_by_control(self, lookups):
        controls = lookups.map_controls()
        assert [c["control_id"] for c in controls] == ["A.5.24", "A.8.24"]
        incident = controls[0]
        assert incident["control_name"] == "Information security incident management planning"
        assert [m["document"] for m in incident["mappings"]] == ["GDPR", "NIS2"]
        assert incident["mappings"][0]["articles"] == ["33", "34"]
        assert incident["mappings"][1]["coverage"] == "partial"

    def test_filter_by_control(self, lookups):
        controls = lookups.map_controls(control="a.8.24")
        assert len(controls) == 1
        assert controls[0]["mappings"][0]["coverage"] == "related"

    def test_filter_by_document(self, lookups):
        controls = lookups.map_controls(document="NIS2")
        assert [c["control_id"] for c in controls] == ["A.5.24"]

    def test_unknown_control(self, lookups):
        assert lookups.map_controls(control="Z.9.99") == []

    def test_list_documents(self, lookups):
        documents = lookups.list_documents()
        assert [(d["document"], d["article_count"]) for d in documents] == [("GDPR", 4), ("NIS2", 2)]
        assert "chapters" not in documents[0]

    def test_list_single_document_with_chapters(self, lookups):
        documents = lookups.list_documents("gdpr")
        assert len(documents) == 1
        assert documents[0]["effective_date"] == "2018-05-25"
        assert documents[0]["chapters"] == [
            {"chapter": "I", "articles": ["1", "4"]},
            {"chapter": "IV", "articles": ["33", "34"]},
        ]

    def test_list_unknown_document(self, lookups):
        assert lookups.list_documents("UNKNOWN") == []


# ---------------------------------------------------------------------------
# Comparison
# ---------------------------------------------------------------------------

class TestCompare:
    """compare_requirements and extract_timelines."""

    def test_extract_timelines(self):
        from execution.reg_corpus.lookups import extract_timelines
        text = "Notify without undue delay and within 72 hours; a final report within 30 days. Act immediately."
        assert extract_timelines(text) == ["72 hours", "30 days", "without undue delay", "immediately"]

    def test_extract_timelines_deduplicates(self):
        from execution.reg_corpus.lookups import extract_timelines
        assert extract_timelines("72 hours, then again 72 hours") == ["72 hours"]

    def test_compare_requirements(self, lookups):
        comparisons = lookups.compare_requirements("breach notification", ["gdpr", "NIS2"])
        assert [c["document"] for c in comparisons] == ["GDPR", "NIS2"]

        gdpr = comparisons[0]
        assert "33" in gdpr["articles"]
        assert "72 hours" in gdpr["timelines"]
        assert "without undue delay" in gdpr["timelines"]
        assert all(">>>" not in r and "<<<" not in r for r in gdpr["requirements"])

        nis2 = comparisons[1]
        assert nis2["articles"] == ["23"]
        assert "24 hours" in nis2["timelines"]

    def test_compare_no_matches(self, lookups):
        comparisons = lookups.compare_requirements("zeppelin", ["GDPR", "NIS2"])
        assert all(c["articles"] == [] and c["timelines"] == [] for c in comparisons)
