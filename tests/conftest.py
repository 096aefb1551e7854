"""
Shared fixtures and test utilities for Regulation Corpus tests.

Provides sample regulatory texts, control mappings and a real SQLite corpus
(built in a temporary directory with the production schema) so that all
tests run without PostgreSQL or network access.
"""

import sys
from pathlib import Path

import pytest
from dotenv import load_dotenv

# ---------------------------------------------------------------------------
# Path setup - ensure the execution package is importable
# ---------------------------------------------------------------------------
PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

load_dotenv(PROJECT_ROOT / ".env")

# ---------------------------------------------------------------------------
# Sample regulatory texts
# ---------------------------------------------------------------------------
SAMPLE_GDPR = """
REGULATION (EU) 2016/679 OF THE EUROPEAN PARLIAMENT AND OF THE COUNCIL

on the protection of natural persons with regard to the processing of personal data

Whereas:

(1) The protection of natural persons in relation to the processing of personal data is a fundamental right.

(2) The principles of data protection should apply to any information concerning an identified or identifiable natural person.
Such information should be handled with care.

(3) A personal data breach may, if not addressed in an appropriate and timely manner, result in damage to natural persons. Incident reporting obligations support supervisory authorities.

HAVE ADOPTED THIS REGULATION:

CHAPTER I
General provisions

Article 1
Subject-matter and objectives
This Regulation lays down rules relating to the protection of natural persons with regard to the processing of personal data.

Article 4
Definitions
For the purposes of this Regulation:
(1) 'personal data' means any information relating to an identified or identifiable natural person;
(2) 'processing' means any operation or set of operations which is performed on personal data;
(12) 'personal data breach' means a breach of security leading to the accidental or unlawful destruction of personal data;

CHAPTER IV
Controller and processor

Article 33
Notification of a personal data breach to the supervisory authority
In the case of a personal data breach, the controller shall without undue delay and, where feasible, not later than 72 hours after having become aware of it, notify the personal data breach to the supervisory authority competent in accordance with Article 55.
The notification referred to in Article 33(1) shall at least describe the nature of the personal data breach.

Article 34
Communication of a personal data breach to the data subject
When the personal data breach is likely to result in a high risk, the controller shall communicate the personal data breach to the data subject without undue delay.
By way of derogation from Article 33 of this Regulation, no notification is required where the data are encrypted.
"""

SAMPLE_NIS2 = """
DIRECTIVE (EU) 2022/2555 OF THE EUROPEAN PARLIAMENT AND OF THE COUNCIL

Whereas:

(1) Network and information systems have developed into a central feature of everyday life.

HAVE ADOPTED THIS DIRECTIVE:

CHAPTER I
General provisions

Article 1
Subject matter
This Directive lays down measures that aim to achieve a high common level of cybersecurity across the Union.

CHAPTER IV
Cybersecurity risk-management measures and reporting obligations

Article 23
Reporting obligations
Each Member State shall ensure that essential and important entities notify, without undue delay, its CSIRT of any significant incident. Entities shall submit an early warning within 24 hours of becoming aware of the significant incident and an incident notification within 72 hours.
Where the incident involves a personal data breach, Article 33 of Regulation (EU) 2016/679 shall apply.
"""

SAMPLE_CONTROL_MAPPINGS = [
    {
        "control_id": "a.5.24",
        "control_name": "Information security incident management planning",
        "document": "gdpr",
        "articles": ["33", "34"],
        "coverage": "full",
        "notes": None,
    },
    {
        "control_id": "A.5.24",
        "control_name": "Information security incident management planning",
        "document": "NIS2",
        "articles": ["23"],
        "coverage": "partial",
        "notes": "Reporting timelines only",
    },
    {
        "control_id": "A.8.24",
        "control_name": "Use of cryptography",
        "document": "GDPR",
        "articles": ["34"],
        "coverage": "related",
        "notes": None,
    },
]

DESIGNATIONS = {"2016/679": "GDPR", "2022/2555": "NIS2"}
DISPLAY_NAMES = {"GDPR": "GDPR", "NIS2": "NIS2"}

INJECTION_PAYLOADS = [
    "'; DROP TABLE articles; --",
    "GDPR' OR '1'='1",
    "GDPR\"; DELETE FROM recitals; --",
    "%",
    "_",
    "$1",
]

CORPUS_TABLES = [
    "documents", "articles", "recitals", "definitions",
    "article_references", "control_mappings",
]


def table_counts(store) -> dict:
    """Row count of every corpus relation."""
    return {
        table: store.execute(f"SELECT COUNT(*) AS n FROM {table}").first()["n"]
        for table in CORPUS_TABLES
    }


# ---------------------------------------------------------------------------
# Fixtures: texts and parser objects
# ---------------------------------------------------------------------------

@pytest.fixture
def gdpr_text():
    return SAMPLE_GDPR


@pytest.fixture
def nis2_text():
    return SAMPLE_NIS2


@pytest.fixture
def parser():
    from execution.reg_corpus.document_parser import RegulationParser
    return RegulationParser()


@pytest.fixture
def extractor():
    from execution.reg_corpus.citation import CitationExtractor
    return CitationExtractor(designations=DESIGNATIONS, display_names=DISPLAY_NAMES)


@pytest.fixture
def parsed_gdpr(parser):
    return parser.parse(SAMPLE_GDPR, "GDPR")


# ---------------------------------------------------------------------------
# Fixtures: SQLite corpus
# ---------------------------------------------------------------------------

@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "regulations.db")


@pytest.fixture
def writable_store(db_path):
    """Empty writable store with the schema created."""
    from execution.reg_corpus.corpus_store import SQLiteCorpusStore

    store = SQLiteCorpusStore(db_path, read_only=False)
    store.connect()
    store.initialize_schema()
    yield store
    store.close()


@pytest.fixture
def populated_db(writable_store, db_path, extractor):
    """Writable store holding both sample documents and the control mappings."""
    from execution.reg_corpus.document_parser import RegulationDocument
    from execution.reg_corpus.ingest import ingest_document, load_control_mappings

    ingest_document(
        writable_store,
        SAMPLE_GDPR,
        RegulationDocument("GDPR", "General Data Protection Regulation", "32016R0679", "2018-05-25"),
        extractor=extractor,
    )
    ingest_document(
        writable_store,
        SAMPLE_NIS2,
        RegulationDocument("NIS2", "NIS 2 Directive", "32022L2555", "2024-10-18"),
        extractor=extractor,
    )
    load_control_mappings(writable_store, SAMPLE_CONTROL_MAPPINGS)
    return db_path


@pytest.fixture
def corpus_store(populated_db):
    """Read-only serving store over the populated corpus."""
    from execution.reg_corpus.corpus_store import SQLiteCorpusStore

    store = SQLiteCorpusStore(populated_db, read_only=True)
    store.connect()
    yield store
    store.close()


@pytest.fixture
def retriever(corpus_store):
    from execution.reg_corpus.retriever import RegulationRetriever
    return RegulationRetriever(corpus_store)


@pytest.fixture
def lookups(corpus_store, retriever):
    from execution.reg_corpus.lookups import RegulationLookups
    return RegulationLookups(corpus_store, retriever)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start=1000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()
