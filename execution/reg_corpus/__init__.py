"""
Regulation Corpus - structured storage and lexical retrieval for regulations

This module provides:
- Parsing of regulatory text into Articles, Recitals and Definitions
- Citation extraction into a cross-document reference graph
- A corpus store with interchangeable SQLite (FTS5) and PostgreSQL backends
- Adaptive full-text search, point lookups and per-client throttling
"""

from .document_parser import RegulationParser, RegulationDocument, StructuralParseError
from .citation import CitationExtractor, CitationResolutionWarning
from .corpus_store import CorpusStore, create_store, StoreUnavailableError, QueryFaultError
from .retriever import RegulationRetriever
from .throttle import RequestThrottle, RateLimitedError
from .service import RegulationService

__all__ = [
    "RegulationParser",
    "RegulationDocument",
    "StructuralParseError",
    "CitationExtractor",
    "CitationResolutionWarning",
    "CorpusStore",
    "create_store",
    "StoreUnavailableError",
    "QueryFaultError",
    "RegulationRetriever",
    "RequestThrottle",
    "RateLimitedError",
    "RegulationService",
]

__version__ = "0.1.0"
