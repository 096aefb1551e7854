#!/usr/bin/env python3
"""
Regulation Ingestion

Parses one document's raw text, extracts its citations and replaces that
document's rows in the corpus inside a single transaction: readers see
either the previous snapshot or the new one, never a mix.

Usage:
    python -m execution.reg_corpus.ingest data/gdpr.txt --document GDPR \\
        --name "General Data Protection Regulation" --version 32016R0679 \\
        --effective-date 2018-05-25 --init-schema

    # Also load control mappings
    python -m execution.reg_corpus.ingest data/gdpr.txt --document GDPR \\
        --name "General Data Protection Regulation" --mappings data/iso27001.json
"""

import sys
import json
import time
import argparse
import logging
from pathlib import Path
from datetime import datetime, timezone
from typing import Optional, Protocol
from dataclasses import dataclass, field

from .config import CorpusConfig
from .corpus_store import CorpusStore, create_store
from .citation import CitationExtractor
from .document_parser import RegulationParser, RegulationDocument, ParsedRegulation

logger = logging.getLogger(__name__)

VALID_COVERAGE = ("full", "partial", "related")


class SourceUnavailableError(Exception):
    """Upstream source could not be fetched. Rerunning the ingestion may succeed."""

    def __init__(self, message: str, family: str, identifier: str):
        super().__init__(message)
        self.family = family
        self.identifier = identifier


class SourceFetcher(Protocol):
    """Retrieves the raw text of one document from an upstream source."""

    def fetch(self, family: str, identifier: str) -> str:
        ...


@dataclass
class ControlMapping:
    """Links a security-framework control to the articles that address it."""
    control_id: str
    control_name: str
    document_id: str
    articles: list[str]
    coverage: str
    notes: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "ControlMapping":
        coverage = str(data.get("coverage", "")).strip().lower()
        if coverage not in VALID_COVERAGE:
            raise ValueError(
                f"Invalid coverage '{data.get('coverage')}' for control "
                f"{data.get('control_id')}; expected one of {', '.join(VALID_COVERAGE)}"
            )
        return cls(
            control_id=str(data["control_id"]).strip().upper(),
            control_name=data["control_name"],
            document_id=str(data.get("document_id") or data["document"]).strip().upper(),
            articles=[str(a).strip().lower() for a in data.get("articles", [])],
            coverage=coverage,
            notes=data.get("notes"),
        )


@dataclass
class IngestionReport:
    """What one ingestion run wrote."""
    document_id: str
    articles: int = 0
    recitals: int = 0
    definitions: int = 0
    references: int = 0
    unresolved_references: int = 0
    dropped_citations: int = 0
    warnings: list[str] = field(default_factory=list)
    elapsed_seconds: float = 0.0

    def to_dict(self) -> dict:
        return {
            "document_id": self.document_id,
            "articles": self.articles,
            "recitals": self.recitals,
            "definitions": self.definitions,
            "references": self.references,
            "unresolved_references": self.unresolved_references,
            "dropped_citations": self.dropped_citations,
            "warnings": list(self.warnings),
            "elapsed_seconds": round(self.elapsed_seconds, 3),
        }


# =============================================================================
# Ingestion
# =============================================================================

def ingest_document(
    store: CorpusStore,
    raw_text: str,
    document: RegulationDocument,
    parser: Optional[RegulationParser] = None,
    extractor: Optional[CitationExtractor] = None,
) -> IngestionReport:
    """
    Parse, extract citations and atomically replace one document's rows.

    Raises:
        StructuralParseError: Text has no article boundaries (nothing written)
        StoreUnavailableError / QueryFaultError: Store failure (rolled back)
    """
    start = time.time()
    document_id = document.document_id.strip().upper()
    parser = parser or RegulationParser()
    extractor = extractor or CitationExtractor()

    parsed = parser.parse(raw_text, document_id)
    citations = extractor.extract([parsed])

    with store.transaction() as tx:
        _write_document(tx, document, document_id, parsed, citations.references)

    report = IngestionReport(
        document_id=document_id,
        articles=len(parsed.articles),
        recitals=len(parsed.recitals),
        definitions=len(parsed.definitions),
        references=len(citations.references),
        unresolved_references=len(citations.unresolved),
        dropped_citations=citations.dropped,
        warnings=list(parsed.warnings) + [str(w) for w in citations.warnings],
        elapsed_seconds=time.time() - start,
    )
    logger.info(
        f"Ingested {document_id}: {report.articles} articles, {report.recitals} recitals, "
        f"{report.definitions} definitions, {report.references} references "
        f"({report.unresolved_references} unresolved, {report.dropped_citations} dropped)"
    )
    return report


def _write_document(tx, document: RegulationDocument, document_id: str,
                    parsed: ParsedRegulation, references) -> None:
    tx.execute(
        """
        INSERT INTO documents (id, name, source_version, effective_date, ingested_at)
        VALUES ($1, $2, $3, $4, $5)
        ON CONFLICT (id) DO UPDATE SET
            name = excluded.name,
            source_version = excluded.source_version,
            effective_date = excluded.effective_date,
            ingested_at = excluded.ingested_at
        """,
        [
            document_id,
            document.name,
            document.source_version,
            document.effective_date,
            datetime.now(timezone.utc).isoformat(),
        ],
    )

    # Children first so the composite foreign keys never dangle
    tx.execute("DELETE FROM article_references WHERE source_document = $1", [document_id])
    tx.execute("DELETE FROM definitions WHERE document_id = $1", [document_id])
    tx.execute("DELETE FROM recitals WHERE document_id = $1", [document_id])
    tx.execute("DELETE FROM articles WHERE document_id = $1", [document_id])

    for position, article in enumerate(parsed.articles):
        tx.execute(
            """
            INSERT INTO articles (document_id, article_number, position, title, body, chapter)
            VALUES ($1, $2, $3, $4, $5, $6)
            """,
            [document_id, article.number, position, article.title, article.body, article.chapter],
        )

    for recital in parsed.recitals:
        tx.execute(
            "INSERT INTO recitals (document_id, ordinal, body) VALUES ($1, $2, $3)",
            [document_id, recital.ordinal, recital.body],
        )

    for definition in parsed.definitions:
        tx.execute(
            """
            INSERT INTO definitions (document_id, term, definition, article_number)
            VALUES ($1, $2, $3, $4)
            """,
            [document_id, definition.term, definition.definition, definition.article_number],
        )

    for position, ref in enumerate(references):
        tx.execute(
            """
            INSERT INTO article_references
                (source_document, source_article, target_document, target_article,
                 target_subdivision, raw_text, kind, position)
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
            """,
            [
                document_id,
                ref.source_article,
                ref.target_document,
                ref.target_article,
                ref.target_subdivision,
                ref.raw_text,
                ref.kind,
                position,
            ],
        )


def load_control_mappings(store: CorpusStore, mappings: list[dict]) -> int:
    """Replace the mapping rows of every control listed. Returns rows written."""
    records = [ControlMapping.from_dict(m) for m in mappings]
    control_ids = sorted({r.control_id for r in records})
    if not control_ids:
        return 0

    with store.transaction() as tx:
        placeholders = ", ".join(f"${i + 1}" for i in range(len(control_ids)))
        tx.execute(f"DELETE FROM control_mappings WHERE control_id IN ({placeholders})", control_ids)
        for record in records:
            tx.execute(
                """
                INSERT INTO control_mappings
                    (control_id, control_name, document_id, articles, coverage, notes)
                VALUES ($1, $2, $3, $4, $5, $6)
                """,
                [
                    record.control_id,
                    record.control_name,
                    record.document_id,
                    json.dumps(record.articles),
                    record.coverage,
                    record.notes,
                ],
            )

    logger.info(f"Loaded {len(records)} control mappings for {len(control_ids)} controls")
    return len(records)


def fetch_and_ingest(
    fetcher: SourceFetcher,
    family: str,
    identifier: str,
    store: CorpusStore,
    document: RegulationDocument,
    parser: Optional[RegulationParser] = None,
    extractor: Optional[CitationExtractor] = None,
) -> IngestionReport:
    """
    Fetch raw text from an upstream source, then ingest it.

    SourceUnavailableError from the fetcher propagates before anything is
    written, so the previous snapshot stays in place.
    """
    logger.info(f"Fetching {family} {identifier} for {document.document_id}")
    raw_text = fetcher.fetch(family, identifier)
    return ingest_document(store, raw_text, document, parser=parser, extractor=extractor)


def _known_documents(store: CorpusStore) -> list[str]:
    return [r["id"] for r in store.execute("SELECT id FROM documents ORDER BY id").rows]


# =============================================================================
# CLI
# =============================================================================

def main():
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%H:%M:%S",
    )

    arg_parser = argparse.ArgumentParser(description="Ingest a regulation into the corpus")
    arg_parser.add_argument("file", type=str, help="Plain-text file with the regulation")
    arg_parser.add_argument("--document", type=str, required=True, help="Document id, e.g. GDPR")
    arg_parser.add_argument("--name", type=str, required=True, help="Full document name")
    arg_parser.add_argument("--version", type=str, default=None, help="Source version (e.g. CELEX id)")
    arg_parser.add_argument("--effective-date", type=str, default=None, help="ISO effective date")
    arg_parser.add_argument(
        "--designation",
        action="append",
        default=[],
        metavar="NUMBER=DOCUMENT",
        help="Official designation to resolve, e.g. 2016/679=GDPR (repeatable)",
    )
    arg_parser.add_argument("--mappings", type=str, default=None, help="JSON file of control mappings")
    arg_parser.add_argument("--init-schema", action="store_true", help="Create tables and indexes first")
    args = arg_parser.parse_args()

    source = Path(args.file)
    if not source.exists():
        logger.error(f"File not found: {source}")
        sys.exit(1)

    designations = {}
    for item in args.designation:
        number, _, target = item.partition("=")
        if not number or not target:
            logger.error(f"Invalid --designation '{item}', expected NUMBER=DOCUMENT")
            sys.exit(1)
        designations[number.strip()] = target.strip().upper()

    config = CorpusConfig.from_env()
    document = RegulationDocument(
        document_id=args.document.upper(),
        name=args.name,
        source_version=args.version,
        effective_date=args.effective_date,
    )

    with create_store(config, read_only=False) as store:
        if args.init_schema:
            store.initialize_schema()

        known = set(_known_documents(store)) | {document.document_id}
        extractor = CitationExtractor(
            designations=designations,
            display_names={doc_id: doc_id for doc_id in known},
        )

        report = ingest_document(
            store,
            source.read_text(encoding="utf-8"),
            document,
            extractor=extractor,
        )

        mapping_count = 0
        if args.mappings:
            with open(args.mappings, encoding="utf-8") as f:
                mapping_count = load_control_mappings(store, json.load(f))

    print("\n" + "=" * 60)
    print("INGESTION COMPLETE")
    print("=" * 60)
    print(f"Document:        {report.document_id}")
    print(f"Articles:        {report.articles}")
    print(f"Recitals:        {report.recitals}")
    print(f"Definitions:     {report.definitions}")
    print(f"References:      {report.references} ({report.unresolved_references} unresolved)")
    print(f"Dropped:         {report.dropped_citations}")
    print(f"Control maps:    {mapping_count}")
    print(f"Warnings:        {len(report.warnings)}")
    print(f"Time elapsed:    {report.elapsed_seconds:.1f}s")
    print("=" * 60)


if __name__ == "__main__":
    main()
