"""
Citation Extraction for Regulatory Articles

Scans parsed Articles for references to other articles and documents and
builds the reference graph:
[source document, source article] -> [target document, target article]

Patterns are applied from most to least specific; the first pattern to match
a span claims it. Unresolved designations are kept with a null target.
"""

import re
import logging
from typing import Optional
from dataclasses import dataclass, field

from .document_parser import Article, ParsedRegulation
from .patterns import (
    FULLY_QUALIFIED_CITATION,
    SELF_CITATION,
    BARE_CITATION,
    VALID_ARTICLE_NUMBER,
    ARTICLE_SUBDIVISION,
    OVERRIDE_PHRASES,
    OVERRIDE_WINDOW,
    short_form_citation,
)

logger = logging.getLogger(__name__)

KIND_EXPLICIT = "explicit"
KIND_SELF = "self"
KIND_OVERRIDE = "override"

# Pattern families, in precedence order
_FULLY_QUALIFIED = "fully_qualified"
_SHORT_FORM = "short_form"
_SAME_DOCUMENT = "same_document"

_SENTENCE_BREAK = re.compile(r"[.;:]\s")


class CitationResolutionWarning(UserWarning):
    """A citation pattern matched but its article number could not be parsed."""

    def __init__(self, message: str, document_id: str, article_number: str, raw_text: str):
        super().__init__(message)
        self.document_id = document_id
        self.article_number = article_number
        self.raw_text = raw_text


@dataclass
class Reference:
    """A directed citation edge from one article to another article."""
    source_document: str
    source_article: str
    target_document: Optional[str]
    target_article: Optional[str]
    raw_text: str
    kind: str
    target_subdivision: str = ""

    @property
    def resolved(self) -> bool:
        return self.target_document is not None

    def to_dict(self) -> dict:
        return {
            "source_document": self.source_document,
            "source_article": self.source_article,
            "target_document": self.target_document,
            "target_article": self.target_article,
            "target_subdivision": self.target_subdivision,
            "raw_text": self.raw_text,
            "kind": self.kind,
        }


@dataclass
class CitationExtractionResult:
    """References for one ingestion batch plus what had to be dropped."""
    references: list[Reference] = field(default_factory=list)
    dropped: int = 0
    warnings: list[CitationResolutionWarning] = field(default_factory=list)

    @property
    def unresolved(self) -> list[Reference]:
        return [r for r in self.references if not r.resolved]


class CitationExtractor:
    """
    Extracts Reference records from parsed Articles.

    Usage:
        extractor = CitationExtractor(
            designations={"2016/679": "GDPR"},
            display_names={"GDPR": "GDPR"},
        )
        result = extractor.extract([parsed_gdpr, parsed_nis2])
    """

    def __init__(
        self,
        designations: Optional[dict[str, str]] = None,
        display_names: Optional[dict[str, str]] = None,
    ):
        """
        Initialize citation extractor.

        Args:
            designations: Official designation ("2016/679") -> document id
            display_names: Short display name ("GDPR") -> document id
        """
        self._designations = dict(designations or {})
        self._display_names = dict(display_names or {})

        patterns = [(_FULLY_QUALIFIED, FULLY_QUALIFIED_CITATION)]
        short_form = short_form_citation(self._display_names)
        if short_form is not None:
            patterns.append((_SHORT_FORM, short_form))
        patterns.append((_SAME_DOCUMENT, SELF_CITATION))
        patterns.append((_SAME_DOCUMENT, BARE_CITATION))
        self._patterns = patterns

    def extract(self, batch: list[ParsedRegulation]) -> CitationExtractionResult:
        """
        Extract references from every article in the batch.

        Never raises for content reasons: unparseable matches are dropped and
        counted, unresolved designations are kept with a null target.
        """
        result = CitationExtractionResult()

        for parsed in batch:
            for article in parsed.articles:
                self._extract_article(parsed.document_id, article, result)

        logger.info(
            f"Extracted {len(result.references)} references "
            f"({len(result.unresolved)} unresolved, {result.dropped} dropped)"
        )
        return result

    def _extract_article(
        self,
        document_id: str,
        article: Article,
        result: CitationExtractionResult,
    ) -> None:
        text = article.body
        claimed: list[tuple[int, int]] = []
        found: list[tuple[int, Reference]] = []

        for family, pattern in self._patterns:
            for match in pattern.finditer(text):
                start, end = match.span()
                if any(start < c_end and end > c_start for c_start, c_end in claimed):
                    continue
                claimed.append((start, end))

                number = match.group("number")
                if not VALID_ARTICLE_NUMBER.match(number.lower()):
                    warning = CitationResolutionWarning(
                        f"Unparseable article number '{number}' in '{match.group(0)}'",
                        document_id=document_id,
                        article_number=article.number,
                        raw_text=match.group(0),
                    )
                    logger.warning(f"{document_id} Article {article.number}: {warning}")
                    result.warnings.append(warning)
                    result.dropped += 1
                    continue

                target_document = self._resolve_target(family, match, document_id)
                parts = ARTICLE_SUBDIVISION.match(number)
                kind = self._classify(text, start, target_document, document_id)

                found.append((start, Reference(
                    source_document=document_id,
                    source_article=article.number,
                    target_document=target_document,
                    target_article=parts.group("article") if target_document else None,
                    target_subdivision=parts.group("subdivision") if target_document else "",
                    raw_text=match.group(0),
                    kind=kind,
                )))

        found.sort(key=lambda item: item[0])
        result.references.extend(reference for _, reference in found)

    def _resolve_target(self, family: str, match: re.Match, document_id: str) -> Optional[str]:
        if family == _FULLY_QUALIFIED:
            designation = match.group("designation")
            target = self._designations.get(designation)
            if target is None:
                logger.debug(f"Unresolved designation '{designation}' cited from {document_id}")
            return target
        if family == _SHORT_FORM:
            return self._display_names[match.group("name")]
        return document_id

    def _classify(
        self,
        text: str,
        start: int,
        target_document: Optional[str],
        document_id: str,
    ) -> str:
        """Override if introduced by a derogation phrase in the same sentence."""
        window = text[max(0, start - OVERRIDE_WINDOW):start]
        sentence_tail = _SENTENCE_BREAK.split(window)[-1]
        if OVERRIDE_PHRASES.search(sentence_tail):
            return KIND_OVERRIDE
        if target_document == document_id:
            return KIND_SELF
        return KIND_EXPLICIT
