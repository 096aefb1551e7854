"""
Regulation Document Parser - Extracts structured content from regulatory text

Turns long-form regulatory prose (as published, loosely line-structured) into
ordered Articles, ordered Recitals and Definitions. Article numbers are kept
verbatim ("5(1)(a)", "10a"); recital ordinals are validated in source order.
"""

import re
import json
import logging
from enum import Enum
from dataclasses import dataclass, field
from typing import Optional

from .patterns import (
    ARTICLE_HEADER,
    CHAPTER_HEADER,
    RECITALS_OPENING,
    RECITALS_CLOSING,
    RECITAL_MARKER,
    MAX_TITLE_LENGTH,
    DEFINITIONS_TITLE_KEYWORD,
    DEFINITION_ENTRY,
    CURLY_QUOTES,
    MIN_DEFINITION_LENGTH,
)

logger = logging.getLogger(__name__)

PARAGRAPH_BREAK = "\n\n"


class StructuralParseError(Exception):
    """Raised when raw text contains no Article boundary at all."""

    def __init__(self, message: str, document_id: str):
        super().__init__(message)
        self.document_id = document_id


@dataclass
class RegulationDocument:
    """Metadata for one regulatory instrument."""
    document_id: str
    name: str
    source_version: Optional[str] = None
    effective_date: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "document_id": self.document_id,
            "name": self.name,
            "source_version": self.source_version,
            "effective_date": self.effective_date,
        }


@dataclass
class Article:
    """A numbered operative provision."""
    number: str
    body: str
    title: Optional[str] = None
    chapter: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "number": self.number,
            "title": self.title,
            "body": self.body,
            "chapter": self.chapter,
        }


@dataclass
class Recital:
    """A numbered preamble paragraph."""
    ordinal: int
    body: str

    def to_dict(self) -> dict:
        return {"ordinal": self.ordinal, "body": self.body}


@dataclass
class Definition:
    """A defined term, anchored to the article that defines it."""
    term: str
    definition: str
    article_number: str

    def to_dict(self) -> dict:
        return {
            "term": self.term,
            "definition": self.definition,
            "article_number": self.article_number,
        }


@dataclass
class ParsedRegulation:
    """Complete structured output for one document."""
    document_id: str
    articles: list[Article]
    recitals: list[Recital] = field(default_factory=list)
    definitions: list[Definition] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "document_id": self.document_id,
            "articles": [a.to_dict() for a in self.articles],
            "recitals": [r.to_dict() for r in self.recitals],
            "definitions": [d.to_dict() for d in self.definitions],
            "warnings": list(self.warnings),
        }

    def to_json(self) -> str:
        """Serialise deterministically (stable key order, no timestamps)."""
        return json.dumps(self.to_dict(), sort_keys=True, ensure_ascii=False, indent=2)


# =============================================================================
# Recital State Machine
# =============================================================================

class RecitalState(Enum):
    BEFORE_RECITALS = "before_recitals"
    IN_RECITALS = "in_recitals"
    DONE = "done"


class RecitalStateMachine:
    """
    Line-oriented recital extractor.

    BEFORE_RECITALS -> IN_RECITALS on "Whereas:".
    IN_RECITALS -> DONE on the enacting formula or the first Article heading.

    While in recitals, a "(N)" line flushes the open recital and opens a new
    one; any other non-blank line continues the open recital.
    """

    def __init__(self):
        self.state = RecitalState.BEFORE_RECITALS
        self.recitals: list[Recital] = []
        self.warnings: list[str] = []
        self._ordinal: Optional[int] = None
        self._buffer: list[str] = []
        self._transitions = {
            RecitalState.BEFORE_RECITALS: self._before_recitals,
            RecitalState.IN_RECITALS: self._in_recitals,
            RecitalState.DONE: self._done,
        }

    def feed(self, line: str) -> RecitalState:
        """Consume one stripped line and return the resulting state."""
        self.state = self._transitions[self.state](line)
        return self.state

    def finish(self) -> list[Recital]:
        """Flush whatever is still open and return recitals in source order."""
        if self.state is RecitalState.IN_RECITALS:
            self._flush()
            self.state = RecitalState.DONE
        return self.recitals

    def _before_recitals(self, line: str) -> RecitalState:
        if RECITALS_OPENING.match(line):
            return RecitalState.IN_RECITALS
        return RecitalState.BEFORE_RECITALS

    def _in_recitals(self, line: str) -> RecitalState:
        if RECITALS_CLOSING.match(line) or ARTICLE_HEADER.match(line):
            self._flush()
            return RecitalState.DONE

        if not line:
            return RecitalState.IN_RECITALS

        marker = RECITAL_MARKER.match(line)
        if marker:
            ordinal = int(marker.group("ordinal"))
            if self._ordinal is not None and ordinal <= self._ordinal:
                self.warnings.append(
                    f"Recital ({ordinal}) after ({self._ordinal}) rejected as duplicate; "
                    f"kept as text of recital ({self._ordinal})"
                )
                self._buffer.append(line)
                return RecitalState.IN_RECITALS

            self._flush()
            self._ordinal = ordinal
            rest = marker.group("rest").strip()
            self._buffer = [rest] if rest else []
        elif self._ordinal is not None:
            self._buffer.append(line)

        return RecitalState.IN_RECITALS

    def _done(self, line: str) -> RecitalState:
        return RecitalState.DONE

    def _flush(self) -> None:
        if self._ordinal is not None and self._buffer:
            self.recitals.append(Recital(
                ordinal=self._ordinal,
                body=PARAGRAPH_BREAK.join(self._buffer),
            ))
        self._buffer = []


# =============================================================================
# Parser
# =============================================================================

@dataclass
class _OpenArticle:
    number: str
    title: Optional[str]
    chapter: Optional[str]
    lines: list[str] = field(default_factory=list)
    title_pending: bool = True

    def close(self) -> Article:
        return Article(
            number=self.number,
            title=self.title,
            body=PARAGRAPH_BREAK.join(self.lines),
            chapter=self.chapter,
        )


class RegulationParser:
    """
    Parses regulatory text into Articles, Recitals and Definitions.

    Usage:
        parser = RegulationParser()
        parsed = parser.parse(raw_text, "GDPR")
    """

    def __init__(self, max_title_length: int = MAX_TITLE_LENGTH):
        self._max_title_length = max_title_length

    def parse(self, raw_text: str, document_id: str) -> ParsedRegulation:
        """
        Parse raw regulatory text.

        Args:
            raw_text: Full text of the document
            document_id: Identifier of the document being parsed

        Returns:
            ParsedRegulation with articles, recitals, definitions and warnings

        Raises:
            StructuralParseError: If no Article heading is found
        """
        lines = [line.strip() for line in (raw_text or "").splitlines()]

        recital_machine = RecitalStateMachine()
        for line in lines:
            if recital_machine.feed(line) is RecitalState.DONE:
                break
        recitals = recital_machine.finish()

        warnings = list(recital_machine.warnings)
        articles, headings = self._extract_articles(lines, warnings)

        if not headings:
            raise StructuralParseError(
                f"No article boundaries found in document {document_id}; "
                "input is probably not regulatory content",
                document_id=document_id,
            )

        definitions = self._extract_definitions(articles, warnings)

        for warning in warnings:
            logger.warning(f"{document_id}: {warning}")
        logger.info(
            f"Parsed {document_id}: {len(articles)} articles, "
            f"{len(recitals)} recitals, {len(definitions)} definitions"
        )

        return ParsedRegulation(
            document_id=document_id,
            articles=articles,
            recitals=recitals,
            definitions=definitions,
            warnings=warnings,
        )

    def _extract_articles(self, lines: list[str], warnings: list[str]) -> tuple[list[Article], int]:
        """
        Slice the text at article headings; chapters set the running label.

        Returns the articles that carry a body and the number of headings seen.
        A heading with no body anywhere (a lone contents entry) is dropped.
        """
        articles: list[Article] = []
        headings = 0
        positions: dict[str, int] = {}
        chapter: Optional[str] = None
        current: Optional[_OpenArticle] = None

        def close_current():
            if current is None:
                return
            article = current.close()
            if article.number not in positions:
                positions[article.number] = len(articles)
                articles.append(article)
                return
            # Tables of contents and reprints repeat headings; keep the fullest body
            index = positions[article.number]
            if len(article.body) > len(articles[index].body):
                articles[index] = article
            elif articles[index].body and article.body:
                warnings.append(f"Duplicate Article {article.number} ignored")

        for line in lines:
            if not line:
                continue

            header = ARTICLE_HEADER.match(line)
            if header:
                close_current()
                headings += 1
                title = header.group("title")
                current = _OpenArticle(
                    number=header.group("number"),
                    title=title.strip() if title else None,
                    chapter=chapter,
                    title_pending=title is None,
                )
                continue

            chapter_match = CHAPTER_HEADER.match(line)
            if chapter_match:
                close_current()
                current = None
                chapter = chapter_match.group("label").upper()
                continue

            if current is None:
                continue

            if (
                current.title_pending
                and not current.lines
                and len(line) < self._max_title_length
                and not line.endswith(".")
            ):
                current.title = line
                current.title_pending = False
                continue

            current.title_pending = False
            current.lines.append(line)

        close_current()

        kept = []
        for article in articles:
            if article.body:
                kept.append(article)
            else:
                warnings.append(f"Article {article.number} has no body; skipped")
        return kept, headings

    def _extract_definitions(
        self,
        articles: list[Article],
        warnings: list[str],
    ) -> list[Definition]:
        """Split the definitions article into term/definition pairs."""
        definitions_article = next(
            (
                a for a in articles
                if a.title and DEFINITIONS_TITLE_KEYWORD in a.title.lower()
            ),
            None,
        )
        if definitions_article is None or "means" not in definitions_article.body:
            return []

        text = re.sub(r"\s+", " ", definitions_article.body)
        text = CURLY_QUOTES.sub("'", text)

        definitions: list[Definition] = []
        seen: set[str] = set()
        for match in DEFINITION_ENTRY.finditer(text):
            term = match.group(2).strip().lower()
            definition = match.group(3).strip()
            if not term or len(definition) <= MIN_DEFINITION_LENGTH:
                continue
            if term in seen:
                warnings.append(f"Duplicate definition of '{term}' ignored")
                continue
            seen.add(term)
            definitions.append(Definition(
                term=term,
                definition=definition,
                article_number=definitions_article.number,
            ))

        return definitions


# CLI for testing
if __name__ == "__main__":
    import sys

    if len(sys.argv) < 3:
        print("Usage: python -m execution.reg_corpus.document_parser <text_file> <document_id>")
        sys.exit(1)

    logging.basicConfig(level=logging.INFO)

    with open(sys.argv[1], encoding="utf-8") as f:
        result = RegulationParser().parse(f.read(), sys.argv[2])

    print(result.to_json())
