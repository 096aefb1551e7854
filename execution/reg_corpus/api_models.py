"""
Pydantic models for the Regulation Corpus service boundary.

Identifiers are case-normalised here so nothing downstream has to care:
document and control ids upper-case, article numbers lower-case.
"""

from typing import Optional
from pydantic import BaseModel, Field, field_validator


def _upper(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip().upper()
    return value or None


class SearchRequest(BaseModel):
    """Request body for full-text search."""
    query: str = Field(default="", max_length=2000)
    limit: Optional[int] = None
    documents: list[str] = []

    @field_validator("documents")
    @classmethod
    def normalise_documents(cls, value: list[str]) -> list[str]:
        return [d for d in (_upper(v) for v in value) if d]


class SearchResultItem(BaseModel):
    """One search hit as returned to callers."""
    document: str
    unit: str
    title: Optional[str] = None
    snippet: str
    kind: str


class UnitLookupRequest(BaseModel):
    """Fetch one Article or Recital in full."""
    document: str = Field(..., min_length=1)
    unit: str = Field(..., min_length=1)
    kind: str = Field(default="article", pattern=r"^(article|recital)$")

    @field_validator("document")
    @classmethod
    def normalise_document(cls, value: str) -> str:
        return value.strip().upper()

    @field_validator("unit", mode="before")
    @classmethod
    def normalise_unit(cls, value) -> str:
        return str(value).strip().lower()

    @field_validator("kind", mode="before")
    @classmethod
    def normalise_kind(cls, value) -> str:
        return str(value).strip().lower()


class ControlMappingRequest(BaseModel):
    """Filter control mappings by control id and/or document."""
    control: Optional[str] = None
    document: Optional[str] = None

    @field_validator("control", "document")
    @classmethod
    def normalise_ids(cls, value: Optional[str]) -> Optional[str]:
        return _upper(value)


class DefinitionsRequest(BaseModel):
    """Look up defined terms."""
    term: str = Field(..., min_length=1, max_length=200)
    document: Optional[str] = None

    @field_validator("term")
    @classmethod
    def strip_term(cls, value: str) -> str:
        return value.strip()

    @field_validator("document")
    @classmethod
    def normalise_document(cls, value: Optional[str]) -> Optional[str]:
        return _upper(value)


class ReferencesRequest(BaseModel):
    """Outgoing and incoming citations of one article."""
    document: str = Field(..., min_length=1)
    article: str = Field(..., min_length=1)

    @field_validator("document")
    @classmethod
    def normalise_document(cls, value: str) -> str:
        return value.strip().upper()

    @field_validator("article", mode="before")
    @classmethod
    def normalise_article(cls, value) -> str:
        return str(value).strip().lower()


class CompareRequest(BaseModel):
    """Compare how several documents address one topic."""
    topic: str = Field(..., min_length=1, max_length=2000)
    documents: list[str] = Field(..., min_length=2)

    @field_validator("documents")
    @classmethod
    def normalise_documents(cls, value: list[str]) -> list[str]:
        return [d for d in (_upper(v) for v in value) if d]
