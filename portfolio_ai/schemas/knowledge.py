"""Knowledge entry request/response schemas."""
from datetime import datetime
from enum import Enum
from typing import Any, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator


class KnowledgeKind(str, Enum):
    """Entry kind. meta + index form the always-relevant fallback set."""

    PROJECT = "project"
    META = "meta"
    INDEX = "index"
    DOCS = "docs"
    CUSTOM = "custom"


FALLBACK_KINDS = (KnowledgeKind.META, KnowledgeKind.INDEX)


def normalize_keywords(keywords: List[str]) -> List[str]:
    """Lowercase, strip, drop blanks and duplicates (first occurrence wins)."""
    seen: set[str] = set()
    out: List[str] = []
    for raw in keywords:
        token = (raw or "").strip().lower()
        if token and token not in seen:
            seen.add(token)
            out.append(token)
    return out


class KnowledgeEntryCreate(BaseModel):
    """Body for POST /knowledge (create one entry)."""

    kind: KnowledgeKind
    slug: str = Field(..., min_length=1, max_length=100, pattern=r"^[a-z0-9][a-z0-9_-]*$")
    title: str = Field(..., min_length=1, max_length=255)
    body: str = Field(..., min_length=1)
    summary: Optional[str] = None
    priority: int = 0
    keywords: List[str] = Field(default_factory=list, max_length=100)

    @field_validator("keywords")
    @classmethod
    def _normalize(cls, v: List[str]) -> List[str]:
        return normalize_keywords(v)


class KnowledgeEntryUpdate(BaseModel):
    """Body for PATCH /knowledge/{id}. keywords, when given, replace the old set."""

    title: Optional[str] = Field(None, min_length=1, max_length=255)
    body: Optional[str] = Field(None, min_length=1)
    summary: Optional[str] = None
    priority: Optional[int] = None
    active: Optional[bool] = None
    keywords: Optional[List[str]] = Field(None, max_length=100)

    @field_validator("keywords")
    @classmethod
    def _normalize(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        return normalize_keywords(v) if v is not None else None


class KnowledgeEntryOut(BaseModel):
    """One knowledge entry as returned by repositories and the API."""

    id: UUID
    tenant_id: UUID
    kind: KnowledgeKind
    slug: str
    title: str
    body: str
    summary: Optional[str] = None
    priority: int = 0
    active: bool = True
    keywords: List[str] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}

    @field_validator("keywords", mode="before")
    @classmethod
    def _tokens(cls, v: Any) -> List[str]:
        # ORM rows carry KeywordTag objects
        if v is None:
            return []
        return [getattr(k, "token", k) for k in v]


class ProjectSummary(BaseModel):
    """Slug/title/summary of one project entry (project listing context)."""

    slug: str
    title: str
    summary: str
