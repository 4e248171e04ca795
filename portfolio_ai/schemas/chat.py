"""Chat request/response schemas."""
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field


class ChatRequest(BaseModel):
    """Body for POST /chat. Size bound is enforced again against CHAT_PROMPT_MAX_CHARS."""

    tenant_id: UUID = Field(..., description="Tenant UUID")
    prompt: str = Field(..., min_length=1)
    mode: Optional[str] = Field(None, max_length=50, description="Personality mode (optional)")


class SummaryRequest(BaseModel):
    """Body for POST /chat/summary."""

    content: str = Field(..., min_length=1)


class SummaryResponse(BaseModel):
    """Response POST /chat/summary."""

    summary: str


class QuotaStatus(BaseModel):
    """Admission decision for one identity."""

    allowed: bool
    remaining: int
    reset_in: Optional[int] = Field(None, description="Seconds until the window resets")
