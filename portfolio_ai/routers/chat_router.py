"""Chat API: streamed answers, summaries, free-tier status."""
from typing import Optional
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, Header, Query, Request
from fastapi.responses import StreamingResponse

from portfolio_ai.dependencies import get_chat_service
from portfolio_ai.schemas.chat import ChatRequest, QuotaStatus, SummaryRequest, SummaryResponse
from portfolio_ai.services.chat_service import ChatService
from portfolio_ai.utils.log_context import with_log_context
from portfolio_ai.utils.request_identity import quota_identity

router = APIRouter(prefix="/chat", tags=["chat"])

HEADER_API_KEY = "X-Api-Key"
HEADER_QUOTA_REMAINING = "X-Free-Tier-Remaining"


@router.post("")
async def post_chat(
    payload: ChatRequest,
    request: Request,
    api_key: Optional[str] = Header(None, alias=HEADER_API_KEY),
    chat: ChatService = Depends(get_chat_service),
) -> StreamingResponse:
    """
    Stream the answer as chunked text/plain.
    Without an own key the free tier applies; when it is used up the reply is 403.
    """
    stream = await chat.start_chat(
        payload.tenant_id,
        payload.prompt,
        identity=quota_identity(payload.tenant_id, request),
        api_key=api_key,
        mode=payload.mode,
    )
    headers = {"Cache-Control": "no-cache"}
    if stream.quota is not None:
        headers[HEADER_QUOTA_REMAINING] = str(stream.quota.remaining)
    body = with_log_context(stream.fragments, structlog.contextvars.get_contextvars())
    return StreamingResponse(body, media_type="text/plain; charset=utf-8", headers=headers)


@router.post("/summary", response_model=SummaryResponse)
async def post_summary(
    payload: SummaryRequest,
    api_key: Optional[str] = Header(None, alias=HEADER_API_KEY),
    chat: ChatService = Depends(get_chat_service),
) -> SummaryResponse:
    """2-3 sentence technical summary of the given content."""
    summary = await chat.summarize(payload.content, api_key=api_key)
    return SummaryResponse(summary=summary)


@router.get("/quota", response_model=QuotaStatus)
async def get_quota(
    request: Request,
    tenant_id: UUID = Query(..., description="Tenant UUID"),
    chat: ChatService = Depends(get_chat_service),
) -> QuotaStatus:
    """Free-tier status of the calling client (does not consume an attempt)."""
    decision = await chat.quota_status(quota_identity(tenant_id, request))
    return QuotaStatus(allowed=decision.allowed, remaining=decision.remaining, reset_in=decision.reset_in)
