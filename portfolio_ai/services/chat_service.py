"""
Chat orchestration: admission -> context selection -> assembly -> generation -> usage.

start_chat() does everything that can fail loudly (size bound, quota admission,
knowledge/settings reads, prompt assembly) before it returns. The returned
stream itself never raises: generation failures arrive as a final ErrorFragment.
"""
from dataclasses import dataclass
from typing import AsyncIterator, Optional
from uuid import UUID

from portfolio_ai.exceptions import InputTooLarge, PortfolioAIError, QuotaExceeded
from portfolio_ai.infrastructure.quota_backends import QuotaDecision
from portfolio_ai.logging_config import get_logger
from portfolio_ai.services.generation_service import GenerationGateway
from portfolio_ai.services.knowledge_service import KnowledgeService
from portfolio_ai.services.prompt_service import PromptAssembler, build_summary_prompt, is_project_list_request
from portfolio_ai.services.quota_service import QuotaLimiter

logger = get_logger(__name__)

SUMMARY_FALLBACK = "Summary unavailable"
REMAINING_FOOTER = "\n\n---\n💡 _Free attempts left: {remaining}/{limit}_"


@dataclass
class ChatStream:
    """Admitted chat. quota is None when the caller used their own key."""

    fragments: AsyncIterator[str]
    quota: Optional[QuotaDecision] = None

    @property
    def free_tier(self) -> bool:
        return self.quota is not None


class ChatService:
    """Ties the quota limiter, prompt assembler and generation gateway together."""

    def __init__(
        self,
        assembler: PromptAssembler,
        knowledge: KnowledgeService,
        gateway: GenerationGateway,
        limiter: QuotaLimiter,
        own_key_min_length: int = 20,
        prompt_max_chars: int = 2000,
        summary_max_chars: int = 20000,
    ) -> None:
        self._assembler = assembler
        self._knowledge = knowledge
        self._gateway = gateway
        self._limiter = limiter
        self._own_key_min_length = own_key_min_length
        self._prompt_max_chars = prompt_max_chars
        self._summary_max_chars = summary_max_chars

    def has_own_key(self, api_key: Optional[str]) -> bool:
        return bool(api_key) and len(api_key) > self._own_key_min_length

    async def quota_status(self, identity: str) -> QuotaDecision:
        return await self._limiter.check_limit(identity)

    async def build_prompt(self, tenant_id: UUID, prompt: str, mode: Optional[str] = None) -> str:
        if is_project_list_request(prompt):
            summaries = await self._knowledge.project_summaries(tenant_id)
            context = [f"{s.title}\n{s.summary}" for s in summaries]
            return await self._assembler.assemble(
                tenant_id, prompt, mode, context_blocks=context, list_projects=True
            )
        return await self._assembler.assemble(tenant_id, prompt, mode)

    async def start_chat(
        self,
        tenant_id: UUID,
        prompt: str,
        identity: str,
        api_key: Optional[str] = None,
        mode: Optional[str] = None,
    ) -> ChatStream:
        """
        Admit and prepare one chat turn.
        Raises InputTooLarge, QuotaExceeded, or the store's read errors.
        """
        if len(prompt) > self._prompt_max_chars:
            raise InputTooLarge("prompt", self._prompt_max_chars)
        own_key = self.has_own_key(api_key)
        decision: Optional[QuotaDecision] = None
        if not own_key:
            decision = await self._limiter.check_limit(identity)
            if not decision.allowed:
                logger.info("chat.quota_exceeded", identity=identity, reset_in=decision.reset_in)
                raise QuotaExceeded(self._limiter.limit, remaining=decision.remaining, reset_in=decision.reset_in)
        full_prompt = await self.build_prompt(tenant_id, prompt, mode)
        logger.info(
            "chat.started",
            tenant_id=str(tenant_id),
            identity=identity,
            own_key=own_key,
            mode=mode,
            remaining=decision.remaining if decision else None,
        )
        fragments = self._stream(full_prompt, identity, api_key if own_key else None, free_tier=not own_key)
        return ChatStream(fragments=fragments, quota=decision)

    async def _stream(
        self,
        full_prompt: str,
        identity: str,
        api_key: Optional[str],
        free_tier: bool,
    ) -> AsyncIterator[str]:
        counted = not free_tier
        fragments = self._gateway.generate(full_prompt, api_key=api_key)
        try:
            async for fragment in fragments:
                yield fragment
            if free_tier:
                await self._limiter.increment_usage(identity)
                counted = True
                after = await self._limiter.check_limit(identity)
                if after.remaining > 0:
                    yield REMAINING_FOOTER.format(remaining=after.remaining, limit=self._limiter.limit)
        finally:
            await fragments.aclose()
            # Abandoned streams still count as one use
            if not counted:
                await self._limiter.increment_usage(identity)

    async def summarize(self, content: str, api_key: Optional[str] = None) -> str:
        """Non-streaming summary; any generation failure gives SUMMARY_FALLBACK."""
        if len(content) > self._summary_max_chars:
            raise InputTooLarge("content", self._summary_max_chars)
        try:
            summary = await self._gateway.complete(build_summary_prompt(content), api_key=api_key)
        except PortfolioAIError as e:
            logger.warning("chat.summary_failed", error=str(e))
            return SUMMARY_FALLBACK
        return summary or SUMMARY_FALLBACK
