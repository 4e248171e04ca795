"""
Process-wide service graph.

Built once in the app lifespan and stored on app.state; nothing here is a
module-level singleton, so tests can build their own graph from fakes.
"""
from dataclasses import dataclass
from typing import Any, Optional

from portfolio_ai.config import Settings
from portfolio_ai.logging_config import get_logger
from portfolio_ai.middleware.rate_limit import build_throttle_client
from portfolio_ai.repositories.base import KnowledgeRepository, PersonalityRepository, SettingsRepository
from portfolio_ai.services.chat_service import ChatService
from portfolio_ai.services.generation_service import GenerationGateway, OpenAITextGenerator, TextGenerator
from portfolio_ai.services.knowledge_service import KnowledgeService
from portfolio_ai.services.personality_service import PersonalityService
from portfolio_ai.services.prompt_service import PromptAssembler
from portfolio_ai.services.quota_service import QuotaLimiter, build_quota_limiter
from portfolio_ai.services.relevance_service import RelevanceMatcher
from portfolio_ai.services.settings_cache import TenantSettingsCache
from portfolio_ai.services.settings_service import SettingsService

logger = get_logger(__name__)


@dataclass
class ServiceContainer:
    settings_cache: TenantSettingsCache
    limiter: QuotaLimiter
    gateway: GenerationGateway
    matcher: RelevanceMatcher
    knowledge: KnowledgeService
    settings_service: SettingsService
    personalities: PersonalityService
    assembler: PromptAssembler
    chat: ChatService
    generator: Optional[TextGenerator] = None
    throttle_client: Optional[Any] = None
    throttle_limit: int = 10

    async def startup(self) -> None:
        state = await self.limiter.connect()
        logger.info("container.started", quota_backend=state.value)

    async def shutdown(self) -> None:
        await self.limiter.close()
        close = getattr(self.generator, "close", None)
        if close is not None:
            await close()
        if self.throttle_client is not None:
            await self.throttle_client.aclose()
        logger.info("container.stopped")


def build_container(
    settings: Settings,
    knowledge_repository: KnowledgeRepository,
    settings_repository: SettingsRepository,
    personality_repository: PersonalityRepository,
    limiter: Optional[QuotaLimiter] = None,
    generator: Optional[TextGenerator] = None,
    throttle_client: Optional[Any] = None,
) -> ServiceContainer:
    settings_cache = TenantSettingsCache(settings_repository, ttl_seconds=settings.settings_cache_ttl_seconds)
    limiter = limiter or build_quota_limiter(settings)
    generator = generator or OpenAITextGenerator(settings)
    gateway = GenerationGateway(generator, default_api_key=settings.openai_api_key)
    matcher = RelevanceMatcher(knowledge_repository, settings_cache)
    knowledge = KnowledgeService(knowledge_repository, settings_cache, gateway)
    personalities = PersonalityService(personality_repository, settings_cache)
    assembler = PromptAssembler(personalities, matcher)
    chat = ChatService(
        assembler,
        knowledge,
        gateway,
        limiter,
        own_key_min_length=settings.own_key_min_length,
        prompt_max_chars=settings.chat_prompt_max_chars,
        summary_max_chars=settings.summary_content_max_chars,
    )
    return ServiceContainer(
        settings_cache=settings_cache,
        limiter=limiter,
        gateway=gateway,
        matcher=matcher,
        knowledge=knowledge,
        settings_service=SettingsService(settings_repository, settings_cache),
        personalities=personalities,
        assembler=assembler,
        chat=chat,
        generator=generator,
        throttle_client=throttle_client if throttle_client is not None else build_throttle_client(settings),
        throttle_limit=settings.chat_rate_limit_per_min,
    )


def build_sql_container(settings: Settings) -> ServiceContainer:
    """Container over the Postgres repositories."""
    from portfolio_ai.db import async_session_factory
    from portfolio_ai.repositories.sql import SqlKnowledgeRepository, SqlPersonalityRepository, SqlSettingsRepository

    return build_container(
        settings,
        knowledge_repository=SqlKnowledgeRepository(async_session_factory),
        settings_repository=SqlSettingsRepository(async_session_factory),
        personality_repository=SqlPersonalityRepository(async_session_factory),
    )
