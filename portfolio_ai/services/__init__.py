"""Business logic services."""
from portfolio_ai.services.chat_service import ChatService, ChatStream
from portfolio_ai.services.generation_service import ErrorFragment, GenerationErrorKind, GenerationGateway
from portfolio_ai.services.knowledge_service import KnowledgeService
from portfolio_ai.services.personality_service import PersonalityService
from portfolio_ai.services.prompt_service import PromptAssembler
from portfolio_ai.services.quota_service import ConnectionState, QuotaLimiter
from portfolio_ai.services.relevance_service import RelevanceMatcher
from portfolio_ai.services.settings_cache import TenantSettingsCache
from portfolio_ai.services.settings_service import SettingsService

__all__ = [
    "ChatService",
    "ChatStream",
    "ConnectionState",
    "ErrorFragment",
    "GenerationErrorKind",
    "GenerationGateway",
    "KnowledgeService",
    "PersonalityService",
    "PromptAssembler",
    "QuotaLimiter",
    "RelevanceMatcher",
    "SettingsService",
    "TenantSettingsCache",
]
