"""FastAPI dependencies: services come from the container on app.state."""
from fastapi import Request

from portfolio_ai.container import ServiceContainer
from portfolio_ai.services.chat_service import ChatService
from portfolio_ai.services.knowledge_service import KnowledgeService
from portfolio_ai.services.personality_service import PersonalityService
from portfolio_ai.services.quota_service import QuotaLimiter
from portfolio_ai.services.settings_service import SettingsService


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


def get_chat_service(request: Request) -> ChatService:
    return get_container(request).chat


def get_knowledge_service(request: Request) -> KnowledgeService:
    return get_container(request).knowledge


def get_settings_service(request: Request) -> SettingsService:
    return get_container(request).settings_service


def get_personality_service(request: Request) -> PersonalityService:
    return get_container(request).personalities


def get_quota_limiter(request: Request) -> QuotaLimiter:
    return get_container(request).limiter
