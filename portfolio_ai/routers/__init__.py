"""API routers."""
from portfolio_ai.routers.api_health_router import router as api_health_router
from portfolio_ai.routers.chat_router import router as chat_router
from portfolio_ai.routers.health_router import router as health_router
from portfolio_ai.routers.knowledge_router import router as knowledge_router
from portfolio_ai.routers.personalities_router import router as personalities_router
from portfolio_ai.routers.settings_router import router as settings_router

__all__ = [
    "api_health_router",
    "chat_router",
    "health_router",
    "knowledge_router",
    "personalities_router",
    "settings_router",
]
