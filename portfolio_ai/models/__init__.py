"""SQLAlchemy models for the portfolio assistant."""
from portfolio_ai.models.tenant import Tenant
from portfolio_ai.models.knowledge_entry import KnowledgeEntry
from portfolio_ai.models.keyword_tag import KeywordTag
from portfolio_ai.models.tenant_setting import TenantSetting
from portfolio_ai.models.personality_template import PersonalityTemplate

__all__ = [
    "Tenant",
    "KnowledgeEntry",
    "KeywordTag",
    "TenantSetting",
    "PersonalityTemplate",
]
