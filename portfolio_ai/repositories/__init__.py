"""Repository interfaces and their SQLAlchemy implementations."""
from portfolio_ai.repositories.base import KnowledgeRepository, PersonalityRepository, SettingsRepository
from portfolio_ai.repositories.sql import SqlKnowledgeRepository, SqlPersonalityRepository, SqlSettingsRepository

__all__ = [
    "KnowledgeRepository",
    "PersonalityRepository",
    "SettingsRepository",
    "SqlKnowledgeRepository",
    "SqlPersonalityRepository",
    "SqlSettingsRepository",
]
