"""Tenant model."""
import uuid
from datetime import datetime

from sqlalchemy import DateTime, String, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from portfolio_ai.db import Base


class Tenant(Base):
    """Portfolio owner. Knowledge, settings and personalities are scoped to it."""

    __tablename__ = "tenants"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
    )

    knowledge_entries = relationship("KnowledgeEntry", back_populates="tenant", passive_deletes=True)
    settings = relationship("TenantSetting", back_populates="tenant", passive_deletes=True)
    personality_templates = relationship("PersonalityTemplate", back_populates="tenant", passive_deletes=True)
