"""Keyword tag model: lowercase token used for relevance matching."""
import uuid

from sqlalchemy import ForeignKey, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from portfolio_ai.db import Base


class KeywordTag(Base):
    """(entry, token) pair. Tokens are replaced wholesale when an entry's keywords change."""

    __tablename__ = "keyword_tags"
    __table_args__ = (UniqueConstraint("entry_id", "token", name="uq_keyword_tags_entry_token"),)

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    entry_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("knowledge_entries.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    token: Mapped[str] = mapped_column(String(100), nullable=False)

    entry = relationship("KnowledgeEntry", back_populates="keywords")
