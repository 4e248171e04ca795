"""SQL repositories against a mocked session factory."""
import uuid
from unittest.mock import AsyncMock, MagicMock

import pytest

from portfolio_ai.exceptions import EntityNotFound
from portfolio_ai.repositories.sql import SqlKnowledgeRepository


def _session_factory(read_back=None) -> MagicMock:  # noqa: ANN001
    result = MagicMock()
    result.scalar_one_or_none.return_value = read_back
    session = MagicMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.execute = AsyncMock(return_value=result)
    factory = MagicMock()
    factory.return_value.__aenter__.return_value = session
    return factory


@pytest.mark.asyncio
async def test_create_entry_missing_on_read_back_is_not_found() -> None:
    factory = _session_factory(read_back=None)
    repository = SqlKnowledgeRepository(factory)
    fields = {"kind": "project", "slug": "kafka", "title": "Kafka", "body": "Streams"}

    with pytest.raises(EntityNotFound):
        await repository.create_entry(uuid.uuid4(), fields, ["kafka"])

    session = factory.return_value.__aenter__.return_value
    session.add.assert_called_once()
    session.commit.assert_awaited_once()
