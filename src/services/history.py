"""Database-backed history sink used by live conversations."""

from __future__ import annotations

import logging
import uuid

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from crud import history as history_crud
from dependencies.db import AsyncSessionLocal
from models.generation_history import GenerationRecord
from services.codegen.conversation import HistoryEntry


logger = logging.getLogger(__name__)


class DatabaseHistorySink:
    """Persist completed generations with a short-lived session per call.

    Conversations outlive the request that created them, so the sink cannot
    borrow a request-scoped session.
    """

    def __init__(
        self, session_factory: async_sessionmaker[AsyncSession] | None = None
    ) -> None:
        self._session_factory = session_factory or AsyncSessionLocal

    async def append_record(self, user_id: uuid.UUID, entry: HistoryEntry) -> None:
        async with self._session_factory() as session:
            record = await history_crud.append_record(
                session,
                user_id,
                prompt=entry.prompt,
                code=entry.code,
                language=entry.language,
                explanation=entry.explanation,
            )
        logger.info("Saved generation %s to history of user %s", record.id, user_id)

    async def list_records(self, user_id: uuid.UUID) -> list[GenerationRecord]:
        async with self._session_factory() as session:
            return await history_crud.list_records(session, user_id)
