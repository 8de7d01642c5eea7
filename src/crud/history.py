"""CRUD operations for saved code generations."""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import HistoryRecordNotFoundError
from models.generation_history import GenerationRecord


async def append_record(
    db: AsyncSession,
    user_id: UUID,
    *,
    prompt: str,
    code: str,
    language: str,
    explanation: str = "",
) -> GenerationRecord:
    """Persist one completed generation for ``user_id``.

    Args:
        db: Database session
        user_id: Owner of the record
        prompt: The prompt as submitted (trimmed)
        code: Extracted code block body
        language: Fence tag or the configured default language
        explanation: Response text outside the code fences

    Returns:
        The created GenerationRecord
    """
    record = GenerationRecord(
        user_id=user_id,
        prompt=prompt,
        code=code,
        language=language,
        explanation=explanation,
    )
    db.add(record)
    await db.commit()
    await db.refresh(record)
    return record


async def list_records(
    db: AsyncSession, user_id: UUID, *, limit: int = 50, offset: int = 0
) -> list[GenerationRecord]:
    """Return the user's records, newest first."""
    query = (
        select(GenerationRecord)
        .where(GenerationRecord.user_id == user_id)
        .order_by(GenerationRecord.created_at.desc(), GenerationRecord.id.desc())
        .offset(offset)
        .limit(limit)
    )
    result = await db.execute(query)
    return list(result.scalars().all())


async def get_record(
    db: AsyncSession, record_id: UUID, user_id: UUID
) -> GenerationRecord:
    """Fetch one record owned by ``user_id``.

    Records owned by someone else are reported as missing so their existence
    is not leaked.

    Raises:
        HistoryRecordNotFoundError: no such record for this user
    """
    query = select(GenerationRecord).where(
        GenerationRecord.id == record_id, GenerationRecord.user_id == user_id
    )
    result = await db.execute(query)
    record = result.scalar_one_or_none()
    if record is None:
        raise HistoryRecordNotFoundError(str(record_id))
    return record


async def rename_record(
    db: AsyncSession, record_id: UUID, user_id: UUID, prompt: str
) -> GenerationRecord:
    record = await get_record(db, record_id, user_id)
    record.prompt = prompt
    await db.commit()
    await db.refresh(record)
    return record


async def delete_record(db: AsyncSession, record_id: UUID, user_id: UUID) -> None:
    record = await get_record(db, record_id, user_id)
    await db.delete(record)
    await db.commit()
