from __future__ import annotations

import uuid
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy import UUID, CheckConstraint, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column, relationship


if TYPE_CHECKING:  # pragma: no cover - only for type checking
    from .generation_history import GenerationRecord

from .base import Base


class User(Base):
    __tablename__ = "users"
    __table_args__ = (
        # Match schemas: username length 3–32
        # Use length(), which is SQLite/Postgres compatible
        CheckConstraint(
            "length(username) BETWEEN 3 AND 32", name="ck_users_username_len"
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, index=True, default=uuid.uuid4
    )
    username: Mapped[str] = mapped_column(
        String(32), unique=True, nullable=False, index=True
    )
    email: Mapped[str] = mapped_column(
        String(255), unique=True, nullable=False, index=True
    )
    hashed_password: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )

    history: Mapped[list[GenerationRecord]] = relationship(
        "GenerationRecord",
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
