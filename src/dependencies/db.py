"""Database session dependency using SQLAlchemy async engine.

This sets up an AsyncSession factory bound to the DATABASE_URL.
The engine isn't connected until first use, so importing this module
won't fail if the database isn't running yet.
"""

from __future__ import annotations

import os
from collections.abc import AsyncIterator
from pathlib import Path
from typing import Annotated, Any

from dotenv import load_dotenv
from fastapi import Depends
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool


DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./codescribe.db"


def _load_env_files() -> None:  # pragma: no cover - side-effect only
    # First .env / .env.dev found walking up from this file wins
    for fname in (".env", ".env.dev"):
        for p in Path(__file__).resolve().parents:
            candidate = p / fname
            if candidate.exists():
                load_dotenv(dotenv_path=candidate, override=False)
                return


def _normalize_database_url(url: str) -> str:
    """Coerce postgres URLs to asyncpg and sqlite URLs to aiosqlite.

    asyncpg also requires ``ssl=...`` instead of libpq's ``sslmode=...``.
    """
    if url.startswith("postgres://"):
        url = "postgresql+asyncpg://" + url[len("postgres://") :]
    elif url.startswith("postgresql://"):
        url = "postgresql+asyncpg://" + url[len("postgresql://") :]
    elif url.startswith(("postgresql+psycopg2://", "postgresql+psycopg://")):
        url = "postgresql+asyncpg://" + url.split("://", 1)[1]
    elif url.startswith("sqlite://"):
        url = "sqlite+aiosqlite://" + url[len("sqlite://") :]

    if url.startswith("postgresql+asyncpg://"):
        url = url.replace("sslmode=", "ssl=")
    return url


def _get_database_url() -> str:
    _load_env_files()

    url = os.getenv("DATABASE_URL")
    if url:
        return _normalize_database_url(url)

    user = os.getenv("POSTGRES_USER")
    password = os.getenv("POSTGRES_PASSWORD")
    database = os.getenv("POSTGRES_DB")
    host = os.getenv("POSTGRES_HOST", "localhost")
    port = os.getenv("POSTGRES_PORT", "5432")
    if user and password and database:
        return f"postgresql+asyncpg://{user}:{password}@{host}:{port}/{database}"

    return DEFAULT_DATABASE_URL


def _engine_kwargs(url: str) -> dict[str, Any]:
    # One shared connection, otherwise every session sees its own empty
    # in-memory database.
    if url.startswith("sqlite") and ":memory:" in url:
        return {
            "poolclass": StaticPool,
            "connect_args": {"check_same_thread": False},
        }
    return {}


DATABASE_URL = _get_database_url()
engine: AsyncEngine = create_async_engine(
    DATABASE_URL, future=True, echo=False, **_engine_kwargs(DATABASE_URL)
)
AsyncSessionLocal = async_sessionmaker(
    engine,
    expire_on_commit=False,
    class_=AsyncSession,
)


async def init_db() -> None:
    """Create any missing tables for the registered ORM models."""
    # Importing the package registers every model on Base.metadata
    import models  # noqa: F401
    from models.base import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def get_db() -> AsyncIterator[AsyncSession]:
    """FastAPI dependency that provides an AsyncSession and ensures proper cleanup."""
    async with AsyncSessionLocal() as session:
        yield session


DbSession = Annotated[AsyncSession, Depends(get_db)]
