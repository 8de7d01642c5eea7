"""Shared test fixtures for pytest.

We set minimal env defaults (e.g. SECRET_KEY) early so importing modules
that instantiate settings (core.security, dependencies.db) succeeds without
needing an external .env file or a running database during tests.
"""

import os
from collections.abc import AsyncGenerator, Generator

import httpx
import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool


os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from dependencies.db import get_db
from main import app
from models.base import Base
from models.users import User
from services.codegen.registry import ConversationRegistry, get_conversation_registry
from services.history import DatabaseHistorySink
from tests.fixtures.codegen_fixtures import ScriptedLLM, make_generator
from tests.fixtures.user_fixtures import bearer_headers, create_test_user


@pytest.fixture
def client() -> Generator[TestClient, None, None]:
    """
    Create a test client for the FastAPI application.
    """
    with TestClient(app) as client:
        yield client


@pytest_asyncio.fixture
async def session_factory() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Fresh in-memory SQLite database with the full schema."""
    engine: AsyncEngine = create_async_engine(
        "sqlite+aiosqlite:///:memory:", future=True, poolclass=StaticPool
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def test_user(db_session: AsyncSession) -> User:
    return await create_test_user(db_session)


@pytest.fixture
def auth_headers(test_user: User) -> dict[str, str]:
    return bearer_headers(test_user)


@pytest.fixture
def llm() -> ScriptedLLM:
    """Scripted stand-in for the model provider's HTTP API."""
    return ScriptedLLM()


@pytest_asyncio.fixture
async def codegen_registry(
    llm: ScriptedLLM, session_factory: async_sessionmaker[AsyncSession]
) -> AsyncGenerator[ConversationRegistry, None]:
    async with httpx.AsyncClient(transport=httpx.MockTransport(llm)) as http_client:
        registry = ConversationRegistry(
            make_generator(http_client),
            history=DatabaseHistorySink(session_factory),
        )
        yield registry
        await registry.shutdown()


@pytest_asyncio.fixture
async def async_client(
    session_factory: async_sessionmaker[AsyncSession],
    codegen_registry: ConversationRegistry,
) -> AsyncGenerator[AsyncClient, None]:
    """Async client wired to the in-memory database and the scripted model."""

    async def _override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_conversation_registry] = lambda: codegen_registry
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client
    app.dependency_overrides.pop(get_db, None)
    app.dependency_overrides.pop(get_conversation_registry, None)
