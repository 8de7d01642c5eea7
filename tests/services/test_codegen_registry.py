"""Tests for the in-memory conversation registry."""

from __future__ import annotations

import asyncio
import uuid
from types import SimpleNamespace

import pytest

from core.exceptions import ConversationNotFoundError
from services.codegen.generation import CancellationToken, GenerationStatus
from services.codegen.registry import ConversationRegistry


async def hanging_source(prompt: str, token: CancellationToken):
    yield "working"
    await asyncio.Event().wait()


def make_registry(max_conversations: int = 10) -> ConversationRegistry:
    generator = SimpleNamespace(stream=hanging_source, default_language="python")
    return ConversationRegistry(generator, max_conversations=max_conversations)  # type: ignore[arg-type]


async def start_generation(conversation) -> None:
    await conversation.submit("long task")
    for _ in range(100):
        if conversation.active_status is GenerationStatus.STREAMING:
            return
        await asyncio.sleep(0)
    raise AssertionError("generation never started")


class TestConversationRegistry:
    @pytest.mark.asyncio
    async def test_create_and_get(self) -> None:
        registry = make_registry()
        owner = uuid.uuid4()

        conversation = await registry.create(owner_id=owner)

        assert registry.get(conversation.id, owner) is conversation
        assert conversation.owner_id == owner
        assert len(registry) == 1

    @pytest.mark.asyncio
    async def test_other_owner_cannot_see_conversation(self) -> None:
        registry = make_registry()
        conversation = await registry.create(owner_id=uuid.uuid4())

        with pytest.raises(ConversationNotFoundError):
            registry.get(conversation.id, uuid.uuid4())
        with pytest.raises(ConversationNotFoundError):
            registry.get(conversation.id, None)

    @pytest.mark.asyncio
    async def test_anonymous_conversation_visible_to_anonymous_callers(self) -> None:
        registry = make_registry()
        conversation = await registry.create()

        assert registry.get(conversation.id) is conversation
        with pytest.raises(ConversationNotFoundError):
            registry.get(conversation.id, uuid.uuid4())

    @pytest.mark.asyncio
    async def test_unknown_id(self) -> None:
        registry = make_registry()

        with pytest.raises(ConversationNotFoundError):
            registry.get(uuid.uuid4())

    @pytest.mark.asyncio
    async def test_delete_cancels_running_generation(self) -> None:
        registry = make_registry()
        conversation = await registry.create()
        await start_generation(conversation)

        await registry.delete(conversation.id)

        assert not conversation.active
        assert conversation.turns == []
        with pytest.raises(ConversationNotFoundError):
            registry.get(conversation.id)

    @pytest.mark.asyncio
    async def test_full_registry_evicts_least_recently_used_idle(self) -> None:
        registry = make_registry(max_conversations=2)
        first = await registry.create()
        second = await registry.create()
        registry.get(first.id)  # first is now the most recently used

        third = await registry.create()

        assert len(registry) == 2
        assert registry.get(first.id) is first
        assert registry.get(third.id) is third
        with pytest.raises(ConversationNotFoundError):
            registry.get(second.id)

    @pytest.mark.asyncio
    async def test_busy_conversations_are_evicted_last(self) -> None:
        registry = make_registry(max_conversations=2)
        busy = await registry.create()
        idle = await registry.create()
        await start_generation(busy)

        await registry.create()

        assert registry.get(busy.id) is busy
        with pytest.raises(ConversationNotFoundError):
            registry.get(idle.id)
        await registry.shutdown()

    @pytest.mark.asyncio
    async def test_all_busy_evicts_oldest(self) -> None:
        registry = make_registry(max_conversations=1)
        busy = await registry.create()
        await start_generation(busy)

        await registry.create()

        assert not busy.active
        with pytest.raises(ConversationNotFoundError):
            registry.get(busy.id)

    @pytest.mark.asyncio
    async def test_shutdown_closes_everything(self) -> None:
        registry = make_registry()
        conversations = [await registry.create() for _ in range(3)]
        await start_generation(conversations[0])

        await registry.shutdown()

        assert len(registry) == 0
        assert not any(c.active for c in conversations)
