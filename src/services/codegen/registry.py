"""Process-wide registry of live conversations.

Conversations live in memory only; their completed turns reach durable
storage through the history sink. The registry is bounded: once
``max_conversations`` is reached the least recently used idle conversation
is closed and forgotten.
"""

from __future__ import annotations

import logging
import uuid
from collections import OrderedDict
from functools import lru_cache

from core.config import get_settings
from core.exceptions import ConversationNotFoundError
from services.codegen.conversation import Conversation, HistorySink
from services.codegen.generator import CodeGenerator


logger = logging.getLogger(__name__)

MAX_LIVE_CONVERSATIONS = 1000


class ConversationRegistry:
    def __init__(
        self,
        generator: CodeGenerator,
        *,
        history: HistorySink | None = None,
        max_conversations: int = MAX_LIVE_CONVERSATIONS,
    ) -> None:
        self.generator = generator
        self.history = history
        self.max_conversations = max_conversations
        self._conversations: OrderedDict[uuid.UUID, Conversation] = OrderedDict()

    def __len__(self) -> int:
        return len(self._conversations)

    async def create(self, owner_id: uuid.UUID | None = None) -> Conversation:
        await self._evict_if_full()
        conversation = Conversation(
            self.generator.stream,
            owner_id=owner_id,
            history=self.history,
            default_language=self.generator.default_language,
        )
        self._conversations[conversation.id] = conversation
        logger.debug("Created conversation %s (owner=%s)", conversation.id, owner_id)
        return conversation

    def get(
        self, conversation_id: uuid.UUID, owner_id: uuid.UUID | None = None
    ) -> Conversation:
        """Look up a conversation visible to ``owner_id``.

        Raises:
            ConversationNotFoundError: unknown id, or owned by someone else
        """
        conversation = self._conversations.get(conversation_id)
        if conversation is None or conversation.owner_id != owner_id:
            raise ConversationNotFoundError(str(conversation_id))
        self._conversations.move_to_end(conversation_id)
        return conversation

    async def delete(
        self, conversation_id: uuid.UUID, owner_id: uuid.UUID | None = None
    ) -> None:
        conversation = self.get(conversation_id, owner_id)
        self._conversations.pop(conversation_id, None)
        await conversation.close()

    async def shutdown(self) -> None:
        """Cancel every running generation and forget all conversations."""
        conversations = list(self._conversations.values())
        self._conversations.clear()
        for conversation in conversations:
            await conversation.close()
        if conversations:
            logger.info("Closed %d live conversations", len(conversations))

    async def _evict_if_full(self) -> None:
        if len(self._conversations) < self.max_conversations:
            return
        for conversation_id, conversation in list(self._conversations.items()):
            if not conversation.active:
                del self._conversations[conversation_id]
                await conversation.close()
                logger.info("Evicted idle conversation %s", conversation_id)
                return
        # Every conversation is busy; drop the least recently used one
        conversation_id, conversation = self._conversations.popitem(last=False)
        await conversation.close()
        logger.warning("Evicted active conversation %s", conversation_id)


@lru_cache
def get_conversation_registry() -> ConversationRegistry:
    """Create the shared registry from settings on first use."""
    from services.history import DatabaseHistorySink

    settings = get_settings()
    return ConversationRegistry(
        CodeGenerator.from_settings(settings),
        history=DatabaseHistorySink(),
    )
