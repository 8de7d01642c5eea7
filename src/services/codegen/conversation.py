"""Conversation state: an ordered list of prompt/answer turns.

A conversation runs at most one generation at a time. Submitting a new
prompt cancels the running generation, waits for it to settle, appends a
pending turn and starts a new :class:`GenerationHandle` bound to it. The
handle's outcome decides the turn's fate:

* completed: the turn becomes ``complete`` and, when the conversation has
  an owner and code was produced, is appended to the owner's history;
* cancelled: the turn is removed;
* failed: the turn becomes ``failed`` with a user-facing ``error`` and
  loses any partial answer.

No generation error escapes the conversation. Observers subscribe to
:class:`TurnEvent` notifications, which the HTTP layer relays as SSE.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import AsyncIterator, Callable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any, Protocol

from services.codegen.exceptions import InvalidInput, ModelError, describe_failure
from services.codegen.extractor import ExtractionResult
from services.codegen.generation import (
    CancellationToken,
    GenerationHandle,
    GenerationStatus,
)


logger = logging.getLogger(__name__)


class TurnStatus(StrEnum):
    PENDING = "pending"
    COMPLETE = "complete"
    FAILED = "failed"


class TurnEvent(StrEnum):
    STATUS = "status"
    DELTA = "turn.delta"
    COMPLETE = "turn.complete"
    CANCELLED = "turn.cancelled"
    FAILED = "turn.failed"


class TurnClosedError(RuntimeError):
    """Raised when a turn that is no longer pending is modified."""


@dataclass(eq=False)
class ConversationTurn:
    prompt: str
    turn_id: uuid.UUID = field(default_factory=uuid.uuid4)
    code: str | None = None
    language: str | None = None
    explanation: str = ""
    status: TurnStatus = TurnStatus.PENDING
    error: str | None = None
    history_saved: bool = False
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def _ensure_pending(self) -> None:
        if self.status is not TurnStatus.PENDING:
            raise TurnClosedError(f"Turn {self.turn_id} is already {self.status}")

    def apply(self, result: ExtractionResult) -> None:
        self._ensure_pending()
        self.code = result.code
        self.language = result.language
        self.explanation = result.explanation

    def complete(self) -> None:
        self._ensure_pending()
        self.status = TurnStatus.COMPLETE

    def fail(self, message: str) -> None:
        """Close the turn as failed, discarding any partial answer."""
        self._ensure_pending()
        self.code = None
        self.language = None
        self.explanation = ""
        self.status = TurnStatus.FAILED
        self.error = message


@dataclass(frozen=True, slots=True)
class HistoryEntry:
    prompt: str
    code: str
    language: str
    explanation: str


class HistorySink(Protocol):
    """Persistence collaborator for completed generations."""

    async def append_record(self, user_id: uuid.UUID, entry: HistoryEntry) -> None: ...

    async def list_records(self, user_id: uuid.UUID) -> Sequence[Any]: ...


PromptSource = Callable[[str, CancellationToken], AsyncIterator[str]]
TurnListener = Callable[[ConversationTurn, TurnEvent, dict[str, Any]], None]


class Conversation:
    def __init__(
        self,
        source: PromptSource,
        *,
        owner_id: uuid.UUID | None = None,
        history: HistorySink | None = None,
        default_language: str = "javascript",
        conversation_id: uuid.UUID | None = None,
    ) -> None:
        self.id = conversation_id or uuid.uuid4()
        self.owner_id = owner_id
        self.created_at = datetime.now(UTC)
        self.turns: list[ConversationTurn] = []
        self._source = source
        self._history = history
        self._default_language = default_language
        self._lock = asyncio.Lock()
        self._active: GenerationHandle | None = None
        self._active_turn: ConversationTurn | None = None
        self._active_task: asyncio.Task[None] | None = None
        self._listeners: list[TurnListener] = []

    @property
    def active(self) -> bool:
        return self._active is not None and not self._active.done

    @property
    def active_status(self) -> GenerationStatus | None:
        return self._active.status if self._active is not None else None

    def subscribe(self, listener: TurnListener) -> Callable[[], None]:
        """Register ``listener`` for turn events; returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def get_turn(self, turn_id: uuid.UUID) -> ConversationTurn | None:
        return next((t for t in self.turns if t.turn_id == turn_id), None)

    async def submit(self, prompt: str) -> ConversationTurn:
        """Start generating an answer to ``prompt`` and return its pending turn.

        Raises:
            InvalidInput: ``prompt`` is blank; no turn is created
        """
        text = prompt.strip()
        if not text:
            raise InvalidInput()

        async with self._lock:
            await self._settle_active()

            turn = ConversationTurn(prompt=text)
            self.turns.append(turn)
            handle = GenerationHandle(
                lambda token: self._source(text, token),
                default_language=self._default_language,
                listener=lambda h: self._on_handle_update(turn, h),
            )
            self._active = handle
            self._active_turn = turn
            self._active_task = asyncio.create_task(
                self._drive(turn, handle), name=f"generation-{handle.id}"
            )
            logger.info(
                "Conversation %s started turn %s (%d chars)",
                self.id,
                turn.turn_id,
                len(text),
            )
            return turn

    def cancel(self, turn_id: uuid.UUID | None = None) -> bool:
        """Cancel the running generation; False when nothing was running.

        With ``turn_id`` the generation is only cancelled while it still
        belongs to that turn.
        """
        if self._active is None:
            return False
        if turn_id is not None and (
            self._active_turn is None or self._active_turn.turn_id != turn_id
        ):
            return False
        return self._active.cancel()

    async def wait(self) -> None:
        """Wait until the current generation, if any, has fully settled."""
        task = self._active_task
        if task is not None:
            await asyncio.wait({task})

    async def close(self) -> None:
        async with self._lock:
            await self._settle_active()
        self._listeners.clear()

    async def _settle_active(self) -> None:
        if self._active is not None and self._active.cancel():
            logger.info("Conversation %s cancelled its running generation", self.id)
        await self.wait()

    async def _drive(self, turn: ConversationTurn, handle: GenerationHandle) -> None:
        try:
            status = await handle.run()
            if status is GenerationStatus.COMPLETED:
                turn.complete()
                await self._save_to_history(turn)
                self._emit(turn, TurnEvent.COMPLETE)
            elif status is GenerationStatus.CANCELLED:
                self.turns.remove(turn)
                self._emit(turn, TurnEvent.CANCELLED)
            else:
                error = handle.error or ModelError()
                turn.fail(describe_failure(error))
                self._emit(turn, TurnEvent.FAILED, error_code=error.error_code)
        finally:
            if self._active is handle:
                self._active = None
                self._active_turn = None
                self._active_task = None

    async def _save_to_history(self, turn: ConversationTurn) -> None:
        if self.owner_id is None or self._history is None or not turn.code:
            return
        entry = HistoryEntry(
            prompt=turn.prompt,
            code=turn.code,
            language=turn.language or self._default_language,
            explanation=turn.explanation,
        )
        try:
            await self._history.append_record(self.owner_id, entry)
        except Exception:
            logger.exception(
                "Generation %s completed but could not be saved to history",
                turn.turn_id,
            )
            return
        turn.history_saved = True

    def _on_handle_update(
        self, turn: ConversationTurn, handle: GenerationHandle
    ) -> None:
        if handle.status.is_terminal:
            return
        if handle.status is GenerationStatus.STREAMING and handle.transcript:
            turn.apply(handle.result)
            self._emit(turn, TurnEvent.DELTA)
        else:
            self._emit(turn, TurnEvent.STATUS, status=str(handle.status))

    def _emit(self, turn: ConversationTurn, event: TurnEvent, **data: Any) -> None:
        for listener in list(self._listeners):
            try:
                listener(turn, event, data)
            except Exception:
                logger.exception("Turn listener failed on %s", event)
