"""Conversation endpoints, including the SSE stream of a generating turn."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncGenerator
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, Response, status
from fastapi.responses import StreamingResponse

from core.ratelimit import check_rate_limit
from dependencies.auth import OptionalUser
from models.users import User
from schemas.api import ApiResponse
from schemas.codegen import (
    CancelResponse,
    ConversationRead,
    ConversationTurnRead,
    GenerateRequest,
)
from schemas.codegen_streaming import GenerationSseEvent
from services.codegen.conversation import Conversation, ConversationTurn, TurnEvent

from .deps import Registry


router = APIRouter(prefix="/conversations", tags=["conversations"])

logger = logging.getLogger(__name__)

TERMINAL_EVENTS = frozenset(
    {TurnEvent.COMPLETE, TurnEvent.CANCELLED, TurnEvent.FAILED}
)

RESPONSE_TOO_LARGE = "Failed to generate code: the answer is too large to stream."


def _owner_id(user: User | None) -> UUID | None:
    return user.id if user is not None else None


def _to_read(conversation: Conversation) -> ConversationRead:
    return ConversationRead(
        id=conversation.id,
        created_at=conversation.created_at,
        active=conversation.active,
        turns=[ConversationTurnRead.model_validate(t) for t in conversation.turns],
    )


def _event_data(
    turn: ConversationTurn, event: TurnEvent, extra: dict[str, Any]
) -> dict[str, Any]:
    if event is TurnEvent.STATUS:
        return dict(extra)
    if event is TurnEvent.CANCELLED:
        return {}
    if event is TurnEvent.FAILED:
        return {"error": turn.error, **extra}
    data: dict[str, Any] = {
        "code": turn.code,
        "language": turn.language,
        "explanation": turn.explanation,
    }
    if event is TurnEvent.COMPLETE:
        data["history_saved"] = turn.history_saved
    return data


@router.post(
    "",
    response_model=ApiResponse[ConversationRead],
    status_code=status.HTTP_201_CREATED,
)
async def create_conversation(
    registry: Registry, user: OptionalUser
) -> ApiResponse[ConversationRead]:
    """Start an empty conversation; signed-in callers get history saving."""
    conversation = await registry.create(owner_id=_owner_id(user))
    return ApiResponse(
        success=True, data=_to_read(conversation), message="Conversation created"
    )


@router.get("/{conversation_id}", response_model=ApiResponse[ConversationRead])
async def get_conversation(
    conversation_id: UUID, registry: Registry, user: OptionalUser
) -> ApiResponse[ConversationRead]:
    conversation = registry.get(conversation_id, _owner_id(user))
    return ApiResponse(
        success=True, data=_to_read(conversation), message="Conversation retrieved"
    )


@router.post(
    "/{conversation_id}/turns",
    response_class=StreamingResponse,
    dependencies=[Depends(check_rate_limit)],
)
async def stream_turn(
    conversation_id: UUID,
    payload: GenerateRequest,
    registry: Registry,
    user: OptionalUser,
) -> StreamingResponse:
    """Submit a prompt and stream the turn as it is generated.

    Any generation already running in the conversation is cancelled first.
    Closing the stream before the turn finishes cancels the turn, unless a
    newer submission has already replaced it. An answer too large for one
    SSE event ends the stream with ``turn.failed``.
    """
    conversation = registry.get(conversation_id, _owner_id(user))

    queue: asyncio.Queue[tuple[ConversationTurn, TurnEvent, dict[str, Any]]] = (
        asyncio.Queue()
    )
    unsubscribe = conversation.subscribe(
        lambda turn, event, data: queue.put_nowait((turn, event, data))
    )
    try:
        turn = await conversation.submit(payload.prompt)
    except BaseException:
        unsubscribe()
        raise

    def sse(event: str, data: dict[str, Any]) -> str:
        return GenerationSseEvent(
            event=event,  # type: ignore[arg-type]
            conversation_id=conversation.id,
            turn_id=turn.turn_id,
            data=data,
        ).to_sse()

    async def event_stream() -> AsyncGenerator[str, None]:
        finished = False
        try:
            yield sse("status", {"status": "pending", "prompt": turn.prompt})
            while not finished:
                event_turn, event, extra = await queue.get()
                if event_turn is not turn:
                    continue
                finished = event in TERMINAL_EVENTS
                try:
                    frame = sse(str(event), _event_data(turn, event, extra))
                except ValueError:
                    logger.warning(
                        "Turn %s outgrew the SSE event limit on %s",
                        turn.turn_id,
                        event,
                    )
                    finished = True
                    conversation.cancel(turn.turn_id)
                    frame = sse(
                        str(TurnEvent.FAILED),
                        {
                            "error": RESPONSE_TOO_LARGE,
                            "error_code": "response_too_large",
                        },
                    )
                yield frame
            yield sse("done", {})
        finally:
            unsubscribe()
            if not finished and conversation.cancel(turn.turn_id):
                logger.info(
                    "Client left the stream of turn %s; cancelled it", turn.turn_id
                )

    return StreamingResponse(
        event_stream(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@router.post(
    "/{conversation_id}/cancel", response_model=ApiResponse[CancelResponse]
)
async def cancel_turn(
    conversation_id: UUID, registry: Registry, user: OptionalUser
) -> ApiResponse[CancelResponse]:
    """Cancel the running generation; its turn is removed."""
    conversation = registry.get(conversation_id, _owner_id(user))
    cancelled = conversation.cancel()
    await conversation.wait()
    return ApiResponse(
        success=True,
        data=CancelResponse(cancelled=cancelled),
        message="Generation cancelled" if cancelled else "Nothing to cancel",
    )


@router.delete("/{conversation_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_conversation(
    conversation_id: UUID, registry: Registry, user: OptionalUser
) -> Response:
    await registry.delete(conversation_id, _owner_id(user))
    return Response(status_code=status.HTTP_204_NO_CONTENT)
