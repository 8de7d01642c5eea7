"""Schemas for code generation SSE streaming."""

from __future__ import annotations

from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


# Deltas carry the full extraction so far, not just the new fragment
MAX_SSE_EVENT_BYTES: int = 262_144


class GenerationSseEvent(BaseModel):
    """Canonical SSE envelope for a streamed conversation turn."""

    event: Literal[
        "status",
        "turn.delta",
        "turn.complete",
        "turn.cancelled",
        "turn.failed",
        "done",
    ]
    conversation_id: UUID
    turn_id: UUID | None = None
    data: dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(extra="forbid")

    def to_sse(self) -> str:
        """Serialize event to SSE format with size validation."""
        payload = self.model_dump_json()
        if len(payload.encode("utf-8")) > MAX_SSE_EVENT_BYTES:
            raise ValueError("SSE payload exceeded MAX_SSE_EVENT_BYTES")
        return f"data: {payload}\n\n"
