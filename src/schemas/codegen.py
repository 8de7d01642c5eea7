"""Request/response schemas for code generation, conversations and history."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


MAX_PROMPT_LENGTH = 8000


class GenerateRequest(BaseModel):
    """Prompt for a generation; surrounding whitespace is ignored."""

    prompt: str = Field(..., min_length=1, max_length=MAX_PROMPT_LENGTH)

    model_config = ConfigDict(extra="forbid")


class GenerateResponse(BaseModel):
    code: str | None = Field(default=None, description="Last complete code block")
    language: str | None = Field(default=None, description="Fence tag or default")
    explanation: str = Field(default="", description="Answer text outside fences")
    model: str = Field(..., description="Model that produced the answer")


class ConversationTurnRead(BaseModel):
    turn_id: UUID
    prompt: str
    code: str | None = None
    language: str | None = None
    explanation: str = ""
    status: str = Field(..., description="pending | complete | failed")
    error: str | None = None
    history_saved: bool = False
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ConversationRead(BaseModel):
    id: UUID
    created_at: datetime
    active: bool = Field(..., description="Whether a generation is running")
    turns: list[ConversationTurnRead] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


class CancelResponse(BaseModel):
    cancelled: bool


class HistoryRecordRead(BaseModel):
    id: UUID
    prompt: str
    code: str
    language: str
    explanation: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class HistoryRenameRequest(BaseModel):
    prompt: str = Field(..., min_length=1, max_length=MAX_PROMPT_LENGTH)

    model_config = ConfigDict(extra="forbid")
