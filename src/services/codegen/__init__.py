"""Code generation: model client, stream extraction and conversation state."""

from services.codegen.conversation import (
    Conversation,
    ConversationTurn,
    HistoryEntry,
    HistorySink,
    TurnEvent,
    TurnStatus,
)
from services.codegen.extractor import ExtractionResult, StreamAssembler, extract_code
from services.codegen.generation import (
    CancellationToken,
    GenerationHandle,
    GenerationStatus,
)
from services.codegen.generator import CodeGenerator, GenerationResult
from services.codegen.model_client import GenerationParams, ModelClient


__all__ = [
    "CancellationToken",
    "CodeGenerator",
    "Conversation",
    "ConversationTurn",
    "ExtractionResult",
    "GenerationHandle",
    "GenerationParams",
    "GenerationResult",
    "GenerationStatus",
    "HistoryEntry",
    "HistorySink",
    "ModelClient",
    "StreamAssembler",
    "TurnEvent",
    "TurnStatus",
    "extract_code",
]
