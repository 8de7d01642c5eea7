"""Response envelopes shared by every endpoint.

Successful responses wrap their payload in :class:`ApiResponse`; the error
handlers answer with :class:`ErrorResponse`, whose ``error`` object is
filtered per environment before it is sent.
"""

from __future__ import annotations

from typing import Any, Generic, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """Envelope for a successful call.

    Attributes:
        success: True unless an error handler built the response.
        data: Endpoint payload, e.g. a conversation or a history record.
        message: Short human-readable outcome.
        error: Only set on error envelopes.
    """

    success: bool = True
    data: T | None = None
    message: str = "Operation completed successfully"
    error: dict[str, Any] | None = None


class ErrorResponse(ApiResponse[None]):
    """Envelope for a failed call; ``error`` carries type and correlation id."""

    success: bool = False
    message: str = "An error occurred"
