"""One in-flight generation request and its lifecycle.

State machine::

    idle -> requesting -> streaming -> completed
                 |            |
                 +------------+------> cancelled | failed

``requesting`` is entered when :meth:`GenerationHandle.run` starts,
``streaming`` on the first fragment. Cancellation wins over everything that
has not completed yet; any error other than cancellation ends in ``failed``.
Both ``cancelled`` and ``failed`` discard the transcript.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import AsyncIterator, Callable
from contextlib import aclosing
from enum import StrEnum

from services.codegen.exceptions import CodegenError, GenerationCancelled, ModelError
from services.codegen.extractor import EMPTY_RESULT, ExtractionResult, StreamAssembler


logger = logging.getLogger(__name__)


class GenerationStatus(StrEnum):
    IDLE = "idle"
    REQUESTING = "requesting"
    STREAMING = "streaming"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset(
    {GenerationStatus.COMPLETED, GenerationStatus.CANCELLED, GenerationStatus.FAILED}
)


class CancellationToken:
    """Single-shot cancellation flag shared by a handle and its source."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    async def wait(self) -> None:
        await self._event.wait()


FragmentSource = Callable[[CancellationToken], AsyncIterator[str]]
HandleListener = Callable[["GenerationHandle"], None]


class GenerationHandle:
    """Drive a fragment source through a :class:`StreamAssembler`.

    ``source`` is called once with the handle's token and must return an
    async iterator of text fragments. ``listener`` is invoked synchronously
    after every status change and every recomputed extraction.
    """

    def __init__(
        self,
        source: FragmentSource,
        *,
        default_language: str = "javascript",
        listener: HandleListener | None = None,
    ) -> None:
        self.id = uuid.uuid4()
        self.token = CancellationToken()
        self.status = GenerationStatus.IDLE
        self.result: ExtractionResult = EMPTY_RESULT
        self.error: CodegenError | None = None
        self._source = source
        self._assembler = StreamAssembler(default_language)
        self._listener = listener
        self._task: asyncio.Task[object] | None = None

    @property
    def transcript(self) -> str:
        return self._assembler.transcript

    @property
    def done(self) -> bool:
        return self.status.is_terminal

    def cancel(self) -> bool:
        """Request cancellation; returns False once the handle has finished.

        The token is set so the source stops at its next check, and the
        running task is cancelled so a blocked network read is interrupted.
        """
        if self.done:
            return False
        self.token.cancel()
        if self._task is not None and self._task is not asyncio.current_task():
            self._task.cancel()
        return True

    async def run(self) -> GenerationStatus:
        """Consume the source to completion and return the final status.

        Errors never propagate: they end the handle in ``failed`` with
        :attr:`error` set. An outside cancellation of the running task that
        did not come from :meth:`cancel` still marks the handle cancelled and
        is re-raised.
        """
        if self.status is not GenerationStatus.IDLE:
            raise RuntimeError("A GenerationHandle can only be run once")

        self._task = asyncio.current_task()
        self._set_status(GenerationStatus.REQUESTING)
        try:
            if self.token.cancelled:
                raise GenerationCancelled()
            async with aclosing(self._source(self.token)) as fragments:
                async for fragment in fragments:
                    if self.token.cancelled:
                        raise GenerationCancelled()
                    self._accept(fragment)
        except GenerationCancelled:
            self._discard(GenerationStatus.CANCELLED)
        except asyncio.CancelledError:
            self._discard(GenerationStatus.CANCELLED)
            if not self.token.cancelled:
                raise
            if self._task is not None:
                self._task.uncancel()
        except CodegenError as exc:
            self._fail(exc)
        except Exception as exc:
            logger.exception("Unexpected error during generation %s", self.id)
            wrapped = ModelError(str(exc) or exc.__class__.__name__)
            wrapped.__cause__ = exc
            self._fail(wrapped)
        else:
            if self.token.cancelled:
                self._discard(GenerationStatus.CANCELLED)
            else:
                self._set_status(GenerationStatus.COMPLETED)
        finally:
            self._task = None
        return self.status

    def _accept(self, fragment: str) -> None:
        if self.status is GenerationStatus.REQUESTING:
            self._set_status(GenerationStatus.STREAMING)
        self.result = self._assembler.feed(fragment)
        self._notify()

    def _fail(self, exc: CodegenError) -> None:
        self.error = exc
        logger.warning(
            "Generation %s failed: %s (retryable=%s)", self.id, exc, exc.retryable
        )
        self._discard(GenerationStatus.FAILED)

    def _discard(self, status: GenerationStatus) -> None:
        self._assembler.reset()
        self._set_status(status)

    def _set_status(self, status: GenerationStatus) -> None:
        self.status = status
        self._notify()

    def _notify(self) -> None:
        if self._listener is not None:
            self._listener(self)
