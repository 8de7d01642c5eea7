"""Code generation on top of the model client.

:class:`CodeGenerator` turns a user prompt into chat messages, calls the
configured provider and applies the rate-limit fallback policy with
tenacity:

* at most ``max_attempts`` requests are made per prompt;
* a ``RateLimited`` answer is retried while attempts remain, waiting for the
  provider's ``Retry-After`` (capped) or ``retry_delay`` seconds; every retry
  uses the provider's fallback model when it has one;
* an attempt that already produced text is never retried, because the
  fragments have been handed to the caller.

Every other error propagates unchanged.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import aclosing
from dataclasses import dataclass

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
)

from core.config import Settings, get_settings
from services.codegen.exceptions import InvalidInput, RateLimited
from services.codegen.extractor import extract_code
from services.codegen.generation import CancellationToken
from services.codegen.model_client import ChatMessage, GenerationParams, ModelClient
from services.codegen.prompts import build_messages
from services.codegen.providers import resolve_provider


logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]

# Upper bound on a provider-requested Retry-After
MAX_RETRY_WAIT_SECONDS = 60.0


@dataclass(frozen=True, slots=True)
class GenerationResult:
    """Outcome of a one-shot generation."""

    code: str | None
    language: str | None
    explanation: str
    model: str


class CodeGenerator:
    def __init__(
        self,
        client: ModelClient,
        *,
        system_prompt: str | None = None,
        temperature: float = 0.7,
        max_tokens: int = 512,
        max_attempts: int = 2,
        retry_delay: float = 3.0,
        default_language: str = "javascript",
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.client = client
        self.system_prompt = system_prompt
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self.default_language = default_language
        self._sleep = sleep

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        *,
        http_client: httpx.AsyncClient | None = None,
    ) -> CodeGenerator:
        s = settings or get_settings()
        client = ModelClient(
            resolve_provider(s),
            http_client=http_client,
            connect_timeout=s.LLM_CONNECT_TIMEOUT_SECONDS,
            idle_timeout=s.STREAM_IDLE_TIMEOUT_SECONDS,
        )
        return cls(
            client,
            system_prompt=s.SYSTEM_PROMPT,
            temperature=s.LLM_TEMPERATURE,
            max_tokens=s.LLM_MAX_TOKENS,
            max_attempts=s.LLM_MAX_ATTEMPTS,
            retry_delay=s.LLM_RETRY_DELAY_SECONDS,
            default_language=s.DEFAULT_CODE_LANGUAGE,
        )

    def _messages(self, prompt: str) -> list[ChatMessage]:
        text = prompt.strip()
        if not text:
            raise InvalidInput()
        return build_messages(text, self.system_prompt)

    def _model_for_attempt(self, attempt_number: int) -> str:
        provider = self.client.provider
        if attempt_number > 1 and provider.fallback_model:
            return provider.fallback_model
        return provider.text_model

    def _retry_wait(self, retry_state: RetryCallState) -> float:
        """Honour the provider's Retry-After, else wait ``retry_delay``."""
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        if isinstance(exc, RateLimited) and exc.retry_after is not None:
            return min(exc.retry_after, MAX_RETRY_WAIT_SECONDS)
        return self.retry_delay

    def _log_retry(self, retry_state: RetryCallState) -> None:
        failed_model = self._model_for_attempt(retry_state.attempt_number)
        next_model = self._model_for_attempt(retry_state.attempt_number + 1)
        wait = retry_state.next_action.sleep if retry_state.next_action else 0.0
        logger.warning(
            "Model %s rate limited; retrying with %s in %.1fs (attempt %d of %d)",
            failed_model,
            next_model,
            wait,
            retry_state.attempt_number + 1,
            self.max_attempts,
        )

    async def _attempts(
        self,
        messages: list[ChatMessage],
        *,
        stream: bool,
        token: CancellationToken | None,
    ) -> AsyncIterator[tuple[str, str]]:
        """Yield ``(model, fragment)`` pairs, retrying rate-limited attempts."""
        produced = False

        def retryable(exc: BaseException) -> bool:
            return isinstance(exc, RateLimited) and not produced

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=self._retry_wait,
            retry=retry_if_exception(retryable),
            before_sleep=self._log_retry,
            sleep=self._sleep,
            reraise=True,
        )
        async for attempt in retrying:
            model = self._model_for_attempt(attempt.retry_state.attempt_number)
            produced = False
            params = GenerationParams(
                model=model,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
                stream=stream,
            )
            with attempt:
                async with aclosing(
                    self.client.stream(messages, params, token)
                ) as fragments:
                    async for fragment in fragments:
                        produced = True
                        yield model, fragment

    async def stream(
        self, prompt: str, token: CancellationToken | None = None
    ) -> AsyncIterator[str]:
        """Stream the answer to ``prompt`` as text fragments.

        Raises:
            InvalidInput: ``prompt`` is blank
            CodegenError: any unrecovered model client failure
        """
        messages = self._messages(prompt)
        async with aclosing(
            self._attempts(messages, stream=True, token=token)
        ) as pairs:
            async for _model, fragment in pairs:
                yield fragment

    async def generate(self, prompt: str) -> GenerationResult:
        """Request a complete (non-streamed) answer and extract its code."""
        messages = self._messages(prompt)
        model = self.client.provider.text_model
        parts: list[str] = []
        pairs = self._attempts(messages, stream=False, token=None)
        async with aclosing(pairs):
            async for model, fragment in pairs:
                parts.append(fragment)

        extraction = extract_code("".join(parts), self.default_language)
        return GenerationResult(
            code=extraction.code,
            language=extraction.language,
            explanation=extraction.explanation,
            model=model,
        )
