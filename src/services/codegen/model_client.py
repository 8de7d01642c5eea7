"""Streaming client for OpenAI-compatible chat completion APIs.

The client speaks the ``POST {base_url}/chat/completions`` protocol shared
by OpenAI, Mistral, Fireworks and Gemini's OpenAI endpoint. With
``stream=True`` the provider answers with Server-Sent Events::

    data: {"choices": [{"delta": {"content": "def "}}]}

    data: [DONE]

and :meth:`ModelClient.stream` yields each non-empty ``delta.content``.
Non-streaming responses yield ``choices[0].message.content`` once.

Usage:
    client = ModelClient(resolve_provider(get_settings()))
    async for fragment in client.stream(messages, GenerationParams(model=...)):
        ...
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator
from contextlib import aclosing, asynccontextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime
from typing import Any

import httpx

from services.codegen.exceptions import (
    AuthError,
    GenerationCancelled,
    InvalidInput,
    MalformedFrame,
    ModelError,
    RateLimited,
    StreamStalled,
    TransientNetworkError,
)
from services.codegen.generation import CancellationToken
from services.codegen.providers import ProviderConfig


logger = logging.getLogger(__name__)

SSE_DATA_PREFIX = "data:"
SSE_DONE = "[DONE]"

ChatMessage = dict[str, str]


@dataclass(frozen=True, slots=True)
class GenerationParams:
    model: str
    temperature: float = 0.7
    max_tokens: int = 512
    stream: bool = True


def _provider_error_message(body: Any) -> str | None:
    """Pull a human-readable message out of a provider error body."""
    if isinstance(body, list) and body:
        # Gemini's OpenAI endpoint wraps errors in a one-element list
        body = body[0]
    if not isinstance(body, dict):
        return None
    error = body.get("error")
    if isinstance(error, dict) and isinstance(error.get("message"), str):
        return error["message"]
    if isinstance(error, str) and error:
        return error
    for key in ("message", "detail"):
        value = body.get(key)
        if isinstance(value, str) and value:
            return value
    return None


def _parse_retry_after(value: str | None) -> float | None:
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    return max(0.0, (when - datetime.now(UTC)).total_seconds())


def _prepare_messages(prompt: str | list[ChatMessage]) -> list[ChatMessage]:
    if isinstance(prompt, str):
        text = prompt.strip()
        if not text:
            raise InvalidInput()
        return [{"role": "user", "content": text}]
    if not prompt:
        raise InvalidInput("At least one chat message is required")
    return list(prompt)


class ModelClient:
    """Send chat completion requests and iterate the answer as text fragments.

    An ``http_client`` can be injected (tests pass one backed by
    ``httpx.MockTransport``); otherwise a short-lived ``httpx.AsyncClient`` is
    opened per request.
    """

    def __init__(
        self,
        provider: ProviderConfig,
        *,
        http_client: httpx.AsyncClient | None = None,
        connect_timeout: float = 10.0,
        idle_timeout: float = 30.0,
    ) -> None:
        self.provider = provider
        self._http_client = http_client
        self._idle_timeout = idle_timeout
        # Reads are bounded per line by the idle timeout instead
        self._timeout = httpx.Timeout(
            connect=connect_timeout, read=None, write=connect_timeout, pool=None
        )

    @asynccontextmanager
    async def _client(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._http_client is not None:
            yield self._http_client
            return
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            yield client

    async def stream(
        self,
        prompt: str | list[ChatMessage],
        params: GenerationParams,
        token: CancellationToken | None = None,
    ) -> AsyncIterator[str]:
        """Yield the model's answer fragment by fragment.

        ``prompt`` is either raw user text (trimmed, sent as a single user
        message) or prepared chat messages.

        Raises:
            InvalidInput: blank prompt, before any network call
            AuthError: missing API key, or HTTP 401/403
            RateLimited: HTTP 429
            TransientNetworkError: transport failure, HTTP 408/5xx
            StreamStalled: no line received within the idle timeout
            ModelError: any other provider error
            GenerationCancelled: ``token`` was cancelled between reads
        """
        messages = _prepare_messages(prompt)
        if not self.provider.api_key:
            raise AuthError(
                f"No API key configured for provider '{self.provider.name}'"
            )

        payload = {
            "model": params.model,
            "messages": messages,
            "stream": params.stream,
            "max_tokens": params.max_tokens,
            "temperature": params.temperature,
        }
        headers = {
            "Authorization": f"Bearer {self.provider.api_key}",
            "Accept": "text/event-stream" if params.stream else "application/json",
        }
        logger.debug(
            "Requesting %s completion from %s (model=%s)",
            "streamed" if params.stream else "one-shot",
            self.provider.name,
            params.model,
        )

        try:
            async with self._client() as client:
                request = client.build_request(
                    "POST", self.provider.completions_url, json=payload, headers=headers
                )
                response = await self._send(client, request)
                try:
                    await self._raise_for_status(response)
                    if params.stream:
                        async with aclosing(
                            self._iter_fragments(response, token)
                        ) as fragments:
                            async for fragment in fragments:
                                yield fragment
                    else:
                        content = await self._read_message(response)
                        if content:
                            yield content
                finally:
                    await response.aclose()
        except httpx.TransportError as exc:
            logger.warning("Transport error talking to %s: %s", self.provider.name, exc)
            raise TransientNetworkError(
                f"Network error while contacting {self.provider.name}: "
                f"{exc.__class__.__name__}"
            ) from exc

    async def _send(
        self, client: httpx.AsyncClient, request: httpx.Request
    ) -> httpx.Response:
        try:
            async with asyncio.timeout(self._idle_timeout):
                return await client.send(request, stream=True)
        except TimeoutError as exc:
            raise StreamStalled(self._idle_timeout) from exc

    async def _raise_for_status(self, response: httpx.Response) -> None:
        if response.is_success:
            return

        status = response.status_code
        await response.aread()
        try:
            detail = _provider_error_message(response.json())
        except ValueError:
            detail = None
        logger.warning(
            "Provider %s returned HTTP %d: %s", self.provider.name, status, detail
        )

        if status in (401, 403):
            raise AuthError(detail or f"Provider rejected the API key (HTTP {status})")
        if status == 429:
            raise RateLimited(
                detail or "Model provider rate limit exceeded",
                retry_after=_parse_retry_after(response.headers.get("Retry-After")),
            )
        if status == 408 or status >= 500:
            raise TransientNetworkError(
                detail or f"Model provider unavailable (HTTP {status})"
            )
        raise ModelError(detail or f"Model provider returned HTTP {status}")

    async def _read_message(self, response: httpx.Response) -> str | None:
        try:
            async with asyncio.timeout(self._idle_timeout):
                await response.aread()
        except TimeoutError as exc:
            raise StreamStalled(self._idle_timeout) from exc
        try:
            body = response.json()
            content = body["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise ModelError("Model provider returned an unreadable response") from exc
        if not isinstance(content, str):
            return None
        return content

    async def _iter_fragments(
        self, response: httpx.Response, token: CancellationToken | None
    ) -> AsyncIterator[str]:
        async with aclosing(response.aiter_lines()) as lines:
            while True:
                if token is not None and token.cancelled:
                    raise GenerationCancelled()
                try:
                    async with asyncio.timeout(self._idle_timeout):
                        line = await anext(lines)
                except StopAsyncIteration:
                    return
                except TimeoutError as exc:
                    raise StreamStalled(self._idle_timeout) from exc

                # Comments, blank separators and event/id/retry fields
                if not line.startswith(SSE_DATA_PREFIX):
                    continue
                data = line[len(SSE_DATA_PREFIX) :].strip()
                if data == SSE_DONE:
                    return
                if not data:
                    continue
                try:
                    fragment = self._decode_frame(data)
                except MalformedFrame as exc:
                    logger.warning("Skipping stream frame: %s", exc.message)
                    continue
                if fragment:
                    yield fragment

    @staticmethod
    def _decode_frame(data: str) -> str | None:
        """Return a frame's ``delta.content``, if any.

        Raises:
            MalformedFrame: the frame is not a JSON object
            ModelError: the frame reports a provider error mid-stream
        """
        try:
            frame = json.loads(data)
        except json.JSONDecodeError as exc:
            raise MalformedFrame(f"Invalid JSON frame: {data[:80]!r}") from exc
        if not isinstance(frame, dict):
            raise MalformedFrame(f"Unexpected frame type: {type(frame).__name__}")

        if frame.get("error"):
            raise ModelError(
                _provider_error_message(frame) or "Model provider reported an error"
            )

        choices = frame.get("choices")
        if not isinstance(choices, list) or not choices:
            return None
        first = choices[0]
        if not isinstance(first, dict):
            return None
        delta = first.get("delta")
        if not isinstance(delta, dict):
            return None
        content = delta.get("content")
        return content if isinstance(content, str) and content else None
