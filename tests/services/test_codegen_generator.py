"""Tests for CodeGenerator: prompt wrapping and the rate-limit fallback policy."""

from __future__ import annotations

from dataclasses import replace
from unittest.mock import MagicMock

import httpx
import pytest

from services.codegen.exceptions import InvalidInput, ModelError, RateLimited
from services.codegen.generator import MAX_RETRY_WAIT_SECONDS, CodeGenerator
from services.codegen.prompts import USER_PROMPT_PREFIX, build_messages
from tests.fixtures.codegen_fixtures import (
    TEST_PROVIDER,
    ScriptedLLM,
    collect,
    make_generator,
)


class RecordingSleep:
    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


def _generator(llm: ScriptedLLM, **kwargs) -> CodeGenerator:
    return make_generator(
        httpx.AsyncClient(transport=httpx.MockTransport(llm)), **kwargs
    )


class TestPrompts:
    def test_build_messages_with_system_prompt(self) -> None:
        messages = build_messages("sort a list", "Be brief.")

        assert messages == [
            {"role": "system", "content": "Be brief."},
            {"role": "user", "content": f"{USER_PROMPT_PREFIX}sort a list"},
        ]

    def test_build_messages_without_system_prompt(self) -> None:
        assert build_messages("x") == [
            {"role": "user", "content": "Generate code for: x"}
        ]


class TestStream:
    @pytest.mark.asyncio
    async def test_streams_fragments_of_trimmed_prompt(self) -> None:
        llm = ScriptedLLM().reply_stream("a", "b")
        generator = _generator(llm)

        assert await collect(generator.stream("  reverse a string \n")) == ["a", "b"]

        messages = llm.payloads[0]["messages"]
        assert messages[0] == {"role": "system", "content": "You write code."}
        assert messages[1]["content"] == "Generate code for: reverse a string"
        assert llm.models == ["primary-model"]

    @pytest.mark.asyncio
    async def test_blank_prompt_raises_invalid_input(self) -> None:
        llm = ScriptedLLM()
        generator = _generator(llm)

        with pytest.raises(InvalidInput):
            await collect(generator.stream("   "))

        assert llm.requests == []

    @pytest.mark.asyncio
    async def test_rate_limit_falls_back_after_delay(self) -> None:
        llm = ScriptedLLM().reply_error(429).reply_stream("ok")
        sleep = RecordingSleep()
        generator = _generator(llm, sleep=sleep, retry_delay=3.0)

        assert await collect(generator.stream("p")) == ["ok"]

        assert llm.models == ["primary-model", "fallback-model"]
        assert sleep.calls == [3.0]

    @pytest.mark.asyncio
    async def test_rate_limit_waits_for_retry_after(self) -> None:
        llm = (
            ScriptedLLM()
            .reply_error(429, "slow down", headers={"Retry-After": "20"})
            .reply_stream("ok")
        )
        sleep = RecordingSleep()
        generator = _generator(llm, sleep=sleep, retry_delay=3.0)

        assert await collect(generator.stream("p")) == ["ok"]

        assert sleep.calls == [20.0]
        assert llm.models == ["primary-model", "fallback-model"]

    @pytest.mark.asyncio
    async def test_retry_after_is_capped(self) -> None:
        llm = (
            ScriptedLLM()
            .reply_error(429, headers={"Retry-After": "3600"})
            .reply_stream("ok")
        )
        sleep = RecordingSleep()
        generator = _generator(llm, sleep=sleep)

        await collect(generator.stream("p"))

        assert sleep.calls == [MAX_RETRY_WAIT_SECONDS]

    @pytest.mark.asyncio
    async def test_rate_limit_on_last_attempt_propagates(self) -> None:
        llm = ScriptedLLM().reply_error(429)
        sleep = RecordingSleep()
        generator = _generator(llm, sleep=sleep)

        with pytest.raises(RateLimited):
            await collect(generator.stream("p"))

        assert llm.models == ["primary-model", "fallback-model"]
        assert sleep.calls == [3.0]

    @pytest.mark.asyncio
    async def test_single_attempt_never_retries(self) -> None:
        llm = ScriptedLLM().reply_error(429)
        generator = _generator(llm, max_attempts=1)

        with pytest.raises(RateLimited):
            await collect(generator.stream("p"))

        assert len(llm.requests) == 1

    @pytest.mark.asyncio
    async def test_without_fallback_model_retries_primary(self) -> None:
        llm = ScriptedLLM().reply_error(429).reply_error(429).reply_stream("ok")
        provider = replace(TEST_PROVIDER, fallback_model=None)
        generator = make_generator(
            httpx.AsyncClient(transport=httpx.MockTransport(llm)),
            provider=provider,
            max_attempts=3,
        )

        assert await collect(generator.stream("p")) == ["ok"]
        assert llm.models == ["primary-model"] * 3

    @pytest.mark.asyncio
    async def test_fallback_model_is_kept_for_later_retries(self) -> None:
        llm = ScriptedLLM().reply_error(429).reply_error(429).reply_stream("ok")
        generator = _generator(llm, max_attempts=3)

        await collect(generator.stream("p"))

        assert llm.models == ["primary-model", "fallback-model", "fallback-model"]

    @pytest.mark.asyncio
    async def test_other_errors_are_not_retried(self) -> None:
        llm = ScriptedLLM().reply_error(400, "bad request").reply_stream("never")
        generator = _generator(llm)

        with pytest.raises(ModelError):
            await collect(generator.stream("p"))

        assert len(llm.requests) == 1

    @pytest.mark.asyncio
    async def test_attempt_that_produced_output_is_not_retried(self) -> None:
        """A mid-stream failure must not replay fragments already handed out."""
        client = MagicMock()
        client.provider = TEST_PROVIDER
        calls: list[str] = []

        async def failing_stream(messages, params, token):
            calls.append(params.model)
            yield "partial"
            raise RateLimited()

        client.stream = failing_stream
        generator = CodeGenerator(client, sleep=RecordingSleep())
        received: list[str] = []

        with pytest.raises(RateLimited):
            async for fragment in generator.stream("p"):
                received.append(fragment)

        assert received == ["partial"]
        assert calls == ["primary-model"]


class TestGenerate:
    @pytest.mark.asyncio
    async def test_generate_extracts_code_from_full_answer(self) -> None:
        llm = ScriptedLLM().reply_message(
            "Use a loop.\n```python\nfor i in range(3):\n    print(i)\n```"
        )
        generator = _generator(llm)

        result = await generator.generate("print numbers")

        assert result.code == "for i in range(3):\n    print(i)"
        assert result.language == "python"
        assert result.explanation == "Use a loop."
        assert result.model == "primary-model"
        assert llm.payloads[0]["stream"] is False

    @pytest.mark.asyncio
    async def test_generate_reports_fallback_model(self) -> None:
        llm = ScriptedLLM().reply_error(429).reply_message("```\nx\n```")
        generator = _generator(llm)

        result = await generator.generate("p")

        assert result.model == "fallback-model"
        assert result.language == "javascript"

    @pytest.mark.asyncio
    async def test_generate_without_code_block(self) -> None:
        llm = ScriptedLLM().reply_message("I cannot help with that.")
        generator = _generator(llm)

        result = await generator.generate("p")

        assert result.code is None
        assert result.language is None
        assert result.explanation == "I cannot help with that."


class TestFromSettings:
    def test_from_settings_uses_configuration(self) -> None:
        settings = MagicMock()
        settings.LLM_PROVIDER = "openai"
        settings.OPENAI_API_KEY = "sk-test"  # pragma: allowlist secret
        settings.LLM_BASE_URL = None
        settings.TEXT_MODEL = None
        settings.FALLBACK_MODEL = None
        settings.LLM_CONNECT_TIMEOUT_SECONDS = 5.0
        settings.STREAM_IDLE_TIMEOUT_SECONDS = 20.0
        settings.SYSTEM_PROMPT = "sys"
        settings.LLM_TEMPERATURE = 0.1
        settings.LLM_MAX_TOKENS = 256
        settings.LLM_MAX_ATTEMPTS = 3
        settings.LLM_RETRY_DELAY_SECONDS = 1.5
        settings.DEFAULT_CODE_LANGUAGE = "python"

        generator = CodeGenerator.from_settings(settings)

        assert generator.client.provider.name == "openai"
        assert generator.client.provider.api_key == "sk-test"
        assert generator.system_prompt == "sys"
        assert generator.max_attempts == 3
        assert generator.retry_delay == 1.5
        assert generator.default_language == "python"

    def test_rejects_zero_attempts(self) -> None:
        with pytest.raises(ValueError):
            CodeGenerator(MagicMock(), max_attempts=0)
