"""Tests for the OpenAI-compatible AI client."""

from __future__ import annotations

from types import SimpleNamespace
from typing import Any, cast

import pytest

from openai import AsyncOpenAI

from pagewise.ai import client as client_module
from pagewise.ai.client import (
    AIClient,
    ApproxByteCounter,
    ClientSettings,
    ModelResponse,
    TokenCounterRegistry,
)
from tests.helpers import connection_error, stream_chunk


class _FakeCompletions:
    def __init__(self, results: list[Any]):
        self._results = list(results)
        self.calls: list[dict[str, Any]] = []

    async def create(self, **kwargs: Any) -> Any:
        self.calls.append(kwargs)
        result = self._results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


class _FakeOpenAI:
    def __init__(self, results: list[Any] | None = None):
        self.completions = _FakeCompletions(results or [])
        self.chat = SimpleNamespace(completions=self.completions)
        self.closed = False

    async def close(self) -> None:
        self.closed = True


def _settings(**overrides: Any) -> ClientSettings:
    values = {"base_url": "https://example.test/v1", "api_key": "sk-test", "model": "gpt-4o-mini"}
    values.update(overrides)
    return ClientSettings(**values)


def _client(fake: _FakeOpenAI, **overrides: Any) -> AIClient:
    registry = TokenCounterRegistry(fallback=ApproxByteCounter())
    return AIClient(_settings(**overrides), client=cast(AsyncOpenAI, fake), token_registry=registry)


def _completion(content: str | None = None, *, tool_calls: list[Any] | None = None, finish_reason: str = "stop"):
    message = SimpleNamespace(content=content, tool_calls=tool_calls, function_call=None)
    return SimpleNamespace(
        choices=[SimpleNamespace(message=message, finish_reason=finish_reason)],
        usage=SimpleNamespace(prompt_tokens=11, completion_tokens=7),
        model="gpt-4o-mini",
    )


@pytest.mark.asyncio
async def test_complete_returns_text_and_usage():
    fake = _FakeOpenAI([_completion("Hello!")])
    client = _client(fake, temperature=0.3)

    response = await client.complete([{"role": "user", "content": "hi"}])

    assert isinstance(response, ModelResponse)
    assert response.text == "Hello!"
    assert response.prompt_tokens == 11
    assert response.completion_tokens == 7
    assert not response.wants_tools
    call = fake.completions.calls[0]
    assert call["model"] == "gpt-4o-mini"
    assert call["temperature"] == 0.3
    assert "stream" not in call
    assert "tools" not in call


@pytest.mark.asyncio
async def test_complete_parses_tool_calls():
    raw_call = SimpleNamespace(
        id="call_9",
        function=SimpleNamespace(name="getPageTextFromPageNumber", arguments='{"pageNumber": 3}'),
    )
    fake = _FakeOpenAI([_completion(None, tool_calls=[raw_call], finish_reason="tool_calls")])
    client = _client(fake)
    tools = [{"type": "function", "function": {"name": "getPageTextFromPageNumber"}}]

    response = await client.complete([{"role": "user", "content": "hi"}], model="gpt-4o", tools=tools)

    assert response.wants_tools
    assert response.text == ""
    assert response.tool_calls[0].call_id == "call_9"
    assert response.tool_calls[0].arguments == '{"pageNumber": 3}'
    assert fake.completions.calls[0]["tools"] == tools
    assert fake.completions.calls[0]["model"] == "gpt-4o"


@pytest.mark.asyncio
async def test_legacy_function_call_is_parsed():
    message = SimpleNamespace(
        content=None,
        tool_calls=None,
        function_call=SimpleNamespace(name="getPageTextFromPageNumber", arguments='{"pageNumber": 1}'),
    )
    completion = SimpleNamespace(choices=[SimpleNamespace(message=message, finish_reason="function_call")], usage=None)
    client = _client(_FakeOpenAI([completion]))

    response = await client.complete([{"role": "user", "content": "hi"}])

    assert response.wants_tools
    assert response.tool_calls[0].name == "getPageTextFromPageNumber"


@pytest.mark.asyncio
async def test_open_stream_requests_streaming():
    chunks = [stream_chunk("a")]
    fake = _FakeOpenAI([chunks])
    client = _client(fake)

    stream = await client.open_stream([{"role": "user", "content": "hi"}])

    assert stream is chunks
    assert fake.completions.calls[0]["stream"] is True


@pytest.mark.asyncio
async def test_failures_are_not_retried_by_default():
    fake = _FakeOpenAI([connection_error(), _completion("late")])
    client = _client(fake)

    with pytest.raises(Exception) as excinfo:
        await client.complete([{"role": "user", "content": "hi"}])

    assert "Connection error" in str(excinfo.value)
    assert len(fake.completions.calls) == 1


@pytest.mark.asyncio
async def test_transient_failures_retry_when_configured():
    fake = _FakeOpenAI([connection_error(), _completion("recovered")])
    client = _client(fake, max_retries=2, retry_min_seconds=0, retry_max_seconds=0)

    response = await client.complete([{"role": "user", "content": "hi"}])

    assert response.text == "recovered"
    assert len(fake.completions.calls) == 2


@pytest.mark.asyncio
async def test_empty_message_list_is_rejected():
    client = _client(_FakeOpenAI())

    with pytest.raises(ValueError):
        await client.complete([])


@pytest.mark.asyncio
async def test_aclose_closes_the_underlying_client():
    fake = _FakeOpenAI()
    client = _client(fake)

    await client.aclose()

    assert fake.closed


def test_token_counter_falls_back_when_tiktoken_is_unavailable(monkeypatch):
    def _raise(model_name: str, **kwargs: Any):
        raise RuntimeError("no encodings offline")

    monkeypatch.setattr(client_module, "TiktokenCounter", _raise)
    client = _client(_FakeOpenAI())

    counter = client.get_token_counter("gpt-4o-mini")

    assert isinstance(counter, ApproxByteCounter)
    assert client.count_tokens("abcdefgh") == 2


def test_registry_returns_registered_counters():
    registry = TokenCounterRegistry()
    counter = ApproxByteCounter(model_name="custom")

    registry.register("Custom-Model", counter)

    assert registry.has("custom-model")
    assert registry.get("custom-model") is counter
    assert registry.get("unknown") is not counter


def test_approx_counter_rounds_up():
    counter = ApproxByteCounter(bytes_per_token=4)

    assert counter.count("") == 0
    assert counter.count("abc") == 1
    assert counter.count("abcde") == 2
