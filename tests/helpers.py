"""Shared test helpers and stub classes.

Fakes here stand in for the completion provider and the document so engine
tests never touch the network or a real PDF.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from types import SimpleNamespace
from typing import Any, Iterable, Mapping, Sequence

import httpx
from openai import APIConnectionError

from pagewise.ai.client import ModelResponse, ParsedToolCall
from pagewise.ai.orchestration.types import ImagePart


def stream_chunk(text: str | None) -> SimpleNamespace:
    """Chunk shaped like ``ChatCompletionChunk`` carrying one text delta."""

    return SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=text))])


def connection_error(message: str = "Connection error.") -> APIConnectionError:
    return APIConnectionError(message=message, request=httpx.Request("POST", "https://example.test/v1"))


def page_call(page: int | str, *, call_id: str = "call_1", name: str = "getPageTextFromPageNumber") -> ParsedToolCall:
    return ParsedToolCall(call_id=call_id, name=name, arguments=json.dumps({"pageNumber": page}))


def tool_response(*calls: ParsedToolCall) -> ModelResponse:
    return ModelResponse(text="", tool_calls=tuple(calls), finish_reason="tool_calls")


def text_response(text: str) -> ModelResponse:
    return ModelResponse(text=text, finish_reason="stop")


class FakeChunkStream:
    """Async chunk iterator with an optional failure after *fail_after* chunks."""

    def __init__(self, chunks: Iterable[Any], *, fail_after: int | None = None, error: Exception | None = None):
        self._chunks = list(chunks)
        self._fail_after = fail_after
        self._error = error or connection_error()
        self._position = 0
        self.closed = False

    def __aiter__(self) -> "FakeChunkStream":
        return self

    async def __anext__(self) -> Any:
        if self._fail_after is not None and self._position >= self._fail_after:
            raise self._error
        if self._position >= len(self._chunks):
            raise StopAsyncIteration
        chunk = self._chunks[self._position]
        self._position += 1
        return chunk

    async def close(self) -> None:
        self.closed = True


class ScriptedClient:
    """Completion provider replaying scripted responses.

    ``responses`` feeds :meth:`complete` in order; ``deltas`` feeds every
    :meth:`open_stream` call. Set ``error`` to make both raise.
    """

    def __init__(
        self,
        responses: Sequence[ModelResponse] | None = None,
        *,
        deltas: Sequence[str] | None = None,
        error: Exception | None = None,
        repeat_last: bool = False,
    ) -> None:
        self.responses = list(responses or [])
        self.deltas = list(deltas or [])
        self.error = error
        self.repeat_last = repeat_last
        self.complete_calls: list[dict[str, Any]] = []
        self.stream_calls: list[dict[str, Any]] = []
        self.streams: list[FakeChunkStream] = []

    @property
    def call_count(self) -> int:
        return len(self.complete_calls) + len(self.stream_calls)

    async def complete(
        self,
        messages: Sequence[Mapping[str, Any]],
        *,
        model: str | None = None,
        tools: Sequence[Mapping[str, Any]] | None = None,
    ) -> ModelResponse:
        self.complete_calls.append({"messages": list(messages), "model": model, "tools": tools})
        if self.error is not None:
            raise self.error
        if not self.responses:
            raise AssertionError("No scripted response left")
        if self.repeat_last and len(self.responses) == 1:
            return self.responses[0]
        return self.responses.pop(0)

    async def open_stream(self, messages: Sequence[Mapping[str, Any]], *, model: str | None = None) -> FakeChunkStream:
        self.stream_calls.append({"messages": list(messages), "model": model})
        if self.error is not None:
            raise self.error
        stream = FakeChunkStream(stream_chunk(delta) for delta in self.deltas)
        self.streams.append(stream)
        return stream


@dataclass
class FakeDocument:
    """In-memory document honoring the page source contract."""

    pages: list[str]
    image: ImagePart | None = None
    reads: list[int] = field(default_factory=list)

    @property
    def total_pages(self) -> int:
        return len(self.pages)

    def page_text(self, page_number: int) -> str:
        self.reads.append(page_number)
        if not 1 <= page_number <= len(self.pages):
            return f"Page {page_number} does not exist. This document has {len(self.pages)} page(s), numbered from 1."
        return self.pages[page_number - 1]

    def page_image(self, page_number: int) -> ImagePart | None:
        return self.image


class WordCounter:
    """Token counter that counts whitespace-separated words."""

    model_name = "words"

    def count(self, text: str) -> int:
        return len(text.split())

    def estimate(self, text: str) -> int:
        return self.count(text)
