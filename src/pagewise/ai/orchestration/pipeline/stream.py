"""Stream stage: expose provider chunk streams as plain text deltas."""

from __future__ import annotations

import inspect
import logging
from collections.abc import AsyncIterator
from typing import Any

import httpx
from openai import APIError

__all__ = ["StreamHandle", "extract_delta"]

LOGGER = logging.getLogger(__name__)


def extract_delta(chunk: Any) -> str:
    """Return the text delta carried by a provider chunk (``""`` when none)."""

    if isinstance(chunk, str):
        return chunk
    choices = getattr(chunk, "choices", None) or []
    if not choices:
        return ""
    delta = getattr(choices[0], "delta", None)
    return str(getattr(delta, "content", None) or "")


class StreamHandle:
    """Single-consumer, forward-only sequence of text deltas.

    Iterating a second time yields nothing. Concatenating every delta gives the
    full assistant reply, which the caller appends to history (see
    ``TurnResult.with_reply``). Provider failures raised mid-stream end the
    iteration and are recorded on :attr:`error`. Call :meth:`aclose` to abandon
    the reply early; the provider stream is released either way.
    """

    def __init__(self, chunks: AsyncIterator[Any], *, model: str | None = None) -> None:
        self._chunks = chunks
        self._consumed = False
        self._closed = False
        self.model = model
        self.error: str | None = None

    @property
    def consumed(self) -> bool:
        return self._consumed

    def __aiter__(self) -> AsyncIterator[str]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[str]:
        if self._consumed:
            return
        self._consumed = True
        try:
            async for chunk in self._chunks:
                delta = extract_delta(chunk)
                if delta:
                    yield delta
        except (APIError, httpx.HTTPError) as exc:
            LOGGER.warning("Stream from %s failed mid-response: %s", self.model, exc)
            self.error = str(exc)
        finally:
            await self.aclose()

    async def collect(self) -> str:
        """Drain the stream and return the concatenated reply."""
        return "".join([delta async for delta in self])

    async def aclose(self) -> None:
        """Release the provider stream; later iteration yields nothing."""
        self._consumed = True
        if self._closed:
            return
        self._closed = True
        close = getattr(self._chunks, "close", None) or getattr(self._chunks, "aclose", None)
        if not callable(close):
            return
        result = close()
        if inspect.isawaitable(result):
            await result
