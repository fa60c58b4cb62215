"""Execute stage: route a prepared turn to the matching completion path.

Text-only modes stream, the agentic mode drives the tool loop, and the
image-grounded mode performs a single non-streaming request with the page
image attached to the final user message.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from typing import Any, Mapping, Protocol, Sequence, runtime_checkable

import httpx
from openai import APIError
from openai.types.chat import ChatCompletionToolParam

from ... import prompts
from ...ai_types import ContextMode, PageAccessor, PageReadCallback
from ...client import ModelResponse
from ..types import ImagePart, Message, TurnResult
from .prepare import attach_page_image
from .stream import StreamHandle
from .tools import DEFAULT_MAX_ROUNDS, run_tool_loop

__all__ = ["ModelClient", "PROVIDER_ERRORS", "route_turn"]

LOGGER = logging.getLogger(__name__)

PROVIDER_ERRORS: tuple[type[BaseException], ...] = (APIError, httpx.HTTPError)


@runtime_checkable
class ModelClient(Protocol):
    """Protocol for completion providers. The AIClient class conforms to it."""

    async def complete(
        self,
        messages: Sequence[Mapping[str, Any]],
        *,
        model: str | None = None,
        tools: Sequence[ChatCompletionToolParam] | None = None,
    ) -> ModelResponse:
        ...

    async def open_stream(
        self,
        messages: Sequence[Mapping[str, Any]],
        *,
        model: str | None = None,
    ) -> AsyncIterator[Any]:
        ...


async def route_turn(
    client: ModelClient,
    messages: Sequence[Message],
    mode: ContextMode,
    *,
    model: str | None = None,
    page_image: ImagePart | None = None,
    page_accessor: PageAccessor | None = None,
    on_page_read: PageReadCallback | None = None,
    max_rounds: int = DEFAULT_MAX_ROUNDS,
    apology_action: str = prompts.RESPONSE_ACTION,
) -> TurnResult:
    """Send *messages* down the completion path selected by *mode*.

    Args:
        client: Completion provider.
        messages: Trimmed outgoing list, system message first.
        mode: Active context mode.
        model: Model identifier to request.
        page_image: Rendered current page, required for the image mode.
        page_accessor: Page lookup, required for the agentic mode.
        on_page_read: Notification for pages fetched by the tool loop.
        max_rounds: Tool loop round cap.
        apology_action: What the provider-failure reply says could not be done.

    Returns:
        TurnResult whose history excludes the system message. Provider
        failures come back as an apology reply rather than an exception.
    """
    history = tuple(messages[1:])
    try:
        if mode is ContextMode.IMAGE_GROUNDED:
            if page_image is None:
                raise ValueError("Image-grounded turns need a page image")
            return await _complete_with_image(client, messages, page_image, model=model)
        if mode is ContextMode.MULTI_PAGE_AGENTIC:
            if page_accessor is None:
                raise ValueError("Agentic turns need a page accessor")
            return await run_tool_loop(
                client,
                messages,
                page_accessor,
                on_page_read,
                model=model,
                max_rounds=max_rounds,
            )
        chunks = await client.open_stream([message.to_chat_param() for message in messages], model=model)
        return TurnResult(
            updated_history=history,
            stream=StreamHandle(chunks, model=model),
            model=model,
        )
    except PROVIDER_ERRORS as exc:
        LOGGER.warning("Completion request via %s failed: %s", model, exc)
        reply = prompts.apology(str(exc), action=apology_action)
        return TurnResult.failure(reply, history, error=str(exc), model=model)


async def _complete_with_image(
    client: ModelClient,
    messages: Sequence[Message],
    image: ImagePart,
    *,
    model: str | None,
) -> TurnResult:
    outgoing = attach_page_image(messages, image)
    response = await client.complete([message.to_chat_param() for message in outgoing], model=model)
    # Stored history keeps the text parts only; the image is re-attached per turn.
    history = tuple(message.flattened() for message in outgoing[1:])
    if not response.text:
        return TurnResult.failure(
            prompts.UNEXPECTED_ERROR_MESSAGE,
            history,
            error="empty completion",
            model=model,
        )
    return TurnResult(
        final_text=response.text,
        updated_history=history + (Message.assistant(response.text),),
        model=model,
    )
