"""Tools stage: the agentic page-retrieval loop.

The model may call ``getPageTextFromPageNumber`` any number of times before
producing its answer. Each round submits the accumulated conversation with the
tool declared, dispatches every returned tool call against the caller's page
accessor, and loops until the model answers or the round cap is reached.
"""

from __future__ import annotations

import inspect
import json
import logging
from dataclasses import replace
from typing import Any, Mapping, Protocol, Sequence, cast, runtime_checkable

from openai.types.chat import ChatCompletionToolParam

from ... import prompts
from ...ai_types import PageAccessor, PageReadCallback
from ...client import ModelResponse, ParsedToolCall
from ..errors import UnknownToolError
from ..types import Message, ToolCallRecord, TurnResult

__all__ = [
    "CompletionClient",
    "DEFAULT_MAX_ROUNDS",
    "PAGE_TEXT_TOOL",
    "dispatch_page_request",
    "parse_page_number",
    "run_tool_loop",
    "tool_call_message",
]

LOGGER = logging.getLogger(__name__)

DEFAULT_MAX_ROUNDS = 5

PAGE_TEXT_TOOL: ChatCompletionToolParam = cast(
    ChatCompletionToolParam,
    {
        "type": "function",
        "function": {
            "name": prompts.PAGE_TOOL_NAME,
            "description": prompts.page_tool_description(),
            "parameters": {
                "type": "object",
                "properties": {
                    "pageNumber": {
                        "type": "integer",
                        "description": "1-based number of the page to read.",
                    },
                },
                "required": ["pageNumber"],
            },
        },
    },
)


@runtime_checkable
class CompletionClient(Protocol):
    """Non-streaming side of the completion provider. ``AIClient`` conforms."""

    async def complete(
        self,
        messages: Sequence[Mapping[str, Any]],
        *,
        model: str | None = None,
        tools: Sequence[ChatCompletionToolParam] | None = None,
    ) -> ModelResponse:
        ...


def parse_page_number(arguments: str) -> int | None:
    """Extract ``pageNumber`` from raw tool arguments, or None if malformed."""

    try:
        payload = json.loads(arguments or "{}")
    except (json.JSONDecodeError, TypeError):
        return None
    if not isinstance(payload, dict):
        return None
    value = payload.get("pageNumber")
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None


def tool_call_message(call: ParsedToolCall) -> Message:
    """Assistant message recording one tool call.

    Providers reject null content, so the content carries the JSON of the
    invoked function call.
    """

    return Message.assistant(
        json.dumps(call.as_function_call(), ensure_ascii=False),
        tool_calls=[
            {
                "id": call.call_id,
                "type": "function",
                "function": call.as_function_call(),
            }
        ],
    )


async def dispatch_page_request(
    call: ParsedToolCall,
    page_accessor: PageAccessor,
    on_page_read: PageReadCallback | None = None,
) -> tuple[Message, ToolCallRecord]:
    """Run one page request and return the ``tool`` reply plus its record."""

    page_number = parse_page_number(call.arguments)
    if page_number is None:
        LOGGER.warning("Malformed arguments for %s: %r", call.name, call.arguments)
        result = 'Invalid arguments: expected {"pageNumber": <integer>}.'
        success = False
    else:
        try:
            result = str(page_accessor(page_number))
            success = True
        except Exception as exc:
            LOGGER.exception("Page accessor failed for page %s", page_number)
            result = f"Error reading page {page_number}: {exc}"
            success = False
        if success:
            await _notify_page_read(on_page_read, page_number)

    message = Message.tool(result, tool_call_id=call.call_id, name=call.name, page_number=page_number)
    record = ToolCallRecord(
        call_id=call.call_id,
        name=call.name,
        arguments=call.arguments,
        page_number=page_number,
        result=result,
        success=success,
    )
    return message, record


async def run_tool_loop(
    client: CompletionClient,
    messages: Sequence[Message],
    page_accessor: PageAccessor,
    on_page_read: PageReadCallback | None = None,
    *,
    model: str | None = None,
    max_rounds: int = DEFAULT_MAX_ROUNDS,
) -> TurnResult:
    """Drive request/dispatch rounds until the model produces an answer.

    Args:
        client: Completion provider.
        messages: Composed outgoing list, system message first.
        page_accessor: Returns the text of a page (or a descriptive error).
        on_page_read: Notification invoked after each page is read.
        model: Model identifier; must support tool calls.
        max_rounds: Maximum number of request/dispatch rounds.

    Returns:
        TurnResult with the final text and the history (system message excluded)
        including every tool round.
    """
    conversation: list[Message] = list(messages)
    records: list[ToolCallRecord] = []
    pages_read: list[int] = []
    rounds = max(1, int(max_rounds))

    for round_index in range(1, rounds + 1):
        response = await client.complete(
            [message.to_chat_param() for message in conversation],
            model=model,
            tools=[PAGE_TEXT_TOOL],
        )
        LOGGER.debug(
            "Tool loop round %s: finish_reason=%s, tool_calls=%s",
            round_index,
            response.finish_reason,
            len(response.tool_calls),
        )

        if not response.wants_tools or not response.tool_calls:
            return _finalize(response.text, conversation, model, pages_read, records)

        for call in response.tool_calls:
            conversation.append(tool_call_message(call))
            if call.name != prompts.PAGE_TOOL_NAME:
                conversation.pop()
                error = UnknownToolError(call.name)
                LOGGER.warning("%s; aborting tool loop", error)
                return _with_trace(
                    TurnResult.failure(
                        prompts.UNKNOWN_TOOL_MESSAGE,
                        conversation[1:],
                        error=str(error),
                        model=model,
                    ),
                    pages_read,
                    records,
                )
            tool_message, record = await dispatch_page_request(call, page_accessor, on_page_read)
            conversation.append(tool_message)
            records.append(record)
            if record.success and record.page_number is not None:
                pages_read.append(record.page_number)

    LOGGER.warning("Tool loop reached its %s-round limit; finalizing without an answer", rounds)
    return _with_trace(
        TurnResult.failure(
            prompts.ROUND_LIMIT_MESSAGE,
            conversation[1:],
            error=f"tool round limit ({rounds}) reached",
            model=model,
        ),
        pages_read,
        records,
    )


def _finalize(
    text: str,
    conversation: list[Message],
    model: str | None,
    pages_read: list[int],
    records: list[ToolCallRecord],
) -> TurnResult:
    if not text:
        LOGGER.warning("Model finished the tool loop without any text")
        return _with_trace(
            TurnResult.failure(
                prompts.UNEXPECTED_ERROR_MESSAGE,
                conversation[1:],
                error="empty completion",
                model=model,
            ),
            pages_read,
            records,
        )
    conversation.append(Message.assistant(text))
    return TurnResult(
        final_text=text,
        updated_history=tuple(conversation[1:]),
        model=model,
        pages_read=tuple(pages_read),
        tool_calls=tuple(records),
    )


def _with_trace(result: TurnResult, pages_read: list[int], records: list[ToolCallRecord]) -> TurnResult:
    return replace(result, pages_read=tuple(pages_read), tool_calls=tuple(records))


async def _notify_page_read(callback: PageReadCallback | None, page_number: int) -> None:
    if callback is None:
        return
    try:
        outcome = callback(page_number)
        if inspect.isawaitable(outcome):
            await outcome
    except Exception:
        LOGGER.debug("on_page_read callback raised for page %s", page_number, exc_info=True)
