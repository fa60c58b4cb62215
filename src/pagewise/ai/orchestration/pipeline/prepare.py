"""Prepare stage: build the outgoing message list for a turn.

This module implements the first stage of the turn pipeline, which:
1. Synthesizes a fresh system message for the active context mode
2. Carries over the stored conversation (without stored system messages)
3. Appends the new user message, prefixed with page context when it applies
"""

from __future__ import annotations

from typing import Sequence

from ... import prompts
from ...ai_types import ContextMode
from ..types import ImagePart, Message, TextPart

__all__ = [
    "compose_messages",
    "compose_summary_request",
    "attach_page_image",
    "has_page_context",
    "strip_system_messages",
]


def has_page_context(page_text: str | None, mode: ContextMode) -> bool:
    """Whether page text should be injected for *mode*."""

    if mode is ContextMode.NO_CONTEXT:
        return False
    return bool(page_text and page_text.strip())


def strip_system_messages(history: Sequence[Message]) -> tuple[Message, ...]:
    return tuple(message for message in history if message.role != "system")


def compose_messages(
    history: Sequence[Message],
    page_text: str | None,
    page_number: int | None,
    user_message: str,
    mode: ContextMode,
    *,
    total_pages: int | None = None,
    guidance: str | None = None,
) -> tuple[Message, ...]:
    """Build ``[system, *history, user]`` for one turn.

    Args:
        history: Stored conversation; any system messages in it are replaced.
        page_text: Text of the page the user is looking at.
        page_number: 1-based number of that page.
        user_message: The literal user query.
        mode: Active context mode.
        total_pages: Page count of the document (agentic/image guidance).
        guidance: Override for the base guidance text.

    Returns:
        Tuple of messages with exactly one system message at index 0.
    """
    system = Message.system(
        prompts.system_prompt(
            mode,
            page_number=page_number,
            total_pages=total_pages,
            guidance=guidance,
        )
    )
    context = page_text if has_page_context(page_text, mode) else None
    content = prompts.user_prompt(user_message, context, page_number)
    user = Message.user(
        content,
        query=user_message,
        page_number=page_number,
        page_text=context,
        mode=mode.value,
    )
    return (system, *strip_system_messages(history), user)


def compose_summary_request(
    page_text: str,
    page_number: int | None,
    *,
    guidance: str | None = None,
) -> tuple[Message, ...]:
    """Build the standalone "summarise this page" request."""

    system = Message.system(prompts.system_prompt(ContextMode.CURRENT_PAGE_ONLY, guidance=guidance))
    user = Message.user(
        prompts.summary_request(page_text, page_number),
        summary=True,
        page_number=page_number,
        page_text=page_text,
    )
    return (system, user)


def attach_page_image(messages: Sequence[Message], image: ImagePart) -> tuple[Message, ...]:
    """Turn the final user message into ``{text}`` + ``{image}`` parts."""

    if not messages or messages[-1].role != "user":
        raise ValueError("The last message must be the user turn to attach an image")
    last = messages[-1]
    grounded = Message(
        role="user",
        content=(TextPart(last.text), image),
        metadata=last.metadata,
    )
    return (*messages[:-1], grounded)
