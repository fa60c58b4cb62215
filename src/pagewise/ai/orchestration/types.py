"""Core type definitions for the conversation pipeline.

This module defines the immutable dataclasses that flow through a turn.
All types are frozen so history snapshots can be shared between the caller
and the engine without defensive copying.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any, Literal, Mapping, Sequence, Union

from openai.types.chat import ChatCompletionMessageParam

from ..client import ModelResponse, ParsedToolCall

if TYPE_CHECKING:
    from .pipeline.stream import StreamHandle

__all__ = [
    # Content
    "TextPart",
    "ImagePart",
    "ContentPart",
    "Content",
    # Messages
    "Message",
    "MessageRole",
    "ConversationHistory",
    "as_history",
    # Results
    "ToolCallRecord",
    "TurnResult",
    # Re-exports
    "ModelResponse",
    "ParsedToolCall",
]


# -----------------------------------------------------------------------------
# Content
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class TextPart:
    """Text fragment of a multi-part message."""

    text: str

    def to_param(self) -> dict[str, Any]:
        return {"type": "text", "text": self.text}


@dataclass(slots=True, frozen=True)
class ImagePart:
    """Image reference (https URL or base64 data URL) of a multi-part message."""

    url: str
    detail: Literal["auto", "low", "high"] = "auto"

    def to_param(self) -> dict[str, Any]:
        return {"type": "image_url", "image_url": {"url": self.url, "detail": self.detail}}


ContentPart = Union[TextPart, ImagePart]
Content = Union[str, tuple[ContentPart, ...]]


# -----------------------------------------------------------------------------
# Message
# -----------------------------------------------------------------------------

MessageRole = Literal["system", "user", "assistant", "tool"]


@dataclass(slots=True, frozen=True)
class Message:
    """Immutable chat message.

    Attributes:
        role: The role of the message sender.
        content: Plain text, or a tuple of parts for image-grounded turns.
        name: Function name for tool results.
        tool_call_id: ID linking a tool result to its call.
        tool_calls: Tool calls made by the assistant.
        metadata: Engine bookkeeping (never sent to the model).
    """

    role: MessageRole
    content: Content
    name: str | None = None
    tool_call_id: str | None = None
    tool_calls: tuple[Mapping[str, Any], ...] | None = None
    metadata: Mapping[str, Any] = field(default_factory=dict)

    @property
    def is_multipart(self) -> bool:
        return not isinstance(self.content, str)

    @property
    def text(self) -> str:
        """Text-bearing content only; image parts contribute nothing."""
        if isinstance(self.content, str):
            return self.content
        return "".join(part.text for part in self.content if isinstance(part, TextPart))

    def flattened(self) -> Message:
        """Return a copy whose content is reduced to its text parts."""
        if not self.is_multipart:
            return self
        return replace(self, content=self.text)

    def to_chat_param(self) -> ChatCompletionMessageParam:
        """Convert to OpenAI's ChatCompletionMessageParam format."""
        content: Any
        if isinstance(self.content, str):
            content = self.content
        else:
            content = [part.to_param() for part in self.content]
        payload: dict[str, Any] = {"role": self.role, "content": content}
        if self.name is not None and self.role == "tool":
            payload["name"] = self.name
        if self.tool_call_id is not None:
            payload["tool_call_id"] = self.tool_call_id
        if self.tool_calls is not None:
            payload["tool_calls"] = [dict(call) for call in self.tool_calls]
        return payload  # type: ignore[return-value]

    @classmethod
    def from_chat_param(cls, param: Mapping[str, Any]) -> Message:
        """Create a Message from a stored OpenAI-style mapping."""
        raw = param.get("content")
        content: Content
        if isinstance(raw, (list, tuple)):
            parts: list[ContentPart] = []
            for entry in raw:
                if entry.get("type") == "image_url":
                    image = entry.get("image_url") or {}
                    parts.append(ImagePart(url=str(image.get("url", "")), detail=image.get("detail", "auto")))
                else:
                    parts.append(TextPart(text=str(entry.get("text", ""))))
            content = tuple(parts)
        else:
            content = str(raw or "")
        tool_calls = param.get("tool_calls")
        return cls(
            role=param.get("role", "user"),  # type: ignore[arg-type]
            content=content,
            name=param.get("name"),
            tool_call_id=param.get("tool_call_id"),
            tool_calls=tuple(tool_calls) if tool_calls else None,
        )

    @classmethod
    def system(cls, content: str, **metadata: Any) -> Message:
        return cls(role="system", content=content, metadata=metadata)

    @classmethod
    def user(cls, content: Content, **metadata: Any) -> Message:
        return cls(role="user", content=content, metadata=metadata)

    @classmethod
    def assistant(
        cls,
        content: str,
        tool_calls: Sequence[Mapping[str, Any]] | None = None,
        **metadata: Any,
    ) -> Message:
        return cls(
            role="assistant",
            content=content,
            tool_calls=tuple(tool_calls) if tool_calls else None,
            metadata=metadata,
        )

    @classmethod
    def tool(
        cls,
        content: str,
        tool_call_id: str,
        name: str | None = None,
        **metadata: Any,
    ) -> Message:
        return cls(
            role="tool",
            content=content,
            tool_call_id=tool_call_id,
            name=name,
            metadata=metadata,
        )


ConversationHistory = tuple[Message, ...]


def as_history(messages: Sequence[Message | Mapping[str, Any]] | None) -> ConversationHistory:
    """Snapshot caller-owned messages into an immutable history."""

    if not messages:
        return ()
    return tuple(
        entry if isinstance(entry, Message) else Message.from_chat_param(entry)
        for entry in messages
    )


# -----------------------------------------------------------------------------
# Results
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class ToolCallRecord:
    """Record of one dispatched tool call."""

    call_id: str
    name: str
    arguments: str
    page_number: int | None = None
    result: str = ""
    success: bool = True


@dataclass(slots=True, frozen=True)
class TurnResult:
    """Outcome of a single turn.

    Exactly one of ``final_text`` or ``stream`` is meaningful for a successful
    turn. Failed turns carry a fixed user-facing reply in ``final_text`` and
    the failure detail in ``error``.

    Attributes:
        final_text: Finished assistant reply (empty when streaming).
        updated_history: Authoritative history to store for the next turn.
        stream: Incremental reply; the caller appends it once exhausted.
        error: Failure detail when the turn did not complete normally.
        model: Model that served the turn.
        pages_read: Pages fetched by the tool loop, in order.
        tool_calls: Records of tool calls dispatched during the turn.
    """

    final_text: str = ""
    updated_history: ConversationHistory = ()
    stream: "StreamHandle | None" = None
    error: str | None = None
    model: str | None = None
    pages_read: tuple[int, ...] = ()
    tool_calls: tuple[ToolCallRecord, ...] = ()

    def __post_init__(self) -> None:
        if not isinstance(self.updated_history, tuple):
            object.__setattr__(self, "updated_history", tuple(self.updated_history))

    @property
    def success(self) -> bool:
        return self.error is None

    @property
    def is_generating(self) -> bool:
        """True while the caller still has a stream to drain."""
        return self.stream is not None

    def with_reply(self, text: str) -> ConversationHistory:
        """History with the drained stream's text appended as the assistant reply."""
        return self.updated_history + (Message.assistant(text),)

    @classmethod
    def failure(
        cls,
        message: str,
        history: Sequence[Message],
        *,
        error: str,
        model: str | None = None,
        append_reply: bool = True,
    ) -> TurnResult:
        """Terminal failure turn carrying a fixed reply."""
        updated = tuple(history)
        if append_reply:
            updated += (Message.assistant(message, failed=True),)
        return cls(final_text=message, updated_history=updated, error=error, model=model)
