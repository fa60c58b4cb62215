"""Shared typing contracts for AI infrastructure."""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Callable, Protocol, runtime_checkable

if TYPE_CHECKING:
    from .orchestration.types import ImagePart


class TokenCounterProtocol(Protocol):
    """Protocol describing tokenizer implementations."""

    model_name: str | None

    def count(self, text: str) -> int:
        """Return the precise token count for *text*."""
        ...

    def estimate(self, text: str) -> int:
        """Return a deterministic fallback estimate when precise counts fail."""
        ...


class ContextMode(str, Enum):
    """Page-grounding strategy applied to a single turn."""

    CURRENT_PAGE_ONLY = "current_page"
    MULTI_PAGE_AGENTIC = "agentic"
    NO_CONTEXT = "none"
    IMAGE_GROUNDED = "image"

    @classmethod
    def parse(cls, value: "ContextMode | str") -> "ContextMode":
        """Accept either enum members or their CLI/settings spellings."""

        if isinstance(value, cls):
            return value
        normalized = str(value or "").strip().lower().replace("-", "_")
        for member in cls:
            if normalized in (member.value, member.name.lower()):
                return member
        raise ValueError(f"Unknown context mode '{value}'")


class ModelCapability(str, Enum):
    """Capability classes advertised by the model registry."""

    TEXT = "text"
    TOOLS = "tools"
    VISION = "vision"


@runtime_checkable
class DocumentSource(Protocol):
    """Read-only view over the active document.

    Out-of-range page numbers must come back as a descriptive string rather
    than an exception because the tool loop relays them verbatim to the model.
    """

    @property
    def total_pages(self) -> int:
        ...

    def page_text(self, page_number: int) -> str:
        ...

    def page_image(self, page_number: int) -> "ImagePart | None":
        ...


PageAccessor = Callable[[int], str]
PageReadCallback = Callable[[int], object]


__all__ = [
    "ContextMode",
    "DocumentSource",
    "ModelCapability",
    "PageAccessor",
    "PageReadCallback",
    "TokenCounterProtocol",
]
