"""Static table of supported chat models and their capability classes."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .ai_types import ContextMode, ModelCapability

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class ModelInfo:
    """A supported model identifier and what it can do."""

    name: str
    capabilities: frozenset[ModelCapability]
    label: str = ""

    def supports(self, capability: ModelCapability) -> bool:
        return capability in self.capabilities


_TEXT = frozenset({ModelCapability.TEXT})
_AGENTIC = frozenset({ModelCapability.TEXT, ModelCapability.TOOLS})
_VISION = frozenset({ModelCapability.TEXT, ModelCapability.VISION})
_ALL = frozenset({ModelCapability.TEXT, ModelCapability.TOOLS, ModelCapability.VISION})

SUPPORTED_MODELS: tuple[ModelInfo, ...] = (
    ModelInfo("gpt-3.5-turbo", _TEXT, "GPT-3.5 Turbo"),
    ModelInfo("gpt-4", _TEXT, "GPT-4"),
    ModelInfo("gpt-4-1106-preview", _AGENTIC, "GPT-4 Turbo"),
    ModelInfo("gpt-4-vision-preview", _VISION, "GPT-4 Vision"),
    ModelInfo("gpt-4o-mini", _ALL, "GPT-4o mini"),
    ModelInfo("gpt-4o", _ALL, "GPT-4o"),
)
DEFAULT_MODEL = "gpt-3.5-turbo"

_MODE_REQUIREMENTS: dict[ContextMode, ModelCapability] = {
    ContextMode.CURRENT_PAGE_ONLY: ModelCapability.TEXT,
    ContextMode.NO_CONTEXT: ModelCapability.TEXT,
    ContextMode.MULTI_PAGE_AGENTIC: ModelCapability.TOOLS,
    ContextMode.IMAGE_GROUNDED: ModelCapability.VISION,
}


def supported_model_names() -> list[str]:
    return [info.name for info in SUPPORTED_MODELS]


def get_model(name: str | None) -> ModelInfo | None:
    key = (name or "").strip().lower()
    for info in SUPPORTED_MODELS:
        if info.name == key:
            return info
    return None


def models_with(capability: ModelCapability) -> list[ModelInfo]:
    return [info for info in SUPPORTED_MODELS if info.supports(capability)]


def required_capability(mode: ContextMode) -> ModelCapability:
    return _MODE_REQUIREMENTS[mode]


def supports(model: str | None, mode: ContextMode) -> bool:
    """Return True if *model* can serve turns in *mode*.

    Unknown identifiers (custom or self-hosted endpoints) are trusted for every
    mode; the registry only gates the models it knows about.
    """

    info = get_model(model)
    if info is None:
        return True
    return info.supports(required_capability(mode))


def resolve_model(mode: ContextMode, current: str | None) -> str:
    """Return *current* when it can serve *mode*, else the first capable model."""

    if current and supports(current, mode):
        return current
    candidates = models_with(required_capability(mode))
    if not candidates:  # pragma: no cover - static table always has a match
        raise LookupError(f"No registered model supports {mode.value!r}")
    replacement = candidates[0].name
    LOGGER.info("Model %s cannot serve %s turns; switching to %s", current, mode.value, replacement)
    return replacement


__all__ = [
    "DEFAULT_MODEL",
    "ModelInfo",
    "SUPPORTED_MODELS",
    "get_model",
    "models_with",
    "required_capability",
    "resolve_model",
    "supported_model_names",
    "supports",
]
