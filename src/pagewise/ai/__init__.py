"""AI client, model registry and conversation engine."""

from .ai_types import ContextMode, DocumentSource, ModelCapability
from .client import AIClient, ApproxByteCounter, ClientSettings, TiktokenCounter, TokenCounterRegistry

__all__ = [
    "AIClient",
    "ApproxByteCounter",
    "ClientSettings",
    "ContextMode",
    "DocumentSource",
    "ModelCapability",
    "TiktokenCounter",
    "TokenCounterRegistry",
]
