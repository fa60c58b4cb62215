"""Context and completion engine: what is sent to the model each turn."""

# Core types
from .types import (
    ConversationHistory,
    ImagePart,
    Message,
    ModelResponse,
    ParsedToolCall,
    TextPart,
    ToolCallRecord,
    TurnResult,
    as_history,
)

# Errors
from .errors import (
    ContextBudgetExceeded,
    DocumentSourceError,
    EngineError,
    UnknownToolError,
)

# Engine facade
from .runner import ConversationEngine, EngineSettings

# Stream handle
from .pipeline.stream import StreamHandle

__all__ = [
    # Types
    "ConversationHistory",
    "ImagePart",
    "Message",
    "ModelResponse",
    "ParsedToolCall",
    "TextPart",
    "ToolCallRecord",
    "TurnResult",
    "as_history",
    # Errors
    "ContextBudgetExceeded",
    "DocumentSourceError",
    "EngineError",
    "UnknownToolError",
    # Engine
    "ConversationEngine",
    "EngineSettings",
    "StreamHandle",
]
