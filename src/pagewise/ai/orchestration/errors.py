"""Exception hierarchy for the conversation engine.

Entry points catch these and convert them into ``TurnResult`` failures, so
callers only see them when driving pipeline stages directly.
"""

from __future__ import annotations


class EngineError(RuntimeError):
    """Base class for conversation engine failures."""


class ContextBudgetExceeded(EngineError):
    """Raised when the newest message alone does not fit the token budget."""

    def __init__(self, token_count: int, budget: int) -> None:
        super().__init__(f"Context budget exceeded: {token_count} tokens > {budget}")
        self.token_count = token_count
        self.budget = budget


class UnknownToolError(EngineError):
    """Raised when the model invokes a tool that was never declared."""

    def __init__(self, tool_name: str) -> None:
        super().__init__(f"Model called unknown tool '{tool_name}'")
        self.tool_name = tool_name


class DocumentSourceError(EngineError):
    """Raised when a document cannot be opened for page access."""


__all__ = [
    "ContextBudgetExceeded",
    "DocumentSourceError",
    "EngineError",
    "UnknownToolError",
]
