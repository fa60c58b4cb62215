"""Budget stage: count outgoing tokens and evict history to fit the ceiling.

All functions are stateless and operate on immutable data.
"""

from __future__ import annotations

import logging
from typing import Sequence

from ...ai_types import TokenCounterProtocol
from ..errors import ContextBudgetExceeded
from ..types import Message

LOGGER = logging.getLogger(__name__)

DEFAULT_TOKEN_BUDGET = 4_096

__all__ = [
    "DEFAULT_TOKEN_BUDGET",
    "estimate_message_tokens",
    "estimate_tokens",
    "trim_history",
]


def estimate_message_tokens(message: Message, counter: TokenCounterProtocol) -> int:
    """Tokens for the text-bearing content of *message*; images cost nothing."""

    text = message.text
    if not text:
        return 0
    try:
        return int(counter.count(text))
    except Exception:
        LOGGER.debug("Token counter failed; counting message as empty", exc_info=True)
        return 0


def estimate_tokens(messages: Sequence[Message], counter: TokenCounterProtocol) -> int:
    """Total token count of an outgoing message list."""

    return sum(estimate_message_tokens(message, counter) for message in messages)


def trim_history(
    messages: Sequence[Message],
    counter: TokenCounterProtocol,
    *,
    budget: int = DEFAULT_TOKEN_BUDGET,
) -> tuple[Message, ...]:
    """Evict the oldest non-system messages until *messages* fit *budget*.

    Index 0 (the system message) is never removed. Eviction never leaves a
    tool result without the assistant call that requested it, nor a tool call
    without its results. When only the system message and one other message
    remain and they still exceed the budget, :class:`ContextBudgetExceeded`
    is raised.

    Args:
        messages: Outgoing list, system message first.
        counter: Token counter for the active model.
        budget: Token ceiling for the outgoing list.

    Returns:
        A new tuple that fits the budget.
    """
    trimmed = list(messages)
    costs = [estimate_message_tokens(message, counter) for message in trimmed]
    total = sum(costs)
    evicted = 0
    while total > budget:
        if len(trimmed) <= 2:
            raise ContextBudgetExceeded(total, budget)
        del trimmed[1]
        total -= costs.pop(1)
        evicted += 1
        while len(trimmed) > 2 and _is_orphaned(trimmed, 1):
            del trimmed[1]
            total -= costs.pop(1)
            evicted += 1

    if evicted:
        LOGGER.debug("Evicted %s message(s) to fit %s-token budget (now %s)", evicted, budget, total)
    return tuple(trimmed)


def _is_orphaned(messages: Sequence[Message], index: int) -> bool:
    message = messages[index]
    if message.role == "tool":
        return True
    if message.role == "assistant" and message.tool_calls:
        following = messages[index + 1] if index + 1 < len(messages) else None
        return following is None or following.role != "tool"
    return False
