"""Pipeline stages for a conversation turn.

This package contains the individual stages of the turn pipeline:
- budget: Count outgoing tokens and evict old history
- prepare: Build the outgoing message list
- execute: Route the turn to the streaming, tool or image path
- tools: Run the agentic page-retrieval loop
- stream: Expose provider chunk streams as text deltas
"""

from .budget import (
    DEFAULT_TOKEN_BUDGET,
    estimate_message_tokens,
    estimate_tokens,
    trim_history,
)

from .prepare import (
    attach_page_image,
    compose_messages,
    compose_summary_request,
    has_page_context,
    strip_system_messages,
)

from .execute import (
    PROVIDER_ERRORS,
    ModelClient,
    route_turn,
)

from .tools import (
    DEFAULT_MAX_ROUNDS,
    PAGE_TEXT_TOOL,
    CompletionClient,
    dispatch_page_request,
    parse_page_number,
    run_tool_loop,
    tool_call_message,
)

from .stream import StreamHandle, extract_delta

__all__ = [
    # budget.py exports
    "DEFAULT_TOKEN_BUDGET",
    "estimate_message_tokens",
    "estimate_tokens",
    "trim_history",
    # prepare.py exports
    "attach_page_image",
    "compose_messages",
    "compose_summary_request",
    "has_page_context",
    "strip_system_messages",
    # execute.py exports
    "PROVIDER_ERRORS",
    "ModelClient",
    "route_turn",
    # tools.py exports
    "DEFAULT_MAX_ROUNDS",
    "PAGE_TEXT_TOOL",
    "CompletionClient",
    "dispatch_page_request",
    "parse_page_number",
    "run_tool_loop",
    "tool_call_message",
    # stream.py exports
    "StreamHandle",
    "extract_delta",
]
