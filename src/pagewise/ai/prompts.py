"""Prompt templates and fixed user-facing replies for chat turns."""

from __future__ import annotations

from .ai_types import ContextMode

BASE_GUIDANCE = (
    "Your job is to use context from text given to answer the user's requests. "
    "For summaries, your job is to provide a neat summary of key points and information from the text. "
    "Please format the response using bullet points for each key point. "
    "If the user is asking about the content, prioritise answering with information given. "
    "Format responses in Markdown. Always use LaTeX for math."
)

PAGE_TOOL_NAME = "getPageTextFromPageNumber"

TOO_LONG_MESSAGE = "Sorry, this content is too long for me to process. Try a shorter message or page."
UNKNOWN_TOOL_MESSAGE = "Sorry, the model called an unknown tool, so I couldn't finish this response."
ROUND_LIMIT_MESSAGE = (
    "Sorry, the context retrieval limit was reached before I could finish answering. "
    "Try asking about fewer pages at once."
)
UNEXPECTED_ERROR_MESSAGE = "Sorry, there was an unexpected error."
RESPONSE_ACTION = "generate a response"
SUMMARY_ACTION = "generate a summary"


def apology(detail: object, *, action: str = RESPONSE_ACTION) -> str:
    """Fixed provider-failure reply embedding the error detail."""

    return f"Sorry, I couldn't {action} at the moment.\n\n`{detail}`"


def system_prompt(
    mode: ContextMode,
    *,
    page_number: int | None = None,
    total_pages: int | None = None,
    guidance: str | None = None,
) -> str:
    """Return the system message text for *mode*."""

    sections = [guidance or BASE_GUIDANCE]
    if mode is ContextMode.MULTI_PAGE_AGENTIC:
        location = _page_location(page_number, total_pages)
        sections.append(
            f"The user is currently on {location}. If answering needs text from other pages, "
            f"call {PAGE_TOOL_NAME} with the page number you want to read. "
            "Only request pages that exist in the document."
        )
    elif mode is ContextMode.IMAGE_GROUNDED:
        location = _page_location(page_number, total_pages)
        sections.append(
            f"You can see an image of {location}. Use figures, tables and layout from the image "
            "together with any extracted text."
        )
    return "\n\n".join(sections)


def page_excerpt(page_text: str, page_number: int | None) -> str:
    label = f"page {page_number}" if page_number else "the current page"
    return f"From {label}: {page_text.strip().rstrip('.')}."


def user_prompt(user_message: str, page_text: str | None, page_number: int | None) -> str:
    """Prefix *user_message* with a delimited page excerpt when one is given."""

    if not page_text or not page_text.strip():
        return user_message
    return f"{page_excerpt(page_text, page_number)}\n\n{user_message}"


def summary_request(page_text: str, page_number: int | None) -> str:
    label = f"page {page_number}" if page_number else "this page"
    return f'Summarise {label}: "{page_text.strip()}"'


def page_tool_description() -> str:
    return (
        "Return the extracted text of one page of the open PDF. "
        "Page numbers start at 1."
    )


def _page_location(page_number: int | None, total_pages: int | None) -> str:
    if page_number and total_pages:
        return f"page {page_number} of {total_pages}"
    if page_number:
        return f"page {page_number}"
    return "the current page"


__all__ = [
    "BASE_GUIDANCE",
    "PAGE_TOOL_NAME",
    "ROUND_LIMIT_MESSAGE",
    "TOO_LONG_MESSAGE",
    "UNEXPECTED_ERROR_MESSAGE",
    "UNKNOWN_TOOL_MESSAGE",
    "apology",
    "page_excerpt",
    "page_tool_description",
    "summary_request",
    "system_prompt",
    "user_prompt",
]
