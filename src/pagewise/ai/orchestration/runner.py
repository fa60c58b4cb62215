"""Conversation engine: runs one turn through compose → trim → route.

The engine is the entry point the UI talks to. It owns the active model and
context mode, but never the conversation: every call takes the caller's
history snapshot and hands back a new one on the returned ``TurnResult``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Any, Mapping, Sequence

from ...utils.logging import bind_turn
from .. import model_registry, prompts
from ..ai_types import ContextMode, DocumentSource, PageReadCallback, TokenCounterProtocol
from ..client import ApproxByteCounter
from .errors import ContextBudgetExceeded
from .pipeline.budget import DEFAULT_TOKEN_BUDGET, trim_history
from .pipeline.execute import ModelClient, route_turn
from .pipeline.prepare import compose_messages, compose_summary_request
from .pipeline.tools import DEFAULT_MAX_ROUNDS
from .types import ConversationHistory, ImagePart, Message, TurnResult, as_history

__all__ = ["ConversationEngine", "EngineSettings"]

LOGGER = logging.getLogger(__name__)

HistoryInput = Sequence[Message | Mapping[str, Any]] | None


# -----------------------------------------------------------------------------
# Engine Configuration
# -----------------------------------------------------------------------------


@dataclass(slots=True, frozen=True)
class EngineSettings:
    """Configuration for the conversation engine.

    Attributes:
        model: Initial model identifier.
        token_budget: Ceiling for the outgoing message list.
        max_tool_rounds: Round cap for the agentic tool loop.
        default_mode: Context mode used when a turn does not name one.
        guidance: Override for the base system guidance.
    """

    model: str = model_registry.DEFAULT_MODEL
    token_budget: int = DEFAULT_TOKEN_BUDGET
    max_tool_rounds: int = DEFAULT_MAX_ROUNDS
    default_mode: ContextMode = ContextMode.CURRENT_PAGE_ONLY
    guidance: str | None = None


# -----------------------------------------------------------------------------
# Conversation Engine
# -----------------------------------------------------------------------------


class ConversationEngine:
    """Decides what is sent to the model each turn and how it is answered.

    Example:
        >>> engine = ConversationEngine(client, settings=EngineSettings())
        >>> result = await engine.run_turn([], "Summarize", page_text=text, page_number=1)
        >>> reply = await result.stream.collect()
        >>> history = result.with_reply(reply)
    """

    def __init__(
        self,
        client: ModelClient,
        *,
        settings: EngineSettings | None = None,
        counter: TokenCounterProtocol | None = None,
    ) -> None:
        self._client = client
        self._settings = settings or EngineSettings()
        self._counter = counter
        self._model = self._settings.model
        self._mode = self._settings.default_mode

    # ------------------------------------------------------------------
    # Model and mode selection
    # ------------------------------------------------------------------
    @property
    def model(self) -> str:
        return self._model

    @property
    def mode(self) -> ContextMode:
        return self._mode

    @property
    def settings(self) -> EngineSettings:
        return self._settings

    def set_model(self, model: str) -> None:
        name = (model or "").strip()
        if not name:
            raise ValueError("Model identifier must not be empty")
        if not model_registry.supports(name, self._mode):
            LOGGER.warning("Model %s cannot serve %s turns; keeping the mode unchanged", name, self._mode.value)
        self._model = name

    @staticmethod
    def supported_models() -> list[str]:
        return model_registry.supported_model_names()

    def select_mode(self, mode: ContextMode | str) -> str:
        """Activate *mode*, switching to a capable model when needed.

        Returns:
            The model that will serve subsequent turns.
        """
        resolved = ContextMode.parse(mode)
        self._mode = resolved
        self._model = model_registry.resolve_model(resolved, self._model)
        return self._model

    # ------------------------------------------------------------------
    # Turns
    # ------------------------------------------------------------------
    async def run_turn(
        self,
        history: HistoryInput,
        user_message: str,
        *,
        page_text: str | None = None,
        page_number: int | None = None,
        mode: ContextMode | str | None = None,
        document: DocumentSource | None = None,
        page_image: ImagePart | None = None,
        on_page_read: PageReadCallback | None = None,
    ) -> TurnResult:
        """Run one user turn.

        Args:
            history: Caller-owned conversation so far; never mutated.
            user_message: The literal query typed by the user.
            page_text: Text of the current page. Read from *document* when omitted.
            page_number: 1-based number of the current page.
            mode: Context mode for this turn; defaults to the engine's mode.
            document: Page source for agentic retrieval and image grounding.
            page_image: Rendered current page for image-grounded turns.
            on_page_read: Notification for each page fetched by the tool loop.

        Returns:
            TurnResult carrying either the finished reply or a stream, plus the
            updated history to store.
        """
        snapshot = as_history(history)
        turn_mode = ContextMode.parse(mode) if mode is not None else self._mode
        turn_mode, page_image = self._usable_mode(turn_mode, document, page_number, page_image)
        if page_text is None and document is not None and page_number is not None:
            page_text = document.page_text(page_number)
        model = self._model_for(turn_mode)

        messages = compose_messages(
            snapshot,
            page_text,
            page_number,
            user_message,
            turn_mode,
            total_pages=document.total_pages if document is not None else None,
            guidance=self._settings.guidance,
        )
        return await self._dispatch(
            snapshot,
            messages,
            turn_mode,
            model=model,
            page_image=page_image,
            document=document,
            on_page_read=on_page_read,
        )

    async def generate_summary(
        self,
        history: HistoryInput,
        page_text: str,
        page_number: int | None = None,
    ) -> TurnResult:
        """Stream a bullet-point summary of one page.

        The summary request is sent on its own (no prior conversation) and its
        user message is appended to the stored history.
        """
        snapshot = as_history(history)
        model = self._model_for(ContextMode.CURRENT_PAGE_ONLY)
        messages = compose_summary_request(page_text, page_number, guidance=self._settings.guidance)
        return await self._dispatch(
            snapshot,
            messages,
            ContextMode.CURRENT_PAGE_ONLY,
            model=model,
            carry_over=snapshot,
            apology_action=prompts.SUMMARY_ACTION,
        )

    async def regenerate(
        self,
        history: HistoryInput,
        *,
        page_text: str | None = None,
        mode: ContextMode | str | None = None,
        document: DocumentSource | None = None,
        page_image: ImagePart | None = None,
        on_page_read: PageReadCallback | None = None,
    ) -> TurnResult:
        """Drop the last exchange and resend its user message."""

        snapshot = as_history(history)
        index = _last_user_index(snapshot)
        if index is None:
            raise ValueError("History has no user message to regenerate")
        return await self._resend(
            snapshot,
            index,
            None,
            page_text=page_text,
            mode=mode,
            document=document,
            page_image=page_image,
            on_page_read=on_page_read,
        )

    async def edit_and_resend(
        self,
        history: HistoryInput,
        index: int,
        new_text: str,
        *,
        page_text: str | None = None,
        mode: ContextMode | str | None = None,
        document: DocumentSource | None = None,
        page_image: ImagePart | None = None,
        on_page_read: PageReadCallback | None = None,
    ) -> TurnResult:
        """Replace the user message at *index* and resend from there.

        Everything from *index* onwards is discarded before the new turn runs.
        """
        snapshot = as_history(history)
        if not 0 <= index < len(snapshot) or snapshot[index].role != "user":
            raise ValueError(f"History entry {index} is not a user message")
        return await self._resend(
            snapshot,
            index,
            new_text,
            page_text=page_text,
            mode=mode,
            document=document,
            page_image=page_image,
            on_page_read=on_page_read,
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    async def _resend(
        self,
        snapshot: ConversationHistory,
        index: int,
        new_text: str | None,
        *,
        page_text: str | None,
        mode: ContextMode | str | None,
        document: DocumentSource | None,
        page_image: ImagePart | None,
        on_page_read: PageReadCallback | None,
    ) -> TurnResult:
        sent = snapshot[index]
        metadata = sent.metadata
        prefix = snapshot[:index]
        page_number = metadata.get("page_number")
        if page_text is None and document is not None and page_number is not None:
            page_text = document.page_text(page_number)
        if page_text is None:
            page_text = metadata.get("page_text")

        if metadata.get("summary") and new_text is None:
            return await self.generate_summary(prefix, page_text or "", page_number)

        query = new_text if new_text is not None else metadata.get("query", sent.text)
        if mode is None and metadata.get("mode"):
            mode = metadata["mode"]
        LOGGER.debug("Resending user message %s (%s message(s) kept)", index, len(prefix))
        return await self.run_turn(
            prefix,
            query,
            page_text=page_text,
            page_number=page_number,
            mode=mode,
            document=document,
            page_image=page_image,
            on_page_read=on_page_read,
        )

    async def _dispatch(
        self,
        snapshot: ConversationHistory,
        messages: Sequence[Message],
        mode: ContextMode,
        *,
        model: str,
        page_image: ImagePart | None = None,
        document: DocumentSource | None = None,
        on_page_read: PageReadCallback | None = None,
        carry_over: ConversationHistory = (),
        apology_action: str = prompts.RESPONSE_ACTION,
    ) -> TurnResult:
        with bind_turn(mode.value, model):
            LOGGER.debug("Dispatching %s message(s) to %s", len(messages), model)
            result = await self._route(
                snapshot,
                messages,
                mode,
                model=model,
                page_image=page_image,
                document=document,
                on_page_read=on_page_read,
                apology_action=apology_action,
            )
            LOGGER.debug(
                "Turn finished (%s, pages read: %s)",
                "streaming" if result.is_generating else f"error={result.error}",
                list(result.pages_read),
            )
        # Summary turns are sent standalone; re-attach the stored conversation.
        if carry_over:
            result = replace(result, updated_history=carry_over + result.updated_history)
        return result

    async def _route(
        self,
        snapshot: ConversationHistory,
        messages: Sequence[Message],
        mode: ContextMode,
        *,
        model: str,
        page_image: ImagePart | None,
        document: DocumentSource | None,
        on_page_read: PageReadCallback | None,
        apology_action: str,
    ) -> TurnResult:
        try:
            trimmed = trim_history(messages, self._token_counter(model), budget=self._settings.token_budget)
        except ContextBudgetExceeded as exc:
            LOGGER.warning("%s; turn not sent", exc)
            return TurnResult.failure(
                prompts.TOO_LONG_MESSAGE,
                snapshot,
                error=str(exc),
                model=model,
                append_reply=False,
            )

        try:
            result = await route_turn(
                self._client,
                trimmed,
                mode,
                model=model,
                page_image=page_image,
                page_accessor=document.page_text if document is not None else None,
                on_page_read=on_page_read,
                max_rounds=self._settings.max_tool_rounds,
                apology_action=apology_action,
            )
        except Exception as exc:
            LOGGER.exception("Turn failed unexpectedly")
            result = TurnResult.failure(
                prompts.UNEXPECTED_ERROR_MESSAGE,
                trimmed[1:],
                error=str(exc) or exc.__class__.__name__,
                model=model,
            )
        return result

    def _usable_mode(
        self,
        mode: ContextMode,
        document: DocumentSource | None,
        page_number: int | None,
        page_image: ImagePart | None,
    ) -> tuple[ContextMode, ImagePart | None]:
        if mode is ContextMode.IMAGE_GROUNDED and page_image is None:
            if document is not None and page_number is not None:
                page_image = document.page_image(page_number)
            if page_image is None:
                LOGGER.warning("No page image available; answering from page text instead")
                return ContextMode.CURRENT_PAGE_ONLY, None
        if mode is ContextMode.MULTI_PAGE_AGENTIC and document is None:
            LOGGER.warning("Agentic turns need a document; answering from page text instead")
            return ContextMode.CURRENT_PAGE_ONLY, page_image
        return mode, page_image

    def _model_for(self, mode: ContextMode) -> str:
        if not model_registry.supports(self._model, mode):
            self._model = model_registry.resolve_model(mode, self._model)
        return self._model

    def _token_counter(self, model: str) -> TokenCounterProtocol:
        if self._counter is not None:
            return self._counter
        getter = getattr(self._client, "get_token_counter", None)
        if callable(getter):
            return getter(model)
        return ApproxByteCounter(model_name=model)


def _last_user_index(history: ConversationHistory) -> int | None:
    for index in range(len(history) - 1, -1, -1):
        if history[index].role == "user":
            return index
    return None
