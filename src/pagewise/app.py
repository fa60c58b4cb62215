"""Command-line entry point for chatting with a PDF."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Any, Callable, Mapping, Optional, Sequence, TextIO

from .ai.ai_types import ContextMode, DocumentSource
from .ai.client import AIClient, ApproxByteCounter, TiktokenCounter
from .ai.orchestration import ConversationEngine, ConversationHistory, TurnResult
from .ai.orchestration.errors import DocumentSourceError
from .documents import PdfDocumentSource
from .services.settings import Settings, SettingsStore, active_env_overrides, parse_overrides, redact_secret
from .utils import logging as logging_utils

_LOGGER = logging.getLogger(__name__)

_CHAT_HELP = """Commands:
  /page N        jump to page N
  /mode MODE     current_page | agentic | none | image
  /model NAME    switch model
  /models        list supported models
  /summary       summarise the current page
  /regenerate    resend the last message
  /reset         clear the conversation
  /quit          leave the chat"""

InputFn = Callable[[str], str]


def configure_logging(debug: bool = False, *, force: bool = False) -> None:
    """Configure logging; the console only shows warnings unless debugging."""

    level = logging.DEBUG if debug else logging.INFO
    console_level = logging.DEBUG if debug else logging.WARNING
    logging_utils.setup_logging(level, console_level=console_level, force=force)
    _LOGGER.debug("Logging configured (level=%s)", logging.getLevelName(level))


def load_settings(
    path: Optional[Path] = None,
    *,
    store: SettingsStore | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> Settings:
    """Load persisted settings or fall back to defaults."""

    active_store = store or SettingsStore(path)
    try:
        settings = active_store.load(overrides=overrides)
    except OSError as exc:
        _LOGGER.warning("Failed to load settings from %s: %s", active_store.path, exc)
        settings = Settings()
    return settings


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point invoked by the `pagewise` console script."""

    parser = _build_parser()
    args = parser.parse_args(argv)

    settings_path = args.settings_path or os.environ.get("PAGEWISE_SETTINGS_PATH")
    resolved_path = Path(settings_path).expanduser() if settings_path else None
    settings_store = SettingsStore(resolved_path)
    try:
        cli_overrides = parse_overrides(args.overrides or [])
    except ValueError as exc:
        print(f"Invalid --set override: {exc}", file=sys.stderr)
        return 2

    if args.command == "chat":
        if args.model:
            cli_overrides["model"] = args.model
        if args.mode:
            cli_overrides["default_mode"] = args.mode

    settings = load_settings(resolved_path, store=settings_store, overrides=cli_overrides or None)

    if args.dump_settings:
        _dump_settings(settings, settings_store, overrides=cli_overrides)
        return 0
    if args.command == "tokens":
        return _run_tokens(args, settings)
    if args.command == "chat":
        return _run_chat(args, settings)
    parser.print_help()
    return 1


# ----------------------------------------------------------------------
# chat
# ----------------------------------------------------------------------


def _run_chat(args: argparse.Namespace, settings: Settings) -> int:
    if not settings.api_key:
        print("No API key configured. Set PAGEWISE_API_KEY or OPENAI_API_KEY.", file=sys.stderr)
        return 2
    try:
        document = PdfDocumentSource(args.pdf)
    except DocumentSourceError as exc:
        print(str(exc), file=sys.stderr)
        return 1

    configure_logging(bool(args.debug or settings.debug_logging))

    client = AIClient(settings.client_settings())
    engine = ConversationEngine(client, settings=settings.engine_settings())
    engine.select_mode(engine.settings.default_mode)
    try:
        asyncio.run(_chat_session(engine, client, document, page=args.page))
    except KeyboardInterrupt:
        _LOGGER.info("Chat interrupted by user.")
    return 0


async def _chat_session(engine: ConversationEngine, client: AIClient, document: DocumentSource, *, page: int) -> None:
    try:
        await run_chat(engine, document, page=page)
    finally:
        await client.aclose()


async def run_chat(
    engine: ConversationEngine,
    document: DocumentSource,
    *,
    page: int = 1,
    input_fn: InputFn = input,
    output: TextIO | None = None,
) -> ConversationHistory:
    """Interactive loop over *document*; returns the final history."""

    out = output or sys.stdout
    history: ConversationHistory = ()
    page = _clamp_page(page, document)
    out.write(f"{document.total_pages} page(s). Mode: {engine.mode.value}, model: {engine.model}. /help for commands.\n")

    def notify(page_number: int) -> None:
        out.write(f"(reading page {page_number})\n")
        out.flush()

    while True:
        try:
            line = await asyncio.to_thread(input_fn, f"[page {page}] > ")
        except EOFError:
            break
        line = line.strip()
        if not line:
            continue

        if line.startswith("/"):
            command, _, argument = line[1:].partition(" ")
            command = command.lower()
            argument = argument.strip()
            if command in {"quit", "exit", "q"}:
                break
            if command == "help":
                out.write(_CHAT_HELP + "\n")
            elif command == "page":
                if argument.isdigit() and 1 <= int(argument) <= document.total_pages:
                    page = int(argument)
                else:
                    out.write(f"Pages run from 1 to {document.total_pages}.\n")
            elif command == "mode":
                try:
                    model = engine.select_mode(argument)
                except ValueError as exc:
                    out.write(f"{exc}\n")
                else:
                    out.write(f"Mode: {engine.mode.value}, model: {model}\n")
            elif command == "model":
                try:
                    engine.set_model(argument)
                except ValueError as exc:
                    out.write(f"{exc}\n")
                else:
                    out.write(f"Model: {engine.model}\n")
            elif command == "models":
                out.write("\n".join(engine.supported_models()) + "\n")
            elif command == "summary":
                result = await engine.generate_summary(history, document.page_text(page), page)
                history = await render_result(result, out)
            elif command == "regenerate":
                if not any(message.role == "user" for message in history):
                    out.write("Nothing to regenerate.\n")
                    continue
                result = await engine.regenerate(history, document=document, on_page_read=notify)
                history = await render_result(result, out)
            elif command == "reset":
                history = ()
                out.write("Conversation cleared.\n")
            else:
                out.write(f"Unknown command /{command}. Try /help.\n")
            continue

        result = await engine.run_turn(
            history,
            line,
            page_number=page,
            document=document,
            on_page_read=notify,
        )
        history = await render_result(result, out)
    return history


async def render_result(result: TurnResult, out: TextIO) -> ConversationHistory:
    """Print a turn's reply (draining its stream) and return the history to keep."""

    if result.stream is None:
        out.write(result.final_text + "\n")
        return result.updated_history

    chunks: list[str] = []
    try:
        async for delta in result.stream:
            chunks.append(delta)
            out.write(delta)
            out.flush()
    finally:
        # Releases the connection when printing is interrupted part way.
        await result.stream.aclose()
    out.write("\n")
    if result.stream.error:
        out.write(f"[stream interrupted: {result.stream.error}]\n")
    return result.with_reply("".join(chunks))


def _clamp_page(page: int, document: DocumentSource) -> int:
    total = max(1, document.total_pages)
    return min(max(1, page), total)


# ----------------------------------------------------------------------
# tokens
# ----------------------------------------------------------------------


def _run_tokens(args: argparse.Namespace, settings: Settings, stream: TextIO | None = None) -> int:
    destination = stream or sys.stdout
    payload = _load_text(args.text, args.file)
    if not payload:
        print("No input text provided.", file=sys.stderr)
        return 1

    model = args.model or settings.model
    counter = _build_counter(model, estimate_only=args.estimate_only)
    destination.write(f"model: {model}\n")
    destination.write(f"characters: {len(payload)}\n")
    destination.write(f"tokens (precise): {counter.count(payload)}\n")
    destination.write(f"tokens (estimate): {counter.estimate(payload)}\n")
    destination.write(f"token budget: {settings.token_budget}\n")
    return 0


def _load_text(inline: str | None, path: Path | None) -> str:
    if inline:
        return inline
    if path:
        return path.read_text(encoding="utf-8")
    return sys.stdin.read().strip()


def _build_counter(model: str, *, estimate_only: bool) -> ApproxByteCounter | TiktokenCounter:
    if estimate_only:
        return ApproxByteCounter(model_name=model)
    try:
        return TiktokenCounter(model)
    except Exception:
        _LOGGER.debug("tiktoken unavailable for %s; using byte estimate", model, exc_info=True)
        return ApproxByteCounter(model_name=model)


# ----------------------------------------------------------------------
# argument parsing and settings overrides
# ----------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pagewise",
        description="Chat with a PDF, page by page, or inspect the configuration.",
    )
    parser.add_argument(
        "--dump-settings",
        action="store_true",
        help="Print the effective settings payload (with secrets redacted) and exit.",
    )
    parser.add_argument(
        "--settings-path",
        metavar="PATH",
        help="Override the default ~/.pagewise/settings.json path.",
    )
    parser.add_argument(
        "--set",
        dest="overrides",
        metavar="KEY=VALUE",
        action="append",
        default=[],
        help="Override persisted settings for this run (repeatable).",
    )
    subparsers = parser.add_subparsers(dest="command")

    chat = subparsers.add_parser("chat", help="Start an interactive conversation about a PDF.")
    chat.add_argument("pdf", type=Path, help="PDF file to open.")
    chat.add_argument("--page", type=int, default=1, help="Page to start on (1-based).")
    chat.add_argument(
        "--mode",
        choices=[mode.value for mode in ContextMode],
        help="Context mode for the conversation.",
    )
    chat.add_argument("--model", help="Model identifier to use.")
    chat.add_argument("--debug", action="store_true", help="Log debug output to the console.")

    tokens = subparsers.add_parser("tokens", help="Inspect token counts for sample text.")
    tokens.add_argument("--model", help="Model identifier to use for token counting.")
    tokens.add_argument("--text", help="Inline text to tokenize. Overrides --file when provided.")
    tokens.add_argument(
        "--file",
        type=Path,
        help="File containing the text to tokenize. Reads stdin when omitted and --text not provided.",
    )
    tokens.add_argument(
        "--estimate-only",
        action="store_true",
        help="Skip tiktoken lookups and use the byte-length estimator.",
    )
    return parser


def _dump_settings(
    settings: Settings,
    store: SettingsStore,
    *,
    overrides: Mapping[str, Any],
    stream: TextIO | None = None,
) -> None:
    """Print the effective settings plus what the engine will run with."""

    destination = stream or sys.stdout
    payload = asdict(settings)
    payload["api_key"] = redact_secret(settings.api_key)
    engine = settings.engine_settings()
    output = {
        "settings": payload,
        "engine": {
            "model": engine.model,
            "mode": engine.default_mode.value,
            "token_budget": engine.token_budget,
            "max_tool_rounds": engine.max_tool_rounds,
        },
        "meta": {
            "path": str(store.path),
            "cli_overrides": sorted(overrides),
            "environment_variables": active_env_overrides(),
        },
    }
    json.dump(output, destination, indent=2)
    destination.write("\n")


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
