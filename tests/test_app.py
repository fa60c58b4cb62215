"""Tests covering the command-line entry point."""

from __future__ import annotations

import io
import json
from pathlib import Path
from typing import Iterable

import pytest

from pagewise import app
from pagewise.ai.ai_types import ContextMode
from pagewise.ai.orchestration import StreamHandle, TurnResult
from pagewise.ai.orchestration.types import Message
from pagewise.services.settings import Settings, SettingsStore
from tests.helpers import FakeChunkStream, ScriptedClient, page_call, stream_chunk, text_response, tool_response


def _inputs(lines: Iterable[str]):
    pending = list(lines)

    def _read(prompt: str) -> str:
        if not pending:
            raise EOFError
        return pending.pop(0)

    return _read


# =============================================================================
# Interactive chat
# =============================================================================


@pytest.mark.asyncio
async def test_chat_streams_replies_and_keeps_history(make_engine, document):
    client = ScriptedClient(deltas=["Intro ", "summary."])
    engine = make_engine(client)
    out = io.StringIO()

    history = await app.run_chat(engine, document, input_fn=_inputs(["Summarize", "/quit"]), output=out)

    assert "Intro summary.\n" in out.getvalue()
    assert [m.role for m in history] == ["user", "assistant"]
    assert history[-1].content == "Intro summary."


@pytest.mark.asyncio
async def test_chat_reports_pages_read_in_agentic_mode(make_engine, document):
    client = ScriptedClient([tool_response(page_call(5)), text_response("Based on page 5...")])
    engine = make_engine(client, model="gpt-4o-mini", default_mode=ContextMode.MULTI_PAGE_AGENTIC)
    out = io.StringIO()

    await app.run_chat(engine, document, input_fn=_inputs(["What happens at the end?"]), output=out)

    text = out.getvalue()
    assert "(reading page 5)" in text
    assert "Based on page 5..." in text


@pytest.mark.asyncio
async def test_chat_commands(make_engine, document):
    client = ScriptedClient(deltas=["ok"])
    engine = make_engine(client)
    out = io.StringIO()
    commands = ["/page 3", "Explain", "/page 42", "/mode agentic", "/models", "/reset", "/bogus"]

    history = await app.run_chat(engine, document, input_fn=_inputs(commands), output=out)

    text = out.getvalue()
    assert client.stream_calls[0]["messages"][-1]["content"].startswith("From page 3: Method.")
    assert "Pages run from 1 to 5." in text
    assert "Mode: agentic, model: gpt-4-1106-preview" in text
    assert "gpt-4o-mini" in text
    assert "Conversation cleared." in text
    assert "Unknown command /bogus" in text
    assert history == ()


@pytest.mark.asyncio
async def test_chat_summary_and_regenerate(make_engine, document):
    client = ScriptedClient(deltas=["- point"])
    engine = make_engine(client)
    out = io.StringIO()

    history = await app.run_chat(engine, document, page=2, input_fn=_inputs(["/summary", "/regenerate"]), output=out)

    assert len(client.stream_calls) == 2
    assert client.stream_calls[1]["messages"][-1]["content"] == 'Summarise page 2: "Background notes."'
    assert [m.role for m in history] == ["user", "assistant"]


@pytest.mark.asyncio
async def test_regenerate_with_empty_history(make_engine, document):
    engine = make_engine(ScriptedClient())
    out = io.StringIO()

    await app.run_chat(engine, document, input_fn=_inputs(["/regenerate"]), output=out)

    assert "Nothing to regenerate." in out.getvalue()


class _ClosedTerminal(io.StringIO):
    def write(self, text: str) -> int:
        raise BrokenPipeError("terminal went away")


@pytest.mark.asyncio
async def test_render_result_releases_the_stream_when_printing_is_interrupted():
    source = FakeChunkStream([stream_chunk("first "), stream_chunk("second")])
    result = TurnResult(updated_history=(Message.user("hi"),), stream=StreamHandle(source))

    with pytest.raises(BrokenPipeError):
        await app.render_result(result, _ClosedTerminal())

    assert source.closed


# =============================================================================
# Commands and settings
# =============================================================================


def test_tokens_command_prints_counts(capsys):
    exit_code = app.main(["tokens", "--text", "hello world", "--estimate-only", "--model", "gpt-4"])

    captured = capsys.readouterr().out
    assert exit_code == 0
    assert "model: gpt-4" in captured
    assert "characters: 11" in captured
    assert "tokens (estimate): 3" in captured
    assert "token budget: 4096" in captured


def test_dump_settings_redacts_api_key(tmp_path: Path) -> None:
    settings = Settings(api_key="super-secret", base_url="https://example.com")
    store = SettingsStore(tmp_path / "settings.json")
    buffer = io.StringIO()

    app._dump_settings(settings, store, overrides={"base_url": "https://cli"}, stream=buffer)

    payload = json.loads(buffer.getvalue())
    assert "super-secret" not in payload["settings"]["api_key"]
    assert payload["meta"]["path"] == str(store.path)
    assert "base_url" in payload["meta"]["cli_overrides"]
    assert payload["engine"]["mode"] == "current_page"


def test_main_dump_settings_applies_overrides(tmp_path: Path, capsys) -> None:
    exit_code = app.main(
        ["--settings-path", str(tmp_path / "settings.json"), "--set", "token_budget=2048", "--dump-settings"]
    )

    payload = json.loads(capsys.readouterr().out)
    assert exit_code == 0
    assert payload["settings"]["token_budget"] == 2048


def test_main_rejects_bad_overrides(capsys) -> None:
    assert app.main(["--set", "nonsense", "tokens", "--text", "x"]) == 2
    assert "Invalid --set override" in capsys.readouterr().err


def test_chat_requires_an_api_key(tmp_path: Path, capsys) -> None:
    exit_code = app.main(["--settings-path", str(tmp_path / "settings.json"), "chat", str(tmp_path / "book.pdf")])

    assert exit_code == 2
    assert "No API key configured" in capsys.readouterr().err


def test_chat_reports_unreadable_pdf(tmp_path: Path, monkeypatch, capsys) -> None:
    monkeypatch.setenv("PAGEWISE_API_KEY", "sk-test")

    exit_code = app.main(["--settings-path", str(tmp_path / "settings.json"), "chat", str(tmp_path / "missing.pdf")])

    assert exit_code == 1
    assert "PDF not found" in capsys.readouterr().err

