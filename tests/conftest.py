"""Shared pytest fixtures."""

from __future__ import annotations

import pytest

from pagewise.ai.orchestration.runner import ConversationEngine, EngineSettings
from tests.helpers import FakeDocument, ScriptedClient, WordCounter


@pytest.fixture
def word_counter() -> WordCounter:
    return WordCounter()


@pytest.fixture
def document() -> FakeDocument:
    return FakeDocument(pages=["Ch.1 intro.", "Background notes.", "Method.", "Results.", "Page 5: details."])


@pytest.fixture
def make_engine(word_counter: WordCounter):
    """Build an engine around a scripted client with a word-count tokenizer."""

    def _build(client: ScriptedClient, **settings) -> ConversationEngine:
        return ConversationEngine(client, settings=EngineSettings(**settings), counter=word_counter)

    return _build


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    for name in ("PAGEWISE_API_KEY", "OPENAI_API_KEY", "PAGEWISE_MODEL", "PAGEWISE_SETTINGS_PATH", "PAGEWISE_DEBUG_LOGGING"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("PAGEWISE_LOG_DIR", str(tmp_path / "logs"))
