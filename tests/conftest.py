"""Pytest configuration and shared fixtures."""
from __future__ import annotations

import sys
from pathlib import Path
from typing import List

import pytest

# Ensure src/ is on the import path (for local imports without installing as package)
SRC_PATH = Path(__file__).resolve().parent.parent / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from copilot_server.llm import ChatRequest  # noqa: E402
from copilot_server.store import KnowledgeStore  # noqa: E402


class FakeModel:
    """Model double that records requests and replies with a fixed text."""

    def __init__(self, reply: str = "ok", error: Exception | None = None) -> None:
        self.reply = reply
        self.error = error
        self.requests: List[ChatRequest] = []

    async def send(self, request: ChatRequest) -> str:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return self.reply


class DummyPage:
    """Stand-in for a pypdf page: feeds each run to the text visitor."""

    def __init__(self, *runs: str) -> None:
        self.runs = runs

    def extract_text(self, visitor_text=None):
        for run in self.runs:
            if visitor_text is not None:
                visitor_text(run, None, None, None, None)
        return " ".join(self.runs)


def make_reader(*pages):
    class DummyReader:
        def __init__(self, stream):
            self.pages = list(pages)

    return DummyReader


@pytest.fixture(scope="function")
def tmp_data_dir(tmp_path: Path) -> Path:
    """Provide a temporary directory for the knowledge store during tests."""
    d = tmp_path / "data"
    d.mkdir(parents=True, exist_ok=True)
    return d


@pytest.fixture
def store(tmp_data_dir: Path) -> KnowledgeStore:
    return KnowledgeStore(str(tmp_data_dir))


@pytest.fixture
def fake_model() -> FakeModel:
    return FakeModel()


@pytest.fixture(scope="function")
def clean_env(monkeypatch: pytest.MonkeyPatch):
    """Ensure tests run with a clean environment (no leftover vars)."""
    for var in ["COPILOT_CONFIG", "GEMINI_API_KEY", "GOOGLE_API_KEY"]:
        monkeypatch.delenv(var, raising=False)
    yield
