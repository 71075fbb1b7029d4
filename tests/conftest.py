from __future__ import annotations

import sys
from dataclasses import replace
from pathlib import Path
from typing import Callable

import pytest

TESTS_DIR = Path(__file__).resolve().parent
ROOT = TESTS_DIR.parent
for extra in (TESTS_DIR, ROOT / "src"):
    path_str = str(extra)
    if path_str not in sys.path:
        sys.path.insert(0, path_str)

from fixtures import SleepRecorder, StubClient  # noqa: E402

from quizcraft.core import ai as core_ai  # noqa: E402
from quizcraft.core.config import default_config  # noqa: E402
from quizcraft.quiz.generator import QuestionGenerator  # noqa: E402
from quizcraft.storage.bridge import StorageBridge  # noqa: E402


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch, tmp_path):
    """Keep tests away from the real data home, .env files and API keys."""

    monkeypatch.setenv("QUIZCRAFT_DATA_HOME", str(tmp_path / "data-home"))
    monkeypatch.delenv("QUIZCRAFT_CONFIG", raising=False)
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.setattr(core_ai, "load_dotenv", lambda *a, **k: False)


@pytest.fixture
def sleeps() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def make_generator(sleeps) -> Callable[..., QuestionGenerator]:
    """Build a generator around a ``StubClient`` with recorded sleeps."""

    def factory(client: StubClient, **overrides) -> QuestionGenerator:
        settings = replace(default_config().generation, **overrides)
        return QuestionGenerator(client, settings=settings, sleep=sleeps)

    return factory


@pytest.fixture
def storage(tmp_path) -> StorageBridge:
    return StorageBridge(tmp_path / "storage")
