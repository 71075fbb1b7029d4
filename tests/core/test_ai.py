from __future__ import annotations

import asyncio

import httpx
import openai
import pytest

from quizcraft.core import ai
from quizcraft.core.ai import load_client, resolve_api_key
from quizcraft.quiz.parsing import RetriesExhaustedError


class _FakeAsyncOpenAI:
    last: "_FakeAsyncOpenAI | None" = None

    def __init__(self, **kwargs):
        self.init_kwargs = kwargs
        type(self).last = self


def test_resolve_api_key_prefers_first_candidate(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "env-key")

    assert resolve_api_key(None, "  ", " stored ") == "stored"
    assert resolve_api_key() == "env-key"


def test_resolve_api_key_loads_dotenv(monkeypatch):
    def fake_load_dotenv():
        monkeypatch.setenv("OPENAI_API_KEY", "from-dotenv")
        return True

    monkeypatch.setattr(ai, "load_dotenv", fake_load_dotenv)

    assert resolve_api_key("") == "from-dotenv"


def test_load_client_requires_openai_dependency(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setattr(ai, "AsyncOpenAI", None)
    with pytest.raises(RuntimeError) as exc:
        load_client("sk-test")
    assert "openai" in str(exc.value).lower()


def test_load_client_requires_api_key(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(ai, "AsyncOpenAI", _FakeAsyncOpenAI)
    with pytest.raises(RuntimeError) as exc:
        load_client()
    assert "OPENAI_API_KEY" in str(exc.value)


def test_load_client_passes_key_and_base(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(ai, "AsyncOpenAI", _FakeAsyncOpenAI)
    monkeypatch.setenv("OPENAI_API_KEY", "test-key")

    client = load_client(api_base="http://localhost:8080/v1")

    assert client is _FakeAsyncOpenAI.last
    assert client.init_kwargs == {
        "api_key": "test-key",
        "max_retries": 0,
        "base_url": "http://localhost:8080/v1",
    }

    explicit = load_client("sk-explicit")
    assert explicit.init_kwargs == {"api_key": "sk-explicit", "max_retries": 0}


def test_client_sends_one_request_per_generator_attempt(
    monkeypatch: pytest.MonkeyPatch, make_generator, sleeps
) -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(500, json={"error": {"message": "boom"}})

    def client_factory(**kwargs):
        http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return openai.AsyncOpenAI(http_client=http_client, **kwargs)

    monkeypatch.setattr(ai, "AsyncOpenAI", client_factory)
    generator = make_generator(load_client("sk-test"), max_retries=2)

    with pytest.raises(RetriesExhaustedError):
        asyncio.run(generator.generate_one("AWS SAA", "en", 1))

    assert len(requests) == 3
    assert sleeps.delays == [1.0, 2.0]
