"""In-test replacements for the async chat completions client."""

from __future__ import annotations

import asyncio
import json
from types import SimpleNamespace
from typing import Any, Iterable, List


def question_payload(index: int = 1, **overrides: Any) -> dict:
    payload = {
        "question": f"Question {index}?",
        "options": [f"Option {index}{key}" for key in "ABCD"],
        "correctAnswer": index % 4,
        "explanation": f"Because {index}.",
    }
    payload.update(overrides)
    return payload


def question_text(index: int = 1, *, fenced: bool = False, **overrides: Any) -> str:
    text = json.dumps(question_payload(index, **overrides))
    if fenced:
        return f"```json\n{text}\n```"
    return text


def _response(content: str) -> SimpleNamespace:
    message = SimpleNamespace(content=content)
    return SimpleNamespace(choices=[SimpleNamespace(message=message)])


class _StubCompletions:
    def __init__(self, responses: Iterable[Any]) -> None:
        self._responses: List[Any] = list(responses)
        self.calls: List[dict] = []

    def queue(self, *responses: Any) -> None:
        self._responses.extend(responses)

    async def create(self, **kwargs: Any) -> SimpleNamespace:
        self.calls.append(kwargs)
        await asyncio.sleep(0)
        if not self._responses:
            raise AssertionError("no stubbed response left")
        item = self._responses.pop(0)
        if isinstance(item, BaseException) or (
            isinstance(item, type) and issubclass(item, BaseException)
        ):
            raise item
        return _response(item)


class StubClient:
    """Mimic ``AsyncOpenAI`` enough for ``chat.completions.create``.

    Each queued item is either response text or an exception to raise.
    """

    def __init__(self, *responses: Any) -> None:
        self.completions = _StubCompletions(responses)
        self.chat = SimpleNamespace(completions=self.completions)

    @property
    def calls(self) -> List[dict]:
        return self.completions.calls

    def prompts(self) -> List[str]:
        return [call["messages"][-1]["content"] for call in self.calls]


class SleepRecorder:
    """Async sleep replacement that records delays and yields once."""

    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)
        await asyncio.sleep(0)
