"""Response cleaning, JSON extraction and field validation for AI output.

The provider returns free-form text that is expected to contain either one
question object or an array of them, possibly wrapped in Markdown fences.
Nothing about that text is trusted until it passes ``validate_question``.
"""

from __future__ import annotations

import json
import re
from typing import Any, List, Mapping

from .models import OPTION_COUNT, Question, new_id

__all__ = [
    "GenerationError",
    "TransientGenerationError",
    "MalformedResponseError",
    "RetriesExhaustedError",
    "QuizGenerationError",
    "strip_code_fences",
    "extract_json",
    "validate_question",
    "is_valid_question",
    "build_question",
    "parse_single_question",
    "parse_question_batch",
]


class GenerationError(RuntimeError):
    """Base class for failures while acquiring questions."""


class TransientGenerationError(GenerationError):
    """Timeout or transport failure; eligible for retry."""


class MalformedResponseError(GenerationError, ValueError):
    """The response text could not be parsed or failed field validation."""


class RetriesExhaustedError(GenerationError):
    """Every attempt failed; ``cause`` holds the final underlying error."""

    def __init__(self, message: str, *, cause: GenerationError | None = None):
        super().__init__(message)
        self.cause = cause


class QuizGenerationError(GenerationError):
    """Bulk generation produced no questions at all."""


_FENCE_RE = re.compile(r"```(?:json)?", re.IGNORECASE)
_BRACKETS = {"{": "}", "[": "]"}


def strip_code_fences(text: str) -> str:
    return _FENCE_RE.sub("", text or "").strip()


def _bracket_slice(text: str, opening: str) -> str | None:
    closing = _BRACKETS[opening]
    start = text.find(opening)
    end = text.rfind(closing)
    if start == -1 or end <= start:
        return None
    return text[start : end + 1]


def extract_json(text: str, *, opening: str = "{") -> Any:
    """Parse ``text`` as JSON, falling back to the outermost bracket slice.

    ``opening`` selects which bracket pair the fallback looks for: ``{`` for
    a single object, ``[`` for an array.
    """

    cleaned = strip_code_fences(text)
    if not cleaned:
        raise MalformedResponseError("Failed to parse AI response as JSON")
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError:
        pass
    candidate = _bracket_slice(cleaned, opening)
    if candidate is None:
        raise MalformedResponseError("Failed to parse AI response as JSON")
    try:
        return json.loads(candidate)
    except json.JSONDecodeError as exc:
        raise MalformedResponseError(
            "Failed to parse AI response as JSON"
        ) from exc


def _non_empty_text(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


def validate_question(payload: Any) -> Mapping[str, Any]:
    """Check the four required fields of a raw question object.

    Raises ``MalformedResponseError`` with the message the UI shows when any
    field is missing or has the wrong shape.
    """

    if not isinstance(payload, Mapping):
        raise MalformedResponseError("Invalid question format from AI")
    options = payload.get("options")
    correct = payload.get("correctAnswer")
    if (
        not _non_empty_text(payload.get("question"))
        or not isinstance(options, list)
        or len(options) != OPTION_COUNT
        or not all(isinstance(option, str) for option in options)
        or isinstance(correct, bool)
        or not isinstance(correct, int)
        or not 0 <= correct < OPTION_COUNT
        or not _non_empty_text(payload.get("explanation"))
    ):
        raise MalformedResponseError("Invalid question format from AI")
    return payload


def is_valid_question(payload: Any) -> bool:
    try:
        validate_question(payload)
    except MalformedResponseError:
        return False
    return True


def build_question(payload: Mapping[str, Any]) -> Question:
    """Turn a validated payload into a ``Question`` with a fresh id."""

    validate_question(payload)
    return Question(
        id=new_id("q"),
        question=payload["question"].strip(),
        options=tuple(payload["options"]),
        correct_answer=payload["correctAnswer"],
        explanation=payload["explanation"].strip(),
    )


def parse_single_question(text: str) -> Question:
    data = extract_json(text, opening="{")
    if not isinstance(data, Mapping):
        raise MalformedResponseError("Invalid question format from AI")
    return build_question(data)


def parse_question_batch(text: str) -> List[Question]:
    """Parse an array response, keeping only structurally valid entries."""

    data = extract_json(text, opening="[")
    if not isinstance(data, list):
        raise MalformedResponseError("Invalid response format from AI")
    if not data:
        raise MalformedResponseError("AI returned empty question list")
    questions = [build_question(item) for item in data if is_valid_question(item)]
    if not questions:
        raise MalformedResponseError("No valid questions in AI response")
    return questions
