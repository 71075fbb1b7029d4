"""Shared testing fixtures for the quizcraft test suite."""

from .clients import (  # noqa: F401
    SleepRecorder,
    StubClient,
    question_payload,
    question_text,
)
from .quizzes import make_config, make_question, make_session  # noqa: F401

__all__ = [
    "SleepRecorder",
    "StubClient",
    "make_config",
    "make_question",
    "make_session",
    "question_payload",
    "question_text",
]
