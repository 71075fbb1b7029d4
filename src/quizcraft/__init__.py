"""Certification practice quizzes generated on demand."""

from __future__ import annotations

from .quiz.generator import QuestionGenerator, generate_quiz
from .quiz.models import (
    AnswerRecord,
    Question,
    QuizConfig,
    QuizRecord,
    QuizSession,
)
from .quiz.navigation import QuizNavigation
from .quiz.orchestrator import SessionOrchestrator
from .storage.bridge import StorageBridge

__all__ = [
    "AnswerRecord",
    "Question",
    "QuestionGenerator",
    "QuizConfig",
    "QuizNavigation",
    "QuizRecord",
    "QuizSession",
    "SessionOrchestrator",
    "StorageBridge",
    "generate_quiz",
]
