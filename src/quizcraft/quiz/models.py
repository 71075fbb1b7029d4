"""Quiz data model: questions, answers, sessions and stored quizzes.

Every persisted type exposes ``to_dict``/``from_dict``. Timestamps are kept
as timezone-aware ``datetime`` objects in memory and ISO-8601 strings on disk.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping, MutableMapping, Sequence

from ..core.config import ConfigError

__all__ = [
    "OPTION_COUNT",
    "MIN_QUESTION_COUNT",
    "MAX_QUESTION_COUNT",
    "SUPPORTED_LANGUAGES",
    "Language",
    "language_name",
    "new_id",
    "utcnow",
    "Question",
    "AnswerRecord",
    "QuizConfig",
    "QuizSession",
    "QuizRecord",
    "Certificate",
    "QuestionSet",
    "AppSettings",
    "validate_quiz_config",
]


OPTION_COUNT = 4
MIN_QUESTION_COUNT = 1
MAX_QUESTION_COUNT = 20


@dataclass(frozen=True)
class Language:
    code: str
    name: str
    native_name: str


SUPPORTED_LANGUAGES: tuple[Language, ...] = (
    Language("en", "English", "English"),
    Language("es", "Spanish", "Español"),
    Language("fr", "French", "Français"),
    Language("de", "German", "Deutsch"),
    Language("it", "Italian", "Italiano"),
    Language("pt", "Portuguese", "Português"),
    Language("ja", "Japanese", "日本語"),
    Language("ko", "Korean", "한국어"),
    Language("zh", "Chinese", "中文"),
    Language("hi", "Hindi", "हिन्दी"),
    Language("ar", "Arabic", "العربية"),
    Language("ru", "Russian", "Русский"),
    Language("nl", "Dutch", "Nederlands"),
    Language("sv", "Swedish", "Svenska"),
    Language("no", "Norwegian", "Norsk"),
    Language("da", "Danish", "Dansk"),
    Language("fi", "Finnish", "Suomi"),
    Language("pl", "Polish", "Polski"),
    Language("tr", "Turkish", "Türkçe"),
    Language("th", "Thai", "ไทย"),
)


def language_name(code: str) -> str:
    """Map a language code to its English name, defaulting to English."""

    for language in SUPPORTED_LANGUAGES:
        if language.code == code:
            return language.name
    return "English"


def new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex}"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_timestamp(value: Any, *, field_name: str) -> datetime:
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str) or not value:
        raise ValueError(f"'{field_name}' must be an ISO-8601 timestamp.")
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as exc:
        raise ValueError(
            f"'{field_name}' is not a valid timestamp: {value!r}"
        ) from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _require_key(payload: Mapping[str, Any], key: str) -> Any:
    try:
        return payload[key]
    except KeyError as exc:
        raise ValueError(f"Missing required field: {key}") from exc


@dataclass(frozen=True)
class Question:
    """One generated multiple-choice item with exactly four options."""

    id: str
    question: str
    options: tuple[str, ...]
    correct_answer: int
    explanation: str

    def __post_init__(self) -> None:
        if len(self.options) != OPTION_COUNT:
            raise ValueError("question must have exactly 4 options")
        if not 0 <= self.correct_answer < OPTION_COUNT:
            raise ValueError("correct_answer must be in [0, 4)")

    def is_correct(self, selected: int) -> bool:
        return selected == self.correct_answer

    @property
    def correct_text(self) -> str:
        return self.options[self.correct_answer]

    def to_dict(self) -> MutableMapping[str, Any]:
        return {
            "id": self.id,
            "question": self.question,
            "options": list(self.options),
            "correct_answer": self.correct_answer,
            "explanation": self.explanation,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Question":
        options = _require_key(payload, "options")
        if not isinstance(options, Sequence) or isinstance(options, str):
            raise ValueError("'options' must be a list of strings.")
        return cls(
            id=str(_require_key(payload, "id")),
            question=str(_require_key(payload, "question")),
            options=tuple(str(option) for option in options),
            correct_answer=int(_require_key(payload, "correct_answer")),
            explanation=str(_require_key(payload, "explanation")),
        )


@dataclass(frozen=True)
class AnswerRecord:
    """A submitted answer; ``is_correct`` is derived at creation time."""

    question_id: str
    selected_answer: int
    is_correct: bool

    def __post_init__(self) -> None:
        if not 0 <= self.selected_answer < OPTION_COUNT:
            raise ValueError("selected_answer must be in [0, 4)")

    @classmethod
    def for_question(cls, question: Question, selected: int) -> "AnswerRecord":
        return cls(
            question_id=question.id,
            selected_answer=selected,
            is_correct=question.is_correct(selected),
        )

    def to_dict(self) -> MutableMapping[str, Any]:
        return {
            "question_id": self.question_id,
            "selected_answer": self.selected_answer,
            "is_correct": self.is_correct,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "AnswerRecord":
        return cls(
            question_id=str(_require_key(payload, "question_id")),
            selected_answer=int(_require_key(payload, "selected_answer")),
            is_correct=bool(_require_key(payload, "is_correct")),
        )


@dataclass(frozen=True)
class QuizConfig:
    """Immutable parameters a session was started with."""

    certificate_id: str
    certificate_name: str
    language: str
    question_count: int
    api_key: str = ""

    @property
    def language_name(self) -> str:
        return language_name(self.language)

    def to_dict(self) -> MutableMapping[str, Any]:
        return {
            "certificate_id": self.certificate_id,
            "certificate_name": self.certificate_name,
            "language": self.language,
            "question_count": self.question_count,
            "api_key": self.api_key,
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "QuizConfig":
        return cls(
            certificate_id=str(payload.get("certificate_id", "")),
            certificate_name=str(_require_key(payload, "certificate_name")),
            language=str(payload.get("language", "en")),
            question_count=int(_require_key(payload, "question_count")),
            api_key=str(payload.get("api_key", "")),
        )


def validate_quiz_config(
    config: QuizConfig, *, require_credential: bool = True
) -> QuizConfig:
    """Reject a configuration before any request is made."""

    if require_credential and not config.api_key.strip():
        raise ConfigError(
            "An API key is required to generate questions. Configure it in "
            "settings first."
        )
    if not config.certificate_name.strip():
        raise ConfigError("A certificate name is required.")
    if not config.language.strip():
        raise ConfigError("A language is required.")
    count = config.question_count
    if (
        isinstance(count, bool)
        or not isinstance(count, int)
        or not MIN_QUESTION_COUNT <= count <= MAX_QUESTION_COUNT
    ):
        raise ConfigError(
            f"numberOfQuestions must be between {MIN_QUESTION_COUNT} and "
            f"{MAX_QUESTION_COUNT}"
        )
    return config


@dataclass
class QuizSession:
    """One attempt at a target number of questions.

    ``questions`` and ``answers`` only ever grow. ``score`` is a cache of the
    number of correct answers and is recomputed on every append.
    """

    id: str
    target_count: int
    config: QuizConfig
    questions: list[Question] = field(default_factory=list)
    answers: list[AnswerRecord] = field(default_factory=list)
    score: int = 0
    completed: bool = False
    created_at: datetime = field(default_factory=utcnow)

    @classmethod
    def create(
        cls,
        config: QuizConfig,
        questions: Sequence[Question] | None = None,
    ) -> "QuizSession":
        supplied = list(questions or [])
        target = len(supplied) if supplied else config.question_count
        return cls(
            id=new_id("session"),
            target_count=target,
            config=config,
            questions=supplied,
        )

    @property
    def is_full(self) -> bool:
        return len(self.questions) >= self.target_count

    @property
    def answered_count(self) -> int:
        return len(self.answers)

    def compute_score(self) -> int:
        return sum(1 for answer in self.answers if answer.is_correct)

    def add_question(self, question: Question) -> bool:
        """Append ``question`` unless the target count is already met."""

        if self.is_full:
            return False
        self.questions.append(question)
        return True

    def record_answer(self, record: AnswerRecord) -> None:
        if len(self.answers) >= len(self.questions):
            raise ValueError("cannot answer a question that was not acquired")
        self.answers.append(record)
        self.score = self.compute_score()

    def replace_answers(self, answers: Sequence[AnswerRecord]) -> None:
        if len(answers) > len(self.questions):
            raise ValueError("more answers than acquired questions")
        self.answers = list(answers)
        self.score = self.compute_score()

    def to_dict(self) -> MutableMapping[str, Any]:
        return {
            "id": self.id,
            "target_count": self.target_count,
            "config": self.config.to_dict(),
            "questions": [question.to_dict() for question in self.questions],
            "answers": [answer.to_dict() for answer in self.answers],
            "score": self.score,
            "completed": self.completed,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "QuizSession":
        session = cls(
            id=str(_require_key(payload, "id")),
            target_count=int(_require_key(payload, "target_count")),
            config=QuizConfig.from_dict(_require_key(payload, "config")),
            questions=[
                Question.from_dict(item)
                for item in payload.get("questions", [])
            ],
            completed=bool(payload.get("completed", False)),
            created_at=_parse_timestamp(
                payload.get("created_at"), field_name="created_at"
            ),
        )
        session.replace_answers(
            [AnswerRecord.from_dict(item) for item in payload.get("answers", [])]
        )
        return session


@dataclass
class QuizRecord:
    """A stored, replayable quiz."""

    id: str
    title: str
    certificate_id: str
    certificate_name: str
    language: str
    questions: list[Question]
    created_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> MutableMapping[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "certificate_id": self.certificate_id,
            "certificate_name": self.certificate_name,
            "language": self.language,
            "questions": [question.to_dict() for question in self.questions],
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "QuizRecord":
        questions = _require_key(payload, "questions")
        if not isinstance(questions, list):
            raise ValueError("'questions' must be a list.")
        return cls(
            id=str(_require_key(payload, "id")),
            title=str(_require_key(payload, "title")),
            certificate_id=str(payload.get("certificate_id", "")),
            certificate_name=str(payload.get("certificate_name", "")),
            language=str(payload.get("language", "en")),
            questions=[Question.from_dict(item) for item in questions],
            created_at=_parse_timestamp(
                payload.get("created_at"), field_name="created_at"
            ),
        )

    def to_config(self, api_key: str = "") -> QuizConfig:
        return QuizConfig(
            certificate_id=self.certificate_id,
            certificate_name=self.certificate_name or self.title,
            language=self.language,
            question_count=len(self.questions),
            api_key=api_key,
        )


@dataclass
class Certificate:
    id: str
    name: str
    description: str = ""
    created_at: datetime = field(default_factory=utcnow)
    question_set_id: str | None = None

    def to_dict(self) -> MutableMapping[str, Any]:
        payload: MutableMapping[str, Any] = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "created_at": self.created_at.isoformat(),
        }
        if self.question_set_id:
            payload["question_set_id"] = self.question_set_id
        return payload

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Certificate":
        question_set_id = payload.get("question_set_id")
        return cls(
            id=str(_require_key(payload, "id")),
            name=str(_require_key(payload, "name")),
            description=str(payload.get("description") or ""),
            created_at=_parse_timestamp(
                payload.get("created_at"), field_name="created_at"
            ),
            question_set_id=str(question_set_id) if question_set_id else None,
        )


@dataclass
class QuestionSet:
    """The persistent question bank owned by a certificate."""

    id: str
    certificate_id: str
    questions: list[Question] = field(default_factory=list)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def extend(self, questions: Sequence[Question]) -> None:
        self.questions.extend(questions)
        self.updated_at = utcnow()

    def to_dict(self) -> MutableMapping[str, Any]:
        return {
            "id": self.id,
            "certificate_id": self.certificate_id,
            "questions": [question.to_dict() for question in self.questions],
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "QuestionSet":
        return cls(
            id=str(_require_key(payload, "id")),
            certificate_id=str(_require_key(payload, "certificate_id")),
            questions=[
                Question.from_dict(item)
                for item in payload.get("questions", [])
            ],
            created_at=_parse_timestamp(
                payload.get("created_at"), field_name="created_at"
            ),
            updated_at=_parse_timestamp(
                payload.get("updated_at"), field_name="updated_at"
            ),
        )


@dataclass(frozen=True)
class AppSettings:
    api_key: str = ""
    language: str = "en"

    @property
    def has_credential(self) -> bool:
        return bool(self.api_key.strip())

    def to_dict(self) -> MutableMapping[str, Any]:
        return {"api_key": self.api_key, "language": self.language}

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "AppSettings":
        return cls(
            api_key=str(payload.get("api_key") or ""),
            language=str(payload.get("language") or "en"),
        )
