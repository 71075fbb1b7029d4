"""Progress persistence bridge backed by JSON documents on disk.

Each logical key lives in its own file under the workspace ``storage``
directory. Writes go through a temp file and ``os.replace`` while holding an
exclusive lock file, so a crash never leaves a half-written document behind.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, TypeVar

from ..quiz.models import (
    AppSettings,
    Certificate,
    QuestionSet,
    QuizRecord,
    QuizSession,
)

__all__ = ["StorageError", "StorageInfo", "StorageBridge"]

logger = logging.getLogger(__name__)

_SESSIONS_FILE = "sessions.json"
_QUIZZES_FILE = "quizzes.json"
_CERTIFICATES_FILE = "certificates.json"
_QUESTION_SETS_FILE = "question_sets.json"
_SETTINGS_FILE = "settings.json"
_ALL_FILES = (
    _SESSIONS_FILE,
    _QUIZZES_FILE,
    _CERTIFICATES_FILE,
    _QUESTION_SETS_FILE,
    _SETTINGS_FILE,
)
_LOCK_FILENAME = ".lock"
_LOCK_TIMEOUT_SECONDS = 5.0

T = TypeVar("T")


class StorageError(RuntimeError):
    """Raised when stored data cannot be read, parsed or written."""


@dataclass(frozen=True)
class StorageInfo:
    quiz_count: int
    session_count: int
    certificate_count: int
    size_bytes: int

    @property
    def estimated_size(self) -> str:
        if self.size_bytes > 1024:
            return f"{round(self.size_bytes / 1024)} KB"
        return f"{self.size_bytes} B"


class StorageBridge:
    """Load and save quizcraft state under ``root``."""

    def __init__(self, root: Path) -> None:
        self._root = root
        self._root.mkdir(parents=True, exist_ok=True)

    @property
    def root(self) -> Path:
        return self._root

    # -- sessions -------------------------------------------------------

    def load_sessions(self) -> Dict[str, QuizSession]:
        payload = self._read(_SESSIONS_FILE, default={})
        if not isinstance(payload, Mapping):
            raise StorageError(f"Expected an object in {_SESSIONS_FILE}.")
        return {
            str(key): self._decode(QuizSession.from_dict, value, _SESSIONS_FILE)
            for key, value in payload.items()
        }

    def save_sessions(self, sessions: Mapping[str, QuizSession]) -> None:
        self._write(
            _SESSIONS_FILE,
            {key: session.to_dict() for key, session in sessions.items()},
        )

    def load_session(self, session_id: str) -> QuizSession:
        sessions = self.load_sessions()
        try:
            return sessions[session_id]
        except KeyError as exc:
            raise StorageError(f"Unknown session: {session_id}") from exc

    def delete_session(self, session_id: str) -> bool:
        sessions = self.load_sessions()
        if sessions.pop(session_id, None) is None:
            return False
        self.save_sessions(sessions)
        return True

    def save_progress(self, session: QuizSession) -> None:
        """Upsert ``session``; a completed session is also kept as a quiz."""

        sessions = self.load_sessions()
        sessions[session.id] = session
        self.save_sessions(sessions)
        if session.completed and session.questions:
            self._store_completed_quiz(session)

    def _store_completed_quiz(self, session: QuizSession) -> None:
        quizzes = self.load_quizzes()
        question_ids = [question.id for question in session.questions]
        quiz_id = "quiz-" + session.id.split("-", 1)[-1]
        for quiz in quizzes:
            if quiz.id == quiz_id:
                return
            if [question.id for question in quiz.questions] == question_ids:
                # Replay of a quiz that is already stored.
                return
        config = session.config
        quizzes.append(
            QuizRecord(
                id=quiz_id,
                title=f"{config.certificate_name} Practice Quiz (Complete)",
                certificate_id=config.certificate_id,
                certificate_name=config.certificate_name,
                language=config.language,
                questions=list(session.questions),
                created_at=session.created_at,
            )
        )
        self.save_quizzes(quizzes)
        logger.info(
            "Stored completed session as quiz",
            extra={"session_id": session.id, "quiz_id": quiz_id},
        )

    # -- quizzes --------------------------------------------------------

    def load_quizzes(self) -> List[QuizRecord]:
        return self._load_list(_QUIZZES_FILE, QuizRecord.from_dict)

    def save_quizzes(self, quizzes: List[QuizRecord]) -> None:
        self._write(_QUIZZES_FILE, [quiz.to_dict() for quiz in quizzes])

    def add_quiz(self, quiz: QuizRecord) -> None:
        quizzes = [item for item in self.load_quizzes() if item.id != quiz.id]
        quizzes.append(quiz)
        self.save_quizzes(quizzes)

    def load_quiz(self, quiz_id: str) -> QuizRecord:
        for quiz in self.load_quizzes():
            if quiz.id == quiz_id:
                return quiz
        raise StorageError(f"Unknown quiz: {quiz_id}")

    def delete_quiz(self, quiz_id: str) -> bool:
        quizzes = self.load_quizzes()
        remaining = [quiz for quiz in quizzes if quiz.id != quiz_id]
        if len(remaining) == len(quizzes):
            return False
        self.save_quizzes(remaining)
        return True

    def export_quiz(self, quiz: QuizRecord) -> str:
        return json.dumps(quiz.to_dict(), indent=2, ensure_ascii=False)

    def import_quiz(self, text: str) -> QuizRecord:
        """Parse exported quiz JSON and store it."""

        try:
            payload = json.loads(text)
        except json.JSONDecodeError as exc:
            raise StorageError("Invalid quiz format") from exc
        if (
            not isinstance(payload, Mapping)
            or not payload.get("id")
            or not payload.get("title")
            or not isinstance(payload.get("questions"), list)
        ):
            raise StorageError("Invalid quiz format")
        try:
            quiz = QuizRecord.from_dict(payload)
        except (KeyError, TypeError, ValueError) as exc:
            raise StorageError("Invalid quiz format") from exc
        self.add_quiz(quiz)
        return quiz

    # -- certificates and question sets ---------------------------------

    def load_certificates(self) -> List[Certificate]:
        return self._load_list(_CERTIFICATES_FILE, Certificate.from_dict)

    def save_certificates(self, certificates: List[Certificate]) -> None:
        self._write(
            _CERTIFICATES_FILE, [cert.to_dict() for cert in certificates]
        )

    def load_question_sets(self) -> List[QuestionSet]:
        return self._load_list(_QUESTION_SETS_FILE, QuestionSet.from_dict)

    def save_question_sets(self, question_sets: List[QuestionSet]) -> None:
        self._write(
            _QUESTION_SETS_FILE, [item.to_dict() for item in question_sets]
        )

    # -- settings -------------------------------------------------------

    def load_settings(self) -> AppSettings:
        payload = self._read(_SETTINGS_FILE, default={})
        if not isinstance(payload, Mapping):
            raise StorageError(f"Expected an object in {_SETTINGS_FILE}.")
        return AppSettings.from_dict(payload)

    def save_settings(self, settings: AppSettings) -> None:
        self._write(_SETTINGS_FILE, settings.to_dict())

    # -- maintenance ----------------------------------------------------

    def clear_all(self) -> None:
        with _StorageLock(self._root / _LOCK_FILENAME):
            for name in _ALL_FILES:
                (self._root / name).unlink(missing_ok=True)

    def storage_info(self) -> StorageInfo:
        size = 0
        for name in _ALL_FILES:
            path = self._root / name
            if path.is_file():
                size += path.stat().st_size
        return StorageInfo(
            quiz_count=len(self.load_quizzes()),
            session_count=len(self.load_sessions()),
            certificate_count=len(self.load_certificates()),
            size_bytes=size,
        )

    # -- internals ------------------------------------------------------

    def _load_list(
        self, filename: str, factory: Callable[[Mapping[str, Any]], T]
    ) -> List[T]:
        payload = self._read(filename, default=[])
        if not isinstance(payload, list):
            raise StorageError(f"Expected a list in {filename}.")
        return [self._decode(factory, item, filename) for item in payload]

    @staticmethod
    def _decode(
        factory: Callable[[Mapping[str, Any]], T], item: Any, filename: str
    ) -> T:
        if not isinstance(item, Mapping):
            raise StorageError(f"Malformed entry in {filename}.")
        try:
            return factory(item)
        except (KeyError, TypeError, ValueError) as exc:
            raise StorageError(f"Malformed entry in {filename}: {exc}") from exc

    def _read(self, filename: str, *, default: Any) -> Any:
        target = self._root / filename
        if not target.is_file():
            return default
        try:
            return json.loads(target.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise StorageError(f"Failed to parse storage file: {target}") from exc

    def _write(self, filename: str, payload: Any) -> None:
        with _StorageLock(self._root / _LOCK_FILENAME):
            _atomic_write_json(self._root / filename, payload)


class _StorageLock:
    """Filesystem lock using exclusive file creation."""

    def __init__(self, path: Path) -> None:
        self._path = path

    def __enter__(self) -> "_StorageLock":
        deadline = time.time() + _LOCK_TIMEOUT_SECONDS
        while True:
            try:
                fd = os.open(self._path, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
                os.close(fd)
                break
            except FileExistsError:
                if time.time() > deadline:
                    raise StorageError(
                        f"Timed out waiting for storage lock: {self._path}"
                    )
                time.sleep(0.05)
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # noqa: D401
        self._path.unlink(missing_ok=True)


def _atomic_write_json(path: Path, payload: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    handle = tempfile.NamedTemporaryFile(
        "w",
        delete=False,
        encoding="utf-8",
        dir=str(path.parent),
    )
    try:
        json.dump(payload, handle, indent=2, ensure_ascii=False)
        handle.flush()
        os.fsync(handle.fileno())
    finally:
        handle.close()
    os.replace(handle.name, path)
    try:
        path.chmod(0o600)
    except PermissionError:  # pragma: no cover - depends on filesystem
        pass
