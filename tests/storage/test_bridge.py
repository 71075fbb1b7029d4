from __future__ import annotations

import json

import pytest

from fixtures import make_question, make_session

from quizcraft.quiz.models import (
    AnswerRecord,
    AppSettings,
    Certificate,
    QuizRecord,
)
from quizcraft.storage import bridge
from quizcraft.storage.bridge import StorageBridge, StorageError, StorageInfo


def _record(quiz_id: str = "quiz-1", count: int = 2) -> QuizRecord:
    return QuizRecord(
        id=quiz_id,
        title="Sample",
        certificate_id="cert-1",
        certificate_name="CISSP",
        language="en",
        questions=[make_question(i) for i in range(1, count + 1)],
    )


def test_empty_storage_defaults(storage):
    assert storage.load_sessions() == {}
    assert storage.load_quizzes() == []
    assert storage.load_certificates() == []
    assert storage.load_settings() == AppSettings()


def test_save_progress_upserts_session(storage):
    questions = [make_question(1), make_question(2)]
    session = make_session(3, questions=questions)

    storage.save_progress(session)
    session.record_answer(AnswerRecord.for_question(questions[0], 0))
    storage.save_progress(session)

    sessions = storage.load_sessions()
    assert list(sessions) == [session.id]
    restored = storage.load_session(session.id)
    assert restored.answers == session.answers
    assert restored.score == 1
    assert storage.load_quizzes() == []


def test_completed_session_is_stored_once_as_quiz(storage):
    questions = [make_question(1)]
    session = make_session(1, questions=questions)
    session.record_answer(AnswerRecord.for_question(questions[0], 0))
    session.completed = True

    storage.save_progress(session)
    storage.save_progress(session)

    quizzes = storage.load_quizzes()
    assert len(quizzes) == 1
    quiz = quizzes[0]
    assert quiz.id == "quiz-" + session.id.split("-", 1)[1]
    assert quiz.title.endswith("Practice Quiz (Complete)")
    assert [q.id for q in quiz.questions] == ["q-1"]


def test_completed_replay_is_not_duplicated(storage):
    record = _record()
    storage.add_quiz(record)
    session = make_session(2, questions=record.questions)
    session.completed = True

    storage.save_progress(session)

    assert [quiz.id for quiz in storage.load_quizzes()] == ["quiz-1"]


def test_unknown_lookups_raise(storage):
    with pytest.raises(StorageError):
        storage.load_session("session-missing")
    with pytest.raises(StorageError):
        storage.load_quiz("quiz-missing")
    assert not storage.delete_session("session-missing")
    assert not storage.delete_quiz("quiz-missing")


def test_add_quiz_replaces_same_id(storage):
    storage.add_quiz(_record(count=1))
    storage.add_quiz(_record(count=3))

    (quiz,) = storage.load_quizzes()
    assert len(quiz.questions) == 3
    assert storage.delete_quiz("quiz-1")
    assert storage.load_quizzes() == []


def test_export_import_round_trip(tmp_path):
    source = StorageBridge(tmp_path / "a")
    target = StorageBridge(tmp_path / "b")
    record = _record()

    text = source.export_quiz(record)
    imported = target.import_quiz(text)

    assert imported.id == record.id
    assert imported.questions == record.questions
    assert target.load_quiz(record.id).title == "Sample"


@pytest.mark.parametrize(
    "text",
    [
        "not json",
        "[]",
        json.dumps({"id": "quiz-1", "questions": []}),
        json.dumps({"id": "quiz-1", "title": "x", "questions": {}}),
        json.dumps({"id": "quiz-1", "title": "x", "questions": [{"id": "q"}]}),
    ],
)
def test_import_rejects_invalid_payloads(storage, text):
    with pytest.raises(StorageError) as exc:
        storage.import_quiz(text)

    assert "Invalid quiz format" in str(exc.value)
    assert storage.load_quizzes() == []


def test_corrupt_files_raise_storage_error(storage):
    (storage.root / "quizzes.json").write_text("{oops", encoding="utf-8")
    (storage.root / "sessions.json").write_text("[]", encoding="utf-8")
    (storage.root / "certificates.json").write_text(
        json.dumps([{"name": "no id"}]), encoding="utf-8"
    )

    with pytest.raises(StorageError) as exc:
        storage.load_quizzes()
    assert "Failed to parse storage file" in str(exc.value)
    with pytest.raises(StorageError):
        storage.load_sessions()
    with pytest.raises(StorageError) as exc:
        storage.load_certificates()
    assert "Malformed entry in certificates.json" in str(exc.value)


def test_out_of_range_stored_answer_is_rejected(storage):
    question = make_question(1)
    session = make_session(1, questions=[question])
    session.record_answer(AnswerRecord.for_question(question, 2))
    storage.save_progress(session)

    path = storage.root / "sessions.json"
    payload = json.loads(path.read_text(encoding="utf-8"))
    payload[session.id]["answers"][0]["selected_answer"] = 9
    path.write_text(json.dumps(payload), encoding="utf-8")

    with pytest.raises(StorageError) as exc:
        storage.load_session(session.id)
    assert "Malformed entry in sessions.json" in str(exc.value)


def test_writes_are_private_and_release_lock(storage):
    storage.save_settings(AppSettings(api_key="sk-secret", language="ja"))

    path = storage.root / "settings.json"
    assert path.stat().st_mode & 0o777 == 0o600
    assert not (storage.root / ".lock").exists()
    assert storage.load_settings().language == "ja"
    assert json.loads(path.read_text(encoding="utf-8"))["api_key"] == "sk-secret"


def test_lock_timeout_raises(storage, monkeypatch):
    (storage.root / ".lock").write_text("", encoding="utf-8")
    monkeypatch.setattr(bridge, "_LOCK_TIMEOUT_SECONDS", 0.0)

    with pytest.raises(StorageError) as exc:
        storage.save_settings(AppSettings())
    assert "Timed out waiting for storage lock" in str(exc.value)


def test_storage_info_and_clear_all(storage):
    storage.add_quiz(_record())
    storage.save_certificates([Certificate(id="cert-1", name="CISSP")])
    storage.save_progress(make_session(1, questions=[make_question(1)]))

    info = storage.storage_info()

    assert info.quiz_count == 1
    assert info.session_count == 1
    assert info.certificate_count == 1
    assert info.size_bytes > 0
    assert info.estimated_size.endswith("B")

    storage.clear_all()

    assert storage.storage_info().size_bytes == 0
    assert storage.load_quizzes() == []


def test_estimated_size_formatting():
    assert StorageInfo(0, 0, 0, 512).estimated_size == "512 B"
    assert StorageInfo(0, 0, 0, 4096).estimated_size == "4 KB"
