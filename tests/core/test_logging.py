from __future__ import annotations

import json
import logging
from pathlib import Path

from quizcraft.core import logging as core_logging


def _console_handlers(logger: logging.Logger) -> list[logging.Handler]:
    return [
        handler
        for handler in logger.handlers
        if getattr(handler, "_quizcraft_console", False)
    ]


def _close(logger: logging.Logger) -> None:
    for handler in list(logger.handlers):
        handler.close()
        logger.removeHandler(handler)


def test_configure_logger_writes_json(tmp_path):
    log_dir = tmp_path / "logs"
    logger, log_path = core_logging.configure_logger(
        "quizcraft.test_json",
        log_dir=log_dir,
        level="INFO",
        verbose=False,
    )

    assert log_path == log_dir / "test_json.log"

    logger.debug("filtered out")
    logger.info("hello world", extra={"attempt": 1, "delay_seconds": 1.0})

    class _Helper:
        def __repr__(self):  # noqa: D401
            return "helper"

    try:
        raise ValueError("boom")
    except ValueError:
        logger.exception(
            "with error",
            extra={"value": {"items": [Path(log_dir), 1]}, "obj": _Helper()},
        )
    for handler in logger.handlers:
        handler.flush()

    contents = log_path.read_text(encoding="utf-8").strip().splitlines()
    assert len(contents) == 2
    first = json.loads(contents[0])
    assert first["message"] == "hello world"
    assert first["level"] == "INFO"
    assert first["extra"] == {"attempt": 1, "delay_seconds": 1.0}

    payload = json.loads(contents[-1])
    assert "ValueError: boom" in payload["exception"]
    assert payload["extra"]["obj"] == "helper"
    assert payload["extra"]["value"]["items"] == [str(log_dir), 1]

    _close(logger)


def test_child_loggers_propagate_into_configured_logger(tmp_path):
    logger, log_path = core_logging.configure_logger(
        "quizcraft_child_test", log_dir=tmp_path / "logs"
    )

    logging.getLogger("quizcraft_child_test.quiz.generator").warning(
        "retrying", extra={"attempt": 2}
    )
    for handler in logger.handlers:
        handler.flush()

    record = json.loads(log_path.read_text(encoding="utf-8").strip())
    assert record["logger"] == "quizcraft_child_test.quiz.generator"
    assert record["extra"]["attempt"] == 2

    _close(logger)


def test_configure_logger_fallback_directory(tmp_path, monkeypatch):
    target = tmp_path / "blocked"
    monkeypatch.setattr(
        core_logging.tempfile, "gettempdir", lambda: str(tmp_path / "tmp")
    )

    original_mkdir = Path.mkdir

    def fake_mkdir(self, *args, **kwargs):  # noqa: ANN001
        if self == target:
            raise PermissionError("denied")
        return original_mkdir(self, *args, **kwargs)

    monkeypatch.setattr(Path, "mkdir", fake_mkdir)

    logger, log_path = core_logging.configure_logger(
        "quizcraft.test_blocked", log_dir=target
    )

    assert log_path.parent == tmp_path / "tmp" / "quizcraft-logs"
    assert log_path.exists()

    _close(logger)


def test_console_handler_toggle(tmp_path):
    log_dir = tmp_path / "logs"
    logger_name = "quizcraft.test_toggle"

    logger, _ = core_logging.configure_logger(
        logger_name, log_dir=log_dir, verbose=True
    )
    assert len(_console_handlers(logger)) == 1

    core_logging.configure_logger(logger_name, log_dir=log_dir, verbose=True)
    assert len(_console_handlers(logger)) == 1

    core_logging.configure_logger(logger_name, log_dir=log_dir, verbose=False)
    assert not _console_handlers(logger)

    _close(logger)


def test_coerce_level_defaults():
    assert core_logging._coerce_level("bogus") == logging.INFO
    assert core_logging._coerce_level("warning") == logging.WARNING
