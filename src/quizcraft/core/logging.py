"""Logging helpers shared across quizcraft commands."""

from __future__ import annotations

import json
import logging
import sys
import tempfile
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

__all__ = [
    "JsonLogFormatter",
    "configure_logger",
]

_FILE_MARKER = "_quizcraft_file"
_CONSOLE_MARKER = "_quizcraft_console"
_FALLBACK_DIRNAME = "quizcraft-logs"


class JsonLogFormatter(logging.Formatter):
    """Emit log records as structured JSON lines."""

    # Attributes every LogRecord carries; anything else came from ``extra``.
    _STANDARD = frozenset(
        logging.LogRecord("", 0, "", 0, "", None, None).__dict__
    ) | {"message", "asctime", "taskName"}

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        extras = {
            key: _coerce_value(value)
            for key, value in record.__dict__.items()
            if key not in self._STANDARD
        }
        if extras:
            payload["extra"] = extras
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        if record.stack_info:
            payload["stack"] = record.stack_info
        return json.dumps(payload, ensure_ascii=True)


def configure_logger(
    name: str,
    *,
    log_dir: Path,
    level: str = "INFO",
    verbose: bool = False,
    max_bytes: int = 2 * 1024 * 1024,
    backup_count: int = 3,
) -> tuple[logging.Logger, Path]:
    """Attach a JSON file handler (and a console handler when verbose).

    Module loggers under ``name`` propagate into the returned logger, so a
    single call from the CLI captures generator retries, orchestration
    warnings and storage errors in one rotating file.
    """

    logger = logging.getLogger(name)
    logger.propagate = False
    logger.setLevel(logging.DEBUG)

    file_level = logging.DEBUG if verbose else _coerce_level(level)
    log_path = _writable_log_path(log_dir, f"{name.rsplit('.', 1)[-1]}.log")

    handler = _find_handler(logger, _FILE_MARKER)
    if handler is None:
        handler = RotatingFileHandler(
            log_path,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        handler.setFormatter(JsonLogFormatter())
        setattr(handler, _FILE_MARKER, True)
        logger.addHandler(handler)
    else:
        log_path = Path(handler.baseFilename)  # type: ignore[attr-defined]
    handler.setLevel(file_level)

    console = _find_handler(logger, _CONSOLE_MARKER)
    if verbose and console is None:
        console = logging.StreamHandler(stream=sys.stderr)
        console.setLevel(logging.DEBUG)
        console.setFormatter(logging.Formatter("%(levelname)s %(message)s"))
        setattr(console, _CONSOLE_MARKER, True)
        logger.addHandler(console)
    elif not verbose and console is not None:
        logger.removeHandler(console)
        console.close()

    return logger, log_path


def _coerce_level(level: str) -> int:
    numeric = logging.getLevelName(level.upper())
    if isinstance(numeric, int):
        return numeric
    return logging.INFO


def _find_handler(
    logger: logging.Logger, marker: str
) -> logging.Handler | None:
    for handler in logger.handlers:
        if getattr(handler, marker, False):
            return handler
    return None


def _writable_log_path(log_dir: Path, filename: str) -> Path:
    for directory in (log_dir, Path(tempfile.gettempdir()) / _FALLBACK_DIRNAME):
        try:
            directory.mkdir(parents=True, exist_ok=True)
            path = directory / filename
            path.touch(exist_ok=True)
        except PermissionError:
            continue
        try:
            path.chmod(0o600)
        except PermissionError:  # pragma: no cover - depends on filesystem
            pass
        return path
    raise PermissionError(f"No writable log directory for {filename}")


def _coerce_value(value: Any) -> Any:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(key): _coerce_value(val) for key, val in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_coerce_value(item) for item in value]
    return repr(value)
