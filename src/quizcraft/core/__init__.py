"""Core shared helpers for quizcraft commands."""

from __future__ import annotations

from .ai import load_client, resolve_api_key
from .config import (
    ConfigError,
    GenerationConfig,
    LoggingConfig,
    OpenAIConfig,
    QuizcraftConfig,
    default_config,
    load_config,
    write_template,
)
from .logging import JsonLogFormatter, configure_logger
from .workspace import (
    WORKSPACE_ENV,
    WorkspaceError,
    WorkspaceLayout,
    ensure_workspace,
)

__all__ = [
    "load_client",
    "resolve_api_key",
    "ConfigError",
    "GenerationConfig",
    "LoggingConfig",
    "OpenAIConfig",
    "QuizcraftConfig",
    "default_config",
    "load_config",
    "write_template",
    "configure_logger",
    "JsonLogFormatter",
    "ensure_workspace",
    "WorkspaceLayout",
    "WorkspaceError",
    "WORKSPACE_ENV",
]
