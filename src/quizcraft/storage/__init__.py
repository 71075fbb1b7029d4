"""File-backed persistence for sessions, quizzes, certificates and settings."""

from __future__ import annotations

from .bridge import StorageBridge, StorageError, StorageInfo

__all__ = ["StorageBridge", "StorageError", "StorageInfo"]
