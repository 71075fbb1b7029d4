"""Shared AI helper utilities."""

from __future__ import annotations

import os
from typing import Any

from dotenv import load_dotenv

try:  # Allow module import even when the OpenAI dependency is absent.
    from openai import AsyncOpenAI  # type: ignore
except Exception:  # pragma: no cover - optional dependency guard
    AsyncOpenAI = None  # type: ignore

__all__ = ["load_client", "resolve_api_key"]


def resolve_api_key(*candidates: str | None) -> str | None:
    """Return the first non-blank key, falling back to ``OPENAI_API_KEY``."""

    for candidate in candidates:
        if candidate and candidate.strip():
            return candidate.strip()
    load_dotenv()
    env_key = os.getenv("OPENAI_API_KEY")
    if env_key and env_key.strip():
        return env_key.strip()
    return None


def load_client(
    api_key: str | None = None,
    *,
    api_base: str | None = None,
) -> Any:
    """Initialize an async OpenAI client for question generation."""
    if AsyncOpenAI is None:
        raise RuntimeError(
            "The 'openai' package is required to create a client. "
            "Install it and retry."
        )
    resolved = resolve_api_key(api_key)
    if not resolved:
        raise RuntimeError(
            "OPENAI_API_KEY not found in environment. Set it, add it to .env "
            "or store it with `quizcraft quiz settings --api-key`."
        )
    # Retries and backoff are owned by QuestionGenerator.
    kwargs: dict[str, Any] = {"api_key": resolved, "max_retries": 0}
    if api_base:
        kwargs["base_url"] = api_base
    return AsyncOpenAI(**kwargs)
