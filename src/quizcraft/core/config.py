"""TOML configuration for quizcraft.

The config file groups provider, generation and logging concerns. Values are
merged over packaged defaults, unknown keys are rejected, and the result is
exposed as frozen dataclasses so the rest of the code never touches raw
mappings.
"""

from __future__ import annotations

import copy
import os
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, MutableMapping, Optional

__all__ = [
    "CONFIG_PATH_ENV",
    "ConfigError",
    "OpenAIConfig",
    "GenerationConfig",
    "LoggingConfig",
    "QuizcraftConfig",
    "load_config",
    "default_config",
    "resolve_config_path",
    "config_template",
    "write_template",
]


CONFIG_PATH_ENV = "QUIZCRAFT_CONFIG"


class ConfigError(RuntimeError):
    """Raised when configuration parsing or validation fails."""


@dataclass(frozen=True)
class OpenAIConfig:
    model: str
    temperature: float
    max_output_tokens: int
    api_base: Optional[str]


@dataclass(frozen=True)
class GenerationConfig:
    max_retries: int
    backoff_seconds: float
    question_timeout_seconds: float
    batch_timeout_seconds: float
    stagger_seconds: float
    batch_delay_seconds: float
    max_batch_size: int
    retry_malformed: bool


@dataclass(frozen=True)
class LoggingConfig:
    level: str
    verbose: bool


@dataclass(frozen=True)
class QuizcraftConfig:
    openai: OpenAIConfig
    generation: GenerationConfig
    logging: LoggingConfig


def _merge_dict(
    base: MutableMapping[str, Any],
    override: Mapping[str, Any],
    *,
    path: str = "",
) -> None:
    for key, value in override.items():
        dotted = f"{path}{key}"
        if key not in base:
            raise ConfigError(f"Unknown configuration key '{dotted}'.")
        base_value = base[key]
        if isinstance(base_value, MutableMapping):
            if not isinstance(value, Mapping):
                raise ConfigError(
                    "Expected table for '{0}', found {1}.".format(
                        dotted,
                        type(value).__name__,
                    )
                )
            _merge_dict(base_value, value, path=f"{dotted}.")
        else:
            base[key] = value


def _require_positive_int(value: Any, *, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ConfigError(f"'{field}' must be a positive integer.")
    return value


def _require_non_negative_int(value: Any, *, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ConfigError(f"'{field}' must be a non-negative integer.")
    return value


def _require_non_negative_float(value: Any, *, field: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"'{field}' must be a number.")
    if value < 0:
        raise ConfigError(f"'{field}' must not be negative.")
    return float(value)


def _require_float_range(
    value: Any, *, field: str, min_value: float, max_value: float
) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"'{field}' must be a number.")
    number = float(value)
    if not (min_value <= number <= max_value):
        raise ConfigError(
            f"'{field}' must be between {min_value} and {max_value}."
        )
    return number


def _require_bool(value: Any, *, field: str) -> bool:
    if not isinstance(value, bool):
        raise ConfigError(f"'{field}' must be a boolean.")
    return value


def _require_string(value: Any, *, field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(f"'{field}' must be a non-empty string.")
    return value.strip()


def _coerce_optional_string(value: Any, *, field: str) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(f"'{field}' must be a non-empty string when set.")
    return value.strip()


def _build_openai(section: Mapping[str, Any]) -> OpenAIConfig:
    prefix = "providers.openai"
    return OpenAIConfig(
        model=_require_string(section.get("model"), field=f"{prefix}.model"),
        temperature=_require_float_range(
            section.get("temperature"),
            field=f"{prefix}.temperature",
            min_value=0.0,
            max_value=2.0,
        ),
        max_output_tokens=_require_positive_int(
            section.get("max_output_tokens"),
            field=f"{prefix}.max_output_tokens",
        ),
        api_base=_coerce_optional_string(
            section.get("api_base"), field=f"{prefix}.api_base"
        ),
    )


def _build_generation(section: Mapping[str, Any]) -> GenerationConfig:
    max_batch_size = _require_positive_int(
        section.get("max_batch_size"), field="generation.max_batch_size"
    )
    if max_batch_size > 5:
        raise ConfigError("generation.max_batch_size must be at most 5.")
    question_timeout = _require_non_negative_float(
        section.get("question_timeout_seconds"),
        field="generation.question_timeout_seconds",
    )
    batch_timeout = _require_non_negative_float(
        section.get("batch_timeout_seconds"),
        field="generation.batch_timeout_seconds",
    )
    if question_timeout == 0 or batch_timeout == 0:
        raise ConfigError("generation timeouts must be greater than zero.")
    return GenerationConfig(
        max_retries=_require_non_negative_int(
            section.get("max_retries"), field="generation.max_retries"
        ),
        backoff_seconds=_require_non_negative_float(
            section.get("backoff_seconds"), field="generation.backoff_seconds"
        ),
        question_timeout_seconds=question_timeout,
        batch_timeout_seconds=batch_timeout,
        stagger_seconds=_require_non_negative_float(
            section.get("stagger_seconds"), field="generation.stagger_seconds"
        ),
        batch_delay_seconds=_require_non_negative_float(
            section.get("batch_delay_seconds"),
            field="generation.batch_delay_seconds",
        ),
        max_batch_size=max_batch_size,
        retry_malformed=_require_bool(
            section.get("retry_malformed"), field="generation.retry_malformed"
        ),
    )


def _build_logging(section: Mapping[str, Any]) -> LoggingConfig:
    level = _require_string(section.get("level"), field="logging.level").upper()
    allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
    if level not in allowed:
        raise ConfigError(
            "logging.level must be one of "
            "DEBUG, INFO, WARNING, ERROR, CRITICAL."
        )
    verbose = _require_bool(section.get("verbose"), field="logging.verbose")
    return LoggingConfig(level=level, verbose=verbose)


def _build_config(tree: Mapping[str, Any]) -> QuizcraftConfig:
    providers = tree.get("providers", {})
    if not isinstance(providers, Mapping) or not isinstance(
        providers.get("openai"), Mapping
    ):
        raise ConfigError("providers.openai table is required.")
    return QuizcraftConfig(
        openai=_build_openai(providers["openai"]),
        generation=_build_generation(tree.get("generation", {})),
        logging=_build_logging(tree.get("logging", {})),
    )


def _load_toml(path: Path) -> Mapping[str, Any]:
    try:
        with path.open("rb") as fh:
            return tomllib.load(fh)
    except FileNotFoundError as exc:
        raise ConfigError(f"Config file not found: {path}") from exc
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Failed to parse config TOML: {exc}") from exc


def resolve_config_path(
    default_path: Path,
    *,
    explicit_path: Optional[Path] = None,
    env: Mapping[str, str] | None = None,
) -> tuple[Path, bool]:
    """Return the config path and whether the user pointed at it explicitly."""

    env_map = os.environ if env is None else env
    if explicit_path is not None:
        return explicit_path.expanduser().resolve(), True
    env_override = env_map.get(CONFIG_PATH_ENV)
    if env_override:
        return Path(env_override).expanduser().resolve(), True
    return default_path, False


def load_config(
    default_path: Path,
    *,
    explicit_path: Optional[Path] = None,
    env: Mapping[str, str] | None = None,
) -> QuizcraftConfig:
    """Load the TOML config, applying defaults and validation.

    A missing file at the default location yields the packaged defaults; a
    missing file the user asked for explicitly is an error.
    """

    path, explicit = resolve_config_path(
        default_path, explicit_path=explicit_path, env=env
    )
    tree = copy.deepcopy(_DEFAULTS)
    if path.exists() or explicit:
        toml_data = _load_toml(path)
        _merge_dict(tree, toml_data)
    return _build_config(tree)


def default_config() -> QuizcraftConfig:
    return _build_config(copy.deepcopy(_DEFAULTS))


def config_template() -> str:
    """Return the TOML template recommended for new installs."""

    return _CONFIG_TEMPLATE.strip() + "\n"


def write_template(
    path: Path, *, overwrite: bool = False, mode: int = 0o600
) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    if path.exists() and not overwrite:
        raise ConfigError(f"Config already exists: {path}")
    path.write_text(config_template(), encoding="utf-8")
    try:
        path.chmod(mode)
    except PermissionError:  # pragma: no cover - depends on filesystem
        pass
    return path


_DEFAULTS: Dict[str, Any] = {
    "providers": {
        "openai": {
            "model": "gpt-4o-mini",
            "temperature": 0.7,
            "max_output_tokens": 4096,
            "api_base": None,
        },
    },
    "generation": {
        "max_retries": 2,
        "backoff_seconds": 1.0,
        "question_timeout_seconds": 30.0,
        "batch_timeout_seconds": 60.0,
        "stagger_seconds": 0.5,
        "batch_delay_seconds": 0.5,
        "max_batch_size": 5,
        "retry_malformed": True,
    },
    "logging": {
        "level": "INFO",
        "verbose": False,
    },
}


_CONFIG_TEMPLATE = """
# quizcraft configuration

[providers.openai]
model = "gpt-4o-mini"
# Sampling temperature (0.0-2.0)
temperature = 0.7
max_output_tokens = 4096
# api_base = "https://api.openai.com/v1"

[generation]
# Retries after the first attempt; backoff grows linearly (1s, 2s, ...)
max_retries = 2
backoff_seconds = 1.0
question_timeout_seconds = 30
batch_timeout_seconds = 60
# Pause between background question requests
stagger_seconds = 0.5
# Pause between batches when creating a whole quiz up front
batch_delay_seconds = 0.5
max_batch_size = 5
# Retry responses that fail to parse or validate, like network errors
retry_malformed = true

[logging]
level = "INFO"
verbose = false
"""
