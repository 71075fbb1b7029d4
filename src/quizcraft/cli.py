"""Unified CLI entry point for quizcraft."""

from __future__ import annotations

import inspect
import sys
from dataclasses import dataclass
from importlib import import_module, metadata
from typing import Callable, Mapping, Optional, Sequence


CommandHandler = Callable[[Sequence[str]], int]


@dataclass(frozen=True)
class CommandSpec:
    """Represents a quizcraft subcommand."""

    name: str
    summary: str
    handler: Optional[CommandHandler] = None
    is_interactive: bool = False


_COMMAND_SPECS: Sequence[CommandSpec] = (
    CommandSpec(
        name="init",
        summary="Bootstrap the quizcraft workspace and config template.",
        handler=lambda argv: _run_module_command(
            "quizcraft.workspace.cli",
            "main",
            "quizcraft init",
            argv,
        ),
    ),
    CommandSpec(
        name="quiz",
        summary="Generate certification quizzes and run practice sessions.",
        is_interactive=True,
        handler=lambda argv: _run_module_command(
            "quizcraft.quiz.cli",
            "main",
            "quizcraft quiz",
            argv,
        ),
    ),
)

COMMANDS: Mapping[str, CommandSpec] = {
    spec.name: spec for spec in _COMMAND_SPECS
}


def format_command_table() -> str:
    """Return a formatted command table for help output."""

    width = max(len(spec.name) for spec in _COMMAND_SPECS)
    lines = ["Available commands:"]
    for spec in _COMMAND_SPECS:
        suffix = " (interactive)" if spec.is_interactive else ""
        lines.append(f"  {spec.name.ljust(width)}  {spec.summary}{suffix}")
    return "\n".join(lines)


def format_usage() -> str:
    parts = [
        "Usage: quizcraft <command> [args...]",
        "Run `quizcraft list` for commands or `quizcraft help <name>` for "
        "details.",
        "",
        format_command_table(),
    ]
    return "\n".join(parts)


def _print(
    text: str, *, stream: Optional[Callable[[str], None]] = None
) -> None:
    target = stream if stream is not None else sys.stdout.write
    if text:
        target(text + "\n")


def _handle_version() -> int:
    try:
        version = metadata.version("quizcraft")
    except metadata.PackageNotFoundError:
        version = "unknown"
    _print(version)
    return 0


def _handle_help(argv: Sequence[str]) -> int:
    if not argv:
        _print(format_usage())
        return 0

    spec = COMMANDS.get(argv[0])
    if not spec:
        _print(f"Unknown command '{argv[0]}'.", stream=sys.stderr.write)
        _print(format_command_table(), stream=sys.stderr.write)
        return 2

    _print(f"{spec.name}: {spec.summary}")
    _print(f"Run `quizcraft {spec.name} --help` for CLI-specific options.")
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = list(argv if argv is not None else sys.argv[1:])

    if not args:
        _print(format_usage())
        return 2

    head, *tail = args

    if head in ("-h", "--help"):
        _print(format_usage())
        return 0
    if head in ("-V", "--version", "version"):
        return _handle_version()
    if head == "list":
        _print(format_command_table())
        return 0
    if head == "help":
        return _handle_help(tail)

    spec = COMMANDS.get(head)
    if spec and spec.handler:
        return spec.handler(tail)

    _print(f"Unknown command '{head}'.", stream=sys.stderr.write)
    _print(format_command_table(), stream=sys.stderr.write)
    return 2


def _run_module_command(
    module_name: str,
    func_name: str,
    prog_name: str,
    argv: Sequence[str],
) -> int:
    module = import_module(module_name)
    target = getattr(module, func_name)
    return _invoke_main(target, prog_name, argv)


def _invoke_main(
    func: Callable[..., object], prog_name: str, argv: Sequence[str]
) -> int:
    args = list(argv)
    old_argv = sys.argv
    sys.argv = [prog_name, *args]
    try:
        result = func(args) if _accepts_argv(func) else func()
    except SystemExit as exc:
        return _normalize_system_exit(exc)
    finally:
        sys.argv = old_argv

    if isinstance(result, int):
        return result
    return 0


def _accepts_argv(func: Callable[..., object]) -> bool:
    try:
        signature = inspect.signature(func)
    except (TypeError, ValueError):
        return False
    return any(
        param.kind
        in (
            inspect.Parameter.POSITIONAL_ONLY,
            inspect.Parameter.POSITIONAL_OR_KEYWORD,
            inspect.Parameter.VAR_POSITIONAL,
        )
        for param in signature.parameters.values()
    )


def _normalize_system_exit(exc: SystemExit) -> int:
    code = exc.code
    if code is None:
        return 0
    if isinstance(code, int):
        return code
    _print(str(code), stream=sys.stderr.write)
    return 1


if __name__ == "__main__":  # pragma: no cover - manual invocation guard
    raise SystemExit(main())
