"""`quizcraft quiz` subcommands."""

from __future__ import annotations

import argparse
import asyncio
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Sequence

from rich.console import Console
from rich.table import Table

from ..core.ai import load_client, resolve_api_key
from ..core.config import ConfigError, QuizcraftConfig, load_config
from ..core.logging import configure_logger
from ..core.workspace import WorkspaceError, WorkspaceLayout, ensure_workspace
from ..storage.bridge import StorageBridge, StorageError
from .certificates import (
    CertificateError,
    CertificateManager,
    validate_certification,
)
from .console import run_console_session
from .generator import QuestionGenerator, generate_quiz
from .models import (
    SUPPORTED_LANGUAGES,
    AppSettings,
    QuizConfig,
    QuizSession,
    validate_quiz_config,
)
from .orchestrator import SessionOrchestrator
from .parsing import GenerationError

__all__ = ["build_arg_parser", "main"]

InputProvider = Callable[[], str]
_LANGUAGE_CODES = tuple(language.code for language in SUPPORTED_LANGUAGES)


@dataclass
class _Context:
    layout: WorkspaceLayout
    config: QuizcraftConfig
    storage: StorageBridge
    console: Console

    @property
    def settings(self) -> AppSettings:
        return self.storage.load_settings()

    def generator(self, api_key: Optional[str] = None) -> QuestionGenerator:
        resolved = resolve_api_key(api_key, self.settings.api_key)
        if not resolved:
            raise ConfigError(
                "An API key is required to generate questions. Set it with "
                "`quizcraft quiz settings --api-key` or OPENAI_API_KEY."
            )
        client = load_client(resolved, api_base=self.config.openai.api_base)
        return QuestionGenerator.from_config(client, self.config)


def _make_console() -> Console:
    return Console()


def _input_provider() -> InputProvider:
    return lambda: input("> ")


def _build_context(args: argparse.Namespace) -> _Context:
    layout = ensure_workspace(path=args.workspace)
    config = load_config(layout.config_file, explicit_path=args.config)
    configure_logger(
        "quizcraft",
        log_dir=layout.logs_dir,
        level=config.logging.level,
        verbose=bool(args.verbose or config.logging.verbose),
    )
    return _Context(
        layout=layout,
        config=config,
        storage=StorageBridge(layout.storage_dir),
        console=_make_console(),
    )


# -- settings --------------------------------------------------------------


def _cmd_settings(ctx: _Context, args: argparse.Namespace) -> int:
    if args.clear_storage:
        ctx.storage.clear_all()
        ctx.console.print("All stored data cleared.")
        return 0
    settings = ctx.settings
    if args.api_key is None and args.language is None:
        masked = "(not set)"
        if settings.has_credential:
            masked = "*" * 8 + settings.api_key[-4:]
        ctx.console.print(f"API key:  {masked}")
        ctx.console.print(f"Language: {settings.language}")
        return 0
    updated = AppSettings(
        api_key=settings.api_key if args.api_key is None else args.api_key,
        language=settings.language if args.language is None else args.language,
    )
    ctx.storage.save_settings(updated)
    ctx.console.print("Settings saved.")
    return 0


# -- certificates ----------------------------------------------------------


def _cmd_certificates(ctx: _Context, args: argparse.Namespace) -> int:
    manager = CertificateManager(ctx.storage)
    action = args.action
    if action == "list":
        certificates = manager.list()
        if not certificates:
            ctx.console.print("No certificates yet.")
            return 1
        table = Table("Name", "Id", "Bank size", "Description")
        for certificate in certificates:
            bank = manager.question_set_for(certificate)
            table.add_row(
                certificate.name,
                certificate.id,
                str(len(bank.questions) if bank else 0),
                certificate.description,
            )
        ctx.console.print(table)
        return 0
    if action == "add":
        certificate = manager.create(args.name, args.description or "")
        ctx.console.print(f"Added certificate {certificate.name} ({certificate.id})")
        return 0
    if action == "remove":
        certificate = manager.remove(args.certificate)
        ctx.console.print(f"Removed certificate {certificate.name}")
        return 0
    if action == "validate":
        client = None
        if ctx.settings.has_credential:
            client = load_client(
                ctx.settings.api_key, api_base=ctx.config.openai.api_base
            )
        check = asyncio.run(
            validate_certification(
                args.name, client, model=ctx.config.openai.model
            )
        )
        if check.is_valid:
            ctx.console.print(
                f"[green]Valid[/] ({check.confidence}): {check.corrected_name}"
            )
            if check.description:
                ctx.console.print(check.description)
            return 0
        ctx.console.print(f"[red]Not recognized[/] ({check.confidence}).")
        if check.suggestions:
            ctx.console.print("Did you mean: " + ", ".join(check.suggestions))
        return 1
    if action == "generate":
        certificate = manager.get(args.certificate)
        language = args.language or ctx.settings.language
        question_set = asyncio.run(
            manager.generate_bank(
                certificate,
                args.count,
                ctx.generator(),
                language=language,
            )
        )
        ctx.console.print(
            f"Question bank for {certificate.name} now holds "
            f"{len(question_set.questions)} question(s)."
        )
        return 0
    raise ConfigError(f"Unknown certificates action: {action}")


# -- quizzes ---------------------------------------------------------------


def _quiz_config(
    ctx: _Context, certificate: str, count: int, language: Optional[str]
) -> QuizConfig:
    manager = CertificateManager(ctx.storage)
    try:
        found = manager.get(certificate)
        certificate_id, certificate_name = found.id, found.name
    except CertificateError:
        certificate_id, certificate_name = "", certificate.strip()
    settings = ctx.settings
    return QuizConfig(
        certificate_id=certificate_id,
        certificate_name=certificate_name,
        language=language or settings.language,
        question_count=count,
        api_key=settings.api_key,
    )


def _cmd_generate(ctx: _Context, args: argparse.Namespace) -> int:
    config = _quiz_config(ctx, args.certificate, args.count, args.language)
    validate_quiz_config(config, require_credential=False)
    generator = ctx.generator(config.api_key)
    quiz = asyncio.run(
        generate_quiz(generator, config, require_credential=False)
    )
    ctx.storage.add_quiz(quiz)
    ctx.console.print(
        f"Saved {quiz.title} ({quiz.id}) with {len(quiz.questions)} question(s)."
    )
    return 0


def _cmd_list(ctx: _Context, args: argparse.Namespace) -> int:
    quizzes = ctx.storage.load_quizzes()
    if not quizzes:
        ctx.console.print("No stored quizzes.")
        return 1
    table = Table("Id", "Title", "Questions", "Language", "Created")
    for quiz in quizzes:
        table.add_row(
            quiz.id,
            quiz.title,
            str(len(quiz.questions)),
            quiz.language,
            quiz.created_at.strftime("%Y-%m-%d %H:%M"),
        )
    ctx.console.print(table)
    info = ctx.storage.storage_info()
    ctx.console.print(
        f"{info.quiz_count} quiz(zes), {info.session_count} session(s), "
        f"{info.certificate_count} certificate(s) using {info.estimated_size}"
    )
    return 0


def _cmd_delete(ctx: _Context, args: argparse.Namespace) -> int:
    if not ctx.storage.delete_quiz(args.quiz_id):
        raise StorageError(f"Unknown quiz: {args.quiz_id}")
    ctx.console.print(f"Deleted quiz {args.quiz_id}")
    return 0


def _cmd_export(ctx: _Context, args: argparse.Namespace) -> int:
    quiz = ctx.storage.load_quiz(args.quiz_id)
    text = ctx.storage.export_quiz(quiz)
    if args.output is None:
        sys.stdout.write(text + "\n")
        return 0
    args.output.write_text(text + "\n", encoding="utf-8")
    ctx.console.print(f"Exported {quiz.id} -> {args.output}")
    return 0


def _cmd_import(ctx: _Context, args: argparse.Namespace) -> int:
    try:
        text = args.file.read_text(encoding="utf-8")
    except OSError as exc:
        raise StorageError(f"Cannot read {args.file}: {exc}") from exc
    quiz = ctx.storage.import_quiz(text)
    ctx.console.print(f"Imported {quiz.title} ({quiz.id})")
    return 0


def _cmd_sessions(ctx: _Context, args: argparse.Namespace) -> int:
    if args.delete:
        if not ctx.storage.delete_session(args.delete):
            raise StorageError(f"Unknown session: {args.delete}")
        ctx.console.print(f"Deleted session {args.delete}")
        return 0
    sessions = ctx.storage.load_sessions()
    if not sessions:
        ctx.console.print("No stored sessions.")
        return 1
    table = Table("Id", "Certificate", "Progress", "Score", "Status")
    ordered = sorted(sessions.values(), key=lambda item: item.created_at)
    for session in ordered:
        table.add_row(
            session.id,
            session.config.certificate_name,
            f"{len(session.answers)}/{session.target_count}",
            str(session.score),
            "completed" if session.completed else "in progress",
        )
    ctx.console.print(table)
    return 0


def _start_orchestrator(
    ctx: _Context, args: argparse.Namespace
) -> SessionOrchestrator:
    persist = ctx.storage.save_progress
    if args.quiz:
        record = ctx.storage.load_quiz(args.quiz)
        return SessionOrchestrator.for_replay(record, persist=persist)
    if args.resume:
        session: QuizSession = ctx.storage.load_session(args.resume)
        if session.completed:
            raise StorageError(f"Session {session.id} is already completed.")
        generator = None
        if not session.is_full:
            generator = ctx.generator(session.config.api_key)
        return SessionOrchestrator(session, generator=generator, persist=persist)
    if not args.certificate:
        raise ConfigError("A certificate is required unless --quiz or --resume is used.")
    if args.bank:
        manager = CertificateManager(ctx.storage)
        certificate = manager.get(args.certificate)
        bank = manager.question_set_for(certificate)
        if bank is None or not bank.questions:
            raise CertificateError(
                f"No question bank for {certificate.name}. Generate one first."
            )
        config = QuizConfig(
            certificate_id=certificate.id,
            certificate_name=certificate.name,
            language=args.language or ctx.settings.language,
            question_count=len(bank.questions),
        )
        session = QuizSession.create(config, questions=bank.questions)
        return SessionOrchestrator(session, persist=persist)
    config = _quiz_config(ctx, args.certificate, args.count, args.language)
    validate_quiz_config(config, require_credential=False)
    generator = ctx.generator(config.api_key)
    return SessionOrchestrator(
        QuizSession.create(config), generator=generator, persist=persist
    )


def _cmd_start(ctx: _Context, args: argparse.Namespace) -> int:
    orchestrator = _start_orchestrator(ctx, args)
    result = asyncio.run(
        run_console_session(orchestrator, ctx.console, _input_provider())
    )
    if result.exit_action == "error":
        return 1
    if result.exit_action == "quit":
        ctx.console.print(
            f"Resume later with: quizcraft quiz start --resume {result.session.id}"
        )
    return 0


# -- parser ----------------------------------------------------------------


def build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="quizcraft quiz",
        description="Generate certification practice quizzes and take them.",
    )
    p.add_argument("--config", type=Path, help="Path to quizcraft.toml")
    p.add_argument(
        "--workspace",
        type=Path,
        help="Workspace root (defaults to QUIZCRAFT_DATA_HOME or ~/.quizcraft-data)",
    )
    p.add_argument("--verbose", action="store_true", help="Log to stderr too")
    sub = p.add_subparsers(dest="command", required=True)

    sp_settings = sub.add_parser("settings", help="Show or update settings")
    sp_settings.add_argument("--api-key")
    sp_settings.add_argument("--language", choices=_LANGUAGE_CODES)
    sp_settings.add_argument(
        "--clear-storage",
        action="store_true",
        help="Delete every stored quiz, session, certificate and setting",
    )

    sp_certs = sub.add_parser("certificates", help="Manage certificates")
    certs_sub = sp_certs.add_subparsers(dest="action", required=True)
    certs_sub.add_parser("list", help="List certificates")
    sp_c_add = certs_sub.add_parser("add", help="Add a certificate")
    sp_c_add.add_argument("name")
    sp_c_add.add_argument("--description")
    sp_c_rm = certs_sub.add_parser("remove", help="Remove a certificate")
    sp_c_rm.add_argument("certificate")
    sp_c_val = certs_sub.add_parser(
        "validate", help="Check whether a certification exists"
    )
    sp_c_val.add_argument("name")
    sp_c_gen = certs_sub.add_parser(
        "generate", help="Add generated questions to a certificate's bank"
    )
    sp_c_gen.add_argument("certificate")
    sp_c_gen.add_argument("--count", type=int, default=10)
    sp_c_gen.add_argument("--language", choices=_LANGUAGE_CODES)

    sp_gen = sub.add_parser("generate", help="Generate and store a quiz")
    sp_gen.add_argument("certificate")
    sp_gen.add_argument("--count", type=int, default=10)
    sp_gen.add_argument("--language", choices=_LANGUAGE_CODES)

    sub.add_parser("list", help="List stored quizzes")

    sp_delete = sub.add_parser("delete", help="Delete a stored quiz")
    sp_delete.add_argument("quiz_id")

    sp_export = sub.add_parser("export", help="Export a stored quiz as JSON")
    sp_export.add_argument("quiz_id")
    sp_export.add_argument("--output", type=Path)

    sp_import = sub.add_parser("import", help="Import a quiz JSON file")
    sp_import.add_argument("file", type=Path)

    sp_sessions = sub.add_parser("sessions", help="List stored sessions")
    sp_sessions.add_argument("--delete", metavar="SESSION_ID")

    sp_start = sub.add_parser("start", help="Start an interactive session")
    sp_start.add_argument("certificate", nargs="?")
    sp_start.add_argument("--count", type=int, default=10)
    sp_start.add_argument("--language", choices=_LANGUAGE_CODES)
    source = sp_start.add_mutually_exclusive_group()
    source.add_argument("--quiz", help="Replay a stored quiz by id")
    source.add_argument(
        "--bank", action="store_true", help="Replay the certificate's bank"
    )
    source.add_argument("--resume", help="Resume a stored session by id")
    return p


_HANDLERS = {
    "settings": _cmd_settings,
    "certificates": _cmd_certificates,
    "generate": _cmd_generate,
    "list": _cmd_list,
    "delete": _cmd_delete,
    "export": _cmd_export,
    "import": _cmd_import,
    "sessions": _cmd_sessions,
    "start": _cmd_start,
}


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_arg_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)
    try:
        ctx = _build_context(args)
        return _HANDLERS[args.command](ctx, args)
    except ConfigError as exc:
        sys.stderr.write(f"Error: {exc}\n")
        return 2
    except (
        CertificateError,
        GenerationError,
        StorageError,
        WorkspaceError,
    ) as exc:
        sys.stderr.write(f"Error: {exc}\n")
        return 1
    except RuntimeError as exc:
        # Missing credentials or the openai package.
        sys.stderr.write(f"Error: {exc}\n")
        return 1
    except KeyboardInterrupt:
        sys.stderr.write("Interrupted.\n")
        return 130


if __name__ == "__main__":  # pragma: no cover - module CLI guard
    raise SystemExit(main())
