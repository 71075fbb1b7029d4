"""Rich-rendered interactive quiz session.

The loop reads commands from an injected ``input_provider`` so tests can
script a whole session and capture the output with ``Console(record=True)``.
Input is read in a worker thread so background question generation keeps
running while the user is thinking.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Callable, Literal, Optional

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .models import OPTION_COUNT, QuizSession
from .orchestrator import SessionOrchestrator
from .navigation import SubmitResult
from .parsing import RetriesExhaustedError

__all__ = [
    "SessionCommand",
    "ConsoleSessionResult",
    "parse_session_command",
    "run_console_session",
]

InputProvider = Callable[[], str]
ExitAction = Literal["completed", "quit", "error"]

_OPTION_KEYS = "ABCD"


@dataclass(frozen=True)
class SessionCommand:
    """Normalized user command parsed from console input."""

    type: Literal["select", "submit", "next", "quit", "retry", "restart"]
    choice: Optional[int] = None


@dataclass(frozen=True)
class ConsoleSessionResult:
    session: QuizSession
    exit_action: ExitAction


def parse_session_command(raw: str | None) -> SessionCommand | None:
    """Parse raw input; options accept ``1``-``4`` or ``A``-``D``."""

    if raw is None:
        return None
    text = raw.strip().lower()
    if not text:
        return None
    if text in {"s", "submit"}:
        return SessionCommand("submit")
    if text in {"n", "next"}:
        return SessionCommand("next")
    if text in {"q", "quit", "exit"}:
        return SessionCommand("quit")
    if text in {"r", "retry"}:
        return SessionCommand("retry")
    if text == "restart":
        return SessionCommand("restart")
    if len(text) == 1:
        if text.isdigit() and 1 <= int(text) <= OPTION_COUNT:
            return SessionCommand("select", int(text) - 1)
        key = text.upper()
        if key in _OPTION_KEYS:
            return SessionCommand("select", _OPTION_KEYS.index(key))
    return None


def _safe_read(provider: InputProvider) -> str | None:
    try:
        return provider()
    except (EOFError, StopIteration):
        return None


async def _read(provider: InputProvider) -> str | None:
    return await asyncio.to_thread(_safe_read, provider)


async def run_console_session(
    orchestrator: SessionOrchestrator,
    console: Console,
    input_provider: InputProvider,
) -> ConsoleSessionResult:
    """Run a session until completion, quit, or a terminal start failure."""

    if not await _start(orchestrator, console, input_provider):
        await orchestrator.exit()
        return ConsoleSessionResult(orchestrator.session, "error")

    while True:
        if not orchestrator.is_completed:
            if orchestrator.current_question is None:
                console.print(Text("Generating next question...", style="dim"))
            await orchestrator.ensure_current()
        if orchestrator.is_completed:
            _render_summary(console, orchestrator.session)
            if not orchestrator.session.is_full or orchestrator.generator:
                return ConsoleSessionResult(orchestrator.session, "completed")
            console.print(
                Text("Type 'restart' to try again or press Enter to finish.")
            )
            raw = await _read(input_provider)
            command = parse_session_command(raw)
            if command is None or command.type != "restart":
                return ConsoleSessionResult(orchestrator.session, "completed")
            orchestrator.restart()
            continue

        if orchestrator.current_question is None:
            console.print("[red]No question is available to continue.[/red]")
            await orchestrator.exit()
            return ConsoleSessionResult(orchestrator.session, "error")

        _render_question(console, orchestrator)
        raw = await _read(input_provider)
        if raw is None:
            console.print("\n[bold yellow]Session interrupted.[/]")
            await orchestrator.exit()
            return ConsoleSessionResult(orchestrator.session, "quit")
        command = parse_session_command(raw)
        if command is None:
            console.print("[red]Unrecognized command. Try again.[/]")
            continue
        if command.type == "quit":
            console.print("\n[bold yellow]Progress saved. Ending session.[/]")
            await orchestrator.exit()
            return ConsoleSessionResult(orchestrator.session, "quit")
        await _apply_command(command, orchestrator, console)


async def _start(
    orchestrator: SessionOrchestrator,
    console: Console,
    input_provider: InputProvider,
) -> bool:
    while True:
        if not orchestrator.session.questions:
            console.print(Text("Generating your first question...", style="dim"))
        try:
            await orchestrator.start()
            return True
        except RetriesExhaustedError:
            console.print(
                Panel(
                    orchestrator.error or "Question generation failed.",
                    title="Generation Error",
                    border_style="red",
                )
            )
            console.print(Text("Commands: retry, quit", style="dim"))
        raw = await _read(input_provider)
        command = parse_session_command(raw)
        if command is None or command.type != "retry":
            return False
        orchestrator.error = None


async def _apply_command(
    command: SessionCommand,
    orchestrator: SessionOrchestrator,
    console: Console,
) -> None:
    navigation = orchestrator.navigation
    if command.type == "select" and command.choice is not None:
        if orchestrator.select_answer(command.choice):
            console.print(f"Selected [bold]{_OPTION_KEYS[command.choice]}[/].")
        else:
            console.print("[yellow]This question is already answered.[/]")
        return
    if command.type == "submit":
        result = orchestrator.submit_answer()
        if result is None:
            console.print("[yellow]Select an answer before submitting.[/]")
            return
        _render_feedback(console, orchestrator, result)
        return
    if command.type == "next":
        if not navigation.has_answered:
            console.print("[yellow]Submit an answer before moving on.[/]")
            return
        if (
            not navigation.is_last
            and navigation.current_index + 1 >= len(orchestrator.session.questions)
        ):
            console.print(Text("Generating next question...", style="dim"))
        await orchestrator.advance()
        return
    console.print("[red]That command is not available right now.[/]")


def _render_question(console: Console, orchestrator: SessionOrchestrator) -> None:
    question = orchestrator.current_question
    assert question is not None
    navigation = orchestrator.navigation
    position, total = orchestrator.progress
    header = Text.assemble(
        (f"Question {position}", "bold cyan"),
        (f" / {total}", "dim"),
    )
    console.print()
    console.rule(header)
    console.print(Text(question.question, style="bold"))

    table = Table(show_header=False, box=box.SIMPLE, expand=True)
    table.add_column("Key", justify="center", style="cyan")
    table.add_column("Option")
    selected = navigation.selected_answer
    for idx, option in enumerate(question.options):
        row_text = Text(("• " if idx == selected else "  ") + option)
        if idx == selected:
            row_text.stylize("bold green")
        table.add_row(str(idx + 1), row_text)
    console.print(table)

    if navigation.has_answered:
        hint = "n (next)" if not navigation.is_last else "n (finish)"
    else:
        hint = "1-4 to select, s (submit)"
    console.print(
        Text(
            f"Score {orchestrator.score}/{len(orchestrator.session.answers)} | "
            f"Commands: {hint}, q (quit)",
            style="dim",
        )
    )


def _render_feedback(
    console: Console,
    orchestrator: SessionOrchestrator,
    result: SubmitResult,
) -> None:
    question = orchestrator.current_question
    assert question is not None
    if result.is_correct:
        title, border = "Correct!", "green"
    else:
        title, border = (
            f"Incorrect. Answer: {question.correct_answer + 1}. "
            f"{question.correct_text}",
            "red",
        )
    console.print(Panel(question.explanation, title=title, border_style=border))


def _render_summary(console: Console, session: QuizSession) -> None:
    console.print()
    console.rule(Text("Quiz Complete", style="bold magenta"))

    answered = len(session.answers)
    accuracy = (session.score / answered) if answered else 0.0
    overview = Table(show_header=False, box=box.MINIMAL_DOUBLE_HEAD)
    overview.add_column("Metric", style="bold")
    overview.add_column("Value", justify="right")
    overview.add_row("Certificate", session.config.certificate_name)
    overview.add_row("Questions", str(len(session.questions)))
    overview.add_row("Correct", str(session.score))
    overview.add_row("Accuracy", f"{accuracy * 100:.1f}%")
    console.print(overview)

    by_id = {question.id: question for question in session.questions}
    responses = Table(title="Responses", box=box.SIMPLE, expand=True)
    responses.add_column("#", justify="right")
    responses.add_column("Question", overflow="fold")
    responses.add_column("Your answer")
    responses.add_column("Correct answer")
    responses.add_column("Result", justify="center")
    for idx, answer in enumerate(session.answers, start=1):
        question = by_id.get(answer.question_id)
        if question is None:
            continue
        responses.add_row(
            str(idx),
            question.question,
            question.options[answer.selected_answer],
            question.correct_text,
            "✅" if answer.is_correct else "❌",
        )
    console.print(responses)
