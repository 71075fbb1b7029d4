"""Session orchestrator: keeps question generation ahead of navigation.

The first question is fetched while the caller waits. After it arrives a
background task requests the remaining questions one at a time, appending
each success to the session. Navigation reads the same list, so the user can
answer early questions while later ones are still being generated.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional

from .generator import QuestionGenerator
from .models import AnswerRecord, QuizRecord, QuizSession
from .navigation import NavigationState, QuizNavigation, SubmitResult
from .parsing import RetriesExhaustedError

__all__ = ["SessionOrchestrator", "PersistFn"]

logger = logging.getLogger(__name__)

PersistFn = Callable[[QuizSession], None]


class SessionOrchestrator:
    """Drive one ``QuizSession`` through generation, answering and saving."""

    def __init__(
        self,
        session: QuizSession,
        *,
        generator: Optional[QuestionGenerator] = None,
        persist: Optional[PersistFn] = None,
        stagger_seconds: Optional[float] = None,
    ) -> None:
        self.session = session
        self.generator = generator
        self._persist = persist
        if stagger_seconds is None:
            stagger_seconds = (
                generator.settings.stagger_seconds if generator else 0.0
            )
        self._stagger = stagger_seconds
        self.navigation = QuizNavigation(
            session.questions,
            session.target_count,
            answers=session.answers,
            on_complete=self._handle_complete,
        )
        self.error: Optional[str] = None
        self.generating = False
        self._background: Optional[asyncio.Task[None]] = None
        self._filling = False
        self._appended: Optional[asyncio.Condition] = None

    @classmethod
    def for_replay(
        cls,
        record: QuizRecord,
        *,
        persist: Optional[PersistFn] = None,
        api_key: str = "",
    ) -> "SessionOrchestrator":
        session = QuizSession.create(
            record.to_config(api_key), questions=record.questions
        )
        return cls(session, persist=persist)

    # -- read-only views used by the UI -------------------------------------

    @property
    def current_question(self):
        return self.navigation.current_question

    @property
    def progress(self) -> tuple[int, int]:
        return self.navigation.progress

    @property
    def score(self) -> int:
        return self.session.score

    @property
    def is_completed(self) -> bool:
        return self.navigation.is_completed

    @property
    def background_running(self) -> bool:
        return self._filling

    # -- generation ---------------------------------------------------------

    def _condition(self) -> asyncio.Condition:
        if self._appended is None:
            self._appended = asyncio.Condition()
        return self._appended

    async def start(self) -> None:
        """Acquire question #1 if needed, then fill the rest in background.

        Raises ``RetriesExhaustedError`` when the first question cannot be
        generated; ``error`` then holds the message for the UI.
        """

        if not self.session.questions:
            await self._acquire_first()
        self._start_background()

    async def retry(self) -> None:
        self.error = None
        await self.start()

    async def _acquire_first(self) -> None:
        if self.generator is None:
            raise RuntimeError("no question generator configured")
        config = self.session.config
        self.error = None
        self.generating = True
        try:
            question = await self.generator.generate_one(
                config.certificate_name, config.language, 1
            )
        except RetriesExhaustedError as exc:
            self.error = str(exc)
            logger.error(
                "First question failed",
                extra={"session_id": self.session.id, "cause": str(exc)},
            )
            raise
        finally:
            self.generating = False
        self.session.add_question(question)

    def _start_background(self) -> None:
        if (
            self.generator is None
            or self.session.is_full
            or self.background_running
        ):
            return
        self._condition()
        self._filling = True
        self._background = asyncio.create_task(self._fill_background())

    async def _fill_background(self) -> None:
        assert self.generator is not None
        config = self.session.config
        condition = self._condition()
        first_number = len(self.session.questions) + 1
        try:
            for number in range(first_number, self.session.target_count + 1):
                if self.session.is_full or self.navigation.is_completed:
                    break
                await self.generator.sleep(self._stagger)
                try:
                    question = await self.generator.generate_one(
                        config.certificate_name, config.language, number
                    )
                except RetriesExhaustedError as exc:
                    logger.warning(
                        "Background question failed; skipping",
                        extra={
                            "session_id": self.session.id,
                            "question_number": number,
                            "cause": str(exc),
                        },
                    )
                    continue
                async with condition:
                    self.session.add_question(question)
                    condition.notify_all()
        finally:
            self._filling = False
            async with condition:
                condition.notify_all()

    async def request_next(self, index: Optional[int] = None) -> bool:
        """Make sure the question at ``index`` exists before moving to it.

        Returns ``False`` when the question could not be acquired; the
        navigation target is then shrunk to what was acquired so the quiz
        can still finish.
        """

        if index is None:
            index = self.navigation.current_index + 1
        questions = self.session.questions
        if index < len(questions):
            return True
        if index >= self.navigation.target_count:
            return False

        if self.background_running:
            condition = self._condition()
            async with condition:
                await condition.wait_for(
                    lambda: index < len(questions) or not self.background_running
                )
            if index < len(questions):
                return True

        if self.generator is not None:
            config = self.session.config
            self.generating = True
            try:
                question = await self.generator.generate_one(
                    config.certificate_name, config.language, len(questions) + 1
                )
            except RetriesExhaustedError as exc:
                logger.warning(
                    "Question unavailable; ending session early",
                    extra={"session_id": self.session.id, "cause": str(exc)},
                )
            else:
                self.session.add_question(question)
                return True
            finally:
                self.generating = False

        self._truncate()
        return False

    def _truncate(self) -> None:
        acquired = len(self.session.questions)
        self.navigation.truncate_target(acquired)
        self.session.target_count = self.navigation.target_count

    # -- user actions -------------------------------------------------------

    def select_answer(self, index: int) -> bool:
        return self.navigation.select_answer(index)

    def submit_answer(self) -> Optional[SubmitResult]:
        result = self.navigation.submit_answer()
        if result is None:
            return None
        self.session.record_answer(result.record)
        self._save()
        return result

    async def ensure_current(self) -> bool:
        """Acquire the question at the current index when it is missing.

        A resumed session may stop short of the question the user is on.
        """

        navigation = self.navigation
        if navigation.is_completed or navigation.current_question is not None:
            return True
        return await self.request_next(navigation.current_index)

    async def advance(self) -> bool:
        navigation = self.navigation
        if navigation.state is not NavigationState.ANSWERED:
            return False
        if not navigation.is_last:
            await self.request_next(navigation.current_index + 1)
        return navigation.advance()

    def restart(self) -> None:
        """Start a fully acquired session over from the first question."""

        if not self.session.is_full:
            raise RuntimeError("only a fully acquired session can restart")
        self.navigation.restart()
        self.session.replace_answers([])
        self.session.completed = False

    async def exit(self) -> None:
        await self._cancel_background()
        if self.session.questions:
            self._save()

    # -- internals ----------------------------------------------------------

    def _handle_complete(self, answers: tuple[AnswerRecord, ...]) -> None:
        self.session.replace_answers(answers)
        self.session.completed = True
        if self._background is not None and not self._background.done():
            self._background.cancel()
            self._filling = False
        logger.info(
            "Session completed",
            extra={
                "session_id": self.session.id,
                "score": self.session.score,
                "answered": len(answers),
            },
        )
        self._save()

    async def _cancel_background(self) -> None:
        task = self._background
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        self._filling = False

    def _save(self) -> None:
        if self._persist is not None:
            self._persist(self.session)
