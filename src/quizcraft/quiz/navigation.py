"""Quiz navigation state machine.

Pure state transitions over a growing question list: no I/O, no awaiting.
The list is read by reference so questions appended by background
generation become visible without any hand-off.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Sequence

from .models import OPTION_COUNT, AnswerRecord, Question

__all__ = ["NavigationState", "SubmitResult", "QuizNavigation"]

CompletionCallback = Callable[[tuple[AnswerRecord, ...]], None]


class NavigationState(str, Enum):
    UNANSWERED = "unanswered"
    ANSWERED = "answered"
    COMPLETED = "completed"


@dataclass(frozen=True)
class SubmitResult:
    """Outcome of a successful ``submit_answer`` call."""

    record: AnswerRecord
    answers: tuple[AnswerRecord, ...]
    score: int

    @property
    def is_correct(self) -> bool:
        return self.record.is_correct


class QuizNavigation:
    """Track index, tentative selection, answers and completion."""

    def __init__(
        self,
        questions: Sequence[Question],
        target_count: int,
        *,
        answers: Sequence[AnswerRecord] = (),
        on_complete: Optional[CompletionCallback] = None,
    ) -> None:
        if target_count < 1:
            raise ValueError("target_count must be at least 1")
        if len(answers) > min(target_count, len(questions)):
            raise ValueError("more answers than available questions")
        self._questions = questions
        self._target = target_count
        self._on_complete = on_complete
        self._answers: list[AnswerRecord] = list(answers)
        self._selected: Optional[int] = None
        if self._answers and len(self._answers) == target_count:
            # Every question answered but never advanced past the last one.
            self._index = target_count - 1
            self._state = NavigationState.ANSWERED
        else:
            self._index = len(self._answers)
            self._state = NavigationState.UNANSWERED

    @property
    def state(self) -> NavigationState:
        return self._state

    @property
    def current_index(self) -> int:
        return self._index

    @property
    def target_count(self) -> int:
        return self._target

    @property
    def selected_answer(self) -> Optional[int]:
        return self._selected

    @property
    def answers(self) -> tuple[AnswerRecord, ...]:
        return tuple(self._answers)

    @property
    def score(self) -> int:
        return sum(1 for answer in self._answers if answer.is_correct)

    @property
    def current_question(self) -> Optional[Question]:
        if self._index < len(self._questions):
            return self._questions[self._index]
        return None

    @property
    def has_answered(self) -> bool:
        return self._state is NavigationState.ANSWERED

    @property
    def is_completed(self) -> bool:
        return self._state is NavigationState.COMPLETED

    @property
    def is_last(self) -> bool:
        return self._index >= self._target - 1

    @property
    def progress(self) -> tuple[int, int]:
        """Return ``(position, total)`` with a 1-based position."""

        return min(self._index + 1, self._target), self._target

    def select_answer(self, index: int) -> bool:
        if not 0 <= index < OPTION_COUNT:
            raise ValueError(f"answer index must be in [0, {OPTION_COUNT})")
        if self._state is not NavigationState.UNANSWERED:
            return False
        if self.current_question is None:
            return False
        self._selected = index
        return True

    def submit_answer(self) -> Optional[SubmitResult]:
        """Record the selection; returns ``None`` when the call is ignored."""

        question = self.current_question
        if (
            self._state is not NavigationState.UNANSWERED
            or self._selected is None
            or question is None
        ):
            return None
        record = AnswerRecord.for_question(question, self._selected)
        self._answers.append(record)
        self._state = NavigationState.ANSWERED
        return SubmitResult(
            record=record, answers=self.answers, score=self.score
        )

    def advance(self) -> bool:
        if self._state is not NavigationState.ANSWERED:
            return False
        if self.is_last:
            self._state = NavigationState.COMPLETED
            self._selected = None
            if self._on_complete is not None:
                self._on_complete(self.answers)
            return True
        self._index += 1
        self._selected = None
        self._state = NavigationState.UNANSWERED
        return True

    def restart(self) -> None:
        self._index = 0
        self._selected = None
        self._answers = []
        self._state = NavigationState.UNANSWERED

    def truncate_target(self, count: int) -> None:
        """Shrink the target when no more questions can be acquired."""

        if count < 1 or count >= self._target:
            return
        self._target = count
        if self._index >= count:
            # Nothing left to answer here: park on the last answered question.
            self._index = count - 1
            self._selected = None
            self._state = NavigationState.ANSWERED
