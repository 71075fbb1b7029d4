"""Question generator clients and the bulk generation policy.

``QuestionGenerator`` wraps an async OpenAI-compatible client. Every call is
raced against a timeout and retried with linear backoff; a caller only ever
sees a validated ``Question`` (or list of them) or a ``GenerationError``.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, List, Optional, TypeVar

from ..core.config import GenerationConfig, QuizcraftConfig, default_config
from .models import (
    QuizConfig,
    QuizRecord,
    Question,
    language_name,
    new_id,
    validate_quiz_config,
)
from .parsing import (
    GenerationError,
    MalformedResponseError,
    QuizGenerationError,
    RetriesExhaustedError,
    TransientGenerationError,
    parse_question_batch,
    parse_single_question,
)

__all__ = [
    "MAX_BATCH_SIZE",
    "QuestionGenerator",
    "chunk_counts",
    "generate_quiz",
    "build_single_prompt",
    "build_batch_prompt",
]

logger = logging.getLogger(__name__)

MAX_BATCH_SIZE = 5
SYSTEM_PROMPT = "You are an expert certification exam creator."

SleepFn = Callable[[float], Awaitable[Any]]
T = TypeVar("T")

_QUESTION_RULES = (
    "1. Be based on the latest documentation, best practices, and exam "
    "objectives\n"
    "2. Have 4 multiple choice options\n"
    "3. Have exactly one correct answer\n"
    "4. Include a detailed explanation of why the correct answer is right "
    "and why other options are wrong\n"
    "5. Be at the appropriate difficulty level for the certification\n"
    "6. {coverage}\n"
    "7. Use proper {language} language and terminology"
)

_QUESTION_SHAPE = (
    '{\n'
    '  "question": "Question text here?",\n'
    '  "options": ["Option A", "Option B", "Option C", "Option D"],\n'
    '  "correctAnswer": 0,\n'
    '  "explanation": "Detailed explanation of the correct answer and why '
    'other options are incorrect."\n'
    '}'
)


def build_single_prompt(
    certificate_name: str, language: str, question_number: int
) -> str:
    name = language_name(language)
    rules = _QUESTION_RULES.format(
        coverage="Cover a specific domain/topic of the certification",
        language=name,
    )
    return (
        "Generate exactly 1 multiple-choice quiz question for the "
        f'"{certificate_name}" certification.\n\n'
        f"IMPORTANT: Generate all content in {name}. All questions, options, "
        f"and explanations must be written in {name}.\n\n"
        f"This is question number {question_number}. Make sure it covers a "
        "different topic/domain than previous questions to ensure variety.\n\n"
        f"The question should:\n{rules}\n\n"
        "Return ONLY a valid JSON object with this exact structure (no "
        f"additional text):\n{_QUESTION_SHAPE}\n\n"
        "Generate the question now."
    )


def build_batch_prompt(
    count: int, certificate_name: str, language: str
) -> str:
    name = language_name(language)
    rules = _QUESTION_RULES.format(
        coverage="Cover different domains/topics of the certification",
        language=name,
    )
    shape = "[\n" + _QUESTION_SHAPE + "\n]"
    return (
        f"Generate exactly {count} multiple-choice quiz questions for the "
        f'"{certificate_name}" certification.\n\n'
        f"IMPORTANT: Generate all content in {name}. All questions, options, "
        f"and explanations must be written in {name}.\n\n"
        f"Each question should:\n{rules}\n\n"
        "Return ONLY a valid JSON array with this exact structure (no "
        f"additional text):\n{shape}\n\n"
        f"Generate exactly {count} questions now."
    )


def chunk_counts(total: int, max_batch_size: int = MAX_BATCH_SIZE) -> List[int]:
    """Split ``total`` questions into batch sizes of at most ``max_batch_size``.

    >>> chunk_counts(12)
    [5, 5, 2]
    """

    if not 1 <= max_batch_size <= MAX_BATCH_SIZE:
        raise ValueError(
            f"batch size must be between 1 and {MAX_BATCH_SIZE}"
        )
    if total <= 0:
        raise ValueError("total must be a positive integer")
    full, remainder = divmod(total, max_batch_size)
    counts = [max_batch_size] * full
    if remainder:
        counts.append(remainder)
    return counts


class QuestionGenerator:
    """Issue single and batch generation requests with retry and timeout."""

    def __init__(
        self,
        client: Any,
        *,
        settings: Optional[GenerationConfig] = None,
        model: str = "gpt-4o-mini",
        temperature: float = 0.7,
        max_output_tokens: int = 4096,
        sleep: SleepFn = asyncio.sleep,
    ) -> None:
        self._client = client
        self.settings = settings or default_config().generation
        self.model = model
        self.temperature = temperature
        self.max_output_tokens = max_output_tokens
        self._sleep = sleep

    @classmethod
    def from_config(
        cls,
        client: Any,
        config: QuizcraftConfig,
        *,
        sleep: SleepFn = asyncio.sleep,
    ) -> "QuestionGenerator":
        return cls(
            client,
            settings=config.generation,
            model=config.openai.model,
            temperature=config.openai.temperature,
            max_output_tokens=config.openai.max_output_tokens,
            sleep=sleep,
        )

    async def sleep(self, seconds: float) -> None:
        if seconds > 0:
            await self._sleep(seconds)

    async def _complete(self, prompt: str, *, timeout: float) -> str:
        try:
            request = self._client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                temperature=self.temperature,
                max_tokens=self.max_output_tokens,
            )
            response = await asyncio.wait_for(request, timeout)
        except asyncio.TimeoutError as exc:
            raise TransientGenerationError(
                f"Request timed out after {int(timeout * 1000)}ms"
            ) from exc
        except GenerationError:
            raise
        except Exception as exc:
            raise TransientGenerationError(str(exc) or type(exc).__name__) from exc
        try:
            content = response.choices[0].message.content
        except (AttributeError, IndexError, TypeError) as exc:
            raise MalformedResponseError("AI response contained no text") from exc
        return (content or "").strip()

    async def _with_retries(
        self, operation: Callable[[], Awaitable[T]], *, label: str
    ) -> T:
        attempt = 0
        while True:
            try:
                return await operation()
            except MalformedResponseError as exc:
                if not self.settings.retry_malformed:
                    raise RetriesExhaustedError(f"{label}: {exc}", cause=exc) from exc
                failure: GenerationError = exc
            except TransientGenerationError as exc:
                failure = exc
            if attempt >= self.settings.max_retries:
                raise RetriesExhaustedError(
                    f"{label}: {failure}", cause=failure
                ) from failure
            delay = self.settings.backoff_seconds * (attempt + 1)
            logger.warning(
                "Generation attempt failed; retrying",
                extra={
                    "attempt": attempt + 1,
                    "cause": str(failure),
                    "delay_seconds": delay,
                },
            )
            await self.sleep(delay)
            attempt += 1

    async def generate_one(
        self, certificate_name: str, language: str, question_number: int
    ) -> Question:
        """Generate one question; ``question_number`` is only a variety hint."""

        prompt = build_single_prompt(certificate_name, language, question_number)

        async def attempt() -> Question:
            text = await self._complete(
                prompt, timeout=self.settings.question_timeout_seconds
            )
            return parse_single_question(text)

        return await self._with_retries(
            attempt, label="Failed to generate question"
        )

    async def generate_batch(
        self, count: int, certificate_name: str, language: str
    ) -> List[Question]:
        """Generate up to ``count`` questions in one request.

        Returns the valid subset of the response; deciding whether a short
        batch is acceptable is left to the caller.
        """

        if not 1 <= count <= self.settings.max_batch_size:
            raise ValueError(
                "batch size must be between 1 and "
                f"{self.settings.max_batch_size}"
            )
        prompt = build_batch_prompt(count, certificate_name, language)

        async def attempt() -> List[Question]:
            text = await self._complete(
                prompt, timeout=self.settings.batch_timeout_seconds
            )
            return parse_question_batch(text)

        return await self._with_retries(
            attempt, label="Failed to generate question batch"
        )

    async def generate_many(
        self, total: int, certificate_name: str, language: str
    ) -> List[Question]:
        """Run the chunked batch policy for ``total`` questions.

        Batches run one after another with a short delay between them. A
        batch that exhausts its retries is skipped; only an empty aggregate
        is an error.
        """

        counts = chunk_counts(total, self.settings.max_batch_size)
        collected: List[Question] = []
        for position, count in enumerate(counts):
            try:
                batch = await self.generate_batch(count, certificate_name, language)
            except RetriesExhaustedError as exc:
                logger.warning(
                    "Skipping failed batch",
                    extra={"batch": position + 1, "size": count, "cause": str(exc)},
                )
            else:
                collected.extend(batch)
            if position + 1 < len(counts):
                await self.sleep(self.settings.batch_delay_seconds)
        if not collected:
            raise QuizGenerationError(
                "Failed to generate quiz: No questions were generated "
                "successfully"
            )
        return collected[:total]


async def generate_quiz(
    generator: QuestionGenerator,
    config: QuizConfig,
    *,
    require_credential: bool = True,
) -> QuizRecord:
    """Validate ``config`` and bulk-generate a stored quiz for it.

    Callers that resolved the credential elsewhere (for example from the
    environment) pass ``require_credential=False``.
    """

    validate_quiz_config(config, require_credential=require_credential)
    questions = await generator.generate_many(
        config.question_count, config.certificate_name, config.language
    )
    logger.info(
        "Generated quiz",
        extra={
            "certificate": config.certificate_name,
            "requested": config.question_count,
            "generated": len(questions),
        },
    )
    return QuizRecord(
        id=new_id("quiz"),
        title=f"{config.certificate_name} Practice Quiz",
        certificate_id=config.certificate_id,
        certificate_name=config.certificate_name,
        language=config.language,
        questions=list(questions),
    )

