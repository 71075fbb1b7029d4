from __future__ import annotations

import asyncio
import json
from types import SimpleNamespace

import pytest

from fixtures import StubClient, make_config, question_payload, question_text

from quizcraft.core.config import ConfigError, default_config
from quizcraft.quiz.generator import (
    QuestionGenerator,
    build_batch_prompt,
    build_single_prompt,
    chunk_counts,
    generate_quiz,
)
from quizcraft.quiz.parsing import (
    MalformedResponseError,
    QuizGenerationError,
    RetriesExhaustedError,
    TransientGenerationError,
)


def _batch_text(*indexes: int, **overrides) -> str:
    return json.dumps([question_payload(i, **overrides) for i in indexes])


def test_prompts_name_certificate_language_and_shape():
    single = build_single_prompt("CompTIA Security+", "es", 4)
    batch = build_batch_prompt(3, "CompTIA Security+", "xx")

    assert '"CompTIA Security+"' in single
    assert "Generate all content in Spanish" in single
    assert "question number 4" in single
    assert '"correctAnswer": 0' in single
    assert "Generate exactly 3 multiple-choice quiz questions" in batch
    assert "Generate all content in English" in batch
    assert "JSON array" in batch


@pytest.mark.parametrize(
    "total, expected",
    [(1, [1]), (5, [5]), (12, [5, 5, 2]), (20, [5, 5, 5, 5])],
)
def test_chunk_counts(total, expected):
    assert chunk_counts(total) == expected


def test_chunk_counts_rejects_bad_input():
    assert chunk_counts(7, 3) == [3, 3, 1]
    with pytest.raises(ValueError):
        chunk_counts(7, 6)
    with pytest.raises(ValueError):
        chunk_counts(0)


def test_generate_one_parses_fenced_response(make_generator):
    client = StubClient(question_text(1, fenced=True))
    generator = make_generator(client)

    question = asyncio.run(
        generator.generate_one("AWS Certified Developer", "en", 1)
    )

    assert question.id.startswith("q-")
    assert question.options == tuple(question_payload(1)["options"])
    call = client.calls[0]
    assert call["model"] == "gpt-4o-mini"
    assert call["messages"][0]["role"] == "system"
    assert "AWS Certified Developer" in client.prompts()[0]


def test_generate_one_retries_timeouts_with_linear_backoff(make_generator, sleeps):
    client = StubClient(
        asyncio.TimeoutError(),
        asyncio.TimeoutError(),
        question_text(2),
    )
    generator = make_generator(client)

    question = asyncio.run(generator.generate_one("Cert", "en", 2))

    assert question.question == "Question 2?"
    assert len(client.calls) == 3
    assert sleeps.delays == [1.0, 2.0]


def test_generate_one_surfaces_exhausted_validation_failures(
    make_generator, sleeps
):
    bad = question_text(1, options=["a", "b", "c"])
    generator = make_generator(StubClient(bad, bad, bad))

    with pytest.raises(RetriesExhaustedError) as exc:
        asyncio.run(generator.generate_one("Cert", "en", 1))

    assert str(exc.value) == (
        "Failed to generate question: Invalid question format from AI"
    )
    assert isinstance(exc.value.cause, MalformedResponseError)
    assert sleeps.delays == [1.0, 2.0]


def test_generate_one_fails_fast_on_malformed_when_configured(
    make_generator, sleeps
):
    client = StubClient("not json at all")
    generator = make_generator(client, retry_malformed=False)

    with pytest.raises(RetriesExhaustedError) as exc:
        asyncio.run(generator.generate_one("Cert", "en", 1))

    assert "Failed to parse AI response as JSON" in str(exc.value)
    assert len(client.calls) == 1
    assert sleeps.delays == []


def test_generate_one_wraps_transport_errors(make_generator):
    client = StubClient(ConnectionError("connection reset"))
    generator = make_generator(client, max_retries=0)

    with pytest.raises(RetriesExhaustedError) as exc:
        asyncio.run(generator.generate_one("Cert", "en", 1))

    assert isinstance(exc.value.cause, TransientGenerationError)
    assert "connection reset" in str(exc.value)


def test_generate_one_times_out_slow_requests(make_generator):
    class _SlowCompletions:
        async def create(self, **kwargs):
            await asyncio.sleep(5)

    client = SimpleNamespace(chat=SimpleNamespace(completions=_SlowCompletions()))
    generator = make_generator(
        client, max_retries=0, question_timeout_seconds=0.01
    )

    with pytest.raises(RetriesExhaustedError) as exc:
        asyncio.run(generator.generate_one("Cert", "en", 1))

    assert "Request timed out after 10ms" in str(exc.value)


def test_generate_one_rejects_empty_choices(make_generator):
    class _EmptyCompletions:
        async def create(self, **kwargs):
            return SimpleNamespace(choices=[])

    client = SimpleNamespace(chat=SimpleNamespace(completions=_EmptyCompletions()))
    generator = make_generator(client, max_retries=0)

    with pytest.raises(RetriesExhaustedError) as exc:
        asyncio.run(generator.generate_one("Cert", "en", 1))

    assert "AI response contained no text" in str(exc.value)


def test_generate_batch_returns_valid_subset(make_generator):
    payload = [question_payload(i) for i in range(1, 6)]
    del payload[2]["explanation"]
    client = StubClient(json.dumps(payload))
    generator = make_generator(client)

    questions = asyncio.run(generator.generate_batch(5, "Cert", "en"))

    assert len(questions) == 4
    assert len(client.calls) == 1


def test_generate_batch_rejects_oversized_request(make_generator):
    generator = make_generator(StubClient())

    with pytest.raises(ValueError):
        asyncio.run(generator.generate_batch(6, "Cert", "en"))


def test_generate_many_chunks_and_skips_failed_batches(make_generator, sleeps):
    client = StubClient(
        _batch_text(1, 2, 3, 4, 5),
        "[]",
        "[]",
        "[]",
        _batch_text(11, 12),
    )
    generator = make_generator(client)

    questions = asyncio.run(generator.generate_many(12, "Cert", "en"))

    assert [q.question for q in questions] == [
        f"Question {i}?" for i in (1, 2, 3, 4, 5, 11, 12)
    ]
    assert "exactly 2 multiple-choice" in client.prompts()[-1]
    # Retry backoff for the failed batch plus the delay between batches.
    assert sleeps.delays == [0.5, 1.0, 2.0, 0.5]


def test_generate_many_caps_at_total(make_generator):
    client = StubClient(_batch_text(1, 2, 3, 4, 5, 6))
    generator = make_generator(client)

    questions = asyncio.run(generator.generate_many(3, "Cert", "en"))

    assert len(questions) == 3


def test_generate_many_raises_when_nothing_generated(make_generator):
    generator = make_generator(StubClient("[]"), max_retries=0)

    with pytest.raises(QuizGenerationError) as exc:
        asyncio.run(generator.generate_many(2, "Cert", "en"))

    assert "No questions were generated successfully" in str(exc.value)


def test_generate_quiz_builds_record(make_generator):
    generator = make_generator(StubClient(_batch_text(1, 2)))

    record = asyncio.run(generate_quiz(generator, make_config(2, name="CISSP")))

    assert record.id.startswith("quiz-")
    assert record.title == "CISSP Practice Quiz"
    assert record.certificate_name == "CISSP"
    assert len(record.questions) == 2


def test_generate_quiz_validates_before_requesting(make_generator):
    client = StubClient()
    generator = make_generator(client)

    with pytest.raises(ConfigError):
        asyncio.run(generate_quiz(generator, make_config(21)))
    with pytest.raises(ConfigError):
        asyncio.run(generate_quiz(generator, make_config(2, api_key="")))

    assert client.calls == []


def test_from_config_copies_provider_settings():
    config = default_config()

    generator = QuestionGenerator.from_config(StubClient(), config)

    assert generator.model == config.openai.model
    assert generator.max_output_tokens == config.openai.max_output_tokens
    assert generator.settings is config.generation
