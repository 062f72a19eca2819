"""
Generation Boundary Tests
==========================

Tests the retry policy and the OpenAI backend's prompt construction and
failure mapping, with the HTTP client replaced by an in-process stub.
"""

from __future__ import annotations

from types import SimpleNamespace

import httpx
import openai
import pytest

from verisearch.errors import GenerationError, InvalidConfiguration
from verisearch.generation import OpenAIGenerator, RetryPolicy
from verisearch.generation.boundary import is_failure
from verisearch.generation.openai_backend import SYSTEM_PROMPT
from verisearch.schemas.candidate import Candidate, GenerationMode, QueryContext, SamplingParams


class Flaky:
    """Returns queued outcomes in order and counts calls."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = 0

    async def __call__(self, *args, **kwargs):
        self.calls += 1
        return self.outcomes.pop(0)


class StubCompletions:
    """Stands in for ``client.chat.completions``."""

    def __init__(self, text: str = "Answer: 42", error: Exception | None = None):
        self.text = text
        self.error = error
        self.requests: list[dict] = []

    async def create(self, **kwargs):
        self.requests.append(kwargs)
        if self.error is not None:
            raise self.error
        return SimpleNamespace(
            choices=[SimpleNamespace(message=SimpleNamespace(content=self.text))],
            usage=SimpleNamespace(prompt_tokens=12, completion_tokens=5),
        )


def _generator(completions: StubCompletions) -> OpenAIGenerator:
    generator = OpenAIGenerator(api_key="sk-test", retry_policy=RetryPolicy(max_attempts=2, backoff_base_s=0.0))
    generator._client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    return generator


_REQUEST = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")


# ────────────────────────────────────────────────────────────────
# Retry policy
# ────────────────────────────────────────────────────────────────

class TestRetryPolicy:
    """Retries on transient GenerationError values only."""

    @pytest.mark.asyncio
    async def test_transient_then_success(self):
        fn = Flaky(GenerationError("rate limited", transient=True), "ok")
        result = await RetryPolicy(max_attempts=3, backoff_base_s=0.0).call(fn)
        assert result == "ok"
        assert fn.calls == 2

    @pytest.mark.asyncio
    async def test_permanent_not_retried(self):
        error = GenerationError("bad request", transient=False)
        fn = Flaky(error, "ok")
        result = await RetryPolicy(max_attempts=3, backoff_base_s=0.0).call(fn)
        assert result is error
        assert fn.calls == 1

    @pytest.mark.asyncio
    async def test_exhausted_returns_last_error(self):
        """After the last attempt the final error value is returned, not raised."""
        errors = [GenerationError(f"timeout {i}", transient=True) for i in range(3)]
        fn = Flaky(*errors)
        result = await RetryPolicy(max_attempts=3, backoff_base_s=0.0).call(fn)
        assert result is errors[-1]
        assert fn.calls == 3

    def test_invalid(self):
        with pytest.raises(InvalidConfiguration):
            RetryPolicy(max_attempts=0)


# ────────────────────────────────────────────────────────────────
# OpenAI backend
# ────────────────────────────────────────────────────────────────

class TestOpenAIGenerator:
    """Prompting and failure mapping."""

    def test_answer_messages(self):
        messages = OpenAIGenerator.build_messages(QueryContext(query="2+2?"), SamplingParams())
        assert messages[0] == {"role": "system", "content": SYSTEM_PROMPT}
        assert messages[1]["content"] == "2+2?"

    def test_step_messages_include_partial(self):
        context = QueryContext(query="2+2?").extend("Step 1: add", 2)
        messages = OpenAIGenerator.build_messages(context, SamplingParams(mode=GenerationMode.STEP))
        assert "Step 1: add" in messages[1]["content"]
        assert "NEXT reasoning step" in messages[1]["content"]

    def test_raw_prompt(self):
        context = QueryContext(query="Rate this", metadata={"raw_prompt": True})
        assert OpenAIGenerator.build_messages(context, SamplingParams()) == [
            {"role": "user", "content": "Rate this"}
        ]

    @pytest.mark.asyncio
    async def test_successful_generation(self):
        completions = StubCompletions("Answer: 42")
        outcome = await _generator(completions).generate(
            QueryContext(query="6*7?"), SamplingParams(temperature=0.3, seed=9)
        )
        assert isinstance(outcome, Candidate)
        assert outcome.content == "Answer: 42"
        assert outcome.provenance.seed == 9
        assert outcome.provenance.completion_tokens == 5
        assert completions.requests[0]["seed"] == 9
        assert completions.requests[0]["temperature"] == 0.3

    @pytest.mark.asyncio
    async def test_step_without_answer_is_incomplete(self):
        outcome = await _generator(StubCompletions("First, multiply.")).generate(
            QueryContext(query="6*7?"), SamplingParams(mode=GenerationMode.STEP)
        )
        assert outcome.complete is False

    @pytest.mark.asyncio
    async def test_connection_error_is_transient_and_retried(self):
        completions = StubCompletions(error=openai.APIConnectionError(request=_REQUEST))
        outcome = await _generator(completions).generate(QueryContext(query="q"), SamplingParams())
        assert isinstance(outcome, GenerationError)
        assert outcome.transient is True
        assert len(completions.requests) == 2
        assert is_failure(outcome)

    @pytest.mark.asyncio
    async def test_api_error_is_permanent(self):
        completions = StubCompletions(error=openai.OpenAIError("invalid model"))
        outcome = await _generator(completions).generate(QueryContext(query="q"), SamplingParams())
        assert isinstance(outcome, GenerationError)
        assert outcome.transient is False
        assert len(completions.requests) == 1

    @pytest.mark.asyncio
    async def test_empty_completion_fails(self):
        outcome = await _generator(StubCompletions("   ")).generate(QueryContext(query="q"), SamplingParams())
        assert isinstance(outcome, GenerationError)
