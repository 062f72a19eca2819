"""
VeriSearch Test Configuration
==============================

Shared fixtures, factories, and scripted boundary fakes for the entire
test suite.
"""

from __future__ import annotations

import asyncio
import os
import uuid
from typing import Any, Callable, Iterable, Optional

import pytest

# ── Ensure test mode ────────────────────────────────────────────
os.environ.setdefault("VERISEARCH_OPENAI_API_KEY", "sk-test-key-for-testing")

from verisearch.config import VeriSearchConfig, get_config
from verisearch.errors import GenerationError, VerificationError
from verisearch.generation.boundary import Generator
from verisearch.schemas.candidate import (
    Candidate,
    GenerationMode,
    Provenance,
    QueryContext,
    SamplingParams,
)
from verisearch.schemas.verification import VerificationResult
from verisearch.verify.verifier import BaseVerifier, VerifierKind


# ── Markers ─────────────────────────────────────────────────────

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: fast unit tests")
    config.addinivalue_line("markers", "integration: multi-component tests")
    config.addinivalue_line("markers", "slow: tests that take >5s")
    config.addinivalue_line("markers", "adversarial: hostile candidates and backends")


# ── Boundary fakes ──────────────────────────────────────────────

class ScriptedGenerator(Generator):
    """
    Deterministic generator keyed by sampling seed.

    - ANSWER mode: ``"Answer: <answers[seed % len(answers)]>"``.
    - STEP / ROLLOUT mode: ``"Step <d> (seed <s>)"`` where ``d`` is the
      context depth (at least 1); a path at ``complete_depth`` or deeper
      (or any ROLLOUT call) finishes with ``"Answer: <answer>"``.
    - Seeds in ``fail_seeds`` (or every seed when ``always_fail``)
      return a GenerationError.
    """

    def __init__(
        self,
        answers: Iterable[str] = ("42",),
        fail_seeds: Iterable[int] = (),
        always_fail: bool = False,
        complete_depth: int = 3,
        delay_s: float = 0.0,
        transient: bool = False,
    ):
        super().__init__(name="scripted")
        self.answers = list(answers)
        self.fail_seeds = set(fail_seeds)
        self.always_fail = always_fail
        self.complete_depth = complete_depth
        self.delay_s = delay_s
        self.transient = transient
        self.calls: list[tuple[QueryContext, SamplingParams]] = []

    def answer_for(self, seed: Optional[int]) -> str:
        return self.answers[(seed or 0) % len(self.answers)]

    async def generate(self, context: QueryContext, params: SamplingParams):
        self.calls.append((context, params))
        if self.delay_s:
            await asyncio.sleep(self.delay_s)
        if self.always_fail or params.seed in self.fail_seeds:
            return GenerationError(
                f"scripted failure for seed {params.seed}",
                transient=self.transient,
                generator=self.name,
            )

        answer = self.answer_for(params.seed)
        depth = max(context.depth, 1)
        if params.mode == GenerationMode.ANSWER:
            content, complete = f"Answer: {answer}", True
        elif params.mode == GenerationMode.ROLLOUT or depth >= self.complete_depth:
            content, complete = f"Answer: {answer}", True
        else:
            content, complete = f"Step {depth} (seed {params.seed})", False

        return Candidate(
            id=self.next_candidate_id(),
            content=content,
            complete=complete,
            provenance=Provenance(
                generator=self.name,
                temperature=params.temperature,
                seed=params.seed,
                mode=params.mode,
            ),
        )


class FakeVerifier(BaseVerifier):
    """
    Verifier driven by ``score_fn(candidate) -> float``.

    ``score_fn`` may raise VerificationError to simulate a failed check.
    """

    kind = VerifierKind.DETERMINISTIC

    def __init__(self, score_fn: Callable[[Candidate], float], delay_s: float = 0.0, **kwargs):
        super().__init__(name="fake", **kwargs)
        self.score_fn = score_fn
        self.delay_s = delay_s
        self.calls = 0

    async def _score(self, candidate: Candidate, context: QueryContext) -> VerificationResult:
        self.calls += 1
        if self.delay_s:
            await asyncio.sleep(self.delay_s)
        score = self.score_fn(candidate)
        return self._result(candidate, score=score, passed=score >= 0.5, rationale="fake")


def seed_score(candidate: Candidate) -> float:
    """Utility derived from the candidate's seed (varied but deterministic)."""
    seed = candidate.provenance.seed or 0
    return (seed * 7 % 11) / 10.0


def failing_score(candidate: Candidate) -> float:
    raise VerificationError("scripted verifier failure")


# ── Fixtures ────────────────────────────────────────────────────

@pytest.fixture
def config() -> VeriSearchConfig:
    """Default test config."""
    return get_config()


@pytest.fixture
def context() -> QueryContext:
    """A query with a known answer."""
    return QueryContext(query="What is 6 * 7?", ground_truth="42")


@pytest.fixture
def generator() -> ScriptedGenerator:
    """Generator that always answers 42."""
    return ScriptedGenerator(answers=["42"])


# ── Factories ───────────────────────────────────────────────────

def make_verification(
    score: float = 1.0,
    candidate_id: str = "cand-0",
    verifier: str = "deterministic",
    score_range: tuple[float, float] = (0.0, 1.0),
    higher_is_better: bool = True,
    passed: Optional[bool] = None,
    error: bool = False,
    **metadata: Any,
) -> VerificationResult:
    """Factory for creating test verification results."""
    if error:
        return VerificationResult.error_result(
            verifier=verifier,
            candidate_id=candidate_id,
            rationale="verification failed",
            score_range=score_range,
            higher_is_better=higher_is_better,
            **metadata,
        )
    return VerificationResult(
        verifier=verifier,
        candidate_id=candidate_id,
        score=score,
        score_range=score_range,
        higher_is_better=higher_is_better,
        passed=score >= 0.5 if passed is None else passed,
        rationale="test",
        metadata=metadata,
    )


def make_candidate(
    content: str = "Answer: 42",
    candidate_id: Optional[str] = None,
    utility: Optional[float] = None,
    error: bool = False,
    complete: bool = True,
    seed: Optional[int] = None,
) -> Candidate:
    """
    Factory for creating test candidates.

    Pass ``utility`` to attach a verification with that score, or
    ``error=True`` to attach an errored verification.
    """
    if candidate_id is None:
        candidate_id = f"cand-{uuid.uuid4().hex[:8]}"
    verification = None
    if error:
        verification = make_verification(candidate_id=candidate_id, error=True)
    elif utility is not None:
        verification = make_verification(score=utility, candidate_id=candidate_id)
    return Candidate(
        id=candidate_id,
        content=content,
        complete=complete,
        verification=verification,
        provenance=Provenance(generator="test", seed=seed),
    )


def make_answers(*answers: str, utility: Optional[float] = None) -> list[Candidate]:
    """Candidates answering ``answers`` in order (ids cand-0, cand-1, ...)."""
    return [
        make_candidate(f"Answer: {a}", candidate_id=f"cand-{i}", utility=utility)
        for i, a in enumerate(answers)
    ]
