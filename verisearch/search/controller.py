"""
Search Controller Interface
============================

Abstract base class for the search controllers (diverse decoding, beam
search, MCTS). A controller orchestrates generation and verification
over many candidates or partial paths.

Contract:
    run(context, budget) -> (best Candidate | None, SearchTrace)

    - ``budget`` bounds total generation calls; running out ends the run
      normally with ``stop_reason="budget_exhausted"``.
    - Every batch is generated, then verified, through a BatchExecutor;
      decisions are taken only on complete batches.
    - Failed generations are counted in the trace, never raised.
    - ``best`` is None only when no candidate was ever produced.

    propose(context, n) -> Proposal

    Used by the adaptive sampler: consumes ``n`` generation slots and
    returns the verified candidates they produced. The default runs ``n``
    independent searches concurrently, each with its own arena and
    budget; diverse decoding overrides it with one flat batch.
"""

from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from functools import partial
from typing import Optional, Sequence

from verisearch.errors import BudgetExceeded, GenerationError, InvalidConfiguration
from verisearch.generation.boundary import Generator
from verisearch.schemas.candidate import Candidate, QueryContext, SamplingParams
from verisearch.schemas.search import SearchTrace
from verisearch.schemas.verification import VerificationResult
from verisearch.search.budget import SearchBudget
from verisearch.search.executor import BatchExecutor
from verisearch.verify.verifier import BaseVerifier

logger = logging.getLogger("verisearch.search.controller")


@dataclass
class Proposal:
    """Candidates produced for the adaptive sampler by one propose() call."""
    candidates: list[Candidate] = field(default_factory=list)
    slots: int = 0
    failures: int = 0
    traces: list[SearchTrace] = field(default_factory=list)


def best_by_utility(candidates: Sequence[Candidate]) -> Optional[Candidate]:
    """Highest-utility candidate; earliest wins ties."""
    best: Optional[Candidate] = None
    for candidate in candidates:
        if best is None or candidate.utility > best.utility:
            best = candidate
    return best


class SearchController(ABC):
    """
    Base class for search controllers.

    Args:
        generator: Generation boundary.
        verifier: Verifier applied to every produced candidate.
        step_verifier: Optional step-level verifier for unfinished paths;
            complete candidates always go to ``verifier``.
        budget: Default generation budget for one run.
        max_concurrency: Concurrent boundary calls.
        timeout_s: Per-call timeout for generation and verification.
        temperature: Default sampling temperature.
        max_tokens: Token limit per generation.
        base_seed: Seed of the first call; later calls add an offset.
    """

    kind: str = "controller"

    def __init__(
        self,
        generator: Generator,
        verifier: BaseVerifier,
        step_verifier: Optional[BaseVerifier] = None,
        budget: int = 200,
        max_concurrency: int = 8,
        timeout_s: Optional[float] = 30.0,
        temperature: float = 0.7,
        max_tokens: int = 512,
        base_seed: int = 0,
    ):
        if budget < 1:
            raise InvalidConfiguration(f"budget must be >= 1, got {budget}")
        self.generator = generator
        self.verifier = verifier
        self.step_verifier = step_verifier
        self.budget = budget
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.base_seed = base_seed
        self.executor = BatchExecutor(max_concurrency=max_concurrency, timeout_s=timeout_s)

    @staticmethod
    def common_options(config) -> dict:
        """Constructor options shared by every controller, from a VeriSearchConfig."""
        return {
            "budget": config.search.budget,
            "max_concurrency": config.generation.max_concurrency,
            "timeout_s": config.generation.timeout_s,
            "temperature": config.generation.temperature,
            "max_tokens": config.generation.max_tokens,
            "base_seed": config.generation.base_seed,
        }

    # ── Public API ─────────────────────────────────────────────────

    async def run(
        self,
        context: QueryContext,
        budget: Optional[SearchBudget] = None,
        seed_offset: int = 0,
    ) -> tuple[Optional[Candidate], SearchTrace]:
        """Run one search; see module docstring for the contract."""
        budget = budget or SearchBudget(self.budget)
        trace = SearchTrace(controller=self.kind)
        start = time.perf_counter()
        try:
            best = await self._search(context, budget, trace, seed_offset)
        except BudgetExceeded:
            logger.info(f"{self.kind}: budget exhausted after {budget.used} generations")
            trace.stop_reason = "budget_exhausted"
            best = best_by_utility([c for c in trace.candidates if c.complete]) or best_by_utility(trace.candidates)
        trace.discarded_results = self.executor.discarded
        trace.elapsed_ms = (time.perf_counter() - start) * 1000
        logger.info(
            f"{self.kind}: finished ({trace.stop_reason}) with {trace.generations} generations, "
            f"{trace.generation_failures} failures, best utility "
            f"{best.utility if best else 0.0:.3f}"
        )
        return best, trace

    async def propose(self, context: QueryContext, n: int, seed_offset: int = 0) -> Proposal:
        """Consume ``n`` slots, one independent search per slot."""
        runs = await asyncio.gather(*(
            self.run(context, SearchBudget(self.budget), seed_offset=(seed_offset + i) * self.budget)
            for i in range(n)
        ))
        proposal = Proposal(slots=n)
        for best, trace in runs:
            proposal.traces.append(trace)
            if best is None:
                proposal.failures += 1
            else:
                proposal.candidates.append(best)
        return proposal

    @abstractmethod
    async def _search(
        self,
        context: QueryContext,
        budget: SearchBudget,
        trace: SearchTrace,
        seed_offset: int,
    ) -> Optional[Candidate]:
        """Controller-specific search loop."""
        ...

    # ── Boundary helpers ───────────────────────────────────────────

    def params(self, seed: int, mode, temperature: Optional[float] = None) -> SamplingParams:
        return SamplingParams(
            temperature=self.temperature if temperature is None else temperature,
            seed=seed,
            max_tokens=self.max_tokens,
            mode=mode,
        )

    async def _generate(
        self,
        requests: Sequence[tuple[QueryContext, SamplingParams]],
        budget: SearchBudget,
        trace: SearchTrace,
    ) -> list[Optional[Candidate]]:
        """
        Generate one candidate per request (as far as the budget allows).

        Returns a list aligned with the *granted* prefix of ``requests``;
        failed slots are None.

        Raises:
            BudgetExceeded: if the budget was already spent.
        """
        granted = budget.reserve(len(requests))
        requests = list(requests)[:granted]

        def _failed(index: int, exc: BaseException) -> GenerationError:
            return GenerationError(f"{type(exc).__name__}: {exc}", transient=True)

        outcomes = await self.executor.run_batch(
            [partial(self.generator.generate, ctx, params) for ctx, params in requests],
            on_failure=_failed,
        )
        trace.generations += granted

        candidates: list[Optional[Candidate]] = []
        for outcome in outcomes:
            if isinstance(outcome, Candidate):
                candidates.append(outcome)
            else:
                trace.generation_failures += 1
                logger.info(f"{self.kind}: generation failed: {getattr(outcome, 'reason', outcome)}")
                candidates.append(None)
        return candidates

    def verifier_for(self, candidate: Candidate) -> BaseVerifier:
        """The step verifier for unfinished paths when one is set, else the outcome verifier."""
        if self.step_verifier is not None and not candidate.complete:
            return self.step_verifier
        return self.verifier

    async def _verify(
        self,
        candidates: Sequence[Candidate],
        context: QueryContext,
        trace: SearchTrace,
    ) -> list[Candidate]:
        """Verify a complete batch; returns new candidates carrying results."""
        verifiers = [self.verifier_for(c) for c in candidates]

        def _failed(index: int, exc: BaseException) -> VerificationResult:
            verifier = verifiers[index]
            return VerificationResult.error_result(
                verifier=verifier.name,
                candidate_id=candidates[index].id,
                rationale=f"Verification failed: {type(exc).__name__}: {exc}",
                score_range=verifier.score_range,
                higher_is_better=verifier.higher_is_better,
            )

        results = await self.executor.run_batch(
            [partial(v.verify, c, context) for v, c in zip(verifiers, candidates)],
            on_failure=_failed,
        )
        verified = [c.with_verification(r) for c, r in zip(candidates, results)]
        trace.verifications += len(verified)
        trace.verification_errors += sum(1 for r in results if r.error)
        trace.candidates.extend(verified)
        return verified

    @staticmethod
    def extend_path(parent: Optional[Candidate], step: Candidate) -> Candidate:
        """Candidate for ``parent``'s path followed by ``step``."""
        if parent is None or not parent.content:
            return step
        return step.model_copy(update={"content": f"{parent.content}\n{step.content}"})
