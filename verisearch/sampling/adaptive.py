"""
Adaptive Self-Consistency Sampler
==================================

Wraps a search controller and a consensus aggregator, drawing candidates
in batches until the candidate set agrees or the difficulty-derived cap
is reached.

Algorithm:
    1. Pick the difficulty level (explicit, estimated, or default) and
       look up {initial_n, max_n, batch_size} in the difficulty table.
    2. First batch: initial_n candidates (initial_n is also the minimum).
       Later batches: batch_size, capped at max_n - actual_n.
    3. After each complete batch, aggregate the whole running set.
    4. Stop with "consensus" when consensus is reached AND
       actual_n >= min_candidates; stop with "max_reached" when
       actual_n >= max_candidates.
    5. With a wall-clock timeout, no batch starts after the deadline:
       the run stops with "timeout" if the minimum was met, otherwise
       BudgetExceeded is raised.

``actual_n`` counts generation slots consumed, failed ones included, so
a run never issues more than max_n generations and never reports fewer
than min_n.

Data Flow:
    query → DifficultyEstimator → bounds → [propose → aggregate]* → SamplingRun
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Optional

from verisearch.consensus.base import Aggregator
from verisearch.errors import BudgetExceeded, InvalidConfiguration
from verisearch.sampling.difficulty import DifficultyEstimator
from verisearch.schemas.candidate import Candidate, QueryContext
from verisearch.schemas.consensus import ConsensusResult
from verisearch.schemas.sampling import (
    DEFAULT_DIFFICULTY_TABLE,
    DifficultyBounds,
    DifficultyLevel,
    SamplingState,
    StopReason,
)
from verisearch.schemas.search import SearchTrace
from verisearch.search.controller import SearchController

logger = logging.getLogger("verisearch.sampling.adaptive")


@dataclass
class SamplingRun:
    """Everything an adaptive run produced."""
    consensus: ConsensusResult
    state: SamplingState
    candidates: list[Candidate] = field(default_factory=list)
    traces: list[SearchTrace] = field(default_factory=list)


class AdaptiveSampler:
    """
    Adaptive self-consistency over a search controller.

    Usage:
        sampler = AdaptiveSampler(controller, MajorityVote(threshold=0.8))
        run = await sampler.run(QueryContext(query="..."), DifficultyLevel.HARD)

    Args:
        controller: Produces candidates via ``propose``.
        aggregator: Computes agreement after each batch.
        table: Difficulty level → bounds.
        difficulty_estimator: Used when no level is passed to ``run``.
        default_difficulty: Used when neither a level nor an estimator is given.
        timeout_s: Optional wall-clock limit for one run.
    """

    def __init__(
        self,
        controller: SearchController,
        aggregator: Aggregator,
        table: Optional[dict[DifficultyLevel, DifficultyBounds]] = None,
        difficulty_estimator: Optional[DifficultyEstimator] = None,
        default_difficulty: DifficultyLevel = DifficultyLevel.MEDIUM,
        timeout_s: Optional[float] = None,
    ):
        table = dict(table or DEFAULT_DIFFICULTY_TABLE)
        missing = [level.value for level in DifficultyLevel if level not in table]
        if missing:
            raise InvalidConfiguration(f"difficulty table missing levels: {missing}")
        for level, bounds in table.items():
            if bounds.initial_n < 1 or bounds.batch_size < 1:
                raise InvalidConfiguration(f"{level.value}: initial_n and batch_size must be >= 1")
            if bounds.initial_n > bounds.max_n:
                raise InvalidConfiguration(
                    f"{level.value}: min_candidates ({bounds.initial_n}) > "
                    f"max_candidates ({bounds.max_n})"
                )
        if timeout_s is not None and timeout_s <= 0:
            raise InvalidConfiguration(f"timeout_s must be > 0, got {timeout_s}")

        self.controller = controller
        self.aggregator = aggregator
        self.table = table
        self.difficulty_estimator = difficulty_estimator
        self.default_difficulty = DifficultyLevel(default_difficulty)
        self.timeout_s = timeout_s

    @classmethod
    def from_config(
        cls,
        config,
        controller: SearchController,
        aggregator: Aggregator,
        difficulty_estimator: Optional[DifficultyEstimator] = None,
    ) -> "AdaptiveSampler":
        """Build from a SamplingConfig."""
        return cls(
            controller,
            aggregator,
            table=config.table,
            difficulty_estimator=difficulty_estimator,
            default_difficulty=config.default_difficulty,
            timeout_s=config.timeout_s,
        )

    def resolve_difficulty(self, query: str, difficulty: Optional[DifficultyLevel]) -> DifficultyLevel:
        if difficulty is not None:
            return DifficultyLevel(difficulty)
        if self.difficulty_estimator is not None:
            return self.difficulty_estimator.estimate(query).level
        return self.default_difficulty

    async def run(
        self,
        context: QueryContext,
        difficulty: Optional[DifficultyLevel] = None,
    ) -> SamplingRun:
        """
        Sample until consensus or the cap.

        Raises:
            BudgetExceeded: if the timeout expires before min_candidates.
        """
        level = self.resolve_difficulty(context.query, difficulty)
        bounds = self.table[level]
        state = SamplingState(
            difficulty=level,
            min_candidates=bounds.initial_n,
            max_candidates=bounds.max_n,
            batch_size=bounds.batch_size,
            consensus_threshold=self.aggregator.threshold,
        )
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.timeout_s if self.timeout_s is not None else None

        candidates: list[Candidate] = []
        traces: list[SearchTrace] = []
        consensus = self.aggregator.aggregate(candidates)

        logger.info(
            f"Adaptive run: difficulty={level.value}, bounds "
            f"{state.min_candidates}-{state.max_candidates}, batch {state.batch_size}"
        )
        while True:
            if state.actual_n >= state.max_candidates:
                state.stop_reason = StopReason.MAX_REACHED
                break
            if deadline is not None and loop.time() >= deadline:
                if state.actual_n >= state.min_candidates:
                    state.stop_reason = StopReason.TIMEOUT
                    break
                raise BudgetExceeded(
                    f"timed out after {self.timeout_s}s with {state.actual_n} of "
                    f"{state.min_candidates} required candidates"
                )

            wanted = state.min_candidates if state.batches == 0 else state.batch_size
            n = min(wanted, state.max_candidates - state.actual_n)
            proposal = await self.controller.propose(context, n, seed_offset=state.actual_n)

            state.actual_n += proposal.slots
            state.generation_failures += proposal.failures
            state.batches += 1
            candidates.extend(proposal.candidates)
            traces.extend(proposal.traces)

            consensus = self.aggregator.aggregate(candidates)
            state.agreement_history.append(consensus.agreement_score)
            logger.debug(
                f"Batch {state.batches}: n={state.actual_n}, "
                f"agreement={consensus.agreement_score:.3f}"
            )

            if consensus.consensus_reached and state.actual_n >= state.min_candidates:
                state.stop_reason = StopReason.CONSENSUS
                break

        state.early_stopped = (
            state.stop_reason == StopReason.CONSENSUS
            and state.actual_n < state.max_candidates
        )
        logger.info(
            f"Adaptive run stopped ({state.stop_reason.value}) after {state.actual_n} "
            f"candidates, agreement {consensus.agreement_score:.3f}"
        )
        return SamplingRun(consensus=consensus, state=state, candidates=candidates, traces=traces)
