"""
Diverse Decoding Controller
============================

Flat controller: generate ``k`` candidates independently with
temperatures spread linearly over ``temperature_range`` and distinct
seeds, verify each, and return the highest-utility one. No tree state.

The trace also records an MMR ordering of the batch (relevance vs.
redundancy), useful for presenting a diverse shortlist.

Usage:
    controller = DiverseDecoding(generator, verifier, num_candidates=5)
    best, trace = await controller.run(QueryContext(query="..."))
"""

from __future__ import annotations

import logging
from typing import Optional

import numpy as np

from verisearch.errors import InvalidConfiguration
from verisearch.generation.boundary import Generator
from verisearch.schemas.candidate import Candidate, GenerationMode, QueryContext
from verisearch.schemas.search import SearchTrace
from verisearch.search.budget import SearchBudget
from verisearch.search.controller import Proposal, SearchController, best_by_utility
from verisearch.search.similarity import mmr_order
from verisearch.verify.verifier import BaseVerifier

logger = logging.getLogger("verisearch.search.diverse")


class DiverseDecoding(SearchController):
    """
    Independent sampling with a temperature sweep.

    Args:
        num_candidates: ``k``, candidates per run.
        temperature_range: (low, high) temperatures, linearly spaced.
        mmr_lambda: Relevance weight for the MMR ordering.
        diversity_threshold: Similarity above which the full MMR penalty applies.
    """

    kind = "diverse"

    def __init__(
        self,
        generator: Generator,
        verifier: BaseVerifier,
        num_candidates: int = 10,
        temperature_range: tuple[float, float] = (0.0, 1.0),
        mmr_lambda: float = 0.5,
        diversity_threshold: float = 0.7,
        **kwargs,
    ):
        super().__init__(generator, verifier, **kwargs)
        low, high = temperature_range
        if num_candidates < 1:
            raise InvalidConfiguration(f"num_candidates must be >= 1, got {num_candidates}")
        if not 0.0 <= low <= high <= 2.0:
            raise InvalidConfiguration(f"invalid temperature_range {temperature_range}")
        if not 0.0 <= mmr_lambda <= 1.0:
            raise InvalidConfiguration(f"mmr_lambda must be in [0, 1], got {mmr_lambda}")
        if not 0.0 <= diversity_threshold <= 1.0:
            raise InvalidConfiguration(f"diversity_threshold must be in [0, 1], got {diversity_threshold}")
        self.num_candidates = num_candidates
        self.temperature_range = temperature_range
        self.mmr_lambda = mmr_lambda
        self.diversity_threshold = diversity_threshold

    @classmethod
    def from_config(
        cls,
        config,
        generator: Generator,
        verifier: BaseVerifier,
        step_verifier: Optional[BaseVerifier] = None,
    ) -> "DiverseDecoding":
        search = config.search
        return cls(
            generator,
            verifier,
            step_verifier=step_verifier,
            num_candidates=search.num_candidates,
            temperature_range=(search.temperature_min, search.temperature_max),
            mmr_lambda=search.mmr_lambda,
            diversity_threshold=search.diversity_threshold,
            **cls.common_options(config),
        )

    def temperatures(self, k: int) -> list[float]:
        """``k`` temperatures linearly spaced over the configured range."""
        low, high = self.temperature_range
        if k == 1:
            return [low]
        return [round(float(t), 6) for t in np.linspace(low, high, k)]

    async def _sample(
        self,
        context: QueryContext,
        k: int,
        budget: SearchBudget,
        trace: SearchTrace,
        seed_offset: int,
    ) -> list[Candidate]:
        requests = [
            (context, self.params(self.base_seed + seed_offset + i, GenerationMode.ANSWER, temperature=t))
            for i, t in enumerate(self.temperatures(k))
        ]
        generated = await self._generate(requests, budget, trace)
        produced = [c for c in generated if c is not None]
        return await self._verify(produced, context, trace)

    async def _search(
        self,
        context: QueryContext,
        budget: SearchBudget,
        trace: SearchTrace,
        seed_offset: int,
    ) -> Optional[Candidate]:
        verified = await self._sample(context, self.num_candidates, budget, trace, seed_offset)
        trace.diversity_order = [
            c.id for c in mmr_order(verified, self.mmr_lambda, self.diversity_threshold)
        ]
        return best_by_utility(verified)

    async def propose(self, context: QueryContext, n: int, seed_offset: int = 0) -> Proposal:
        """One flat batch of ``n`` independent samples."""
        trace = SearchTrace(controller=self.kind)
        verified = await self._sample(context, n, SearchBudget(n), trace, seed_offset)
        trace.discarded_results = self.executor.discarded
        return Proposal(
            candidates=verified,
            slots=trace.generations,
            failures=trace.generation_failures,
            traces=[trace],
        )
