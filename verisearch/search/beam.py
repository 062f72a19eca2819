"""
Beam Search Controller
=======================

Breadth-bounded tree search over reasoning paths.

Algorithm:
    1. The root (empty path) is expanded into beam_width × branching_factor
       first steps.
    2. At each later depth every incomplete active path is expanded into
       branching_factor continuations; complete paths carry over as-is.
    3. Each new path is verified (unfinished paths by the step verifier
       when the controller has one); the pool (carried + new) is sorted by
       verifier utility, stable, ties to the earliest-created node, and
       only the top beam_width survive.
    4. Stop at max_depth, when every active path is complete, or when
       the generation budget runs out.

Best answer: the highest-utility complete path seen anywhere in the
run; if none completed, the best path of the final beam.
"""

from __future__ import annotations

import itertools
import logging
from typing import Optional

from verisearch.errors import BudgetExceeded, InvalidConfiguration
from verisearch.generation.boundary import Generator
from verisearch.schemas.candidate import Candidate, GenerationMode, QueryContext
from verisearch.schemas.search import SearchTrace
from verisearch.search.arena import NodeArena
from verisearch.search.budget import SearchBudget
from verisearch.search.controller import SearchController
from verisearch.verify.verifier import BaseVerifier

logger = logging.getLogger("verisearch.search.beam")


class BeamSearch(SearchController):
    """
    Verifier-guided beam search.

    Args:
        beam_width: Active paths kept after pruning.
        branching_factor: Continuations per active path.
        max_depth: Maximum path depth.
    """

    kind = "beam"

    def __init__(
        self,
        generator: Generator,
        verifier: BaseVerifier,
        beam_width: int = 5,
        branching_factor: int = 2,
        max_depth: int = 3,
        **kwargs,
    ):
        super().__init__(generator, verifier, **kwargs)
        for label, value in (
            ("beam_width", beam_width),
            ("branching_factor", branching_factor),
            ("max_depth", max_depth),
        ):
            if value < 1:
                raise InvalidConfiguration(f"{label} must be >= 1, got {value}")
        self.beam_width = beam_width
        self.branching_factor = branching_factor
        self.max_depth = max_depth

    @classmethod
    def from_config(
        cls,
        config,
        generator: Generator,
        verifier: BaseVerifier,
        step_verifier: Optional[BaseVerifier] = None,
    ) -> "BeamSearch":
        search = config.search
        return cls(
            generator,
            verifier,
            step_verifier=step_verifier,
            beam_width=search.beam_width,
            branching_factor=search.branching_factor,
            max_depth=search.beam_max_depth,
            **cls.common_options(config),
        )

    async def _search(
        self,
        context: QueryContext,
        budget: SearchBudget,
        trace: SearchTrace,
        seed_offset: int,
    ) -> Optional[Candidate]:
        arena = NodeArena()
        root = arena.add_root()
        seeds = itertools.count(self.base_seed + seed_offset)
        active: list[int] = [root.node_id]
        trace.stop_reason = "max_depth"

        for depth in range(1, self.max_depth + 1):
            expandable = [nid for nid in active if not arena[nid].terminal]
            carried = [nid for nid in active if arena[nid].terminal]
            if not expandable:
                trace.stop_reason = "all_complete"
                break

            width = self.beam_width * self.branching_factor if depth == 1 else self.branching_factor
            owners: list[int] = []
            requests = []
            for nid in expandable:
                path = arena[nid].candidate
                ctx = context.extend(path.content, depth) if path is not None else context
                for _ in range(width):
                    owners.append(nid)
                    requests.append((ctx, self.params(next(seeds), GenerationMode.STEP)))

            try:
                steps = await self._generate(requests, budget, trace)
            except BudgetExceeded:
                trace.stop_reason = "budget_exhausted"
                break

            pending = [
                (owner, self.extend_path(arena[owner].candidate, step))
                for owner, step in zip(owners, steps)
                if step is not None
            ]
            verified = await self._verify([c for _, c in pending], context, trace)
            new_ids = [
                arena.add_child(owner, candidate).node_id
                for (owner, _), candidate in zip(pending, verified)
            ]

            pool = carried + new_ids
            if not pool:
                logger.warning(f"beam: every expansion failed at depth {depth}")
                trace.stop_reason = "generation_failed"
                break

            ranked = sorted(pool, key=lambda nid: (-arena[nid].candidate.utility, nid))
            active = ranked[: self.beam_width]
            trace.beam_history.append(list(active))
            trace.max_depth_reached = depth
            logger.debug(
                f"beam: depth {depth} kept {len(active)}/{len(pool)} "
                f"(top utility {arena[active[0]].candidate.utility:.3f})"
            )

        trace.tree = arena.snapshot()
        return self._best(arena, active)

    @staticmethod
    def _best(arena: NodeArena, active: list[int]) -> Optional[Candidate]:
        complete = [n for n in arena if n.terminal and n.candidate is not None]
        if complete:
            node = min(complete, key=lambda n: (-n.candidate.utility, n.node_id))
            return node.candidate
        beam = [arena[nid] for nid in active if arena[nid].candidate is not None]
        if not beam:
            return None
        return min(beam, key=lambda n: (-n.candidate.utility, n.node_id)).candidate
