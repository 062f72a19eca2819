"""
Monte-Carlo Tree Search Controller
===================================

Four phases per simulation:

    1. Selection:       from the root, repeatedly pick the child with the
                        highest UCB1. Unvisited children (UCB1 = +inf)
                        go first, in insertion order; equal finite scores
                        go to the earliest child.
    2. Expansion:       a non-terminal leaf that has been visited before
                        (or the root) gets ``expansion_width`` children
                        from the generation boundary; the first new child
                        becomes the simulation node.
    3. Simulation:      "generator" rollout finishes the path with up to
                        ``max_rollout_steps`` generation calls, then
                        verifies it; "heuristic" rollout just verifies
                        the partial path (with the step verifier
                        when one is set). Terminal nodes are verified
                        directly.
    4. Backpropagation: the value (verifier utility) is added to every
                        node on the path and their visits incremented; the
                        simulation node also records a self-visit, so
                        visits == self_visits + sum(child visits).

Best answer: among visited leaves that hold a verified, complete answer
(a terminal leaf's own candidate, or its best rollout), the one with the
highest average value; ties go to the earliest node. With no such leaf,
the best verified complete candidate of the run, else None. Unfinished
paths are never returned.
"""

from __future__ import annotations

import itertools
import logging
from typing import Iterator, Optional

from verisearch.errors import BudgetExceeded, InvalidConfiguration
from verisearch.generation.boundary import Generator
from verisearch.schemas.candidate import Candidate, GenerationMode, QueryContext
from verisearch.schemas.search import SearchTrace
from verisearch.search.arena import NodeArena
from verisearch.search.budget import SearchBudget
from verisearch.search.controller import SearchController, best_by_utility
from verisearch.verify.verifier import BaseVerifier

logger = logging.getLogger("verisearch.search.mcts")

ROLLOUT_MODES = ("generator", "heuristic")


class MCTS(SearchController):
    """
    UCB1-guided Monte-Carlo tree search.

    Args:
        simulations: Number of simulations to run.
        exploration_constant: ``c`` in UCB1.
        max_depth: Nodes at this depth are not expanded.
        expansion_width: Children generated per expansion.
        rollout: "generator" or "heuristic".
        max_rollout_steps: Generation calls per generator rollout.
    """

    kind = "mcts"

    def __init__(
        self,
        generator: Generator,
        verifier: BaseVerifier,
        simulations: int = 100,
        exploration_constant: float = 1.414,
        max_depth: int = 10,
        expansion_width: int = 2,
        rollout: str = "generator",
        max_rollout_steps: int = 3,
        **kwargs,
    ):
        super().__init__(generator, verifier, **kwargs)
        for label, value in (
            ("simulations", simulations),
            ("max_depth", max_depth),
            ("expansion_width", expansion_width),
            ("max_rollout_steps", max_rollout_steps),
        ):
            if value < 1:
                raise InvalidConfiguration(f"{label} must be >= 1, got {value}")
        if exploration_constant < 0:
            raise InvalidConfiguration(f"exploration_constant must be >= 0, got {exploration_constant}")
        if rollout not in ROLLOUT_MODES:
            raise InvalidConfiguration(f"rollout must be one of {ROLLOUT_MODES}, got {rollout}")
        self.simulations = simulations
        self.exploration_constant = exploration_constant
        self.max_depth = max_depth
        self.expansion_width = expansion_width
        self.rollout = rollout
        self.max_rollout_steps = max_rollout_steps

    @classmethod
    def from_config(
        cls,
        config,
        generator: Generator,
        verifier: BaseVerifier,
        step_verifier: Optional[BaseVerifier] = None,
    ) -> "MCTS":
        search = config.search
        return cls(
            generator,
            verifier,
            step_verifier=step_verifier,
            simulations=search.simulations,
            exploration_constant=search.exploration_constant,
            max_depth=search.mcts_max_depth,
            expansion_width=search.expansion_width,
            rollout=search.rollout,
            max_rollout_steps=search.max_rollout_steps,
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
        arena.add_root()
        seeds = itertools.count(self.base_seed + seed_offset)
        rollouts: dict[int, Candidate] = {}
        trace.stop_reason = "simulations_done"

        for _ in range(self.simulations):
            try:
                node_id = self.select(arena)
                node = arena[node_id]
                if (
                    not node.terminal
                    and node.depth < self.max_depth
                    and (node.visits > 0 or node.parent is None)
                ):
                    children = await self._expand(arena, node_id, context, seeds, budget, trace)
                    if children:
                        node_id = children[0]
                value, finished = await self._simulate(arena, node_id, context, seeds, budget, trace)
            except BudgetExceeded:
                trace.stop_reason = "budget_exhausted"
                break

            arena.backpropagate(node_id, value)
            trace.simulations += 1
            trace.max_depth_reached = max(trace.max_depth_reached, arena[node_id].depth)
            if finished is not None:
                previous = rollouts.get(node_id)
                if previous is None or finished.utility > previous.utility:
                    rollouts[node_id] = finished

        trace.tree = arena.snapshot()
        return self._best(arena, rollouts, trace)

    # ── Phases ─────────────────────────────────────────────────────

    def select(self, arena: NodeArena) -> int:
        """Walk from the root to a leaf by UCB1."""
        node = arena.root
        while node.children:
            best_id, best_score = node.children[0], None
            for child_id in node.children:
                score = arena.ucb1(child_id, self.exploration_constant)
                if best_score is None or score > best_score:
                    best_id, best_score = child_id, score
            node = arena[best_id]
        return node.node_id

    async def _expand(
        self,
        arena: NodeArena,
        node_id: int,
        context: QueryContext,
        seeds: Iterator[int],
        budget: SearchBudget,
        trace: SearchTrace,
    ) -> list[int]:
        node = arena[node_id]
        ctx = context.extend(node.candidate.content, node.depth + 1) if node.candidate else context
        requests = [
            (ctx, self.params(next(seeds), GenerationMode.STEP))
            for _ in range(self.expansion_width)
        ]
        steps = await self._generate(requests, budget, trace)
        return [
            arena.add_child(node_id, self.extend_path(node.candidate, step)).node_id
            for step in steps
            if step is not None
        ]

    async def _simulate(
        self,
        arena: NodeArena,
        node_id: int,
        context: QueryContext,
        seeds: Iterator[int],
        budget: SearchBudget,
        trace: SearchTrace,
    ) -> tuple[float, Optional[Candidate]]:
        """Return (value, verified end-of-rollout candidate or None)."""
        node = arena[node_id]

        if node.terminal and node.candidate is not None:
            if node.candidate.verification is None:
                [node.candidate] = await self._verify([node.candidate], context, trace)
            return node.candidate.utility, node.candidate

        if self.rollout == "heuristic":
            if node.candidate is None:
                return 0.0, None
            if node.candidate.verification is None:
                [node.candidate] = await self._verify([node.candidate], context, trace)
            return node.candidate.utility, None

        current = node.candidate
        for step_index in range(self.max_rollout_steps):
            ctx = context.extend(current.content, node.depth + step_index + 1) if current else context
            [step] = await self._generate(
                [(ctx, self.params(next(seeds), GenerationMode.ROLLOUT))], budget, trace
            )
            if step is None:
                return 0.0, None
            current = self.extend_path(current, step)
            if step.complete:
                break

        [finished] = await self._verify([current], context, trace)
        return finished.utility, finished

    @staticmethod
    def _best(
        arena: NodeArena, rollouts: dict[int, Candidate], trace: SearchTrace
    ) -> Optional[Candidate]:
        answers: dict[int, Candidate] = {}
        for leaf in arena.leaves():
            if leaf.visits == 0:
                continue
            answer = leaf.candidate if leaf.terminal else rollouts.get(leaf.node_id)
            if _is_verified_answer(answer):
                answers[leaf.node_id] = answer

        if answers:
            leaf_id = min(answers, key=lambda nid: (-arena[nid].mean_value, nid))
            return answers[leaf_id]
        return best_by_utility([c for c in trace.candidates if _is_verified_answer(c)])


def _is_verified_answer(candidate: Optional[Candidate]) -> bool:
    """Complete, and carrying a verification that did not error."""
    return (
        candidate is not None
        and candidate.complete
        and candidate.verification is not None
        and not candidate.verification.error
    )
