"""
Search Primitive Tests
=======================

Tests the building blocks shared by the search controllers: the
generation budget, the batch executor, the node arena and the
similarity measures used for MMR ordering.
"""

from __future__ import annotations

import asyncio
import math

import pytest

from verisearch.errors import BudgetExceeded, InvalidConfiguration
from verisearch.search.arena import NodeArena
from verisearch.search.budget import SearchBudget
from verisearch.search.executor import BatchExecutor
from verisearch.search.similarity import edit_distance, jaccard_similarity, mmr_order, similarity
from tests.conftest import make_candidate


class TestSearchBudget:
    """Generation-call accounting."""

    def test_partial_grant(self):
        """Requests beyond the remainder are granted partially."""
        budget = SearchBudget(5)
        assert budget.reserve(3) == 3
        assert budget.reserve(3) == 2
        assert budget.exhausted

    def test_exhausted_raises(self):
        """Reserving from an exhausted budget raises BudgetExceeded."""
        budget = SearchBudget(1)
        budget.reserve(1)
        with pytest.raises(BudgetExceeded):
            budget.reserve(1)

    def test_invalid(self):
        with pytest.raises(InvalidConfiguration):
            SearchBudget(0)


class TestBatchExecutor:
    """Bounded concurrent batches."""

    @pytest.mark.asyncio
    async def test_results_in_call_order(self):
        """Results come back in call order regardless of completion order."""
        async def call(value, delay):
            await asyncio.sleep(delay)
            return value

        executor = BatchExecutor(max_concurrency=3)
        results = await executor.run_batch(
            [lambda: call("a", 0.03), lambda: call("b", 0.0), lambda: call("c", 0.01)],
            on_failure=lambda i, e: None,
        )
        assert results == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_concurrency_bound(self):
        """No more than max_concurrency calls are in flight."""
        in_flight = 0
        peak = 0

        async def call():
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return True

        executor = BatchExecutor(max_concurrency=2)
        await executor.run_batch([call] * 6, on_failure=lambda i, e: False)
        assert peak == 2

    @pytest.mark.asyncio
    async def test_failures_and_timeouts_mapped(self):
        """Exceptions and timeouts are mapped through on_failure."""
        async def boom():
            raise RuntimeError("boom")

        async def slow():
            await asyncio.sleep(1.0)

        executor = BatchExecutor(max_concurrency=2, timeout_s=0.01)
        results = await executor.run_batch(
            [boom, slow],
            on_failure=lambda i, e: type(e).__name__,
        )
        assert results[0] == "RuntimeError"
        assert results[1] == "TimeoutError"

    @pytest.mark.asyncio
    async def test_late_results_discarded(self):
        """Results arriving after the batch was abandoned are discarded and counted."""
        async def slow():
            await asyncio.sleep(0.05)
            return "late"

        executor = BatchExecutor(max_concurrency=4, timeout_s=None)
        task = asyncio.create_task(executor.run_batch([slow, slow], on_failure=lambda i, e: None))
        await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        await executor.drain()
        assert executor.discarded == 2

    @pytest.mark.asyncio
    async def test_empty_batch(self):
        assert await BatchExecutor().run_batch([], on_failure=lambda i, e: None) == []


class TestNodeArena:
    """Index-based search tree."""

    def _tree(self) -> NodeArena:
        arena = NodeArena()
        arena.add_root()
        arena.add_child(0, make_candidate("Step 1", "a", complete=False))
        arena.add_child(0, make_candidate("Answer: 1", "b"))
        arena.add_child(1, make_candidate("Answer: 2", "c"))
        return arena

    def test_structure(self):
        """Depth, parent links, and terminal flags follow the candidates."""
        arena = self._tree()
        assert arena[3].depth == 2
        assert arena[3].parent == 1
        assert arena.root.children == [1, 2]
        assert arena[1].terminal is False
        assert arena[2].terminal is True

    def test_path(self):
        assert self._tree().path(3) == [0, 1, 3]

    def test_leaves_exclude_root(self):
        assert [n.node_id for n in self._tree().leaves()] == [2, 3]

    def test_backpropagate_keeps_visit_invariant(self):
        """visits == self_visits + sum(child visits) at every node."""
        arena = self._tree()
        arena.backpropagate(3, 1.0)
        arena.backpropagate(2, 0.5)
        arena.backpropagate(1, 0.0)
        for node in arena:
            assert node.visits == node.self_visits + sum(arena[c].visits for c in node.children)
        assert arena.root.visits == 3
        assert arena.root.value == pytest.approx(1.5)
        assert arena[1].value == pytest.approx(1.0)

    def test_ucb1(self):
        """Unvisited nodes score +inf; visited ones follow the UCB1 formula."""
        arena = self._tree()
        assert arena.ucb1(1, 1.414) == math.inf
        arena.backpropagate(2, 1.0)
        arena.backpropagate(3, 0.0)
        expected = 1.0 / 1 + 1.414 * math.sqrt(math.log(2) / 1)
        assert arena.ucb1(2, 1.414) == pytest.approx(expected)

    def test_single_root(self):
        arena = NodeArena()
        arena.add_root()
        with pytest.raises(ValueError):
            arena.add_root()

    def test_snapshot_detached(self):
        """Snapshots do not change when the arena does."""
        arena = self._tree()
        snapshot = arena.snapshot()
        arena.backpropagate(3, 1.0)
        assert snapshot[3].visits == 0


class TestSimilarity:
    """Similarity measures for diversity ordering."""

    def test_identical(self):
        assert similarity("the answer is 42", "the answer is 42") == pytest.approx(1.0)

    def test_jaccard(self):
        assert jaccard_similarity("a b c", "b c d") == pytest.approx(0.5)

    def test_edit_distance(self):
        assert edit_distance("kitten", "sitting") == 3

    def test_mmr_prefers_diverse_second(self):
        """After the best candidate, a dissimilar one beats a near-duplicate."""
        best = make_candidate("Answer: 42 because six times seven", "best", utility=1.0)
        dup = make_candidate("Answer: 42 because six times seven", "dup", utility=0.9)
        other = make_candidate("Completely different reasoning about 41", "other", utility=0.8)
        order = mmr_order([best, dup, other], mmr_lambda=0.5)
        assert [c.id for c in order] == ["best", "other", "dup"]
