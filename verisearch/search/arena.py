"""
Node Arena
===========

Index-addressed storage for the nodes of one beam/MCTS run.

Nodes never hold references to each other: ``parent`` is an integer
back-reference and ``children`` an owned list of integer ids. The arena
is owned by the single coroutine driving a run and is discarded with
it; ``snapshot()`` returns frozen copies for the trace.
"""

from __future__ import annotations

import math
from typing import Optional

from verisearch.schemas.candidate import Candidate
from verisearch.schemas.search import SearchNode


class NodeArena:
    """Arena of SearchNodes for one search run."""

    def __init__(self):
        self._nodes: list[SearchNode] = []

    def __len__(self) -> int:
        return len(self._nodes)

    def __getitem__(self, node_id: int) -> SearchNode:
        return self._nodes[node_id]

    def __iter__(self):
        return iter(self._nodes)

    @property
    def root(self) -> SearchNode:
        return self._nodes[0]

    def add_root(self, candidate: Optional[Candidate] = None) -> SearchNode:
        if self._nodes:
            raise ValueError("arena already has a root")
        node = SearchNode(node_id=0, candidate=candidate, depth=0)
        self._nodes.append(node)
        return node

    def add_child(self, parent_id: int, candidate: Candidate) -> SearchNode:
        parent = self._nodes[parent_id]
        node = SearchNode(
            node_id=len(self._nodes),
            candidate=candidate,
            parent=parent_id,
            depth=parent.depth + 1,
            terminal=candidate.complete,
        )
        self._nodes.append(node)
        parent.children.append(node.node_id)
        return node

    def path(self, node_id: int) -> list[int]:
        """Node ids from the root down to ``node_id``."""
        ids = []
        current: Optional[int] = node_id
        while current is not None:
            ids.append(current)
            current = self._nodes[current].parent
        return list(reversed(ids))

    def backpropagate(self, node_id: int, value: float) -> None:
        """
        Add ``value`` to every node from ``node_id`` up to the root and
        increment their visit counts. The simulation is attributed to
        ``node_id`` itself as a self-visit.
        """
        self._nodes[node_id].self_visits += 1
        for ancestor in self.path(node_id):
            node = self._nodes[ancestor]
            node.visits += 1
            node.value += value

    def ucb1(self, node_id: int, exploration: float) -> float:
        """
        UCB1 = value / visits + c * sqrt(ln(parent.visits) / visits).

        Unvisited nodes score +inf so they are tried first.
        """
        node = self._nodes[node_id]
        if node.visits == 0:
            return math.inf
        parent_visits = self._nodes[node.parent].visits if node.parent is not None else node.visits
        exploit = node.value / node.visits
        explore = exploration * math.sqrt(math.log(max(parent_visits, 1)) / node.visits)
        return exploit + explore

    def leaves(self) -> list[SearchNode]:
        return [n for n in self._nodes if n.is_leaf and n.parent is not None]

    def snapshot(self) -> list[SearchNode]:
        """Deep, detached copies of every node."""
        return [n.model_copy(deep=True) for n in self._nodes]
