"""
Search Schemas
===============

SearchNode is the unit of the beam/MCTS node arena; SearchTrace is the
record a search controller returns next to its best candidate.

Nodes reference each other by integer id only: ``parent`` is a
non-owning back-reference, ``children`` is the owned list of child ids.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from verisearch.schemas.candidate import Candidate


class SearchNode(BaseModel):
    """
    One node of a search tree.

    Invariants (maintained by NodeArena):
        - depth == parent.depth + 1
        - value changes only by additive backpropagation
        - visits == self_visits + sum(child.visits)
    """
    node_id: int = Field(ge=0)
    candidate: Optional[Candidate] = Field(
        default=None,
        description="Path content at this node (None for the root)"
    )
    parent: Optional[int] = Field(default=None)
    children: list[int] = Field(default_factory=list)
    visits: int = Field(default=0, ge=0)
    value: float = Field(default=0.0, description="Cumulative backpropagated value")
    self_visits: int = Field(
        default=0, ge=0,
        description="Simulations that ended at this node"
    )
    depth: int = Field(default=0, ge=0)
    terminal: bool = Field(default=False)

    @property
    def mean_value(self) -> float:
        """Average backpropagated value (0 if never visited)."""
        return self.value / self.visits if self.visits else 0.0

    @property
    def is_leaf(self) -> bool:
        return not self.children


class SearchTrace(BaseModel):
    """Audit record of one search controller run."""
    controller: str
    generations: int = Field(default=0, description="Generation calls issued")
    generation_failures: int = Field(default=0)
    verifications: int = Field(default=0)
    verification_errors: int = Field(default=0)
    discarded_results: int = Field(default=0, description="Late results dropped after a stop")
    max_depth_reached: int = Field(default=0)
    simulations: int = Field(default=0)
    beam_history: list[list[int]] = Field(
        default_factory=list,
        description="Node ids kept after pruning, one entry per depth"
    )
    diversity_order: list[str] = Field(
        default_factory=list,
        description="Candidate ids in MMR order (diverse decoding)"
    )
    candidates: list[Candidate] = Field(
        default_factory=list,
        description="Every verified candidate produced in the run"
    )
    tree: list[SearchNode] = Field(
        default_factory=list,
        description="Frozen arena snapshot (beam / MCTS)"
    )
    stop_reason: str = Field(default="completed")
    elapsed_ms: float = Field(default=0.0)
