"""
Consensus Result Schema
========================

Output of a consensus aggregator: the selected candidate, how strongly
the candidate set agrees, and whether that agreement clears the
configured threshold.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from verisearch.schemas.candidate import Candidate


class ConsensusResult(BaseModel):
    """
    Reduction of a candidate set to one decision.

    ``vote_distribution`` maps normalized answer keys to vote counts.
    Candidates whose verification errored do not vote, so
    ``total_votes`` may be smaller than ``total_candidates``;
    ``agreement_score`` is always taken over ``total_candidates``.
    """
    aggregator: str = Field(default="majority_vote")
    selected: Optional[Candidate] = Field(
        default=None,
        description="Representative candidate of the winning group"
    )
    selected_answer: Optional[str] = Field(
        default=None,
        description="Normalized answer key of the winning group"
    )
    agreement_score: float = Field(ge=0.0, le=1.0)
    vote_distribution: dict[str, int] = Field(default_factory=dict)
    consensus_reached: bool = Field(default=False)
    tie_break_note: Optional[str] = Field(default=None)
    total_votes: int = Field(default=0, ge=0)
    total_candidates: int = Field(default=0, ge=0)
    threshold: float = Field(ge=0.0, le=1.0)

    @property
    def is_empty(self) -> bool:
        """True when no candidate contributed a vote."""
        return self.total_votes == 0
