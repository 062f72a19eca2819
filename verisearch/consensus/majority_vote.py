"""
Majority Vote Aggregator
=========================

Self-consistency voting: the most common normalized answer wins.

Tie-Breaking:
    When several groups share the largest size:
    1. If any tied group carries verifier scores, the group with the
       highest average utility wins (unscored groups count as 0).
    2. Otherwise (or if averages are equal) the group seen first wins.
    The decision is recorded in ``tie_break_note``.

Boundary case:
    A single candidate yields agreement 1.0 and therefore reaches
    consensus for every threshold in [0, 1]. The adaptive sampler's
    minimum-candidates rule is what prevents stopping on it.

Usage:
    aggregator = MajorityVote(threshold=0.5)
    result = aggregator.aggregate(candidates)
"""

from __future__ import annotations

from typing import Optional

from verisearch.consensus.base import Aggregator, VoteGroup
from verisearch.schemas.candidate import Candidate


class MajorityVote(Aggregator):
    """Majority vote with deterministic tie-breaking."""

    name = "majority_vote"

    def _choose(
        self, groups: list[VoteGroup]
    ) -> tuple[VoteGroup, Candidate, Optional[str]]:
        top = max(g.size for g in groups)
        tied = [g for g in groups if g.size == top]

        if len(tied) == 1:
            winner = tied[0]
            return winner, winner.members[0], None

        if any(g.mean_utility is not None for g in tied):
            winner = min(
                tied,
                key=lambda g: (-(g.mean_utility or 0.0), g.first_index),
            )
            note = (
                f"{len(tied)}-way tie at {top} votes broken by highest average "
                f"verifier utility ({winner.mean_utility or 0.0:.3f})"
            )
        else:
            winner = tied[0]
            note = f"{len(tied)}-way tie at {top} votes broken by first appearance"

        return winner, winner.members[0], note
