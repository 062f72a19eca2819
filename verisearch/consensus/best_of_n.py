"""
Best-of-N Aggregator
=====================

Selects the single candidate with the highest verifier utility; ties go
to the earliest candidate. Agreement is still reported as the share of
votes for the selected candidate's answer, so the sampler's stop rule
means the same thing whichever aggregator is configured.
"""

from __future__ import annotations

from typing import Optional

from verisearch.consensus.base import Aggregator, VoteGroup
from verisearch.schemas.candidate import Candidate


class BestOfN(Aggregator):
    """Highest-utility candidate wins."""

    name = "best_of_n"

    def _choose(
        self, groups: list[VoteGroup]
    ) -> tuple[VoteGroup, Candidate, Optional[str]]:
        ranked = [
            (-candidate.utility, position, group, candidate)
            for group in groups
            for position, candidate in zip(group.positions, group.members)
        ]
        _, _, best_group, best = min(ranked, key=lambda item: (item[0], item[1]))

        note = None
        if best.verification is None:
            note = "no verifier scores present; first candidate selected"
        return best_group, best, note
