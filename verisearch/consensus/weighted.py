"""
Weighted Vote Aggregator
=========================

Blends how popular an answer is with how well its supporters scored:

    group_score = alpha * (group_size / votes) + (1 - alpha) * mean_utility

alpha = 1 reduces to plain majority vote; alpha = 0 ranks groups purely
by average verifier utility. Ties go to the group seen first.
"""

from __future__ import annotations

from typing import Optional

from verisearch.consensus.answers import AnswerNormalizer, answer_key
from verisearch.consensus.base import Aggregator, VoteGroup
from verisearch.errors import InvalidConfiguration
from verisearch.schemas.candidate import Candidate


class WeightedVote(Aggregator):
    """Vote share blended with mean verifier utility."""

    name = "weighted"

    def __init__(
        self,
        threshold: float = 0.5,
        normalizer: AnswerNormalizer = answer_key,
        alpha: float = 0.5,
    ):
        super().__init__(threshold=threshold, normalizer=normalizer)
        if not 0.0 <= alpha <= 1.0:
            raise InvalidConfiguration(f"alpha must be in [0, 1], got {alpha}")
        self.alpha = alpha

    def group_score(self, group: VoteGroup, votes: int) -> float:
        share = group.size / votes
        return self.alpha * share + (1.0 - self.alpha) * (group.mean_utility or 0.0)

    def _choose(
        self, groups: list[VoteGroup]
    ) -> tuple[VoteGroup, Candidate, Optional[str]]:
        votes = sum(g.size for g in groups)
        scores = [self.group_score(g, votes) for g in groups]
        best = max(scores)
        winner = groups[scores.index(best)]

        members = sorted(
            zip(winner.positions, winner.members),
            key=lambda item: (-item[1].utility, item[0]),
        )
        note = None
        if scores.count(best) > 1:
            note = f"{scores.count(best)}-way tie at weighted score {best:.3f} broken by first appearance"
        return winner, members[0][1], note
