"""
Aggregator Interface
=====================

Abstract base class for consensus aggregators, plus the vote tally they
all share. Every aggregator computes ``agreement_score`` the same way
(size of the winning answer group over the number of candidates); they differ
only in how the winning group is chosen.

Voting rules:
    - Each candidate's answer is reduced to a key by the normalizer.
    - Candidates whose verification errored do not vote, but still count
      in the agreement denominator, so failures can never inflate agreement.
    - Groups keep first-seen order, which is the final tie-breaker.

Data Flow:
    [Candidate] → tally() → [VoteGroup] → Aggregator → ConsensusResult
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional, Sequence

from verisearch.consensus.answers import AnswerNormalizer, answer_key
from verisearch.errors import InvalidConfiguration
from verisearch.schemas.candidate import Candidate
from verisearch.schemas.consensus import ConsensusResult

logger = logging.getLogger("verisearch.consensus.base")


@dataclass
class VoteGroup:
    """Candidates sharing one normalized answer key."""
    key: str
    first_index: int
    members: list[Candidate] = field(default_factory=list)
    positions: list[int] = field(default_factory=list)

    @property
    def size(self) -> int:
        return len(self.members)

    @property
    def mean_utility(self) -> Optional[float]:
        """Average verifier utility of scored members (None if none is scored)."""
        scored = [c.utility for c in self.members if c.verification is not None]
        if not scored:
            return None
        return sum(scored) / len(scored)


def tally(
    candidates: Sequence[Candidate],
    normalizer: AnswerNormalizer = answer_key,
) -> tuple[list[VoteGroup], int]:
    """
    Group voting candidates by normalized answer.

    Returns:
        (groups in first-seen order, number of votes cast)
    """
    groups: dict[str, VoteGroup] = {}
    votes = 0
    for index, candidate in enumerate(candidates):
        if candidate.verification_failed:
            continue
        key = normalizer(candidate.content)
        group = groups.get(key)
        if group is None:
            group = groups[key] = VoteGroup(key=key, first_index=index)
        group.members.append(candidate)
        group.positions.append(index)
        votes += 1
    return list(groups.values()), votes


class Aggregator(ABC):
    """
    Base class for consensus aggregators.

    Args:
        threshold: Agreement in [0, 1] required for ``consensus_reached``.
        normalizer: Maps candidate content to an answer key.
    """

    name: str = "aggregator"

    def __init__(
        self,
        threshold: float = 0.5,
        normalizer: AnswerNormalizer = answer_key,
    ):
        if not 0.0 <= threshold <= 1.0:
            raise InvalidConfiguration(f"threshold must be in [0, 1], got {threshold}")
        self.threshold = threshold
        self.normalizer = normalizer

    def aggregate(self, candidates: Sequence[Candidate]) -> ConsensusResult:
        """
        Reduce ``candidates`` to a ConsensusResult.

        Pure and deterministic: the same list always yields an equal result.
        """
        groups, votes = tally(candidates, self.normalizer)
        if votes == 0:
            if candidates:
                logger.warning(
                    f"{self.name}: all {len(candidates)} candidates failed verification"
                )
            return ConsensusResult(
                aggregator=self.name,
                agreement_score=0.0,
                consensus_reached=False,
                total_candidates=len(candidates),
                threshold=self.threshold,
            )

        winner, selected, note = self._choose(groups)
        agreement = winner.size / len(candidates)
        return ConsensusResult(
            aggregator=self.name,
            selected=selected,
            selected_answer=winner.key,
            agreement_score=agreement,
            vote_distribution={g.key: g.size for g in groups},
            consensus_reached=agreement >= self.threshold,
            tie_break_note=note,
            total_votes=votes,
            total_candidates=len(candidates),
            threshold=self.threshold,
        )

    @abstractmethod
    def _choose(
        self, groups: list[VoteGroup]
    ) -> tuple[VoteGroup, Candidate, Optional[str]]:
        """
        Pick the winning group and its representative candidate.

        Returns:
            (winning group, selected candidate, tie-break note or None)
        """
        ...
