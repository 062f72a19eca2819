"""Consensus aggregators (majority vote, best-of-N, weighted vote)."""

from verisearch.consensus.answers import answer_key, extract_answer, normalize_answer
from verisearch.consensus.base import Aggregator, VoteGroup, tally
from verisearch.consensus.best_of_n import BestOfN
from verisearch.consensus.majority_vote import MajorityVote
from verisearch.consensus.weighted import WeightedVote
from verisearch.errors import InvalidConfiguration

AGGREGATORS = {
    MajorityVote.name: MajorityVote,
    BestOfN.name: BestOfN,
    WeightedVote.name: WeightedVote,
}


def build_aggregator(kind: str = "majority_vote", threshold: float = 0.5, **opts) -> Aggregator:
    """Instantiate an aggregator by its tag."""
    try:
        cls = AGGREGATORS[kind]
    except KeyError:
        raise InvalidConfiguration(
            f"Unknown aggregator: {kind} (expected one of {sorted(AGGREGATORS)})"
        ) from None
    return cls(threshold=threshold, **opts)


def aggregator_from_config(config) -> Aggregator:
    """Build the aggregator described by a ConsensusConfig."""
    opts = {"alpha": config.weighted_alpha} if config.aggregator == WeightedVote.name else {}
    return build_aggregator(config.aggregator, threshold=config.threshold, **opts)


__all__ = [
    "AGGREGATORS",
    "Aggregator",
    "BestOfN",
    "MajorityVote",
    "VoteGroup",
    "WeightedVote",
    "aggregator_from_config",
    "answer_key",
    "build_aggregator",
    "extract_answer",
    "normalize_answer",
    "tally",
]
