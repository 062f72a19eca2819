"""Adaptive self-consistency sampling and difficulty estimation."""

from verisearch.sampling.adaptive import AdaptiveSampler, SamplingRun
from verisearch.sampling.difficulty import (
    DifficultyEstimator,
    FixedDifficulty,
    HeuristicDifficultyEstimator,
)

__all__ = [
    "AdaptiveSampler",
    "DifficultyEstimator",
    "FixedDifficulty",
    "HeuristicDifficultyEstimator",
    "SamplingRun",
]
