"""
Adaptive Sampling Schemas
==========================

Difficulty levels, their candidate-count bounds, and the per-run
sampling state recorded by the adaptive sampler.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class DifficultyLevel(str, Enum):
    """Query difficulty as reported by a difficulty estimator."""
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class StopReason(str, Enum):
    """Why an adaptive run stopped."""
    CONSENSUS = "consensus"
    MAX_REACHED = "max_reached"
    TIMEOUT = "timeout"


class DifficultyEstimate(BaseModel):
    """Output of a difficulty estimator."""
    level: DifficultyLevel
    score: float = Field(ge=0.0, le=1.0, description="0 = trivial, 1 = very hard")
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)
    reasoning: str = ""
    features: dict[str, float] = Field(default_factory=dict)


class DifficultyBounds(BaseModel):
    """Candidate-count bounds for one difficulty level."""
    model_config = ConfigDict(frozen=True)

    initial_n: int = Field(ge=1, description="First batch size and minimum candidates")
    max_n: int = Field(ge=1, description="Hard cap on candidates")
    batch_size: int = Field(ge=1, description="Size of every later batch")

    @model_validator(mode="after")
    def validate_bounds(self) -> "DifficultyBounds":
        if self.initial_n > self.max_n:
            raise ValueError(
                f"initial_n ({self.initial_n}) must be <= max_n ({self.max_n})"
            )
        return self


DEFAULT_DIFFICULTY_TABLE: dict[DifficultyLevel, DifficultyBounds] = {
    DifficultyLevel.EASY: DifficultyBounds(initial_n=3, max_n=5, batch_size=3),
    DifficultyLevel.MEDIUM: DifficultyBounds(initial_n=5, max_n=10, batch_size=3),
    DifficultyLevel.HARD: DifficultyBounds(initial_n=10, max_n=20, batch_size=5),
}


class SamplingState(BaseModel):
    """
    State of one adaptive run. Mutated only by the AdaptiveSampler.

    ``actual_n`` counts generation slots consumed, including slots whose
    generation failed (those are also counted in ``generation_failures``).
    """
    difficulty: DifficultyLevel
    min_candidates: int
    max_candidates: int
    batch_size: int
    consensus_threshold: float
    agreement_history: list[float] = Field(default_factory=list)
    actual_n: int = 0
    generation_failures: int = 0
    batches: int = 0
    early_stopped: bool = False
    stop_reason: Optional[StopReason] = None
