"""
Verification Result Schema
===========================

Defines the output of a verifier for one candidate: a bounded score,
a pass/fail flag, a rationale, and an error flag.

Design Decisions:
    - Each verifier declares its own score range and polarity
      (``higher_is_better``); tool checks, for instance, report
      severity where a higher score means a worse candidate.
    - Search and ranking never read ``score`` directly. They read
      ``utility``, which folds range and polarity into [0, 1] where
      higher is always better.
    - A failed verification is never omitted: it is an ordinary result
      with ``error=True``, ``score=0`` and ``utility=0``.

Data Flow:
    Candidate → Verifier → VerificationResult → Candidate.with_verification()
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class VerificationResult(BaseModel):
    """
    Score for a single candidate, produced by a single verifier.

    Schema:
        {
          "verifier": "deterministic",
          "candidate_id": "cand-3",
          "score": 1.0,
          "score_range": [0.0, 1.0],
          "higher_is_better": true,
          "passed": true,
          "rationale": "Match found using exact comparison",
          "error": false
        }
    """
    model_config = ConfigDict(frozen=True)

    verifier: str = Field(description="Identity of the verifier that produced the score")
    candidate_id: str = Field(description="Reference to Candidate.id")
    score: float = Field(description="Score within score_range")
    score_range: tuple[float, float] = Field(
        default=(0.0, 1.0),
        description="Inclusive (min, max) range declared by the verifier"
    )
    higher_is_better: bool = Field(
        default=True,
        description="Score polarity: False for severity-style scores"
    )
    passed: bool = Field(default=False, description="Pass/fail verdict")
    rationale: str = Field(default="", description="Human-readable explanation")
    error: bool = Field(default=False, description="True if verification itself failed")
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("score_range")
    @classmethod
    def validate_range(cls, v: tuple[float, float]) -> tuple[float, float]:
        """Range must be non-degenerate."""
        if v[0] >= v[1]:
            raise ValueError(f"score_range min must be < max, got {v}")
        return v

    @model_validator(mode="after")
    def validate_score_in_range(self) -> "VerificationResult":
        """Score must lie within the declared range."""
        low, high = self.score_range
        if not (low <= self.score <= high):
            raise ValueError(
                f"score {self.score} outside declared range [{low}, {high}]"
            )
        return self

    @classmethod
    def error_result(
        cls,
        verifier: str,
        candidate_id: str,
        rationale: str,
        score_range: tuple[float, float] = (0.0, 1.0),
        higher_is_better: bool = True,
        **metadata: Any,
    ) -> "VerificationResult":
        """Build the result reported when verification itself failed."""
        low, high = score_range
        score = 0.0 if low <= 0.0 <= high else low
        return cls(
            verifier=verifier,
            candidate_id=candidate_id,
            score=score,
            score_range=score_range,
            higher_is_better=higher_is_better,
            passed=False,
            rationale=rationale,
            error=True,
            metadata=metadata,
        )

    @property
    def normalized_score(self) -> float:
        """Score rescaled to [0, 1] without polarity correction."""
        low, high = self.score_range
        return (self.score - low) / (high - low)

    @property
    def utility(self) -> float:
        """Polarity-corrected score in [0, 1]; higher is better, 0 on error."""
        if self.error:
            return 0.0
        normalized = self.normalized_score
        return normalized if self.higher_is_better else 1.0 - normalized
