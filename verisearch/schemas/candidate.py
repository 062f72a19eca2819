"""
Candidate Schema
=================

A Candidate is one proposed answer (or a partial reasoning path) with
its provenance. Candidates are immutable: attaching a verification
produces a new Candidate.

Also defines the two inputs of the generation boundary:
QueryContext (what to generate for) and SamplingParams (how).

Data Flow:
    QueryContext + SamplingParams → Generator → Candidate → Verifier
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from verisearch.schemas.verification import VerificationResult


class GenerationMode(str, Enum):
    """
    What the generator is asked to produce.

    - ANSWER:  a complete answer to the query (diverse decoding, sampling)
    - STEP:    one continuation of a partial path (beam / MCTS expansion)
    - ROLLOUT: finish a partial path in one go (MCTS simulation)
    """
    ANSWER = "answer"
    STEP = "step"
    ROLLOUT = "rollout"


class Provenance(BaseModel):
    """Where a candidate came from and what it cost."""
    model_config = ConfigDict(frozen=True)

    generator: str = Field(default="unknown", description="Generator identity")
    model: Optional[str] = Field(default=None, description="Backend model name")
    temperature: Optional[float] = Field(default=None, description="Sampling temperature used")
    seed: Optional[int] = Field(default=None, description="Sampling seed used")
    mode: GenerationMode = Field(default=GenerationMode.ANSWER)
    prompt_tokens: int = Field(default=0, ge=0)
    completion_tokens: int = Field(default=0, ge=0)
    cost: float = Field(default=0.0, ge=0.0, description="Cost in backend units (e.g. USD)")
    latency_ms: float = Field(default=0.0, ge=0.0)


class Candidate(BaseModel):
    """
    One proposed answer plus provenance.

    ``complete`` is False for partial reasoning paths produced during
    beam search or MCTS expansion; the generator decides when a path
    is finished.
    """
    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Unique within a run")
    content: str = Field(description="Answer text (or partial path)")
    provenance: Provenance = Field(default_factory=Provenance)
    verification: Optional[VerificationResult] = Field(
        default=None,
        description="Most recent verification attached to this candidate"
    )
    complete: bool = Field(default=True, description="False for an unfinished path")
    metadata: dict[str, Any] = Field(default_factory=dict)

    def with_verification(self, result: VerificationResult) -> "Candidate":
        """Return a copy of this candidate carrying ``result``."""
        return self.model_copy(update={"verification": result})

    @property
    def utility(self) -> float:
        """Verifier utility in [0, 1]; 0 when unverified or errored."""
        if self.verification is None:
            return 0.0
        return self.verification.utility

    @property
    def verification_failed(self) -> bool:
        """True when a verification is attached and it errored."""
        return self.verification is not None and self.verification.error


class QueryContext(BaseModel):
    """
    Input to the generation boundary and to verifiers.

    ``partial`` holds the path built so far when expanding a tree node;
    it is None for a fresh answer.
    """
    model_config = ConfigDict(frozen=True)

    query: str = Field(description="The user query")
    ground_truth: Optional[str] = Field(
        default=None,
        description="Reference answer, when known (deterministic verification)"
    )
    partial: Optional[str] = Field(default=None, description="Partial path to continue")
    depth: int = Field(default=0, ge=0)
    metadata: dict[str, Any] = Field(default_factory=dict)

    def extend(self, partial: str, depth: int) -> "QueryContext":
        """Context for continuing ``partial`` at ``depth``."""
        return self.model_copy(update={"partial": partial, "depth": depth})


class SamplingParams(BaseModel):
    """Sampling parameters for a single generation call."""
    model_config = ConfigDict(frozen=True)

    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    seed: Optional[int] = Field(default=None)
    max_tokens: int = Field(default=512, ge=1)
    mode: GenerationMode = Field(default=GenerationMode.ANSWER)
