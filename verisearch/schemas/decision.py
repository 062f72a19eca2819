"""
Decision Schemas
=================

Outputs of the decision layer:

1. RoutingResult       — calibration gate band + output transformation
2. EVDecision          — expected-value answer/abstain decision
3. UncertaintyResult   — aleatoric / epistemic / certain classification
4. CalibrationDecision — the combined, user-facing decision

Data Flow:
    confidence + candidate → Gate / Selective / Uncertainty → CalibrationDecision
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class Action(str, Enum):
    """Output mode chosen by the calibration gate."""
    DIRECT = "direct"
    WITH_VERIFICATION = "with_verification"
    WITH_CITATIONS = "with_citations"
    ABSTAIN = "abstain"
    ESCALATE = "escalate"


MEDIUM_ACTIONS = (Action.WITH_VERIFICATION, Action.WITH_CITATIONS)
LOW_ACTIONS = (Action.ABSTAIN, Action.ESCALATE)


class ConfidenceBand(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class RoutingResult(BaseModel):
    """Calibration gate output for one answer."""
    action: Action
    band: ConfidenceBand
    confidence: float = Field(ge=0.0, le=1.0)
    content: Optional[str] = Field(
        default=None,
        description="Answer text after the output transformation"
    )
    reasoning: str = ""


class EVChoice(str, Enum):
    ANSWER = "answer"
    ABSTAIN = "abstain"


class EVDecision(BaseModel):
    """
    Expected-value decision.

    EV(answer) = confidence * reward - (1 - confidence) * penalty
    EV(abstain) = 0
    """
    decision: EVChoice
    confidence: float = Field(ge=0.0, le=1.0)
    ev_answer: float
    ev_abstain: float = 0.0
    reward: float
    penalty: float
    mode: str = Field(default="ev", description="'ev' or 'threshold'")
    reasoning: str = ""

    @property
    def should_answer(self) -> bool:
        return self.decision == EVChoice.ANSWER


class UncertaintyType(str, Enum):
    """
    - ALEATORIC: inherent ambiguity, several valid answers
    - EPISTEMIC: missing knowledge, more information would resolve it
    - CERTAIN:   neither indicator present
    """
    ALEATORIC = "aleatoric"
    EPISTEMIC = "epistemic"
    CERTAIN = "certain"


class UncertaintyAction(str, Enum):
    PROVIDE_OPTIONS = "provide_options"
    ABSTAIN = "abstain"
    SUGGEST_SOURCE = "suggest_source"
    ANSWER_DIRECTLY = "answer_directly"


class UncertaintyResult(BaseModel):
    """Uncertainty classification of a query/answer pair."""
    uncertainty_type: UncertaintyType
    confidence: float = Field(ge=0.0, le=1.0)
    aleatoric_score: float = Field(ge=0.0, le=1.0)
    epistemic_score: float = Field(ge=0.0, le=1.0)
    action: UncertaintyAction
    reasoning: str = ""


class CalibrationDecision(BaseModel):
    """
    The user-facing decision for one query.

    ``action`` is the final output mode after combining the calibration
    gate, the EV decision and the uncertainty classification.
    """
    query: str
    confidence: float = Field(ge=0.0, le=1.0)
    action: Action
    ev_answer: float
    ev_abstain: float = 0.0
    reasoning: str
    content: Optional[str] = Field(default=None, description="Transformed answer text")
    routing: RoutingResult
    ev: EVDecision
    uncertainty: Optional[UncertaintyResult] = None

    @property
    def answered(self) -> bool:
        """True when some form of the answer is surfaced to the user."""
        return self.action not in LOW_ACTIONS
