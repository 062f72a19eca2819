"""
Calibration Gate
=================

Routes an answer by confidence band:

    | Band   | Confidence            | Action                                  |
    |--------|-----------------------|-----------------------------------------|
    | high   | c >= high (0.7)       | direct                                  |
    | medium | low <= c < high       | medium_action (with_verification/cit.)  |
    | low    | c < low (0.4)         | low_action (abstain / escalate)         |

Routing is pure; the output transformation appends a notice for medium
answers or replaces the answer with an abstention / escalation notice.
A missing candidate always routes to ``low_action``.

Data Flow:
    confidence + Candidate → CalibrationGate.route() → RoutingResult
"""

from __future__ import annotations

import logging
from typing import Optional

from verisearch.errors import InvalidConfiguration
from verisearch.schemas.candidate import Candidate
from verisearch.schemas.decision import (
    LOW_ACTIONS,
    MEDIUM_ACTIONS,
    Action,
    ConfidenceBand,
    RoutingResult,
)

logger = logging.getLogger("verisearch.decide.calibration_gate")

THRESHOLD_EPSILON = 1e-4

VERIFICATION_SUFFIX = "\n\n[Confidence: Medium] Please verify this information independently."
CITATION_SUFFIX = "\n\n[Confidence: Medium] Consider verifying this with additional sources."

ABSTENTION_NOTICE = (
    "I'm not confident enough to provide a definitive answer to this question "
    "(confidence: {confidence:.2f}).\n\n"
    "This could be because:\n"
    "- The question is ambiguous or unclear\n"
    "- I don't have sufficient information to answer accurately\n"
    "- There are multiple valid interpretations\n\n"
    "Suggestions:\n"
    "- Try rephrasing your question with more specific details\n"
    "- Break the question into smaller parts\n"
    "- Provide additional context"
)

ESCALATION_NOTICE = (
    "I'm not confident enough to provide a definitive answer "
    "(confidence: {confidence:.2f}).\n\n"
    "This question has been escalated for human review."
)


class CalibrationGate:
    """
    Three-band confidence router.

    Usage:
        gate = CalibrationGate()
        gate.route(0.75, candidate).action   # Action.DIRECT
        gate.route(0.55, candidate).action   # Action.WITH_VERIFICATION
        gate.route(0.2, candidate).action    # Action.ABSTAIN

    Args:
        high_threshold: Lower edge of the high band.
        low_threshold: Lower edge of the medium band.
        medium_action: with_verification or with_citations.
        low_action: abstain or escalate.

    Raises:
        InvalidConfiguration: if high <= low or an action is not valid
            for its band.
    """

    def __init__(
        self,
        high_threshold: float = 0.7,
        low_threshold: float = 0.4,
        medium_action: Action = Action.WITH_VERIFICATION,
        low_action: Action = Action.ABSTAIN,
    ):
        for label, value in (("high_threshold", high_threshold), ("low_threshold", low_threshold)):
            if not 0.0 <= value <= 1.0:
                raise InvalidConfiguration(f"{label} must be in [0, 1], got {value}")
        if high_threshold - low_threshold <= THRESHOLD_EPSILON:
            raise InvalidConfiguration(
                f"high_threshold ({high_threshold}) must exceed low_threshold ({low_threshold})"
            )
        try:
            medium_action = Action(medium_action)
            low_action = Action(low_action)
        except ValueError as e:
            raise InvalidConfiguration(str(e)) from e
        if medium_action not in MEDIUM_ACTIONS:
            raise InvalidConfiguration(f"medium_action must be one of {[a.value for a in MEDIUM_ACTIONS]}")
        if low_action not in LOW_ACTIONS:
            raise InvalidConfiguration(f"low_action must be one of {[a.value for a in LOW_ACTIONS]}")

        self.high_threshold = high_threshold
        self.low_threshold = low_threshold
        self.medium_action = medium_action
        self.low_action = low_action

    @classmethod
    def from_config(cls, config) -> "CalibrationGate":
        """Build from a CalibrationConfig."""
        return cls(
            high_threshold=config.high_threshold,
            low_threshold=config.low_threshold,
            medium_action=config.medium_action,
            low_action=config.low_action,
        )

    def band(self, confidence: float) -> ConfidenceBand:
        if confidence >= self.high_threshold:
            return ConfidenceBand.HIGH
        if confidence >= self.low_threshold:
            return ConfidenceBand.MEDIUM
        return ConfidenceBand.LOW

    def action_for(self, confidence: float) -> Action:
        """The action ``route`` would take, without transforming anything."""
        return {
            ConfidenceBand.HIGH: Action.DIRECT,
            ConfidenceBand.MEDIUM: self.medium_action,
            ConfidenceBand.LOW: self.low_action,
        }[self.band(confidence)]

    def route(self, confidence: float, candidate: Optional[Candidate] = None) -> RoutingResult:
        """
        Route one answer.

        Args:
            confidence: Calibrated confidence in [0, 1].
            candidate: The selected answer, or None when every candidate
                failed.
        """
        if not 0.0 <= confidence <= 1.0:
            raise InvalidConfiguration(f"confidence must be in [0, 1], got {confidence}")

        band = self.band(confidence)
        if candidate is None:
            action = self.low_action
            reasoning = f"No usable candidate (confidence {confidence:.3f}), "
        else:
            action = self.action_for(confidence)
            reasoning = f"{band.value.capitalize()} confidence ({confidence:.3f}), "

        content = self.transform(action, candidate, confidence)
        reasoning += {
            Action.DIRECT: "returning answer directly",
            Action.WITH_VERIFICATION: "adding verification suggestion",
            Action.WITH_CITATIONS: "adding citations",
            Action.ABSTAIN: "abstaining from answer",
            Action.ESCALATE: "escalating for review",
        }[action]

        logger.debug(f"Routed confidence {confidence:.3f} → {action.value}")
        return RoutingResult(
            action=action,
            band=band,
            confidence=confidence,
            content=content,
            reasoning=reasoning,
        )

    @staticmethod
    def transform(action: Action, candidate: Optional[Candidate], confidence: float) -> str:
        """Apply the output transformation for ``action``."""
        if action == Action.ESCALATE:
            return ESCALATION_NOTICE.format(confidence=confidence)
        if action == Action.ABSTAIN or candidate is None:
            return ABSTENTION_NOTICE.format(confidence=confidence)
        if action == Action.WITH_VERIFICATION:
            return candidate.content + VERIFICATION_SUFFIX
        if action == Action.WITH_CITATIONS:
            return candidate.content + CITATION_SUFFIX
        return candidate.content
