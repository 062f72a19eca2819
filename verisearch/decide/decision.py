"""
Decision Engine
================

Combines the three decision components into one CalibrationDecision.

Precedence:
    1. Uncertainty classifier says ``abstain`` → gate's low action,
       regardless of the raw confidence.
    2. Selective generation says ``abstain`` (EV(answer) <= 0) → gate's
       low action.
    3. Otherwise the calibration gate's routing stands.

A fitted ConfidenceCalibrator, when given, is applied to the raw
confidence before any of the three components sees it.

Data Flow:
    (query, confidence, candidate) → [Calibrator] → Gate + Selective + Uncertainty
        → CalibrationDecision
"""

from __future__ import annotations

import logging
from typing import Optional

from verisearch.decide.calibration_gate import CalibrationGate
from verisearch.decide.confidence import ConfidenceCalibrator
from verisearch.decide.selective import SelectiveGeneration
from verisearch.decide.uncertainty import UncertaintyClassifier
from verisearch.errors import InvalidConfiguration
from verisearch.schemas.candidate import Candidate
from verisearch.schemas.decision import CalibrationDecision, UncertaintyAction

logger = logging.getLogger("verisearch.decide.decision")


class DecisionEngine:
    """
    Decision surface for one answer.

    Usage:
        engine = DecisionEngine.from_config(config)
        decision = engine.decide("What is 2+2?", 0.75, candidate)
        decision.action   # Action.DIRECT

    Args:
        gate: Calibration gate (bands and output transformation).
        selective: Expected-value answer/abstain rule.
        uncertainty: Optional uncertainty classifier.
        calibrator: Optional confidence calibrator.
    """

    def __init__(
        self,
        gate: Optional[CalibrationGate] = None,
        selective: Optional[SelectiveGeneration] = None,
        uncertainty: Optional[UncertaintyClassifier] = None,
        calibrator: Optional[ConfidenceCalibrator] = None,
    ):
        self.gate = gate or CalibrationGate()
        self.selective = selective or SelectiveGeneration()
        self.uncertainty = uncertainty
        self.calibrator = calibrator

    @classmethod
    def from_config(
        cls,
        config,
        domain: Optional[str] = None,
        calibrator: Optional[ConfidenceCalibrator] = None,
    ) -> "DecisionEngine":
        """
        Build from a VeriSearchConfig.

        Args:
            domain: Optional selective-generation preset that replaces
                the configured reward/penalty.
        """
        if domain is not None:
            selective = SelectiveGeneration.for_domain(domain)
        else:
            selective = SelectiveGeneration.from_config(config.selective)
        uncertainty = (
            UncertaintyClassifier.from_config(config.uncertainty)
            if config.uncertainty.enabled else None
        )
        return cls(
            gate=CalibrationGate.from_config(config.calibration),
            selective=selective,
            uncertainty=uncertainty,
            calibrator=calibrator,
        )

    def decide(
        self,
        query: str,
        confidence: float,
        candidate: Optional[Candidate] = None,
    ) -> CalibrationDecision:
        if not 0.0 <= confidence <= 1.0:
            raise InvalidConfiguration(f"confidence must be in [0, 1], got {confidence}")

        raw = confidence
        if self.calibrator is not None and self.calibrator.is_fitted:
            confidence = self.calibrator.calibrate_single(raw)
            logger.debug(f"Calibrated confidence {raw:.3f} → {confidence:.3f}")

        routing = self.gate.route(confidence, candidate)
        ev = self.selective.decide(confidence)
        uncertainty = self.uncertainty.classify(query) if self.uncertainty else None

        low = self.gate.low_action
        if uncertainty is not None and uncertainty.action == UncertaintyAction.ABSTAIN:
            action = low
            content = self.gate.transform(low, None, confidence)
            reasoning = f"{uncertainty.reasoning} ({uncertainty.uncertainty_type.value} uncertainty); {low.value}"
        elif not ev.should_answer:
            action = low
            content = self.gate.transform(low, None, confidence)
            reasoning = ev.reasoning
        else:
            action = routing.action
            content = routing.content
            reasoning = routing.reasoning

        if uncertainty is not None and uncertainty.action in (
            UncertaintyAction.PROVIDE_OPTIONS, UncertaintyAction.SUGGEST_SOURCE
        ):
            reasoning += f"; uncertainty suggests {uncertainty.action.value}"

        logger.info(f"Decision for confidence {confidence:.3f}: {action.value}")
        return CalibrationDecision(
            query=query,
            confidence=confidence,
            action=action,
            ev_answer=ev.ev_answer,
            ev_abstain=ev.ev_abstain,
            reasoning=reasoning,
            content=content,
            routing=routing,
            ev=ev,
            uncertainty=uncertainty,
        )
