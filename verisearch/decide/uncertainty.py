"""
Uncertainty Classification
===========================

Separates two kinds of uncertainty with regex indicators:

- **Aleatoric**: the question has no single right answer (preferences,
  opinions, ambiguity). More compute will not help; offer options.
- **Epistemic**: the answer depends on knowledge the model may not have
  (forecasts, time-sensitive facts). Abstain or point to a source.

Scoring:
    aleatoric = min(matches / len(patterns) * 3, 1)
    epistemic = min(matches / len(patterns) * 4, 1)

Classification:
    both < certainty_floor (0.3)         → certain, confidence 1 - max
    aleatoric > epistemic * ratio (1.5)  → aleatoric
    epistemic > aleatoric * ratio        → epistemic
    otherwise                            → aleatoric, confidence max
"""

from __future__ import annotations

import logging
import re
from typing import Optional, Sequence

from verisearch.errors import InvalidConfiguration
from verisearch.schemas.decision import UncertaintyAction, UncertaintyResult, UncertaintyType

logger = logging.getLogger("verisearch.decide.uncertainty")

DEFAULT_ALEATORIC_PATTERNS = [
    r"\b(best|better|worst|favorite|prefer|greatest)\b",
    r"\b(maybe|possibly|perhaps|depends|could be|might be)\b",
    r"\b(think|believe|feel|opinion|view|perspective)\b",
    r"\b(how should|what way|in your opinion|what do you think)\b",
    r"\b(like|love|enjoy|prefer|would rather)\b",
    r"\b(beautiful|ugly|good|bad|right|wrong|fair|unfair)\b",
    r"\b(more|less|rather|than|compared to)\b",
]

DEFAULT_EPISTEMIC_PATTERNS = [
    r"\b(will happen|predict|forecast|future of|going to be)\b",
    r"\b(who will|what will|when will|where will)\b",
    r"\b(what is the population of|who is the CEO of)\b",
    r"\b(will win|will happen|predict the)\b",
]

MAX_PATTERNS = 50
MAX_PATTERN_LENGTH = 500


def _compile(patterns: Sequence[str], label: str) -> list[re.Pattern]:
    if len(patterns) == 0:
        raise InvalidConfiguration(f"{label} patterns must not be empty")
    if len(patterns) > MAX_PATTERNS:
        raise InvalidConfiguration(f"at most {MAX_PATTERNS} {label} patterns allowed")
    compiled = []
    for pattern in patterns:
        if len(pattern) > MAX_PATTERN_LENGTH:
            raise InvalidConfiguration(f"{label} pattern longer than {MAX_PATTERN_LENGTH} chars")
        try:
            compiled.append(re.compile(pattern, re.IGNORECASE))
        except re.error as e:
            raise InvalidConfiguration(f"invalid {label} pattern {pattern!r}: {e}") from e
    return compiled


class UncertaintyClassifier:
    """
    Regex-indicator uncertainty classifier.

    Usage:
        classifier = UncertaintyClassifier()
        result = classifier.classify("Who will win the next election?")
        result.uncertainty_type   # UncertaintyType.EPISTEMIC
        result.action             # UncertaintyAction.ABSTAIN
    """

    def __init__(
        self,
        aleatoric_patterns: Optional[Sequence[str]] = None,
        epistemic_patterns: Optional[Sequence[str]] = None,
        certainty_floor: float = 0.3,
        dominance_ratio: float = 1.5,
        abstain_confidence: float = 0.5,
    ):
        if dominance_ratio < 1.0:
            raise InvalidConfiguration(f"dominance_ratio must be >= 1, got {dominance_ratio}")
        for label, value in (("certainty_floor", certainty_floor), ("abstain_confidence", abstain_confidence)):
            if not 0.0 <= value <= 1.0:
                raise InvalidConfiguration(f"{label} must be in [0, 1], got {value}")
        self.aleatoric_patterns = _compile(aleatoric_patterns or DEFAULT_ALEATORIC_PATTERNS, "aleatoric")
        self.epistemic_patterns = _compile(epistemic_patterns or DEFAULT_EPISTEMIC_PATTERNS, "epistemic")
        self.certainty_floor = certainty_floor
        self.dominance_ratio = dominance_ratio
        self.abstain_confidence = abstain_confidence

    @classmethod
    def from_config(cls, config) -> "UncertaintyClassifier":
        """Build from an UncertaintyConfig."""
        return cls(
            certainty_floor=config.certainty_floor,
            dominance_ratio=config.dominance_ratio,
            abstain_confidence=config.abstain_confidence,
        )

    @staticmethod
    def _score(patterns: list[re.Pattern], text: str, boost: float) -> float:
        matches = sum(1 for p in patterns if p.search(text))
        if matches == 0:
            return 0.0
        return min(matches / len(patterns) * boost, 1.0)

    def aleatoric_score(self, text: str) -> float:
        return self._score(self.aleatoric_patterns, text, 3.0)

    def epistemic_score(self, text: str) -> float:
        return self._score(self.epistemic_patterns, text, 4.0)

    def recommend_action(self, uncertainty_type: UncertaintyType, confidence: float) -> UncertaintyAction:
        if uncertainty_type == UncertaintyType.ALEATORIC:
            return UncertaintyAction.PROVIDE_OPTIONS
        if uncertainty_type == UncertaintyType.EPISTEMIC:
            if confidence >= self.abstain_confidence:
                return UncertaintyAction.ABSTAIN
            return UncertaintyAction.SUGGEST_SOURCE
        return UncertaintyAction.ANSWER_DIRECTLY

    def classify(self, query: str) -> UncertaintyResult:
        aleatoric = self.aleatoric_score(query)
        epistemic = self.epistemic_score(query)

        if aleatoric < self.certainty_floor and epistemic < self.certainty_floor:
            kind = UncertaintyType.CERTAIN
            confidence = 1.0 - max(aleatoric, epistemic)
            reasoning = "Query appears factual and straightforward"
        elif aleatoric > epistemic * self.dominance_ratio:
            kind = UncertaintyType.ALEATORIC
            confidence = aleatoric
            reasoning = "Query contains subjective or ambiguous elements requiring interpretation"
        elif epistemic > aleatoric * self.dominance_ratio:
            kind = UncertaintyType.EPISTEMIC
            confidence = epistemic
            reasoning = "Query requires knowledge that may not be available"
        else:
            kind = UncertaintyType.ALEATORIC
            confidence = max(aleatoric, epistemic)
            reasoning = "Query has elements of inherent uncertainty"

        action = self.recommend_action(kind, confidence)
        logger.debug(
            f"Uncertainty {kind.value} (aleatoric={aleatoric:.2f}, "
            f"epistemic={epistemic:.2f}) → {action.value}"
        )
        return UncertaintyResult(
            uncertainty_type=kind,
            confidence=confidence,
            aleatoric_score=aleatoric,
            epistemic_score=epistemic,
            action=action,
            reasoning=reasoning,
        )
