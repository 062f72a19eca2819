"""
Difficulty Estimation
======================

Difficulty estimators map a query to easy / medium / hard; the adaptive
sampler uses the level only to choose its candidate-count bounds.

HeuristicDifficultyEstimator scores four cheap features and combines
them with fixed weights:

    | Feature       | Weight | Signal                                   |
    |---------------|--------|------------------------------------------|
    | length        | 0.25   | character count                          |
    | complexity    | 0.30   | average word length, special characters  |
    | domain        | 0.25   | math / code / reasoning / creative words |
    | question type | 0.20   | why/how (hard) vs. what/when (easy)      |

    score < 0.35 → easy,  score > 0.65 → hard,  otherwise medium
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod

from verisearch.errors import InvalidConfiguration
from verisearch.schemas.sampling import DifficultyEstimate, DifficultyLevel

logger = logging.getLogger("verisearch.sampling.difficulty")


# ── Indicator lists ────────────────────────────────────────────────
MATH_INDICATORS = [
    "sum", "integral", "derivative", "equation", "formula", "calculate",
    "compute", "solve", "probability", "statistic", "algebra", "geometry",
    "trigonometry", "calculus", "+", "*", "/", "^", "=", "≤", "≥",
]

CODE_INDICATORS = [
    "function", "class", "def ", "import", "return", "algorithm",
    "data structure", "recursion", "iteration", "compile", "debug",
    "()", "{}", "[]", "=>", "==", "!=", "&&", "||",
]

REASONING_INDICATORS = [
    "explain", "why", "how", "analyze", "compare", "contrast", "evaluate",
    "assess", "justify", "reasoning", "logic", "relationship", "difference",
    "cause",
]

CREATIVE_INDICATORS = [
    "write", "create", "generate", "story", "poem", "imagine", "invent",
    "design", "compose", "narrative",
]

SIMPLE_QUESTION_WORDS = [
    "what", "when", "where", "who", "which", "list", "name", "identify",
    "define",
]

_SPECIAL_CHARS = re.compile(r"[^\w\s]")


def _contains(text: str, indicator: str) -> bool:
    """Word match for alphabetic indicators, substring match for symbols."""
    if indicator.strip().isalpha() or " " in indicator.strip():
        return re.search(rf"\b{re.escape(indicator.strip())}\b", text) is not None
    return indicator in text


def _count(text: str, indicators: list[str]) -> int:
    return sum(1 for indicator in indicators if _contains(text, indicator))


class DifficultyEstimator(ABC):
    """Base class for difficulty estimators."""

    @abstractmethod
    def estimate(self, query: str) -> DifficultyEstimate:
        ...


class FixedDifficulty(DifficultyEstimator):
    """Always reports the same level (the sampler's default is medium)."""

    def __init__(self, level: DifficultyLevel = DifficultyLevel.MEDIUM):
        self.level = DifficultyLevel(level)

    def estimate(self, query: str) -> DifficultyEstimate:
        score = {DifficultyLevel.EASY: 0.0, DifficultyLevel.MEDIUM: 0.5, DifficultyLevel.HARD: 1.0}
        return DifficultyEstimate(
            level=self.level,
            score=score[self.level],
            reasoning=f"fixed difficulty: {self.level.value}",
        )


class HeuristicDifficultyEstimator(DifficultyEstimator):
    """
    Rule-based difficulty estimator (no model calls).

    Usage:
        estimator = HeuristicDifficultyEstimator()
        estimator.estimate("What is 2+2?").level          # easy
        estimator.estimate("Explain why ... and compare ...").level  # harder

    Args:
        weights: Feature weights (length, complexity, domain, question).
        easy_threshold: Scores below this are easy.
        hard_threshold: Scores above this are hard.
    """

    DEFAULT_WEIGHTS = {"length": 0.25, "complexity": 0.30, "domain": 0.25, "question": 0.20}

    def __init__(
        self,
        weights: dict[str, float] | None = None,
        easy_threshold: float = 0.35,
        hard_threshold: float = 0.65,
    ):
        weights = {**self.DEFAULT_WEIGHTS, **(weights or {})}
        if any(w < 0 for w in weights.values()) or abs(sum(weights.values()) - 1.0) > 1e-6:
            raise InvalidConfiguration(f"weights must be non-negative and sum to 1, got {weights}")
        if not 0.0 <= easy_threshold < hard_threshold <= 1.0:
            raise InvalidConfiguration(
                f"need 0 <= easy_threshold < hard_threshold <= 1, got {easy_threshold}, {hard_threshold}"
            )
        self.weights = weights
        self.easy_threshold = easy_threshold
        self.hard_threshold = hard_threshold

    @classmethod
    def from_config(cls, config) -> "HeuristicDifficultyEstimator":
        """Build from a SamplingConfig."""
        return cls(easy_threshold=config.easy_threshold, hard_threshold=config.hard_threshold)

    def to_level(self, score: float) -> DifficultyLevel:
        if score < self.easy_threshold:
            return DifficultyLevel.EASY
        if score > self.hard_threshold:
            return DifficultyLevel.HARD
        return DifficultyLevel.MEDIUM

    def estimate(self, query: str) -> DifficultyEstimate:
        query = query.strip()
        lowered = query.lower()
        features = {
            "length": self._length_score(query),
            "complexity": self._complexity_score(query),
            "domain": self._domain_score(lowered),
            "question": self._question_score(query, lowered),
        }
        score = min(max(sum(features[k] * self.weights[k] for k in features), 0.0), 1.0)
        level = self.to_level(score)

        mean = sum(features.values()) / len(features)
        variance = sum((v - mean) ** 2 for v in features.values()) / len(features)
        if variance < 0.05:
            confidence = 0.95
        elif variance < 0.1:
            confidence = 0.85
        elif variance < 0.2:
            confidence = 0.7
        else:
            confidence = 0.6

        logger.debug(f"Difficulty {level.value} (score={score:.3f}) for query of {len(query)} chars")
        return DifficultyEstimate(
            level=level,
            score=score,
            confidence=confidence,
            reasoning=", ".join(f"{k}={v:.2f}" for k, v in features.items()),
            features=features,
        )

    # ── Features ───────────────────────────────────────────────────

    @staticmethod
    def _length_score(query: str) -> float:
        n = len(query)
        if n < 50:
            return 0.0
        if n < 100:
            return 0.2
        if n < 200:
            return 0.5
        if n < 300:
            return 0.7
        return 1.0

    @staticmethod
    def _complexity_score(query: str) -> float:
        words = query.split()
        avg_len = sum(len(w) for w in words) / len(words) if words else 0.0
        special = len(_SPECIAL_CHARS.findall(query))
        if avg_len < 4 and special < 2:
            return 0.0
        if avg_len < 5 and special < 5:
            return 0.3
        if avg_len < 6 and special < 10:
            return 0.5
        if avg_len < 7 or special < 15:
            return 0.7
        return 1.0

    @staticmethod
    def _domain_score(lowered: str) -> float:
        top = max(
            _count(lowered, MATH_INDICATORS),
            _count(lowered, CODE_INDICATORS),
            _count(lowered, REASONING_INDICATORS),
            _count(lowered, CREATIVE_INDICATORS),
        )
        if top >= 3:
            return 1.0
        if top >= 2:
            return 0.7
        if top >= 1:
            return 0.4
        return 0.0

    @staticmethod
    def _question_score(query: str, lowered: str) -> float:
        reasoning = _count(lowered, REASONING_INDICATORS)
        simple = _count(lowered, SIMPLE_QUESTION_WORDS)
        if reasoning >= 2:
            return 1.0
        if reasoning >= 1:
            return 0.6
        if simple >= 2:
            return 0.2
        if query.endswith("?"):
            return 0.3
        return 0.5
