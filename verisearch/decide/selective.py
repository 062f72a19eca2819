"""
Selective Generation
=====================

Expected-value answer/abstain decision:

    EV(answer)  = c * reward - (1 - c) * penalty
    EV(abstain) = 0

Answer iff EV(answer) > 0 (strictly). With reward = penalty = 1 the
break-even confidence is 0.5, and c = 0.5 abstains.

    | Confidence | Reward/Penalty | EV(answer) | Decision |
    |------------|----------------|------------|----------|
    | 0.8        | 1 / 1          | 0.6        | answer   |
    | 0.5        | 1 / 1          | 0.0        | abstain  |
    | 0.9        | 1 / 10         | -0.1       | abstain  |

Fixed-threshold mode (``use_ev=False`` plus ``confidence_threshold``)
answers iff c >= threshold; EV is still reported.
"""

from __future__ import annotations

import logging
from typing import Optional

from verisearch.errors import InvalidConfiguration
from verisearch.schemas.decision import EVChoice, EVDecision

logger = logging.getLogger("verisearch.decide.selective")

MAX_REWARD = 1000.0
MAX_PENALTY = 1000.0

# name → (reward, penalty)
DOMAIN_PRESETS: dict[str, tuple[float, float]] = {
    "general": (1.0, 1.0),
    "safety_critical": (1.0, 10.0),
}


class SelectiveGeneration:
    """
    Decides whether answering beats abstaining.

    Usage:
        sg = SelectiveGeneration(reward=1.0, penalty=10.0)
        sg.decide(0.9).decision   # EVChoice.ABSTAIN

    Args:
        reward: Gain for a correct answer, in (0, 1000].
        penalty: Loss for a wrong answer, in [0, 1000].
        use_ev: False switches to fixed-threshold mode.
        confidence_threshold: Threshold for fixed-threshold mode.
    """

    def __init__(
        self,
        reward: float = 1.0,
        penalty: float = 1.0,
        use_ev: bool = True,
        confidence_threshold: Optional[float] = None,
    ):
        if not 0.0 < reward <= MAX_REWARD:
            raise InvalidConfiguration(f"reward must be in (0, {MAX_REWARD}], got {reward}")
        if not 0.0 <= penalty <= MAX_PENALTY:
            raise InvalidConfiguration(f"penalty must be in [0, {MAX_PENALTY}], got {penalty}")
        if confidence_threshold is not None and not 0.0 <= confidence_threshold <= 1.0:
            raise InvalidConfiguration(
                f"confidence_threshold must be in [0, 1], got {confidence_threshold}"
            )
        if not use_ev and confidence_threshold is None:
            raise InvalidConfiguration("fixed-threshold mode requires confidence_threshold")
        self.reward = reward
        self.penalty = penalty
        self.use_ev = use_ev
        self.confidence_threshold = confidence_threshold

    @classmethod
    def from_config(cls, config) -> "SelectiveGeneration":
        """Build from a SelectiveConfig."""
        return cls(
            reward=config.reward,
            penalty=config.penalty,
            use_ev=config.use_ev,
            confidence_threshold=config.confidence_threshold,
        )

    @classmethod
    def for_domain(cls, domain: str) -> "SelectiveGeneration":
        """Build from a named preset (``general`` or ``safety_critical``)."""
        if domain not in DOMAIN_PRESETS:
            raise InvalidConfiguration(
                f"Unknown domain preset '{domain}'. Available: {sorted(DOMAIN_PRESETS)}"
            )
        reward, penalty = DOMAIN_PRESETS[domain]
        return cls(reward=reward, penalty=penalty)

    def expected_values(self, confidence: float) -> tuple[float, float]:
        """Return (EV(answer), EV(abstain))."""
        return confidence * self.reward - (1.0 - confidence) * self.penalty, 0.0

    @property
    def break_even(self) -> float:
        """Confidence at which EV(answer) == 0."""
        return self.penalty / (self.reward + self.penalty)

    def decide(self, confidence: float) -> EVDecision:
        if not 0.0 <= confidence <= 1.0:
            raise InvalidConfiguration(f"confidence must be in [0, 1], got {confidence}")

        ev_answer, ev_abstain = self.expected_values(confidence)
        if not self.use_ev:
            answer = confidence >= self.confidence_threshold
            mode = "threshold"
            reasoning = (
                f"Confidence {confidence:.3f} "
                f"{'meets' if answer else 'is below'} threshold {self.confidence_threshold:.3f}"
            )
        else:
            answer = ev_answer > 0
            mode = "ev"
            terms = (
                f"at confidence {confidence:.3f} "
                f"(reward: {self.reward:.3f}, penalty: {self.penalty:.3f})"
            )
            if answer:
                reasoning = f"Positive expected value ({ev_answer:.3f}) {terms}. Answering is optimal."
            else:
                reasoning = (
                    f"Non-positive expected value ({ev_answer:.3f}) {terms}. "
                    f"Abstaining to avoid potential error."
                )

        logger.debug(f"EV decision: {reasoning}")
        return EVDecision(
            decision=EVChoice.ANSWER if answer else EVChoice.ABSTAIN,
            confidence=confidence,
            ev_answer=ev_answer,
            ev_abstain=ev_abstain,
            reward=self.reward,
            penalty=self.penalty,
            mode=mode,
            reasoning=reasoning,
        )
