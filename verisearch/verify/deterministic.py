"""
Deterministic Verifier
=======================

Compares a candidate's extracted answer with a known ground truth.
No model calls, no partial credit: the score is 1.0 on a match and
0.0 otherwise.

Comparison types:
    - exact:   normalized string equality
    - numeric: |candidate - truth| <= tolerance (tolerance required)
    - regex:   ground truth is a pattern searched in the answer

The ground truth comes from the constructor or, when absent there,
from ``QueryContext.ground_truth``.
"""

from __future__ import annotations

import logging
import re
from typing import Optional

from verisearch.consensus.answers import extract_answer, normalize_answer
from verisearch.errors import InvalidConfiguration, VerificationError
from verisearch.schemas.candidate import Candidate, QueryContext
from verisearch.schemas.verification import VerificationResult
from verisearch.verify.verifier import BaseVerifier, VerifierKind

logger = logging.getLogger("verisearch.verify.deterministic")

COMPARISONS = ("exact", "numeric", "regex")

_NUMBER_PATTERN = re.compile(
    r"[-+]?(?:(?:\d{1,3}(?:,\d{3})+|\d+)(?:\.\d+)?|\.\d+)(?:[eE][-+]?\d+)?"
)


def parse_number(text: str) -> Optional[float]:
    """First number in ``text`` (thousands separators allowed), or None."""
    match = _NUMBER_PATTERN.search(text)
    if match is None:
        return None
    return float(match.group(0).replace(",", ""))


class DeterministicVerifier(BaseVerifier):
    """
    Ground-truth comparison verifier.

    Usage:
        verifier = DeterministicVerifier(ground_truth="42")
        result = await verifier.verify(candidate, context)

    Args:
        ground_truth: Reference answer (or regex pattern).
        comparison: "exact", "numeric", or "regex".
        tolerance: Absolute epsilon for numeric comparison.
        case_sensitive: Keep case when normalizing (default False).
        extract: Extract the final answer from the candidate first.
    """

    kind = VerifierKind.DETERMINISTIC

    def __init__(
        self,
        ground_truth: Optional[str] = None,
        comparison: str = "exact",
        tolerance: Optional[float] = None,
        case_sensitive: bool = False,
        extract: bool = True,
        **kwargs,
    ):
        super().__init__(**kwargs)
        if comparison not in COMPARISONS:
            raise InvalidConfiguration(f"Unknown comparison type: {comparison}")
        if comparison == "numeric":
            if tolerance is None:
                raise InvalidConfiguration("numeric comparison requires a tolerance")
            if tolerance < 0:
                raise InvalidConfiguration(f"tolerance must be >= 0, got {tolerance}")
        if comparison == "regex" and ground_truth is not None:
            self._compile(ground_truth, case_sensitive, InvalidConfiguration)

        self.ground_truth = ground_truth
        self.comparison = comparison
        self.tolerance = tolerance
        self.case_sensitive = case_sensitive
        self.extract = extract

    @classmethod
    def from_config(cls, config, ground_truth: Optional[str] = None) -> "DeterministicVerifier":
        """Build from a VerificationConfig."""
        return cls(
            ground_truth=ground_truth,
            comparison=config.comparison,
            tolerance=config.tolerance,
            case_sensitive=config.case_sensitive,
            timeout_s=config.timeout_s,
            max_concurrency=config.max_concurrency,
        )

    @staticmethod
    def _compile(pattern: str, case_sensitive: bool, error_cls=VerificationError) -> re.Pattern:
        try:
            return re.compile(pattern, 0 if case_sensitive else re.IGNORECASE)
        except re.error as e:
            raise error_cls(f"invalid regex {pattern!r}: {e}") from e

    async def _score(
        self, candidate: Candidate, context: QueryContext
    ) -> VerificationResult:
        truth = self.ground_truth if self.ground_truth is not None else context.ground_truth
        if truth is None:
            raise VerificationError("no ground truth available")

        answer = extract_answer(candidate.content) if self.extract else candidate.content

        if self.comparison == "exact":
            matched = (
                normalize_answer(answer, self.case_sensitive)
                == normalize_answer(truth, self.case_sensitive)
            )
        elif self.comparison == "numeric":
            expected = parse_number(truth)
            if expected is None:
                raise VerificationError(f"ground truth {truth!r} is not numeric")
            actual = parse_number(answer)
            matched = actual is not None and abs(actual - expected) <= self.tolerance
        else:
            pattern = self._compile(truth, self.case_sensitive)
            matched = pattern.search(answer) is not None

        if matched:
            rationale = f"Match found using {self.comparison} comparison"
        else:
            rationale = f"No match: expected {truth!r}, got {answer!r}"

        return self._result(
            candidate,
            score=1.0 if matched else 0.0,
            passed=matched,
            rationale=rationale,
            comparison=self.comparison,
            extracted_answer=answer,
        )
