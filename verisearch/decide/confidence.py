"""
Confidence Estimation & Calibration
====================================

Turns a search/sampling outcome into a single confidence in [0, 1] for
the decision layer, and optionally calibrates it so it reflects the
observed answer accuracy.

Estimators:
    - VerifierConfidenceEstimator:  verifier utility of the answer
    - ConsensusConfidenceEstimator: agreement x utility of the selected
      answer (0 when nobody voted)

Calibration methods:
    - Temperature scaling (single parameter, fitted with scipy)
    - Isotonic regression (non-parametric, scikit-learn)

Outputs:
    - Calibrated confidence
    - Expected Calibration Error (ECE) and reliability-diagram data

Data Flow:
    ConsensusResult → ConfidenceEstimator → raw → ConfidenceCalibrator → calibrated
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Optional

import numpy as np

from verisearch.errors import InvalidConfiguration
from verisearch.schemas.candidate import Candidate, QueryContext
from verisearch.schemas.consensus import ConsensusResult

logger = logging.getLogger("verisearch.decide.confidence")

CALIBRATION_METHODS = ("temperature", "isotonic", "none")


# ── Estimators ─────────────────────────────────────────────────────

class ConfidenceEstimator(ABC):
    """Maps an answer (and the run that produced it) to a confidence in [0, 1]."""

    @abstractmethod
    def estimate(
        self,
        candidate: Optional[Candidate],
        context: QueryContext,
        consensus: Optional[ConsensusResult] = None,
    ) -> float:
        ...


class VerifierConfidenceEstimator(ConfidenceEstimator):
    """Confidence = the verifier's utility for the answer."""

    def estimate(
        self,
        candidate: Optional[Candidate],
        context: QueryContext,
        consensus: Optional[ConsensusResult] = None,
    ) -> float:
        if candidate is None or candidate.verification is None:
            return 0.0
        return candidate.utility


class ConsensusConfidenceEstimator(ConfidenceEstimator):
    """
    Confidence = agreement score x utility of the selected answer.

    An unverified selection counts with utility 1, so pure voting runs
    report their agreement as the confidence.
    """

    def estimate(
        self,
        candidate: Optional[Candidate],
        context: QueryContext,
        consensus: Optional[ConsensusResult] = None,
    ) -> float:
        if consensus is None or consensus.is_empty:
            return 0.0
        chosen = candidate or consensus.selected
        if chosen is None:
            return 0.0
        utility = chosen.utility if chosen.verification is not None else 1.0
        return float(min(max(consensus.agreement_score * utility, 0.0), 1.0))


# ── Calibration ────────────────────────────────────────────────────

class ConfidenceCalibrator:
    """
    Calibrates raw confidences against observed correctness.

    Usage:
        calibrator = ConfidenceCalibrator(method="isotonic")
        calibrator.fit(raw_confidences, was_correct)
        calibrated = calibrator.calibrate_single(0.8)
        ece = calibrator.compute_ece(raw_confidences, was_correct)

    Args:
        method: "temperature", "isotonic", or "none".
        n_bins: Number of bins for ECE computation.
    """

    def __init__(self, method: str = "isotonic", n_bins: int = 10):
        if method not in CALIBRATION_METHODS:
            raise InvalidConfiguration(
                f"Unknown calibration method: {method}. Available: {list(CALIBRATION_METHODS)}"
            )
        if n_bins < 1:
            raise InvalidConfiguration(f"n_bins must be >= 1, got {n_bins}")
        self.method = method
        self.n_bins = n_bins
        self._calibrator = None
        self._temperature: float = 1.0
        self._is_fitted: bool = False

    @classmethod
    def from_config(cls, config) -> "ConfidenceCalibrator":
        """Build from a CalibrationConfig."""
        return cls(method=config.method, n_bins=config.n_bins)

    @property
    def is_fitted(self) -> bool:
        return self._is_fitted

    @property
    def temperature(self) -> float:
        return self._temperature

    def fit(self, raw_scores, true_labels) -> None:
        """
        Fit on held-out (confidence, correct?) pairs.

        Args:
            raw_scores: Raw confidences in [0, 1].
            true_labels: 1 if the answer was correct, else 0.
        """
        raw_scores = np.asarray(raw_scores, dtype=np.float64)
        true_labels = np.asarray(true_labels, dtype=np.float64)

        if len(raw_scores) != len(true_labels):
            raise ValueError("raw_scores and true_labels must have same length")
        if len(raw_scores) == 0:
            raise ValueError("cannot fit a calibrator on an empty set")

        if self.method == "temperature":
            self._fit_temperature(raw_scores, true_labels)
        elif self.method == "isotonic":
            self._fit_isotonic(raw_scores, true_labels)

        self._is_fitted = True
        logger.info(
            f"Calibrator fitted using {self.method} method "
            f"on {len(raw_scores)} samples"
        )

    def _fit_temperature(self, scores: np.ndarray, labels: np.ndarray) -> None:
        """Learn T such that calibrated = sigmoid(logit(score) / T) by minimizing NLL."""
        from scipy.optimize import minimize_scalar

        eps = 1e-7
        clipped = np.clip(scores, eps, 1 - eps)
        logits = np.log(clipped / (1 - clipped))

        def nll(T):
            calibrated = 1 / (1 + np.exp(-logits / max(T, eps)))
            calibrated = np.clip(calibrated, eps, 1 - eps)
            loss = -(labels * np.log(calibrated) + (1 - labels) * np.log(1 - calibrated))
            return np.mean(loss)

        result = minimize_scalar(nll, bounds=(0.1, 10.0), method="bounded")
        self._temperature = float(result.x)
        logger.info(f"Temperature scaling: T = {self._temperature:.4f}")

    def _fit_isotonic(self, scores: np.ndarray, labels: np.ndarray) -> None:
        from sklearn.isotonic import IsotonicRegression

        self._calibrator = IsotonicRegression(y_min=0.0, y_max=1.0, out_of_bounds="clip")
        self._calibrator.fit(scores, labels)

    def calibrate(self, raw_scores) -> np.ndarray:
        """Apply calibration; identity when unfitted or method is "none"."""
        raw_scores = np.asarray(raw_scores, dtype=np.float64)

        if self.method == "none" or not self._is_fitted:
            return raw_scores

        if self.method == "temperature":
            eps = 1e-7
            clipped = np.clip(raw_scores, eps, 1 - eps)
            logits = np.log(clipped / (1 - clipped))
            return 1 / (1 + np.exp(-logits / self._temperature))

        return np.clip(self._calibrator.predict(raw_scores), 0.0, 1.0)

    def calibrate_single(self, raw_score: float) -> float:
        return float(self.calibrate(np.array([raw_score]))[0])

    # ── Diagnostics ────────────────────────────────────────────────

    def _bins(self, scores: np.ndarray, n_bins: int):
        boundaries = np.linspace(0, 1, n_bins + 1)
        for i in range(n_bins):
            lower, upper = boundaries[i], boundaries[i + 1]
            if i == 0:
                mask = (scores >= lower) & (scores <= upper)
            else:
                mask = (scores > lower) & (scores <= upper)
            yield lower, upper, mask

    def compute_ece(self, scores, labels, n_bins: Optional[int] = None) -> float:
        """
        Expected Calibration Error.

        ECE = Σ (|B_k|/N) * |accuracy(B_k) - confidence(B_k)|; 0 is perfect.
        """
        n_bins = n_bins or self.n_bins
        scores = np.asarray(scores, dtype=np.float64)
        labels = np.asarray(labels, dtype=np.float64)
        if len(scores) == 0:
            return 0.0

        ece = 0.0
        for _, _, mask in self._bins(scores, n_bins):
            count = mask.sum()
            if count > 0:
                ece += (count / len(scores)) * abs(labels[mask].mean() - scores[mask].mean())
        return float(ece)

    def get_reliability_data(self, scores, labels, n_bins: Optional[int] = None) -> dict:
        """
        Data for a reliability diagram.

        Returns:
            Dict with 'bin_centers', 'bin_accuracies', 'bin_confidences',
            'bin_counts', 'ece'.
        """
        n_bins = n_bins or self.n_bins
        scores = np.asarray(scores, dtype=np.float64)
        labels = np.asarray(labels, dtype=np.float64)

        data = {"bin_centers": [], "bin_accuracies": [], "bin_confidences": [], "bin_counts": []}
        for lower, upper, mask in self._bins(scores, n_bins):
            count = int(mask.sum())
            if count > 0:
                data["bin_centers"].append(float((lower + upper) / 2))
                data["bin_accuracies"].append(float(labels[mask].mean()))
                data["bin_confidences"].append(float(scores[mask].mean()))
                data["bin_counts"].append(count)
        data["ece"] = self.compute_ece(scores, labels, n_bins)
        return data
