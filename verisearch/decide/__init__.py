"""Decision layer: calibration gate, selective generation, uncertainty, confidence."""

from verisearch.decide.calibration_gate import CalibrationGate
from verisearch.decide.confidence import (
    ConfidenceCalibrator,
    ConfidenceEstimator,
    ConsensusConfidenceEstimator,
    VerifierConfidenceEstimator,
)
from verisearch.decide.decision import DecisionEngine
from verisearch.decide.selective import DOMAIN_PRESETS, SelectiveGeneration
from verisearch.decide.uncertainty import UncertaintyClassifier

__all__ = [
    "CalibrationGate",
    "ConfidenceCalibrator",
    "ConfidenceEstimator",
    "ConsensusConfidenceEstimator",
    "DOMAIN_PRESETS",
    "DecisionEngine",
    "SelectiveGeneration",
    "UncertaintyClassifier",
    "VerifierConfidenceEstimator",
]
