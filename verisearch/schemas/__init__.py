"""
VeriSearch Data Schemas
========================

Pydantic v2 models for the data contracts shared by every component:

1. Candidate          — Proposed answer + provenance (immutable)
2. VerificationResult — Verifier output per candidate
3. ConsensusResult    — Aggregator output
4. SearchNode / SearchTrace — Beam / MCTS arena nodes and run records
5. SamplingState      — Adaptive sampler run state
6. CalibrationDecision — Final answer / qualify / abstain decision

All schemas support:
- Runtime validation with Pydantic
- JSON Schema export for interoperability
- Serialization for audit trails
"""

from verisearch.schemas.verification import VerificationResult
from verisearch.schemas.candidate import (
    Candidate,
    GenerationMode,
    Provenance,
    QueryContext,
    SamplingParams,
)
from verisearch.schemas.consensus import ConsensusResult
from verisearch.schemas.search import SearchNode, SearchTrace
from verisearch.schemas.sampling import (
    DEFAULT_DIFFICULTY_TABLE,
    DifficultyBounds,
    DifficultyEstimate,
    DifficultyLevel,
    SamplingState,
    StopReason,
)
from verisearch.schemas.decision import (
    Action,
    CalibrationDecision,
    ConfidenceBand,
    EVChoice,
    EVDecision,
    RoutingResult,
    UncertaintyAction,
    UncertaintyResult,
    UncertaintyType,
)

__all__ = [
    "export_all_schemas",
    # Verification
    "VerificationResult",
    # Candidate
    "Candidate",
    "GenerationMode",
    "Provenance",
    "QueryContext",
    "SamplingParams",
    # Consensus
    "ConsensusResult",
    # Search
    "SearchNode",
    "SearchTrace",
    # Sampling
    "DEFAULT_DIFFICULTY_TABLE",
    "DifficultyBounds",
    "DifficultyEstimate",
    "DifficultyLevel",
    "SamplingState",
    "StopReason",
    # Decision
    "Action",
    "CalibrationDecision",
    "ConfidenceBand",
    "EVChoice",
    "EVDecision",
    "RoutingResult",
    "UncertaintyAction",
    "UncertaintyResult",
    "UncertaintyType",
]


def export_all_schemas() -> dict[str, dict]:
    """JSON Schemas for every exported data contract, keyed by snake_case name."""
    models = {
        "candidate": Candidate,
        "query_context": QueryContext,
        "verification_result": VerificationResult,
        "consensus_result": ConsensusResult,
        "search_trace": SearchTrace,
        "sampling_state": SamplingState,
        "calibration_decision": CalibrationDecision,
    }
    return {name: model.model_json_schema() for name, model in models.items()}
