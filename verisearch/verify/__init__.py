"""
VeriSearch Verifiers
=====================

Four verifier kinds share one capability set (verify, verify_batch,
supports_streaming) and are constructed by tag through
``build_verifier``:

- deterministic: ground-truth comparison, score 1.0 / 0.0
- llm_judge:     model-judged score through the generation boundary
- tool:          severity from external or in-process checks
- step:          per-step process reward, aggregated over the path
"""

from verisearch.errors import InvalidConfiguration
from verisearch.verify.deterministic import DeterministicVerifier
from verisearch.verify.llm_judge import LLMJudgeVerifier
from verisearch.verify.step_verifier import (
    LLMStepVerifier,
    StepVerifier,
    aggregate_step_scores,
)
from verisearch.verify.tool_verifier import (
    CallableCheck,
    CheckOutcome,
    CommandCheck,
    ToolVerifier,
    python_execution_check,
)
from verisearch.verify.verifier import BaseVerifier, VerifierKind

VERIFIERS = {
    VerifierKind.DETERMINISTIC: DeterministicVerifier,
    VerifierKind.LLM_JUDGE: LLMJudgeVerifier,
    VerifierKind.TOOL: ToolVerifier,
    VerifierKind.STEP: LLMStepVerifier,
}


def build_verifier(kind: str | VerifierKind, **opts) -> BaseVerifier:
    """
    Instantiate a verifier by its kind tag.

    Example:
        build_verifier("deterministic", ground_truth="42")
        build_verifier("llm_judge", generator=my_generator)
        build_verifier("step", generator=my_generator, aggregation="product")
    """
    try:
        cls = VERIFIERS[VerifierKind(kind)]
    except ValueError:
        raise InvalidConfiguration(f"Unknown verifier kind: {kind}") from None
    return cls(**opts)


__all__ = [
    "BaseVerifier",
    "CallableCheck",
    "CheckOutcome",
    "CommandCheck",
    "DeterministicVerifier",
    "LLMJudgeVerifier",
    "LLMStepVerifier",
    "StepVerifier",
    "ToolVerifier",
    "VERIFIERS",
    "VerifierKind",
    "aggregate_step_scores",
    "build_verifier",
    "python_execution_check",
]
