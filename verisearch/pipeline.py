"""
VeriSearch End-to-End Pipeline
================================

Orchestrates the full engine for one query:
    Query → Difficulty → Adaptive Sampler ⟲ [Controller → Generator → Verifier]
          → Consensus → Confidence → Decision

This is the single entry point for running VeriSearch on a query.
It wires components from the configuration, times each stage, and
stamps the configuration hash on the result.

Usage:
    from verisearch.pipeline import VeriSearchPipeline

    pipeline = VeriSearchPipeline(config, generator=my_generator)
    result = await pipeline.run("What is 6 * 7?", "diverse", ground_truth="42")
    print(result.decision.action, result.decision.content)
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence

from verisearch.config import VeriSearchConfig, get_config
from verisearch.consensus import aggregator_from_config
from verisearch.decide.confidence import (
    ConfidenceCalibrator,
    ConfidenceEstimator,
    ConsensusConfidenceEstimator,
)
from verisearch.decide.decision import DecisionEngine
from verisearch.errors import InvalidConfiguration
from verisearch.generation.boundary import Generator
from verisearch.sampling.adaptive import AdaptiveSampler, SamplingRun
from verisearch.sampling.difficulty import DifficultyEstimator
from verisearch.schemas.candidate import Candidate, QueryContext
from verisearch.schemas.consensus import ConsensusResult
from verisearch.schemas.decision import CalibrationDecision
from verisearch.schemas.sampling import DifficultyLevel, SamplingState
from verisearch.schemas.search import SearchTrace
from verisearch.search import build_controller
from verisearch.utils import generate_run_id
from verisearch.verify.verifier import BaseVerifier, VerifierKind

logger = logging.getLogger("verisearch.pipeline")


@dataclass
class PipelineResult:
    """
    Complete output of a VeriSearch pipeline run.

    Contains everything needed for display, debugging, and auditing.
    """
    run_id: str
    query: str
    controller: str
    consensus: ConsensusResult
    sampling: SamplingState
    decision: CalibrationDecision
    candidates: list[Candidate] = field(default_factory=list)
    traces: list[SearchTrace] = field(default_factory=list)
    timings: dict[str, float] = field(default_factory=dict)
    config_hash: str = ""

    @property
    def answer(self) -> Optional[str]:
        """The text surfaced to the user (transformed by the decision layer)."""
        return self.decision.content

    @property
    def stats(self) -> dict[str, Any]:
        return {
            "difficulty": self.sampling.difficulty.value,
            "candidates": self.sampling.actual_n,
            "generation_failures": self.sampling.generation_failures,
            "batches": self.sampling.batches,
            "stop_reason": self.sampling.stop_reason.value if self.sampling.stop_reason else None,
            "agreement": self.consensus.agreement_score,
            "consensus_reached": self.consensus.consensus_reached,
            "action": self.decision.action.value,
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "query": self.query,
            "controller": self.controller,
            "config_hash": self.config_hash,
            "consensus": self.consensus.model_dump(mode="json"),
            "sampling": self.sampling.model_dump(mode="json"),
            "decision": self.decision.model_dump(mode="json"),
            "traces": [t.model_dump(mode="json", exclude={"candidates", "tree"}) for t in self.traces],
            "timings": self.timings,
            "stats": self.stats,
        }


class VeriSearchPipeline:
    """
    End-to-end VeriSearch orchestrator.

    Manages the flow from query to calibrated decision:
        1. Build the verifier and search controller from config
        2. Sample adaptively until consensus or the difficulty cap
        3. Estimate confidence from the consensus
        4. Route through the decision engine

    Args:
        config: VeriSearch configuration.
        generator: Generation backend; an OpenAIGenerator is built from
            the config when omitted.
        verifier: Explicit verifier; otherwise built from
            ``config.verification.kind``.
        step_verifier: Explicit step-level verifier for unfinished paths;
            otherwise built when ``config.search.step_scoring`` is set.
        tool_checks: Checks for the tool verifier kind.
        difficulty_estimator: Used when no difficulty is passed per query.
        confidence_estimator: Maps consensus to confidence (default:
            agreement x utility).
        calibrator: ConfidenceCalibrator; built unfitted from
            ``config.calibration`` when omitted (see ``fit_calibrator``).
    """

    def __init__(
        self,
        config: Optional[VeriSearchConfig] = None,
        generator: Optional[Generator] = None,
        verifier: Optional[BaseVerifier] = None,
        step_verifier: Optional[BaseVerifier] = None,
        tool_checks: Optional[Sequence] = None,
        difficulty_estimator: Optional[DifficultyEstimator] = None,
        confidence_estimator: Optional[ConfidenceEstimator] = None,
        calibrator: Optional[ConfidenceCalibrator] = None,
    ):
        self.config = config or get_config()
        self._generator = generator
        self._verifier = verifier
        self._step_verifier = step_verifier
        self.tool_checks = list(tool_checks or [])
        self.difficulty_estimator = difficulty_estimator
        self.confidence_estimator = confidence_estimator or ConsensusConfidenceEstimator()
        self.calibrator = calibrator or ConfidenceCalibrator.from_config(self.config.calibration)

    @classmethod
    def from_config(cls, config_path: Optional[str] = None, **components) -> "VeriSearchPipeline":
        """Create pipeline from config file or environment."""
        return cls(get_config(config_path), **components)

    def fit_calibrator(self, raw_confidences, was_correct) -> float:
        """
        Fit the confidence calibrator on held-out outcomes.

        Later decisions see calibrated confidences. Returns the ECE of
        the calibrated confidences on the same data, binned by
        ``config.calibration.n_bins``.
        """
        self.calibrator.fit(raw_confidences, was_correct)
        calibrated = self.calibrator.calibrate(raw_confidences)
        ece = self.calibrator.compute_ece(calibrated, was_correct)
        logger.info(f"Calibrator ({self.calibrator.method}) fitted, ECE {ece:.4f}")
        return ece

    # ── Component wiring ───────────────────────────────────────────

    @property
    def generator(self) -> Generator:
        if self._generator is None:
            from verisearch.generation.openai_backend import OpenAIGenerator
            self._generator = OpenAIGenerator.from_config(self.config)
        return self._generator

    def build_verifier(self, config: VeriSearchConfig) -> BaseVerifier:
        """The explicit verifier, or the one ``config.verification.kind`` names."""
        if self._verifier is not None:
            return self._verifier

        verification = config.verification
        kind = VerifierKind(verification.kind)
        if kind == VerifierKind.DETERMINISTIC:
            from verisearch.verify.deterministic import DeterministicVerifier
            return DeterministicVerifier.from_config(verification)
        if kind == VerifierKind.LLM_JUDGE:
            from verisearch.verify.llm_judge import LLMJudgeVerifier
            return LLMJudgeVerifier.from_config(verification, self.generator, config.generation)
        if kind == VerifierKind.STEP:
            from verisearch.verify.step_verifier import LLMStepVerifier
            return LLMStepVerifier.from_config(verification, self.generator, config.generation)
        if not self.tool_checks:
            raise InvalidConfiguration("tool verifier requires at least one check")
        from verisearch.verify.tool_verifier import ToolVerifier
        return ToolVerifier.from_config(verification, self.tool_checks)

    def build_step_verifier(self, config: VeriSearchConfig) -> Optional[BaseVerifier]:
        """The explicit step verifier, or an LLM one when step scoring is enabled."""
        if self._step_verifier is not None or not config.search.step_scoring:
            return self._step_verifier
        from verisearch.verify.step_verifier import LLMStepVerifier
        return LLMStepVerifier.from_config(config.verification, self.generator, config.generation)

    def build_sampler(self, controller_kind: Optional[str], config: VeriSearchConfig) -> AdaptiveSampler:
        controller = build_controller(
            controller_kind or config.search.controller,
            config,
            self.generator,
            self.build_verifier(config),
            step_verifier=self.build_step_verifier(config),
        )
        return AdaptiveSampler.from_config(
            config.sampling,
            controller,
            aggregator_from_config(config.consensus),
            difficulty_estimator=self.difficulty_estimator,
        )

    # ── Exposed surface ────────────────────────────────────────────

    async def sample(
        self,
        query: str,
        controller_kind: Optional[str] = None,
        config: Optional[VeriSearchConfig] = None,
        ground_truth: Optional[str] = None,
        difficulty: Optional[DifficultyLevel] = None,
    ) -> SamplingRun:
        """Run adaptive sampling and return the full SamplingRun."""
        config = config or self.config
        sampler = self.build_sampler(controller_kind, config)
        context = QueryContext(query=query, ground_truth=ground_truth)
        return await sampler.run(context, difficulty)

    async def run_search(
        self,
        query: str,
        controller_kind: Optional[str] = None,
        config: Optional[VeriSearchConfig] = None,
        ground_truth: Optional[str] = None,
        difficulty: Optional[DifficultyLevel] = None,
    ) -> ConsensusResult:
        """
        Search for an answer and reduce the candidates to a consensus.

        Args:
            query: The question.
            controller_kind: "diverse", "beam", or "mcts" (default from config).
            config: Per-call configuration override.
            ground_truth: Reference answer for the deterministic verifier.
            difficulty: Explicit difficulty level.
        """
        run = await self.sample(query, controller_kind, config, ground_truth, difficulty)
        return run.consensus

    def decide(
        self,
        query: str,
        confidence: float,
        config: Optional[VeriSearchConfig] = None,
        candidate: Optional[Candidate] = None,
        domain: Optional[str] = None,
    ) -> CalibrationDecision:
        """Route a confidence (and optional answer) through the decision layer."""
        engine = DecisionEngine.from_config(config or self.config, domain=domain, calibrator=self.calibrator)
        return engine.decide(query, confidence, candidate)

    async def run(
        self,
        query: str,
        controller_kind: Optional[str] = None,
        ground_truth: Optional[str] = None,
        difficulty: Optional[DifficultyLevel] = None,
        domain: Optional[str] = None,
    ) -> PipelineResult:
        """
        Run the full pipeline on a query.

        Steps:
            1. Adaptive sampling (search + verification + consensus)
            2. Confidence estimation
            3. Decision
        """
        config = self.config
        kind = controller_kind or config.search.controller
        run_id = generate_run_id()
        timings: dict[str, float] = {}
        total_start = time.time()

        # ── Step 1: Search & consensus ─────────────────────────────
        t0 = time.time()
        sampling = await self.sample(query, kind, config, ground_truth, difficulty)
        timings["search_ms"] = (time.time() - t0) * 1000

        # ── Step 2: Confidence ─────────────────────────────────────
        t0 = time.time()
        consensus = sampling.consensus
        context = QueryContext(query=query, ground_truth=ground_truth)
        confidence = self.confidence_estimator.estimate(consensus.selected, context, consensus)
        timings["confidence_ms"] = (time.time() - t0) * 1000

        # ── Step 3: Decision ───────────────────────────────────────
        t0 = time.time()
        decision = self.decide(query, confidence, config, consensus.selected, domain)
        timings["decide_ms"] = (time.time() - t0) * 1000
        timings["total_ms"] = (time.time() - total_start) * 1000

        result = PipelineResult(
            run_id=run_id,
            query=query,
            controller=kind,
            consensus=consensus,
            sampling=sampling.state,
            decision=decision,
            candidates=sampling.candidates,
            traces=sampling.traces,
            timings=timings,
            config_hash=config.config_hash(),
        )
        logger.info(f"Pipeline complete: {result.stats} | Total: {timings['total_ms']:.0f}ms")
        return result
