"""
VeriSearch Configuration System
================================

Central configuration using Pydantic Settings. Supports:
- Environment variables (VERISEARCH_ prefix, ``__`` for nested fields)
- .env file loading
- YAML config file overrides

Every sub-config is immutable and range-checked at construction, so an
invalid threshold fails before any generation begins. Components accept
explicit values in their constructors and offer ``from_config`` helpers.

The config produces a deterministic hash for reproducibility tracking;
every PipelineResult is stamped with it.

Usage:
    from verisearch.config import get_config
    cfg = get_config()                        # loads from env / .env
    cfg = get_config("configs/strict.yaml")   # loads with YAML overrides
"""

from __future__ import annotations

import hashlib
import json
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from verisearch.schemas.decision import LOW_ACTIONS, MEDIUM_ACTIONS, Action
from verisearch.schemas.sampling import (
    DEFAULT_DIFFICULTY_TABLE,
    DifficultyBounds,
    DifficultyLevel,
)


# ── Sub-configs ────────────────────────────────────────────────────
class GenerationConfig(BaseModel):
    """Configuration for calls through the generation boundary."""
    model_config = ConfigDict(frozen=True)

    temperature: float = Field(default=0.7, ge=0.0, le=2.0, description="Default sampling temperature")
    max_tokens: int = Field(default=512, ge=1, description="Max tokens per generation")
    timeout_s: float = Field(default=30.0, gt=0.0, description="Per-call generation timeout")
    max_concurrency: int = Field(default=8, ge=1, description="Concurrent generation calls per batch")
    base_seed: int = Field(default=0, description="Seed of the first candidate; later ones add an offset")
    max_retries: int = Field(default=3, ge=1, description="Attempts for transient backend failures")
    backoff_base_s: float = Field(default=1.0, ge=0.0, description="First retry delay (doubles per attempt)")
    backoff_max_s: float = Field(default=30.0, ge=0.0, description="Retry delay cap")


class VerificationConfig(BaseModel):
    """Configuration for the verifier layer."""
    model_config = ConfigDict(frozen=True)

    kind: str = Field(
        default="deterministic",
        description="Verifier kind: 'deterministic', 'llm_judge', 'tool', or 'step'"
    )
    timeout_s: float = Field(default=30.0, gt=0.0, description="Per-call verification timeout")
    max_concurrency: int = Field(default=8, ge=1)
    # Deterministic
    comparison: str = Field(default="exact", description="'exact', 'numeric', or 'regex'")
    tolerance: Optional[float] = Field(default=None, ge=0.0, description="Numeric comparison epsilon")
    case_sensitive: bool = Field(default=False)
    # LLM judge
    judge_temperature: float = Field(default=0.3, ge=0.0, le=2.0)
    judge_max_retries: int = Field(default=2, ge=1)
    max_candidate_chars: int = Field(default=4000, ge=1, description="Candidate text cap in judge prompts")
    # Tool checks
    severity_pass: float = Field(default=0.1, ge=0.0, le=1.0)
    severity_warn: float = Field(default=0.5, ge=0.0, le=1.0)
    severity_fail: float = Field(default=0.8, ge=0.0, le=1.0)
    tool_aggregation: str = Field(default="max", description="'max' (worst) or 'mean'")
    # Step-level scoring
    step_aggregation: str = Field(default="min", description="'min', 'mean', 'product', or 'max'")
    step_temperature: float = Field(default=0.2, ge=0.0, le=2.0)

    @field_validator("kind")
    @classmethod
    def validate_kind(cls, v: str) -> str:
        if v not in ("deterministic", "llm_judge", "tool", "step"):
            raise ValueError(f"Unknown verifier kind: {v}")
        return v

    @field_validator("comparison")
    @classmethod
    def validate_comparison(cls, v: str) -> str:
        if v not in ("exact", "numeric", "regex"):
            raise ValueError(f"Unknown comparison: {v}")
        return v

    @field_validator("step_aggregation")
    @classmethod
    def validate_step_aggregation(cls, v: str) -> str:
        if v not in ("min", "mean", "product", "max"):
            raise ValueError(f"Unknown step aggregation: {v}")
        return v


class ConsensusConfig(BaseModel):
    """Configuration for consensus aggregation."""
    model_config = ConfigDict(frozen=True)

    aggregator: str = Field(
        default="majority_vote",
        description="'majority_vote', 'best_of_n', or 'weighted'"
    )
    threshold: float = Field(
        default=0.8, ge=0.0, le=1.0,
        description="Agreement required for consensus_reached"
    )
    weighted_alpha: float = Field(
        default=0.5, ge=0.0, le=1.0,
        description="Weighted vote: share of group size vs. mean utility"
    )


class SearchConfig(BaseModel):
    """Configuration for the search controllers."""
    model_config = ConfigDict(frozen=True)

    controller: str = Field(default="diverse", description="'diverse', 'beam', or 'mcts'")
    budget: int = Field(default=200, ge=1, description="Max generation calls per search run")
    # Diverse decoding
    num_candidates: int = Field(default=10, ge=1)
    temperature_min: float = Field(default=0.0, ge=0.0, le=2.0)
    temperature_max: float = Field(default=1.0, ge=0.0, le=2.0)
    mmr_lambda: float = Field(default=0.5, ge=0.0, le=1.0, description="Relevance vs. diversity weight")
    diversity_threshold: float = Field(default=0.7, ge=0.0, le=1.0)
    # Beam search
    beam_width: int = Field(default=5, ge=1)
    branching_factor: int = Field(default=2, ge=1)
    beam_max_depth: int = Field(default=3, ge=1)
    # MCTS
    simulations: int = Field(default=100, ge=1)
    exploration_constant: float = Field(default=1.414, ge=0.0)
    mcts_max_depth: int = Field(default=10, ge=1)
    expansion_width: int = Field(default=2, ge=1)
    rollout: str = Field(default="generator", description="'generator' or 'heuristic'")
    max_rollout_steps: int = Field(default=3, ge=1)
    # Beam / MCTS intermediate nodes
    step_scoring: bool = Field(
        default=False,
        description="Score unfinished paths with the step-level verifier"
    )

    @field_validator("controller")
    @classmethod
    def validate_controller(cls, v: str) -> str:
        if v not in ("diverse", "beam", "mcts"):
            raise ValueError(f"Unknown search controller: {v}")
        return v

    @model_validator(mode="after")
    def validate_temperatures(self) -> "SearchConfig":
        if self.temperature_min > self.temperature_max:
            raise ValueError("temperature_min must be <= temperature_max")
        return self


class SamplingConfig(BaseModel):
    """Configuration for adaptive self-consistency."""
    model_config = ConfigDict(frozen=True)

    easy: DifficultyBounds = Field(default=DEFAULT_DIFFICULTY_TABLE[DifficultyLevel.EASY])
    medium: DifficultyBounds = Field(default=DEFAULT_DIFFICULTY_TABLE[DifficultyLevel.MEDIUM])
    hard: DifficultyBounds = Field(default=DEFAULT_DIFFICULTY_TABLE[DifficultyLevel.HARD])
    default_difficulty: DifficultyLevel = Field(default=DifficultyLevel.MEDIUM)
    timeout_s: Optional[float] = Field(
        default=None, gt=0.0,
        description="Wall-clock limit for one adaptive run"
    )
    easy_threshold: float = Field(default=0.35, ge=0.0, le=1.0, description="Heuristic score below → easy")
    hard_threshold: float = Field(default=0.65, ge=0.0, le=1.0, description="Heuristic score above → hard")

    @model_validator(mode="after")
    def validate_thresholds(self) -> "SamplingConfig":
        if self.easy_threshold >= self.hard_threshold:
            raise ValueError("easy_threshold must be < hard_threshold")
        return self

    @property
    def table(self) -> dict[DifficultyLevel, DifficultyBounds]:
        return {
            DifficultyLevel.EASY: self.easy,
            DifficultyLevel.MEDIUM: self.medium,
            DifficultyLevel.HARD: self.hard,
        }


class CalibrationConfig(BaseModel):
    """Configuration for the calibration gate and confidence calibration."""
    model_config = ConfigDict(frozen=True)

    high_threshold: float = Field(default=0.7, ge=0.0, le=1.0)
    low_threshold: float = Field(default=0.4, ge=0.0, le=1.0)
    medium_action: Action = Field(default=Action.WITH_VERIFICATION)
    low_action: Action = Field(default=Action.ABSTAIN)
    method: str = Field(
        default="none",
        description="Confidence calibration: 'temperature', 'isotonic', or 'none'"
    )
    n_bins: int = Field(default=10, ge=1)

    @model_validator(mode="after")
    def validate_bands(self) -> "CalibrationConfig":
        if self.high_threshold - self.low_threshold <= 1e-4:
            raise ValueError("high_threshold must be greater than low_threshold")
        if self.medium_action not in MEDIUM_ACTIONS:
            raise ValueError(f"medium_action must be one of {[a.value for a in MEDIUM_ACTIONS]}")
        if self.low_action not in LOW_ACTIONS:
            raise ValueError(f"low_action must be one of {[a.value for a in LOW_ACTIONS]}")
        return self


class SelectiveConfig(BaseModel):
    """Configuration for expected-value selective generation."""
    model_config = ConfigDict(frozen=True)

    reward: float = Field(default=1.0, gt=0.0, le=1000.0)
    penalty: float = Field(default=1.0, ge=0.0, le=1000.0)
    use_ev: bool = Field(default=True, description="False switches to fixed-threshold mode")
    confidence_threshold: Optional[float] = Field(default=None, ge=0.0, le=1.0)

    @model_validator(mode="after")
    def validate_mode(self) -> "SelectiveConfig":
        if not self.use_ev and self.confidence_threshold is None:
            raise ValueError("fixed-threshold mode requires confidence_threshold")
        return self


class UncertaintyConfig(BaseModel):
    """Configuration for the uncertainty classifier."""
    model_config = ConfigDict(frozen=True)

    enabled: bool = Field(default=True)
    certainty_floor: float = Field(
        default=0.3, ge=0.0, le=1.0,
        description="Both indicator scores below this → certain"
    )
    dominance_ratio: float = Field(default=1.5, ge=1.0)
    abstain_confidence: float = Field(
        default=0.5, ge=0.0, le=1.0,
        description="Epistemic confidence at/above which the action is abstain"
    )


# ── Main Config ────────────────────────────────────────────────────
class VeriSearchConfig(BaseSettings):
    """
    Root configuration for VeriSearch.

    Loads from environment variables (VERISEARCH_ prefix) and .env file.
    Can be extended with YAML overrides via `get_config(yaml_path)`.

    Example:
        export VERISEARCH_LOG_LEVEL=DEBUG
        export VERISEARCH_CONSENSUS__THRESHOLD=0.6
    """
    model_config = SettingsConfigDict(
        env_prefix="VERISEARCH_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    # ── Top-level settings ─────────────────────────────────────────
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="text", description="Log format: 'json' or 'text'")
    seed: int = Field(default=42, description="Global random seed for reproducibility")

    # ── OpenAI API (generation backend) ────────────────────────────
    openai_api_key: Optional[str] = Field(default=None, description="OpenAI API key")
    openai_model: str = Field(default="gpt-4o-mini", description="OpenAI model for generation")
    openai_base_url: Optional[str] = Field(default=None, description="OpenAI-compatible endpoint")

    # ── Sub-configs ────────────────────────────────────────────────
    generation: GenerationConfig = Field(default_factory=GenerationConfig)
    verification: VerificationConfig = Field(default_factory=VerificationConfig)
    consensus: ConsensusConfig = Field(default_factory=ConsensusConfig)
    search: SearchConfig = Field(default_factory=SearchConfig)
    sampling: SamplingConfig = Field(default_factory=SamplingConfig)
    calibration: CalibrationConfig = Field(default_factory=CalibrationConfig)
    selective: SelectiveConfig = Field(default_factory=SelectiveConfig)
    uncertainty: UncertaintyConfig = Field(default_factory=UncertaintyConfig)

    def config_hash(self) -> str:
        """
        Produce a deterministic SHA-256 hash of the configuration.

        This hash is stamped on every pipeline result so that two runs
        can be compared. Secrets are excluded.
        """
        config_dict = self.model_dump(mode="json", exclude={"openai_api_key"})
        canonical = json.dumps(config_dict, sort_keys=True, default=str)
        return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]


# ── Config Loading ─────────────────────────────────────────────────
def get_config(yaml_path: Optional[str] = None) -> VeriSearchConfig:
    """
    Load VeriSearch configuration.

    Priority (highest to lowest):
        1. YAML config file (if provided; passed as init values)
        2. Environment variables (VERISEARCH_ prefix)
        3. .env file
        4. Default values

    Args:
        yaml_path: Optional path to a YAML config file for overrides.

    Returns:
        Fully resolved VeriSearchConfig instance.
    """
    if yaml_path:
        import yaml
        with open(yaml_path) as f:
            overrides = yaml.safe_load(f) or {}
        return VeriSearchConfig(**overrides)
    return VeriSearchConfig()
