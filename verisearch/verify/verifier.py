"""
Verifier Interface
===================

Abstract base class for all VeriSearch verifiers. Every verifier
(deterministic, LLM-judge, tool-based, step-level) implements this interface.

The interface ensures:
- Consistent input/output format across verifier kinds
- A fixed capability set: verify, verify_batch, supports_streaming
- Failure containment: ``verify`` never raises. Timeouts, malformed
  input and transport errors come back as an error VerificationResult
  (``error=True``, ``score=0``) with a rationale.

Data Flow:
    (Candidate, QueryContext) → Verifier → VerificationResult
"""

from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Optional, Sequence

from verisearch.errors import InvalidConfiguration, VerificationError
from verisearch.schemas.candidate import Candidate, QueryContext
from verisearch.schemas.verification import VerificationResult

logger = logging.getLogger("verisearch.verify.verifier")


class VerifierKind(str, Enum):
    """Tag used to dispatch verifier construction."""
    DETERMINISTIC = "deterministic"
    LLM_JUDGE = "llm_judge"
    TOOL = "tool"
    STEP = "step"


class BaseVerifier(ABC):
    """
    Abstract base class for candidate verifiers.

    Subclasses implement ``_score``, which may raise freely; ``verify``
    applies the per-call timeout and converts any failure into an error
    result.

    Args:
        name: Verifier identity recorded on every result.
        timeout_s: Per-call timeout (None disables it).
        max_concurrency: Concurrent calls allowed in ``verify_batch``.
    """

    kind: VerifierKind
    score_range: tuple[float, float] = (0.0, 1.0)
    higher_is_better: bool = True

    def __init__(
        self,
        name: Optional[str] = None,
        timeout_s: Optional[float] = 30.0,
        max_concurrency: int = 8,
    ):
        if timeout_s is not None and timeout_s <= 0:
            raise InvalidConfiguration(f"timeout_s must be > 0, got {timeout_s}")
        if max_concurrency < 1:
            raise InvalidConfiguration(f"max_concurrency must be >= 1, got {max_concurrency}")
        self.name = name or self.kind.value
        self.timeout_s = timeout_s
        self.max_concurrency = max_concurrency

    @abstractmethod
    async def _score(
        self, candidate: Candidate, context: QueryContext
    ) -> VerificationResult:
        """
        Score one candidate.

        May raise; ``verify`` turns any exception into an error result.
        """
        ...

    async def verify(
        self, candidate: Candidate, context: QueryContext
    ) -> VerificationResult:
        """Score ``candidate``; never raises."""
        start = time.perf_counter()
        try:
            result = await asyncio.wait_for(
                self._score(candidate, context), timeout=self.timeout_s
            )
        except asyncio.TimeoutError:
            logger.warning(f"{self.name}: verification of {candidate.id} timed out")
            return self._error(candidate, f"Verification timed out after {self.timeout_s}s")
        except VerificationError as e:
            logger.info(f"{self.name}: verification of {candidate.id} failed: {e}")
            return self._error(candidate, f"Verification failed: {e}")
        except Exception as e:
            logger.error(f"{self.name}: unexpected error verifying {candidate.id}: {e!r}")
            return self._error(candidate, f"Verification failed: {type(e).__name__}: {e}")

        logger.debug(
            f"{self.name}: {candidate.id} scored {result.score:.3f} "
            f"in {(time.perf_counter() - start) * 1000:.1f}ms"
        )
        return result

    async def verify_batch(
        self, candidates: Sequence[Candidate], context: QueryContext
    ) -> list[VerificationResult]:
        """
        Score a batch concurrently (bounded by ``max_concurrency``).

        Returns results in the same order as ``candidates``.
        """
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def _one(candidate: Candidate) -> VerificationResult:
            async with semaphore:
                return await self.verify(candidate, context)

        return list(await asyncio.gather(*(_one(c) for c in candidates)))

    def supports_streaming(self) -> bool:
        """Whether the verifier can score partial output as it streams."""
        return False

    # ── Result helpers ─────────────────────────────────────────────

    def _result(
        self,
        candidate: Candidate,
        score: float,
        passed: bool,
        rationale: str,
        **metadata: Any,
    ) -> VerificationResult:
        return VerificationResult(
            verifier=self.name,
            candidate_id=candidate.id,
            score=score,
            score_range=self.score_range,
            higher_is_better=self.higher_is_better,
            passed=passed,
            rationale=rationale,
            metadata=metadata,
        )

    def _error(self, candidate: Candidate, rationale: str, **metadata: Any) -> VerificationResult:
        return VerificationResult.error_result(
            verifier=self.name,
            candidate_id=candidate.id,
            rationale=rationale,
            score_range=self.score_range,
            higher_is_better=self.higher_is_better,
            **metadata,
        )
