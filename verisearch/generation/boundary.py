"""
Generation Boundary
====================

Abstract interface for every text-generation backend.

Contract:
    - ``generate`` is a coroutine and must be safe to call concurrently.
    - Failures are *returned* as ``GenerationError`` values, never raised,
      so a search controller can count partial failures in a batch
      without aborting it.
    - When ``context.partial`` is set the generator continues that path;
      it marks the returned Candidate ``complete=False`` while the path
      is still unfinished.

Data Flow:
    QueryContext + SamplingParams → Generator → Candidate | GenerationError
"""

from __future__ import annotations

import itertools
import logging
from abc import ABC, abstractmethod
from typing import Union

from verisearch.errors import GenerationError
from verisearch.schemas.candidate import Candidate, QueryContext, SamplingParams

logger = logging.getLogger("verisearch.generation.boundary")

GenerationOutcome = Union[Candidate, GenerationError]


class Generator(ABC):
    """
    Base class for generation backends.

    Subclasses implement ``generate``. ``next_candidate_id`` hands out
    run-unique ids so that concurrent calls never collide.
    """

    def __init__(self, name: str = "generator"):
        self.name = name
        self._ids = itertools.count()

    def next_candidate_id(self, prefix: str = "cand") -> str:
        return f"{prefix}-{next(self._ids)}"

    @abstractmethod
    async def generate(
        self, context: QueryContext, params: SamplingParams
    ) -> GenerationOutcome:
        """
        Produce one candidate for ``context``.

        Args:
            context: Query, optional partial path and depth.
            params: Temperature, seed, token limit and generation mode.

        Returns:
            A Candidate on success, a GenerationError on failure.
        """
        ...


def is_failure(outcome: object) -> bool:
    """True when ``outcome`` is not a usable Candidate."""
    return not isinstance(outcome, Candidate)
