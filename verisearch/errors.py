"""
VeriSearch Error Taxonomy
==========================

Four error kinds, each with a distinct propagation rule:

- GenerationError:      returned (not raised) by generators so a batch can
                        count partial failures without aborting.
- VerificationError:    raised inside a verifier and converted into an
                        error VerificationResult at the verifier boundary.
- BudgetExceeded:       raised by the search budget; controllers and the
                        adaptive sampler turn it into a normal stop_reason.
                        Terminal only when a hard cap cannot be honoured.
- InvalidConfiguration: raised at construction time, before any
                        generation begins.
"""

from __future__ import annotations


class VeriSearchError(Exception):
    """Base class for all VeriSearch errors."""


class GenerationError(VeriSearchError):
    """
    A typed generation failure.

    Generators return instances of this class instead of raising, so
    callers can tell a failed slot apart from a produced Candidate.

    Args:
        reason: Human-readable failure description.
        transient: True when a retry may succeed (timeouts, rate limits).
        generator: Identity of the generator that failed.
    """

    def __init__(self, reason: str, transient: bool = False, generator: str = "unknown"):
        super().__init__(reason)
        self.reason = reason
        self.transient = transient
        self.generator = generator

    def __repr__(self) -> str:
        return (
            f"GenerationError(reason={self.reason!r}, transient={self.transient}, "
            f"generator={self.generator!r})"
        )


class VerificationError(VeriSearchError):
    """A verifier could not produce a score (malformed reply, failed check...)."""


class BudgetExceeded(VeriSearchError):
    """The generation budget or wall-clock deadline has been used up."""


class InvalidConfiguration(VeriSearchError, ValueError):
    """A threshold, bound, or option is out of range."""
