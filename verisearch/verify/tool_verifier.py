"""
Tool / Process-Based Verifier
==============================

Runs one or more checks against a candidate (linters, test runners,
code execution, or in-process callables) and maps each outcome to a
severity.

Score polarity:
    This verifier reports SEVERITY: a higher score means a WORSE
    candidate (``higher_is_better = False``). Default mapping:

        pass → 0.1    warn → 0.5    fail → 0.8

    Outcomes are aggregated by the worst (max) severity unless
    ``aggregation="mean"`` is configured. The result passes only when
    every check passed.

    An error result (timeout, crashed check) carries ``score=0``, which
    on the severity scale would read as the best possible candidate.
    Never rank tool results by raw ``score``: ``utility`` folds the
    polarity in and is 0 (worst) for every error result.

Command checks:
    The candidate is written to a temporary file whose path is appended
    to the command's arguments. Non-zero exit → fail; output matching
    ``warn_pattern`` → warn; otherwise pass. With ``expected_output``
    set, a clean exit whose stripped output differs from it is a fail.
    ``extract_code`` writes only the first fenced code block of the
    candidate, so ``python_execution_check`` can run a model's answer
    as a program. A check that exceeds its timeout turns the whole
    result into an error result.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import os
import re
import sys
import tempfile
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Optional, Sequence, Union

from verisearch.errors import InvalidConfiguration, VerificationError
from verisearch.schemas.candidate import Candidate, QueryContext
from verisearch.schemas.verification import VerificationResult
from verisearch.verify.verifier import BaseVerifier, VerifierKind

logger = logging.getLogger("verisearch.verify.tool_verifier")


class CheckOutcome(str, Enum):
    PASS = "pass"
    WARN = "warn"
    FAIL = "fail"


DEFAULT_SEVERITY: dict[CheckOutcome, float] = {
    CheckOutcome.PASS: 0.1,
    CheckOutcome.WARN: 0.5,
    CheckOutcome.FAIL: 0.8,
}


@dataclass
class CommandCheck:
    """External command run against the candidate written to a temp file."""
    name: str
    args: list[str]
    warn_pattern: str = r"\bwarning\b"
    suffix: str = ".txt"
    expected_output: Optional[str] = None
    extract_code: bool = False


_CODE_FENCE = re.compile(r"```[\w+-]*[ \t]*\n(.*?)```", re.DOTALL)


def extract_code_block(content: str) -> str:
    """First fenced code block of ``content``, or the whole text without one."""
    match = _CODE_FENCE.search(content)
    return match.group(1) if match else content


def python_execution_check(
    expected_output: Optional[str] = None,
    interpreter: Optional[str] = None,
    name: str = "python",
) -> CommandCheck:
    """
    Check that runs the candidate's code with a Python interpreter.

    The code runs directly on the host; only use it with a
    ``check_timeout_s`` and on candidates you are willing to execute.
    """
    return CommandCheck(
        name=name,
        args=[interpreter or sys.executable],
        warn_pattern=r"\b\w*Warning\b",
        suffix=".py",
        expected_output=expected_output,
        extract_code=True,
    )


CheckFn = Callable[[Candidate, QueryContext], Union[CheckOutcome, str, Awaitable[CheckOutcome]]]


@dataclass
class CallableCheck:
    """In-process check returning a CheckOutcome (sync or async)."""
    name: str
    fn: CheckFn = field(repr=False)


Check = Union[CommandCheck, CallableCheck]


class ToolVerifier(BaseVerifier):
    """
    Severity-scored verifier over external or in-process checks.

    Usage:
        verifier = ToolVerifier(checks=[
            CommandCheck(name="ruff", args=["ruff", "check"], suffix=".py"),
        ])
        result = await verifier.verify(candidate, context)

    Args:
        checks: Checks to run, in order.
        severity: Outcome → severity mapping (pass <= warn <= fail).
        aggregation: "max" (worst outcome) or "mean".
        check_timeout_s: Timeout per check (None: only the verifier timeout).

    Errored results report ``score=0``, which on the severity scale looks
    like the best candidate; compare tool results by ``utility``, which is
    0 for errors.
    """

    kind = VerifierKind.TOOL
    higher_is_better = False

    def __init__(
        self,
        checks: Sequence[Check],
        severity: Optional[dict[CheckOutcome, float]] = None,
        aggregation: str = "max",
        check_timeout_s: Optional[float] = None,
        **kwargs,
    ):
        super().__init__(**kwargs)
        if not checks:
            raise InvalidConfiguration("ToolVerifier requires at least one check")
        severity = {**DEFAULT_SEVERITY, **(severity or {})}
        for outcome, value in severity.items():
            if not 0.0 <= value <= 1.0:
                raise InvalidConfiguration(f"severity for {outcome.value} must be in [0, 1], got {value}")
        if not severity[CheckOutcome.PASS] <= severity[CheckOutcome.WARN] <= severity[CheckOutcome.FAIL]:
            raise InvalidConfiguration("severities must satisfy pass <= warn <= fail")
        if aggregation not in ("max", "mean"):
            raise InvalidConfiguration(f"Unknown aggregation: {aggregation}")
        if check_timeout_s is not None and check_timeout_s <= 0:
            raise InvalidConfiguration(f"check_timeout_s must be > 0, got {check_timeout_s}")

        self.checks = list(checks)
        self.severity = severity
        self.aggregation = aggregation
        self.check_timeout_s = check_timeout_s

    @classmethod
    def from_config(cls, config, checks: Sequence[Check]) -> "ToolVerifier":
        """Build from a VerificationConfig."""
        return cls(
            checks=checks,
            severity={
                CheckOutcome.PASS: config.severity_pass,
                CheckOutcome.WARN: config.severity_warn,
                CheckOutcome.FAIL: config.severity_fail,
            },
            aggregation=config.tool_aggregation,
            timeout_s=config.timeout_s,
            max_concurrency=config.max_concurrency,
        )

    async def _score(
        self, candidate: Candidate, context: QueryContext
    ) -> VerificationResult:
        outcomes: dict[str, CheckOutcome] = {}
        for check in self.checks:
            outcomes[check.name] = await self._run_check(check, candidate, context)

        severities = [self.severity[o] for o in outcomes.values()]
        if self.aggregation == "max":
            score = max(severities)
        else:
            score = sum(severities) / len(severities)

        summary = ", ".join(f"{name}: {o.value}" for name, o in outcomes.items())
        return self._result(
            candidate,
            score=score,
            passed=all(o == CheckOutcome.PASS for o in outcomes.values()),
            rationale=f"{summary} (severity {score:.3f}, {self.aggregation})",
            outcomes={name: o.value for name, o in outcomes.items()},
        )

    async def _run_check(
        self, check: Check, candidate: Candidate, context: QueryContext
    ) -> CheckOutcome:
        if isinstance(check, CommandCheck):
            coro = self._run_command(check, candidate)
        else:
            coro = self._run_callable(check, candidate, context)
        try:
            return await asyncio.wait_for(coro, timeout=self.check_timeout_s)
        except asyncio.TimeoutError:
            raise VerificationError(
                f"check '{check.name}' timed out after {self.check_timeout_s}s"
            ) from None

    @staticmethod
    async def _run_callable(
        check: CallableCheck, candidate: Candidate, context: QueryContext
    ) -> CheckOutcome:
        outcome = check.fn(candidate, context)
        if inspect.isawaitable(outcome):
            outcome = await outcome
        return CheckOutcome(outcome)

    async def _run_command(self, check: CommandCheck, candidate: Candidate) -> CheckOutcome:
        fd, path = tempfile.mkstemp(suffix=check.suffix, prefix="verisearch-")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(extract_code_block(candidate.content) if check.extract_code else candidate.content)

            proc = await asyncio.create_subprocess_exec(
                *check.args, path,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
            try:
                stdout, _ = await proc.communicate()
            except asyncio.CancelledError:
                proc.kill()
                await proc.wait()
                raise
        finally:
            os.unlink(path)

        output = stdout.decode("utf-8", errors="replace")
        logger.debug(f"check '{check.name}' exited {proc.returncode} for {candidate.id}")
        if proc.returncode != 0:
            return CheckOutcome.FAIL
        if check.expected_output is not None and output.strip() != check.expected_output.strip():
            logger.debug(f"check '{check.name}' output mismatch for {candidate.id}")
            return CheckOutcome.FAIL
        if re.search(check.warn_pattern, output, re.IGNORECASE):
            return CheckOutcome.WARN
        return CheckOutcome.PASS
