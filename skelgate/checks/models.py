"""Check declarations, per-check results and run reports.

Provides Pydantic v2 models for every level of a quality-gate run: how a tool
is invoked, how a check is classified, what a single check produced, and the
aggregated report handed back to the caller (and optionally written for CI).
"""

from __future__ import annotations

import shlex
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Optional

from pydantic import BaseModel, Field, computed_field


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

class CheckKind(str, Enum):
    """Whether a check's failure fails the run."""

    BLOCKING = "blocking"
    ADVISORY = "advisory"


class CheckOutcome(str, Enum):
    PASSED = "passed"
    FAILED = "failed"
    ERRORED = "errored"
    SKIPPED = "skipped"


class OutcomeReason(str, Enum):
    """Why a check ended ``errored`` or ``skipped``."""

    TIMEOUT = "timeout"
    CANCELLED = "cancelled"
    NOT_FOUND = "not-found"
    MALFORMED = "malformed"
    PREREQUISITE = "prerequisite"


# ---------------------------------------------------------------------------
# Invocation contract
# ---------------------------------------------------------------------------

class InvocationOutcome(BaseModel):
    """What happened when a tool was invoked."""

    started: bool = Field(default=True, description="False when the process never launched")
    exit_code: Optional[int] = Field(default=None)
    output: str = Field(default="", description="Captured stdout and stderr")
    duration_seconds: float = Field(default=0.0, ge=0.0)
    timed_out: bool = Field(default=False)
    cancelled: bool = Field(default=False)
    error: Optional[OutcomeReason] = Field(
        default=None, description="Set when the process could not be started"
    )


class Invocation(BaseModel, frozen=True):
    """How to run one external tool."""

    program: str = Field(..., description="Executable name or path")
    args: list[str] = Field(default_factory=list)
    cwd: Optional[str] = Field(
        default=None, description="Working directory, relative to the run's work dir"
    )
    env: dict[str, str] = Field(default_factory=dict, description="Overrides merged onto os.environ")
    timeout: Optional[float] = Field(default=None, gt=0, description="Seconds; None uses the run default")
    success_codes: list[int] = Field(default_factory=lambda: [0])
    success: Optional[Callable[[InvocationOutcome], bool]] = Field(
        default=None,
        exclude=True,
        description="Overrides the exit-code test when set",
    )

    @property
    def argv(self) -> list[str]:
        return [self.program, *self.args]

    def describe(self) -> str:
        return " ".join(shlex.quote(part) for part in self.argv)

    def succeeded(self, outcome: InvocationOutcome) -> bool:
        """Apply the success predicate to a completed invocation."""
        if self.success is not None:
            return bool(self.success(outcome))
        return outcome.exit_code in self.success_codes


# ---------------------------------------------------------------------------
# Check
# ---------------------------------------------------------------------------

class Check(BaseModel, frozen=True):
    """A registered quality gate."""

    id: str = Field(..., pattern=r"^[A-Za-z0-9][A-Za-z0-9_.:-]*$")
    invocation: Invocation
    kind: CheckKind = Field(default=CheckKind.BLOCKING)
    after: tuple[str, ...] = Field(
        default=(), description="Ids of checks that must finish (and pass) first"
    )
    description: str = Field(default="")

    @property
    def blocking(self) -> bool:
        return self.kind is CheckKind.BLOCKING


# ---------------------------------------------------------------------------
# Per-check result
# ---------------------------------------------------------------------------

class CheckResult(BaseModel):
    """The single result a check produces in one run."""

    check_id: str
    kind: CheckKind = CheckKind.BLOCKING
    outcome: CheckOutcome
    reason: Optional[OutcomeReason] = None
    diagnostic: str = Field(default="", description="Opaque tool output or skip/error explanation")
    exit_code: Optional[int] = None
    duration_seconds: float = Field(default=0.0, ge=0.0)

    @computed_field  # type: ignore[misc]
    @property
    def fails_run(self) -> bool:
        """True when this result makes the overall run fail."""
        return self.kind is CheckKind.BLOCKING and self.outcome in (
            CheckOutcome.FAILED,
            CheckOutcome.ERRORED,
        )

    @property
    def label(self) -> str:
        """``outcome`` or ``outcome(reason)``."""
        if self.reason is None:
            return self.outcome.value
        return f"{self.outcome.value}({self.reason.value})"


# ---------------------------------------------------------------------------
# Run report
# ---------------------------------------------------------------------------

class RunReport(BaseModel):
    """Aggregated outcome of one pipeline run, in registry order."""

    results: list[CheckResult] = Field(default_factory=list)
    work_dir: str = Field(default="")
    cancelled: bool = Field(default=False)
    timestamp: str = Field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat(),
        description="ISO-8601 timestamp of when the report was generated",
    )
    metadata: dict[str, Any] = Field(default_factory=dict)

    @computed_field  # type: ignore[misc]
    @property
    def overall(self) -> str:
        """``failed`` if any blocking check failed or errored, else ``passed``."""
        return "failed" if any(r.fails_run for r in self.results) else "passed"

    @property
    def passed(self) -> bool:
        return self.overall == "passed"

    def get(self, check_id: str) -> Optional[CheckResult]:
        for result in self.results:
            if result.check_id == check_id:
                return result
        return None

    def counts(self) -> dict[str, int]:
        """Number of results per outcome."""
        counts = {outcome.value: 0 for outcome in CheckOutcome}
        for result in self.results:
            counts[result.outcome.value] += 1
        return counts

    # -- Serialisation helpers -----------------------------------------------

    def to_ci_dict(self) -> dict[str, Any]:
        """Condensed ``check id -> outcome/diagnostic`` mapping for CI."""
        return {
            "overall": self.overall,
            "timestamp": self.timestamp,
            "cancelled": self.cancelled,
            "checks": {
                r.check_id: {
                    "kind": r.kind.value,
                    "outcome": r.outcome.value,
                    "reason": r.reason.value if r.reason else None,
                    "exit_code": r.exit_code,
                    "duration_seconds": r.duration_seconds,
                    "diagnostic": r.diagnostic,
                }
                for r in self.results
            },
        }

    def summary_text(self) -> str:
        """Human-readable multi-line summary."""
        lines: list[str] = []
        lines.append(f"Quality gates  [{self.overall.upper()}]  {self.timestamp}")
        lines.append("-" * 60)
        for r in self.results:
            lines.append(
                f"  {r.check_id:24s} {r.kind.value:9s} {r.label:24s} "
                f"({r.duration_seconds:.1f}s)"
            )
        lines.append("-" * 60)
        counts = self.counts()
        lines.append(
            "  " + ", ".join(f"{n} {outcome}" for outcome, n in counts.items())
        )
        return "\n".join(lines)
