"""Quality-gate pipeline orchestrator.

Runs a set of checks against a working tree:

- checks start in dependency order, declaration order breaking ties;
- a check whose prerequisite did not pass is skipped, never started;
- up to ``concurrency`` independent checks run at once (default 1);
- one check failing never stops the others, so the report is complete;
- a cancel event stops dispatch and interrupts running checks.

Results are collected into a :class:`RunReport` in check order.
"""

from __future__ import annotations

import asyncio
import time
from pathlib import Path
from typing import Optional, Sequence

from rich.console import Console

from skelgate.config import Config
from skelgate.utils import OUTCOME_STYLES, console as default_console, truncate

from .models import (
    Check,
    CheckOutcome,
    CheckResult,
    InvocationOutcome,
    OutcomeReason,
    RunReport,
)
from .registry import CheckRegistry
from .runnable import Runnable, SubprocessRunner


class PipelineOrchestrator:
    """Dispatches checks to a :class:`Runnable` and aggregates the results.

    Parameters
    ----------
    runner:
        Executes invocations.  Defaults to a :class:`SubprocessRunner`.
    default_timeout:
        Seconds allowed for checks whose invocation sets no timeout.
    console:
        Where progress lines are printed.
    show_summary:
        Print the plain-text summary when a run ends.  Callers that render
        their own report turn this off.
    """

    def __init__(
        self,
        runner: Optional[Runnable] = None,
        *,
        default_timeout: float = 600.0,
        console: Optional[Console] = None,
        show_summary: bool = True,
    ) -> None:
        self.runner = runner or SubprocessRunner()
        self.default_timeout = default_timeout
        self.console = console or default_console
        self.show_summary = show_summary

    @classmethod
    def from_config(cls, config: Config, runner: Optional[Runnable] = None) -> "PipelineOrchestrator":
        return cls(
            runner or SubprocessRunner(grace_period=config.run.grace_period),
            default_timeout=config.run.default_timeout,
        )

    # -- Public API ----------------------------------------------------------

    async def run(
        self,
        checks: Sequence[Check],
        work_dir: str | Path,
        *,
        concurrency: int = 1,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> RunReport:
        """Run *checks* against *work_dir* and return the aggregated report.

        Raises:
            ValueError: If *concurrency* is below 1.
            RegistryError: If the checks have duplicate ids, unknown or
                cyclic dependencies.
        """
        if concurrency < 1:
            raise ValueError(f"concurrency must be >= 1, got {concurrency}")

        order = CheckRegistry(checks).ordered()
        work = Path(work_dir).resolve()
        run_start = time.monotonic()

        results: dict[str, CheckResult] = {}
        pending: list[Check] = list(order)
        running: dict[asyncio.Task[CheckResult], tuple[Check, float]] = {}
        cancel_waiter: Optional[asyncio.Task[bool]] = None
        if cancel_event is not None:
            cancel_waiter = asyncio.create_task(cancel_event.wait())
        cancelled = False

        try:
            while pending or running:
                if not cancelled and cancel_event is not None and cancel_event.is_set():
                    cancelled = self._cancel(running)

                if cancelled:
                    for check in pending:
                        result = _skipped(
                            check, OutcomeReason.CANCELLED, "Run cancelled before this check started"
                        )
                        results[check.id] = result
                        self._log_result(result)
                    pending.clear()
                else:
                    self._dispatch(pending, running, results, work, concurrency)

                if not running:
                    if pending:  # pragma: no cover - ordering guarantees progress
                        raise RuntimeError("No runnable checks left but some are pending")
                    break

                waitables: set[asyncio.Future] = set(running)
                if cancel_waiter is not None and not cancelled:
                    waitables.add(cancel_waiter)
                done, _ = await asyncio.wait(waitables, return_when=asyncio.FIRST_COMPLETED)

                if cancel_waiter is not None and cancel_waiter in done and not cancelled:
                    cancelled = self._cancel(running)

                for task in done:
                    if task is cancel_waiter:
                        continue
                    check, started_at = running.pop(task)
                    result = _collect(task, check, time.monotonic() - started_at)
                    results[check.id] = result
                    self._log_result(result)
        finally:
            if cancel_waiter is not None and not cancel_waiter.done():
                cancel_waiter.cancel()
            for task in running:
                task.cancel()
            if running:
                await asyncio.gather(*running, return_exceptions=True)

        report = RunReport(
            results=[results[check.id] for check in order],
            work_dir=str(work),
            cancelled=cancelled,
            metadata={
                "concurrency": concurrency,
                "total_duration_seconds": round(time.monotonic() - run_start, 3),
            },
        )
        if self.show_summary:
            self.console.print(report.summary_text(), markup=False, highlight=False)
        return report

    # -- Scheduling ----------------------------------------------------------

    def _dispatch(
        self,
        pending: list[Check],
        running: dict[asyncio.Task[CheckResult], tuple[Check, float]],
        results: dict[str, CheckResult],
        work: Path,
        concurrency: int,
    ) -> None:
        """Skip or start every pending check whose prerequisites have ended.

        *pending* is in dependency order, so a single pass sees the effect of
        skips made earlier in the same pass.
        """
        for check in list(pending):
            if any(dep not in results for dep in check.after):
                continue
            not_passed = [
                dep for dep in check.after if results[dep].outcome is not CheckOutcome.PASSED
            ]
            if not_passed:
                pending.remove(check)
                result = _skipped(
                    check,
                    OutcomeReason.PREREQUISITE,
                    "Prerequisite(s) did not pass: " + ", ".join(not_passed),
                )
                results[check.id] = result
                self._log_result(result)
                continue
            if len(running) >= concurrency:
                continue
            pending.remove(check)
            self.console.print(f"[cyan]Running[/cyan] {check.id}: [dim]{check.invocation.describe()}[/dim]")
            task = asyncio.create_task(self._execute(check, work), name=f"check:{check.id}")
            running[task] = (check, time.monotonic())

    async def _execute(self, check: Check, work: Path) -> CheckResult:
        """Invoke one check and classify the outcome."""
        invocation = check.invocation
        cwd = work / invocation.cwd if invocation.cwd else work
        timeout = invocation.timeout or self.default_timeout

        try:
            outcome = await self.runner.invoke(invocation, cwd, timeout)
            succeeded = (
                outcome.started
                and not outcome.timed_out
                and not outcome.cancelled
                and invocation.succeeded(outcome)
            )
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            # A broken runner or success predicate is a setup fault for this
            # check only.
            return CheckResult(
                check_id=check.id,
                kind=check.kind,
                outcome=CheckOutcome.ERRORED,
                reason=OutcomeReason.MALFORMED,
                diagnostic=f"{type(exc).__name__}: {exc}",
            )

        return _classify(check, outcome, succeeded)

    # -- Helpers -------------------------------------------------------------

    def _cancel(self, running: dict[asyncio.Task[CheckResult], tuple[Check, float]]) -> bool:
        """Interrupt running checks; the runner stops each child gracefully."""
        self.console.print("[yellow]Cancellation requested; stopping checks.[/yellow]")
        for task in running:
            task.cancel()
        return True

    def _log_result(self, result: CheckResult) -> None:
        """Print a one-line summary of a finished check."""
        color = OUTCOME_STYLES.get(result.outcome.value, "white")
        line = (
            f"[{color}]{result.check_id}: {result.label}[/{color}] "
            f"[dim]({result.duration_seconds:.1f}s, {result.kind.value})[/dim]"
        )
        self.console.print(line)
        if result.outcome is not CheckOutcome.PASSED and result.diagnostic:
            self.console.print(truncate(result.diagnostic), style="dim", markup=False)


# ---------------------------------------------------------------------------
# Result construction
# ---------------------------------------------------------------------------


def _classify(check: Check, outcome: InvocationOutcome, succeeded: bool) -> CheckResult:
    if not outcome.started:
        status, reason = CheckOutcome.ERRORED, outcome.error or OutcomeReason.MALFORMED
    elif outcome.timed_out:
        status, reason = CheckOutcome.ERRORED, OutcomeReason.TIMEOUT
    elif outcome.cancelled:
        status, reason = CheckOutcome.ERRORED, OutcomeReason.CANCELLED
    elif succeeded:
        status, reason = CheckOutcome.PASSED, None
    else:
        status, reason = CheckOutcome.FAILED, None

    return CheckResult(
        check_id=check.id,
        kind=check.kind,
        outcome=status,
        reason=reason,
        diagnostic=outcome.output,
        exit_code=outcome.exit_code,
        duration_seconds=round(outcome.duration_seconds, 3),
    )


def _collect(task: asyncio.Task[CheckResult], check: Check, elapsed: float) -> CheckResult:
    if task.cancelled():
        return CheckResult(
            check_id=check.id,
            kind=check.kind,
            outcome=CheckOutcome.ERRORED,
            reason=OutcomeReason.CANCELLED,
            diagnostic="Check was interrupted by run cancellation",
            duration_seconds=round(elapsed, 3),
        )
    result = task.result()
    if result.duration_seconds == 0.0:
        result.duration_seconds = round(elapsed, 3)
    return result


def _skipped(check: Check, reason: OutcomeReason, diagnostic: str) -> CheckResult:
    return CheckResult(
        check_id=check.id,
        kind=check.kind,
        outcome=CheckOutcome.SKIPPED,
        reason=reason,
        diagnostic=diagnostic,
    )
