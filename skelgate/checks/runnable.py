"""Tool invocation capability.

The orchestrator never spawns processes itself; it calls a :class:`Runnable`.
:class:`SubprocessRunner` is the real implementation, tests use doubles that
script outcomes without launching anything.
"""

from __future__ import annotations

import asyncio
import os
import time
from pathlib import Path
from typing import Protocol

from .models import Invocation, InvocationOutcome, OutcomeReason


class Runnable(Protocol):
    """Anything that can execute an :class:`Invocation`."""

    async def invoke(
        self, invocation: Invocation, cwd: Path, timeout: float
    ) -> InvocationOutcome:
        """Run *invocation* in *cwd*, giving up after *timeout* seconds.

        Must return (not raise) for start-up failures and timeouts.  When the
        calling task is cancelled the child must be stopped before the
        ``CancelledError`` propagates.
        """
        ...


class SubprocessRunner:
    """Runs invocations as child processes (no shell).

    Parameters
    ----------
    grace_period:
        Seconds a cancelled child gets between ``terminate()`` and ``kill()``.
    """

    def __init__(self, grace_period: float = 5.0) -> None:
        self.grace_period = grace_period

    async def invoke(
        self, invocation: Invocation, cwd: Path, timeout: float
    ) -> InvocationOutcome:
        start = time.monotonic()
        if not invocation.program.strip():
            return InvocationOutcome(
                started=False,
                error=OutcomeReason.MALFORMED,
                output="Invocation has no program",
            )

        merged_env: dict[str, str] | None = None
        if invocation.env:
            merged_env = {**os.environ, **invocation.env}

        try:
            process = await asyncio.create_subprocess_exec(
                *invocation.argv,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
                stdin=asyncio.subprocess.DEVNULL,
                cwd=str(cwd),
                env=merged_env,
            )
        except (FileNotFoundError, PermissionError, NotADirectoryError) as exc:
            return InvocationOutcome(
                started=False,
                error=OutcomeReason.NOT_FOUND,
                output=f"Cannot start {invocation.program!r}: {exc}",
                duration_seconds=time.monotonic() - start,
            )
        except (OSError, ValueError) as exc:
            return InvocationOutcome(
                started=False,
                error=OutcomeReason.MALFORMED,
                output=f"Cannot start {invocation.program!r}: {exc}",
                duration_seconds=time.monotonic() - start,
            )

        try:
            stdout_bytes, _ = await asyncio.wait_for(process.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            return InvocationOutcome(
                exit_code=process.returncode,
                timed_out=True,
                output=f"Timed out after {timeout:g}s: {invocation.describe()}",
                duration_seconds=time.monotonic() - start,
            )
        except asyncio.CancelledError:
            await self._stop(process)
            raise

        return InvocationOutcome(
            exit_code=process.returncode,
            output=(stdout_bytes or b"").decode("utf-8", errors="replace").strip(),
            duration_seconds=time.monotonic() - start,
        )

    async def _stop(self, process: asyncio.subprocess.Process) -> None:
        """Terminate, wait out the grace period, then kill."""
        if process.returncode is not None:
            return
        try:
            process.terminate()
        except ProcessLookupError:
            return
        try:
            await asyncio.wait_for(process.wait(), timeout=self.grace_period)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
