"""Tests for SubprocessRunner against real child processes.

Every child is the current Python interpreter, so the suite needs no other
tools installed.
"""

from __future__ import annotations

import asyncio
import sys
import time
from pathlib import Path

import pytest

from skelgate.checks.models import Invocation, OutcomeReason
from skelgate.checks.runnable import SubprocessRunner

pytestmark = pytest.mark.integration


def _py(code: str, **kwargs) -> Invocation:
    return Invocation(program=sys.executable, args=["-c", code], **kwargs)


@pytest.fixture
def runner() -> SubprocessRunner:
    return SubprocessRunner(grace_period=1.0)


class TestCompletedProcesses:
    @pytest.mark.asyncio
    async def test_exit_code_and_output(self, runner, tmp_path: Path):
        outcome = await runner.invoke(
            _py("import sys; print('out'); print('err', file=sys.stderr); sys.exit(3)"),
            tmp_path,
            30,
        )
        assert outcome.started
        assert outcome.exit_code == 3
        assert "out" in outcome.output
        assert "err" in outcome.output
        assert not outcome.timed_out

    @pytest.mark.asyncio
    async def test_runs_in_cwd(self, runner, tmp_path: Path):
        (tmp_path / "marker.txt").write_text("here", encoding="utf-8")
        outcome = await runner.invoke(
            _py("print(open('marker.txt').read())"), tmp_path, 30
        )
        assert outcome.exit_code == 0
        assert outcome.output == "here"

    @pytest.mark.asyncio
    async def test_env_overrides_merged(self, runner, tmp_path: Path):
        outcome = await runner.invoke(
            _py(
                "import os; print(os.environ['SKELGATE_PROBE'], 'PATH' in os.environ)",
                env={"SKELGATE_PROBE": "hello"},
            ),
            tmp_path,
            30,
        )
        assert outcome.output == "hello True"

    @pytest.mark.asyncio
    async def test_stdin_is_closed(self, runner, tmp_path: Path):
        outcome = await runner.invoke(
            _py("import sys; print(repr(sys.stdin.read()))"), tmp_path, 30
        )
        assert outcome.output == "''"


class TestStartupFailures:
    @pytest.mark.asyncio
    async def test_missing_program(self, runner, tmp_path: Path):
        outcome = await runner.invoke(
            Invocation(program="skelgate-no-such-tool-4711"), tmp_path, 30
        )
        assert not outcome.started
        assert outcome.error is OutcomeReason.NOT_FOUND
        assert "skelgate-no-such-tool-4711" in outcome.output

    @pytest.mark.asyncio
    async def test_empty_program(self, runner, tmp_path: Path):
        outcome = await runner.invoke(Invocation(program=""), tmp_path, 30)
        assert not outcome.started
        assert outcome.error is OutcomeReason.MALFORMED

    @pytest.mark.asyncio
    async def test_null_byte_argument(self, runner, tmp_path: Path):
        outcome = await runner.invoke(
            Invocation(program=sys.executable, args=["-c", "pass\x00"]), tmp_path, 30
        )
        assert not outcome.started
        assert outcome.error is OutcomeReason.MALFORMED


class TestStopping:
    @pytest.mark.asyncio
    async def test_timeout_kills_child(self, runner, tmp_path: Path):
        start = time.monotonic()
        outcome = await runner.invoke(_py("import time; time.sleep(60)"), tmp_path, 0.5)

        assert outcome.timed_out
        assert "Timed out after 0.5s" in outcome.output
        assert time.monotonic() - start < 30

    @pytest.mark.asyncio
    async def test_cancellation_stops_child(self, runner, tmp_path: Path):
        pid_file = tmp_path / "pid"
        code = (
            "import os, time; "
            f"open({str(pid_file)!r}, 'w').write(str(os.getpid())); "
            "time.sleep(60)"
        )
        task = asyncio.create_task(runner.invoke(_py(code), tmp_path, 120))
        for _ in range(200):
            if pid_file.exists() and pid_file.read_text():
                break
            await asyncio.sleep(0.05)

        start = time.monotonic()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert time.monotonic() - start < 30
