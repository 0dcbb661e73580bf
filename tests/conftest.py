"""Shared pytest fixtures for the skelgate test suite.

Provides reusable fixtures for:
- On-disk template directories
- A scripted ``Runnable`` double that never spawns processes
- Check construction helpers
"""

from __future__ import annotations

import asyncio
import sys
import textwrap
import time
from pathlib import Path
from typing import Any, Callable, Optional

import pytest

from skelgate.checks.models import (
    Check,
    CheckKind,
    Invocation,
    InvocationOutcome,
    OutcomeReason,
)


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------

def write_template(
    root: Path,
    name: str,
    files: dict[str, str | bytes],
    *,
    manifest: Optional[str] = None,
    version: str = "1.0.0",
) -> Path:
    """Create ``root/<name>/template.yaml`` and ``root/<name>/skeleton/...``."""
    template_dir = root / name
    skeleton = template_dir / "skeleton"
    skeleton.mkdir(parents=True)
    if manifest is None:
        manifest = f"name: {name}\nversion: \"{version}\"\n"
    (template_dir / "template.yaml").write_text(textwrap.dedent(manifest), encoding="utf-8")
    for rel, content in files.items():
        path = skeleton / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, bytes):
            path.write_bytes(content)
        else:
            path.write_text(content, encoding="utf-8")
    return template_dir


@pytest.fixture
def templates_root(tmp_path: Path) -> Path:
    """Directory holding test templates."""
    root = tmp_path / "templates"
    root.mkdir()
    return root


@pytest.fixture
def demo_template(templates_root: Path) -> Path:
    """A small template with variables in paths and contents."""
    return write_template(
        templates_root,
        "demo",
        {
            "README.md": "# {{ project_name }}\n\nBy {{ author }}.\n",
            "src/{{ package_name }}/__init__.py": '"""{{ project_name }}."""\n',
            "assets/logo.bin": b"\x00\x01{{ not_a_placeholder }}\xff",
        },
        manifest="""
            name: demo
            version: "1.2.0"
            description: Demo template
            variables:
              - name: project_name
                default: Demo Project
              - name: package_name
                default: "{{ project_name|slugify|replace('-', '_') }}"
              - name: author
            copy_only:
              - "*.bin"
        """,
    )


@pytest.fixture
def target_dir(tmp_path: Path) -> Path:
    return tmp_path / "out"


# ---------------------------------------------------------------------------
# Checks
# ---------------------------------------------------------------------------

def make_check(
    check_id: str,
    program: Optional[str] = None,
    *,
    kind: CheckKind = CheckKind.BLOCKING,
    after: tuple[str, ...] = (),
    timeout: Optional[float] = None,
    args: Optional[list[str]] = None,
    **invocation_kwargs: Any,
) -> Check:
    """Build a check whose program defaults to its id."""
    return Check(
        id=check_id,
        kind=kind,
        after=after,
        invocation=Invocation(
            program=program if program is not None else check_id,
            args=args or [],
            timeout=timeout,
            **invocation_kwargs,
        ),
    )


def python_check(check_id: str, code: str, **kwargs: Any) -> Check:
    """A check that runs ``python -c <code>`` for real."""
    return make_check(check_id, sys.executable, args=["-c", code], **kwargs)


class FakeRunner:
    """Scripted :class:`Runnable` double.

    ``script`` maps a program name to one of:

    - an ``int`` exit code,
    - ``(exit_code, output)``,
    - ``(exit_code, output, delay_seconds)``,
    - ``"hang"`` (sleeps until timed out or cancelled),
    - ``"missing"`` (the program cannot be started).

    Unscripted programs exit 0.
    """

    def __init__(self, script: Optional[dict[str, Any]] = None) -> None:
        self.script = script or {}
        self.calls: list[str] = []
        self.started: dict[str, float] = {}
        self.finished: dict[str, float] = {}
        self.cancelled: list[str] = []
        self.active = 0
        self.peak = 0
        self.on_start: Optional[Callable[[str], None]] = None

    async def invoke(
        self, invocation: Invocation, cwd: Path, timeout: float
    ) -> InvocationOutcome:
        program = invocation.program
        behaviour = self.script.get(program, 0)
        self.calls.append(program)
        if behaviour == "missing":
            return InvocationOutcome(
                started=False, error=OutcomeReason.NOT_FOUND, output=f"{program}: not found"
            )

        self.started[program] = time.monotonic()
        self.active += 1
        self.peak = max(self.peak, self.active)
        if self.on_start is not None:
            self.on_start(program)
        try:
            return await asyncio.wait_for(self._behave(behaviour), timeout=timeout)
        except asyncio.TimeoutError:
            return InvocationOutcome(timed_out=True, output=f"{program} timed out")
        except asyncio.CancelledError:
            self.cancelled.append(program)
            raise
        finally:
            self.active -= 1
            self.finished[program] = time.monotonic()

    async def _behave(self, behaviour: Any) -> InvocationOutcome:
        if behaviour == "hang":
            await asyncio.sleep(3600)
        delay = 0.0
        output = ""
        if isinstance(behaviour, tuple):
            code, output, *rest = behaviour
            delay = rest[0] if rest else 0.0
        else:
            code = behaviour
        if delay:
            await asyncio.sleep(delay)
        return InvocationOutcome(exit_code=code, output=output, duration_seconds=delay)


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()
