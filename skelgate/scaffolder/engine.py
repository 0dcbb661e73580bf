"""Instantiation engine.

Takes a ``Skeleton`` and a ``SubstitutionTable`` and materialises the project
under a target directory in two passes:

1. **Pre-flight** -- render every path and file, check bindings, path
   containment and collisions.  Nothing touches the filesystem.
2. **Write** -- create directories and write files in skeleton order.  The
   first failing write stops the pass and is reported together with every
   path already written.
"""

from __future__ import annotations

import asyncio
import stat
import time
from pathlib import Path, PurePosixPath, PureWindowsPath
from typing import Literal, Optional

from jinja2 import TemplateError as JinjaTemplateError
from pydantic import BaseModel, Field

from skelgate.errors import (
    CollisionDetected,
    MissingVariable,
    PartialWrite,
    PathEscape,
    TemplateError,
)

from .resolver import SubstitutionTable
from .store import Skeleton, SkeletonEntry
from .templates import TemplateRenderer


# ---------------------------------------------------------------------------
# Report models
# ---------------------------------------------------------------------------


class WrittenPath(BaseModel):
    """Outcome for a single skeleton entry."""

    path: str = Field(..., description="Path relative to the target directory")
    kind: Literal["file", "directory"] = "file"
    size: int = Field(default=0, ge=0, description="Bytes written (0 for directories)")


class InstantiationReport(BaseModel):
    """Everything the write pass produced."""

    template_id: str
    target_dir: Path
    written: list[WrittenPath] = Field(default_factory=list)
    duration_seconds: float = Field(default=0.0, ge=0.0)

    @property
    def files(self) -> list[str]:
        return [w.path for w in self.written if w.kind == "file"]


class PlannedWrite(BaseModel, frozen=True):
    """A fully rendered entry, ready to be written."""

    relative: str
    destination: Path
    data: Optional[bytes] = None
    executable: bool = False

    @property
    def is_dir(self) -> bool:
        return self.data is None


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class InstantiationEngine:
    """Renders skeletons into target directories."""

    def __init__(self, renderer: TemplateRenderer | None = None) -> None:
        self.renderer = renderer or TemplateRenderer()

    # -- Public API --------------------------------------------------------

    async def instantiate(
        self,
        skeleton: Skeleton,
        table: SubstitutionTable,
        target_dir: str | Path,
        *,
        overwrite: bool = False,
    ) -> InstantiationReport:
        """Materialise *skeleton* under *target_dir*.

        Raises:
            MissingVariable: A placeholder has no binding (nothing written).
            PathEscape: A rendered path leaves *target_dir* (nothing written).
            CollisionDetected: Two entries share an output path, an existing
                path blocks the tree, or a file exists and *overwrite* is
                false (nothing written).
            TemplateError: A path or file fails to render (nothing written).
            PartialWrite: A write failed; ``completed`` lists what was written.
        """
        start = time.monotonic()
        root = Path(target_dir).resolve()
        plan = self.plan(skeleton, table, root, overwrite=overwrite)
        written = await asyncio.to_thread(_write_plan, root, plan)
        return InstantiationReport(
            template_id=skeleton.template_id,
            target_dir=root,
            written=written,
            duration_seconds=round(time.monotonic() - start, 3),
        )

    def plan(
        self,
        skeleton: Skeleton,
        table: SubstitutionTable,
        target_dir: str | Path,
        *,
        overwrite: bool = False,
    ) -> list[PlannedWrite]:
        """Run the pre-flight pass and return the writes it would perform."""
        root = Path(target_dir).resolve()

        missing = sorted(skeleton.placeholders - set(table))
        if missing:
            raise MissingVariable(missing[0], missing)

        context = table.as_context()
        plan: list[PlannedWrite] = []
        seen: set[Path] = set()
        for entry in skeleton.entries:
            item = self._render_entry(skeleton, entry, context, root)
            if item.destination in seen:
                raise CollisionDetected(item.relative)
            seen.add(item.destination)
            plan.append(item)

        _check_nesting(plan, root)
        _check_structure(plan, root)
        if not overwrite:
            _check_existing(plan)
        return plan

    # -- Rendering ---------------------------------------------------------

    def _render_entry(
        self,
        skeleton: Skeleton,
        entry: SkeletonEntry,
        context: dict[str, str],
        root: Path,
    ) -> PlannedWrite:
        try:
            relative = self.renderer.render_string(entry.path, context)
            if entry.renders_content:
                data: Optional[bytes] = self.renderer.render_string(
                    entry.content, context
                ).encode("utf-8")
            else:
                data = entry.content  # bytes or None
        except (JinjaTemplateError, TypeError, ValueError, ArithmeticError) as exc:
            raise TemplateError(skeleton.template_id, f"{entry.path}: {exc}") from exc

        return PlannedWrite(
            relative=relative,
            destination=_contained_destination(root, relative),
            data=data,
            executable=entry.executable,
        )


# ---------------------------------------------------------------------------
# Pre-flight helpers
# ---------------------------------------------------------------------------


def _contained_destination(root: Path, relative: str) -> Path:
    """Resolve *relative* under *root*, refusing anything that escapes it."""
    if not relative.strip():
        raise PathEscape(relative, "is empty")
    if PurePosixPath(relative).is_absolute() or PureWindowsPath(relative).is_absolute():
        raise PathEscape(relative, "is absolute")

    destination = (root / relative).resolve()
    if destination == root:
        raise PathEscape(relative, "resolves to the target directory itself")
    if not destination.is_relative_to(root):
        raise PathEscape(relative)
    return destination


def _check_nesting(plan: list[PlannedWrite], root: Path) -> None:
    """A file cannot also be a parent directory of another entry."""
    files = {item.destination: item for item in plan if not item.is_dir}
    for item in plan:
        for parent in item.destination.parents:
            if parent == root:
                break
            if parent in files:
                raise CollisionDetected(files[parent].relative)


def _check_existing(plan: list[PlannedWrite]) -> None:
    for item in plan:
        if not item.is_dir and item.destination.exists():
            raise CollisionDetected(item.relative, existing=True)


def _check_structure(plan: list[PlannedWrite], root: Path) -> None:
    """Existing paths must not block the directories or files being written.

    Applies even with overwrite on: a file may replace a file but never a
    directory, and an existing file cannot stand where a directory is needed.
    """
    for item in plan:
        dest = item.destination
        if item.is_dir:
            blocked = dest.exists() and not dest.is_dir()
        else:
            blocked = dest.is_dir()
        if blocked:
            raise CollisionDetected(item.relative, existing=True)
        for parent in dest.parents:
            if parent.exists() and not parent.is_dir():
                relative = "." if parent == root else parent.relative_to(root).as_posix()
                raise CollisionDetected(relative, existing=True)
            if parent == root:
                break


# ---------------------------------------------------------------------------
# Write pass
# ---------------------------------------------------------------------------


def _write_plan(root: Path, plan: list[PlannedWrite]) -> list[WrittenPath]:
    written: list[WrittenPath] = []
    completed: list[Path] = []
    for item in plan:
        try:
            if item.is_dir:
                item.destination.mkdir(parents=True, exist_ok=True)
            else:
                item.destination.parent.mkdir(parents=True, exist_ok=True)
                item.destination.write_bytes(item.data)
                if item.executable:
                    _make_executable(item.destination)
        except OSError as exc:
            raise PartialWrite(completed, item.destination, exc) from exc

        completed.append(item.destination)
        written.append(
            WrittenPath(
                path=item.destination.relative_to(root).as_posix(),
                kind="directory" if item.is_dir else "file",
                size=0 if item.is_dir else len(item.data),
            )
        )
    return written


def _make_executable(path: Path) -> None:
    """Set the executable bit on a file."""
    current = path.stat().st_mode
    path.chmod(current | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
