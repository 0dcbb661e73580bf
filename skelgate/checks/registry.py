"""Check registry: the declared, dependency-ordered set of quality gates.

Checks are registered once (from code or a YAML file) and ordered once.
After :meth:`CheckRegistry.ordered` has been called the registry is frozen.

YAML format::

    checks:
      - id: pre-commit
        run: pre-commit run --all-files
      - id: tests
        run: [pytest, -q]
        after: [pre-commit]
        timeout: 900
      - id: spelling
        run: codespell
        kind: advisory
"""

from __future__ import annotations

import shlex
from pathlib import Path
from typing import Any, Iterable, Optional

import yaml
from pydantic import ValidationError

from skelgate.errors import (
    CyclicDependency,
    DuplicateCheckId,
    RegistryError,
    UnknownDependency,
)

from .models import Check, CheckKind, Invocation

_INVOCATION_KEYS = ("cwd", "env", "timeout", "success_codes")


class CheckRegistry:
    """Holds checks in declaration order and sorts them by their ``after`` edges."""

    def __init__(self, checks: Iterable[Check] = ()) -> None:
        self._checks: dict[str, Check] = {}
        self._ordered: Optional[list[Check]] = None
        for check in checks:
            self.register(check)

    # -- Registration ------------------------------------------------------

    def register(self, check: Check) -> None:
        """Add *check*.

        Raises:
            DuplicateCheckId: If the id is already registered.
            RegistryError: If the registry has already been ordered.
        """
        if self._ordered is not None:
            raise RegistryError(f"Registry is frozen; cannot register '{check.id}'")
        if check.id in self._checks:
            raise DuplicateCheckId(check.id)
        self._checks[check.id] = check

    def __contains__(self, check_id: object) -> bool:
        return check_id in self._checks

    def __len__(self) -> int:
        return len(self._checks)

    def get(self, check_id: str) -> Check:
        return self._checks[check_id]

    @property
    def frozen(self) -> bool:
        return self._ordered is not None

    # -- Ordering ----------------------------------------------------------

    def ordered(self) -> list[Check]:
        """Return checks in dependency order, declaration order breaking ties.

        Raises:
            UnknownDependency: If a check runs after an unregistered id.
            CyclicDependency: If the ``after`` edges form a cycle.
        """
        if self._ordered is None:
            self._ordered = _stable_topological_order(list(self._checks.values()))
        return list(self._ordered)

    def select(self, check_ids: Iterable[str]) -> list[Check]:
        """Return the ordered subset named by *check_ids*.

        Edges to checks outside the selection are dropped, so a selected
        check never waits for (or is skipped because of) an unselected one.
        """
        wanted = list(dict.fromkeys(check_ids))
        unknown = [cid for cid in wanted if cid not in self._checks]
        if unknown:
            raise RegistryError(f"Unknown check id(s): {', '.join(unknown)}")
        selected = set(wanted)
        return [
            check.model_copy(
                update={"after": tuple(dep for dep in check.after if dep in selected)}
            )
            for check in self.ordered()
            if check.id in selected
        ]

    # -- Loading -----------------------------------------------------------

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CheckRegistry":
        """Build and order a registry from a parsed ``checks:`` document."""
        entries = data.get("checks")
        if not isinstance(entries, list):
            raise RegistryError("Expected a top-level 'checks' list")

        registry = cls()
        for index, entry in enumerate(entries):
            if not isinstance(entry, dict):
                raise RegistryError(f"Check #{index + 1} must be a mapping")
            registry.register(_check_from_mapping(entry, index))
        registry.ordered()
        return registry

    @classmethod
    def from_file(cls, path: str | Path) -> "CheckRegistry":
        """Load a registry from a YAML file.

        Raises:
            RegistryError: If the file is unreadable or invalid.
        """
        try:
            data = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
        except (OSError, yaml.YAMLError) as exc:
            raise RegistryError(f"Cannot read check file {path}: {exc}") from exc
        if not isinstance(data, dict):
            raise RegistryError(f"Check file {path} must contain a mapping")
        return cls.from_dict(data)


def default_registry() -> CheckRegistry:
    """The gate set a freshly generated project is wired with."""
    registry = CheckRegistry(
        [
            Check(
                id="pre-commit",
                description="Run every pre-commit hook against the whole tree",
                invocation=Invocation(program="pre-commit", args=["run", "--all-files"]),
            ),
            Check(
                id="dependency-audit",
                description="Audit installed dependencies for known vulnerabilities",
                invocation=Invocation(program="pip-audit", args=["--progress-spinner", "off"]),
            ),
            Check(
                id="spelling",
                kind=CheckKind.ADVISORY,
                description="Spell-check sources and docs",
                invocation=Invocation(program="codespell"),
            ),
            Check(
                id="tests",
                description="Run the test suite",
                invocation=Invocation(program="pytest", args=["-q"]),
                after=("pre-commit",),
            ),
            Check(
                id="changelog",
                kind=CheckKind.ADVISORY,
                description="Render the pending changelog without writing it",
                invocation=Invocation(program="towncrier", args=["build", "--draft"]),
                after=("tests", "dependency-audit", "spelling"),
            ),
        ]
    )
    registry.ordered()
    return registry


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _check_from_mapping(entry: dict[str, Any], index: int) -> Check:
    run = entry.get("run", [])
    if isinstance(run, str):
        try:
            argv = shlex.split(run)
        except ValueError as exc:
            raise RegistryError(f"Check #{index + 1}: cannot parse 'run': {exc}") from exc
    elif isinstance(run, list):
        argv = [str(part) for part in run]
    else:
        raise RegistryError(f"Check #{index + 1}: 'run' must be a string or a list")

    invocation_kwargs = {key: entry[key] for key in _INVOCATION_KEYS if key in entry}
    try:
        # An empty argv is accepted here and reported as malformed at run time.
        invocation = Invocation(
            program=argv[0] if argv else "",
            args=argv[1:],
            **invocation_kwargs,
        )
        return Check(
            id=entry.get("id", ""),
            invocation=invocation,
            kind=entry.get("kind", CheckKind.BLOCKING),
            after=entry.get("after", ()),
            description=entry.get("description", ""),
        )
    except ValidationError as exc:
        raise RegistryError(f"Check #{index + 1} ({entry.get('id', '?')}): {exc}") from exc


def _stable_topological_order(checks: list[Check]) -> list[Check]:
    ids = {check.id for check in checks}
    for check in checks:
        for dep in check.after:
            if dep not in ids:
                raise UnknownDependency(check.id, dep)

    emitted: set[str] = set()
    ordered: list[Check] = []
    remaining = list(checks)
    while remaining:
        for position, check in enumerate(remaining):
            if all(dep in emitted for dep in check.after):
                ordered.append(check)
                emitted.add(check.id)
                del remaining[position]
                break
        else:
            raise CyclicDependency(_find_cycle(remaining))
    return ordered


def _find_cycle(remaining: list[Check]) -> list[str]:
    """Follow unmet edges from the first stuck check until one repeats."""
    by_id = {check.id: check for check in remaining}
    path: list[str] = []
    current = remaining[0].id
    while current not in path:
        path.append(current)
        current = next(dep for dep in by_id[current].after if dep in by_id)
    return path[path.index(current):] + [current]
