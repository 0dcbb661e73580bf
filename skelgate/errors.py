"""Exception hierarchy for skelgate.

Every error carries the offending identifier as an attribute so callers can
render a precise message or map the error to an exit code.
"""

from __future__ import annotations

from pathlib import Path


class SkelgateError(Exception):
    """Base class for all skelgate errors."""


# ---------------------------------------------------------------------------
# Variable resolution
# ---------------------------------------------------------------------------


class ResolutionError(SkelgateError):
    """A substitution table could not be built."""


class MissingVariable(ResolutionError):
    """A required placeholder has no value."""

    def __init__(self, name: str, missing: list[str] | None = None) -> None:
        self.name = name
        self.missing = missing or [name]
        super().__init__(f"Missing value for variable '{name}'")


class InvalidValue(ResolutionError):
    """A supplied value was rejected."""

    def __init__(self, name: str, reason: str) -> None:
        self.name = name
        self.reason = reason
        super().__init__(f"Invalid value for variable '{name}': {reason}")


# ---------------------------------------------------------------------------
# Template store
# ---------------------------------------------------------------------------


class TemplateStoreError(SkelgateError):
    """Base class for template lookup and manifest problems."""


class TemplateNotFound(TemplateStoreError):
    """No template matches the requested id."""

    def __init__(self, template_id: str) -> None:
        self.template_id = template_id
        super().__init__(f"Template not found: {template_id}")


class TemplateError(TemplateStoreError):
    """A template's manifest or skeleton is malformed."""

    def __init__(self, template_id: str, reason: str) -> None:
        self.template_id = template_id
        self.reason = reason
        super().__init__(f"Template '{template_id}' is invalid: {reason}")


# ---------------------------------------------------------------------------
# Instantiation
# ---------------------------------------------------------------------------


class InstantiationError(SkelgateError):
    """Base class for errors raised while materialising a skeleton."""


class PathEscape(InstantiationError):
    """A rendered path resolves outside the target directory."""

    def __init__(self, path: str, reason: str = "resolves outside the target directory") -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"Path '{path}' {reason}")


class CollisionDetected(InstantiationError):
    """Two entries (or an entry and an existing file) share an output path."""

    def __init__(self, path: str, existing: bool = False) -> None:
        self.path = path
        self.existing = existing
        if existing:
            message = f"Refusing to overwrite existing path '{path}'"
        else:
            message = f"More than one skeleton entry renders to '{path}'"
        super().__init__(message)


class PartialWrite(InstantiationError):
    """The write pass stopped part-way through.

    ``completed`` lists every path written before the failure so the caller
    can clean up; nothing is rolled back automatically.
    """

    def __init__(self, completed: list[Path], failed: Path, cause: OSError) -> None:
        self.completed = completed
        self.failed = failed
        self.cause = cause
        super().__init__(
            f"Write failed at '{failed}' after {len(completed)} path(s): {cause}"
        )


# ---------------------------------------------------------------------------
# Check registry
# ---------------------------------------------------------------------------


class RegistryError(SkelgateError):
    """The check registry is inconsistent."""


class DuplicateCheckId(RegistryError):
    def __init__(self, check_id: str) -> None:
        self.check_id = check_id
        super().__init__(f"Check id registered twice: {check_id}")


class UnknownDependency(RegistryError):
    def __init__(self, check_id: str, dependency: str) -> None:
        self.check_id = check_id
        self.dependency = dependency
        super().__init__(f"Check '{check_id}' runs after unknown check '{dependency}'")


class CyclicDependency(RegistryError):
    """The ``after`` edges between checks form a cycle."""

    def __init__(self, cycle: list[str]) -> None:
        self.cycle = cycle
        super().__init__("Dependency cycle between checks: " + " -> ".join(cycle))
