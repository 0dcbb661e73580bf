"""skelgate configuration.

Centralised, typed configuration for scaffolding and quality-gate runs. All
settings use Pydantic v2 models so they can be validated at construction time
and serialised to/from JSON or environment variables without boiler-plate.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

BUNDLED_TEMPLATES_DIR = Path(__file__).parent / "templates"


class RunConfig(BaseModel):
    """Tuning knobs for the check pipeline."""

    concurrency: int = Field(
        default=1, ge=1, description="Maximum number of checks running at once"
    )
    default_timeout: float = Field(
        default=600.0, gt=0, description="Per-check timeout in seconds when a check sets none"
    )
    grace_period: float = Field(
        default=5.0, ge=0, description="Seconds a cancelled check gets to exit before it is killed"
    )


class ScaffoldConfig(BaseModel):
    """Where templates come from and how variables are collected."""

    templates_dirs: list[Path] = Field(
        default_factory=lambda: [BUNDLED_TEMPLATES_DIR],
        description="Directories searched for templates, first match wins",
    )
    interactive: bool = Field(
        default=True, description="Prompt for variables that were not supplied"
    )
    overwrite: bool = Field(
        default=False, description="Allow instantiation over existing files"
    )


class Config(BaseModel):
    """Global skelgate configuration.

    Instances are typically created once by the CLI entry point and then
    passed through the rest of the system.
    """

    work_dir: Path = Field(default=Path("."))
    state_dir: str = Field(default=".skelgate")
    checks_file: str = Field(default="checks.yaml")
    report_file: str = Field(default="run-report.json")
    run: RunConfig = Field(default_factory=RunConfig)
    scaffold: ScaffoldConfig = Field(default_factory=ScaffoldConfig)

    # ------------------------------------------------------------------
    # Derived paths (read-only properties)
    # ------------------------------------------------------------------

    @property
    def state_path(self) -> Path:
        """Root of the ``.skelgate/`` directory inside the work dir."""
        return self.work_dir / self.state_dir

    @property
    def checks_path(self) -> Path:
        """Path to the YAML check declarations."""
        return self.state_path / self.checks_file

    @property
    def report_path(self) -> Path:
        """Path to the machine-readable run report."""
        return self.state_path / self.report_file

    # ------------------------------------------------------------------
    # Serialisation helpers
    # ------------------------------------------------------------------

    def save(self, path: Path | None = None) -> Path:
        """Persist the configuration to a JSON file.

        Args:
            path: Destination file. Defaults to ``<state_path>/config.json``.

        Returns:
            The path where the file was written.
        """
        target = path or (self.state_path / "config.json")
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(self.model_dump_json(indent=2), encoding="utf-8")
        return target

    @classmethod
    def load(cls, path: Path) -> "Config":
        """Load a previously-saved configuration from JSON."""
        raw = Path(path).read_text(encoding="utf-8")
        return cls.model_validate_json(raw)

    @classmethod
    def from_env(cls) -> "Config":
        """Build a ``Config`` from environment variables.

        Recognised variables (all optional):
            SKELGATE_WORK_DIR, SKELGATE_CONCURRENCY, SKELGATE_TIMEOUT,
            SKELGATE_GRACE_PERIOD, SKELGATE_TEMPLATES_PATH (``os.pathsep``
            separated, searched before the bundled templates),
            SKELGATE_NO_INPUT.
        """
        run_kwargs: dict[str, Any] = {}
        if os.environ.get("SKELGATE_CONCURRENCY"):
            run_kwargs["concurrency"] = int(os.environ["SKELGATE_CONCURRENCY"])
        if os.environ.get("SKELGATE_TIMEOUT"):
            run_kwargs["default_timeout"] = float(os.environ["SKELGATE_TIMEOUT"])
        if os.environ.get("SKELGATE_GRACE_PERIOD"):
            run_kwargs["grace_period"] = float(os.environ["SKELGATE_GRACE_PERIOD"])

        scaffold_kwargs: dict[str, Any] = {}
        templates_path = os.environ.get("SKELGATE_TEMPLATES_PATH", "")
        extra_dirs = [Path(p) for p in templates_path.split(os.pathsep) if p.strip()]
        if extra_dirs:
            scaffold_kwargs["templates_dirs"] = [*extra_dirs, BUNDLED_TEMPLATES_DIR]
        if os.environ.get("SKELGATE_NO_INPUT", "").lower() in ("1", "true", "yes"):
            scaffold_kwargs["interactive"] = False

        return cls(
            work_dir=Path(os.environ.get("SKELGATE_WORK_DIR", ".")),
            run=RunConfig(**run_kwargs),
            scaffold=ScaffoldConfig(**scaffold_kwargs),
        )
