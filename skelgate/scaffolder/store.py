"""Template store: named, versioned project skeletons.

A template is a directory holding a ``template.yaml`` manifest and a
``skeleton/`` tree::

    python-package/
        template.yaml
        skeleton/
            {{ project_slug }}/
                README.md
                ...

Skeletons are loaded once and cached; they are read-only afterwards.
"""

from __future__ import annotations

import fnmatch
import stat
from pathlib import Path
from typing import Iterable, Optional, Union

import yaml
from jinja2 import TemplateSyntaxError
from pydantic import BaseModel, Field, ValidationError

from skelgate.errors import TemplateError, TemplateNotFound

from .templates import TemplateRenderer

MANIFEST_NAME = "template.yaml"
SKELETON_DIR = "skeleton"


# ---------------------------------------------------------------------------
# Manifest models
# ---------------------------------------------------------------------------


class VariableSpec(BaseModel):
    """A variable a template asks for."""

    name: str = Field(..., pattern=r"^[A-Za-z_][A-Za-z0-9_]*$")
    description: str = Field(default="", description="Prompt text shown to the user")
    default: Optional[str] = Field(
        default=None,
        description="Default value; may reference earlier variables",
    )
    choices: list[str] = Field(default_factory=list)
    pattern: Optional[str] = Field(
        default=None, description="Regular expression the value must fully match"
    )


class TemplateManifest(BaseModel):
    """Contents of ``template.yaml``."""

    name: str = Field(..., min_length=1)
    version: str = Field(default="0.0.0")
    description: str = Field(default="")
    variables: list[VariableSpec] = Field(default_factory=list)
    copy_only: list[str] = Field(
        default_factory=list,
        description="Globs (relative to skeleton/) copied byte-for-byte without rendering",
    )
    exclude: list[str] = Field(
        default_factory=list,
        description="Globs (relative to skeleton/) left out of the skeleton",
    )

    @property
    def template_id(self) -> str:
        return f"{self.name}@{self.version}"


# ---------------------------------------------------------------------------
# Skeleton
# ---------------------------------------------------------------------------


class SkeletonEntry(BaseModel, frozen=True):
    """One path in a skeleton.

    ``content`` is ``None`` for an (empty) directory, ``bytes`` for files copied
    verbatim and ``str`` for files rendered as templates.
    """

    path: str
    content: Union[str, bytes, None] = None
    executable: bool = False

    @property
    def is_dir(self) -> bool:
        return self.content is None

    @property
    def renders_content(self) -> bool:
        return isinstance(self.content, str)


class Skeleton(BaseModel, frozen=True):
    """An ordered, immutable sequence of skeleton entries plus its manifest."""

    manifest: TemplateManifest
    entries: tuple[SkeletonEntry, ...] = ()
    placeholders: frozenset[str] = frozenset()
    source: Optional[Path] = None

    @property
    def template_id(self) -> str:
        return self.manifest.template_id

    @classmethod
    def build(
        cls,
        manifest: TemplateManifest,
        entries: Iterable[SkeletonEntry],
        *,
        source: Path | None = None,
        renderer: TemplateRenderer | None = None,
    ) -> "Skeleton":
        """Assemble a skeleton, collecting the placeholders every entry uses.

        Raises:
            TemplateError: If a path or content template cannot be parsed.
        """
        renderer = renderer or TemplateRenderer()
        entries = tuple(entries)
        names: set[str] = set()
        for entry in entries:
            try:
                names |= renderer.placeholders(entry.path)
                if entry.renders_content:
                    names |= renderer.placeholders(entry.content)
            except TemplateSyntaxError as exc:
                raise TemplateError(
                    manifest.template_id, f"{entry.path}: {exc.message}"
                ) from exc
        return cls(
            manifest=manifest,
            entries=entries,
            placeholders=frozenset(names),
            source=source,
        )

    @classmethod
    def from_pairs(
        cls,
        pairs: Iterable[tuple[str, Union[str, bytes, None]]],
        *,
        name: str = "inline",
        variables: Iterable[VariableSpec] = (),
    ) -> "Skeleton":
        """Build a skeleton from ``(path template, content template)`` pairs."""
        manifest = TemplateManifest(name=name, variables=list(variables))
        entries = [SkeletonEntry(path=path, content=content) for path, content in pairs]
        return cls.build(manifest, entries)


# ---------------------------------------------------------------------------
# TemplateStore
# ---------------------------------------------------------------------------


class TemplateStore:
    """Looks up templates across an ordered list of search directories.

    A template id is ``name`` (highest version wins), ``name@version``, or a
    path to a template directory.
    """

    def __init__(self, search_dirs: Iterable[str | Path]) -> None:
        self.search_dirs = [Path(d) for d in search_dirs]
        self.renderer = TemplateRenderer()
        self._cache: dict[Path, Skeleton] = {}

    # -- Discovery ---------------------------------------------------------

    def available(self) -> list[TemplateManifest]:
        """Return the manifest of every template in the search directories."""
        manifests: list[TemplateManifest] = []
        for template_dir in self._template_dirs():
            manifests.append(_read_manifest(template_dir))
        return manifests

    def _template_dirs(self) -> list[Path]:
        found: list[Path] = []
        for root in self.search_dirs:
            if not root.is_dir():
                continue
            for child in sorted(root.iterdir()):
                if (child / MANIFEST_NAME).is_file():
                    found.append(child)
        return found

    # -- Lookup ------------------------------------------------------------

    def get(self, template_id: str) -> Skeleton:
        """Load (or return the cached) skeleton for *template_id*.

        Raises:
            TemplateNotFound: If nothing matches.
            TemplateError: If the matching template is malformed.
        """
        as_path = Path(template_id)
        if (as_path / MANIFEST_NAME).is_file():
            return self._load(as_path)

        name, _, version = template_id.partition("@")
        candidates: list[tuple[TemplateManifest, Path]] = []
        for template_dir in self._template_dirs():
            manifest = _read_manifest(template_dir)
            if manifest.name != name:
                continue
            if version and manifest.version != version:
                continue
            candidates.append((manifest, template_dir))

        if not candidates:
            raise TemplateNotFound(template_id)

        # First search directory wins among equal versions.
        best_manifest, best_dir = candidates[0]
        for manifest, template_dir in candidates[1:]:
            if _version_key(manifest.version) > _version_key(best_manifest.version):
                best_manifest, best_dir = manifest, template_dir
        return self._load(best_dir)

    def _load(self, template_dir: Path) -> Skeleton:
        key = template_dir.resolve()
        if key not in self._cache:
            manifest = _read_manifest(template_dir)
            entries = _read_entries(template_dir / SKELETON_DIR, manifest)
            self._cache[key] = Skeleton.build(
                manifest, entries, source=template_dir, renderer=self.renderer
            )
        return self._cache[key]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _read_manifest(template_dir: Path) -> TemplateManifest:
    manifest_path = template_dir / MANIFEST_NAME
    try:
        data = yaml.safe_load(manifest_path.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as exc:
        raise TemplateError(template_dir.name, f"cannot read {MANIFEST_NAME}: {exc}") from exc
    if not isinstance(data, dict):
        raise TemplateError(template_dir.name, f"{MANIFEST_NAME} must be a mapping")
    data.setdefault("name", template_dir.name)
    try:
        manifest = TemplateManifest.model_validate(data)
    except ValidationError as exc:
        raise TemplateError(template_dir.name, str(exc)) from exc

    seen: set[str] = set()
    for variable in manifest.variables:
        if variable.name in seen:
            raise TemplateError(
                manifest.template_id, f"variable '{variable.name}' declared twice"
            )
        seen.add(variable.name)
    return manifest


def _read_entries(skeleton_dir: Path, manifest: TemplateManifest) -> list[SkeletonEntry]:
    """Walk *skeleton_dir* in sorted order and build entries."""
    if not skeleton_dir.is_dir():
        raise TemplateError(manifest.template_id, f"missing {SKELETON_DIR}/ directory")

    entries: list[SkeletonEntry] = []
    for path in sorted(skeleton_dir.rglob("*")):
        rel = path.relative_to(skeleton_dir).as_posix()
        if _matches(rel, manifest.exclude):
            continue

        if path.is_dir():
            # Only empty directories need their own entry.
            if not any(path.iterdir()):
                entries.append(SkeletonEntry(path=rel))
            continue

        raw = path.read_bytes()
        content: Union[str, bytes] = raw
        if not _matches(rel, manifest.copy_only):
            try:
                content = raw.decode("utf-8")
            except UnicodeDecodeError:
                content = raw  # binary files are copied as-is
        executable = bool(path.stat().st_mode & stat.S_IXUSR)
        entries.append(SkeletonEntry(path=rel, content=content, executable=executable))
    return entries


def _matches(rel_path: str, patterns: list[str]) -> bool:
    return any(
        fnmatch.fnmatch(rel_path, pat) or fnmatch.fnmatch(Path(rel_path).name, pat)
        for pat in patterns
    )


def _version_key(version: str) -> tuple[tuple[int, str], ...]:
    """Sort key treating dotted numeric parts numerically."""
    parts = []
    for part in version.split("."):
        parts.append((int(part), "") if part.isdigit() else (-1, part))
    return tuple(parts)
