"""Tests for template discovery and skeleton loading.

Covers:
- Listing templates across search directories
- Lookup by name, name@version and directory path
- Highest-version selection and search order
- Manifest validation errors
- Verbatim (copy_only / binary) entries and empty directories
- The bundled python-package template
"""

from __future__ import annotations

import os
import stat
from pathlib import Path

import pytest

from conftest import write_template
from skelgate.config import BUNDLED_TEMPLATES_DIR
from skelgate.errors import TemplateError, TemplateNotFound
from skelgate.scaffolder.store import Skeleton, TemplateStore

pytestmark = pytest.mark.unit


class TestDiscovery:
    def test_available_lists_manifests(self, templates_root: Path, demo_template: Path):
        write_template(templates_root, "other", {"a.txt": "a"})
        store = TemplateStore([templates_root])

        ids = [m.template_id for m in store.available()]
        assert ids == ["demo@1.2.0", "other@1.0.0"]

    def test_missing_search_dir_ignored(self, tmp_path: Path, demo_template: Path):
        store = TemplateStore([tmp_path / "nope", demo_template.parent])
        assert [m.name for m in store.available()] == ["demo"]

    def test_directories_without_manifest_ignored(self, templates_root: Path):
        (templates_root / "not-a-template").mkdir()
        assert TemplateStore([templates_root]).available() == []


class TestLookup:
    def test_get_by_name(self, templates_root: Path, demo_template: Path):
        skeleton = TemplateStore([templates_root]).get("demo")
        assert skeleton.template_id == "demo@1.2.0"
        assert skeleton.source == demo_template

    def test_get_by_name_and_version(self, templates_root: Path, demo_template: Path):
        assert TemplateStore([templates_root]).get("demo@1.2.0").manifest.version == "1.2.0"

    def test_wrong_version_not_found(self, templates_root: Path, demo_template: Path):
        with pytest.raises(TemplateNotFound) as exc_info:
            TemplateStore([templates_root]).get("demo@9.9.9")
        assert exc_info.value.template_id == "demo@9.9.9"

    def test_unknown_name_not_found(self, templates_root: Path):
        with pytest.raises(TemplateNotFound):
            TemplateStore([templates_root]).get("ghost")

    def test_get_by_path(self, tmp_path: Path, demo_template: Path):
        store = TemplateStore([])
        assert store.get(str(demo_template)).manifest.name == "demo"

    def test_highest_version_wins(self, tmp_path: Path):
        first = tmp_path / "first"
        second = tmp_path / "second"
        write_template(first, "lib-v2", {"v.txt": "2"}, manifest='name: lib\nversion: "2.0.0"\n')
        write_template(second, "lib-v10", {"v.txt": "10"}, manifest='name: lib\nversion: "10.0.0"\n')

        skeleton = TemplateStore([first, second]).get("lib")
        assert skeleton.manifest.version == "10.0.0"

    def test_first_search_dir_wins_on_tie(self, tmp_path: Path):
        first = tmp_path / "first"
        second = tmp_path / "second"
        write_template(first, "lib", {"who.txt": "first"})
        write_template(second, "lib", {"who.txt": "second"})

        skeleton = TemplateStore([first, second]).get("lib")
        assert skeleton.entries[0].content == "first"

    def test_skeleton_is_cached(self, templates_root: Path, demo_template: Path):
        store = TemplateStore([templates_root])
        assert store.get("demo") is store.get("demo@1.2.0")


class TestManifestValidation:
    def test_invalid_yaml(self, templates_root: Path):
        write_template(templates_root, "broken", {}, manifest="name: [unclosed\n")
        with pytest.raises(TemplateError):
            TemplateStore([templates_root]).get("broken")

    def test_manifest_must_be_mapping(self, templates_root: Path):
        write_template(templates_root, "listy", {}, manifest="- a\n- b\n")
        with pytest.raises(TemplateError, match="mapping"):
            TemplateStore([templates_root]).available()

    def test_name_defaults_to_directory(self, templates_root: Path):
        write_template(templates_root, "anon", {"x": "x"}, manifest='version: "0.1.0"\n')
        assert TemplateStore([templates_root]).get("anon").template_id == "anon@0.1.0"

    def test_invalid_variable_name(self, templates_root: Path):
        write_template(
            templates_root,
            "badvar",
            {},
            manifest="name: badvar\nvariables:\n  - name: 9lives\n",
        )
        with pytest.raises(TemplateError):
            TemplateStore([templates_root]).get("badvar")

    def test_duplicate_variable(self, templates_root: Path):
        write_template(
            templates_root,
            "dup",
            {},
            manifest="name: dup\nvariables:\n  - name: a\n  - name: a\n",
        )
        with pytest.raises(TemplateError, match="declared twice"):
            TemplateStore([templates_root]).get("dup")

    def test_missing_skeleton_dir(self, templates_root: Path):
        template_dir = templates_root / "hollow"
        template_dir.mkdir()
        (template_dir / "template.yaml").write_text("name: hollow\n", encoding="utf-8")
        with pytest.raises(TemplateError, match="skeleton"):
            TemplateStore([templates_root]).get("hollow")

    def test_syntax_error_in_skeleton(self, templates_root: Path):
        write_template(templates_root, "typo", {"README.md": "{{ unclosed "})
        with pytest.raises(TemplateError, match="README.md"):
            TemplateStore([templates_root]).get("typo")


class TestEntries:
    def test_placeholders_collected(self, templates_root: Path, demo_template: Path):
        skeleton = TemplateStore([templates_root]).get("demo")
        assert skeleton.placeholders == {"project_name", "author", "package_name"}

    def test_copy_only_kept_as_bytes(self, templates_root: Path, demo_template: Path):
        skeleton = TemplateStore([templates_root]).get("demo")
        logo = next(e for e in skeleton.entries if e.path == "assets/logo.bin")
        assert logo.content == b"\x00\x01{{ not_a_placeholder }}\xff"
        assert not logo.renders_content

    def test_undecodable_file_kept_as_bytes(self, templates_root: Path):
        write_template(templates_root, "bin", {"img.png": b"\x89PNG\xff\xfe"})
        entry = TemplateStore([templates_root]).get("bin").entries[0]
        assert isinstance(entry.content, bytes)

    def test_exclude_globs(self, templates_root: Path):
        write_template(
            templates_root,
            "ex",
            {"keep.py": "x", "drop.pyc": b"\x00"},
            manifest="name: ex\nexclude: ['*.pyc']\n",
        )
        paths = [e.path for e in TemplateStore([templates_root]).get("ex").entries]
        assert paths == ["keep.py"]

    def test_empty_directory_is_entry(self, templates_root: Path):
        template_dir = write_template(templates_root, "dirs", {"a.txt": "a"})
        (template_dir / "skeleton" / "logs").mkdir()

        entries = TemplateStore([templates_root]).get("dirs").entries
        logs = next(e for e in entries if e.path == "logs")
        assert logs.is_dir

    def test_entries_sorted(self, templates_root: Path):
        write_template(templates_root, "order", {"c.txt": "c", "a/z.txt": "z", "b.txt": "b"})
        paths = [e.path for e in TemplateStore([templates_root]).get("order").entries]
        assert paths == ["a/z.txt", "b.txt", "c.txt"]

    @pytest.mark.skipif(os.name == "nt", reason="POSIX permission bits")
    def test_executable_bit_recorded(self, templates_root: Path):
        template_dir = write_template(templates_root, "exe", {"run.sh": "#!/bin/sh\n"})
        script = template_dir / "skeleton" / "run.sh"
        script.chmod(script.stat().st_mode | stat.S_IXUSR)

        entry = TemplateStore([templates_root]).get("exe").entries[0]
        assert entry.executable


class TestFromPairs:
    def test_builds_inline_skeleton(self):
        skeleton = Skeleton.from_pairs([("{{ name }}.txt", "hi {{ who }}"), ("empty", None)])
        assert skeleton.template_id == "inline@0.0.0"
        assert skeleton.placeholders == {"name", "who"}
        assert skeleton.entries[1].is_dir


class TestBundledTemplate:
    def test_python_package_loads(self):
        store = TemplateStore([BUNDLED_TEMPLATES_DIR])
        skeleton = store.get("python-package")

        declared = {v.name for v in skeleton.manifest.variables}
        assert skeleton.placeholders <= declared
        paths = {e.path for e in skeleton.entries}
        assert ".skelgate/checks.yaml" in paths
        assert "src/{{ package_name }}/__init__.py" in paths
