"""Unit tests for shared helpers (skelgate.utils)."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from skelgate.utils import (
    OUTCOME_STYLES,
    format_duration,
    print_error,
    print_section_header,
    print_success,
    print_summary_table,
    print_warning,
    save_json,
    truncate,
)


class TestSaveJson:
    @pytest.mark.unit
    def test_creates_parents(self, tmp_path: Path):
        target = tmp_path / "a" / "b" / "report.json"
        returned = save_json({"overall": "passed"}, target)

        assert returned == target
        assert json.loads(target.read_text(encoding="utf-8")) == {"overall": "passed"}

    @pytest.mark.unit
    def test_non_ascii_kept(self, tmp_path: Path):
        target = tmp_path / "r.json"
        save_json({"diagnostic": "naïve"}, target)
        assert "naïve" in target.read_text(encoding="utf-8")


class TestFormatDuration:
    @pytest.mark.unit
    @pytest.mark.parametrize(
        ("seconds", "expected"),
        [(3.7, "3.7s"), (65.2, "1m 5s"), (3661.0, "1h 1m 1s"), (-1, "0.0s")],
    )
    def test_formats(self, seconds: float, expected: str):
        assert format_duration(seconds) == expected


class TestTruncate:
    @pytest.mark.unit
    def test_short_text_unchanged(self):
        assert truncate("abc", 10) == "abc"

    @pytest.mark.unit
    def test_long_text_cut(self):
        result = truncate("x" * 100, 20)
        assert len(result) <= 20
        assert result.endswith("...")


class TestRichHelpers:
    @pytest.mark.unit
    def test_helpers_print(self, capsys):
        print_section_header("Gates")
        print_summary_table({"Checks": "3"}, title="Run")
        print_success("done")
        print_warning("careful")
        print_error("broken")
        out = capsys.readouterr().out
        for text in ("Gates", "Checks", "done", "careful", "broken"):
            assert text in out

    @pytest.mark.unit
    def test_every_outcome_has_a_style(self):
        assert set(OUTCOME_STYLES) == {"passed", "failed", "errored", "skipped"}
