"""
Tests for stitchfloor.machines
==============================
"""

import pytest

from stitchfloor.machines import (
    compatibility_reason,
    is_compatible,
    normalize_machine_set,
    normalize_machine_type,
)


class TestNormalize:

    @pytest.mark.parametrize("raw,expected", [
        ("Single Needle", "single-needle"),
        ("single_needle", "single-needle"),
        ("SN", "single-needle"),
        ("iron", "pressing"),
        ("Over-Lock", "overlock"),
        ("buttonAttach", "button-attach"),
        ("Multi Machine", "multi-skill"),
    ])
    def test_aliases(self, raw, expected):
        assert normalize_machine_type(raw) == expected

    def test_unknown_machine_squashed(self):
        assert normalize_machine_type("Zig Zag") == "zigzag"
        assert normalize_machine_type("zig-zag") == "zigzag"

    def test_blank(self):
        assert normalize_machine_type("") is None
        assert normalize_machine_type(None) is None

    def test_set_drops_blanks(self):
        assert normalize_machine_set(["SN", "", "overlock"]) == {"single-needle", "overlock"}


class TestCompatibility:

    def test_exact_and_alias_match(self):
        assert is_compatible(["overlock"], "overlock")
        assert is_compatible(["Single Needle"], "single-needle")
        assert is_compatible(["press"], "iron")

    def test_multi_skill_runs_everything(self):
        assert is_compatible(["multi-machine"], "kansai")
        assert is_compatible(["universal"], "buttonhole")

    def test_manual_work_needs_no_machine(self):
        assert is_compatible([], "manual")
        assert is_compatible(["overlock"], "hand")

    def test_mismatch(self):
        assert not is_compatible(["single-needle"], "overlock")
        assert not is_compatible([], "overlock")

    def test_reasons(self):
        assert "Exact machine match" in compatibility_reason(["ol"], "overlock")
        assert "Multi-skill" in compatibility_reason(["all"], "overlock")
        assert "not specified" in compatibility_reason([], "overlock")
        assert "mismatch" in compatibility_reason(["flatlock"], "overlock")
