"""
tests/test_change_detector.py — Name / alliance change detection
=================================================================
Pure function tests, no database.
"""

from __future__ import annotations

from datetime import UTC, datetime

from realmstats.engine.changes import Observation, detect_changes, normalize

AT = datetime(2025, 8, 10, 20, 40, tzinfo=UTC)


class TestNormalize:
    def test_strips_whitespace(self):
        assert normalize("  Alice ") == "Alice"

    def test_empty_becomes_none(self):
        assert normalize("") is None
        assert normalize("   ") is None
        assert normalize(None) is None

    def test_non_strings_are_stringified(self):
        assert normalize(9001) == "9001"


class TestDetectChanges:
    def test_no_change(self):
        known = Observation("Alice", "ABC", "9001")
        changes = detect_changes("1001", known, Observation("Alice", "ABC", "9001"), AT)
        assert changes.name_change is None
        assert changes.alliance_change is None
        assert not changes.has_changes

    def test_whitespace_only_difference_is_not_a_change(self):
        known = Observation("Alice", "ABC")
        changes = detect_changes("1001", known, Observation(" Alice ", "ABC  "), AT)
        assert not changes.has_changes

    def test_name_change(self):
        changes = detect_changes(
            "1001", Observation("Alice", "ABC"), Observation("Alicia", "ABC"), AT
        )
        dto = changes.name_change
        assert dto is not None
        assert (dto.player_id, dto.old_name, dto.new_name) == ("1001", "Alice", "Alicia")
        assert dto.detected_at == AT
        assert changes.alliance_change is None

    def test_name_comparison_is_case_sensitive(self):
        changes = detect_changes("1001", Observation("alice"), Observation("Alice"), AT)
        assert changes.name_change is not None

    def test_alliance_move(self):
        changes = detect_changes(
            "1001",
            Observation("Alice", "ABC", "9001"),
            Observation("Alice", "XYZ", "9002"),
            AT,
        )
        dto = changes.alliance_change
        assert dto is not None
        assert (dto.old_alliance, dto.new_alliance) == ("ABC", "XYZ")
        assert (dto.old_alliance_id, dto.new_alliance_id) == ("9001", "9002")
        assert changes.name_change is None

    def test_leaving_an_alliance_is_a_change(self):
        changes = detect_changes(
            "1001", Observation("Alice", "ABC", "9001"), Observation("Alice", "", None), AT
        )
        dto = changes.alliance_change
        assert dto is not None
        assert dto.old_alliance == "ABC"
        assert dto.new_alliance is None

    def test_joining_an_alliance_is_a_change(self):
        changes = detect_changes(
            "1001", Observation("Alice", None), Observation("Alice", "ABC", "9001"), AT
        )
        assert changes.alliance_change is not None
        assert changes.alliance_change.old_alliance is None

    def test_none_to_none_is_not_a_change(self):
        changes = detect_changes("1001", Observation("Alice", None), Observation("Alice", " "), AT)
        assert changes.alliance_change is None

    def test_alliance_id_alone_does_not_trigger_a_change(self):
        changes = detect_changes(
            "1001",
            Observation("Alice", "ABC", "9001"),
            Observation("Alice", "ABC", "9999"),
            AT,
        )
        assert changes.alliance_change is None

    def test_both_changes_at_once(self):
        changes = detect_changes(
            "1001", Observation("Alice", "ABC"), Observation("Alicia", "XYZ"), AT
        )
        assert changes.name_change is not None
        assert changes.alliance_change is not None
