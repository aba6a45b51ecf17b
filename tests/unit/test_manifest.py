"""Unit tests for manifest_etl.validators and manifest_etl.manifest."""

from __future__ import annotations

import pytest

from manifest_etl.manifest import (
    ParsedEntry,
    group_by_flight,
    parse_manifest,
)
from manifest_etl.rules import DEFAULT_RULES, ReconciliationRules
from manifest_etl.validators import (
    is_valid_category,
    is_valid_flight_status,
    split_fields,
    validate_manifest_line,
)

GOOD_LINE = "LA2045, LIM, Maria Garcia, GOLD, CONFIRMADO, 12A"


# ---------------------------------------------------------------------------
# validators
# ---------------------------------------------------------------------------

class TestSplitFields:
    def test_trims_each_field(self):
        assert split_fields(" a ,b,  c") == ["a", "b", "c"]

    def test_keeps_empty_fields(self):
        assert split_fields("a,,c") == ["a", "", "c"]


class TestEnumeratedFields:
    @pytest.mark.parametrize("value", [
        "SIGNATURE", "top", "Black", "platinum", "GOLD PLUS", "gold plus", "GOLD_PLUS", "gold",
    ])
    def test_valid_categories(self, value):
        assert is_valid_category(value)

    @pytest.mark.parametrize("value", ["SILVER", "GOLDPLUS", ""])
    def test_invalid_categories(self, value):
        assert not is_valid_category(value)

    @pytest.mark.parametrize("value", [
        "CONFIRMADO", "check-in", "Abordado", "NO SHOW", "cancelado",
    ])
    def test_valid_statuses(self, value):
        assert is_valid_flight_status(value)

    @pytest.mark.parametrize("value", ["BOARDED", "NOSHOW", ""])
    def test_invalid_statuses(self, value):
        assert not is_valid_flight_status(value)


class TestValidateManifestLine:
    def test_valid_line(self):
        v = validate_manifest_line(GOOD_LINE)
        assert v.valid
        assert v.error is None
        assert v.fields == ("LA2045", "LIM", "Maria Garcia", "GOLD", "CONFIRMADO", "12A")

    def test_five_fields_mentions_six(self):
        v = validate_manifest_line("LA2045, LIM, Maria Garcia, GOLD, CONFIRMADO")
        assert not v.valid
        assert "6 fields" in v.error
        assert "got 5" in v.error

    def test_seven_fields(self):
        v = validate_manifest_line(GOOD_LINE + ", extra")
        assert not v.valid
        assert "got 7" in v.error

    def test_empty_field(self):
        v = validate_manifest_line("LA2045, , Maria Garcia, GOLD, CONFIRMADO, 12A")
        assert not v.valid
        assert "required" in v.error
        assert "DEST" in v.error

    def test_invalid_category(self):
        v = validate_manifest_line("LA2045, LIM, Maria Garcia, SILVER, CONFIRMADO, 12A")
        assert not v.valid
        assert 'Invalid category "SILVER"' in v.error

    def test_invalid_status(self):
        v = validate_manifest_line("LA2045, LIM, Maria Garcia, GOLD, BOARDED, 12A")
        assert not v.valid
        assert 'Invalid status "BOARDED"' in v.error

    def test_custom_rules(self):
        rules = ReconciliationRules(
            version="test",
            match_threshold=0.85,
            categories=("SILVER",),
            category_ranks={"SILVER": 1},
            flight_statuses=("CONFIRMADO",),
        )
        assert validate_manifest_line(
            "LA2045, LIM, Maria Garcia, silver, CONFIRMADO, 12A", rules
        ).valid
        assert not validate_manifest_line(GOOD_LINE, rules).valid


# ---------------------------------------------------------------------------
# parse_manifest
# ---------------------------------------------------------------------------

class TestParseManifest:
    def test_single_valid_line(self):
        result = parse_manifest(GOOD_LINE)
        assert result.success
        assert result.errors == []
        assert result.entries == [
            ParsedEntry("LA2045", "LIM", "Maria Garcia", "GOLD", "CONFIRMADO", "12A", 1),
        ]

    def test_lowercase_enums_without_spaces(self):
        result = parse_manifest("AA100,MIA,Jane Doe,gold,confirmado,12A")
        assert result.success
        (entry,) = result.entries
        assert (entry.flight_number, entry.destination, entry.name) == ("AA100", "MIA", "Jane Doe")
        assert entry.category == "GOLD"
        assert entry.status == "CONFIRMADO"
        assert entry.seat == "12A"

    def test_canonicalizes_category_and_status(self):
        result = parse_manifest("LA2045, LIM, Ana Perez, gold_plus, check-in, 3C")
        entry = result.entries[0]
        assert entry.category == "GOLD PLUS"
        assert entry.status == "CHECK-IN"

    def test_invalid_line_collected_not_raised(self):
        text = "\n".join([
            GOOD_LINE,
            "LA2045, LIM, Maria Garcia, GOLD, CONFIRMADO",
            "LA2046, CUZ, John Smith, BLACK, ABORDADO, 1A",
        ])
        result = parse_manifest(text)
        assert not result.success
        assert len(result.entries) == 2
        assert len(result.errors) == 1
        assert result.errors[0].startswith("Line 2: ")
        assert "6 fields" in result.errors[0]

    def test_rejected_tuples(self):
        bad = "LA2045, LIM, Maria Garcia, SILVER, CONFIRMADO, 12A"
        result = parse_manifest(bad)
        assert result.rejected == [(1, bad, result.errors[0][len("Line 1: "):])]

    def test_blank_lines_ignored_and_not_counted(self):
        text = "\n\n" + GOOD_LINE + "\n   \n" + "bad line\n\n"
        result = parse_manifest(text)
        assert len(result.entries) == 1
        assert result.entries[0].line_number == 1
        assert result.errors == [
            "Line 2: Invalid format (expected 6 fields: "
            "FLIGHT, DEST, NAME, CATEGORY, STATUS, SEAT; got 1)"
        ]

    def test_crlf_line_endings(self):
        text = GOOD_LINE + "\r\n" + "LA2046, CUZ, John Smith, BLACK, ABORDADO, 1A\r\n"
        result = parse_manifest(text)
        assert result.success
        assert [e.seat for e in result.entries] == ["12A", "1A"]

    @pytest.mark.parametrize("text", ["", "   \n\n", None, 42, ["a"]])
    def test_empty_or_non_string(self, text):
        result = parse_manifest(text)
        assert result.success
        assert result.entries == []
        assert result.errors == []

    def test_duplicate_lines_kept(self):
        result = parse_manifest(GOOD_LINE + "\n" + GOOD_LINE)
        assert len(result.entries) == 2

    def test_to_dict(self):
        result = parse_manifest(GOOD_LINE + "\nbad")
        d = result.to_dict()
        assert d["success"] is False
        assert d["entries_parsed"] == 1
        assert d["lines_rejected"] == 1
        assert len(d["errors"]) == 1


# ---------------------------------------------------------------------------
# group_by_flight
# ---------------------------------------------------------------------------

def _entry(flight, dest, name, line):
    return ParsedEntry(flight, dest, name, "GOLD", "CONFIRMADO", "1A", line)


class TestGroupByFlight:
    def test_groups_in_first_seen_order(self):
        entries = [
            _entry("LA2046", "CUZ", "A", 1),
            _entry("LA2045", "LIM", "B", 2),
            _entry("LA2046", "CUZ", "C", 3),
        ]
        groups = group_by_flight(entries)
        assert [g.key for g in groups] == ["LA2046-CUZ", "LA2045-LIM"]
        assert [e.name for e in groups[0].entries] == ["A", "C"]
        assert [e.name for e in groups[1].entries] == ["B"]

    def test_same_number_different_destination(self):
        groups = group_by_flight([
            _entry("LA2045", "LIM", "A", 1),
            _entry("LA2045", "CUZ", "B", 2),
        ])
        assert len(groups) == 2

    def test_empty(self):
        assert group_by_flight([]) == []

    def test_default_rules_used(self):
        assert parse_manifest(GOOD_LINE, DEFAULT_RULES) == parse_manifest(GOOD_LINE)
