"""manifest_etl.validators

Shape and enumerated-field checks for a single raw manifest line.

A valid line has exactly six comma-separated fields

    FLIGHT, DEST, NAME, CATEGORY, STATUS, SEAT

all non-empty after trimming, with CATEGORY and STATUS drawn from the
enumerated sets in the active ReconciliationRules (case-insensitive).
"""

from __future__ import annotations

from dataclasses import dataclass

from manifest_etl.rules import DEFAULT_RULES, ReconciliationRules

FIELD_NAMES = ("FLIGHT", "DEST", "NAME", "CATEGORY", "STATUS", "SEAT")


@dataclass(frozen=True)
class LineValidation:
    valid: bool
    error: str | None = None
    fields: tuple[str, ...] = ()


def split_fields(line: str) -> list[str]:
    return [p.strip() for p in line.split(",")]


def is_valid_category(value: str, rules: ReconciliationRules = DEFAULT_RULES) -> bool:
    return rules.is_category(value)


def is_valid_flight_status(value: str, rules: ReconciliationRules = DEFAULT_RULES) -> bool:
    return rules.is_flight_status(value)


def validate_manifest_line(
    line: str,
    rules: ReconciliationRules = DEFAULT_RULES,
) -> LineValidation:
    """Validate one manifest line, returning the trimmed fields on success."""
    parts = split_fields(line)

    if len(parts) != len(FIELD_NAMES):
        return LineValidation(
            False,
            f"Invalid format (expected 6 fields: {', '.join(FIELD_NAMES)}; got {len(parts)})",
        )

    empty = [name for name, value in zip(FIELD_NAMES, parts) if not value]
    if empty:
        return LineValidation(False, f"All fields are required (empty: {', '.join(empty)})")

    category, status = parts[3], parts[4]
    if not is_valid_category(category, rules):
        return LineValidation(
            False,
            f'Invalid category "{category}". Valid: {", ".join(rules.categories)}',
        )
    if not is_valid_flight_status(status, rules):
        return LineValidation(
            False,
            f'Invalid status "{status}". Valid: {", ".join(rules.flight_statuses)}',
        )

    return LineValidation(True, None, tuple(parts))
