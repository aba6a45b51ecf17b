"""manifest_etl.manifest

Manifest parsing and flight grouping.

parse_manifest turns a raw text blob into ParsedEntry rows, collecting a
"Line <n>: <reason>" message for every rejected line instead of stopping at
the first one, so a caller can show every problem in a manifest at once.
Line numbers count non-blank lines only (blank lines are discarded before
validation).

group_by_flight partitions parsed entries by (flight number, destination)
in arrival order.  Nothing is sorted or de-duplicated here; two lines for the
same passenger on the same flight stay two entries and are reconciled
independently.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from manifest_etl.normalize import normalize_token
from manifest_etl.rules import DEFAULT_RULES, ReconciliationRules
from manifest_etl.validators import validate_manifest_line


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ParsedEntry:
    flight_number: str
    destination: str
    name: str
    category: str
    status: str
    seat: str
    line_number: int = 0

    @property
    def flight_key(self) -> str:
        return f"{self.flight_number}-{self.destination}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "flight_number": self.flight_number,
            "destination": self.destination,
            "name": self.name,
            "category": self.category,
            "status": self.status,
            "seat": self.seat,
            "line_number": self.line_number,
        }


@dataclass(frozen=True)
class ParseResult:
    success: bool
    entries: list[ParsedEntry] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    # (line_number, raw line, reason) for each rejected line
    rejected: list[tuple[int, str, str]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "entries_parsed": len(self.entries),
            "lines_rejected": len(self.errors),
            "errors": self.errors[:50],
        }


@dataclass
class FlightGroup:
    flight_number: str
    destination: str
    entries: list[ParsedEntry] = field(default_factory=list)

    @property
    def key(self) -> str:
        return f"{self.flight_number}-{self.destination}"


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------

def parse_manifest(
    manifest_text: str | None,
    rules: ReconciliationRules = DEFAULT_RULES,
) -> ParseResult:
    """Parse a manifest text blob into entries plus per-line errors.

    Never raises for malformed input; non-string input is treated as an
    empty manifest.
    """
    text = manifest_text if isinstance(manifest_text, str) else ""
    lines = [line for line in text.splitlines() if line.strip()]

    entries: list[ParsedEntry] = []
    errors: list[str] = []
    rejected: list[tuple[int, str, str]] = []

    for idx, line in enumerate(lines, start=1):
        validation = validate_manifest_line(line, rules)
        if not validation.valid:
            errors.append(f"Line {idx}: {validation.error}")
            rejected.append((idx, line, validation.error or "invalid"))
            continue

        flight, destination, name, category, status, seat = validation.fields
        entries.append(ParsedEntry(
            flight_number=flight,
            destination=destination,
            name=name,
            category=rules.canonical_category(category),  # type: ignore[arg-type]
            status=normalize_token(status),  # type: ignore[arg-type]
            seat=seat,
            line_number=idx,
        ))

    return ParseResult(
        success=not errors,
        entries=entries,
        errors=errors,
        rejected=rejected,
    )


# ---------------------------------------------------------------------------
# Grouper
# ---------------------------------------------------------------------------

def group_by_flight(entries: list[ParsedEntry]) -> list[FlightGroup]:
    """Partition entries by flight key, preserving first-seen group order."""
    groups: dict[str, FlightGroup] = {}
    for entry in entries:
        key = entry.flight_key
        if key not in groups:
            groups[key] = FlightGroup(entry.flight_number, entry.destination)
        groups[key].entries.append(entry)
    return list(groups.values())
