"""manifest_etl.reconcile

Manifest reconciliation pipeline (--mode reconcile).

For each flight group (in manifest order):
  1. Flight: list the registry's flights for the date/airport and pick the
     one with the same flight number and destination; create it if absent.
  2. Passenger, per entry in arrival order:
       - search candidates by the first two words of the manifest name
       - first candidate with similarity 1.0 wins and stops the scan
       - otherwise the best candidate >= match_threshold wins (first-seen
         wins ties) and a DuplicateAuditEntry is recorded for review
       - a matched passenger whose stored category ranks below the manifest
         category is upgraded
       - no acceptable candidate → a new passenger with a placeholder
         document id
  3. Link: add the passenger to the flight unless already linked, either in
     the registry or earlier in this run.

Every registry call goes through registry.attempt(); a failed call is treated
as absent data, counted in registry_errors and described in warnings.  The
run always completes and returns a ReconciliationResult.  Processing is
strictly sequential because later entries depend on records created or
linked by earlier ones.

Not transactional: caller manages the connection transaction.  Re-running the
same manifest is idempotent (search-before-create, link-existence check).
"""

from __future__ import annotations

import math
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from manifest_etl.category_rank import should_upgrade
from manifest_etl.manifest import FlightGroup, ParsedEntry, group_by_flight, parse_manifest
from manifest_etl.normalize import compact_upper, name_search_fragment
from manifest_etl.registry import (
    FlightRecord,
    PassengerRecord,
    Registry,
    RegistryOutcome,
    attempt,
)
from manifest_etl.rules import DEFAULT_RULES, ReconciliationRules
from manifest_etl.similarity import name_similarity

DOCUMENT_ID_NAME_LEN = 10

# ---------------------------------------------------------------------------
# Result models
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class DuplicateAuditEntry:
    manifest_name: str
    matched_existing_name: str
    matched_document_id: str
    similarity_percent: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "manifest_name": self.manifest_name,
            "matched_existing_name": self.matched_existing_name,
            "matched_document_id": self.matched_document_id,
            "similarity_percent": self.similarity_percent,
        }


@dataclass(frozen=True)
class ReconciliationResult:
    processed_count: int
    created_count: int
    found_count: int
    duplicates: tuple[DuplicateAuditEntry, ...]
    summary_message: str
    failed_count: int = 0
    flights_created: int = 0
    category_upgrades: int = 0
    registry_errors: int = 0
    parse_errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "processed_count": self.processed_count,
            "created_count": self.created_count,
            "found_count": self.found_count,
            "failed_count": self.failed_count,
            "flights_created": self.flights_created,
            "category_upgrades": self.category_upgrades,
            "registry_errors": self.registry_errors,
            "duplicates": [d.to_dict() for d in self.duplicates],
            "parse_errors": list(self.parse_errors),
            "summary_message": self.summary_message,
            "warnings": list(self.warnings[:50]),
        }


@dataclass(frozen=True)
class PassengerMatch:
    passenger: PassengerRecord
    score: float

    @property
    def is_exact(self) -> bool:
        return self.score == 1.0


# ---------------------------------------------------------------------------
# Counters (mutable, owned by a single run)
# ---------------------------------------------------------------------------

@dataclass
class ReconcileCounters:
    processed: int = 0
    created: int = 0
    found: int = 0
    failed: int = 0
    flights_created: int = 0
    category_upgrades: int = 0
    registry_errors: int = 0
    duplicates: list[DuplicateAuditEntry] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def registry_failure(self, outcome: RegistryOutcome[Any], context: str) -> None:
        self.registry_errors += 1
        self.warnings.append(f"{context}: {outcome.operation} failed ({outcome.error})")

    def freeze(self, parse_errors: list[str] | tuple[str, ...] = ()) -> ReconciliationResult:
        return ReconciliationResult(
            processed_count=self.processed,
            created_count=self.created,
            found_count=self.found,
            duplicates=tuple(self.duplicates),
            summary_message=summary_message(
                self.processed, self.created, self.found, len(self.duplicates)
            ),
            failed_count=self.failed,
            flights_created=self.flights_created,
            category_upgrades=self.category_upgrades,
            registry_errors=self.registry_errors,
            parse_errors=tuple(parse_errors),
            warnings=tuple(self.warnings),
        )


def summary_message(processed: int, created: int, found: int, duplicates: int) -> str:
    return (
        f"Processed: {processed} | Created: {created} | "
        f"Found: {found} | Duplicates: {duplicates}"
    )


# ---------------------------------------------------------------------------
# Matching helpers
# ---------------------------------------------------------------------------

def find_best_match(
    manifest_name: str,
    candidates: list[PassengerRecord],
    threshold: float,
) -> PassengerMatch | None:
    """Pick the candidate that represents the same person, if any.

    First exact (1.0) candidate wins immediately.  Otherwise the highest
    score >= threshold wins; ties keep the first-seen candidate.
    """
    best: PassengerMatch | None = None
    for candidate in candidates:
        score = name_similarity(manifest_name, candidate.name)
        if score == 1.0:
            return PassengerMatch(candidate, score)
        if score >= threshold and (best is None or score > best.score):
            best = PassengerMatch(candidate, score)
    return best


def similarity_percent(score: float) -> int:
    """Score as a whole percentage, halves rounded up (0.925 → 93)."""
    return math.floor(score * 100 + 0.5)


def make_placeholder_document_id(
    name: str,
    prefix: str = DEFAULT_RULES.document_id_prefix,
    now_ms: int | None = None,
    suffix: str | None = None,
) -> str:
    """Build a temporary document id for a passenger created from a manifest.

    prefix + NAME (whitespace removed, upper-cased, first 10 chars)
    + last 4 digits of the epoch-millisecond clock + "-" + 4 random hex chars.
    "Jane Doe" → "TMP-JANEDOE4821-9F3A"
    """
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    if suffix is None:
        suffix = uuid.uuid4().hex[:4].upper()
    stamp = str(now_ms)[-4:]
    return f"{prefix}{compact_upper(name, DOCUMENT_ID_NAME_LEN)}{stamp}-{suffix}"


# ---------------------------------------------------------------------------
# Per-step resolution
# ---------------------------------------------------------------------------

def _resolve_flight(
    registry: Registry,
    group: FlightGroup,
    flight_date: date,
    airport_id: str,
    ctrs: ReconcileCounters,
) -> FlightRecord | None:
    listed = attempt("list_flights", registry.list_flights, flight_date, airport_id)
    if listed.ok:
        for flight in listed.value or []:
            if (flight.flight_number == group.flight_number
                    and flight.destination == group.destination):
                return flight
    else:
        ctrs.registry_failure(listed, f"flight {group.key}")

    created = attempt(
        "create_flight", registry.create_flight,
        group.flight_number, group.destination, flight_date, airport_id,
    )
    if not created.ok:
        ctrs.registry_failure(created, f"flight {group.key}")
        return None
    ctrs.flights_created += 1
    return created.value


def _maybe_upgrade_category(
    registry: Registry,
    entry: ParsedEntry,
    match: PassengerMatch,
    rules: ReconciliationRules,
    ctrs: ReconcileCounters,
) -> None:
    stored = match.passenger.category
    if not should_upgrade(entry.category, stored, rules):
        return
    outcome = attempt(
        "update_passenger", registry.update_passenger,
        match.passenger.id, entry.category,
    )
    if outcome.ok:
        ctrs.category_upgrades += 1
    else:
        ctrs.registry_failure(
            outcome,
            f"line {entry.line_number} category upgrade {stored} -> {entry.category}",
        )


def _resolve_passenger(
    registry: Registry,
    entry: ParsedEntry,
    airport_id: str,
    rules: ReconciliationRules,
    document_id_factory: Callable[[str], str],
    ctrs: ReconcileCounters,
) -> PassengerRecord | None:
    """Find-or-create the passenger for one entry and update the counters."""
    candidates: list[PassengerRecord] = []
    fragment = name_search_fragment(entry.name)
    if fragment:
        searched = attempt(
            "search_passengers", registry.search_passengers, fragment, airport_id,
        )
        if searched.ok:
            candidates = list(searched.value or [])
        else:
            ctrs.registry_failure(searched, f"line {entry.line_number} {entry.name!r}")

    match = find_best_match(entry.name, candidates, rules.match_threshold)
    if match is not None:
        if not match.is_exact:
            ctrs.duplicates.append(DuplicateAuditEntry(
                manifest_name=entry.name,
                matched_existing_name=match.passenger.name,
                matched_document_id=match.passenger.document_id,
                similarity_percent=similarity_percent(match.score),
            ))
        _maybe_upgrade_category(registry, entry, match, rules, ctrs)
        ctrs.found += 1
        return match.passenger

    created = attempt(
        "create_passenger", registry.create_passenger,
        entry.name, document_id_factory(entry.name), entry.category, airport_id,
    )
    if not created.ok:
        ctrs.failed += 1
        ctrs.registry_failure(created, f"line {entry.line_number} {entry.name!r}")
        return None
    ctrs.created += 1
    return created.value


# ---------------------------------------------------------------------------
# Top-level runners
# ---------------------------------------------------------------------------

def reconcile_entries(
    registry: Registry,
    entries: list[ParsedEntry],
    flight_date: date,
    airport_id: str,
    *,
    rules: ReconciliationRules = DEFAULT_RULES,
    document_id_factory: Callable[[str], str] | None = None,
    parse_errors: list[str] | tuple[str, ...] = (),
) -> ReconciliationResult:
    """Reconcile already-parsed entries against the registry."""
    make_document_id = document_id_factory or (
        lambda name: make_placeholder_document_id(name, rules.document_id_prefix)
    )
    ctrs = ReconcileCounters()

    for group in group_by_flight(entries):
        flight = _resolve_flight(registry, group, flight_date, airport_id, ctrs)
        linked: set[str] = set(flight.passenger_ids) if flight is not None else set()

        for entry in group.entries:
            passenger = _resolve_passenger(
                registry, entry, airport_id, rules, make_document_id, ctrs,
            )
            if passenger is None:
                continue
            if flight is None:
                ctrs.warnings.append(
                    f"line {entry.line_number} {entry.name!r}: not linked, "
                    f"flight {group.key} unavailable"
                )
                continue
            if passenger.id in linked:
                continue

            outcome = attempt(
                "link_passenger_to_flight", registry.link_passenger_to_flight,
                flight.id, passenger.id, entry.seat, entry.status,
            )
            if not outcome.ok:
                ctrs.registry_failure(
                    outcome, f"line {entry.line_number} {entry.name!r} -> {group.key}",
                )
                continue
            linked.add(passenger.id)
            ctrs.processed += 1

    return ctrs.freeze(parse_errors)


def reconcile_manifest(
    registry: Registry,
    manifest_text: str,
    flight_date: date,
    airport_id: str,
    *,
    rules: ReconciliationRules = DEFAULT_RULES,
    document_id_factory: Callable[[str], str] | None = None,
) -> ReconciliationResult:
    """Parse a manifest and reconcile every valid line against the registry.

    Rejected lines are reported in parse_errors and skipped; they never stop
    the run.
    """
    parsed = parse_manifest(manifest_text, rules)
    return reconcile_entries(
        registry,
        parsed.entries,
        flight_date,
        airport_id,
        rules=rules,
        document_id_factory=document_id_factory,
        parse_errors=parsed.errors,
    )


# ---------------------------------------------------------------------------
# Report
# ---------------------------------------------------------------------------

def build_reconciliation_report(result: ReconciliationResult, dry_run: bool = False) -> str:
    lines = [
        "=" * 60,
        "Manifest Reconciliation Report",
        f"  dry_run: {dry_run}",
        "=" * 60,
        f"  passengers linked:   {result.processed_count}",
        f"  passengers created:  {result.created_count}",
        f"  passengers found:    {result.found_count}",
        f"  passengers failed:   {result.failed_count}",
        f"  flights created:     {result.flights_created}",
        f"  category upgrades:   {result.category_upgrades}",
        f"  duplicates flagged:  {len(result.duplicates)}",
        f"  lines rejected:      {len(result.parse_errors)}",
        f"Registry errors:       {result.registry_errors}",
    ]
    if result.duplicates:
        lines.append(f"\nPossible duplicates ({len(result.duplicates)}):")
        for d in result.duplicates:
            lines.append(
                f"  {d.manifest_name!r} ~ {d.matched_existing_name!r} "
                f"[{d.matched_document_id}] {d.similarity_percent}%"
            )
    if result.parse_errors:
        lines.append(f"\nRejected lines ({len(result.parse_errors)}):")
        for e in result.parse_errors[:20]:
            lines.append(f"  {e}")
        if len(result.parse_errors) > 20:
            lines.append(f"  ... and {len(result.parse_errors) - 20} more")
    if result.warnings:
        lines.append(f"\nWarnings ({len(result.warnings)}):")
        for w in result.warnings[:20]:
            lines.append(f"  {w}")
        if len(result.warnings) > 20:
            lines.append(f"  ... and {len(result.warnings) - 20} more")
    lines.append(result.summary_message)
    lines.append("=" * 60)
    return "\n".join(lines)
