"""manifest_etl.import_manifest

Unified CLI entrypoint for VIP flight-manifest ingestion.

Modes (--mode):
  reconcile  : parse a manifest and merge it into the passenger/flight
               registry (default)
  preview    : parse and validate only; no DB connection

Usage (reconcile):
    python -m manifest_etl.import_manifest \\
        --mode reconcile \\
        --db-dsn "$DB_DSN" \\
        --manifest-path "manifests/2025-07-23_LIM.txt" \\
        --flight-date 2025-07-23 \\
        --airport-code LIM

Usage (preview):
    python -m manifest_etl.import_manifest \\
        --mode preview \\
        --manifest-path "manifests/2025-07-23_LIM.txt"
"""

from __future__ import annotations

import json
import sys
import uuid
from datetime import date, datetime, timezone
from pathlib import Path

import click
import psycopg

from manifest_etl.manifest import ParseResult, parse_manifest
from manifest_etl.reconcile import (
    ReconciliationResult,
    build_reconciliation_report,
    reconcile_entries,
)
from manifest_etl.registry import PostgresRegistry, resolve_airport_id
from manifest_etl.rules import (
    DEFAULT_RULES,
    ReconciliationRules,
    RulesValidationError,
    load_rules,
)
from manifest_etl.shared import RejectWriter, write_rejected_lines, write_run_report


@click.command()
@click.option(
    "--mode",
    default="reconcile",
    type=click.Choice(["reconcile", "preview"]),
    show_default=True,
    help="Ingestion mode",
)
@click.option("--manifest-path", required=True, type=click.Path(), help="Manifest text file")
@click.option("--db-dsn", default=None, envvar="MANIFEST_DB_DSN", help="[reconcile] PostgreSQL DSN")
@click.option(
    "--flight-date",
    default=None,
    type=click.DateTime(formats=["%Y-%m-%d"]),
    help="[reconcile] Flight date (YYYY-MM-DD)",
)
@click.option("--airport-id", default=None, help="[reconcile] Registry airport id")
@click.option("--airport-code", default=None, help="[reconcile] Airport IATA code (resolved to an id)")
@click.option(
    "--rules-file",
    default=None,
    type=click.Path(),
    help="YAML reconciliation rules (built-in defaults when omitted)",
)
@click.option(
    "--max-reject-rate",
    default=1.0,
    type=float,
    show_default=True,
    help="[reconcile] Fraction of manifest lines that may be rejected before the run fails",
)
@click.option(
    "--statement-timeout-ms",
    default=30000,
    type=int,
    show_default=True,
    help="[reconcile] PostgreSQL statement_timeout per registry call",
)
@click.option("--dry-run", is_flag=True, default=False)
@click.option(
    "--rejects-path",
    default="./artifacts/rejects/manifest_rejects.csv",
    show_default=True,
)
@click.option("--run-id", default=None, help="Override UUID for log correlation")
def main(
    mode: str,
    manifest_path: str,
    db_dsn: str | None,
    flight_date: datetime | None,
    airport_id: str | None,
    airport_code: str | None,
    rules_file: str | None,
    max_reject_rate: float,
    statement_timeout_ms: int,
    dry_run: bool,
    rejects_path: str,
    run_id: str | None,
) -> None:
    """Unified manifest ingestion CLI."""
    run_id = run_id or str(uuid.uuid4())
    started_at = datetime.now(timezone.utc).isoformat()

    click.echo(f"[{run_id}] Starting {mode} run (dry_run={dry_run})")

    rules = _load_rules_or_exit(rules_file, run_id)

    manifest_file = Path(manifest_path)
    if not manifest_file.exists():
        click.echo(f"[{run_id}] FATAL: --manifest-path not found: {manifest_path}", err=True)
        sys.exit(1)
    text = manifest_file.read_text(encoding="utf-8-sig")

    parsed = parse_manifest(text, rules)
    rejects = RejectWriter(Path(rejects_path))
    try:
        write_rejected_lines(rejects, parsed.rejected)
    finally:
        rejects.close()

    total = len(parsed.entries) + len(parsed.errors)
    click.echo(
        f"[{run_id}] Pre-scan: {total} lines read, "
        f"{len(parsed.errors)} rejected, {len(parsed.entries)} valid"
    )
    if rejects.rows_written:
        click.echo(f"[{run_id}] Rejects: {rejects.path}")

    if mode == "preview":
        _run_preview(run_id, started_at, manifest_path, parsed)
        return

    _validate_reconcile_flags(db_dsn, flight_date, airport_id, airport_code, run_id)

    if total and len(parsed.errors) / total > max_reject_rate:
        click.echo(
            f"[{run_id}] FATAL: reject rate {len(parsed.errors) / total:.2%} "
            f"exceeds --max-reject-rate {max_reject_rate:.2%}",
            err=True,
        )
        sys.exit(1)

    result = _run_reconcile(
        run_id,
        db_dsn=db_dsn,  # type: ignore[arg-type]
        parsed=parsed,
        flight_date=flight_date.date(),  # type: ignore[union-attr]
        airport_id=airport_id,
        airport_code=airport_code,
        rules=rules,
        statement_timeout_ms=statement_timeout_ms,
        dry_run=dry_run,
    )

    click.echo(build_reconciliation_report(result, dry_run=dry_run))
    report_path = write_run_report(
        run_id, started_at, mode, dry_run,
        {
            "manifest_path": manifest_path,
            "flight_date": flight_date.date().isoformat(),  # type: ignore[union-attr]
            "airport_id": airport_id,
            "airport_code": airport_code,
            "rules_version": rules.version,
            "rules_hash": rules.yaml_hash,
        },
        result,
    )
    click.echo(f"[{run_id}] Run report: {report_path}")

    if result.registry_errors > 0 and not dry_run:
        click.echo(
            f"[{run_id}] Run completed with {result.registry_errors} registry error(s); exiting non-zero",
            err=True,
        )
        sys.exit(1)
    click.echo(f"[{run_id}] Done.")


def _load_rules_or_exit(rules_file: str | None, run_id: str) -> ReconciliationRules:
    if rules_file is None:
        return DEFAULT_RULES
    try:
        rules = load_rules(Path(rules_file))
    except FileNotFoundError:
        click.echo(f"[{run_id}] FATAL: --rules-file not found: {rules_file}", err=True)
        sys.exit(1)
    except RulesValidationError as exc:
        click.echo(f"[{run_id}] FATAL: invalid rules file {rules_file}: {exc}", err=True)
        sys.exit(1)
    click.echo(f"[{run_id}] Rules {rules.version} loaded from {rules_file}")
    return rules


def _validate_reconcile_flags(
    db_dsn: str | None,
    flight_date: datetime | None,
    airport_id: str | None,
    airport_code: str | None,
    run_id: str,
) -> None:
    required = {"--db-dsn": db_dsn, "--flight-date": flight_date}
    missing = [k for k, v in required.items() if v is None]
    if airport_id is None and airport_code is None:
        missing.append("--airport-id or --airport-code")
    if missing:
        click.echo(
            f"[{run_id}] FATAL: reconcile mode requires: {', '.join(missing)}",
            err=True,
        )
        sys.exit(1)


# ---------------------------------------------------------------------------
# Preview
# ---------------------------------------------------------------------------

def _run_preview(
    run_id: str,
    started_at: str,
    manifest_path: str,
    parsed: ParseResult,
) -> None:
    for entry in parsed.entries:
        click.echo(
            f"[{run_id}] line {entry.line_number}: {entry.flight_key} "
            f"{entry.name} {entry.category} {entry.status} seat={entry.seat}"
        )
    for error in parsed.errors:
        click.echo(f"[{run_id}] {error}", err=True)

    report_path = write_run_report(
        run_id, started_at, "preview", False,
        {"manifest_path": manifest_path},
        parsed,
    )
    click.echo(f"[{run_id}] Run report: {report_path}")
    click.echo(json.dumps(parsed.to_dict(), indent=2, default=str))

    if not parsed.success:
        click.echo(
            f"[{run_id}] Preview found {len(parsed.errors)} invalid line(s); exiting non-zero",
            err=True,
        )
        sys.exit(1)
    click.echo(f"[{run_id}] Done.")


# ---------------------------------------------------------------------------
# Reconcile
# ---------------------------------------------------------------------------

def _run_reconcile(
    run_id: str,
    db_dsn: str,
    parsed: ParseResult,
    flight_date: date,
    airport_id: str | None,
    airport_code: str | None,
    rules: ReconciliationRules,
    statement_timeout_ms: int,
    dry_run: bool,
) -> ReconciliationResult:
    conn = psycopg.connect(
        db_dsn,
        autocommit=False,
        options=f"-c statement_timeout={statement_timeout_ms}",
    )
    try:
        if airport_id is None:
            airport_id = resolve_airport_id(conn, airport_code)  # type: ignore[arg-type]
            conn.rollback()
            if airport_id is None:
                click.echo(f"[{run_id}] FATAL: unknown --airport-code {airport_code}", err=True)
                sys.exit(1)
        click.echo(f"[{run_id}] Airport ready: airport_id={airport_id}")

        with conn.transaction():
            registry = PostgresRegistry(conn, search_limit=rules.search_limit)
            result = reconcile_entries(
                registry,
                parsed.entries,
                flight_date,
                airport_id,
                rules=rules,
                parse_errors=parsed.errors,
            )
            if dry_run:
                raise psycopg.Rollback()
        if dry_run:
            click.echo(f"[{run_id}] [dry-run] All changes rolled back.")
        else:
            click.echo(f"[{run_id}] Committed.")
    finally:
        conn.close()
    return result


if __name__ == "__main__":
    main()
