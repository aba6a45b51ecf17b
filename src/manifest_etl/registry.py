"""manifest_etl.registry

Passenger/flight registry contract and its PostgreSQL implementation.

The reconciliation engine talks to the registry only through the Registry
protocol below.  Implementations raise on failure (PostgresRegistry raises
RegistryUnavailableError wrapping the psycopg error); the engine never calls
them directly but through attempt(), which turns every call into an explicit
RegistryOutcome so the caller decides how to degrade.

PostgresRegistry runs every operation inside conn.transaction().  When the
caller already holds an outer transaction this is a SAVEPOINT, so a failed
statement rolls back only that call and the rest of the batch continues on
the same connection.  Caller manages the outer transaction (commit/rollback).
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date
from typing import Any, Generic, Protocol, TypeVar

import psycopg

T = TypeVar("T")


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class RegistryUnavailableError(Exception):
    """Raised when a registry operation fails or times out."""


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PassengerRecord:
    id: str
    name: str
    document_id: str
    category: str
    airport_id: str


@dataclass(frozen=True)
class FlightRecord:
    id: str
    flight_number: str
    destination: str
    flight_date: date
    airport_id: str
    passenger_ids: tuple[str, ...] = ()


# ---------------------------------------------------------------------------
# Contract
# ---------------------------------------------------------------------------

class Registry(Protocol):
    def list_flights(self, flight_date: date, airport_id: str) -> list[FlightRecord]: ...

    def create_flight(
        self,
        flight_number: str,
        destination: str,
        flight_date: date,
        airport_id: str,
    ) -> FlightRecord: ...

    def search_passengers(self, name_fragment: str, airport_id: str) -> list[PassengerRecord]: ...

    def create_passenger(
        self,
        name: str,
        document_id: str,
        category: str,
        airport_id: str,
    ) -> PassengerRecord: ...

    def update_passenger(self, passenger_id: str, category: str) -> None: ...

    def link_passenger_to_flight(
        self,
        flight_id: str,
        passenger_id: str,
        seat: str,
        status: str,
    ) -> None: ...


# ---------------------------------------------------------------------------
# Explicit call outcomes
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RegistryOutcome(Generic[T]):
    operation: str
    value: T | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def attempt(operation: str, fn: Callable[..., T], *args: Any) -> RegistryOutcome[T]:
    """Invoke one registry operation and capture its result or failure."""
    try:
        return RegistryOutcome(operation, value=fn(*args))
    except Exception as exc:
        return RegistryOutcome(operation, error=f"{type(exc).__name__}: {exc}")


# ---------------------------------------------------------------------------
# PostgreSQL registry
# ---------------------------------------------------------------------------

def _like_escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class PostgresRegistry:
    """Registry backed by the airport/passenger/flight/flight_passenger tables."""

    def __init__(self, conn: psycopg.Connection, search_limit: int = 10) -> None:
        self._conn = conn
        self._search_limit = search_limit

    @contextmanager
    def _call(self, operation: str) -> Iterator[psycopg.Connection]:
        try:
            with self._conn.transaction():
                yield self._conn
        except psycopg.Error as exc:
            raise RegistryUnavailableError(f"{operation}: {exc}") from exc

    def list_flights(self, flight_date: date, airport_id: str) -> list[FlightRecord]:
        with self._call("list_flights") as conn:
            rows = conn.execute(
                """
                SELECT id, flight_number, destination, flight_date, airport_id
                FROM flight
                WHERE airport_id = %s AND flight_date = %s
                ORDER BY flight_number, destination
                """,
                (airport_id, flight_date),
            ).fetchall()
            link_rows = conn.execute(
                """
                SELECT fp.flight_id, fp.passenger_id
                FROM flight_passenger fp
                JOIN flight f ON f.id = fp.flight_id
                WHERE f.airport_id = %s AND f.flight_date = %s
                ORDER BY fp.created_at, fp.id
                """,
                (airport_id, flight_date),
            ).fetchall()

        links: dict[str, list[str]] = {}
        for flight_id, passenger_id in link_rows:
            links.setdefault(str(flight_id), []).append(str(passenger_id))

        return [
            FlightRecord(
                id=str(r[0]),
                flight_number=r[1],
                destination=r[2],
                flight_date=r[3],
                airport_id=str(r[4]),
                passenger_ids=tuple(links.get(str(r[0]), [])),
            )
            for r in rows
        ]

    def create_flight(
        self,
        flight_number: str,
        destination: str,
        flight_date: date,
        airport_id: str,
    ) -> FlightRecord:
        with self._call("create_flight") as conn:
            row = conn.execute(
                """
                INSERT INTO flight (flight_number, destination, flight_date, airport_id)
                VALUES (%s, %s, %s, %s)
                RETURNING id, flight_number, destination, flight_date, airport_id
                """,
                (flight_number, destination, flight_date, airport_id),
            ).fetchone()
        return FlightRecord(
            id=str(row[0]),
            flight_number=row[1],
            destination=row[2],
            flight_date=row[3],
            airport_id=str(row[4]),
        )

    def search_passengers(self, name_fragment: str, airport_id: str) -> list[PassengerRecord]:
        pattern = f"%{_like_escape(name_fragment)}%"
        with self._call("search_passengers") as conn:
            rows = conn.execute(
                """
                SELECT id, full_name, document_id, category, airport_id
                FROM passenger
                WHERE airport_id = %s
                  AND (full_name ILIKE %s OR document_id ILIKE %s)
                ORDER BY full_name, id
                LIMIT %s
                """,
                (airport_id, pattern, pattern, self._search_limit),
            ).fetchall()
        return [
            PassengerRecord(
                id=str(r[0]),
                name=r[1],
                document_id=r[2],
                category=r[3],
                airport_id=str(r[4]),
            )
            for r in rows
        ]

    def create_passenger(
        self,
        name: str,
        document_id: str,
        category: str,
        airport_id: str,
    ) -> PassengerRecord:
        with self._call("create_passenger") as conn:
            row = conn.execute(
                """
                INSERT INTO passenger (full_name, document_id, category, airport_id)
                VALUES (%s, %s, %s, %s)
                RETURNING id, full_name, document_id, category, airport_id
                """,
                (name, document_id, category, airport_id),
            ).fetchone()
        return PassengerRecord(
            id=str(row[0]),
            name=row[1],
            document_id=row[2],
            category=row[3],
            airport_id=str(row[4]),
        )

    def update_passenger(self, passenger_id: str, category: str) -> None:
        with self._call("update_passenger") as conn:
            cur = conn.execute(
                """
                UPDATE passenger
                SET category = %s, updated_at = now()
                WHERE id = %s
                """,
                (category, passenger_id),
            )
            updated = cur.rowcount
        if updated == 0:
            raise RegistryUnavailableError(
                f"update_passenger: passenger {passenger_id} not found"
            )

    def link_passenger_to_flight(
        self,
        flight_id: str,
        passenger_id: str,
        seat: str,
        status: str,
    ) -> None:
        with self._call("link_passenger_to_flight") as conn:
            conn.execute(
                """
                INSERT INTO flight_passenger (flight_id, passenger_id, seat, status)
                VALUES (%s, %s, %s, %s)
                """,
                (flight_id, passenger_id, seat, status),
            )


# ---------------------------------------------------------------------------
# Airport helpers
# ---------------------------------------------------------------------------

def resolve_airport_id(conn: psycopg.Connection, code: str) -> str | None:
    row = conn.execute(
        "SELECT id FROM airport WHERE code = %s",
        (code.strip().upper(),),
    ).fetchone()
    return str(row[0]) if row else None


def upsert_airport(conn: psycopg.Connection, code: str, name: str | None = None) -> str:
    """Insert an airport by IATA code if absent (DO NOTHING on conflict)."""
    norm = code.strip().upper()
    conn.execute(
        """
        INSERT INTO airport (code, name)
        VALUES (%s, %s)
        ON CONFLICT (code) DO NOTHING
        """,
        (norm, name),
    )
    row = conn.execute(
        "SELECT id FROM airport WHERE code = %s",
        (norm,),
    ).fetchone()
    return str(row[0])
