"""occupeye_etl.shared

Shared pieces of the migration: exceptions, MigrationCounters, the
destination-table DB helpers, and run-report writing.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

import psycopg


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class MigrationError(Exception):
    """Base class for errors raised by the migration pipeline."""


class SourceDataError(MigrationError):
    """Raised when an exported JSON file cannot be read or parsed."""


class UnresolvedBuildingError(MigrationError):
    """Raised when a record's normalized building name has no building row."""


class MissingSourceIdError(MigrationError):
    """Raised when an exported record has no document id."""


# ---------------------------------------------------------------------------
# MigrationCounters
# ---------------------------------------------------------------------------

@dataclass
class MigrationCounters:
    spaces_read: int = 0
    rooms_read: int = 0
    organizations_created: int = 0
    buildings_created: int = 0
    spots_created: int = 0
    halls_created: int = 0
    photos_created: int = 0
    photos_skipped: int = 0
    deleted: dict[str, int] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        d = {k: v for k, v in self.__dict__.items() if k != "errors"}
        d["error_count"] = len(self.errors)
        d["errors"] = list(self.errors)
        return d


# ---------------------------------------------------------------------------
# DB helpers: full-replace clear
# ---------------------------------------------------------------------------

# Child-to-parent foreign-key order.
CLEAR_ORDER = ("photo", "spot", "hall", "building", "organization")


def clear_destination_tables(conn: psycopg.Connection) -> dict[str, int]:
    """Delete every row from the destination tables. Caller manages transaction."""
    deleted: dict[str, int] = {}
    for table in CLEAR_ORDER:
        cur = conn.execute(f"DELETE FROM {table}")
        deleted[table] = cur.rowcount
    return deleted


# ---------------------------------------------------------------------------
# DB helpers: inserts
# ---------------------------------------------------------------------------

def insert_organization(conn: psycopg.Connection, name: str, slug: str) -> str:
    row = conn.execute(
        """
        INSERT INTO organization (name, slug)
        VALUES (%s, %s)
        RETURNING id
        """,
        (name, slug),
    ).fetchone()
    return str(row[0])


def insert_building(conn: psycopg.Connection, organization_id: str, name: str) -> str:
    row = conn.execute(
        """
        INSERT INTO building (organization_id, name)
        VALUES (%s, %s)
        RETURNING id
        """,
        (organization_id, name),
    ).fetchone()
    return str(row[0])


def insert_spot(
    conn: psycopg.Connection,
    building_id: str,
    source_id: str,
    name: str,
    location: str | None,
    description: str | None,
    features: list[str],
    noise_level: str | None,
    space_type: str | None,
    capacity: int | None,
) -> str:
    row = conn.execute(
        """
        INSERT INTO spot
          (building_id, source_id, name, location, description,
           features, noise_level, space_type, capacity)
        VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
        RETURNING id
        """,
        (building_id, source_id, name, location, description,
         features, noise_level, space_type, capacity),
    ).fetchone()
    return str(row[0])


def insert_hall(
    conn: psycopg.Connection,
    building_id: str,
    source_id: str,
    room: str,
    has_av_inputs: bool,
    has_pc: bool,
    has_whiteboard: bool,
    has_projector: bool,
) -> str:
    row = conn.execute(
        """
        INSERT INTO hall
          (building_id, source_id, room,
           has_av_inputs, has_pc, has_whiteboard, has_projector)
        VALUES (%s, %s, %s, %s, %s, %s, %s)
        RETURNING id
        """,
        (building_id, source_id, room,
         has_av_inputs, has_pc, has_whiteboard, has_projector),
    ).fetchone()
    return str(row[0])


def insert_photo(
    conn: psycopg.Connection,
    storage_path: str,
    url: str,
    spot_id: str | None = None,
    hall_id: str | None = None,
) -> str:
    """Insert a photo owned by exactly one spot or hall."""
    if (spot_id is None) == (hall_id is None):
        raise ValueError("photo must reference exactly one of spot_id / hall_id")
    row = conn.execute(
        """
        INSERT INTO photo (storage_path, url, spot_id, hall_id)
        VALUES (%s, %s, %s, %s)
        RETURNING id
        """,
        (storage_path, url, spot_id, hall_id),
    ).fetchone()
    return str(row[0])


# ---------------------------------------------------------------------------
# Report writers
# ---------------------------------------------------------------------------

def build_migration_report(counters: MigrationCounters, duration_seconds: float) -> str:
    lines = [
        "=" * 60,
        "MIGRATION SUMMARY",
        "=" * 60,
        f"Organizations : {counters.organizations_created}",
        f"Buildings     : {counters.buildings_created}",
        f"Spots         : {counters.spots_created}",
        f"Halls         : {counters.halls_created}",
        f"Photos        : {counters.photos_created}",
        f"Errors        : {len(counters.errors)}",
        f"Duration      : {duration_seconds:.2f}s",
        "=" * 60,
    ]
    if counters.errors:
        lines += ["", "ERRORS:"]
        lines += [f"{idx}. {err}" for idx, err in enumerate(counters.errors, start=1)]
    return "\n".join(lines)


def write_run_report(
    run_id: str,
    started_at: str,
    mode: str,
    source_paths: dict[str, str],
    counters: MigrationCounters,
    report_dir: Path = Path("./artifacts/reports"),
) -> Path:
    report = {
        "run_id": run_id,
        "mode": mode,
        "started_at": started_at,
        "finished_at": datetime.utcnow().isoformat(),
        **source_paths,
        "counters": counters.to_dict(),
    }
    report_path = report_dir / f"{run_id}.json"
    report_path.parent.mkdir(parents=True, exist_ok=True)
    report_path.write_text(json.dumps(report, indent=2, default=str))
    return report_path
