"""occupeye_etl.migrate

Transform-and-load pipeline: exported Firestore JSON → Postgres + photo storage.

Processing order (single connection, single transaction):
  0.  Clear destination tables (photo, spot, hall, building, organization)
  1.  Ensure the photo bucket exists
  2.  Create the organization
  3.  Create one building per distinct normalized building name
  4.  Create spots (study-rooms.json)    → SAVEPOINT spot_{idx}
  5.  Create halls (rooms.json)          → SAVEPOINT hall_{idx}
  6.  Per photo: download → transcode → upload → SAVEPOINT photo row

Per-record failures roll back to their savepoint, are appended to
counters.errors, and the run continues. The transaction commits once at the
end, so a fatal error leaves the previous data untouched.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Sequence

import click
import psycopg

from occupeye_etl.images import (
    PHOTO_CONTENT_TYPE,
    download_image,
    optimize_image,
    photo_storage_path,
)
from occupeye_etl.normalize import (
    collect_building_names,
    normalize_building_name,
    yes_flag,
)
from occupeye_etl.records import RoomRecord, SpaceRecord
from occupeye_etl.shared import (
    MigrationCounters,
    MissingSourceIdError,
    UnresolvedBuildingError,
    clear_destination_tables,
    insert_building,
    insert_hall,
    insert_organization,
    insert_photo,
    insert_spot,
)
from occupeye_etl.storage import PhotoStore

log = logging.getLogger(__name__)

SPOT_KIND = "spots"
HALL_KIND = "halls"


@dataclass
class Organization:
    name: str = "Wilfrid Laurier University"
    slug: str = "wilfrid-laurier"


def _record_error(counters: MigrationCounters, message: str) -> None:
    counters.errors.append(message)
    log.warning(message)


def _resolve_building(building_map: dict[str, str], raw_name: str) -> str:
    normalized = normalize_building_name(raw_name)
    building_id = building_map.get(normalized)
    if not building_id:
        raise UnresolvedBuildingError(f"Building not found: {normalized}")
    return building_id


# ---------------------------------------------------------------------------
# Step 3: buildings
# ---------------------------------------------------------------------------

def create_buildings(
    conn: psycopg.Connection,
    organization_id: str,
    spaces: Sequence[SpaceRecord],
    rooms: Sequence[RoomRecord],
    counters: MigrationCounters,
    echo: Callable[[str], None] = click.echo,
) -> dict[str, str]:
    building_map: dict[str, str] = {}
    for idx, name in enumerate(collect_building_names(spaces, rooms)):
        sp_name = f"building_{idx}"
        conn.execute(f"SAVEPOINT {sp_name}")
        try:
            building_map[name] = insert_building(conn, organization_id, name)
            conn.execute(f"RELEASE SAVEPOINT {sp_name}")
        except Exception as exc:
            conn.execute(f"ROLLBACK TO SAVEPOINT {sp_name}")
            _record_error(counters, f"Failed to create building {name}: {exc}")
            continue
        counters.buildings_created += 1
        echo(f"  created building: {name}")
    return building_map


# ---------------------------------------------------------------------------
# Step 4: spots
# ---------------------------------------------------------------------------

def _process_space(
    conn: psycopg.Connection,
    record: SpaceRecord,
    building_map: dict[str, str],
) -> str:
    if not record.id:
        raise MissingSourceIdError("record has no id")
    building_id = _resolve_building(building_map, record.building)
    return insert_spot(
        conn,
        building_id=building_id,
        source_id=record.id,
        name=record.name,
        location=record.location,
        description=record.description,
        features=record.features,
        noise_level=record.noise_level,
        space_type=record.space_type,
        capacity=record.capacity,
    )


def migrate_spots(
    conn: psycopg.Connection,
    spaces: Sequence[SpaceRecord],
    building_map: dict[str, str],
    counters: MigrationCounters,
    echo: Callable[[str], None] = click.echo,
) -> dict[str, str]:
    spot_map: dict[str, str] = {}
    for idx, record in enumerate(spaces):
        sp_name = f"spot_{idx}"
        conn.execute(f"SAVEPOINT {sp_name}")
        try:
            spot_map[record.id] = _process_space(conn, record, building_map)
            conn.execute(f"RELEASE SAVEPOINT {sp_name}")
        except Exception as exc:
            conn.execute(f"ROLLBACK TO SAVEPOINT {sp_name}")
            _record_error(counters, f"Failed to create spot {record.name}: {exc}")
            continue
        counters.spots_created += 1
        echo(f"  created spot: {record.name}")
    return spot_map


# ---------------------------------------------------------------------------
# Step 5: halls
# ---------------------------------------------------------------------------

def _process_room(
    conn: psycopg.Connection,
    record: RoomRecord,
    building_map: dict[str, str],
) -> str:
    if not record.id:
        raise MissingSourceIdError("record has no id")
    building_id = _resolve_building(building_map, record.building)
    info = record.information
    return insert_hall(
        conn,
        building_id=building_id,
        source_id=record.id,
        room=record.room,
        has_av_inputs=yes_flag(info.av_inputs),
        has_pc=yes_flag(info.pc),
        has_whiteboard=yes_flag(info.whiteboard),
        has_projector=yes_flag(info.projector),
    )


def migrate_halls(
    conn: psycopg.Connection,
    rooms: Sequence[RoomRecord],
    building_map: dict[str, str],
    counters: MigrationCounters,
    echo: Callable[[str], None] = click.echo,
) -> dict[str, str]:
    hall_map: dict[str, str] = {}
    for idx, record in enumerate(rooms):
        sp_name = f"hall_{idx}"
        conn.execute(f"SAVEPOINT {sp_name}")
        try:
            hall_map[record.id] = _process_room(conn, record, building_map)
            conn.execute(f"RELEASE SAVEPOINT {sp_name}")
        except Exception as exc:
            conn.execute(f"ROLLBACK TO SAVEPOINT {sp_name}")
            _record_error(counters, f"Failed to create hall {record.room}: {exc}")
            continue
        counters.halls_created += 1
        echo(f"  created hall: {record.room}")
    return hall_map


# ---------------------------------------------------------------------------
# Step 6: photos
# ---------------------------------------------------------------------------

def process_photo(
    conn: psycopg.Connection,
    store: PhotoStore,
    organization_id: str,
    entity_kind: str,
    entity_id: str,
    index: int,
    image_url: str,
    downloader: Callable[[str], bytes] = download_image,
) -> str:
    """Download, transcode, upload and record one photo. Returns the storage path."""
    log.debug("downloading %s", image_url[:80])
    raw = downloader(image_url)
    optimized = optimize_image(raw)
    storage_path = photo_storage_path(organization_id, entity_kind, entity_id, index)
    public_url = store.upload(storage_path, optimized, PHOTO_CONTENT_TYPE)

    owner: dict[str, Any] = (
        {"spot_id": entity_id} if entity_kind == SPOT_KIND else {"hall_id": entity_id}
    )
    sp_name = f"photo_{entity_kind}_{index}"
    conn.execute(f"SAVEPOINT {sp_name}")
    try:
        insert_photo(conn, storage_path, public_url, **owner)
        conn.execute(f"RELEASE SAVEPOINT {sp_name}")
    except Exception:
        conn.execute(f"ROLLBACK TO SAVEPOINT {sp_name}")
        raise
    return storage_path


def _process_entity_photos(
    conn: psycopg.Connection,
    store: PhotoStore,
    organization_id: str,
    entity_kind: str,
    entity_id: str,
    label: str,
    image_urls: Sequence[str],
    counters: MigrationCounters,
    downloader: Callable[[str], bytes],
    echo: Callable[[str], None],
) -> None:
    singular = entity_kind[:-1]
    for index, image_url in enumerate(image_urls):
        try:
            storage_path = process_photo(
                conn, store, organization_id, entity_kind, entity_id,
                index, image_url, downloader=downloader,
            )
        except Exception as exc:
            counters.photos_skipped += 1
            _record_error(
                counters,
                f"Failed to process photo {index} for {singular} {label}: {exc}",
            )
            continue
        counters.photos_created += 1
        echo(f"  stored photo {index + 1}/{len(image_urls)} for {label}: {storage_path}")


def process_photos(
    conn: psycopg.Connection,
    store: PhotoStore,
    organization_id: str,
    spaces: Sequence[SpaceRecord],
    rooms: Sequence[RoomRecord],
    spot_map: dict[str, str],
    hall_map: dict[str, str],
    counters: MigrationCounters,
    downloader: Callable[[str], bytes] = download_image,
    echo: Callable[[str], None] = click.echo,
) -> None:
    for record in spaces:
        spot_id = spot_map.get(record.id)
        if not spot_id or not record.image_urls:
            continue
        _process_entity_photos(
            conn, store, organization_id, SPOT_KIND, spot_id, record.name,
            record.image_urls, counters, downloader, echo,
        )

    for record in rooms:
        hall_id = hall_map.get(record.id)
        if not hall_id or not record.photos:
            continue
        _process_entity_photos(
            conn, store, organization_id, HALL_KIND, hall_id, record.room,
            record.photos, counters, downloader, echo,
        )


# ---------------------------------------------------------------------------
# Full run
# ---------------------------------------------------------------------------

def run_migration(
    conn: psycopg.Connection,
    store: PhotoStore,
    spaces: Sequence[SpaceRecord],
    rooms: Sequence[RoomRecord],
    counters: MigrationCounters,
    organization: Organization | None = None,
    downloader: Callable[[str], bytes] = download_image,
    echo: Callable[[str], None] = click.echo,
) -> str:
    """Run every migration step on conn. Caller commits or rolls back.

    Returns the new organization id.
    """
    organization = organization or Organization()

    echo("Clearing existing data...")
    counters.deleted = clear_destination_tables(conn)
    for table, count in counters.deleted.items():
        echo(f"  deleted {count} rows from {table}")

    echo("Checking storage bucket...")
    store.ensure_bucket()

    echo("Step 1: creating organization...")
    organization_id = insert_organization(conn, organization.name, organization.slug)
    counters.organizations_created += 1
    echo(f"  created organization: {organization.name} ({organization_id})")

    echo("Step 2: creating buildings...")
    building_map = create_buildings(conn, organization_id, spaces, rooms, counters, echo=echo)

    echo("Step 3: migrating spots...")
    spot_map = migrate_spots(conn, spaces, building_map, counters, echo=echo)

    echo("Step 4: migrating halls...")
    hall_map = migrate_halls(conn, rooms, building_map, counters, echo=echo)

    echo("Step 5: processing photos...")
    process_photos(
        conn, store, organization_id, spaces, rooms,
        spot_map, hall_map, counters, downloader=downloader, echo=echo,
    )
    return organization_id
