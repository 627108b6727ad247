"""occupeye_etl.cli

Command-line entrypoints.

  export   — dump Firestore collections to data/collections/*.json
  migrate  — load study-rooms.json + rooms.json into Postgres and photo storage

Both commands run with no arguments; defaults come from the options below
and from the environment (a local .env file is loaded first).

Usage:
    occupeye-etl export
    occupeye-etl migrate
    python -m occupeye_etl.cli migrate --storage-backend local --local-storage-dir /tmp/photos
"""

from __future__ import annotations

import logging
import os
import sys
import time
import uuid
from datetime import datetime
from pathlib import Path

import click
import psycopg
from dotenv import find_dotenv, load_dotenv

from occupeye_etl.migrate import Organization, run_migration
from occupeye_etl.records import load_rooms, load_spaces
from occupeye_etl.shared import (
    MigrationCounters,
    MigrationError,
    build_migration_report,
    write_run_report,
)
from occupeye_etl.storage import (
    DEFAULT_BUCKET,
    GcsPhotoStore,
    LocalPhotoStore,
    PhotoStore,
    StorageError,
    SupabasePhotoStore,
)

DEFAULT_DATA_DIR = Path("data/collections")
SUPABASE_KEY_ENV_VARS = ("SUPABASE_SERVICE_KEY", "SUPABASE_KEY", "SUPABASE_ANON_KEY")
# Firestore query operators accepted by --where
FILTER_OPERATORS = (
    "<", "<=", "==", "!=", ">=", ">",
    "array-contains", "array-contains-any", "in", "not-in",
)


def _supabase_key() -> str | None:
    for name in SUPABASE_KEY_ENV_VARS:
        value = os.environ.get(name)
        if value:
            return value
    return None


def _build_store(
    run_id: str,
    backend: str,
    bucket: str,
    local_storage_dir: str | None,
) -> PhotoStore:
    """Select the photo store. Exits non-zero on missing configuration."""
    if backend == "supabase":
        url = os.environ.get("SUPABASE_URL", "")
        key = _supabase_key()
        if not url or not key:
            click.echo(
                f"[{run_id}] FATAL: SUPABASE_URL and one of "
                f"{', '.join(SUPABASE_KEY_ENV_VARS)} must be set",
                err=True,
            )
            sys.exit(1)
        try:
            return SupabasePhotoStore.from_credentials(url, key, bucket_name=bucket)
        except Exception as e:
            click.echo(f"[{run_id}] FATAL: cannot create Supabase client: {e}", err=True)
            sys.exit(1)
    if backend == "gcs":
        return GcsPhotoStore(bucket_name=bucket, project=os.environ.get("GOOGLE_CLOUD_PROJECT"))
    if not local_storage_dir:
        click.echo(f"[{run_id}] FATAL: --local-storage-dir is required for the local backend", err=True)
        sys.exit(1)
    return LocalPhotoStore(base_dir=Path(local_storage_dir), bucket_name=bucket)


@click.group()
@click.option("--verbose", "-v", is_flag=True, default=False, help="Enable DEBUG logging")
def main(verbose: bool) -> None:
    """Firestore → Postgres migration tools."""
    load_dotenv(find_dotenv(usecwd=True))
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


# ---------------------------------------------------------------------------
# export
# ---------------------------------------------------------------------------

@main.command("export")
@click.option("--output-dir", default=str(DEFAULT_DATA_DIR), show_default=True, type=click.Path())
@click.option("--collection", "collections", multiple=True, help="Export only these collections (repeatable)")
@click.option("--with-subcollections", is_flag=True, default=False, help="Embed one level of subcollections")
@click.option(
    "--where", "where", multiple=True, nargs=3,
    type=(str, click.Choice(FILTER_OPERATORS), str),
    help="Filter FIELD OP VALUE (repeatable, ANDed); writes <collection>_filtered.json",
)
@click.option(
    "--subcollection", "subcollections", multiple=True, nargs=2,
    help="DOC_ID NAME: export one document's subcollection (repeatable)",
)
@click.option("--project", envvar="GOOGLE_CLOUD_PROJECT", default=None, help="GCP project id")
def export_command(
    output_dir: str,
    collections: tuple[str, ...],
    with_subcollections: bool,
    where: tuple[tuple[str, str, str], ...],
    subcollections: tuple[tuple[str, str], ...],
    project: str | None,
) -> None:
    """Export Firestore collections to JSON files."""
    from occupeye_etl.firestore_export import (
        export_all_collections_to_json,
        export_collection_to_json,
        export_collection_with_subcollections,
        export_query_to_json,
        export_subcollection_to_json,
        get_all_collections,
        make_client,
        parse_filter_value,
    )

    if (where or subcollections) and not collections:
        click.echo("FATAL: --where and --subcollection require --collection", err=True)
        sys.exit(1)
    if (where or subcollections) and with_subcollections:
        click.echo("FATAL: --with-subcollections cannot be combined with --where or --subcollection", err=True)
        sys.exit(1)

    out = Path(output_dir)
    click.echo(f"Starting Firestore export to {out}")
    try:
        db = make_client(project)
        if where or subcollections:
            names = list(collections)
            filters = [(field, op, parse_filter_value(value)) for field, op, value in where]
            for name in names:
                if filters:
                    path = export_query_to_json(db, name, filters, out)
                    click.echo(f"  wrote {path}")
                for doc_id, sub_name in subcollections:
                    path = export_subcollection_to_json(db, name, doc_id, sub_name, out)
                    click.echo(f"  wrote {path}")
        elif with_subcollections:
            names = list(collections) or get_all_collections(db)
            for name in names:
                path = export_collection_with_subcollections(db, name, out)
                click.echo(f"  wrote {path}")
        elif collections:
            names = list(collections)
            for name in names:
                path = export_collection_to_json(db, name, out)
                click.echo(f"  wrote {path}")
        else:
            names = export_all_collections_to_json(db, out)
    except Exception as e:
        click.echo(f"FATAL: export failed: {e}", err=True)
        sys.exit(1)
    click.echo(f"Exported {len(names)} collection(s) to {out}")


# ---------------------------------------------------------------------------
# migrate
# ---------------------------------------------------------------------------

@main.command("migrate")
@click.option(
    "--db-dsn",
    envvar=["DIRECT_URL", "DATABASE_URL"],
    default=None,
    help="PostgreSQL DSN [env: DIRECT_URL, DATABASE_URL]",
)
@click.option("--spaces-path", default=str(DEFAULT_DATA_DIR / "study-rooms.json"), show_default=True, type=click.Path())
@click.option("--rooms-path", default=str(DEFAULT_DATA_DIR / "rooms.json"), show_default=True, type=click.Path())
@click.option(
    "--storage-backend",
    type=click.Choice(["supabase", "gcs", "local"]),
    default="supabase",
    show_default=True,
)
@click.option("--bucket", default=DEFAULT_BUCKET, show_default=True)
@click.option("--local-storage-dir", default=None, type=click.Path(), help="[local] Directory to write photos to")
@click.option("--org-name", default=Organization.name, show_default=True)
@click.option("--org-slug", default=Organization.slug, show_default=True)
@click.option("--report-dir", default="artifacts/reports", show_default=True, type=click.Path())
@click.option("--run-id", default=None, help="Override UUID for log correlation")
def migrate_command(
    db_dsn: str | None,
    spaces_path: str,
    rooms_path: str,
    storage_backend: str,
    bucket: str,
    local_storage_dir: str | None,
    org_name: str,
    org_slug: str,
    report_dir: str,
    run_id: str | None,
) -> None:
    """Replace all destination data with the contents of the JSON exports."""
    run_id = run_id or str(uuid.uuid4())
    started_at = datetime.utcnow().isoformat()
    started = time.monotonic()
    counters = MigrationCounters()

    click.echo(f"[{run_id}] Starting migration")

    if not db_dsn:
        click.echo(f"[{run_id}] FATAL: --db-dsn or DIRECT_URL/DATABASE_URL must be set", err=True)
        sys.exit(1)

    store = _build_store(run_id, storage_backend, bucket, local_storage_dir)

    # Pre-scan: both source files must load before anything is mutated.
    try:
        spaces = load_spaces(Path(spaces_path))
        rooms = load_rooms(Path(rooms_path))
    except MigrationError as e:
        click.echo(f"[{run_id}] FATAL: {e}", err=True)
        sys.exit(1)
    counters.spaces_read = len(spaces)
    counters.rooms_read = len(rooms)
    click.echo(f"[{run_id}] Pre-scan: {len(spaces)} spaces, {len(rooms)} rooms")

    try:
        conn = psycopg.connect(db_dsn, autocommit=False)
    except psycopg.Error as e:
        click.echo(f"[{run_id}] FATAL: database connection failed: {e}", err=True)
        sys.exit(1)

    try:
        run_migration(
            conn, store, spaces, rooms, counters,
            organization=Organization(name=org_name, slug=org_slug),
            echo=lambda msg: click.echo(f"[{run_id}] {msg}"),
        )
        conn.commit()
    except StorageError as e:
        conn.rollback()
        click.echo(f"[{run_id}] FATAL: storage bucket setup failed: {e}", err=True)
        sys.exit(1)
    except Exception as e:
        conn.rollback()
        click.echo(f"[{run_id}] FATAL: migration failed, rolled back: {e}", err=True)
        sys.exit(1)
    finally:
        conn.close()

    click.echo(build_migration_report(counters, time.monotonic() - started))

    report_path = write_run_report(
        run_id, started_at, "migrate",
        {"spaces_path": spaces_path, "rooms_path": rooms_path},
        counters,
        report_dir=Path(report_dir),
    )
    click.echo(f"[{run_id}] Run report: {report_path}")


if __name__ == "__main__":
    main()
