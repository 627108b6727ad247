"""occupeye_etl.firestore_export

Firestore → local JSON exporter.

Every document is flattened into a dict with its document id merged in under
``id``. Each collection is written as a pretty-printed JSON array to
``<output_dir>/<collection>.json``; existing files are overwritten.

Usage:
    occupeye-etl export --output-dir data/collections
    occupeye-etl export --collection study-rooms --where building == Peters
    occupeye-etl export --collection rooms --subcollection room-1 bookings
"""

from __future__ import annotations

import base64
import datetime as _dt
import json
import logging
from decimal import Decimal
from pathlib import Path
from typing import Any, Iterable

from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter

log = logging.getLogger(__name__)

SUBCOLLECTIONS_FIELD = "_subcollections"

# (field, operator, value), e.g. ("status", "==", "active")
Filter = tuple[str, str, Any]


def make_client(project: str | None = None) -> firestore.Client:
    """Firestore client using application default credentials."""
    return firestore.Client(project=project) if project else firestore.Client()


def _flatten(doc: Any) -> dict[str, Any]:
    return {"id": doc.id, **(doc.to_dict() or {})}


# ---------------------------------------------------------------------------
# JSON serialization for Firestore value types
# ---------------------------------------------------------------------------

def json_default(o: Any) -> Any:
    if isinstance(o, _dt.datetime):
        if o.tzinfo is None:
            return o.isoformat()
        return o.astimezone(_dt.timezone.utc).isoformat().replace("+00:00", "Z")
    if isinstance(o, (_dt.date, _dt.time)):
        return o.isoformat()
    if isinstance(o, (bytes, bytearray, memoryview)):
        return base64.b64encode(bytes(o)).decode("ascii")
    if isinstance(o, Decimal):
        return float(o)
    # DocumentReference
    if hasattr(o, "path") and hasattr(o, "id") and hasattr(o, "parent"):
        return {"__type__": "document_ref", "path": o.path}
    # GeoPoint
    if hasattr(o, "latitude") and hasattr(o, "longitude"):
        return {"__type__": "geo_point", "lat": o.latitude, "lng": o.longitude}
    if isinstance(o, (set, frozenset)):
        return sorted(o, key=str)
    return str(o)


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

def get_all_collections(db: firestore.Client) -> list[str]:
    names = [col.id for col in db.collections()]
    log.info("Found %d collections: %s", len(names), names)
    return names


def get_collection_data(db: firestore.Client, collection_name: str) -> list[dict[str, Any]]:
    documents = [_flatten(doc) for doc in db.collection(collection_name).stream()]
    log.info("Fetched %d documents from %s", len(documents), collection_name)
    return documents


def get_subcollection_data(
    db: firestore.Client,
    parent_collection: str,
    parent_doc_id: str,
    subcollection_name: str,
) -> list[dict[str, Any]]:
    ref = (
        db.collection(parent_collection)
        .document(parent_doc_id)
        .collection(subcollection_name)
    )
    documents = [_flatten(doc) for doc in ref.stream()]
    log.info(
        "Fetched %d documents from %s/%s/%s",
        len(documents), parent_collection, parent_doc_id, subcollection_name,
    )
    return documents


def query_collection(
    db: firestore.Client,
    collection_name: str,
    filters: Iterable[Filter],
) -> list[dict[str, Any]]:
    """Fetch documents matching every (field, operator, value) filter."""
    query = db.collection(collection_name)
    for field_path, op, value in filters:
        query = query.where(filter=FieldFilter(field_path, op, value))
    documents = [_flatten(doc) for doc in query.stream()]
    log.info("Query returned %d documents from %s", len(documents), collection_name)
    return documents


# ---------------------------------------------------------------------------
# Writers
# ---------------------------------------------------------------------------

def save_to_json(data: Any, filename: str, output_dir: Path = Path("./data")) -> Path:
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    file_path = output_dir / filename
    file_path.write_text(
        json.dumps(data, indent=2, ensure_ascii=False, default=json_default),
        encoding="utf-8",
    )
    log.info("Data saved to %s", file_path)
    return file_path


def export_collection_to_json(
    db: firestore.Client,
    collection_name: str,
    output_dir: Path = Path("./data"),
) -> Path:
    data = get_collection_data(db, collection_name)
    return save_to_json(data, f"{collection_name}.json", output_dir)


def export_all_collections_to_json(
    db: firestore.Client,
    output_dir: Path = Path("./data"),
) -> list[str]:
    collections = get_all_collections(db)
    for collection_name in collections:
        export_collection_to_json(db, collection_name, output_dir)
    log.info("Exported %d collections to %s", len(collections), output_dir)
    return collections


def export_collection_with_subcollections(
    db: firestore.Client,
    collection_name: str,
    output_dir: Path = Path("./data"),
) -> Path:
    """Export a collection with one level of subcollections embedded per doc."""
    documents = []
    for doc in db.collection(collection_name).stream():
        doc_data = _flatten(doc)
        doc_data[SUBCOLLECTIONS_FIELD] = {
            subcol.id: [_flatten(sub_doc) for sub_doc in subcol.stream()]
            for subcol in doc.reference.collections()
        }
        documents.append(doc_data)

    path = save_to_json(documents, f"{collection_name}_with_subcollections.json", output_dir)
    log.info("Exported %s with subcollections to %s", collection_name, output_dir)
    return path


def export_query_to_json(
    db: firestore.Client,
    collection_name: str,
    filters: Iterable[Filter],
    output_dir: Path = Path("./data"),
) -> Path:
    """Write the documents matching filters to <name>_filtered.json."""
    data = query_collection(db, collection_name, filters)
    return save_to_json(data, f"{collection_name}_filtered.json", output_dir)


def export_subcollection_to_json(
    db: firestore.Client,
    parent_collection: str,
    parent_doc_id: str,
    subcollection_name: str,
    output_dir: Path = Path("./data"),
) -> Path:
    data = get_subcollection_data(db, parent_collection, parent_doc_id, subcollection_name)
    filename = f"{parent_collection}_{parent_doc_id}_{subcollection_name}.json"
    return save_to_json(data, filename, output_dir)


def parse_filter_value(raw: str) -> Any:
    """Decode a command-line filter value as JSON, falling back to the raw string.

    ``5`` → 5, ``true`` → True, ``["a","b"]`` → list, ``Peters`` → "Peters".
    """
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw
