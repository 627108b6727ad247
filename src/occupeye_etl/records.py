"""occupeye_etl.records

Typed views over the two exported Firestore collections:

  study-rooms.json → SpaceRecord  (becomes a spot)
  rooms.json       → RoomRecord   (becomes a hall)

The shapes are kept separate; they share a ``building`` field and nothing
else that matters to the migration.

Only file-level problems (unreadable, not JSON, not an array of objects) are
raised here. A record without an ``id`` loads with ``id=None`` and fails on
its own during migration.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from occupeye_etl.shared import SourceDataError


def _source_id(raw: dict[str, Any]) -> str | None:
    value = raw.get("id")
    return None if value is None or value == "" else str(value)


@dataclass
class SpaceRecord:
    id: str | None
    name: str
    building: str
    location: str | None = None
    description: str | None = None
    noise_level: str | None = None
    space_type: str | None = None
    capacity: int | None = None
    features: list[str] = field(default_factory=list)
    image_urls: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "SpaceRecord":
        return cls(
            id=_source_id(raw),
            name=raw.get("name") or "",
            building=raw.get("building") or "",
            location=raw.get("location"),
            description=raw.get("description"),
            noise_level=raw.get("noiseLevel"),
            space_type=raw.get("spaceType") or None,
            capacity=raw.get("capacity"),
            features=list(raw.get("features") or []),
            image_urls=list(raw.get("imageURL") or []),
        )


@dataclass
class RoomInformation:
    av_inputs: str | None = None
    pc: str | None = None
    whiteboard: str | None = None
    projector: str | None = None


@dataclass
class RoomRecord:
    id: str | None
    building: str
    room: str
    information: RoomInformation = field(default_factory=RoomInformation)
    photos: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "RoomRecord":
        info = raw.get("information")
        if not isinstance(info, dict):
            info = {}
        return cls(
            id=_source_id(raw),
            building=raw.get("building") or "",
            room=raw.get("room") or "",
            information=RoomInformation(
                av_inputs=info.get("av_inputs"),
                pc=info.get("pc"),
                whiteboard=info.get("whiteboard"),
                projector=info.get("projector"),
            ),
            photos=list(raw.get("photos") or []),
        )


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

def _load_json_array(path: Path) -> list[dict[str, Any]]:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise SourceDataError(f"cannot read {path}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise SourceDataError(f"invalid JSON in {path}: {exc}") from exc
    if not isinstance(data, list):
        raise SourceDataError(f"{path} must contain a JSON array, got {type(data).__name__}")
    return data


def load_spaces(path: Path) -> list[SpaceRecord]:
    try:
        return [SpaceRecord.from_dict(raw) for raw in _load_json_array(path)]
    except (KeyError, TypeError, AttributeError) as exc:
        raise SourceDataError(f"malformed space record in {path}: {exc!r}") from exc


def load_rooms(path: Path) -> list[RoomRecord]:
    try:
        return [RoomRecord.from_dict(raw) for raw in _load_json_array(path)]
    except (KeyError, TypeError, AttributeError) as exc:
        raise SourceDataError(f"malformed room record in {path}: {exc!r}") from exc
