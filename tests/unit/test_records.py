"""Unit tests for occupeye_etl.records."""

from __future__ import annotations

import json

import pytest

from occupeye_etl.records import (
    RoomRecord,
    SpaceRecord,
    load_rooms,
    load_spaces,
)
from occupeye_etl.shared import SourceDataError

SPACE = {
    "id": "abc123",
    "name": "Quiet Study Room",
    "building": "Peters",
    "spaceType": "study-room",
    "location": "P3 floor",
    "imageURL": ["https://img.example/1.jpg", "https://img.example/2.jpg"],
    "features": ["outlets", "whiteboard"],
    "noiseLevel": "quiet",
    "capacity": 6,
    "description": "Bright room by the windows",
}

ROOM = {
    "id": "room-1",
    "building": "Lazaridis Hall",
    "photos": ["https://img.example/r1.jpg"],
    "room": "LH1001",
    "information": {"av_inputs": "yes", "pc": "no", "whiteboard": "yes", "projector": "no"},
}


class TestSpaceRecord:
    def test_maps_camel_case_keys(self):
        rec = SpaceRecord.from_dict(SPACE)
        assert rec.id == "abc123"
        assert rec.space_type == "study-room"
        assert rec.noise_level == "quiet"
        assert rec.image_urls == SPACE["imageURL"]
        assert rec.features == ["outlets", "whiteboard"]
        assert rec.capacity == 6

    def test_optional_fields_absent(self):
        rec = SpaceRecord.from_dict({"id": "x", "name": "N", "building": "Arts"})
        assert rec.space_type is None
        assert rec.capacity is None
        assert rec.image_urls == []
        assert rec.features == []

    def test_empty_space_type_becomes_none(self):
        rec = SpaceRecord.from_dict({**SPACE, "spaceType": ""})
        assert rec.space_type is None

    def test_missing_id_loads_as_none(self):
        rec = SpaceRecord.from_dict({"name": "N", "building": "Arts"})
        assert rec.id is None
        assert rec.name == "N"

    def test_numeric_id_becomes_string(self):
        assert SpaceRecord.from_dict({**SPACE, "id": 42}).id == "42"


class TestRoomRecord:
    def test_information_block(self):
        rec = RoomRecord.from_dict(ROOM)
        assert rec.room == "LH1001"
        assert rec.information.av_inputs == "yes"
        assert rec.information.pc == "no"
        assert rec.photos == ["https://img.example/r1.jpg"]

    def test_missing_information_defaults_to_none_flags(self):
        rec = RoomRecord.from_dict({"id": "r", "building": "Arts", "room": "A1"})
        assert rec.information.av_inputs is None
        assert rec.information.projector is None
        assert rec.photos == []

    @pytest.mark.parametrize("information", ["n/a", ["yes"], 0])
    def test_non_object_information_is_empty(self, information):
        rec = RoomRecord.from_dict({**ROOM, "information": information})
        assert rec.information.av_inputs is None
        assert rec.information.whiteboard is None
        assert rec.room == "LH1001"


class TestLoaders:
    def test_load_spaces(self, tmp_path):
        path = tmp_path / "study-rooms.json"
        path.write_text(json.dumps([SPACE]), encoding="utf-8")
        records = load_spaces(path)
        assert [r.id for r in records] == ["abc123"]

    def test_load_rooms(self, tmp_path):
        path = tmp_path / "rooms.json"
        path.write_text(json.dumps([ROOM, {**ROOM, "id": "room-2"}]), encoding="utf-8")
        assert [r.id for r in load_rooms(path)] == ["room-1", "room-2"]

    def test_empty_array(self, tmp_path):
        path = tmp_path / "rooms.json"
        path.write_text("[]", encoding="utf-8")
        assert load_rooms(path) == []

    def test_missing_file_raises_source_data_error(self, tmp_path):
        with pytest.raises(SourceDataError, match="cannot read"):
            load_spaces(tmp_path / "nope.json")

    def test_invalid_json_raises(self, tmp_path):
        path = tmp_path / "rooms.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(SourceDataError, match="invalid JSON"):
            load_rooms(path)

    def test_non_array_raises(self, tmp_path):
        path = tmp_path / "rooms.json"
        path.write_text(json.dumps({"id": "x"}), encoding="utf-8")
        with pytest.raises(SourceDataError, match="JSON array"):
            load_rooms(path)

    def test_record_without_id_still_loads(self, tmp_path):
        path = tmp_path / "study-rooms.json"
        path.write_text(json.dumps([SPACE, {"name": "NoId", "building": "Arts"}]), encoding="utf-8")
        records = load_spaces(path)
        assert [r.id for r in records] == ["abc123", None]

    def test_room_with_string_information_still_loads(self, tmp_path):
        path = tmp_path / "rooms.json"
        path.write_text(json.dumps([ROOM, {**ROOM, "id": "room-2", "information": "n/a"}]),
                        encoding="utf-8")
        records = load_rooms(path)
        assert [r.id for r in records] == ["room-1", "room-2"]
        assert records[1].information.pc is None

    def test_non_object_element_raises(self, tmp_path):
        path = tmp_path / "study-rooms.json"
        path.write_text(json.dumps([SPACE, "not a record"]), encoding="utf-8")
        with pytest.raises(SourceDataError, match="malformed space record"):
            load_spaces(path)
