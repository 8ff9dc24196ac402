"""Tests for incident models and record decoding."""

from datetime import UTC, datetime

import pytest
from helpers import BASE_TIME, make_record

from safetyalert.core.categories import Category
from safetyalert.incidents.models import (
    SERVER_TIMESTAMP,
    Coordinates,
    Incident,
    IncidentDraft,
    format_timestamp,
    parse_timestamp,
)


class TestCoordinates:
    def test_label_uses_five_decimals(self):
        assert Coordinates(lat=51.5, lng=-0.12).label() == "Lat 51.50000, Lng -0.12000"

    def test_rejects_out_of_range(self):
        with pytest.raises(ValueError):
            Coordinates(lat=91, lng=0)

    def test_rejects_nan(self):
        with pytest.raises(ValueError):
            Coordinates(lat=float("nan"), lng=0)

    @pytest.mark.parametrize(
        "raw",
        [
            {"lat": 6.5, "lng": 3.3},
            {"latitude": 6.5, "longitude": 3.3},
            {"lat": "6.5", "lon": "3.3"},
            (6.5, 3.3),
        ],
    )
    def test_from_raw_accepts_common_shapes(self, raw):
        assert Coordinates.from_raw(raw) == Coordinates(lat=6.5, lng=3.3)

    @pytest.mark.parametrize("raw", [None, {}, {"lat": 6.5}, "nowhere", {"lat": 200, "lng": 0}])
    def test_from_raw_returns_none_for_bad_data(self, raw):
        assert Coordinates.from_raw(raw) is None

    def test_zero_is_a_valid_point(self):
        assert Coordinates.from_raw({"lat": 0, "lng": 0}) == Coordinates(lat=0, lng=0)


class TestParseTimestamp:
    def test_datetime_passthrough(self):
        assert parse_timestamp(BASE_TIME) == BASE_TIME

    def test_naive_datetime_assumed_utc(self):
        assert parse_timestamp(datetime(2026, 3, 1, 12, 0)) == BASE_TIME

    def test_iso_string_with_z(self):
        assert parse_timestamp("2026-03-01T12:00:00Z") == BASE_TIME

    def test_epoch_seconds_and_millis(self):
        seconds = BASE_TIME.timestamp()
        assert parse_timestamp(seconds) == BASE_TIME
        assert parse_timestamp(int(seconds * 1000)) == BASE_TIME

    def test_seconds_mapping(self):
        value = {"seconds": int(BASE_TIME.timestamp()), "nanoseconds": 0}
        assert parse_timestamp(value) == BASE_TIME

    @pytest.mark.parametrize("value", [None, "", "not a date", SERVER_TIMESTAMP, True])
    def test_unparseable_is_none(self, value):
        assert parse_timestamp(value) is None


class TestIncidentFromRecord:
    def test_current_field_names(self):
        incident = Incident.from_record(make_record("abc"))
        assert incident.id == "abc"
        assert incident.category is Category.FIRE
        assert incident.location_label == "Allen Avenue, Ikeja"
        assert incident.coordinates == Coordinates(lat=6.6, lng=3.35)
        assert incident.created_at == BASE_TIME

    def test_legacy_field_names(self):
        record = {
            "id": "old-1",
            "type": "🚔 Crime/Theft",
            "typeValue": "crime",
            "description": "Bag stolen",
            "location": "Lekki Phase 1",
            "coords": {"lat": 6.44, "lng": 3.47},
            "createdAt": {"seconds": 1_700_000_000, "nanoseconds": 0},
        }
        incident = Incident.from_record(record)
        assert incident.category is Category.CRIME
        assert incident.location_label == "Lekki Phase 1"
        assert incident.coordinates == Coordinates(lat=6.44, lng=3.47)
        assert incident.created_at == datetime.fromtimestamp(1_700_000_000, tz=UTC)

    def test_unknown_category_kept_but_shown_as_other(self):
        incident = Incident.from_record(make_record("x", category="flood-legacy"))
        assert incident.category is Category.OTHER
        assert incident.category_code == "flood-legacy"
        assert incident.meta.label == "Other"

    def test_missing_coordinates(self):
        incident = Incident.from_record(make_record("x", coordinates=None))
        assert incident.coordinates is None
        assert incident.has_coordinates is False

    def test_missing_id_raises(self):
        with pytest.raises(ValueError, match="no id"):
            Incident.from_record({"category": "fire"})

    def test_incident_is_immutable(self):
        incident = Incident.from_record(make_record("x"))
        with pytest.raises(ValueError):
            incident.description = "changed"


class TestIncidentDraft:
    def test_complete_draft_has_no_missing_fields(self):
        draft = IncidentDraft(category="fire", description="Blaze", location_label="Apapa")
        assert draft.missing_fields() == []

    def test_reports_every_missing_field(self):
        draft = IncidentDraft(description="   ")
        assert draft.missing_fields() == ["category", "description", "location_label"]

    def test_unknown_category_is_missing(self):
        draft = IncidentDraft(category="tornado", description="x", location_label="y")
        assert draft.missing_fields() == ["category"]

    def test_coordinates_only_required_by_policy(self):
        draft = IncidentDraft(category="fire", description="x", location_label="y")
        assert draft.missing_fields(require_coordinates=False) == []
        assert draft.missing_fields(require_coordinates=True) == ["coordinates"]

    def test_payload_carries_shared_metadata_and_server_timestamp(self):
        draft = IncidentDraft(
            category="Medical",
            description="  Man collapsed  ",
            location_label=" Oshodi ",
            coordinates=Coordinates(lat=6.55, lng=3.34),
        )
        payload = draft.to_payload()
        assert payload == {
            "category": "medical",
            "category_label": "Medical Emergency",
            "color": "#16a34a",
            "description": "Man collapsed",
            "location_label": "Oshodi",
            "coordinates": {"lat": 6.55, "lng": 3.34},
            "created_at": SERVER_TIMESTAMP,
        }

    def test_payload_without_coordinates(self):
        draft = IncidentDraft(category="fire", description="x", location_label="y")
        assert draft.to_payload()["coordinates"] is None

    def test_clear(self):
        draft = IncidentDraft(category="fire", description="x", location_label="y")
        draft.clear()
        assert draft == IncidentDraft()


class TestFormatTimestamp:
    def test_missing_is_dash(self):
        assert format_timestamp(None) == "—"

    def test_formats_in_timezone(self):
        from zoneinfo import ZoneInfo

        assert format_timestamp(BASE_TIME, ZoneInfo("Africa/Lagos")) == "2026-03-01 13:00"
