"""Pydantic models for incident records replicated from the remote collection."""

import logging
import math
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any
from zoneinfo import ZoneInfo

from pydantic import BaseModel, ConfigDict, Field, field_validator

from safetyalert.core.categories import Category, CategoryMeta, category_meta, parse_category

logger = logging.getLogger(__name__)

MAX_DESCRIPTION_LENGTH = 5_000
MAX_LOCATION_LENGTH = 500

# Epoch values above this are milliseconds rather than seconds
_EPOCH_MILLIS_THRESHOLD = 100_000_000_000


class _ServerTimestamp:
    """Sentinel asking the remote store to stamp the write time."""

    _instance: "_ServerTimestamp | None" = None

    def __new__(cls) -> "_ServerTimestamp":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = _ServerTimestamp()


class Coordinates(BaseModel):
    """A WGS84 point."""

    model_config = ConfigDict(frozen=True)

    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)

    @field_validator("lat", "lng")
    @classmethod
    def _finite(cls, v: float) -> float:
        if not math.isfinite(v):
            raise ValueError("coordinate must be finite")
        return v

    @classmethod
    def from_raw(cls, raw: Any) -> "Coordinates | None":
        """Best-effort decode of ``{lat, lng}`` / ``(lat, lng)`` data.

        Returns None for missing or malformed points instead of raising,
        since older records may carry partial coordinates.
        """
        if raw is None:
            return None
        if isinstance(raw, Coordinates):
            return raw
        try:
            if isinstance(raw, dict):
                lat = raw.get("lat", raw.get("latitude"))
                lng = raw.get("lng", raw.get("lon", raw.get("longitude")))
            else:
                lat, lng = raw
            if lat is None or lng is None:
                return None
            return cls(lat=float(lat), lng=float(lng))
        except (TypeError, ValueError):
            return None

    def as_pair(self) -> tuple[float, float]:
        return (self.lat, self.lng)

    def label(self) -> str:
        """Coordinate-only label used when no address is available."""
        return f"Lat {self.lat:.5f}, Lng {self.lng:.5f}"


def parse_timestamp(value: Any) -> datetime | None:
    """Normalize the timestamp shapes remote stores hand back.

    Accepts datetimes, ISO-8601 strings, epoch seconds or milliseconds,
    and ``{"seconds": ..., "nanoseconds": ...}`` mappings. Naive values
    are assumed to be UTC.
    """
    if value is None or value is SERVER_TIMESTAMP:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=UTC)
    if isinstance(value, bool):
        return None
    if isinstance(value, int | float):
        seconds = value / 1000 if value > _EPOCH_MILLIS_THRESHOLD else value
        return datetime.fromtimestamp(seconds, tz=UTC)
    if isinstance(value, dict) and "seconds" in value:
        seconds = value["seconds"] + value.get("nanoseconds", 0) / 1_000_000_000
        return datetime.fromtimestamp(seconds, tz=UTC)
    if isinstance(value, str) and value:
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)
    return None


class Incident(BaseModel):
    """A committed incident report as seen through the live channel.

    Immutable once created. ``category_code`` keeps whatever code the
    record carried; ``category`` is the closed-set member used for
    display and filtering (unknown codes display as ``other``).
    """

    model_config = ConfigDict(frozen=True)

    id: str
    category: Category = Category.OTHER
    category_code: str = Category.OTHER.value
    description: str = ""
    location_label: str = ""
    coordinates: Coordinates | None = None
    created_at: datetime | None = None

    @property
    def meta(self) -> CategoryMeta:
        """Label, glyph and color for this incident's category."""
        return category_meta(self.category)

    @property
    def has_coordinates(self) -> bool:
        return self.coordinates is not None

    @classmethod
    def from_record(cls, record: dict) -> "Incident":
        """Decode a remote record, tolerating the legacy field names.

        Older reports used ``typeValue`` / ``location`` / ``coords``;
        current ones use ``category`` / ``location_label`` / ``coordinates``.

        Raises:
            ValueError: If the record has no id
        """
        record_id = record.get("id")
        if not record_id:
            raise ValueError("record has no id")

        code = record.get("category") or record.get("typeValue") or Category.OTHER.value
        code = str(code)
        category = parse_category(code)
        if category is None:
            logger.debug("Unknown category %r on incident %s, showing as other", code, record_id)

        coords_raw = record.get("coordinates", record.get("coords"))
        created_raw = record.get("created_at", record.get("createdAt"))

        return cls(
            id=str(record_id),
            category=category or Category.OTHER,
            category_code=code,
            description=record.get("description") or "",
            location_label=record.get("location_label") or record.get("location") or "",
            coordinates=Coordinates.from_raw(coords_raw),
            created_at=parse_timestamp(created_raw),
        )


@dataclass
class IncidentDraft:
    """An in-progress report held only in memory until submit or abandonment."""

    category: str = ""
    description: str = ""
    location_label: str = ""
    coordinates: Coordinates | None = None
    suggestions: list = field(default_factory=list)

    def missing_fields(self, *, require_coordinates: bool = False) -> list[str]:
        """Names of required fields that are empty or invalid."""
        missing = []
        if parse_category(self.category) is None:
            missing.append("category")
        if not self.description.strip():
            missing.append("description")
        if not self.location_label.strip():
            missing.append("location_label")
        if require_coordinates and self.coordinates is None:
            missing.append("coordinates")
        return missing

    def to_payload(self) -> dict:
        """Build the write payload for the remote collection.

        Label and color are written alongside the code so other readers
        of the raw collection see the same metadata the app displays.
        """
        category = parse_category(self.category) or Category.OTHER
        meta = category_meta(category)
        return {
            "category": category.value,
            "category_label": meta.label,
            "color": meta.color_hex,
            "description": self.description.strip()[:MAX_DESCRIPTION_LENGTH],
            "location_label": self.location_label.strip()[:MAX_LOCATION_LENGTH],
            "coordinates": self.coordinates.model_dump() if self.coordinates else None,
            "created_at": SERVER_TIMESTAMP,
        }

    def clear(self) -> None:
        self.category = ""
        self.description = ""
        self.location_label = ""
        self.coordinates = None
        self.suggestions = []


def format_timestamp(value: datetime | None, tz: ZoneInfo | None = None) -> str:
    """Human readable local time for list cards, or an em dash when unknown."""
    if value is None:
        return "—"
    if tz is not None:
        value = value.astimezone(tz)
    return value.strftime("%Y-%m-%d %H:%M")
