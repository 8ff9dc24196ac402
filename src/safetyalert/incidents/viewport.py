"""Compute the map viewport and markers for a subset of incidents.

Recomputed from scratch on every call; incident sets are community
scale so there is nothing worth caching.
"""

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Literal

from safetyalert.core.config import AlertConfig, get_alert_config
from safetyalert.incidents.models import Incident

# Margin applied around a single point when a consumer needs
# geographic (rather than pixel) padding
MIN_MARGIN_DEGREES = 0.005


@dataclass(frozen=True)
class BoundsViewport:
    """Fit the map to every point, padded by ``padding`` pixels on each axis."""

    points: tuple[tuple[float, float], ...]
    south_west: tuple[float, float]
    north_east: tuple[float, float]
    padding: tuple[int, int]
    kind: Literal["bounds"] = "bounds"

    @property
    def is_degenerate(self) -> bool:
        return self.south_west == self.north_east

    def padded_bounds(
        self, ratio: float = 0.1
    ) -> tuple[tuple[float, float], tuple[float, float]]:
        """Bounds grown by ``ratio`` of their span, never less than a small fixed margin."""
        lat_margin = max((self.north_east[0] - self.south_west[0]) * ratio, MIN_MARGIN_DEGREES)
        lng_margin = max((self.north_east[1] - self.south_west[1]) * ratio, MIN_MARGIN_DEGREES)
        south, west = self.south_west
        north, east = self.north_east
        return (
            (max(south - lat_margin, -90.0), max(west - lng_margin, -180.0)),
            (min(north + lat_margin, 90.0), min(east + lng_margin, 180.0)),
        )


@dataclass(frozen=True)
class FallbackViewport:
    """Fixed center and zoom used when nothing in view has coordinates."""

    center: tuple[float, float]
    zoom: int
    kind: Literal["fallback"] = "fallback"


Viewport = BoundsViewport | FallbackViewport


@dataclass(frozen=True)
class Marker:
    """Data for one map pin and its popup."""

    incident_id: str
    lat: float
    lng: float
    label: str
    emoji: str
    color_hex: str
    description: str
    location_label: str


def project(subset: Sequence[Incident], config: AlertConfig | None = None) -> Viewport:
    """Viewport covering every incident in ``subset`` that has coordinates.

    A single point still yields (degenerate) bounds; only an empty set of
    points falls back to the configured default center and zoom.
    """
    config = config or get_alert_config()
    points = tuple(i.coordinates.as_pair() for i in subset if i.coordinates is not None)

    if not points:
        return FallbackViewport(center=config.default_center, zoom=config.default_zoom)

    lats = [p[0] for p in points]
    lngs = [p[1] for p in points]
    # Pixel padding must stay positive or edge markers get clipped
    padding = (max(config.fit_padding[0], 1), max(config.fit_padding[1], 1))
    return BoundsViewport(
        points=points,
        south_west=(min(lats), min(lngs)),
        north_east=(max(lats), max(lngs)),
        padding=padding,
    )


def markers(subset: Sequence[Incident]) -> list[Marker]:
    """Map markers for the incidents in ``subset`` that have coordinates."""
    result = []
    for incident in subset:
        if incident.coordinates is None:
            continue
        meta = incident.meta
        result.append(
            Marker(
                incident_id=incident.id,
                lat=incident.coordinates.lat,
                lng=incident.coordinates.lng,
                label=meta.label,
                emoji=meta.emoji,
                color_hex=meta.color_hex,
                description=incident.description,
                location_label=incident.location_label or "GPS",
            )
        )
    return result
