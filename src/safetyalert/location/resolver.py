"""Turn typed text, device coordinates, or a picked suggestion into a location.

Place search and reverse geocoding go to OpenStreetMap Nominatim. Network
failures here degrade the label (coordinate-only text, no suggestions)
rather than failing the caller; only a missing device position is fatal
to ``resolve_current_position``.
"""

import logging
from dataclasses import dataclass
from typing import Protocol

import httpx
from cachetools import TTLCache
from tenacity import retry, retry_if_result, stop_after_attempt, wait_exponential_jitter

from safetyalert.core.config import AlertConfig, get_alert_config
from safetyalert.core.errors import LocationUnavailable, LookupFailed, PositionDenied
from safetyalert.incidents.models import Coordinates

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 10
MAX_RETRIES = 3
MIN_WAIT_SECONDS = 0.5
MAX_WAIT_SECONDS = 4

# Reverse geocode results keyed by coordinates rounded to ~1 m
_REVERSE_CACHE_PRECISION = 5


@dataclass(frozen=True)
class Suggestion:
    """A place returned by the search service."""

    label: str
    lat: float
    lng: float

    @property
    def coordinates(self) -> Coordinates:
        return Coordinates(lat=self.lat, lng=self.lng)


@dataclass(frozen=True)
class SuggestionResult:
    """Suggestions for a query, with the lookup error if the search failed."""

    suggestions: tuple[Suggestion, ...] = ()
    error: LookupFailed | None = None

    @property
    def failed(self) -> bool:
        return self.error is not None


@dataclass(frozen=True)
class ResolvedLocation:
    """A canonical label plus point.

    ``label_error`` is set when the point is good but the label had to
    fall back to formatted coordinates.
    """

    label: str
    lat: float
    lng: float
    label_error: LookupFailed | None = None

    @property
    def coordinates(self) -> Coordinates:
        return Coordinates(lat=self.lat, lng=self.lng)

    @property
    def label_degraded(self) -> bool:
        return self.label_error is not None


class PositionProvider(Protocol):
    """Source of the device's current coordinates."""

    async def get_current_position(self) -> Coordinates:
        """Raises ``PositionDenied`` when permission is refused or unsupported."""
        ...


class StaticPositionProvider:
    """Position provider returning a fixed point, or unsupported when None."""

    def __init__(self, coordinates: Coordinates | None = None) -> None:
        self.coordinates = coordinates

    async def get_current_position(self) -> Coordinates:
        if self.coordinates is None:
            raise PositionDenied("Geolocation is not supported on this device")
        return self.coordinates


def _is_rate_limited(response: httpx.Response) -> bool:
    """Check if response indicates rate limiting (429)."""
    return response.status_code == 429


def _log_retry(retry_state) -> None:
    logger.warning("Geocoder rate limited, retry attempt %d", retry_state.attempt_number)


class LocationResolver:
    """Suggestion search, reverse geocoding, and current-position resolution.

    Usage::

        resolver = LocationResolver(position_provider=provider)
        result = await resolver.suggest("Allen Avenue")
        here = await resolver.resolve_current_position()
    """

    def __init__(
        self,
        position_provider: PositionProvider | None = None,
        config: AlertConfig | None = None,
    ) -> None:
        self.config = config or get_alert_config()
        self.position_provider = position_provider or StaticPositionProvider()
        self._headers = {"User-Agent": self.config.user_agent}
        self._reverse_cache: TTLCache[tuple[float, float], str] = TTLCache(maxsize=256, ttl=3600)

    @retry(
        retry=retry_if_result(_is_rate_limited),
        stop=stop_after_attempt(MAX_RETRIES),
        wait=wait_exponential_jitter(initial=MIN_WAIT_SECONDS, max=MAX_WAIT_SECONDS),
        before_sleep=_log_retry,
        retry_error_callback=lambda state: state.outcome.result(),
    )
    async def _get(self, url: str, params: dict) -> httpx.Response:
        """GET with backoff on 429; the last rate-limited response is returned as-is."""
        async with httpx.AsyncClient(timeout=REQUEST_TIMEOUT, headers=self._headers) as client:
            return await client.get(url, params=params)

    async def _search(self, query: str, limit: int) -> list[Suggestion]:
        resp = await self._get(
            self.config.nominatim_search_url,
            params={"q": query, "format": "jsonv2", "limit": limit},
        )
        resp.raise_for_status()
        suggestions = []
        for place in resp.json():
            label = place.get("display_name")
            if not label:
                continue
            lat, lng = float(place["lat"]), float(place["lon"])
            suggestions.append(Suggestion(label=label, lat=lat, lng=lng))
        return suggestions

    async def suggest(self, query: str) -> SuggestionResult:
        """Search for places matching ``query``.

        Blank queries return no suggestions without a request. Failures
        are never raised; they come back as an empty result with ``error`` set.
        """
        query = (query or "").strip()
        if not query:
            return SuggestionResult()

        try:
            suggestions = await self._search(query, self.config.suggestion_limit)
        except (httpx.HTTPError, ValueError, KeyError, TypeError, AttributeError) as exc:
            logger.warning("Suggestion lookup failed for %r: %s", query, exc)
            return SuggestionResult(
                error=LookupFailed(f"Suggestion lookup failed: {exc}", operation="suggest")
            )
        return SuggestionResult(suggestions=tuple(suggestions))

    async def geocode(self, label: str) -> ResolvedLocation | None:
        """Best-effort forward geocode of a typed location label.

        Returns:
            The top search hit, or None when nothing matched

        Raises:
            LookupFailed: If the search service could not be reached
        """
        label = (label or "").strip()
        if not label:
            return None
        try:
            suggestions = await self._search(label, 1)
        except (httpx.HTTPError, ValueError, KeyError, TypeError, AttributeError) as exc:
            raise LookupFailed(f"Geocoding failed: {exc}", operation="geocode") from exc
        if not suggestions:
            return None
        # Keep the reporter's own wording; only the point comes from the geocoder
        top = suggestions[0]
        return ResolvedLocation(label=label, lat=top.lat, lng=top.lng)

    async def reverse_geocode(self, coordinates: Coordinates) -> str:
        """Formatted address for a point.

        Raises:
            LookupFailed: If the service failed or had no address for the point
        """
        key = (
            round(coordinates.lat, _REVERSE_CACHE_PRECISION),
            round(coordinates.lng, _REVERSE_CACHE_PRECISION),
        )
        cached = self._reverse_cache.get(key)
        if cached is not None:
            return cached

        try:
            resp = await self._get(
                self.config.nominatim_reverse_url,
                params={"lat": coordinates.lat, "lon": coordinates.lng, "format": "jsonv2"},
            )
            resp.raise_for_status()
            address = resp.json().get("display_name")
        except (httpx.HTTPError, ValueError, AttributeError) as exc:
            raise LookupFailed(
                f"Reverse geocoding failed: {exc}", operation="reverse_geocode"
            ) from exc

        if not address:
            raise LookupFailed("No address found for this location", operation="reverse_geocode")

        self._reverse_cache[key] = address
        return address

    async def resolve_current_position(self) -> ResolvedLocation:
        """Locate the device and label the point.

        Raises:
            LocationUnavailable: If no point could be obtained. A failed
                label lookup does not raise; the label falls back to
                ``"Lat X, Lng Y"`` and ``label_error`` is set.
        """
        try:
            coordinates = await self.position_provider.get_current_position()
        except PositionDenied as exc:
            logger.info("Current position unavailable: %s", exc)
            raise LocationUnavailable(f"Failed to get your location: {exc}") from exc
        except Exception as exc:
            logger.warning("Position provider failed: %s", exc)
            raise LocationUnavailable(f"Failed to get your location: {exc}") from exc

        try:
            label = await self.reverse_geocode(coordinates)
        except LookupFailed as exc:
            logger.warning("Using coordinate label for %s: %s", coordinates.label(), exc)
            return ResolvedLocation(
                label=coordinates.label(),
                lat=coordinates.lat,
                lng=coordinates.lng,
                label_error=exc,
            )
        return ResolvedLocation(label=label, lat=coordinates.lat, lng=coordinates.lng)

    def from_suggestion(self, suggestion: Suggestion) -> ResolvedLocation:
        """Adopt a previously fetched suggestion as the location."""
        return ResolvedLocation(label=suggestion.label, lat=suggestion.lat, lng=suggestion.lng)
