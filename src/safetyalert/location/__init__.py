"""Location resolution: place search, reverse geocoding, device position."""

from safetyalert.location.resolver import (
    LocationResolver,
    ResolvedLocation,
    StaticPositionProvider,
    Suggestion,
    SuggestionResult,
)
from safetyalert.location.suggestions import SuggestionFeed

__all__ = [
    "LocationResolver",
    "ResolvedLocation",
    "StaticPositionProvider",
    "Suggestion",
    "SuggestionFeed",
    "SuggestionResult",
]
