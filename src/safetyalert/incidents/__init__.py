"""Incident replica, filtering and map projection."""

from safetyalert.incidents.channel import CosmosCollection, InMemoryCollection, open_collection
from safetyalert.incidents.models import Coordinates, Incident, IncidentDraft
from safetyalert.incidents.store import IncidentStore

__all__ = [
    "Coordinates",
    "CosmosCollection",
    "InMemoryCollection",
    "Incident",
    "IncidentDraft",
    "IncidentStore",
    "open_collection",
]
