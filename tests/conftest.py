"""Shared pytest fixtures."""

import pytest
from helpers import make_incident

from safetyalert.core.config import AlertConfig
from safetyalert.incidents.models import Coordinates


@pytest.fixture
def alert_config():
    """Config with no debounce and a known fallback viewport."""
    return AlertConfig(
        default_center=(6.5244, 3.3792),
        default_zoom=10,
        fit_padding=(50, 50),
        suggestion_debounce_seconds=0,
        nominatim_search_url="https://geo.test/search",
        nominatim_reverse_url="https://geo.test/reverse",
        geocode_on_submit=False,
    )


@pytest.fixture
def sample_replica():
    """Three incidents newest first, one without coordinates."""
    return (
        make_incident(
            "c",
            30,
            category="medical",
            description="Man collapsed at bus stop",
            location_label="Oshodi Interchange",
            coordinates={"lat": 6.55, "lng": 3.34},
        ),
        make_incident(
            "b",
            20,
            category="crime",
            description="Phone snatched near market",
            location_label="Balogun Market",
            coordinates=None,
        ),
        make_incident(
            "a",
            10,
            category="fire",
            description="Warehouse blaze",
            location_label="Apapa Wharf",
            coordinates={"lat": 6.44, "lng": 3.36},
        ),
    )


@pytest.fixture
def london():
    return Coordinates(lat=51.5, lng=-0.12)
