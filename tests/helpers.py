"""Builders shared across the test suite."""

import asyncio
from datetime import UTC, datetime, timedelta

from safetyalert.incidents.models import Incident

BASE_TIME = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


async def flush_deliveries(rounds: int = 3) -> None:
    """Let callbacks scheduled with ``call_soon`` run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


def make_record(record_id: str, minutes: int = 0, **overrides) -> dict:
    """Raw remote record, ``minutes`` after BASE_TIME."""
    record = {
        "id": record_id,
        "category": "fire",
        "description": f"Report {record_id}",
        "location_label": "Allen Avenue, Ikeja",
        "coordinates": {"lat": 6.6, "lng": 3.35},
        "created_at": BASE_TIME + timedelta(minutes=minutes),
    }
    record.update(overrides)
    return record


def make_incident(record_id: str, minutes: int = 0, **overrides) -> Incident:
    """Decoded Incident built from ``make_record``."""
    return Incident.from_record(make_record(record_id, minutes, **overrides))
