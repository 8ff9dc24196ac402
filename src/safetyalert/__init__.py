"""Live incident sync, filtering, geocoding and map viewport engine."""
