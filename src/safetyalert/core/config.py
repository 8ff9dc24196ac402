"""Configuration loading utilities."""

import json
import os
from dataclasses import dataclass
from pathlib import Path
from zoneinfo import ZoneInfo

from dotenv import load_dotenv

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off", ""}


@dataclass(frozen=True)
class AlertConfig:
    """Alert engine configuration loaded from config/alerts.json.

    Deployment-specific values (map fallback, geocoder endpoints,
    submission policy) live in the JSON file rather than in code,
    so customization requires only editing the file or setting env vars.
    """

    app_name: str = "Community Safety Alert"
    default_center: tuple[float, float] = (6.5244, 3.3792)
    default_zoom: int = 10
    fit_padding: tuple[int, int] = (50, 50)
    require_coordinates: bool = False
    geocode_on_submit: bool = True
    suggestion_debounce_seconds: float = 0.3
    suggestion_limit: int = 5
    nominatim_search_url: str = "https://nominatim.openstreetmap.org/search"
    nominatim_reverse_url: str = "https://nominatim.openstreetmap.org/reverse"
    user_agent: str = "SafetyAlert/0.1 (community incident reporting)"
    timezone: str = "UTC"
    cosmos_database: str = ""
    poll_interval_seconds: float = 5.0


def get_project_root() -> Path:
    """Get the project root directory."""
    current = Path(__file__).resolve()
    for parent in current.parents:
        if (parent / "pyproject.toml").exists():
            return parent
    raise RuntimeError("Could not find project root (no pyproject.toml found)")


def _parse_bool(name: str, value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"{name} must be a boolean (true/false), got {value!r}")


def load_alert_config(config_path: Path | None = None) -> AlertConfig:
    """Load alert configuration from config file and environment.

    Environment variables override the file:
        ALERTS_REQUIRE_COORDINATES: Require a geocoded point on every report
        NOMINATIM_URL: Base URL of a self-hosted Nominatim instance
        COSMOS_DATABASE: Cosmos DB database name

    Args:
        config_path: Explicit path to the JSON file (defaults to
            ``<project root>/config/alerts.json``)

    Raises:
        FileNotFoundError: If the config file does not exist
        ValueError: If a boolean override is not a recognizable boolean
    """
    load_dotenv()

    if config_path is None:
        config_path = get_project_root() / "config" / "alerts.json"

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with config_path.open() as f:
        data = json.load(f)

    defaults = AlertConfig()
    search_url = data.get("nominatim_search_url", defaults.nominatim_search_url)
    reverse_url = data.get("nominatim_reverse_url", defaults.nominatim_reverse_url)

    # A self-hosted geocoder replaces both endpoints
    base_url = os.getenv("NOMINATIM_URL")
    if base_url:
        base_url = base_url.rstrip("/")
        search_url = f"{base_url}/search"
        reverse_url = f"{base_url}/reverse"

    require_coordinates = bool(data.get("require_coordinates", defaults.require_coordinates))
    env_require = os.getenv("ALERTS_REQUIRE_COORDINATES")
    if env_require is not None:
        require_coordinates = _parse_bool("ALERTS_REQUIRE_COORDINATES", env_require)

    center = data.get("default_center", defaults.default_center)
    padding = data.get("fit_padding", defaults.fit_padding)

    return AlertConfig(
        app_name=data.get("app_name", defaults.app_name),
        default_center=(float(center[0]), float(center[1])),
        default_zoom=int(data.get("default_zoom", defaults.default_zoom)),
        fit_padding=(int(padding[0]), int(padding[1])),
        require_coordinates=require_coordinates,
        geocode_on_submit=bool(data.get("geocode_on_submit", defaults.geocode_on_submit)),
        suggestion_debounce_seconds=float(
            data.get("suggestion_debounce_seconds", defaults.suggestion_debounce_seconds)
        ),
        suggestion_limit=int(data.get("suggestion_limit", defaults.suggestion_limit)),
        nominatim_search_url=search_url,
        nominatim_reverse_url=reverse_url,
        user_agent=data.get("user_agent", defaults.user_agent),
        timezone=data.get("timezone", defaults.timezone),
        cosmos_database=os.getenv("COSMOS_DATABASE") or data.get("cosmos_database", ""),
        poll_interval_seconds=float(
            data.get("poll_interval_seconds", defaults.poll_interval_seconds)
        ),
    )


# Cached config instance
_alert_config: AlertConfig | None = None


def get_alert_config() -> AlertConfig:
    """Get cached alert config.

    Loads config once and caches it for subsequent calls.
    """
    global _alert_config
    if _alert_config is None:
        _alert_config = load_alert_config()
    return _alert_config


def get_timezone() -> ZoneInfo:
    """Get display timezone as a ZoneInfo object."""
    return ZoneInfo(get_alert_config().timezone)
