"""Core utilities shared by the alert engine."""

from safetyalert.core.categories import ALL_CATEGORIES, Category, CategoryMeta, category_meta
from safetyalert.core.config import AlertConfig, get_alert_config, load_alert_config

__all__ = [
    "ALL_CATEGORIES",
    "AlertConfig",
    "Category",
    "CategoryMeta",
    "category_meta",
    "get_alert_config",
    "load_alert_config",
]
