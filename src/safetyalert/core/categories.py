"""The closed set of incident categories and their display metadata.

This is the only place category labels, glyphs and colors are defined.
Both the submission path (payload labels) and the display path (cards,
markers, search) read from here so the two sides cannot drift.
"""

from dataclasses import dataclass
from enum import StrEnum

__all__ = [
    "ALL_CATEGORIES",
    "CATEGORY_META",
    "Category",
    "CategoryMeta",
    "category_meta",
    "parse_category",
]

# Wildcard accepted by the category filter
ALL_CATEGORIES = "all"


class Category(StrEnum):
    """Incident classification codes as stored on the remote record."""

    FIRE = "fire"
    CRIME = "crime"
    VIOLENCE = "violence"
    ACCIDENT = "accident"
    DISASTER = "disaster"
    MEDICAL = "medical"
    OTHER = "other"


@dataclass(frozen=True)
class CategoryMeta:
    """Display metadata for a category."""

    label: str
    emoji: str
    color_hex: str

    @property
    def display_label(self) -> str:
        """Label prefixed with the glyph, e.g. ``"🔥 Fire/Explosion"``."""
        return f"{self.emoji} {self.label}"


CATEGORY_META: dict[Category, CategoryMeta] = {
    Category.FIRE: CategoryMeta("Fire/Explosion", "🔥", "#ef4444"),
    Category.CRIME: CategoryMeta("Crime/Theft", "🚔", "#f59e0b"),
    Category.VIOLENCE: CategoryMeta("Violence/Unrest", "⚠️", "#ea580c"),
    Category.ACCIDENT: CategoryMeta("Road Accident", "🚗", "#2563eb"),
    Category.DISASTER: CategoryMeta("Natural Disaster", "🌊", "#7c3aed"),
    Category.MEDICAL: CategoryMeta("Medical Emergency", "🏥", "#16a34a"),
    Category.OTHER: CategoryMeta("Other", "❓", "#6b7280"),
}


def parse_category(code: str | None) -> Category | None:
    """Return the Category for ``code``, or None if it is not in the set.

    Matching ignores surrounding whitespace and case.
    """
    if not code:
        return None
    try:
        return Category(code.strip().lower())
    except ValueError:
        return None


def category_meta(code: str | Category | None) -> CategoryMeta:
    """Metadata for a category code, falling back to ``other`` for unknown codes."""
    category = code if isinstance(code, Category) else parse_category(code)
    return CATEGORY_META[category or Category.OTHER]
