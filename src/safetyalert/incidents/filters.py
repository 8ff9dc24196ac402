"""Derive the visible subset of the replica from a category and search term."""

from collections.abc import Sequence
from dataclasses import dataclass, replace

from safetyalert.core.categories import ALL_CATEGORIES, Category, parse_category
from safetyalert.incidents.models import Incident


def normalize_category_filter(category_filter: str | Category | None) -> Category | None:
    """Resolve a filter value to a Category, or None for the wildcard.

    Raises:
        ValueError: If the value is neither the wildcard nor a known code
    """
    if category_filter is None:
        return None
    if isinstance(category_filter, Category):
        return category_filter
    if category_filter.strip().lower() == ALL_CATEGORIES:
        return None
    category = parse_category(category_filter)
    if category is None:
        raise ValueError(f"Unknown category filter: {category_filter!r}")
    return category


def matches_search(incident: Incident, term: str) -> bool:
    """Case-insensitive substring match on description, location, or category label.

    ``term`` must already be lowercased and trimmed; an empty term matches.
    """
    if not term:
        return True
    return (
        term in incident.description.lower()
        or term in incident.location_label.lower()
        or term in incident.meta.label.lower()
    )


def apply(
    replica: Sequence[Incident],
    category_filter: str | Category | None = ALL_CATEGORIES,
    search_term: str = "",
) -> tuple[Incident, ...]:
    """Return the incidents that pass both filters, in replica order."""
    category = normalize_category_filter(category_filter)
    term = (search_term or "").strip().lower()
    return tuple(
        incident
        for incident in replica
        if (category is None or incident.category == category) and matches_search(incident, term)
    )


@dataclass(frozen=True)
class FilterState:
    """The category filter and search term currently applied to the view."""

    category: str = ALL_CATEGORIES
    search: str = ""

    def with_category(self, category: str | Category | None) -> "FilterState":
        resolved = normalize_category_filter(category)
        return replace(self, category=resolved.value if resolved else ALL_CATEGORIES)

    def with_search(self, search: str | None) -> "FilterState":
        return replace(self, search=search or "")

    def reset(self) -> "FilterState":
        return FilterState()

    @property
    def is_default(self) -> bool:
        return self.category == ALL_CATEGORIES and not self.search.strip()

    def apply(self, replica: Sequence[Incident]) -> tuple[Incident, ...]:
        return apply(replica, self.category, self.search)
