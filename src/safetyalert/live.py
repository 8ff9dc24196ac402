"""The live incident view consumed by the presentation layer.

Composes the replica store, the filter and the viewport projector.
Whenever the replica, the category filter or the search term changes,
the visible subset and viewport are recomputed from scratch and pushed
to listeners as a ``ViewState``.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Self

from safetyalert.core.categories import Category
from safetyalert.core.config import AlertConfig, get_alert_config
from safetyalert.core.errors import SubscriptionError
from safetyalert.incidents.channel import RemoteCollection
from safetyalert.incidents.filters import FilterState
from safetyalert.incidents.models import Incident, IncidentDraft
from safetyalert.incidents.store import IncidentStore, Replica
from safetyalert.incidents.viewport import Marker, Viewport, markers, project
from safetyalert.location.resolver import LocationResolver, SuggestionResult
from safetyalert.submission.workflow import SubmissionOutcome, SubmissionWorkflow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ViewState:
    """Everything the list and map screens render."""

    replica: Replica
    subset: tuple[Incident, ...]
    viewport: Viewport
    filters: FilterState
    markers: list[Marker] = field(default_factory=list)
    live: bool = False
    error: SubscriptionError | None = None

    @property
    def total(self) -> int:
        return len(self.replica)

    @property
    def shown(self) -> int:
        return len(self.subset)


Listener = Callable[[ViewState], None]


class LiveIncidentView:
    """Live list/map view over the incident collection.

    Usage::

        async with LiveIncidentView(collection) as view:
            unsubscribe = view.subscribe(render)
            view.set_category("fire")
            view.set_search("market")
    """

    def __init__(
        self,
        collection: RemoteCollection,
        resolver: LocationResolver | None = None,
        config: AlertConfig | None = None,
    ) -> None:
        self.collection = collection
        self.config = config or get_alert_config()
        self.resolver = resolver
        self.store = IncidentStore(collection)
        self.filters = FilterState()
        self.state: ViewState | None = None
        self._listeners: list[Listener] = []
        self._unsubscribe_store: Callable[[], None] | None = None

    async def __aenter__(self) -> Self:
        self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        self.stop()

    def start(self) -> None:
        """Open the live channel (reopens if already started)."""
        self._unsubscribe_store = self.store.subscribe(self._on_replica, self._on_error)
        self._recompute()

    def stop(self) -> None:
        """Close the live channel; no listener is called for later deliveries."""
        if self._unsubscribe_store is not None:
            self._unsubscribe_store()
            self._unsubscribe_store = None

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; it immediately receives the current state."""
        self._listeners.append(listener)
        if self.state is not None:
            listener(self.state)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def set_category(self, category: str | Category | None) -> ViewState:
        """Change the category filter (``"all"`` for every category).

        Raises:
            ValueError: If the category is not in the closed set
        """
        self.filters = self.filters.with_category(category)
        return self._recompute()

    def set_search(self, term: str | None) -> ViewState:
        self.filters = self.filters.with_search(term)
        return self._recompute()

    def reset_filters(self) -> ViewState:
        self.filters = self.filters.reset()
        return self._recompute()

    def _on_replica(self, replica: Replica) -> None:
        logger.debug("Replica updated: %d incidents", len(replica))
        self._recompute()

    def _on_error(self, error: SubscriptionError) -> None:
        self._recompute()

    def _recompute(self) -> ViewState:
        replica = self.store.replica
        subset = self.filters.apply(replica)
        self.state = ViewState(
            replica=replica,
            subset=subset,
            viewport=project(subset, self.config),
            filters=self.filters,
            markers=markers(subset),
            live=self.store.live,
            error=self.store.last_error,
        )
        for listener in list(self._listeners):
            listener(self.state)
        return self.state

    def new_workflow(self, *, require_coordinates: bool | None = None) -> SubmissionWorkflow:
        """A submission workflow writing to this view's collection."""
        return SubmissionWorkflow(
            self.collection,
            self.resolver,
            self.config,
            require_coordinates=require_coordinates,
        )

    async def submit(self, draft: IncidentDraft) -> SubmissionOutcome:
        """Submit a draft in one call.

        The new incident shows up through the live channel like any
        other write, not by inserting it locally.

        Raises:
            ValidationError: If a required field is missing
            SubmitFailed: If the remote write failed
        """
        workflow = self.new_workflow()
        workflow.draft = draft
        return await workflow.submit()

    async def suggest(self, text: str) -> SuggestionResult:
        """Place suggestions for a location query."""
        if self.resolver is None:
            return SuggestionResult()
        return await self.resolver.suggest(text)
