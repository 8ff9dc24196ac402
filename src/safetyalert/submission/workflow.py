"""Validate, resolve and commit a draft incident report exactly once.

States::

    EDITING -> VALIDATING -> RESOLVING -> COMMITTING -> DONE
       ^          |                          |           |
       +----------+--------------------------+-----------+  (edit / retry)

A failed write leaves the draft intact and returns to EDITING. There is
no automatic retry: a silent resubmit risks duplicate reports, so the
reporter retries by hand.
"""

import logging
from dataclasses import dataclass
from enum import StrEnum

from safetyalert.core.config import AlertConfig, get_alert_config
from safetyalert.core.errors import (
    LookupFailed,
    SubmissionInProgress,
    SubmitFailed,
    ValidationError,
)
from safetyalert.incidents.channel import RemoteCollection
from safetyalert.incidents.models import IncidentDraft
from safetyalert.location.resolver import LocationResolver, ResolvedLocation, Suggestion
from safetyalert.location.suggestions import SuggestionFeed

logger = logging.getLogger(__name__)


class SubmissionState(StrEnum):
    EDITING = "editing"
    VALIDATING = "validating"
    RESOLVING = "resolving"
    COMMITTING = "committing"
    DONE = "done"


_IN_FLIGHT = frozenset(
    {SubmissionState.VALIDATING, SubmissionState.RESOLVING, SubmissionState.COMMITTING}
)


@dataclass(frozen=True)
class SubmissionOutcome:
    """Result of a successful submission."""

    incident_id: str
    payload: dict
    geocoded: bool = False


class SubmissionWorkflow:
    """Drives one draft report from editing to a committed incident.

    Usage::

        workflow = SubmissionWorkflow(collection, resolver)
        workflow.draft.category = "fire"
        ...
        outcome = await workflow.submit()
    """

    def __init__(
        self,
        collection: RemoteCollection,
        resolver: LocationResolver | None = None,
        config: AlertConfig | None = None,
        *,
        require_coordinates: bool | None = None,
    ) -> None:
        self.collection = collection
        self.config = config or get_alert_config()
        self.resolver = resolver
        self.require_coordinates = (
            self.config.require_coordinates if require_coordinates is None else require_coordinates
        )
        self.draft = IncidentDraft()
        self.state = SubmissionState.EDITING
        self.last_error: Exception | None = None
        # Bumped whenever the draft is committed or replaced
        self._draft_generation = 0
        self._feeds: list[SuggestionFeed] = []

    # ------------------------------------------------------------------
    # Drafting helpers
    # ------------------------------------------------------------------

    def suggestion_feed(self, on_suggestions=None) -> SuggestionFeed:
        """A suggestion feed tied to this draft; closed once the draft is submitted."""
        if self.resolver is None:
            raise RuntimeError("No LocationResolver configured for suggestions")
        feed = SuggestionFeed(self.resolver, on_suggestions=self._collect(on_suggestions))
        self._feeds.append(feed)
        return feed

    def _collect(self, on_suggestions):
        def apply(result):
            if self.state == SubmissionState.EDITING:
                self.draft.suggestions = list(result.suggestions)
            if on_suggestions is not None:
                on_suggestions(result)

        return apply

    def use_location(self, location: ResolvedLocation) -> None:
        """Adopt a resolved location into the draft."""
        self._require_editing()
        self.draft.location_label = location.label
        self.draft.coordinates = location.coordinates
        self.draft.suggestions = []

    def choose_suggestion(self, suggestion: Suggestion) -> None:
        if self.resolver is not None:
            self.use_location(self.resolver.from_suggestion(suggestion))
        else:
            self.use_location(
                ResolvedLocation(label=suggestion.label, lat=suggestion.lat, lng=suggestion.lng)
            )

    async def use_current_position(self) -> ResolvedLocation:
        """Fill the draft location from the device position.

        Raises:
            LocationUnavailable: If the device gave no point (draft unchanged)
        """
        if self.resolver is None:
            raise RuntimeError("No LocationResolver configured for current position")
        generation = self._draft_generation
        location = await self.resolver.resolve_current_position()
        # The draft may have been submitted or replaced while we waited on the device
        if generation == self._draft_generation and self.state == SubmissionState.EDITING:
            self.use_location(location)
        return location

    def edit(self) -> None:
        """Return to EDITING after a finished or failed submission."""
        if self.state in _IN_FLIGHT:
            raise SubmissionInProgress("A submission is still in progress")
        self.state = SubmissionState.EDITING

    def _require_editing(self) -> None:
        if self.state != SubmissionState.EDITING:
            raise SubmissionInProgress(f"Draft is not editable while {self.state.value}")

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def validate(self) -> None:
        """Fail closed on any missing required field.

        Raises:
            ValidationError: Naming every missing field
        """
        missing = self.draft.missing_fields(require_coordinates=self.require_coordinates)
        if missing:
            raise ValidationError(missing)

    async def _resolve(self) -> bool:
        if self.draft.coordinates is not None:
            return False
        if self.resolver is None or not self.config.geocode_on_submit:
            return False
        try:
            location = await self.resolver.geocode(self.draft.location_label)
            coordinates = location.coordinates if location is not None else None
        except (LookupFailed, ValueError) as exc:
            logger.warning("Submitting without coordinates: %s", exc)
            return False
        if coordinates is None:
            return False
        self.draft.coordinates = coordinates
        return True

    async def submit(self) -> SubmissionOutcome:
        """Validate, resolve and write the draft once.

        Raises:
            SubmissionInProgress: If called outside EDITING
            ValidationError: If a required field is missing (no network call)
            SubmitFailed: If the remote write failed (draft preserved)
        """
        self._require_editing()
        self.last_error = None

        self.state = SubmissionState.VALIDATING
        try:
            self.validate()
        except ValidationError as exc:
            self.state = SubmissionState.EDITING
            self.last_error = exc
            raise

        geocoded = False
        committed = False
        try:
            self.state = SubmissionState.RESOLVING
            geocoded = await self._resolve()

            self.state = SubmissionState.COMMITTING
            payload = self.draft.to_payload()
            try:
                incident_id = await self.collection.create_record(payload)
            except Exception as exc:
                logger.exception("Error saving incident")
                error = SubmitFailed(f"Failed to submit incident: {exc}")
                self.last_error = error
                raise error from exc
            committed = True
        finally:
            # Any exit short of a commit, cancellation included, hands the
            # draft back exactly as the reporter left it
            if not committed:
                if geocoded:
                    self.draft.coordinates = None
                self.state = SubmissionState.EDITING

        logger.info("Submitted incident %s (%s)", incident_id, payload["category"])
        self._draft_generation += 1
        self.state = SubmissionState.DONE
        for feed in self._feeds:
            feed.close()
        self._feeds.clear()
        self.draft.clear()
        return SubmissionOutcome(incident_id=incident_id, payload=payload, geocoded=geocoded)

    def start_new(self) -> IncidentDraft:
        """Begin a fresh draft after DONE."""
        self.edit()
        self._draft_generation += 1
        self.draft = IncidentDraft()
        return self.draft
