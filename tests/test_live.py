"""Tests for LiveIncidentView (store + filter + viewport wired together)."""

import pytest
from helpers import flush_deliveries, make_record

from safetyalert.core.errors import SubmitFailed, SubscriptionError
from safetyalert.incidents.channel import InMemoryCollection
from safetyalert.incidents.filters import FilterState
from safetyalert.incidents.models import Coordinates, IncidentDraft
from safetyalert.incidents.viewport import BoundsViewport, FallbackViewport
from safetyalert.live import LiveIncidentView


def seeded_collection():
    return InMemoryCollection(
        [
            make_record(
                "a",
                10,
                category="fire",
                description="Warehouse blaze",
                location_label="Apapa Wharf",
                coordinates={"lat": 6.44, "lng": 3.36},
            ),
            make_record(
                "b",
                20,
                category="crime",
                description="Phone snatched near market",
                location_label="Balogun Market",
                coordinates=None,
            ),
        ]
    )


class Recorder:
    def __init__(self):
        self.states = []

    def __call__(self, state):
        self.states.append(state)

    @property
    def last(self):
        return self.states[-1]


@pytest.fixture
async def view(alert_config):
    async with LiveIncidentView(seeded_collection(), config=alert_config) as live_view:
        await flush_deliveries()
        yield live_view


class TestInitialState:
    async def test_first_snapshot_is_newest_first(self, view):
        assert [i.id for i in view.state.replica] == ["b", "a"]
        assert view.state.live is True
        assert view.state.error is None

    async def test_listener_gets_current_state_immediately(self, view):
        recorder = Recorder()
        view.subscribe(recorder)
        assert recorder.states == [view.state]

    async def test_before_first_delivery_view_is_empty(self, alert_config):
        async with LiveIncidentView(seeded_collection(), config=alert_config) as live_view:
            assert live_view.state.replica == ()
            assert isinstance(live_view.state.viewport, FallbackViewport)

    async def test_viewport_covers_located_incidents(self, view):
        viewport = view.state.viewport
        assert isinstance(viewport, BoundsViewport)
        assert viewport.points == ((6.44, 3.36),)
        assert [m.incident_id for m in view.state.markers] == ["a"]


class TestFilters:
    async def test_category_filter(self, view):
        state = view.set_category("crime")
        assert [i.id for i in state.subset] == ["b"]
        assert isinstance(state.viewport, FallbackViewport)
        assert (state.shown, state.total) == (1, 2)

    async def test_back_to_back_toggles_use_latest(self, view):
        recorder = Recorder()
        view.subscribe(recorder)

        view.set_category("crime")
        view.set_category("fire")

        assert [i.id for i in recorder.last.subset] == ["a"]
        assert recorder.last.filters.category == "fire"

    async def test_search_matches_location(self, view):
        state = view.set_search("  BALOGUN ")
        assert [i.id for i in state.subset] == ["b"]

    async def test_search_and_category_combine(self, view):
        view.set_category("fire")
        state = view.set_search("market")
        assert state.subset == ()
        assert isinstance(state.viewport, FallbackViewport)

    async def test_reset(self, view):
        view.set_category("fire")
        view.set_search("blaze")
        state = view.reset_filters()
        assert state.filters == FilterState()
        assert state.subset == state.replica

    async def test_unknown_category_rejected(self, view):
        with pytest.raises(ValueError):
            view.set_category("tornado")


class TestCommitFlowsThroughChannel:
    async def test_committed_incident_becomes_head(self, view):
        recorder = Recorder()
        view.subscribe(recorder)
        draft = IncidentDraft(
            category="medical",
            description="Man collapsed",
            location_label="Oshodi",
            coordinates=Coordinates(lat=6.55, lng=3.34),
        )

        outcome = await view.submit(draft)
        # Not inserted locally; it arrives with the next snapshot
        assert view.state.replica[0].id != outcome.incident_id
        await flush_deliveries()

        head = view.state.replica[0]
        assert head.id == outcome.incident_id
        assert head.created_at is not None
        assert view.state.viewport.points[0] == (6.55, 3.34)
        assert recorder.last is view.state

    async def test_commit_respects_active_filter(self, view):
        view.set_category("crime")
        await view.submit(IncidentDraft(category="fire", description="x", location_label="y"))
        await flush_deliveries()

        assert view.state.total == 3
        assert [i.id for i in view.state.subset] == ["b"]

    async def test_failed_write_changes_nothing(self, view):
        view.collection.write_error = ConnectionError("offline")
        draft = IncidentDraft(category="fire", description="x", location_label="y")

        with pytest.raises(SubmitFailed):
            await view.submit(draft)
        await flush_deliveries()

        assert view.state.total == 2
        assert draft.description == "x"


class TestChannelLifecycle:
    async def test_dropped_channel_freezes_replica(self, view):
        recorder = Recorder()
        view.subscribe(recorder)

        view.collection.drop_channels("connection lost")

        assert view.state.live is False
        assert isinstance(view.state.error, SubscriptionError)
        assert [i.id for i in view.state.replica] == ["b", "a"]
        assert recorder.last is view.state

    async def test_filters_still_work_after_drop(self, view):
        view.collection.drop_channels()
        state = view.set_category("fire")
        assert [i.id for i in state.subset] == ["a"]

    async def test_stop_silences_listeners(self, view):
        recorder = Recorder()
        view.subscribe(recorder)
        calls = len(recorder.states)

        view.stop()
        await view.collection.create_record(make_record("late", 60))
        await flush_deliveries()

        assert len(recorder.states) == calls
        assert view.collection.subscriber_count == 0

    async def test_listener_unsubscribe(self, view):
        recorder = Recorder()
        unsubscribe = view.subscribe(recorder)
        unsubscribe()
        unsubscribe()
        view.set_search("blaze")
        assert len(recorder.states) == 1


class TestSuggest:
    async def test_without_resolver_returns_empty(self, view):
        result = await view.suggest("Allen")
        assert result.suggestions == ()
        assert not result.failed
