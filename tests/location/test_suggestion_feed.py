"""Tests for SuggestionFeed stale-response handling."""

import asyncio
from unittest.mock import MagicMock

from safetyalert.core.errors import LookupFailed
from safetyalert.location.resolver import Suggestion, SuggestionResult
from safetyalert.location.suggestions import SuggestionFeed


class ControlledResolver:
    """Resolver whose suggest() calls complete when the test says so."""

    def __init__(self, config):
        self.config = config
        self.pending: dict[str, asyncio.Future] = {}
        self.queries: list[str] = []

    async def suggest(self, text):
        self.queries.append(text)
        future = asyncio.get_running_loop().create_future()
        self.pending[text] = future
        return await future

    def answer(self, text, *labels):
        result = SuggestionResult(tuple(Suggestion(label, 0.0, 0.0) for label in labels))
        self.pending[text].set_result(result)


async def _started(resolver, count):
    while len(resolver.queries) < count:
        await asyncio.sleep(0)


class TestStaleResponses:
    async def test_out_of_order_reply_is_discarded(self, alert_config):
        resolver = ControlledResolver(alert_config)
        shown = MagicMock()
        feed = SuggestionFeed(resolver, on_suggestions=shown, debounce=0)

        first = asyncio.create_task(feed.request("All"))
        await _started(resolver, 1)
        second = asyncio.create_task(feed.request("Allen"))
        await _started(resolver, 2)

        resolver.answer("Allen", "Allen Avenue")
        assert await second is True
        resolver.answer("All", "All Saints Church")
        assert await first is False

        assert [s.label for s in feed.latest] == ["Allen Avenue"]
        shown.assert_called_once()

    async def test_in_order_replies_both_apply(self, alert_config):
        resolver = ControlledResolver(alert_config)
        feed = SuggestionFeed(resolver, debounce=0)

        task = asyncio.create_task(feed.request("All"))
        await _started(resolver, 1)
        resolver.answer("All", "All Saints Church")
        assert await task is True

        task = asyncio.create_task(feed.request("Allen"))
        await _started(resolver, 2)
        resolver.answer("Allen", "Allen Avenue")
        assert await task is True
        assert [s.label for s in feed.latest] == ["Allen Avenue"]

    async def test_closed_feed_ignores_in_flight_result(self, alert_config):
        resolver = ControlledResolver(alert_config)
        shown = MagicMock()
        feed = SuggestionFeed(resolver, on_suggestions=shown, debounce=0)

        task = asyncio.create_task(feed.request("Allen"))
        await _started(resolver, 1)
        feed.close()
        resolver.answer("Allen", "Allen Avenue")

        assert await task is False
        assert feed.latest == ()
        shown.assert_not_called()

    async def test_closed_feed_issues_no_requests(self, alert_config):
        resolver = ControlledResolver(alert_config)
        feed = SuggestionFeed(resolver, debounce=0)
        feed.close()
        assert await feed.request("Allen") is False
        assert resolver.queries == []

    async def test_clear_invalidates_in_flight(self, alert_config):
        resolver = ControlledResolver(alert_config)
        feed = SuggestionFeed(resolver, debounce=0)

        task = asyncio.create_task(feed.request("Allen"))
        await _started(resolver, 1)
        feed.clear()
        resolver.answer("Allen", "Allen Avenue")

        assert await task is False
        assert feed.latest == ()


class TestDebounce:
    async def test_superseded_request_never_reaches_resolver(self, alert_config):
        resolver = ControlledResolver(alert_config)
        feed = SuggestionFeed(resolver, debounce=0.05)

        first = asyncio.create_task(feed.request("A"))
        await asyncio.sleep(0)
        second = asyncio.create_task(feed.request("Al"))
        await _started(resolver, 1)
        resolver.answer("Al", "Allen Avenue")

        assert await first is False
        assert await second is True
        assert resolver.queries == ["Al"]

    def test_default_debounce_from_config(self, alert_config):
        from dataclasses import replace

        resolver = ControlledResolver(replace(alert_config, suggestion_debounce_seconds=0.4))
        assert SuggestionFeed(resolver).debounce == 0.4


class TestErrors:
    async def test_lookup_error_is_surfaced(self, alert_config):
        class FailingResolver:
            config = alert_config

            async def suggest(self, text):
                return SuggestionResult(error=LookupFailed("down", operation="suggest"))

        shown = MagicMock()
        feed = SuggestionFeed(FailingResolver(), on_suggestions=shown, debounce=0)

        assert await feed.request("Allen") is True
        assert feed.latest == ()
        assert isinstance(feed.error, LookupFailed)
        assert shown.call_args.args[0].failed
