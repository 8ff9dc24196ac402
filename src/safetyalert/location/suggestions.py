"""Debounced suggestion lookups that only ever apply the newest answer.

Every request gets a sequence number. A response is applied only if
its number is still the latest issued and the feed is still open, so
out-of-order replies from fast typing never overwrite a newer result.
"""

import asyncio
import logging
from collections.abc import Callable

from safetyalert.core.errors import LookupFailed
from safetyalert.location.resolver import LocationResolver, Suggestion, SuggestionResult

logger = logging.getLogger(__name__)

SuggestionCallback = Callable[[SuggestionResult], None]


class SuggestionFeed:
    """Feeds place suggestions for a location input as the user types.

    Usage::

        feed = SuggestionFeed(resolver, on_suggestions=show)
        await feed.request("Allen Ave")
        feed.close()
    """

    def __init__(
        self,
        resolver: LocationResolver,
        on_suggestions: SuggestionCallback | None = None,
        debounce: float | None = None,
    ) -> None:
        self.resolver = resolver
        self.on_suggestions = on_suggestions
        if debounce is None:
            debounce = resolver.config.suggestion_debounce_seconds
        self.debounce = debounce
        self._sequence = 0
        self._closed = False
        self.latest: tuple[Suggestion, ...] = ()
        self.error: LookupFailed | None = None

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def sequence(self) -> int:
        return self._sequence

    async def request(self, text: str) -> bool:
        """Look up suggestions for ``text`` after the debounce window.

        Returns:
            True if this request's result was applied, False if a newer
            request superseded it or the feed was closed meanwhile
        """
        if self._closed:
            return False

        self._sequence += 1
        sequence = self._sequence

        if self.debounce > 0:
            await asyncio.sleep(self.debounce)
            if sequence != self._sequence or self._closed:
                return False

        result = await self.resolver.suggest(text)

        if sequence != self._sequence or self._closed:
            logger.debug("Discarding stale suggestions for %r (seq=%d)", text, sequence)
            return False

        self.latest = result.suggestions
        self.error = result.error
        if self.on_suggestions is not None:
            self.on_suggestions(result)
        return True

    def clear(self) -> None:
        """Drop shown suggestions and invalidate any request in flight."""
        self._sequence += 1
        self.latest = ()
        self.error = None

    def close(self) -> None:
        """Stop applying results; requests still in flight are discarded."""
        self._closed = True
        self._sequence += 1
