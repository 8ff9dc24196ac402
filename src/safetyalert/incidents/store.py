"""Subscription-driven local replica of the remote incident collection.

Each store instance owns at most one push channel. Every delivery is a
full snapshot that replaces the replica wholesale; nothing is merged
with the previous state.
"""

import functools
import logging
from collections.abc import Callable, Iterable
from datetime import UTC, datetime

from safetyalert.core.errors import SubscriptionError
from safetyalert.incidents.channel import ORDER_FIELD, ChannelHandle, RemoteCollection
from safetyalert.incidents.models import Incident

logger = logging.getLogger(__name__)

Replica = tuple[Incident, ...]
UpdateCallback = Callable[[Replica], None]
ErrorCallback = Callable[[SubscriptionError], None]

_FLOOR = datetime.min.replace(tzinfo=UTC)


def build_replica(records: Iterable[dict]) -> Replica:
    """Decode a snapshot and order it newest first by ``created_at``.

    Records still waiting on a server timestamp sort after every stamped
    record and keep their delivered order. Undecodable records are
    skipped with a warning rather than failing the whole snapshot.
    """
    incidents = []
    for record in records:
        try:
            incidents.append(Incident.from_record(record))
        except ValueError as exc:
            logger.warning("Skipping undecodable incident record: %s", exc)
    incidents.sort(key=lambda i: (i.created_at is not None, i.created_at or _FLOOR), reverse=True)
    return tuple(incidents)


class IncidentStore:
    """Client-side replica of the incident collection.

    Usage::

        store = IncidentStore(collection)
        unsubscribe = store.subscribe(on_update)
        ...
        unsubscribe()
    """

    def __init__(self, collection: RemoteCollection) -> None:
        self._collection = collection
        self._handle: ChannelHandle | None = None
        self._generation = 0
        self._replica: Replica = ()
        self._pending: tuple[list[dict], UpdateCallback] | None = None
        self._delivering = False
        self.live = False
        self.last_error: SubscriptionError | None = None

    @property
    def replica(self) -> Replica:
        """The most recently delivered replica (read-only)."""
        return self._replica

    @property
    def is_subscribed(self) -> bool:
        return self._handle is not None and not self._handle.closed

    def subscribe(
        self,
        on_update: UpdateCallback,
        on_error: ErrorCallback | None = None,
    ) -> Callable[[], None]:
        """Open the push channel and return an idempotent ``unsubscribe``.

        An already-open channel on this store is closed first. If the
        channel cannot be opened, ``on_error`` receives a
        ``SubscriptionError`` and the replica keeps its last state.
        """
        self._close_channel()
        self._generation += 1
        generation = self._generation

        def handle_snapshot(records: list[dict]) -> None:
            self._receive(generation, records, on_update)

        def handle_error(error: SubscriptionError) -> None:
            self._fail(generation, error, on_error)

        try:
            handle = self._collection.subscribe(ORDER_FIELD, handle_snapshot, handle_error)
        except Exception as exc:
            error = exc if isinstance(exc, SubscriptionError) else SubscriptionError(
                f"Live updates unavailable: {exc}"
            )
            self._fail(generation, error, on_error)
        else:
            if generation == self._generation:
                self._handle = handle
                logger.debug("Opened incident channel (generation=%d)", generation)
            else:
                # Superseded by a subscribe made from inside the first delivery
                handle.close()

        return functools.partial(self._unsubscribe, generation)

    def _unsubscribe(self, generation: int) -> None:
        if generation != self._generation:
            return
        self._close_channel()
        # Invalidate anything the old channel still has in flight
        self._generation += 1

    def _close_channel(self) -> None:
        handle, self._handle = self._handle, None
        self._pending = None
        self.live = False
        if handle is not None:
            handle.close()
            logger.debug("Closed incident channel (generation=%d)", self._generation)

    def _receive(self, generation: int, records: list[dict], on_update: UpdateCallback) -> None:
        if generation != self._generation:
            return

        # A delivery that lands while a callback is still running replaces
        # any earlier pending one; the running loop picks up the newest,
        # even when it came from a channel opened inside that callback.
        self._pending = (records, on_update)
        if self._delivering:
            return

        self._delivering = True
        try:
            while self._pending is not None:
                (snapshot, callback), self._pending = self._pending, None
                self._replica = build_replica(snapshot)
                self.live = True
                self.last_error = None
                callback(self._replica)
        finally:
            self._delivering = False

    def _fail(
        self,
        generation: int,
        error: SubscriptionError,
        on_error: ErrorCallback | None,
    ) -> None:
        if generation != self._generation:
            return
        logger.warning("Incident channel error: %s", error)
        if self._handle is not None and self._handle.closed:
            self._handle = None
        self.live = False
        self.last_error = error
        if on_error is not None:
            on_error(error)
