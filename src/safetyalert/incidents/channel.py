"""Remote incident collection adapters.

The engine talks to the remote store through two calls: a single
``create_record`` write and a ``subscribe`` push channel that delivers
the complete ordered collection on every change (full snapshots, never
diffs).

When ``COSMOS_ENDPOINT`` is not set, ``open_collection()`` falls back to
an in-memory collection for local development and testing.
"""

import asyncio
import logging
import os
import uuid
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Protocol, Self

from dotenv import load_dotenv

from safetyalert.core.config import get_alert_config
from safetyalert.core.errors import SubscriptionError
from safetyalert.incidents.models import SERVER_TIMESTAMP, parse_timestamp

logger = logging.getLogger(__name__)

CONTAINER_NAME = "incidents"
ORDER_FIELD = "created_at"

SnapshotCallback = Callable[[list[dict]], None]
ErrorCallback = Callable[[SubscriptionError], None]


class ChannelHandle(Protocol):
    @property
    def closed(self) -> bool: ...

    def close(self) -> None: ...


class RemoteCollection(Protocol):
    """What the engine needs from the remote incident store."""

    async def create_record(self, payload: dict) -> str: ...

    def subscribe(
        self,
        order_by: str,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback,
    ) -> ChannelHandle: ...


class _Subscription:
    """A single open push channel."""

    def __init__(
        self,
        owner: "InMemoryCollection",
        order_by: str,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback,
    ) -> None:
        self.owner = owner
        self.order_by = order_by
        self.on_snapshot = on_snapshot
        self.on_error = on_error
        self.closed = False

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self.owner._subscriptions.discard(self)

    def _deliver(self, snapshot: list[dict]) -> None:
        if not self.closed:
            self.on_snapshot(snapshot)

    def _fail(self, error: SubscriptionError) -> None:
        if not self.closed:
            self.close()
            self.on_error(error)


class InMemoryCollection:
    """In-memory remote collection for development and tests.

    Stamps ids and ``created_at`` at commit time the way a real store
    would, then schedules a full-snapshot delivery to every open channel
    on the running event loop.

    Usage::

        async with InMemoryCollection() as collection:
            record_id = await collection.create_record(payload)
    """

    def __init__(self, records: list[dict] | None = None) -> None:
        self._records: dict[str, dict] = {}
        self._subscriptions: set[_Subscription] = set()
        self._last_stamp: datetime | None = None
        self.write_error: Exception | None = None
        self.write_count = 0
        for record in records or []:
            record = dict(record)
            record.setdefault("id", uuid.uuid4().hex)
            self._records[record["id"]] = record

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        for sub in list(self._subscriptions):
            sub.close()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def _stamp(self) -> datetime:
        # Strictly increasing even when two writes land in the same tick
        now = datetime.now(UTC)
        if self._last_stamp is not None and now <= self._last_stamp:
            now = self._last_stamp + timedelta(microseconds=1)
        self._last_stamp = now
        return now

    def snapshot(self, order_by: str = ORDER_FIELD) -> list[dict]:
        """Current records ordered by ``order_by`` descending."""
        floor = datetime.min.replace(tzinfo=UTC)
        records = [dict(r) for r in self._records.values()]
        return sorted(
            records,
            key=lambda r: parse_timestamp(r.get(order_by)) or floor,
            reverse=True,
        )

    async def create_record(self, payload: dict) -> str:
        """Commit a record and fan out the new snapshot.

        Raises:
            Exception: Whatever ``write_error`` is set to, to simulate
                a failed write (the error is consumed)
        """
        self.write_count += 1
        if self.write_error is not None:
            error, self.write_error = self.write_error, None
            raise error

        record_id = uuid.uuid4().hex
        record = {k: v for k, v in payload.items() if v is not SERVER_TIMESTAMP}
        record["id"] = record_id
        for key, value in payload.items():
            if value is SERVER_TIMESTAMP:
                record[key] = self._stamp()
        self._records[record_id] = record
        logger.info("Created incident %s (in-memory)", record_id)
        self._broadcast()
        return record_id

    def subscribe(
        self,
        order_by: str,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback,
    ) -> _Subscription:
        sub = _Subscription(self, order_by, on_snapshot, on_error)
        self._subscriptions.add(sub)
        loop = asyncio.get_running_loop()
        loop.call_soon(sub._deliver, self.snapshot(order_by))
        return sub

    def _broadcast(self) -> None:
        loop = asyncio.get_running_loop()
        for sub in list(self._subscriptions):
            loop.call_soon(sub._deliver, self.snapshot(sub.order_by))

    def drop_channels(self, reason: str = "channel dropped") -> None:
        """Fail every open channel, as a lost connection would."""
        for sub in list(self._subscriptions):
            sub._fail(SubscriptionError(f"Live updates unavailable: {reason}"))


class _PollingSubscription:
    """Push channel emulated by polling a Cosmos DB container."""

    def __init__(self, task: asyncio.Task) -> None:
        self._task = task
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed or self._task.done()

    def close(self) -> None:
        self._closed = True
        if not self._task.done():
            self._task.cancel()


class CosmosCollection:
    """Incident collection backed by Azure Cosmos DB.

    Writes use ``create_item``; the server timestamp is Cosmos's own
    ``_ts`` system property. Cosmos has no client push API, so the channel
    polls the container and delivers a full snapshot whenever the set of
    ``(id, _etag)`` pairs changes.

    Usage::

        async with CosmosCollection() as collection:
            handle = collection.subscribe("created_at", on_snapshot, on_error)
    """

    def __init__(self, poll_interval: float | None = None) -> None:
        """Initialize collection. Call ``__aenter__`` to connect."""
        self._client = None
        self._container = None
        self._credential = None
        self._poll_interval = poll_interval or get_alert_config().poll_interval_seconds
        self._poll_tasks: set[asyncio.Task] = set()

    async def __aenter__(self) -> Self:
        """Connect to Cosmos DB."""
        load_dotenv()

        endpoint = os.getenv("COSMOS_ENDPOINT")
        key = os.getenv("COSMOS_KEY")
        if not endpoint:
            raise ValueError("COSMOS_ENDPOINT environment variable not set")

        from azure.cosmos.aio import CosmosClient

        if key:
            self._client = CosmosClient(endpoint, credential=key)
        else:
            from azure.identity.aio import DefaultAzureCredential

            self._credential = DefaultAzureCredential()
            self._client = CosmosClient(endpoint, credential=self._credential)

        database_name = get_alert_config().cosmos_database
        database = self._client.get_database_client(database_name)
        self._container = database.get_container_client(CONTAINER_NAME)
        logger.info("Connected to Cosmos DB: %s/%s", database_name, CONTAINER_NAME)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Stop polling and close connections."""
        for task in list(self._poll_tasks):
            task.cancel()
        if self._poll_tasks:
            await asyncio.gather(*self._poll_tasks, return_exceptions=True)
        if self._client:
            await self._client.close()
            self._client = None
        if self._credential:
            await self._credential.close()
            self._credential = None
        self._container = None

    async def create_record(self, payload: dict) -> str:
        body = {k: v for k, v in payload.items() if v is not SERVER_TIMESTAMP}
        body["id"] = str(uuid.uuid4())
        result = await self._container.create_item(body=body)
        logger.info("Created incident %s", result["id"])
        return result["id"]

    async def _fetch_snapshot(self) -> list[dict]:
        records = []
        async for item in self._container.query_items(query="SELECT * FROM c ORDER BY c._ts DESC"):
            item.setdefault(ORDER_FIELD, item.get("_ts"))
            records.append(item)
        return records

    async def _poll(self, on_snapshot: SnapshotCallback, on_error: ErrorCallback) -> None:
        fingerprint = None
        failing = False
        while True:
            try:
                records = await self._fetch_snapshot()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                # Report once per outage, keep polling until the store comes back
                if not failing:
                    logger.warning("Cosmos DB poll failed: %s", exc)
                    self._notify(on_error, SubscriptionError(f"Live updates unavailable: {exc}"))
                failing = True
            else:
                current = tuple((r["id"], r.get("_etag")) for r in records)
                if failing or current != fingerprint:
                    fingerprint = current
                    self._notify(on_snapshot, records)
                failing = False
            await asyncio.sleep(self._poll_interval)

    @staticmethod
    def _notify(callback: Callable, value) -> None:
        # A failing subscriber must not end the poll loop
        try:
            callback(value)
        except Exception:
            logger.exception("Incident channel callback failed")

    def subscribe(
        self,
        order_by: str,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback,
    ) -> _PollingSubscription:
        if self._container is None:
            raise SubscriptionError("Cosmos DB collection is not connected")
        task = asyncio.get_running_loop().create_task(self._poll(on_snapshot, on_error))
        self._poll_tasks.add(task)
        task.add_done_callback(self._poll_tasks.discard)
        return _PollingSubscription(task)


def open_collection() -> InMemoryCollection | CosmosCollection:
    """Pick the Cosmos DB collection when configured, else in-memory.

    The returned object must be entered with ``async with``.
    """
    load_dotenv()
    if os.getenv("COSMOS_ENDPOINT"):
        return CosmosCollection()
    logger.warning("No COSMOS_ENDPOINT set — using in-memory incident collection (dev only)")
    return InMemoryCollection()
