"""In-process change feed.

Writers publish ``(table, row_id, event)`` after their transaction commits.
Events never carry row data: subscribers re-fetch whatever they display, so
duplicate, reordered or dropped notifications cannot corrupt client state.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, List, Optional, Set, Union

from inphrone.core.exceptions import ServiceError
from inphrone.core.logger import get_logger
from inphrone.services.metrics import FEED_SUBSCRIBERS

logger = get_logger(__name__)

RowId = Union[int, str]


class FeedDisconnected(ServiceError):
    """Raised to subscribers when the feed connection drops."""


@dataclass(frozen=True, slots=True)
class ChangeEvent:
    table: str
    row_id: Optional[RowId]
    event: str

    def to_dict(self) -> Dict[str, object]:
        return {"table": self.table, "row_id": self.row_id, "event": self.event}


Listener = Callable[[ChangeEvent], Awaitable[None]]

_DISCONNECTED = object()


class Subscription:
    """A per-table (optionally per-row) channel backed by an asyncio queue."""

    def __init__(self, feed: "ChangeFeed", table: str, row_id: Optional[RowId] = None) -> None:
        self.table = table
        self.row_id = row_id
        self._feed = feed
        self._queue: asyncio.Queue = asyncio.Queue()
        self.closed = False

    def matches(self, event: ChangeEvent) -> bool:
        if event.table != self.table:
            return False
        return self.row_id is None or event.row_id == self.row_id

    def _deliver(self, item: object) -> None:
        if not self.closed:
            self._queue.put_nowait(item)

    async def wait(self, timeout: Optional[float] = None) -> Optional[ChangeEvent]:
        """Wait for the next event. Returns None on timeout.

        Raises:
            FeedDisconnected: the feed dropped while waiting.
        """
        try:
            item = await asyncio.wait_for(self._queue.get(), timeout)
        except asyncio.TimeoutError:
            return None
        if item is _DISCONNECTED:
            raise FeedDisconnected(f"Change feed disconnected ({self.table})")
        return item

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._feed._remove(self)

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class ChangeFeed:
    """Fan-out of row change notifications to subscriptions and listeners."""

    def __init__(self) -> None:
        self._subscriptions: Dict[str, Set[Subscription]] = {}
        self._listeners: List[Listener] = []
        self._pending: Set[asyncio.Task] = set()
        self._connected = True

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def subscriber_count(self) -> int:
        return sum(len(subs) for subs in self._subscriptions.values())

    def subscribe(self, table: str, row_id: Optional[RowId] = None) -> Subscription:
        if not self._connected:
            raise FeedDisconnected("Change feed is not connected")
        subscription = Subscription(self, table, row_id)
        self._subscriptions.setdefault(table, set()).add(subscription)
        FEED_SUBSCRIBERS.inc()
        return subscription

    def _remove(self, subscription: Subscription) -> None:
        subs = self._subscriptions.get(subscription.table)
        if subs and subscription in subs:
            subs.discard(subscription)
            FEED_SUBSCRIBERS.dec()

    def add_listener(self, listener: Listener) -> None:
        """Register a coroutine called for every published event (socket relay)."""
        self._listeners.append(listener)

    def publish(self, table: str, row_id: Optional[RowId], event: str = "UPDATE") -> None:
        """Notify subscribers of a committed change. Dropped while disconnected."""
        if not self._connected:
            logger.debug("Feed offline, dropping %s %s:%s", event, table, row_id)
            return

        change = ChangeEvent(table=table, row_id=row_id, event=event)
        for subscription in list(self._subscriptions.get(table, ())):
            if subscription.matches(change):
                subscription._deliver(change)

        for listener in self._listeners:
            task = asyncio.get_running_loop().create_task(listener(change))
            self._pending.add(task)
            task.add_done_callback(self._listener_done)

    def _listener_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Change feed listener failed", exc_info=task.exception())

    def disconnect(self) -> None:
        """Drop the connection. Every open subscription is told and removed."""
        if not self._connected:
            return
        self._connected = False
        for table, subs in self._subscriptions.items():
            for subscription in list(subs):
                subscription._deliver(_DISCONNECTED)
                subscription.closed = True
                FEED_SUBSCRIBERS.dec()
            subs.clear()
        logger.warning("Change feed disconnected")

    def reconnect(self) -> None:
        if not self._connected:
            self._connected = True
            logger.info("Change feed reconnected")
