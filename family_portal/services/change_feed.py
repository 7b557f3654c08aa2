"""In-process real-time change feed.

Stores publish a ``ChangeEvent`` after each committed insert/update/delete;
subscribers register per table with an event mask and an optional equality
filter (e.g. ``{"user_id": "u1"}``), mirroring postgres-changes channels.
Delivery is synchronous and in publish order, so per-subscriber ordering
follows commit order.
"""

import itertools
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class ChangeType(str, Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


ALL_CHANGES = frozenset(ChangeType)


@dataclass(frozen=True)
class ChangeEvent:
    """Payload delivered to subscribers."""
    event_type: ChangeType
    table: str
    new: dict[str, Any] | None = None
    old: dict[str, Any] | None = None

    @property
    def record(self) -> dict[str, Any]:
        return self.new if self.new is not None else (self.old or {})


ChangeCallback = Callable[[ChangeEvent], None]


@dataclass(frozen=True)
class SubscriptionHandle:
    id: int
    table: str


@dataclass
class _Listener:
    handle: SubscriptionHandle
    events: frozenset[ChangeType]
    callback: ChangeCallback
    filter: dict[str, Any] = field(default_factory=dict)

    def matches(self, event: ChangeEvent) -> bool:
        if event.event_type not in self.events:
            return False
        record = event.record
        return all(record.get(k) == v for k, v in self.filter.items())


class ChangeFeed:
    """Table-scoped publish/subscribe hub."""

    def __init__(self):
        self._listeners: dict[int, _Listener] = {}
        self._ids = itertools.count(1)

    def subscribe(
        self,
        table: str,
        events: Iterable[ChangeType] | None = None,
        callback: ChangeCallback | None = None,
        filter: dict[str, Any] | None = None,
    ) -> SubscriptionHandle:
        if callback is None:
            raise TypeError("callback is required")
        handle = SubscriptionHandle(id=next(self._ids), table=table)
        self._listeners[handle.id] = _Listener(
            handle=handle,
            events=frozenset(events) if events else ALL_CHANGES,
            callback=callback,
            filter=dict(filter or {}),
        )
        logger.debug(f"Subscribed #{handle.id} to {table}")
        return handle

    def unsubscribe(self, handle: SubscriptionHandle | None) -> None:
        """Remove a subscription; unknown or already removed handles are ignored."""
        if handle is None:
            return
        if self._listeners.pop(handle.id, None) is not None:
            logger.debug(f"Unsubscribed #{handle.id} from {handle.table}")

    def publish(self, event: ChangeEvent) -> None:
        # Snapshot: callbacks may unsubscribe while we iterate
        for listener in list(self._listeners.values()):
            if listener.handle.table != event.table or not listener.matches(event):
                continue
            try:
                listener.callback(event)
            except Exception as e:
                logger.error(
                    f"Change feed callback #{listener.handle.id} failed on "
                    f"{event.event_type.value} {event.table}: {e}"
                )

    def subscriber_count(self, table: str | None = None) -> int:
        if table is None:
            return len(self._listeners)
        return sum(1 for l in self._listeners.values() if l.handle.table == table)
