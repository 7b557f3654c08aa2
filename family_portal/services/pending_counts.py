"""
Pending-Count Aggregator.

Keeps a ``{kind: pending count}`` snapshot for admin dashboards. Every insert,
update or delete on a tracked table schedules one recomputation after a
debounce window; bursts of changes collapse into a single refetch.

Counts run concurrently, one session per kind. When some kinds fail, the
snapshot keeps their previous values and the failures are reported in
``PendingCounts.errors``.
"""

import asyncio
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..models import RequestKind, RequestStatus
from .change_feed import ALL_CHANGES, ChangeEvent, ChangeFeed, SubscriptionHandle
from .kinds import get_kind_definition
from .request_store import RequestStore

logger = logging.getLogger(__name__)

TRACKED_KINDS: tuple[RequestKind, ...] = (
    RequestKind.GALLERY,
    RequestKind.NOTICE_BOARD,
    RequestKind.EVENT,
    RequestKind.MEMBER,
    RequestKind.FAMILY_MEMBER,
)


@dataclass
class PendingCounts:
    """Snapshot of pending requests per kind."""
    counts: dict[RequestKind, int] = field(default_factory=dict)
    errors: dict[RequestKind, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.errors

    @property
    def total(self) -> int:
        return sum(self.counts.values())

    def as_dict(self) -> dict[str, int]:
        return {kind.value: count for kind, count in self.counts.items()}


class PendingCountAggregator:
    """Debounced live pending counts over the change feed."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        feed: ChangeFeed,
        debounce_ms: int = 300,
        kinds: Iterable[RequestKind] = TRACKED_KINDS,
        on_update: Callable[[PendingCounts], None] | None = None,
    ):
        self._session_factory = session_factory
        self._feed = feed
        self.debounce_ms = debounce_ms
        self.kinds = tuple(kinds)
        self.on_update = on_update

        self.snapshot = PendingCounts(counts={kind: 0 for kind in self.kinds})
        self._handles: list[SubscriptionHandle] = []
        self._scheduled: asyncio.Task | None = None
        self._closed = False

    # =========================================================================
    # FETCHING
    # =========================================================================

    async def _count(self, kind: RequestKind) -> int:
        async with self._session_factory() as session:
            return await RequestStore(session).count(kind, RequestStatus.PENDING)

    async def fetch_counts(self) -> PendingCounts:
        """Count pending requests of every tracked kind and replace the snapshot."""
        results = await asyncio.gather(
            *(self._count(kind) for kind in self.kinds),
            return_exceptions=True,
        )

        counts: dict[RequestKind, int] = {}
        errors: dict[RequestKind, str] = {}
        for kind, result in zip(self.kinds, results):
            if isinstance(result, BaseException):
                if isinstance(result, asyncio.CancelledError):
                    raise result
                logger.error(f"Failed to count pending {kind.value} requests: {result}")
                errors[kind] = str(result)
                counts[kind] = self.snapshot.counts.get(kind, 0)
            else:
                counts[kind] = result

        self.snapshot = PendingCounts(counts=counts, errors=errors)
        if self.on_update is not None and not self._closed:
            try:
                self.on_update(self.snapshot)
            except Exception as e:
                logger.error(f"Pending count listener failed: {e}")
        return self.snapshot

    # =========================================================================
    # LIVE UPDATES
    # =========================================================================

    async def start(self) -> PendingCounts:
        """Subscribe to every tracked table and load the initial snapshot."""
        if self._closed:
            raise RuntimeError("Aggregator is closed")
        if not self._handles:
            for kind in self.kinds:
                self._handles.append(
                    self._feed.subscribe(
                        get_kind_definition(kind).table,
                        events=ALL_CHANGES,
                        callback=self._make_listener(kind),
                    )
                )
        return await self.fetch_counts()

    def _make_listener(self, kind: RequestKind) -> Callable[[ChangeEvent], None]:
        def listener(event: ChangeEvent) -> None:
            self.on_change(kind)
        return listener

    def on_change(self, kind: RequestKind | None = None) -> None:
        """Restart the debounce window; the refetch covers every kind."""
        if self._closed:
            return
        if self._scheduled is not None and not self._scheduled.done():
            self._scheduled.cancel()
        self._scheduled = asyncio.get_running_loop().create_task(self._debounced_fetch())

    async def _debounced_fetch(self) -> None:
        await asyncio.sleep(self.debounce_ms / 1000)
        if self._closed:
            return
        await self.fetch_counts()

    @property
    def pending_refresh(self) -> bool:
        return self._scheduled is not None and not self._scheduled.done()

    async def close(self) -> None:
        """Unsubscribe and cancel any scheduled refetch. Safe to call twice."""
        if self._closed:
            return
        self._closed = True
        for handle in self._handles:
            self._feed.unsubscribe(handle)
        self._handles.clear()

        task, self._scheduled = self._scheduled, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
