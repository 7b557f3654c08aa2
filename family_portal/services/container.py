"""Composition root: wires services from settings and a session factory."""

import logging
from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.clock import Clock, utcnow
from ..core.config import Settings
from .admin_directory import AdminDirectory
from .approval_engine import ApprovalEngine
from .change_feed import ChangeFeed
from .identity import DatabaseIdentityProvider, IdentityProvider, SupabaseIdentityProvider
from .notifications import NotificationService
from .pending_counts import PendingCountAggregator, PendingCounts
from .storage import FileStorage, SupabaseStorage

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Long-lived service graph shared by all requests of one app instance."""
    settings: Settings
    session_factory: async_sessionmaker[AsyncSession]
    feed: ChangeFeed
    identity: IdentityProvider
    directory: AdminDirectory
    notifications: NotificationService
    engine: ApprovalEngine
    storage: FileStorage | None = None
    clock: Clock = utcnow

    def pending_counts(self, on_update=None) -> PendingCountAggregator:
        """New aggregator for one dashboard session; the caller must close it."""
        return PendingCountAggregator(
            self.session_factory,
            self.feed,
            debounce_ms=self.settings.pending_count_debounce_ms,
            on_update=on_update,
        )

    async def fetch_pending_counts(self) -> PendingCounts:
        aggregator = self.pending_counts()
        try:
            return await aggregator.fetch_counts()
        finally:
            await aggregator.close()

    async def close(self) -> None:
        await self.identity.close()
        if self.storage is not None:
            await self.storage.close()


def build_services(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    identity: IdentityProvider | None = None,
    storage: FileStorage | None = None,
    clock: Clock = utcnow,
) -> Services:
    """Build the service graph; explicit adapters override the configured ones."""
    if identity is None:
        if settings.identity_backend == "supabase":
            if not settings.supabase_enabled:
                raise RuntimeError(
                    "identity_backend=supabase requires SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY"
                )
            identity = SupabaseIdentityProvider(
                settings.supabase_url,
                settings.supabase_service_role_key,
                timeout=settings.http_timeout_seconds,
            )
        else:
            identity = DatabaseIdentityProvider(session_factory)

    if storage is None and settings.supabase_enabled:
        storage = SupabaseStorage(
            settings.supabase_url,
            settings.supabase_service_role_key,
            settings.storage_bucket,
            timeout=settings.http_timeout_seconds,
        )

    feed = ChangeFeed()
    directory = AdminDirectory(
        identity,
        cache_ttl_seconds=settings.admin_cache_ttl_seconds,
        clock=clock,
    )
    notifications = NotificationService(session_factory, directory, feed, clock=clock)
    engine = ApprovalEngine(
        session_factory,
        directory,
        notifications,
        feed,
        storage=storage,
        clock=clock,
    )
    logger.info(
        f"Services ready (identity={type(identity).__name__}, "
        f"storage={type(storage).__name__ if storage else 'disabled'})"
    )
    return Services(
        settings=settings,
        session_factory=session_factory,
        feed=feed,
        identity=identity,
        directory=directory,
        notifications=notifications,
        engine=engine,
        storage=storage,
        clock=clock,
    )
