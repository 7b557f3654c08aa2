"""Notification Fan-out Service.

Turns request lifecycle events into in-app notification records:

- a new submission notifies every admin (``{kind}_request``)
- a decision notifies the submitter (``{kind}_approved`` / ``{kind}_declined``)

One record is written per recipient and the whole batch commits in a single
transaction. Inserted records are published on the change feed so connected
clients receive them through ``subscribe``.
"""

import asyncio
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any
from uuid import UUID

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.clock import Clock, utcnow
from ..models import (
    Notification,
    NotificationType,
    PendingRequestMixin,
    RequestKind,
    RequestStatus,
)
from .admin_directory import AdminDirectory
from .change_feed import ChangeEvent, ChangeFeed, ChangeType, SubscriptionHandle
from .errors import DirectoryError, NotificationDeliveryError
from .kinds import get_kind_definition, kind_for_table
from .request_store import row_to_dict

logger = logging.getLogger(__name__)

NOTIFICATIONS_TABLE = Notification.__tablename__


# =============================================================================
# COPY
# =============================================================================

# What the requester calls the thing they submitted
SUBJECT_NOUNS = {
    RequestKind.FAMILY_MEMBER: "family member request",
    RequestKind.MEMBER: "membership request",
    RequestKind.GALLERY: "gallery item",
    RequestKind.NOTICE_BOARD: "notice",
    RequestKind.EVENT: "event",
}

# Kinds whose approval publishes content to everyone
PUBLISHED_KINDS = {RequestKind.GALLERY, RequestKind.NOTICE_BOARD, RequestKind.EVENT}

ADMIN_SECTIONS = {
    RequestKind.FAMILY_MEMBER: "family member requests",
    RequestKind.MEMBER: "member requests",
    RequestKind.GALLERY: "gallery requests",
    RequestKind.NOTICE_BOARD: "notice board requests",
    RequestKind.EVENT: "event requests",
}


def request_copy(kind: RequestKind, request: PendingRequestMixin) -> tuple[str, str]:
    """Title/body for the admin-directed "new request" notification."""
    label = get_kind_definition(kind).label
    return (
        f"New {label}",
        f'"{request.display_name}" has been submitted for approval. '
        f"Please review it in the {ADMIN_SECTIONS[kind]} section.",
    )


def decision_copy(
    kind: RequestKind,
    status: RequestStatus,
    request: PendingRequestMixin,
) -> tuple[str, str]:
    """Title/body for the requester-directed decision notification."""
    label = get_kind_definition(kind).label
    noun = SUBJECT_NOUNS[kind]
    name = request.display_name
    if status == RequestStatus.APPROVED:
        if kind in PUBLISHED_KINDS:
            body = f'Your {noun} "{name}" has been approved and is now visible to everyone.'
        else:
            body = f'Your {noun} "{name}" has been approved.'
        return f"{label} Approved", body
    return (
        f"{label} Declined",
        f'Your {noun} "{name}" has been declined. '
        "Please check if it meets our community guidelines.",
    )


# =============================================================================
# ROUTING
# =============================================================================

# type -> (admin route, member route)
NOTIFICATION_ROUTES: dict[NotificationType, tuple[str, str]] = {
    NotificationType.FAMILY_MEMBER_REQUEST: ("/admin/family-member-requests", "/dashboard"),
    NotificationType.FAMILY_MEMBER_APPROVED: ("/admin/family-tree", "/dashboard/family-tree"),
    NotificationType.FAMILY_MEMBER_DECLINED: ("/admin/family-tree", "/dashboard"),
    NotificationType.MEMBER_REQUEST: ("/admin/member-requests", "/dashboard"),
    NotificationType.MEMBER_APPROVED: ("/admin/members", "/dashboard"),
    NotificationType.MEMBER_DECLINED: ("/admin/members", "/dashboard"),
    NotificationType.GALLERY_REQUEST: ("/admin/gallery-requests", "/dashboard"),
    NotificationType.GALLERY_APPROVED: ("/admin/gallery", "/dashboard/gallery"),
    NotificationType.GALLERY_DECLINED: ("/admin/gallery", "/dashboard/gallery"),
    NotificationType.NOTICE_BOARD_REQUEST: ("/admin/notice-board-requests", "/dashboard"),
    NotificationType.NOTICE_BOARD_APPROVED: ("/admin/notice-board", "/dashboard/notice-board"),
    NotificationType.NOTICE_BOARD_DECLINED: ("/admin/notice-board", "/dashboard/notice-board"),
    NotificationType.EVENT_REQUEST: ("/admin/event-requests", "/dashboard"),
    NotificationType.EVENT_APPROVED: ("/admin/events", "/dashboard/events"),
    NotificationType.EVENT_DECLINED: ("/admin/events", "/dashboard/events"),
    NotificationType.EVENT_INVITATION: ("/admin/events", "/dashboard/invitations"),
    NotificationType.EVENT: ("/admin/events", "/dashboard/events"),
}

ACTION_TEXT: dict[NotificationType, str] = {
    NotificationType.FAMILY_MEMBER_REQUEST: "Review Request",
    NotificationType.MEMBER_REQUEST: "Review Request",
    NotificationType.GALLERY_REQUEST: "Review Gallery",
    NotificationType.GALLERY_APPROVED: "View Gallery",
    NotificationType.GALLERY_DECLINED: "View Gallery",
    NotificationType.NOTICE_BOARD_REQUEST: "Review Notice",
    NotificationType.NOTICE_BOARD_APPROVED: "View Notice",
    NotificationType.NOTICE_BOARD_DECLINED: "View Notice",
    NotificationType.EVENT_REQUEST: "Review Event",
    NotificationType.EVENT_APPROVED: "View Event",
    NotificationType.EVENT_DECLINED: "View Event",
    NotificationType.EVENT_INVITATION: "View Event",
    NotificationType.EVENT: "View Event",
    NotificationType.FAMILY_MEMBER_APPROVED: "View Family Tree",
}


def notification_route(notification_type: NotificationType | str, is_admin: bool) -> str:
    """Where a client should navigate when the notification is opened."""
    routes = NOTIFICATION_ROUTES.get(NotificationType(notification_type))
    if routes is None:
        return "/admin" if is_admin else "/dashboard"
    return routes[0] if is_admin else routes[1]


def notification_action_text(notification_type: NotificationType | str) -> str:
    return ACTION_TEXT.get(NotificationType(notification_type), "View")


# =============================================================================
# SUBSCRIPTIONS
# =============================================================================


class NotificationSubscription:
    """
    Push channel of notifications inserted for one user.

    Iterate with ``async for`` to receive records (as column dicts) in
    insertion order, or pass ``on_insert`` for callback delivery.
    ``unsubscribe``/``close`` are idempotent.
    """

    _CLOSED = object()

    def __init__(
        self,
        feed: ChangeFeed,
        user_id: str,
        on_insert: Callable[[dict[str, Any]], None] | None = None,
    ):
        self.user_id = user_id
        self._feed = feed
        self._on_insert = on_insert
        self._queue: asyncio.Queue = asyncio.Queue()
        self._handle: SubscriptionHandle | None = feed.subscribe(
            NOTIFICATIONS_TABLE,
            events=[ChangeType.INSERT],
            callback=self._deliver,
            filter={"user_id": user_id},
        )

    @property
    def active(self) -> bool:
        return self._handle is not None

    def _deliver(self, event: ChangeEvent) -> None:
        if self._handle is None:
            return
        record = dict(event.new or {})
        if self._on_insert is not None:
            self._on_insert(record)
        else:
            self._queue.put_nowait(record)

    def unsubscribe(self) -> None:
        if self._handle is None:
            return
        self._feed.unsubscribe(self._handle)
        self._handle = None
        # Wake any consumer blocked in __anext__
        self._queue.put_nowait(self._CLOSED)

    def close(self) -> None:
        self.unsubscribe()

    def __aiter__(self):
        return self

    async def __anext__(self) -> dict[str, Any]:
        if self._handle is None and self._queue.empty():
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is self._CLOSED:
            raise StopAsyncIteration
        return item


# =============================================================================
# SERVICE
# =============================================================================


@dataclass
class NotificationContent:
    """Fields shared by every record of one fan-out batch."""
    title: str
    body: str
    type: NotificationType
    resource_id: str | None = None
    image: str | None = None


class NotificationService:
    """Creates, queries and streams in-app notifications."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        directory: AdminDirectory,
        feed: ChangeFeed,
        clock: Clock = utcnow,
    ):
        self._session_factory = session_factory
        self.directory = directory
        self.feed = feed
        self._clock = clock

    # =========================================================================
    # FAN-OUT
    # =========================================================================

    @staticmethod
    def _kind_of(request: PendingRequestMixin) -> RequestKind:
        kind = kind_for_table(request.__tablename__)
        if kind is None:
            raise ValueError(f"{type(request).__name__} is not a reviewable request")
        return kind

    async def notify_admins(
        self,
        event_type: NotificationType,
        request: PendingRequestMixin,
    ) -> list[Notification]:
        """
        Notify every admin about a request.

        A directory failure or an empty admin set is logged and results in
        no records; persistence failures raise ``NotificationDeliveryError``.
        """
        try:
            admin_ids = await self.directory.list_admin_ids()
        except DirectoryError as e:
            logger.error(f"Skipping admin notification for {request.id}: {e}")
            return []

        if not admin_ids:
            logger.warning(f"No admins to notify about {request.id}")
            return []

        title, body = request_copy(self._kind_of(request), request)
        content = NotificationContent(
            title=title,
            body=body,
            type=NotificationType(event_type),
            resource_id=str(request.id),
            image=request.image_url,
        )
        return await self.deliver(sorted(admin_ids), content)

    async def notify_requester(
        self,
        event_type: NotificationType,
        request: PendingRequestMixin,
    ) -> list[Notification]:
        """Notify the submitter of a decision; anonymous requests get nothing."""
        if not request.requested_by:
            logger.debug(f"Request {request.id} has no submitter; nothing to notify")
            return []

        kind = self._kind_of(request)
        title, body = decision_copy(kind, RequestStatus(request.status), request)
        content = NotificationContent(
            title=title,
            body=body,
            type=NotificationType(event_type),
            resource_id=str(request.id),
            image=request.image_url,
        )
        return await self.deliver([request.requested_by], content)

    async def deliver(
        self,
        recipients: Iterable[str],
        content: NotificationContent,
    ) -> list[Notification]:
        """Write one record per recipient in a single transaction."""
        now = self._clock()
        notifications = [
            Notification(
                user_id=user_id,
                title=content.title,
                body=content.body,
                type=content.type,
                resource_id=content.resource_id,
                image=content.image,
                read=False,
                created_at=now,
            )
            for user_id in recipients
        ]
        if not notifications:
            return []

        try:
            async with self._session_factory() as session:
                session.add_all(notifications)
                await session.commit()
        except SQLAlchemyError as e:
            raise NotificationDeliveryError(
                f"Failed to store {len(notifications)} {content.type.value} notification(s): {e}"
            ) from e

        for notification in notifications:
            self.feed.publish(
                ChangeEvent(
                    event_type=ChangeType.INSERT,
                    table=NOTIFICATIONS_TABLE,
                    new=row_to_dict(notification),
                )
            )

        logger.info(
            f"Delivered {len(notifications)} {content.type.value} notification(s)"
        )
        return notifications

    # =========================================================================
    # QUERIES
    # =========================================================================

    async def fetch_notifications(
        self,
        user_id: str,
        unread_only: bool = False,
        limit: int | None = None,
    ) -> list[Notification]:
        """A user's notifications, newest first."""
        query = (
            select(Notification)
            .where(Notification.user_id == user_id)
            .order_by(Notification.created_at.desc())
        )
        if unread_only:
            query = query.where(Notification.read.is_(False))
        if limit is not None:
            query = query.limit(limit)

        async with self._session_factory() as session:
            result = await session.execute(query)
            return list(result.scalars().all())

    async def get_notification(
        self,
        notification_id: UUID,
        user_id: str | None = None,
    ) -> Notification | None:
        """One notification, optionally only if ``user_id`` is its recipient."""
        query = select(Notification).where(Notification.id == notification_id)
        if user_id is not None:
            query = query.where(Notification.user_id == user_id)

        async with self._session_factory() as session:
            result = await session.execute(query)
            return result.scalar_one_or_none()

    async def unread_count(self, user_id: str) -> int:
        async with self._session_factory() as session:
            result = await session.execute(
                select(func.count())
                .select_from(Notification)
                .where(Notification.user_id == user_id, Notification.read.is_(False))
            )
            return result.scalar_one()

    # =========================================================================
    # READ STATE
    # =========================================================================

    async def mark_as_read(
        self,
        notification_id: UUID,
        user_id: str | None = None,
    ) -> bool:
        """
        Set ``read`` to true. Returns whether a row was flipped; calling it on
        an already-read notification is a no-op.
        """
        query = update(Notification).where(
            Notification.id == notification_id,
            Notification.read.is_(False),
        )
        if user_id is not None:
            query = query.where(Notification.user_id == user_id)

        async with self._session_factory() as session:
            result = await session.execute(
                query.values(read=True, updated_at=self._clock())
                .execution_options(synchronize_session=False)
            )
            await session.commit()
        return result.rowcount > 0

    async def mark_all_as_read(self, user_id: str) -> int:
        """Flip every unread notification of the user; returns how many changed."""
        async with self._session_factory() as session:
            result = await session.execute(
                update(Notification)
                .where(Notification.user_id == user_id, Notification.read.is_(False))
                .values(read=True, updated_at=self._clock())
                .execution_options(synchronize_session=False)
            )
            await session.commit()
        if result.rowcount:
            logger.debug(f"Marked {result.rowcount} notification(s) read for {user_id}")
        return result.rowcount

    async def delete_notification(self, notification_id: UUID, user_id: str) -> bool:
        """Delete a notification; only its recipient may do so."""
        async with self._session_factory() as session:
            result = await session.execute(
                delete(Notification)
                .where(Notification.id == notification_id, Notification.user_id == user_id)
                .execution_options(synchronize_session=False)
            )
            await session.commit()

        deleted = result.rowcount > 0
        if deleted:
            self.feed.publish(
                ChangeEvent(
                    event_type=ChangeType.DELETE,
                    table=NOTIFICATIONS_TABLE,
                    old={"id": notification_id, "user_id": user_id},
                )
            )
        return deleted

    # =========================================================================
    # REAL-TIME
    # =========================================================================

    def subscribe(self, user_id: str) -> NotificationSubscription:
        """Async iterator over notifications inserted for ``user_id``."""
        return NotificationSubscription(self.feed, user_id)

    def subscribe_to_notifications(
        self,
        user_id: str,
        on_insert: Callable[[dict[str, Any]], None],
    ) -> NotificationSubscription:
        """Callback form of ``subscribe``."""
        return NotificationSubscription(self.feed, user_id, on_insert=on_insert)
