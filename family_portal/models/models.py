"""SQLAlchemy ORM Models for the family portal.

Every reviewable item lives in its own table but shares the status and audit
columns of ``PendingRequestMixin``.
"""

from datetime import date, datetime
from enum import Enum as PyEnum
from uuid import UUID

from sqlalchemy import (
    Boolean,
    Enum,
    Index,
    Integer,
    String,
    Text,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, declared_attr, mapped_column

from .base import Base, TimestampMixin, UserId, UUIDMixin


# =============================================================================
# ENUMS
# =============================================================================


class RequestStatus(str, PyEnum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"

    @property
    def is_terminal(self) -> bool:
        return self is not RequestStatus.PENDING


class RequestKind(str, PyEnum):
    """Closed set of reviewable request kinds."""
    FAMILY_MEMBER = "family_member"
    MEMBER = "member"
    GALLERY = "gallery"
    NOTICE_BOARD = "notice_board"
    EVENT = "event"


class NotificationType(str, PyEnum):
    EVENT = "event"
    EVENT_INVITATION = "event_invitation"
    NOTICE_BOARD = "notice_board"
    GALLERY = "gallery"
    SYSTEM = "system"

    # Admin-directed: a new request is waiting
    FAMILY_MEMBER_REQUEST = "family_member_request"
    MEMBER_REQUEST = "member_request"
    GALLERY_REQUEST = "gallery_request"
    NOTICE_BOARD_REQUEST = "notice_board_request"
    EVENT_REQUEST = "event_request"

    # Requester-directed: a decision was made
    FAMILY_MEMBER_APPROVED = "family_member_approved"
    FAMILY_MEMBER_DECLINED = "family_member_declined"
    MEMBER_APPROVED = "member_approved"
    MEMBER_DECLINED = "member_declined"
    GALLERY_APPROVED = "gallery_approved"
    GALLERY_DECLINED = "gallery_declined"
    NOTICE_BOARD_APPROVED = "notice_board_approved"
    NOTICE_BOARD_DECLINED = "notice_board_declined"
    EVENT_APPROVED = "event_approved"
    EVENT_DECLINED = "event_declined"

    @classmethod
    def for_request(cls, kind: RequestKind) -> "NotificationType":
        return cls(f"{kind.value}_request")

    @classmethod
    def for_decision(cls, kind: RequestKind, status: RequestStatus) -> "NotificationType":
        suffix = "approved" if status == RequestStatus.APPROVED else "declined"
        return cls(f"{kind.value}_{suffix}")


def _enum_values(enum_cls):
    return [e.value for e in enum_cls]


# =============================================================================
# USERS (database identity backend)
# =============================================================================


class User(Base):
    """Identity record with free-form metadata (``is_admin``, ``is_publisher``...)."""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(UserId, primary_key=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    user_metadata: Mapped[dict] = mapped_column(default=dict, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), nullable=False
    )


# =============================================================================
# PENDING REQUESTS
# =============================================================================


class PendingRequestMixin(UUIDMixin, TimestampMixin):
    """Status and audit columns shared by every reviewable request."""

    status: Mapped[RequestStatus] = mapped_column(
        Enum(RequestStatus, name="request_status", values_callable=_enum_values),
        default=RequestStatus.PENDING,
        nullable=False,
    )
    requested_by: Mapped[str | None] = mapped_column(UserId, nullable=True)
    reviewed_by: Mapped[str | None] = mapped_column(UserId, nullable=True)
    admin_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    @declared_attr.directive
    def __table_args__(cls):
        return (
            Index(f"idx_{cls.__tablename__}_status", "status"),
            Index(f"idx_{cls.__tablename__}_requested_by", "requested_by"),
        )

    @property
    def display_name(self) -> str:
        return "Untitled"

    @property
    def image_url(self) -> str | None:
        return None


class FamilyMemberRequest(Base, PendingRequestMixin):
    """Request to add a person to the family tree."""

    __tablename__ = "family_member_requests"

    first_name: Mapped[str] = mapped_column(String(120), nullable=False)
    last_name: Mapped[str] = mapped_column(String(120), default="", nullable=False)
    gender: Mapped[str] = mapped_column(String(20), nullable=False)
    date_of_birth: Mapped[date | None] = mapped_column(nullable=True)
    picture_link: Mapped[str | None] = mapped_column(String(500))
    marital_status: Mapped[str | None] = mapped_column(Text)
    fathers_first_name: Mapped[str | None] = mapped_column(String(120))
    fathers_last_name: Mapped[str | None] = mapped_column(String(120))
    mothers_first_name: Mapped[str | None] = mapped_column(String(120))
    mothers_last_name: Mapped[str | None] = mapped_column(String(120))
    spouses_first_name: Mapped[str | None] = mapped_column(String(120))
    spouses_last_name: Mapped[str | None] = mapped_column(String(120))
    order_of_birth: Mapped[int | None] = mapped_column(Integer)
    order_of_marriage: Mapped[int | None] = mapped_column(Integer)

    @property
    def display_name(self) -> str:
        return " ".join(p for p in (self.first_name, self.last_name) if p)

    @property
    def image_url(self) -> str | None:
        return self.picture_link


class MemberRequest(Base, PendingRequestMixin):
    """Account request from someone asking to join the community."""

    __tablename__ = "profiles"

    first_name: Mapped[str] = mapped_column(String(120), nullable=False)
    last_name: Mapped[str] = mapped_column(String(120), default="", nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    phone_number: Mapped[str | None] = mapped_column(String(40))
    note: Mapped[str | None] = mapped_column(Text)

    @property
    def display_name(self) -> str:
        return " ".join(p for p in (self.first_name, self.last_name) if p)


class GalleryItem(Base, PendingRequestMixin):
    """Uploaded photo awaiting publication in the gallery."""

    __tablename__ = "galleries"

    url: Mapped[str] = mapped_column(String(1000), nullable=False)
    caption: Mapped[str | None] = mapped_column(Text)
    file_name: Mapped[str | None] = mapped_column(String(255))
    file_size: Mapped[int | None] = mapped_column(Integer)
    mime_type: Mapped[str | None] = mapped_column(String(100))
    album_id: Mapped[str | None] = mapped_column(String(64))

    @property
    def display_name(self) -> str:
        return self.caption or self.file_name or "Untitled"

    @property
    def image_url(self) -> str | None:
        return self.url


class NoticeBoardPost(Base, PendingRequestMixin):
    """Notice submitted for the community notice board."""

    __tablename__ = "notice_boards"

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    tags: Mapped[list[str]] = mapped_column(default=list, nullable=False)
    pinned: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    image: Mapped[str | None] = mapped_column(String(1000))

    @property
    def display_name(self) -> str:
        return self.title

    @property
    def image_url(self) -> str | None:
        return self.image


class EventRequest(Base, PendingRequestMixin):
    """Proposed family event awaiting publication."""

    __tablename__ = "events"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    event_date: Mapped[datetime | None] = mapped_column(nullable=True)
    location: Mapped[str | None] = mapped_column(String(255))
    image: Mapped[str | None] = mapped_column(String(1000))

    @property
    def display_name(self) -> str:
        return self.name

    @property
    def image_url(self) -> str | None:
        return self.image


# =============================================================================
# CANONICAL RECORDS
# =============================================================================


class FamilyTreeMember(Base, UUIDMixin):
    """Canonical, publicly visible family-tree entry."""

    __tablename__ = "family_tree"

    first_name: Mapped[str] = mapped_column(String(120), nullable=False)
    last_name: Mapped[str] = mapped_column(String(120), default="", nullable=False)
    gender: Mapped[str] = mapped_column(String(20), nullable=False)
    date_of_birth: Mapped[date | None] = mapped_column(nullable=True)
    picture_link: Mapped[str | None] = mapped_column(String(500))
    marital_status: Mapped[str | None] = mapped_column(Text)
    fathers_first_name: Mapped[str | None] = mapped_column(String(120))
    fathers_last_name: Mapped[str | None] = mapped_column(String(120))
    mothers_first_name: Mapped[str | None] = mapped_column(String(120))
    mothers_last_name: Mapped[str | None] = mapped_column(String(120))
    spouses_first_name: Mapped[str | None] = mapped_column(String(120))
    spouses_last_name: Mapped[str | None] = mapped_column(String(120))
    order_of_birth: Mapped[int | None] = mapped_column(Integer)
    order_of_marriage: Mapped[int | None] = mapped_column(Integer)
    # One canonical record per approved request
    source_request_id: Mapped[UUID | None] = mapped_column(
        Uuid(as_uuid=True), unique=True, nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(nullable=False)


# =============================================================================
# NOTIFICATIONS
# =============================================================================


class Notification(Base, UUIDMixin):
    """In-app notification owned by its recipient."""

    __tablename__ = "notifications"

    user_id: Mapped[str] = mapped_column(UserId, nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[NotificationType] = mapped_column(
        Enum(NotificationType, name="notification_type", values_callable=_enum_values),
        nullable=False,
    )
    # Weak reference; may dangle once the source request is deleted
    resource_id: Mapped[str | None] = mapped_column(String(64))
    image: Mapped[str | None] = mapped_column(String(1000))
    read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(nullable=False)
    updated_at: Mapped[datetime | None] = mapped_column(nullable=True)

    __table_args__ = (
        Index("idx_notifications_user_created", "user_id", "created_at"),
        Index("idx_notifications_user_unread", "user_id", "read"),
    )
