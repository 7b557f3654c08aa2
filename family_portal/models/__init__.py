"""SQLAlchemy ORM Models for the family portal."""

from .base import Base, TimestampMixin, UUIDMixin
from .models import (
    # Enums
    NotificationType,
    RequestKind,
    RequestStatus,
    # Identity
    User,
    # Requests
    EventRequest,
    FamilyMemberRequest,
    GalleryItem,
    MemberRequest,
    NoticeBoardPost,
    PendingRequestMixin,
    # Canonical records
    FamilyTreeMember,
    # Notifications
    Notification,
)

__all__ = [
    # Base
    "Base",
    "UUIDMixin",
    "TimestampMixin",
    # Enums
    "RequestStatus",
    "RequestKind",
    "NotificationType",
    # Identity
    "User",
    # Requests
    "PendingRequestMixin",
    "FamilyMemberRequest",
    "MemberRequest",
    "GalleryItem",
    "NoticeBoardPost",
    "EventRequest",
    # Canonical records
    "FamilyTreeMember",
    # Notifications
    "Notification",
]
