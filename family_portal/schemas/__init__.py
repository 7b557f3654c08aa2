"""Pydantic schemas for API request/response validation."""

from .base import (
    ErrorDetail,
    ErrorResponse,
    MessageResponse,
    PortalBaseModel,
    TimestampMixin,
)
from .notifications import (
    AdminListResponse,
    MarkAllReadResponse,
    NotificationListResponse,
    NotificationResponse,
    PendingCountsResponse,
    RoleResponse,
    RoleUpdate,
    UnreadCountResponse,
)
from .requests import (
    BulkTransitionBody,
    BulkTransitionResponse,
    EventRequestCreate,
    FamilyMemberRequestCreate,
    GalleryItemCreate,
    MemberRequestCreate,
    NoticeBoardPostCreate,
    RequestListResponse,
    RequestPayload,
    RequestResponse,
    TransitionBody,
    split_name,
)

__all__ = [
    # Base
    "PortalBaseModel",
    "TimestampMixin",
    "ErrorDetail",
    "ErrorResponse",
    "MessageResponse",
    # Requests
    "RequestPayload",
    "FamilyMemberRequestCreate",
    "MemberRequestCreate",
    "GalleryItemCreate",
    "NoticeBoardPostCreate",
    "EventRequestCreate",
    "TransitionBody",
    "BulkTransitionBody",
    "BulkTransitionResponse",
    "RequestResponse",
    "RequestListResponse",
    "split_name",
    # Notifications & admin
    "NotificationResponse",
    "NotificationListResponse",
    "UnreadCountResponse",
    "MarkAllReadResponse",
    "PendingCountsResponse",
    "RoleUpdate",
    "RoleResponse",
    "AdminListResponse",
]
