"""Notification and admin dashboard schemas."""

from uuid import UUID

from pydantic import Field

from ..models import NotificationType
from .base import PortalBaseModel, TimestampMixin


class NotificationResponse(PortalBaseModel, TimestampMixin):
    id: UUID
    user_id: str
    title: str
    body: str
    type: NotificationType
    resource_id: str | None = None
    image: str | None = None
    read: bool
    route: str | None = None
    action_text: str | None = None


class NotificationListResponse(PortalBaseModel):
    items: list[NotificationResponse]
    unread: int


class UnreadCountResponse(PortalBaseModel):
    unread: int


class MarkAllReadResponse(PortalBaseModel):
    updated: int


class PendingCountsResponse(PortalBaseModel):
    counts: dict[str, int]
    errors: dict[str, str] = Field(default_factory=dict)
    ok: bool = True


class RoleUpdate(PortalBaseModel):
    """Partial role change; omitted flags are left as they are."""

    is_admin: bool | None = None
    is_publisher: bool | None = None


class RoleResponse(PortalBaseModel):
    user_id: str
    role: str
    is_admin: bool
    is_publisher: bool


class AdminListResponse(PortalBaseModel):
    admin_ids: list[str]
