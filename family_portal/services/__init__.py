"""Business logic services for the family portal."""

from .admin_directory import AdminDirectory
from .approval_engine import ApprovalEngine, BulkTransitionResult, TransitionResult
from .change_feed import ChangeEvent, ChangeFeed, ChangeType, SubscriptionHandle
from .container import Services, build_services
from .errors import (
    ApprovalError,
    DirectoryError,
    InvalidStateError,
    NotificationDeliveryError,
    PromotionError,
    RequestNotFoundError,
    StorageError,
    UnauthorizedError,
    UserNotFoundError,
    ValidationError,
)
from .identity import (
    DatabaseIdentityProvider,
    IdentityProvider,
    IdentityUser,
    SupabaseIdentityProvider,
)
from .kinds import REQUEST_KINDS, KindDefinition, get_kind_definition, kind_for_table
from .notifications import (
    NotificationService,
    NotificationSubscription,
    notification_action_text,
    notification_route,
)
from .pending_counts import TRACKED_KINDS, PendingCountAggregator, PendingCounts
from .request_store import RequestStore, row_to_dict
from .storage import FileStorage, SupabaseStorage

__all__ = [
    # Approval
    "ApprovalEngine",
    "TransitionResult",
    "BulkTransitionResult",
    "RequestStore",
    "row_to_dict",
    "REQUEST_KINDS",
    "KindDefinition",
    "get_kind_definition",
    "kind_for_table",
    # Notifications
    "NotificationService",
    "NotificationSubscription",
    "notification_route",
    "notification_action_text",
    # Real-time
    "ChangeFeed",
    "ChangeEvent",
    "ChangeType",
    "SubscriptionHandle",
    "PendingCountAggregator",
    "PendingCounts",
    "TRACKED_KINDS",
    # Roles and identity
    "AdminDirectory",
    "IdentityProvider",
    "IdentityUser",
    "DatabaseIdentityProvider",
    "SupabaseIdentityProvider",
    # Storage
    "FileStorage",
    "SupabaseStorage",
    # Wiring
    "Services",
    "build_services",
    # Errors
    "ApprovalError",
    "ValidationError",
    "UnauthorizedError",
    "RequestNotFoundError",
    "InvalidStateError",
    "PromotionError",
    "NotificationDeliveryError",
    "DirectoryError",
    "StorageError",
    "UserNotFoundError",
]
