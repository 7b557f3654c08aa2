"""Error taxonomy for the approval and notification subsystem.

Errors that affect data correctness (validation, authorization, state,
promotion) are raised to the caller. Errors from best-effort side channels
(notification fan-out, count recomputation, directory lookups during fan-out)
are logged by the services that own those channels.
"""


class ApprovalError(Exception):
    """Base exception for approval workflow operations."""
    pass


class ValidationError(ApprovalError):
    """Submission payload or transition arguments are malformed."""

    def __init__(self, message: str, errors: list[dict] | None = None):
        super().__init__(message)
        self.errors = errors or []


class UnauthorizedError(ApprovalError):
    """Actor lacks the admin/publisher role required for the operation."""
    pass


class RequestNotFoundError(ApprovalError):
    """Request does not exist."""
    pass


class InvalidStateError(ApprovalError):
    """Transition attempted on a request that is no longer pending."""
    pass


class PromotionError(ApprovalError):
    """Approve-time side effect failed; the request stays pending."""

    def __init__(self, message: str, request_id: str | None = None):
        super().__init__(message)
        self.request_id = request_id


class NotificationDeliveryError(ApprovalError):
    """Notification batch could not be persisted."""
    pass


class DirectoryError(ApprovalError):
    """Identity provider could not be queried."""
    pass


class StorageError(ApprovalError):
    """File upload to object storage failed."""
    pass


class UserNotFoundError(ApprovalError):
    """Identity provider has no such user."""
    pass
