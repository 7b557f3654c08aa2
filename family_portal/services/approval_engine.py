"""
Approval Engine: the pending -> approved / rejected state machine.

Shared by every request kind:
- Submissions always start as ``pending`` and notify all admins
- Only admins and publishers may decide
- Decisions are final: approved and rejected never change again
- Approve-time promotion and the status flip commit in one transaction
- The flip is a conditional update, so of two concurrent reviewers exactly
  one wins and the other gets ``InvalidStateError``
- Notifications are best effort and never undo a decision
"""

import logging
import mimetypes
import re
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any
from uuid import UUID, uuid4

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.clock import Clock, utcnow
from ..models import (
    NotificationType,
    PendingRequestMixin,
    RequestKind,
    RequestStatus,
)
from ..schemas import RequestPayload
from .admin_directory import AdminDirectory
from .change_feed import ChangeEvent, ChangeFeed, ChangeType
from .errors import (
    ApprovalError,
    InvalidStateError,
    NotificationDeliveryError,
    PromotionError,
    StorageError,
    UnauthorizedError,
    ValidationError,
)
from .kinds import KindDefinition, Promotion, get_kind_definition
from .notifications import NotificationService
from .request_store import RequestStore, row_to_dict
from .storage import FileStorage

logger = logging.getLogger(__name__)


# =============================================================================
# DATA TRANSFER OBJECTS
# =============================================================================


@dataclass
class TransitionResult:
    """Outcome of a successful approve/reject."""
    kind: RequestKind
    request: PendingRequestMixin
    status: RequestStatus
    promoted: Any | None = None
    notified: bool = False


@dataclass
class BulkTransitionResult:
    """Per-id outcome of a bulk approve/reject."""
    succeeded: list[UUID] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)


def _resolve_kind(kind: RequestKind | str) -> KindDefinition:
    try:
        return get_kind_definition(kind)
    except (KeyError, ValueError):
        raise ValidationError(f"Unknown request kind: {kind}")


def _resolve_target(target_status: RequestStatus | str) -> RequestStatus:
    try:
        target = RequestStatus(target_status)
    except ValueError:
        raise ValidationError(f"Unknown status: {target_status}")
    if target == RequestStatus.PENDING:
        raise ValidationError("Target status must be approved or rejected")
    return target


def _safe_filename(filename: str) -> str:
    name = re.sub(r"[^A-Za-z0-9._-]+", "-", filename.strip()).strip("-.")
    return name or "upload"


# =============================================================================
# APPROVAL ENGINE
# =============================================================================


class ApprovalEngine:
    """
    Submits requests and moves them through review.

    Every operation opens its own short-lived session from the factory.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        directory: AdminDirectory,
        notifications: NotificationService,
        feed: ChangeFeed,
        storage: FileStorage | None = None,
        clock: Clock = utcnow,
        promotions: dict[RequestKind, Promotion | None] | None = None,
    ):
        self._session_factory = session_factory
        self.directory = directory
        self.notifications = notifications
        self.feed = feed
        self.storage = storage
        self._clock = clock
        self._promotions = promotions or {}

    def _promotion_for(self, definition: KindDefinition) -> Promotion | None:
        if definition.kind in self._promotions:
            return self._promotions[definition.kind]
        return definition.promotion

    # =========================================================================
    # SUBMISSION
    # =========================================================================

    async def submit(
        self,
        kind: RequestKind | str,
        payload: RequestPayload | dict[str, Any],
        submitter_id: str | None = None,
    ) -> PendingRequestMixin:
        """
        Validate and store a new pending request, then notify all admins.

        No role check: anyone, including anonymous visitors, may submit.
        """
        definition = _resolve_kind(kind)

        if not isinstance(payload, definition.schema):
            try:
                payload = definition.schema.model_validate(
                    payload.model_dump(by_alias=True)
                    if isinstance(payload, RequestPayload)
                    else payload
                )
            except PydanticValidationError as e:
                raise ValidationError(
                    f"Invalid {definition.kind.value} payload",
                    errors=[
                        {
                            "field": ".".join(str(p) for p in err["loc"]),
                            "message": err["msg"],
                        }
                        for err in e.errors()
                    ],
                )

        async with self._session_factory() as session:
            store = RequestStore(session, self._clock)
            request = await store.create(definition.kind, payload.to_record(), submitter_id)
            await session.commit()

        logger.info(f"New {definition.kind.value} request {request.id} from {submitter_id or 'anonymous'}")
        self.feed.publish(
            ChangeEvent(event_type=ChangeType.INSERT, table=definition.table, new=row_to_dict(request))
        )

        try:
            await self.notifications.notify_admins(
                NotificationType.for_request(definition.kind), request
            )
        except NotificationDeliveryError as e:
            logger.error(f"Admin notification failed for {request.id}: {e}")

        return request

    async def submit_gallery_upload(
        self,
        data: bytes,
        filename: str,
        caption: str | None = None,
        submitter_id: str | None = None,
        content_type: str | None = None,
    ) -> PendingRequestMixin:
        """Upload a photo to file storage and submit it as a gallery request."""
        if self.storage is None:
            raise StorageError("File storage is not configured")
        if not data:
            raise ValidationError("Uploaded file is empty")

        content_type = (
            content_type
            or mimetypes.guess_type(filename)[0]
            or "application/octet-stream"
        )
        if not content_type.startswith("image/"):
            raise ValidationError(f"Only images can be added to the gallery, got {content_type}")

        path = f"{submitter_id or 'anonymous'}/{uuid4().hex}-{_safe_filename(filename)}"
        url = await self.storage.upload_file(data, path, content_type)

        return await self.submit(
            RequestKind.GALLERY,
            {
                "url": url,
                "caption": caption,
                "file_name": filename,
                "file_size": len(data),
                "mime_type": content_type,
            },
            submitter_id,
        )

    # =========================================================================
    # TRANSITIONS
    # =========================================================================

    async def transition(
        self,
        request_id: UUID,
        kind: RequestKind | str,
        target_status: RequestStatus | str,
        actor_id: str | None,
        note: str | None = None,
    ) -> TransitionResult:
        """
        Move a pending request to approved or rejected.

        Raises:
            ValidationError: target is not approved/rejected, or unknown kind
            UnauthorizedError: actor is neither admin nor publisher
            RequestNotFoundError: no such request
            InvalidStateError: request already decided (including lost races)
            PromotionError: approve-time side effect failed; nothing changed
        """
        target = _resolve_target(target_status)
        definition = _resolve_kind(kind)

        if not await self.directory.can_review(actor_id):
            raise UnauthorizedError(
                f"User {actor_id or 'anonymous'} may not review {definition.kind.value} requests"
            )

        promoted = None
        async with self._session_factory() as session:
            store = RequestStore(session, self._clock)
            request = await store.get_or_raise(definition.kind, request_id)
            if request.status.is_terminal:
                raise InvalidStateError(
                    f"{definition.label} {request_id} has already been {request.status.value}"
                )

            promotion = self._promotion_for(definition)
            if target == RequestStatus.APPROVED and promotion is not None:
                try:
                    promoted = await promotion(session, request, self._clock())
                except Exception as e:
                    await session.rollback()
                    # A concurrent winner may have promoted first
                    current = await store.get(definition.kind, request_id)
                    if current is not None and current.status.is_terminal:
                        raise InvalidStateError(
                            f"{definition.label} {request_id} has already been {current.status.value}"
                        ) from e
                    logger.error(f"Promotion failed for {definition.kind.value} {request_id}: {e}")
                    raise PromotionError(
                        f"Could not publish {definition.label.lower()} {request_id}: {e}",
                        request_id=str(request_id),
                    ) from e

            won = await store.transition_if_pending(
                definition.kind, request_id, target, reviewed_by=actor_id, note=note
            )
            if not won:
                await session.rollback()
                raise InvalidStateError(f"{definition.label} {request_id} was already handled")

            await session.refresh(request)
            await session.commit()

        logger.info(f"{definition.label} {request_id} {target.value} by {actor_id}")
        self.feed.publish(
            ChangeEvent(
                event_type=ChangeType.UPDATE,
                table=definition.table,
                new=row_to_dict(request),
                old={"id": request.id, "status": RequestStatus.PENDING},
            )
        )

        notified = False
        try:
            sent = await self.notifications.notify_requester(
                NotificationType.for_decision(definition.kind, target), request
            )
            notified = bool(sent)
        except NotificationDeliveryError as e:
            logger.error(f"Requester notification failed for {request_id}: {e}")

        return TransitionResult(
            kind=definition.kind,
            request=request,
            status=target,
            promoted=promoted,
            notified=notified,
        )

    async def approve(
        self,
        request_id: UUID,
        kind: RequestKind | str,
        actor_id: str | None,
        note: str | None = None,
    ) -> TransitionResult:
        return await self.transition(request_id, kind, RequestStatus.APPROVED, actor_id, note)

    async def reject(
        self,
        request_id: UUID,
        kind: RequestKind | str,
        actor_id: str | None,
        note: str | None = None,
    ) -> TransitionResult:
        return await self.transition(request_id, kind, RequestStatus.REJECTED, actor_id, note)

    async def bulk_transition(
        self,
        request_ids: Sequence[UUID],
        kind: RequestKind | str,
        target_status: RequestStatus | str,
        actor_id: str | None,
        note: str | None = None,
    ) -> BulkTransitionResult:
        """Apply one decision to many requests; failures are reported per id."""
        target = _resolve_target(target_status)
        definition = _resolve_kind(kind)
        if not await self.directory.can_review(actor_id):
            raise UnauthorizedError(
                f"User {actor_id or 'anonymous'} may not review {definition.kind.value} requests"
            )

        result = BulkTransitionResult()
        for request_id in request_ids:
            try:
                await self.transition(request_id, definition.kind, target, actor_id, note)
                result.succeeded.append(request_id)
            except ApprovalError as e:
                result.failed[str(request_id)] = str(e)

        logger.info(
            f"Bulk {target.value} of {definition.kind.value}: "
            f"{len(result.succeeded)} succeeded, {len(result.failed)} failed"
        )
        return result

    # =========================================================================
    # QUERIES
    # =========================================================================

    async def get_request(self, kind: RequestKind | str, request_id: UUID) -> PendingRequestMixin:
        definition = _resolve_kind(kind)
        async with self._session_factory() as session:
            return await RequestStore(session, self._clock).get_or_raise(definition.kind, request_id)

    async def list_requests(
        self,
        kind: RequestKind | str,
        status: RequestStatus | str | None = None,
        limit: int | None = None,
    ) -> Sequence[PendingRequestMixin]:
        definition = _resolve_kind(kind)
        if status is not None:
            try:
                status = RequestStatus(status)
            except ValueError:
                raise ValidationError(f"Unknown status: {status}")
        async with self._session_factory() as session:
            return await RequestStore(session, self._clock).list(definition.kind, status=status, limit=limit)

    async def list_pending(self, kind: RequestKind | str) -> Sequence[PendingRequestMixin]:
        """Pending requests of a kind, newest first."""
        return await self.list_requests(kind, RequestStatus.PENDING)

    async def list_for_requester(
        self,
        kind: RequestKind | str,
        user_id: str,
    ) -> Sequence[PendingRequestMixin]:
        definition = _resolve_kind(kind)
        async with self._session_factory() as session:
            return await RequestStore(session, self._clock).list(definition.kind, requested_by=user_id)
