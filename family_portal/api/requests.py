"""API routes for submitting and reviewing requests of every kind."""

from typing import Annotated, Any
from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, Request, status

from ..core.dependencies import (
    CurrentUserDep,
    OptionalUserDep,
    ReviewerDep,
    ServicesDep,
)
from ..models import PendingRequestMixin, RequestKind, RequestStatus
from ..schemas import (
    BulkTransitionBody,
    BulkTransitionResponse,
    RequestListResponse,
    RequestResponse,
    TransitionBody,
)
from ..services import row_to_dict

router = APIRouter(prefix="/requests", tags=["requests"])

# Columns reported at the top level of RequestResponse
COMMON_FIELDS = {
    "id",
    "status",
    "requested_by",
    "reviewed_by",
    "admin_notes",
    "created_at",
    "updated_at",
}


# =============================================================================
# HELPERS
# =============================================================================


def request_to_response(kind: RequestKind, request: PendingRequestMixin) -> RequestResponse:
    """Convert a request model to a response schema."""
    payload: dict[str, Any] = {
        key: value for key, value in row_to_dict(request).items() if key not in COMMON_FIELDS
    }
    return RequestResponse(
        id=request.id,
        kind=kind,
        status=request.status,
        display_name=request.display_name,
        requested_by=request.requested_by,
        reviewed_by=request.reviewed_by,
        admin_notes=request.admin_notes,
        created_at=request.created_at,
        updated_at=request.updated_at,
        payload=payload,
    )


def to_list_response(kind: RequestKind, requests) -> RequestListResponse:
    items = [request_to_response(kind, r) for r in requests]
    return RequestListResponse(kind=kind, items=items, total=len(items))


# =============================================================================
# SUBMISSION
# =============================================================================


@router.post(
    "/gallery/upload",
    response_model=RequestResponse,
    status_code=status.HTTP_201_CREATED,
)
async def upload_gallery_item(
    request: Request,
    services: ServicesDep,
    current_user: OptionalUserDep,
    filename: Annotated[str, Query(min_length=1, max_length=255)],
    caption: Annotated[str | None, Query(max_length=2000)] = None,
):
    """Upload a photo (raw request body) and submit it for gallery review."""
    data = await request.body()
    gallery_request = await services.engine.submit_gallery_upload(
        data,
        filename=filename,
        caption=caption,
        submitter_id=current_user.id if current_user else None,
        content_type=request.headers.get("content-type"),
    )
    return request_to_response(RequestKind.GALLERY, gallery_request)


@router.post(
    "/{kind}",
    response_model=RequestResponse,
    status_code=status.HTTP_201_CREATED,
)
async def submit_request(
    kind: RequestKind,
    payload: dict[str, Any],
    services: ServicesDep,
    current_user: OptionalUserDep,
):
    """
    Submit a request for review.

    Authentication is optional: anonymous submissions are stored without a
    submitter and therefore never receive a decision notification.
    """
    created = await services.engine.submit(
        kind,
        payload,
        submitter_id=current_user.id if current_user else None,
    )
    return request_to_response(kind, created)


# =============================================================================
# QUERIES
# =============================================================================


@router.get("/{kind}", response_model=RequestListResponse)
async def list_requests(
    kind: RequestKind,
    services: ServicesDep,
    current_user: ReviewerDep,
    request_status: Annotated[RequestStatus | None, Query(alias="status")] = RequestStatus.PENDING,
    limit: Annotated[int | None, Query(ge=1, le=500)] = None,
):
    """List requests of a kind (pending by default). Admins and publishers only."""
    requests = await services.engine.list_requests(kind, request_status, limit=limit)
    return to_list_response(kind, requests)


@router.get("/{kind}/mine", response_model=RequestListResponse)
async def list_my_requests(
    kind: RequestKind,
    services: ServicesDep,
    current_user: CurrentUserDep,
):
    """Requests of a kind submitted by the current user."""
    requests = await services.engine.list_for_requester(kind, current_user.id)
    return to_list_response(kind, requests)


@router.get("/{kind}/{request_id}", response_model=RequestResponse)
async def get_request(
    kind: RequestKind,
    request_id: UUID,
    services: ServicesDep,
    current_user: CurrentUserDep,
):
    """A single request; visible to reviewers and to its submitter."""
    found = await services.engine.get_request(kind, request_id)
    if not current_user.can_review and found.requested_by != current_user.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not allowed to view this request",
        )
    return request_to_response(kind, found)


# =============================================================================
# TRANSITIONS
# =============================================================================


@router.post("/{kind}/bulk", response_model=BulkTransitionResponse)
async def bulk_transition(
    kind: RequestKind,
    data: BulkTransitionBody,
    services: ServicesDep,
    current_user: ReviewerDep,
):
    """Approve or reject many requests; each id succeeds or fails on its own."""
    target = RequestStatus.APPROVED if data.action == "approve" else RequestStatus.REJECTED
    result = await services.engine.bulk_transition(
        data.ids, kind, target, current_user.id, note=data.note
    )
    return BulkTransitionResponse(succeeded=result.succeeded, failed=result.failed)


@router.post("/{kind}/{request_id}/approve", response_model=RequestResponse)
async def approve_request(
    kind: RequestKind,
    request_id: UUID,
    services: ServicesDep,
    current_user: CurrentUserDep,
    data: TransitionBody | None = None,
):
    """Approve a pending request, running its promotion if the kind has one."""
    result = await services.engine.approve(
        request_id, kind, current_user.id, note=data.note if data else None
    )
    return request_to_response(kind, result.request)


@router.post("/{kind}/{request_id}/reject", response_model=RequestResponse)
async def reject_request(
    kind: RequestKind,
    request_id: UUID,
    services: ServicesDep,
    current_user: CurrentUserDep,
    data: TransitionBody | None = None,
):
    """Reject a pending request."""
    result = await services.engine.reject(
        request_id, kind, current_user.id, note=data.note if data else None
    )
    return request_to_response(kind, result.request)
