"""API routes for the admin dashboard: pending counts and role management."""

import asyncio
import logging
from typing import Annotated

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect, status
from fastapi.encoders import jsonable_encoder

from ..core.dependencies import AdminDep, ReviewerDep, ServicesDep, authenticate_token, get_ws_services
from ..schemas import AdminListResponse, PendingCountsResponse, RoleResponse, RoleUpdate
from ..services import PendingCounts, Services

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


def counts_to_response(snapshot: PendingCounts) -> PendingCountsResponse:
    return PendingCountsResponse(
        counts=snapshot.as_dict(),
        errors={kind.value: message for kind, message in snapshot.errors.items()},
        ok=snapshot.ok,
    )


@router.get("/pending-counts", response_model=PendingCountsResponse)
async def get_pending_counts(services: ServicesDep, current_user: ReviewerDep):
    """Pending requests per kind. Kinds that failed to count are listed in ``errors``."""
    return counts_to_response(await services.fetch_pending_counts())


@router.websocket("/pending-counts/ws")
async def pending_counts_socket(
    websocket: WebSocket,
    services: Annotated[Services, Depends(get_ws_services)],
    token: str | None = None,
):
    """Push a fresh pending-count snapshot whenever a tracked table changes."""
    current_user = await authenticate_token(services, token)
    if current_user is None or not current_user.can_review:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    snapshots: asyncio.Queue[PendingCounts] = asyncio.Queue()
    aggregator = services.pending_counts(on_update=snapshots.put_nowait)

    async def forward() -> None:
        while True:
            snapshot = await snapshots.get()
            await websocket.send_json(jsonable_encoder(counts_to_response(snapshot)))

    sender = asyncio.create_task(forward())
    try:
        await aggregator.start()
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.debug(f"Pending counts socket closed for {current_user.id}")
    finally:
        await aggregator.close()
        sender.cancel()
        try:
            await sender
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.warning(f"Pending counts push to {current_user.id} failed: {e}")


@router.get("/admins", response_model=AdminListResponse)
async def list_admins(services: ServicesDep, current_user: AdminDep):
    admin_ids = await services.directory.list_admin_ids()
    return AdminListResponse(admin_ids=sorted(admin_ids))


@router.put("/users/{user_id}/role", response_model=RoleResponse)
async def update_role(
    user_id: str,
    data: RoleUpdate,
    services: ServicesDep,
    current_user: AdminDep,
):
    """Grant or revoke admin/publisher flags. Other metadata is preserved."""
    await services.directory.set_role(
        user_id, is_admin=data.is_admin, is_publisher=data.is_publisher
    )
    return await role_response(services, user_id)


async def role_response(services: Services, user_id: str) -> RoleResponse:
    role = await services.directory.get_role(user_id)
    return RoleResponse(
        user_id=user_id,
        role=role,
        is_admin=await services.directory.is_admin(user_id),
        is_publisher=await services.directory.is_publisher(user_id),
    )
