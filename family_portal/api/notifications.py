"""API routes for the current user's notifications, including live push."""

import asyncio
import logging
from typing import Annotated, Any
from uuid import UUID

from fastapi import (
    APIRouter,
    Depends,
    HTTPException,
    Query,
    WebSocket,
    WebSocketDisconnect,
    status,
)
from fastapi.encoders import jsonable_encoder

from ..core.dependencies import CurrentUserDep, ServicesDep, authenticate_token, get_ws_services
from ..models import Notification, NotificationType
from ..schemas import (
    MarkAllReadResponse,
    MessageResponse,
    NotificationListResponse,
    NotificationResponse,
    UnreadCountResponse,
)
from ..services import Services, notification_action_text, notification_route

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/notifications", tags=["notifications"])


def notification_to_response(
    notification: Notification | dict[str, Any],
    is_admin: bool,
) -> NotificationResponse:
    """Convert a notification (model or change-feed record) to a response."""
    response = NotificationResponse.model_validate(notification)
    notification_type = NotificationType(response.type)
    response.route = notification_route(notification_type, is_admin)
    response.action_text = notification_action_text(notification_type)
    return response


@router.get("", response_model=NotificationListResponse)
async def list_notifications(
    services: ServicesDep,
    current_user: CurrentUserDep,
    unread_only: bool = False,
    limit: Annotated[int | None, Query(ge=1, le=200)] = 50,
):
    """The current user's notifications, newest first."""
    notifications = await services.notifications.fetch_notifications(
        current_user.id, unread_only=unread_only, limit=limit
    )
    unread = await services.notifications.unread_count(current_user.id)
    return NotificationListResponse(
        items=[notification_to_response(n, current_user.is_admin) for n in notifications],
        unread=unread,
    )


@router.get("/unread-count", response_model=UnreadCountResponse)
async def get_unread_count(services: ServicesDep, current_user: CurrentUserDep):
    return UnreadCountResponse(unread=await services.notifications.unread_count(current_user.id))


@router.post("/read-all", response_model=MarkAllReadResponse)
async def mark_all_read(services: ServicesDep, current_user: CurrentUserDep):
    """Mark every notification of the current user as read."""
    updated = await services.notifications.mark_all_as_read(current_user.id)
    return MarkAllReadResponse(updated=updated)


@router.post("/{notification_id}/read", response_model=MessageResponse)
async def mark_read(
    notification_id: UUID,
    services: ServicesDep,
    current_user: CurrentUserDep,
):
    """Mark one notification as read. Repeating the call is harmless."""
    flipped = await services.notifications.mark_as_read(notification_id, user_id=current_user.id)
    if not flipped:
        # Already read is fine; unknown or someone else's is not
        existing = await services.notifications.get_notification(
            notification_id, user_id=current_user.id
        )
        if existing is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Notification not found",
            )
    return MessageResponse(message="Notification marked as read")


@router.delete("/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_notification(
    notification_id: UUID,
    services: ServicesDep,
    current_user: CurrentUserDep,
):
    """Delete one of the current user's notifications."""
    deleted = await services.notifications.delete_notification(notification_id, current_user.id)
    if not deleted:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Notification not found",
        )


@router.websocket("/ws")
async def notifications_socket(
    websocket: WebSocket,
    services: Annotated[Services, Depends(get_ws_services)],
    token: str | None = None,
):
    """Push each new notification of the authenticated user as JSON."""
    current_user = await authenticate_token(services, token)
    if current_user is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    subscription = services.notifications.subscribe(current_user.id)
    await websocket.accept()

    async def forward() -> None:
        async for record in subscription:
            payload = notification_to_response(record, current_user.is_admin)
            await websocket.send_json(jsonable_encoder(payload))

    sender = asyncio.create_task(forward())
    try:
        # Client messages are ignored; receiving only detects disconnects
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.debug(f"Notification socket closed for {current_user.id}")
    finally:
        subscription.close()
        sender.cancel()
        try:
            await sender
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.warning(f"Notification push to {current_user.id} failed: {e}")
