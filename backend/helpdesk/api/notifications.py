"""Notification endpoints for users (/user) and admins (/admin)."""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from helpdesk.api.deps import get_current_user, require_admin
from helpdesk.core import get_db
from helpdesk.models.user import User
from helpdesk.schemas.common import DataResponse
from helpdesk.schemas.notification import NotificationResponse
from helpdesk.services.notification import (
    NotificationAccessError,
    NotificationNotFoundError,
    NotificationService,
)

router = APIRouter(tags=["notifications"])


def get_notification_service(db: AsyncSession = Depends(get_db)) -> NotificationService:
    return NotificationService(db)


async def _list(user: User, service: NotificationService) -> DataResponse[list[NotificationResponse]]:
    notifications = await service.list_for_user(user.id)
    return DataResponse(data=[NotificationResponse.model_validate(n) for n in notifications])


async def _mark_read(
    notification_id: int, user: User, service: NotificationService
) -> DataResponse[NotificationResponse]:
    try:
        notification = await service.mark_read(notification_id, user.id)
    except NotificationNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    except NotificationAccessError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e)) from e
    return DataResponse(data=NotificationResponse.model_validate(notification))


@router.get("/user/notifications", response_model=DataResponse[list[NotificationResponse]])
async def list_my_notifications(
    current_user: User = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service),
) -> DataResponse[list[NotificationResponse]]:
    """The 50 most recent notifications."""
    return await _list(current_user, service)


@router.post(
    "/user/notifications/{notification_id}/read",
    response_model=DataResponse[NotificationResponse],
)
async def mark_my_notification_read(
    notification_id: int,
    current_user: User = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service),
) -> DataResponse[NotificationResponse]:
    return await _mark_read(notification_id, current_user, service)


@router.get("/admin/notifications", response_model=DataResponse[list[NotificationResponse]])
async def list_admin_notifications(
    current_user: User = Depends(require_admin),
    service: NotificationService = Depends(get_notification_service),
) -> DataResponse[list[NotificationResponse]]:
    return await _list(current_user, service)


@router.post(
    "/admin/notifications/{notification_id}/read",
    response_model=DataResponse[NotificationResponse],
)
async def mark_admin_notification_read(
    notification_id: int,
    current_user: User = Depends(require_admin),
    service: NotificationService = Depends(get_notification_service),
) -> DataResponse[NotificationResponse]:
    return await _mark_read(notification_id, current_user, service)
