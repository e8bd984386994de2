"""알림 API"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from src.models.common import MessageResponse
from src.models.notification import NotificationList, NotificationOut
from src.routes.deps import get_current_user, get_session
from src.services.notifications import NotificationService
from src.services.tables import User

router = APIRouter(prefix="/api/notifications", tags=["notifications"])


def get_notification_service(session: AsyncSession = Depends(get_session)) -> NotificationService:
    return NotificationService(session)


@router.get("", response_model=NotificationList)
async def list_notifications(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    unread_only: bool = Query(False, alias="unreadOnly"),
    user: User = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service),
):
    """내 알림 목록"""
    return await service.list_for_user(user.id, page, limit, unread_only)


@router.put("/read-all", response_model=MessageResponse)
async def mark_all_read(
    user: User = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service),
):
    count = await service.mark_all_read(user.id)
    return MessageResponse(message=f"{count}개의 알림을 읽음으로 표시했습니다")


@router.put("/{notification_id}/read", response_model=NotificationOut)
async def mark_read(
    notification_id: str,
    user: User = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service),
):
    return await service.mark_read(user.id, notification_id)


@router.delete("/{notification_id}", response_model=MessageResponse)
async def delete_notification(
    notification_id: str,
    user: User = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service),
):
    await service.delete(user.id, notification_id)
    return MessageResponse(message="알림이 삭제되었습니다")


@router.delete("", response_model=MessageResponse)
async def delete_all_notifications(
    user: User = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service),
):
    count = await service.delete_all(user.id)
    return MessageResponse(message=f"{count}개의 알림이 삭제되었습니다")
