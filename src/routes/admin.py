"""관리자 API"""
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from src.models.admin import ChainOperationList, TransactionList, UserDetail, UserUpdateResponse
from src.models.notification import SystemNotificationRequest, SystemNotificationResponse
from src.models.property import PropertyOut, PropertyResponse, PropertyStatusUpdate
from src.models.user import UserList, UserOut, UserStatusUpdate
from src.routes.deps import get_session, require_admin
from src.services.admin import AdminService
from src.services.notifications import NotificationService

router = APIRouter(
    prefix="/api/admin",
    tags=["admin"],
    dependencies=[Depends(require_admin)],
)


def get_admin_service(session: AsyncSession = Depends(get_session)) -> AdminService:
    return AdminService(session)


@router.get("/users", response_model=UserList)
async def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    sort: str = "createdAt",
    order: str = Query("desc", pattern="^(asc|desc)$"),
    service: AdminService = Depends(get_admin_service),
):
    return await service.list_users(page, limit, sort, order)


@router.get("/users/{user_id}", response_model=UserDetail)
async def get_user(user_id: str, service: AdminService = Depends(get_admin_service)):
    """사용자 상세 (등록 부동산, 거래 내역 포함)"""
    return await service.get_user(user_id)


@router.put("/users/{user_id}/status", response_model=UserUpdateResponse)
async def update_user_status(
    user_id: str,
    request: UserStatusUpdate,
    service: AdminService = Depends(get_admin_service),
):
    user = await service.update_user_status(user_id, request)
    return UserUpdateResponse(
        message="사용자 상태가 성공적으로 업데이트되었습니다",
        user=UserOut.model_validate(user),
    )


@router.get("/transactions", response_model=TransactionList)
async def list_transactions(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    sort: str = "createdAt",
    order: str = Query("desc", pattern="^(asc|desc)$"),
    service: AdminService = Depends(get_admin_service),
):
    return await service.list_transactions(page, limit, sort, order)


@router.put("/properties/{property_id}/status", response_model=PropertyResponse)
async def update_property_status(
    property_id: str,
    request: PropertyStatusUpdate,
    service: AdminService = Depends(get_admin_service),
):
    """부동산 등록 승인/반려"""
    property_ = await service.update_property_status(property_id, request)
    return PropertyResponse(
        message="부동산 상태가 성공적으로 업데이트되었습니다",
        property=PropertyOut.model_validate(property_),
    )


@router.post("/notifications/send", response_model=SystemNotificationResponse)
async def send_system_notification(
    request: SystemNotificationRequest,
    session: AsyncSession = Depends(get_session),
):
    sent = await NotificationService(session).broadcast(
        request.title,
        request.message,
        type=request.type,
        user_ids=request.user_ids,
        link=request.link,
    )
    return SystemNotificationResponse(
        message=f"{sent}명의 사용자에게 알림이 성공적으로 발송되었습니다",
        sent=sent,
        total=len(request.user_ids) if request.user_ids else sent,
    )


@router.get("/chain-operations", response_model=ChainOperationList)
async def list_chain_operations(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    status: Optional[str] = None,
    service: AdminService = Depends(get_admin_service),
):
    """체인 작업 기록 조회"""
    return await service.list_chain_operations(page, limit, status)
