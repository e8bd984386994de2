"""지분 API"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from src.models.share import (
    PurchaseRequest,
    PurchaseResponse,
    ShareOut,
    TransactionOut,
    UserShares,
)
from src.routes.deps import get_blockchain, get_cache, get_current_user, get_session
from src.services.blockchain import BlockchainService
from src.services.cache import CacheService
from src.services.shares import ShareService
from src.services.tables import User

router = APIRouter(prefix="/api/shares", tags=["shares"])


def get_share_service(
    session: AsyncSession = Depends(get_session),
    blockchain: BlockchainService = Depends(get_blockchain),
    cache: CacheService = Depends(get_cache),
) -> ShareService:
    return ShareService(session, blockchain, cache)


async def record_purchase(service: ShareService, request: PurchaseRequest) -> PurchaseResponse:
    transaction, share = await service.purchase(request)
    return PurchaseResponse(
        message="지분 구매가 성공적으로 완료되었습니다",
        transaction=TransactionOut.model_validate(transaction),
        share=ShareOut.model_validate(share),
    )


@router.get("", response_model=list[ShareOut])
async def list_shares(service: ShareService = Depends(get_share_service)):
    """활성 지분 목록"""
    return await service.list_active()


@router.get("/user/owned", response_model=UserShares)
async def get_user_shares(
    user: User = Depends(get_current_user),
    service: ShareService = Depends(get_share_service),
):
    return await service.user_shares(user)


@router.get("/property/{property_token_id}", response_model=list[ShareOut])
async def list_shares_by_property(
    property_token_id: int,
    service: ShareService = Depends(get_share_service),
):
    return await service.list_by_property_token(property_token_id)


@router.get("/{share_id}", response_model=ShareOut)
async def get_share(share_id: int, service: ShareService = Depends(get_share_service)):
    """지분 조회 (체인 가용 수량 동기화)"""
    return await service.get(share_id)


@router.post("/purchase", response_model=PurchaseResponse, status_code=201)
async def purchase_share(
    request: PurchaseRequest,
    user: User = Depends(get_current_user),
    service: ShareService = Depends(get_share_service),
):
    return await record_purchase(service, request)
