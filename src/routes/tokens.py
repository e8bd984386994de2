"""토큰 API

토큰 단위 조회는 분할된 지분 정보를 돌려준다.
"""
from fastapi import APIRouter, Depends

from src.models.share import (
    PurchaseRequest,
    PurchaseResponse,
    SellRequest,
    SellResponse,
    ShareOut,
    TransactionOut,
    UserTokens,
)
from src.routes.deps import get_current_user
from src.routes.shares import get_share_service, record_purchase
from src.services.shares import ShareService
from src.services.tables import User
from src.utils.errors import ApiError

router = APIRouter(prefix="/api/tokens", tags=["tokens"])


@router.get("", response_model=list[ShareOut])
async def list_tokens(service: ShareService = Depends(get_share_service)):
    return await service.list_active()


@router.get("/user/owned", response_model=UserTokens)
async def get_user_tokens(
    user: User = Depends(get_current_user),
    service: ShareService = Depends(get_share_service),
):
    """사용자 소유 부동산/토큰화 지분/거래 내역"""
    return await service.user_tokens(user)


@router.get("/{share_id}", response_model=ShareOut)
async def get_token(share_id: int, service: ShareService = Depends(get_share_service)):
    return await service.get(share_id)


@router.post("/{share_id}/fractionalize")
async def fractionalize_token(share_id: int, user: User = Depends(get_current_user)):
    # 분할은 클라이언트가 컨트랙트를 직접 호출한 뒤 /api/properties/{id}/tokenize로 등록한다
    raise ApiError(501, "토큰 분할은 부동산 토큰화 API를 이용해주세요")


@router.post("/{share_id}/buy-share", response_model=PurchaseResponse, status_code=201)
async def buy_token_share(
    share_id: int,
    request: PurchaseRequest,
    user: User = Depends(get_current_user),
    service: ShareService = Depends(get_share_service),
):
    request.share_id = share_id
    return await record_purchase(service, request)


@router.post("/{share_id}/sell-share", response_model=SellResponse)
async def sell_token_share(
    share_id: int,
    request: SellRequest,
    user: User = Depends(get_current_user),
    service: ShareService = Depends(get_share_service),
):
    request.share_id = share_id
    listing = await service.sell_listing(request)
    return SellResponse(message="지분 판매 등록이 완료되었습니다", listing=listing)


@router.get("/{share_id}/transactions", response_model=list[TransactionOut])
async def get_token_transactions(share_id: int, service: ShareService = Depends(get_share_service)):
    return await service.transactions_for_share(share_id)
