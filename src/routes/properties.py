"""부동산 API"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from src.models.common import MessageResponse
from src.models.property import (
    PropertyCreate,
    PropertyOut,
    PropertyResponse,
    PropertyUpdate,
    TokenizeRequest,
)
from src.models.share import ShareOut, TokenizeResponse, TokenOut
from src.routes.deps import get_blockchain, get_cache, get_current_user, get_session
from src.services.blockchain import BlockchainService
from src.services.cache import CacheService
from src.services.properties import PropertyService
from src.services.tables import User

router = APIRouter(prefix="/api/properties", tags=["properties"])


def get_property_service(
    session: AsyncSession = Depends(get_session),
    blockchain: BlockchainService = Depends(get_blockchain),
    cache: CacheService = Depends(get_cache),
) -> PropertyService:
    return PropertyService(session, blockchain, cache)


@router.get("", response_model=list[PropertyOut])
async def list_properties(service: PropertyService = Depends(get_property_service)):
    """부동산 목록 (최신순)"""
    return await service.list_all()


@router.get("/{property_id}", response_model=PropertyOut)
async def get_property(property_id: str, service: PropertyService = Depends(get_property_service)):
    return await service.get(property_id)


@router.post("", response_model=PropertyResponse, status_code=201)
async def create_property(
    request: PropertyCreate,
    user: User = Depends(get_current_user),
    service: PropertyService = Depends(get_property_service),
):
    """부동산 등록 (NFT 발행)"""
    property_ = await service.create(user, request)
    return PropertyResponse(
        message="부동산이 성공적으로 등록되었습니다",
        property=PropertyOut.model_validate(property_),
    )


@router.put("/{property_id}", response_model=PropertyResponse)
async def update_property(
    property_id: str,
    request: PropertyUpdate,
    user: User = Depends(get_current_user),
    service: PropertyService = Depends(get_property_service),
):
    property_ = await service.update(user, property_id, request)
    return PropertyResponse(
        message="부동산 정보가 성공적으로 업데이트되었습니다",
        property=PropertyOut.model_validate(property_),
    )


@router.delete("/{property_id}", response_model=MessageResponse)
async def delete_property(
    property_id: str,
    user: User = Depends(get_current_user),
    service: PropertyService = Depends(get_property_service),
):
    await service.delete(user, property_id)
    return MessageResponse(message="부동산이 성공적으로 삭제되었습니다")


@router.post("/{property_id}/tokenize", response_model=TokenizeResponse)
async def tokenize_property(
    property_id: str,
    request: TokenizeRequest,
    user: User = Depends(get_current_user),
    service: PropertyService = Depends(get_property_service),
):
    """토큰화 완료 등록"""
    property_, share, token = await service.tokenize(user, property_id, request)
    return TokenizeResponse(
        message="부동산이 성공적으로 토큰화되었습니다",
        property=PropertyOut.model_validate(property_),
        share=ShareOut.model_validate(share),
        token=TokenOut.model_validate(token),
    )
