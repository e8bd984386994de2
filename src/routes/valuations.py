"""부동산 평가 API"""
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from src.models.common import MessageResponse, Page
from src.models.property import PropertyOut
from src.models.user import UserRole
from src.models.valuation import (
    ChainValuation,
    DocumentCreate,
    RecordOnChainRequest,
    RecordOnChainResponse,
    ValuationCreate,
    ValuationFactor,
    ValuationOut,
    ValuationRequest,
    ValuationRequestResponse,
    ValuationReview,
    ValuationStatus,
    ValuationStatusResponse,
    ValuationStatusUpdate,
)
from src.routes.deps import (
    get_blockchain,
    get_cache,
    get_current_user,
    get_session,
    require_admin,
    require_roles,
)
from src.services.blockchain import BlockchainService
from src.services.cache import CacheService
from src.services.tables import User
from src.services.valuations import ValuationService

router = APIRouter(prefix="/api/valuations", tags=["valuations"])

require_appraiser = require_roles(UserRole.ADMIN, UserRole.APPRAISER)


def get_valuation_service(
    session: AsyncSession = Depends(get_session),
    blockchain: BlockchainService = Depends(get_blockchain),
    cache: CacheService = Depends(get_cache),
) -> ValuationService:
    return ValuationService(session, blockchain, cache)


@router.get("", response_model=Page[ValuationOut])
async def list_valuations(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: Optional[ValuationStatus] = None,
    property_id: Optional[str] = Query(None, alias="property"),
    sort: str = "-valuationDate",
    user: User = Depends(require_appraiser),
    service: ValuationService = Depends(get_valuation_service),
):
    """전체 평가 목록 (관리자/평가사)"""
    return await service.list_all(page, limit, status, property_id, sort)


@router.get("/market-trends")
async def get_market_trends(
    user: User = Depends(get_current_user),
    service: ValuationService = Depends(get_valuation_service),
) -> dict[str, Any]:
    return service.market_trends()


@router.get("/comparable-properties", response_model=list[PropertyOut])
async def get_comparable_properties(
    property_id: str = Query(..., alias="propertyId"),
    limit: int = Query(5, ge=1, le=50),
    user: User = Depends(get_current_user),
    service: ValuationService = Depends(get_valuation_service),
):
    """같은 유형, 면적이 비슷한 부동산"""
    return await service.comparable_properties(property_id, limit)


@router.post("/request", response_model=ValuationRequestResponse, status_code=201)
async def request_valuation(
    request: ValuationRequest,
    user: User = Depends(get_current_user),
    service: ValuationService = Depends(get_valuation_service),
):
    valuation = await service.request(user, request)
    return ValuationRequestResponse(
        message="평가 요청이 성공적으로 등록되었습니다",
        valuation_id=valuation.id,
    )


# ----------------------------------------------------------------------
# 부동산 단위
# ----------------------------------------------------------------------


@router.get("/property/{property_id}", response_model=Page[ValuationOut])
async def list_property_valuations(
    property_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    sort: str = "-valuationDate",
    user: User = Depends(get_current_user),
    service: ValuationService = Depends(get_valuation_service),
):
    return await service.list_by_property(user, property_id, page, limit, sort)


@router.get("/property/{property_id}/latest", response_model=ValuationOut)
async def get_latest_valuation(
    property_id: str,
    user: User = Depends(get_current_user),
    service: ValuationService = Depends(get_valuation_service),
):
    """최근 게시된 평가"""
    return await service.latest_published(property_id)


@router.get("/property/{property_id}/blockchain-history", response_model=list[ChainValuation])
async def get_blockchain_valuation_history(
    property_id: str,
    user: User = Depends(get_current_user),
    service: ValuationService = Depends(get_valuation_service),
):
    return await service.blockchain_history(property_id)


@router.post("/property/{property_id}", response_model=ValuationOut, status_code=201)
async def create_valuation(
    property_id: str,
    request: ValuationCreate,
    user: User = Depends(require_appraiser),
    service: ValuationService = Depends(get_valuation_service),
):
    return await service.create(user, property_id, request)


@router.get("/property/{property_id}/{valuation_id}", response_model=ValuationOut)
async def get_property_valuation(
    property_id: str,
    valuation_id: str,
    user: User = Depends(get_current_user),
    service: ValuationService = Depends(get_valuation_service),
):
    return await service.get_for_property(property_id, valuation_id)


@router.patch("/property/{property_id}/{valuation_id}/approve", response_model=ValuationOut)
async def approve_valuation(
    property_id: str,
    valuation_id: str,
    request: ValuationReview,
    user: User = Depends(require_appraiser),
    service: ValuationService = Depends(get_valuation_service),
):
    """승인/거부 (관리자/평가사)"""
    return await service.approve(user, property_id, valuation_id, request.approved, request.notes)


@router.post("/property/{property_id}/{valuation_id}/factors", response_model=ValuationOut)
async def add_valuation_factor(
    property_id: str,
    valuation_id: str,
    factor: ValuationFactor,
    user: User = Depends(require_appraiser),
    service: ValuationService = Depends(get_valuation_service),
):
    return await service.add_factor(property_id, valuation_id, factor)


# ----------------------------------------------------------------------
# 평가 단위
# ----------------------------------------------------------------------


@router.get("/{valuation_id}", response_model=ValuationOut)
async def get_valuation(
    valuation_id: str,
    user: User = Depends(get_current_user),
    service: ValuationService = Depends(get_valuation_service),
):
    return await service.get(user, valuation_id)


@router.patch("/{valuation_id}/status", response_model=ValuationStatusResponse)
async def update_valuation_status(
    valuation_id: str,
    request: ValuationStatusUpdate,
    user: User = Depends(require_appraiser),
    service: ValuationService = Depends(get_valuation_service),
):
    valuation = await service.update_status(valuation_id, request.status)
    return ValuationStatusResponse(
        message="평가 상태가 성공적으로 업데이트되었습니다",
        status=valuation.status,
    )


@router.post("/{valuation_id}/documents", response_model=ValuationOut, status_code=201)
async def add_valuation_document(
    valuation_id: str,
    request: DocumentCreate,
    user: User = Depends(require_appraiser),
    service: ValuationService = Depends(get_valuation_service),
):
    return await service.add_document(user, valuation_id, request)


@router.patch("/{valuation_id}/documents/{document_id}/verify", response_model=MessageResponse)
async def verify_document(
    valuation_id: str,
    document_id: str,
    user: User = Depends(require_admin),
    service: ValuationService = Depends(get_valuation_service),
):
    await service.verify_document(user, valuation_id, document_id)
    return MessageResponse(message="문서가 성공적으로 확인되었습니다")


@router.patch("/{valuation_id}/review", response_model=ValuationStatusResponse)
async def review_valuation(
    valuation_id: str,
    request: ValuationReview,
    user: User = Depends(require_admin),
    service: ValuationService = Depends(get_valuation_service),
):
    valuation = await service.review(user, valuation_id, request.approved, request.reason)
    return ValuationStatusResponse(
        message="평가가 승인되었습니다" if request.approved else "평가가 거부되었습니다",
        status=valuation.status,
    )


@router.post("/{valuation_id}/record-on-chain", response_model=RecordOnChainResponse)
async def record_valuation_on_chain(
    valuation_id: str,
    request: Optional[RecordOnChainRequest] = None,
    user: User = Depends(require_admin),
    service: ValuationService = Depends(get_valuation_service),
):
    """승인된 평가를 체인에 기록하고 게시"""
    valuation = await service.record_on_chain(user, valuation_id, request or RecordOnChainRequest())
    return RecordOnChainResponse(
        message="평가가 블록체인에 성공적으로 기록되었습니다",
        transaction_hash=valuation.transaction_hash,
        metadata_uri=valuation.metadata_uri,
    )
