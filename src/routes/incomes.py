"""수익 분배 API

실행/취소 요청은 Idempotency-Key 헤더를 받는다. 같은 키의 재요청에는 처음 응답을 그대로 돌려준다.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Header, Query
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from src.models.common import Page
from src.models.income import (
    ChainDistribution,
    DistributionCreate,
    DistributionOut,
    DistributionStatus,
    DistributionStatusSummary,
    ReceiverOut,
    ReceiverStatusUpdate,
    UserDistribution,
)
from src.routes.deps import (
    get_blockchain,
    get_cache,
    get_current_user,
    get_session,
    require_admin,
)
from src.services.blockchain import BlockchainService
from src.services.cache import CacheService
from src.services.incomes import IncomeService
from src.services.outbox import run_idempotent
from src.services.tables import User

router = APIRouter(prefix="/api/incomes", tags=["incomes"])


def get_income_service(
    session: AsyncSession = Depends(get_session),
    blockchain: BlockchainService = Depends(get_blockchain),
    cache: CacheService = Depends(get_cache),
) -> IncomeService:
    return IncomeService(session, blockchain, cache)


def _dump(distribution) -> dict:
    return DistributionOut.model_validate(distribution).model_dump(by_alias=True, mode="json")


@router.get("", response_model=Page[DistributionOut])
async def list_distributions(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: Optional[DistributionStatus] = None,
    property_id: Optional[str] = Query(None, alias="property"),
    sort: str = "-createdAt",
    user: User = Depends(require_admin),
    service: IncomeService = Depends(get_income_service),
):
    """전체 수익 분배 목록 (관리자)"""
    return await service.list_all(page, limit, status, property_id, sort)


@router.get("/user", response_model=Page[UserDistribution])
async def list_user_distributions(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    user: User = Depends(get_current_user),
    service: IncomeService = Depends(get_income_service),
):
    return await service.list_for_user(user, page, limit)


@router.get("/scheduled", response_model=list[DistributionOut])
async def list_scheduled_distributions(
    user: User = Depends(require_admin),
    service: IncomeService = Depends(get_income_service),
):
    return await service.list_scheduled()


@router.get("/token/{token_id}", response_model=Page[DistributionOut])
async def list_token_distributions(
    token_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    sort: str = "-createdAt",
    user: User = Depends(get_current_user),
    service: IncomeService = Depends(get_income_service),
):
    return await service.list_by_token(token_id, page, limit, sort)


# ----------------------------------------------------------------------
# 부동산 단위
# ----------------------------------------------------------------------


@router.get("/property/{property_id}", response_model=Page[DistributionOut])
async def list_property_distributions(
    property_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    sort: str = "-distributionDate",
    user: User = Depends(get_current_user),
    service: IncomeService = Depends(get_income_service),
):
    return await service.list_by_property(user, property_id, page, limit, sort)


@router.post("/property/{property_id}", response_model=DistributionOut, status_code=201)
async def create_distribution(
    property_id: str,
    request: DistributionCreate,
    user: User = Depends(get_current_user),
    service: IncomeService = Depends(get_income_service),
):
    """수익 분배 예약 (관리자, 분배 담당자, 부동산 등록자)"""
    return await service.create(user, property_id, request)


@router.get("/property/{property_id}/blockchain-history", response_model=list[ChainDistribution])
async def get_blockchain_distribution_history(
    property_id: str,
    user: User = Depends(get_current_user),
    service: IncomeService = Depends(get_income_service),
):
    return await service.blockchain_history(property_id)


@router.get("/property/{property_id}/{distribution_id}", response_model=DistributionOut)
async def get_property_distribution(
    property_id: str,
    distribution_id: str,
    user: User = Depends(get_current_user),
    service: IncomeService = Depends(get_income_service),
):
    return await service.get_for_property(property_id, distribution_id)


@router.get("/property/{property_id}/{distribution_id}/receivers", response_model=list[ReceiverOut])
async def get_distribution_receivers(
    property_id: str,
    distribution_id: str,
    user: User = Depends(get_current_user),
    service: IncomeService = Depends(get_income_service),
):
    return await service.receivers(property_id, distribution_id)


@router.post("/property/{property_id}/{distribution_id}/execute", response_model=DistributionOut)
async def execute_distribution(
    property_id: str,
    distribution_id: str,
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    service: IncomeService = Depends(get_income_service),
):
    """수익 분배 실행 (관리자/분배 담당자)"""

    async def run():
        distribution = await service.execute(user, property_id, distribution_id)
        return 200, _dump(distribution)

    status_code, body = await run_idempotent(
        session, f"income_execute:{distribution_id}", idempotency_key, user.id, run
    )
    return JSONResponse(status_code=status_code, content=body)


@router.post("/property/{property_id}/{distribution_id}/cancel", response_model=DistributionOut)
async def cancel_distribution(
    property_id: str,
    distribution_id: str,
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
    service: IncomeService = Depends(get_income_service),
):
    async def run():
        distribution = await service.cancel(user, property_id, distribution_id)
        return 200, _dump(distribution)

    status_code, body = await run_idempotent(
        session, f"income_cancel:{distribution_id}", idempotency_key, user.id, run
    )
    return JSONResponse(status_code=status_code, content=body)


# ----------------------------------------------------------------------
# 분배 단위
# ----------------------------------------------------------------------


@router.get("/{distribution_id}", response_model=DistributionOut)
async def get_distribution(
    distribution_id: str,
    user: User = Depends(get_current_user),
    service: IncomeService = Depends(get_income_service),
):
    """관리자/등록자는 전체, 수령자는 본인 항목만"""
    return await service.get_visible(user, distribution_id)


@router.get("/{distribution_id}/status", response_model=DistributionStatusSummary)
async def get_distribution_status(
    distribution_id: str,
    user: User = Depends(get_current_user),
    service: IncomeService = Depends(get_income_service),
):
    return await service.status_summary(distribution_id)


@router.post("/{distribution_id}/snapshot", response_model=DistributionOut)
async def create_ownership_snapshot(
    distribution_id: str,
    user: User = Depends(get_current_user),
    service: IncomeService = Depends(get_income_service),
):
    return await service.create_snapshot(user, distribution_id)


@router.post("/{distribution_id}/complete", response_model=DistributionOut)
async def complete_distribution(
    distribution_id: str,
    user: User = Depends(require_admin),
    service: IncomeService = Depends(get_income_service),
):
    return await service.complete(distribution_id)


@router.patch("/{distribution_id}/receivers/{receiver_id}", response_model=DistributionOut)
async def update_receiver_status(
    distribution_id: str,
    receiver_id: str,
    request: ReceiverStatusUpdate,
    user: User = Depends(require_admin),
    service: IncomeService = Depends(get_income_service),
):
    return await service.update_receiver(distribution_id, receiver_id, request)
