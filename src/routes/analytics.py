"""분석 통계 API"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from src.models.analytics import InvestmentPerformance, TrendPeriod
from src.routes.deps import get_cache, get_current_user, get_session
from src.services.analytics import AnalyticsService
from src.services.cache import CacheService
from src.services.tables import User

router = APIRouter(prefix="/api/analytics", tags=["analytics"])


def get_analytics_service(
    session: AsyncSession = Depends(get_session),
    cache: CacheService = Depends(get_cache),
) -> AnalyticsService:
    return AnalyticsService(session, cache)


@router.get("/platform-stats")
async def get_platform_stats(service: AnalyticsService = Depends(get_analytics_service)):
    return await service.platform_stats()


@router.get("/property-types")
async def get_property_type_stats(service: AnalyticsService = Depends(get_analytics_service)):
    return await service.property_type_stats()


@router.get("/transaction-trends")
async def get_transaction_trends(
    period: TrendPeriod = Query(TrendPeriod.MONTHLY),
    service: AnalyticsService = Depends(get_analytics_service),
):
    """일/주/월 단위 거래 추이"""
    return await service.transaction_trends(period)


@router.get(
    "/user/investment-performance",
    response_model=InvestmentPerformance,
    response_model_by_alias=True,
)
async def get_user_investment_performance(
    user: User = Depends(get_current_user),
    service: AnalyticsService = Depends(get_analytics_service),
):
    return await service.investment_performance(user)


@router.get("/regional-market")
async def get_regional_market(service: AnalyticsService = Depends(get_analytics_service)):
    return await service.regional_market()
