"""검색 API"""
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from src.models.property import PropertyType
from src.models.search import AdvancedSearchResponse, GlobalSearchResponse, LocationSearchResponse
from src.routes.deps import get_current_user, get_session
from src.services.search import SearchService
from src.services.tables import User
from src.utils.errors import ApiError
from src.utils.wei import to_wei

router = APIRouter(prefix="/api/search", tags=["search"])


def get_search_service(session: AsyncSession = Depends(get_session)) -> SearchService:
    return SearchService(session)


@router.get("/global", response_model=GlobalSearchResponse, response_model_exclude_none=True)
async def global_search(
    query: Optional[str] = None,
    type: Optional[str] = None,
    user: User = Depends(get_current_user),
    service: SearchService = Depends(get_search_service),
):
    """통합 검색 (사용자/거래는 관리자만)"""
    return await service.global_search(query, type, user)


@router.get("/properties/advanced", response_model=AdvancedSearchResponse)
async def advanced_property_search(
    property_type: Optional[PropertyType] = Query(None, alias="propertyType"),
    min_value: Optional[str] = Query(None, alias="minValue"),
    max_value: Optional[str] = Query(None, alias="maxValue"),
    min_size: Optional[float] = Query(None, alias="minSize"),
    max_size: Optional[float] = Query(None, alias="maxSize"),
    is_tokenized: Optional[bool] = Query(None, alias="isTokenized"),
    sort_by: str = Query("createdAt", alias="sortBy"),
    sort_order: str = Query("desc", alias="sortOrder", pattern="^(asc|desc)$"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    service: SearchService = Depends(get_search_service),
):
    try:
        min_wei = to_wei(min_value) if min_value is not None else None
        max_wei = to_wei(max_value) if max_value is not None else None
    except ValueError as e:
        raise ApiError(400, str(e))

    return await service.advanced_property_search(
        property_type=property_type,
        min_value=min_wei,
        max_value=max_wei,
        min_size=min_size,
        max_size=max_size,
        is_tokenized=is_tokenized,
        sort_by=sort_by,
        sort_order=sort_order,
        page=page,
        limit=limit,
    )


@router.get("/properties/location", response_model=LocationSearchResponse)
async def search_properties_by_location(
    lat: Optional[float] = None,
    lng: Optional[float] = None,
    radius: float = Query(10, gt=0),
    service: SearchService = Depends(get_search_service),
):
    """위경도 반경(km) 검색"""
    if lat is None or lng is None:
        raise ApiError(400, "위도(lat)와 경도(lng) 파라미터가 필요합니다")
    return await service.search_by_location(lat, lng, radius)
