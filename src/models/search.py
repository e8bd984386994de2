"""검색 데이터 모델"""
from typing import Any, Optional

from pydantic import Field

from src.models.common import ApiModel, Pagination
from src.models.property import PropertyOut
from src.models.share import ShareOut, TransactionOut
from src.models.user import UserOut


class SearchResults(ApiModel):
    properties: Optional[list[PropertyOut]] = None
    users: Optional[list[UserOut]] = None
    shares: Optional[list[ShareOut]] = None
    transactions: Optional[list[TransactionOut]] = None


class GlobalSearchResponse(ApiModel):
    """통합 검색 결과"""

    query: str
    type: str
    results: SearchResults


class Sorting(ApiModel):
    sort_by: str
    sort_order: str


class AdvancedSearchResponse(ApiModel):
    """부동산 고급 검색 결과"""

    properties: list[PropertyOut]
    pagination: Pagination
    filters: dict[str, Any] = Field(default_factory=dict)
    sorting: Sorting


class Coordinates(ApiModel):
    lat: float
    lng: float


class LocationSearchResponse(ApiModel):
    """위치 기반 검색 결과"""

    center: Coordinates
    radius: float
    count: int
    properties: list[PropertyOut]
