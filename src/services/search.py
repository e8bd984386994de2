"""검색 서비스"""
from typing import Optional

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.models.common import Pagination
from src.models.property import PropertyOut, PropertyType
from src.models.search import (
    AdvancedSearchResponse,
    Coordinates,
    GlobalSearchResponse,
    LocationSearchResponse,
    SearchResults,
    Sorting,
)
from src.models.share import ShareOut, TransactionOut
from src.models.user import UserOut, UserRole
from src.services.queries import apply_sort, paginate
from src.services.tables import Property, Share, Transaction, User
from src.utils.errors import ApiError

RESULT_LIMIT = 10
LOCATION_LIMIT = 50
KM_PER_DEGREE = 111
SEARCH_TYPES = {"property", "user", "share", "transaction"}


def _like(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


class SearchService:
    """통합/고급/위치 검색"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def global_search(
        self,
        query: Optional[str],
        type: Optional[str] = None,
        user: Optional[User] = None,
    ) -> GlobalSearchResponse:
        if not query or len(query) < 2:
            raise ApiError(400, "검색어는 최소 2글자 이상이어야 합니다")
        if type and type not in SEARCH_TYPES:
            raise ApiError(400, f"지원하지 않는 검색 유형입니다: {type}")

        pattern = _like(query)
        is_admin = user is not None and user.role == UserRole.ADMIN.value
        property_match = or_(
            Property.property_address.ilike(pattern, escape="\\"),
            Property.property_type.ilike(pattern, escape="\\"),
            Property.description.ilike(pattern, escape="\\"),
        )
        results = SearchResults()

        if not type or type == "property":
            rows = await self.session.execute(select(Property).where(property_match).limit(RESULT_LIMIT))
            results.properties = [PropertyOut.model_validate(p) for p in rows.scalars().all()]

        if (not type or type == "user") and is_admin:
            rows = await self.session.execute(
                select(User)
                .where(
                    or_(
                        User.name.ilike(pattern, escape="\\"),
                        User.email.ilike(pattern, escape="\\"),
                        User.wallet_address.ilike(pattern, escape="\\"),
                    )
                )
                .limit(RESULT_LIMIT)
            )
            results.users = [UserOut.model_validate(u) for u in rows.scalars().all()]

        if not type or type == "share":
            rows = await self.session.execute(
                select(Share)
                .join(Property, Share.property_id == Property.id)
                .where(Share.active.is_(True), property_match)
                .limit(RESULT_LIMIT)
            )
            results.shares = [ShareOut.model_validate(s) for s in rows.scalars().all()]

        if (not type or type == "transaction") and is_admin:
            rows = await self.session.execute(
                select(Transaction)
                .where(
                    or_(
                        Transaction.transaction_hash.ilike(pattern, escape="\\"),
                        Transaction.buyer.ilike(pattern, escape="\\"),
                        Transaction.seller.ilike(pattern, escape="\\"),
                    )
                )
                .limit(RESULT_LIMIT)
            )
            results.transactions = [TransactionOut.model_validate(t) for t in rows.scalars().all()]

        return GlobalSearchResponse(query=query, type=type or "all", results=results)

    async def advanced_property_search(
        self,
        property_type: Optional[PropertyType] = None,
        min_value: Optional[int] = None,
        max_value: Optional[int] = None,
        min_size: Optional[float] = None,
        max_size: Optional[float] = None,
        is_tokenized: Optional[bool] = None,
        sort_by: str = "createdAt",
        sort_order: str = "desc",
        page: int = 1,
        limit: int = 10,
    ) -> AdvancedSearchResponse:
        stmt = select(Property)
        if property_type:
            stmt = stmt.where(Property.property_type == property_type.value)
        if min_value is not None:
            stmt = stmt.where(Property.appraised_value >= min_value)
        if max_value is not None:
            stmt = stmt.where(Property.appraised_value <= max_value)
        if min_size is not None:
            stmt = stmt.where(Property.square_meters >= min_size)
        if max_size is not None:
            stmt = stmt.where(Property.square_meters <= max_size)
        if is_tokenized is not None:
            stmt = stmt.where(Property.is_tokenized.is_(is_tokenized))

        sort = f"{'' if sort_order == 'asc' else '-'}{sort_by}"
        stmt = apply_sort(stmt, Property, sort, "-createdAt")
        items, total = await paginate(self.session, stmt, page, limit)

        filters = {
            "propertyType": property_type.value if property_type else None,
            "minValue": str(min_value) if min_value is not None else None,
            "maxValue": str(max_value) if max_value is not None else None,
            "minSize": min_size,
            "maxSize": max_size,
            "isTokenized": is_tokenized,
        }
        return AdvancedSearchResponse(
            properties=[PropertyOut.model_validate(p) for p in items],
            pagination=Pagination.build(total, page, limit),
            filters=filters,
            sorting=Sorting(sort_by=sort_by, sort_order=sort_order),
        )

    async def search_by_location(self, lat: float, lng: float, radius: float = 10) -> LocationSearchResponse:
        """위도/경도 사각 범위 검색 (1도 = 약 111km)"""
        delta = radius / KM_PER_DEGREE
        rows = await self.session.execute(
            select(Property)
            .where(
                Property.latitude.between(lat - delta, lat + delta),
                Property.longitude.between(lng - delta, lng + delta),
            )
            .limit(LOCATION_LIMIT)
        )
        properties = [PropertyOut.model_validate(p) for p in rows.scalars().all()]
        return LocationSearchResponse(
            center=Coordinates(lat=lat, lng=lng),
            radius=radius,
            count=len(properties),
            properties=properties,
        )
