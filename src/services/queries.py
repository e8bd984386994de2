"""공통 조회 헬퍼"""
from typing import Any, Optional, TypeVar

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.models.common import parse_sort
from src.utils.errors import ApiError

T = TypeVar("T")


async def paginate(
    session: AsyncSession,
    stmt: Select,
    page: int,
    limit: int,
) -> tuple[list[Any], int]:
    """(현재 페이지 항목, 전체 개수)"""
    total = await session.scalar(
        select(func.count()).select_from(stmt.order_by(None).subquery())
    )
    result = await session.execute(stmt.offset((page - 1) * limit).limit(limit))
    return list(result.scalars().all()), total or 0


def apply_sort(stmt: Select, model: type, sort: Optional[str], default: str) -> Select:
    """'-createdAt' 형식의 정렬 적용 (알 수 없는 필드는 기본값 사용)"""
    field, descending = parse_sort(sort, default)
    # 관계 속성은 정렬 불가, 실제 컬럼만 허용
    if field not in model.__table__.columns:
        field, descending = parse_sort(default, default)
    column = getattr(model, field)
    return stmt.order_by(column.desc() if descending else column.asc())


async def get_or_404(session: AsyncSession, model: type[T], id_: str, message: str) -> T:
    obj = await session.get(model, id_)
    if obj is None:
        raise ApiError(404, message)
    return obj
