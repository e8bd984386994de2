"""공통 데이터 모델"""
import math
import re
from typing import Annotated, Generic, Optional, TypeVar

from pydantic import AfterValidator, BaseModel, BeforeValidator, ConfigDict, Field, PlainSerializer
from pydantic.alias_generators import to_camel

from src.utils.wei import to_wei

T = TypeVar("T")

# 요청에서는 정수/문자열 모두 허용하고, 응답은 10진 문자열로 직렬화
Wei = Annotated[
    int,
    BeforeValidator(to_wei),
    PlainSerializer(lambda v: str(v), return_type=str),
]

ADDRESS_PATTERN = re.compile(r"^0x[0-9a-fA-F]{40}$")


def is_wallet_address(value: str) -> bool:
    return bool(ADDRESS_PATTERN.fullmatch(value))


def normalize_address(value: str) -> str:
    """지갑 주소 검증 후 소문자로 통일 (DB 비교는 항상 소문자 기준)"""
    value = value.strip()
    if not is_wallet_address(value):
        raise ValueError("올바른 지갑 주소가 아닙니다")
    return value.lower()


Address = Annotated[str, AfterValidator(normalize_address)]


class ApiModel(BaseModel):
    """camelCase JSON을 주고받는 기본 모델"""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class MessageResponse(ApiModel):
    """단순 메시지 응답"""

    message: str


class Pagination(ApiModel):
    """페이지네이션 정보"""

    total: int
    page: int
    limit: int
    total_pages: int

    @classmethod
    def build(cls, total: int, page: int, limit: int) -> "Pagination":
        return cls(
            total=total,
            page=page,
            limit=limit,
            total_pages=math.ceil(total / limit) if limit else 0,
        )


class Page(ApiModel, Generic[T]):
    """페이지 단위 조회 결과"""

    docs: list[T] = Field(default_factory=list)
    total_docs: int = 0
    limit: int = 10
    page: int = 1
    total_pages: int = 0
    has_prev_page: bool = False
    has_next_page: bool = False
    prev_page: Optional[int] = None
    next_page: Optional[int] = None

    @classmethod
    def build(cls, docs: list, total: int, page: int, limit: int) -> "Page":
        total_pages = math.ceil(total / limit) if limit else 0
        return cls(
            docs=docs,
            total_docs=total,
            limit=limit,
            page=page,
            total_pages=total_pages,
            has_prev_page=page > 1,
            has_next_page=page < total_pages,
            prev_page=page - 1 if page > 1 else None,
            next_page=page + 1 if page < total_pages else None,
        )


def parse_sort(sort: str, default: str) -> tuple[str, bool]:
    """'-createdAt' 형식의 정렬 문자열 파싱 -> (snake_case 필드명, 내림차순 여부)"""
    sort = (sort or default).strip()
    descending = sort.startswith("-")
    field = sort.lstrip("-+")
    snake = "".join(f"_{c.lower()}" if c.isupper() else c for c in field)
    return snake, descending
