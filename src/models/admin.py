"""관리자 데이터 모델"""
from datetime import datetime
from typing import Any, Optional

from src.models.common import ApiModel, Pagination
from src.models.property import PropertyOut
from src.models.share import TransactionOut
from src.models.user import UserOut


class UserStats(ApiModel):
    properties_count: int
    tokenized_properties_count: int
    transactions_count: int


class UserDetail(ApiModel):
    """사용자 상세 (관리자)"""

    user: UserOut
    stats: UserStats
    properties: list[PropertyOut]
    transactions: list[TransactionOut]


class UserUpdateResponse(ApiModel):
    message: str
    user: UserOut


class TransactionList(ApiModel):
    transactions: list[TransactionOut]
    pagination: Pagination


class ChainOperationOut(ApiModel):
    """체인 작업 기록"""

    id: str
    operation: str
    target_type: str
    target_id: str
    status: str
    attempts: int
    payload: Optional[dict[str, Any]] = None
    result: Optional[dict[str, Any]] = None
    transaction_hash: Optional[str] = None
    error: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ChainOperationList(ApiModel):
    operations: list[ChainOperationOut]
    pagination: Pagination
