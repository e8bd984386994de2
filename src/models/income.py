"""수익 분배 데이터 모델"""
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import Field, field_validator, model_validator

from src.models.common import ApiModel, Wei, is_wallet_address
from src.models.property import IncomeType, Period, PropertySummary


class DistributionStatus(str, Enum):
    """수익 분배 상태"""
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class ReceiverStatus(str, Enum):
    """수령자별 분배 상태"""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


RECEIVER_TRANSITIONS: dict[ReceiverStatus, set[ReceiverStatus]] = {
    ReceiverStatus.PENDING: {ReceiverStatus.PROCESSING, ReceiverStatus.COMPLETED, ReceiverStatus.FAILED},
    ReceiverStatus.PROCESSING: {ReceiverStatus.COMPLETED, ReceiverStatus.FAILED},
    ReceiverStatus.FAILED: {ReceiverStatus.PENDING, ReceiverStatus.PROCESSING, ReceiverStatus.COMPLETED},
    ReceiverStatus.COMPLETED: set(),
}


class Fee(ApiModel):
    """분배 수수료 (금액 또는 백분율 중 하나)"""

    amount: Optional[Wei] = None
    percentage: Optional[float] = Field(None, ge=0, le=100)
    recipient: Optional[str] = None

    @model_validator(mode="after")
    def check_one_of(self) -> "Fee":
        if self.amount is not None and self.percentage is not None:
            raise ValueError("수수료는 금액과 백분율 중 하나만 지정할 수 있습니다")
        return self


class OwnershipEntry(ApiModel):
    wallet_address: str
    shares: int


class OwnershipSnapshot(ApiModel):
    """분배 시점의 소유권 스냅샷"""

    snapshot_date: datetime
    total_shares: int
    ownership_distribution: list[OwnershipEntry] = Field(default_factory=list)


class ReceiverIn(ApiModel):
    """수령자 입력"""

    wallet_address: str = Field(..., min_length=1)
    user: Optional[str] = None
    shares: int = Field(..., ge=1)
    amount: Wei

    @field_validator("wallet_address")
    @classmethod
    def lowercase_wallet(cls, value: str) -> str:
        # 오프체인 수령자는 지갑이 아닌 계좌 식별자일 수 있다
        value = value.strip()
        return value.lower() if is_wallet_address(value) else value


class ReceiverOut(ApiModel):
    """수령자 정보"""

    id: str
    wallet_address: str
    user_id: Optional[str] = Field(None, serialization_alias="user")
    shares: int
    amount: Wei
    status: ReceiverStatus
    transaction_hash: Optional[str] = None
    settlement_reference: Optional[str] = None
    distributed_at: Optional[datetime] = None
    error_message: Optional[str] = None


class DistributionCreate(ApiModel):
    """수익 분배 생성 요청"""

    income_type: IncomeType
    total_amount: Wei
    period: Period
    description: str = Field(..., min_length=1)
    distribution_date: datetime
    receivers: list[ReceiverIn] = Field(default_factory=list)
    fee: Optional[Fee] = None
    meta: Optional[dict[str, Any]] = Field(None, alias="metadata")
    record_on_chain: bool = False

    @model_validator(mode="after")
    def check_period(self) -> "DistributionCreate":
        if self.period.end < self.period.start:
            raise ValueError("분배 기간의 종료일은 시작일 이후여야 합니다")
        return self


class ReceiverStatusUpdate(ApiModel):
    """수령자 상태 변경 요청"""

    status: ReceiverStatus
    transaction_hash: Optional[str] = None
    error_message: Optional[str] = None


class DistributionOut(ApiModel):
    """수익 분배 정보"""

    id: str
    property_id: str
    property: Optional[PropertySummary] = None
    token_id: str
    income_type: IncomeType
    total_amount: Wei
    period: Period
    description: str
    created_by: str
    distribution_date: datetime
    status: DistributionStatus
    contract_call_transaction_hash: Optional[str] = None
    blockchain_distribution_id: Optional[int] = None
    receivers: list[ReceiverOut] = Field(default_factory=list)
    meta: Optional[dict[str, Any]] = Field(None, serialization_alias="metadata")
    completed_at: Optional[datetime] = None
    fee: Optional[Fee] = None
    ownership_snapshot: Optional[OwnershipSnapshot] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class UserDistribution(ApiModel):
    """사용자 관점의 수익 분배 내역"""

    id: str
    property: Optional[PropertySummary] = None
    token_id: str
    income_type: IncomeType
    period: Period
    distribution_date: datetime
    status: DistributionStatus
    total_amount: Wei
    user_shares: int
    user_amount: Wei
    user_status: ReceiverStatus
    transaction_hash: Optional[str] = None
    settlement_reference: Optional[str] = None
    distributed_at: Optional[datetime] = None


class StatusCounts(ApiModel):
    pending: int = 0
    processing: int = 0
    completed: int = 0
    failed: int = 0


class DistributionStatusSummary(ApiModel):
    """분배 진행 현황"""

    id: str
    status: DistributionStatus
    total_amount: Wei
    fee_amount: Wei
    distributed_amount: Wei
    remaining_amount: Wei
    receiver_count: int
    receivers: StatusCounts
    completed_at: Optional[datetime] = None
    error_message: Optional[str] = None


class ChainDistribution(ApiModel):
    """블록체인에 기록된 수익 분배"""

    distribution_id: int
    property_token_id: int
    total_amount: Wei
    distribution_date: datetime
    income_type: str
    status: str
    distributor: str
    metadata_uri: str = Field(..., alias="metadataURI")
    period_start: datetime
    period_end: datetime
    fee_amount: Wei
    fee_recipient: str


class ChainReceiver(ApiModel):
    """블록체인 수령자 정보"""

    wallet_address: str
    shares: int
    amount: Wei
    status: str
