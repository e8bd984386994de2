"""부동산 데이터 모델"""
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import Field

from src.models.common import Address, ApiModel, Wei


class PropertyType(str, Enum):
    """물건 종류"""
    APARTMENT = "아파트"
    HOUSE = "단독주택"
    COMMERCIAL = "상가"
    OFFICE = "오피스"
    LAND = "토지"
    OTHER = "기타"


class BlockchainStatus(str, Enum):
    """블록체인 등록 상태"""
    PENDING_REGISTRATION = "등록대기"
    REGISTERED = "등록완료"
    PENDING_TOKENIZATION = "토큰화대기"
    TOKENIZED = "토큰화완료"


class PropertyStatus(str, Enum):
    """부동산 운영 상태"""
    AVAILABLE = "available"
    RENTED = "rented"
    UNDER_MAINTENANCE = "under_maintenance"
    SOLD = "sold"
    UNAVAILABLE = "unavailable"


class IncomeType(str, Enum):
    """수익 유형"""
    RENTAL = "rental"
    OPERATIONAL = "operational"
    SALE = "sale"
    OTHER = "other"


class ValuedBy(str, Enum):
    """평가 주체"""
    SYSTEM = "system"
    APPRAISER = "appraiser"
    OWNER = "owner"
    ADMIN = "admin"


class Period(ApiModel):
    """기간"""

    start: datetime
    end: datetime


class ValuationHistoryEntry(ApiModel):
    """부동산 평가 이력 항목"""

    date: datetime
    value: Wei
    valued_by: ValuedBy
    appraiser_info: Optional[dict[str, Any]] = None
    reason: Optional[str] = None
    documents: list[str] = Field(default_factory=list)


class IncomeHistoryEntry(ApiModel):
    """부동산 수익 이력 항목"""

    period: Period
    total_income: Wei
    income_type: IncomeType
    distribution_status: str
    distribution_date: Optional[datetime] = None
    distribution_tx_hash: Optional[str] = None
    details: Optional[dict[str, Any]] = None


class RentalInfo(ApiModel):
    """임대 정보"""

    is_rented: bool = False
    current_renter: Optional[str] = None
    rental_start_date: Optional[datetime] = None
    rental_end_date: Optional[datetime] = None
    monthly_rent: Optional[Wei] = None
    security_deposit: Optional[Wei] = None
    rent_distribution_day: Optional[int] = Field(None, ge=1, le=31)
    rental_agreement_uri: Optional[str] = None


class PropertyCreate(ApiModel):
    """부동산 등록 요청"""

    property_address: str = Field(..., min_length=1)
    property_type: PropertyType
    square_meters: float = Field(..., ge=1)
    appraised_value: Wei
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    description: Optional[str] = None
    image_url: Optional[str] = None
    ipfs_document_uri: str = Field(..., alias="ipfsDocumentURI")
    owner_address: Address


class PropertyUpdate(ApiModel):
    """부동산 수정 요청"""

    description: Optional[str] = None
    image_url: Optional[str] = None
    ipfs_document_uri: Optional[str] = Field(None, alias="ipfsDocumentURI")
    property_status: Optional[PropertyStatus] = None
    rental_info: Optional[RentalInfo] = None


class TokenizeRequest(ApiModel):
    """토큰화 완료 등록 요청"""

    share_id: int = Field(..., ge=0)
    total_shares: int = Field(..., ge=1)
    price_per_share: Wei
    owner_address: Address
    token_name: Optional[str] = None
    token_symbol: Optional[str] = None
    transaction_hash: Optional[str] = None


class PropertyStatusUpdate(ApiModel):
    """관리자의 부동산 상태 변경 요청"""

    status: BlockchainStatus
    rejection_reason: Optional[str] = None


class PropertyOut(ApiModel):
    """부동산 정보"""

    id: str
    property_address: str
    property_type: PropertyType
    square_meters: float
    appraised_value: Wei
    latitude: float
    longitude: float
    description: Optional[str] = None
    image_url: Optional[str] = None
    ipfs_document_uri: str = Field(..., alias="ipfsDocumentURI")
    owner_address: str
    created_by: str
    token_id: Optional[int] = None
    is_tokenized: bool = False
    share_id: Optional[int] = None
    blockchain_status: BlockchainStatus
    transaction_hash: Optional[str] = None
    valuation_history: list[ValuationHistoryEntry] = Field(default_factory=list)
    income_history: list[IncomeHistoryEntry] = Field(default_factory=list)
    property_status: PropertyStatus = PropertyStatus.AVAILABLE
    rental_info: Optional[RentalInfo] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class PropertySummary(ApiModel):
    """목록/참조용 부동산 요약"""

    id: str
    property_address: str
    property_type: PropertyType
    square_meters: float
    appraised_value: Wei
    is_tokenized: bool = False
    token_id: Optional[int] = None


class PropertyResponse(ApiModel):
    """부동산 변경 응답"""

    message: str
    property: PropertyOut
