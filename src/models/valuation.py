"""부동산 평가 데이터 모델"""
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import Field

from src.models.common import ApiModel, Wei
from src.models.property import PropertySummary


class ValuationStatus(str, Enum):
    """평가 상태"""
    DRAFT = "draft"
    PENDING_REVIEW = "pending_review"
    APPROVED = "approved"
    REJECTED = "rejected"
    PUBLISHED = "published"


class ValuationType(str, Enum):
    """평가 유형"""
    INITIAL = "initial"
    PERIODIC = "periodic"
    EVENT_BASED = "event_based"
    REQUESTED = "requested"
    AUTOMATED = "automated"


class Methodology(str, Enum):
    """평가 방법론"""
    COMPARATIVE_MARKET_ANALYSIS = "comparative_market_analysis"
    INCOME_APPROACH = "income_approach"
    COST_APPROACH = "cost_approach"
    AUTOMATED_VALUATION = "automated_valuation"
    HYBRID = "hybrid"


class DocumentType(str, Enum):
    """평가 문서 유형"""
    APPRAISAL_REPORT = "appraisal_report"
    MARKET_ANALYSIS = "market_analysis"
    INSPECTION_REPORT = "inspection_report"
    PHOTOS = "photos"
    OTHER = "other"


class FactorType(str, Enum):
    """평가 요소 유형"""
    LOCATION = "location"
    CONDITION = "condition"
    MARKET = "market"
    RENOVATION = "renovation"
    LEGAL = "legal"
    OTHER = "other"


class FactorImpact(str, Enum):
    """평가 요소 영향"""
    POSITIVE = "positive"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"


class MarketTrend(str, Enum):
    RISING = "rising"
    DECLINING = "declining"
    STABLE = "stable"


# 허용되는 수동 상태 변경 (승인/거부/게시는 전용 엔드포인트로만)
MANUAL_STATUS_TRANSITIONS: dict[ValuationStatus, set[ValuationStatus]] = {
    ValuationStatus.DRAFT: {ValuationStatus.PENDING_REVIEW},
    ValuationStatus.PENDING_REVIEW: {ValuationStatus.DRAFT},
    ValuationStatus.REJECTED: {ValuationStatus.DRAFT},
}


class ValuationDocument(ApiModel):
    """평가 문서"""

    id: str
    title: str
    document_type: DocumentType
    file_url: str
    ipfs_hash: Optional[str] = None
    uploaded_by: Optional[str] = None
    uploaded_at: datetime
    verified: bool = False
    verified_by: Optional[str] = None
    verified_at: Optional[datetime] = None


class ValuationFactor(ApiModel):
    """평가 요소"""

    factor_name: str = Field(..., min_length=1)
    factor_type: FactorType
    impact: FactorImpact
    value_impact: Optional[float] = None  # 백분율
    description: Optional[str] = None


class Appraiser(ApiModel):
    """감정평가사 정보"""

    name: Optional[str] = None
    license: Optional[str] = None
    company: Optional[str] = None
    contact_info: Optional[str] = None
    user: Optional[str] = None


class ComparableSale(ApiModel):
    address: Optional[str] = None
    sale_price: Optional[Wei] = None
    sale_date: Optional[datetime] = None
    square_meters: Optional[float] = None
    adjustment_factors: Optional[dict[str, Any]] = None


class MarketConditions(ApiModel):
    """시장 상황"""

    interest_rate: Optional[float] = None
    market_trend: Optional[MarketTrend] = None
    comparable_properties: list[ComparableSale] = Field(default_factory=list)


class ValuationRequest(ApiModel):
    """평가 요청"""

    property_id: str
    reason: Optional[str] = None
    requested_valuation_type: Optional[ValuationType] = None


class ValuationCreate(ApiModel):
    """평가 생성 요청"""

    valuation_type: ValuationType
    methodology: Methodology
    current_value: Wei
    valuation_date: Optional[datetime] = None
    currency: str = "KRW"
    confidence_score: Optional[float] = Field(None, ge=0, le=100)
    appraiser: Optional[Appraiser] = None
    factors: list[ValuationFactor] = Field(default_factory=list)
    market_conditions: Optional[MarketConditions] = None
    notes: Optional[str] = None
    status: ValuationStatus = ValuationStatus.DRAFT
    record_on_chain: bool = False


class ValuationStatusUpdate(ApiModel):
    status: ValuationStatus


class ValuationReview(ApiModel):
    """평가 승인/거부 요청"""

    approved: bool
    reason: Optional[str] = None
    notes: Optional[str] = None


class DocumentCreate(ApiModel):
    """평가 문서 추가 요청"""

    title: str = Field(..., min_length=1)
    document_type: DocumentType = DocumentType.OTHER
    file_url: str = Field(..., min_length=1)
    ipfs_hash: Optional[str] = None


class RecordOnChainRequest(ApiModel):
    """블록체인 기록 요청 (클라이언트가 이미 기록한 경우 transactionHash 전달)"""

    transaction_hash: Optional[str] = None
    metadata_uri: Optional[str] = Field(None, alias="metadataURI")


class ValuationOut(ApiModel):
    """평가 정보"""

    id: str
    property_id: str
    property: Optional[PropertySummary] = None
    valuation_date: datetime
    valuation_type: ValuationType
    previous_valuation_id: Optional[str] = None
    previous_value: Optional[Wei] = None
    current_value: Wei
    currency: str = "KRW"
    value_change_percentage: Optional[float] = None
    appraiser: Optional[Appraiser] = None
    requested_by: Optional[str] = None
    approved_by: Optional[str] = None
    status: ValuationStatus
    methodology: Methodology
    confidence_score: Optional[float] = None
    factors: list[ValuationFactor] = Field(default_factory=list)
    documents: list[ValuationDocument] = Field(default_factory=list)
    notes: Optional[str] = None
    market_conditions: Optional[MarketConditions] = None
    recorded_on_chain: bool = False
    blockchain_valuation_id: Optional[int] = None
    blockchain_approval_tx: Optional[str] = None
    transaction_hash: Optional[str] = None
    metadata_uri: Optional[str] = Field(None, alias="metadataURI")
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ValuationRequestResponse(ApiModel):
    message: str
    valuation_id: str


class ValuationStatusResponse(ApiModel):
    message: str
    status: ValuationStatus


class RecordOnChainResponse(ApiModel):
    message: str
    transaction_hash: str
    metadata_uri: Optional[str] = Field(None, alias="metadataURI")


class ChainValuation(ApiModel):
    """블록체인에 기록된 평가"""

    valuation_id: int
    token_id: int
    previous_value: Wei
    current_value: Wei
    change_percentage: int
    valuation_date: datetime
    appraiser: str
    approver: str
    status: str
    methodology: str
    metadata_uri: str = Field(..., alias="metadataURI")
