"""지분, 토큰, 거래 데이터 모델"""
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import Field

from src.models.common import Address, ApiModel, Wei
from src.models.property import PropertyOut, PropertySummary


class TokenStatus(str, Enum):
    """토큰 상태"""
    PENDING = "pending"
    ACTIVE = "active"
    PAUSED = "paused"
    CLOSED = "closed"


class TransactionType(str, Enum):
    """거래 유형"""
    PURCHASE = "구매"
    SALE = "판매"
    TOKENIZATION = "토큰화"


class TransactionStatus(str, Enum):
    """거래 상태"""
    PENDING = "대기중"
    COMPLETED = "완료"
    FAILED = "실패"


class ShareOut(ApiModel):
    """지분 정보"""

    id: str
    share_id: int
    property_id: str
    property_token_id: int
    property: Optional[PropertySummary] = None
    total_shares: int
    available_shares: int
    price_per_share: Wei
    tokenizer: str
    active: bool = True
    transaction_hash: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class TokenAttribute(ApiModel):
    """NFT 속성"""

    trait_type: str = Field(..., alias="trait_type")
    value: Any


class TokenOut(ApiModel):
    """토큰 정보"""

    id: str
    name: str
    symbol: str
    property_id: str
    token_id: int
    total_supply: int
    contract_address: str
    created_by: str
    owner_address: str
    status: TokenStatus
    meta: Optional[dict[str, Any]] = Field(None, serialization_alias="metadata")
    transaction_hash: Optional[str] = None
    token_uri: Optional[str] = Field(None, alias="tokenURI")
    attributes: list[TokenAttribute] = Field(default_factory=list)
    created_at: Optional[datetime] = None


class TransactionOut(ApiModel):
    """거래 내역"""

    id: str
    share_id: int
    property_id: str
    property: Optional[PropertySummary] = None
    buyer: str
    seller: str
    amount: int
    total_price: Wei
    transaction_type: TransactionType
    transaction_hash: str
    block_number: Optional[int] = None
    status: TransactionStatus
    created_at: Optional[datetime] = None


class PurchaseRequest(ApiModel):
    """지분 구매 기록 요청 (클라이언트에서 트랜잭션 완료 후 호출)"""

    share_id: int
    buyer: Address
    amount: int = Field(..., ge=1)
    total_price: Wei
    transaction_hash: Optional[str] = None
    block_number: Optional[int] = None


class SellRequest(ApiModel):
    """지분 판매 등록 요청"""

    share_id: int
    seller: Address
    amount: int = Field(..., ge=1)
    price: Wei
    transaction_hash: Optional[str] = None


class PurchaseResponse(ApiModel):
    """지분 구매 기록 응답"""

    message: str
    transaction: TransactionOut
    share: ShareOut


class Listing(ApiModel):
    """판매 등록 정보"""

    share_id: int
    property_id: str
    seller: str
    amount: int
    price: Wei
    transaction_hash: Optional[str] = None
    listed_at: datetime


class SellResponse(ApiModel):
    """판매 등록 응답"""

    message: str
    listing: Listing


class ShareHolding(ApiModel):
    """지분별 보유 현황"""

    share_id: int
    property: Optional[PropertySummary] = None
    total_purchased: int = 0
    total_value: Wei = 0


class UserShares(ApiModel):
    """사용자 보유 지분"""

    tokenized_shares: list[ShareOut]
    purchases: list[TransactionOut]
    share_holdings: list[ShareHolding]


class UserTokens(ApiModel):
    """사용자 토큰 현황"""

    owned_properties: list[PropertyOut]
    tokenized_properties: list[ShareOut]
    purchases: list[TransactionOut]
    sales: list[TransactionOut]


class TokenizeResponse(ApiModel):
    """토큰화 완료 응답"""

    message: str
    property: PropertyOut
    share: ShareOut
    token: TokenOut
