"""분석 통계 데이터 모델"""
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import Field

from src.models.common import ApiModel, Wei


class TrendPeriod(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class PlatformStats(ApiModel):
    """플랫폼 전체 통계"""

    total_properties: int
    tokenized_properties: int
    tokenization_rate: float
    total_transactions: int
    total_volume_wei: Wei
    total_users: int
    wallet_connected_users: int
    last_updated: datetime


class PropertyTypeStats(ApiModel):
    property_type: str
    count: int
    tokenized_count: int
    tokenization_rate: float
    total_value: Wei


class TrendPoint(ApiModel):
    year: int
    month: Optional[int] = None
    week: Optional[int] = None
    day: Optional[int] = None
    count: int
    total_volume: Wei


class TransactionTrends(ApiModel):
    period: TrendPeriod
    data: list[TrendPoint] = Field(default_factory=list)


class PerformanceTransaction(ApiModel):
    type: str
    amount: int
    price: Wei
    date: Optional[datetime] = None


class SharePerformance(ApiModel):
    """지분별 투자 성과"""

    share_id: int
    property_id: Optional[int] = None
    property_address: Optional[str] = None
    total_purchased: int = 0
    total_spent: Wei = 0
    total_sold: int = 0
    total_earned: Wei = 0
    remaining_shares: int = 0
    average_purchase_price: Wei = 0
    sold_shares_roi: float = Field(0.0, alias="soldSharesROI")
    transactions: list[PerformanceTransaction] = Field(default_factory=list)


class InvestmentSummary(ApiModel):
    total_invested: Wei
    total_returned: Wei
    overall_roi: float = Field(..., alias="overallROI")


class InvestmentPerformance(ApiModel):
    summary: InvestmentSummary
    shares_performance: list[SharePerformance] = Field(default_factory=list)


class Region(ApiModel):
    latitude: float
    longitude: float


class SampleProperty(ApiModel):
    id: str
    address: str
    value: Wei


class RegionalStats(ApiModel):
    """지역별 시장 통계"""

    region: Region
    count: int
    avg_value: Wei
    total_value: Wei
    tokenized_count: int
    tokenization_rate: float
    sample_properties: list[SampleProperty] = Field(default_factory=list)
