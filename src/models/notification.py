"""알림 데이터 모델"""
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import Field

from src.models.common import ApiModel, Pagination


class NotificationType(str, Enum):
    """알림 유형"""
    TRANSACTION = "거래"
    SYSTEM = "시스템"
    TOKENIZATION = "토큰화"
    SHARE = "지분"
    WARNING = "경고"
    PROPERTY = "부동산"
    INCOME = "수익"
    VALUATION = "평가"
    OTHER = "기타"


class NotificationOut(ApiModel):
    """알림"""

    id: str
    user_id: str
    title: str
    message: str
    type: NotificationType
    related_property_id: Optional[str] = None
    related_transaction_id: Optional[str] = None
    is_read: bool = False
    link: Optional[str] = None
    created_at: Optional[datetime] = None


class NotificationList(ApiModel):
    """알림 목록"""

    notifications: list[NotificationOut]
    pagination: Pagination
    unread_count: int


class UnreadCount(ApiModel):
    unread_count: int


class SystemNotificationRequest(ApiModel):
    """시스템 알림 발송 요청"""

    title: str = Field(..., min_length=1)
    message: str = Field(..., min_length=1)
    type: NotificationType = NotificationType.SYSTEM
    user_ids: Optional[list[str]] = None
    link: Optional[str] = None


class SystemNotificationResponse(ApiModel):
    message: str
    sent: int
    total: int
