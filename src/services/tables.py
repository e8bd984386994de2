"""ORM 테이블 정의"""
import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.services.database import Base, WeiType


def new_id() -> str:
    return uuid.uuid4().hex


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )


class User(TimestampMixin, Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    password: Mapped[str] = mapped_column(String(255))
    name: Mapped[str] = mapped_column(String(100))
    wallet_address: Mapped[Optional[str]] = mapped_column(String(42), unique=True, nullable=True)
    role: Mapped[str] = mapped_column(String(20), default="user")
    is_verified: Mapped[bool] = mapped_column(Boolean, default=False)


class Property(TimestampMixin, Base):
    __tablename__ = "properties"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    property_address: Mapped[str] = mapped_column(String(500))
    property_type: Mapped[str] = mapped_column(String(20), index=True)
    square_meters: Mapped[float] = mapped_column(Float)
    appraised_value: Mapped[int] = mapped_column(WeiType())
    latitude: Mapped[float] = mapped_column(Float)
    longitude: Mapped[float] = mapped_column(Float)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    image_url: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    ipfs_document_uri: Mapped[str] = mapped_column(String(1000))
    owner_address: Mapped[str] = mapped_column(String(42), index=True)
    created_by: Mapped[str] = mapped_column(ForeignKey("users.id"), index=True)
    token_id: Mapped[Optional[int]] = mapped_column(Integer, unique=True, nullable=True)
    is_tokenized: Mapped[bool] = mapped_column(Boolean, default=False)
    share_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    blockchain_status: Mapped[str] = mapped_column(String(20), default="등록대기")
    transaction_hash: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    valuation_history: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list)
    income_history: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list)
    property_status: Mapped[str] = mapped_column(String(20), default="available")
    rental_info: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)


class Share(TimestampMixin, Base):
    __tablename__ = "shares"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    share_id: Mapped[int] = mapped_column(Integer, unique=True, index=True)
    property_token_id: Mapped[int] = mapped_column(Integer, index=True)
    property_id: Mapped[str] = mapped_column(ForeignKey("properties.id"), index=True)
    total_shares: Mapped[int] = mapped_column(Integer)
    available_shares: Mapped[int] = mapped_column(Integer)
    price_per_share: Mapped[int] = mapped_column(WeiType())
    tokenizer: Mapped[str] = mapped_column(String(42), index=True)
    active: Mapped[bool] = mapped_column(Boolean, default=True)
    transaction_hash: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    property: Mapped["Property"] = relationship(lazy="selectin")


class Token(TimestampMixin, Base):
    __tablename__ = "tokens"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(200))
    symbol: Mapped[str] = mapped_column(String(20))
    property_id: Mapped[str] = mapped_column(ForeignKey("properties.id"), index=True)
    token_id: Mapped[int] = mapped_column(Integer, index=True)
    total_supply: Mapped[int] = mapped_column(Integer)
    contract_address: Mapped[str] = mapped_column(String(42), index=True)
    created_by: Mapped[str] = mapped_column(ForeignKey("users.id"), index=True)
    owner_address: Mapped[str] = mapped_column(String(42))
    status: Mapped[str] = mapped_column(String(20), default="pending", index=True)
    # "metadata"는 Declarative에서 예약된 이름
    meta: Mapped[Optional[dict[str, Any]]] = mapped_column("metadata", JSON, nullable=True)
    transaction_hash: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    token_uri: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    attributes: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list)


class Transaction(TimestampMixin, Base):
    __tablename__ = "transactions"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    share_id: Mapped[int] = mapped_column(Integer, index=True)
    property_id: Mapped[str] = mapped_column(ForeignKey("properties.id"), index=True)
    buyer: Mapped[str] = mapped_column(String(42), index=True)
    seller: Mapped[str] = mapped_column(String(42), index=True)
    amount: Mapped[int] = mapped_column(Integer)
    total_price: Mapped[int] = mapped_column(WeiType())
    transaction_type: Mapped[str] = mapped_column(String(10))
    transaction_hash: Mapped[str] = mapped_column(String(100), unique=True)
    block_number: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    status: Mapped[str] = mapped_column(String(10), default="대기중")

    property: Mapped["Property"] = relationship(lazy="selectin")


class Notification(TimestampMixin, Base):
    __tablename__ = "notifications"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    title: Mapped[str] = mapped_column(String(200))
    message: Mapped[str] = mapped_column(Text)
    type: Mapped[str] = mapped_column(String(10), default="시스템")
    related_property_id: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    related_transaction_id: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False)
    link: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)


class PropertyValuation(TimestampMixin, Base):
    __tablename__ = "property_valuations"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    property_id: Mapped[str] = mapped_column(ForeignKey("properties.id"), index=True)
    valuation_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, index=True)
    valuation_type: Mapped[str] = mapped_column(String(20))
    previous_valuation_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("property_valuations.id"), nullable=True
    )
    previous_value: Mapped[Optional[int]] = mapped_column(WeiType(), nullable=True)
    current_value: Mapped[int] = mapped_column(WeiType())
    currency: Mapped[str] = mapped_column(String(10), default="KRW")
    value_change_percentage: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    appraiser: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)
    requested_by: Mapped[Optional[str]] = mapped_column(ForeignKey("users.id"), nullable=True)
    approved_by: Mapped[Optional[str]] = mapped_column(ForeignKey("users.id"), nullable=True)
    status: Mapped[str] = mapped_column(String(20), default="draft", index=True)
    methodology: Mapped[str] = mapped_column(String(40))
    confidence_score: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    factors: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list)
    documents: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    market_conditions: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)
    recorded_on_chain: Mapped[bool] = mapped_column(Boolean, default=False)
    blockchain_valuation_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    blockchain_approval_tx: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    transaction_hash: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    metadata_uri: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)

    property: Mapped["Property"] = relationship(lazy="selectin")


class IncomeDistribution(TimestampMixin, Base):
    __tablename__ = "income_distributions"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    property_id: Mapped[str] = mapped_column(ForeignKey("properties.id"), index=True)
    token_id: Mapped[str] = mapped_column(ForeignKey("tokens.id"), index=True)
    income_type: Mapped[str] = mapped_column(String(20))
    total_amount: Mapped[int] = mapped_column(WeiType())
    # {"start": ISO8601, "end": ISO8601}
    period: Mapped[dict[str, Any]] = mapped_column(JSON)
    description: Mapped[str] = mapped_column(Text)
    created_by: Mapped[str] = mapped_column(ForeignKey("users.id"), index=True)
    distribution_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)
    status: Mapped[str] = mapped_column(String(20), default="scheduled", index=True)
    contract_call_transaction_hash: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    blockchain_distribution_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    meta: Mapped[Optional[dict[str, Any]]] = mapped_column("metadata", JSON, nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    fee: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)
    ownership_snapshot: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)

    property: Mapped["Property"] = relationship(lazy="selectin")
    receivers: Mapped[list["DistributionReceiver"]] = relationship(
        back_populates="distribution",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="DistributionReceiver.position",
    )


class DistributionReceiver(Base):
    __tablename__ = "distribution_receivers"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    distribution_id: Mapped[str] = mapped_column(
        ForeignKey("income_distributions.id", ondelete="CASCADE"), index=True
    )
    position: Mapped[int] = mapped_column(Integer, default=0)
    wallet_address: Mapped[str] = mapped_column(String(42), index=True)
    user_id: Mapped[Optional[str]] = mapped_column(ForeignKey("users.id"), nullable=True)
    shares: Mapped[int] = mapped_column(Integer)
    amount: Mapped[int] = mapped_column(WeiType())
    status: Mapped[str] = mapped_column(String(20), default="pending")
    transaction_hash: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    settlement_reference: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    distributed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    distribution: Mapped["IncomeDistribution"] = relationship(back_populates="receivers")


class ChainOperation(TimestampMixin, Base):
    """DB -> 체인 -> DB 작업 기록 (outbox)"""

    __tablename__ = "chain_operations"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    operation: Mapped[str] = mapped_column(String(50), index=True)
    target_type: Mapped[str] = mapped_column(String(30))
    target_id: Mapped[str] = mapped_column(String(32), index=True)
    status: Mapped[str] = mapped_column(String(20), default="pending", index=True)
    attempts: Mapped[int] = mapped_column(Integer, default=0)
    payload: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)
    result: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)
    transaction_hash: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


class IdempotencyRecord(TimestampMixin, Base):
    __tablename__ = "idempotency_records"
    __table_args__ = (UniqueConstraint("scope", "key", name="uq_idempotency_scope_key"),)

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    scope: Mapped[str] = mapped_column(String(100))
    key: Mapped[str] = mapped_column(String(200))
    user_id: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    status: Mapped[str] = mapped_column(String(20), default="in_progress")
    response_status: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    response_body: Mapped[Optional[Any]] = mapped_column(JSON, nullable=True)
