"""지분, 토큰, 거래 서비스"""
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.models.share import (
    Listing,
    PurchaseRequest,
    SellRequest,
    ShareHolding,
    ShareOut,
    TransactionOut,
    TransactionStatus,
    TransactionType,
    UserShares,
    UserTokens,
)
from src.models.property import PropertyOut, PropertySummary
from src.services.blockchain import BlockchainService
from src.services.cache import CacheService
from src.services.properties import PROPERTY_NOT_FOUND, local_transaction_hash
from src.services.tables import Property, Share, Transaction, User
from src.utils.errors import ApiError, BlockchainError
from src.utils.logger import get_logger

logger = get_logger(__name__)

SHARE_NOT_FOUND = "해당 지분을 찾을 수 없습니다"


def require_wallet(user: User) -> str:
    if not user.wallet_address:
        raise ApiError(400, "연결된 지갑 주소가 없습니다")
    return user.wallet_address


class ShareService:
    """지분 조회/구매 기록"""

    def __init__(
        self,
        session: AsyncSession,
        blockchain: Optional[BlockchainService] = None,
        cache: Optional[CacheService] = None,
    ):
        self.session = session
        self.blockchain = blockchain
        self.cache = cache

    async def list_active(self) -> list[Share]:
        result = await self.session.execute(
            select(Share).where(Share.active.is_(True)).order_by(Share.created_at.desc())
        )
        return list(result.scalars().all())

    async def _find(self, share_id: int) -> Share:
        share = await self.session.scalar(select(Share).where(Share.share_id == share_id))
        if share is None:
            raise ApiError(404, SHARE_NOT_FOUND)
        return share

    async def _chain_available_shares(self, share_id: int) -> Optional[int]:
        """체인의 가용 지분 수 (조회 실패 시 None)"""
        if self.blockchain is None:
            return None
        try:
            info = await self.blockchain.get_share_info(share_id)
        except BlockchainError as e:
            logger.warning("Share info lookup failed", share_id=share_id, error=e.message)
            return None
        return info.available_shares

    async def get(self, share_id: int) -> Share:
        """지분 조회 (체인 응답이 있으면 가용 지분 동기화)"""
        share = await self._find(share_id)
        available = await self._chain_available_shares(share_id)
        if available is not None and available != share.available_shares:
            share.available_shares = available
            await self.session.commit()
        return share

    async def list_by_property_token(self, property_token_id: int) -> list[Share]:
        property_ = await self.session.scalar(
            select(Property).where(Property.token_id == property_token_id)
        )
        if property_ is None:
            raise ApiError(404, PROPERTY_NOT_FOUND)
        result = await self.session.execute(
            select(Share).where(Share.property_token_id == property_token_id)
        )
        return list(result.scalars().all())

    async def purchase(self, request: PurchaseRequest) -> tuple[Transaction, Share]:
        """지분 구매 기록 (클라이언트에서 구매 트랜잭션 완료 후 호출)"""
        share = await self._find(request.share_id)

        if request.transaction_hash:
            duplicate = await self.session.scalar(
                select(Transaction.id).where(Transaction.transaction_hash == request.transaction_hash)
            )
            if duplicate is not None:
                raise ApiError(409, "이미 기록된 거래입니다")

        available = await self._chain_available_shares(request.share_id)
        if available is not None:
            # 체인 값은 이미 이번 구매가 반영된 수량
            share.available_shares = available
        else:
            result = await self.session.execute(
                update(Share)
                .where(
                    Share.share_id == request.share_id,
                    Share.available_shares >= request.amount,
                )
                .values(available_shares=Share.available_shares - request.amount)
            )
            if result.rowcount == 0:
                await self.session.rollback()
                raise ApiError(400, "구매 가능한 지분이 부족합니다")

        transaction = Transaction(
            share_id=request.share_id,
            property_id=share.property_id,
            property=share.property,
            buyer=request.buyer,
            seller=share.tokenizer,
            amount=request.amount,
            total_price=request.total_price,
            transaction_type=TransactionType.PURCHASE.value,
            transaction_hash=request.transaction_hash or local_transaction_hash(),
            block_number=request.block_number,
            status=TransactionStatus.COMPLETED.value,
        )
        self.session.add(transaction)
        try:
            await self.session.commit()
        except IntegrityError as e:
            await self.session.rollback()
            raise ApiError(409, "이미 기록된 거래입니다") from e

        await self.session.refresh(share, attribute_names=["available_shares"])
        if self.cache is not None:
            await self.cache.invalidate_analytics()

        logger.info(
            "Share purchase recorded",
            share_id=request.share_id,
            buyer=request.buyer,
            amount=request.amount,
            available_shares=share.available_shares,
            chain_synced=available is not None,
        )
        return transaction, share

    async def sell_listing(self, request: SellRequest) -> Listing:
        """판매 등록 정보 (저장하지 않고 그대로 돌려준다)"""
        share = await self._find(request.share_id)
        return Listing(
            share_id=request.share_id,
            property_id=share.property_id,
            seller=request.seller,
            amount=request.amount,
            price=request.price,
            transaction_hash=request.transaction_hash,
            listed_at=datetime.now(timezone.utc),
        )

    async def transactions_for_share(self, share_id: int) -> list[Transaction]:
        result = await self.session.execute(
            select(Transaction)
            .where(Transaction.share_id == share_id)
            .order_by(Transaction.created_at.desc())
        )
        return list(result.scalars().all())

    async def _tokenized_by(self, wallet: str) -> list[Share]:
        result = await self.session.execute(
            select(Share).where(Share.tokenizer == wallet).order_by(Share.created_at.desc())
        )
        return list(result.scalars().all())

    async def _completed_transactions(self, *conditions) -> list[Transaction]:
        result = await self.session.execute(
            select(Transaction)
            .where(Transaction.status == TransactionStatus.COMPLETED.value, *conditions)
            .order_by(Transaction.created_at.desc())
        )
        return list(result.scalars().all())

    async def user_shares(self, user: User) -> UserShares:
        wallet = require_wallet(user)
        tokenized = await self._tokenized_by(wallet)
        purchases = await self._completed_transactions(
            Transaction.buyer == wallet,
            Transaction.transaction_type == TransactionType.PURCHASE.value,
        )

        holdings: dict[int, ShareHolding] = {}
        for tx in purchases:
            holding = holdings.get(tx.share_id)
            if holding is None:
                holding = holdings[tx.share_id] = ShareHolding(
                    share_id=tx.share_id,
                    property=PropertySummary.model_validate(tx.property) if tx.property else None,
                )
            holding.total_purchased += tx.amount
            holding.total_value += tx.total_price

        return UserShares(
            tokenized_shares=[ShareOut.model_validate(s) for s in tokenized],
            purchases=[TransactionOut.model_validate(t) for t in purchases],
            share_holdings=list(holdings.values()),
        )

    async def user_tokens(self, user: User) -> UserTokens:
        wallet = require_wallet(user)
        owned = await self.session.execute(
            select(Property).where(Property.owner_address == wallet)
        )
        tokenized = await self._tokenized_by(wallet)
        purchases = await self._completed_transactions(
            Transaction.buyer == wallet,
            or_(
                Transaction.transaction_type == TransactionType.PURCHASE.value,
                Transaction.transaction_type == TransactionType.SALE.value,
            ),
        )
        sales = await self._completed_transactions(
            Transaction.seller == wallet,
            Transaction.transaction_type != TransactionType.TOKENIZATION.value,
        )

        return UserTokens(
            owned_properties=[PropertyOut.model_validate(p) for p in owned.scalars().all()],
            tokenized_properties=[ShareOut.model_validate(s) for s in tokenized],
            purchases=[TransactionOut.model_validate(t) for t in purchases],
            sales=[TransactionOut.model_validate(t) for t in sales],
        )
