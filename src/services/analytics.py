"""분석 통계 서비스

wei 금액은 정수로 합산하고 비율은 Decimal로 계산한다.
공개 통계는 Redis에 캐시한다.
"""
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.models.analytics import (
    InvestmentPerformance,
    InvestmentSummary,
    PerformanceTransaction,
    PlatformStats,
    PropertyTypeStats,
    Region,
    RegionalStats,
    SampleProperty,
    SharePerformance,
    TransactionTrends,
    TrendPeriod,
    TrendPoint,
)
from src.models.share import TransactionStatus, TransactionType
from src.services.cache import CacheService
from src.services.shares import require_wallet
from src.services.tables import Property, Transaction, User
from src.utils.logger import get_logger
from src.utils.wei import average_wei, ratio_percent

logger = get_logger(__name__)

REGION_PRECISION = 2
SAMPLE_SIZE = 5


def _dump(model) -> Any:
    if isinstance(model, list):
        return [m.model_dump(by_alias=True, mode="json") for m in model]
    return model.model_dump(by_alias=True, mode="json")


class AnalyticsService:
    """플랫폼 통계"""

    def __init__(self, session: AsyncSession, cache: Optional[CacheService] = None):
        self.session = session
        self.cache = cache

    async def _cached(self, key: str, factory) -> Any:
        async def build() -> Any:
            return _dump(await factory())

        if self.cache is None:
            return await build()
        return await self.cache.get_or_set(key, build)

    async def _count(self, *conditions, model=Property) -> int:
        stmt = select(func.count()).select_from(model)
        if conditions:
            stmt = stmt.where(*conditions)
        return await self.session.scalar(stmt) or 0

    # ------------------------------------------------------------------
    # 플랫폼 통계
    # ------------------------------------------------------------------

    async def platform_stats(self) -> dict:
        return await self._cached(CacheService.analytics_key("platform"), self._platform_stats)

    async def _platform_stats(self) -> PlatformStats:
        total_properties = await self._count()
        tokenized = await self._count(Property.is_tokenized.is_(True))
        prices = (
            await self.session.execute(
                select(Transaction.total_price).where(
                    Transaction.status == TransactionStatus.COMPLETED.value
                )
            )
        ).scalars().all()

        return PlatformStats(
            total_properties=total_properties,
            tokenized_properties=tokenized,
            tokenization_rate=ratio_percent(tokenized, total_properties),
            total_transactions=len(prices),
            total_volume_wei=sum(prices),
            total_users=await self._count(model=User),
            wallet_connected_users=await self._count(User.wallet_address.is_not(None), model=User),
            last_updated=datetime.now(timezone.utc),
        )

    async def property_type_stats(self) -> list:
        return await self._cached(CacheService.analytics_key("property_types"), self._property_type_stats)

    async def _property_type_stats(self) -> list[PropertyTypeStats]:
        rows = await self.session.execute(
            select(Property.property_type, Property.is_tokenized, Property.appraised_value)
        )
        groups: dict[str, dict[str, int]] = defaultdict(lambda: {"count": 0, "tokenized": 0, "value": 0})
        for property_type, is_tokenized, value in rows.all():
            group = groups[property_type]
            group["count"] += 1
            group["tokenized"] += 1 if is_tokenized else 0
            group["value"] += value

        return [
            PropertyTypeStats(
                property_type=property_type,
                count=g["count"],
                tokenized_count=g["tokenized"],
                tokenization_rate=ratio_percent(g["tokenized"], g["count"]),
                total_value=g["value"],
            )
            for property_type, g in sorted(groups.items())
        ]

    # ------------------------------------------------------------------
    # 거래 추이
    # ------------------------------------------------------------------

    async def transaction_trends(self, period: TrendPeriod = TrendPeriod.MONTHLY) -> dict:
        return await self._cached(
            CacheService.analytics_key("transaction_trends", period.value),
            lambda: self._transaction_trends(period),
        )

    @staticmethod
    def _bucket(created_at: datetime, period: TrendPeriod) -> tuple[int, ...]:
        if period == TrendPeriod.DAILY:
            return created_at.year, created_at.month, created_at.day
        if period == TrendPeriod.WEEKLY:
            iso = created_at.isocalendar()
            return iso[0], iso[1]
        return created_at.year, created_at.month

    async def _transaction_trends(self, period: TrendPeriod) -> TransactionTrends:
        rows = await self.session.execute(
            select(Transaction.created_at, Transaction.total_price).where(
                Transaction.status == TransactionStatus.COMPLETED.value
            )
        )
        buckets: dict[tuple[int, ...], list[int]] = defaultdict(lambda: [0, 0])
        for created_at, total_price in rows.all():
            bucket = buckets[self._bucket(created_at, period)]
            bucket[0] += 1
            bucket[1] += total_price

        data = []
        for key in sorted(buckets):
            count, volume = buckets[key]
            point = {"year": key[0], "count": count, "total_volume": volume}
            if period == TrendPeriod.WEEKLY:
                point["week"] = key[1]
            else:
                point["month"] = key[1]
                if period == TrendPeriod.DAILY:
                    point["day"] = key[2]
            data.append(TrendPoint(**point))
        return TransactionTrends(period=period, data=data)

    # ------------------------------------------------------------------
    # 사용자 투자 성과 (캐시하지 않음)
    # ------------------------------------------------------------------

    async def investment_performance(self, user: User) -> InvestmentPerformance:
        wallet = require_wallet(user)

        async def completed(*conditions) -> list[Transaction]:
            result = await self.session.execute(
                select(Transaction)
                .where(Transaction.status == TransactionStatus.COMPLETED.value, *conditions)
                .order_by(Transaction.created_at.asc())
            )
            return list(result.scalars().all())

        purchases = await completed(
            Transaction.buyer == wallet,
            Transaction.transaction_type == TransactionType.PURCHASE.value,
        )
        sales = await completed(
            Transaction.seller == wallet,
            Transaction.transaction_type == TransactionType.SALE.value,
        )

        performance: dict[int, SharePerformance] = {}
        for tx in purchases:
            perf = performance.get(tx.share_id)
            if perf is None:
                perf = performance[tx.share_id] = SharePerformance(
                    share_id=tx.share_id,
                    property_id=tx.property.token_id if tx.property else None,
                    property_address=tx.property.property_address if tx.property else None,
                )
            perf.total_purchased += tx.amount
            perf.total_spent += tx.total_price
            perf.remaining_shares += tx.amount
            perf.transactions.append(
                PerformanceTransaction(type="구매", amount=tx.amount, price=tx.total_price, date=tx.created_at)
            )

        for tx in sales:
            perf = performance.get(tx.share_id)
            if perf is None:
                continue
            perf.total_sold += tx.amount
            perf.total_earned += tx.total_price
            perf.remaining_shares -= tx.amount
            perf.transactions.append(
                PerformanceTransaction(type="판매", amount=tx.amount, price=tx.total_price, date=tx.created_at)
            )

        total_invested = 0
        total_returned = 0
        for perf in performance.values():
            perf.average_purchase_price = average_wei(perf.total_spent, perf.total_purchased)
            if perf.total_sold > 0 and perf.total_spent > 0:
                # (평균 판매가 - 평균 구매가) / 평균 구매가를 정수 교차곱으로 계산
                bought = perf.total_spent * perf.total_sold
                sold = perf.total_earned * perf.total_purchased
                perf.sold_shares_roi = ratio_percent(sold - bought, bought)
            total_invested += perf.total_spent
            total_returned += perf.total_earned

        return InvestmentPerformance(
            summary=InvestmentSummary(
                total_invested=total_invested,
                total_returned=total_returned,
                overall_roi=ratio_percent(total_returned - total_invested, total_invested),
            ),
            shares_performance=list(performance.values()),
        )

    # ------------------------------------------------------------------
    # 지역별 시장
    # ------------------------------------------------------------------

    async def regional_market(self) -> list:
        return await self._cached(CacheService.analytics_key("regional_market"), self._regional_market)

    async def _regional_market(self) -> list[RegionalStats]:
        result = await self.session.execute(select(Property).order_by(Property.created_at.asc()))
        groups: dict[tuple[float, float], list[Property]] = defaultdict(list)
        for property_ in result.scalars().all():
            key = (
                round(property_.latitude, REGION_PRECISION),
                round(property_.longitude, REGION_PRECISION),
            )
            groups[key].append(property_)

        stats = []
        for (latitude, longitude), properties in sorted(groups.items()):
            total_value = sum(p.appraised_value for p in properties)
            tokenized = sum(1 for p in properties if p.is_tokenized)
            stats.append(
                RegionalStats(
                    region=Region(latitude=latitude, longitude=longitude),
                    count=len(properties),
                    avg_value=average_wei(total_value, len(properties)),
                    total_value=total_value,
                    tokenized_count=tokenized,
                    tokenization_rate=ratio_percent(tokenized, len(properties)),
                    sample_properties=[
                        SampleProperty(id=p.id, address=p.property_address, value=p.appraised_value)
                        for p in properties[:SAMPLE_SIZE]
                    ],
                )
            )
        return stats
