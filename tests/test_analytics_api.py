"""분석 통계 API 테스트"""
import pytest

from src.services.tables import Property, Transaction
from tests.conftest import BUYER_WALLET, OWNER_WALLET, auth_header


async def purchase(client, buyer, amount, total_price, tx_hash):
    response = await client.post(
        "/api/shares/purchase",
        json={
            "shareId": 7,
            "buyer": BUYER_WALLET,
            "amount": amount,
            "totalPrice": str(total_price),
            "transactionHash": tx_hash,
        },
        headers=auth_header(buyer),
    )
    assert response.status_code == 201


async def add_property(session, owner, **overrides):
    values = {
        "property_address": "부산시 해운대구 우동 1",
        "property_type": "상가",
        "square_meters": 120.0,
        "appraised_value": 3 * 10**18,
        "latitude": 35.1631,
        "longitude": 129.1636,
        "ipfs_document_uri": "ipfs://busan",
        "owner_address": OWNER_WALLET,
        "created_by": owner.id,
        "valuation_history": [],
        "income_history": [],
    }
    values.update(overrides)
    property_ = Property(**values)
    session.add(property_)
    await session.commit()
    return property_


class TestPlatformStats:
    """플랫폼 통계 테스트"""

    @pytest.mark.asyncio
    async def test_platform_stats(self, client, owner, buyer, session, tokenized_property):
        await add_property(session, owner)
        await purchase(client, buyer, 10, 10**17, "0xa1")

        response = await client.get("/api/analytics/platform-stats")

        stats = response.json()
        assert stats["totalProperties"] == 2
        assert stats["tokenizedProperties"] == 1
        assert stats["tokenizationRate"] == 50.0
        assert stats["totalTransactions"] == 1
        assert stats["totalVolumeWei"] == "100000000000000000"
        assert stats["totalUsers"] == 2
        assert stats["walletConnectedUsers"] == 2

    @pytest.mark.asyncio
    async def test_cached_until_invalidated(self, client, owner, buyer, session, tokenized_property):
        first = await client.get("/api/analytics/platform-stats")
        await add_property(session, owner)
        cached = await client.get("/api/analytics/platform-stats")

        assert cached.json()["totalProperties"] == first.json()["totalProperties"] == 1

        await purchase(client, buyer, 1, 10**16, "0xa2")
        refreshed = await client.get("/api/analytics/platform-stats")
        assert refreshed.json()["totalProperties"] == 2

    @pytest.mark.asyncio
    async def test_property_types(self, client, owner, session, tokenized_property):
        await add_property(session, owner)

        response = await client.get("/api/analytics/property-types")

        by_type = {s["propertyType"]: s for s in response.json()}
        assert by_type["아파트"]["tokenizedCount"] == 1
        assert by_type["상가"]["tokenizationRate"] == 0.0
        assert by_type["상가"]["totalValue"] == "3000000000000000000"


class TestTransactionTrends:
    @pytest.mark.asyncio
    async def test_monthly(self, client, buyer, tokenized_property):
        await purchase(client, buyer, 10, 10**17, "0xt1")
        await purchase(client, buyer, 5, 5 * 10**16, "0xt2")

        response = await client.get("/api/analytics/transaction-trends")

        body = response.json()
        assert body["period"] == "monthly"
        assert len(body["data"]) == 1
        assert body["data"][0]["count"] == 2
        assert body["data"][0]["totalVolume"] == "150000000000000000"
        assert body["data"][0]["month"] is not None

    @pytest.mark.asyncio
    async def test_weekly_has_week_number(self, client, buyer, tokenized_property):
        await purchase(client, buyer, 10, 10**17, "0xt3")

        response = await client.get("/api/analytics/transaction-trends", params={"period": "weekly"})

        point = response.json()["data"][0]
        assert point["week"] is not None
        assert point["month"] is None

    @pytest.mark.asyncio
    async def test_invalid_period(self, client):
        response = await client.get("/api/analytics/transaction-trends", params={"period": "yearly"})
        assert response.status_code == 400


class TestInvestmentPerformance:
    """투자 성과 테스트"""

    @pytest.mark.asyncio
    async def test_roi(self, client, buyer, session, tokenized_property):
        await purchase(client, buyer, 10, 10**17, "0xp1")
        session.add(
            Transaction(
                share_id=7,
                property_id=tokenized_property.id,
                buyer="0x" + "4" * 40,
                seller=BUYER_WALLET,
                amount=5,
                total_price=6 * 10**16,
                transaction_type="판매",
                transaction_hash="0xs1",
                status="완료",
            )
        )
        await session.commit()

        response = await client.get(
            "/api/analytics/user/investment-performance", headers=auth_header(buyer)
        )

        body = response.json()
        perf = body["sharesPerformance"][0]
        assert perf["propertyId"] == 1
        assert perf["remainingShares"] == 5
        assert perf["averagePurchasePrice"] == "10000000000000000"
        assert perf["soldSharesROI"] == 20.0
        assert [t["type"] for t in perf["transactions"]] == ["구매", "판매"]
        assert body["summary"]["totalInvested"] == "100000000000000000"
        assert body["summary"]["overallROI"] == -40.0

    @pytest.mark.asyncio
    async def test_requires_wallet(self, client, admin):
        response = await client.get(
            "/api/analytics/user/investment-performance", headers=auth_header(admin)
        )
        assert response.status_code == 400


class TestRegionalMarket:
    @pytest.mark.asyncio
    async def test_groups_by_rounded_coordinates(self, client, owner, session, tokenized_property):
        await add_property(session, owner, latitude=37.5049, longitude=127.0401, token_id=2)
        await add_property(session, owner, token_id=3)

        response = await client.get("/api/analytics/regional-market")

        regions = {(r["region"]["latitude"], r["region"]["longitude"]): r for r in response.json()}
        gangnam = regions[(37.5, 127.04)]
        assert gangnam["count"] == 2
        assert gangnam["tokenizedCount"] == 1
        assert gangnam["avgValue"] == "2000000000000000000"
        assert len(gangnam["sampleProperties"]) == 2
        assert regions[(35.16, 129.16)]["count"] == 1
