"""지분/토큰 API 테스트"""
import pytest
from sqlalchemy import select

from src.services.blockchain import ChainShareInfo
from src.services.tables import Share, Transaction
from tests.conftest import BUYER_WALLET, OWNER_WALLET, auth_header


def purchase_payload(**overrides):
    payload = {
        "shareId": 7,
        "buyer": BUYER_WALLET,
        "amount": 10,
        "totalPrice": "100000000000000000",
        "transactionHash": "0xpurchase1",
        "blockNumber": 1234,
    }
    payload.update(overrides)
    return payload


def chain_share(available: int) -> ChainShareInfo:
    return ChainShareInfo(
        property_id=1,
        total_shares=100,
        available_shares=available,
        price_per_share=10**16,
        property_address="서울시 강남구 역삼동 123-45",
        tokenizer=OWNER_WALLET,
        active=True,
    )


class TestShareQueries:
    @pytest.mark.asyncio
    async def test_list_active_shares(self, client, tokenized_property):
        response = await client.get("/api/shares")

        assert response.status_code == 200
        shares = response.json()
        assert len(shares) == 1
        assert shares[0]["shareId"] == 7
        assert shares[0]["pricePerShare"] == "10000000000000000"
        assert shares[0]["property"]["id"] == tokenized_property.id

    @pytest.mark.asyncio
    async def test_get_share_syncs_available_from_chain(self, client, blockchain, tokenized_property):
        blockchain.share_info = chain_share(80)

        response = await client.get("/api/shares/7")

        assert response.status_code == 200
        assert response.json()["availableShares"] == 80

    @pytest.mark.asyncio
    async def test_get_share_falls_back_to_db(self, client, tokenized_property):
        response = await client.get("/api/shares/7")
        assert response.json()["availableShares"] == 100

    @pytest.mark.asyncio
    async def test_share_not_found(self, client):
        response = await client.get("/api/shares/999")
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_shares_by_property_token(self, client, tokenized_property):
        response = await client.get("/api/shares/property/1")
        assert [s["shareId"] for s in response.json()] == [7]

        missing = await client.get("/api/shares/property/42")
        assert missing.status_code == 404


class TestPurchase:
    """구매 기록 테스트"""

    @pytest.mark.asyncio
    async def test_purchase_decrements_available(self, client, buyer, cache, tokenized_property):
        response = await client.post("/api/shares/purchase", json=purchase_payload(), headers=auth_header(buyer))

        assert response.status_code == 201
        body = response.json()
        assert body["share"]["availableShares"] == 90
        assert body["transaction"]["transactionType"] == "구매"
        assert body["transaction"]["status"] == "완료"
        assert body["transaction"]["seller"] == OWNER_WALLET
        assert cache.invalidations == 1

    @pytest.mark.asyncio
    async def test_purchase_uses_chain_available(self, client, buyer, blockchain, tokenized_property):
        blockchain.share_info = chain_share(85)

        response = await client.post("/api/shares/purchase", json=purchase_payload(), headers=auth_header(buyer))

        assert response.json()["share"]["availableShares"] == 85

    @pytest.mark.asyncio
    async def test_insufficient_shares(self, client, buyer, session, tokenized_property):
        response = await client.post(
            "/api/shares/purchase",
            json=purchase_payload(amount=101),
            headers=auth_header(buyer),
        )

        assert response.status_code == 400
        assert response.json()["error"] == "구매 가능한 지분이 부족합니다"
        assert (await session.execute(select(Transaction))).first() is None

    @pytest.mark.asyncio
    async def test_duplicate_transaction_hash(self, client, buyer, tokenized_property):
        first = await client.post("/api/shares/purchase", json=purchase_payload(), headers=auth_header(buyer))
        second = await client.post("/api/shares/purchase", json=purchase_payload(), headers=auth_header(buyer))

        assert first.status_code == 201
        assert second.status_code == 409

    @pytest.mark.asyncio
    async def test_buy_share_uses_path_share_id(self, client, buyer, session, tokenized_property):
        response = await client.post(
            "/api/tokens/7/buy-share",
            json=purchase_payload(shareId=999, transactionHash=None),
            headers=auth_header(buyer),
        )

        assert response.status_code == 201
        assert response.json()["transaction"]["shareId"] == 7
        assert response.json()["transaction"]["transactionHash"].startswith("local-")
        share = (await session.execute(select(Share).where(Share.share_id == 7))).scalar_one()
        await session.refresh(share)
        assert share.available_shares == 90


class TestUserHoldings:
    @pytest.mark.asyncio
    async def test_user_shares(self, client, buyer, tokenized_property):
        await client.post("/api/shares/purchase", json=purchase_payload(), headers=auth_header(buyer))
        await client.post(
            "/api/shares/purchase",
            json=purchase_payload(amount=5, totalPrice="50000000000000000", transactionHash="0xpurchase2"),
            headers=auth_header(buyer),
        )

        response = await client.get("/api/shares/user/owned", headers=auth_header(buyer))

        body = response.json()
        assert len(body["purchases"]) == 2
        assert body["shareHoldings"] == [
            {
                "shareId": 7,
                "property": body["shareHoldings"][0]["property"],
                "totalPurchased": 15,
                "totalValue": "150000000000000000",
            }
        ]
        assert body["tokenizedShares"] == []

    @pytest.mark.asyncio
    async def test_user_tokens(self, client, owner, buyer, tokenized_property):
        await client.post("/api/shares/purchase", json=purchase_payload(), headers=auth_header(buyer))

        response = await client.get("/api/tokens/user/owned", headers=auth_header(owner))

        body = response.json()
        assert [p["id"] for p in body["ownedProperties"]] == [tokenized_property.id]
        assert [s["shareId"] for s in body["tokenizedProperties"]] == [7]
        assert body["purchases"] == []
        assert len(body["sales"]) == 1

    @pytest.mark.asyncio
    async def test_wallet_required(self, client, admin):
        response = await client.get("/api/shares/user/owned", headers=auth_header(admin))
        assert response.status_code == 400


class TestTokenRoutes:
    @pytest.mark.asyncio
    async def test_fractionalize_not_supported(self, client, owner, tokenized_property):
        response = await client.post("/api/tokens/7/fractionalize", headers=auth_header(owner))
        assert response.status_code == 501

    @pytest.mark.asyncio
    async def test_sell_listing(self, client, buyer, tokenized_property):
        response = await client.post(
            "/api/tokens/7/sell-share",
            json={"shareId": 0, "seller": BUYER_WALLET, "amount": 3, "price": "30000000000000000"},
            headers=auth_header(buyer),
        )

        assert response.status_code == 200
        listing = response.json()["listing"]
        assert listing["shareId"] == 7
        assert listing["propertyId"] == tokenized_property.id
        assert listing["price"] == "30000000000000000"

    @pytest.mark.asyncio
    async def test_token_transactions(self, client, buyer, tokenized_property):
        await client.post("/api/shares/purchase", json=purchase_payload(), headers=auth_header(buyer))

        response = await client.get("/api/tokens/7/transactions")
        assert [t["buyer"] for t in response.json()] == [BUYER_WALLET]
