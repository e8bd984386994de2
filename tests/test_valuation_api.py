"""부동산 평가 API 테스트"""
import pytest
from sqlalchemy import select

from src.services.tables import Notification, Property, PropertyValuation
from tests.conftest import auth_header


def valuation_payload(**overrides):
    payload = {
        "valuationType": "periodic",
        "methodology": "hybrid",
        "currentValue": "1200000000000000000",
        "confidenceScore": 85,
        "appraiser": {"name": "김감정", "license": "A-1234", "company": "한국감정원"},
        "factors": [
            {"factorName": "역세권", "factorType": "location", "impact": "positive", "valueImpact": 5}
        ],
        "notes": "정기 평가",
    }
    payload.update(overrides)
    return payload


async def create_valuation(client, property_id, user, **overrides):
    response = await client.post(
        f"/api/valuations/property/{property_id}",
        json=valuation_payload(**overrides),
        headers=auth_header(user),
    )
    assert response.status_code == 201, response.text
    return response.json()


async def approved_valuation(client, property_id, appraiser, admin):
    valuation = await create_valuation(client, property_id, appraiser, status="pending_review")
    response = await client.patch(
        f"/api/valuations/{valuation['id']}/review",
        json={"approved": True},
        headers=auth_header(admin),
    )
    assert response.status_code == 200
    return valuation


class TestCreateValuation:
    """평가 생성 테스트"""

    @pytest.mark.asyncio
    async def test_create_draft(self, client, appraiser, tokenized_property):
        valuation = await create_valuation(client, tokenized_property.id, appraiser)

        assert valuation["status"] == "draft"
        assert valuation["previousValue"] == "1000000000000000000"
        assert valuation["currentValue"] == "1200000000000000000"
        assert valuation["valueChangePercentage"] == 20.0
        assert valuation["factors"][0]["factorName"] == "역세권"
        assert valuation["recordedOnChain"] is False

    @pytest.mark.asyncio
    async def test_previous_value_chains(self, client, appraiser, tokenized_property):
        first = await create_valuation(client, tokenized_property.id, appraiser)
        second = await create_valuation(
            client, tokenized_property.id, appraiser, currentValue="1500000000000000000"
        )

        assert second["previousValuationId"] == first["id"]
        assert second["previousValue"] == "1200000000000000000"
        assert second["valueChangePercentage"] == 25.0

    @pytest.mark.asyncio
    async def test_regular_user_forbidden(self, client, owner, tokenized_property):
        response = await client.post(
            f"/api/valuations/property/{tokenized_property.id}",
            json=valuation_payload(),
            headers=auth_header(owner),
        )
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_untokenized_property_rejected(self, client, appraiser, registered_property):
        response = await client.post(
            f"/api/valuations/property/{registered_property.id}",
            json=valuation_payload(),
            headers=auth_header(appraiser),
        )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_cannot_create_as_approved(self, client, appraiser, tokenized_property):
        response = await client.post(
            f"/api/valuations/property/{tokenized_property.id}",
            json=valuation_payload(status="approved"),
            headers=auth_header(appraiser),
        )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_record_on_create(self, client, appraiser, blockchain, tokenized_property):
        valuation = await create_valuation(client, tokenized_property.id, appraiser, recordOnChain=True)

        assert valuation["recordedOnChain"] is True
        assert valuation["blockchainValuationId"] == 1
        assert valuation["metadataURI"] == "ipfs://QmDocument"
        assert blockchain.called("record_property_valuation") == 1

    @pytest.mark.asyncio
    async def test_chain_failure_on_create_keeps_valuation(self, client, appraiser, blockchain, tokenized_property):
        blockchain.fail.add("record_property_valuation")

        valuation = await create_valuation(client, tokenized_property.id, appraiser, recordOnChain=True)

        assert valuation["recordedOnChain"] is False
        assert valuation["transactionHash"] is None


class TestStatusFlow:
    """상태 전이 테스트"""

    @pytest.mark.asyncio
    async def test_manual_transitions(self, client, appraiser, tokenized_property):
        valuation = await create_valuation(client, tokenized_property.id, appraiser)
        url = f"/api/valuations/{valuation['id']}/status"

        submitted = await client.patch(url, json={"status": "pending_review"}, headers=auth_header(appraiser))
        assert submitted.json()["status"] == "pending_review"

        skipped = await client.patch(url, json={"status": "approved"}, headers=auth_header(appraiser))
        assert skipped.status_code == 400

    @pytest.mark.asyncio
    async def test_review_requires_pending_review(self, client, appraiser, admin, tokenized_property):
        valuation = await create_valuation(client, tokenized_property.id, appraiser)

        response = await client.patch(
            f"/api/valuations/{valuation['id']}/review",
            json={"approved": True},
            headers=auth_header(admin),
        )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_reject_with_reason_notifies_owner(self, client, appraiser, admin, owner, session, tokenized_property):
        valuation = await create_valuation(client, tokenized_property.id, appraiser, status="pending_review")

        response = await client.patch(
            f"/api/valuations/{valuation['id']}/review",
            json={"approved": False, "reason": "비교 사례 부족"},
            headers=auth_header(admin),
        )

        assert response.status_code == 200
        assert response.json()["status"] == "rejected"
        stored = await session.get(PropertyValuation, valuation["id"])
        await session.refresh(stored)
        assert stored.notes.endswith("거부 사유: 비교 사례 부족")
        notification = (await session.execute(select(Notification))).scalar_one()
        assert notification.user_id == owner.id
        assert notification.type == "평가"

    @pytest.mark.asyncio
    async def test_property_scoped_approve(self, client, appraiser, tokenized_property):
        valuation = await create_valuation(client, tokenized_property.id, appraiser, status="pending_review")

        response = await client.patch(
            f"/api/valuations/property/{tokenized_property.id}/{valuation['id']}/approve",
            json={"approved": True, "notes": "검토 완료"},
            headers=auth_header(appraiser),
        )

        assert response.status_code == 200
        assert response.json()["status"] == "approved"
        assert response.json()["approvedBy"] == appraiser.id

        again = await client.patch(
            f"/api/valuations/property/{tokenized_property.id}/{valuation['id']}/approve",
            json={"approved": True},
            headers=auth_header(appraiser),
        )
        assert again.status_code == 400


class TestPublish:
    """블록체인 기록 및 게시 테스트"""

    @pytest.mark.asyncio
    async def test_record_on_chain_publishes(self, client, appraiser, admin, blockchain, cache, session, tokenized_property):
        valuation = await approved_valuation(client, tokenized_property.id, appraiser, admin)

        response = await client.post(
            f"/api/valuations/{valuation['id']}/record-on-chain", headers=auth_header(admin)
        )

        assert response.status_code == 200
        assert response.json()["transactionHash"].startswith("0xrecord_property_valuation")
        assert blockchain.called("record_property_valuation") == 1
        assert cache.invalidations >= 1

        prop = await session.get(Property, tokenized_property.id)
        await session.refresh(prop)
        assert prop.appraised_value == 1200000000000000000
        assert prop.valuation_history[-1]["value"] == "1200000000000000000"
        assert prop.valuation_history[-1]["valuedBy"] == "appraiser"

        latest = await client.get(
            f"/api/valuations/property/{tokenized_property.id}/latest", headers=auth_header(admin)
        )
        assert latest.json()["id"] == valuation["id"]
        assert latest.json()["status"] == "published"

    @pytest.mark.asyncio
    async def test_record_twice_rejected(self, client, appraiser, admin, blockchain, tokenized_property):
        valuation = await approved_valuation(client, tokenized_property.id, appraiser, admin)
        url = f"/api/valuations/{valuation['id']}/record-on-chain"

        await client.post(url, headers=auth_header(admin))
        second = await client.post(url, headers=auth_header(admin))

        assert second.status_code == 400
        assert blockchain.called("record_property_valuation") == 1

    @pytest.mark.asyncio
    async def test_client_supplied_hash_skips_chain_call(self, client, appraiser, admin, blockchain, tokenized_property):
        valuation = await approved_valuation(client, tokenized_property.id, appraiser, admin)

        response = await client.post(
            f"/api/valuations/{valuation['id']}/record-on-chain",
            json={"transactionHash": "0xclient", "metadataURI": "ipfs://report"},
            headers=auth_header(admin),
        )

        assert response.json() == {
            "message": "평가가 블록체인에 성공적으로 기록되었습니다",
            "transactionHash": "0xclient",
            "metadataURI": "ipfs://report",
        }
        assert blockchain.called("record_property_valuation") == 0

    @pytest.mark.asyncio
    async def test_chain_failure_keeps_approved(self, client, appraiser, admin, blockchain, session, tokenized_property):
        valuation = await approved_valuation(client, tokenized_property.id, appraiser, admin)
        blockchain.fail.add("record_property_valuation")

        response = await client.post(
            f"/api/valuations/{valuation['id']}/record-on-chain", headers=auth_header(admin)
        )

        assert response.status_code == 500
        stored = await session.get(PropertyValuation, valuation["id"])
        await session.refresh(stored)
        assert stored.status == "approved"

    @pytest.mark.asyncio
    async def test_latest_without_published(self, client, owner, tokenized_property):
        response = await client.get(
            f"/api/valuations/property/{tokenized_property.id}/latest", headers=auth_header(owner)
        )
        assert response.status_code == 404


class TestValuationQueries:
    @pytest.mark.asyncio
    async def test_request_by_owner(self, client, owner, tokenized_property):
        response = await client.post(
            "/api/valuations/request",
            json={"propertyId": tokenized_property.id, "reason": "리모델링 반영"},
            headers=auth_header(owner),
        )

        assert response.status_code == 201
        detail = await client.get(
            f"/api/valuations/{response.json()['valuationId']}", headers=auth_header(owner)
        )
        assert detail.json()["status"] == "pending_review"
        assert detail.json()["valuationType"] == "requested"

    @pytest.mark.asyncio
    async def test_request_by_stranger_forbidden(self, client, stranger, tokenized_property):
        response = await client.post(
            "/api/valuations/request",
            json={"propertyId": tokenized_property.id},
            headers=auth_header(stranger),
        )
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_list_paginated(self, client, appraiser, tokenized_property):
        for _ in range(3):
            await create_valuation(client, tokenized_property.id, appraiser)

        response = await client.get(
            "/api/valuations",
            params={"page": 1, "limit": 2, "property": tokenized_property.id},
            headers=auth_header(appraiser),
        )

        body = response.json()
        assert body["totalDocs"] == 3
        assert len(body["docs"]) == 2
        assert body["hasNextPage"] is True

    @pytest.mark.asyncio
    async def test_owner_lists_property_valuations(self, client, owner, stranger, appraiser, tokenized_property):
        await create_valuation(client, tokenized_property.id, appraiser)

        allowed = await client.get(
            f"/api/valuations/property/{tokenized_property.id}", headers=auth_header(owner)
        )
        denied = await client.get(
            f"/api/valuations/property/{tokenized_property.id}", headers=auth_header(stranger)
        )

        assert allowed.json()["totalDocs"] == 1
        assert denied.status_code == 403

    @pytest.mark.asyncio
    async def test_documents_and_factors(self, client, appraiser, admin, tokenized_property):
        valuation = await create_valuation(client, tokenized_property.id, appraiser)

        added = await client.post(
            f"/api/valuations/{valuation['id']}/documents",
            json={"title": "감정평가서", "documentType": "appraisal_report", "fileUrl": "https://files/report.pdf"},
            headers=auth_header(appraiser),
        )
        assert added.status_code == 201
        document = added.json()["documents"][0]
        assert document["verified"] is False

        verified = await client.patch(
            f"/api/valuations/{valuation['id']}/documents/{document['id']}/verify",
            headers=auth_header(admin),
        )
        assert verified.status_code == 200

        missing = await client.patch(
            f"/api/valuations/{valuation['id']}/documents/unknown/verify",
            headers=auth_header(admin),
        )
        assert missing.status_code == 404

        factor = await client.post(
            f"/api/valuations/property/{tokenized_property.id}/{valuation['id']}/factors",
            json={"factorName": "노후도", "factorType": "condition", "impact": "negative", "valueImpact": -3},
            headers=auth_header(appraiser),
        )
        assert [f["factorName"] for f in factor.json()["factors"]] == ["역세권", "노후도"]

    @pytest.mark.asyncio
    async def test_blockchain_history_skips_failed_lookups(self, client, owner, blockchain, tokenized_property):
        blockchain.valuation_history = [1, -1, 2]

        response = await client.get(
            f"/api/valuations/property/{tokenized_property.id}/blockchain-history",
            headers=auth_header(owner),
        )

        assert response.status_code == 200
        assert [v["valuationId"] for v in response.json()] == [1, 2]
        assert response.json()[0]["metadataURI"] == "ipfs://valuation"

    @pytest.mark.asyncio
    async def test_comparable_properties(self, client, owner, session, registered_property):
        session.add(
            Property(
                property_address="서울시 강남구 삼성동 1",
                property_type="아파트",
                square_meters=90,
                appraised_value=2 * 10**18,
                latitude=37.51,
                longitude=127.05,
                ipfs_document_uri="ipfs://other",
                owner_address=registered_property.owner_address,
                created_by=owner.id,
                token_id=2,
                valuation_history=[],
                income_history=[],
            )
        )
        await session.commit()

        response = await client.get(
            "/api/valuations/comparable-properties",
            params={"propertyId": registered_property.id},
            headers=auth_header(owner),
        )

        assert [p["tokenId"] for p in response.json()] == [2]
