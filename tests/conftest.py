"""Pytest 설정 및 픽스처"""
from datetime import datetime, timezone
from typing import Any, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from src.api import app
from src.models.user import UserRole
from src.routes.deps import get_blockchain, get_cache, get_session
from src.services.blockchain import ChainPropertyInfo, ChainShareInfo, TxResult
from src.services.database import DatabaseService
from src.services.tables import Property, Share, Token, User
from src.utils.errors import BlockchainError
from src.utils.security import create_access_token, hash_password

OWNER_WALLET = "0x1111111111111111111111111111111111111111"
BUYER_WALLET = "0x2222222222222222222222222222222222222222"
OTHER_WALLET = "0x3333333333333333333333333333333333333333"


class FakeBlockchainService:
    """체인 호출을 기록만 하는 가짜 클라이언트"""

    def __init__(self):
        self.calls: list[tuple[str, tuple]] = []
        self.next_token_id = 1
        self.next_valuation_id = 1
        self.next_distribution_id = 1
        self.property_tokenized = True
        self.share_info: Optional[ChainShareInfo] = None
        self.fail: set[str] = set()
        self.valuation_history: list[int] = []
        self.distribution_history: list[int] = []

    @property
    def available(self) -> bool:
        return True

    def _tx(self, name: str, *args: Any, **event: Any) -> TxResult:
        self.calls.append((name, args))
        if name in self.fail:
            raise BlockchainError(f"{name} reverted")
        return TxResult(
            transaction_hash=f"0x{name}{len(self.calls):04d}",
            block_number=100 + len(self.calls),
            event=event,
        )

    def called(self, name: str) -> int:
        return sum(1 for call, _ in self.calls if call == name)

    async def mint_property(self, **kwargs) -> TxResult:
        token_id = self.next_token_id
        self.next_token_id += 1
        return self._tx("mint_property", kwargs["owner_address"], tokenId=token_id)

    async def get_property_info(self, token_id: int) -> ChainPropertyInfo:
        self.calls.append(("get_property_info", (token_id,)))
        if "get_property_info" in self.fail:
            raise BlockchainError("call reverted")
        return ChainPropertyInfo(
            property_address="서울시 강남구",
            square_meters=84,
            property_type="아파트",
            appraised_value=10**18,
            ipfs_document_uri="ipfs://doc",
            latitude="37.5",
            longitude="127.0",
            owner=OWNER_WALLET,
            is_tokenized=self.property_tokenized,
        )

    async def get_share_info(self, share_id: int) -> ChainShareInfo:
        self.calls.append(("get_share_info", (share_id,)))
        if self.share_info is None:
            raise BlockchainError("share lookup unavailable", retryable=True)
        return self.share_info

    async def record_property_valuation(self, token_id, current_value, methodology, metadata_uri) -> TxResult:
        valuation_id = self.next_valuation_id
        self.next_valuation_id += 1
        return self._tx(
            "record_property_valuation", token_id, current_value, methodology, metadata_uri,
            valuationId=valuation_id,
        )

    async def approve_property_valuation(self, valuation_id: int, approved: bool) -> TxResult:
        return self._tx("approve_property_valuation", valuation_id, approved)

    async def get_valuation_history(self, token_id: int) -> list[int]:
        if "get_valuation_history" in self.fail:
            raise BlockchainError("history unavailable")
        return list(self.valuation_history)

    async def get_property_valuation(self, valuation_id: int):
        from src.models.valuation import ChainValuation

        if valuation_id < 0:
            raise BlockchainError("unknown valuation")
        return ChainValuation(
            valuation_id=valuation_id,
            token_id=1,
            previous_value=0,
            current_value=10**18,
            change_percentage=0,
            valuation_date=datetime(2024, 1, 1, tzinfo=timezone.utc),
            appraiser=OWNER_WALLET,
            approver=OWNER_WALLET,
            status="approved",
            methodology="hybrid",
            metadata_uri="ipfs://valuation",
        )

    async def create_income_distribution(self, token_id, total_amount, income_type, metadata_uri, start, end):
        distribution_id = self.next_distribution_id
        self.next_distribution_id += 1
        return self._tx(
            "create_income_distribution", token_id, total_amount, income_type,
            distributionId=distribution_id,
        )

    async def deposit_funds(self, distribution_id: int, amount: int) -> TxResult:
        return self._tx("deposit_funds", distribution_id, amount)

    async def execute_income_distribution(self, distribution_id: int) -> TxResult:
        return self._tx("execute_income_distribution", distribution_id)

    async def cancel_income_distribution(self, distribution_id: int) -> TxResult:
        return self._tx("cancel_income_distribution", distribution_id)

    async def get_income_distribution_history(self, property_token_id: int) -> list[int]:
        return list(self.distribution_history)

    async def get_income_distribution(self, distribution_id: int):
        from src.models.income import ChainDistribution

        if distribution_id < 0:
            raise BlockchainError("unknown distribution")
        now = datetime(2024, 1, 1, tzinfo=timezone.utc)
        return ChainDistribution(
            distribution_id=distribution_id,
            property_token_id=1,
            total_amount=1000,
            distribution_date=now,
            income_type="rental",
            status="completed",
            distributor=OWNER_WALLET,
            metadata_uri="ipfs://income",
            period_start=now,
            period_end=now,
            fee_amount=0,
            fee_recipient=OWNER_WALLET,
        )


class FakeCache:
    """Redis 대신 쓰는 메모리 캐시"""

    def __init__(self):
        self.store: dict[str, Any] = {}
        self.invalidations = 0

    async def get_or_set(self, key, factory, ttl=None):
        if key not in self.store:
            self.store[key] = await factory()
        return self.store[key]

    async def invalidate_analytics(self) -> None:
        self.invalidations += 1
        self.store.clear()


@pytest_asyncio.fixture
async def db():
    database = DatabaseService("sqlite+aiosqlite:///:memory:")
    await database.create_tables()
    yield database
    await database.drop_tables()
    await database.close()


@pytest_asyncio.fixture
async def session(db):
    async with db.async_session() as session:
        yield session


@pytest.fixture
def blockchain() -> FakeBlockchainService:
    return FakeBlockchainService()


@pytest.fixture
def cache() -> FakeCache:
    return FakeCache()


@pytest_asyncio.fixture
async def client(db, blockchain, cache):
    async def override_session():
        async with db.async_session() as session:
            yield session

    app.dependency_overrides[get_session] = override_session
    app.dependency_overrides[get_blockchain] = lambda: blockchain
    app.dependency_overrides[get_cache] = lambda: cache

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


async def _create_user(
    session,
    email: str,
    role: UserRole = UserRole.USER,
    wallet_address: Optional[str] = None,
) -> User:
    user = User(
        email=email,
        password=hash_password("password123"),
        name=email.split("@")[0],
        role=role.value,
        wallet_address=wallet_address,
    )
    session.add(user)
    await session.commit()
    return user


def auth_header(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user.id, user.role)}"}


@pytest_asyncio.fixture
async def owner(session) -> User:
    return await _create_user(session, "owner@example.com", wallet_address=OWNER_WALLET)


@pytest_asyncio.fixture
async def buyer(session) -> User:
    return await _create_user(session, "buyer@example.com", wallet_address=BUYER_WALLET)


@pytest_asyncio.fixture
async def stranger(session) -> User:
    return await _create_user(session, "stranger@example.com", wallet_address=OTHER_WALLET)


@pytest_asyncio.fixture
async def admin(session) -> User:
    return await _create_user(session, "admin@example.com", role=UserRole.ADMIN)


@pytest_asyncio.fixture
async def appraiser(session) -> User:
    return await _create_user(session, "appraiser@example.com", role=UserRole.APPRAISER)


@pytest_asyncio.fixture
async def distributor(session) -> User:
    return await _create_user(session, "distributor@example.com", role=UserRole.DISTRIBUTOR)


@pytest.fixture
def property_payload() -> dict[str, Any]:
    return {
        "propertyAddress": "서울시 강남구 역삼동 123-45",
        "propertyType": "아파트",
        "squareMeters": 84.5,
        "appraisedValue": "1000000000000000000",
        "latitude": 37.5012,
        "longitude": 127.0396,
        "description": "역삼역 도보 5분",
        "ipfsDocumentURI": "ipfs://QmDocument",
        "ownerAddress": OWNER_WALLET,
    }


@pytest_asyncio.fixture
async def registered_property(session, owner) -> Property:
    """등록 완료(토큰화 전) 부동산"""
    property_ = Property(
        property_address="서울시 강남구 역삼동 123-45",
        property_type="아파트",
        square_meters=84.5,
        appraised_value=10**18,
        latitude=37.5012,
        longitude=127.0396,
        ipfs_document_uri="ipfs://QmDocument",
        owner_address=OWNER_WALLET,
        created_by=owner.id,
        token_id=1,
        blockchain_status="등록완료",
        valuation_history=[],
        income_history=[],
    )
    session.add(property_)
    await session.commit()
    return property_


@pytest_asyncio.fixture
async def tokenized_property(session, owner, registered_property) -> Property:
    """토큰화 완료 부동산 (지분 100개, 지분 ID 7)"""
    property_ = registered_property
    property_.is_tokenized = True
    property_.share_id = 7
    property_.blockchain_status = "토큰화완료"
    session.add(
        Share(
            share_id=7,
            property_token_id=property_.token_id,
            property_id=property_.id,
            property=property_,
            total_shares=100,
            available_shares=100,
            price_per_share=10**16,
            tokenizer=OWNER_WALLET,
            active=True,
        )
    )
    session.add(
        Token(
            name="역삼 Share",
            symbol="RES1",
            property_id=property_.id,
            token_id=property_.token_id,
            total_supply=100,
            contract_address="",
            created_by=owner.id,
            owner_address=OWNER_WALLET,
            status="active",
            attributes=[],
        )
    )
    await session.commit()
    return property_
