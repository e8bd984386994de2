"""부동산 서비스"""
import uuid
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import get_settings
from src.models.property import (
    BlockchainStatus,
    PropertyCreate,
    PropertyUpdate,
    TokenizeRequest,
)
from src.models.share import TokenStatus, TransactionStatus, TransactionType
from src.models.user import UserRole
from src.services.blockchain import BlockchainService, same_address
from src.services.cache import CacheService
from src.services.queries import get_or_404
from src.services.tables import Property, Share, Token, Transaction, User
from src.utils.errors import ApiError, BlockchainError
from src.utils.logger import get_logger

logger = get_logger(__name__)

PROPERTY_NOT_FOUND = "해당 부동산을 찾을 수 없습니다"
TOKENIZED_EDITABLE = ("description", "image_url")


def local_transaction_hash() -> str:
    """클라이언트가 해시를 보내지 않은 거래의 로컬 식별자"""
    return f"local-{uuid.uuid4().hex}"


def can_manage(user: User, property_: Property) -> bool:
    """소유자(지갑 기준) 또는 관리자"""
    return user.role == UserRole.ADMIN.value or same_address(
        property_.owner_address, user.wallet_address
    )


class PropertyService:
    """부동산 등록, 수정, 토큰화"""

    def __init__(
        self,
        session: AsyncSession,
        blockchain: Optional[BlockchainService] = None,
        cache: Optional[CacheService] = None,
    ):
        self.session = session
        self.blockchain = blockchain
        self.cache = cache

    async def _invalidate(self) -> None:
        if self.cache is not None:
            await self.cache.invalidate_analytics()

    async def list_all(self) -> list[Property]:
        result = await self.session.execute(
            select(Property).order_by(Property.created_at.desc())
        )
        return list(result.scalars().all())

    async def get(self, property_id: str) -> Property:
        return await get_or_404(self.session, Property, property_id, PROPERTY_NOT_FOUND)

    async def create(self, user: User, request: PropertyCreate) -> Property:
        """부동산 등록 (NFT 발행 후 저장)"""
        try:
            result = await self.blockchain.mint_property(
                owner_address=request.owner_address,
                property_address=request.property_address,
                square_meters=request.square_meters,
                property_type=request.property_type.value,
                appraised_value=request.appraised_value,
                ipfs_document_uri=request.ipfs_document_uri,
                latitude=request.latitude,
                longitude=request.longitude,
            )
        except BlockchainError as e:
            logger.error("Property mint failed", owner_address=request.owner_address, error=e.message)
            raise ApiError(400, e.message) from e

        data = request.model_dump()
        data["property_type"] = request.property_type.value
        property_ = Property(
            **data,
            created_by=user.id,
            token_id=int(result.event["tokenId"]),
            blockchain_status=BlockchainStatus.REGISTERED.value,
            transaction_hash=result.transaction_hash,
            valuation_history=[],
            income_history=[],
        )
        self.session.add(property_)
        await self.session.commit()
        await self._invalidate()

        logger.info(
            "Property registered",
            property_id=property_.id,
            token_id=property_.token_id,
            transaction_hash=result.transaction_hash,
        )
        return property_

    async def update(self, user: User, property_id: str, request: PropertyUpdate) -> Property:
        property_ = await self.get(property_id)
        if not can_manage(user, property_):
            raise ApiError(403, "부동산 정보를 수정할 권한이 없습니다")

        changes = request.model_dump(exclude_unset=True, mode="json", by_alias=False)
        if property_.is_tokenized:
            # 토큰화 이후에는 설명과 이미지만 변경 가능
            changes = {k: v for k, v in changes.items() if k in TOKENIZED_EDITABLE}

        for field in ("description", "image_url", "ipfs_document_uri", "property_status"):
            if changes.get(field):
                setattr(property_, field, changes[field])
        if "rental_info" in changes:
            property_.rental_info = (
                request.rental_info.model_dump(by_alias=True, mode="json")
                if request.rental_info
                else None
            )

        await self.session.commit()
        return property_

    async def delete(self, user: User, property_id: str) -> None:
        property_ = await self.get(property_id)
        if not can_manage(user, property_):
            raise ApiError(403, "부동산을 삭제할 권한이 없습니다")
        if property_.is_tokenized:
            raise ApiError(400, "토큰화된 부동산은 삭제할 수 없습니다")

        await self.session.delete(property_)
        await self.session.commit()
        await self._invalidate()

    async def tokenize(
        self,
        user: User,
        property_id: str,
        request: TokenizeRequest,
    ) -> tuple[Property, Share, Token]:
        """클라이언트에서 분할 발행을 마친 뒤 호출하는 토큰화 등록"""
        property_ = await self.get(property_id)

        if not same_address(property_.owner_address, request.owner_address):
            raise ApiError(403, "부동산을 토큰화할 권한이 없습니다")
        if property_.is_tokenized:
            raise ApiError(400, "이미 토큰화된 부동산입니다")
        if property_.token_id is None:
            raise ApiError(400, "블록체인에 등록되지 않은 부동산입니다")

        try:
            chain_info = await self.blockchain.get_property_info(property_.token_id)
        except BlockchainError as e:
            logger.error("Property info lookup failed", token_id=property_.token_id, error=e.message)
            raise ApiError(400, "블록체인에서 부동산 정보를 조회할 수 없습니다") from e
        if not chain_info.is_tokenized:
            raise ApiError(400, "블록체인에서 토큰화가 확인되지 않았습니다")

        existing = await self.session.scalar(select(Share).where(Share.share_id == request.share_id))
        if existing is not None:
            raise ApiError(409, "이미 등록된 지분 ID입니다")

        settings = get_settings()
        transaction_hash = request.transaction_hash or local_transaction_hash()

        property_.is_tokenized = True
        property_.share_id = request.share_id
        property_.blockchain_status = BlockchainStatus.TOKENIZED.value

        share = Share(
            share_id=request.share_id,
            property_token_id=property_.token_id,
            property_id=property_.id,
            property=property_,
            total_shares=request.total_shares,
            available_shares=request.total_shares,
            price_per_share=request.price_per_share,
            tokenizer=request.owner_address,
            active=True,
            transaction_hash=request.transaction_hash,
        )
        token = Token(
            name=request.token_name or f"{property_.property_address} Share",
            symbol=request.token_symbol or f"RES{property_.token_id}",
            property_id=property_.id,
            token_id=property_.token_id,
            total_supply=request.total_shares,
            contract_address=settings.fractional_ownership_contract or settings.real_estate_nft_contract,
            created_by=user.id,
            owner_address=request.owner_address,
            status=TokenStatus.ACTIVE.value,
            transaction_hash=request.transaction_hash,
            token_uri=property_.ipfs_document_uri,
            attributes=[
                {"trait_type": "propertyType", "value": property_.property_type},
                {"trait_type": "squareMeters", "value": property_.square_meters},
            ],
            meta={"shareId": request.share_id, "pricePerShare": str(request.price_per_share)},
        )
        self.session.add_all([share, token])
        self.session.add(
            Transaction(
                share_id=request.share_id,
                property_id=property_.id,
                buyer=request.owner_address,
                seller=request.owner_address,
                amount=request.total_shares,
                total_price=request.total_shares * request.price_per_share,
                transaction_type=TransactionType.TOKENIZATION.value,
                transaction_hash=transaction_hash,
                status=TransactionStatus.COMPLETED.value,
            )
        )
        await self.session.commit()
        await self._invalidate()

        logger.info(
            "Property tokenized",
            property_id=property_.id,
            share_id=request.share_id,
            total_shares=request.total_shares,
        )
        return property_, share, token
