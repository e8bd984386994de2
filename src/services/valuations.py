"""부동산 평가 서비스

상태 흐름: draft -> pending_review -> approved | rejected -> published
승인/거부와 게시는 조건부 UPDATE로 처리해 동시 요청이 같은 평가를 두 번 바꾸지 못하게 한다.
"""
import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.models.common import Page
from src.models.notification import NotificationType
from src.models.property import ValuedBy
from src.models.user import UserRole
from src.models.valuation import (
    MANUAL_STATUS_TRANSITIONS,
    ChainValuation,
    DocumentCreate,
    RecordOnChainRequest,
    ValuationCreate,
    ValuationFactor,
    ValuationOut,
    ValuationRequest,
    ValuationStatus,
    ValuationType,
)
from src.services.blockchain import BlockchainService
from src.services.cache import CacheService
from src.services.notifications import NotificationService
from src.services.outbox import ChainOperationRunner
from src.services.properties import PROPERTY_NOT_FOUND
from src.services.queries import apply_sort, get_or_404, paginate
from src.services.tables import Property, PropertyValuation, User
from src.utils.errors import ApiError, BlockchainError
from src.utils.logger import WorkflowLogger, get_logger
from src.utils.wei import ratio_percent

logger = get_logger(__name__)

VALUATION_NOT_FOUND = "해당 평가 내역을 찾을 수 없습니다"

# 외부 시세 연동 전까지 제공하는 고정 시장 동향
MARKET_TRENDS: dict[str, Any] = {
    "interestRate": 3.5,
    "marketGrowth": 2.7,
    "averagePriceChangePercent": 1.2,
    "trends": {
        "apartment": 1.5,
        "house": 0.8,
        "commercial": 2.1,
        "land": 3.2,
    },
    "regionTrends": {
        "seoul": 1.8,
        "busan": 1.2,
        "incheon": 1.5,
        "daegu": 0.9,
    },
}


def is_admin(user: User) -> bool:
    return user.role == UserRole.ADMIN.value


def change_percentage(current: int, previous: Optional[int]) -> Optional[float]:
    if not previous:
        return None
    return ratio_percent(current - previous, previous)


class ValuationService:
    """평가 요청, 승인, 블록체인 기록"""

    def __init__(
        self,
        session: AsyncSession,
        blockchain: Optional[BlockchainService] = None,
        cache: Optional[CacheService] = None,
    ):
        self.session = session
        self.blockchain = blockchain
        self.cache = cache
        self.runner = ChainOperationRunner(session)
        self.notifications = NotificationService(session)

    # ------------------------------------------------------------------
    # 조회
    # ------------------------------------------------------------------

    async def _get_property(self, property_id: str) -> Property:
        return await get_or_404(self.session, Property, property_id, PROPERTY_NOT_FOUND)

    async def _get(self, valuation_id: str) -> PropertyValuation:
        return await get_or_404(self.session, PropertyValuation, valuation_id, VALUATION_NOT_FOUND)

    async def _get_for_property(self, property_id: str, valuation_id: str) -> PropertyValuation:
        valuation = await self.session.get(PropertyValuation, valuation_id)
        if valuation is None or valuation.property_id != property_id:
            raise ApiError(404, "해당 평가 정보를 찾을 수 없습니다.")
        return valuation

    def _check_access(self, user: User, property_: Property, message: str) -> None:
        if not is_admin(user) and property_.created_by != user.id:
            raise ApiError(403, message)

    async def _page(self, stmt, page: int, limit: int, sort: Optional[str]) -> Page[ValuationOut]:
        stmt = apply_sort(stmt, PropertyValuation, sort, "-valuationDate")
        items, total = await paginate(self.session, stmt, page, limit)
        return Page[ValuationOut].build(
            [ValuationOut.model_validate(v) for v in items], total, page, limit
        )

    async def list_all(
        self,
        page: int = 1,
        limit: int = 10,
        status: Optional[ValuationStatus] = None,
        property_id: Optional[str] = None,
        sort: Optional[str] = None,
    ) -> Page[ValuationOut]:
        stmt = select(PropertyValuation)
        if status:
            stmt = stmt.where(PropertyValuation.status == status.value)
        if property_id:
            stmt = stmt.where(PropertyValuation.property_id == property_id)
        return await self._page(stmt, page, limit, sort)

    async def list_by_property(
        self,
        user: User,
        property_id: str,
        page: int = 1,
        limit: int = 10,
        sort: Optional[str] = None,
    ) -> Page[ValuationOut]:
        property_ = await self._get_property(property_id)
        self._check_access(user, property_, "이 부동산의 평가 내역에 접근할 권한이 없습니다")
        stmt = select(PropertyValuation).where(PropertyValuation.property_id == property_id)
        return await self._page(stmt, page, limit, sort)

    async def get(self, user: User, valuation_id: str) -> PropertyValuation:
        valuation = await self._get(valuation_id)
        self._check_access(user, valuation.property, "이 평가 내역에 접근할 권한이 없습니다")
        return valuation

    async def get_for_property(self, property_id: str, valuation_id: str) -> PropertyValuation:
        return await self._get_for_property(property_id, valuation_id)

    async def _latest(self, property_id: str, status: Optional[str] = None) -> Optional[PropertyValuation]:
        stmt = select(PropertyValuation).where(PropertyValuation.property_id == property_id)
        if status:
            stmt = stmt.where(PropertyValuation.status == status)
        stmt = stmt.order_by(
            PropertyValuation.valuation_date.desc(), PropertyValuation.created_at.desc()
        ).limit(1)
        return await self.session.scalar(stmt)

    async def latest_published(self, property_id: str) -> PropertyValuation:
        await self._get_property(property_id)
        valuation = await self._latest(property_id, ValuationStatus.PUBLISHED.value)
        if valuation is None:
            raise ApiError(404, "해당 부동산의 승인된 평가 내역이 없습니다")
        return valuation

    def market_trends(self) -> dict[str, Any]:
        return MARKET_TRENDS

    async def comparable_properties(self, property_id: str, limit: int = 5) -> list[Property]:
        """같은 유형, 면적 +-20% 범위의 다른 부동산"""
        property_ = await self._get_property(property_id)
        result = await self.session.execute(
            select(Property)
            .where(
                Property.id != property_id,
                Property.property_type == property_.property_type,
                Property.square_meters >= property_.square_meters * 0.8,
                Property.square_meters <= property_.square_meters * 1.2,
            )
            .limit(limit)
        )
        return list(result.scalars().all())

    async def blockchain_history(self, property_id: str) -> list[ChainValuation]:
        property_ = await self.session.get(Property, property_id)
        if property_ is None or property_.token_id is None:
            raise ApiError(404, "해당 토큰화된 부동산을 찾을 수 없습니다.")

        try:
            valuation_ids = await self.blockchain.get_valuation_history(property_.token_id)
        except BlockchainError as e:
            logger.error("Valuation history lookup failed", token_id=property_.token_id, error=e.message)
            raise ApiError(500, "블록체인 평가 이력 조회 중 오류가 발생했습니다.") from e

        valuations = []
        for valuation_id in valuation_ids:
            try:
                valuations.append(await self.blockchain.get_property_valuation(valuation_id))
            except BlockchainError as e:
                logger.warning("Valuation lookup failed", valuation_id=valuation_id, error=e.message)
        return valuations

    # ------------------------------------------------------------------
    # 생성
    # ------------------------------------------------------------------

    async def request(self, user: User, request: ValuationRequest) -> PropertyValuation:
        """평가 요청 (pending_review로 생성)"""
        property_ = await self._get_property(request.property_id)
        self._check_access(user, property_, "이 부동산에 대한 평가를 요청할 권한이 없습니다")

        latest = await self._latest(property_.id)
        valuation = PropertyValuation(
            property_id=property_.id,
            property=property_,
            valuation_type=(request.requested_valuation_type or ValuationType.REQUESTED).value,
            status=ValuationStatus.PENDING_REVIEW.value,
            requested_by=user.id,
            notes=request.reason,
            methodology="comparative_market_analysis",
            current_value=latest.current_value if latest else property_.appraised_value,
            previous_valuation_id=latest.id if latest else None,
            previous_value=latest.current_value if latest else None,
            factors=[],
            documents=[],
        )
        self.session.add(valuation)
        await self.session.commit()

        logger.info("Valuation requested", valuation_id=valuation.id, property_id=property_.id)
        return valuation

    def _metadata_uri(self, valuation: PropertyValuation, property_: Property) -> str:
        for document in valuation.documents or []:
            if document.get("ipfsHash"):
                return f"ipfs://{document['ipfsHash']}"
        return property_.ipfs_document_uri

    async def _record(
        self,
        valuation: PropertyValuation,
        property_: Property,
        metadata_uri: str,
    ):
        return await self.runner.run(
            "record_valuation",
            "valuation",
            valuation.id,
            lambda: self.blockchain.record_property_valuation(
                property_.token_id,
                valuation.current_value,
                valuation.methodology,
                metadata_uri,
            ),
            payload={"tokenId": property_.token_id, "currentValue": str(valuation.current_value)},
        )

    async def create(self, user: User, property_id: str, request: ValuationCreate) -> PropertyValuation:
        """평가 생성 (관리자/평가사)"""
        property_ = await self._get_property(property_id)
        if not property_.is_tokenized or property_.token_id is None:
            raise ApiError(400, "토큰화되지 않은 부동산은 평가할 수 없습니다.")
        if request.status not in (ValuationStatus.DRAFT, ValuationStatus.PENDING_REVIEW):
            raise ApiError(400, "새 평가는 draft 또는 pending_review 상태로만 생성할 수 있습니다")

        latest = await self._latest(property_.id)
        previous_value = latest.current_value if latest else property_.appraised_value

        data = request.model_dump(
            by_alias=True,
            mode="json",
            include={"appraiser", "factors", "market_conditions"},
        )
        valuation = PropertyValuation(
            property_id=property_.id,
            property=property_,
            valuation_date=request.valuation_date or datetime.now(timezone.utc),
            valuation_type=request.valuation_type.value,
            previous_valuation_id=latest.id if latest else None,
            previous_value=previous_value,
            current_value=request.current_value,
            currency=request.currency,
            value_change_percentage=change_percentage(request.current_value, previous_value),
            appraiser=data.get("appraiser"),
            requested_by=user.id,
            status=request.status.value,
            methodology=request.methodology.value,
            confidence_score=request.confidence_score,
            factors=data.get("factors") or [],
            documents=[],
            notes=request.notes,
            market_conditions=data.get("marketConditions"),
        )
        self.session.add(valuation)
        await self.session.commit()

        workflow = WorkflowLogger("valuation_create", valuation_id=valuation.id)
        workflow.step("created", property_id=property_.id, current_value=str(valuation.current_value))

        if request.record_on_chain:
            metadata_uri = self._metadata_uri(valuation, property_)
            try:
                result = await self._record(valuation, property_, metadata_uri)
            except BlockchainError as e:
                # 기록 실패는 평가 생성 결과에 영향을 주지 않는다
                workflow.warning("Chain record failed", error=e.message)
            else:
                valuation.recorded_on_chain = True
                valuation.transaction_hash = result.transaction_hash
                valuation.blockchain_valuation_id = _event_int(result.event, "valuationId")
                valuation.metadata_uri = metadata_uri
                await self.session.commit()
                workflow.step("recorded_on_chain", transaction_hash=result.transaction_hash)

        return valuation

    # ------------------------------------------------------------------
    # 상태 변경
    # ------------------------------------------------------------------

    async def update_status(self, valuation_id: str, status: ValuationStatus) -> PropertyValuation:
        """수동 상태 변경 (draft <-> pending_review, rejected -> draft)"""
        valuation = await self._get(valuation_id)
        current = ValuationStatus(valuation.status)
        if status not in MANUAL_STATUS_TRANSITIONS.get(current, set()):
            raise ApiError(400, f"허용되지 않는 상태 변경입니다: {current.value} -> {status.value}")

        result = await self.session.execute(
            update(PropertyValuation)
            .where(PropertyValuation.id == valuation_id, PropertyValuation.status == current.value)
            .values(status=status.value)
        )
        if result.rowcount == 0:
            await self.session.rollback()
            raise ApiError(409, "평가 상태가 이미 변경되었습니다")
        await self.session.commit()
        await self.session.refresh(valuation)
        return valuation

    async def decide(
        self,
        user: User,
        valuation: PropertyValuation,
        approved: bool,
        reason: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> PropertyValuation:
        """승인/거부 (pending_review에서만)"""
        workflow = WorkflowLogger("valuation_review", valuation_id=valuation.id)

        if valuation.status != ValuationStatus.PENDING_REVIEW.value:
            raise ApiError(400, "현재 상태에서는 승인할 수 없습니다.")

        new_notes = notes or valuation.notes
        if not approved and reason:
            new_notes = f"{new_notes}\n거부 사유: {reason}" if new_notes else f"거부 사유: {reason}"
        new_status = ValuationStatus.APPROVED if approved else ValuationStatus.REJECTED

        result = await self.session.execute(
            update(PropertyValuation)
            .where(
                PropertyValuation.id == valuation.id,
                PropertyValuation.status == ValuationStatus.PENDING_REVIEW.value,
            )
            .values(status=new_status.value, approved_by=user.id, notes=new_notes)
        )
        if result.rowcount == 0:
            await self.session.rollback()
            raise ApiError(400, "현재 상태에서는 승인할 수 없습니다.")

        property_ = valuation.property
        self.notifications.create(
            property_.created_by,
            "부동산 평가 결과",
            f"{property_.property_address}의 평가가 {'승인' if approved else '거부'}되었습니다.",
            type=NotificationType.VALUATION,
            related_property_id=property_.id,
        )
        await self.session.commit()
        await self.session.refresh(valuation)
        workflow.step("decided", status=new_status.value, user_id=user.id)

        if valuation.recorded_on_chain and valuation.blockchain_valuation_id is not None:
            try:
                tx = await self.runner.run(
                    "approve_valuation",
                    "valuation",
                    valuation.id,
                    lambda: self.blockchain.approve_property_valuation(
                        valuation.blockchain_valuation_id, approved
                    ),
                    payload={"approved": approved},
                )
            except BlockchainError as e:
                workflow.warning("Chain approval failed", error=e.message)
            else:
                valuation.blockchain_approval_tx = tx.transaction_hash
                await self.session.commit()
                workflow.step("approved_on_chain", transaction_hash=tx.transaction_hash)

        return valuation

    async def approve(
        self,
        user: User,
        property_id: str,
        valuation_id: str,
        approved: bool,
        notes: Optional[str] = None,
    ) -> PropertyValuation:
        valuation = await self._get_for_property(property_id, valuation_id)
        return await self.decide(user, valuation, approved, notes=notes)

    async def review(
        self,
        user: User,
        valuation_id: str,
        approved: bool,
        reason: Optional[str] = None,
    ) -> PropertyValuation:
        valuation = await self._get(valuation_id)
        return await self.decide(user, valuation, approved, reason=reason)

    # ------------------------------------------------------------------
    # 문서/평가 요소
    # ------------------------------------------------------------------

    async def add_document(self, user: User, valuation_id: str, request: DocumentCreate) -> PropertyValuation:
        valuation = await self._get(valuation_id)
        document = {
            "id": uuid.uuid4().hex,
            **request.model_dump(by_alias=True, mode="json"),
            "uploadedBy": user.id,
            "uploadedAt": datetime.now(timezone.utc).isoformat(),
            "verified": False,
        }
        valuation.documents = [*(valuation.documents or []), document]
        await self.session.commit()
        return valuation

    async def verify_document(self, user: User, valuation_id: str, document_id: str) -> None:
        valuation = await self._get(valuation_id)
        documents = [dict(d) for d in valuation.documents or []]
        for document in documents:
            if document.get("id") == document_id:
                document["verified"] = True
                document["verifiedBy"] = user.id
                document["verifiedAt"] = datetime.now(timezone.utc).isoformat()
                break
        else:
            raise ApiError(404, "해당 문서를 찾을 수 없습니다")

        valuation.documents = documents
        await self.session.commit()

    async def add_factor(self, property_id: str, valuation_id: str, factor: ValuationFactor) -> PropertyValuation:
        valuation = await self._get_for_property(property_id, valuation_id)
        valuation.factors = [*(valuation.factors or []), factor.model_dump(by_alias=True, mode="json")]
        await self.session.commit()
        return valuation

    # ------------------------------------------------------------------
    # 게시
    # ------------------------------------------------------------------

    async def record_on_chain(
        self,
        user: User,
        valuation_id: str,
        request: RecordOnChainRequest,
    ) -> PropertyValuation:
        """승인된 평가를 블록체인에 기록하고 게시

        평가 게시와 부동산 평가액/이력 갱신은 하나의 DB 트랜잭션으로 커밋한다.
        """
        valuation = await self._get(valuation_id)
        if valuation.status != ValuationStatus.APPROVED.value:
            raise ApiError(400, "승인된 평가만 블록체인에 기록할 수 있습니다")

        property_ = valuation.property
        workflow = WorkflowLogger("valuation_publish", valuation_id=valuation.id)
        metadata_uri = request.metadata_uri or valuation.metadata_uri or self._metadata_uri(valuation, property_)
        transaction_hash = request.transaction_hash
        blockchain_valuation_id = valuation.blockchain_valuation_id

        if not transaction_hash and valuation.recorded_on_chain and valuation.transaction_hash:
            transaction_hash = valuation.transaction_hash
        elif not transaction_hash:
            if property_.token_id is None:
                raise ApiError(400, "토큰화되지 않은 부동산은 블록체인에 기록할 수 없습니다")
            try:
                result = await self._record(valuation, property_, metadata_uri)
            except BlockchainError as e:
                workflow.error("Chain record failed", error=e.message)
                raise ApiError(500, f"블록체인 평가 기록 중 오류가 발생했습니다: {e.message}") from e
            transaction_hash = result.transaction_hash
            blockchain_valuation_id = _event_int(result.event, "valuationId")
        workflow.step("recorded", transaction_hash=transaction_hash)

        published = await self.session.execute(
            update(PropertyValuation)
            .where(
                PropertyValuation.id == valuation.id,
                PropertyValuation.status == ValuationStatus.APPROVED.value,
            )
            .values(
                status=ValuationStatus.PUBLISHED.value,
                recorded_on_chain=True,
                transaction_hash=transaction_hash,
                metadata_uri=metadata_uri,
                blockchain_valuation_id=blockchain_valuation_id,
            )
        )
        if published.rowcount == 0:
            await self.session.rollback()
            raise ApiError(400, "승인된 평가만 블록체인에 기록할 수 있습니다")

        valued_by = ValuedBy.APPRAISER if valuation.appraiser else ValuedBy.ADMIN
        property_.appraised_value = valuation.current_value
        property_.valuation_history = [
            *(property_.valuation_history or []),
            {
                "date": datetime.now(timezone.utc).isoformat(),
                "value": str(valuation.current_value),
                "valuedBy": valued_by.value,
                "appraiserInfo": valuation.appraiser,
                "reason": valuation.notes,
                "documents": [d.get("fileUrl") for d in valuation.documents or [] if d.get("fileUrl")],
            },
        ]
        await self.session.commit()
        await self.session.refresh(valuation)

        if self.cache is not None:
            await self.cache.invalidate_analytics()
        workflow.result("published", property_id=property_.id, user_id=user.id)
        return valuation


def _event_int(event: dict, key: str) -> Optional[int]:
    value = event.get(key)
    return int(value) if value is not None else None
