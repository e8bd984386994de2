"""수익 분배 서비스

상태 흐름: scheduled -> in_progress -> completed | failed | cancelled
수령자별 상태: pending -> processing -> completed | failed

실행은 scheduled -> in_progress 조건부 UPDATE로 선점한 뒤 진행하고,
체인 호출(입금, 실행)은 chain_operations에 기록한다.
"""
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from web3 import Web3

from src.models.common import Page
from src.models.income import (
    RECEIVER_TRANSITIONS,
    ChainDistribution,
    DistributionCreate,
    DistributionOut,
    DistributionStatus,
    DistributionStatusSummary,
    ReceiverStatus,
    ReceiverStatusUpdate,
    StatusCounts,
    UserDistribution,
)
from src.models.notification import NotificationType
from src.models.property import PropertySummary
from src.models.share import TransactionStatus, TransactionType
from src.models.user import UserRole
from src.services.blockchain import BlockchainService, same_address
from src.services.cache import CacheService
from src.services.notifications import NotificationService
from src.services.outbox import ChainOperationRunner
from src.services.properties import local_transaction_hash
from src.services.queries import apply_sort, paginate
from src.services.settlement import (
    SettlementError,
    Transfer,
    allocate,
    build_snapshot,
    compute_fee,
    validate_receivers,
)
from src.services.tables import (
    DistributionReceiver,
    IncomeDistribution,
    Property,
    Share,
    Token,
    Transaction,
    User,
)
from src.utils.errors import ApiError, BlockchainError
from src.utils.logger import WorkflowLogger, get_logger

logger = get_logger(__name__)

DISTRIBUTION_NOT_FOUND = "해당 수익 분배 정보를 찾을 수 없습니다."


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def has_role(user: User, *roles: UserRole) -> bool:
    return user.role in {r.value for r in roles}


class IncomeService:
    """수익 분배 생성, 스냅샷, 실행, 취소"""

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

    async def _get(self, distribution_id: str) -> IncomeDistribution:
        distribution = await self.session.get(IncomeDistribution, distribution_id)
        if distribution is None:
            raise ApiError(404, DISTRIBUTION_NOT_FOUND)
        return distribution

    async def _get_for_property(self, property_id: str, distribution_id: str) -> IncomeDistribution:
        distribution = await self.session.get(IncomeDistribution, distribution_id)
        if distribution is None or distribution.property_id != property_id:
            raise ApiError(404, DISTRIBUTION_NOT_FOUND)
        return distribution

    async def _get_property(self, property_id: str) -> Property:
        property_ = await self.session.get(Property, property_id)
        if property_ is None:
            raise ApiError(404, "해당 부동산을 찾을 수 없습니다.")
        return property_

    async def _page(self, stmt, page: int, limit: int, sort: Optional[str]) -> Page[DistributionOut]:
        stmt = apply_sort(stmt, IncomeDistribution, sort, "-createdAt")
        items, total = await paginate(self.session, stmt, page, limit)
        return Page[DistributionOut].build(
            [DistributionOut.model_validate(d) for d in items], total, page, limit
        )

    async def list_all(
        self,
        page: int = 1,
        limit: int = 10,
        status: Optional[DistributionStatus] = None,
        property_id: Optional[str] = None,
        sort: Optional[str] = None,
    ) -> Page[DistributionOut]:
        stmt = select(IncomeDistribution)
        if status:
            stmt = stmt.where(IncomeDistribution.status == status.value)
        if property_id:
            stmt = stmt.where(IncomeDistribution.property_id == property_id)
        return await self._page(stmt, page, limit, sort)

    async def list_by_property(
        self,
        user: User,
        property_id: str,
        page: int = 1,
        limit: int = 10,
        sort: Optional[str] = None,
    ) -> Page[DistributionOut]:
        property_ = await self._get_property(property_id)
        if not has_role(user, UserRole.ADMIN) and property_.created_by != user.id:
            raise ApiError(403, "이 부동산의 수익 분배 내역에 접근할 권한이 없습니다")
        stmt = select(IncomeDistribution).where(IncomeDistribution.property_id == property_id)
        return await self._page(stmt, page, limit, sort or "-distributionDate")

    async def list_by_token(
        self,
        token_id: str,
        page: int = 1,
        limit: int = 10,
        sort: Optional[str] = None,
    ) -> Page[DistributionOut]:
        stmt = select(IncomeDistribution).where(IncomeDistribution.token_id == token_id)
        return await self._page(stmt, page, limit, sort)

    async def list_scheduled(self) -> list[IncomeDistribution]:
        result = await self.session.execute(
            select(IncomeDistribution)
            .where(IncomeDistribution.status == DistributionStatus.SCHEDULED.value)
            .order_by(IncomeDistribution.distribution_date.asc())
        )
        return list(result.scalars().all())

    async def list_for_user(
        self,
        user: User,
        page: int = 1,
        limit: int = 10,
    ) -> Page[UserDistribution]:
        """사용자 지갑이 수령자로 포함된 분배 (본인 항목만)"""
        if not user.wallet_address:
            raise ApiError(400, "연결된 지갑 주소가 없습니다")

        stmt = (
            select(DistributionReceiver)
            .join(IncomeDistribution, DistributionReceiver.distribution_id == IncomeDistribution.id)
            .where(DistributionReceiver.wallet_address == user.wallet_address)
            .order_by(IncomeDistribution.created_at.desc())
        )
        receivers, total = await paginate(self.session, stmt, page, limit)

        docs = []
        for receiver in receivers:
            distribution = await self.session.get(IncomeDistribution, receiver.distribution_id)
            docs.append(
                UserDistribution(
                    id=distribution.id,
                    property=PropertySummary.model_validate(distribution.property),
                    token_id=distribution.token_id,
                    income_type=distribution.income_type,
                    period=distribution.period,
                    distribution_date=distribution.distribution_date,
                    status=distribution.status,
                    total_amount=distribution.total_amount,
                    user_shares=receiver.shares,
                    user_amount=receiver.amount,
                    user_status=receiver.status,
                    transaction_hash=receiver.transaction_hash,
                    settlement_reference=receiver.settlement_reference,
                    distributed_at=receiver.distributed_at,
                )
            )
        return Page[UserDistribution].build(docs, total, page, limit)

    async def get_visible(self, user: User, distribution_id: str) -> DistributionOut:
        """관리자/생성자는 전체, 수령자는 본인 항목만"""
        distribution = await self._get(distribution_id)
        out = DistributionOut.model_validate(distribution)
        if has_role(user, UserRole.ADMIN) or distribution.created_by == user.id:
            return out

        own = [r for r in out.receivers if same_address(r.wallet_address, user.wallet_address)]
        if not own:
            raise ApiError(403, "이 수익 분배 내역에 접근할 권한이 없습니다")
        return out.model_copy(update={"receivers": own})

    async def get_for_property(self, property_id: str, distribution_id: str) -> IncomeDistribution:
        return await self._get_for_property(property_id, distribution_id)

    async def receivers(self, property_id: str, distribution_id: str) -> list[DistributionReceiver]:
        distribution = await self._get_for_property(property_id, distribution_id)
        return list(distribution.receivers)

    async def status_summary(self, distribution_id: str) -> DistributionStatusSummary:
        distribution = await self._get(distribution_id)
        counts = StatusCounts()
        distributed = 0
        for receiver in distribution.receivers:
            setattr(counts, receiver.status, getattr(counts, receiver.status) + 1)
            if receiver.status == ReceiverStatus.COMPLETED.value:
                distributed += receiver.amount

        fee_amount = compute_fee(distribution.total_amount, distribution.fee)
        return DistributionStatusSummary(
            id=distribution.id,
            status=distribution.status,
            total_amount=distribution.total_amount,
            fee_amount=fee_amount,
            distributed_amount=distributed,
            remaining_amount=max(distribution.total_amount - fee_amount - distributed, 0),
            receiver_count=len(distribution.receivers),
            receivers=counts,
            completed_at=distribution.completed_at,
            error_message=(distribution.meta or {}).get("errorMessage"),
        )

    async def blockchain_history(self, property_id: str) -> list[ChainDistribution]:
        property_ = await self.session.get(Property, property_id)
        if property_ is None or property_.token_id is None:
            raise ApiError(404, "해당 토큰화된 부동산을 찾을 수 없습니다.")

        try:
            distribution_ids = await self.blockchain.get_income_distribution_history(property_.token_id)
        except BlockchainError as e:
            logger.error("Distribution history lookup failed", token_id=property_.token_id, error=e.message)
            raise ApiError(500, "블록체인 수익 분배 이력 조회 중 오류가 발생했습니다.") from e

        distributions = []
        for distribution_id in distribution_ids:
            try:
                distributions.append(await self.blockchain.get_income_distribution(distribution_id))
            except BlockchainError as e:
                logger.warning("Distribution lookup failed", distribution_id=distribution_id, error=e.message)
        return distributions

    # ------------------------------------------------------------------
    # 생성 / 스냅샷
    # ------------------------------------------------------------------

    def _check_manager(self, user: User, property_: Property, message: str) -> None:
        if not has_role(user, UserRole.ADMIN, UserRole.DISTRIBUTOR) and property_.created_by != user.id:
            raise ApiError(403, message)

    async def _share_for(self, property_id: str) -> Optional[Share]:
        return await self.session.scalar(
            select(Share).where(Share.property_id == property_id).order_by(Share.created_at.asc()).limit(1)
        )

    async def _users_by_wallet(self, wallets: list[str]) -> dict[str, str]:
        if not wallets:
            return {}
        result = await self.session.execute(
            select(User.wallet_address, User.id).where(User.wallet_address.in_(wallets))
        )
        return {wallet: user_id for wallet, user_id in result.all()}

    def _metadata_uri(self, distribution: IncomeDistribution, property_: Property) -> str:
        ipfs_hash = (distribution.meta or {}).get("ipfsHash")
        return f"ipfs://{ipfs_hash}" if ipfs_hash else property_.ipfs_document_uri

    async def create(self, user: User, property_id: str, request: DistributionCreate) -> IncomeDistribution:
        """수익 분배 생성 (scheduled)"""
        property_ = await self._get_property(property_id)
        self._check_manager(user, property_, "수익 분배 생성 권한이 없습니다.")
        if not property_.is_tokenized or property_.token_id is None:
            raise ApiError(400, "토큰화되지 않은 부동산은 수익 분배를 생성할 수 없습니다.")

        token = await self.session.scalar(
            select(Token).where(Token.property_id == property_.id).order_by(Token.created_at.desc()).limit(1)
        )
        if token is None:
            raise ApiError(400, "부동산 토큰 정보를 찾을 수 없습니다.")

        fee = request.fee.model_dump(by_alias=True, mode="json", exclude_none=True) if request.fee else None
        receivers = [r.model_dump() for r in request.receivers]
        try:
            fee_amount = compute_fee(request.total_amount, fee)
            if receivers:
                share = await self._share_for(property_.id)
                validate_receivers(
                    receivers,
                    request.total_amount,
                    fee_amount,
                    total_shares=share.total_shares if share else None,
                )
        except SettlementError as e:
            raise ApiError(400, str(e)) from e

        users = await self._users_by_wallet([r["wallet_address"] for r in receivers])
        distribution = IncomeDistribution(
            property_id=property_.id,
            property=property_,
            token_id=token.id,
            income_type=request.income_type.value,
            total_amount=request.total_amount,
            period=request.period.model_dump(mode="json"),
            description=request.description,
            created_by=user.id,
            distribution_date=request.distribution_date,
            status=DistributionStatus.SCHEDULED.value,
            meta=request.meta or {},
            fee=fee,
            receivers=[
                DistributionReceiver(
                    position=i,
                    wallet_address=r["wallet_address"],
                    user_id=r["user"] or users.get(r["wallet_address"]),
                    shares=r["shares"],
                    amount=r["amount"],
                    status=ReceiverStatus.PENDING.value,
                )
                for i, r in enumerate(receivers)
            ],
        )
        self.session.add(distribution)
        await self.session.commit()

        workflow = WorkflowLogger("income_create", distribution_id=distribution.id)
        workflow.step("scheduled", property_id=property_.id, total_amount=str(distribution.total_amount))

        if request.record_on_chain:
            try:
                result = await self.runner.run(
                    "create_distribution",
                    "distribution",
                    distribution.id,
                    lambda: self.blockchain.create_income_distribution(
                        property_.token_id,
                        distribution.total_amount,
                        distribution.income_type,
                        self._metadata_uri(distribution, property_),
                        request.period.start,
                        request.period.end,
                    ),
                    payload={"tokenId": property_.token_id, "totalAmount": str(distribution.total_amount)},
                )
            except BlockchainError as e:
                # 체인 등록 실패는 분배 생성 결과에 영향을 주지 않는다
                workflow.warning("Chain registration failed", error=e.message)
            else:
                distribution.contract_call_transaction_hash = result.transaction_hash
                distribution_id = result.event.get("distributionId")
                distribution.blockchain_distribution_id = (
                    int(distribution_id) if distribution_id is not None else None
                )
                await self.session.commit()
                workflow.step("registered_on_chain", transaction_hash=result.transaction_hash)

        return distribution

    async def create_snapshot(self, user: User, distribution_id: str) -> IncomeDistribution:
        """분배 시점의 소유권 스냅샷을 만들고 수령자별 금액 배분"""
        distribution = await self._get(distribution_id)
        property_ = distribution.property
        self._check_manager(user, property_, "스냅샷 생성 권한이 없습니다.")
        if distribution.status != DistributionStatus.SCHEDULED.value:
            raise ApiError(400, "예약된 수익 분배에서만 스냅샷을 생성할 수 있습니다.")

        share = await self._share_for(property_.id)
        if share is None:
            raise ApiError(400, "지분 정보가 없는 부동산입니다.")

        snapshot_date = utcnow()
        result = await self.session.execute(
            select(Transaction)
            .where(
                Transaction.share_id == share.share_id,
                Transaction.status == TransactionStatus.COMPLETED.value,
                Transaction.transaction_type.in_(
                    [TransactionType.PURCHASE.value, TransactionType.SALE.value]
                ),
                Transaction.created_at <= snapshot_date,
            )
            .order_by(Transaction.created_at.asc())
        )
        transfers = [Transfer(t.seller, t.buyer, t.amount) for t in result.scalars().all()]

        try:
            holdings = build_snapshot(share.tokenizer, share.total_shares, transfers)
            fee_amount = compute_fee(distribution.total_amount, distribution.fee)
            allocations = allocate(distribution.total_amount, holdings, fee_amount)
        except SettlementError as e:
            raise ApiError(400, str(e)) from e

        users = await self._users_by_wallet([a.wallet_address for a in allocations])
        distribution.receivers = [
            DistributionReceiver(
                position=i,
                wallet_address=a.wallet_address,
                user_id=users.get(a.wallet_address),
                shares=a.shares,
                amount=a.amount,
                status=ReceiverStatus.PENDING.value,
            )
            for i, a in enumerate(allocations)
        ]
        distribution.ownership_snapshot = {
            "snapshotDate": snapshot_date.isoformat(),
            "totalShares": share.total_shares,
            "ownershipDistribution": [
                {"walletAddress": wallet, "shares": shares} for wallet, shares in holdings.items()
            ],
        }
        await self.session.commit()

        logger.info(
            "Ownership snapshot created",
            distribution_id=distribution.id,
            receivers=len(allocations),
            total_shares=share.total_shares,
            fee_amount=fee_amount,
        )
        return distribution

    # ------------------------------------------------------------------
    # 실행 / 취소 / 완료
    # ------------------------------------------------------------------

    async def _transition(
        self,
        distribution_id: str,
        from_statuses: list[DistributionStatus],
        to_status: DistributionStatus,
        **values,
    ) -> bool:
        """조건부 상태 변경 (성공 여부 반환, 커밋은 호출한 쪽에서)"""
        result = await self.session.execute(
            update(IncomeDistribution)
            .where(
                IncomeDistribution.id == distribution_id,
                IncomeDistribution.status.in_([s.value for s in from_statuses]),
            )
            .values(status=to_status.value, **values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def _append_income_history(
        self,
        distribution: IncomeDistribution,
        transaction_hash: Optional[str],
    ) -> None:
        property_ = distribution.property
        property_.income_history = [
            *(property_.income_history or []),
            {
                "period": distribution.period,
                "totalIncome": str(distribution.total_amount),
                "incomeType": distribution.income_type,
                "distributionStatus": DistributionStatus.COMPLETED.value,
                "distributionDate": utcnow().isoformat(),
                "distributionTxHash": transaction_hash,
                "details": {"distributionId": distribution.id},
            },
        ]

    def _notify_receivers(self, distribution: IncomeDistribution) -> None:
        for receiver in distribution.receivers:
            if receiver.user_id and receiver.status == ReceiverStatus.COMPLETED.value:
                self.notifications.create(
                    receiver.user_id,
                    "수익 분배 완료",
                    f"{distribution.property.property_address}의 수익 {receiver.amount} wei가 분배되었습니다.",
                    type=NotificationType.INCOME,
                    related_property_id=distribution.property_id,
                )

    async def _mark_failed(self, distribution: IncomeDistribution, error_message: str) -> None:
        await self._transition(
            distribution.id,
            [DistributionStatus.IN_PROGRESS],
            DistributionStatus.FAILED,
            meta={**(distribution.meta or {}), "errorMessage": error_message},
        )
        for receiver in distribution.receivers:
            if receiver.status != ReceiverStatus.COMPLETED.value:
                receiver.status = ReceiverStatus.FAILED.value
                receiver.error_message = error_message
        await self.session.commit()
        await self.session.refresh(distribution)

    async def execute(self, user: User, property_id: str, distribution_id: str) -> IncomeDistribution:
        """수익 분배 실행

        체인에 등록된 분배는 입금 후 컨트랙트 실행, 그 외에는 수령자별로 오프체인 정산한다.
        """
        distribution = await self._get_for_property(property_id, distribution_id)
        if not has_role(user, UserRole.ADMIN, UserRole.DISTRIBUTOR):
            raise ApiError(403, "수익 분배 실행 권한이 없습니다.")
        if distribution.status != DistributionStatus.SCHEDULED.value:
            raise ApiError(400, "현재 상태에서는 수익 분배를 실행할 수 없습니다.")

        on_chain = distribution.blockchain_distribution_id is not None
        if not on_chain and not distribution.receivers:
            raise ApiError(400, "수령자 정보가 없습니다. 먼저 소유권 스냅샷을 생성하세요.")

        if not await self._transition(
            distribution.id, [DistributionStatus.SCHEDULED], DistributionStatus.IN_PROGRESS
        ):
            await self.session.rollback()
            raise ApiError(400, "현재 상태에서는 수익 분배를 실행할 수 없습니다.")
        await self.session.commit()
        await self.session.refresh(distribution)

        workflow = WorkflowLogger("income_execute", distribution_id=distribution.id, on_chain=on_chain)
        workflow.step("claimed", user_id=user.id)

        if on_chain:
            await self._execute_on_chain(distribution, workflow)
        else:
            await self._execute_off_chain(distribution, workflow)

        if self.cache is not None:
            await self.cache.invalidate_analytics()
        return distribution

    async def _execute_on_chain(self, distribution: IncomeDistribution, workflow: WorkflowLogger) -> None:
        chain_id = distribution.blockchain_distribution_id
        try:
            deposit = await self.runner.run(
                "deposit_funds",
                "distribution",
                distribution.id,
                lambda: self.blockchain.deposit_funds(chain_id, distribution.total_amount),
                payload={"distributionId": chain_id, "amount": str(distribution.total_amount)},
            )
            workflow.step("deposited", transaction_hash=deposit.transaction_hash)

            result = await self.runner.run(
                "execute_distribution",
                "distribution",
                distribution.id,
                lambda: self.blockchain.execute_income_distribution(chain_id),
                payload={"distributionId": chain_id},
            )
        except BlockchainError as e:
            await self._mark_failed(distribution, e.message)
            workflow.error("Execution failed", error=e.message)
            raise ApiError(500, f"블록체인 수익 분배 실행 중 오류가 발생했습니다: {e.message}") from e

        now = utcnow()
        for receiver in distribution.receivers:
            receiver.status = ReceiverStatus.COMPLETED.value
            receiver.transaction_hash = result.transaction_hash
            receiver.distributed_at = now
            receiver.error_message = None
        await self._transition(
            distribution.id,
            [DistributionStatus.IN_PROGRESS],
            DistributionStatus.COMPLETED,
            contract_call_transaction_hash=result.transaction_hash,
            completed_at=now,
        )
        self._append_income_history(distribution, result.transaction_hash)
        self._notify_receivers(distribution)
        await self.session.commit()
        await self.session.refresh(distribution)
        workflow.result("completed", transaction_hash=result.transaction_hash)

    async def _execute_off_chain(self, distribution: IncomeDistribution, workflow: WorkflowLogger) -> None:
        """수령자별 독립 정산 (일부 실패 시 in_progress 유지)

        실제 송금은 하지 않고 지갑 주소만 확인해 정산 완료로 기록한다.
        체인 해시가 없으므로 transaction_hash는 비워 두고 내부 정산 번호만 남긴다.
        """
        failed = 0
        for receiver in distribution.receivers:
            if receiver.status == ReceiverStatus.COMPLETED.value:
                continue
            receiver.status = ReceiverStatus.PROCESSING.value
            if Web3.is_address(receiver.wallet_address):
                receiver.status = ReceiverStatus.COMPLETED.value
                receiver.settlement_reference = local_transaction_hash()
                receiver.distributed_at = utcnow()
                receiver.error_message = None
            else:
                receiver.status = ReceiverStatus.FAILED.value
                receiver.error_message = "유효하지 않은 지갑 주소입니다"
                failed += 1

        if failed == 0:
            await self._transition(
                distribution.id,
                [DistributionStatus.IN_PROGRESS],
                DistributionStatus.COMPLETED,
                completed_at=utcnow(),
            )
            self._append_income_history(distribution, None)
        self._notify_receivers(distribution)
        await self.session.commit()
        await self.session.refresh(distribution)

        if failed:
            workflow.warning("Partially settled", failed_receivers=failed)
        else:
            workflow.result("completed", receivers=len(distribution.receivers))

    async def cancel(self, user: User, property_id: str, distribution_id: str) -> IncomeDistribution:
        distribution = await self._get_for_property(property_id, distribution_id)
        if not has_role(user, UserRole.ADMIN) and distribution.created_by != user.id:
            raise ApiError(403, "수익 분배 취소 권한이 없습니다.")
        if distribution.status != DistributionStatus.SCHEDULED.value:
            raise ApiError(400, "현재 상태에서는 수익 분배를 취소할 수 없습니다.")

        workflow = WorkflowLogger("income_cancel", distribution_id=distribution.id)
        values = {}
        if distribution.blockchain_distribution_id is not None:
            chain_id = distribution.blockchain_distribution_id
            try:
                result = await self.runner.run(
                    "cancel_distribution",
                    "distribution",
                    distribution.id,
                    lambda: self.blockchain.cancel_income_distribution(chain_id),
                    payload={"distributionId": chain_id},
                )
            except BlockchainError as e:
                workflow.error("Cancel failed", error=e.message)
                raise ApiError(500, f"블록체인 수익 분배 취소 중 오류가 발생했습니다: {e.message}") from e
            values["contract_call_transaction_hash"] = result.transaction_hash

        if not await self._transition(
            distribution.id, [DistributionStatus.SCHEDULED], DistributionStatus.CANCELLED, **values
        ):
            await self.session.rollback()
            raise ApiError(400, "현재 상태에서는 수익 분배를 취소할 수 없습니다.")
        await self.session.commit()
        await self.session.refresh(distribution)

        workflow.result("cancelled", user_id=user.id)
        return distribution

    async def complete(self, distribution_id: str) -> IncomeDistribution:
        """관리자 수동 완료 (in_progress 또는 failed에서)"""
        distribution = await self._get(distribution_id)
        if distribution.status not in (
            DistributionStatus.IN_PROGRESS.value,
            DistributionStatus.FAILED.value,
        ):
            raise ApiError(400, "현재 상태에서는 수익 분배를 완료할 수 없습니다.")

        now = utcnow()
        if not await self._transition(
            distribution.id,
            [DistributionStatus.IN_PROGRESS, DistributionStatus.FAILED],
            DistributionStatus.COMPLETED,
            completed_at=now,
        ):
            await self.session.rollback()
            raise ApiError(400, "현재 상태에서는 수익 분배를 완료할 수 없습니다.")

        for receiver in distribution.receivers:
            if receiver.status != ReceiverStatus.COMPLETED.value:
                receiver.status = ReceiverStatus.COMPLETED.value
                receiver.distributed_at = now
                receiver.error_message = None
        self._append_income_history(distribution, distribution.contract_call_transaction_hash)
        await self.session.commit()
        await self.session.refresh(distribution)

        logger.info("Distribution completed manually", distribution_id=distribution.id)
        return distribution

    async def update_receiver(
        self,
        distribution_id: str,
        receiver_id: str,
        request: ReceiverStatusUpdate,
    ) -> IncomeDistribution:
        """수령자 상태 변경 (모두 완료되면 분배도 완료)"""
        distribution = await self._get(distribution_id)
        receiver = next((r for r in distribution.receivers if r.id == receiver_id), None)
        if receiver is None:
            raise ApiError(404, "해당 수령자를 찾을 수 없습니다")

        current = ReceiverStatus(receiver.status)
        if request.status not in RECEIVER_TRANSITIONS[current]:
            raise ApiError(
                400, f"허용되지 않는 수령자 상태 변경입니다: {current.value} -> {request.status.value}"
            )

        receiver.status = request.status.value
        if request.transaction_hash:
            receiver.transaction_hash = request.transaction_hash
        if request.status == ReceiverStatus.COMPLETED:
            receiver.distributed_at = utcnow()
            receiver.error_message = None
        elif request.status == ReceiverStatus.FAILED:
            receiver.error_message = request.error_message

        if distribution.status == DistributionStatus.IN_PROGRESS.value and all(
            r.status == ReceiverStatus.COMPLETED.value for r in distribution.receivers
        ):
            await self._transition(
                distribution.id,
                [DistributionStatus.IN_PROGRESS],
                DistributionStatus.COMPLETED,
                completed_at=utcnow(),
            )
            self._append_income_history(distribution, distribution.contract_call_transaction_hash)

        await self.session.commit()
        await self.session.refresh(distribution)
        return distribution
