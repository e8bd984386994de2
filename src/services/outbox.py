"""체인 작업 기록(outbox)과 멱등성 키 처리

DB -> 체인 -> DB 순서의 작업은 chain_operations 행으로 남긴다.
같은 대상에 대해 이미 성공한 작업은 다시 호출하지 않고 저장된 결과를 돌려준다.
"""
from typing import Any, Awaitable, Callable, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.services.blockchain import TxResult
from src.services.tables import ChainOperation, IdempotencyRecord
from src.utils.errors import ApiError, BlockchainError
from src.utils.logger import get_logger

logger = get_logger(__name__)


class OperationStatus:
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class ChainOperationRunner:
    """체인 호출을 outbox 행과 함께 실행"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _latest(self, operation: str, target_type: str, target_id: str) -> Optional[ChainOperation]:
        result = await self.session.execute(
            select(ChainOperation)
            .where(
                ChainOperation.operation == operation,
                ChainOperation.target_type == target_type,
                ChainOperation.target_id == target_id,
            )
            .order_by(ChainOperation.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def run(
        self,
        operation: str,
        target_type: str,
        target_id: str,
        call: Callable[[], Awaitable[TxResult]],
        payload: Optional[dict[str, Any]] = None,
    ) -> TxResult:
        """작업 실행

        Raises:
            BlockchainError: 체인 호출 실패 (행은 failed로 기록됨)
        """
        op = await self._latest(operation, target_type, target_id)
        if op is not None and op.status == OperationStatus.SUCCEEDED:
            logger.info(
                "Chain operation already succeeded",
                operation=operation,
                target_id=target_id,
                transaction_hash=op.transaction_hash,
            )
            return TxResult(
                transaction_hash=op.transaction_hash,
                block_number=(op.result or {}).get("blockNumber", 0),
                event=(op.result or {}).get("event", {}),
            )

        if op is None:
            op = ChainOperation(
                operation=operation,
                target_type=target_type,
                target_id=target_id,
                payload=payload,
                attempts=0,
            )
            self.session.add(op)
        op.status = OperationStatus.PENDING
        op.attempts = (op.attempts or 0) + 1
        op.error = None
        await self.session.commit()

        try:
            result = await call()
        except BlockchainError as e:
            op.status = OperationStatus.FAILED
            op.error = e.message
            await self.session.commit()
            logger.error(
                "Chain operation failed",
                operation=operation,
                target_id=target_id,
                attempts=op.attempts,
                error=e.message,
            )
            raise

        op.status = OperationStatus.SUCCEEDED
        op.transaction_hash = result.transaction_hash
        op.result = {
            "blockNumber": result.block_number,
            "event": {k: v if isinstance(v, (int, str, bool)) else str(v) for k, v in result.event.items()},
        }
        await self.session.commit()
        return result


class IdempotencyStore:
    """Idempotency-Key 기록"""

    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _get(self, scope: str, key: str) -> Optional[IdempotencyRecord]:
        result = await self.session.execute(
            select(IdempotencyRecord).where(
                IdempotencyRecord.scope == scope,
                IdempotencyRecord.key == key,
            )
        )
        return result.scalar_one_or_none()

    def _replay_or_conflict(self, record: IdempotencyRecord, user_id: Optional[str]) -> IdempotencyRecord:
        # 다른 사용자의 키로는 저장된 응답을 돌려주지 않는다
        if record.user_id != user_id:
            raise ApiError(422, "다른 요청에 이미 사용된 Idempotency-Key입니다")
        if record.status == self.COMPLETED:
            return record
        raise ApiError(409, "동일한 요청이 이미 처리 중입니다")

    async def claim(self, scope: str, key: str, user_id: Optional[str]) -> Optional[IdempotencyRecord]:
        """키 선점. 완료된 기록이 있으면 그 기록을 반환"""
        existing = await self._get(scope, key)
        if existing is not None:
            return self._replay_or_conflict(existing, user_id)

        self.session.add(IdempotencyRecord(scope=scope, key=key, user_id=user_id))
        try:
            await self.session.commit()
        except IntegrityError:
            await self.session.rollback()
            existing = await self._get(scope, key)
            if existing is None:
                raise
            return self._replay_or_conflict(existing, user_id)
        return None

    async def complete(self, scope: str, key: str, status_code: int, body: Any) -> None:
        record = await self._get(scope, key)
        if record is None:
            return
        record.status = self.COMPLETED
        record.response_status = status_code
        record.response_body = body
        await self.session.commit()

    async def release(self, scope: str, key: str) -> None:
        await self.session.execute(
            delete(IdempotencyRecord).where(
                IdempotencyRecord.scope == scope,
                IdempotencyRecord.key == key,
            )
        )
        await self.session.commit()


async def run_idempotent(
    session: AsyncSession,
    scope: str,
    key: Optional[str],
    user_id: Optional[str],
    func: Callable[[], Awaitable[tuple[int, Any]]],
) -> tuple[int, Any]:
    """Idempotency-Key가 있으면 첫 응답을 저장하고 재요청에는 저장된 응답을 돌려준다

    ApiError 응답도 저장하며, 예상하지 못한 예외는 키를 해제해 재시도를 허용한다.
    """
    if not key:
        return await func()

    store = IdempotencyStore(session)
    replay = await store.claim(scope, key, user_id)
    if replay is not None:
        logger.info("Idempotent replay", scope=scope, key=key)
        return replay.response_status, replay.response_body

    try:
        status_code, body = await func()
    except ApiError as e:
        await session.rollback()
        await store.complete(scope, key, e.status_code, {"error": e.message})
        raise
    except Exception:
        await session.rollback()
        await store.release(scope, key)
        raise

    await store.complete(scope, key, status_code, body)
    return status_code, body
