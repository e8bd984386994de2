"""체인 작업 기록 및 멱등성 테스트"""
import pytest
from sqlalchemy import func, select

from src.services.blockchain import TxResult
from src.services.outbox import ChainOperationRunner, OperationStatus, run_idempotent
from src.services.tables import ChainOperation, IdempotencyRecord
from src.utils.errors import ApiError, BlockchainError


class TestChainOperationRunner:
    """outbox 실행 테스트"""

    @pytest.mark.asyncio
    async def test_success_recorded(self, session):
        async def call():
            return TxResult(transaction_hash="0xabc", block_number=10, event={"valuationId": 3})

        result = await ChainOperationRunner(session).run("record_valuation", "valuation", "v1", call)

        assert result.transaction_hash == "0xabc"
        op = (await session.execute(select(ChainOperation))).scalar_one()
        assert op.status == OperationStatus.SUCCEEDED
        assert op.attempts == 1
        assert op.result == {"blockNumber": 10, "event": {"valuationId": 3}}

    @pytest.mark.asyncio
    async def test_succeeded_operation_not_repeated(self, session):
        calls = []

        async def call():
            calls.append(1)
            return TxResult(transaction_hash="0xabc", block_number=10, event={"valuationId": 3})

        runner = ChainOperationRunner(session)
        await runner.run("record_valuation", "valuation", "v1", call)
        replay = await runner.run("record_valuation", "valuation", "v1", call)

        assert len(calls) == 1
        assert replay.transaction_hash == "0xabc"
        assert replay.event == {"valuationId": 3}

    @pytest.mark.asyncio
    async def test_failure_recorded_then_retried(self, session):
        async def failing():
            raise BlockchainError("execution reverted")

        async def succeeding():
            return TxResult(transaction_hash="0xdef", block_number=11)

        runner = ChainOperationRunner(session)
        with pytest.raises(BlockchainError):
            await runner.run("execute_distribution", "distribution", "d1", failing)

        op = (await session.execute(select(ChainOperation))).scalar_one()
        assert op.status == OperationStatus.FAILED
        assert op.error == "execution reverted"

        await runner.run("execute_distribution", "distribution", "d1", succeeding)
        await session.refresh(op)
        assert op.status == OperationStatus.SUCCEEDED
        assert op.attempts == 2
        count = await session.scalar(select(func.count()).select_from(ChainOperation))
        assert count == 1


class TestRunIdempotent:
    """Idempotency-Key 처리 테스트"""

    @pytest.mark.asyncio
    async def test_without_key_always_runs(self, session):
        calls = []

        async def handler():
            calls.append(1)
            return 200, {"ok": True}

        await run_idempotent(session, "scope", None, None, handler)
        await run_idempotent(session, "scope", None, None, handler)
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_replays_stored_response(self, session):
        calls = []

        async def handler():
            calls.append(1)
            return 200, {"count": len(calls)}

        first = await run_idempotent(session, "income_execute:d1", "key-1", "u1", handler)
        second = await run_idempotent(session, "income_execute:d1", "key-1", "u1", handler)

        assert first == second == (200, {"count": 1})
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_api_error_replayed(self, session):
        async def handler():
            raise ApiError(400, "실행할 수 없는 상태입니다")

        with pytest.raises(ApiError):
            await run_idempotent(session, "income_cancel:d1", "key-2", None, handler)

        status_code, body = await run_idempotent(session, "income_cancel:d1", "key-2", None, handler)
        assert status_code == 400
        assert body == {"error": "실행할 수 없는 상태입니다"}

    @pytest.mark.asyncio
    async def test_unexpected_error_releases_key(self, session):
        async def broken():
            raise RuntimeError("boom")

        async def handler():
            return 200, {"ok": True}

        with pytest.raises(RuntimeError):
            await run_idempotent(session, "scope", "key-3", None, broken)

        count = await session.scalar(select(func.count()).select_from(IdempotencyRecord))
        assert count == 0
        assert await run_idempotent(session, "scope", "key-3", None, handler) == (200, {"ok": True})

    @pytest.mark.asyncio
    async def test_key_reused_by_other_user(self, session):
        calls = []

        async def handler():
            calls.append(1)
            return 200, {"secret": "distributor body"}

        await run_idempotent(session, "income_execute:d2", "key-4", "distributor", handler)

        with pytest.raises(ApiError) as exc_info:
            await run_idempotent(session, "income_execute:d2", "key-4", "stranger", handler)

        assert exc_info.value.status_code == 422
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_in_progress_key_conflicts(self, session):
        session.add(IdempotencyRecord(scope="income_execute:d3", key="key-5", user_id="u1"))
        await session.commit()

        async def handler():
            return 200, {"ok": True}

        with pytest.raises(ApiError) as exc_info:
            await run_idempotent(session, "income_execute:d3", "key-5", "u1", handler)

        assert exc_info.value.status_code == 409
