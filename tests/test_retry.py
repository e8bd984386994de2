"""재시도 유틸리티 테스트"""
import pytest

from src.utils.errors import BlockchainError, TransientBlockchainError
from src.utils.retry import RetryPolicy, retry_async


class TestRetryPolicy:
    def test_delays_backoff_capped(self):
        policy = RetryPolicy(max_retries=5, initial_delay=1.0, max_delay=3.0, backoff=2.0)
        assert policy.delays() == [1.0, 2.0, 3.0, 3.0]

    def test_single_attempt_has_no_delays(self):
        assert RetryPolicy(max_retries=1).delays() == []


class TestRetryAsync:
    """retry_async 동작 테스트"""

    @pytest.mark.asyncio
    async def test_retries_transient_errors_until_success(self):
        attempts = []

        async def flaky():
            attempts.append(1)
            if len(attempts) < 3:
                raise TransientBlockchainError("timeout")
            return "ok"

        result = await retry_async(flaky, RetryPolicy(max_retries=3, initial_delay=0, max_delay=0))

        assert result == "ok"
        assert len(attempts) == 3

    @pytest.mark.asyncio
    async def test_non_retryable_error_raised_immediately(self):
        attempts = []

        async def revert():
            attempts.append(1)
            raise BlockchainError("execution reverted")

        with pytest.raises(BlockchainError):
            await retry_async(revert, RetryPolicy(max_retries=3, initial_delay=0, max_delay=0))
        assert len(attempts) == 1

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self):
        attempts = []

        async def always_timeout():
            attempts.append(1)
            raise TransientBlockchainError("timeout")

        with pytest.raises(TransientBlockchainError):
            await retry_async(always_timeout, RetryPolicy(max_retries=3, initial_delay=0, max_delay=0))
        assert len(attempts) == 3
