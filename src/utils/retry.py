"""재시도 유틸리티 (지수 백오프)"""
import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

from config.settings import Settings, get_settings
from src.utils.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """재시도 정책"""

    max_retries: int = 3
    initial_delay: float = 1.0
    max_delay: float = 10.0
    backoff: float = 2.0

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "RetryPolicy":
        settings = settings or get_settings()
        return cls(
            max_retries=settings.chain_max_retries,
            initial_delay=settings.chain_retry_initial_delay,
            max_delay=settings.chain_retry_max_delay,
        )

    def delays(self) -> list[float]:
        """각 재시도 전 대기 시간 목록 (max_retries - 1 개)"""
        delays = []
        current = self.initial_delay
        for _ in range(max(self.max_retries - 1, 0)):
            delays.append(min(current, self.max_delay))
            current *= self.backoff
        return delays


async def retry_async(
    func: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    exceptions: tuple = (Exception,),
) -> T:
    """정책에 따라 코루틴 함수를 재시도

    should_retry 판단은 예외의 retryable 속성이 있으면 그 값을 따른다.
    """
    delays = policy.delays()
    attempt = 0

    while True:
        attempt += 1
        try:
            return await func()
        except exceptions as e:
            retryable = getattr(e, "retryable", True)
            if not retryable or attempt > len(delays):
                if retryable:
                    logger.error(
                        "Retry limit exceeded",
                        function=getattr(func, "__name__", repr(func)),
                        attempts=attempt,
                        error=str(e),
                    )
                raise
            delay = delays[attempt - 1]
            logger.warning(
                "Retrying",
                attempt=attempt,
                max_retries=policy.max_retries,
                delay=delay,
                error=str(e),
                function=getattr(func, "__name__", repr(func)),
            )
            await asyncio.sleep(delay)

