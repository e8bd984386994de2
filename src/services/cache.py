"""캐시 서비스"""
import json
from datetime import timedelta
from typing import Any, Awaitable, Callable, Optional, Union

import redis.asyncio as redis

from config.settings import get_settings
from src.utils.logger import get_logger

logger = get_logger(__name__)

ANALYTICS_PREFIX = "analytics"


class CacheService:
    """Redis 기반 캐시 서비스"""

    def __init__(self, redis_url: Optional[str] = None):
        settings = get_settings()
        self.redis_url = redis_url or settings.redis_url
        self.default_ttl = timedelta(seconds=settings.analytics_cache_ttl)
        self._client: Optional[redis.Redis] = None

    async def connect(self) -> None:
        """Redis 연결"""
        if self._client is None:
            self._client = redis.from_url(self.redis_url, decode_responses=True)

    async def disconnect(self) -> None:
        """Redis 연결 종료"""
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> redis.Redis:
        """Redis 클라이언트"""
        if self._client is None:
            raise RuntimeError("Cache not connected. Call connect() first.")
        return self._client

    async def get(self, key: str) -> Optional[Any]:
        """캐시 조회"""
        value = await self.client.get(key)
        if value:
            try:
                return json.loads(value)
            except json.JSONDecodeError:
                return value
        return None

    async def set(
        self,
        key: str,
        value: Any,
        ttl: Optional[Union[timedelta, int]] = None,
    ) -> None:
        """캐시 저장"""
        if isinstance(value, (dict, list)):
            value = json.dumps(value, ensure_ascii=False)
        await self.client.set(key, value, ex=ttl or self.default_ttl)

    async def delete(self, key: str) -> None:
        """캐시 삭제"""
        await self.client.delete(key)

    async def delete_prefix(self, prefix: str) -> int:
        """접두사로 시작하는 키 일괄 삭제"""
        count = 0
        async for key in self.client.scan_iter(match=f"{prefix}:*"):
            await self.client.delete(key)
            count += 1
        return count

    async def get_or_set(
        self,
        key: str,
        factory: Callable[[], Awaitable[Any]],
        ttl: Optional[Union[timedelta, int]] = None,
    ) -> Any:
        """캐시 조회 또는 생성

        Redis 장애 시에는 캐시 없이 factory 결과를 그대로 반환한다.
        """
        try:
            value = await self.get(key)
        except redis.RedisError as e:
            logger.warning("Cache read failed", key=key, error=str(e))
            return await factory()

        if value is None:
            value = await factory()
            try:
                await self.set(key, value, ttl)
            except redis.RedisError as e:
                logger.warning("Cache write failed", key=key, error=str(e))
        return value

    # 분석 통계 전용 메서드
    @staticmethod
    def analytics_key(name: str, *parts: Any) -> str:
        return ":".join([ANALYTICS_PREFIX, name, *(str(p) for p in parts)])

    async def invalidate_analytics(self) -> None:
        """거래/부동산 변경 후 공개 통계 캐시 무효화"""
        try:
            await self.delete_prefix(ANALYTICS_PREFIX)
        except redis.RedisError as e:
            logger.warning("Cache invalidation failed", error=str(e))


# 싱글톤 인스턴스
_cache_service: Optional[CacheService] = None


async def get_cache_service() -> CacheService:
    """캐시 서비스 싱글톤 반환"""
    global _cache_service
    if _cache_service is None:
        _cache_service = CacheService()
        await _cache_service.connect()
    return _cache_service
