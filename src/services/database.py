"""데이터베이스 서비스"""
from contextlib import asynccontextmanager
from decimal import Decimal
from typing import AsyncGenerator, Optional

from sqlalchemy import Numeric, String
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool
from sqlalchemy.types import TypeDecorator

from config.settings import get_settings


class Base(DeclarativeBase):
    """SQLAlchemy Base"""
    pass


class WeiType(TypeDecorator):
    """wei 금액 컬럼 (NUMERIC(78,0) <-> int)

    SQLite는 64비트를 넘는 정수를 REAL로 바꾸므로 10진 문자열로 저장한다.
    """

    impl = Numeric(78, 0)
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "sqlite":
            return dialect.type_descriptor(String(80))
        return dialect.type_descriptor(Numeric(78, 0))

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if dialect.name == "sqlite":
            return str(int(value))
        return Decimal(int(value))

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return int(value)


class DatabaseService:
    """비동기 데이터베이스 서비스"""

    def __init__(self, database_url: Optional[str] = None):
        settings = get_settings()
        self.database_url = database_url or settings.database_url

        if self.database_url.startswith("sqlite"):
            engine_options = {
                "connect_args": {"check_same_thread": False},
                "poolclass": StaticPool,
            }
        else:
            engine_options = {"pool_size": 10, "max_overflow": 20}

        self.engine = create_async_engine(
            self.database_url,
            echo=settings.debug,
            **engine_options,
        )

        self.async_session = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    async def create_tables(self) -> None:
        """테이블 생성"""
        # 매핑 클래스를 메타데이터에 등록
        from src.services import tables  # noqa: F401

        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def drop_tables(self) -> None:
        """테이블 삭제"""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """세션 컨텍스트 매니저"""
        async with self.async_session() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def close(self) -> None:
        """연결 종료"""
        await self.engine.dispose()


# 싱글톤 인스턴스
_db_service: Optional[DatabaseService] = None


def get_database_service() -> DatabaseService:
    """데이터베이스 서비스 싱글톤 반환"""
    global _db_service
    if _db_service is None:
        _db_service = DatabaseService()
    return _db_service
