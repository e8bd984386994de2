"""라우터 공통 의존성"""
from typing import AsyncGenerator, Optional

import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from src.models.user import UserRole
from src.services.blockchain import BlockchainService, get_blockchain_service
from src.services.cache import CacheService, get_cache_service
from src.services.database import get_database_service
from src.services.tables import User
from src.utils.errors import ApiError
from src.utils.security import decode_access_token

bearer_scheme = HTTPBearer(auto_error=False)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """요청 단위 DB 세션"""
    async with get_database_service().session() as session:
        yield session


def get_blockchain() -> BlockchainService:
    return get_blockchain_service()


async def get_cache() -> CacheService:
    return await get_cache_service()


async def _resolve_user(
    credentials: Optional[HTTPAuthorizationCredentials],
    session: AsyncSession,
) -> User:
    if credentials is None or not credentials.credentials:
        raise ApiError(401, "인증 토큰이 필요합니다")

    try:
        payload = decode_access_token(credentials.credentials)
    except jwt.ExpiredSignatureError:
        raise ApiError(401, "토큰이 만료되었습니다")
    except jwt.InvalidTokenError:
        raise ApiError(401, "유효하지 않은 토큰입니다")

    user = await session.get(User, payload.get("id"))
    if user is None:
        raise ApiError(401, "유효하지 않은 토큰입니다")
    return user


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    session: AsyncSession = Depends(get_session),
) -> User:
    """Bearer 토큰으로 인증된 사용자"""
    return await _resolve_user(credentials, session)


async def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    session: AsyncSession = Depends(get_session),
) -> Optional[User]:
    """토큰이 없으면 None"""
    if credentials is None:
        return None
    return await _resolve_user(credentials, session)


def require_roles(*roles: UserRole):
    """지정한 역할 중 하나를 가진 사용자만 허용"""
    allowed = {role.value for role in roles}

    async def dependency(user: User = Depends(get_current_user)) -> User:
        if user.role not in allowed:
            raise ApiError(403, "이 작업을 수행할 권한이 없습니다")
        return user

    return dependency


require_admin = require_roles(UserRole.ADMIN)
