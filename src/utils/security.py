"""비밀번호 해시 및 JWT 유틸리티"""
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from bcrypt import checkpw, gensalt, hashpw

from config.settings import Settings, get_settings


def hash_password(raw_password: str) -> str:
    """bcrypt 해시 생성"""
    return hashpw(raw_password.encode("utf-8"), gensalt()).decode("utf-8")


def verify_password(raw_password: str, hashed_password: str) -> bool:
    """bcrypt 해시 검증"""
    return checkpw(raw_password.encode("utf-8"), hashed_password.encode("utf-8"))


def create_access_token(
    user_id: str,
    role: str,
    settings: Optional[Settings] = None,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """액세스 토큰 발급"""
    settings = settings or get_settings()
    expires_delta = expires_delta or timedelta(days=settings.jwt_expire_days)
    now = datetime.now(timezone.utc)
    payload = {
        "id": user_id,
        "role": role,
        "iat": now,
        "exp": now + expires_delta,
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str, settings: Optional[Settings] = None) -> dict:
    """액세스 토큰 검증

    Raises:
        jwt.ExpiredSignatureError: 만료된 토큰
        jwt.InvalidTokenError: 그 외 유효하지 않은 토큰
    """
    settings = settings or get_settings()
    return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
