"""사용자 데이터 모델"""
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import EmailStr, Field

from src.models.common import Address, ApiModel, Pagination


class UserRole(str, Enum):
    """사용자 역할"""
    USER = "user"
    ADMIN = "admin"
    APPRAISER = "appraiser"
    DISTRIBUTOR = "distributor"


class RegisterRequest(ApiModel):
    """회원가입 요청"""

    email: EmailStr
    password: str = Field(..., min_length=6)
    name: str = Field(..., min_length=1)


class LoginRequest(ApiModel):
    """로그인 요청"""

    email: EmailStr
    password: str


class ChangePasswordRequest(ApiModel):
    """비밀번호 변경 요청"""

    current_password: str
    new_password: str = Field(..., min_length=6)


class ConnectWalletRequest(ApiModel):
    """지갑 연결 요청"""

    wallet_address: Optional[Address] = None


class UserOut(ApiModel):
    """사용자 정보"""

    id: str
    email: str
    name: str
    wallet_address: Optional[str] = None
    role: UserRole
    is_verified: bool = False
    created_at: Optional[datetime] = None


class AuthResponse(ApiModel):
    """인증 응답"""

    message: str
    token: str
    user: UserOut


class ProfileResponse(ApiModel):
    """프로필 응답"""

    user: UserOut


class WalletResponse(ApiModel):
    """지갑 연결 응답"""

    message: str
    wallet_address: Optional[str] = None


class UserStatusUpdate(ApiModel):
    """관리자의 사용자 상태 변경 요청"""

    is_verified: Optional[bool] = None
    role: Optional[UserRole] = None


class UserList(ApiModel):
    """사용자 목록"""

    users: list[UserOut]
    pagination: Pagination
