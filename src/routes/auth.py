"""인증 API"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from src.models.common import MessageResponse
from src.models.user import (
    AuthResponse,
    ChangePasswordRequest,
    ConnectWalletRequest,
    LoginRequest,
    ProfileResponse,
    RegisterRequest,
    UserOut,
    WalletResponse,
)
from src.routes.deps import get_current_user, get_session
from src.services.auth import AuthService
from src.services.tables import User

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/register", response_model=AuthResponse, status_code=201)
async def register(request: RegisterRequest, session: AsyncSession = Depends(get_session)):
    """회원가입"""
    return await AuthService(session).register(request)


@router.post("/login", response_model=AuthResponse)
async def login(request: LoginRequest, session: AsyncSession = Depends(get_session)):
    """로그인"""
    return await AuthService(session).login(request)


@router.get("/profile", response_model=ProfileResponse)
async def get_profile(user: User = Depends(get_current_user)):
    return ProfileResponse(user=UserOut.model_validate(user))


@router.put("/change-password", response_model=MessageResponse)
async def change_password(
    request: ChangePasswordRequest,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    await AuthService(session).change_password(user, request)
    return MessageResponse(message="비밀번호가 성공적으로 변경되었습니다")


@router.put("/connect-wallet", response_model=WalletResponse)
async def connect_wallet(
    request: ConnectWalletRequest,
    user: User = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    """지갑 주소 연결"""
    user = await AuthService(session).connect_wallet(user, request)
    return WalletResponse(
        message="지갑이 성공적으로 연결되었습니다",
        wallet_address=user.wallet_address,
    )
