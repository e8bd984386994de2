"""인증 서비스"""
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.models.user import (
    AuthResponse,
    ChangePasswordRequest,
    ConnectWalletRequest,
    LoginRequest,
    RegisterRequest,
    UserOut,
    UserRole,
)
from src.services.tables import User
from src.utils.errors import ApiError
from src.utils.logger import get_logger
from src.utils.security import create_access_token, hash_password, verify_password

logger = get_logger(__name__)


class AuthService:
    """회원가입, 로그인, 비밀번호/지갑 관리"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _find_by_email(self, email: str) -> User | None:
        return await self.session.scalar(select(User).where(User.email == email.lower()))

    def _auth_response(self, message: str, user: User) -> AuthResponse:
        return AuthResponse(
            message=message,
            token=create_access_token(user.id, user.role),
            user=UserOut.model_validate(user),
        )

    async def register(self, request: RegisterRequest) -> AuthResponse:
        if await self._find_by_email(request.email):
            raise ApiError(400, "이미 등록된 이메일입니다")

        user = User(
            email=request.email.lower(),
            password=hash_password(request.password),
            name=request.name,
            role=UserRole.USER.value,
        )
        self.session.add(user)
        await self.session.commit()

        logger.info("User registered", user_id=user.id)
        return self._auth_response("회원가입이 완료되었습니다", user)

    async def login(self, request: LoginRequest) -> AuthResponse:
        user = await self._find_by_email(request.email)
        if user is None or not verify_password(request.password, user.password):
            raise ApiError(401, "이메일 또는 비밀번호가 일치하지 않습니다")
        return self._auth_response("로그인 성공", user)

    async def change_password(self, user: User, request: ChangePasswordRequest) -> None:
        if not verify_password(request.current_password, user.password):
            raise ApiError(401, "현재 비밀번호가 일치하지 않습니다")
        user.password = hash_password(request.new_password)
        await self.session.commit()

    async def connect_wallet(self, user: User, request: ConnectWalletRequest) -> User:
        """지갑 주소 연결 (None이면 연결 해제)"""
        wallet = request.wallet_address
        if wallet:
            owner = await self.session.scalar(
                select(User).where(User.wallet_address == wallet, User.id != user.id)
            )
            if owner is not None:
                raise ApiError(400, "이미 다른 계정에 연결된 지갑 주소입니다")

        user.wallet_address = wallet
        await self.session.commit()
        logger.info("Wallet connected", user_id=user.id, wallet_address=wallet)
        return user
