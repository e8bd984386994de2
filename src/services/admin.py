"""관리자 서비스"""
from typing import Optional

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.models.admin import (
    ChainOperationList,
    ChainOperationOut,
    TransactionList,
    UserDetail,
    UserStats,
)
from src.models.common import Pagination
from src.models.notification import NotificationType
from src.models.property import BlockchainStatus, PropertyOut, PropertyStatusUpdate
from src.models.share import TransactionOut
from src.models.user import UserList, UserOut, UserStatusUpdate
from src.services.notifications import NotificationService
from src.services.properties import PROPERTY_NOT_FOUND
from src.services.queries import apply_sort, get_or_404, paginate
from src.services.tables import ChainOperation, Property, Transaction, User
from src.utils.errors import ApiError
from src.utils.logger import get_logger

logger = get_logger(__name__)

USER_NOT_FOUND = "해당 사용자를 찾을 수 없습니다"


def _sort(sort: str, order: str) -> str:
    return f"{'' if order == 'asc' else '-'}{sort}"


class AdminService:
    """사용자/거래/부동산 상태 관리"""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.notifications = NotificationService(session)

    async def list_users(
        self,
        page: int = 1,
        limit: int = 10,
        sort: str = "createdAt",
        order: str = "desc",
    ) -> UserList:
        stmt = apply_sort(select(User), User, _sort(sort, order), "-createdAt")
        users, total = await paginate(self.session, stmt, page, limit)
        return UserList(
            users=[UserOut.model_validate(u) for u in users],
            pagination=Pagination.build(total, page, limit),
        )

    async def get_user(self, user_id: str) -> UserDetail:
        user = await get_or_404(self.session, User, user_id, USER_NOT_FOUND)
        properties = (
            await self.session.execute(
                select(Property).where(Property.created_by == user_id).order_by(Property.created_at.desc())
            )
        ).scalars().all()

        transactions = []
        if user.wallet_address:
            transactions = (
                await self.session.execute(
                    select(Transaction)
                    .where(
                        or_(
                            Transaction.buyer == user.wallet_address,
                            Transaction.seller == user.wallet_address,
                        )
                    )
                    .order_by(Transaction.created_at.desc())
                )
            ).scalars().all()

        return UserDetail(
            user=UserOut.model_validate(user),
            stats=UserStats(
                properties_count=len(properties),
                tokenized_properties_count=sum(1 for p in properties if p.is_tokenized),
                transactions_count=len(transactions),
            ),
            properties=[PropertyOut.model_validate(p) for p in properties],
            transactions=[TransactionOut.model_validate(t) for t in transactions],
        )

    async def update_user_status(self, user_id: str, request: UserStatusUpdate) -> User:
        user = await get_or_404(self.session, User, user_id, USER_NOT_FOUND)
        if request.is_verified is None and request.role is None:
            raise ApiError(400, "업데이트할 정보가 제공되지 않았습니다")

        if request.is_verified is not None and request.is_verified != user.is_verified:
            user.is_verified = request.is_verified
            self.notifications.create(
                user.id,
                "계정 인증 상태 변경",
                "귀하의 계정이 관리자에 의해 인증되었습니다."
                if request.is_verified
                else "귀하의 계정 인증 상태가 변경되었습니다. 자세한 사항은 관리자에게 문의하세요.",
            )
        if request.role is not None and request.role.value != user.role:
            user.role = request.role.value
            self.notifications.create(
                user.id,
                "계정 권한 변경",
                f"귀하의 계정 권한이 {request.role.value}로 변경되었습니다.",
            )

        await self.session.commit()
        logger.info("User status updated", user_id=user.id, role=user.role, is_verified=user.is_verified)
        return user

    async def list_transactions(
        self,
        page: int = 1,
        limit: int = 10,
        sort: str = "createdAt",
        order: str = "desc",
    ) -> TransactionList:
        stmt = apply_sort(select(Transaction), Transaction, _sort(sort, order), "-createdAt")
        transactions, total = await paginate(self.session, stmt, page, limit)
        return TransactionList(
            transactions=[TransactionOut.model_validate(t) for t in transactions],
            pagination=Pagination.build(total, page, limit),
        )

    async def update_property_status(self, property_id: str, request: PropertyStatusUpdate) -> Property:
        property_ = await get_or_404(self.session, Property, property_id, PROPERTY_NOT_FOUND)
        property_.blockchain_status = request.status.value

        if request.status == BlockchainStatus.REGISTERED:
            title, message = "부동산 등록 승인", "귀하의 부동산이 관리자에 의해 승인되었습니다."
        else:
            title = "부동산 등록 반려"
            message = f"귀하의 부동산 등록이 반려되었습니다. 사유: {request.rejection_reason or '기준 미달'}"
        self.notifications.create(
            property_.created_by,
            title,
            message,
            type=NotificationType.PROPERTY,
            related_property_id=property_.id,
        )
        await self.session.commit()
        return property_

    async def list_chain_operations(
        self,
        page: int = 1,
        limit: int = 20,
        status: Optional[str] = None,
    ) -> ChainOperationList:
        stmt = select(ChainOperation)
        if status:
            stmt = stmt.where(ChainOperation.status == status)
        stmt = stmt.order_by(ChainOperation.created_at.desc())
        operations, total = await paginate(self.session, stmt, page, limit)
        return ChainOperationList(
            operations=[ChainOperationOut.model_validate(o) for o in operations],
            pagination=Pagination.build(total, page, limit),
        )
