"""알림 서비스"""
from typing import Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.models.common import Pagination
from src.models.notification import NotificationList, NotificationOut, NotificationType
from src.services.queries import paginate
from src.services.tables import Notification, User
from src.utils.errors import ApiError
from src.utils.logger import get_logger

logger = get_logger(__name__)


class NotificationService:
    """사용자 알림 관리"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def create(
        self,
        user_id: str,
        title: str,
        message: str,
        type: NotificationType = NotificationType.SYSTEM,
        related_property_id: Optional[str] = None,
        related_transaction_id: Optional[str] = None,
        link: Optional[str] = None,
    ) -> Notification:
        """알림 추가 (커밋은 호출한 쪽의 트랜잭션에서)"""
        notification = Notification(
            user_id=user_id,
            title=title,
            message=message,
            type=type.value,
            related_property_id=related_property_id,
            related_transaction_id=related_transaction_id,
            link=link,
        )
        self.session.add(notification)
        return notification

    async def unread_count(self, user_id: str) -> int:
        return await self.session.scalar(
            select(func.count())
            .select_from(Notification)
            .where(Notification.user_id == user_id, Notification.is_read.is_(False))
        ) or 0

    async def list_for_user(
        self,
        user_id: str,
        page: int = 1,
        limit: int = 10,
        unread_only: bool = False,
    ) -> NotificationList:
        stmt = select(Notification).where(Notification.user_id == user_id)
        if unread_only:
            stmt = stmt.where(Notification.is_read.is_(False))
        stmt = stmt.order_by(Notification.created_at.desc())

        items, total = await paginate(self.session, stmt, page, limit)
        return NotificationList(
            notifications=[NotificationOut.model_validate(n) for n in items],
            pagination=Pagination.build(total, page, limit),
            unread_count=await self.unread_count(user_id),
        )

    async def _get_own(self, user_id: str, notification_id: str) -> Notification:
        notification = await self.session.scalar(
            select(Notification).where(
                Notification.id == notification_id,
                Notification.user_id == user_id,
            )
        )
        if notification is None:
            raise ApiError(404, "해당 알림을 찾을 수 없습니다")
        return notification

    async def mark_read(self, user_id: str, notification_id: str) -> Notification:
        notification = await self._get_own(user_id, notification_id)
        notification.is_read = True
        await self.session.commit()
        return notification

    async def mark_all_read(self, user_id: str) -> int:
        result = await self.session.execute(
            update(Notification)
            .where(Notification.user_id == user_id, Notification.is_read.is_(False))
            .values(is_read=True)
        )
        await self.session.commit()
        return result.rowcount

    async def delete(self, user_id: str, notification_id: str) -> None:
        notification = await self._get_own(user_id, notification_id)
        await self.session.delete(notification)
        await self.session.commit()

    async def delete_all(self, user_id: str) -> int:
        result = await self.session.execute(
            delete(Notification).where(Notification.user_id == user_id)
        )
        await self.session.commit()
        return result.rowcount

    async def broadcast(
        self,
        title: str,
        message: str,
        type: NotificationType = NotificationType.SYSTEM,
        user_ids: Optional[list[str]] = None,
        link: Optional[str] = None,
    ) -> int:
        """전체 또는 지정 사용자에게 시스템 알림 발송"""
        stmt = select(User.id)
        if user_ids:
            stmt = stmt.where(User.id.in_(user_ids))
        targets = (await self.session.execute(stmt)).scalars().all()

        for user_id in targets:
            self.create(user_id, title, message, type=type, link=link)
        await self.session.commit()

        logger.info("System notification sent", count=len(targets), title=title)
        return len(targets)
