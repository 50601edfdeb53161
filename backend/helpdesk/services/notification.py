"""In-app notifications."""

import json
import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from helpdesk.models.notification import Notification
from helpdesk.models.user import Role, User

logger = logging.getLogger(__name__)

LIST_LIMIT = 50


class NotificationNotFoundError(Exception):
    pass


class NotificationAccessError(Exception):
    pass


class NotificationService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def create(
        self,
        user_id: int,
        type: str,
        content: str,
        data: dict[str, Any] | None = None,
    ) -> Notification:
        notification = Notification(
            user_id=user_id,
            type=type,
            content=content,
            data=json.dumps(data) if data is not None else None,
        )
        self.db.add(notification)
        await self.db.flush()
        return notification

    async def notify_admins(
        self,
        type: str,
        content: str,
        data: dict[str, Any] | None = None,
    ) -> list[User]:
        """Send the same notification to every admin. Returns the admins."""
        result = await self.db.execute(select(User).where(User.role == Role.ADMIN.value))
        admins = list(result.scalars().all())
        for admin in admins:
            await self.create(admin.id, type, content, data)
        return admins

    async def list_for_user(self, user_id: int, limit: int = LIST_LIMIT) -> list[Notification]:
        result = await self.db.execute(
            select(Notification)
            .where(Notification.user_id == user_id)
            .order_by(Notification.created_at.desc(), Notification.id.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def mark_read(self, notification_id: int, user_id: int) -> Notification:
        notification = await self.db.get(Notification, notification_id)
        if notification is None:
            raise NotificationNotFoundError("Notification not found")
        if notification.user_id != user_id:
            raise NotificationAccessError("Notification belongs to another user")
        notification.is_read = True
        await self.db.flush()
        return notification
