"""User administration."""

import logging
from dataclasses import dataclass

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from helpdesk.models.user import Role, User
from helpdesk.services.auth import EmailAlreadyExistsError, hash_password, normalize_email
from helpdesk.services.ticket import normalize_paging

logger = logging.getLogger(__name__)


class UserNotFoundError(Exception):
    pass


class UserOperationError(Exception):
    pass


@dataclass
class UserPage:
    users: list[User]
    total: int
    page: int
    limit: int


class UserService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, user_id: int) -> User:
        user = await self.db.get(User, user_id)
        if user is None:
            raise UserNotFoundError(f"User {user_id} not found")
        return user

    async def _ensure_email_free(self, email: str, exclude_id: int | None = None) -> None:
        query = select(User.id).where(User.email == email)
        if exclude_id is not None:
            query = query.where(User.id != exclude_id)
        if (await self.db.execute(query)).first() is not None:
            raise EmailAlreadyExistsError("Email is already registered")

    async def list_users(
        self,
        role: str | None = None,
        keyword: str | None = None,
        page: int | None = None,
        limit: int | None = None,
    ) -> UserPage:
        page, limit = normalize_paging(page, limit)
        query = select(User)
        if role:
            query = query.where(User.role == role)
        if keyword:
            pattern = f"%{keyword.strip()}%"
            query = query.where(
                or_(User.name.ilike(pattern), User.email.ilike(pattern), User.phone.ilike(pattern))
            )

        total = (
            await self.db.execute(select(func.count()).select_from(query.subquery()))
        ).scalar() or 0
        result = await self.db.execute(
            query.order_by(User.created_at.desc(), User.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return UserPage(list(result.scalars().all()), total, page, limit)

    async def create_user(
        self,
        name: str,
        email: str,
        password: str,
        role: Role = Role.CUSTOMER,
        phone: str | None = None,
    ) -> User:
        """Create an account on behalf of someone; it starts out verified."""
        email = normalize_email(email)
        await self._ensure_email_free(email)
        user = User(
            name=name,
            email=email,
            phone=phone,
            password_hash=hash_password(password),
            role=Role(role).value,
            is_verified=True,
        )
        self.db.add(user)
        await self.db.flush()
        logger.info(f"Admin created user {user.id} with role {user.role}")
        return user

    async def update_user(
        self,
        user_id: int,
        name: str | None = None,
        email: str | None = None,
        phone: str | None = None,
        role: Role | None = None,
        is_verified: bool | None = None,
    ) -> User:
        user = await self.get(user_id)
        if name is not None:
            user.name = name
        if email is not None:
            email = normalize_email(email)
            await self._ensure_email_free(email, exclude_id=user.id)
            user.email = email
        if phone is not None:
            user.phone = phone
        if role is not None:
            user.role = Role(role).value
        if is_verified is not None:
            user.is_verified = is_verified
        await self.db.flush()
        return user

    async def change_role(self, user_id: int, role: Role, acting_user: User) -> User:
        if user_id == acting_user.id and Role(role) != Role.ADMIN:
            raise UserOperationError("You cannot remove your own admin role")
        user = await self.get(user_id)
        user.role = Role(role).value
        await self.db.flush()
        logger.info(f"User {user.id} role changed to {user.role} by user {acting_user.id}")
        return user

    async def delete_user(self, user_id: int, acting_user: User) -> None:
        if user_id == acting_user.id:
            raise UserOperationError("You cannot delete your own account")
        user = await self.get(user_id)
        await self.db.delete(user)
        await self.db.flush()
        logger.info(f"User {user_id} deleted by user {acting_user.id}")

    async def verified_admins(self) -> list[User]:
        result = await self.db.execute(
            select(User).where(User.role == Role.ADMIN.value, User.is_verified.is_(True))
        )
        return list(result.scalars().all())
