"""User account model."""

import enum
from datetime import datetime

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column

from helpdesk.models.base import BaseModel, UTCDateTime


class Role(str, enum.Enum):
    CUSTOMER = "customer"
    STAFF = "staff"
    ADMIN = "admin"


STAFF_ROLES = (Role.STAFF.value, Role.ADMIN.value)


class User(BaseModel):
    """A customer, support staff member or administrator.

    ``verify_code`` holds the current one-time code for either email
    verification or password reset; only one can be outstanding at a time.
    """

    __tablename__ = "users"

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    phone: Mapped[str | None] = mapped_column(String(30), nullable=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[str] = mapped_column(
        String(20), nullable=False, default=Role.CUSTOMER.value, index=True
    )

    is_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    verify_code: Mapped[str | None] = mapped_column(String(12), nullable=True)
    verify_code_expires_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    two_factor_enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    two_factor_secret: Mapped[str | None] = mapped_column(String(64), nullable=True)

    last_login_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN.value

    def __repr__(self) -> str:
        return f"<User {self.email} ({self.role})>"
