"""Pydantic schemas for user administration."""

from pydantic import BaseModel, Field, field_validator

from helpdesk.models.user import Role
from helpdesk.services.auth import validate_email, validate_name, validate_password


class AdminUserCreate(BaseModel):
    name: str
    email: str
    password: str
    phone: str | None = Field(None, max_length=30)
    role: Role = Role.CUSTOMER

    @field_validator("name")
    @classmethod
    def check_name(cls, v: str) -> str:
        return validate_name(v)

    @field_validator("email")
    @classmethod
    def check_email(cls, v: str) -> str:
        return validate_email(v)

    @field_validator("password")
    @classmethod
    def check_password(cls, v: str) -> str:
        return validate_password(v)


class AdminUserUpdate(BaseModel):
    """Partial update; omitted fields are left unchanged."""

    name: str | None = None
    email: str | None = None
    phone: str | None = Field(None, max_length=30)
    role: Role | None = None
    is_verified: bool | None = None

    @field_validator("name")
    @classmethod
    def check_name(cls, v: str | None) -> str | None:
        return validate_name(v) if v is not None else None

    @field_validator("email")
    @classmethod
    def check_email(cls, v: str | None) -> str | None:
        return validate_email(v) if v is not None else None


class RoleUpdateRequest(BaseModel):
    role: Role
