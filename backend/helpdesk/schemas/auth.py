"""Pydantic schemas for registration, login and profile endpoints."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator

from helpdesk.models.user import Role
from helpdesk.services.auth import validate_email, validate_name, validate_password


class UserResponse(BaseModel):
    """Public view of an account."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    email: str
    phone: str | None
    role: Role
    is_verified: bool
    two_factor_enabled: bool
    created_at: datetime


class RegisterRequest(BaseModel):
    name: str = Field(..., description="Full name (6-20 characters)")
    email: str
    phone: str | None = Field(None, max_length=30)
    password: str = Field(
        ...,
        description="8-24 characters with upper and lower case letters, a digit and a symbol",
    )

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


class VerifyCodeRequest(BaseModel):
    """Email plus a six-digit one-time code."""

    email: str = Field(..., min_length=3)
    code: str = Field(..., min_length=6, max_length=6, pattern=r"^\d{6}$")


class EmailRequest(BaseModel):
    email: str = Field(..., min_length=3)


class LoginRequest(BaseModel):
    email: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class TwoFactorLoginRequest(BaseModel):
    user_id: int
    code: str = Field(..., min_length=6, max_length=6)


class RefreshRequest(BaseModel):
    """Refresh credential, when not sent as the refresh_token cookie."""

    refresh_token: str | None = None


class ResetPasswordRequest(BaseModel):
    email: str = Field(..., min_length=3)
    code: str = Field(..., min_length=6, max_length=6, pattern=r"^\d{6}$")
    new_password: str

    @field_validator("new_password")
    @classmethod
    def check_password(cls, v: str) -> str:
        return validate_password(v)


class LoginResponse(BaseModel):
    """Successful login. Credentials are also set as HttpOnly cookies."""

    success: bool = True
    message: str = "Login successful"
    user: UserResponse
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int = Field(description="Access credential lifetime in seconds")


class TwoFactorRequiredResponse(BaseModel):
    """Password accepted, a TOTP code is still needed (POST /login/2fa)."""

    success: bool = True
    require_2fa: bool = True
    user_id: int
    message: str = "Two-factor authentication code required"


class AccessTokenResponse(BaseModel):
    success: bool = True
    access_token: str
    token_type: str = "bearer"
    expires_in: int


class ProfileUpdateRequest(BaseModel):
    name: str | None = None
    phone: str | None = Field(None, max_length=30)
    email: str | None = None

    @field_validator("name")
    @classmethod
    def check_name(cls, v: str | None) -> str | None:
        return validate_name(v) if v is not None else None

    @field_validator("email")
    @classmethod
    def check_email(cls, v: str | None) -> str | None:
        return validate_email(v) if v is not None else None


class ChangePasswordRequest(BaseModel):
    old_password: str = Field(..., min_length=1)
    new_password: str

    @field_validator("new_password")
    @classmethod
    def check_password(cls, v: str) -> str:
        return validate_password(v)


class TwoFactorSetupResponse(BaseModel):
    success: bool = True
    secret: str = Field(description="Base32 shared secret for manual entry")
    otpauth_uri: str = Field(description="Provisioning URI to render as a QR code")


class TwoFactorCodeRequest(BaseModel):
    code: str = Field(..., min_length=6, max_length=6)
