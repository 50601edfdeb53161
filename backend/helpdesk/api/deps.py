"""Shared API dependencies: the credential guard and service factories."""

import logging

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from helpdesk.core import get_db
from helpdesk.core.logging import set_user_id
from helpdesk.models.user import User
from helpdesk.services.auth import AuthService
from helpdesk.services.email import MailOutbox
from helpdesk.services.token_authority import (
    TokenAuthority,
    TokenClaims,
    TokenError,
    TokenExpiredError,
    TokenKind,
    TokenRevokedError,
)

logger = logging.getLogger(__name__)

ACCESS_COOKIE = "access_token"
REFRESH_COOKIE = "refresh_token"


def get_token_authority(request: Request) -> TokenAuthority:
    """The application's TokenAuthority (created in create_app)."""
    return request.app.state.token_authority


def get_mail_outbox(request: Request) -> MailOutbox:
    return request.app.state.mail_outbox


def get_auth_service(db: AsyncSession = Depends(get_db)) -> AuthService:
    """Dependency to get auth service."""
    return AuthService(db)


def extract_access_credential(request: Request) -> str | None:
    """Bearer header first, then the access_token cookie."""
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        token = auth_header[7:].strip()
        if token:
            return token
    return request.cookies.get(ACCESS_COOKIE) or None


def unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def token_error_detail(error: TokenError) -> str:
    if isinstance(error, TokenExpiredError):
        return "Token has expired"
    if isinstance(error, TokenRevokedError):
        return "Token has been revoked"
    return "Invalid token"


def verify_credential(authority: TokenAuthority, raw: str | None, kind: TokenKind) -> TokenClaims:
    """Verify a raw credential of the expected kind or raise 401."""
    if not raw:
        raise unauthorized("Not authenticated")
    try:
        claims = authority.verify(raw)
    except TokenError as e:
        raise unauthorized(token_error_detail(e)) from e
    if claims.kind != kind:
        raise unauthorized("Invalid token type")
    return claims


async def get_current_user(
    request: Request,
    db: AsyncSession = Depends(get_db),
    authority: TokenAuthority = Depends(get_token_authority),
) -> User:
    """Dependency to get the authenticated user from the access credential.

    The user is reloaded from the database so role changes and deletions
    take effect immediately.
    """
    claims = verify_credential(authority, extract_access_credential(request), TokenKind.ACCESS)
    user = await db.get(User, claims.subject_id)
    if user is None:
        raise unauthorized("User not found")
    set_user_id(user.id)
    return user


async def require_staff(user: User = Depends(get_current_user)) -> User:
    """Staff or admin."""
    if not user.is_staff:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Staff or admin role required",
        )
    return user


async def require_admin(user: User = Depends(get_current_user)) -> User:
    if not user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin role required",
        )
    return user
