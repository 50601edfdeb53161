"""Public authentication endpoints: registration, login, refresh, password reset."""

import logging
import time
from collections import defaultdict

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status

from helpdesk.api.deps import (
    ACCESS_COOKIE,
    REFRESH_COOKIE,
    get_auth_service,
    get_mail_outbox,
    get_token_authority,
    verify_credential,
)
from helpdesk.core import settings
from helpdesk.models.user import User
from helpdesk.schemas.auth import (
    AccessTokenResponse,
    EmailRequest,
    LoginRequest,
    LoginResponse,
    RefreshRequest,
    RegisterRequest,
    ResetPasswordRequest,
    TwoFactorLoginRequest,
    TwoFactorRequiredResponse,
    UserResponse,
    VerifyCodeRequest,
)
from helpdesk.schemas.common import DataResponse, MessageResponse
from helpdesk.services.auth import (
    AuthError,
    AuthService,
    EmailAlreadyExistsError,
    InvalidCodeError,
    InvalidCredentialsError,
    TwoFactorError,
    UserNotFoundError,
    normalize_email,
)
from helpdesk.services.email import MailOutbox, password_reset_email, verification_email
from helpdesk.services.token_authority import TokenAuthority, TokenIssueError, TokenKind

logger = logging.getLogger(__name__)

# Attempt timestamps for login, 2FA and one-time-code endpoints, keyed by
# client IP (and by account for the code endpoints)
_login_attempts: dict[str, list[float]] = defaultdict(list)

# user_id -> deadline for completing /login/2fa after a correct password
_pending_two_factor: dict[int, float] = {}
TWO_FACTOR_CHALLENGE_SECONDS = 300


def _client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def _check_login_rate_limit(key: str) -> None:
    """Check if a client IP or account has exceeded the attempt rate limit."""
    now = time.monotonic()
    window = settings.login_rate_limit_window_seconds
    _login_attempts[key] = [t for t in _login_attempts[key] if now - t < window]
    if len(_login_attempts[key]) >= settings.login_rate_limit_attempts:
        logger.warning(f"Login rate limit exceeded for {key}")
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many attempts. Please try again later.",
        )


def _record_login_attempt(key: str) -> None:
    _login_attempts[key].append(time.monotonic())


def _check_code_rate_limit(request: Request, email: str) -> list[str]:
    """Rate limit one-time-code guesses per client IP and per account.

    Returns the limiter keys to record a failed attempt against.
    """
    keys = [_client_ip(request), f"code:{normalize_email(email)}"]
    for key in keys:
        _check_login_rate_limit(key)
    return keys


def _record_code_attempt(keys: list[str]) -> None:
    for key in keys:
        _record_login_attempt(key)


def _open_two_factor_challenge(user_id: int) -> None:
    now = time.monotonic()
    for pending_id, deadline in list(_pending_two_factor.items()):
        if deadline <= now:
            del _pending_two_factor[pending_id]
    _pending_two_factor[user_id] = now + TWO_FACTOR_CHALLENGE_SECONDS


def _has_two_factor_challenge(user_id: int) -> bool:
    deadline = _pending_two_factor.get(user_id)
    return deadline is not None and time.monotonic() < deadline


def set_access_cookie(response: Response, token: str, authority: TokenAuthority) -> None:
    response.set_cookie(
        ACCESS_COOKIE,
        token,
        max_age=int(authority.access_ttl.total_seconds()),
        httponly=True,
        secure=settings.cookie_secure,
        samesite="lax",
        path="/",
    )


def set_refresh_cookie(response: Response, token: str, authority: TokenAuthority) -> None:
    response.set_cookie(
        REFRESH_COOKIE,
        token,
        max_age=int(authority.refresh_ttl.total_seconds()),
        httponly=True,
        secure=settings.cookie_secure,
        samesite="lax",
        path="/",
    )


def clear_auth_cookies(response: Response) -> None:
    for name in (ACCESS_COOKIE, REFRESH_COOKIE):
        response.delete_cookie(name, path="/", httponly=True, samesite="lax")


def _issue_failed(e: TokenIssueError) -> HTTPException:
    logger.error(f"Could not issue credentials: {e}")
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="Could not issue credentials",
    )


async def _complete_login(
    user: User,
    response: Response,
    auth_service: AuthService,
    authority: TokenAuthority,
) -> LoginResponse:
    try:
        access_token = authority.issue_access(user.id, user.role)
        refresh_token = authority.issue_refresh(user.id, user.role)
    except TokenIssueError as e:
        raise _issue_failed(e) from e

    await auth_service.record_login(user)
    set_access_cookie(response, access_token, authority)
    set_refresh_cookie(response, refresh_token, authority)
    logger.info(f"User {user.id} logged in")
    return LoginResponse(
        user=UserResponse.model_validate(user),
        access_token=access_token,
        refresh_token=refresh_token,
        expires_in=int(authority.access_ttl.total_seconds()),
    )


router = APIRouter(tags=["auth"])


@router.post(
    "/register",
    response_model=DataResponse[UserResponse],
    status_code=status.HTTP_201_CREATED,
)
async def register(
    data: RegisterRequest,
    auth_service: AuthService = Depends(get_auth_service),
    outbox: MailOutbox = Depends(get_mail_outbox),
) -> DataResponse[UserResponse]:
    """Create a customer account and email a verification code."""
    try:
        user, code = await auth_service.register(
            name=data.name,
            email=data.email,
            password=data.password,
            phone=data.phone,
        )
    except EmailAlreadyExistsError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e

    outbox.enqueue(
        verification_email(user.email, user.name, code, settings.verification_code_ttl_minutes)
    )
    return DataResponse(
        message="Registration successful. Check your email for the verification code.",
        data=UserResponse.model_validate(user),
    )


@router.post("/verify-email", response_model=MessageResponse)
async def verify_email(
    data: VerifyCodeRequest,
    request: Request,
    auth_service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    limiter_keys = _check_code_rate_limit(request, data.email)
    try:
        await auth_service.verify_email(data.email, data.code)
    except UserNotFoundError as e:
        _record_code_attempt(limiter_keys)
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    except InvalidCodeError as e:
        _record_code_attempt(limiter_keys)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    return MessageResponse(message="Email verified")


@router.post("/resend-verification-email", response_model=MessageResponse)
async def resend_verification_email(
    data: EmailRequest,
    auth_service: AuthService = Depends(get_auth_service),
    outbox: MailOutbox = Depends(get_mail_outbox),
) -> MessageResponse:
    try:
        user, code = await auth_service.new_verification_code(data.email)
    except UserNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    except AuthError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e

    outbox.enqueue(
        verification_email(user.email, user.name, code, settings.verification_code_ttl_minutes)
    )
    return MessageResponse(message="Verification code sent")


@router.post("/login", response_model=LoginResponse | TwoFactorRequiredResponse)
async def login(
    data: LoginRequest,
    request: Request,
    response: Response,
    auth_service: AuthService = Depends(get_auth_service),
    authority: TokenAuthority = Depends(get_token_authority),
) -> LoginResponse | TwoFactorRequiredResponse:
    """Authenticate with email and password.

    Sets access_token and refresh_token cookies. Accounts with two-factor
    authentication get a challenge instead and must call /login/2fa.
    Rate limited per client IP.
    """
    client_ip = _client_ip(request)
    _check_login_rate_limit(client_ip)

    try:
        user = await auth_service.authenticate(data.email, data.password)
    except InvalidCredentialsError as e:
        _record_login_attempt(client_ip)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        ) from e

    if user.two_factor_enabled:
        _open_two_factor_challenge(user.id)
        return TwoFactorRequiredResponse(user_id=user.id)
    return await _complete_login(user, response, auth_service, authority)


@router.post("/login/2fa", response_model=LoginResponse)
async def login_two_factor(
    data: TwoFactorLoginRequest,
    request: Request,
    response: Response,
    auth_service: AuthService = Depends(get_auth_service),
    authority: TokenAuthority = Depends(get_token_authority),
) -> LoginResponse:
    """Second login step for accounts with two-factor authentication.

    Only accepted within a few minutes of a correct password for the same
    account on /login.
    """
    client_ip = _client_ip(request)
    _check_login_rate_limit(client_ip)

    if not _has_two_factor_challenge(data.user_id):
        _record_login_attempt(client_ip)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Sign in with your password first",
        )
    try:
        user = await auth_service.authenticate_two_factor(data.user_id, data.code)
    except TwoFactorError as e:
        _record_login_attempt(client_ip)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(e)) from e

    _pending_two_factor.pop(user.id, None)
    return await _complete_login(user, response, auth_service, authority)


@router.post("/refresh-token", response_model=AccessTokenResponse)
async def refresh_token(
    request: Request,
    response: Response,
    data: RefreshRequest | None = None,
    auth_service: AuthService = Depends(get_auth_service),
    authority: TokenAuthority = Depends(get_token_authority),
) -> AccessTokenResponse:
    """Exchange a refresh credential (cookie or body) for a new access credential."""
    raw = request.cookies.get(REFRESH_COOKIE) or (data.refresh_token if data else None)
    claims = verify_credential(authority, raw, TokenKind.REFRESH)

    user = await auth_service.get_user_by_id(claims.subject_id)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        access_token = authority.issue_access(user.id, user.role)
    except TokenIssueError as e:
        raise _issue_failed(e) from e

    set_access_cookie(response, access_token, authority)
    return AccessTokenResponse(
        access_token=access_token,
        expires_in=int(authority.access_ttl.total_seconds()),
    )


@router.post("/forgot-password", response_model=MessageResponse)
async def forgot_password(
    data: EmailRequest,
    request: Request,
    auth_service: AuthService = Depends(get_auth_service),
    outbox: MailOutbox = Depends(get_mail_outbox),
) -> MessageResponse:
    """Email a password reset code."""
    client_ip = _client_ip(request)
    _check_login_rate_limit(client_ip)
    _record_login_attempt(client_ip)

    try:
        user, code = await auth_service.start_password_reset(data.email)
    except UserNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e

    outbox.enqueue(
        password_reset_email(user.email, user.name, code, settings.verification_code_ttl_minutes)
    )
    return MessageResponse(message="Password reset code sent")


@router.post("/verify-reset-code", response_model=MessageResponse)
async def verify_reset_code(
    data: VerifyCodeRequest,
    request: Request,
    auth_service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    limiter_keys = _check_code_rate_limit(request, data.email)
    try:
        await auth_service.check_reset_code(data.email, data.code)
    except InvalidCodeError as e:
        _record_code_attempt(limiter_keys)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    return MessageResponse(message="Code is valid")


@router.post("/reset-password", response_model=MessageResponse)
async def reset_password(
    data: ResetPasswordRequest,
    request: Request,
    auth_service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    limiter_keys = _check_code_rate_limit(request, data.email)
    try:
        await auth_service.reset_password(data.email, data.code, data.new_password)
    except InvalidCodeError as e:
        _record_code_attempt(limiter_keys)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    return MessageResponse(message="Password has been reset")
