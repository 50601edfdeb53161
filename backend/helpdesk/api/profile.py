"""Session and profile endpoints for the signed-in user."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status

from helpdesk.api.auth import clear_auth_cookies
from helpdesk.api.deps import (
    REFRESH_COOKIE,
    extract_access_credential,
    get_auth_service,
    get_current_user,
    get_token_authority,
)
from helpdesk.models.user import User
from helpdesk.schemas.auth import (
    ChangePasswordRequest,
    ProfileUpdateRequest,
    RefreshRequest,
    TwoFactorCodeRequest,
    TwoFactorSetupResponse,
    UserResponse,
)
from helpdesk.schemas.common import DataResponse, MessageResponse
from helpdesk.services.auth import (
    AuthService,
    EmailAlreadyExistsError,
    InvalidCredentialsError,
    TwoFactorError,
)
from helpdesk.services.token_authority import TokenAuthority

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/user", tags=["profile"])


@router.post("/logout", response_model=MessageResponse)
async def logout(
    request: Request,
    response: Response,
    data: RefreshRequest | None = None,
    current_user: User = Depends(get_current_user),
    authority: TokenAuthority = Depends(get_token_authority),
) -> MessageResponse:
    """Revoke the access credential and the refresh credential (cookie or body)."""
    access_token = extract_access_credential(request)
    if access_token:
        authority.revoke(access_token)
    refresh_token = request.cookies.get(REFRESH_COOKIE) or (data.refresh_token if data else None)
    if refresh_token:
        authority.revoke(refresh_token)

    clear_auth_cookies(response)
    logger.info(f"User {current_user.id} logged out")
    return MessageResponse(message="Logged out successfully")


@router.get("/profile", response_model=DataResponse[UserResponse])
async def get_profile(
    current_user: User = Depends(get_current_user),
) -> DataResponse[UserResponse]:
    return DataResponse(data=UserResponse.model_validate(current_user))


@router.put("/profile", response_model=DataResponse[UserResponse])
async def update_profile(
    data: ProfileUpdateRequest,
    current_user: User = Depends(get_current_user),
    auth_service: AuthService = Depends(get_auth_service),
) -> DataResponse[UserResponse]:
    """Update name, phone or email. A new email must be verified again."""
    try:
        user = await auth_service.update_profile(
            current_user, name=data.name, phone=data.phone, email=data.email
        )
    except EmailAlreadyExistsError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e
    return DataResponse(message="Profile updated", data=UserResponse.model_validate(user))


@router.post("/profile/change-password", response_model=MessageResponse)
async def change_password(
    data: ChangePasswordRequest,
    current_user: User = Depends(get_current_user),
    auth_service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    try:
        await auth_service.change_password(current_user, data.old_password, data.new_password)
    except InvalidCredentialsError as e:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(e)) from e
    return MessageResponse(message="Password changed successfully")


@router.post("/profile/2fa/setup", response_model=TwoFactorSetupResponse)
async def setup_two_factor(
    current_user: User = Depends(get_current_user),
    auth_service: AuthService = Depends(get_auth_service),
) -> TwoFactorSetupResponse:
    """Start two-factor enrolment; confirm with /profile/2fa/enable."""
    try:
        secret, uri = await auth_service.setup_two_factor(current_user)
    except TwoFactorError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    return TwoFactorSetupResponse(secret=secret, otpauth_uri=uri)


@router.post("/profile/2fa/enable", response_model=MessageResponse)
async def enable_two_factor(
    data: TwoFactorCodeRequest,
    current_user: User = Depends(get_current_user),
    auth_service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    try:
        await auth_service.enable_two_factor(current_user, data.code)
    except TwoFactorError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    return MessageResponse(message="Two-factor authentication enabled")


@router.post("/profile/2fa/disable", response_model=MessageResponse)
async def disable_two_factor(
    data: TwoFactorCodeRequest,
    current_user: User = Depends(get_current_user),
    auth_service: AuthService = Depends(get_auth_service),
) -> MessageResponse:
    try:
        await auth_service.disable_two_factor(current_user, data.code)
    except TwoFactorError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    return MessageResponse(message="Two-factor authentication disabled")
