"""User administration endpoints (/admin/users, admin only)."""

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from helpdesk.api.deps import require_admin
from helpdesk.core import get_db
from helpdesk.models.user import Role, User
from helpdesk.schemas.auth import UserResponse
from helpdesk.schemas.common import DataResponse, MessageResponse, PageResponse
from helpdesk.schemas.user import AdminUserCreate, AdminUserUpdate, RoleUpdateRequest
from helpdesk.services.auth import EmailAlreadyExistsError
from helpdesk.services.user import UserNotFoundError, UserOperationError, UserService

router = APIRouter(prefix="/admin/users", tags=["admin-users"])


def get_user_service(db: AsyncSession = Depends(get_db)) -> UserService:
    return UserService(db)


@router.get("", response_model=PageResponse[UserResponse])
async def list_users(
    role: Role | None = Query(None),
    keyword: str | None = Query(None, max_length=100),
    page: int = Query(1),
    limit: int = Query(10),
    _: User = Depends(require_admin),
    service: UserService = Depends(get_user_service),
) -> PageResponse[UserResponse]:
    result = await service.list_users(
        role=role.value if role else None, keyword=keyword, page=page, limit=limit
    )
    return PageResponse[UserResponse].build(
        [UserResponse.model_validate(u) for u in result.users],
        total=result.total,
        page=result.page,
        limit=result.limit,
    )


@router.post(
    "",
    response_model=DataResponse[UserResponse],
    status_code=status.HTTP_201_CREATED,
)
async def create_user(
    data: AdminUserCreate,
    _: User = Depends(require_admin),
    service: UserService = Depends(get_user_service),
) -> DataResponse[UserResponse]:
    try:
        user = await service.create_user(
            name=data.name,
            email=data.email,
            password=data.password,
            role=data.role,
            phone=data.phone,
        )
    except EmailAlreadyExistsError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e
    return DataResponse(message="User created", data=UserResponse.model_validate(user))


@router.put("/{user_id}", response_model=DataResponse[UserResponse])
async def update_user(
    user_id: int,
    data: AdminUserUpdate,
    _: User = Depends(require_admin),
    service: UserService = Depends(get_user_service),
) -> DataResponse[UserResponse]:
    try:
        user = await service.update_user(user_id, **data.model_dump(exclude_unset=True))
    except UserNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    except EmailAlreadyExistsError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e
    return DataResponse(message="User updated", data=UserResponse.model_validate(user))


@router.put("/{user_id}/role", response_model=DataResponse[UserResponse])
async def change_user_role(
    user_id: int,
    data: RoleUpdateRequest,
    current_user: User = Depends(require_admin),
    service: UserService = Depends(get_user_service),
) -> DataResponse[UserResponse]:
    try:
        user = await service.change_role(user_id, data.role, acting_user=current_user)
    except UserNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    except UserOperationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    return DataResponse(message="Role updated", data=UserResponse.model_validate(user))


@router.delete("/{user_id}", response_model=MessageResponse)
async def delete_user(
    user_id: int,
    current_user: User = Depends(require_admin),
    service: UserService = Depends(get_user_service),
) -> MessageResponse:
    try:
        await service.delete_user(user_id, acting_user=current_user)
    except UserNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    except UserOperationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    return MessageResponse(message="User deleted")
