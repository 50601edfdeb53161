# Helpdesk Pydantic Schemas
from helpdesk.schemas.auth import (
    AccessTokenResponse,
    ChangePasswordRequest,
    EmailRequest,
    LoginRequest,
    LoginResponse,
    ProfileUpdateRequest,
    RefreshRequest,
    RegisterRequest,
    ResetPasswordRequest,
    TwoFactorCodeRequest,
    TwoFactorLoginRequest,
    TwoFactorRequiredResponse,
    TwoFactorSetupResponse,
    UserResponse,
    VerifyCodeRequest,
)
from helpdesk.schemas.common import DataResponse, MessageResponse, PageResponse
from helpdesk.schemas.dashboard import AdminDashboardStats, StaffStat, UserDashboardStats
from helpdesk.schemas.knowledge_base import ArticleResponse
from helpdesk.schemas.notification import NotificationResponse
from helpdesk.schemas.ticket import (
    AttributeRequest,
    AttributeResponse,
    CommentResponse,
    TicketAssignRequest,
    TicketResponse,
    TicketStatusUpdate,
    UserRef,
)
from helpdesk.schemas.user import AdminUserCreate, AdminUserUpdate, RoleUpdateRequest

__all__ = [
    "AccessTokenResponse",
    "AdminDashboardStats",
    "AdminUserCreate",
    "AdminUserUpdate",
    "ArticleResponse",
    "AttributeRequest",
    "AttributeResponse",
    "ChangePasswordRequest",
    "CommentResponse",
    "DataResponse",
    "EmailRequest",
    "LoginRequest",
    "LoginResponse",
    "MessageResponse",
    "NotificationResponse",
    "PageResponse",
    "ProfileUpdateRequest",
    "RefreshRequest",
    "RegisterRequest",
    "ResetPasswordRequest",
    "RoleUpdateRequest",
    "StaffStat",
    "TicketAssignRequest",
    "TicketResponse",
    "TicketStatusUpdate",
    "TwoFactorCodeRequest",
    "TwoFactorLoginRequest",
    "TwoFactorRequiredResponse",
    "TwoFactorSetupResponse",
    "UserDashboardStats",
    "UserRef",
    "UserResponse",
    "VerifyCodeRequest",
]
