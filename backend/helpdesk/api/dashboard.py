"""Dashboard statistics endpoints."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from helpdesk.api.deps import get_current_user, require_staff
from helpdesk.core import get_db
from helpdesk.models.user import User
from helpdesk.schemas.dashboard import AdminDashboardStats, UserDashboardStats
from helpdesk.services.dashboard import DashboardService

router = APIRouter(tags=["dashboard"])


def get_dashboard_service(db: AsyncSession = Depends(get_db)) -> DashboardService:
    return DashboardService(db)


@router.get("/user/dashboard/stats", response_model=UserDashboardStats)
async def user_dashboard_stats(
    current_user: User = Depends(get_current_user),
    service: DashboardService = Depends(get_dashboard_service),
) -> UserDashboardStats:
    """Counts of the caller's own tickets by stage."""
    return UserDashboardStats(**await service.user_stats(current_user))


@router.get("/admin/dashboard/stats", response_model=AdminDashboardStats)
async def admin_dashboard_stats(
    current_user: User = Depends(require_staff),
    service: DashboardService = Depends(get_dashboard_service),
) -> AdminDashboardStats:
    """Helpdesk-wide statistics for admins, assigned-ticket statistics for staff."""
    return AdminDashboardStats(**await service.admin_stats(current_user))
