"""Aggregate ticket statistics for the user and admin dashboards."""

from collections import defaultdict
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from helpdesk.models.ticket import OPEN_STATUSES, Ticket, TicketStatus
from helpdesk.models.user import STAFF_ROLES, Role, User

TOP_STAFF_LIMIT = 5

DONE_STATUSES = (TicketStatus.RESOLVED.value, TicketStatus.CLOSED.value)


def _hours(delta_seconds: list[float]) -> float:
    if not delta_seconds:
        return 0.0
    return round(sum(delta_seconds) / len(delta_seconds) / 3600, 2)


def _month_start(now: datetime) -> datetime:
    return now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


class DashboardService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def user_stats(self, user: User) -> dict[str, int]:
        result = await self.db.execute(
            select(
                func.count(Ticket.id).label("total"),
                func.count(Ticket.id).filter(Ticket.status == TicketStatus.NEW.value).label("new"),
                func.count(Ticket.id)
                .filter(
                    Ticket.status.in_(
                        [TicketStatus.IN_PROGRESS.value, TicketStatus.AWAITING_REPLY.value]
                    )
                )
                .label("pending"),
                func.count(Ticket.id).filter(Ticket.status.in_(DONE_STATUSES)).label("resolved"),
            ).where(Ticket.user_id == user.id)
        )
        row = result.one()
        return {
            "total": row.total or 0,
            "new": row.new or 0,
            "pending": row.pending or 0,
            "resolved": row.resolved or 0,
        }

    async def admin_stats(self, user: User, now: datetime | None = None) -> dict[str, Any]:
        """Ticket statistics; staff only see tickets assigned to them."""
        now = now or datetime.now(UTC)
        month_start = _month_start(now)

        conditions = []
        if user.role == Role.STAFF.value:
            conditions.append(Ticket.assigned_to == user.id)

        counts = (
            await self.db.execute(
                select(
                    func.count(Ticket.id).label("total"),
                    func.count(Ticket.id)
                    .filter(Ticket.status.in_(OPEN_STATUSES))
                    .label("processing"),
                    func.count(Ticket.id)
                    .filter(Ticket.status.in_(DONE_STATUSES))
                    .label("done"),
                    func.count(Ticket.id)
                    .filter(Ticket.created_at >= month_start)
                    .label("this_month"),
                    func.count(Ticket.id)
                    .filter(Ticket.resolved_at >= month_start)
                    .label("resolved_this_month"),
                ).where(*conditions)
            )
        ).one()

        distribution = {status.value: 0 for status in TicketStatus}
        status_rows = await self.db.execute(
            select(Ticket.status, func.count(Ticket.id)).where(*conditions).group_by(Ticket.status)
        )
        for status, count in status_rows.all():
            distribution[status] = count

        resolved_rows = (
            await self.db.execute(
                select(Ticket.assigned_to, Ticket.created_at, Ticket.resolved_at).where(
                    Ticket.resolved_at.isnot(None), *conditions
                )
            )
        ).all()
        durations_by_staff: dict[int | None, list[float]] = defaultdict(list)
        all_durations: list[float] = []
        for assigned_to, created_at, resolved_at in resolved_rows:
            seconds = (resolved_at - created_at).total_seconds()
            all_durations.append(seconds)
            durations_by_staff[assigned_to].append(seconds)

        total = counts.total or 0
        return {
            "total_tickets": total,
            "processing_tickets": counts.processing or 0,
            "avg_processing_hours": _hours(all_durations),
            "status_distribution": distribution,
            "tickets_this_month": counts.this_month or 0,
            "tickets_resolved_this_month": counts.resolved_this_month or 0,
            "top_staff": await self._top_staff(user, durations_by_staff),
            "resolution_rate": round((counts.done or 0) * 100 / total, 1) if total else 0.0,
        }

    async def _top_staff(
        self,
        user: User,
        durations_by_staff: dict[int | None, list[float]],
    ) -> list[dict[str, Any]]:
        query = (
            select(
                User.id,
                User.name,
                User.email,
                func.count(Ticket.id).label("assigned"),
                func.count(Ticket.id).filter(Ticket.status.in_(DONE_STATUSES)).label("resolved"),
            )
            .outerjoin(Ticket, Ticket.assigned_to == User.id)
            .where(User.role.in_(STAFF_ROLES))
            .group_by(User.id, User.name, User.email)
        )
        if user.role == Role.STAFF.value:
            query = query.where(User.id == user.id)

        rows = (await self.db.execute(query)).all()
        staff = [
            {
                "id": row.id,
                "name": row.name,
                "email": row.email,
                "assigned_tickets": row.assigned or 0,
                "resolved_tickets": row.resolved or 0,
                "avg_processing_hours": _hours(durations_by_staff.get(row.id, [])),
            }
            for row in rows
        ]
        staff.sort(key=lambda s: (-s["resolved_tickets"], -s["assigned_tickets"], s["id"]))
        return staff[:TOP_STAFF_LIMIT]
