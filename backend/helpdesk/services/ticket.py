"""Ticket lifecycle: creation, visibility, comments, assignment and status."""

import logging
from dataclasses import dataclass
from datetime import UTC, date, datetime, time, timedelta

from sqlalchemy import Select, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlalchemy.orm.attributes import set_committed_value

from helpdesk.models.base import utcnow
from helpdesk.models.ticket import Ticket, TicketComment, TicketStatus
from helpdesk.models.ticket_attribute import TicketCategory, TicketPriority, TicketProductType
from helpdesk.models.user import STAFF_ROLES, Role, User
from helpdesk.services.email import MailOutbox, ticket_created_email
from helpdesk.services.notification import NotificationService
from helpdesk.services.uploads import delete_upload

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100


class TicketError(Exception):
    """Base ticket error."""

    pass


class TicketNotFoundError(TicketError):
    pass


class TicketPermissionError(TicketError):
    pass


class TicketStateError(TicketError):
    """Operation not allowed in the ticket's current status."""

    pass


class InvalidTicketDataError(TicketError):
    pass


@dataclass
class TicketFilters:
    status: str | None = None
    priority_id: int | None = None
    category_id: int | None = None
    product_type_id: int | None = None
    assigned_to: int | None = None
    search: str | None = None
    from_date: date | None = None
    to_date: date | None = None


@dataclass
class TicketPage:
    tickets: list[Ticket]
    total: int
    page: int
    limit: int
    unread_ticket_ids: set[int]

    @property
    def pages(self) -> int:
        return (self.total + self.limit - 1) // self.limit if self.total else 0


def normalize_paging(page: int | None, limit: int | None) -> tuple[int, int]:
    """Clamp paging input: page defaults to 1, limit outside 1..100 becomes 10."""
    page = page if page and page > 0 else 1
    if not limit or limit < 1 or limit > MAX_PAGE_SIZE:
        limit = DEFAULT_PAGE_SIZE
    return page, limit


def _day_start(d: date) -> datetime:
    return datetime.combine(d, time.min, tzinfo=UTC)


def _with_relations(query: Select) -> Select:
    # populate_existing so instances already in the session get their relations loaded too
    return query.execution_options(populate_existing=True).options(
        selectinload(Ticket.owner),
        selectinload(Ticket.assignee),
        selectinload(Ticket.category),
        selectinload(Ticket.priority),
        selectinload(Ticket.product_type),
    )


class TicketService:
    def __init__(self, db: AsyncSession, outbox: MailOutbox | None = None):
        self.db = db
        self.outbox = outbox
        self.notifications = NotificationService(db)

    # Visibility

    @staticmethod
    def _scope(query: Select, user: User) -> Select:
        """Customers see their own tickets, staff their assigned ones, admins all."""
        if user.role == Role.ADMIN.value:
            return query
        if user.role == Role.STAFF.value:
            return query.where(Ticket.assigned_to == user.id)
        return query.where(Ticket.user_id == user.id)

    @staticmethod
    def _apply_filters(query: Select, filters: TicketFilters) -> Select:
        if filters.status:
            query = query.where(Ticket.status == filters.status)
        if filters.priority_id is not None:
            query = query.where(Ticket.priority_id == filters.priority_id)
        if filters.category_id is not None:
            query = query.where(Ticket.category_id == filters.category_id)
        if filters.product_type_id is not None:
            query = query.where(Ticket.product_type_id == filters.product_type_id)
        if filters.assigned_to is not None:
            query = query.where(Ticket.assigned_to == filters.assigned_to)
        if filters.search:
            pattern = f"%{filters.search.strip()}%"
            query = query.where(
                or_(Ticket.title.ilike(pattern), Ticket.description.ilike(pattern))
            )
        if filters.from_date is not None:
            query = query.where(Ticket.created_at >= _day_start(filters.from_date))
        if filters.to_date is not None:
            # to_date is inclusive of the whole day
            query = query.where(
                Ticket.created_at < _day_start(filters.to_date + timedelta(days=1))
            )
        return query

    async def list_tickets(
        self,
        user: User,
        filters: TicketFilters,
        page: int | None = None,
        limit: int | None = None,
    ) -> TicketPage:
        page, limit = normalize_paging(page, limit)
        query = self._apply_filters(self._scope(select(Ticket), user), filters)

        total = (
            await self.db.execute(select(func.count()).select_from(query.subquery()))
        ).scalar() or 0

        result = await self.db.execute(
            _with_relations(query)
            .order_by(Ticket.created_at.desc(), Ticket.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        tickets = list(result.scalars().all())
        unread = await self._unread_ticket_ids(tickets)
        return TicketPage(tickets=tickets, total=total, page=page, limit=limit, unread_ticket_ids=unread)

    async def _unread_ticket_ids(self, tickets: list[Ticket]) -> set[int]:
        """Tickets with a reply from someone other than the owner since the owner last looked."""
        if not tickets:
            return set()
        result = await self.db.execute(
            select(TicketComment.ticket_id, func.max(TicketComment.created_at))
            .join(Ticket, Ticket.id == TicketComment.ticket_id)
            .where(
                TicketComment.ticket_id.in_([t.id for t in tickets]),
                or_(TicketComment.user_id.is_(None), TicketComment.user_id != Ticket.user_id),
            )
            .group_by(TicketComment.ticket_id)
        )
        latest_reply = {ticket_id: created_at for ticket_id, created_at in result.all()}
        unread = set()
        for ticket in tickets:
            replied_at = latest_reply.get(ticket.id)
            if replied_at is None:
                continue
            if ticket.last_viewed_comment_at is None or replied_at > ticket.last_viewed_comment_at:
                unread.add(ticket.id)
        return unread

    async def get_ticket(self, ticket_id: int) -> Ticket:
        result = await self.db.execute(
            _with_relations(select(Ticket).where(Ticket.id == ticket_id))
        )
        ticket = result.scalar_one_or_none()
        if ticket is None:
            raise TicketNotFoundError(f"Ticket {ticket_id} not found")
        return ticket

    async def get_visible_ticket(self, user: User, ticket_id: int) -> Ticket:
        """Fetch a ticket the user may see; invisible tickets look missing."""
        ticket = await self.get_ticket(ticket_id)
        if user.role == Role.ADMIN.value:
            return ticket
        if user.role == Role.STAFF.value and ticket.assigned_to == user.id:
            return ticket
        if user.role == Role.CUSTOMER.value and ticket.user_id == user.id:
            return ticket
        raise TicketNotFoundError(f"Ticket {ticket_id} not found")

    async def mark_viewed(self, user: User, ticket: Ticket) -> None:
        """Record that the owner has seen all replies.

        Does not touch updated_at, which tracks activity for reminders.
        """
        if ticket.user_id != user.id:
            return
        now = utcnow()
        await self.db.execute(
            update(Ticket)
            .where(Ticket.id == ticket.id)
            .values(last_viewed_comment_at=now, updated_at=Ticket.updated_at)
            .execution_options(synchronize_session=False)
        )
        set_committed_value(ticket, "last_viewed_comment_at", now)

    # Customer operations

    async def _check_attributes(
        self,
        category_id: int | None,
        priority_id: int | None,
        product_type_id: int | None,
    ) -> None:
        for model, value, label in (
            (TicketCategory, category_id, "category"),
            (TicketPriority, priority_id, "priority"),
            (TicketProductType, product_type_id, "product type"),
        ):
            if value is not None and await self.db.get(model, value) is None:
                raise InvalidTicketDataError(f"Unknown {label}: {value}")

    async def create_ticket(
        self,
        user: User,
        title: str,
        description: str,
        category_id: int | None = None,
        priority_id: int | None = None,
        product_type_id: int | None = None,
        attachment_path: str | None = None,
    ) -> Ticket:
        title = title.strip()
        if not title:
            raise InvalidTicketDataError("Title is required")
        await self._check_attributes(category_id, priority_id, product_type_id)

        ticket = Ticket(
            user_id=user.id,
            title=title,
            description=description,
            status=TicketStatus.NEW.value,
            category_id=category_id,
            priority_id=priority_id,
            product_type_id=product_type_id,
            attachment_path=attachment_path,
        )
        self.db.add(ticket)
        await self.db.flush()

        admins = await self.notifications.notify_admins(
            "ticket_new",
            f"New ticket #{ticket.id}: {title}",
            {"ticket_id": ticket.id},
        )
        if self.outbox is not None:
            if user.is_verified:
                self.outbox.enqueue(ticket_created_email(user.email, ticket.id, title, False))
            for admin in admins:
                if admin.is_verified and admin.id != user.id:
                    self.outbox.enqueue(ticket_created_email(admin.email, ticket.id, title, True))

        logger.info(f"Ticket {ticket.id} created by user {user.id}")
        return await self.get_ticket(ticket.id)

    async def _own_editable_ticket(self, user: User, ticket_id: int) -> Ticket:
        ticket = await self.get_ticket(ticket_id)
        if ticket.user_id != user.id:
            raise TicketPermissionError("Only the ticket owner can change this ticket")
        if ticket.status != TicketStatus.NEW.value:
            raise TicketStateError("Only tickets with status 'new' can be changed")
        return ticket

    async def update_own_ticket(
        self,
        user: User,
        ticket_id: int,
        title: str | None = None,
        description: str | None = None,
        category_id: int | None = None,
        priority_id: int | None = None,
        product_type_id: int | None = None,
        attachment_path: str | None = None,
    ) -> Ticket:
        ticket = await self._own_editable_ticket(user, ticket_id)
        await self._check_attributes(category_id, priority_id, product_type_id)

        if title is not None:
            if not title.strip():
                raise InvalidTicketDataError("Title is required")
            ticket.title = title.strip()
        if description is not None:
            ticket.description = description
        if category_id is not None:
            ticket.category_id = category_id
        if priority_id is not None:
            ticket.priority_id = priority_id
        if product_type_id is not None:
            ticket.product_type_id = product_type_id
        replaced_path = None
        if attachment_path is not None:
            replaced_path = ticket.attachment_path
            ticket.attachment_path = attachment_path
        await self.db.flush()
        delete_upload(replaced_path)

        await self.notifications.notify_admins(
            "ticket_update",
            f"Ticket #{ticket.id} was updated by its owner",
            {"ticket_id": ticket.id},
        )
        return await self.get_ticket(ticket.id)

    async def delete_own_ticket(self, user: User, ticket_id: int) -> Ticket:
        ticket = await self._own_editable_ticket(user, ticket_id)
        title = ticket.title
        result = await self.db.execute(
            select(TicketComment.attachment_path).where(
                TicketComment.ticket_id == ticket_id,
                TicketComment.attachment_path.is_not(None),
            )
        )
        stored_files = [ticket.attachment_path, *result.scalars().all()]
        await self.db.delete(ticket)
        await self.db.flush()
        for path in stored_files:
            delete_upload(path)

        await self.notifications.notify_admins(
            "ticket_delete",
            f"Ticket #{ticket_id} ({title}) was deleted by its owner",
            {"ticket_id": ticket_id},
        )
        logger.info(f"Ticket {ticket_id} deleted by user {user.id}")
        return ticket

    # Comments

    async def _commentable_ticket(self, user: User, ticket_id: int) -> Ticket:
        ticket = await self.get_ticket(ticket_id)
        if user.role == Role.STAFF.value and ticket.assigned_to != user.id:
            raise TicketPermissionError("Ticket is not assigned to you")
        if user.role == Role.CUSTOMER.value and ticket.user_id != user.id:
            raise TicketNotFoundError(f"Ticket {ticket_id} not found")
        return ticket

    async def list_comments(self, user: User, ticket_id: int) -> list[TicketComment]:
        await self._commentable_ticket(user, ticket_id)
        result = await self.db.execute(
            select(TicketComment)
            .options(selectinload(TicketComment.author))
            .where(TicketComment.ticket_id == ticket_id)
            .execution_options(populate_existing=True)
            .order_by(TicketComment.created_at.asc(), TicketComment.id.asc())
        )
        return list(result.scalars().all())

    async def add_comment(
        self,
        user: User,
        ticket_id: int,
        content: str,
        parent_id: int | None = None,
        attachment_path: str | None = None,
    ) -> TicketComment:
        ticket = await self._commentable_ticket(user, ticket_id)
        if not content or not content.strip():
            raise InvalidTicketDataError("Comment content is required")
        if parent_id is not None:
            parent = await self.db.get(TicketComment, parent_id)
            if parent is None or parent.ticket_id != ticket_id:
                raise InvalidTicketDataError("Parent comment not found on this ticket")

        comment = TicketComment(
            ticket_id=ticket_id,
            user_id=user.id,
            parent_id=parent_id,
            content=content.strip(),
            attachment_path=attachment_path,
        )
        self.db.add(comment)
        ticket.updated_at = utcnow()
        await self.db.flush()

        data = {"ticket_id": ticket_id, "comment_id": comment.id}
        if user.role == Role.CUSTOMER.value:
            message = f"New comment from the customer on ticket #{ticket_id}"
            if ticket.assigned_to is not None:
                await self.notifications.create(ticket.assigned_to, "ticket_comment", message, data)
            else:
                await self.notifications.notify_admins("ticket_comment", message, data)
        elif ticket.user_id != user.id:
            await self.notifications.create(
                ticket.user_id,
                "ticket_comment",
                f"Support replied to your ticket #{ticket_id}",
                data,
            )

        result = await self.db.execute(
            select(TicketComment)
            .options(selectinload(TicketComment.author))
            .where(TicketComment.id == comment.id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one()

    # Staff operations

    async def update_status(
        self,
        user: User,
        ticket_id: int,
        status: str | None = None,
        priority_id: int | None = None,
    ) -> Ticket:
        ticket = await self.get_ticket(ticket_id)
        if user.role == Role.STAFF.value and ticket.assigned_to != user.id:
            raise TicketPermissionError("Ticket is not assigned to you")
        if status is None and priority_id is None:
            raise InvalidTicketDataError("Nothing to update")
        await self._check_attributes(None, priority_id, None)

        if priority_id is not None:
            ticket.priority_id = priority_id

        if status is not None and status != ticket.status:
            ticket.status = TicketStatus(status).value
            if ticket.status == TicketStatus.RESOLVED.value:
                ticket.resolved_at = utcnow()
            elif ticket.status != TicketStatus.CLOSED.value:
                ticket.resolved_at = None
            await self.notifications.create(
                ticket.user_id,
                "ticket_status",
                f"Your ticket #{ticket.id} is now {ticket.status.replace('_', ' ')}",
                {"ticket_id": ticket.id, "status": ticket.status},
            )
            logger.info(f"Ticket {ticket.id} status -> {ticket.status} by user {user.id}")

        await self.db.flush()
        return await self.get_ticket(ticket.id)

    async def list_assignable_staff(self) -> list[User]:
        result = await self.db.execute(
            select(User).where(User.role.in_(STAFF_ROLES)).order_by(User.name, User.id)
        )
        return list(result.scalars().all())

    async def assign(self, ticket_id: int, assignee_id: int) -> Ticket:
        ticket = await self.get_ticket(ticket_id)
        assignee = await self.db.get(User, assignee_id)
        if assignee is None or assignee.role not in STAFF_ROLES:
            raise InvalidTicketDataError("Tickets can only be assigned to staff or admins")

        ticket.assigned_to = assignee.id
        await self.db.flush()
        await self.notifications.create(
            assignee.id,
            "ticket_assigned",
            f"Ticket #{ticket.id} has been assigned to you",
            {"ticket_id": ticket.id},
        )
        logger.info(f"Ticket {ticket.id} assigned to user {assignee.id}")
        return await self.get_ticket(ticket.id)

    # Background

    async def stale_tickets(self, older_than: datetime) -> list[Ticket]:
        """Tickets not closed whose last update is older than the given time."""
        result = await self.db.execute(
            select(Ticket)
            .options(selectinload(Ticket.assignee))
            .execution_options(populate_existing=True)
            .where(
                Ticket.status != TicketStatus.CLOSED.value,
                Ticket.updated_at < older_than,
            )
            .order_by(Ticket.id)
        )
        return list(result.scalars().all())
