"""Email reminders for tickets that have gone quiet."""

import logging
from datetime import UTC, datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from helpdesk.services.email import MailOutbox, late_ticket_email
from helpdesk.services.ticket import TicketService
from helpdesk.services.user import UserService

logger = logging.getLogger(__name__)


async def send_late_ticket_reminders(
    db: AsyncSession,
    outbox: MailOutbox,
    stale_hours: int = 24,
    now: datetime | None = None,
) -> int:
    """Queue a reminder for every open ticket idle longer than stale_hours.

    Assigned tickets remind their (verified) assignee; unassigned tickets
    remind every verified admin.

    Returns:
        Number of reminder emails queued.
    """
    now = now or datetime.now(UTC)
    tickets = await TicketService(db).stale_tickets(now - timedelta(hours=stale_hours))
    if not tickets:
        return 0

    admins = None
    queued = 0
    for ticket in tickets:
        if ticket.assignee is not None:
            recipients = [ticket.assignee] if ticket.assignee.is_verified else []
        else:
            if admins is None:
                admins = await UserService(db).verified_admins()
            recipients = admins
        for recipient in recipients:
            outbox.enqueue(late_ticket_email(recipient.email, ticket.id, ticket.title, stale_hours))
            queued += 1

    logger.info(f"Queued {queued} late-ticket reminders for {len(tickets)} tickets")
    return queued
