"""Startup/shutdown sequence and the periodic background jobs."""

import asyncio
import logging

from helpdesk.core.config import settings
from helpdesk.core.database import async_session_maker, engine
from helpdesk.core.logging import get_logger, setup_logging
from helpdesk.services.email import MailOutbox
from helpdesk.services.reminders import send_late_ticket_reminders
from helpdesk.services.token_authority import TokenAuthority

_logger = get_logger("lifespan")


def task_done_callback(task: asyncio.Task[None]) -> None:
    """Log unhandled exceptions from background tasks."""
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        _logger.error(f"Background task {task.get_name()} failed: {exc}")


async def revocation_sweep_loop(authority: TokenAuthority, interval_seconds: int) -> None:
    """Periodically drop old entries from the revocation set."""
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            removed = authority.sweep()
            if removed > 0:
                _logger.info(f"Swept {removed} revoked credentials")
        except Exception:
            _logger.exception("Error sweeping revoked credentials")


async def late_ticket_reminder_loop(
    outbox: MailOutbox, interval_seconds: int, stale_hours: int
) -> None:
    """Periodically remind staff about tickets nobody has touched."""
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            async with async_session_maker() as db:
                await send_late_ticket_reminders(db, outbox, stale_hours=stale_hours)
        except Exception:
            _logger.exception("Error sending late-ticket reminders")


def _start(coro, name: str) -> asyncio.Task[None]:
    task = asyncio.create_task(coro, name=name)
    task.add_done_callback(task_done_callback)
    return task


async def startup(
    logger: logging.Logger,
    authority: TokenAuthority,
    outbox: MailOutbox,
) -> list[asyncio.Task]:
    """Configure logging, report weak settings and start the background jobs.

    Returns the managed tasks, which ``shutdown`` cancels.
    """
    setup_logging(
        level=settings.log_level,
        format_type="structured" if not settings.debug else "dev",
    )

    for warning in settings.check_security_configuration():
        logger.warning(f"SECURITY: {warning}")

    return [
        _start(
            revocation_sweep_loop(authority, settings.revocation_sweep_interval_seconds),
            "revocation-sweep",
        ),
        _start(
            late_ticket_reminder_loop(
                outbox, settings.reminder_interval_seconds, settings.reminder_stale_hours
            ),
            "late-ticket-reminders",
        ),
        _start(outbox.run(), "mail-outbox"),
    ]


async def shutdown(
    logger: logging.Logger,
    tasks: list[asyncio.Task],
    outbox: MailOutbox,
) -> None:
    """Cancel background jobs and flush queued mail."""
    for task in tasks:
        task.cancel()
    for task in tasks:
        try:
            await task
        except asyncio.CancelledError:
            pass

    if outbox.pending:
        sent = await outbox.process_pending()
        logger.info(f"Flushed {sent} queued emails on shutdown")

    await engine.dispose()
    logger.info("Shutdown complete")
