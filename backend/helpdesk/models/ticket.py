"""Ticket and ticket comment models."""

import enum
from datetime import datetime

from sqlalchemy import ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from helpdesk.models.base import BaseModel, UTCDateTime
from helpdesk.models.ticket_attribute import TicketCategory, TicketPriority, TicketProductType
from helpdesk.models.user import User


class TicketStatus(str, enum.Enum):
    NEW = "new"
    IN_PROGRESS = "in_progress"
    AWAITING_REPLY = "awaiting_reply"
    RESOLVED = "resolved"
    CLOSED = "closed"


OPEN_STATUSES = (
    TicketStatus.NEW.value,
    TicketStatus.IN_PROGRESS.value,
    TicketStatus.AWAITING_REPLY.value,
)


class Ticket(BaseModel):
    """A support request raised by a customer.

    ``last_viewed_comment_at`` records when the owner last opened the
    ticket; comments newer than that count as unread replies.
    """

    __tablename__ = "tickets"
    __table_args__ = (
        Index("ix_tickets_status_updated_at", "status", "updated_at"),
    )

    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=TicketStatus.NEW.value, index=True
    )

    category_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("ticket_categories.id", ondelete="SET NULL"), nullable=True
    )
    priority_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("ticket_priorities.id", ondelete="SET NULL"), nullable=True
    )
    product_type_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("ticket_product_types.id", ondelete="SET NULL"), nullable=True
    )
    assigned_to: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True
    )

    resolved_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    attachment_path: Mapped[str | None] = mapped_column(String(500), nullable=True)
    last_viewed_comment_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    owner: Mapped[User] = relationship(User, foreign_keys=[user_id])
    assignee: Mapped[User | None] = relationship(User, foreign_keys=[assigned_to])
    category: Mapped[TicketCategory | None] = relationship(TicketCategory)
    priority: Mapped[TicketPriority | None] = relationship(TicketPriority)
    product_type: Mapped[TicketProductType | None] = relationship(TicketProductType)

    def __repr__(self) -> str:
        return f"<Ticket #{self.id} {self.status}>"


class TicketComment(BaseModel):
    __tablename__ = "ticket_comments"

    ticket_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    parent_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("ticket_comments.id", ondelete="SET NULL"), nullable=True
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    attachment_path: Mapped[str | None] = mapped_column(String(500), nullable=True)

    author: Mapped[User | None] = relationship(User)

    def __repr__(self) -> str:
        return f"<TicketComment #{self.id} on ticket {self.ticket_id}>"
