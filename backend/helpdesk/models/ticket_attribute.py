"""Lookup tables that classify tickets."""

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from helpdesk.models.base import BaseModel


class TicketCategory(BaseModel):
    __tablename__ = "ticket_categories"

    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)

    def __repr__(self) -> str:
        return f"<TicketCategory {self.name}>"


class TicketProductType(BaseModel):
    __tablename__ = "ticket_product_types"

    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)

    def __repr__(self) -> str:
        return f"<TicketProductType {self.name}>"


class TicketPriority(BaseModel):
    __tablename__ = "ticket_priorities"

    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)

    def __repr__(self) -> str:
        return f"<TicketPriority {self.name}>"
