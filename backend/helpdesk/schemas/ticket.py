"""Pydantic schemas for tickets, comments and ticket attributes."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from helpdesk.models.ticket import TicketStatus
from helpdesk.models.user import Role


class AttributeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str


class AttributeRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)


class UserRef(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    email: str
    role: Role


class TicketResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    description: str
    status: TicketStatus
    attachment_path: str | None
    owner: UserRef | None
    assignee: UserRef | None
    category: AttributeResponse | None
    priority: AttributeResponse | None
    product_type: AttributeResponse | None
    created_at: datetime
    updated_at: datetime
    resolved_at: datetime | None
    has_new_reply: bool = False


class TicketStatusUpdate(BaseModel):
    """Admin/staff change of status and/or priority."""

    status: TicketStatus | None = None
    priority_id: int | None = None


class TicketAssignRequest(BaseModel):
    assigned_to: int = Field(..., description="ID of a staff member or admin")


class CommentResponse(BaseModel):
    id: int
    ticket_id: int
    user_id: int | None
    parent_id: int | None
    author_name: str
    author_role: Role | None
    content: str
    attachment_path: str | None
    created_at: datetime
