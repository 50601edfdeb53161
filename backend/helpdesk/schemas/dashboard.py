"""Pydantic schemas for dashboard statistics."""

from pydantic import BaseModel, Field


class UserDashboardStats(BaseModel):
    success: bool = True
    total: int
    new: int
    pending: int = Field(description="Tickets in progress or awaiting reply")
    resolved: int = Field(description="Tickets resolved or closed")


class StaffStat(BaseModel):
    id: int
    name: str
    email: str
    assigned_tickets: int
    resolved_tickets: int
    avg_processing_hours: float


class AdminDashboardStats(BaseModel):
    success: bool = True
    total_tickets: int
    processing_tickets: int
    avg_processing_hours: float = Field(description="Mean creation-to-resolution time")
    status_distribution: dict[str, int]
    tickets_this_month: int
    tickets_resolved_this_month: int
    top_staff: list[StaffStat]
    resolution_rate: float = Field(description="Percentage of tickets resolved or closed")
