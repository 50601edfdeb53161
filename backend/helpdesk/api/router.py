"""Helpdesk API Router - aggregates all API routes."""

from fastapi import APIRouter

from helpdesk.api import (
    admin_tickets,
    admin_users,
    auth,
    dashboard,
    knowledge_base,
    notifications,
    profile,
    ticket_attributes,
    tickets,
)

api_router = APIRouter()

api_router.include_router(auth.router)
api_router.include_router(profile.router)
api_router.include_router(tickets.router)
api_router.include_router(notifications.router)
api_router.include_router(dashboard.router)
api_router.include_router(knowledge_base.router)
api_router.include_router(ticket_attributes.router)
api_router.include_router(admin_tickets.router)
api_router.include_router(admin_users.router)
