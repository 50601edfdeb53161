# Helpdesk Services
from helpdesk.services.auth import AuthService
from helpdesk.services.dashboard import DashboardService
from helpdesk.services.email import EmailService, MailOutbox
from helpdesk.services.knowledge_base import KnowledgeBaseService
from helpdesk.services.notification import NotificationService
from helpdesk.services.ticket import TicketService
from helpdesk.services.ticket_attribute import TicketAttributeService
from helpdesk.services.token_authority import TokenAuthority
from helpdesk.services.user import UserService

__all__ = [
    "AuthService",
    "DashboardService",
    "EmailService",
    "KnowledgeBaseService",
    "MailOutbox",
    "NotificationService",
    "TicketAttributeService",
    "TicketService",
    "TokenAuthority",
    "UserService",
]
