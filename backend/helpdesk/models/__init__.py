# Helpdesk Models
from helpdesk.models.base import Base, BaseModel
from helpdesk.models.knowledge_base import KnowledgeBaseArticle
from helpdesk.models.notification import Notification
from helpdesk.models.ticket import OPEN_STATUSES, Ticket, TicketComment, TicketStatus
from helpdesk.models.ticket_attribute import TicketCategory, TicketPriority, TicketProductType
from helpdesk.models.user import STAFF_ROLES, Role, User

__all__ = [
    "Base",
    "BaseModel",
    "KnowledgeBaseArticle",
    "Notification",
    "OPEN_STATUSES",
    "Role",
    "STAFF_ROLES",
    "Ticket",
    "TicketCategory",
    "TicketComment",
    "TicketPriority",
    "TicketProductType",
    "TicketStatus",
    "User",
]
