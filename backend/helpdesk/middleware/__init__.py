"""Middleware module for the helpdesk backend."""

from helpdesk.middleware.request_context import RequestContextMiddleware
from helpdesk.middleware.security_headers import SecurityHeadersMiddleware

__all__ = [
    "RequestContextMiddleware",
    "SecurityHeadersMiddleware",
]
