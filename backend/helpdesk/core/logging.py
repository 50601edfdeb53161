"""Helpdesk Logging Configuration.

Every record carries the id of the HTTP request being served and, once the
route guard has authenticated the caller, the acting user's id. Signed
credentials that end up in a message are masked before output.
"""

import json
import logging
import re
import sys
from contextvars import ContextVar
from typing import Literal

DEV_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(request_id)s | %(message)s"

request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)
user_id_var: ContextVar[int | None] = ContextVar("user_id", default=None)

# header.payload.signature of a JWT; the header always starts with '{"' -> eyJ
_CREDENTIAL_PATTERN = re.compile(r"eyJ[\w-]+\.[\w-]+\.[\w-]*")


def set_user_id(user_id: int | None) -> None:
    user_id_var.set(user_id)


def mask_credentials(text: str) -> str:
    return _CREDENTIAL_PATTERN.sub("[credential]", text)


class RequestContextFilter(logging.Filter):
    """Copy the request id and acting user onto each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get() or "-"
        record.user_id = user_id_var.get()
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per log line, with all fields escaped by json.dumps()."""

    def __init__(self):
        super().__init__(datefmt="%Y-%m-%dT%H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": mask_credentials(record.getMessage()),
        }
        request_id = getattr(record, "request_id", None)
        if request_id and request_id != "-":
            log_entry["request_id"] = request_id
        user_id = getattr(record, "user_id", None)
        if user_id is not None:
            log_entry["user_id"] = user_id
        if record.exc_info and record.exc_info[0] is not None:
            log_entry["exception"] = mask_credentials(self.formatException(record.exc_info))
        return json.dumps(log_entry, default=str)


class DevFormatter(logging.Formatter):
    def __init__(self):
        super().__init__(fmt=DEV_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        if not hasattr(record, "request_id"):
            record.request_id = "-"
        return mask_credentials(super().format(record))


def setup_logging(
    level: str = "INFO",
    format_type: Literal["structured", "dev"] = "dev",
) -> None:
    """
    Configure application logging.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format_type: 'structured' for JSON lines, 'dev' for readable output
    """
    log_level = getattr(logging, level.upper())

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(RequestContextFilter())
    handler.setFormatter(JSONFormatter() if format_type == "structured" else DevFormatter())
    logging.root.handlers = [handler]
    logging.root.setLevel(log_level)

    for logger_name in ["uvicorn", "uvicorn.error", "uvicorn.access"]:
        logging.getLogger(logger_name).setLevel(logging.WARNING)

    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.DEBUG if level.upper() == "DEBUG" else logging.WARNING
    )

    logging.getLogger("helpdesk").info(f"Logging configured: level={level}, format={format_type}")


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the helpdesk namespace."""
    return logging.getLogger(f"helpdesk.{name}")
