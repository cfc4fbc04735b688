"""
Structured JSON logging for the registration backend and form client.

One JSON object per line on stdout:

    {"timestamp": ..., "level": ..., "service": ..., "channel": "students",
     "message": ..., "context": {"request_id": ..., "student_id": ...},
     "extra": {...}, "exception": "Traceback ..."}

Channels: http, db, students, face, avatar, form, repository.

Registrations carry personal contact details, so phone numbers and emails
placed in ``context`` or ``extra`` are masked before they are written.
"""

import json
import logging
import os
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Optional

from registration.validators import digits_only

# Set per HTTP request by the middleware in main.py
request_id_var: ContextVar[str] = ContextVar("request_id", default="")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
SERVICE_NAME = os.getenv("SERVICE_NAME", "student-registration")

CHANNELS = ("http", "db", "students", "face", "avatar", "form", "repository")

PHONE_FIELDS = frozenset({"phone_number", "alternate_phone", "phoneNumber", "alternatePhone"})
EMAIL_FIELDS = frozenset({"email"})


def mask_phone(value) -> str:
    """Keep the last four digits: 4302032033 -> ******2033."""
    digits = digits_only(value)
    if len(digits) <= 4:
        return "*" * len(digits)
    return "*" * (len(digits) - 4) + digits[-4:]


def mask_email(value) -> str:
    """Keep the first character and the domain: aron@gmail.com -> a***@gmail.com."""
    if not isinstance(value, str) or "@" not in value:
        return "***"
    local, _, domain = value.rpartition("@")
    return "{}***@{}".format(local[:1], domain)


def redact(fields: Optional[dict]) -> dict:
    if not fields:
        return {}
    masked = {}
    for key, value in fields.items():
        if value and key in PHONE_FIELDS:
            masked[key] = mask_phone(value)
        elif value and key in EMAIL_FIELDS:
            masked[key] = mask_email(value)
        else:
            masked[key] = value
    return masked


class StructuredJsonFormatter(logging.Formatter):
    """Render a LogRecord as one JSON line (see module docstring for the shape)."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z",
            "level": record.levelname,
            "service": SERVICE_NAME,
            "channel": getattr(record, "channel", None) or record.name.rpartition(".")[2] or "app",
            "message": record.getMessage(),
            "context": {"request_id": request_id_var.get(""), **redact(getattr(record, "context", None))},
            "extra": redact(getattr(record, "extra_data", None)),
        }
        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_entry, default=str)


def setup_logging(level: Optional[str] = None) -> logging.Logger:
    """Send every log record to stdout as structured JSON."""
    resolved = getattr(logging, (level or LOG_LEVEL).upper(), logging.INFO)

    handler = logging.StreamHandler()
    handler.setFormatter(StructuredJsonFormatter())

    root_logger = logging.getLogger()
    root_logger.setLevel(resolved)
    root_logger.handlers = [handler]

    for channel in CHANNELS:
        get_logger(channel).setLevel(resolved)

    return root_logger


def get_logger(channel: str) -> logging.Logger:
    return logging.getLogger(f"registration.{channel}")


def log_with_context(logger: logging.Logger, level: str, message: str,
                     context: dict = None, extra_data: dict = None,
                     exc_info: Optional[BaseException] = None):
    """
    Emit a structured log entry.

    Args:
        logger: A channel logger from get_logger()
        level: Log level name (DEBUG, INFO, WARNING, ERROR)
        message: Human-readable log message
        context: Business identifiers (student_id, variant, phone_number, ...)
        extra_data: Measurements and details (duration_ms, status_code, error)
        exc_info: Exception whose traceback is attached as "exception"
    """
    logger.log(
        getattr(logging, level.upper(), logging.INFO),
        message,
        exc_info=exc_info,
        extra={
            "context": context or {},
            "extra_data": extra_data or {},
            "channel": logger.name.rpartition(".")[2],
        },
    )


def generate_request_id() -> str:
    return str(uuid.uuid4())
