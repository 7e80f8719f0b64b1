"""
Structured logging configuration.

JSON-formatted logs in production, plain text for local development.
Audit events (services.audit_logger) get their own handler so they can be
shipped to a separate file without mixing into the application stream.
"""
import logging
import sys
import json
from datetime import datetime, timezone
from typing import Any, Dict
from core.config import settings

AUDIT_LOGGER_NAME = "macrofit.audit"


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # Callers attach structured context via extra={"extra_fields": {...}}
        if hasattr(record, "extra_fields"):
            log_data.update(record.extra_fields)

        return json.dumps(log_data, default=str)


class ExcludeAuditFilter(logging.Filter):
    """Drops audit records from a handler; they are written by the audit handler."""

    def filter(self, record: logging.LogRecord) -> bool:
        return not (record.name == AUDIT_LOGGER_NAME or record.name.startswith(AUDIT_LOGGER_NAME + "."))


def audit_handler() -> logging.Handler:
    """Handler for audit events: AUDIT_LOG_FILE when set, stdout otherwise."""
    if settings.AUDIT_LOG_FILE:
        handler: logging.Handler = logging.FileHandler(settings.AUDIT_LOG_FILE, encoding="utf-8")
    else:
        handler = logging.StreamHandler(sys.stdout)
    # Audit messages are already serialized events, one per line.
    handler.setFormatter(logging.Formatter("%(message)s"))
    return handler


def setup_logging():
    """
    Configure application-wide logging.

    Uses JSON format in production, text format in development. Audit
    records still propagate to the root logger, but the console handler
    skips them so each event is written once.
    """
    log_level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)
    audit_level = getattr(logging, settings.AUDIT_LOG_LEVEL.upper(), logging.INFO)

    if settings.LOG_FORMAT == "json" or settings.ENVIRONMENT == "production":
        formatter = JSONFormatter()
    else:
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)
    console_handler.addFilter(ExcludeAuditFilter())
    root_logger.addHandler(console_handler)

    audit = logging.getLogger(AUDIT_LOGGER_NAME)
    audit.setLevel(audit_level)
    for handler in list(audit.handlers):
        audit.removeHandler(handler)
        handler.close()
    audit.addHandler(audit_handler())

    # Set levels for noisy libraries
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("openai").setLevel(logging.WARNING)

    return root_logger
