"""
Structured logging for the ledger.

Records carry the request context bound with ``bind_log_context``
(correlation ID and, inside owner-scoped routes, the owner ID) plus any
fields passed to ``log_with_context``. JSON output is the default; the
text format shows the correlation ID in brackets.
"""
import logging
import json
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from contextvars import ContextVar

from loyalty_ledger.lib.settings import settings


# Fields attached to every record logged in the current request
_log_context: ContextVar[Optional[Dict[str, Any]]] = ContextVar("log_context", default=None)

TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s [%(correlation_id)s] %(message)s"

# Loggers that flood the output at INFO
QUIET_LOGGERS = ("sqlalchemy.engine", "httpx", "httpcore", "uvicorn.access")


def bind_log_context(**fields: Any) -> None:
    """Add fields to the log context of the current request; None values are skipped."""
    context = dict(_log_context.get() or {})
    context.update({key: value for key, value in fields.items() if value is not None})
    _log_context.set(context)


def clear_log_context() -> None:
    _log_context.set(None)


def current_log_context() -> Dict[str, Any]:
    return dict(_log_context.get() or {})


class ContextFilter(logging.Filter):
    """Copy the bound context onto the record when it is emitted."""
    
    def filter(self, record: logging.LogRecord) -> bool:
        record.context = current_log_context()
        record.correlation_id = record.context.get("correlation_id", "-")
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per record: level, logger, message, context and extra fields."""
    
    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        
        # Context captured by ContextFilter, or the live one when no filter ran
        context = getattr(record, "context", None)
        log_data.update(context if context is not None else current_log_context())
        log_data.update(getattr(record, "extra_fields", {}))
        
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        
        return json.dumps(log_data, default=str)


def setup_logging(level: str = "INFO", json_format: bool = True) -> None:
    """
    Configure the root logger with a single stdout handler.
    
    Args:
        level: Log level name; unknown names fall back to INFO
        json_format: JSONFormatter when True, TEXT_FORMAT otherwise
    """
    log_level = getattr(logging, level.upper(), logging.INFO)
    
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    handler.addFilter(ContextFilter())
    handler.setFormatter(JSONFormatter() if json_format else logging.Formatter(TEXT_FORMAT))
    
    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def log_with_context(logger: logging.Logger, level: str, message: str, **extra_fields) -> None:
    """
    Log a message with additional fields.
    
    Args:
        logger: Logger instance
        level: Level name (debug, info, warning, error, critical)
        message: Log message
        **extra_fields: Fields added to the JSON record next to the context
    """
    getattr(logger, level.lower())(message, extra={"extra_fields": extra_fields})


setup_logging(
    level="DEBUG" if settings.debug else settings.log_level,
    json_format=settings.log_json,
)
