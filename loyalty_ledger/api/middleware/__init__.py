"""API middleware package."""
from loyalty_ledger.api.middleware.error_handler import (
    ledger_exception_handler,
    validation_exception_handler,
    http_exception_handler,
    unhandled_exception_handler,
)

__all__ = [
    "ledger_exception_handler",
    "validation_exception_handler",
    "http_exception_handler",
    "unhandled_exception_handler",
]
