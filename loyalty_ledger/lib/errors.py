"""
Error taxonomy shared by the ledger core and the API layer.

Core operations raise these typed errors; the API maps them to JSON
responses through the handlers in ``loyalty_ledger.api.middleware``.
A lookup that finds nothing is not an error: the matcher returns ``None``.
"""
from http import HTTPStatus
from typing import Any, Dict, Optional


class LedgerError(Exception):
    """Base application exception."""
    
    def __init__(
        self,
        message: str,
        status_code: int = HTTPStatus.INTERNAL_SERVER_ERROR,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.status_code = int(status_code)
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(LedgerError):
    """Missing or malformed input. Never retried."""
    
    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(
            message=message,
            status_code=HTTPStatus.UNPROCESSABLE_ENTITY,
            details={"field": field} if field else {},
        )
        self.field = field


class ConflictError(LedgerError):
    """A concurrent writer created the same customer identity first."""
    
    def __init__(self, owner_id: str):
        super().__init__(
            message="Concurrent customer creation detected",
            status_code=HTTPStatus.CONFLICT,
            details={"owner_id": owner_id},
        )
        self.owner_id = owner_id


class StorageUnavailable(LedgerError):
    """The customer store could not be reached."""
    
    def __init__(self, message: str = "Customer store unavailable"):
        super().__init__(
            message=message,
            status_code=HTTPStatus.SERVICE_UNAVAILABLE,
        )


class NotFoundException(LedgerError):
    """Resource not found exception."""
    
    def __init__(self, resource: str, resource_id: Optional[str] = None):
        message = f"{resource} not found"
        if resource_id:
            message = f"{resource} with id '{resource_id}' not found"
        super().__init__(
            message=message,
            status_code=HTTPStatus.NOT_FOUND,
            details={"resource": resource, "resource_id": resource_id},
        )
