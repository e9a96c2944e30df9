"""
Domain errors for the procurement core.

Every failure a service can report carries a stable ``kind`` and the HTTP
status the API layer renders it with. Services raise them, the unit of work
rolls back on them, and the FastAPI exception handler turns them into
``{"error": kind, "message": ..., "details": ...}``.
"""
from typing import Any, Dict, Optional


class ProcurementError(Exception):
    """Base class for all procurement core failures."""

    kind = "ProcurementError"
    status_code = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.kind, "message": self.message, "details": self.details}


class InvalidReference(ProcurementError):
    """A referenced PO, vendor, facility, catalog item or SKU does not exist."""

    kind = "InvalidReference"
    status_code = 404


class InvalidRequest(ProcurementError):
    """Malformed input such as an empty line list or a negative price."""

    kind = "InvalidRequest"
    status_code = 422


class InvalidState(ProcurementError):
    """The operation is not legal in the PO's current state."""

    kind = "InvalidState"
    status_code = 409


class AlreadyDecided(ProcurementError):
    kind = "AlreadyDecided"
    status_code = 409


class AlreadyEdited(ProcurementError):
    kind = "AlreadyEdited"
    status_code = 409


class TokenExpired(ProcurementError):
    kind = "TokenExpired"
    status_code = 401


class TokenInvalid(ProcurementError):
    kind = "TokenInvalid"
    status_code = 401


class Unauthorized(ProcurementError):
    kind = "Unauthorized"
    status_code = 403


class InvalidUnitCode(ProcurementError):
    kind = "InvalidUnitCode"
    status_code = 422


class QuantityExceeded(ProcurementError):
    kind = "QuantityExceeded"
    status_code = 422


class LineClosed(ProcurementError):
    """A GRN line already reached a terminal status."""

    kind = "LineClosed"
    status_code = 409


class PersistenceFailure(ProcurementError):
    """Storage failed or an internal consistency check tripped."""

    kind = "PersistenceFailure"
    status_code = 503
