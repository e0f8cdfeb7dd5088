# Overview: Typed errors raised by the point-of-sale services.

"""
Error taxonomy for the POS core.

Every error carries the HTTP status the routes answer with. Validation
happens before any write; cash discrepancies are data, never errors.
"""


class POSError(Exception):
    """Base class for POS service errors."""
    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}

    def to_dict(self) -> dict:
        payload = {"error": str(self)}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(POSError, ValueError):
    """400-level input problem (negative cash, missing fields, ...)."""
    status_code = 400


class InsufficientPaymentError(ValidationError):
    """Cash received does not cover the sale amount."""


class NotFoundError(POSError):
    """Terminal, session, seat or ticket absent."""
    status_code = 404


class SeatUnavailableError(POSError):
    """Seat is sold, disabled, or held by another holder."""
    status_code = 409


class SessionClosedError(POSError):
    """Cash session is closed or belongs to another terminal."""
    status_code = 409


class TerminalNotOpenError(SessionClosedError):
    """Terminal has no open cash session."""


class OperationInvalidError(POSError):
    """409-level state conflict (e.g., opening an already-open terminal)."""
    status_code = 409


class PersistenceError(POSError):
    """Storage failure after retries were exhausted."""
    status_code = 503
