"""
Typed failures raised by the ledger services.

Routes map these to HTTP statuses; services never return error tuples.
"""
from __future__ import annotations


class LedgerError(Exception):
    """Base class; `details` is a JSON-safe dict for the caller."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class ValidationError(LedgerError, ValueError):
    """400-level input problem. Never retried."""


class NotFoundError(LedgerError):
    """Referenced entity does not exist."""


class ConflictError(LedgerError, ValueError):
    """409-level business rule conflict (e.g., duplicate SKU)."""


class InsufficientStockError(LedgerError):
    """Stock cannot cover the requested quantity."""

    def __init__(self, available: int, requested: int, message: str | None = None):
        super().__init__(
            message or f"Insufficient stock. Available: {available}, Requested: {requested}.",
            details={"available": available, "requested": requested},
        )
        self.available = available
        self.requested = requested


class TransactionAbortError(LedgerError):
    """
    The atomic scope could not commit (lock timeout or write conflict).

    Nothing was persisted; the whole operation is safe to retry.
    """


# Most specific first
HTTP_STATUS_BY_ERROR = (
    (ValidationError, 400),
    (NotFoundError, 404),
    (InsufficientStockError, 409),
    (ConflictError, 409),
    (TransactionAbortError, 503),
)


def error_response(exc: LedgerError) -> tuple[dict, int]:
    """JSON body and HTTP status for a typed ledger failure."""
    status = next((code for cls, code in HTTP_STATUS_BY_ERROR if isinstance(exc, cls)), 400)
    body = {"error": str(exc)}
    if exc.details:
        body["details"] = exc.details
    return body, status
