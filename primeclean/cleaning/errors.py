"""Error types raised by the booking and invoicing engine."""

from __future__ import annotations


class CleaningError(RuntimeError):
    """Base class for every failure the engine reports to callers."""

    code = "error"


class ValidationError(CleaningError):
    """Raised when incoming data fails validation."""

    code = "validation_error"


class NotFound(CleaningError):
    """Raised when a booking, invoice, service or customer id is unknown."""

    code = "not_found"


class InvalidTransition(CleaningError):
    """Raised when a status change is not allowed from the current status."""

    code = "invalid_transition"


class NotEligible(InvalidTransition):
    """Raised when a booking cannot be invoiced in its current status."""

    code = "not_eligible"


class Conflict(CleaningError):
    """Raised when a booking already has an invoice.

    Callers may treat this as the idempotent outcome of a repeated request;
    ``invoice_id`` points at the invoice that already exists.
    """

    code = "invoice_exists"

    def __init__(self, message: str, *, invoice_id: int | None = None) -> None:
        super().__init__(message)
        self.invoice_id = invoice_id
