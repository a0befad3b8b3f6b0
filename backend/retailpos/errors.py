# Overview: Typed failures raised by the service layer and mapped to HTTP responses.

"""
Error taxonomy

Every failure that crosses the service boundary is a POSError subclass so
callers can tell a stock shortage from a points shortage from bad input.
Services raise; run_in_transaction rolls the session back; blueprints turn
the error into JSON using status_code.
"""

from __future__ import annotations


class POSError(Exception):
    """Base class for typed service-layer failures."""

    status_code = 400
    code = "error"

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {
            "error": self.message,
            "code": self.code,
            "details": self.details,
        }


class ValidationError(POSError):
    """400-level input problem."""
    status_code = 400
    code = "validation_error"


class NotFoundError(POSError):
    """Unknown product, tier, order, customer, supplier or user."""
    status_code = 404
    code = "not_found"


class ConflictError(POSError):
    """409-level business rule conflict (e.g., duplicate SKU)."""
    status_code = 409
    code = "conflict"


class InsufficientStockError(POSError):
    status_code = 409
    code = "insufficient_stock"


class InsufficientPointsError(POSError):
    status_code = 409
    code = "insufficient_points"


class InvalidTransitionError(POSError):
    """Illegal purchase-order state change."""
    status_code = 409
    code = "invalid_transition"


class InvariantViolation(POSError):
    """
    Stored data breaks an invariant the services maintain (e.g. a product
    with zero or several default tiers). Indicates a bug or an out-of-band
    write, never bad user input.
    """
    status_code = 500
    code = "invariant_violation"
