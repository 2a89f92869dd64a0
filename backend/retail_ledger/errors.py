# Overview: Exception taxonomy shared by the order engines and the API layer.

"""
Every engine error carries a human message plus a ``details`` dict with
enough context (product id, requested vs available quantity, current
status) for the caller to act without a second round-trip.

status_code is the HTTP status the route layer answers with.
"""


class LedgerError(Exception):
    """Base class for business-rule failures raised by the services."""

    status_code = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"error": str(self), "details": self.details}


class ValidationError(LedgerError):
    """400-level input problem."""


class NotFound(LedgerError):
    """Product / supplier / customer / order missing (or inactive where active is required)."""

    status_code = 404


class InvalidState(LedgerError):
    """Operation attempted against an order in a status that forbids it."""

    status_code = 409


class InsufficientStock(LedgerError):
    """A stock decrease would drive on-hand below zero."""

    status_code = 409


class InvalidReturn(LedgerError):
    """Return quantity exceeds what the customer still holds on the sale."""


class CreditLimitExceeded(LedgerError):
    status_code = 409


class DuplicateKey(LedgerError):
    """409-level uniqueness conflict (sku, order number, phone, email)."""

    status_code = 409


class NoItemsReceived(LedgerError):
    """A purchase order receipt where every line had a zero quantity."""
