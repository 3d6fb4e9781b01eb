# Overview: Domain error taxonomy raised by the rental core and mapped to HTTP responses by routes.

"""
Rental Core Errors

Every failure is reported synchronously to the caller; nothing here is
recovered internally. Each error carries a human-readable message plus a
`details` dict the client can render (conflicting bookings, limits, ids).

HTTP MAPPING (see routes):
- NotFoundError               -> 404
- ConflictError               -> 409 (details.conflicts lists overlapping bookings)
- InvalidStateTransitionError -> 409
- ConcurrentUpdateError       -> 409 (caller may retry)
- OverpaymentError            -> 422
- InsufficientFundsError      -> 422

ValidationError (400) lives in rentdesk.validation and covers malformed input.
"""

from __future__ import annotations


class RentalError(Exception):
    """Base class for booking/order/ledger rule violations."""

    status_code = 400
    code = "RENTAL_ERROR"

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


class NotFoundError(RentalError):
    """Booking, order, product or category absent (or owned by another organization)."""

    status_code = 404
    code = "NOT_FOUND"


class ConflictError(RentalError):
    """Requested interval overlaps active bookings of the same product."""

    status_code = 409
    code = "CONFLICT"

    def __init__(self, message: str, conflicts: list[dict]):
        super().__init__(message, details={"conflicts": conflicts})
        self.conflicts = conflicts


class InvalidStateTransitionError(RentalError):
    status_code = 409
    code = "INVALID_STATE_TRANSITION"


class OverpaymentError(RentalError):
    """A payment would push net payments above the decided rent."""

    status_code = 422
    code = "OVERPAYMENT"


class InsufficientFundsError(RentalError):
    """A refund or transfer exceeds what was actually paid."""

    status_code = 422
    code = "INSUFFICIENT_FUNDS"


class ConcurrentUpdateError(RentalError):
    """Optimistic version check failed; another writer touched the same row."""

    status_code = 409
    code = "CONCURRENT_UPDATE"
