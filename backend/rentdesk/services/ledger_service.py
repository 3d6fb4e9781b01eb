# Overview: Booking payment ledger; append-only entries and the balance arithmetic derived from them.

"""
Booking Ledger Invariants (authoritative)

- Entries are appended, never edited or deleted.
- remaining = decided_rent - sum(inbound) + sum(REFUND), always >= 0.
- Inbound entries that would push remaining below zero are rejected
  (OverpaymentError), not clamped.
- REFUND entries can never exceed net paid (InsufficientFundsError).
- Entries are written inside the same DB transaction as the operation that
  causes them.
"""

from __future__ import annotations

from datetime import datetime

from ..extensions import db
from ..errors import OverpaymentError, InsufficientFundsError
from ..models import Booking, BookingPayment
from ..models.rentals import (
    INBOUND_PAYMENT_TYPES,
    PAYMENT_ADVANCE,
    PAYMENT_RECEIVED,
    PAYMENT_RENT_REMAINING,
    PAYMENT_REFUND,
    PAYMENT_TYPES,
)
from ..validation import ValidationError
from rentdesk.time_utils import utcnow


def canonical_payment_type(payment_type: str) -> str:
    """RENT_REMAINING and PAYMENT_RECEIVED are the same inbound payment."""
    if payment_type not in PAYMENT_TYPES:
        raise ValidationError(f"Invalid payment type: {payment_type}. Must be one of {PAYMENT_TYPES}")
    if payment_type == PAYMENT_RENT_REMAINING:
        return PAYMENT_RECEIVED
    return payment_type


def inbound_total(booking: Booking) -> int:
    return sum(p.amount_cents for p in booking.payments if p.payment_type in INBOUND_PAYMENT_TYPES)


def refund_total(booking: Booking) -> int:
    return sum(p.amount_cents for p in booking.payments if p.payment_type == PAYMENT_REFUND)


def net_paid(booking: Booking) -> int:
    """Money the customer has paid for this booking and not had back."""
    return inbound_total(booking) - refund_total(booking)


def max_refund(booking: Booking) -> int:
    """Ceiling on any refund or transfer out of this booking."""
    return max(0, net_paid(booking))


def headroom(booking: Booking) -> int:
    """How much more this booking can receive before it is fully paid."""
    return booking.decided_rent_cents - net_paid(booking)


def has_non_advance_payments(booking: Booking) -> bool:
    return any(
        p.payment_type in INBOUND_PAYMENT_TYPES and p.payment_type != PAYMENT_ADVANCE
        for p in booking.payments
    )


def check_inbound(booking: Booking, amount_cents: int, *, extra_cents: int = 0) -> None:
    """
    Raise OverpaymentError unless amount_cents (plus extra_cents already
    earmarked for this booking in the same operation) fits the balance.
    """
    available = headroom(booking) - extra_cents
    if available <= 0:
        raise OverpaymentError(
            "Booking is already fully paid. No additional payment needed.",
            details={"booking_id": booking.id, "remaining_amount_cents": max(0, available)},
        )
    if amount_cents > available:
        raise OverpaymentError(
            f"Payment amount ({amount_cents}) exceeds remaining amount ({available})",
            details={
                "booking_id": booking.id,
                "amount_cents": amount_cents,
                "remaining_amount_cents": available,
            },
        )


def check_refund(booking: Booking, amount_cents: int, *, extra_cents: int = 0) -> None:
    available = max_refund(booking) - extra_cents
    if amount_cents > available:
        raise InsufficientFundsError(
            f"Refund amount ({amount_cents}) exceeds maximum refund ({max(0, available)})",
            details={
                "booking_id": booking.id,
                "amount_cents": amount_cents,
                "max_refund_cents": max(0, available),
            },
        )


def append_entry(
    booking: Booking,
    payment_type: str,
    amount_cents: int,
    *,
    note: str | None = None,
    actor: str | None = None,
    occurred_at: datetime | None = None,
) -> BookingPayment:
    """
    Append one validated entry and refresh the booking's remaining balance.

    Callers run check_inbound/check_refund first when the amount comes from
    outside; this function enforces the invariant again as a last line.
    """
    payment_type = canonical_payment_type(payment_type)
    if amount_cents <= 0:
        raise ValidationError("Payment amount must be positive")

    if payment_type == PAYMENT_REFUND:
        check_refund(booking, amount_cents)
    else:
        check_inbound(booking, amount_cents)

    entry = BookingPayment(
        org_id=booking.org_id,
        payment_type=payment_type,
        amount_cents=amount_cents,
        note=note,
        recorded_by=actor,
        occurred_at=occurred_at or utcnow(),
    )
    booking.payments.append(entry)
    db.session.add(entry)
    refresh_balance(booking)
    return entry


def allocate_proportionally(amount_cents: int, weights: list[int], caps: list[int]) -> list[int]:
    """
    Split amount_cents into whole-cent shares proportional to weights, never
    giving any slot more than its cap.

    Floor shares first, then hand out the leftover one cent per slot in turn,
    in slot order, skipping slots at their cap, until nothing is left.
    sum(result) == amount_cents whenever amount_cents <= sum(caps).
    """
    if amount_cents > sum(caps):
        raise ValueError("amount exceeds total capacity")

    total_weight = sum(weights)
    shares = []
    for weight, cap in zip(weights, caps):
        share = amount_cents * weight // total_weight if total_weight > 0 else 0
        shares.append(min(share, cap))

    leftover = amount_cents - sum(shares)
    while leftover > 0:
        open_slots = [i for i, cap in enumerate(caps) if shares[i] < cap]
        # Whole rounds at once while every open slot still has room for them.
        rounds = min(leftover // len(open_slots), min(caps[i] - shares[i] for i in open_slots))
        if rounds > 0:
            for i in open_slots:
                shares[i] += rounds
            leftover -= rounds * len(open_slots)
            continue
        for i in open_slots[:leftover]:
            shares[i] += 1
        leftover = 0

    return shares


def refresh_balance(booking: Booking) -> int:
    """Recompute remaining_amount_cents from the ledger."""
    booking.remaining_amount_cents = booking.decided_rent_cents - net_paid(booking)
    return booking.remaining_amount_cents


def get_booking_ledger(booking: Booking) -> dict:
    return {
        "booking_id": booking.id,
        "decided_rent_cents": booking.decided_rent_cents,
        "inbound_cents": inbound_total(booking),
        "refunded_cents": refund_total(booking),
        "net_paid_cents": net_paid(booking),
        "remaining_amount_cents": booking.remaining_amount_cents,
        "pending_refund_cents": booking.pending_refund_cents,
        "entries": [p.to_dict() for p in booking.payments],
    }
