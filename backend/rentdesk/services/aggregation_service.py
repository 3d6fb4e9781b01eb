# Overview: Order aggregator; derives order totals and status from the order's bookings.

"""
Order Aggregator

Runs synchronously, inside the same transaction, after every booking-level
mutation, so no reader ever observes an order whose totals lag its bookings.

TOTALS (over bookings with status != CANCELLED):
- total_amount    = sum(decided_rent)
- total_received  = sum(inbound payments - refunds)
- remaining       = total_amount - total_received

STATUS:
- CANCELLED       order was explicitly cancelled (cancel_order)
- INITIATED       no active bookings, or all BOOKED with nothing but advances
- FULLY_DONE      every active booking RETURNED
- PARTIALLY_DONE  some but not all active bookings RETURNED
- IN_PROGRESS     anything else

recompute_order is idempotent: with unchanged bookings it writes nothing.
"""

from __future__ import annotations

from ..extensions import db
from ..models import Booking, Order
from ..models.rentals import (
    BOOKING_BOOKED,
    BOOKING_CANCELLED,
    BOOKING_RETURNED,
    ORDER_CANCELLED,
    ORDER_FULLY_DONE,
    ORDER_INITIATED,
    ORDER_IN_PROGRESS,
    ORDER_PARTIALLY_DONE,
)
from . import ledger_service


def active_bookings(bookings: list[Booking]) -> list[Booking]:
    return [b for b in bookings if b.status != BOOKING_CANCELLED]


def compute_order_totals(bookings: list[Booking]) -> dict:
    active = active_bookings(bookings)
    total_amount = sum(b.decided_rent_cents for b in active)
    total_received = sum(ledger_service.net_paid(b) for b in active)
    return {
        "total_amount_cents": total_amount,
        "total_received_cents": total_received,
        "remaining_amount_cents": total_amount - total_received,
    }


def derive_order_status(order: Order, bookings: list[Booking]) -> str:
    if order.cancelled_at is not None:
        return ORDER_CANCELLED

    active = active_bookings(bookings)
    if not active:
        return ORDER_INITIATED

    if all(b.status == BOOKING_BOOKED for b in active) and not any(
        ledger_service.has_non_advance_payments(b) for b in active
    ):
        return ORDER_INITIATED

    returned = [b for b in active if b.status == BOOKING_RETURNED]
    if len(returned) == len(active):
        return ORDER_FULLY_DONE
    if returned:
        return ORDER_PARTIALLY_DONE

    return ORDER_IN_PROGRESS


def load_order_bookings(order: Order) -> list[Booking]:
    # Flush first: a brand-new order has no id until then
    db.session.flush()
    return (
        db.session.query(Booking)
        .filter(Booking.order_id == order.id, Booking.org_id == order.org_id)
        .order_by(Booking.id.asc())
        .all()
    )


def recompute_order(order: Order) -> Order:
    """
    Refresh the order's derived fields in the current transaction.

    Only attributes whose value actually changed are assigned, so a no-op
    recompute leaves the row (and its version_id) untouched. The caller
    commits.
    """
    bookings = load_order_bookings(order)

    values = compute_order_totals(bookings)
    values["status"] = derive_order_status(order, bookings)

    for key, value in values.items():
        if getattr(order, key) != value:
            setattr(order, key, value)

    return order
