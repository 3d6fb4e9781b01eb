# Overview: Interval conflict detection for bookings of the same product.

"""
Interval Conflict Detector

Two bookings conflict when they hold the same product over overlapping
half-open intervals [from, to):

    existing.from < new.to AND existing.to > new.from

so [10:00, 12:00) and [12:00, 14:00) do NOT conflict. Only BOOKED and
ISSUED bookings hold a product; RETURNED and CANCELLED never conflict.

CHECK-THEN-ACT RACE:
Detection is a plain read. The booking write that follows is a separate
statement, so two requests creating overlapping bookings at the same moment
can both see an empty result and both commit. That stored double-booking is
resolved by staff: either they override it knowingly
(is_conflict_overridden) or cancel one side. Serializing the check would not
remove the need for the override path, because staff also double-book on
purpose.
"""

from __future__ import annotations

from dataclasses import dataclass, asdict
from datetime import datetime

from ..extensions import db
from ..models import Booking, Order
from ..models.rentals import BLOCKING_BOOKING_STATUSES
from rentdesk.time_utils import to_utc_naive, to_utc_z


@dataclass(frozen=True)
class BookingConflict:
    """Display-ready reference to an overlapping booking."""
    booking_id: int
    order_id: int
    customer_name: str
    from_datetime: str
    to_datetime: str
    status: str

    def to_dict(self) -> dict:
        return asdict(self)


def intervals_overlap(a_from: datetime, a_to: datetime, b_from: datetime, b_to: datetime) -> bool:
    return a_from < b_to and a_to > b_from


def find_overlapping_bookings(
    org_id: int,
    product_id: int,
    from_dt: datetime,
    to_dt: datetime,
    exclude_booking_id: int | None = None,
) -> list[Booking]:
    # Stored intervals are UTC-naive; aware inputs are compared as instants.
    from_dt, to_dt = to_utc_naive(from_dt), to_utc_naive(to_dt)
    query = (
        db.session.query(Booking)
        .filter(
            Booking.org_id == org_id,
            Booking.product_id == product_id,
            Booking.status.in_(BLOCKING_BOOKING_STATUSES),
            Booking.from_datetime < to_dt,
            Booking.to_datetime > from_dt,
        )
    )
    if exclude_booking_id is not None:
        query = query.filter(Booking.id != exclude_booking_id)

    # Stable order so results don't depend on insertion order
    return query.order_by(Booking.from_datetime.asc(), Booking.id.asc()).all()


def detect_conflicts(
    org_id: int,
    product_id: int,
    from_dt: datetime,
    to_dt: datetime,
    exclude_booking_id: int | None = None,
) -> list[BookingConflict]:
    """
    Return active bookings of product_id in org_id overlapping [from_dt, to_dt).

    An empty list means the interval is free (at the time of the read).
    """
    overlapping = find_overlapping_bookings(org_id, product_id, from_dt, to_dt, exclude_booking_id)
    if not overlapping:
        return []

    order_ids = {b.order_id for b in overlapping}
    names = dict(
        db.session.query(Order.id, Order.customer_name)
        .filter(Order.id.in_(order_ids), Order.org_id == org_id)
        .all()
    )

    return [
        BookingConflict(
            booking_id=b.id,
            order_id=b.order_id,
            customer_name=names.get(b.order_id) or "Unknown",
            from_datetime=to_utc_z(b.from_datetime),
            to_datetime=to_utc_z(b.to_datetime),
            status=b.status,
        )
        for b in overlapping
    ]
