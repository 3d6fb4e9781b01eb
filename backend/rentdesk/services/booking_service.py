# Overview: Booking state machine; every status transition and the ledger writes it causes.

"""
Booking State Machine

LIFECYCLE:
    BOOKED -> ISSUED -> RETURNED
    BOOKED -> CANCELLED

Every operation:
1. Takes org_id (and actor) explicitly; a booking, order, product or category
   of another organization is reported as NotFoundError.
2. Runs as one transaction (run_atomic). The order row is locked before its
   bookings (lock_for_update); both carry a version counter.
3. Gates create/update/issue on the conflict detector. Overlaps raise
   ConflictError unless override_conflicts=True, which permanently marks the
   booking is_conflict_overridden.
4. Writes money movements only through ledger_service.append_entry.
5. Recomputes the parent order (aggregation_service) before commit.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta

from flask import current_app

from ..extensions import db
from ..errors import (
    ConflictError,
    InvalidStateTransitionError,
    NotFoundError,
    OverpaymentError,
)
from ..models import Booking, Order
from ..models.rentals import (
    BLOCKING_BOOKING_STATUSES,
    BOOKING_BOOKED,
    BOOKING_ISSUED,
    BOOKING_RETURNED,
    BOOKING_STATUSES,
    ORDER_CANCELLED,
    PAYMENT_ADVANCE,
    PAYMENT_RECEIVED,
    PAYMENT_REFUND,
)
from ..validation import ValidationError, check_amount, require_interval
from .aggregation_service import recompute_order
from .concurrency import lock_for_update, run_atomic
from .conflict_service import detect_conflicts
from .ledger_service import append_entry, canonical_payment_type, refresh_balance
from .pagination import paginate
from .products_service import get_assignable_category, get_bookable_product, get_product
from rentdesk.time_utils import to_utc_naive, utcnow


BOOKING_PATCH_FIELDS = {
    "product_id",
    "category_id",
    "from_datetime",
    "to_datetime",
    "decided_rent_cents",
    "advance_amount_cents",
    "additional_items_description",
}


# =============================================================================
# LOOKUPS
# =============================================================================

def load_booking(booking_id: int, org_id: int, *, lock: bool = False) -> Booking:
    query = db.session.query(Booking).filter_by(id=booking_id, org_id=org_id)
    if lock:
        query = lock_for_update(query)
    booking = query.first()
    if not booking:
        raise NotFoundError("Booking not found", details={"booking_id": booking_id})
    return booking


def load_order(order_id: int, org_id: int, *, lock: bool = False) -> Order:
    query = db.session.query(Order).filter_by(id=order_id, org_id=org_id)
    if lock:
        query = lock_for_update(query)
    order = query.first()
    if not order:
        raise NotFoundError("Order not found", details={"order_id": order_id})
    return order


def load_booking_for_write(booking_id: int, org_id: int) -> Booking:
    """
    Lock the parent order, then the booking.

    Order-level operations lock the order before its bookings, so every
    booking write takes the locks in the same order.
    """
    order_id = (
        db.session.query(Booking.order_id)
        .filter_by(id=booking_id, org_id=org_id)
        .scalar()
    )
    if order_id is None:
        raise NotFoundError("Booking not found", details={"booking_id": booking_id})
    load_order(order_id, org_id, lock=True)
    return load_booking(booking_id, org_id, lock=True)


def get_booking(booking_id: int, org_id: int) -> Booking:
    return load_booking(booking_id, org_id)


def list_bookings(
    org_id: int,
    *,
    status: str | None = None,
    product_id: int | None = None,
    order_id: int | None = None,
    window_from: datetime | None = None,
    window_to: datetime | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """
    Tenant-scoped booking listing.

    window_from/window_to select bookings whose interval overlaps the window
    (half-open, same rule as conflict detection).
    """
    query = db.session.query(Booking).filter(Booking.org_id == org_id)

    if status is not None:
        if status not in BOOKING_STATUSES:
            raise ValidationError(f"Invalid status: {status}. Must be one of {BOOKING_STATUSES}")
        query = query.filter(Booking.status == status)
    if product_id is not None:
        query = query.filter(Booking.product_id == product_id)
    if order_id is not None:
        query = query.filter(Booking.order_id == order_id)
    if window_from is not None:
        window_from = to_utc_naive(window_from)
    if window_to is not None:
        window_to = to_utc_naive(window_to)
    if window_from is not None and window_to is not None:
        require_interval(window_from, window_to)
    if window_to is not None:
        query = query.filter(Booking.from_datetime < window_to)
    if window_from is not None:
        query = query.filter(Booking.to_datetime > window_from)

    query = query.order_by(Booking.from_datetime.asc(), Booking.id.asc())
    return paginate(query, page=page, per_page=per_page)


def list_product_bookings(
    product_id: int,
    org_id: int,
    *,
    on_date: date | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """
    Booking history of one product, in every status.

    on_date narrows it to bookings touching that UTC day. Inactive products
    keep their history.
    """
    product = get_product(product_id, org_id)

    window_from = window_to = None
    if on_date is not None:
        window_from = datetime.combine(on_date, time.min)
        window_to = window_from + timedelta(days=1)

    return list_bookings(
        org_id,
        product_id=product.id,
        window_from=window_from,
        window_to=window_to,
        page=page,
        per_page=per_page,
    )


# =============================================================================
# INTERNAL HELPERS
# =============================================================================

def _require_status(booking: Booking, allowed: list[str], action: str) -> None:
    if booking.status not in allowed:
        raise InvalidStateTransitionError(
            f"Cannot {action} booking with status {booking.status}",
            details={
                "booking_id": booking.id,
                "status": booking.status,
                "allowed_statuses": list(allowed),
            },
        )


def _gate_conflicts(
    org_id: int,
    product_id: int,
    from_dt: datetime,
    to_dt: datetime,
    *,
    exclude_booking_id: int | None,
    override: bool,
    actor: str | None,
) -> bool:
    """
    Run the conflict detector for a write.

    Returns True when overlaps exist and the caller overrode them, False when
    the interval is free. Raises ConflictError otherwise.
    """
    conflicts = detect_conflicts(org_id, product_id, from_dt, to_dt, exclude_booking_id=exclude_booking_id)
    if not conflicts:
        return False

    if not override:
        raise ConflictError(
            "Product is already booked for an overlapping period",
            conflicts=[c.to_dict() for c in conflicts],
        )

    current_app.logger.warning(
        "Booking conflict overridden: org_id=%s product_id=%s booking_id=%s overlapping=%s actor=%s",
        org_id,
        product_id,
        exclude_booking_id,
        [c.booking_id for c in conflicts],
        actor,
    )
    return True


def _require_open_order(order: Order) -> None:
    if order.cancelled_at is not None or order.status == ORDER_CANCELLED:
        raise InvalidStateTransitionError(
            "Cannot add bookings to a cancelled order",
            details={"order_id": order.id},
        )


def build_booking(
    order: Order,
    *,
    product_id: int,
    from_dt: datetime,
    to_dt: datetime,
    decided_rent_cents: int,
    advance_amount_cents: int = 0,
    category_id: int | None = None,
    additional_items_description: str | None = None,
    override_conflicts: bool = False,
    actor: str | None = None,
) -> Booking:
    """
    Create a BOOKED booking inside an already-open transaction.

    Shared by create_booking and order creation with initial bookings; the
    caller recomputes the order and commits.
    """
    org_id = order.org_id
    from_dt, to_dt = to_utc_naive(from_dt), to_utc_naive(to_dt)
    require_interval(from_dt, to_dt)
    check_amount(decided_rent_cents, "decided_rent_cents")
    check_amount(advance_amount_cents or 0, "advance_amount_cents")
    advance_amount_cents = advance_amount_cents or 0

    if advance_amount_cents > decided_rent_cents:
        raise OverpaymentError(
            f"Advance amount ({advance_amount_cents}) cannot exceed decided rent ({decided_rent_cents})",
            details={
                "advance_amount_cents": advance_amount_cents,
                "decided_rent_cents": decided_rent_cents,
            },
        )

    product = get_bookable_product(product_id, org_id)
    if category_id is not None:
        get_assignable_category(category_id, org_id)
    else:
        category_id = product.category_id

    overridden = _gate_conflicts(
        org_id,
        product.id,
        from_dt,
        to_dt,
        exclude_booking_id=None,
        override=override_conflicts,
        actor=actor,
    )

    booking = Booking(
        org_id=org_id,
        product_id=product.id,
        category_id=category_id,
        from_datetime=from_dt,
        to_datetime=to_dt,
        product_default_rent_cents=product.default_rent_cents,
        decided_rent_cents=decided_rent_cents,
        advance_amount_cents=advance_amount_cents,
        remaining_amount_cents=decided_rent_cents,
        pending_refund_cents=0,
        status=BOOKING_BOOKED,
        is_conflict_overridden=overridden,
        additional_items_description=additional_items_description,
    )
    order.bookings.append(booking)
    db.session.add(booking)

    if advance_amount_cents > 0:
        append_entry(booking, PAYMENT_ADVANCE, advance_amount_cents, note="Advance at booking", actor=actor)
    else:
        refresh_balance(booking)

    return booking


# =============================================================================
# TRANSITIONS
# =============================================================================

def create_booking(
    org_id: int,
    order_id: int,
    product_id: int,
    from_dt: datetime,
    to_dt: datetime,
    decided_rent_cents: int,
    advance_amount_cents: int = 0,
    *,
    category_id: int | None = None,
    additional_items_description: str | None = None,
    override_conflicts: bool = False,
    actor: str | None = None,
) -> Booking:
    """
    Create a booking (-> BOOKED) inside an existing order.

    Raises:
        NotFoundError: order/product/category not in org_id
        InvalidStateTransitionError: order cancelled or product inactive
        ConflictError: overlapping BOOKED/ISSUED bookings and no override
        OverpaymentError: advance above decided rent
    """
    def _op():
        order = load_order(order_id, org_id, lock=True)
        _require_open_order(order)

        booking = build_booking(
            order,
            product_id=product_id,
            from_dt=from_dt,
            to_dt=to_dt,
            decided_rent_cents=decided_rent_cents,
            advance_amount_cents=advance_amount_cents,
            category_id=category_id,
            additional_items_description=additional_items_description,
            override_conflicts=override_conflicts,
            actor=actor,
        )
        recompute_order(order)
        return booking

    return run_atomic(_op)


def update_booking(
    booking_id: int,
    org_id: int,
    patch: dict,
    *,
    override_conflicts: bool = False,
    actor: str | None = None,
) -> Booking:
    """
    Edit a BOOKED booking.

    Product or interval changes re-run the conflict detector against the new
    values with the booking itself excluded. Advance changes append a
    correcting ADVANCE (increase) or REFUND (decrease) entry; existing
    entries are never edited.
    """
    unknown = sorted(k for k in patch if k not in BOOKING_PATCH_FIELDS)
    if unknown:
        raise ValidationError(f"Field not allowed: {', '.join(unknown)}")

    def _op():
        booking = load_booking_for_write(booking_id, org_id)
        _require_status(booking, [BOOKING_BOOKED], "update")

        product_id = patch.get("product_id", booking.product_id)
        from_dt = patch.get("from_datetime", booking.from_datetime)
        to_dt = patch.get("to_datetime", booking.to_datetime)
        if product_id is None or from_dt is None or to_dt is None:
            raise ValidationError("product_id, from_datetime and to_datetime cannot be null")
        from_dt, to_dt = to_utc_naive(from_dt), to_utc_naive(to_dt)
        require_interval(from_dt, to_dt)

        product_changed = product_id != booking.product_id
        interval_changed = from_dt != booking.from_datetime or to_dt != booking.to_datetime

        product = None
        if product_changed:
            product = get_bookable_product(product_id, org_id)

        if product_changed or interval_changed:
            overridden = _gate_conflicts(
                org_id,
                product_id,
                from_dt,
                to_dt,
                exclude_booking_id=booking.id,
                override=override_conflicts,
                actor=actor,
            )
            # Once set, the audit flag stays set
            if overridden:
                booking.is_conflict_overridden = True

        if "category_id" in patch:
            if patch["category_id"] is not None:
                get_assignable_category(patch["category_id"], org_id)
            booking.category_id = patch["category_id"]
        elif product is not None:
            booking.category_id = product.category_id

        booking.product_id = product_id
        booking.from_datetime = from_dt
        booking.to_datetime = to_dt

        if "decided_rent_cents" in patch:
            booking.decided_rent_cents = check_amount(patch["decided_rent_cents"], "decided_rent_cents")

        if "advance_amount_cents" in patch:
            new_advance = check_amount(patch["advance_amount_cents"], "advance_amount_cents")
            if new_advance > booking.decided_rent_cents:
                raise OverpaymentError(
                    f"Advance amount ({new_advance}) cannot exceed decided rent ({booking.decided_rent_cents})",
                    details={"booking_id": booking.id},
                )
            delta = new_advance - booking.advance_amount_cents
            if delta > 0:
                append_entry(booking, PAYMENT_ADVANCE, delta, note="Advance increased", actor=actor)
            elif delta < 0:
                append_entry(booking, PAYMENT_REFUND, -delta, note="Advance reduced", actor=actor)
            booking.advance_amount_cents = new_advance

        if "additional_items_description" in patch:
            booking.additional_items_description = patch["additional_items_description"]

        if refresh_balance(booking) < 0:
            raise OverpaymentError(
                "Decided rent cannot be lower than the amount already paid",
                details={
                    "booking_id": booking.id,
                    "decided_rent_cents": booking.decided_rent_cents,
                    "paid_cents": booking.decided_rent_cents - booking.remaining_amount_cents,
                },
            )

        recompute_order(booking.order)
        return booking

    return run_atomic(_op)


def issue_booking(
    booking_id: int,
    org_id: int,
    payment_amount_cents: int | None = None,
    note: str | None = None,
    *,
    override_conflicts: bool = False,
    actor: str | None = None,
) -> Booking:
    """
    BOOKED -> ISSUED, optionally recording a PAYMENT_RECEIVED entry.

    The product physically leaves here, so overlaps are checked again. A
    booking already marked is_conflict_overridden has had its overlap
    arbitrated and is not re-gated.
    """
    def _op():
        booking = load_booking_for_write(booking_id, org_id)
        _require_status(booking, [BOOKING_BOOKED], "issue")

        if not booking.is_conflict_overridden:
            overridden = _gate_conflicts(
                org_id,
                booking.product_id,
                booking.from_datetime,
                booking.to_datetime,
                exclude_booking_id=booking.id,
                override=override_conflicts,
                actor=actor,
            )
            if overridden:
                booking.is_conflict_overridden = True

        if payment_amount_cents:
            check_amount(payment_amount_cents, "payment_amount_cents", positive=True)
            append_entry(booking, PAYMENT_RECEIVED, payment_amount_cents, note=note or "Payment on issue", actor=actor)

        booking.status = BOOKING_ISSUED
        booking.issued_at = utcnow()

        recompute_order(booking.order)
        return booking

    return run_atomic(_op)


def return_booking(
    booking_id: int,
    org_id: int,
    payment_amount_cents: int | None = None,
    note: str | None = None,
    *,
    actor: str | None = None,
) -> Booking:
    """ISSUED -> RETURNED, optionally recording a PAYMENT_RECEIVED entry."""
    def _op():
        booking = load_booking_for_write(booking_id, org_id)
        _require_status(booking, [BOOKING_ISSUED], "return")

        if payment_amount_cents:
            check_amount(payment_amount_cents, "payment_amount_cents", positive=True)
            append_entry(booking, PAYMENT_RECEIVED, payment_amount_cents, note=note or "Payment on return", actor=actor)

        booking.status = BOOKING_RETURNED
        booking.returned_at = utcnow()

        recompute_order(booking.order)
        return booking

    return run_atomic(_op)


def cancel_booking(
    booking_id: int,
    org_id: int,
    refund_amount_cents: int | None = None,
    *,
    should_refund: bool = True,
    transfers: list[tuple[int, int]] | None = None,
    note: str | None = None,
    actor: str | None = None,
) -> Booking:
    """
    BOOKED -> CANCELLED.

    Money already paid is moved out as a cash refund, as transfers to sibling
    bookings of the same order, or left as pending_refund_cents. The whole
    breakdown is validated before the first entry is written.

    Raises:
        InsufficientFundsError: refund + transfers exceed net paid
        OverpaymentError: a transfer target cannot absorb its amount
    """
    from .refund_service import apply_booking_cancellation, load_sibling_bookings, plan_booking_cancellation

    def _op():
        booking = load_booking_for_write(booking_id, org_id)
        _require_status(booking, [BOOKING_BOOKED], "cancel")

        siblings = load_sibling_bookings(booking, lock=True)
        plan = plan_booking_cancellation(
            booking,
            siblings,
            transfers=transfers or [],
            should_refund=should_refund,
            refund_amount_cents=refund_amount_cents,
        )
        apply_booking_cancellation(booking, plan, note=note, actor=actor)

        recompute_order(booking.order)

        current_app.logger.info(
            "Booking cancelled: booking_id=%s org_id=%s refund_cents=%s transferred_cents=%s pending_cents=%s actor=%s",
            booking.id,
            org_id,
            plan.refund_cents,
            plan.transferred_cents,
            plan.pending_refund_cents,
            actor,
        )
        return booking

    return run_atomic(_op)


def add_payment(
    booking_id: int,
    org_id: int,
    payment_type: str,
    amount_cents: int,
    note: str | None = None,
    *,
    actor: str | None = None,
) -> Booking:
    """
    Append a ledger entry to a BOOKED or ISSUED booking.

    Inbound entries (ADVANCE, PAYMENT_RECEIVED, RENT_REMAINING) are rejected
    with OverpaymentError beyond the remaining balance; REFUND is rejected
    with InsufficientFundsError beyond net paid. ADVANCE entries also raise
    advance_amount_cents; a REFUND on a BOOKED booking lowers it by as much
    as it can, so later advance edits start from what is still held.
    """
    payment_type = canonical_payment_type(payment_type)
    check_amount(amount_cents, "amount_cents", positive=True)

    def _op():
        booking = load_booking_for_write(booking_id, org_id)
        _require_status(booking, BLOCKING_BOOKING_STATUSES, "add payment to")

        append_entry(booking, payment_type, amount_cents, note=note, actor=actor)
        if payment_type == PAYMENT_ADVANCE:
            booking.advance_amount_cents += amount_cents
        elif payment_type == PAYMENT_REFUND and booking.status == BOOKING_BOOKED:
            booking.advance_amount_cents -= min(amount_cents, booking.advance_amount_cents)

        recompute_order(booking.order)
        return booking

    return run_atomic(_op)