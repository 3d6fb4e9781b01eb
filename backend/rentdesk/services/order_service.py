# Overview: Order operations; create/read/update orders, order-level payments and whole-order cancellation.

"""
Order Service

An order owns its bookings; its money fields are never written here
directly, only through recompute_order (aggregation_service) after the
booking-level changes of the same transaction.

- create_order: optional initial bookings, all-or-nothing
- collect_order_payment: one payment spread over bookings with an
  outstanding balance, proportionally to decided rent
- cancel_order: every active booking must be BOOKED; refund split
  proportionally to what each booking was paid
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import or_

from ..extensions import db
from ..errors import InvalidStateTransitionError, OverpaymentError
from ..models import Order
from ..phone import normalize_phone
from ..models.rentals import (
    BLOCKING_BOOKING_STATUSES,
    BOOKING_BOOKED,
    ORDER_CANCELLED,
    ORDER_INITIATED,
    ORDER_STATUSES,
    PAYMENT_ADVANCE,
    PAYMENT_RECEIVED,
)
from ..validation import ValidationError, check_amount
from . import ledger_service
from .aggregation_service import active_bookings, recompute_order
from .booking_service import build_booking, create_booking, load_order
from .concurrency import run_atomic
from .pagination import paginate
from .refund_service import apply_booking_cancellation, plan_order_cancellation
from rentdesk.time_utils import utcnow


ORDER_MUTABLE_FIELDS = {"customer_name", "customer_phone"}


def _clean_customer_name(value) -> str:
    name = (value or "").strip()
    if not name:
        raise ValidationError("customer_name is required")
    return name


def _require_not_cancelled(order: Order) -> None:
    if order.cancelled_at is not None:
        raise InvalidStateTransitionError(
            "Order is cancelled",
            details={"order_id": order.id, "status": order.status},
        )


def create_order(
    org_id: int,
    customer_name: str,
    customer_phone: str | None = None,
    bookings: list[dict] | None = None,
    *,
    actor: str | None = None,
) -> Order:
    """
    Create an order, optionally with its first bookings.

    Each item of bookings holds build_booking keyword arguments
    (product_id, from_dt, to_dt, decided_rent_cents, ...). If any of them
    fails (conflict, inactive product, ...) nothing is saved.
    """
    name = _clean_customer_name(customer_name)
    phone = normalize_phone(customer_phone)

    def _op():
        order = Order(
            org_id=org_id,
            customer_name=name,
            customer_phone=phone,
            status=ORDER_INITIATED,
            total_amount_cents=0,
            total_received_cents=0,
            remaining_amount_cents=0,
        )
        db.session.add(order)

        for item in bookings or []:
            build_booking(order, actor=actor, **item)

        recompute_order(order)
        return order

    order = run_atomic(_op)
    current_app.logger.info(
        "Order created: order_id=%s org_id=%s bookings=%s actor=%s",
        order.id, org_id, len(order.bookings), actor,
    )
    return order


def get_order(order_id: int, org_id: int) -> Order:
    return load_order(order_id, org_id)


def list_orders(
    org_id: int,
    *,
    status: str | None = None,
    search: str | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    query = db.session.query(Order).filter(Order.org_id == org_id)

    if status is not None:
        if status not in ORDER_STATUSES:
            raise ValidationError(f"Invalid status: {status}. Must be one of {ORDER_STATUSES}")
        query = query.filter(Order.status == status)

    if search:
        term = f"%{search.strip()}%"
        query = query.filter(or_(Order.customer_name.ilike(term), Order.customer_phone.ilike(term)))

    query = query.order_by(Order.created_at.desc(), Order.id.desc())
    return paginate(query, page=page, per_page=per_page)


def update_order(order_id: int, org_id: int, patch: dict) -> Order:
    """Edit customer details. Derived totals and status are not writable."""
    unknown = sorted(k for k in patch if k not in ORDER_MUTABLE_FIELDS)
    if unknown:
        raise ValidationError(f"Field not allowed: {', '.join(unknown)}")

    def _op():
        order = load_order(order_id, org_id, lock=True)
        _require_not_cancelled(order)

        if "customer_name" in patch:
            order.customer_name = _clean_customer_name(patch["customer_name"])
        if "customer_phone" in patch:
            order.customer_phone = normalize_phone(patch["customer_phone"])
        return order

    return run_atomic(_op)


def add_booking_to_order(order_id: int, org_id: int, *, actor: str | None = None, **booking_fields):
    """Thin wrapper over booking_service.create_booking for the order routes."""
    return create_booking(org_id, order_id, actor=actor, **booking_fields)


def collect_order_payment(
    order_id: int,
    org_id: int,
    amount_cents: int,
    note: str | None = None,
    *,
    actor: str | None = None,
) -> Order:
    """
    Spread one payment over the order's BOOKED/ISSUED bookings that still
    owe money, proportionally to decided rent and capped by each balance.

    BOOKED bookings receive it as ADVANCE (and their advance grows); ISSUED
    bookings as PAYMENT_RECEIVED.

    Raises:
        OverpaymentError: amount above the order's outstanding total
    """
    check_amount(amount_cents, "amount_cents", positive=True)

    def _op():
        order = load_order(order_id, org_id, lock=True)
        _require_not_cancelled(order)

        payable = [
            b for b in order.bookings
            if b.status in BLOCKING_BOOKING_STATUSES and ledger_service.headroom(b) > 0
        ]
        caps = [ledger_service.headroom(b) for b in payable]
        outstanding = sum(caps)
        if amount_cents > outstanding:
            raise OverpaymentError(
                f"Payment amount ({amount_cents}) exceeds order outstanding amount ({outstanding})",
                details={
                    "order_id": order.id,
                    "amount_cents": amount_cents,
                    "remaining_amount_cents": outstanding,
                },
            )

        shares = ledger_service.allocate_proportionally(
            amount_cents,
            weights=[b.decided_rent_cents for b in payable],
            caps=caps,
        )
        for booking, share in zip(payable, shares):
            if share <= 0:
                continue
            if booking.status == BOOKING_BOOKED:
                ledger_service.append_entry(booking, PAYMENT_ADVANCE, share, note=note or "Order payment", actor=actor)
                booking.advance_amount_cents += share
            else:
                ledger_service.append_entry(booking, PAYMENT_RECEIVED, share, note=note or "Order payment", actor=actor)

        recompute_order(order)
        return order

    return run_atomic(_op)


def cancel_order(
    order_id: int,
    org_id: int,
    *,
    should_transfer: bool = False,
    transfers: list[tuple[int, int]] | None = None,
    should_refund: bool = True,
    refund_amount_cents: int | None = None,
    note: str | None = None,
    actor: str | None = None,
) -> Order:
    """
    Cancel an order and every active booking in it.

    Refund (default: everything paid) is split over bookings proportionally
    to their net paid; the unrefunded part of each stays as that booking's
    pending refund.
    """
    def _op():
        order = load_order(order_id, org_id, lock=True)
        if order.cancelled_at is not None or order.status == ORDER_CANCELLED:
            raise InvalidStateTransitionError(
                "Order is already cancelled",
                details={"order_id": order.id},
            )

        bookings = active_bookings(order.bookings)
        plans = plan_order_cancellation(
            bookings,
            should_transfer=should_transfer,
            transfers=transfers,
            should_refund=should_refund,
            refund_amount_cents=refund_amount_cents,
        )
        for booking, plan in zip(bookings, plans):
            apply_booking_cancellation(booking, plan, note=note, actor=actor)

        order.cancelled_at = utcnow()
        order.cancelled_by = actor
        recompute_order(order)

        current_app.logger.info(
            "Order cancelled: order_id=%s org_id=%s bookings=%s refund_cents=%s pending_cents=%s actor=%s",
            order.id,
            org_id,
            len(bookings),
            sum(p.refund_cents for p in plans),
            sum(p.pending_refund_cents for p in plans),
            actor,
        )
        return order

    return run_atomic(_op)
