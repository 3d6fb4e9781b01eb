# Overview: Refund calculator; cancellation breakdowns (cash, transfers, pending) for bookings and orders.

"""
Refund Calculator

max_refund(booking) = sum(inbound) - sum(REFUND), the ceiling on any money
moved out of a booking at cancellation.

BOOKING CANCELLATION:
- Transfers: (target_booking_id, amount) pairs. Targets are other,
  non-cancelled bookings of the same order. Each becomes a REFUND on the
  source and a PAYMENT_RECEIVED on the target.
- Cash refund: at most max_refund - transferred. Omitted means "refund the
  rest"; should_refund=False refunds nothing.
- Whatever is neither transferred nor refunded becomes pending_refund_cents,
  paid out later with settle_pending_refund.

ATOMICITY: plan_* functions validate the full breakdown and raise before
anything is written; apply_* only runs on a validated plan.

ORDER CANCELLATION: every booking is being cancelled, so transfers are not
possible. The refund is split across bookings proportionally to what each
one was paid, in whole cents.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from ..extensions import db
from ..errors import InsufficientFundsError, NotFoundError, OverpaymentError
from ..models import Booking
from ..models.rentals import BOOKING_BOOKED, BOOKING_CANCELLED, PAYMENT_RECEIVED, PAYMENT_REFUND
from ..validation import ValidationError, check_amount
from . import ledger_service
from .aggregation_service import active_bookings, recompute_order
from .booking_service import _require_status, load_booking, load_booking_for_write, load_order
from .concurrency import lock_for_update, run_atomic
from rentdesk.time_utils import utcnow


@dataclass
class CancellationPlan:
    """Validated money breakdown for cancelling one booking."""
    booking_id: int
    max_refund_cents: int
    refund_cents: int
    pending_refund_cents: int
    transfers: list[tuple[Booking, int]] = field(default_factory=list)

    @property
    def transferred_cents(self) -> int:
        return sum(amount for _, amount in self.transfers)

    def to_dict(self) -> dict:
        return {
            "booking_id": self.booking_id,
            "max_refund_cents": self.max_refund_cents,
            "transfers": [
                {"booking_id": target.id, "amount_cents": amount}
                for target, amount in self.transfers
            ],
            "transferred_cents": self.transferred_cents,
            "refund_cents": self.refund_cents,
            "pending_refund_cents": self.pending_refund_cents,
        }


def load_sibling_bookings(booking: Booking, *, lock: bool = False) -> list[Booking]:
    """Other bookings of the same order (any status), in creation order."""
    query = (
        db.session.query(Booking)
        .filter(
            Booking.org_id == booking.org_id,
            Booking.order_id == booking.order_id,
            Booking.id != booking.id,
        )
        .order_by(Booking.id.asc())
    )
    if lock:
        query = lock_for_update(query)
    return query.all()


# =============================================================================
# BOOKING CANCELLATION
# =============================================================================

def _resolve_transfers(
    booking: Booking,
    siblings: list[Booking],
    transfers: list[tuple[int, int]],
) -> list[tuple[Booking, int]]:
    """Map requested (booking_id, amount) pairs onto sibling rows, merging duplicates."""
    by_id = {s.id: s for s in siblings}
    merged: dict[int, int] = {}

    for target_id, amount in transfers:
        check_amount(amount, "amount_cents", positive=True)
        if target_id == booking.id:
            raise ValidationError("Cannot transfer a booking's payments to itself")
        target = by_id.get(target_id)
        if target is None:
            raise NotFoundError(
                "Transfer target booking not found in this order",
                details={"booking_id": target_id, "order_id": booking.order_id},
            )
        if target.status == BOOKING_CANCELLED:
            raise ValidationError(
                f"Cannot transfer to cancelled booking {target_id}",
            )
        merged[target_id] = merged.get(target_id, 0) + amount

    return [(by_id[target_id], amount) for target_id, amount in merged.items()]


def plan_booking_cancellation(
    booking: Booking,
    siblings: list[Booking],
    *,
    transfers: list[tuple[int, int]],
    should_refund: bool = True,
    refund_amount_cents: int | None = None,
) -> CancellationPlan:
    """
    Validate a cancellation breakdown without writing anything.

    Raises:
        InsufficientFundsError: transfers or refund exceed what is available
        OverpaymentError: a target booking cannot absorb its transfer
    """
    max_refund = ledger_service.max_refund(booking)
    resolved = _resolve_transfers(booking, siblings, transfers)

    transferred = sum(amount for _, amount in resolved)
    if transferred > max_refund:
        raise InsufficientFundsError(
            f"Transfer total ({transferred}) exceeds maximum refund ({max_refund})",
            details={
                "booking_id": booking.id,
                "transferred_cents": transferred,
                "max_refund_cents": max_refund,
            },
        )

    for target, amount in resolved:
        headroom = ledger_service.headroom(target)
        if amount > headroom:
            raise OverpaymentError(
                f"Transfer of {amount} would overpay booking {target.id} (remaining {max(0, headroom)})",
                details={
                    "booking_id": target.id,
                    "amount_cents": amount,
                    "remaining_amount_cents": max(0, headroom),
                },
            )

    available = max_refund - transferred
    if not should_refund:
        refund = 0
    elif refund_amount_cents is None:
        refund = available
    else:
        refund = check_amount(refund_amount_cents, "refund_amount_cents")
        if refund > available:
            raise InsufficientFundsError(
                f"Refund amount ({refund}) exceeds maximum refund ({available})",
                details={
                    "booking_id": booking.id,
                    "refund_amount_cents": refund,
                    "max_refund_cents": available,
                },
            )

    return CancellationPlan(
        booking_id=booking.id,
        max_refund_cents=max_refund,
        refund_cents=refund,
        pending_refund_cents=available - refund,
        transfers=resolved,
    )


def apply_booking_cancellation(
    booking: Booking,
    plan: CancellationPlan,
    *,
    note: str | None = None,
    actor: str | None = None,
) -> Booking:
    """Write a validated plan: transfer entries, cash refund, pending, status."""
    for target, amount in plan.transfers:
        ledger_service.append_entry(
            booking, PAYMENT_REFUND, amount,
            note=f"Transferred to booking {target.id}", actor=actor,
        )
        ledger_service.append_entry(
            target, PAYMENT_RECEIVED, amount,
            note=f"Transferred from booking {booking.id}", actor=actor,
        )

    if plan.refund_cents > 0:
        ledger_service.append_entry(
            booking, PAYMENT_REFUND, plan.refund_cents,
            note=note or "Cancellation refund", actor=actor,
        )

    booking.pending_refund_cents += plan.pending_refund_cents
    booking.status = BOOKING_CANCELLED
    booking.cancelled_at = utcnow()
    return booking


def suggest_transfers(booking: Booking, siblings: list[Booking]) -> list[tuple[Booking, int]]:
    """Fill each active sibling's outstanding balance in booking order."""
    budget = ledger_service.max_refund(booking)
    suggestions = []
    for sibling in active_bookings(siblings):
        if budget <= 0:
            break
        headroom = ledger_service.headroom(sibling)
        if headroom <= 0:
            continue
        amount = min(budget, headroom)
        suggestions.append((sibling, amount))
        budget -= amount
    return suggestions


def preview_booking_cancellation(booking_id: int, org_id: int) -> dict:
    """
    Read-only cancellation preview: max refund, suggested transfers to
    siblings with outstanding balances, and the cash refund left over.
    """
    booking = load_booking(booking_id, org_id)
    siblings = load_sibling_bookings(booking)

    max_refund = ledger_service.max_refund(booking)
    suggested = suggest_transfers(booking, siblings)
    suggested_total = sum(amount for _, amount in suggested)

    return {
        "booking_id": booking.id,
        "status": booking.status,
        "can_cancel": booking.status == BOOKING_BOOKED,
        "max_refund_cents": max_refund,
        "suggested_transfers": [
            {
                "booking_id": target.id,
                "amount_cents": amount,
                "remaining_amount_cents": target.remaining_amount_cents,
            }
            for target, amount in suggested
        ],
        "suggested_transfer_total_cents": suggested_total,
        "suggested_refund_cents": max_refund - suggested_total,
    }


# =============================================================================
# ORDER CANCELLATION
# =============================================================================

def split_order_refund(bookings: list[Booking], refund_cents: int) -> list[int]:
    """Per-booking refund shares proportional to net paid, never above it."""
    paid = [ledger_service.max_refund(b) for b in bookings]
    return ledger_service.allocate_proportionally(refund_cents, weights=paid, caps=paid)


def plan_order_cancellation(
    bookings: list[Booking],
    *,
    should_transfer: bool = False,
    transfers: list[tuple[int, int]] | None = None,
    should_refund: bool = True,
    refund_amount_cents: int | None = None,
) -> list[CancellationPlan]:
    """
    Validate an order-wide cancellation; bookings are the order's active ones.

    Raises:
        ValidationError: transfers requested
        InvalidStateTransitionError: some booking is not BOOKED
        InsufficientFundsError: refund above total paid
    """
    if should_transfer or transfers:
        raise ValidationError("Transfers are not possible when cancelling the whole order")

    for booking in bookings:
        _require_status(booking, [BOOKING_BOOKED], "cancel")

    total_paid = sum(ledger_service.max_refund(b) for b in bookings)
    if not should_refund:
        refund = 0
    elif refund_amount_cents is None:
        refund = total_paid
    else:
        refund = check_amount(refund_amount_cents, "refund_amount_cents")
        if refund > total_paid:
            raise InsufficientFundsError(
                f"Refund amount ({refund}) exceeds total paid ({total_paid})",
                details={"refund_amount_cents": refund, "max_refund_cents": total_paid},
            )

    shares = split_order_refund(bookings, refund)
    plans = []
    for booking, share in zip(bookings, shares):
        paid = ledger_service.max_refund(booking)
        plans.append(
            CancellationPlan(
                booking_id=booking.id,
                max_refund_cents=paid,
                refund_cents=share,
                pending_refund_cents=paid - share,
            )
        )
    return plans


def preview_order_cancellation(order_id: int, org_id: int, refund_amount_cents: int | None = None) -> dict:
    order = load_order(order_id, org_id)
    bookings = active_bookings(order.bookings)

    total_paid = sum(ledger_service.max_refund(b) for b in bookings)
    refund = total_paid if refund_amount_cents is None else min(
        check_amount(refund_amount_cents, "refund_amount_cents"), total_paid
    )
    shares = split_order_refund(bookings, refund)

    return {
        "order_id": order.id,
        "status": order.status,
        "can_cancel": order.cancelled_at is None and all(b.status == BOOKING_BOOKED for b in bookings),
        "total_paid_cents": total_paid,
        "refund_cents": refund,
        "pending_refund_cents": total_paid - refund,
        "bookings": [
            {
                "booking_id": b.id,
                "status": b.status,
                "paid_cents": ledger_service.max_refund(b),
                "refund_cents": share,
            }
            for b, share in zip(bookings, shares)
        ],
    }


# =============================================================================
# PENDING REFUNDS
# =============================================================================

def settle_pending_refund(
    booking_id: int,
    org_id: int,
    amount_cents: int | None = None,
    note: str | None = None,
    *,
    actor: str | None = None,
) -> Booking:
    """Pay out all (default) or part of a cancelled booking's pending refund."""
    def _op():
        booking = load_booking_for_write(booking_id, org_id)
        pending = booking.pending_refund_cents or 0
        if pending <= 0:
            raise ValidationError("Booking has no pending refund")

        amount = pending if amount_cents is None else check_amount(amount_cents, "amount_cents", positive=True)
        if amount > pending:
            raise InsufficientFundsError(
                f"Amount ({amount}) exceeds pending refund ({pending})",
                details={"booking_id": booking.id, "pending_refund_cents": pending},
            )

        ledger_service.append_entry(
            booking, PAYMENT_REFUND, amount,
            note=note or "Pending refund paid out", actor=actor,
        )
        booking.pending_refund_cents = pending - amount

        recompute_order(booking.order)
        return booking

    return run_atomic(_op)
