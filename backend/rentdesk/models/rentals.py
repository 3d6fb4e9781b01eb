from __future__ import annotations

from ..extensions import db
from rentdesk.time_utils import to_utc_z


# =============================================================================
# STATUS / TYPE CONSTANTS
# =============================================================================

BOOKING_BOOKED = "BOOKED"
BOOKING_ISSUED = "ISSUED"
BOOKING_RETURNED = "RETURNED"
BOOKING_CANCELLED = "CANCELLED"

BOOKING_STATUSES = [BOOKING_BOOKED, BOOKING_ISSUED, BOOKING_RETURNED, BOOKING_CANCELLED]

# Statuses that hold the product for their interval
BLOCKING_BOOKING_STATUSES = [BOOKING_BOOKED, BOOKING_ISSUED]

ORDER_INITIATED = "INITIATED"
ORDER_IN_PROGRESS = "IN_PROGRESS"
ORDER_PARTIALLY_DONE = "PARTIALLY_DONE"
ORDER_FULLY_DONE = "FULLY_DONE"
ORDER_CANCELLED = "CANCELLED"

ORDER_STATUSES = [ORDER_INITIATED, ORDER_IN_PROGRESS, ORDER_PARTIALLY_DONE, ORDER_FULLY_DONE, ORDER_CANCELLED]

PAYMENT_ADVANCE = "ADVANCE"
PAYMENT_RECEIVED = "PAYMENT_RECEIVED"
PAYMENT_RENT_REMAINING = "RENT_REMAINING"  # legacy synonym of PAYMENT_RECEIVED
PAYMENT_REFUND = "REFUND"

INBOUND_PAYMENT_TYPES = [PAYMENT_ADVANCE, PAYMENT_RECEIVED, PAYMENT_RENT_REMAINING]
PAYMENT_TYPES = INBOUND_PAYMENT_TYPES + [PAYMENT_REFUND]


class Order(db.Model):
    """
    Customer transaction grouping one or more bookings.

    DERIVED FIELDS: total_amount_cents, total_received_cents and
    remaining_amount_cents are written only by the order aggregator
    (aggregation_service.recompute_order) from the order's non-cancelled bookings.
    Callers never set them directly.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_org_status", "org_id", "status"),
        db.Index("ix_orders_org_created", "org_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)

    customer_name = db.Column(db.String(200), nullable=False)
    customer_phone = db.Column(db.String(32), nullable=True)

    status = db.Column(db.String(16), nullable=False, default=ORDER_INITIATED, index=True)

    # Derived totals (all amounts in cents)
    total_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_received_cents = db.Column(db.Integer, nullable=False, default=0)
    remaining_amount_cents = db.Column(db.Integer, nullable=False, default=0)

    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_by = db.Column(db.String(120), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    organization = db.relationship("Organization", backref=db.backref("orders", lazy=True))
    # Creation order is display order
    bookings = db.relationship("Booking", back_populates="order", order_by="Booking.id", lazy=True)
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def booking_ids(self) -> list[int]:
        return [b.id for b in self.bookings]

    def __repr__(self) -> str:
        return f"<Order id={self.id} status={self.status} org_id={self.org_id}>"

    def to_dict(self, include_bookings: bool = False) -> dict:
        data = {
            "id": self.id,
            "org_id": self.org_id,
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "status": self.status,
            "total_amount_cents": self.total_amount_cents,
            "total_received_cents": self.total_received_cents,
            "remaining_amount_cents": self.remaining_amount_cents,
            "booking_ids": self.booking_ids,
            "cancelled_at": to_utc_z(self.cancelled_at),
            "cancelled_by": self.cancelled_by,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_bookings:
            data["bookings"] = [b.to_dict() for b in self.bookings]
        return data


class Booking(db.Model):
    """
    One rental of one product for one [from, to) interval inside an order.

    LIFECYCLE:
        BOOKED -> ISSUED -> RETURNED
        BOOKED -> CANCELLED

    MONEY: decided_rent_cents is the negotiated price. remaining_amount_cents
    is kept equal to decided_rent - inbound payments + refunds (see
    ledger_service). The payments list is append-only; corrections are new
    entries. A cancelled booking keeps its payment history for audit.
    """
    __tablename__ = "bookings"
    __table_args__ = (
        # Conflict detection: org + product + interval
        db.Index("ix_bookings_org_product_interval", "org_id", "product_id", "from_datetime", "to_datetime"),
        db.Index("ix_bookings_org_status", "org_id", "status"),
        db.CheckConstraint("to_datetime > from_datetime", name="ck_bookings_interval"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=True)

    from_datetime = db.Column(db.DateTime(timezone=True), nullable=False)
    to_datetime = db.Column(db.DateTime(timezone=True), nullable=False)

    # Snapshot of product.default_rent_cents at creation; never changes
    product_default_rent_cents = db.Column(db.Integer, nullable=False)
    decided_rent_cents = db.Column(db.Integer, nullable=False)
    advance_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    remaining_amount_cents = db.Column(db.Integer, nullable=False)
    # Owed back to the customer after cancellation but not yet paid out
    pending_refund_cents = db.Column(db.Integer, nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default=BOOKING_BOOKED, index=True)
    is_conflict_overridden = db.Column(db.Boolean, nullable=False, default=False)
    additional_items_description = db.Column(db.String(1000), nullable=True)

    issued_at = db.Column(db.DateTime(timezone=True), nullable=True)
    returned_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    order = db.relationship("Order", back_populates="bookings")
    product = db.relationship("Product")
    category = db.relationship("Category")
    payments = db.relationship(
        "BookingPayment",
        back_populates="booking",
        order_by="BookingPayment.id",
        lazy=True,
    )
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Booking id={self.id} order_id={self.order_id} product_id={self.product_id} status={self.status}>"

    def to_dict(self, include_payments: bool = True) -> dict:
        data = {
            "id": self.id,
            "org_id": self.org_id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "category_id": self.category_id,
            "from_datetime": to_utc_z(self.from_datetime),
            "to_datetime": to_utc_z(self.to_datetime),
            "product_default_rent_cents": self.product_default_rent_cents,
            "decided_rent_cents": self.decided_rent_cents,
            "advance_amount_cents": self.advance_amount_cents,
            "remaining_amount_cents": self.remaining_amount_cents,
            "pending_refund_cents": self.pending_refund_cents,
            "status": self.status,
            "is_conflict_overridden": self.is_conflict_overridden,
            "additional_items_description": self.additional_items_description,
            "issued_at": to_utc_z(self.issued_at),
            "returned_at": to_utc_z(self.returned_at),
            "cancelled_at": to_utc_z(self.cancelled_at),
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_payments:
            data["payments"] = [p.to_dict() for p in self.payments]
        return data


class BookingPayment(db.Model):
    """
    Append-only ledger of money movements on a booking.

    TYPES:
    - ADVANCE: Paid at (or before) booking time
    - PAYMENT_RECEIVED: Paid on issue/return or collected later
      (RENT_REMAINING is the legacy name for the same thing)
    - REFUND: Money returned to the customer or transferred to another booking

    amount_cents is always a positive magnitude; REFUND is outbound by type.

    IMMUTABLE: Records are never updated or deleted.
    """
    __tablename__ = "booking_payments"
    __table_args__ = (
        db.Index("ix_booking_payments_booking_occurred", "booking_id", "occurred_at"),
        db.CheckConstraint("amount_cents > 0", name="ck_booking_payments_amount_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    booking_id = db.Column(db.Integer, db.ForeignKey("bookings.id"), nullable=False, index=True)

    payment_type = db.Column(db.String(24), nullable=False, index=True)
    amount_cents = db.Column(db.Integer, nullable=False)
    note = db.Column(db.String(500), nullable=True)

    # Actor label (API token label or CLI user)
    recorded_by = db.Column(db.String(120), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    booking = db.relationship("Booking", back_populates="payments")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "booking_id": self.booking_id,
            "payment_type": self.payment_type,
            "amount_cents": self.amount_cents,
            "note": self.note,
            "recorded_by": self.recorded_by,
            "occurred_at": to_utc_z(self.occurred_at),
        }
