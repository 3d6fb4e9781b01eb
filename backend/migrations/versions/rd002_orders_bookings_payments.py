"""Rentals: orders, bookings and the append-only booking payment ledger

1. 'orders' with derived totals (cents) and a version counter
2. 'bookings' with half-open interval [from, to), CHECK to > from, and an
   (org, product, from, to) index for conflict detection
3. 'booking_payments' (positive amounts only; never updated or deleted)

Revision ID: rd002_rentals
Revises: rd001_tenancy_catalog
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'rd002_rentals'
down_revision = 'rd001_tenancy_catalog'
branch_labels = None
depends_on = None


def upgrade():
    op.create_table('orders',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('org_id', sa.Integer(), nullable=False),
        sa.Column('customer_name', sa.String(length=200), nullable=False),
        sa.Column('customer_phone', sa.String(length=32), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='INITIATED'),
        sa.Column('total_amount_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_received_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('remaining_amount_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_by', sa.String(length=120), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['org_id'], ['organizations.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('orders', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_orders_org_id'), ['org_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_orders_status'), ['status'], unique=False)
        batch_op.create_index('ix_orders_org_status', ['org_id', 'status'], unique=False)
        batch_op.create_index('ix_orders_org_created', ['org_id', 'created_at'], unique=False)

    op.create_table('bookings',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('org_id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('category_id', sa.Integer(), nullable=True),
        sa.Column('from_datetime', sa.DateTime(timezone=True), nullable=False),
        sa.Column('to_datetime', sa.DateTime(timezone=True), nullable=False),
        sa.Column('product_default_rent_cents', sa.Integer(), nullable=False),
        sa.Column('decided_rent_cents', sa.Integer(), nullable=False),
        sa.Column('advance_amount_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('remaining_amount_cents', sa.Integer(), nullable=False),
        sa.Column('pending_refund_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='BOOKED'),
        sa.Column('is_conflict_overridden', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('additional_items_description', sa.String(length=1000), nullable=True),
        sa.Column('issued_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('returned_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint('to_datetime > from_datetime', name='ck_bookings_interval'),
        sa.ForeignKeyConstraint(['org_id'], ['organizations.id'], ),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.ForeignKeyConstraint(['category_id'], ['categories.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('bookings', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_bookings_org_id'), ['org_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_bookings_order_id'), ['order_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_bookings_product_id'), ['product_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_bookings_status'), ['status'], unique=False)
        batch_op.create_index('ix_bookings_org_status', ['org_id', 'status'], unique=False)
        # Conflict detection: org + product + interval
        batch_op.create_index(
            'ix_bookings_org_product_interval',
            ['org_id', 'product_id', 'from_datetime', 'to_datetime'],
            unique=False,
        )

    op.create_table('booking_payments',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('org_id', sa.Integer(), nullable=False),
        sa.Column('booking_id', sa.Integer(), nullable=False),
        sa.Column('payment_type', sa.String(length=24), nullable=False),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.Column('note', sa.String(length=500), nullable=True),
        sa.Column('recorded_by', sa.String(length=120), nullable=True),
        sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint('amount_cents > 0', name='ck_booking_payments_amount_positive'),
        sa.ForeignKeyConstraint(['org_id'], ['organizations.id'], ),
        sa.ForeignKeyConstraint(['booking_id'], ['bookings.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('booking_payments', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_booking_payments_org_id'), ['org_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_booking_payments_booking_id'), ['booking_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_booking_payments_payment_type'), ['payment_type'], unique=False)
        batch_op.create_index(batch_op.f('ix_booking_payments_occurred_at'), ['occurred_at'], unique=False)
        batch_op.create_index('ix_booking_payments_booking_occurred', ['booking_id', 'occurred_at'], unique=False)


def downgrade():
    op.drop_table('booking_payments')
    op.drop_table('bookings')
    op.drop_table('orders')
