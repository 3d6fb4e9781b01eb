"""Category maintenance: description and soft delete

1. 'categories.description' (optional, up to 500 chars)
2. 'categories.is_active' so staff can deactivate and restore categories
   without breaking products or bookings that reference them

Revision ID: rd003_category_maintenance
Revises: rd002_rentals
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'rd003_category_maintenance'
down_revision = 'rd002_rentals'
branch_labels = None
depends_on = None


def upgrade():
    with op.batch_alter_table('categories', schema=None) as batch_op:
        batch_op.add_column(sa.Column('description', sa.String(length=500), nullable=True))
        batch_op.add_column(sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'))
        batch_op.create_index('ix_categories_org_active', ['org_id', 'is_active'], unique=False)


def downgrade():
    with op.batch_alter_table('categories', schema=None) as batch_op:
        batch_op.drop_index('ix_categories_org_active')
        batch_op.drop_column('is_active')
        batch_op.drop_column('description')
