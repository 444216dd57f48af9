"""create fulfillment tables

Revision ID: 7c2d4e9a1b3f
Revises:
Create Date: 2025-12-02 10:14:37.512904

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '7c2d4e9a1b3f'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""

    # 1. Suppliers and their scheduling rules
    op.create_table(
        'suppliers',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('phone_number', sa.String(20), nullable=True),
        sa.Column('timezone', sa.String(50), nullable=True),
        sa.Column('is_active', sa.Boolean, server_default=sa.text('true')),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'))
    )

    op.create_table(
        'supplier_scheduling_profiles',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('supplier_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('suppliers.id', ondelete='CASCADE'), nullable=False, unique=True),
        sa.Column('same_day_cutoff', sa.Time, nullable=True),
        sa.Column('min_lead_time_hours', sa.Integer, server_default='0'),
        sa.Column('slot_duration_minutes', sa.Integer, server_default='60'),
        sa.Column('slot_capacity', sa.Integer, nullable=True),
        sa.Column('horizon_days', sa.Integer, nullable=True),
        sa.Column('is_active', sa.Boolean, server_default=sa.text('true')),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'))
    )

    op.create_table(
        'supplier_operating_hours',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('supplier_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('suppliers.id', ondelete='CASCADE'), nullable=False),
        sa.Column('day_of_week', sa.Integer, nullable=False),
        sa.Column('open_time', sa.Time, nullable=False),
        sa.Column('close_time', sa.Time, nullable=False),
        sa.Column('is_closed', sa.Boolean, server_default=sa.text('false')),
        sa.UniqueConstraint('supplier_id', 'day_of_week'),
        sa.CheckConstraint('day_of_week BETWEEN 0 AND 6', name='ck_operating_hours_day_of_week')
    )

    op.create_table(
        'supplier_blackout_dates',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('supplier_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('suppliers.id', ondelete='CASCADE'), nullable=False),
        sa.Column('date', sa.Date, nullable=False),
        sa.Column('reason', sa.String, nullable=True),
        sa.UniqueConstraint('supplier_id', 'date')
    )

    # 2. Orders
    op.create_table(
        'orders',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('order_number', sa.String(50), nullable=False, unique=True),
        sa.Column('supplier_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('suppliers.id'), nullable=False),
        sa.Column('buyer_id', sa.String(100), nullable=False),
        sa.Column('buyer_phone', sa.String(20), nullable=False),
        sa.Column('items', postgresql.JSON, nullable=True),
        sa.Column('pickup_or_delivery', sa.String(20), nullable=False),

        sa.Column('window_mode', sa.String(20), nullable=False, server_default='unassigned'),
        sa.Column('window_start', sa.DateTime(timezone=True), nullable=True),
        sa.Column('window_end', sa.DateTime(timezone=True), nullable=True),
        sa.Column('negotiable_note', sa.Text, nullable=True),

        sa.Column('proposed_window_start', sa.DateTime(timezone=True), nullable=True),
        sa.Column('proposed_window_end', sa.DateTime(timezone=True), nullable=True),
        sa.Column('proposed_by', sa.String(20), nullable=True),
        sa.Column('proposal_status', sa.String(20), nullable=True),

        sa.Column('status', sa.String(30), nullable=False, server_default='created'),
        sa.Column('resolution', sa.String(20), nullable=True),
        sa.Column('completed_by', sa.String(20), nullable=True),
        sa.Column('dispatched_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('delivered_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('confirmed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),

        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()')),

        sa.CheckConstraint(
            "status IN ('created', 'window_confirmed', 'in_transit', 'delivered', 'completed', 'disputed')",
            name='ck_orders_status'
        ),
        sa.CheckConstraint(
            "resolution IS NULL OR resolution IN ('pending', 'confirmed', 'disputed')",
            name='ck_orders_resolution'
        ),
        # A window is either fully fixed or absent
        sa.CheckConstraint(
            "(window_mode = 'fixed') = (window_start IS NOT NULL AND window_end IS NOT NULL)",
            name='ck_orders_fixed_window'
        ),
        # Buyer confirmation and a dispute never coexist
        sa.CheckConstraint(
            "NOT (confirmed_at IS NOT NULL AND resolution = 'disputed')",
            name='ck_orders_single_resolution'
        )
    )

    # Slot capacity counts and the expiry sweep
    op.create_index('ix_orders_supplier_window', 'orders', ['supplier_id', 'window_start'])
    op.create_index('ix_orders_status_delivered_at', 'orders', ['status', 'delivered_at'])

    # 3. Disputes (at most one per order)
    op.create_table(
        'order_disputes',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('order_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('orders.id'), nullable=False, unique=True),
        sa.Column('buyer_phone', sa.String(20), nullable=False),
        sa.Column('issue_category', sa.String(40), nullable=False),
        sa.Column('description', sa.Text, nullable=False),
        sa.Column('photos', postgresql.JSON, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False)
    )

    # 4. Delivery proof (one per order, written with the delivered transition)
    op.create_table(
        'delivery_events',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('gen_random_uuid()')),
        sa.Column('order_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('orders.id'), nullable=False, unique=True),
        sa.Column('recorded_by', sa.String(20), nullable=False),
        sa.Column('delivered_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('photos', postgresql.JSON, nullable=True),
        sa.Column('quantities_delivered', postgresql.JSON, nullable=True),
        sa.Column('is_partial', sa.Boolean, nullable=False, server_default=sa.text('false')),
        sa.Column('notes', sa.Text, nullable=True),
        sa.Column('driver_name', sa.String(255), nullable=True),
        sa.Column('vehicle_info', sa.String(255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False)
    )

    # 5. Status history
    op.create_table(
        'order_status_history',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('order_id', postgresql.UUID(as_uuid=True), sa.ForeignKey('orders.id'), nullable=False),
        sa.Column('old_status', sa.String(30), nullable=True),
        sa.Column('new_status', sa.String(30), nullable=False),
        sa.Column('actor', sa.String(20), nullable=False),
        sa.Column('notes', sa.Text, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False)
    )
    op.create_index('ix_order_status_history_order_id', 'order_status_history', ['order_id'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index('ix_order_status_history_order_id', table_name='order_status_history')
    op.drop_table('order_status_history')
    op.drop_table('delivery_events')
    op.drop_table('order_disputes')

    op.drop_index('ix_orders_status_delivered_at', table_name='orders')
    op.drop_index('ix_orders_supplier_window', table_name='orders')
    op.drop_table('orders')

    op.drop_table('supplier_blackout_dates')
    op.drop_table('supplier_operating_hours')
    op.drop_table('supplier_scheduling_profiles')
    op.drop_table('suppliers')
