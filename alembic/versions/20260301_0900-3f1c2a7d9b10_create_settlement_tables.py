"""create_settlement_tables

Revision ID: 3f1c2a7d9b10
Revises:
Create Date: 2026-03-01 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '3f1c2a7d9b10'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'orders',
        sa.Column('id', sa.String(length=64), nullable=False, comment='Order ID'),
        sa.Column('buyer_id', sa.String(length=100), nullable=False, comment='Buyer reference'),
        sa.Column('shop_id', sa.String(length=100), nullable=False, comment='Shop reference'),
        sa.Column('subtotal', sa.Numeric(precision=15, scale=2), nullable=False),
        sa.Column('tax', sa.Numeric(precision=15, scale=2), nullable=False),
        sa.Column('shipping', sa.Numeric(precision=15, scale=2), nullable=False),
        sa.Column('total', sa.Numeric(precision=15, scale=2), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False, comment='ISO-4217'),
        sa.Column('status', sa.String(length=32), nullable=False,
                  comment='pending/awaiting_payment/paid/shipped/completed/cancelled/refunded'),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('payment_intent_ref', sa.String(length=200), nullable=True),
        sa.Column('payment_ref', sa.String(length=200), nullable=True),
        sa.Column('refunded_amount', sa.Numeric(precision=15, scale=2), nullable=False),
        sa.Column('cancel_reason', sa.Text(), nullable=True),
        sa.Column('tracking_ref', sa.String(length=200), nullable=True),
        sa.Column('transitions', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_orders_buyer_id', 'orders', ['buyer_id'])
    op.create_index('ix_orders_shop_id', 'orders', ['shop_id'])
    op.create_index('ix_orders_status', 'orders', ['status'])
    op.create_index('ix_orders_payment_intent_ref', 'orders', ['payment_intent_ref'])
    op.create_index('ix_orders_payment_ref', 'orders', ['payment_ref'])
    op.create_index('ix_orders_created_at', 'orders', ['created_at'])
    op.create_index('ix_orders_shop_status', 'orders', ['shop_id', 'status'])

    op.create_table(
        'order_items',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('order_id', sa.String(length=64), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('product_ref', sa.String(length=200), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price', sa.Numeric(precision=15, scale=2), nullable=False, comment='Snapshot price'),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_order_items_order_id', 'order_items', ['order_id'])

    op.create_table(
        'order_refunds',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('refund_id', sa.String(length=64), nullable=False),
        sa.Column('order_id', sa.String(length=64), nullable=False),
        sa.Column('amount', sa.Numeric(precision=15, scale=2), nullable=False),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('idempotency_key', sa.String(length=200), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('refund_id'),
        sa.UniqueConstraint('order_id', 'idempotency_key', name='uq_order_refunds_order_key'),
    )
    op.create_index('ix_order_refunds_order_id', 'order_refunds', ['order_id'])

    op.create_table(
        'order_events',
        sa.Column('seq', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('event_id', sa.String(length=64), nullable=False),
        sa.Column('order_id', sa.String(length=64), nullable=False),
        sa.Column('event_type', sa.String(length=64), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.PrimaryKeyConstraint('seq'),
        sa.UniqueConstraint('event_id'),
        sa.UniqueConstraint('order_id', 'version', name='uq_order_events_order_version'),
    )
    op.create_index('ix_order_events_order_id', 'order_events', ['order_id'])
    op.create_index('ix_order_events_event_type', 'order_events', ['event_type'])

    op.create_table(
        'payment_events',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('provider', sa.String(length=50), nullable=False, comment='Payment provider: stripe/generic/...'),
        sa.Column('event_id', sa.String(length=200), nullable=False, comment='Provider event id'),
        sa.Column('event_type', sa.String(length=100), nullable=False),
        sa.Column('order_id', sa.String(length=64), nullable=True),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.Column('outcome', sa.String(length=20), nullable=False, comment='received/applied/failed/ignored'),
        sa.Column('error', sa.Text(), nullable=True),
        sa.Column('result', sa.JSON(), nullable=True),
        sa.Column('attempts', sa.Integer(), nullable=False),
        sa.Column('received_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('provider', 'event_id', name='uq_payment_events_provider_event'),
    )
    op.create_index('ix_payment_events_event_type', 'payment_events', ['event_type'])
    op.create_index('ix_payment_events_order_id', 'payment_events', ['order_id'])
    op.create_index('ix_payment_events_outcome', 'payment_events', ['outcome'])
    op.create_index('ix_payment_events_received_at', 'payment_events', ['received_at'])
    op.create_index('ix_payment_events_outcome_received', 'payment_events', ['outcome', 'received_at'])

    op.create_table(
        'idempotency_records',
        sa.Column('key', sa.String(length=255), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False, comment='reserved/completed'),
        sa.Column('result', sa.JSON(), nullable=True),
        sa.Column('owner', sa.String(length=100), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('lease_expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('key'),
    )
    op.create_index('ix_idempotency_records_expires_at', 'idempotency_records', ['expires_at'])

    op.create_table(
        'jobs',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('job_type', sa.String(length=100), nullable=False),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False,
                  comment='queued/running/succeeded/failed/dead_lettered'),
        sa.Column('attempts', sa.Integer(), nullable=False),
        sa.Column('max_attempts', sa.Integer(), nullable=False),
        sa.Column('next_run_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('lease_expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('locked_by', sa.String(length=100), nullable=True),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('dedupe_key', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('finished_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('dedupe_key'),
    )
    op.create_index('ix_jobs_job_type', 'jobs', ['job_type'])
    op.create_index('ix_jobs_created_at', 'jobs', ['created_at'])
    op.create_index('ix_jobs_status_next_run', 'jobs', ['status', 'next_run_at'])
    op.create_index('ix_jobs_status_lease', 'jobs', ['status', 'lease_expires_at'])

    op.create_table(
        'job_attempts',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('job_id', sa.Integer(), nullable=False),
        sa.Column('attempt', sa.Integer(), nullable=False),
        sa.Column('worker_id', sa.String(length=100), nullable=True),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('finished_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('outcome', sa.String(length=20), nullable=False, comment='succeeded/failed/lease_expired'),
        sa.Column('error', sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(['job_id'], ['jobs.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_job_attempts_job_id', 'job_attempts', ['job_id'])


def downgrade() -> None:
    op.drop_table('job_attempts')
    op.drop_table('jobs')
    op.drop_table('idempotency_records')
    op.drop_table('payment_events')
    op.drop_table('order_events')
    op.drop_table('order_refunds')
    op.drop_table('order_items')
    op.drop_table('orders')
