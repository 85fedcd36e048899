"""create engine tables

Revision ID: a1b2c3d4e5f6
Revises:
Create Date: 2026-10-16 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'a1b2c3d4e5f6'
down_revision = None
branch_labels = None
depends_on = None


def _cancel_request_columns():
    return [
        sa.Column('cancel_status', sa.String(length=20), nullable=False, server_default='none'),
        sa.Column('cancel_reason_code', sa.String(length=40), nullable=True),
        sa.Column('cancel_reason_text', sa.String(length=255), nullable=True),
        sa.Column('cancel_requested_by', sa.Integer(), nullable=True),
        sa.Column('cancel_requested_at', sa.DateTime(), nullable=True),
        sa.Column('cancel_processed_at', sa.DateTime(), nullable=True),
    ]


def upgrade():
    op.create_table(
        'audit_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('actor_role', sa.String(length=20), nullable=True),
        sa.Column('action', sa.String(length=80), nullable=False),
        sa.Column('entity', sa.String(length=80), nullable=True),
        sa.Column('entity_id', sa.String(length=80), nullable=True),
        sa.Column('ip', sa.String(length=64), nullable=True),
        sa.Column('user_agent', sa.String(length=255), nullable=True),
        sa.Column('metadata_json', sa.Text(), nullable=True),
        sa.Column('timestamp', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table(
        'rackets',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('stock', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint('stock >= 0', name='ck_rackets_stock_non_negative'),
        sa.PrimaryKeyConstraint('id')
    )

    op.create_table(
        'orders',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('total_amount', sa.Integer(), nullable=False),
        sa.Column('package_sessions', sa.Integer(), nullable=True),
        sa.Column('service_type', sa.String(length=40), nullable=True),
        sa.Column('paid_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        *_cancel_request_columns(),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('orders', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_orders_user_id'), ['user_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_orders_status'), ['status'], unique=False)

    op.create_table(
        'rentals',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('racket_id', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('days', sa.Integer(), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('stock_reserved', sa.Boolean(), nullable=False),
        sa.Column('paid_at', sa.DateTime(), nullable=True),
        sa.Column('out_at', sa.DateTime(), nullable=True),
        sa.Column('due_at', sa.DateTime(), nullable=True),
        sa.Column('returned_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        *_cancel_request_columns(),
        sa.ForeignKeyConstraint(['racket_id'], ['rackets.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('rentals', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_rentals_user_id'), ['user_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_rentals_racket_id'), ['racket_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_rentals_status'), ['status'], unique=False)

    op.create_table(
        'service_passes',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=True),
        sa.Column('service_type', sa.String(length=40), nullable=False),
        sa.Column('total', sa.Integer(), nullable=False),
        sa.Column('remaining', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('purchased_at', sa.DateTime(), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint('remaining >= 0 AND remaining <= total', name='ck_service_passes_remaining_range'),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('order_id')
    )
    with op.batch_alter_table('service_passes', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_service_passes_user_id'), ['user_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_service_passes_status'), ['status'], unique=False)
        batch_op.create_index(batch_op.f('ix_service_passes_expires_at'), ['expires_at'], unique=False)

    op.create_table(
        'applications',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=True),
        sa.Column('rental_id', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('service_type', sa.String(length=40), nullable=False),
        sa.Column('preferred_date', sa.Date(), nullable=True),
        sa.Column('preferred_time', sa.String(length=5), nullable=True),
        sa.Column('pass_id', sa.Integer(), nullable=True),
        sa.Column('submitted_at', sa.DateTime(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        *_cancel_request_columns(),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ),
        sa.ForeignKeyConstraint(['rental_id'], ['rentals.id'], ),
        sa.ForeignKeyConstraint(['pass_id'], ['service_passes.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('applications', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_applications_user_id'), ['user_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_applications_order_id'), ['order_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_applications_rental_id'), ['rental_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_applications_status'), ['status'], unique=False)
        batch_op.create_index(batch_op.f('ix_applications_preferred_date'), ['preferred_date'], unique=False)
        batch_op.create_index(
            'uq_applications_draft_order', ['order_id'], unique=True,
            sqlite_where=sa.text("status = 'draft'"), postgresql_where=sa.text("status = 'draft'"),
        )
        batch_op.create_index(
            'uq_applications_draft_rental', ['rental_id'], unique=True,
            sqlite_where=sa.text("status = 'draft'"), postgresql_where=sa.text("status = 'draft'"),
        )

    op.create_table(
        'pass_consumptions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('pass_id', sa.Integer(), nullable=False),
        sa.Column('application_id', sa.Integer(), nullable=False),
        sa.Column('used_at', sa.DateTime(), nullable=False),
        sa.Column('reverted', sa.Boolean(), nullable=False),
        sa.Column('reverted_at', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['pass_id'], ['service_passes.id'], ),
        sa.ForeignKeyConstraint(['application_id'], ['applications.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('pass_id', 'application_id', name='uq_pass_consumption_once')
    )
    with op.batch_alter_table('pass_consumptions', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_pass_consumptions_pass_id'), ['pass_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_pass_consumptions_application_id'), ['application_id'], unique=False)

    op.create_table(
        'pass_events',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('pass_id', sa.Integer(), nullable=False),
        sa.Column('kind', sa.String(length=30), nullable=False),
        sa.Column('from_value', sa.String(length=40), nullable=True),
        sa.Column('to_value', sa.String(length=40), nullable=True),
        sa.Column('delta', sa.Integer(), nullable=True),
        sa.Column('reason', sa.String(length=255), nullable=True),
        sa.Column('admin_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['pass_id'], ['service_passes.id'], ),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('pass_events', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_pass_events_pass_id'), ['pass_id'], unique=False)

    op.create_table(
        'points_transactions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(length=20), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('reason', sa.String(length=255), nullable=True),
        sa.Column('ref_key', sa.String(length=120), nullable=True),
        sa.Column('admin_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('processed_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('points_transactions', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_points_transactions_user_id'), ['user_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_points_transactions_created_at'), ['created_at'], unique=False)
        batch_op.create_index(
            'uq_points_user_type_ref', ['user_id', 'type', 'ref_key'], unique=True,
            sqlite_where=sa.text('ref_key IS NOT NULL'), postgresql_where=sa.text('ref_key IS NOT NULL'),
        )

    op.create_table(
        'points_accounts',
        sa.Column('user_id', sa.Integer(), autoincrement=False, nullable=False),
        sa.Column('balance', sa.Integer(), nullable=False),
        sa.Column('debt', sa.Integer(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('user_id')
    )

    op.create_table(
        'status_history',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('entity_kind', sa.String(length=20), nullable=False),
        sa.Column('entity_id', sa.Integer(), nullable=False),
        sa.Column('action', sa.String(length=40), nullable=False),
        sa.Column('from_status', sa.String(length=20), nullable=True),
        sa.Column('to_status', sa.String(length=20), nullable=True),
        sa.Column('description', sa.String(length=255), nullable=True),
        sa.Column('actor_id', sa.Integer(), nullable=True),
        sa.Column('actor_role', sa.String(length=20), nullable=True),
        sa.Column('snapshot_json', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('status_history', schema=None) as batch_op:
        batch_op.create_index('ix_status_history_entity', ['entity_kind', 'entity_id'], unique=False)

    op.create_table(
        'idempotency_keys',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('scope', sa.String(length=60), nullable=False),
        sa.Column('key', sa.String(length=120), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('response_json', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('scope', 'key', name='uq_idempotency_scope_key')
    )
    with op.batch_alter_table('idempotency_keys', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_idempotency_keys_created_at'), ['created_at'], unique=False)

    op.create_table(
        'batch_locks',
        sa.Column('name', sa.String(length=60), nullable=False),
        sa.Column('owner', sa.String(length=120), nullable=False),
        sa.Column('acquired_at', sa.DateTime(), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('name')
    )

    op.create_table(
        'booking_slot_config',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('capacity', sa.Integer(), nullable=False),
        sa.Column('business_days', sa.JSON(), nullable=False),
        sa.Column('holidays', sa.JSON(), nullable=False),
        sa.Column('exceptions', sa.JSON(), nullable=False),
        sa.Column('start_time', sa.String(length=5), nullable=False),
        sa.Column('end_time', sa.String(length=5), nullable=False),
        sa.Column('interval_minutes', sa.Integer(), nullable=False),
        sa.Column('booking_window_days', sa.Integer(), nullable=False),
        sa.Column('same_day_cutoff_hour', sa.Integer(), nullable=False),
        sa.Column('updated_by', sa.Integer(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )


def downgrade():
    op.drop_table('booking_slot_config')
    op.drop_table('batch_locks')
    op.drop_table('idempotency_keys')
    op.drop_table('status_history')
    op.drop_table('points_accounts')
    op.drop_table('points_transactions')
    op.drop_table('pass_events')
    op.drop_table('pass_consumptions')
    op.drop_table('applications')
    op.drop_table('service_passes')
    op.drop_table('rentals')
    op.drop_table('orders')
    op.drop_table('rackets')
    op.drop_table('audit_logs')
