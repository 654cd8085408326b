"""Create payment_orders, notifications and therapy_sessions tables.

Revision ID: create_payment_orders
Revises:
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = 'create_payment_orders'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'payment_orders',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('external_order_id', sa.String(64), nullable=False),
        sa.Column('kind', sa.String(30), nullable=False, server_default='DONATION'),
        sa.Column('amount', sa.Numeric(10, 2), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False, server_default='LKR'),
        sa.Column('status', sa.String(20), nullable=False, server_default='PENDING'),
        sa.Column('external_payment_id', sa.String(64), nullable=True),
        sa.Column('gateway_status_code', sa.String(10), nullable=True),
        sa.Column('status_message', sa.String(255), nullable=True),
        sa.Column('payment_method', sa.String(30), nullable=True),
        sa.Column('status_reason', sa.Text(), nullable=True),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('details', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint(
            "status IN ('PENDING', 'PROCESSING', 'COMPLETED', 'FAILED', 'REFUNDED', 'CANCELLED')",
            name='ck_payment_orders_status',
        ),
        sa.CheckConstraint('amount > 0', name='ck_payment_orders_amount_positive'),
    )
    op.create_index('ix_payment_orders_external_order_id', 'payment_orders',
                    ['external_order_id'], unique=True)
    op.create_index('ix_payment_orders_status', 'payment_orders', ['status'])
    op.create_index('ix_payment_orders_user_id', 'payment_orders', ['user_id'])

    op.create_table(
        'notifications',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('receiver_id', postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column('sender_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('type', sa.String(20), nullable=False, server_default='SYSTEM'),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('is_read', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_urgent', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
    )

    op.create_table(
        'therapy_sessions',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('scheduled_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('booked_rate', sa.Numeric(10, 2), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='SCHEDULED'),
        sa.Column('parent_user_id', postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column('patient_name', sa.String(255), nullable=True),
        sa.Column('therapist_name', sa.String(255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
    )


def downgrade() -> None:
    op.drop_table('therapy_sessions')
    op.drop_table('notifications')
    op.drop_index('ix_payment_orders_user_id', table_name='payment_orders')
    op.drop_index('ix_payment_orders_status', table_name='payment_orders')
    op.drop_index('ix_payment_orders_external_order_id', table_name='payment_orders')
    op.drop_table('payment_orders')
