"""Add session_refunds table for cancellation refunds.

Revision ID: add_session_refunds
Revises: create_payment_orders
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = 'add_session_refunds'
down_revision = 'create_payment_orders'
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'session_refunds',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('session_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('therapy_sessions.id'), nullable=False),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('original_amount', sa.Numeric(10, 2), nullable=False),
        sa.Column('refund_amount', sa.Numeric(10, 2), nullable=False),
        sa.Column('refund_percentage', sa.Integer(), nullable=False),
        sa.Column('hours_before_session', sa.Numeric(8, 2), nullable=False),
        sa.Column('cancel_reason', sa.Text(), nullable=True),
        sa.Column('bank_account_name', sa.String(255), nullable=False),
        sa.Column('bank_name', sa.String(255), nullable=False),
        sa.Column('account_number', sa.String(50), nullable=False),
        sa.Column('swift_code', sa.String(11), nullable=True),
        sa.Column('refund_status', sa.String(20), nullable=False, server_default='PENDING'),
        sa.Column('admin_notes', sa.Text(), nullable=True),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True),
                  server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint(
            "refund_status IN ('PENDING', 'PROCESSING', 'DONE', 'REJECTED')",
            name='ck_session_refunds_status',
        ),
    )
    op.create_index('ix_session_refunds_session_id', 'session_refunds',
                    ['session_id'], unique=True)
    op.create_index('ix_session_refunds_user_id', 'session_refunds', ['user_id'])
    op.create_index('ix_session_refunds_refund_status', 'session_refunds', ['refund_status'])


def downgrade() -> None:
    op.drop_index('ix_session_refunds_refund_status', table_name='session_refunds')
    op.drop_index('ix_session_refunds_user_id', table_name='session_refunds')
    op.drop_index('ix_session_refunds_session_id', table_name='session_refunds')
    op.drop_table('session_refunds')
