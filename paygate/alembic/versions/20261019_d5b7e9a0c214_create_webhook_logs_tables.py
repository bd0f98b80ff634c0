"""create_webhook_logs_tables

Revision ID: d5b7e9a0c214
Revises: 8c2d4e6f1a53
Create Date: 2026-10-19 09:31:55.862310

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'd5b7e9a0c214'
down_revision = '8c2d4e6f1a53'
branch_labels = None
depends_on = None


def upgrade():
    op.create_table('webhook_logs',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('merchant_id', sa.String(length=36), nullable=False),
        sa.Column('payment_id', sa.String(length=36), nullable=True),
        sa.Column('event', sa.String(length=100), nullable=False),
        sa.Column('payload', sa.JSON(), nullable=False),
        sa.Column('url', sa.String(length=2048), nullable=False),
        sa.Column('attempts', sa.Integer(), nullable=False),
        sa.Column('is_delivered', sa.Boolean(), nullable=False),
        sa.Column('http_status', sa.Integer(), nullable=True),
        sa.Column('response', sa.Text(), nullable=True),
        sa.Column('next_retry_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('delivered_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.ForeignKeyConstraint(['merchant_id'], ['merchants.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['payment_id'], ['payments.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_webhook_logs_merchant_id', 'webhook_logs', ['merchant_id'], unique=False)
    op.create_index('ix_webhook_logs_payment_id', 'webhook_logs', ['payment_id'], unique=False)
    op.create_index('ix_webhook_logs_retry', 'webhook_logs', ['is_delivered', 'next_retry_at'], unique=False)

    op.create_table('webhook_delivery_attempts',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('webhook_log_id', sa.String(length=36), nullable=False),
        sa.Column('attempt_number', sa.Integer(), nullable=False),
        sa.Column('url', sa.String(length=2048), nullable=False),
        sa.Column('http_status', sa.Integer(), nullable=True),
        sa.Column('response_body', sa.Text(), nullable=True),
        sa.Column('success', sa.Boolean(), nullable=False),
        sa.Column('error_message', sa.String(length=1000), nullable=True),
        sa.Column('attempted_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.ForeignKeyConstraint(['webhook_log_id'], ['webhook_logs.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_webhook_delivery_attempts_webhook_log_id', 'webhook_delivery_attempts', ['webhook_log_id'], unique=False)


def downgrade():
    op.drop_index('ix_webhook_delivery_attempts_webhook_log_id', table_name='webhook_delivery_attempts')
    op.drop_table('webhook_delivery_attempts')
    op.drop_index('ix_webhook_logs_retry', table_name='webhook_logs')
    op.drop_index('ix_webhook_logs_payment_id', table_name='webhook_logs')
    op.drop_index('ix_webhook_logs_merchant_id', table_name='webhook_logs')
    op.drop_table('webhook_logs')
