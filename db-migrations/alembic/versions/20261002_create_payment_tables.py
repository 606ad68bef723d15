"""
Alembic migration to create the users, verification_codes, payments,
transactions and payment_webhooks tables
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '20261002'
down_revision = '20261001'
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'users',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('phone', sa.String(16), nullable=False),
        sa.Column('full_name', sa.String, nullable=True),
        sa.Column('subscription_level', sa.String(16), nullable=False, server_default='free'),
        sa.Column('subscription_end_date', sa.Date, nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        schema='dulu',
    )
    op.create_index('ix_users_phone', 'users', ['phone'], unique=True, schema='dulu')

    op.create_table(
        'verification_codes',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('phone', sa.String(16), nullable=False),
        sa.Column('code', sa.String(6), nullable=False),
        sa.Column('channel', sa.String(16), nullable=False, server_default='whatsapp'),
        sa.Column('message_sid', sa.String(64), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('next_allowed_send_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('verified', sa.Boolean, nullable=False, server_default=sa.text('false')),
        sa.Column('verified_at', sa.DateTime(timezone=True), nullable=True),
        schema='dulu',
    )
    op.create_index('ix_verification_codes_phone', 'verification_codes', ['phone'], schema='dulu')
    op.create_index('idx_verification_codes_phone_created', 'verification_codes', ['phone', 'created_at'], schema='dulu')

    op.create_table(
        'payments',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('deposit_id', sa.String(36), nullable=False),
        sa.Column('user_id', sa.String(36), nullable=False),
        sa.Column('plan_id', sa.String(64), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('currency', sa.String(3), nullable=False, server_default='XAF'),
        sa.Column('correspondent', sa.String(32), nullable=False),
        sa.Column('payment_method', sa.String(32), nullable=True),
        sa.Column('phone_number', sa.String(16), nullable=False),
        sa.Column('status', sa.String(16), nullable=False, server_default='pending'),
        sa.Column('is_extension', sa.Boolean, nullable=False, server_default=sa.text('false')),
        sa.Column('subscription_start_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('subscription_end_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('metadata', postgresql.JSONB, nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("status IN ('pending', 'processing', 'completed', 'failed')", name='ck_payments_status'),
        schema='dulu',
    )
    op.create_index('ix_payments_deposit_id', 'payments', ['deposit_id'], unique=True, schema='dulu')
    op.create_index('ix_payments_user_id', 'payments', ['user_id'], schema='dulu')
    op.create_index('ix_payments_status', 'payments', ['status'], schema='dulu')

    op.create_table(
        'transactions',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('user_id', sa.String(36), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('is_expense', sa.Boolean, nullable=False, server_default=sa.text('true')),
        sa.Column('category_id', sa.String(36), nullable=True),
        sa.Column('description', sa.String, nullable=True),
        sa.Column('transaction_date', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('payment_id', sa.String(36), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint('payment_id', name='uq_transactions_payment_id'),
        schema='dulu',
    )
    op.create_index('ix_transactions_user_id', 'transactions', ['user_id'], schema='dulu')

    op.create_table(
        'payment_webhooks',
        sa.Column('id', sa.Integer, primary_key=True),
        sa.Column('payment_id', sa.String(36), nullable=True),
        sa.Column('deposit_id', sa.String(64), nullable=False),
        sa.Column('status', sa.String(32), nullable=False),
        sa.Column('outcome', sa.String(32), nullable=False),
        sa.Column('payload', postgresql.JSONB, nullable=False),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        schema='dulu',
    )
    op.create_index('ix_payment_webhooks_payment_id', 'payment_webhooks', ['payment_id'], schema='dulu')
    op.create_index('ix_payment_webhooks_deposit_id', 'payment_webhooks', ['deposit_id'], schema='dulu')


def downgrade():
    op.drop_index('ix_payment_webhooks_deposit_id', table_name='payment_webhooks', schema='dulu')
    op.drop_index('ix_payment_webhooks_payment_id', table_name='payment_webhooks', schema='dulu')
    op.drop_table('payment_webhooks', schema='dulu')
    op.drop_index('ix_transactions_user_id', table_name='transactions', schema='dulu')
    op.drop_table('transactions', schema='dulu')
    op.drop_index('ix_payments_status', table_name='payments', schema='dulu')
    op.drop_index('ix_payments_user_id', table_name='payments', schema='dulu')
    op.drop_index('ix_payments_deposit_id', table_name='payments', schema='dulu')
    op.drop_table('payments', schema='dulu')
    op.drop_index('idx_verification_codes_phone_created', table_name='verification_codes', schema='dulu')
    op.drop_index('ix_verification_codes_phone', table_name='verification_codes', schema='dulu')
    op.drop_table('verification_codes', schema='dulu')
    op.drop_index('ix_users_phone', table_name='users', schema='dulu')
    op.drop_table('users', schema='dulu')
