"""payment core: profiles, sessions, verifications, ledger, webhook audit

Revision ID: 5c1e9a7d2b40
Revises:
Create Date: 2026-10-18 09:00:00.000000
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '5c1e9a7d2b40'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'user_profiles',
        sa.Column('id', sa.String(length=64), primary_key=True),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('current_credit_balance', sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column('tier', sa.String(length=16), nullable=False, server_default=sa.text("'base'")),
        sa.Column('tier_expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('daily_credits_used', sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column('daily_credits_reset_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    op.create_table(
        'payment_sessions',
        sa.Column('id', sa.String(length=32), primary_key=True),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('tier', sa.String(length=16), nullable=False),
        sa.Column('exact_amount_due', sa.Integer(), nullable=False),
        sa.Column('credits_to_grant', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default=sa.text("'pending'")),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['user_profiles.id'], ondelete="RESTRICT"),
    )
    op.create_index('ix_payment_sessions_user_id', 'payment_sessions', ['user_id'])
    op.create_index('ix_payment_sessions_status', 'payment_sessions', ['status'])
    op.create_index('ix_payment_sessions_created_at', 'payment_sessions', ['created_at'])
    op.create_index(
        'uq_payment_sessions_pending_amount',
        'payment_sessions',
        ['exact_amount_due'],
        unique=True,
        postgresql_where=sa.text("status = 'pending'"),
        sqlite_where=sa.text("status = 'pending'"),
    )

    op.create_table(
        'payment_verifications',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('reference_number', sa.String(length=64), nullable=False),
        sa.Column('tier', sa.String(length=16), nullable=False),
        sa.Column('amount_centavos', sa.Integer(), nullable=False),
        sa.Column('credits_to_grant', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default=sa.text("'pending'")),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('verified_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['user_profiles.id'], ondelete="RESTRICT"),
    )
    op.create_index('ix_payment_verifications_user_id', 'payment_verifications', ['user_id'])
    op.create_index('ix_payment_verifications_reference_number', 'payment_verifications', ['reference_number'])
    op.create_index(
        'uq_payment_verifications_live_reference',
        'payment_verifications',
        ['reference_number'],
        unique=True,
        postgresql_where=sa.text("status IN ('pending', 'verified')"),
        sqlite_where=sa.text("status IN ('pending', 'verified')"),
    )

    op.create_table(
        'credit_ledger_entries',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('entry_type', sa.String(length=32), nullable=False),
        sa.Column('amount_display', sa.String(length=32), nullable=False),
        sa.Column('credits_delta', sa.Integer(), nullable=False),
        sa.Column('session_id', sa.String(length=32), nullable=True, unique=True),
        sa.Column('verification_id', sa.Integer(), nullable=True, unique=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['user_id'], ['user_profiles.id'], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(['session_id'], ['payment_sessions.id']),
        sa.ForeignKeyConstraint(['verification_id'], ['payment_verifications.id']),
    )
    op.create_index('ix_credit_ledger_entries_user_id', 'credit_ledger_entries', ['user_id'])

    op.create_table(
        'webhook_audit_entries',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('provider', sa.String(length=32), nullable=False),
        sa.Column('event_type', sa.String(length=80), nullable=False),
        sa.Column('livemode', sa.Boolean(), nullable=True),
        sa.Column('verification', sa.String(length=16), nullable=False),
        sa.Column('received_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_webhook_audit_entries_event_type', 'webhook_audit_entries', ['event_type'])


def downgrade():
    op.drop_index('ix_webhook_audit_entries_event_type', table_name='webhook_audit_entries')
    op.drop_table('webhook_audit_entries')

    op.drop_index('ix_credit_ledger_entries_user_id', table_name='credit_ledger_entries')
    op.drop_table('credit_ledger_entries')

    op.drop_index('uq_payment_verifications_live_reference', table_name='payment_verifications')
    op.drop_index('ix_payment_verifications_reference_number', table_name='payment_verifications')
    op.drop_index('ix_payment_verifications_user_id', table_name='payment_verifications')
    op.drop_table('payment_verifications')

    op.drop_index('uq_payment_sessions_pending_amount', table_name='payment_sessions')
    op.drop_index('ix_payment_sessions_created_at', table_name='payment_sessions')
    op.drop_index('ix_payment_sessions_status', table_name='payment_sessions')
    op.drop_index('ix_payment_sessions_user_id', table_name='payment_sessions')
    op.drop_table('payment_sessions')

    op.drop_table('user_profiles')
