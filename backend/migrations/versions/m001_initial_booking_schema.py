"""initial booking schema

Revision ID: m001_initial_booking
Revises:
Create Date: 2026-10-19 00:00:00.000000

Creates the complete booking schema:
- locations / suites: inventory; suites.is_available is the reservation flag
- bookings: user/suite/time binding with status and refund_status
- credits: prepaid credit grants (amount never negative)
- credit_transactions: append-only ledger movements
- session_tokens: hashed opaque sessions from the identity provider
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'm001_initial_booking'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ============================================================================
    # locations
    # ============================================================================
    op.create_table(
        'locations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('address', sa.String(length=255), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )

    # ============================================================================
    # suites: is_available only flipped by conditional updates
    # ============================================================================
    op.create_table(
        'suites',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('location_id', sa.Integer(), nullable=False),
        sa.Column('suite_number', sa.String(length=32), nullable=False),
        sa.Column('is_available', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('is_operational', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('has_shower', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('has_bidet', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('has_heated_seat', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('has_vanity', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('has_changing_table', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('max_occupancy', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('available_samples', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['location_id'], ['locations.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('location_id', 'suite_number', name='uq_suites_location_number'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_suites_location_id', 'suites', ['location_id'])
    op.create_index('ix_suites_location_available', 'suites',
                    ['location_id', 'is_available', 'is_operational'])

    # ============================================================================
    # bookings
    # ============================================================================
    op.create_table(
        'bookings',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('suite_id', sa.Integer(), nullable=False),
        sa.Column('location_id', sa.Integer(), nullable=False),
        sa.Column('start_time', sa.DateTime(timezone=True), nullable=False),
        sa.Column('end_time', sa.DateTime(timezone=True), nullable=False),
        sa.Column('duration_minutes', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='confirmed'),
        sa.Column('payment_method', sa.String(length=16), nullable=False, server_default='credits'),
        sa.Column('credits_used', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('refund_status', sa.String(length=16), nullable=True),
        sa.Column('preferences', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('checked_in_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['suite_id'], ['suites.id']),
        sa.ForeignKeyConstraint(['location_id'], ['locations.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_bookings_user_id', 'bookings', ['user_id'])
    op.create_index('ix_bookings_suite_id', 'bookings', ['suite_id'])
    op.create_index('ix_bookings_location_id', 'bookings', ['location_id'])
    op.create_index('ix_bookings_status', 'bookings', ['status'])
    op.create_index('ix_bookings_refund_status', 'bookings', ['refund_status'])
    op.create_index('ix_bookings_user_start', 'bookings', ['user_id', 'start_time'])
    op.create_index('ix_bookings_suite_status', 'bookings', ['suite_id', 'status'])

    # ============================================================================
    # credits: grants; amount floor enforced by the database as well
    # ============================================================================
    op.create_table(
        'credits',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='active'),
        sa.Column('issued_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('description', sa.String(length=255), nullable=True),
        sa.CheckConstraint('amount >= 0', name='ck_credits_amount_non_negative'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_credits_user_id', 'credits', ['user_id'])
    op.create_index('ix_credits_status', 'credits', ['status'])
    op.create_index('ix_credits_expires_at', 'credits', ['expires_at'])
    op.create_index('ix_credits_user_status_issued', 'credits', ['user_id', 'status', 'issued_at'])

    # ============================================================================
    # credit_transactions: append-only
    # ============================================================================
    op.create_table(
        'credit_transactions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('booking_id', sa.Integer(), nullable=True),
        sa.Column('grant_id', sa.Integer(), nullable=True),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('transaction_type', sa.String(length=16), nullable=False),
        sa.Column('description', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['booking_id'], ['bookings.id']),
        sa.ForeignKeyConstraint(['grant_id'], ['credits.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_credit_transactions_user_id', 'credit_transactions', ['user_id'])
    op.create_index('ix_credit_transactions_booking_id', 'credit_transactions', ['booking_id'])
    op.create_index('ix_credit_transactions_grant_id', 'credit_transactions', ['grant_id'])
    op.create_index('ix_credit_transactions_transaction_type', 'credit_transactions', ['transaction_type'])
    op.create_index('ix_credit_txns_user_created', 'credit_transactions', ['user_id', 'created_at'])
    op.create_index('ix_credit_txns_booking_type', 'credit_transactions', ['booking_id', 'transaction_type'])

    # ============================================================================
    # session_tokens
    # ============================================================================
    op.create_table(
        'session_tokens',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('token_hash', sa.String(length=255), nullable=False),
        sa.Column('is_staff', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('is_revoked', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('revoked_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_session_tokens_user_id', 'session_tokens', ['user_id'])
    op.create_index('ix_session_tokens_token_hash', 'session_tokens', ['token_hash'], unique=True)
    op.create_index('ix_session_tokens_expires_at', 'session_tokens', ['expires_at'])
    op.create_index('ix_session_tokens_user_active', 'session_tokens', ['user_id', 'is_revoked'])


def downgrade():
    op.drop_table('session_tokens')
    op.drop_table('credit_transactions')
    op.drop_table('credits')
    op.drop_table('bookings')
    op.drop_table('suites')
    op.drop_table('locations')
