"""create deposit sweeper tables

Revision ID: 20261018_000001
Revises: 
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '20261018_000001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create users, deposit_records, scan_watermarks and ledger tables."""
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('owner_id', sa.String(64), nullable=False),
        sa.Column('deposit_address', sa.String(42), nullable=True),
        sa.Column('derivation_index', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('derivation_index'),
        sa.CheckConstraint(
            'derivation_index >= 0',
            name='check_user_derivation_index_non_negative',
        ),
    )
    op.create_index('ix_users_owner_id', 'users', ['owner_id'], unique=True)
    op.create_index('ix_users_deposit_address', 'users', ['deposit_address'], unique=True)

    op.create_table(
        'deposit_records',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('tx_hash', sa.String(66), nullable=False),
        sa.Column('log_index', sa.Integer(), nullable=False),
        sa.Column('to_address', sa.String(42), nullable=False),
        sa.Column('token_address', sa.String(42), nullable=False),
        sa.Column('token_amount', sa.Numeric(78, 0), nullable=False),
        sa.Column('block_number', sa.BigInteger(), nullable=False),
        sa.Column('owner_id', sa.String(64), nullable=False),
        sa.Column('derivation_index', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('retry_count', sa.Integer(), nullable=False),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('sweep_tx_hash', sa.String(66), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('credited_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('tx_hash', 'log_index', name='uq_deposit_record_tx_log'),
        sa.CheckConstraint('retry_count >= 0', name='check_deposit_record_retry_non_negative'),
        sa.CheckConstraint('token_amount > 0', name='check_deposit_record_amount_positive'),
    )
    op.create_index('idx_deposit_record_status', 'deposit_records', ['status'])
    op.create_index('idx_deposit_record_owner', 'deposit_records', ['owner_id'])

    op.create_table(
        'scan_watermarks',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('token_address', sa.String(42), nullable=False),
        sa.Column('last_scanned_block', sa.BigInteger(), nullable=False),
        sa.Column('total_detected', sa.Integer(), nullable=False),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('error_count', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_scan_watermarks_token_address', 'scan_watermarks', ['token_address'], unique=True)

    op.create_table(
        'ledger_credits',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('idempotency_key', sa.String(128), nullable=False),
        sa.Column('owner_id', sa.String(64), nullable=False),
        sa.Column('token', sa.String(42), nullable=False),
        sa.Column('amount', sa.DECIMAL(36, 18), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('amount > 0', name='check_ledger_credit_amount_positive'),
    )
    op.create_index('ix_ledger_credits_idempotency_key', 'ledger_credits', ['idempotency_key'], unique=True)
    op.create_index('ix_ledger_credits_owner_id', 'ledger_credits', ['owner_id'])

    op.create_table(
        'ledger_balances',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('owner_id', sa.String(64), nullable=False),
        sa.Column('token', sa.String(42), nullable=False),
        sa.Column('amount', sa.DECIMAL(36, 18), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('owner_id', 'token', name='uq_ledger_balance_owner_token'),
        sa.CheckConstraint('amount >= 0', name='check_ledger_balance_non_negative'),
    )


def downgrade() -> None:
    """Drop deposit sweeper tables."""
    op.drop_table('ledger_balances')
    op.drop_index('ix_ledger_credits_owner_id', table_name='ledger_credits')
    op.drop_index('ix_ledger_credits_idempotency_key', table_name='ledger_credits')
    op.drop_table('ledger_credits')
    op.drop_index('ix_scan_watermarks_token_address', table_name='scan_watermarks')
    op.drop_table('scan_watermarks')
    op.drop_index('idx_deposit_record_owner', table_name='deposit_records')
    op.drop_index('idx_deposit_record_status', table_name='deposit_records')
    op.drop_table('deposit_records')
    op.drop_index('ix_users_deposit_address', table_name='users')
    op.drop_index('ix_users_owner_id', table_name='users')
    op.drop_table('users')
