"""add derivation counters

Revision ID: 20261018_000002
Revises: 20261018_000001
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '20261018_000002'
down_revision: Union[str, None] = '20261018_000001'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create the derivation index counter, seeded past existing users."""
    op.create_table(
        'derivation_counters',
        sa.Column('id', sa.Integer(), autoincrement=False, nullable=False),
        sa.Column('next_index', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint(
            'next_index >= 0',
            name='check_derivation_counter_non_negative',
        ),
    )

    op.execute(
        """
        INSERT INTO derivation_counters (id, next_index, updated_at)
        SELECT 1, COALESCE(MAX(derivation_index) + 1, 0), CURRENT_TIMESTAMP
        FROM users
        """
    )


def downgrade() -> None:
    """Drop the derivation index counter."""
    op.drop_table('derivation_counters')
