"""add shift_date to shift_change_logs

Legacy rows keep NULL until `flask shift-log backfill-dates` runs.

Revision ID: a8d4e2f61c05
Revises: 3f1a9c0d2b71
Create Date: 2025-08-21 11:52:16.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'a8d4e2f61c05'
down_revision: Union[str, Sequence[str], None] = '3f1a9c0d2b71'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    with op.batch_alter_table('shift_change_logs') as batch:
        batch.add_column(sa.Column('shift_date', sa.Date(), nullable=True))
        batch.create_index('ix_shift_change_logs_shift_date', ['shift_date'])


def downgrade() -> None:
    with op.batch_alter_table('shift_change_logs') as batch:
        batch.drop_index('ix_shift_change_logs_shift_date')
        batch.drop_column('shift_date')
