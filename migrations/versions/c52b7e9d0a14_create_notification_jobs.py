"""create notification_jobs queue table

Revision ID: c52b7e9d0a14
Revises: a8d4e2f61c05
Create Date: 2025-10-20 09:15:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'c52b7e9d0a14'
down_revision: Union[str, Sequence[str], None] = 'a8d4e2f61c05'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'notification_jobs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('recipient', sa.String(length=32), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('employee_id', sa.Integer(), sa.ForeignKey('employees.id', ondelete='SET NULL'), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('max_attempts', sa.Integer(), nullable=False, server_default='3'),
        sa.Column('next_attempt_at', sa.DateTime(), nullable=False),
        sa.Column('last_error', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('sent_at', sa.DateTime(), nullable=True),
        sa.Column('failed_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_notification_jobs_status', 'notification_jobs', ['status'])
    op.create_index('ix_notification_jobs_next_attempt_at', 'notification_jobs', ['next_attempt_at'])
    op.create_index('ix_notification_jobs_employee_id', 'notification_jobs', ['employee_id'])


def downgrade() -> None:
    op.drop_table('notification_jobs')
