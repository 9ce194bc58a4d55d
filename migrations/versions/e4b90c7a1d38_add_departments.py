"""add departments and employees.department_id

Revision ID: e4b90c7a1d38
Revises: c52b7e9d0a14
Create Date: 2025-11-03 16:40:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = 'e4b90c7a1d38'
down_revision: Union[str, Sequence[str], None] = 'c52b7e9d0a14'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'departments',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('is_operational', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('name', name='uq_departments_name'),
    )
    with op.batch_alter_table('employees') as batch:
        batch.add_column(sa.Column('department_id', sa.Integer(), nullable=True))
        batch.create_foreign_key(
            'fk_employees_department_id', 'departments', ['department_id'], ['id'], ondelete='SET NULL'
        )
        batch.create_index('ix_employees_department_id', ['department_id'])


def downgrade() -> None:
    with op.batch_alter_table('employees') as batch:
        batch.drop_index('ix_employees_department_id')
        batch.drop_constraint('fk_employees_department_id', type_='foreignkey')
        batch.drop_column('department_id')
    op.drop_table('departments')
