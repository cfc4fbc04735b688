"""Add students.created_at

Revision ID: 002_student_created_at
Revises: 001_initial
Create Date: 2025-02-03

registration_date only keeps whole seconds, so students registered within
the same second need a second sort key for the newest-first listing.
created_at records the insertion time at full precision.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers
revision: str = '002_student_created_at'
down_revision: Union[str, None] = '001_initial'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.add_column(
        'students',
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now(), nullable=False),
    )
    op.create_index('ix_students_registration_order', 'students', ['registration_date', 'created_at'])


def downgrade() -> None:
    op.drop_index('ix_students_registration_order', table_name='students')
    op.drop_column('students', 'created_at')
