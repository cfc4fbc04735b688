"""Initial migration - create the students table

Revision ID: 001_initial
Revises: None
Create Date: 2025-01-10

Creates the single students table holding both record variants
(course registration and contact directory), with unique constraints on
phone number and email and an index on registration date for the
newest-first listing.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers
revision: str = '001_initial'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'students',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('variant', sa.String(16), nullable=False, server_default='course'),
        sa.Column('first_name', sa.Text(), nullable=True),
        sa.Column('middle_name', sa.Text(), nullable=True),
        sa.Column('last_name', sa.Text(), nullable=True),
        sa.Column('date_of_birth', sa.Date(), nullable=True),
        sa.Column('desired_course', sa.Text(), nullable=True),
        sa.Column('full_name', sa.Text(), nullable=True),
        sa.Column('company', sa.Text(), nullable=True),
        sa.Column('alternate_phone', sa.String(10), nullable=True),
        sa.Column('email', sa.Text(), nullable=True, unique=True),
        sa.Column('phone_number', sa.String(10), nullable=False, unique=True),
        sa.Column('avatar_data', sa.LargeBinary(), nullable=True),
        sa.Column('avatar_mime', sa.Text(), nullable=True),
        sa.Column('avatar_url', sa.Text(), nullable=True),
        sa.Column('registration_date', sa.DateTime(),
                  server_default=sa.func.now(), nullable=False),
    )

    op.create_index('ix_students_registration_date', 'students', ['registration_date'])
    op.create_index('ix_students_alternate_phone', 'students', ['alternate_phone'])


def downgrade() -> None:
    op.drop_index('ix_students_alternate_phone', table_name='students')
    op.drop_index('ix_students_registration_date', table_name='students')
    op.drop_table('students')
