"""Lesson reschedule links

Revision ID: 20261019_0002
Revises: 20261019_0001
Create Date: 2026-10-19 00:00:01

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = '20261019_0002'
down_revision: Union[str, Sequence[str], None] = '20261019_0001'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    with op.batch_alter_table('lessons') as batch_op:
        batch_op.add_column(sa.Column('rescheduled_lesson_id', sa.Integer(), nullable=True))
        batch_op.add_column(sa.Column('rescheduled_lesson_date', sa.DateTime(), nullable=True))
        batch_op.add_column(sa.Column('rescheduled_to_lesson_id', sa.Integer(), nullable=True))
        batch_op.add_column(sa.Column('rescheduled_to_lesson_date', sa.DateTime(), nullable=True))
    # Pending lessons are swept by date when their status rolls forward.
    op.create_index('ix_lessons_status_date', 'lessons', ['status', 'date'])


def downgrade() -> None:
    op.drop_index('ix_lessons_status_date', table_name='lessons')
    with op.batch_alter_table('lessons') as batch_op:
        batch_op.drop_column('rescheduled_to_lesson_date')
        batch_op.drop_column('rescheduled_to_lesson_id')
        batch_op.drop_column('rescheduled_lesson_date')
        batch_op.drop_column('rescheduled_lesson_id')
