"""Initial schema

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19 00:00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = '20261019_0001'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table('teachers',
        sa.Column('id', sa.Integer(), primary_key=True, nullable=False),
        sa.Column('login', sa.String(), nullable=False, unique=True),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('role', sa.String(), nullable=False),
        sa.Column('timezone', sa.String()),
        sa.Column('telegram_id', sa.Integer()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('deleted_at', sa.DateTime()),
    )
    op.create_table('students',
        sa.Column('id', sa.Integer(), primary_key=True, nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('teacher_id', sa.Integer(), sa.ForeignKey('teachers.id')),
        sa.Column('birth_date', sa.Date()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('deleted_at', sa.DateTime()),
    )
    op.create_table('plans',
        sa.Column('id', sa.Integer(), primary_key=True, nullable=False),
        sa.Column('plan_name', sa.String(), nullable=False),
        sa.Column('plan_type', sa.String(), nullable=False),
        sa.Column('plan_price', sa.Integer(), nullable=False),
        sa.Column('plan_currency', sa.String(), nullable=False),
        sa.Column('duration', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('deleted_at', sa.DateTime()),
        sa.CheckConstraint('plan_price >= 0', name='ck_plans_price_non_negative'),
    )
    op.create_table('regular_lessons',
        sa.Column('id', sa.Integer(), primary_key=True, nullable=False),
        sa.Column('student_id', sa.Integer(), sa.ForeignKey('students.id'), nullable=False),
        sa.Column('teacher_id', sa.Integer(), sa.ForeignKey('teachers.id'), nullable=False),
        sa.Column('plan_id', sa.Integer(), sa.ForeignKey('plans.id'), nullable=False),
        sa.Column('start_time', sa.Time(), nullable=False),
        sa.Column('week_day', sa.String(), nullable=False),
        sa.Column('start_period_date', sa.Date(), nullable=False),
        sa.Column('end_period_date', sa.Date(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('deleted_at', sa.DateTime()),
        sa.CheckConstraint('start_period_date <= end_period_date', name='ck_regular_lessons_period_order'),
    )
    op.create_index('ix_regular_lessons_student_end', 'regular_lessons', ['student_id', 'end_period_date'])
    op.create_table('lessons',
        sa.Column('id', sa.Integer(), primary_key=True, nullable=False),
        sa.Column('student_id', sa.Integer(), sa.ForeignKey('students.id'), nullable=False),
        sa.Column('teacher_id', sa.Integer(), sa.ForeignKey('teachers.id'), nullable=False),
        sa.Column('plan_id', sa.Integer(), sa.ForeignKey('plans.id'), nullable=False),
        sa.Column('date', sa.DateTime(), nullable=False),
        sa.Column('status', sa.String(), nullable=False),
        sa.Column('comment', sa.Text()),
        sa.Column('is_regular', sa.Boolean(), nullable=False),
        sa.Column('is_free', sa.Boolean(), nullable=False),
        sa.Column('is_trial', sa.Boolean(), nullable=False),
        sa.Column('regular_lesson_id', sa.Integer()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_lessons_teacher_date', 'lessons', ['teacher_id', 'date'])
    op.create_index('ix_lessons_student_date', 'lessons', ['student_id', 'date'])


def downgrade() -> None:
    op.drop_index('ix_lessons_student_date', table_name='lessons')
    op.drop_index('ix_lessons_teacher_date', table_name='lessons')
    op.drop_table('lessons')
    op.drop_index('ix_regular_lessons_student_end', table_name='regular_lessons')
    op.drop_table('regular_lessons')
    op.drop_table('plans')
    op.drop_table('students')
    op.drop_table('teachers')
