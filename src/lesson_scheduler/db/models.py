from datetime import datetime, timezone

from sqlalchemy import Boolean, CheckConstraint, Column, Date, DateTime, ForeignKey, Index, Integer, String, Text, Time
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def utcnow() -> datetime:
    # Timestamps are stored as naive UTC.
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Teacher(Base):
    __tablename__ = "teachers"

    id = Column(Integer, primary_key=True)
    login = Column(String, unique=True, nullable=False)
    name = Column(String, nullable=False)
    role = Column(String, default="TEACHER", nullable=False)  # TEACHER | ADMIN
    timezone = Column(String, nullable=True)
    telegram_id = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    deleted_at = Column(DateTime, nullable=True)

    students = relationship("Student", back_populates="teacher")


class Student(Base):
    __tablename__ = "students"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    teacher_id = Column(Integer, ForeignKey("teachers.id"), nullable=True)  # default teacher
    birth_date = Column(Date, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    deleted_at = Column(DateTime, nullable=True)

    teacher = relationship("Teacher", back_populates="students")


# ======================== PLANS ========================
class Plan(Base):
    __tablename__ = "plans"

    id = Column(Integer, primary_key=True)
    plan_name = Column(String, nullable=False)
    plan_type = Column(String, nullable=False)  # INDIVIDUAL | PAIR
    plan_price = Column(Integer, nullable=False)  # minor units
    plan_currency = Column(String, nullable=False)
    duration = Column(Integer, nullable=False)  # minutes
    created_at = Column(DateTime, default=utcnow, nullable=False)
    deleted_at = Column(DateTime, nullable=True)

    __table_args__ = (
        CheckConstraint("plan_price >= 0", name="ck_plans_price_non_negative"),
    )


# ======================== REGULAR LESSONS (WEEKLY RULES) ========================
class RegularLesson(Base):
    __tablename__ = "regular_lessons"

    id = Column(Integer, primary_key=True)
    student_id = Column(Integer, ForeignKey("students.id"), nullable=False)
    teacher_id = Column(Integer, ForeignKey("teachers.id"), nullable=False)
    plan_id = Column(Integer, ForeignKey("plans.id"), nullable=False)
    start_time = Column(Time, nullable=False)  # UTC
    week_day = Column(String, nullable=False)  # MONDAY..SUNDAY
    start_period_date = Column(Date, nullable=False)
    end_period_date = Column(Date, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    deleted_at = Column(DateTime, nullable=True)

    student = relationship("Student", foreign_keys=[student_id])
    teacher = relationship("Teacher", foreign_keys=[teacher_id])
    plan = relationship("Plan", foreign_keys=[plan_id])

    __table_args__ = (
        CheckConstraint("start_period_date <= end_period_date", name="ck_regular_lessons_period_order"),
        Index("ix_regular_lessons_student_end", "student_id", "end_period_date"),
    )


# ======================== LESSONS ========================
class Lesson(Base):
    __tablename__ = "lessons"

    id = Column(Integer, primary_key=True)
    student_id = Column(Integer, ForeignKey("students.id"), nullable=False)
    teacher_id = Column(Integer, ForeignKey("teachers.id"), nullable=False)
    plan_id = Column(Integer, ForeignKey("plans.id"), nullable=False)
    date = Column(DateTime, nullable=False)  # lesson start, naive UTC
    status = Column(String, default="PENDING_UNPAID", nullable=False)
    comment = Column(Text, nullable=True)
    is_regular = Column(Boolean, default=False, nullable=False)
    is_free = Column(Boolean, default=False, nullable=False)
    is_trial = Column(Boolean, default=False, nullable=False)
    # Not a foreign key: lessons outlive the rule that generated them.
    regular_lesson_id = Column(Integer, nullable=True)
    # Set on a replacement lesson: the RESCHEDULED lesson it stands in for.
    rescheduled_lesson_id = Column(Integer, nullable=True)
    rescheduled_lesson_date = Column(DateTime, nullable=True)
    # Set on a RESCHEDULED lesson once its replacement exists.
    rescheduled_to_lesson_id = Column(Integer, nullable=True)
    rescheduled_to_lesson_date = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)

    student = relationship("Student", foreign_keys=[student_id])
    teacher = relationship("Teacher", foreign_keys=[teacher_id])
    plan = relationship("Plan", foreign_keys=[plan_id])

    __table_args__ = (
        Index("ix_lessons_teacher_date", "teacher_id", "date"),
        Index("ix_lessons_student_date", "student_id", "date"),
        Index("ix_lessons_status_date", "status", "date"),
    )
