from __future__ import annotations

import os

# lesson_scheduler.db builds its engine at import time.
os.environ.setdefault("DATABASE_URL", "sqlite://")

from datetime import datetime
from itertools import count

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from lesson_scheduler.core.booking_rules import ExistingBooking
from lesson_scheduler.core.resolver import LessonFields, LessonInstance
from lesson_scheduler.db.models import Base, Plan, Student, Teacher


class InMemoryBookingStore:
    """BookingStore fake that records every call."""

    def __init__(self, bookings: dict[tuple[int, datetime], list[ExistingBooking]] | None = None):
        self.bookings = bookings or {}
        self.instances: dict[int, LessonInstance] = {}
        self.deleted_instances: list[int] = []
        self.deleted_rules: list[int] = []
        self.lookups: list[tuple[int, datetime]] = []
        self._ids = count(1)

    def add_booking(self, teacher_id: int, booking: ExistingBooking) -> None:
        self.bookings.setdefault((teacher_id, booking.date), []).append(booking)

    def find_bookings_at(self, teacher_id: int, instant: datetime) -> list[ExistingBooking]:
        self.lookups.append((teacher_id, instant))
        return list(self.bookings.get((teacher_id, instant), []))

    def create_instance(self, fields: LessonFields) -> LessonInstance:
        instance = LessonInstance(
            id=next(self._ids),
            student_id=fields.student_id,
            teacher_id=fields.teacher_id,
            plan_id=fields.plan_id,
            date=fields.date,
            is_regular=fields.is_regular,
            source_rule_id=fields.source_rule_id,
        )
        self.instances[instance.id] = instance
        return instance

    def delete_instance(self, instance_id: int) -> None:
        self.deleted_instances.append(instance_id)
        self.instances.pop(instance_id, None)

    def delete_rule(self, rule_id: int) -> None:
        self.deleted_rules.append(rule_id)


@pytest.fixture
def store() -> InMemoryBookingStore:
    return InMemoryBookingStore()


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def seed(db):
    teacher = Teacher(login="anna", name="Anna", role="TEACHER", timezone="Europe/Warsaw")
    other_teacher = Teacher(login="boris", name="Boris", role="TEACHER")
    admin = Teacher(login="admin", name="Admin", role="ADMIN")
    db.add_all([teacher, other_teacher, admin])
    db.flush()

    students = [Student(name=f"Student {idx}", teacher_id=teacher.id) for idx in range(1, 4)]
    db.add_all(students)

    individual = Plan(plan_name="INDIVIDUAL 60 min", plan_type="INDIVIDUAL", plan_price=5000, plan_currency="USD", duration=60)
    pair = Plan(plan_name="PAIR 60 min", plan_type="PAIR", plan_price=3500, plan_currency="USD", duration=60)
    pair_short = Plan(plan_name="PAIR 45 min", plan_type="PAIR", plan_price=3000, plan_currency="USD", duration=45)
    db.add_all([individual, pair, pair_short])
    db.commit()

    return {
        "teacher": teacher,
        "other_teacher": other_teacher,
        "admin": admin,
        "students": students,
        "individual": individual,
        "pair": pair,
        "pair_short": pair_short,
    }
