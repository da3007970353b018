from __future__ import annotations

import logging
from datetime import datetime, timezone

from lesson_scheduler.core.booking_rules import SLOT_OCCUPYING_STATUSES, ExistingBooking, LessonStatus
from lesson_scheduler.core.resolver import LessonFields, LessonInstance
from lesson_scheduler.db.models import Lesson, Plan, RegularLesson

logger = logging.getLogger(__name__)

_ACTIVE_STATUS_VALUES = sorted(status.value for status in SLOT_OCCUPYING_STATUSES)


def to_db_datetime(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def from_db_datetime(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _optional_from_db(value: datetime | None) -> datetime | None:
    return from_db_datetime(value) if value is not None else None


def lesson_to_instance(lesson: Lesson) -> LessonInstance:
    return LessonInstance(
        id=lesson.id,
        student_id=lesson.student_id,
        teacher_id=lesson.teacher_id,
        plan_id=lesson.plan_id,
        date=from_db_datetime(lesson.date),
        is_regular=bool(lesson.is_regular),
        source_rule_id=lesson.regular_lesson_id,
        status=lesson.status,
        comment=lesson.comment,
        is_free=bool(lesson.is_free),
        is_trial=bool(lesson.is_trial),
        rescheduled_lesson_id=lesson.rescheduled_lesson_id,
        rescheduled_lesson_date=_optional_from_db(lesson.rescheduled_lesson_date),
        rescheduled_to_lesson_id=lesson.rescheduled_to_lesson_id,
        rescheduled_to_lesson_date=_optional_from_db(lesson.rescheduled_to_lesson_date),
    )


class SqlBookingStore:
    """BookingStore on a SQLAlchemy session.

    Writes are flushed, never committed; the caller owns the transaction.
    """

    def __init__(self, db):
        self.db = db

    def find_bookings_at(self, teacher_id: int, instant: datetime) -> list[ExistingBooking]:
        rows = (
            self.db.query(Lesson, Plan.plan_type)
            .join(Plan, Plan.id == Lesson.plan_id)
            .filter(
                Lesson.teacher_id == teacher_id,
                Lesson.date == to_db_datetime(instant),
                Lesson.status.in_(_ACTIVE_STATUS_VALUES),
            )
            .order_by(Lesson.id)
            .all()
        )
        return [
            ExistingBooking(
                date=from_db_datetime(lesson.date),
                student_id=lesson.student_id,
                plan_id=lesson.plan_id,
                plan_type=plan_type,
            )
            for lesson, plan_type in rows
        ]

    def create_instance(self, fields: LessonFields, *, is_free: bool = False, is_trial: bool = False) -> LessonInstance:
        lesson = Lesson(
            student_id=fields.student_id,
            teacher_id=fields.teacher_id,
            plan_id=fields.plan_id,
            date=to_db_datetime(fields.date),
            status=LessonStatus.PENDING_UNPAID.value,
            is_regular=fields.is_regular,
            is_free=is_free,
            is_trial=is_trial,
            regular_lesson_id=fields.source_rule_id,
        )
        self.db.add(lesson)
        self.db.flush()
        return lesson_to_instance(lesson)

    def delete_instance(self, instance_id: int) -> None:
        lesson = self.db.get(Lesson, instance_id)
        if lesson is None:
            logger.warning('[lessons] Lesson %s already gone during rollback', instance_id)
            return
        self.db.delete(lesson)
        self.db.flush()

    def delete_rule(self, rule_id: int) -> None:
        rule = self.db.get(RegularLesson, rule_id)
        if rule is None:
            logger.warning('[lessons] Regular lesson rule %s already gone during rollback', rule_id)
            return
        self.db.delete(rule)
        self.db.flush()


__all__ = [
    "SqlBookingStore",
    "from_db_datetime",
    "lesson_to_instance",
    "to_db_datetime",
]
