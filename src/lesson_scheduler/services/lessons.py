from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Sequence

from sqlalchemy import or_

from lesson_scheduler.core.booking_rules import SLOT_OCCUPYING_STATUSES, ConflictError, LessonStatus, check_slot
from lesson_scheduler.core.recurrence import (
    RecurrenceRule,
    ValidationError,
    build_rule,
    parse_id,
    parse_instant,
    parse_period_date,
    parse_week_day,
)
from lesson_scheduler.core.resolver import LessonFields, LessonInstance, RecurringSlotResolver
from lesson_scheduler.core.settings import INDIVIDUAL_PLAN_EXCLUSIVE
from lesson_scheduler.db.models import Lesson, Plan, RegularLesson, Student, Teacher
from lesson_scheduler.db.store import SqlBookingStore, from_db_datetime, lesson_to_instance, to_db_datetime

logger = logging.getLogger(__name__)

CANCELATION_STATUSES = {
    LessonStatus.CANCELLED.value,
    LessonStatus.MISSED.value,
    LessonStatus.RESCHEDULED.value,
}

PENDING_TO_COMPLETED = {
    LessonStatus.PENDING_UNPAID: LessonStatus.COMPLETED_UNPAID,
    LessonStatus.PENDING_PAID: LessonStatus.COMPLETED_PAID,
}

ASSIGNED_LESSONS_WINDOW = timedelta(hours=1)

_ACTIVE_STATUS_VALUES = {status.value for status in SLOT_OCCUPYING_STATUSES}


class NotFoundError(LookupError):
    pass


def _get_student(db, student_id: int) -> Student:
    student = db.get(Student, student_id)
    if not student:
        raise NotFoundError(f"Student not found: {student_id}")
    if student.deleted_at:
        raise ValidationError(f"Student is deleted: {student_id}")
    return student


def _get_teacher(db, teacher_id: int) -> Teacher:
    teacher = db.get(Teacher, teacher_id)
    if not teacher:
        raise NotFoundError(f"Teacher not found: {teacher_id}")
    if teacher.deleted_at:
        raise ValidationError(f"Teacher is deleted: {teacher_id}")
    return teacher


def _get_plan(db, plan_id: int) -> Plan:
    plan = db.get(Plan, plan_id)
    if not plan:
        raise NotFoundError(f"Plan not found: {plan_id}")
    if plan.deleted_at:
        raise ValidationError(f"Plan is deleted: {plan_id}")
    return plan


def rule_from_payload(payload: Any, student_id: int) -> RecurrenceRule:
    if not isinstance(payload, dict):
        raise ValidationError("Each regular lesson must be an object.")
    return build_rule(
        student_id=student_id,
        teacher_id=payload.get("teacher_id"),
        plan_id=payload.get("plan_id"),
        start_time=payload.get("start_time"),
        week_day=payload.get("week_day"),
        start_period_date=payload.get("start_period_date"),
        end_period_date=payload.get("end_period_date"),
    )


def regular_lesson_to_rule(row: RegularLesson) -> RecurrenceRule:
    return RecurrenceRule(
        id=row.id,
        student_id=row.student_id,
        teacher_id=row.teacher_id,
        plan_id=row.plan_id,
        start_time=row.start_time,
        week_day=parse_week_day(row.week_day),
        start_period_date=row.start_period_date,
        end_period_date=row.end_period_date,
    )


def create_regular_lessons(
    db,
    student_id: Any,
    lessons: Sequence[dict],
    *,
    individual_plan_exclusive: bool | None = None,
) -> list[LessonInstance]:
    """Create weekly rules for a student and the lessons they expand into.

    Every payload is validated before anything is written. The request runs
    as one transaction: a conflict in any rule leaves nothing behind.
    """
    student_id = parse_id(student_id, "student_id")
    if not isinstance(lessons, (list, tuple)):
        raise ValidationError("lessons must be an array.")
    rules = [rule_from_payload(item, student_id) for item in lessons]

    if individual_plan_exclusive is None:
        individual_plan_exclusive = INDIVIDUAL_PLAN_EXCLUSIVE
    resolver = RecurringSlotResolver(SqlBookingStore(db), individual_plan_exclusive=individual_plan_exclusive)

    created: list[LessonInstance] = []
    try:
        _get_student(db, student_id)
        for rule in rules:
            _get_teacher(db, rule.teacher_id)
            _get_plan(db, rule.plan_id)

            record = RegularLesson(
                student_id=rule.student_id,
                teacher_id=rule.teacher_id,
                plan_id=rule.plan_id,
                start_time=rule.start_time,
                week_day=rule.week_day.value,
                start_period_date=rule.start_period_date,
                end_period_date=rule.end_period_date,
            )
            db.add(record)
            db.flush()
            created.extend(resolver.resolve(rule.with_id(record.id)))
        db.commit()
    except (ValidationError, NotFoundError, ConflictError):
        db.rollback()
        raise
    except Exception:
        db.rollback()
        logger.exception('[lessons] Error while creating regular lessons for student %s', student_id)
        raise

    logger.info(
        '[lessons] Created %s regular lessons from %s rules for student %s',
        len(created), len(rules), student_id,
    )
    return created


def create_single_lesson(
    db,
    *,
    student_id: Any,
    teacher_id: Any,
    plan_id: Any,
    start_at: Any,
    is_free: bool = False,
    is_trial: bool = False,
    individual_plan_exclusive: bool | None = None,
) -> LessonInstance:
    student_id = parse_id(student_id, "student_id")
    teacher_id = parse_id(teacher_id, "teacher_id")
    plan_id = parse_id(plan_id, "plan_id")
    instant = parse_instant(start_at, "start_at")
    if individual_plan_exclusive is None:
        individual_plan_exclusive = INDIVIDUAL_PLAN_EXCLUSIVE

    store = SqlBookingStore(db)
    try:
        _get_plan(db, plan_id)
        _get_student(db, student_id)
        _get_teacher(db, teacher_id)

        check_slot(
            store.find_bookings_at(teacher_id, instant),
            student_id=student_id,
            plan_id=plan_id,
            instant=instant,
            individual_plan_exclusive=individual_plan_exclusive,
        )
        instance = store.create_instance(
            LessonFields(
                student_id=student_id,
                teacher_id=teacher_id,
                plan_id=plan_id,
                date=instant,
                is_regular=False,
            ),
            is_free=bool(is_free),
            is_trial=bool(is_trial),
        )
        db.commit()
    except (ValidationError, NotFoundError, ConflictError):
        db.rollback()
        raise
    except Exception:
        db.rollback()
        logger.exception('[lessons] Error while creating single lesson for student %s', student_id)
        raise

    logger.info('[lessons] Created lesson %s for student %s at %s', instance.id, student_id, instance.date.isoformat())
    return instance


def get_regular_lessons(db, student_id: Any, *, now: datetime | None = None) -> list[RecurrenceRule]:
    """Rules of a student that still have lessons ahead of them."""
    student_id = parse_id(student_id, "student_id")
    today: date = (now or datetime.now(timezone.utc)).date()
    rows = (
        db.query(RegularLesson)
        .filter(
            RegularLesson.student_id == student_id,
            RegularLesson.end_period_date >= today,
            RegularLesson.deleted_at.is_(None),
        )
        .order_by(RegularLesson.id)
        .all()
    )
    return [regular_lesson_to_rule(row) for row in rows]


def _get_lesson(db, lesson_id: int) -> Lesson:
    lesson = db.get(Lesson, lesson_id)
    if not lesson:
        raise NotFoundError(f"Lesson not found: {lesson_id}")
    return lesson


def _commit(db, action: str, lesson_id) -> None:
    try:
        db.commit()
    except Exception:
        db.rollback()
        logger.exception('[lessons] Error while %s lesson %s', action, lesson_id)
        raise


def _day_bounds(start_date: Any, end_date: Any) -> tuple[datetime, datetime]:
    # [start 00:00, day after end 00:00) in naive UTC, same as the lessons.date column.
    start = parse_period_date(start_date, "start_date")
    end = parse_period_date(end_date, "end_date")
    if start > end:
        raise ValidationError("start_date must not be after end_date.")
    return datetime.combine(start, time.min), datetime.combine(end + timedelta(days=1), time.min)


def _lessons_of_teacher(db, teacher_id: int):
    # A teacher sees lessons they teach and lessons of students assigned to them.
    return (
        db.query(Lesson)
        .join(Student, Student.id == Lesson.student_id)
        .filter(or_(Lesson.teacher_id == teacher_id, Student.teacher_id == teacher_id))
    )


def cancel_lesson(db, lesson_id: Any, status: Any, comment: str | None = None) -> LessonInstance:
    """Mark a lesson CANCELLED, MISSED or RESCHEDULED.

    A replacement lesson cannot be rescheduled again; cancel it instead, which
    also frees its source lesson for a new replacement.
    """
    lesson_id = parse_id(lesson_id, "lesson_id")
    status_value = str(status or "").strip().upper()
    if status_value not in CANCELATION_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(sorted(CANCELATION_STATUSES))}.")

    lesson = _get_lesson(db, lesson_id)
    if lesson.status == LessonStatus.CANCELLED.value:
        raise ValidationError(f"Lesson already cancelled: {lesson_id}")

    if status_value == LessonStatus.RESCHEDULED.value:
        if lesson.rescheduled_lesson_id:
            raise ValidationError(
                f"Lesson {lesson_id} replaces rescheduled lesson {lesson.rescheduled_lesson_id}; "
                "cancel it before rescheduling again."
            )
        if lesson.status == LessonStatus.RESCHEDULED.value:
            raise ValidationError(f"Lesson already rescheduled: {lesson_id}")

    if status_value == LessonStatus.CANCELLED.value and lesson.rescheduled_lesson_id:
        source = db.get(Lesson, lesson.rescheduled_lesson_id)
        if not source:
            raise NotFoundError(f"Rescheduled lesson not found: {lesson.rescheduled_lesson_id}")
        source.rescheduled_to_lesson_id = None
        source.rescheduled_to_lesson_date = None
        lesson.rescheduled_lesson_id = None
        lesson.rescheduled_lesson_date = None

    lesson.status = status_value
    if comment is not None:
        lesson.comment = comment
    _commit(db, "cancelling", lesson_id)

    logger.info('[lessons] Lesson %s marked %s', lesson_id, status_value)
    return lesson_to_instance(lesson)


def create_rescheduled_lesson(
    db,
    *,
    rescheduled_lesson_id: Any,
    start_at: Any,
    teacher_id: Any = None,
    individual_plan_exclusive: bool | None = None,
) -> LessonInstance:
    """Book the replacement for a RESCHEDULED lesson and link the two.

    The replacement keeps the student, plan and free flag of the source and,
    unless another teacher is given, its teacher. The new slot goes through
    the same booking rules as any other lesson.
    """
    source_id = parse_id(rescheduled_lesson_id, "rescheduled_lesson_id")
    instant = parse_instant(start_at, "start_at")
    if individual_plan_exclusive is None:
        individual_plan_exclusive = INDIVIDUAL_PLAN_EXCLUSIVE

    source = _get_lesson(db, source_id)
    if source.status != LessonStatus.RESCHEDULED.value:
        raise ValidationError(f"Lesson {source_id} is not marked RESCHEDULED.")
    if source.rescheduled_to_lesson_id:
        raise ValidationError(
            f"Lesson {source_id} already has a replacement: lesson {source.rescheduled_to_lesson_id}."
        )
    teacher_id = source.teacher_id if teacher_id is None else parse_id(teacher_id, "teacher_id")

    store = SqlBookingStore(db)
    try:
        _get_student(db, source.student_id)
        _get_teacher(db, teacher_id)
        _get_plan(db, source.plan_id)

        check_slot(
            store.find_bookings_at(teacher_id, instant),
            student_id=source.student_id,
            plan_id=source.plan_id,
            instant=instant,
            individual_plan_exclusive=individual_plan_exclusive,
        )
        created = store.create_instance(
            LessonFields(
                student_id=source.student_id,
                teacher_id=teacher_id,
                plan_id=source.plan_id,
                date=instant,
                is_regular=False,
            ),
            is_free=bool(source.is_free),
        )
        replacement = db.get(Lesson, created.id)
        replacement.rescheduled_lesson_id = source.id
        replacement.rescheduled_lesson_date = source.date
        source.rescheduled_to_lesson_id = replacement.id
        source.rescheduled_to_lesson_date = replacement.date
        db.commit()
    except (ValidationError, NotFoundError, ConflictError):
        db.rollback()
        raise
    except Exception:
        db.rollback()
        logger.exception('[lessons] Error while rescheduling lesson %s', source_id)
        raise

    logger.info('[lessons] Lesson %s rescheduled to lesson %s at %s', source_id, replacement.id, instant.isoformat())
    return lesson_to_instance(replacement)


def get_lessons_for_reschedule(db, teacher_id: Any) -> list[LessonInstance]:
    """RESCHEDULED lessons of a teacher that still wait for a replacement."""
    teacher_id = parse_id(teacher_id, "teacher_id")
    rows = (
        _lessons_of_teacher(db, teacher_id)
        .filter(
            Lesson.status == LessonStatus.RESCHEDULED.value,
            Lesson.rescheduled_to_lesson_id.is_(None),
        )
        .order_by(Lesson.date, Lesson.id)
        .all()
    )
    return [lesson_to_instance(row) for row in rows]


def get_lessons_for_period(db, teacher_id: Any, start_date: Any, end_date: Any) -> list[LessonInstance]:
    teacher_id = parse_id(teacher_id, "teacher_id")
    start, end = _day_bounds(start_date, end_date)
    rows = (
        _lessons_of_teacher(db, teacher_id)
        .filter(Lesson.date >= start, Lesson.date < end)
        .order_by(Lesson.date, Lesson.id)
        .all()
    )
    return [lesson_to_instance(row) for row in rows]


def get_lessons_for_period_and_student(db, student_id: Any, start_date: Any, end_date: Any) -> list[LessonInstance]:
    student_id = parse_id(student_id, "student_id")
    start, end = _day_bounds(start_date, end_date)
    rows = (
        db.query(Lesson)
        .filter(Lesson.student_id == student_id, Lesson.date >= start, Lesson.date < end)
        .order_by(Lesson.date, Lesson.id)
        .all()
    )
    return [lesson_to_instance(row) for row in rows]


def get_assigned_lessons(db, teacher_id: Any, start_at: Any) -> list[LessonInstance]:
    """Lessons of a teacher starting within an hour of ``start_at``, both ends included."""
    teacher_id = parse_id(teacher_id, "teacher_id")
    start = to_db_datetime(parse_instant(start_at, "start_at"))
    rows = (
        _lessons_of_teacher(db, teacher_id)
        .filter(Lesson.date >= start, Lesson.date <= start + ASSIGNED_LESSONS_WINDOW)
        .order_by(Lesson.date, Lesson.id)
        .all()
    )
    return [lesson_to_instance(row) for row in rows]


def update_pending_lessons_status(db, *, now: datetime | None = None) -> dict[str, int]:
    """Roll lessons that already started from PENDING_* to COMPLETED_*.

    Free and trial lessons keep their status. Returns the number of lessons
    moved into each new status.
    """
    cutoff = to_db_datetime(now or datetime.now(timezone.utc))
    moved: dict[str, int] = {}
    try:
        for pending, completed in PENDING_TO_COMPLETED.items():
            moved[completed.value] = (
                db.query(Lesson)
                .filter(
                    Lesson.status == pending.value,
                    Lesson.is_free.is_(False),
                    Lesson.is_trial.is_(False),
                    Lesson.date < cutoff,
                )
                .update({Lesson.status: completed.value}, synchronize_session=False)
            )
        db.commit()
    except Exception:
        db.rollback()
        logger.exception('[lessons] Error while completing past lessons')
        raise

    logger.info('[lessons] Completed past lessons before %s: %s', cutoff.isoformat(), moved)
    return moved


def update_lessons_plan_for_period(
    db,
    *,
    student_id: Any,
    old_plan_id: Any,
    new_plan_id: Any,
    start_date: Any,
    end_date: Any,
) -> int:
    student_id = parse_id(student_id, "student_id")
    old_plan_id = parse_id(old_plan_id, "old_plan_id")
    new_plan_id = parse_id(new_plan_id, "new_plan_id")
    start, end = _day_bounds(start_date, end_date)

    _get_student(db, student_id)
    if not db.get(Plan, old_plan_id):
        raise NotFoundError(f"Plan not found: {old_plan_id}")
    _get_plan(db, new_plan_id)

    try:
        updated = (
            db.query(Lesson)
            .filter(
                Lesson.student_id == student_id,
                Lesson.plan_id == old_plan_id,
                Lesson.date >= start,
                Lesson.date < end,
            )
            .update({Lesson.plan_id: new_plan_id}, synchronize_session=False)
        )
        db.commit()
    except Exception:
        db.rollback()
        logger.exception('[lessons] Error while changing plan for student %s', student_id)
        raise

    logger.info(
        '[lessons] Student %s: %s lessons moved from plan %s to plan %s',
        student_id, updated, old_plan_id, new_plan_id,
    )
    return updated


def change_teacher(db, lesson_id: Any, teacher_id: Any, *, individual_plan_exclusive: bool | None = None) -> LessonInstance:
    """Hand a lesson over to another teacher.

    A lesson that holds its slot must also fit the new teacher's slot.
    """
    lesson_id = parse_id(lesson_id, "lesson_id")
    teacher_id = parse_id(teacher_id, "teacher_id")
    if individual_plan_exclusive is None:
        individual_plan_exclusive = INDIVIDUAL_PLAN_EXCLUSIVE

    lesson = _get_lesson(db, lesson_id)
    _get_teacher(db, teacher_id)
    if lesson.teacher_id == teacher_id:
        return lesson_to_instance(lesson)

    if lesson.status in _ACTIVE_STATUS_VALUES:
        instant = from_db_datetime(lesson.date)
        check_slot(
            SqlBookingStore(db).find_bookings_at(teacher_id, instant),
            student_id=lesson.student_id,
            plan_id=lesson.plan_id,
            instant=instant,
            individual_plan_exclusive=individual_plan_exclusive,
        )

    previous_teacher_id = lesson.teacher_id
    lesson.teacher_id = teacher_id
    _commit(db, "changing teacher of", lesson_id)

    logger.info('[lessons] Lesson %s moved from teacher %s to teacher %s', lesson_id, previous_teacher_id, teacher_id)
    return lesson_to_instance(lesson)


def delete_lesson(db, lesson_id: Any) -> None:
    """Delete a lesson and drop the reschedule links that point at it."""
    lesson_id = parse_id(lesson_id, "lesson_id")
    lesson = _get_lesson(db, lesson_id)

    if lesson.rescheduled_lesson_id:
        source = db.get(Lesson, lesson.rescheduled_lesson_id)
        if source is not None:
            source.rescheduled_to_lesson_id = None
            source.rescheduled_to_lesson_date = None
    if lesson.rescheduled_to_lesson_id:
        replacement = db.get(Lesson, lesson.rescheduled_to_lesson_id)
        if replacement is not None:
            replacement.rescheduled_lesson_id = None
            replacement.rescheduled_lesson_date = None
    db.delete(lesson)
    _commit(db, "deleting", lesson_id)

    logger.info('[lessons] Lesson %s deleted', lesson_id)


def manage_free_lesson_status(db, lesson_id: Any, is_free: Any) -> LessonInstance:
    lesson_id = parse_id(lesson_id, "lesson_id")
    if not isinstance(is_free, bool):
        raise ValidationError("is_free must be a boolean.")

    lesson = _get_lesson(db, lesson_id)
    lesson.is_free = is_free
    _commit(db, "updating free status of", lesson_id)

    logger.info('[lessons] Lesson %s is_free=%s', lesson_id, is_free)
    return lesson_to_instance(lesson)


__all__ = [
    "ASSIGNED_LESSONS_WINDOW",
    "CANCELATION_STATUSES",
    "NotFoundError",
    "cancel_lesson",
    "change_teacher",
    "create_regular_lessons",
    "create_rescheduled_lesson",
    "create_single_lesson",
    "delete_lesson",
    "get_assigned_lessons",
    "get_lessons_for_period",
    "get_lessons_for_period_and_student",
    "get_lessons_for_reschedule",
    "get_regular_lessons",
    "manage_free_lesson_status",
    "regular_lesson_to_rule",
    "rule_from_payload",
    "update_lessons_plan_for_period",
    "update_pending_lessons_status",
]
