from __future__ import annotations

import argparse
import logging

from lesson_scheduler.core.booking_rules import ConflictError
from lesson_scheduler.core.recurrence import ValidationError, WeekDay
from lesson_scheduler.core.settings import LOG_LEVEL
from lesson_scheduler.db import ensure_schema_dev, get_session
from lesson_scheduler.services.lessons import (
    CANCELATION_STATUSES,
    NotFoundError,
    cancel_lesson,
    create_regular_lessons,
    create_rescheduled_lesson,
    get_lessons_for_period,
    get_lessons_for_reschedule,
    get_regular_lessons,
    update_pending_lessons_status,
)

EXIT_OK = 0
EXIT_INVALID = 1
EXIT_CONFLICT = 2


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="lesson-scheduler")
    sub = p.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create tables in an empty development database")

    assign = sub.add_parser("assign-regular", help="Book a weekly lesson for a student over a period")
    assign.add_argument("--student", type=int, required=True)
    assign.add_argument("--teacher", type=int, required=True)
    assign.add_argument("--plan", type=int, required=True)
    assign.add_argument("--week-day", required=True, choices=[d.value for d in WeekDay], type=str.upper)
    assign.add_argument("--time", required=True, help="Start time in UTC, HH:MM")
    assign.add_argument("--from", dest="period_from", required=True, help="First day of the period, YYYY-MM-DD")
    assign.add_argument("--to", dest="period_to", required=True, help="Last day of the period, YYYY-MM-DD")

    listing = sub.add_parser("list-regular", help="Show a student's active weekly rules")
    listing.add_argument("--student", type=int, required=True)

    cancel = sub.add_parser("cancel-lesson", help="Cancel, miss or reschedule a lesson")
    cancel.add_argument("--lesson", type=int, required=True)
    cancel.add_argument("--status", required=True, choices=sorted(CANCELATION_STATUSES), type=str.upper)
    cancel.add_argument("--comment", default=None)

    reschedule = sub.add_parser("reschedule-lesson", help="Book the replacement for a RESCHEDULED lesson")
    reschedule.add_argument("--lesson", type=int, required=True)
    reschedule.add_argument("--at", dest="start_at", required=True, help="New start, ISO-8601 (UTC if no offset)")
    reschedule.add_argument("--teacher", type=int, default=None)

    lessons = sub.add_parser("list-lessons", help="Show a teacher's lessons for a period")
    lessons.add_argument("--teacher", type=int, required=True)
    lessons.add_argument("--from", dest="period_from", required=True, help="First day, YYYY-MM-DD")
    lessons.add_argument("--to", dest="period_to", required=True, help="Last day, YYYY-MM-DD")

    waiting = sub.add_parser("list-reschedule", help="Show RESCHEDULED lessons that still need a replacement")
    waiting.add_argument("--teacher", type=int, required=True)

    sub.add_parser("complete-past-lessons", help="Move past pending lessons to completed")
    return p


def _run(args, db) -> int:
    if args.command == "assign-regular":
        lessons = create_regular_lessons(db, args.student, [{
            "teacher_id": args.teacher,
            "plan_id": args.plan,
            "week_day": args.week_day,
            "start_time": args.time,
            "start_period_date": args.period_from,
            "end_period_date": args.period_to,
        }])
        for lesson in lessons:
            print(f"#{lesson.id} {lesson.date:%Y-%m-%d %H:%M} UTC teacher={lesson.teacher_id} plan={lesson.plan_id}")
        print(f"[RESULT] OK: {len(lessons)} lessons")
        return EXIT_OK

    if args.command == "list-regular":
        for rule in get_regular_lessons(db, args.student):
            print(
                f"#{rule.id} {rule.week_day.value} {rule.start_time:%H:%M} UTC "
                f"{rule.start_period_date.isoformat()}..{rule.end_period_date.isoformat()} "
                f"teacher={rule.teacher_id} plan={rule.plan_id}"
            )
        return EXIT_OK

    if args.command == "cancel-lesson":
        lesson = cancel_lesson(db, args.lesson, args.status, args.comment)
        print(f"[RESULT] OK: lesson #{lesson.id} {args.status}")
        return EXIT_OK

    if args.command == "reschedule-lesson":
        lesson = create_rescheduled_lesson(db, rescheduled_lesson_id=args.lesson, start_at=args.start_at, teacher_id=args.teacher)
        print(f"[RESULT] OK: lesson #{args.lesson} rescheduled to #{lesson.id} at {lesson.date:%Y-%m-%d %H:%M} UTC")
        return EXIT_OK

    if args.command in ("list-lessons", "list-reschedule"):
        if args.command == "list-reschedule":
            found = get_lessons_for_reschedule(db, args.teacher)
        else:
            found = get_lessons_for_period(db, args.teacher, args.period_from, args.period_to)
        for lesson in found:
            print(f"#{lesson.id} {lesson.date:%Y-%m-%d %H:%M} UTC {lesson.status} student={lesson.student_id} plan={lesson.plan_id}")
        return EXIT_OK

    if args.command == "complete-past-lessons":
        moved = update_pending_lessons_status(db)
        print("[RESULT] OK: " + ", ".join(f"{status}={count}" for status, count in sorted(moved.items())))
        return EXIT_OK

    raise ValueError(f"Unknown command: {args.command}")


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    if args.command == "init-db":
        ensure_schema_dev()
        print("[RESULT] OK: schema ready")
        return EXIT_OK

    db = get_session()
    try:
        return _run(args, db)
    except ConflictError as e:
        print(f"[CONFLICT] {e}")
        return EXIT_CONFLICT
    except (ValidationError, NotFoundError) as e:
        print(f"[ERROR] {e}")
        return EXIT_INVALID
    finally:
        db.close()


if __name__ == "__main__":
    raise SystemExit(main())
