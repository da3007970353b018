from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from lesson_scheduler.core.booking_rules import ConflictError, ExistingBooking, LessonStatus, check_slot
from lesson_scheduler.core.recurrence import RecurrenceRule, occurrence_instants

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LessonFields:
    student_id: int
    teacher_id: int
    plan_id: int
    date: datetime
    is_regular: bool = True
    source_rule_id: int | None = None


@dataclass(frozen=True)
class LessonInstance:
    id: int
    student_id: int
    teacher_id: int
    plan_id: int
    date: datetime
    is_regular: bool
    source_rule_id: int | None
    status: str = LessonStatus.PENDING_UNPAID.value
    comment: str | None = None
    is_free: bool = False
    is_trial: bool = False
    # Links between a RESCHEDULED lesson and the lesson that replaces it.
    rescheduled_lesson_id: int | None = None
    rescheduled_lesson_date: datetime | None = None
    rescheduled_to_lesson_id: int | None = None
    rescheduled_to_lesson_date: datetime | None = None


class BookingStore(Protocol):
    def find_bookings_at(self, teacher_id: int, instant: datetime) -> list[ExistingBooking]: ...

    def create_instance(self, fields: LessonFields) -> LessonInstance: ...

    def delete_instance(self, instance_id: int) -> None: ...

    def delete_rule(self, rule_id: int) -> None: ...


class RecurringSlotResolver:
    """Expands a RecurrenceRule into lessons, all or nothing.

    Lessons are created one by one as their slot passes the check. On the
    first conflicting slot the lessons already created for the rule and the
    rule record itself are deleted, then the conflict is raised. A store
    failure gets the same cleanup before the original error propagates.
    """

    def __init__(self, store: BookingStore, *, individual_plan_exclusive: bool = False):
        self.store = store
        self.individual_plan_exclusive = individual_plan_exclusive

    def resolve(self, rule: RecurrenceRule) -> list[LessonInstance]:
        created: list[LessonInstance] = []
        try:
            for instant in occurrence_instants(rule):
                bookings = self.store.find_bookings_at(rule.teacher_id, instant)
                check_slot(
                    bookings,
                    student_id=rule.student_id,
                    plan_id=rule.plan_id,
                    instant=instant,
                    individual_plan_exclusive=self.individual_plan_exclusive,
                )
                created.append(self.store.create_instance(LessonFields(
                    student_id=rule.student_id,
                    teacher_id=rule.teacher_id,
                    plan_id=rule.plan_id,
                    date=instant,
                    is_regular=True,
                    source_rule_id=rule.id,
                )))
        except ConflictError as exc:
            logger.info(
                '[lessons] Regular lesson rule %s rejected at %s: %s (rolling back %s created)',
                rule.id, exc.date.isoformat(), exc.reason, len(created),
            )
            self._rollback(rule, created)
            raise
        except Exception:
            logger.exception(
                '[lessons] Store error while resolving regular lesson rule %s (rolling back %s created)',
                rule.id, len(created),
            )
            try:
                self._rollback(rule, created)
            except Exception:
                logger.exception('[lessons] Rollback of regular lesson rule %s failed', rule.id)
            raise

        logger.info('[lessons] Regular lesson rule %s resolved into %s lessons', rule.id, len(created))
        return created

    def _rollback(self, rule: RecurrenceRule, created: list[LessonInstance]) -> None:
        for instance in reversed(created):
            self.store.delete_instance(instance.id)
        if rule.id is not None:
            self.store.delete_rule(rule.id)


__all__ = [
    "BookingStore",
    "LessonFields",
    "LessonInstance",
    "RecurringSlotResolver",
]
