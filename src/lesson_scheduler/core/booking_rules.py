from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Sequence


MAX_LESSONS_PER_SLOT = 2


class PlanType(str, Enum):
    INDIVIDUAL = "INDIVIDUAL"
    PAIR = "PAIR"


class LessonStatus(str, Enum):
    PENDING_UNPAID = "PENDING_UNPAID"
    PENDING_PAID = "PENDING_PAID"
    COMPLETED_UNPAID = "COMPLETED_UNPAID"
    COMPLETED_PAID = "COMPLETED_PAID"
    CANCELLED = "CANCELLED"
    MISSED = "MISSED"
    RESCHEDULED = "RESCHEDULED"


# Lessons in these statuses hold their slot.
SLOT_OCCUPYING_STATUSES = frozenset({
    LessonStatus.PENDING_UNPAID,
    LessonStatus.PENDING_PAID,
    LessonStatus.COMPLETED_UNPAID,
    LessonStatus.COMPLETED_PAID,
})


@dataclass(frozen=True)
class ExistingBooking:
    date: datetime
    student_id: int
    plan_id: int
    plan_type: str


class ConflictError(Exception):
    """A slot cannot take another lesson. Not retryable."""

    reason = "Slot is not available"

    def __init__(self, date: datetime, detail: str | None = None):
        self.date = date
        self.detail = detail
        message = f"{self.reason}: {format_slot_date(date)}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class CapacityExceeded(ConflictError):
    reason = "Maximum number of lessons at this time reached"


class DuplicateStudentBooking(ConflictError):
    reason = "Lesson already booked for this student at this time"


class PlanMismatch(ConflictError):
    reason = "Lesson at this time uses a different plan"


class IndividualPlanOccupied(ConflictError):
    reason = "Individual lesson already booked at this time"


def format_slot_date(value: datetime) -> str:
    return value.strftime("%Y-%m-%d %H:%M UTC")


def check_slot(
    bookings: Sequence[ExistingBooking],
    *,
    student_id: int,
    plan_id: int,
    instant: datetime,
    individual_plan_exclusive: bool = False,
) -> None:
    """Raise a ConflictError if a lesson for ``student_id`` on ``plan_id`` cannot go at ``instant``.

    ``bookings`` are the active lessons of the same teacher at exactly that instant.
    """
    if len(bookings) >= MAX_LESSONS_PER_SLOT:
        raise CapacityExceeded(instant, f"{len(bookings)} booked")

    if any(booking.student_id == student_id for booking in bookings):
        raise DuplicateStudentBooking(instant, f"student_id={student_id}")

    if len(bookings) == 1 and bookings[0].plan_id != plan_id:
        raise PlanMismatch(instant, f"booked plan_id={bookings[0].plan_id}, requested plan_id={plan_id}")

    if individual_plan_exclusive:
        for booking in bookings:
            if booking.plan_type == PlanType.INDIVIDUAL.value:
                raise IndividualPlanOccupied(instant, f"plan_id={booking.plan_id}")


__all__ = [
    "CapacityExceeded",
    "ConflictError",
    "DuplicateStudentBooking",
    "ExistingBooking",
    "IndividualPlanOccupied",
    "LessonStatus",
    "MAX_LESSONS_PER_SLOT",
    "PlanMismatch",
    "PlanType",
    "SLOT_OCCUPYING_STATUSES",
    "check_slot",
    "format_slot_date",
]
