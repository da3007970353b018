"""Weekly recurrence rules and their expansion into lesson dates.

All arithmetic is done on plain calendar dates and UTC instants. Callers
are expected to pass a ``start_time`` that is already UTC-normalized; aware
values are converted to UTC, naive ones are taken as UTC.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from datetime import date, datetime, time, timedelta, timezone
from enum import Enum
from typing import Any, Iterator


_HHMM_RE = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2}))?$")
_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


class ValidationError(ValueError):
    pass


class WeekDay(str, Enum):
    MONDAY = "MONDAY"
    TUESDAY = "TUESDAY"
    WEDNESDAY = "WEDNESDAY"
    THURSDAY = "THURSDAY"
    FRIDAY = "FRIDAY"
    SATURDAY = "SATURDAY"
    SUNDAY = "SUNDAY"

    @property
    def weekday_index(self) -> int:
        # Same numbering as date.weekday(): Monday is 0.
        return _WEEK_DAY_ORDER.index(self)


_WEEK_DAY_ORDER = tuple(WeekDay)


@dataclass(frozen=True)
class RecurrenceRule:
    """Every ``week_day`` at ``start_time`` from ``start_period_date`` to ``end_period_date`` inclusive."""

    student_id: int
    teacher_id: int
    plan_id: int
    start_time: time
    week_day: WeekDay
    start_period_date: date
    end_period_date: date
    id: int | None = None

    def with_id(self, rule_id: int) -> "RecurrenceRule":
        return replace(self, id=rule_id)


def _normalize_iso(text: str) -> str:
    if text.endswith("Z") or text.endswith("z"):
        return text[:-1] + "+00:00"
    return text


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def parse_week_day(raw_value: Any) -> WeekDay:
    if isinstance(raw_value, WeekDay):
        return raw_value
    name = str(raw_value or "").strip().upper()
    try:
        return WeekDay(name)
    except ValueError as exc:
        raise ValidationError(f"week_day must be one of: {', '.join(d.value for d in WeekDay)}.") from exc


def parse_start_time(raw_value: Any) -> time:
    if isinstance(raw_value, datetime):
        return _as_utc(raw_value).time().replace(second=0, microsecond=0)
    if isinstance(raw_value, time):
        if raw_value.tzinfo is not None and raw_value.utcoffset() is not None:
            anchor = datetime.combine(date(2000, 1, 3), raw_value)
            return _as_utc(anchor).time().replace(second=0, microsecond=0)
        return raw_value.replace(second=0, microsecond=0, tzinfo=None)

    text = str(raw_value or "").strip()
    if not text:
        raise ValidationError("start_time is required.")

    match = _HHMM_RE.match(text)
    if match:
        hour, minute = int(match.group(1)), int(match.group(2))
        if hour > 23 or minute > 59:
            raise ValidationError(f"start_time is not a valid time of day: {text!r}.")
        return time(hour, minute)

    try:
        parsed = datetime.fromisoformat(_normalize_iso(text))
    except ValueError as exc:
        raise ValidationError(f"start_time must be HH:MM or an ISO-8601 timestamp, got {text!r}.") from exc
    return _as_utc(parsed).time().replace(second=0, microsecond=0)


def parse_period_date(raw_value: Any, field_name: str) -> date:
    if isinstance(raw_value, datetime):
        return _as_utc(raw_value).date()
    if isinstance(raw_value, date):
        return raw_value

    text = str(raw_value or "").strip()
    if not text:
        raise ValidationError(f"{field_name} is required.")
    try:
        if _ISO_DATE_RE.match(text):
            return date.fromisoformat(text)
        return _as_utc(datetime.fromisoformat(_normalize_iso(text))).date()
    except ValueError as exc:
        raise ValidationError(f"{field_name} must be an ISO-8601 date, got {text!r}.") from exc


def parse_instant(raw_value: Any, field_name: str) -> datetime:
    """Aware UTC datetime at minute precision; naive input is taken as UTC."""
    if isinstance(raw_value, datetime):
        value = raw_value
    else:
        text = str(raw_value or "").strip()
        if not text:
            raise ValidationError(f"{field_name} is required.")
        try:
            value = datetime.fromisoformat(_normalize_iso(text))
        except ValueError as exc:
            raise ValidationError(f"{field_name} must be an ISO-8601 timestamp, got {text!r}.") from exc
    return _as_utc(value).replace(second=0, microsecond=0, tzinfo=timezone.utc)


def parse_id(raw_value: Any, field_name: str) -> int:
    if isinstance(raw_value, bool):
        raise ValidationError(f"{field_name} must be an integer.")
    if isinstance(raw_value, float) and not raw_value.is_integer():
        raise ValidationError(f"{field_name} must be an integer, got {raw_value!r}.")
    try:
        value = int(raw_value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"{field_name} must be an integer.") from exc
    if value <= 0:
        raise ValidationError(f"{field_name} must be > 0.")
    return value


def build_rule(
    *,
    student_id: Any,
    teacher_id: Any,
    plan_id: Any,
    start_time: Any,
    week_day: Any,
    start_period_date: Any,
    end_period_date: Any,
    rule_id: int | None = None,
) -> RecurrenceRule:
    start = parse_period_date(start_period_date, "start_period_date")
    end = parse_period_date(end_period_date, "end_period_date")
    if start > end:
        raise ValidationError("start_period_date must not be after end_period_date.")
    return RecurrenceRule(
        student_id=parse_id(student_id, "student_id"),
        teacher_id=parse_id(teacher_id, "teacher_id"),
        plan_id=parse_id(plan_id, "plan_id"),
        start_time=parse_start_time(start_time),
        week_day=parse_week_day(week_day),
        start_period_date=start,
        end_period_date=end,
        id=rule_id,
    )


def iter_occurrence_dates(start_period_date: date, end_period_date: date, week_day: WeekDay) -> Iterator[date]:
    offset = (week_day.weekday_index - start_period_date.weekday() + 7) % 7
    current = start_period_date + timedelta(days=offset)
    step = timedelta(days=7)
    while current <= end_period_date:
        yield current
        current += step


def merge_date_and_time(day: date, start_time: time) -> datetime:
    return datetime(day.year, day.month, day.day, start_time.hour, start_time.minute, tzinfo=timezone.utc)


def occurrence_instants(rule: RecurrenceRule) -> Iterator[datetime]:
    for day in iter_occurrence_dates(rule.start_period_date, rule.end_period_date, rule.week_day):
        yield merge_date_and_time(day, rule.start_time)


__all__ = [
    "RecurrenceRule",
    "ValidationError",
    "WeekDay",
    "build_rule",
    "iter_occurrence_dates",
    "merge_date_and_time",
    "occurrence_instants",
    "parse_id",
    "parse_instant",
    "parse_period_date",
    "parse_start_time",
    "parse_week_day",
]
