"""Five-field schedule expressions: ``minute hour day-of-month month day-of-week``.

Each field accepts ``*``, a value, a comma list, a ``start-end`` range or a
``start/step`` (also ``*/step`` and ``start-end/step``) step. Day-of-week runs
0-6 with 0 as Sunday; 7 is accepted as Sunday too.

When both day-of-month and day-of-week are restricted a day matches if
*either* field does, as classic cron does.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from ledger_categorizer.errors import ScheduleError

SEARCH_HORIZON = timedelta(days=366 * 4)

_FIELD_BOUNDS = (
    ("minute", 0, 59),
    ("hour", 0, 23),
    ("day-of-month", 1, 31),
    ("month", 1, 12),
    ("day-of-week", 0, 7),
)


@dataclass(frozen=True)
class Schedule:
    expression: str
    minutes: frozenset[int]
    hours: frozenset[int]
    days_of_month: frozenset[int]
    months: frozenset[int]
    days_of_week: frozenset[int]

    @property
    def day_of_month_restricted(self) -> bool:
        return len(self.days_of_month) < 31

    @property
    def day_of_week_restricted(self) -> bool:
        return len(self.days_of_week) < 7

    def day_matches(self, moment: datetime) -> bool:
        dom_match = moment.day in self.days_of_month
        dow_match = moment.isoweekday() % 7 in self.days_of_week
        if self.day_of_month_restricted and self.day_of_week_restricted:
            return dom_match or dow_match
        if self.day_of_month_restricted:
            return dom_match
        if self.day_of_week_restricted:
            return dow_match
        return True

    def matches(self, moment: datetime) -> bool:
        return (
            moment.minute in self.minutes
            and moment.hour in self.hours
            and moment.month in self.months
            and self.day_matches(moment)
        )


def _parse_int(raw: str, name: str, low: int, high: int) -> int:
    try:
        value = int(raw)
    except ValueError:
        raise ScheduleError(f"Invalid {name} value '{raw}'") from None
    if value < low or value > high:
        raise ScheduleError(f"{name} value {value} outside {low}-{high}")
    return value


def _parse_item(item: str, name: str, low: int, high: int) -> set[int]:
    if not item:
        raise ScheduleError(f"Empty entry in {name} field")

    step = 1
    if "/" in item:
        base, raw_step = item.split("/", 1)
        try:
            step = int(raw_step)
        except ValueError:
            raise ScheduleError(f"Invalid step '{raw_step}' in {name} field") from None
        if step <= 0:
            raise ScheduleError(f"Step must be positive in {name} field")
    else:
        base = item

    if base == "*":
        start, end = low, high
    elif "-" in base:
        raw_start, raw_end = base.split("-", 1)
        start = _parse_int(raw_start, name, low, high)
        end = _parse_int(raw_end, name, low, high)
        if start > end:
            raise ScheduleError(f"Range {base} is reversed in {name} field")
    else:
        start = _parse_int(base, name, low, high)
        # "5/15" means every 15 from 5 up to the field maximum
        end = high if "/" in item else start

    return set(range(start, end + 1, step))


def _parse_field(raw: str, name: str, low: int, high: int) -> frozenset[int]:
    values: set[int] = set()
    for item in raw.split(","):
        values |= _parse_item(item.strip(), name, low, high)
    return frozenset(values)


def parse_schedule(expression: str) -> Schedule:
    if not expression or not expression.strip():
        raise ScheduleError("Schedule expression is empty")
    parts = expression.split()
    if len(parts) != 5:
        raise ScheduleError(
            "Schedule expression must have 5 fields: minute hour day-of-month month day-of-week"
        )

    fields = [
        _parse_field(raw, name, low, high)
        for raw, (name, low, high) in zip(parts, _FIELD_BOUNDS)
    ]
    days_of_week = frozenset(0 if day == 7 else day for day in fields[4])
    return Schedule(
        expression=expression,
        minutes=fields[0],
        hours=fields[1],
        days_of_month=fields[2],
        months=fields[3],
        days_of_week=days_of_week,
    )


def _start_of_next_month(moment: datetime) -> datetime:
    if moment.month == 12:
        return moment.replace(year=moment.year + 1, month=1, day=1, hour=0, minute=0)
    return moment.replace(month=moment.month + 1, day=1, hour=0, minute=0)


def next_occurrence(expression: str | Schedule, from_time: datetime) -> datetime:
    """Return the earliest minute strictly after ``from_time`` the schedule fires.

    Aware datetimes are evaluated in UTC and returned in UTC; naive ones are
    taken to already be UTC and the result is naive as well.
    """
    schedule = expression if isinstance(expression, Schedule) else parse_schedule(expression)

    if from_time.tzinfo is not None:
        from_time = from_time.astimezone(timezone.utc)

    candidate = from_time.replace(second=0, microsecond=0) + timedelta(minutes=1)
    limit = from_time + SEARCH_HORIZON

    while candidate <= limit:
        if candidate.month not in schedule.months:
            candidate = _start_of_next_month(candidate)
            continue
        if not schedule.day_matches(candidate):
            candidate = candidate.replace(hour=0, minute=0) + timedelta(days=1)
            continue
        if candidate.hour not in schedule.hours:
            candidate = candidate.replace(minute=0) + timedelta(hours=1)
            continue
        if candidate.minute not in schedule.minutes:
            candidate += timedelta(minutes=1)
            continue
        return candidate

    raise ScheduleError(
        f"Schedule '{schedule.expression}' has no occurrence within "
        f"{SEARCH_HORIZON.days} days of {from_time.isoformat()}"
    )
