"""Working-day calendars for plan years and plan windows.

Everything here is pure: the same inputs always produce the same sequence
of ``CalendarDay`` values.
"""

from __future__ import annotations

import math
from collections import defaultdict
from collections.abc import Iterable, Mapping
from dataclasses import asdict, dataclass
from datetime import date, timedelta
from enum import Enum

from utils.datetime_utils import parse_iso_date


RECOVERY_WEEKS = frozenset({13, 26, 39, 52})
DEFAULT_FLEX_DAYS_PER_MONTH = 2
SUBTASK_SLOTS_PER_DAY = 3
FRIDAY = 4

DAY_NAMES = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")
MONTH_NAMES = (
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
)


class ScheduleType(str, Enum):
    WEEKDAYS = "weekdays"
    FULLWEEK = "fullweek"
    CUSTOM = "custom"


@dataclass(frozen=True)
class CalendarDay:
    date: str
    day_of_week: str
    day_name: str
    week_number: int
    month_number: int
    month_name: str
    quarter_number: int
    is_weekend: bool
    is_recovery_week: bool
    is_flex_day: bool

    @property
    def as_date(self) -> date:
        return date.fromisoformat(self.date)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class PeriodProgress:
    completed: int
    total: int
    percentage: int

    def to_dict(self) -> dict:
        return asdict(self)


def _schedule(schedule_type: ScheduleType | str) -> ScheduleType:
    try:
        return ScheduleType(schedule_type)
    except ValueError as exc:
        raise ValueError(f"Unknown schedule type: {schedule_type}") from exc


def is_active_day(day: date, schedule_type: ScheduleType | str, days_per_week: int | None = None) -> bool:
    """Whether a date is a working day for the schedule.

    Custom schedules keep the first ``days_per_week`` days of each week,
    counting from Monday.
    """
    schedule = _schedule(schedule_type)
    weekday = day.weekday()
    if schedule is ScheduleType.FULLWEEK:
        return True
    if schedule is ScheduleType.WEEKDAYS:
        return weekday < 5
    per_week = max(1, min(int(days_per_week or 5), 7))
    return weekday < per_week


def quarter_for_month(month: int) -> int:
    return math.ceil(month / 3)


def _build_day(day: date, flex_used: dict[tuple[int, int], int], flex_budget: int) -> CalendarDay:
    week_number = day.isocalendar()[1]
    weekday = day.weekday()
    month_key = (day.year, day.month)
    is_flex = False
    if weekday == FRIDAY and week_number % 2 == 0 and flex_used[month_key] < flex_budget:
        is_flex = True
        flex_used[month_key] += 1
    return CalendarDay(
        date=day.isoformat(),
        day_of_week=DAY_NAMES[weekday],
        day_name=DAY_NAMES[weekday][:3],
        week_number=week_number,
        month_number=day.month,
        month_name=MONTH_NAMES[day.month - 1],
        quarter_number=quarter_for_month(day.month),
        is_weekend=weekday >= 5,
        is_recovery_week=week_number in RECOVERY_WEEKS,
        is_flex_day=is_flex,
    )


def generate_calendar(
    year: int,
    schedule_type: ScheduleType | str = ScheduleType.WEEKDAYS,
    flex_days_per_month: int = DEFAULT_FLEX_DAYS_PER_MONTH,
    days_per_week: int | None = None,
) -> list[CalendarDay]:
    """Every active day of ``year`` in date order."""
    flex_used: dict[tuple[int, int], int] = defaultdict(int)
    days: list[CalendarDay] = []
    current = date(year, 1, 1)
    while current.year == year:
        if is_active_day(current, schedule_type, days_per_week):
            days.append(_build_day(current, flex_used, flex_days_per_month))
        current += timedelta(days=1)
    return days


def generate_plan_calendar(
    start_date: date | str,
    total_days: int,
    schedule_type: ScheduleType | str = ScheduleType.WEEKDAYS,
    flex_days_per_month: int = DEFAULT_FLEX_DAYS_PER_MONTH,
    days_per_week: int | None = None,
) -> list[CalendarDay]:
    """The first ``total_days`` active days on or after ``start_date``."""
    if total_days < 0:
        raise ValueError("total_days must not be negative")
    _schedule(schedule_type)
    flex_used: dict[tuple[int, int], int] = defaultdict(int)
    days: list[CalendarDay] = []
    current = parse_iso_date(start_date)
    while len(days) < total_days:
        if is_active_day(current, schedule_type, days_per_week):
            days.append(_build_day(current, flex_used, flex_days_per_month))
        current += timedelta(days=1)
    return days


def week_days(calendar: Iterable[CalendarDay], week_number: int) -> list[CalendarDay]:
    return [day for day in calendar if day.week_number == week_number]


def month_days(calendar: Iterable[CalendarDay], month_number: int) -> list[CalendarDay]:
    return [day for day in calendar if day.month_number == month_number]


def today_entry(calendar: Iterable[CalendarDay], today: date) -> CalendarDay | None:
    key = today.isoformat()
    for day in calendar:
        if day.date == key:
            return day
    return None


def calculate_streak(completed_dates: Iterable[str], calendar: Iterable[CalendarDay], today: date) -> int:
    """Consecutive completed working days ending today.

    An unfinished today does not break the streak; counting then starts at
    the previous working day, matching how check-in streaks only lapse after
    a missed day.
    """
    completed = set(completed_dates)
    if not completed:
        return 0
    today_key = today.isoformat()
    past = [day.date for day in calendar if day.date <= today_key]
    index = len(past) - 1
    if index >= 0 and past[index] == today_key and today_key not in completed:
        index -= 1
    streak = 0
    while index >= 0 and past[index] in completed:
        streak += 1
        index -= 1
    return streak


def _period_progress(days: list[CalendarDay], completed_slots: Mapping[str, int]) -> PeriodProgress:
    total = len(days) * SUBTASK_SLOTS_PER_DAY
    completed = sum(
        max(0, min(int(completed_slots.get(day.date, 0)), SUBTASK_SLOTS_PER_DAY))
        for day in days
    )
    percentage = int(completed * 100 / total + 0.5) if total else 0
    return PeriodProgress(completed=completed, total=total, percentage=percentage)


def week_progress(calendar: Iterable[CalendarDay], completed_slots: Mapping[str, int], week_number: int) -> PeriodProgress:
    """Completed sub-task slots over the week's days times three."""
    return _period_progress(week_days(calendar, week_number), completed_slots)


def month_progress(calendar: Iterable[CalendarDay], completed_slots: Mapping[str, int], month_number: int) -> PeriodProgress:
    return _period_progress(month_days(calendar, month_number), completed_slots)


def current_period_info(calendar: list[CalendarDay], today: date) -> dict:
    """Week/month/quarter the user is in, or the next working day's if today is off."""
    entry = today_entry(calendar, today)
    if entry is None:
        today_key = today.isoformat()
        entry = next((day for day in calendar if day.date > today_key), None)
    if entry is None:
        return {
            "current_date": today.isoformat(),
            "current_week": 1,
            "current_month": 1,
            "current_quarter": 1,
            "is_recovery_week": False,
        }
    return {
        "current_date": entry.date,
        "current_week": entry.week_number,
        "current_month": entry.month_number,
        "current_quarter": entry.quarter_number,
        "is_recovery_week": entry.is_recovery_week,
    }


def format_display_date(value: date | str) -> str:
    day = parse_iso_date(value)
    return f"{DAY_NAMES[day.weekday()]}, {MONTH_NAMES[day.month - 1]} {day.day}, {day.year}"


def relative_date_description(value: date | str, today: date) -> str:
    day = parse_iso_date(value)
    diff = (day - today).days
    if diff == 0:
        return "Today"
    if diff == 1:
        return "Tomorrow"
    if diff == -1:
        return "Yesterday"
    if 0 < diff <= 7:
        return f"In {diff} days"
    if -7 <= diff < 0:
        return f"{abs(diff)} days ago"
    return f"{MONTH_NAMES[day.month - 1][:3]} {day.day}"
