from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta

from services.progress_state import ProgressState
from utils.datetime_utils import local_date


def days_since_last_check_in(state: ProgressState, now: datetime, tz_name: str | None) -> int | None:
    """Whole calendar days between today and the day of the last check-in."""
    if state.last_check_in is None:
        return None
    return (local_date(now, tz_name) - local_date(state.last_check_in, tz_name)).days


def check_in(state: ProgressState, now: datetime, tz_name: str | None) -> ProgressState:
    """Record today's check-in. A second check-in on the same day is a no-op."""
    today = local_date(now, tz_name)
    today_key = today.isoformat()
    if state.daily_check_ins.get(today_key):
        return state

    yesterday_key = (today - timedelta(days=1)).isoformat()
    if state.daily_check_ins.get(yesterday_key):
        new_streak = state.current_streak + 1
    elif state.last_check_in is not None:
        gap = days_since_last_check_in(state, now, tz_name)
        new_streak = 1 if gap > 1 else state.current_streak + 1
    else:
        new_streak = 1

    check_ins = dict(state.daily_check_ins)
    check_ins[today_key] = True
    return replace(
        state,
        current_streak=new_streak,
        longest_streak=max(state.longest_streak, new_streak),
        last_check_in=now,
        daily_check_ins=check_ins,
    )


def apply_lazy_reset(state: ProgressState, now: datetime, tz_name: str | None) -> ProgressState:
    """Zero the current streak once more than a day has passed since the last check-in."""
    gap = days_since_last_check_in(state, now, tz_name)
    if gap is None or gap <= 1 or state.current_streak == 0:
        return state
    return replace(state, current_streak=0)
