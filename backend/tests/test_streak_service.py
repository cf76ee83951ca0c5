from __future__ import annotations

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from services.progress_state import ProgressState  # noqa: E402
from services.streak_service import apply_lazy_reset, check_in, days_since_last_check_in  # noqa: E402


def _at(day: int, hour: int = 9, month: int = 3) -> datetime:
    return datetime(2026, month, day, hour, 0, tzinfo=timezone.utc)


def test_consecutive_check_ins_then_gap_resets_lazily():
    state = check_in(ProgressState(), _at(2), "UTC")
    state = check_in(state, _at(3), "UTC")
    assert (state.current_streak, state.longest_streak) == (2, 2)

    reset = apply_lazy_reset(state, _at(6), "UTC")
    assert reset.current_streak == 0
    assert reset.longest_streak == 2

    after = check_in(reset, _at(6), "UTC")
    assert after.current_streak == 1
    assert after.longest_streak == 2
    assert after.daily_check_ins == {"2026-03-02": True, "2026-03-03": True, "2026-03-06": True}


def test_same_day_check_in_is_a_no_op():
    first = check_in(ProgressState(), _at(2, 8), "UTC")
    again = check_in(first, _at(2, 20), "UTC")
    assert again is first
    assert again.last_check_in == _at(2, 8)


def test_check_in_does_not_mutate_previous_snapshot():
    before = ProgressState()
    after = check_in(before, _at(2), "UTC")
    assert before.daily_check_ins == {}
    assert before.current_streak == 0
    assert after.current_streak == 1


def test_gap_law_resets_only_after_a_missed_day():
    state = check_in(ProgressState(), _at(2), "UTC")
    state = check_in(state, _at(3), "UTC")
    assert apply_lazy_reset(state, _at(4), "UTC").current_streak == 2
    assert apply_lazy_reset(state, _at(5), "UTC").current_streak == 0
    assert apply_lazy_reset(state, _at(20), "UTC").current_streak == 0


def test_check_in_after_gap_without_reset_starts_over():
    state = check_in(ProgressState(), _at(2), "UTC")
    state = check_in(state, _at(5), "UTC")
    assert state.current_streak == 1
    assert state.longest_streak == 1


def test_lazy_reset_without_history_changes_nothing():
    state = ProgressState()
    assert apply_lazy_reset(state, _at(6), "UTC") is state
    assert days_since_last_check_in(state, _at(6), "UTC") is None


def test_check_in_day_follows_user_timezone():
    # 02:00 UTC on March 3rd is still March 2nd evening in New York.
    state = check_in(ProgressState(), datetime(2026, 3, 3, 2, 0, tzinfo=timezone.utc), "America/New_York")
    assert list(state.daily_check_ins) == ["2026-03-02"]


def test_longest_streak_never_decreases():
    state = ProgressState()
    longest = 0
    moment = _at(1)
    for offset in (0, 1, 1, 1, 3, 1, 5, 1, 1, 1, 1, 2):
        moment = moment + timedelta(days=offset)
        state = apply_lazy_reset(state, moment, "UTC")
        assert state.longest_streak >= longest
        state = check_in(state, moment, "UTC")
        assert state.longest_streak >= longest
        assert state.longest_streak >= state.current_streak
        longest = state.longest_streak
    assert longest == 5
