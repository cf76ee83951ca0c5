from __future__ import annotations

import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from db.documents import QuizAttemptRecord  # noqa: E402
from services.completion_service import add_quiz_attempt, complete_task, quiz_passed  # noqa: E402
from services.errors import InvalidInputError  # noqa: E402
from services.progress_state import ProgressState, sum_completed_points  # noqa: E402

NOW = datetime(2026, 3, 2, 10, 0, tzinfo=timezone.utc)


def test_completing_twice_equals_completing_once():
    once = complete_task(ProgressState(), "task-1", 10, NOW)
    twice = complete_task(once, "task-1", 10, NOW)
    assert twice is once
    assert once.earned_points == 10
    assert list(once.completed_tasks) == ["task-1"]


def test_earned_points_equal_sum_of_completions():
    state = ProgressState()
    for task_id, points in (("a", 10), ("b", 20), ("c", 15), ("a", 99)):
        state = complete_task(state, task_id, points, NOW)
    assert state.earned_points == 45
    assert sum_completed_points(state.completed_tasks) == state.earned_points


def test_completion_keeps_quiz_score_and_time_spent():
    state = complete_task(ProgressState(), "task-1", 20, NOW, quiz_score=4, time_spent=35)
    entry = state.completed_tasks["task-1"]
    assert entry.quiz_score == 4
    assert entry.time_spent == 35
    assert entry.completed_at == NOW


def test_invalid_completion_input_is_rejected():
    with pytest.raises(InvalidInputError):
        complete_task(ProgressState(), "", 10, NOW)
    with pytest.raises(InvalidInputError):
        complete_task(ProgressState(), "task-1", -5, NOW)


def test_quiz_attempts_are_append_only():
    attempt = QuizAttemptRecord(task_id="task-1", attempted_at=NOW, score=2, total_questions=5, passed=False)
    first = add_quiz_attempt(ProgressState(), attempt)
    second = add_quiz_attempt(first, attempt)
    assert len(first.quiz_attempts) == 1
    assert len(second.quiz_attempts) == 2
    assert second.earned_points == 0


def test_quiz_pass_threshold():
    assert quiz_passed(3) is True
    assert quiz_passed(2) is False
    assert quiz_passed(4, pass_score=5) is False
