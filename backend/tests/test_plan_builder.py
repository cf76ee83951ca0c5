from __future__ import annotations

import sys
from datetime import datetime, timezone
from pathlib import Path


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from ai.plan_generator import GeneratedPlanContent, GoalInput  # noqa: E402
from services.plan_builder import (  # noqa: E402
    base_points,
    build_plan,
    default_total_days,
    minutes_for_commitment,
    problem_practice_level,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

CONTENT = GeneratedPlanContent.model_validate(
    {
        "title": "Guitar Basics",
        "description": "Chords to songs",
        "monthlyThemes": [{"month": 1, "theme": "Open Chords", "topics": ["G", "C", "D"]}],
        "taskPatterns": [
            {
                "month": 1,
                "tasks": [
                    {
                        "title": "Tune the guitar",
                        "type": "learn",
                        "resources": [
                            {"name": "Tuner", "url": "https://www.example.com/tuner"},
                            {"name": "Broken", "url": "ftp://nowhere"},
                        ],
                    },
                    {"title": "Play G major", "type": "jam"},
                ],
            }
        ],
    }
)


def test_commitment_and_points_tables():
    assert minutes_for_commitment("2hr-daily") == 120
    assert minutes_for_commitment("whenever") == 60
    assert [base_points(m) for m in (30, 60, 120)] == [15, 20, 30]
    assert problem_practice_level(1) == ("easy", 20, 10)
    assert problem_practice_level(5) == ("medium", 30, 20)
    assert problem_practice_level(9) == ("hard", 45, 30)


def test_default_length_follows_schedule():
    assert default_total_days(GoalInput(category="music")) == 260
    assert default_total_days(GoalInput(category="music", schedule_type="fullweek")) == 365
    assert default_total_days(GoalInput(category="music", schedule_type="custom", custom_days_per_week=4)) == 208
    assert default_total_days(GoalInput(category="music", total_days=30)) == 30


def test_build_plan_expands_samples_onto_working_days():
    goal = GoalInput(category="music", category_name="Music", start_date="2026-03-02", total_days=20)
    plan = build_plan(goal, CONTENT, plan_id="g1", now=NOW)

    assert plan.plan_id == "g1"
    assert plan.title == "Guitar Basics"
    assert plan.start_date == "2026-03-02"
    assert plan.end_date == "2026-03-27"
    assert plan.total_tasks == len(plan.daily_tasks) == 20
    assert [t.task_id for t in plan.daily_tasks[:2]] == ["task-g1-1", "task-g1-2"]
    assert plan.daily_tasks[0].title == "Tune the guitar"
    assert plan.daily_tasks[1].type == "learn"
    assert plan.total_points == 20 * 20

    [resource] = plan.daily_tasks[0].resources
    assert resource.source == "example.com"


def test_recovery_week_tasks_are_lighter_and_flex_days_carried():
    goal = GoalInput(category="music", start_date="2026-03-16", total_days=15, time_commitment="2hr-daily")
    plan = build_plan(goal, CONTENT, plan_id="g2", now=NOW)
    recovery = [t for t in plan.daily_tasks if t.is_recovery_day]
    assert [t.date for t in recovery] == ["2026-03-23", "2026-03-24", "2026-03-25", "2026-03-26", "2026-03-27"]
    assert all(t.estimated_minutes == 60 for t in recovery)
    assert any(t.is_flex_day for t in plan.daily_tasks)


def test_problem_practice_adds_a_second_task_per_day():
    goal = GoalInput(
        category="software",
        start_date="2026-03-02",
        total_days=5,
        include_problem_practice=True,
        problem_language="python",
    )
    plan = build_plan(goal, CONTENT, plan_id="g3", now=NOW)
    assert plan.total_tasks == 10
    problems = [t for t in plan.daily_tasks if t.is_problem_practice]
    assert [t.task_id for t in problems][:1] == ["task-g3-1-lc"]
    assert all(t.points == 10 for t in problems)
    assert "in python" in problems[0].description


def test_missing_month_themes_are_filled_in():
    goal = GoalInput(category="music", start_date="2026-03-02", total_days=30)
    plan = build_plan(goal, CONTENT, plan_id="g4", now=NOW)
    assert [t.month for t in plan.monthly_themes] == [1, 2]
    assert plan.monthly_themes[1].theme == "Month 2 Focus"


def test_start_defaults_to_tomorrow_in_user_timezone():
    goal = GoalInput(category="music", total_days=3, schedule_type="fullweek")
    plan = build_plan(goal, CONTENT, plan_id="g5", now=NOW, tz_name="UTC")
    assert plan.start_date == "2026-03-02"
