from __future__ import annotations

import uuid
from datetime import datetime, timedelta
from urllib.parse import urlparse

from ai.plan_generator import GeneratedPlanContent, GeneratedTask, GoalInput
from config import settings
from db.documents import DEFAULT_PLAN_ICON, DailyTask, MonthlyTheme, PlanDocument, TaskResource
from services.calendar_service import CalendarDay, generate_plan_calendar
from utils.datetime_utils import today_for_tz, utcnow


MINUTES_BY_COMMITMENT = {
    "30min-daily": 30,
    "1hr-daily": 60,
    "2hr-daily": 120,
    "3hr-daily": 180,
}
DEFAULT_DAILY_MINUTES = 60
TASK_TYPES = ("learn", "practice", "build", "review")

# (verb, suffix, type) rotation for days beyond the generated samples.
_FILLER_ACTIONS = (
    ("Master", "through hands-on practice", "practice"),
    ("Implement", "from scratch", "build"),
    ("Debug and optimize", "code", "practice"),
    ("Create a project using", "", "build"),
    ("Review and document", "learnings", "review"),
    ("Explore advanced", "techniques", "learn"),
    ("Build a mini-app with", "", "build"),
    ("Practice", "with real examples", "practice"),
    ("Solve challenges using", "", "practice"),
    ("Write tests for", "code", "build"),
)
_DEFAULT_TOPICS = ("Core Concepts", "Fundamentals", "Practice", "Application", "Review")


def minutes_for_commitment(time_commitment: str) -> int:
    return MINUTES_BY_COMMITMENT.get(time_commitment, DEFAULT_DAILY_MINUTES)


def base_points(daily_minutes: int) -> int:
    if daily_minutes >= 120:
        return 30
    if daily_minutes >= 60:
        return 20
    return 15


def problem_practice_level(plan_month: int) -> tuple[str, int, int]:
    """(difficulty, minutes, points) for the daily external problem."""
    if plan_month > 8:
        return "hard", 45, 30
    if plan_month > 3:
        return "medium", 30, 20
    return "easy", 20, 10


def task_type_for_month(plan_month: int) -> str:
    if plan_month <= 4:
        return "learn"
    if plan_month <= 8:
        return "practice"
    if plan_month <= 11:
        return "build"
    return "review"


def default_total_days(goal: GoalInput) -> int:
    if goal.total_days:
        return goal.total_days
    if goal.schedule_type == "fullweek":
        return 365
    if goal.schedule_type == "custom":
        return (goal.custom_days_per_week or 5) * 52
    return 260


def _task_for_day(
    samples: list[GeneratedTask],
    index: int,
    plan_month: int,
    theme: MonthlyTheme | None,
) -> GeneratedTask:
    if index < len(samples):
        return samples[index]
    topics = (theme.topics if theme and theme.topics else None) or list(_DEFAULT_TOPICS)
    topic = topics[index % len(topics)]
    verb, suffix, _ = _FILLER_ACTIONS[(index + plan_month) % len(_FILLER_ACTIONS)]
    theme_text = theme.theme if theme else f"Month {plan_month} Focus"
    title = f"{verb} {topic} {suffix}" if suffix else f"{verb} {topic}"
    return GeneratedTask(
        title=title,
        description=f"Day {index + 1}: Focus on {topic} as part of {theme_text}.",
        type=task_type_for_month(plan_month),
        topic=topic,
    )


def _resources(task: GeneratedTask) -> list[TaskResource]:
    resources: list[TaskResource] = []
    for item in task.resources:
        if not item.url.startswith("http"):
            continue
        source = urlparse(item.url).hostname or "Web"
        resources.append(
            TaskResource(
                type=item.type or "article",
                title=item.name or "Resource",
                url=item.url,
                source=source.removeprefix("www."),
            )
        )
    return resources[:3]


def _group_by_plan_month(days: list[CalendarDay]) -> dict[int, list[CalendarDay]]:
    grouped: dict[int, list[CalendarDay]] = {}
    if not days:
        return grouped
    first = days[0].as_date
    for day in days:
        current = day.as_date
        plan_month = (current.year - first.year) * 12 + current.month - first.month + 1
        grouped.setdefault(plan_month, []).append(day)
    return grouped


def build_plan(
    goal: GoalInput,
    content: GeneratedPlanContent,
    plan_id: str | None = None,
    now: datetime | None = None,
    tz_name: str | None = None,
    flex_days_per_month: int | None = None,
) -> PlanDocument:
    """Expand generated monthly samples into one task per working day."""
    now = now or utcnow()
    plan_id = plan_id or str(uuid.uuid4())
    start = goal.start_date or (today_for_tz(tz_name or settings.DEFAULT_TIMEZONE, now) + timedelta(days=1)).isoformat()
    days = generate_plan_calendar(
        start,
        default_total_days(goal),
        goal.schedule_type,
        settings.DEFAULT_FLEX_DAYS_PER_MONTH if flex_days_per_month is None else flex_days_per_month,
        goal.custom_days_per_week,
    )
    if not days:
        raise ValueError("Plan calendar is empty")

    daily_minutes = minutes_for_commitment(goal.time_commitment)
    points = base_points(daily_minutes)
    tasks: list[DailyTask] = []
    day_number = 0
    grouped = _group_by_plan_month(days)
    for plan_month, month_days in grouped.items():
        samples = content.pattern_for(plan_month)
        theme = content.theme_for(plan_month)
        for index, day in enumerate(month_days):
            day_number += 1
            source = _task_for_day(samples, index, plan_month, theme)
            task_type = source.type if source.type in TASK_TYPES else task_type_for_month(plan_month)
            minutes = max(daily_minutes // 2, 15) if day.is_recovery_week else daily_minutes
            tasks.append(
                DailyTask(
                    task_id=f"task-{plan_id}-{day_number}",
                    day=day_number,
                    date=day.date,
                    title=source.title,
                    description=source.description,
                    type=task_type,
                    estimated_minutes=minutes,
                    points=points,
                    week=day.week_number,
                    month=day.month_number,
                    quarter=day.quarter_number,
                    is_recovery_day=day.is_recovery_week,
                    is_flex_day=day.is_flex_day,
                    resources=_resources(source),
                    tags=[source.topic] if source.topic else [],
                )
            )
            if goal.include_problem_practice:
                difficulty, problem_minutes, problem_points = problem_practice_level(plan_month)
                language = f" in {goal.problem_language}" if goal.problem_language else ""
                tasks.append(
                    DailyTask(
                        task_id=f"task-{plan_id}-{day_number}-lc",
                        day=day_number,
                        date=day.date,
                        title=f"Daily Coding Challenge ({difficulty})",
                        description=(
                            f"Solve today's coding challenge{language} and analyze its time and space complexity."
                        ),
                        type="practice",
                        estimated_minutes=problem_minutes,
                        points=problem_points,
                        week=day.week_number,
                        month=day.month_number,
                        quarter=day.quarter_number,
                        is_recovery_day=day.is_recovery_week,
                        is_flex_day=day.is_flex_day,
                        is_problem_practice=True,
                        tags=["problem-practice", difficulty],
                    )
                )

    themes = [content.theme_for(month) for month in grouped]
    monthly_themes = [
        theme or MonthlyTheme(month=month, theme=f"Month {month} Focus", focus=f"Core concepts for month {month}")
        for month, theme in zip(grouped, themes)
    ]

    category_name = goal.category_name or goal.category
    return PlanDocument(
        plan_id=plan_id,
        title=content.title or f"{category_name} Mastery",
        description=content.description or f"A journey to master {goal.primary_goal or category_name}",
        category=goal.category,
        icon=goal.icon or DEFAULT_PLAN_ICON,
        schedule_type=goal.schedule_type,
        custom_days_per_week=goal.custom_days_per_week,
        start_date=days[0].date,
        end_date=days[-1].date,
        total_days=len(days),
        time_commitment=goal.time_commitment,
        experience_level=goal.experience_level,
        include_problem_practice=goal.include_problem_practice,
        problem_language=goal.problem_language,
        total_tasks=len(tasks),
        daily_tasks=tasks,
        monthly_themes=monthly_themes,
        total_points=sum(task.points for task in tasks),
        created_at=now,
        updated_at=now,
    )
