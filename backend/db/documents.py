"""Typed shapes of the JSON documents stored per user and per plan.

Users are stored as one document keyed by email. Two generations exist:

* V1: a single plan flattened onto the user (legacy records).
* V2: a list of plans plus global stats and settings.

``detect_schema_version`` is the only place that inspects a raw record's
shape; everything downstream branches on ``SchemaVersion``.
"""

from __future__ import annotations

from datetime import datetime
from enum import IntEnum
from typing import Literal

from pydantic import BaseModel, Field


class SchemaVersion(IntEnum):
    V1 = 1
    V2 = 2


CURRENT_SCHEMA_VERSION = SchemaVersion.V2

TaskType = Literal["learn", "practice", "build", "review"]
ScheduleKind = Literal["weekdays", "fullweek", "custom"]
ThemePreference = Literal["dark", "light", "system"]

PLAN_CATEGORIES = (
    "software",
    "hardware",
    "language",
    "music",
    "fitness",
    "business",
    "creative",
    "academic",
    "professional",
    "personal",
    "custom",
)
DEFAULT_PLAN_ICON = "\U0001F4BB"
DEFAULT_PLAN_TITLE = "My Learning Plan"
DEFAULT_PLAN_DESCRIPTION = "Personal learning journey"


def detect_schema_version(raw: dict) -> SchemaVersion:
    """Classify a raw user record. Called once, when the record is read."""
    explicit = raw.get("schema_version")
    if explicit is not None:
        try:
            return SchemaVersion(int(explicit))
        except (TypeError, ValueError):
            pass
    if isinstance(raw.get("plans"), list):
        return SchemaVersion.V2
    return SchemaVersion.V1


class TaskResource(BaseModel):
    type: str = "article"
    title: str
    url: str
    source: str | None = None
    description: str | None = None
    estimated_minutes: int | None = None
    is_free: bool = True


class DailyTask(BaseModel):
    task_id: str
    day: int
    date: str
    title: str
    description: str = ""
    type: TaskType = "learn"
    estimated_minutes: int = 60
    points: int = 0
    week: int = 1
    month: int = 1
    quarter: int = 1
    is_recovery_day: bool = False
    is_flex_day: bool = False
    is_problem_practice: bool = False
    resources: list[TaskResource] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)


class MonthlyTheme(BaseModel):
    month: int
    theme: str
    focus: str = ""
    topics: list[str] = Field(default_factory=list)
    project: str | None = None


class TaskCompletion(BaseModel):
    completed_at: datetime
    points: int
    quiz_score: int | None = None
    time_spent: int | None = None  # minutes


class QuizAttemptRecord(BaseModel):
    task_id: str
    attempted_at: datetime
    score: int
    total_questions: int
    passed: bool


class ProblemSubmissionRecord(BaseModel):
    task_id: str
    submitted_at: datetime
    problem_slug: str
    language: str | None = None
    status: str = "submitted"  # submitted | accepted | rejected
    passed: bool = False
    points: int = 0


class UserSettings(BaseModel):
    reminder_time: str = "09:00"
    timezone: str = "Africa/Accra"
    email_notifications: bool = True
    sms_notifications: bool = True
    theme: ThemePreference = "dark"


class PlanDocument(BaseModel):
    plan_id: str
    title: str = DEFAULT_PLAN_TITLE
    description: str = DEFAULT_PLAN_DESCRIPTION
    category: str = "custom"
    icon: str = DEFAULT_PLAN_ICON

    schedule_type: ScheduleKind = "weekdays"
    custom_days_per_week: int | None = None
    start_date: str
    end_date: str
    total_days: int

    time_commitment: str = "1hr-daily"
    experience_level: str = "beginner"
    include_problem_practice: bool = False
    problem_language: str | None = None

    total_tasks: int = 0
    daily_tasks: list[DailyTask] = Field(default_factory=list)
    monthly_themes: list[MonthlyTheme] = Field(default_factory=list)

    completed_tasks: dict[str, TaskCompletion] = Field(default_factory=dict)
    total_points: int = 0  # available in the plan
    earned_points: int = 0
    current_streak: int = 0
    longest_streak: int = 0
    last_check_in: datetime | None = None
    daily_check_ins: dict[str, bool] = Field(default_factory=dict)
    quiz_attempts: list[QuizAttemptRecord] = Field(default_factory=list)
    problem_submissions: list[ProblemSubmissionRecord] = Field(default_factory=list)

    created_at: datetime
    updated_at: datetime
    is_archived: bool = False
    archived_at: datetime | None = None


class PlanSummary(BaseModel):
    plan_id: str
    title: str
    description: str
    category: str
    icon: str
    total_days: int
    total_tasks: int
    completed_tasks_count: int
    total_points: int
    earned_points: int
    current_streak: int
    start_date: str
    end_date: str
    is_active: bool
    created_at: datetime
    progress_percent: int
    is_archived: bool = False


class UserDocumentV1(BaseModel):
    schema_version: SchemaVersion = SchemaVersion.V1
    email: str
    name: str = ""
    phone_number: str = ""
    created_at: datetime
    updated_at: datetime | None = None

    schedule_type: ScheduleKind = "weekdays"
    time_commitment: str = "1hr-daily"
    include_problem_practice: bool = False
    problem_language: str | None = None

    plan_id: str | None = None
    plan_title: str | None = None
    plan_description: str | None = None
    plan_category: str | None = None
    plan_start_date: str | None = None
    plan_end_date: str | None = None
    total_days: int = 0
    daily_tasks: list[DailyTask] = Field(default_factory=list)
    monthly_themes: list[MonthlyTheme] = Field(default_factory=list)

    completed_tasks: dict[str, TaskCompletion] = Field(default_factory=dict)
    total_points: int = 0  # earned; V1 never tracked available points
    current_streak: int = 0
    longest_streak: int = 0
    last_check_in: datetime | None = None
    daily_check_ins: dict[str, bool] = Field(default_factory=dict)


class UserDocumentV2(BaseModel):
    schema_version: SchemaVersion = SchemaVersion.V2
    email: str
    name: str = ""
    phone_number: str = ""
    created_at: datetime
    updated_at: datetime | None = None

    settings: UserSettings = Field(default_factory=UserSettings)
    plans: list[PlanDocument] = Field(default_factory=list)
    active_plan_id: str | None = None

    global_total_points: int = 0
    global_current_streak: int = 0
    global_longest_streak: int = 0


UserDocument = UserDocumentV1 | UserDocumentV2


def parse_user_document(raw: dict) -> UserDocument:
    version = detect_schema_version(raw)
    payload = {**raw, "schema_version": version}
    if version is SchemaVersion.V2:
        return UserDocumentV2.model_validate(payload)
    return UserDocumentV1.model_validate(payload)


def dump_document(document: BaseModel) -> dict:
    return document.model_dump(mode="json")
