from __future__ import annotations

import logging
import math
import re
from datetime import datetime

from pydantic import ValidationError
from sqlalchemy.orm import Session

from config import settings
from db.documents import (
    DEFAULT_PLAN_DESCRIPTION,
    DEFAULT_PLAN_ICON,
    DEFAULT_PLAN_TITLE,
    PLAN_CATEGORIES,
    DailyTask,
    PlanDocument,
    PlanSummary,
    ProblemSubmissionRecord,
    QuizAttemptRecord,
    TaskCompletion,
    UserDocument,
    UserDocumentV1,
    UserDocumentV2,
    UserSettings,
    dump_document,
    parse_user_document,
)
from services.document_store import DocumentStore
from services.errors import (
    ConflictError,
    InvalidCredentialsError,
    InvalidInputError,
    NotFoundError,
    PlanCapExceededError,
    SchemaMigrationRequiredError,
)
from services.progress_state import sum_completed_points
from utils.datetime_utils import parse_iso_date, parse_iso_datetime, utcnow
from utils.validation import format_phone, normalize_email, validate_credentials


logger = logging.getLogger(__name__)

MIGRATION_REQUIRED_MESSAGE = "Please migrate to V2 schema first"
UPDATABLE_PLAN_FIELDS = {
    "title",
    "description",
    "category",
    "icon",
    "time_commitment",
    "experience_level",
    "monthly_themes",
    "daily_tasks",
    "is_archived",
}
REMINDER_TIME_RE = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


def calculate_progress_percent(completed: int, total: int) -> int:
    """Whole-number percentage, halves rounded up; 0 when there is nothing to do."""
    if total <= 0:
        return 0
    return int(math.floor(completed * 100 / total + 0.5))


def default_user_settings() -> UserSettings:
    return UserSettings(
        reminder_time=settings.DEFAULT_REMINDER_TIME,
        timezone=settings.DEFAULT_TIMEZONE,
    )


# ---------------------------------------------------------------------------
# Reading
# ---------------------------------------------------------------------------
def load_user(db: Session, email: str) -> UserDocument:
    raw = DocumentStore(db).get_user(normalize_email(email))
    if raw is None:
        raise NotFoundError("User not found")
    return parse_user_document(raw)


def save_user(db: Session, document: UserDocument) -> None:
    DocumentStore(db).put_user(dump_document(document))


def user_exists(db: Session, email: str) -> bool:
    return DocumentStore(db).user_exists(normalize_email(email))


def user_timezone(document: UserDocument) -> str:
    if isinstance(document, UserDocumentV2):
        return document.settings.timezone or settings.DEFAULT_TIMEZONE
    return settings.DEFAULT_TIMEZONE


def normalize_v1_plan(document: UserDocumentV1) -> PlanDocument | None:
    """Present the flat legacy fields as the user's single plan."""
    if not document.plan_id:
        return None
    tasks = document.daily_tasks
    start_date = document.plan_start_date or (tasks[0].date if tasks else document.created_at.date().isoformat())
    end_date = document.plan_end_date or (tasks[-1].date if tasks else start_date)
    return PlanDocument(
        plan_id=document.plan_id,
        title=document.plan_title or DEFAULT_PLAN_TITLE,
        description=document.plan_description or DEFAULT_PLAN_DESCRIPTION,
        category=document.plan_category or "software",
        icon=DEFAULT_PLAN_ICON,
        schedule_type=document.schedule_type,
        start_date=start_date,
        end_date=end_date,
        total_days=document.total_days or len({task.date for task in tasks}),
        time_commitment=document.time_commitment,
        experience_level="intermediate",
        include_problem_practice=document.include_problem_practice,
        problem_language=document.problem_language,
        total_tasks=len(tasks),
        daily_tasks=list(tasks),
        monthly_themes=list(document.monthly_themes),
        completed_tasks=dict(document.completed_tasks),
        total_points=sum(task.points for task in tasks),
        earned_points=document.total_points,
        current_streak=document.current_streak,
        longest_streak=document.longest_streak,
        last_check_in=document.last_check_in,
        daily_check_ins=dict(document.daily_check_ins),
        created_at=document.created_at,
        updated_at=document.updated_at or document.created_at,
    )


def user_plans(document: UserDocument) -> list[PlanDocument]:
    if isinstance(document, UserDocumentV1):
        plan = normalize_v1_plan(document)
        return [plan] if plan else []
    return list(document.plans)


def active_plan_id(document: UserDocument) -> str | None:
    if isinstance(document, UserDocumentV1):
        return document.plan_id
    return document.active_plan_id


def plan_summary(plan: PlanDocument, is_active: bool) -> PlanSummary:
    total_tasks = plan.total_tasks or len(plan.daily_tasks)
    completed = len(plan.completed_tasks)
    return PlanSummary(
        plan_id=plan.plan_id,
        title=plan.title or DEFAULT_PLAN_TITLE,
        description=plan.description or DEFAULT_PLAN_DESCRIPTION,
        category=plan.category,
        icon=plan.icon,
        total_days=plan.total_days,
        total_tasks=total_tasks,
        completed_tasks_count=completed,
        total_points=plan.total_points,
        earned_points=plan.earned_points,
        current_streak=plan.current_streak,
        start_date=plan.start_date,
        end_date=plan.end_date,
        is_active=is_active,
        created_at=plan.created_at,
        progress_percent=calculate_progress_percent(completed, total_tasks),
        is_archived=plan.is_archived,
    )


def list_plan_summaries(db: Session, email: str) -> list[PlanSummary]:
    document = load_user(db, email)
    active_id = active_plan_id(document)
    return [plan_summary(plan, plan.plan_id == active_id) for plan in user_plans(document)]


def hydrate_plan(store: DocumentStore, plan: PlanDocument) -> PlanDocument:
    """Fill in externalized tasks when the embedded list is empty."""
    if plan.daily_tasks or plan.total_tasks <= 0:
        return plan
    raw_tasks = store.get_plan_tasks(plan.plan_id)
    if not raw_tasks:
        logger.warning(f"Plan {plan.plan_id} expects {plan.total_tasks} tasks but none are stored")
        return plan
    tasks = [DailyTask.model_validate(task) for task in raw_tasks]
    return plan.model_copy(update={"daily_tasks": tasks})


def find_plan(document: UserDocument, plan_id: str) -> PlanDocument:
    for plan in user_plans(document):
        if plan.plan_id == plan_id:
            return plan
    raise NotFoundError("Plan not found")


def get_plan(db: Session, email: str, plan_id: str, hydrate: bool = True) -> PlanDocument:
    plan = find_plan(load_user(db, email), plan_id)
    return hydrate_plan(DocumentStore(db), plan) if hydrate else plan


def get_active_plan(db: Session, email: str, hydrate: bool = True) -> PlanDocument | None:
    document = load_user(db, email)
    active_id = active_plan_id(document)
    if not active_id:
        return None
    try:
        plan = find_plan(document, active_id)
    except NotFoundError:
        logger.warning(f"User {document.email} points at missing active plan {active_id}")
        return None
    return hydrate_plan(DocumentStore(db), plan) if hydrate else plan


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------
def create_user(
    db: Session,
    *,
    email: str,
    name: str,
    phone_number: str,
    plan: PlanDocument | None = None,
    now: datetime | None = None,
) -> UserDocumentV2:
    errors = validate_credentials(email, phone_number)
    if not (name or "").strip():
        errors["name"] = "Name is required"
    if errors:
        raise InvalidInputError("Invalid signup details", errors)

    key = normalize_email(email)
    if user_exists(db, key):
        raise ConflictError("An account with this email already exists")

    now = now or utcnow()
    document = UserDocumentV2(
        email=key,
        name=name.strip(),
        phone_number=format_phone(phone_number),
        created_at=now,
        updated_at=now,
        settings=default_user_settings(),
    )
    save_user(db, document)
    if plan is not None:
        document = add_plan(db, key, plan, now=now)
    return document


def verify_login(db: Session, email: str, phone_number: str) -> UserDocument:
    errors = validate_credentials(email, phone_number)
    if errors:
        raise InvalidInputError("Invalid login details", errors)
    try:
        document = load_user(db, email)
    except NotFoundError:
        raise InvalidCredentialsError("Invalid email or phone number")
    if format_phone(document.phone_number) != format_phone(phone_number):
        raise InvalidCredentialsError("Invalid email or phone number")
    return document


def update_user_settings(db: Session, email: str, changes: dict) -> UserSettings:
    document = load_user(db, email)
    if isinstance(document, UserDocumentV1):
        raise SchemaMigrationRequiredError(MIGRATION_REQUIRED_MESSAGE)
    reminder_time = changes.get("reminder_time")
    if reminder_time is not None and not REMINDER_TIME_RE.match(str(reminder_time)):
        raise InvalidInputError("reminder_time must be HH:MM", {"reminder_time": "Use 24-hour HH:MM"})
    try:
        updated = UserSettings.model_validate({**document.settings.model_dump(), **changes})
    except ValidationError as exc:
        raise InvalidInputError("Invalid settings", {"settings": str(exc)})
    save_user(db, document.model_copy(update={"settings": updated, "updated_at": utcnow()}))
    return updated


# ---------------------------------------------------------------------------
# Plans
# ---------------------------------------------------------------------------
def _recompute_globals(document: UserDocumentV2) -> UserDocumentV2:
    plans = document.plans
    return document.model_copy(
        update={
            "global_total_points": sum(plan.earned_points for plan in plans),
            "global_current_streak": max((plan.current_streak for plan in plans), default=0),
            "global_longest_streak": max(
                document.global_longest_streak,
                max((plan.longest_streak for plan in plans), default=0),
            ),
        }
    )


def _externalize_tasks(store: DocumentStore, plan: PlanDocument, owner_email: str) -> PlanDocument:
    if not plan.daily_tasks:
        return plan
    store.put_plan_tasks(
        plan.plan_id,
        [task.model_dump(mode="json") for task in plan.daily_tasks],
        owner_email=owner_email,
    )
    return plan.model_copy(update={"total_tasks": len(plan.daily_tasks), "daily_tasks": []})


def migrate_to_v2(db: Session, document: UserDocumentV1, now: datetime | None = None) -> UserDocumentV2:
    """One-way upgrade of a legacy record to an empty multi-plan envelope.

    The legacy plan and its progress are not carried over.
    """
    now = now or utcnow()
    migrated = UserDocumentV2(
        email=document.email,
        name=document.name,
        phone_number=document.phone_number,
        created_at=document.created_at,
        updated_at=now,
        settings=default_user_settings(),
        plans=[],
        active_plan_id=None,
    )
    save_user(db, migrated)
    logger.info(f"Migrated user {document.email} to schema v2")
    return migrated


def add_plan(db: Session, email: str, plan: PlanDocument, now: datetime | None = None) -> UserDocumentV2:
    store = DocumentStore(db)
    document = load_user(db, email)
    cap = settings.MAX_PLANS_PER_USER
    if isinstance(document, UserDocumentV2) and len(document.plans) >= cap:
        raise PlanCapExceededError(f"Maximum {cap} plans allowed")
    existing_ids = {existing.plan_id for existing in user_plans(document)} if isinstance(document, UserDocumentV2) else set()
    if plan.plan_id in existing_ids:
        raise ConflictError(f"Plan {plan.plan_id} already exists")
    if plan.category not in PLAN_CATEGORIES:
        raise InvalidInputError(f"Unknown plan category: {plan.category}", {"category": "Unknown category"})

    now = now or utcnow()
    if isinstance(document, UserDocumentV1):
        document = migrate_to_v2(db, document, now=now)

    stored_plan = _externalize_tasks(store, plan, document.email)
    document = document.model_copy(
        update={
            "plans": [*document.plans, stored_plan],
            "active_plan_id": document.active_plan_id or stored_plan.plan_id,
            "updated_at": now,
        }
    )
    document = _recompute_globals(document)
    save_user(db, document)
    return document


def _require_v2(document: UserDocument) -> UserDocumentV2:
    if isinstance(document, UserDocumentV1):
        raise SchemaMigrationRequiredError(MIGRATION_REQUIRED_MESSAGE)
    return document


def _replace_plan(document: UserDocumentV2, plan: PlanDocument) -> UserDocumentV2:
    plans = [plan if existing.plan_id == plan.plan_id else existing for existing in document.plans]
    return document.model_copy(update={"plans": plans})


def _validation_errors(exc: ValidationError) -> dict[str, str]:
    return {".".join(str(part) for part in err["loc"]) or "plan": err["msg"] for err in exc.errors()}


def _task_window(tasks: list[DailyTask]) -> dict:
    """Start, end and day count covered by a task list."""
    try:
        dates = sorted({parse_iso_date(task.date) for task in tasks})
    except ValueError:
        raise InvalidInputError("Task dates must be YYYY-MM-DD", {"daily_tasks": "Invalid task date"})
    return {
        "start_date": dates[0].isoformat(),
        "end_date": dates[-1].isoformat(),
        "total_days": len(dates),
    }


def update_plan(db: Session, email: str, plan_id: str, changes: dict, now: datetime | None = None) -> PlanDocument:
    """Edit plan content. Progress fields are owned by update_plan_progress.

    The edited plan is validated as a whole before anything is written, so a
    rejected update leaves the stored record untouched.
    """
    document = _require_v2(load_user(db, email))
    plan = find_plan(document, plan_id)
    unknown = set(changes) - UPDATABLE_PLAN_FIELDS
    if unknown:
        raise InvalidInputError(f"Fields cannot be updated: {', '.join(sorted(unknown))}")

    now = now or utcnow()
    payload = plan.model_dump()
    for key, value in changes.items():
        # Omitted or empty lists keep the stored content.
        if key in {"daily_tasks", "monthly_themes"} and not value:
            continue
        payload[key] = value
    payload["updated_at"] = now
    try:
        updated = PlanDocument.model_validate(payload)
    except ValidationError as exc:
        raise InvalidInputError("Invalid plan update", _validation_errors(exc))

    if updated.category not in PLAN_CATEGORIES:
        raise InvalidInputError(f"Unknown plan category: {updated.category}", {"category": "Unknown category"})
    extra: dict = {}
    if "is_archived" in changes:
        extra["archived_at"] = now if updated.is_archived else None
    if changes.get("daily_tasks"):
        tasks = updated.daily_tasks
        missing = set(plan.completed_tasks) - {task.task_id for task in tasks}
        if missing:
            raise InvalidInputError(
                "Replacement tasks must keep every completed task",
                {"daily_tasks": f"{len(missing)} completed task(s) missing"},
            )
        extra.update(_task_window(tasks))
        extra["total_points"] = sum(task.points for task in tasks)
    if extra:
        updated = updated.model_copy(update=extra)

    updated = _externalize_tasks(DocumentStore(db), updated, document.email)
    save_user(db, _replace_plan(document, updated))
    return updated


def delete_plan(db: Session, email: str, plan_id: str, now: datetime | None = None) -> UserDocumentV2:
    document = _require_v2(load_user(db, email))
    find_plan(document, plan_id)

    DocumentStore(db).delete_plan_tasks(plan_id)
    remaining = [plan for plan in document.plans if plan.plan_id != plan_id]
    active_id = document.active_plan_id
    if active_id == plan_id:
        active_id = remaining[0].plan_id if remaining else None
    document = document.model_copy(
        update={"plans": remaining, "active_plan_id": active_id, "updated_at": now or utcnow()}
    )
    document = _recompute_globals(document)
    save_user(db, document)
    return document


def switch_active_plan(db: Session, email: str, plan_id: str) -> UserDocument:
    document = load_user(db, email)
    if isinstance(document, UserDocumentV1):
        if document.plan_id and document.plan_id == plan_id:
            return document
        raise SchemaMigrationRequiredError(MIGRATION_REQUIRED_MESSAGE)
    find_plan(document, plan_id)
    if document.active_plan_id == plan_id:
        return document
    document = document.model_copy(update={"active_plan_id": plan_id, "updated_at": utcnow()})
    save_user(db, document)
    return document


# ---------------------------------------------------------------------------
# Progress persistence
# ---------------------------------------------------------------------------
def _known_task_ids(store: DocumentStore, plan: PlanDocument) -> set[str]:
    return {task.task_id for task in hydrate_plan(store, plan).daily_tasks}


def merge_progress(plan: PlanDocument, progress: dict, known_task_ids: set[str] | None = None) -> dict:
    """Fold a pushed progress snapshot into stored progress.

    Completions and check-ins are only ever added, log entries are appended
    when not already stored, and earned points follow the completion map.
    """
    completed = dict(plan.completed_tasks)
    incoming = progress.get("completed_tasks") or {}
    unknown = [task_id for task_id in incoming if known_task_ids is not None and task_id not in known_task_ids]
    if unknown:
        raise InvalidInputError(
            "Completed tasks do not belong to this plan",
            {"completed_tasks": ", ".join(sorted(unknown)[:5])},
        )
    for task_id, entry in incoming.items():
        if task_id not in completed:
            completed[task_id] = TaskCompletion.model_validate(entry)

    earned = sum_completed_points(completed)
    pushed_earned = progress.get("earned_points")
    if pushed_earned is not None and int(pushed_earned) != earned:
        logger.warning(
            f"Plan {plan.plan_id}: pushed earned_points={pushed_earned} disagrees with completions ({earned})"
        )

    check_ins = dict(plan.daily_check_ins)
    for day, flag in (progress.get("daily_check_ins") or {}).items():
        check_ins[day] = bool(check_ins.get(day)) or bool(flag)

    quiz_attempts = list(plan.quiz_attempts)
    for entry in progress.get("quiz_attempts") or []:
        attempt = QuizAttemptRecord.model_validate(entry)
        if attempt not in quiz_attempts:
            quiz_attempts.append(attempt)
    submissions = list(plan.problem_submissions)
    for entry in progress.get("problem_submissions") or []:
        submission = ProblemSubmissionRecord.model_validate(entry)
        if submission not in submissions:
            submissions.append(submission)

    merged = {
        "completed_tasks": completed,
        "earned_points": earned,
        "daily_check_ins": check_ins,
        "quiz_attempts": quiz_attempts,
        "problem_submissions": submissions,
        "current_streak": plan.current_streak,
        "longest_streak": plan.longest_streak,
        "last_check_in": parse_iso_datetime(plan.last_check_in),
    }
    if progress.get("current_streak") is not None:
        merged["current_streak"] = max(int(progress["current_streak"]), 0)
    if progress.get("longest_streak") is not None:
        merged["longest_streak"] = max(plan.longest_streak, int(progress["longest_streak"]))
    merged["longest_streak"] = max(merged["longest_streak"], merged["current_streak"])
    pushed_check_in = progress.get("last_check_in")
    if pushed_check_in is not None:
        pushed_check_in = parse_iso_datetime(pushed_check_in)
        if merged["last_check_in"] is None or pushed_check_in > merged["last_check_in"]:
            merged["last_check_in"] = pushed_check_in
    return merged


def update_plan_progress(
    db: Session,
    email: str,
    plan_id: str,
    progress: dict,
    now: datetime | None = None,
) -> PlanDocument:
    """Persist a progress snapshot for one plan and refresh global stats."""
    store = DocumentStore(db)
    document = load_user(db, email)
    plan = find_plan(document, plan_id)
    merged = merge_progress(plan, progress, _known_task_ids(store, plan) or None)
    now = now or utcnow()

    if isinstance(document, UserDocumentV1):
        # Legacy records get a flat partial update of the progress fields only.
        updated_v1 = document.model_copy(
            update={
                "completed_tasks": merged["completed_tasks"],
                "total_points": merged["earned_points"],
                "current_streak": merged["current_streak"],
                "longest_streak": merged["longest_streak"],
                "last_check_in": merged["last_check_in"],
                "daily_check_ins": merged["daily_check_ins"],
                "updated_at": now,
            }
        )
        patch_keys = {
            "completed_tasks",
            "total_points",
            "current_streak",
            "longest_streak",
            "last_check_in",
            "daily_check_ins",
            "updated_at",
        }
        store.update_user(document.email, updated_v1.model_dump(mode="json", include=patch_keys))
        return normalize_v1_plan(updated_v1)

    updated_plan = plan.model_copy(update={**merged, "updated_at": now})
    document = _recompute_globals(_replace_plan(document, updated_plan))
    save_user(db, document)
    return updated_plan
