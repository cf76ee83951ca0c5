from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.orm import Session

from db.documents import DailyTask, PlanDocument, ProblemSubmissionRecord, QuizAttemptRecord
from services.completion_service import add_problem_submission, add_quiz_attempt, complete_task, quiz_passed
from services.document_store import DocumentStore
from services.errors import InvalidInputError, NotFoundError
from services.plan_service import (
    active_plan_id,
    find_plan,
    hydrate_plan,
    load_user,
    update_plan_progress,
    user_timezone,
)
from services.progress_state import ProgressState
from services.progress_sync import ProgressSyncJob, ProgressSyncQueue
from services.streak_service import apply_lazy_reset, check_in
from utils.datetime_utils import to_iso, utcnow


logger = logging.getLogger(__name__)

PROBLEM_ACCEPTED_STATUSES = {"accepted", "passed", "success"}


@dataclass(frozen=True)
class ProgressResult:
    email: str
    plan_id: str
    state: ProgressState
    changed: bool

    def to_dict(self) -> dict:
        return progress_to_dict(self.plan_id, self.state) | {"changed": self.changed}


@dataclass(frozen=True)
class _Context:
    email: str
    plan: PlanDocument
    timezone: str
    state: ProgressState


def progress_to_dict(plan_id: str, state: ProgressState) -> dict:
    return {
        "plan_id": plan_id,
        "completed_tasks": {
            task_id: entry.model_dump(mode="json") for task_id, entry in state.completed_tasks.items()
        },
        "earned_points": state.earned_points,
        "current_streak": state.current_streak,
        "longest_streak": state.longest_streak,
        "last_check_in": to_iso(state.last_check_in),
        "daily_check_ins": dict(state.daily_check_ins),
        "quiz_attempts": [attempt.model_dump(mode="json") for attempt in state.quiz_attempts],
        "problem_submissions": [entry.model_dump(mode="json") for entry in state.problem_submissions],
    }


def _load(db: Session, email: str, plan_id: str | None, now: datetime) -> _Context:
    document = load_user(db, email)
    target = plan_id or active_plan_id(document)
    if not target:
        raise NotFoundError("No active plan")
    plan = find_plan(document, target)
    tz_name = user_timezone(document)
    state = apply_lazy_reset(ProgressState.from_plan(plan), now, tz_name)
    return _Context(email=document.email, plan=plan, timezone=tz_name, state=state)


def _find_task(db: Session, plan: PlanDocument, task_id: str) -> DailyTask:
    for task in hydrate_plan(DocumentStore(db), plan).daily_tasks:
        if task.task_id == task_id:
            return task
    raise NotFoundError("Task not found")


def _finish(ctx: _Context, new_state: ProgressState, queue: ProgressSyncQueue, reason: str) -> ProgressResult:
    changed = new_state != ctx.state
    if changed:
        queue.submit(ProgressSyncJob(email=ctx.email, plan_id=ctx.plan.plan_id, state=new_state, reason=reason))
    return ProgressResult(email=ctx.email, plan_id=ctx.plan.plan_id, state=new_state, changed=changed)


def get_progress(db: Session, email: str, plan_id: str | None = None, now: datetime | None = None) -> ProgressResult:
    """Current progress with the lazy streak reset applied. Reads never write."""
    ctx = _load(db, email, plan_id, now or utcnow())
    return ProgressResult(email=ctx.email, plan_id=ctx.plan.plan_id, state=ctx.state, changed=False)


def record_check_in(
    db: Session,
    email: str,
    queue: ProgressSyncQueue,
    plan_id: str | None = None,
    now: datetime | None = None,
) -> ProgressResult:
    now = now or utcnow()
    ctx = _load(db, email, plan_id, now)
    return _finish(ctx, check_in(ctx.state, now, ctx.timezone), queue, "check_in")


def record_task_completion(
    db: Session,
    email: str,
    task_id: str,
    queue: ProgressSyncQueue,
    plan_id: str | None = None,
    quiz_score: int | None = None,
    time_spent: int | None = None,
    now: datetime | None = None,
) -> ProgressResult:
    now = now or utcnow()
    ctx = _load(db, email, plan_id, now)
    task = _find_task(db, ctx.plan, task_id)
    new_state = complete_task(
        ctx.state,
        task.task_id,
        task.points,
        now,
        quiz_score=quiz_score,
        time_spent=time_spent,
    )
    return _finish(ctx, new_state, queue, "task_completed")


def record_quiz_attempt(
    db: Session,
    email: str,
    task_id: str,
    score: int,
    total_questions: int,
    queue: ProgressSyncQueue,
    pass_score: int | None = None,
    plan_id: str | None = None,
    now: datetime | None = None,
) -> ProgressResult:
    if total_questions <= 0 or score < 0 or score > total_questions:
        raise InvalidInputError("score must be between 0 and total_questions")
    now = now or utcnow()
    ctx = _load(db, email, plan_id, now)
    task = _find_task(db, ctx.plan, task_id)
    passed = quiz_passed(score, pass_score)
    state = add_quiz_attempt(
        ctx.state,
        QuizAttemptRecord(
            task_id=task.task_id,
            attempted_at=now,
            score=score,
            total_questions=total_questions,
            passed=passed,
        ),
    )
    if passed:
        state = complete_task(state, task.task_id, task.points, now, quiz_score=score)
    return _finish(ctx, state, queue, "quiz_attempt")


def record_problem_submission(
    db: Session,
    email: str,
    task_id: str,
    problem_slug: str,
    status: str,
    queue: ProgressSyncQueue,
    language: str | None = None,
    plan_id: str | None = None,
    now: datetime | None = None,
) -> ProgressResult:
    if not (problem_slug or "").strip():
        raise InvalidInputError("problem_slug is required")
    now = now or utcnow()
    ctx = _load(db, email, plan_id, now)
    task = _find_task(db, ctx.plan, task_id)
    if not task.is_problem_practice:
        raise InvalidInputError("Task is not a problem-practice task")
    normalized_status = (status or "submitted").strip().lower()
    passed = normalized_status in PROBLEM_ACCEPTED_STATUSES
    state = add_problem_submission(
        ctx.state,
        ProblemSubmissionRecord(
            task_id=task.task_id,
            submitted_at=now,
            problem_slug=problem_slug.strip(),
            language=language or ctx.plan.problem_language,
            status="accepted" if passed else normalized_status,
            passed=passed,
            points=task.points if passed else 0,
        ),
    )
    if passed:
        state = complete_task(state, task.task_id, task.points, now)
    return _finish(ctx, state, queue, "problem_submission")


def apply_client_snapshot(
    db: Session,
    email: str,
    plan_id: str,
    snapshot: dict,
    now: datetime | None = None,
) -> ProgressResult:
    """Merge a client-held progress snapshot synchronously."""
    plan = update_plan_progress(db, email, plan_id, snapshot, now=now)
    logger.info(f"Applied client progress snapshot for plan {plan_id}")
    return ProgressResult(
        email=email,
        plan_id=plan.plan_id,
        state=ProgressState.from_plan(plan),
        changed=True,
    )
