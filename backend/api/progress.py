from typing import Any, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from api.errors import to_http_exception
from db.database import get_db
from services.errors import PlanEngineError
from services.progress_service import (
    ProgressResult,
    apply_client_snapshot,
    get_progress,
    record_check_in,
    record_problem_submission,
    record_quiz_attempt,
    record_task_completion,
)
from services.progress_sync import ProgressSyncQueue, get_progress_sync_queue

router = APIRouter(prefix="/progress", tags=["progress"])


class ProgressTarget(BaseModel):
    email: str
    plan_id: Optional[str] = None


class TaskCompleteRequest(ProgressTarget):
    quiz_score: Optional[int] = Field(default=None, ge=0)
    time_spent: Optional[int] = Field(default=None, ge=0)


class QuizAttemptRequest(ProgressTarget):
    task_id: str
    score: int = Field(ge=0)
    total_questions: int = Field(ge=1)
    pass_score: Optional[int] = Field(default=None, ge=0)


class ProblemSubmissionRequest(ProgressTarget):
    task_id: str
    problem_slug: str
    status: str = "submitted"
    language: Optional[str] = None


class ProgressSnapshotRequest(BaseModel):
    email: str
    plan_id: str
    progress: dict[str, Any]


def _respond(result: ProgressResult, queue: ProgressSyncQueue, background_tasks: BackgroundTasks) -> dict:
    if result.changed:
        background_tasks.add_task(queue.flush)
    return {"status": "ok", **result.to_dict()}


@router.get("")
def read_progress(
    email: str = Query(min_length=1),
    plan_id: Optional[str] = None,
    db: Session = Depends(get_db),
):
    try:
        result = get_progress(db, email, plan_id=plan_id)
    except PlanEngineError as exc:
        raise to_http_exception(exc)
    return result.to_dict()


@router.post("/check-in")
def check_in(
    req: ProgressTarget,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    queue: ProgressSyncQueue = Depends(get_progress_sync_queue),
):
    try:
        result = record_check_in(db, req.email, queue, plan_id=req.plan_id)
    except PlanEngineError as exc:
        raise to_http_exception(exc)
    return _respond(result, queue, background_tasks)


@router.post("/tasks/{task_id}/complete")
def complete(
    task_id: str,
    req: TaskCompleteRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    queue: ProgressSyncQueue = Depends(get_progress_sync_queue),
):
    try:
        result = record_task_completion(
            db,
            req.email,
            task_id,
            queue,
            plan_id=req.plan_id,
            quiz_score=req.quiz_score,
            time_spent=req.time_spent,
        )
    except PlanEngineError as exc:
        raise to_http_exception(exc)
    return _respond(result, queue, background_tasks)


@router.post("/quiz-attempts")
def quiz_attempt(
    req: QuizAttemptRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    queue: ProgressSyncQueue = Depends(get_progress_sync_queue),
):
    try:
        result = record_quiz_attempt(
            db,
            req.email,
            req.task_id,
            req.score,
            req.total_questions,
            queue,
            pass_score=req.pass_score,
            plan_id=req.plan_id,
        )
    except PlanEngineError as exc:
        raise to_http_exception(exc)
    return _respond(result, queue, background_tasks)


@router.post("/problem-submissions")
def problem_submission(
    req: ProblemSubmissionRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    queue: ProgressSyncQueue = Depends(get_progress_sync_queue),
):
    try:
        result = record_problem_submission(
            db,
            req.email,
            req.task_id,
            req.problem_slug,
            req.status,
            queue,
            language=req.language,
            plan_id=req.plan_id,
        )
    except PlanEngineError as exc:
        raise to_http_exception(exc)
    return _respond(result, queue, background_tasks)


@router.put("/state")
def push_state(req: ProgressSnapshotRequest, db: Session = Depends(get_db)):
    try:
        result = apply_client_snapshot(db, req.email, req.plan_id, req.progress)
    except PlanEngineError as exc:
        raise to_http_exception(exc)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    db.commit()
    return {"status": "ok", **result.to_dict()}
