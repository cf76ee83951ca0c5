from __future__ import annotations

from dataclasses import replace
from datetime import datetime

from db.documents import ProblemSubmissionRecord, QuizAttemptRecord, TaskCompletion
from services.errors import InvalidInputError
from services.progress_state import ProgressState


DEFAULT_QUIZ_PASS_SCORE = 3


def complete_task(
    state: ProgressState,
    task_id: str,
    points: int,
    now: datetime,
    quiz_score: int | None = None,
    time_spent: int | None = None,
) -> ProgressState:
    """Credit a task once. Completing an already completed task changes nothing."""
    if not task_id:
        raise InvalidInputError("task_id is required")
    if task_id in state.completed_tasks:
        return state
    if points < 0:
        raise InvalidInputError("points must not be negative")

    completed = dict(state.completed_tasks)
    completed[task_id] = TaskCompletion(
        completed_at=now,
        points=points,
        quiz_score=quiz_score,
        time_spent=time_spent,
    )
    return replace(state, completed_tasks=completed, earned_points=state.earned_points + points)


def add_quiz_attempt(state: ProgressState, attempt: QuizAttemptRecord) -> ProgressState:
    return replace(state, quiz_attempts=state.quiz_attempts + (attempt,))


def add_problem_submission(state: ProgressState, submission: ProblemSubmissionRecord) -> ProgressState:
    return replace(state, problem_submissions=state.problem_submissions + (submission,))


def quiz_passed(score: int, pass_score: int | None = None) -> bool:
    return score >= (pass_score if pass_score is not None else DEFAULT_QUIZ_PASS_SCORE)
