from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from db.documents import PlanDocument, ProblemSubmissionRecord, QuizAttemptRecord, TaskCompletion


@dataclass(frozen=True)
class ProgressState:
    """Snapshot of one plan's progress.

    Instances are never mutated. Streak and ledger operations return a new
    snapshot (or the same one for no-ops) and the caller decides what to
    persist. The mapping fields are copied on every change.
    """

    completed_tasks: dict[str, TaskCompletion] = field(default_factory=dict)
    earned_points: int = 0
    current_streak: int = 0
    longest_streak: int = 0
    last_check_in: datetime | None = None
    daily_check_ins: dict[str, bool] = field(default_factory=dict)
    quiz_attempts: tuple[QuizAttemptRecord, ...] = ()
    problem_submissions: tuple[ProblemSubmissionRecord, ...] = ()

    @classmethod
    def from_plan(cls, plan: PlanDocument) -> "ProgressState":
        return cls(
            completed_tasks=dict(plan.completed_tasks),
            earned_points=plan.earned_points,
            current_streak=plan.current_streak,
            longest_streak=plan.longest_streak,
            last_check_in=plan.last_check_in,
            daily_check_ins=dict(plan.daily_check_ins),
            quiz_attempts=tuple(plan.quiz_attempts),
            problem_submissions=tuple(plan.problem_submissions),
        )

    def apply_to(self, plan: PlanDocument) -> PlanDocument:
        return plan.model_copy(update=self.as_update())

    def as_update(self) -> dict:
        """Plan fields carried by a progress push."""
        return {
            "completed_tasks": dict(self.completed_tasks),
            "earned_points": self.earned_points,
            "current_streak": self.current_streak,
            "longest_streak": self.longest_streak,
            "last_check_in": self.last_check_in,
            "daily_check_ins": dict(self.daily_check_ins),
            "quiz_attempts": list(self.quiz_attempts),
            "problem_submissions": list(self.problem_submissions),
        }


def sum_completed_points(completed_tasks: dict[str, TaskCompletion]) -> int:
    return sum(int(entry.points) for entry in completed_tasks.values())
