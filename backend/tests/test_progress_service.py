from __future__ import annotations

import logging
import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from db.database import Base  # noqa: E402
from db import models  # noqa: E402,F401
from db.documents import DailyTask, PlanDocument  # noqa: E402
from services.errors import InvalidInputError, NotFoundError  # noqa: E402
from services.plan_service import create_user, get_plan  # noqa: E402
from services.progress_service import (  # noqa: E402
    get_progress,
    record_check_in,
    record_problem_submission,
    record_quiz_attempt,
    record_task_completion,
)
from services.progress_state import ProgressState  # noqa: E402
from services.progress_sync import ProgressSyncJob, ProgressSyncQueue, StoreProgressSink  # noqa: E402

EMAIL = "esi@example.com"


def _at(day: int, hour: int = 9) -> datetime:
    return datetime(2026, 3, day, hour, 0, tzinfo=timezone.utc)


def _session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def _plan() -> PlanDocument:
    tasks = [
        DailyTask(task_id="t1", day=1, date="2026-03-02", title="Variables", points=20),
        DailyTask(task_id="t2", day=2, date="2026-03-03", title="Loops", points=20),
        DailyTask(
            task_id="t2-lc",
            day=2,
            date="2026-03-03",
            title="Daily Coding Challenge (easy)",
            type="practice",
            points=10,
            is_problem_practice=True,
        ),
    ]
    return PlanDocument(
        plan_id="plan-1",
        category="software",
        start_date="2026-03-02",
        end_date="2026-03-03",
        total_days=2,
        total_tasks=len(tasks),
        daily_tasks=tasks,
        total_points=50,
        problem_language="python",
        created_at=_at(1),
        updated_at=_at(1),
    )


class RecordingSink:
    def __init__(self):
        self.jobs: list[ProgressSyncJob] = []

    def push(self, job: ProgressSyncJob) -> None:
        self.jobs.append(job)


class FailingSink:
    def push(self, job: ProgressSyncJob) -> None:
        raise ConnectionError("store unavailable")


def _seeded():
    factory = _session_factory()
    db = factory()
    create_user(db, email=EMAIL, name="Esi", phone_number="0241234567", plan=_plan(), now=_at(1))
    db.commit()
    return factory, db


def test_check_in_enqueues_and_flush_persists():
    factory, db = _seeded()
    queue = ProgressSyncQueue(sink=StoreProgressSink(factory))

    result = record_check_in(db, EMAIL, queue, now=_at(2))
    assert result.changed is True
    assert result.state.current_streak == 1
    assert queue.pending() == 1

    stats = queue.flush()
    assert (stats.pushed, stats.failed) == (1, 0)
    assert queue.pending() == 0

    db.expire_all()
    stored = get_plan(db, EMAIL, "plan-1", hydrate=False)
    assert stored.current_streak == 1
    assert stored.daily_check_ins == {"2026-03-02": True}


def test_repeat_check_in_enqueues_nothing():
    factory, db = _seeded()
    sink = RecordingSink()
    store_queue = ProgressSyncQueue(sink=StoreProgressSink(factory))
    record_check_in(db, EMAIL, store_queue, now=_at(2, 8))
    store_queue.flush()
    db.expire_all()

    queue = ProgressSyncQueue(sink=sink)
    again = record_check_in(db, EMAIL, queue, now=_at(2, 20))
    assert again.changed is False
    assert queue.pending() == 0
    assert again.state.current_streak == 1


def test_jobs_carry_the_new_snapshot_and_reason():
    _, db = _seeded()
    sink = RecordingSink()
    queue = ProgressSyncQueue(sink=sink)

    record_task_completion(db, EMAIL, "t1", queue, now=_at(2))
    queue.flush()
    [job] = sink.jobs
    assert job.email == EMAIL
    assert job.plan_id == "plan-1"
    assert job.reason == "task_completed"
    assert job.state.earned_points == 20
    assert "t1" in job.state.completed_tasks


def test_completion_points_come_from_the_task():
    factory, db = _seeded()
    queue = ProgressSyncQueue(sink=StoreProgressSink(factory))
    record_task_completion(db, EMAIL, "t2", queue, time_spent=40, now=_at(3))
    queue.flush()
    db.expire_all()

    again = record_task_completion(db, EMAIL, "t2", queue, now=_at(3, 18))
    assert again.changed is False
    assert queue.pending() == 0
    assert again.state.earned_points == 20
    assert again.state.completed_tasks["t2"].time_spent == 40

    with pytest.raises(NotFoundError):
        record_task_completion(db, EMAIL, "nope", queue, now=_at(3))


def test_quiz_attempts_log_and_complete_on_pass():
    _, db = _seeded()
    sink = RecordingSink()
    queue = ProgressSyncQueue(sink=sink)

    failed = record_quiz_attempt(db, EMAIL, "t1", 2, 5, queue, now=_at(2))
    assert len(failed.state.quiz_attempts) == 1
    assert "t1" not in failed.state.completed_tasks

    passed = record_quiz_attempt(db, EMAIL, "t1", 4, 5, queue, now=_at(2, 10))
    assert passed.state.quiz_attempts[-1].passed is True
    assert passed.state.completed_tasks["t1"].quiz_score == 4
    assert passed.state.earned_points == 20

    with pytest.raises(InvalidInputError):
        record_quiz_attempt(db, EMAIL, "t1", 6, 5, queue)


def test_problem_submission_only_for_problem_tasks():
    _, db = _seeded()
    queue = ProgressSyncQueue(sink=RecordingSink())

    rejected = record_problem_submission(db, EMAIL, "t2-lc", "two-sum", "Wrong Answer", queue, now=_at(3))
    entry = rejected.state.problem_submissions[-1]
    assert entry.passed is False
    assert entry.language == "python"
    assert "t2-lc" not in rejected.state.completed_tasks

    accepted = record_problem_submission(db, EMAIL, "t2-lc", "two-sum", "Accepted", queue, now=_at(3))
    assert accepted.state.problem_submissions[-1].status == "accepted"
    assert accepted.state.completed_tasks["t2-lc"].points == 10

    with pytest.raises(InvalidInputError):
        record_problem_submission(db, EMAIL, "t1", "two-sum", "accepted", queue)


def test_reads_apply_lazy_reset_without_writing():
    factory, db = _seeded()
    queue = ProgressSyncQueue(sink=StoreProgressSink(factory))
    record_check_in(db, EMAIL, queue, now=_at(2))
    queue.flush()
    db.expire_all()
    record_check_in(db, EMAIL, queue, now=_at(3))
    queue.flush()
    db.expire_all()

    later = get_progress(db, EMAIL, now=_at(6))
    assert later.state.current_streak == 0
    assert later.state.longest_streak == 2
    assert later.changed is False
    assert get_plan(db, EMAIL, "plan-1", hydrate=False).current_streak == 2

    after = record_check_in(db, EMAIL, queue, now=_at(6))
    assert after.state.current_streak == 1
    assert after.state.longest_streak == 2


def test_sync_failure_is_logged_and_counted(caplog):
    queue = ProgressSyncQueue(sink=FailingSink())
    queue.submit(ProgressSyncJob(email=EMAIL, plan_id="plan-1", state=ProgressState(), reason="check_in"))

    with caplog.at_level(logging.WARNING, logger="services.progress_sync"):
        stats = queue.flush()

    assert (stats.pushed, stats.failed) == (0, 1)
    assert queue.stats.failed == 1
    assert queue.pending() == 0
    assert any("Progress sync failed" in record.getMessage() for record in caplog.records)
    assert any("store unavailable" in record.getMessage() for record in caplog.records)


def test_store_sink_rolls_back_failed_push():
    factory, db = _seeded()
    queue = ProgressSyncQueue(sink=StoreProgressSink(factory))
    queue.submit(ProgressSyncJob(email="ghost@example.com", plan_id="plan-1", state=ProgressState(), reason="check_in"))
    stats = queue.flush()
    assert stats.failed == 1
    db.expire_all()
    assert get_plan(db, EMAIL, "plan-1", hydrate=False).current_streak == 0
