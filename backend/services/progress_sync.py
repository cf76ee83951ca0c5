from __future__ import annotations

import logging
import threading
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol

from sqlalchemy.orm import Session

from db.database import SessionLocal
from services.plan_service import update_plan_progress
from services.progress_state import ProgressState
from utils.datetime_utils import utcnow


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProgressSyncJob:
    email: str
    plan_id: str
    state: ProgressState
    reason: str
    queued_at: datetime = field(default_factory=utcnow)


class ProgressSink(Protocol):
    def push(self, job: ProgressSyncJob) -> None: ...


class StoreProgressSink:
    """Writes snapshots through the plan service using its own session."""

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal):
        self._session_factory = session_factory

    def push(self, job: ProgressSyncJob) -> None:
        db = self._session_factory()
        try:
            update_plan_progress(db, job.email, job.plan_id, job.state.as_update())
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()


@dataclass
class SyncStats:
    pushed: int = 0
    failed: int = 0


class ProgressSyncQueue:
    """Fire-and-forget delivery of progress snapshots.

    Jobs are queued by request handlers and drained after the response.
    A failed push is logged and dropped; it never undoes the local change.
    """

    def __init__(self, sink: ProgressSink | None = None):
        self._sink = sink or StoreProgressSink()
        self._jobs: deque[ProgressSyncJob] = deque()
        self._lock = threading.Lock()
        self.stats = SyncStats()

    def submit(self, job: ProgressSyncJob) -> None:
        with self._lock:
            self._jobs.append(job)

    def pending(self) -> int:
        with self._lock:
            return len(self._jobs)

    def _next(self) -> ProgressSyncJob | None:
        with self._lock:
            return self._jobs.popleft() if self._jobs else None

    def flush(self) -> SyncStats:
        drained = SyncStats()
        while (job := self._next()) is not None:
            try:
                self._sink.push(job)
            except Exception as exc:
                drained.failed += 1
                logger.warning(
                    f"Progress sync failed for {job.email} plan={job.plan_id} reason={job.reason}: {exc}"
                )
                continue
            drained.pushed += 1
        with self._lock:
            self.stats.pushed += drained.pushed
            self.stats.failed += drained.failed
        if drained.pushed:
            logger.info(f"Progress sync pushed {drained.pushed} snapshot(s)")
        return drained


_SYNC_QUEUE = ProgressSyncQueue()


def get_progress_sync_queue() -> ProgressSyncQueue:
    return _SYNC_QUEUE
