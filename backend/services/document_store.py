from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session

from config import settings
from db.documents import detect_schema_version
from db.models import PlanTasksRecord, UserRecord
from services.errors import NotFoundError, RecordTooLargeError


logger = logging.getLogger(__name__)


def _encode(payload) -> str:
    return json.dumps(payload, ensure_ascii=False, separators=(",", ":"))


class DocumentStore:
    """Key-value access to user documents and externalized plan tasks.

    Writes are flushed but not committed; the caller owns the transaction.
    """

    def __init__(self, db: Session, max_record_bytes: int | None = None):
        self.db = db
        self.max_record_bytes = max_record_bytes or settings.MAX_USER_RECORD_BYTES

    # ------------------------------------------------------------------
    # users
    # ------------------------------------------------------------------
    def get_user(self, email: str) -> dict | None:
        row = self.db.get(UserRecord, email)
        if row is None:
            return None
        raw = json.loads(row.document or "{}")
        if raw.get("schema_version") is None and row.schema_version is not None:
            raw["schema_version"] = int(row.schema_version)
        raw.setdefault("email", row.email)
        return raw

    def user_exists(self, email: str) -> bool:
        return self.db.get(UserRecord, email) is not None

    def put_user(self, document: dict) -> None:
        email = str(document.get("email") or "").strip()
        if not email:
            raise ValueError("User document requires an email key")
        encoded = _encode(document)
        size = len(encoded.encode("utf-8"))
        if size > self.max_record_bytes:
            logger.warning(f"Rejected user record for {email}: {size} bytes exceeds {self.max_record_bytes}")
            raise RecordTooLargeError(
                f"User record is {size} bytes, above the {self.max_record_bytes} byte limit"
            )
        version = int(detect_schema_version(document))
        row = self.db.get(UserRecord, email)
        now = datetime.now(timezone.utc).replace(tzinfo=None)
        if row is None:
            row = UserRecord(email=email, schema_version=version, document=encoded, created_at=now, updated_at=now)
            self.db.add(row)
        else:
            row.schema_version = version
            row.document = encoded
            row.updated_at = now
        self.db.flush()

    def update_user(self, email: str, patch: dict) -> dict:
        """Shallow partial update: only the keys present in ``patch`` change."""
        current = self.get_user(email)
        if current is None:
            raise NotFoundError("User not found")
        current.update(patch)
        self.put_user(current)
        return current

    def delete_user(self, email: str) -> bool:
        row = self.db.get(UserRecord, email)
        if row is None:
            return False
        self.db.delete(row)
        self.db.flush()
        return True

    def scan_users(self) -> Iterator[dict]:
        for row in self.db.execute(select(UserRecord).order_by(UserRecord.email)).scalars():
            raw = json.loads(row.document or "{}")
            raw.setdefault("schema_version", row.schema_version)
            raw.setdefault("email", row.email)
            yield raw

    # ------------------------------------------------------------------
    # externalized plan tasks
    # ------------------------------------------------------------------
    def get_plan_tasks(self, plan_id: str) -> list[dict]:
        row = self.db.get(PlanTasksRecord, plan_id)
        if row is None:
            return []
        return list(json.loads(row.tasks or "[]"))

    def put_plan_tasks(self, plan_id: str, tasks: list[dict], owner_email: str | None = None) -> None:
        row = self.db.get(PlanTasksRecord, plan_id)
        encoded = _encode(tasks)
        now = datetime.now(timezone.utc).replace(tzinfo=None)
        if row is None:
            row = PlanTasksRecord(
                plan_id=plan_id,
                owner_email=owner_email,
                tasks=encoded,
                task_count=len(tasks),
                created_at=now,
                updated_at=now,
            )
            self.db.add(row)
        else:
            row.tasks = encoded
            row.task_count = len(tasks)
            row.updated_at = now
            if owner_email:
                row.owner_email = owner_email
        self.db.flush()

    def delete_plan_tasks(self, plan_id: str) -> bool:
        row = self.db.get(PlanTasksRecord, plan_id)
        if row is None:
            return False
        self.db.delete(row)
        self.db.flush()
        return True
