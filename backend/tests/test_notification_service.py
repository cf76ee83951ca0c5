from __future__ import annotations

import json
import sys
from datetime import datetime, timezone
from pathlib import Path

import httpx
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from config import settings  # noqa: E402
from db.database import Base  # noqa: E402
from db import models  # noqa: E402,F401
from db.documents import PlanDocument, UserDocumentV2, UserSettings  # noqa: E402
from services.notification_service import (  # noqa: E402
    email_html,
    send_batch_reminders,
    send_direct_notification,
    send_email,
    send_sms,
    sms_message,
)
from services.plan_service import save_user  # noqa: E402

NOW = datetime(2026, 3, 6, 12, 0, tzinfo=timezone.utc)


def _new_db():
    engine = create_engine("sqlite:///:memory:", connect_args={"check_same_thread": False})
    Base.metadata.create_all(bind=engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)()


@pytest.fixture
def keys(monkeypatch):
    monkeypatch.setattr(settings, "SMS_API_KEY", "sms-key")
    monkeypatch.setattr(settings, "EMAIL_API_KEY", "email-key")


class Gateway:
    """Mock SMS and email providers; records every request."""

    def __init__(self, sms_ok: bool = True, email_ok: bool = True):
        self.sms_ok = sms_ok
        self.email_ok = email_ok
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.method == "GET":
            body = {"code": "ok"} if self.sms_ok else {"code": "error", "message": "insufficient balance"}
            return httpx.Response(200, json=body)
        if self.email_ok:
            return httpx.Response(200, json={"id": "email-1"})
        return httpx.Response(422, json={"message": "invalid sender"})

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


def _user(email: str, name: str, phone: str, check_ins: dict[str, bool], **user_settings) -> UserDocumentV2:
    plan = PlanDocument(
        plan_id=f"plan-{name.lower()}",
        start_date="2026-03-02",
        end_date="2026-06-30",
        total_days=85,
        daily_check_ins=check_ins,
        created_at=NOW,
        updated_at=NOW,
    )
    return UserDocumentV2(
        email=email,
        name=name,
        phone_number=phone,
        created_at=NOW,
        settings=UserSettings(timezone="UTC", **user_settings),
        plans=[plan],
        active_plan_id=plan.plan_id,
    )


def test_sms_request_shape(keys):
    gateway = Gateway()
    assert send_sms("024 123 4567", "hello", transport=gateway.transport) is True
    params = gateway.requests[0].url.params
    assert params["action"] == "send-sms"
    assert params["to"] == "+233241234567"
    assert params["from"] == settings.SMS_SENDER_ID
    assert params["sms"] == "hello"


def test_email_request_shape(keys):
    gateway = Gateway()
    assert send_email("ama@example.com", "Hi", "<p>x</p>", transport=gateway.transport) is True
    request = gateway.requests[0]
    assert request.headers["Authorization"] == "Bearer email-key"
    assert json.loads(request.content)["to"] == "ama@example.com"


def test_missing_keys_mean_no_delivery(monkeypatch):
    monkeypatch.setattr(settings, "SMS_API_KEY", "")
    monkeypatch.setattr(settings, "EMAIL_API_KEY", "")
    gateway = Gateway()
    assert send_sms("0241234567", "hello", transport=gateway.transport) is False
    assert send_email("ama@example.com", "Hi", "<p>x</p>", transport=gateway.transport) is False
    assert gateway.requests == []


def test_direct_notification_reports_partial_success(keys):
    gateway = Gateway(sms_ok=True, email_ok=False)
    results = send_direct_notification(
        "streak-warning",
        email="ama@example.com",
        phone_number="0241234567",
        transport=gateway.transport,
    )
    assert results == {"sms": True, "email": False}


def test_direct_notification_only_uses_requested_channels(keys):
    gateway = Gateway()
    assert send_direct_notification("reminder", email="ama@example.com", transport=gateway.transport) == {"email": True}
    assert len(gateway.requests) == 1


def test_network_error_degrades_to_false(keys):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("no route", request=request)

    assert send_sms("0241234567", "hello", transport=httpx.MockTransport(handler)) is False


def test_templates():
    assert sms_message("achievement") == "LockIn: New achievement unlocked!"
    assert sms_message("unknown") == "LockIn: You have a notification."
    assert sms_message("reminder", "custom text") == "custom text"
    html = email_html("missed-checkin", name="Ama <b>", custom_message="Keep going")
    assert "Hey Ama &lt;b&gt;!" in html
    assert "Keep going" in html
    assert settings.APP_URL in html


def test_batch_reminders_skip_users_checked_in_today(keys):
    db = _new_db()
    save_user(db, _user("done@example.com", "Done", "+233201111111", {"2026-03-06": True}))
    save_user(db, _user("late@example.com", "Kwame Mensah", "+233202222222", {"2026-03-05": True}))
    save_user(db, _user("quiet@example.com", "Quiet", "+233203333333", {}, sms_notifications=False))

    gateway = Gateway(sms_ok=False)
    result = send_batch_reminders(db, now=NOW, transport=gateway.transport)

    assert result.to_dict() == {"total": 2, "sms_sent": 0, "email_sent": 2, "failed": 1}
    sms_requests = [r for r in gateway.requests if r.method == "GET"]
    assert len(sms_requests) == 1
    assert sms_requests[0].url.params["sms"] == "\U0001F525 Kwame, Don't break your streak! Check in now. - LockIn"
