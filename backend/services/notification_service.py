from __future__ import annotations

import html
import logging
from dataclasses import asdict, dataclass
from datetime import datetime

import httpx
from sqlalchemy.orm import Session

from config import settings
from db.documents import UserDocumentV1, UserDocumentV2, parse_user_document
from services.document_store import DocumentStore
from utils.datetime_utils import local_date, utcnow
from utils.validation import format_phone


logger = logging.getLogger(__name__)

NOTIFICATION_TYPES = {
    "reminder",
    "missed-checkin",
    "streak-warning",
    "achievement",
    "weekly-summary",
    "welcome",
    "batch-reminder",
}

SMS_MESSAGES = {
    "reminder": "LockIn: Time to learn! Your tasks are ready.",
    "missed-checkin": "LockIn: Don't break your streak! Check in now.",
    "streak-warning": "LockIn: Streak at risk! Complete a task now.",
    "achievement": "LockIn: New achievement unlocked!",
    "weekly-summary": "LockIn: Your weekly summary is ready.",
    "welcome": "Welcome to LockIn! Your plan is ready. Check in daily to build your streak.",
}
DEFAULT_SMS_MESSAGE = "LockIn: You have a notification."

EMAIL_SUBJECTS = {
    "reminder": "Time to LockIn!",
    "missed-checkin": "Don't break your streak!",
    "streak-warning": "Your streak is at risk!",
    "achievement": "Achievement Unlocked!",
    "weekly-summary": "Your Weekly Progress Report",
    "welcome": "Welcome to LockIn!",
}
DEFAULT_EMAIL_SUBJECT = "LockIn Notification"

EMAIL_BODIES = {
    "reminder": (
        "<h2>Time to LockIn!</h2>"
        "<p>Your daily learning tasks are ready and waiting. Keep the momentum going!</p>"
    ),
    "missed-checkin": (
        "<h2>Don't Break Your Streak!</h2>"
        "<p>We noticed you haven't checked in today. Even one small task keeps you on track.</p>"
    ),
    "streak-warning": (
        "<h2>Streak Alert!</h2>"
        "<p>Your learning streak is about to break! Check in before midnight to keep it alive.</p>"
    ),
    "achievement": "<h2>Congratulations!</h2><p>You've unlocked a new achievement. Keep pushing forward!</p>",
    "weekly-summary": "<h2>Your Weekly Progress</h2><p>Great work this week! Keep up the momentum!</p>",
    "welcome": "<h2>Welcome aboard!</h2><p>Your plan is ready. Check in every day to build your streak.</p>",
}
DEFAULT_EMAIL_BODY = "<h2>LockIn Notification</h2><p>You have a new notification.</p>"


@dataclass
class BatchReminderResult:
    total: int = 0
    sms_sent: int = 0
    email_sent: int = 0
    failed: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


def sms_message(kind: str, custom_message: str | None = None) -> str:
    return custom_message or SMS_MESSAGES.get(kind, DEFAULT_SMS_MESSAGE)


def email_subject(kind: str) -> str:
    return EMAIL_SUBJECTS.get(kind, DEFAULT_EMAIL_SUBJECT)


def email_html(kind: str, name: str | None = None, custom_message: str | None = None) -> str:
    greeting = f"Hey {html.escape(name)}!" if name else "Hey there!"
    content = EMAIL_BODIES.get(kind, DEFAULT_EMAIL_BODY)
    if custom_message:
        content += f"<p>{html.escape(custom_message)}</p>"
    return (
        "<!DOCTYPE html><html><body>"
        f"<div><h1>LockIn</h1><p>{greeting}</p></div>"
        f"<div>{content}<a href=\"{settings.APP_URL}\">Open LockIn</a></div>"
        "<p>You're receiving this because you signed up for LockIn.</p>"
        "</body></html>"
    )


def send_sms(phone_number: str, message: str, transport: httpx.BaseTransport | None = None) -> bool:
    if not settings.SMS_API_KEY:
        logger.warning("SMS API key not configured")
        return False
    to = format_phone(phone_number)
    params = {
        "action": "send-sms",
        "api_key": settings.SMS_API_KEY,
        "to": to,
        "from": settings.SMS_SENDER_ID,
        "sms": message,
    }
    try:
        with httpx.Client(timeout=settings.NOTIFICATION_TIMEOUT_SECONDS, transport=transport) as client:
            resp = client.get(settings.SMS_API_URL, params=params)
            data = resp.json()
    except (httpx.HTTPError, ValueError) as exc:
        logger.warning(f"SMS send to {to} failed: {exc}")
        return False
    if data.get("code") == "ok" or data.get("status") == "success":
        return True
    logger.warning(f"SMS API rejected message to {to}: {data.get('message') or 'unknown error'}")
    return False


def send_email(to: str, subject: str, html_content: str, transport: httpx.BaseTransport | None = None) -> bool:
    if not settings.EMAIL_API_KEY:
        logger.warning("Email API key not configured")
        return False
    headers = {
        "Authorization": f"Bearer {settings.EMAIL_API_KEY}",
        "Content-Type": "application/json",
    }
    payload = {"from": settings.EMAIL_FROM, "to": to, "subject": subject, "html": html_content}
    try:
        with httpx.Client(timeout=settings.NOTIFICATION_TIMEOUT_SECONDS, transport=transport) as client:
            resp = client.post(settings.EMAIL_API_URL, headers=headers, json=payload)
            data = resp.json()
    except (httpx.HTTPError, ValueError) as exc:
        logger.warning(f"Email send to {to} failed: {exc}")
        return False
    if data.get("id"):
        return True
    logger.warning(f"Email API rejected message to {to}: status={resp.status_code}")
    return False


def send_direct_notification(
    kind: str,
    email: str | None = None,
    phone_number: str | None = None,
    custom_message: str | None = None,
    name: str | None = None,
    transport: httpx.BaseTransport | None = None,
) -> dict[str, bool]:
    """Send one notification over each channel given; result keyed by channel."""
    results: dict[str, bool] = {}
    if phone_number:
        results["sms"] = send_sms(phone_number, sms_message(kind, custom_message), transport=transport)
    if email:
        results["email"] = send_email(
            email,
            email_subject(kind),
            email_html(kind, name=name, custom_message=custom_message),
            transport=transport,
        )
    return results


def _checked_in_on(document: UserDocumentV1 | UserDocumentV2, day_key: str) -> bool:
    if isinstance(document, UserDocumentV1):
        return bool(document.daily_check_ins.get(day_key))
    return any(plan.daily_check_ins.get(day_key) for plan in document.plans)


def _channels(document: UserDocumentV1 | UserDocumentV2) -> tuple[bool, bool]:
    if isinstance(document, UserDocumentV2):
        return document.settings.sms_notifications, document.settings.email_notifications
    return True, True


def send_batch_reminders(
    db: Session,
    now: datetime | None = None,
    transport: httpx.BaseTransport | None = None,
) -> BatchReminderResult:
    """Remind every reachable user that has not checked in today."""
    now = now or utcnow()
    result = BatchReminderResult()
    for raw in DocumentStore(db).scan_users():
        try:
            document = parse_user_document(raw)
        except ValueError as exc:
            logger.warning(f"Skipping unreadable user record {raw.get('email')}: {exc}")
            continue
        tz_name = document.settings.timezone if isinstance(document, UserDocumentV2) else settings.DEFAULT_TIMEZONE
        if _checked_in_on(document, local_date(now, tz_name).isoformat()):
            continue
        sms_enabled, email_enabled = _channels(document)
        phone = document.phone_number if sms_enabled else ""
        email = document.email if email_enabled else ""
        if not phone and not email:
            continue

        result.total += 1
        first_name = (document.name or "").split(" ")[0]
        if phone:
            message = f"\U0001F525 {first_name + ', ' if first_name else ''}Don't break your streak! Check in now. - LockIn"
            if send_sms(phone, message, transport=transport):
                result.sms_sent += 1
            else:
                result.failed += 1
        if email:
            body = email_html("missed-checkin", name=document.name)
            if send_email(email, email_subject("missed-checkin"), body, transport=transport):
                result.email_sent += 1
            else:
                result.failed += 1
    logger.info(
        f"Batch reminder: {result.total} users, {result.sms_sent} sms, {result.email_sent} email, {result.failed} failed"
    )
    return result


def send_welcome_notification(email: str, phone_number: str, name: str | None = None) -> dict[str, bool]:
    if not settings.SEND_WELCOME_NOTIFICATIONS:
        return {}
    return send_direct_notification("welcome", email=email, phone_number=phone_number, name=name)
