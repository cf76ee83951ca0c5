from __future__ import annotations

import re

from config import settings


EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_RE = re.compile(r"^\+?\d{9,15}$")
_PHONE_SEPARATORS_RE = re.compile(r"[\s\-().]")


def normalize_email(email: str | None) -> str:
    return (email or "").strip().lower()


def validate_email(email: str | None) -> bool:
    return bool(EMAIL_RE.match(normalize_email(email)))


def format_phone(phone: str | None, country_code: str | None = None) -> str:
    """Normalize a phone number to international form.

    Local numbers with a leading zero get the default country code, numbers
    already carrying the code only gain the plus sign.
    """
    code = (country_code or settings.DEFAULT_PHONE_COUNTRY_CODE).lstrip("+")
    clean = _PHONE_SEPARATORS_RE.sub("", (phone or "").strip())
    if not clean:
        return ""
    if clean.startswith(f"+{code}"):
        return clean
    if clean.startswith(code):
        return f"+{clean}"
    if clean.startswith("0"):
        return f"+{code}{clean[1:]}"
    if clean.startswith("+"):
        return clean
    return f"+{code}{clean}"


def validate_phone(phone: str | None) -> bool:
    clean = _PHONE_SEPARATORS_RE.sub("", (phone or "").strip())
    return bool(PHONE_RE.match(clean))


def validate_credentials(email: str | None, phone: str | None) -> dict[str, str]:
    """Login/signup check. Both fields are required; returns field -> message."""
    errors: dict[str, str] = {}
    if not normalize_email(email):
        errors["email"] = "Email is required"
    elif not validate_email(email):
        errors["email"] = "Please enter a valid email address"

    if not (phone or "").strip():
        errors["phone"] = "Phone number is required"
    elif not validate_phone(phone):
        errors["phone"] = "Please enter a valid phone number"
    return errors


def validate_contact_for_plan(email: str | None, phone: str | None) -> dict[str, str]:
    """At least one contact channel is needed before a plan is created."""
    errors: dict[str, str] = {}
    has_email = bool(normalize_email(email))
    has_phone = bool((phone or "").strip())
    if not has_email and not has_phone:
        errors["contact"] = "Please provide an email or phone number"
        return errors
    if has_email and not validate_email(email):
        errors["email"] = "Please enter a valid email address"
    if has_phone and not validate_phone(phone):
        errors["phone"] = "Please enter a valid phone number"
    return errors
