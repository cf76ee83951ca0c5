from __future__ import annotations

import sys
from pathlib import Path


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from utils.validation import (  # noqa: E402
    format_phone,
    normalize_email,
    validate_contact_for_plan,
    validate_credentials,
    validate_email,
    validate_phone,
)


def test_email_is_trimmed_and_lowercased():
    assert normalize_email("  Ama@Example.COM ") == "ama@example.com"
    assert validate_email("ama@example.com")
    assert not validate_email("ama@example")
    assert not validate_email("ama example@x.com")


def test_phone_formats_to_international():
    assert format_phone("024 123 4567") == "+233241234567"
    assert format_phone("233241234567") == "+233241234567"
    assert format_phone("+233 24-123-4567") == "+233241234567"
    assert format_phone("241234567") == "+233241234567"
    assert format_phone("+447911123456") == "+447911123456"
    assert format_phone("0241234567", country_code="+234") == "+234241234567"
    assert format_phone("") == ""


def test_phone_validation():
    assert validate_phone("(024) 123-4567")
    assert not validate_phone("12345")
    assert not validate_phone("phone")


def test_credentials_require_both_fields():
    assert validate_credentials("ama@example.com", "0241234567") == {}
    errors = validate_credentials("", "")
    assert errors == {"email": "Email is required", "phone": "Phone number is required"}


def test_plan_contact_needs_at_least_one_channel():
    assert validate_contact_for_plan("ama@example.com", None) == {}
    assert validate_contact_for_plan(None, "0241234567") == {}
    assert "contact" in validate_contact_for_plan("", "  ")
    assert "phone" in validate_contact_for_plan("ama@example.com", "12")
