from __future__ import annotations

import re
import secrets
from datetime import datetime
from typing import Any

from flask import Request, session
from sqlalchemy.orm import Session

SECURITY_SETTINGS_KEY = "security"

DEFAULT_SECURITY_SETTINGS: dict[str, Any] = {
    "min_password_length": 8,
    "require_special_char": True,
    "require_number": True,
    "require_uppercase": True,
    "max_login_attempts": 5,
    "session_timeout_minutes": 60,
    "two_factor_enforced": False,
    "lockout_minutes": 15,
}

# (field, low, high)
_INT_BOUNDS = (
    ("min_password_length", 6, 64),
    ("max_login_attempts", 3, 10),
    ("session_timeout_minutes", 5, 1440),
    ("lockout_minutes", 1, 1440),
)
_BOOL_FIELDS = ("require_special_char", "require_number", "require_uppercase", "two_factor_enforced")

_SPECIAL_CHARS = re.compile(r"[!@#$%^&*(),.?\":{}|<>]")
_EMAIL_RE = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")


def ensure_csrf_token() -> str:
    """Ensure a CSRF token exists in the session and return it."""
    token = session.get("csrf_token")
    if not token:
        token = secrets.token_urlsafe(32)
        session["csrf_token"] = token
    return token


def validate_csrf(req: Request) -> bool:
    """Validate CSRF token from form, header, or JSON body."""
    token = req.headers.get("X-CSRF-Token") or req.form.get("csrf_token")
    if not token and req.is_json:
        json_data = req.get_json(silent=True) or {}
        if isinstance(json_data, dict):
            token = json_data.get("csrf_token")
    expected = session.get("csrf_token")
    return bool(token and expected and secrets.compare_digest(str(token), str(expected)))


def is_valid_email(email: str) -> bool:
    return bool(_EMAIL_RE.match(email or ""))


def get_security_settings(s: Session) -> dict[str, Any]:
    """Stored security settings merged over the defaults."""
    from app.duxa.models import SystemSetting

    merged = dict(DEFAULT_SECURITY_SETTINGS)
    row = s.get(SystemSetting, SECURITY_SETTINGS_KEY)
    if row is not None and isinstance(row.value, dict):
        for key, value in row.value.items():
            if key in merged:
                merged[key] = value
    return merged


def parse_security_settings_form(form) -> tuple[dict[str, Any], list[str]]:
    errors: list[str] = []
    payload: dict[str, Any] = {}
    for field, low, high in _INT_BOUNDS:
        raw = (form.get(field) or "").strip()
        if not raw:
            payload[field] = DEFAULT_SECURITY_SETTINGS[field]
            continue
        try:
            value = int(raw)
        except ValueError:
            errors.append(f"{field.replace('_', ' ').capitalize()} must be a whole number.")
            continue
        if value < low or value > high:
            errors.append(f"{field.replace('_', ' ').capitalize()} must be between {low} and {high}.")
            continue
        payload[field] = value
    for field in _BOOL_FIELDS:
        payload[field] = form.get(field) in ("1", "on", "true")
    return payload, errors


def update_security_settings(s: Session, payload: dict[str, Any], user) -> dict[str, Any]:
    from app.duxa.audit import record_event
    from app.duxa.models import SystemSetting

    before = get_security_settings(s)
    row = s.get(SystemSetting, SECURITY_SETTINGS_KEY)
    if row is None:
        row = SystemSetting(key=SECURITY_SETTINGS_KEY, value={})
        s.add(row)
    after = dict(before)
    after.update({k: v for k, v in payload.items() if k in DEFAULT_SECURITY_SETTINGS})
    row.value = after
    row.updated_at = datetime.utcnow()
    row.updated_by_user_id = user.id if user else None

    changes = {k: {"old": before[k], "new": after[k]} for k in after if before.get(k) != after[k]}
    record_event(
        s,
        actor=user,
        event_type="SYSTEM_CHANGE",
        severity="WARNING",
        message="Security settings updated",
        metadata={"setting": SECURITY_SETTINGS_KEY, "changes": changes},
    )
    return after


def validate_password(password: str, settings: dict[str, Any] | None = None) -> str | None:
    """Return the first policy violation, or None if the password is acceptable."""
    policy = settings or DEFAULT_SECURITY_SETTINGS
    min_len = int(policy.get("min_password_length") or DEFAULT_SECURITY_SETTINGS["min_password_length"])
    if len(password or "") < min_len:
        return f"Password must be at least {min_len} characters."
    if policy.get("require_uppercase") and not re.search(r"[A-Z]", password):
        return "Password must contain at least one uppercase letter."
    if policy.get("require_number") and not re.search(r"[0-9]", password):
        return "Password must contain at least one number."
    if policy.get("require_special_char") and not _SPECIAL_CHARS.search(password):
        return "Password must contain at least one special character."
    return None
