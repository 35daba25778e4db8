from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from werkzeug.security import generate_password_hash

from app.duxa.audit import record_event
from app.duxa.constants import CONSOLE_USER_ROLES, ROLE_SUPER_ADMIN, THEME_PREFERENCES
from app.duxa.security import is_valid_email
from app.duxa.utils import ServiceError, clean

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.duxa.models import User


def list_console_users(s: "Session", search: str | None = None) -> list["User"]:
    from app.duxa.models import User

    q = s.query(User).filter(User.role.in_(CONSOLE_USER_ROLES))
    if search:
        like = f"%{search}%"
        q = q.filter((User.email.ilike(like)) | (User.full_name.ilike(like)))
    return q.order_by(User.created_at.desc(), User.id.desc()).all()


def validate_user_payload(s: "Session", payload: dict, *, existing: "User | None" = None) -> list[str]:
    from app.duxa.models import User
    from app.duxa.modules.tenants.models import Tenant

    errors = []
    full_name = clean(payload.get("full_name")) or ""
    if len(full_name) < 2:
        errors.append("Full name must be at least 2 characters.")
    email = (payload.get("email") or "").strip().lower()
    if not is_valid_email(email):
        errors.append("A valid email is required.")
    else:
        q = s.query(User.id).filter(User.email == email)
        if existing is not None:
            q = q.filter(User.id != existing.id)
        if q.first() is not None:
            errors.append("An account with this email already exists.")
    role = clean(payload.get("role"))
    if role not in CONSOLE_USER_ROLES:
        errors.append(f"Role must be one of: {', '.join(CONSOLE_USER_ROLES)}")
    elif role != ROLE_SUPER_ADMIN:
        tenant_id = clean(payload.get("tenant_id"))
        if not tenant_id or not tenant_id.isdigit() or s.get(Tenant, int(tenant_id)) is None:
            errors.append("Restaurant users must be linked to a restaurant.")
    if existing is None:
        if len(payload.get("password") or "") < 6:
            errors.append("Password must be at least 6 characters.")
    return errors


def create_user(s: "Session", payload: dict, actor: "User") -> "User":
    from app.duxa.models import User

    role = clean(payload.get("role"))
    now = datetime.utcnow()
    user = User(
        email=payload["email"].strip().lower(),
        password_hash=generate_password_hash(payload["password"]),
        full_name=clean(payload.get("full_name")),
        phone=clean(payload.get("phone")),
        role=role,
        tenant_id=None if role == ROLE_SUPER_ADMIN else int(payload["tenant_id"]),
        is_active=True,
        must_change_password=True,
        created_at=now,
        updated_at=now,
    )
    s.add(user)
    s.flush()
    record_event(
        s,
        actor=actor,
        event_type="SYSTEM_CHANGE",
        message=f"User {user.email} created",
        tenant_id=user.tenant_id,
        metadata={"user_id": user.id, "role": role},
    )
    return user


def update_user(s: "Session", user: "User", payload: dict, actor: "User") -> "User":
    changes = {}
    role = clean(payload.get("role"))
    fields = {
        "full_name": clean(payload.get("full_name")),
        "email": (payload.get("email") or "").strip().lower(),
        "phone": clean(payload.get("phone")),
        "role": role,
        "tenant_id": None if role == ROLE_SUPER_ADMIN else int(payload["tenant_id"]),
    }
    if user.id == actor.id and role != user.role:
        raise ServiceError("You cannot change your own role.")
    for field, new in fields.items():
        old = getattr(user, field)
        if new != old:
            changes[field] = {"old": old, "new": new}
            setattr(user, field, new)
    user.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=actor,
        event_type="SYSTEM_CHANGE",
        message=f"User {user.email} updated",
        tenant_id=user.tenant_id,
        metadata={"user_id": user.id, "changes": changes},
    )
    return user


def _forbid_self(user: "User", actor: "User", action: str) -> None:
    if user.id == actor.id:
        raise ServiceError(f"You cannot {action} your own account.")


def toggle_user_status(s: "Session", user: "User", actor: "User") -> bool:
    _forbid_self(user, actor, "deactivate")
    user.is_active = not user.is_active
    if user.is_active:
        user.failed_login_attempts = 0
        user.locked_until = None
    user.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=actor,
        event_type="SYSTEM_CHANGE",
        severity="WARNING",
        message=f"User {user.email} {'activated' if user.is_active else 'deactivated'}",
        metadata={"user_id": user.id, "is_active": user.is_active},
    )
    return user.is_active


def toggle_user_2fa(s: "Session", user: "User", actor: "User") -> bool:
    user.is_2fa_required = not user.is_2fa_required
    user.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=actor,
        event_type="SYSTEM_CHANGE",
        message=f"2FA requirement {'enabled' if user.is_2fa_required else 'disabled'} for {user.email}",
        metadata={"user_id": user.id, "is_2fa_required": user.is_2fa_required},
    )
    return user.is_2fa_required


def reset_user_2fa(s: "Session", user: "User", actor: "User") -> None:
    """Forget the enrolled authenticator so the user enrols again on next login."""
    user.totp_secret = None
    user.totp_confirmed_at = None
    user.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=actor,
        event_type="SYSTEM_CHANGE",
        severity="WARNING",
        message=f"Authenticator reset for {user.email}",
        metadata={"user_id": user.id},
    )


def set_user_password(s: "Session", user: "User", password: str, actor: "User") -> None:
    if len(password or "") < 6:
        raise ServiceError("Password must be at least 6 characters.")
    user.password_hash = generate_password_hash(password)
    user.must_change_password = user.id != actor.id
    user.failed_login_attempts = 0
    user.locked_until = None
    user.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=actor,
        event_type="SYSTEM_CHANGE",
        severity="WARNING",
        message=f"Password set for {user.email}",
        metadata={"user_id": user.id, "must_change_password": user.must_change_password},
    )


def soft_delete_user(s: "Session", user: "User", actor: "User") -> None:
    _forbid_self(user, actor, "delete")
    user.is_active = False
    user.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=actor,
        event_type="DATA_MUTATION",
        severity="WARNING",
        message=f"User {user.email} deleted (deactivated)",
        metadata={"user_id": user.id},
    )


def update_user_theme(s: "Session", user: "User", theme: str) -> None:
    if theme not in THEME_PREFERENCES:
        raise ServiceError(f"Theme must be one of: {', '.join(THEME_PREFERENCES)}")
    user.theme_preference = theme
    user.updated_at = datetime.utcnow()
