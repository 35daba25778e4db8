from __future__ import annotations

import logging
import re
from collections.abc import Callable
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import inspect as sa_inspect
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.security import generate_password_hash

from app.duxa.audit import record_event
from app.duxa.constants import ROLE_TENANT_ADMIN, SLUG_PATTERN
from app.duxa.security import is_valid_email
from app.duxa.utils import ServiceError, clean

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.duxa.models import User
    from app.duxa.modules.tenants.models import Tenant, TenantUser

logger = logging.getLogger(__name__)

_TRANSLITERATION = str.maketrans({"ğ": "g", "ü": "u", "ş": "s", "ı": "i", "ö": "o", "ç": "c"})
_SLUG_RE = re.compile(SLUG_PATTERN)
MAX_SLUG_SUGGESTIONS = 99


class TenantCreationError(RuntimeError):
    pass


def generate_slug(name: str) -> str:
    """'Çiğ Köfte Dünyası' -> 'cig-kofte-dunyasi'"""
    slug = (name or "").lower().translate(_TRANSLITERATION)
    slug = re.sub(r"[^a-z0-9]+", "-", slug)
    return slug.strip("-")


def is_valid_slug(slug: str | None) -> bool:
    return bool(slug and _SLUG_RE.match(slug))


def check_slug_availability(s: "Session", slug: str, exclude_tenant_id: int | None = None) -> tuple[bool, str | None]:
    """Returns (available, suggestion). The suggestion is the first free `slug-N`."""
    from app.duxa.modules.tenants.models import Tenant

    def _taken(candidate: str) -> bool:
        q = s.query(Tenant.id).filter(Tenant.slug == candidate)
        if exclude_tenant_id is not None:
            q = q.filter(Tenant.id != exclude_tenant_id)
        return q.first() is not None

    if not _taken(slug):
        return True, None
    for n in range(1, MAX_SLUG_SUGGESTIONS + 1):
        candidate = f"{slug}-{n}"
        if not _taken(candidate):
            return False, candidate
    return False, None


def validate_tenant_create_payload(payload: dict) -> list[str]:
    errors = []
    if not clean(payload.get("name")):
        errors.append("Restaurant name is required.")
    slug = clean(payload.get("slug"))
    if not slug:
        errors.append("Slug is required.")
    elif not is_valid_slug(slug):
        errors.append("Slug may only contain lowercase letters, numbers and dashes.")
    if not clean(payload.get("admin_full_name")):
        errors.append("Admin full name is required.")
    email = (payload.get("admin_email") or "").strip().lower()
    if not is_valid_email(email):
        errors.append("A valid admin email is required.")
    if len(payload.get("admin_password") or "") < 6:
        errors.append("Admin password must be at least 6 characters.")
    return errors


# ---------- Creation steps (each returns an undo callable) ----------
def _create_admin_user(s: "Session", payload: dict) -> "User":
    from app.duxa.models import User

    user = User(
        email=payload["admin_email"].strip().lower(),
        password_hash=generate_password_hash(payload["admin_password"]),
        full_name=payload["admin_full_name"].strip(),
        phone=clean(payload.get("contact_phone")),
        role="user",
        is_active=True,
        must_change_password=True,
    )
    s.add(user)
    s.flush()
    return user


def _create_tenant_row(s: "Session", payload: dict) -> "Tenant":
    from app.duxa.modules.tenants.models import Tenant

    now = datetime.utcnow()
    tenant = Tenant(
        name=payload["name"].strip(),
        commercial_name=clean(payload.get("commercial_name")),
        slug=payload["slug"].strip(),
        status="active",
        plan=clean(payload.get("plan")) or "trial",
        contact_email=payload["admin_email"].strip().lower(),
        contact_phone=clean(payload.get("contact_phone")),
        settings={},
        created_at=now,
        updated_at=now,
    )
    s.add(tenant)
    s.flush()
    return tenant


def _attach_admin_profile(s: "Session", user: "User", tenant: "Tenant") -> None:
    user.role = ROLE_TENANT_ADMIN
    user.tenant_id = tenant.id
    user.is_active = True
    s.flush()


def _create_owner_membership(s: "Session", user: "User", tenant: "Tenant") -> "TenantUser":
    from app.duxa.modules.tenants.models import TenantUser

    membership = TenantUser(tenant_id=tenant.id, user_id=user.id, role="owner", is_active=True)
    s.add(membership)
    s.flush()
    return membership


def _delete_if_persistent(s: "Session", obj) -> None:
    if sa_inspect(obj).persistent:
        s.delete(obj)
        s.flush()


def _run_compensations(s: "Session", undo: list[tuple[str, Callable[[], None]]]) -> None:
    for label, fn in reversed(undo):
        try:
            fn()
            logger.info("Tenant creation rollback: undid %s", label)
        except SQLAlchemyError:
            logger.exception("Tenant creation rollback: failed to undo %s", label)


def create_tenant(s: "Session", payload: dict, actor: "User") -> "Tenant":
    """
    Create the admin account, the restaurant, the admin profile link and the owner
    membership, in that order. If a step fails, the completed steps are undone in
    reverse order and TenantCreationError is raised.
    """
    from app.duxa.models import User

    slug = payload["slug"].strip()
    email = payload["admin_email"].strip().lower()

    available, suggestion = check_slug_availability(s, slug)
    if not available:
        hint = f" Try '{suggestion}'." if suggestion else ""
        raise ServiceError(f"Slug '{slug}' is already in use.{hint}")
    if s.query(User.id).filter(User.email == email).first() is not None:
        raise ServiceError("A user with this email already exists.")

    undo: list[tuple[str, Callable[[], None]]] = []
    try:
        user = _create_admin_user(s, payload)
        undo.append(("admin user", lambda: _delete_if_persistent(s, user)))

        tenant = _create_tenant_row(s, payload)
        undo.append(("tenant", lambda: _delete_if_persistent(s, tenant)))

        _attach_admin_profile(s, user, tenant)

        def _detach_profile() -> None:
            if sa_inspect(user).persistent:
                user.role = "user"
                user.tenant_id = None
                s.flush()

        undo.append(("admin profile", _detach_profile))

        membership = _create_owner_membership(s, user, tenant)
        undo.append(("owner membership", lambda: _delete_if_persistent(s, membership)))
    except Exception as e:
        logger.error("Tenant creation failed for slug=%s: %s", slug, e)
        if isinstance(e, SQLAlchemyError):
            # The session is unusable after a failed flush; rolling back discards every step.
            s.rollback()
        _run_compensations(s, undo)
        raise TenantCreationError(f"Restaurant could not be created: {e}") from e

    record_event(
        s,
        actor=actor,
        event_type="TENANT_CREATED",
        severity="SUCCESS",
        message=f"Tenant '{tenant.name}' created",
        tenant_id=tenant.id,
        metadata={"slug": tenant.slug, "admin_email": email},
    )
    return tenant


def update_tenant_general_info(s: "Session", tenant: "Tenant", payload: dict, actor: "User") -> list[str]:
    """Returns validation errors; nothing is changed if any are returned."""
    from app.duxa.models import User

    errors = []
    name = clean(payload.get("name"))
    if not name:
        errors.append("Restaurant name is required.")
    contact_email = (payload.get("contact_email") or "").strip().lower() or None
    if contact_email and not is_valid_email(contact_email):
        errors.append("Contact email is not valid.")
    country_code = (clean(payload.get("country_code")) or "").upper() or None
    if country_code and len(country_code) != 2:
        errors.append("Country code must be two letters.")
    if errors:
        return errors

    owner = None
    if contact_email and contact_email != tenant.contact_email:
        owner = tenant_owner(tenant)
        if owner is not None:
            clash = s.query(User.id).filter(User.email == contact_email, User.id != owner.id).first()
            if clash is not None:
                return ["Another user already uses that email."]

    changes = {}
    fields = {
        "name": name,
        "commercial_name": clean(payload.get("commercial_name")),
        "contact_phone": clean(payload.get("contact_phone")),
        "contact_email": contact_email,
        "contact_address": clean(payload.get("contact_address")),
        "address": clean(payload.get("address")),
        "country_code": country_code,
        "legal_name": clean(payload.get("legal_name")),
        "tax_id": clean(payload.get("tax_id")),
    }
    for field, new in fields.items():
        old = getattr(tenant, field)
        if new != old:
            changes[field] = {"old": old, "new": new}
            setattr(tenant, field, new)

    if owner is not None and "contact_email" in changes:
        owner.email = contact_email
        owner.updated_at = datetime.utcnow()

    tenant.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=actor,
        event_type="DATA_MUTATION",
        message=f"Tenant '{tenant.name}' general info updated",
        tenant_id=tenant.id,
        metadata={"changes": changes},
    )
    return []


def toggle_tenant_status(s: "Session", tenant: "Tenant", actor: "User") -> str:
    old = tenant.status
    tenant.status = "active" if tenant.status == "suspended" else "suspended"
    tenant.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=actor,
        event_type="SYSTEM_CHANGE",
        severity="WARNING",
        message=f"Tenant '{tenant.name}' status {old} -> {tenant.status}",
        tenant_id=tenant.id,
        metadata={"old": old, "new": tenant.status},
    )
    return tenant.status


def update_tenant_settings(s: "Session", tenant: "Tenant", payload: dict, actor: "User") -> list[str]:
    slug = clean(payload.get("slug"))
    if not slug:
        return ["Slug is required."]
    if not is_valid_slug(slug):
        return ["Slug may only contain lowercase letters, numbers and dashes."]
    if slug != tenant.slug:
        available, suggestion = check_slug_availability(s, slug, exclude_tenant_id=tenant.id)
        if not available:
            hint = f" Try '{suggestion}'." if suggestion else ""
            return [f"Slug '{slug}' is already in use.{hint}"]

    is_online = payload.get("is_online") in ("1", "on", "true", True)
    changes = {}
    if slug != tenant.slug:
        changes["slug"] = {"old": tenant.slug, "new": slug}
        tenant.slug = slug
    if is_online != tenant.is_online:
        changes["is_online"] = {"old": tenant.is_online, "new": is_online}
        tenant.is_online = is_online
    tenant.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=actor,
        event_type="SYSTEM_CHANGE",
        message=f"Tenant '{tenant.name}' settings updated",
        tenant_id=tenant.id,
        metadata={"changes": changes},
    )
    return []


def tenant_owner(tenant: "Tenant") -> "User | None":
    return next((m.user for m in tenant.memberships if m.role == "owner"), None)


def reset_tenant_password(s: "Session", tenant: "Tenant", actor: "User") -> tuple[bool, str]:
    """Mail a reset link to the account behind the tenant's contact email."""
    from app.duxa.auth import send_password_reset
    from app.duxa.models import User

    user = None
    if tenant.contact_email:
        user = s.query(User).filter(User.email == tenant.contact_email).one_or_none()
    if user is None:
        user = tenant_owner(tenant)
    if user is None:
        raise ServiceError("No account is linked to this restaurant's contact email.")
    return send_password_reset(s, user, actor=actor)
