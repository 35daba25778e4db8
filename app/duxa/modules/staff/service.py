from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from app.duxa.audit import record_event
from app.duxa.constants import (
    MEMBERSHIP_OWNER,
    ROLE_STAFF,
    ROLE_SUPER_ADMIN,
    ROLE_TENANT_ADMIN,
    ROLE_USER,
    TENANT_ADMIN_ASSIGNABLE_ROLES,
    TENANT_MEMBER_ROLES,
)
from app.duxa.security import is_valid_email
from app.duxa.utils import ServiceError, clean

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.duxa.models import User
    from app.duxa.modules.tenants.models import TenantUser


def assignable_roles(actor: "User") -> tuple[str, ...]:
    if actor.normalized_role == ROLE_TENANT_ADMIN:
        return TENANT_ADMIN_ASSIGNABLE_ROLES
    return TENANT_MEMBER_ROLES


def list_staff(s: "Session", tenant_id: int) -> list["TenantUser"]:
    from app.duxa.modules.tenants.models import TenantUser

    return (
        s.query(TenantUser)
        .filter(TenantUser.tenant_id == tenant_id)
        .order_by(TenantUser.is_active.desc(), TenantUser.created_at.asc())
        .all()
    )


def get_membership(s: "Session", membership_id: int, tenant_id: int) -> "TenantUser":
    from app.duxa.modules.tenants.models import TenantUser

    membership = s.get(TenantUser, membership_id)
    if membership is None or membership.tenant_id != tenant_id:
        raise ServiceError("Staff member not found.")
    return membership


def invite_staff(s: "Session", tenant_id: int, payload: dict, actor: "User") -> "TenantUser":
    """
    Attach an existing account to the restaurant. Re-inviting a removed member
    reactivates the old membership with the new role.
    """
    from app.duxa.models import User
    from app.duxa.modules.tenants.models import TenantUser

    email = (payload.get("email") or "").strip().lower()
    role = clean(payload.get("role"))
    full_name = clean(payload.get("full_name"))
    if not is_valid_email(email):
        raise ServiceError("Enter a valid email address.")
    if not full_name:
        raise ServiceError("Full name is required.")
    if role not in assignable_roles(actor):
        raise ServiceError("You are not allowed to grant this role.")

    user = s.query(User).filter(User.email == email).one_or_none()
    if user is None:
        raise ServiceError("No account is registered with this email address.")
    if user.tenant_id and user.tenant_id != tenant_id:
        raise ServiceError("This account already belongs to another restaurant.")

    if user.full_name != full_name:
        user.full_name = full_name
    if user.normalized_role == ROLE_USER:
        user.role = ROLE_STAFF
    user.tenant_id = tenant_id
    user.updated_at = datetime.utcnow()

    membership = (
        s.query(TenantUser)
        .filter(TenantUser.tenant_id == tenant_id, TenantUser.user_id == user.id)
        .one_or_none()
    )
    if membership is None:
        membership = TenantUser(tenant_id=tenant_id, user_id=user.id, role=role, is_active=True)
        s.add(membership)
    else:
        _protect_owner(membership, actor)
        membership.role = role
        membership.is_active = True
    s.flush()
    record_event(
        s,
        actor=actor,
        event_type="DATA_MUTATION",
        message=f"{email} added to staff as {role}",
        tenant_id=tenant_id,
        metadata={"membership_id": membership.id, "user_id": user.id, "role": role},
    )
    return membership


def _forbid_self(membership: "TenantUser", actor: "User", message: str) -> None:
    if membership.user_id == actor.id:
        raise ServiceError(message)


def _protect_owner(membership: "TenantUser", actor: "User") -> None:
    if membership.role == MEMBERSHIP_OWNER and actor.normalized_role != ROLE_SUPER_ADMIN:
        raise ServiceError("Only a platform administrator can change the owner's access.")


def update_staff_role(s: "Session", membership: "TenantUser", role: str, actor: "User") -> None:
    _forbid_self(membership, actor, "You cannot change your own role.")
    _protect_owner(membership, actor)
    if role not in assignable_roles(actor):
        raise ServiceError("You are not allowed to grant this role.")
    old = membership.role
    membership.role = role
    record_event(
        s,
        actor=actor,
        event_type="DATA_MUTATION",
        message=f"Staff role {old} -> {role}",
        tenant_id=membership.tenant_id,
        metadata={"membership_id": membership.id, "old": old, "new": role},
    )


def _detach_profile(membership: "TenantUser") -> None:
    # A staff profile only reaches the dashboard through its tenant link.
    user = membership.user
    if user is not None and user.tenant_id == membership.tenant_id and user.normalized_role == ROLE_STAFF:
        user.tenant_id = None
        user.role = ROLE_USER
        user.updated_at = datetime.utcnow()


def remove_staff_access(s: "Session", membership: "TenantUser", actor: "User") -> None:
    _forbid_self(membership, actor, "You cannot remove your own access.")
    _protect_owner(membership, actor)
    membership.is_active = False
    _detach_profile(membership)
    record_event(
        s,
        actor=actor,
        event_type="DATA_MUTATION",
        severity="WARNING",
        message="Staff access removed",
        tenant_id=membership.tenant_id,
        metadata={"membership_id": membership.id, "user_id": membership.user_id},
    )


def delete_staff(s: "Session", membership: "TenantUser", actor: "User") -> None:
    _forbid_self(membership, actor, "You cannot delete yourself.")
    _protect_owner(membership, actor)
    _detach_profile(membership)
    record_event(
        s,
        actor=actor,
        event_type="DATA_MUTATION",
        severity="WARNING",
        message="Staff member deleted",
        tenant_id=membership.tenant_id,
        metadata={"membership_id": membership.id, "user_id": membership.user_id},
    )
    s.delete(membership)
