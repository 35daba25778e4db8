from __future__ import annotations

from flask import Blueprint, flash, g, redirect, render_template, request, url_for

from app.duxa.db import db_session
from app.duxa.models import User
from app.duxa.modules.staff.service import (
    assignable_roles,
    delete_staff,
    get_membership,
    invite_staff,
    list_staff,
    remove_staff_access,
    update_staff_role,
)
from app.duxa.rbac import current_tenant_id, require_permission
from app.duxa.utils import ServiceError

bp = Blueprint("staff", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


@bp.get("")
@require_permission("staff.manage")
def staff_list():
    s = db_session()
    return render_template(
        "dashboard/settings/staff.html",
        members=list_staff(s, current_tenant_id()),
        roles=assignable_roles(_current_user()),
    )


@bp.post("/invite")
@require_permission("staff.manage")
def staff_invite():
    s = db_session()
    payload = {k: request.form.get(k) for k in ("email", "role", "full_name")}
    try:
        membership = invite_staff(s, current_tenant_id(), payload, _current_user())
    except ServiceError as e:
        s.rollback()
        flash(str(e), "danger")
        return redirect(url_for("staff.staff_list"))
    s.commit()
    flash(f"{membership.user.email} now has access as {membership.role}.", "success")
    return redirect(url_for("staff.staff_list"))


def _membership_action(membership_id: int, action, success_message: str):
    s = db_session()
    u = _current_user()
    try:
        membership = get_membership(s, membership_id, current_tenant_id())
        action(s, membership, u)
    except ServiceError as e:
        s.rollback()
        flash(str(e), "danger")
        return redirect(url_for("staff.staff_list"))
    s.commit()
    flash(success_message, "success")
    return redirect(url_for("staff.staff_list"))


@bp.post("/<int:membership_id>/role")
@require_permission("staff.manage")
def staff_role(membership_id: int):
    role = (request.form.get("role") or "").strip()
    return _membership_action(
        membership_id,
        lambda s, m, u: update_staff_role(s, m, role, u),
        "Role updated.",
    )


@bp.post("/<int:membership_id>/remove")
@require_permission("staff.manage")
def staff_remove(membership_id: int):
    return _membership_action(membership_id, remove_staff_access, "Access removed.")


@bp.post("/<int:membership_id>/delete")
@require_permission("staff.manage")
def staff_delete(membership_id: int):
    return _membership_action(membership_id, delete_staff, "Staff member deleted.")
