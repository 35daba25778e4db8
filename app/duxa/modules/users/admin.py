from __future__ import annotations

from flask import Blueprint, flash, g, redirect, render_template, request, url_for

from app.duxa.constants import CONSOLE_USER_ROLES
from app.duxa.db import db_session, get_or_404
from app.duxa.models import User
from app.duxa.modules.tenants.models import Tenant
from app.duxa.modules.users.service import (
    create_user,
    list_console_users,
    reset_user_2fa,
    set_user_password,
    soft_delete_user,
    toggle_user_2fa,
    toggle_user_status,
    update_user,
    validate_user_payload,
)
from app.duxa.rbac import require_permission
from app.duxa.utils import ServiceError

bp = Blueprint("users", __name__)

_USER_FIELDS = ("full_name", "email", "phone", "role", "tenant_id", "password")


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _tenants(s):
    return s.query(Tenant).order_by(Tenant.name).all()


@bp.get("")
@require_permission("users.manage")
def users_list():
    s = db_session()
    search = (request.args.get("q") or "").strip()
    return render_template(
        "super_admin/users/list.html",
        users=list_console_users(s, search or None),
        search=search,
        roles=CONSOLE_USER_ROLES,
        tenants=_tenants(s),
    )


@bp.post("/new")
@require_permission("users.manage")
def users_new_post():
    s = db_session()
    u = _current_user()
    payload = {k: request.form.get(k) for k in _USER_FIELDS}
    errors = validate_user_payload(s, payload)
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("users.users_list"))
    user = create_user(s, payload, u)
    s.commit()
    flash(f"Account created for {user.email}.", "success")
    return redirect(url_for("users.user_detail", user_id=user.id))


@bp.get("/<int:user_id>")
@require_permission("users.manage")
def user_detail(user_id: int):
    s = db_session()
    user = get_or_404(s, User, user_id)
    return render_template(
        "super_admin/users/detail.html",
        account=user,
        roles=CONSOLE_USER_ROLES,
        tenants=_tenants(s),
    )


@bp.post("/<int:user_id>/update")
@require_permission("users.manage")
def user_update(user_id: int):
    s = db_session()
    u = _current_user()
    user = get_or_404(s, User, user_id)
    payload = {k: request.form.get(k) for k in _USER_FIELDS if k != "password"}
    errors = validate_user_payload(s, payload, existing=user)
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("users.user_detail", user_id=user_id))
    try:
        update_user(s, user, payload, u)
    except ServiceError as e:
        s.rollback()
        flash(str(e), "danger")
        return redirect(url_for("users.user_detail", user_id=user_id))
    s.commit()
    flash(f"Account updated for {user.email}.", "success")
    return redirect(url_for("users.user_detail", user_id=user_id))


def _simple_action(user_id: int, action, success_message: str):
    s = db_session()
    u = _current_user()
    user = get_or_404(s, User, user_id)
    try:
        action(s, user, u)
    except ServiceError as e:
        s.rollback()
        flash(str(e), "danger")
        return redirect(url_for("users.user_detail", user_id=user_id))
    s.commit()
    flash(success_message.format(email=user.email), "success")
    return redirect(url_for("users.user_detail", user_id=user_id))


@bp.post("/<int:user_id>/toggle-status")
@require_permission("users.manage")
def user_toggle_status(user_id: int):
    return _simple_action(user_id, toggle_user_status, "Status changed for {email}.")


@bp.post("/<int:user_id>/toggle-2fa")
@require_permission("users.manage")
def user_toggle_2fa(user_id: int):
    return _simple_action(user_id, toggle_user_2fa, "2FA requirement changed for {email}.")


@bp.post("/<int:user_id>/reset-2fa")
@require_permission("users.manage")
def user_reset_2fa(user_id: int):
    return _simple_action(user_id, reset_user_2fa, "Authenticator reset for {email}.")


@bp.post("/<int:user_id>/delete")
@require_permission("users.manage")
def user_delete(user_id: int):
    return _simple_action(user_id, soft_delete_user, "{email} was deactivated.")


@bp.post("/<int:user_id>/password")
@require_permission("users.manage")
def user_set_password(user_id: int):
    s = db_session()
    u = _current_user()
    user = get_or_404(s, User, user_id)
    password = request.form.get("password") or ""
    if password != (request.form.get("password_confirm") or ""):
        flash("Passwords do not match.", "danger")
        return redirect(url_for("users.user_detail", user_id=user_id))
    try:
        set_user_password(s, user, password, u)
    except ServiceError as e:
        flash(str(e), "danger")
        return redirect(url_for("users.user_detail", user_id=user_id))
    s.commit()
    flash(f"Password reset for {user.email}.", "success")
    return redirect(url_for("users.user_detail", user_id=user_id))
