from __future__ import annotations

from flask import Blueprint, flash, g, redirect, render_template, request, url_for

from app.duxa.db import db_session
from app.duxa.models import User
from app.duxa.modules.meeting_tasks.service import (
    MEETING_TASK_STATUSES,
    create_meeting_task,
    delete_meeting_task,
    elapsed_label,
    eligible_responsibles,
    get_meeting_task,
    list_meeting_tasks,
    move_meeting_task,
    toggle_meeting_task_status,
    update_meeting_task,
)
from app.duxa.rbac import require_permission
from app.duxa.utils import ServiceError

bp = Blueprint("meeting_tasks", __name__)

_FORM_FIELDS = ("title", "description", "link", "responsible_person_id")


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _back():
    return redirect(url_for("meeting_tasks.tasks_index"))


def _task_action(task_id: int, action, success_message: str | None):
    s = db_session()
    u = _current_user()
    try:
        task = get_meeting_task(s, task_id)
        action(s, task, u)
    except ServiceError as e:
        s.rollback()
        flash(str(e), "danger")
        return _back()
    s.commit()
    if success_message:
        flash(success_message, "success")
    return _back()


@bp.get("")
@require_permission("meeting_tasks.manage")
def tasks_index():
    s = db_session()
    return render_template(
        "super_admin/meeting_tasks/list.html",
        active_tasks=list_meeting_tasks(s, "active"),
        completed_tasks=list_meeting_tasks(s, "completed"),
        users=eligible_responsibles(s),
        statuses=MEETING_TASK_STATUSES,
        elapsed=elapsed_label,
    )


@bp.post("/new")
@require_permission("meeting_tasks.manage")
def task_new():
    s = db_session()
    payload = {k: request.form.get(k) for k in _FORM_FIELDS}
    try:
        create_meeting_task(s, payload, _current_user())
    except ServiceError as e:
        s.rollback()
        flash(str(e), "danger")
        return _back()
    s.commit()
    flash("Task added.", "success")
    return _back()


@bp.post("/<int:task_id>/edit")
@require_permission("meeting_tasks.manage")
def task_edit(task_id: int):
    payload = {k: request.form.get(k) for k in _FORM_FIELDS if k in request.form}
    return _task_action(task_id, lambda s, t, u: update_meeting_task(s, t, payload, u), "Task saved.")


@bp.post("/<int:task_id>/status")
@require_permission("meeting_tasks.manage")
def task_status(task_id: int):
    status = (request.form.get("status") or "").strip()
    return _task_action(task_id, lambda s, t, u: toggle_meeting_task_status(s, t, status, u), None)


@bp.post("/<int:task_id>/move")
@require_permission("meeting_tasks.manage")
def task_move(task_id: int):
    direction = (request.form.get("direction") or "").strip()
    return _task_action(task_id, lambda s, t, u: move_meeting_task(s, t, direction, u), None)


@bp.post("/<int:task_id>/delete")
@require_permission("meeting_tasks.manage")
def task_delete(task_id: int):
    return _task_action(task_id, delete_meeting_task, "Task deleted.")
