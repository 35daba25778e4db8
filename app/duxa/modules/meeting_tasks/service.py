"""
Meeting decisions board for the platform team.

Tasks are listed newest first by `order_index`. A completed task stays on the
active board for a short grace window so an accidental tick can be undone,
then drops to the completed archive. Which list a task belongs to is decided
at query time; nothing moves it in the background.
"""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from sqlalchemy import and_, func, or_

from app.duxa.audit import record_event
from app.duxa.constants import ROLE_SUPER_ADMIN, ROLE_TENANT_ADMIN
from app.duxa.utils import ServiceError, clean, parse_int

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.duxa.models import User
    from app.duxa.modules.meeting_tasks.models import MeetingTask

STATUS_ACTIVE = "active"
STATUS_IMPORTANT = "important"
STATUS_POSTPONED = "postponed"
STATUS_COMPLETED = "completed"
MEETING_TASK_STATUSES = (STATUS_ACTIVE, STATUS_IMPORTANT, STATUS_POSTPONED, STATUS_COMPLETED)
OPEN_STATUSES = (STATUS_ACTIVE, STATUS_IMPORTANT, STATUS_POSTPONED)

COMPLETED_GRACE = timedelta(minutes=2)
RESPONSIBLE_ROLES = (ROLE_SUPER_ADMIN, ROLE_TENANT_ADMIN)
LIST_TYPES = ("active", "completed")

_EDITABLE_FIELDS = ("title", "description", "link", "responsible_person_id")


def list_meeting_tasks(s: "Session", list_type: str = "active", now: datetime | None = None) -> list["MeetingTask"]:
    from app.duxa.modules.meeting_tasks.models import MeetingTask

    if list_type not in LIST_TYPES:
        raise ServiceError(f"Unknown task list: {list_type}")
    cutoff = (now or datetime.utcnow()) - COMPLETED_GRACE
    q = s.query(MeetingTask)
    if list_type == "active":
        q = q.filter(
            or_(
                MeetingTask.status.in_(OPEN_STATUSES),
                and_(MeetingTask.status == STATUS_COMPLETED, MeetingTask.completed_at > cutoff),
            )
        )
    else:
        q = q.filter(MeetingTask.status == STATUS_COMPLETED, MeetingTask.completed_at <= cutoff)
    return q.order_by(MeetingTask.order_index.desc(), MeetingTask.id.desc()).all()


def eligible_responsibles(s: "Session") -> list["User"]:
    from app.duxa.models import User

    return (
        s.query(User)
        .filter(func.lower(func.trim(User.role)).in_(RESPONSIBLE_ROLES), User.is_active.is_(True))
        .order_by(User.full_name.asc(), User.email.asc())
        .all()
    )


def get_meeting_task(s: "Session", task_id: int) -> "MeetingTask":
    from app.duxa.modules.meeting_tasks.models import MeetingTask

    task = s.get(MeetingTask, task_id)
    if task is None:
        raise ServiceError("Task not found.")
    return task


def _has_content(title: str | None, description: str | None) -> bool:
    return bool((title or "").strip() or (description or "").strip())


def _clean_link(raw: str | None) -> str | None:
    link = clean(raw)
    if link is None:
        return None
    if not link.lower().startswith(("http://", "https://")):
        raise ServiceError("Link must start with http:// or https://.")
    if len(link) > 1024:
        raise ServiceError("Link is too long.")
    return link


def _responsible_id(s: "Session", raw) -> int | None:
    from app.duxa.models import User

    try:
        user_id = parse_int(raw)
    except ValueError as e:
        raise ServiceError("Choose a valid responsible person.") from e
    if user_id is None:
        return None
    user = s.get(User, user_id)
    if user is None or not user.is_active or user.normalized_role not in RESPONSIBLE_ROLES:
        raise ServiceError("Choose a valid responsible person.")
    return user.id


def _validated_fields(s: "Session", payload: dict) -> dict:
    data: dict = {}
    if "title" in payload:
        title = (payload.get("title") or "").strip()
        if len(title) > 255:
            raise ServiceError("Title must be at most 255 characters.")
        data["title"] = title
    if "description" in payload:
        data["description"] = clean(payload.get("description"))
    if "link" in payload:
        data["link"] = _clean_link(payload.get("link"))
    if "responsible_person_id" in payload:
        data["responsible_person_id"] = _responsible_id(s, payload.get("responsible_person_id"))
    return data


def create_meeting_task(s: "Session", payload: dict, actor: "User") -> "MeetingTask":
    """New tasks go on top of the board. A blank task is allowed and filled in later."""
    from app.duxa.modules.meeting_tasks.models import MeetingTask

    data = _validated_fields(s, {k: payload.get(k) for k in _EDITABLE_FIELDS})
    top = s.query(func.max(MeetingTask.order_index)).scalar()
    now = datetime.utcnow()
    task = MeetingTask(
        title=data["title"],
        description=data["description"],
        link=data["link"],
        responsible_person_id=data["responsible_person_id"],
        status=STATUS_ACTIVE,
        order_index=(top if top is not None else -1) + 1,
        created_by_user_id=actor.id,
        started_at=now if _has_content(data["title"], data["description"]) else None,
        created_at=now,
        updated_at=now,
    )
    s.add(task)
    s.flush()
    record_event(
        s,
        actor=actor,
        event_type="DATA_MUTATION",
        message=f"Meeting task created: {task.title or '(untitled)'}",
        metadata={"meeting_task_id": task.id},
    )
    return task


def _apply_status(task: "MeetingTask", status: str, now: datetime) -> None:
    task.status = status
    task.completed_at = now if status == STATUS_COMPLETED else None


def update_meeting_task(s: "Session", task: "MeetingTask", payload: dict, actor: "User") -> "MeetingTask":
    """
    Apply the fields present in `payload`. The clock starts the first time the
    task gets a title or description; changing the status away from completed
    clears `completed_at`.
    """
    data = _validated_fields(s, payload)
    status = payload.get("status")
    if status and status not in MEETING_TASK_STATUSES:
        raise ServiceError(f"Status must be one of: {', '.join(MEETING_TASK_STATUSES)}")
    now = datetime.utcnow()
    for field, value in data.items():
        setattr(task, field, value)
    if task.started_at is None and _has_content(task.title, task.description):
        task.started_at = now
    if status:
        _apply_status(task, status, now)
    task.updated_at = now
    changed = sorted(data) + (["status"] if status else [])
    record_event(
        s,
        actor=actor,
        event_type="DATA_MUTATION",
        message=f"Meeting task updated: {task.title or '(untitled)'}",
        metadata={"meeting_task_id": task.id, "fields": changed},
    )
    return task


def toggle_meeting_task_status(s: "Session", task: "MeetingTask", status: str, actor: "User") -> "MeetingTask":
    """Pressing the button for the current status sends the task back to active."""
    target = STATUS_ACTIVE if task.status == status else status
    return update_meeting_task(s, task, {"status": target}, actor)


def move_meeting_task(s: "Session", task: "MeetingTask", direction: str, actor: "User") -> bool:
    """Swap places with the neighbouring task. Returns False at either end of the board."""
    from app.duxa.modules.meeting_tasks.models import MeetingTask

    if direction not in ("up", "down"):
        raise ServiceError("Direction must be up or down.")
    q = s.query(MeetingTask)
    if direction == "up":
        neighbour = (
            q.filter(MeetingTask.order_index > task.order_index).order_by(MeetingTask.order_index.asc()).first()
        )
    else:
        neighbour = (
            q.filter(MeetingTask.order_index < task.order_index).order_by(MeetingTask.order_index.desc()).first()
        )
    if neighbour is None:
        return False
    task.order_index, neighbour.order_index = neighbour.order_index, task.order_index
    record_event(
        s,
        actor=actor,
        event_type="DATA_MUTATION",
        message=f"Meeting task moved {direction}",
        metadata={"meeting_task_id": task.id, "swapped_with": neighbour.id},
    )
    return True


def delete_meeting_task(s: "Session", task: "MeetingTask", actor: "User") -> None:
    record_event(
        s,
        actor=actor,
        event_type="DATA_MUTATION",
        severity="WARNING",
        message=f"Meeting task deleted: {task.title or '(untitled)'}",
        metadata={"meeting_task_id": task.id},
    )
    s.delete(task)


def elapsed_label(task: "MeetingTask", now: datetime | None = None) -> str:
    """Time from the first content to completion (or to now while still open)."""
    if task.started_at is None:
        return "-"
    end = task.completed_at or now or datetime.utcnow()
    minutes = max(int((end - task.started_at).total_seconds() // 60), 0)
    days, rest = divmod(minutes, 24 * 60)
    hours, minutes = divmod(rest, 60)
    if days:
        return f"{days}d {hours}h"
    if hours:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"
