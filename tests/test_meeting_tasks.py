from datetime import datetime, timedelta

import pytest

from app.duxa.db import session_scope
from app.duxa.models import User
from app.duxa.modules.meeting_tasks.models import MeetingTask
from app.duxa.modules.meeting_tasks.service import (
    create_meeting_task,
    elapsed_label,
    eligible_responsibles,
    list_meeting_tasks,
    move_meeting_task,
    toggle_meeting_task_status,
    update_meeting_task,
)
from app.duxa.utils import ServiceError

CSRF = {"csrf_token": "test-token"}
BASE = "/super-admin/settings/meeting-tasks"


def _task(app, task_id) -> MeetingTask | None:
    with session_scope(app) as s:
        return s.get(MeetingTask, task_id)


def _create(app, actor_id, **payload) -> int:
    with session_scope(app) as s:
        return create_meeting_task(s, payload, s.get(User, actor_id)).id


def test_new_tasks_go_on_top_and_start_with_content(app, make_user):
    admin_id = make_user("admin@example.com")
    blank = _create(app, admin_id)
    decided = _create(app, admin_id, title="  Switch POS vendor  ")

    blank_task, decided_task = _task(app, blank), _task(app, decided)
    assert blank_task.order_index == 0
    assert decided_task.order_index == 1
    assert blank_task.started_at is None
    assert decided_task.title == "Switch POS vendor"
    assert decided_task.started_at is not None
    assert decided_task.status == "active"
    with session_scope(app) as s:
        assert [t.id for t in list_meeting_tasks(s, "active")] == [decided, blank]

    # the clock starts when a blank task first gets a description
    with session_scope(app) as s:
        update_meeting_task(s, s.get(MeetingTask, blank), {"description": "call the supplier"}, s.get(User, admin_id))
    assert _task(app, blank).started_at is not None


def test_completed_tasks_linger_on_the_active_board(app, make_user):
    admin_id = make_user("admin@example.com")
    task_id = _create(app, admin_id, title="Print new menus")
    with session_scope(app) as s:
        toggle_meeting_task_status(s, s.get(MeetingTask, task_id), "completed", s.get(User, admin_id))

    task = _task(app, task_id)
    assert task.status == "completed"
    assert task.completed_at is not None
    with session_scope(app) as s:
        assert [t.id for t in list_meeting_tasks(s, "active")] == [task_id]
        assert list_meeting_tasks(s, "completed") == []

        later = task.completed_at + timedelta(minutes=2, seconds=1)
        assert list_meeting_tasks(s, "active", now=later) == []
        assert [t.id for t in list_meeting_tasks(s, "completed", now=later)] == [task_id]

    # ticking completed again reopens the task
    with session_scope(app) as s:
        toggle_meeting_task_status(s, s.get(MeetingTask, task_id), "completed", s.get(User, admin_id))
    task = _task(app, task_id)
    assert task.status == "active"
    assert task.completed_at is None


def test_status_toggles_and_validation(app, make_user):
    admin_id = make_user("admin@example.com")
    task_id = _create(app, admin_id, title="Hire a courier")
    with session_scope(app) as s:
        actor = s.get(User, admin_id)
        task = s.get(MeetingTask, task_id)
        toggle_meeting_task_status(s, task, "important", actor)
        assert task.status == "important"
        toggle_meeting_task_status(s, task, "postponed", actor)
        assert task.status == "postponed"
        toggle_meeting_task_status(s, task, "postponed", actor)
        assert task.status == "active"
        with pytest.raises(ServiceError, match="Status must be one of"):
            update_meeting_task(s, task, {"status": "archived"}, actor)
        with pytest.raises(ServiceError, match="Link must start with http"):
            update_meeting_task(s, task, {"link": "javascript:alert(1)"}, actor)
        with pytest.raises(ServiceError, match="Unknown task list"):
            list_meeting_tasks(s, "everything")


def test_responsible_person_must_be_an_active_admin(app, make_user, make_tenant):
    admin_id = make_user("admin@example.com", full_name="Ayşe Admin")
    tenant_id = make_tenant()
    owner_id = make_user("owner@example.com", role="tenant_admin", tenant_id=tenant_id, membership_role="owner")
    waiter_id = make_user("waiter@example.com", role="staff", tenant_id=tenant_id, membership_role="staff")
    make_user("gone@example.com", role="super_admin", is_active=False)
    task_id = _create(app, admin_id, title="Kitchen audit", responsible_person_id=str(owner_id))

    with session_scope(app) as s:
        assert {u.id for u in eligible_responsibles(s)} == {admin_id, owner_id}
        task = s.get(MeetingTask, task_id)
        assert task.responsible_person.email == "owner@example.com"
        with pytest.raises(ServiceError, match="Choose a valid responsible person."):
            update_meeting_task(s, task, {"responsible_person_id": str(waiter_id)}, s.get(User, admin_id))
        update_meeting_task(s, task, {"responsible_person_id": ""}, s.get(User, admin_id))
    assert _task(app, task_id).responsible_person_id is None


def test_move_swaps_with_neighbour(app, make_user):
    admin_id = make_user("admin@example.com")
    first = _create(app, admin_id, title="First")
    second = _create(app, admin_id, title="Second")
    with session_scope(app) as s:
        actor = s.get(User, admin_id)
        assert move_meeting_task(s, s.get(MeetingTask, second), "up", actor) is False
        assert move_meeting_task(s, s.get(MeetingTask, first), "up", actor) is True
    with session_scope(app) as s:
        assert [t.title for t in list_meeting_tasks(s, "active")] == ["First", "Second"]


def test_elapsed_label():
    started = datetime(2026, 10, 1, 9, 0)
    task = MeetingTask(title="x", started_at=started, completed_at=started + timedelta(days=1, hours=3))
    assert elapsed_label(task) == "1d 3h"
    assert elapsed_label(MeetingTask(title="x", started_at=started), now=started + timedelta(minutes=95)) == "1h 35m"
    assert elapsed_label(MeetingTask(title="x")) == "-"


def test_board_pages(app, client, super_admin):
    r = client.get(BASE)
    assert r.status_code == 200
    assert b"Nothing on the agenda." in r.data

    r = client.post(f"{BASE}/new", data={**CSRF, "title": "Renew SSL"}, follow_redirects=True)
    assert b"Task added." in r.data
    assert b"Renew SSL" in r.data
    with session_scope(app) as s:
        task_id = s.query(MeetingTask).one().id

    r = client.post(
        f"{BASE}/{task_id}/edit",
        data={**CSRF, "title": "Renew SSL", "link": "ftp://example.com"},
        follow_redirects=True,
    )
    assert b"Link must start with http:// or https://." in r.data
    client.post(f"{BASE}/{task_id}/edit", data={**CSRF, "title": "Renew SSL", "link": "https://example.com/ticket/7"})
    assert _task(app, task_id).link == "https://example.com/ticket/7"

    client.post(f"{BASE}/{task_id}/status", data={**CSRF, "status": "important"})
    assert _task(app, task_id).status == "important"

    r = client.post(f"{BASE}/999/delete", data=CSRF, follow_redirects=True)
    assert b"Task not found." in r.data
    r = client.post(f"{BASE}/{task_id}/delete", data=CSRF, follow_redirects=True)
    assert b"Task deleted." in r.data
    assert _task(app, task_id) is None


def test_board_is_console_only(client, tenant_admin):
    r = client.get(BASE)
    assert r.status_code == 302
    assert r.headers["Location"].endswith("/login?error=unauthorized")
