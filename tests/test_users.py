from datetime import datetime

from werkzeug.security import check_password_hash

from app.duxa.db import session_scope
from app.duxa.models import User
from app.duxa.modules.users.service import validate_user_payload

CSRF = {"csrf_token": "test-token"}


def _get(app, user_id) -> User:
    with session_scope(app) as s:
        return s.get(User, user_id)


def test_validate_user_payload(app, make_user, make_tenant):
    make_user("taken@example.com")
    tenant_id = make_tenant()
    with session_scope(app) as s:
        errors = validate_user_payload(s, {"full_name": "A", "email": "taken@example.com", "role": "staff", "password": "123"})
        assert "Full name must be at least 2 characters." in errors
        assert "An account with this email already exists." in errors
        assert "Restaurant users must be linked to a restaurant." in errors
        assert "Password must be at least 6 characters." in errors

        errors = validate_user_payload(s, {"full_name": "Ali Veli", "email": "x@example.com", "role": "owner", "password": "secret1"})
        assert errors == ["Role must be one of: super_admin, tenant_admin, staff"]

        ok = {"full_name": "Ali Veli", "email": "ali@example.com", "role": "staff", "tenant_id": str(tenant_id), "password": "secret1"}
        assert validate_user_payload(s, ok) == []


def test_create_user_from_console(app, client, super_admin, make_tenant):
    tenant_id = make_tenant()
    r = client.post(
        "/super-admin/settings/users/new",
        data={
            **CSRF,
            "full_name": "Mehmet Kaya",
            "email": "Mehmet@Example.com",
            "role": "tenant_admin",
            "tenant_id": str(tenant_id),
            "password": "secret1",
        },
    )
    assert r.status_code == 302
    with session_scope(app) as s:
        user = s.query(User).filter(User.email == "mehmet@example.com").one()
        assert user.tenant_id == tenant_id
        assert user.must_change_password is True
    assert client.get(r.headers["Location"]).status_code == 200

    r = client.get("/super-admin/settings/users?q=mehmet")
    assert b"mehmet@example.com" in r.data


def test_update_user_and_own_role_is_locked(app, client, super_admin, make_user, make_tenant):
    other_id = make_user("other@example.com", full_name="Other Admin")
    r = client.post(
        f"/super-admin/settings/users/{other_id}/update",
        data={**CSRF, "full_name": "Renamed Admin", "email": "other@example.com", "role": "super_admin"},
        follow_redirects=True,
    )
    assert b"Account updated for other@example.com." in r.data
    assert _get(app, other_id).full_name == "Renamed Admin"

    r = client.post(
        f"/super-admin/settings/users/{super_admin}/update",
        data={**CSRF, "full_name": "Me Myself", "email": "admin@example.com", "role": "staff", "tenant_id": str(make_tenant())},
        follow_redirects=True,
    )
    assert b"You cannot change your own role." in r.data
    assert _get(app, super_admin).role == "super_admin"


def test_status_and_2fa_actions(app, client, super_admin, make_user):
    other_id = make_user("other@example.com", totp_secret="JBSWY3DPEHPK3PXP", totp_confirmed_at=datetime.utcnow())

    r = client.post(f"/super-admin/settings/users/{other_id}/toggle-status", data=CSRF, follow_redirects=True)
    assert b"Status changed for other@example.com." in r.data
    assert _get(app, other_id).is_active is False

    client.post(f"/super-admin/settings/users/{other_id}/toggle-2fa", data=CSRF)
    assert _get(app, other_id).is_2fa_required is True

    client.post(f"/super-admin/settings/users/{other_id}/reset-2fa", data=CSRF)
    other = _get(app, other_id)
    assert other.totp_secret is None
    assert other.totp_confirmed_at is None


def test_cannot_deactivate_or_delete_yourself(app, client, super_admin):
    r = client.post(f"/super-admin/settings/users/{super_admin}/toggle-status", data=CSRF, follow_redirects=True)
    assert b"You cannot deactivate your own account." in r.data
    r = client.post(f"/super-admin/settings/users/{super_admin}/delete", data=CSRF, follow_redirects=True)
    assert b"You cannot delete your own account." in r.data
    assert _get(app, super_admin).is_active is True


def test_delete_deactivates(app, client, super_admin, make_user):
    other_id = make_user("other@example.com")
    r = client.post(f"/super-admin/settings/users/{other_id}/delete", data=CSRF, follow_redirects=True)
    assert b"other@example.com was deactivated." in r.data
    assert _get(app, other_id).is_active is False


def test_set_password_forces_change_for_others(app, client, super_admin, make_user):
    other_id = make_user("other@example.com", failed_login_attempts=4)

    r = client.post(
        f"/super-admin/settings/users/{other_id}/password",
        data={**CSRF, "password": "secret1", "password_confirm": "secret2"},
        follow_redirects=True,
    )
    assert b"Passwords do not match." in r.data

    r = client.post(
        f"/super-admin/settings/users/{other_id}/password",
        data={**CSRF, "password": "secret1", "password_confirm": "secret1"},
        follow_redirects=True,
    )
    assert b"Password reset for other@example.com." in r.data
    other = _get(app, other_id)
    assert check_password_hash(other.password_hash, "secret1")
    assert other.must_change_password is True
    assert other.failed_login_attempts == 0

    client.post(f"/super-admin/settings/users/{super_admin}/password", data={**CSRF, "password": "secret9", "password_confirm": "secret9"})
    assert _get(app, super_admin).must_change_password is False
