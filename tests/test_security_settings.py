from app.duxa.db import session_scope
from app.duxa.models import SystemLog
from app.duxa.security import (
    DEFAULT_SECURITY_SETTINGS,
    get_security_settings,
    parse_security_settings_form,
    validate_password,
)

CSRF = {"csrf_token": "test-token"}


def test_validate_password_policy():
    assert validate_password("Sh0rt!") == "Password must be at least 8 characters."
    assert validate_password("lowercase1!") == "Password must contain at least one uppercase letter."
    assert validate_password("NoDigits!!") == "Password must contain at least one number."
    assert validate_password("NoSpecial1") == "Password must contain at least one special character."
    assert validate_password("Passw0rd!") is None

    relaxed = {**DEFAULT_SECURITY_SETTINGS, "min_password_length": 6, "require_special_char": False, "require_uppercase": False}
    assert validate_password("abc123", relaxed) is None


def test_parse_security_form_bounds():
    payload, errors = parse_security_settings_form(
        {"min_password_length": "12", "max_login_attempts": "4", "session_timeout_minutes": "30", "lockout_minutes": "10", "require_number": "on"}
    )
    assert errors == []
    assert payload["min_password_length"] == 12
    assert payload["require_number"] is True
    assert payload["require_uppercase"] is False

    _, errors = parse_security_settings_form({"max_login_attempts": "50", "session_timeout_minutes": "abc"})
    assert "Max login attempts must be between 3 and 10." in errors
    assert "Session timeout minutes must be a whole number." in errors


def test_security_settings_page_saves(app, client, super_admin):
    assert client.get("/super-admin/settings/security").status_code == 200

    r = client.post(
        "/super-admin/settings/security",
        data={
            **CSRF,
            "min_password_length": "10",
            "max_login_attempts": "4",
            "session_timeout_minutes": "30",
            "lockout_minutes": "20",
            "require_uppercase": "on",
            "two_factor_enforced": "",
        },
        follow_redirects=True,
    )
    assert b"Security settings saved." in r.data

    with session_scope(app) as s:
        settings = get_security_settings(s)
        assert settings["min_password_length"] == 10
        assert settings["max_login_attempts"] == 4
        assert settings["require_special_char"] is False
        change = s.query(SystemLog).filter(SystemLog.message == "Security settings updated").one()
        assert change.metadata_json["changes"]["min_password_length"] == {"old": 8, "new": 10}


def test_security_settings_reject_out_of_range(app, client, super_admin):
    r = client.post(
        "/super-admin/settings/security",
        data={**CSRF, "min_password_length": "2"},
        follow_redirects=True,
    )
    assert b"Min password length must be between 6 and 64." in r.data
    with session_scope(app) as s:
        assert get_security_settings(s)["min_password_length"] == 8


def test_tenant_users_cannot_open_security_settings(client, tenant_admin):
    r = client.get("/super-admin/settings/security")
    assert r.status_code == 302


def test_system_logs_list_filter_and_export(app, client, super_admin):
    r = client.get("/super-admin/settings/system-logs")
    assert r.status_code == 200
    assert b"LOGIN_SUCCESS" in r.data

    r = client.get("/super-admin/settings/system-logs?severity=success&event_type=LOGIN_SUCCESS")
    assert r.status_code == 200

    r = client.get("/super-admin/settings/system-logs?date_from=yesterday", follow_redirects=True)
    assert b"date_from must be YYYY-MM-DD" in r.data

    r = client.get("/super-admin/settings/system-logs/export")
    assert r.status_code == 200
    assert r.mimetype == "text/csv"
    lines = r.data.decode("utf-8").splitlines()
    assert lines[0].startswith("Created At,Severity,Event Type")
    assert any("LOGIN_SUCCESS" in line for line in lines[1:])
    with session_scope(app) as s:
        assert s.query(SystemLog).filter(SystemLog.event_type == "DATA_EXPORT").count() == 1


def test_console_dashboard_counts(client, super_admin, make_tenant):
    make_tenant(name="Pide Salonu", slug="pide-salonu")
    r = client.get("/super-admin/dashboard")
    assert r.status_code == 200
    assert b"LOGIN_SUCCESS" in r.data
