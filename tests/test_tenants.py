import pytest

from app.duxa.db import session_scope
from app.duxa.models import SystemLog, User
from app.duxa.modules.tenants import service as tenant_service
from app.duxa.modules.tenants.models import Tenant, TenantUser
from app.duxa.modules.tenants.service import (
    TenantCreationError,
    check_slug_availability,
    create_tenant,
    generate_slug,
    is_valid_slug,
    validate_tenant_create_payload,
)
from app.duxa.utils import ServiceError

CSRF = {"csrf_token": "test-token"}

NEW_TENANT = {
    "name": "Çiğ Köfte Dünyası",
    "commercial_name": "CK Dünyası",
    "slug": "",
    "plan": "standard",
    "contact_phone": "+90 555 000 00 00",
    "admin_full_name": "Ayşe Yılmaz",
    "admin_email": "ayse@example.com",
    "admin_password": "secret1",
}


def _payload(**overrides):
    payload = dict(NEW_TENANT, slug="cig-kofte")
    payload.update(overrides)
    return payload


def test_slug_helpers(app, make_tenant):
    assert generate_slug("Çiğ Köfte Dünyası") == "cig-kofte-dunyasi"
    assert generate_slug("  Burger & Co.  ") == "burger-co"
    assert is_valid_slug("pide-7")
    assert not is_valid_slug("Pide")
    assert not is_valid_slug("pide salonu")

    make_tenant(slug="pide")
    make_tenant(name="Pide 2", slug="pide-1")
    with session_scope(app) as s:
        assert check_slug_availability(s, "lahmacun") == (True, None)
        assert check_slug_availability(s, "pide") == (False, "pide-2")


def test_validate_create_payload():
    errors = validate_tenant_create_payload({"slug": "Bad Slug", "admin_email": "nope", "admin_password": "123"})
    assert "Restaurant name is required." in errors
    assert "Slug may only contain lowercase letters, numbers and dashes." in errors
    assert "A valid admin email is required." in errors
    assert "Admin password must be at least 6 characters." in errors
    assert validate_tenant_create_payload(_payload()) == []


def test_create_tenant_builds_all_rows(app, make_user):
    actor_id = make_user("admin@example.com")
    with session_scope(app) as s:
        tenant = create_tenant(s, _payload(), s.get(User, actor_id))
        tenant_id = tenant.id

    with session_scope(app) as s:
        tenant = s.get(Tenant, tenant_id)
        assert tenant.slug == "cig-kofte"
        assert tenant.status == "active"
        assert tenant.contact_email == "ayse@example.com"
        admin = s.query(User).filter(User.email == "ayse@example.com").one()
        assert admin.role == "tenant_admin"
        assert admin.tenant_id == tenant_id
        assert admin.must_change_password is True
        membership = s.query(TenantUser).filter(TenantUser.user_id == admin.id).one()
        assert membership.role == "owner"
        assert s.query(SystemLog).filter(SystemLog.event_type == "TENANT_CREATED").count() == 1


def test_create_tenant_rejects_taken_slug_and_email(app, make_user, make_tenant):
    actor_id = make_user("admin@example.com")
    make_tenant(slug="cig-kofte")
    with session_scope(app) as s:
        with pytest.raises(ServiceError, match="Try 'cig-kofte-1'"):
            create_tenant(s, _payload(), s.get(User, actor_id))
        with pytest.raises(ServiceError, match="already exists"):
            create_tenant(s, _payload(slug="other", admin_email="admin@example.com"), s.get(User, actor_id))


def test_create_tenant_rolls_back_completed_steps(app, make_user, monkeypatch):
    actor_id = make_user("admin@example.com")

    def _boom(s, user, tenant):
        raise RuntimeError("membership insert failed")

    monkeypatch.setattr(tenant_service, "_create_owner_membership", _boom)
    s = app.extensions["sqlalchemy_sessionmaker"]()
    try:
        with pytest.raises(TenantCreationError, match="membership insert failed"):
            create_tenant(s, _payload(), s.get(User, actor_id))
        # compensation already removed the rows inside the open transaction
        assert s.query(Tenant).count() == 0
        assert s.query(User).filter(User.email == "ayse@example.com").count() == 0
        s.commit()
    finally:
        s.close()

    with session_scope(app) as s:
        assert s.query(Tenant).count() == 0
        assert s.query(User).count() == 1


def test_create_tenant_through_console(app, client, super_admin):
    assert client.get("/super-admin/tenants/new").status_code == 200
    r = client.post("/super-admin/tenants/new", data={**CSRF, **NEW_TENANT})
    assert r.status_code == 302
    with session_scope(app) as s:
        tenant = s.query(Tenant).one()
        # blank slug is derived from the name
        assert tenant.slug == "cig-kofte-dunyasi"
        assert r.headers["Location"].endswith(f"/super-admin/tenants/{tenant.id}")
    outbox = app.extensions["mail_outbox"]
    assert outbox[0].to == "ayse@example.com"
    assert "Welcome to Duxa" in outbox[0].subject

    r = client.get(r.headers["Location"])
    assert r.status_code == 200
    assert "CK Dünyası".encode() in r.data


def test_console_creation_failure_leaves_nothing(app, client, super_admin, monkeypatch):
    def _boom(s, user, tenant):
        raise RuntimeError("membership insert failed")

    monkeypatch.setattr(tenant_service, "_create_owner_membership", _boom)
    r = client.post("/super-admin/tenants/new", data={**CSRF, **NEW_TENANT}, follow_redirects=True)
    assert b"No partial data was kept." in r.data
    with session_scope(app) as s:
        assert s.query(Tenant).count() == 0
        assert s.query(User).filter(User.email == "ayse@example.com").count() == 0
        assert s.query(SystemLog).filter(SystemLog.event_type == "TENANT_CREATE_FAILED").count() == 1


def test_console_create_validation_errors(client, super_admin):
    r = client.post("/super-admin/tenants/new", data={**CSRF, "name": "", "admin_email": "x"}, follow_redirects=True)
    assert b"Restaurant name is required." in r.data


def test_list_search_and_slug_check(client, super_admin, make_tenant):
    make_tenant(name="Köfte House", slug="kofte-house")
    make_tenant(name="Burger Barn", slug="burger-barn")

    r = client.get("/super-admin/tenants?q=burger")
    assert r.status_code == 200
    assert b"Burger Barn" in r.data
    assert "Köfte House".encode() not in r.data

    r = client.get("/super-admin/tenants/slug-check?slug=Kofte+House")
    assert r.json == {"slug": "kofte-house", "available": False, "suggestion": "kofte-house-1"}


def test_toggle_status_and_settings(app, client, super_admin, make_tenant):
    tenant_id = make_tenant()
    other_id = make_tenant(name="Other", slug="other")

    client.post(f"/super-admin/tenants/{tenant_id}/toggle-status", data=CSRF)
    with session_scope(app) as s:
        assert s.get(Tenant, tenant_id).status == "suspended"
    client.post(f"/super-admin/tenants/{tenant_id}/toggle-status", data=CSRF)
    with session_scope(app) as s:
        assert s.get(Tenant, tenant_id).status == "active"

    r = client.post(f"/super-admin/tenants/{tenant_id}/settings", data={**CSRF, "slug": "other"}, follow_redirects=True)
    assert b"already in use" in r.data

    client.post(f"/super-admin/tenants/{tenant_id}/settings", data={**CSRF, "slug": "kofte-evi", "is_online": "1"})
    with session_scope(app) as s:
        tenant = s.get(Tenant, tenant_id)
        assert tenant.slug == "kofte-evi"
        assert tenant.is_online is True
        assert s.get(Tenant, other_id).slug == "other"


def test_general_info_update_syncs_owner_email(app, client, super_admin, make_tenant, make_user):
    tenant_id = make_tenant(contact_email="owner@example.com")
    owner_id = make_user("owner@example.com", role="tenant_admin", tenant_id=tenant_id, membership_role="owner")

    r = client.post(
        f"/super-admin/tenants/{tenant_id}/general",
        data={**CSRF, "name": "Köfte Evi", "contact_email": "new-owner@example.com", "country_code": "tr"},
        follow_redirects=True,
    )
    assert b"Restaurant information updated." in r.data
    with session_scope(app) as s:
        tenant = s.get(Tenant, tenant_id)
        assert tenant.name == "Köfte Evi"
        assert tenant.country_code == "TR"
        assert s.get(User, owner_id).email == "new-owner@example.com"

    r = client.post(
        f"/super-admin/tenants/{tenant_id}/general",
        data={**CSRF, "name": "Köfte Evi", "contact_email": "admin@example.com"},
        follow_redirects=True,
    )
    assert b"Another user already uses that email." in r.data


def test_reset_tenant_password_mails_owner(app, client, super_admin, make_tenant, make_user):
    tenant_id = make_tenant(contact_email="owner@example.com")
    make_user("owner@example.com", role="tenant_admin", tenant_id=tenant_id, membership_role="owner")

    r = client.post(f"/super-admin/tenants/{tenant_id}/reset-password", data=CSRF, follow_redirects=True)
    assert b"Password reset link sent to owner@example.com." in r.data
    assert app.extensions["mail_outbox"][-1].to == "owner@example.com"

    lonely_id = make_tenant(name="Lonely", slug="lonely")
    r = client.post(f"/super-admin/tenants/{lonely_id}/reset-password", data=CSRF, follow_redirects=True)
    assert b"No account is linked" in r.data
