from app.duxa.db import session_scope
from app.duxa.models import User
from app.duxa.modules.staff.service import update_staff_role
from app.duxa.modules.tenants.models import TenantUser

CSRF = {"csrf_token": "test-token"}


def _membership(app, tenant_id, user_id) -> TenantUser | None:
    with session_scope(app) as s:
        return (
            s.query(TenantUser)
            .filter(TenantUser.tenant_id == tenant_id, TenantUser.user_id == user_id)
            .one_or_none()
        )


def test_staff_page_lists_owner(client, tenant_admin):
    r = client.get("/dashboard/settings/staff")
    assert r.status_code == 200
    assert b"owner@example.com" in r.data


def test_invite_existing_account(app, client, tenant_admin, make_user):
    tenant_id, _ = tenant_admin
    waiter_id = make_user("waiter@example.com", role="user", full_name="W")

    r = client.post(
        "/dashboard/settings/staff/invite",
        data={**CSRF, "email": "Waiter@Example.com", "role": "staff", "full_name": "Can Demir"},
        follow_redirects=True,
    )
    assert b"waiter@example.com now has access as staff." in r.data
    with session_scope(app) as s:
        waiter = s.get(User, waiter_id)
        assert waiter.role == "staff"
        assert waiter.tenant_id == tenant_id
        assert waiter.full_name == "Can Demir"
    assert _membership(app, tenant_id, waiter_id).role == "staff"


def test_invite_rejections(app, client, tenant_admin, make_user, make_tenant):
    other_id = make_tenant(name="Other", slug="other")
    make_user("taken@example.com", role="staff", tenant_id=other_id, membership_role="staff")
    make_user("free@example.com", role="user")

    cases = [
        ({"email": "nobody@example.com", "role": "staff", "full_name": "N"}, b"No account is registered with this email address."),
        ({"email": "taken@example.com", "role": "staff", "full_name": "T"}, b"This account already belongs to another restaurant."),
        ({"email": "free@example.com", "role": "owner", "full_name": "F"}, b"You are not allowed to grant this role."),
        ({"email": "not-an-email", "role": "staff", "full_name": "F"}, b"Enter a valid email address."),
    ]
    for data, message in cases:
        r = client.post("/dashboard/settings/staff/invite", data={**CSRF, **data}, follow_redirects=True)
        assert message in r.data


def test_role_change_and_self_protection(app, client, tenant_admin, make_user):
    tenant_id, owner_id = tenant_admin
    cook_id = make_user("cook@example.com", role="staff", tenant_id=tenant_id, membership_role="staff")
    cook = _membership(app, tenant_id, cook_id)
    owner = _membership(app, tenant_id, owner_id)

    r = client.post(f"/dashboard/settings/staff/{cook.id}/role", data={**CSRF, "role": "kitchen"}, follow_redirects=True)
    assert b"Role updated." in r.data
    assert _membership(app, tenant_id, cook_id).role == "kitchen"

    r = client.post(f"/dashboard/settings/staff/{owner.id}/role", data={**CSRF, "role": "staff"}, follow_redirects=True)
    assert b"You cannot change your own role." in r.data
    r = client.post(f"/dashboard/settings/staff/{owner.id}/remove", data=CSRF, follow_redirects=True)
    assert b"You cannot remove your own access." in r.data
    r = client.post(f"/dashboard/settings/staff/{owner.id}/delete", data=CSRF, follow_redirects=True)
    assert b"You cannot delete yourself." in r.data


def test_remove_access_detaches_staff_profile(app, client, tenant_admin, make_user):
    tenant_id, _ = tenant_admin
    cook_id = make_user("cook@example.com", role="staff", tenant_id=tenant_id, membership_role="staff")
    cook = _membership(app, tenant_id, cook_id)

    r = client.post(f"/dashboard/settings/staff/{cook.id}/remove", data=CSRF, follow_redirects=True)
    assert b"Access removed." in r.data
    assert _membership(app, tenant_id, cook_id).is_active is False
    with session_scope(app) as s:
        user = s.get(User, cook_id)
        assert user.tenant_id is None
        assert user.role == "user"

    # re-inviting reactivates the same membership
    client.post(
        "/dashboard/settings/staff/invite",
        data={**CSRF, "email": "cook@example.com", "role": "courier", "full_name": "Cook"},
    )
    membership = _membership(app, tenant_id, cook_id)
    assert membership.id == cook.id
    assert membership.is_active is True
    assert membership.role == "courier"


def test_delete_staff_member(app, client, tenant_admin, make_user):
    tenant_id, _ = tenant_admin
    cook_id = make_user("cook@example.com", role="staff", tenant_id=tenant_id, membership_role="staff")
    cook = _membership(app, tenant_id, cook_id)
    r = client.post(f"/dashboard/settings/staff/{cook.id}/delete", data=CSRF, follow_redirects=True)
    assert b"Staff member deleted." in r.data
    assert _membership(app, tenant_id, cook_id) is None
    with session_scope(app) as s:
        assert s.get(User, cook_id).tenant_id is None


def test_foreign_membership_not_found(app, client, tenant_admin, make_user, make_tenant):
    other_id = make_tenant(name="Other", slug="other")
    stranger_id = make_user("stranger@example.com", role="staff", tenant_id=other_id, membership_role="staff")
    stranger = _membership(app, other_id, stranger_id)
    r = client.post(f"/dashboard/settings/staff/{stranger.id}/remove", data=CSRF, follow_redirects=True)
    assert b"Staff member not found." in r.data
    assert _membership(app, other_id, stranger_id).is_active is True


def test_staff_role_cannot_manage_staff(client, make_tenant, make_user, login):
    tenant_id = make_tenant()
    make_user("cook@example.com", role="staff", tenant_id=tenant_id, membership_role="staff")
    login("cook@example.com")
    assert client.get("/dashboard/settings/staff").status_code == 403


def test_owner_membership_is_protected_from_tenant_admins(app, client, make_tenant, make_user, login):
    tenant_id = make_tenant()
    owner_id = make_user("owner@example.com", role="tenant_admin", tenant_id=tenant_id, membership_role="owner")
    make_user("co-admin@example.com", role="tenant_admin", tenant_id=tenant_id, membership_role="manager")
    login("co-admin@example.com")
    owner = _membership(app, tenant_id, owner_id)

    for action, data in (("role", {"role": "staff"}), ("remove", {}), ("delete", {})):
        r = client.post(f"/dashboard/settings/staff/{owner.id}/{action}", data={**CSRF, **data}, follow_redirects=True)
        assert b"Only a platform administrator can change the owner" in r.data
    owner = _membership(app, tenant_id, owner_id)
    assert owner.role == "owner"
    assert owner.is_active is True


def test_super_admin_may_change_owner_membership(app, make_tenant, make_user):
    tenant_id = make_tenant()
    owner_id = make_user("owner@example.com", role="tenant_admin", tenant_id=tenant_id, membership_role="owner")
    admin_id = make_user("admin@example.com", role="super_admin")
    with session_scope(app) as s:
        membership = s.query(TenantUser).filter(TenantUser.user_id == owner_id).one()
        update_staff_role(s, membership, "manager", s.get(User, admin_id))
    assert _membership(app, tenant_id, owner_id).role == "manager"
