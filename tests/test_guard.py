"""Route guard decisions, exercised without a running app."""
from app.duxa.guard import (
    RouteState,
    home_for_role,
    is_public_path,
    is_safe_redirect,
    resolve_route_access,
    two_factor_setup_path,
)

ANON = RouteState(authenticated=False)


def _state(role="super_admin", **kw):
    return RouteState(authenticated=True, role=role, **kw)


def test_public_paths_pass_through():
    for path in ("/", "/health", "/api/i18n/en", "/api/logs", "/legal/terms", "/about", "/static/app.css"):
        assert is_public_path(path)
        assert resolve_route_access(path, {}, ANON).allowed
    assert not is_public_path("/dashboard")
    assert not is_public_path("/aboutus")


def test_anonymous_redirected_to_login_with_return_path():
    d = resolve_route_access("/super-admin/tenants", {"q": "pizza"}, ANON)
    assert d.redirect_to == "/login?redirect=%2Fsuper-admin%2Ftenants%3Fq%3Dpizza"
    assert not d.clear_session
    assert resolve_route_access("/login", {}, ANON).allowed
    assert resolve_route_access("/login/forgot-password", {}, ANON).allowed


def test_inactive_profile_is_signed_out():
    d = resolve_route_access("/dashboard", {}, _state("tenant_admin", is_active=False))
    assert d.redirect_to == "/login?error=account_inactive"
    assert d.clear_session
    on_login = resolve_route_access("/login", {}, _state("tenant_admin", is_active=False))
    assert on_login.allowed and on_login.clear_session


def test_role_areas_are_enforced():
    assert resolve_route_access("/super-admin/dashboard", {}, _state("super_admin")).allowed
    assert resolve_route_access("/super-admin/dashboard", {}, _state("tenant_admin")).redirect_to == "/login?error=unauthorized"
    assert resolve_route_access("/dashboard/menu", {}, _state("staff")).allowed
    assert resolve_route_access("/dashboard", {}, _state("user")).redirect_to == "/login?error=unauthorized"
    assert resolve_route_access("/dashboard", {}, _state(" Tenant_Admin ")).allowed


def test_authenticated_user_leaves_login_page():
    assert resolve_route_access("/login", {}, _state("super_admin")).redirect_to == "/super-admin/dashboard"
    assert resolve_route_access("/login", {}, _state("staff")).redirect_to == "/dashboard"
    d = resolve_route_access("/login", {"redirect": "/super-admin/catalog"}, _state("super_admin"))
    assert d.redirect_to == "/super-admin/catalog"
    # a redirect into an area the role cannot enter falls back to the role home
    d = resolve_route_access("/login", {"redirect": "/super-admin/catalog"}, _state("staff"))
    assert d.redirect_to == "/dashboard"


def test_must_change_password_pins_user_to_change_page():
    state = _state("tenant_admin", must_change_password=True)
    assert resolve_route_access("/dashboard/menu", {}, state).redirect_to == "/dashboard/change-password"
    assert resolve_route_access("/dashboard/change-password", {}, state).allowed
    assert resolve_route_access("/logout", {}, state).allowed
    # nothing to change: send the user home
    assert resolve_route_access("/dashboard/change-password", {}, _state("tenant_admin")).redirect_to == "/dashboard"


def test_must_change_password_keeps_login_pages_open():
    state = _state("tenant_admin", must_change_password=True)
    for path in ("/login", "/login/forgot-password", "/login/update-password"):
        assert resolve_route_access(path, {}, state).allowed


def test_second_factor_comes_before_forced_password_change():
    state = _state("tenant_admin", must_change_password=True, two_factor_enrolled=True, two_factor_verified=False)
    assert resolve_route_access("/dashboard/change-password", {}, state).redirect_to == "/login/two-factor"
    assert resolve_route_access("/login", {}, state).redirect_to == "/login/two-factor"
    assert resolve_route_access("/login/two-factor", {}, state).allowed
    assert resolve_route_access("/logout", {}, state).allowed

    verified = _state("tenant_admin", must_change_password=True, two_factor_enrolled=True, two_factor_verified=True)
    assert resolve_route_access("/login/two-factor", {}, verified).redirect_to == "/dashboard"
    assert resolve_route_access("/dashboard", {}, verified).redirect_to == "/dashboard/change-password"


def test_two_factor_enrolment_and_verification():
    needs_setup = _state("super_admin", two_factor_required=True)
    assert resolve_route_access("/super-admin/tenants", {}, needs_setup).redirect_to == "/super-admin/two-factor-setup"
    assert resolve_route_access("/super-admin/two-factor-setup", {}, needs_setup).allowed

    unverified = _state("staff", two_factor_enrolled=True, two_factor_verified=False)
    assert resolve_route_access("/dashboard", {}, unverified).redirect_to == "/login/two-factor"
    assert resolve_route_access("/login/two-factor", {}, unverified).allowed

    verified = _state("staff", two_factor_enrolled=True, two_factor_verified=True)
    assert resolve_route_access("/dashboard", {}, verified).allowed
    assert resolve_route_access("/login/two-factor", {}, verified).redirect_to == "/dashboard"


def test_helpers():
    assert home_for_role("super_admin") == "/super-admin/dashboard"
    assert home_for_role("staff") == "/dashboard"
    assert home_for_role("user") == "/"
    assert two_factor_setup_path("tenant_admin") == "/dashboard/two-factor-setup"
    assert is_safe_redirect("/dashboard/orders?status=pending", "staff")
    assert not is_safe_redirect("//evil.example.com", "staff")
    assert not is_safe_redirect("https://evil.example.com", "staff")
    assert not is_safe_redirect("/login?redirect=/dashboard", "staff")
    assert is_safe_redirect("/settings/appearance", "user")
    assert is_safe_redirect("/menu-builder", "staff")
    assert is_safe_redirect("/super-admin/catalog", "super_admin")
    assert not is_safe_redirect("/logout", "staff")
    assert not is_safe_redirect("/api/logs", "staff")
    assert not is_safe_redirect("/", "tenant_admin")
    assert not is_safe_redirect("/media/tenants/1/x.png", "super_admin")
    assert not is_safe_redirect("/settingsx", "staff")


def test_login_redirect_outside_allowed_areas_goes_home():
    d = resolve_route_access("/login", {"redirect": "/logout"}, _state("staff"))
    assert d.redirect_to == "/dashboard"
    d = resolve_route_access("/login", {"redirect": "/api/logs"}, _state("super_admin"))
    assert d.redirect_to == "/super-admin/dashboard"
    d = resolve_route_access("/login", {"redirect": "/settings/appearance"}, _state("staff"))
    assert d.redirect_to == "/settings/appearance"
