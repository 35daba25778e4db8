"""
Route guard: decides, before any handler runs, whether a request may proceed or
where it must be sent instead.

The decision is a pure function of the path, the query string and a snapshot of
the session/profile state so it can be tested without a running app. The Flask
hook that feeds it lives in `app.duxa.auth.route_guard`.
"""
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from urllib.parse import urlencode

from app.duxa.constants import DASHBOARD_ROLES, ROLE_SUPER_ADMIN

LOGIN_PATH = "/login"
FORGOT_PASSWORD_PATH = "/login/forgot-password"
UPDATE_PASSWORD_PATH = "/login/update-password"
TWO_FACTOR_VERIFY_PATH = "/login/two-factor"
LOGOUT_PATH = "/logout"
CALLBACK_PATH = "/auth/callback"
CHANGE_PASSWORD_PATH = "/dashboard/change-password"

SUPER_ADMIN_HOME = "/super-admin/dashboard"
DASHBOARD_HOME = "/dashboard"

AUTH_PAGES = frozenset({LOGIN_PATH, FORGOT_PASSWORD_PATH, UPDATE_PASSWORD_PATH})

_PASSTHROUGH_PREFIXES = ("/static/", "/media/", "/api/i18n/")
_PASSTHROUGH_EXACT = frozenset({"/health", "/healthz", "/api/logs", "/waitlist"})
_PUBLIC_SECTIONS = ("/about", "/contact", "/legal")
# post-login targets open to every role
_SHARED_REDIRECT_SECTIONS = ("/menu-builder", "/settings")


@dataclass(frozen=True)
class RouteState:
    authenticated: bool
    role: str = ""
    is_active: bool = True
    must_change_password: bool = False
    two_factor_required: bool = False
    two_factor_enrolled: bool = False
    two_factor_verified: bool = False


@dataclass(frozen=True)
class Decision:
    redirect_to: str | None = None
    clear_session: bool = False

    @property
    def allowed(self) -> bool:
        return self.redirect_to is None


ALLOW = Decision()


def normalize_role(role: str | None) -> str:
    return (role or "").strip().lower()


def _in_section(path: str, prefix: str) -> bool:
    return path == prefix or path.startswith(prefix + "/")


def _with_query(path: str, **params: str) -> str:
    return f"{path}?{urlencode(params)}"


def is_public_path(path: str) -> bool:
    if path == "/" or path in _PASSTHROUGH_EXACT:
        return True
    if path.startswith(_PASSTHROUGH_PREFIXES):
        return True
    return any(_in_section(path, p) for p in _PUBLIC_SECTIONS)


def home_for_role(role: str) -> str:
    role = normalize_role(role)
    if role == ROLE_SUPER_ADMIN:
        return SUPER_ADMIN_HOME
    if role in DASHBOARD_ROLES:
        return DASHBOARD_HOME
    return "/"


def two_factor_setup_path(role: str) -> str:
    base = "/super-admin" if normalize_role(role) == ROLE_SUPER_ADMIN else "/dashboard"
    return f"{base}/two-factor-setup"


def is_safe_redirect(target: str | None, role: str) -> bool:
    """Local path inside an area the role may land on after login."""
    if not target or not target.startswith("/") or target.startswith("//"):
        return False
    path = target.split("?", 1)[0]
    role = normalize_role(role)
    if _in_section(path, "/super-admin"):
        return role == ROLE_SUPER_ADMIN
    if _in_section(path, "/dashboard"):
        return role in DASHBOARD_ROLES
    return any(_in_section(path, p) for p in _SHARED_REDIRECT_SECTIONS)


def resolve_route_access(path: str, query: Mapping[str, str], state: RouteState) -> Decision:
    if is_public_path(path) or path == CALLBACK_PATH:
        return ALLOW

    if not state.authenticated:
        if path in AUTH_PAGES:
            return ALLOW
        target = f"{path}?{urlencode(dict(query))}" if query else path
        return Decision(redirect_to=_with_query(LOGIN_PATH, redirect=target))

    role = normalize_role(state.role)

    if not state.is_active:
        if path in AUTH_PAGES:
            return Decision(clear_session=True)
        return Decision(redirect_to=_with_query(LOGIN_PATH, error="account_inactive"), clear_session=True)

    if path == LOGOUT_PATH:
        return ALLOW

    # The second factor completes sign-in; nothing else is reachable until it is verified.
    if state.two_factor_enrolled and not state.two_factor_verified:
        if path == TWO_FACTOR_VERIFY_PATH:
            return ALLOW
        return Decision(redirect_to=TWO_FACTOR_VERIFY_PATH)
    if path == TWO_FACTOR_VERIFY_PATH:
        return Decision(redirect_to=home_for_role(role))

    if state.must_change_password:
        if path == CHANGE_PASSWORD_PATH or path in AUTH_PAGES:
            return ALLOW
        return Decision(redirect_to=CHANGE_PASSWORD_PATH)
    if path == CHANGE_PASSWORD_PATH:
        return Decision(redirect_to=home_for_role(role))

    setup_path = two_factor_setup_path(role)
    if state.two_factor_required and not state.two_factor_enrolled:
        if path == setup_path:
            return ALLOW
        return Decision(redirect_to=setup_path)

    if path in (LOGIN_PATH, FORGOT_PASSWORD_PATH):
        requested = query.get("redirect")
        if is_safe_redirect(requested, role):
            return Decision(redirect_to=requested)
        return Decision(redirect_to=home_for_role(role))

    if path == UPDATE_PASSWORD_PATH:
        return ALLOW

    if _in_section(path, "/super-admin") and role != ROLE_SUPER_ADMIN:
        return Decision(redirect_to=_with_query(LOGIN_PATH, error="unauthorized"))
    if _in_section(path, "/dashboard") and role not in DASHBOARD_ROLES:
        return Decision(redirect_to=_with_query(LOGIN_PATH, error="unauthorized"))

    return ALLOW
