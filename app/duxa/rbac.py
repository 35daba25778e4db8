from collections.abc import Callable
from functools import wraps
from typing import Any

from flask import abort, g, redirect, request, url_for

from app.duxa.constants import ROLE_PERMISSIONS, ROLE_SUPER_ADMIN
from app.duxa.models import User


def user_has_permission(user: User | None, permission_key: str) -> bool:
    if not user or not user.is_active:
        return False
    return permission_key in ROLE_PERMISSIONS.get(user.normalized_role, frozenset())


def _login_redirect():
    nxt = request.full_path.rstrip("?") if request.query_string else request.path
    return redirect(url_for("auth.login_get", redirect=nxt))


def _deny(missing: str):
    g.missing_permission = missing
    abort(403)


def require_permission(permission_key: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            user: User | None = getattr(g, "current_user", None)
            if not user or not user.is_active:
                return _login_redirect()
            if not user_has_permission(user, permission_key):
                _deny(permission_key)
            return fn(*args, **kwargs)

        return wrapped

    return decorator


def require_role(*roles: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    allowed = frozenset(r.strip().lower() for r in roles)

    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            user: User | None = getattr(g, "current_user", None)
            if not user or not user.is_active:
                return _login_redirect()
            if user.normalized_role not in allowed:
                _deny("role:" + ",".join(sorted(allowed)))
            return fn(*args, **kwargs)

        return wrapped

    return decorator


def current_tenant_id() -> int:
    """
    Tenant scope for dashboard handlers. Every tenant query filters on this value.
    """
    user: User | None = getattr(g, "current_user", None)
    if not user or not user.tenant_id:
        _deny("tenant.membership")
    return user.tenant_id


def is_super_admin(user: User | None) -> bool:
    return bool(user and user.normalized_role == ROLE_SUPER_ADMIN)
