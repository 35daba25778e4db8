from __future__ import annotations

import hashlib
import secrets
import time
import uuid
from collections import defaultdict
from datetime import datetime, timedelta

import pyotp
from flask import Blueprint, current_app, flash, g, redirect, render_template, request, session, url_for
from werkzeug.security import check_password_hash, generate_password_hash

from app.duxa.audit import client_ip, log_system_event_safe, record_event
from app.duxa.db import db_session
from app.duxa.guard import (
    RouteState,
    home_for_role,
    is_public_path,
    is_safe_redirect,
    resolve_route_access,
)
from app.duxa.mail import send_password_reset_email
from app.duxa.models import PasswordResetToken, User
from app.duxa.security import get_security_settings, validate_password

bp = Blueprint("auth", __name__)
_login_attempts: dict[str, list[datetime]] = defaultdict(list)
_LOGIN_RATE_LIMIT = 5
_LOGIN_RATE_WINDOW = 300  # seconds
RESET_TOKEN_TTL = timedelta(hours=1)
TOTP_ISSUER = "Duxa"

LOGIN_ERROR_MESSAGES = {
    "account_inactive": "Your account is inactive. Contact your administrator.",
    "unauthorized": "You are not authorized to view that page.",
    "session_timeout": "You were signed out after a period of inactivity.",
}


def _check_rate_limit(ip: str) -> bool:
    cutoff = datetime.utcnow() - timedelta(seconds=_LOGIN_RATE_WINDOW)
    recent = [t for t in _login_attempts.get(ip, ()) if t > cutoff]
    if recent:
        _login_attempts[ip] = recent
    else:
        _login_attempts.pop(ip, None)
    return len(recent) >= _LOGIN_RATE_LIMIT


def _record_attempt(ip: str) -> None:
    _login_attempts[ip].append(datetime.utcnow())


def _security_settings() -> dict:
    cached = getattr(g, "security_settings", None)
    if cached is None:
        cached = get_security_settings(db_session())
        g.security_settings = cached
    return cached


def _token_digest(raw: str) -> str:
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


# ---------- Request hooks ----------
def load_current_user() -> None:
    """
    Loads g.current_user from the signed session cookie.
    Also assigns a per-request request_id for log correlation.
    Inactive users are still loaded so the route guard can explain the redirect.
    """
    if not getattr(g, "request_id", None):
        g.request_id = uuid.uuid4().hex
    g.current_user = None
    if request.path.startswith(("/static/", "/health", "/healthz")):
        return

    user_id = session.get("user_id")
    if not user_id:
        return

    try:
        s = db_session()
        user = s.get(User, int(user_id))
    except Exception as e:
        current_app.logger.error("load_current_user DB error (clearing session): %s", e)
        session.clear()
        return
    if not user:
        session.clear()
        return
    g.current_user = user


def enforce_session_timeout():
    user: User | None = getattr(g, "current_user", None)
    if user is None:
        return None
    now = time.time()
    timeout_seconds = int(_security_settings()["session_timeout_minutes"]) * 60
    last_seen = session.get("last_seen")
    if last_seen is not None and now - float(last_seen) > timeout_seconds:
        log_system_event_safe(
            actor=user,
            event_type="SESSION_TIMEOUT",
            severity="INFO",
            message="Session expired after inactivity",
            metadata={"idle_seconds": int(now - float(last_seen))},
        )
        session.clear()
        g.current_user = None
        if is_public_path(request.path):
            return None
        return redirect(url_for("auth.login_get", error="session_timeout"))
    session["last_seen"] = now
    return None


def route_guard():
    user: User | None = getattr(g, "current_user", None)
    if user is None:
        state = RouteState(authenticated=False)
    else:
        state = RouteState(
            authenticated=True,
            role=user.role,
            is_active=user.is_active,
            must_change_password=user.must_change_password,
            two_factor_required=user.is_2fa_required or bool(_security_settings()["two_factor_enforced"]),
            two_factor_enrolled=user.has_totp,
            two_factor_verified=bool(session.get("two_factor_passed")),
        )
    decision = resolve_route_access(request.path, request.args.to_dict(), state)
    if decision.clear_session:
        session.clear()
        g.current_user = None
    if decision.allowed:
        return None
    if user is not None and "error=unauthorized" in (decision.redirect_to or ""):
        log_system_event_safe(
            actor=user,
            event_type="UNAUTHORIZED_ACCESS",
            severity="WARNING",
            message=f"Blocked access to {request.path}",
            metadata={"path": request.path, "role": user.normalized_role},
        )
    return redirect(decision.redirect_to)


# ---------- Login ----------
def _register_failed_attempt(s, user: User, settings: dict) -> bool:
    """Count a failed credential check; returns True when this attempt locked the account."""
    user.failed_login_attempts = (user.failed_login_attempts or 0) + 1
    if user.failed_login_attempts >= int(settings["max_login_attempts"]):
        user.locked_until = datetime.utcnow() + timedelta(minutes=int(settings["lockout_minutes"]))
        record_event(
            s,
            actor=user,
            event_type="ACCOUNT_LOCKED",
            severity="ERROR",
            message=f"Account locked after {user.failed_login_attempts} failed attempts",
            metadata={"locked_until": user.locked_until.isoformat()},
        )
        return True
    return False


def _login_redirect(redirect_to: str | None):
    if redirect_to:
        return redirect(url_for("auth.login_get", redirect=redirect_to))
    return redirect(url_for("auth.login_get"))


@bp.get("/login")
def login_get():
    error_key = (request.args.get("error") or "").strip()
    return render_template(
        "auth/login.html",
        redirect_to=(request.args.get("redirect") or "").strip(),
        error_message=LOGIN_ERROR_MESSAGES.get(error_key),
    )


@bp.post("/login")
def login_post():
    email = (request.form.get("email") or "").strip().lower()
    password = request.form.get("password") or ""
    redirect_to = (request.form.get("redirect") or "").strip()
    ip = client_ip() or "unknown"

    if _check_rate_limit(ip):
        flash("Too many login attempts. Please wait 5 minutes.", "danger")
        return _login_redirect(redirect_to)
    _record_attempt(ip)

    s = db_session()
    settings = get_security_settings(s)
    user = s.query(User).filter(User.email == email).one_or_none()
    if not user:
        record_event(
            s,
            actor=None,
            event_type="LOGIN_FAILED",
            severity="WARNING",
            message="Login failed: unknown email",
            metadata={"email_attempt": email},
        )
        s.commit()
        flash("Invalid email or password.", "danger")
        return _login_redirect(redirect_to)

    if user.locked_until and not user.is_locked():
        # lock expired: start counting again
        user.failed_login_attempts = 0
        user.locked_until = None

    if user.is_locked():
        minutes_left = max(1, int((user.locked_until - datetime.utcnow()).total_seconds() // 60) + 1)
        record_event(
            s,
            actor=user,
            event_type="LOGIN_LOCKED",
            severity="WARNING",
            message="Login attempt on a locked account",
            metadata={"email_attempt": email},
        )
        s.commit()
        flash(f"Account is temporarily locked. Try again in {minutes_left} minute(s).", "danger")
        return _login_redirect(redirect_to)

    if not check_password_hash(user.password_hash, password):
        locked = _register_failed_attempt(s, user, settings)
        if not locked:
            record_event(
                s,
                actor=user,
                event_type="LOGIN_FAILED",
                severity="WARNING",
                message="Login failed: wrong password",
                metadata={"email_attempt": email, "failed_attempts": user.failed_login_attempts},
            )
        s.commit()
        if locked:
            flash(f"Too many failed attempts. Account locked for {settings['lockout_minutes']} minutes.", "danger")
        else:
            flash("Invalid email or password.", "danger")
        return _login_redirect(redirect_to)

    if not user.is_active:
        record_event(
            s,
            actor=user,
            event_type="LOGIN_FAILED",
            severity="WARNING",
            message="Login failed: account inactive",
            metadata={"email_attempt": email},
        )
        s.commit()
        flash(LOGIN_ERROR_MESSAGES["account_inactive"], "danger")
        return _login_redirect(redirect_to)

    user.failed_login_attempts = 0
    user.locked_until = None
    user.last_login_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        event_type="LOGIN_SUCCESS",
        severity="SUCCESS",
        message="User logged in",
        metadata={"role": user.normalized_role},
    )
    s.commit()
    _login_attempts.pop(ip, None)

    session.clear()
    session["user_id"] = user.id
    session["last_seen"] = time.time()
    session["two_factor_passed"] = not user.has_totp
    session.permanent = True

    target = redirect_to if is_safe_redirect(redirect_to, user.role) else home_for_role(user.role)
    if user.has_totp:
        session["post_login_redirect"] = target
        return redirect(url_for("auth.two_factor_get"))
    return redirect(target)


@bp.get("/login/two-factor")
def two_factor_get():
    return render_template("auth/two_factor.html")


@bp.post("/login/two-factor")
def two_factor_post():
    user: User | None = getattr(g, "current_user", None)
    if not user or not user.has_totp:
        return redirect(url_for("auth.login_get"))
    s = db_session()
    code = (request.form.get("code") or "").strip().replace(" ", "")
    if pyotp.TOTP(user.totp_secret).verify(code, valid_window=1):
        user.failed_login_attempts = 0
        record_event(s, actor=user, event_type="LOGIN_2FA_SUCCESS", severity="SUCCESS", message="Second factor verified")
        s.commit()
        session["two_factor_passed"] = True
        target = session.pop("post_login_redirect", None) or home_for_role(user.role)
        return redirect(target)

    locked = _register_failed_attempt(s, user, get_security_settings(s))
    record_event(s, actor=user, event_type="LOGIN_2FA_FAILED", severity="WARNING", message="Invalid authentication code")
    s.commit()
    if locked:
        session.clear()
        flash("Too many failed attempts. Account locked.", "danger")
        return redirect(url_for("auth.login_get"))
    flash("Invalid authentication code.", "danger")
    return redirect(url_for("auth.two_factor_get"))


@bp.get("/logout")
def logout():
    user = getattr(g, "current_user", None)
    if user:
        s = db_session()
        record_event(s, actor=user, event_type="LOGOUT", severity="INFO", message="User logged out")
        s.commit()
    session.clear()
    return redirect(url_for("auth.login_get"))


@bp.get("/auth/callback")
def auth_callback():
    user = getattr(g, "current_user", None)
    if user:
        return redirect(home_for_role(user.role))
    return redirect(url_for("auth.login_get"))


# ---------- Password reset ----------
def issue_password_reset(s, user: User) -> str:
    """Create a single-use reset token for `user` and return the raw token."""
    raw = secrets.token_urlsafe(32)
    s.add(
        PasswordResetToken(
            user_id=user.id,
            token_hash=_token_digest(raw),
            expires_at=datetime.utcnow() + RESET_TOKEN_TTL,
        )
    )
    return raw


def send_password_reset(s, user: User, *, actor: User | None = None) -> tuple[bool, str]:
    """Issue a token, commit it, then mail the link. Mail failure is logged, not raised."""
    raw = issue_password_reset(s, user)
    record_event(
        s,
        actor=actor or user,
        event_type="PASSWORD_RESET_REQUESTED",
        severity="INFO",
        message=f"Password reset link issued for {user.email}",
        user_id=user.id,
        tenant_id=user.tenant_id,
    )
    s.commit()
    reset_url = f"{current_app.config['SITE_URL']}{url_for('auth.update_password_get', token=raw)}"
    ok, detail = send_password_reset_email(user.email, reset_url)
    if not ok:
        current_app.logger.warning("Password reset mail for user_id=%s not delivered: %s", user.id, detail)
    return ok, detail


def _user_for_token(s, raw: str | None) -> tuple[PasswordResetToken | None, User | None]:
    if not raw:
        return None, None
    token = s.query(PasswordResetToken).filter(PasswordResetToken.token_hash == _token_digest(raw)).one_or_none()
    if not token or token.used_at is not None or token.expires_at < datetime.utcnow():
        return None, None
    return token, token.user


@bp.get("/login/forgot-password")
def forgot_password_get():
    return render_template("auth/forgot_password.html")


@bp.post("/login/forgot-password")
def forgot_password_post():
    email = (request.form.get("email") or "").strip().lower()
    s = db_session()
    user = s.query(User).filter(User.email == email).one_or_none() if email else None
    if user and user.is_active:
        send_password_reset(s, user)
    # Same answer whether or not the account exists.
    flash("If an account exists for that email, a reset link has been sent.", "info")
    return redirect(url_for("auth.login_get"))


@bp.get("/login/update-password")
def update_password_get():
    raw = (request.args.get("token") or "").strip()
    s = db_session()
    _token, token_user = _user_for_token(s, raw)
    if not token_user and not getattr(g, "current_user", None):
        flash("This reset link is invalid or has expired.", "danger")
        return redirect(url_for("auth.forgot_password_get"))
    return render_template("auth/update_password.html", token=raw if token_user else "")


@bp.post("/login/update-password")
def update_password_post():
    raw = (request.form.get("token") or "").strip()
    password = request.form.get("password") or ""
    confirm = request.form.get("password_confirm") or ""
    s = db_session()

    token, user = _user_for_token(s, raw)
    if user is None and not raw:
        user = getattr(g, "current_user", None)
    if user is None:
        flash("This reset link is invalid or has expired.", "danger")
        return redirect(url_for("auth.forgot_password_get"))

    error = validate_password(password, get_security_settings(s))
    if not error and password != confirm:
        error = "Passwords do not match."
    if error:
        flash(error, "danger")
        return redirect(url_for("auth.update_password_get", token=raw) if raw else url_for("auth.update_password_get"))

    user.password_hash = generate_password_hash(password)
    user.must_change_password = False
    user.failed_login_attempts = 0
    user.locked_until = None
    user.updated_at = datetime.utcnow()
    if token is not None:
        token.used_at = datetime.utcnow()
    record_event(s, actor=user, event_type="PASSWORD_RESET", severity="INFO", message="Password updated")
    s.commit()

    flash("Your password has been updated.", "success")
    if getattr(g, "current_user", None):
        return redirect(home_for_role(user.role))
    return redirect(url_for("auth.login_get"))


# ---------- Logged-in password change ----------
@bp.get("/dashboard/change-password")
def change_password_get():
    if not getattr(g, "current_user", None):
        return redirect(url_for("auth.login_get"))
    return render_template("auth/change_password.html")


@bp.post("/dashboard/change-password")
def change_password_post():
    user: User | None = getattr(g, "current_user", None)
    if not user:
        return redirect(url_for("auth.login_get"))
    s = db_session()
    current = request.form.get("current_password") or ""
    password = request.form.get("password") or ""
    confirm = request.form.get("password_confirm") or ""

    errors = []
    if not check_password_hash(user.password_hash, current):
        errors.append("Current password is incorrect.")
    policy_error = validate_password(password, get_security_settings(s))
    if policy_error:
        errors.append(policy_error)
    elif password != confirm:
        errors.append("Passwords do not match.")
    elif password == current:
        errors.append("New password must be different from the current password.")
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("auth.change_password_get"))

    user.password_hash = generate_password_hash(password)
    user.must_change_password = False
    user.updated_at = datetime.utcnow()
    record_event(s, actor=user, event_type="PASSWORD_CHANGED", severity="INFO", message="Password changed")
    s.commit()
    flash("Password changed.", "success")
    return redirect(home_for_role(user.role))


# ---------- TOTP enrolment ----------
@bp.get("/dashboard/two-factor-setup")
@bp.get("/super-admin/two-factor-setup")
def two_factor_setup_get():
    user: User | None = getattr(g, "current_user", None)
    if not user:
        return redirect(url_for("auth.login_get"))
    if user.has_totp:
        flash("Two-factor authentication is already enabled.", "info")
        return redirect(home_for_role(user.role))
    secret = session.get("totp_setup_secret")
    if not secret:
        secret = pyotp.random_base32()
        session["totp_setup_secret"] = secret
    uri = pyotp.TOTP(secret).provisioning_uri(name=user.email, issuer_name=TOTP_ISSUER)
    return render_template("auth/two_factor_setup.html", secret=secret, provisioning_uri=uri)


@bp.post("/dashboard/two-factor-setup")
@bp.post("/super-admin/two-factor-setup")
def two_factor_setup_post():
    user: User | None = getattr(g, "current_user", None)
    if not user:
        return redirect(url_for("auth.login_get"))
    secret = session.get("totp_setup_secret")
    code = (request.form.get("code") or "").strip().replace(" ", "")
    if not secret or not pyotp.TOTP(secret).verify(code, valid_window=1):
        flash("Invalid authentication code. Scan the key again and retry.", "danger")
        return redirect(request.path)

    s = db_session()
    user.totp_secret = secret
    user.totp_confirmed_at = datetime.utcnow()
    record_event(s, actor=user, event_type="TWO_FACTOR_ENABLED", severity="SUCCESS", message="Authenticator app enrolled")
    s.commit()
    session.pop("totp_setup_secret", None)
    session["two_factor_passed"] = True
    flash("Two-factor authentication enabled.", "success")
    return redirect(home_for_role(user.role))
