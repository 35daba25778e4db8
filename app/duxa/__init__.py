import logging
import os

from flask import Flask, flash, g, redirect, render_template, request, session, url_for
from dotenv import load_dotenv

from app.duxa.config import load_config, missing_s3_settings, production_errors
from app.duxa.db import init_db, teardown_db_session
from app.duxa.routes import bp as routes_bp
from app.duxa.auth import bp as auth_bp, enforce_session_timeout, load_current_user, route_guard
from app.duxa.admin import bp as admin_bp
from app.duxa.dashboard import bp as dashboard_bp
from app.duxa.modules.tenants.admin import bp as tenants_bp
from app.duxa.modules.billing.admin import bp as billing_bp
from app.duxa.modules.catalog.admin import bp as catalog_bp
from app.duxa.modules.inventory.admin import bp as inventory_bp
from app.duxa.modules.users.admin import bp as users_bp
from app.duxa.modules.themes.admin import bp as themes_bp
from app.duxa.modules.translations.admin import bp as translations_bp
from app.duxa.modules.meeting_tasks.admin import bp as meeting_tasks_bp
from app.duxa.modules.menu.admin import bp as menu_bp
from app.duxa.modules.orders.admin import bp as orders_bp
from app.duxa.modules.staff.admin import bp as staff_bp
from app.duxa.modules.tenant_settings.admin import bp as tenant_settings_bp

logger = logging.getLogger(__name__)

# Forms that are posted before a session (and therefore a CSRF token) can be trusted,
# plus the machine-to-machine log ingestion endpoint.
CSRF_EXEMPT_ENDPOINTS = frozenset({"auth.login_post", "auth.forgot_password_post", "routes.api_logs"})

# Served without a user, a CSRF token or the route guard.
_BARE_PREFIXES = ("/static/", "/health", "/healthz")

BLUEPRINTS = (
    (routes_bp, None),
    (auth_bp, None),
    (admin_bp, "/super-admin"),
    (tenants_bp, "/super-admin/tenants"),
    (billing_bp, None),
    (catalog_bp, "/super-admin/catalog"),
    (inventory_bp, "/super-admin/inventory"),
    (users_bp, "/super-admin/settings/users"),
    (themes_bp, "/super-admin/settings/themes"),
    (translations_bp, "/super-admin/settings/translations"),
    (meeting_tasks_bp, "/super-admin/settings/meeting-tasks"),
    (dashboard_bp, "/dashboard"),
    (menu_bp, "/dashboard/menu"),
    (orders_bp, "/dashboard/orders"),
    (staff_bp, "/dashboard/settings/staff"),
    (tenant_settings_bp, "/dashboard"),
)


def _register_template_helpers(app: Flask) -> None:
    from app.duxa.rbac import user_has_permission
    from app.duxa.security import ensure_csrf_token
    from app.duxa.utils import minor_to_major

    @app.context_processor
    def _inject_globals() -> dict:
        user = getattr(g, "current_user", None)
        return {
            "csrf_token": ensure_csrf_token(),
            "current_user": user,
            "has_perm": lambda key: user_has_permission(user, key),
        }

    @app.template_filter("dateformat")
    def _dateformat_filter(value, format: str = "%Y-%m-%d") -> str:
        if value is None:
            return "-"
        return value.strftime(format) if hasattr(value, "strftime") else str(value)

    @app.template_filter("money")
    def _money_filter(value, currency: str = "") -> str:
        return f"{minor_to_major(value):,.2f} {currency}".strip()


def _register_request_hooks(app: Flask) -> None:
    from app.duxa.security import ensure_csrf_token, validate_csrf

    def _csrf_guard():
        if request.path.startswith(_BARE_PREFIXES):
            return None
        ensure_csrf_token()
        session.permanent = True
        if request.method in ("POST", "PUT", "PATCH", "DELETE") and (request.endpoint or "") not in CSRF_EXEMPT_ENDPOINTS:
            if not validate_csrf(request):
                return render_template("errors/400.html", message="CSRF token missing or invalid."), 400
        return None

    def _load_user():
        if request.path.startswith(_BARE_PREFIXES):
            g.current_user = None
            return None
        return load_current_user()

    # Order matters: CSRF, identify the user, expire idle sessions, then route-guard.
    for hook in (_csrf_guard, _load_user, enforce_session_timeout, route_guard):
        app.before_request(hook)
    app.teardown_appcontext(teardown_db_session)


def _register_error_handlers(app: Flask) -> None:
    @app.errorhandler(403)
    def _err_403(e):  # type: ignore[no-redef]
        missing = getattr(g, "missing_permission", None)
        if missing:
            app.logger.warning("Forbidden: missing_permission=%s path=%s", missing, request.path)
        return render_template("errors/403.html", missing_permission=missing), 403

    @app.errorhandler(404)
    def _err_404(e):  # type: ignore[no-redef]
        return render_template("errors/404.html"), 404

    @app.errorhandler(413)
    def _err_413(e):  # type: ignore[no-redef]
        flash("File too large. Maximum size is 5MB.", "danger")
        referrer = request.referrer
        if referrer and referrer.startswith(request.host_url):
            return redirect(referrer), 302
        return redirect(url_for("routes.index")), 302

    @app.errorhandler(500)
    def _err_500(e):  # type: ignore[no-redef]
        rid = getattr(g, "request_id", None)
        app.logger.exception("Unhandled 500 (request_id=%s)", rid)
        return render_template("errors/500.html", request_id=rid), 500


def _dispose_engine_after_fork(app: Flask) -> None:
    # gunicorn --preload forks workers after the engine exists; pooled connections must not be shared.
    if not hasattr(os, "register_at_fork"):
        return

    def _after_fork_child():
        engine = app.extensions.get("sqlalchemy_engine")
        if engine:
            engine.dispose()
            app.logger.info("Disposed DB engine after fork (pid=%s)", os.getpid())

    os.register_at_fork(after_in_child=_after_fork_child)


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__, template_folder="templates", static_folder="static")
    app.config.from_mapping(load_config())

    problems = production_errors(app.config)
    if problems:
        raise RuntimeError(" ".join(problems))

    init_db(app)
    _dispose_engine_after_fork(app)

    missing_s3 = missing_s3_settings(app.config)
    if missing_s3:
        app.logger.error("STORAGE CONFIG ERROR: Missing required S3 env vars: %s", ", ".join(missing_s3))
    if not app.config.get("SMTP_SERVER"):
        app.logger.warning("SMTP_SERVER not set; password reset and welcome emails will not be delivered.")

    for blueprint, prefix in BLUEPRINTS:
        app.register_blueprint(blueprint, url_prefix=prefix)

    _register_template_helpers(app)
    _register_request_hooks(app)
    _register_error_handlers(app)

    logger.info("create_app() complete; %d blueprints registered", len(BLUEPRINTS))
    return app
