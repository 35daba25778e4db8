import json
import logging
import os
from datetime import datetime

from flask import (
    Blueprint,
    abort,
    current_app,
    flash,
    g,
    jsonify,
    redirect,
    render_template,
    request,
    send_file,
    url_for,
)
from sqlalchemy.exc import SQLAlchemyError

from app.duxa.audit import log_system_event_safe
from app.duxa.constants import I18N_LANGUAGES, LOG_SEVERITIES, PLATFORM_ROLES, THEME_PREFERENCES
from app.duxa.db import db_session
from app.duxa.mail import send_waitlist_admin_notification, send_waitlist_welcome_email
from app.duxa.models import NewsletterSubscriber
from app.duxa.rbac import require_role
from app.duxa.storage import StorageError, media_type_for_key, storage_from_config
from app.duxa.utils import ServiceError

bp = Blueprint("routes", __name__)
logger = logging.getLogger(__name__)


@bp.get("/")
def index():
    return render_template("public/index.html", languages=I18N_LANGUAGES)


@bp.get("/about")
def about():
    return render_template("public/page.html", page="about")


@bp.get("/contact")
def contact():
    return render_template("public/page.html", page="contact")


@bp.get("/legal")
@bp.get("/legal/<slug>")
def legal(slug: str = "terms"):
    if slug not in ("terms", "privacy", "cookies"):
        abort(404)
    return render_template("public/page.html", page=f"legal-{slug}")


@bp.get("/health")
def health():
    """Health check endpoint. Returns JSON."""
    return {"ok": True}


@bp.get("/healthz")
def healthz():
    """
    Fast health check for k8s/DO liveness checks. No DB access, minimal overhead.
    """
    return "ok", 200


@bp.post("/waitlist")
def waitlist():
    email = (request.form.get("email") or "").strip().lower()
    language = (request.form.get("language") or "en").strip().lower()
    if language not in I18N_LANGUAGES:
        language = "en"
    if not email or "@" not in email:
        flash("Please enter a valid email address.", "danger")
        return redirect(url_for("routes.index"))

    s = db_session()
    now = datetime.utcnow()
    subscriber = s.query(NewsletterSubscriber).filter(NewsletterSubscriber.email == email).one_or_none()
    if subscriber is None:
        s.add(NewsletterSubscriber(email=email, language=language, is_active=True, created_at=now, updated_at=now))
    else:
        subscriber.language = language
        subscriber.is_active = True
        subscriber.updated_at = now
    s.commit()

    ok, detail = send_waitlist_welcome_email(email, language=language)
    admin_to = current_app.config.get("ADMIN_NOTIFY_EMAIL")
    if admin_to:
        send_waitlist_admin_notification(admin_to, subscriber_email=email, language=language)
    if ok:
        flash("Thanks! You're on the list.", "success")
    else:
        logger.warning("Waitlist welcome mail not sent to %s: %s", email, detail)
        flash("Thanks! You're on the list. Our welcome mail may be delayed.", "success")
    return redirect(url_for("routes.index"))


@bp.get("/api/i18n/<lang>")
def api_i18n(lang: str):
    if lang not in I18N_LANGUAGES:
        return jsonify({"error": "Invalid language code"}), 400
    path = os.path.join(current_app.config["I18N_DIR"], f"{lang}.json")
    if not os.path.exists(path):
        return jsonify({"error": f"Translation file for {lang} not found"}), 404
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError):
        logger.exception("Failed to read translation file %s", path)
        return jsonify({"error": "Failed to load translation file"}), 500
    resp = jsonify(data)
    resp.headers["Cache-Control"] = "public, max-age=3600"
    return resp


@bp.post("/api/logs")
def api_logs():
    from app.duxa.audit import record_event

    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        return jsonify({"success": False, "error": "JSON body required"}), 400
    event_type = str(body.get("event_type") or "").strip()
    message = str(body.get("message") or "").strip()
    severity = str(body.get("severity") or "INFO").strip().upper()
    if not event_type or not message:
        return jsonify({"success": False, "error": "event_type and message are required"}), 400
    if severity not in LOG_SEVERITIES:
        return jsonify({"success": False, "error": f"severity must be one of: {', '.join(LOG_SEVERITIES)}"}), 400
    metadata = body.get("metadata") if isinstance(body.get("metadata"), dict) else {}
    user_id = body.get("user_id")
    if not isinstance(user_id, int) or isinstance(user_id, bool):
        if user_id not in (None, ""):
            metadata["raw_user_id"] = str(user_id)
        user_id = None

    s = db_session()
    try:
        record_event(
            s,
            actor=getattr(g, "current_user", None),
            event_type=event_type,
            severity=severity,
            message=message,
            metadata=metadata,
            tenant_id=body.get("tenant_id"),
            user_id=user_id,
        )
        s.commit()
    except SQLAlchemyError as e:
        s.rollback()
        logger.error("[API-LOGS] DB error: %s", e)
        return jsonify({"success": False, "error": "Could not store log event"}), 500
    return jsonify({"success": True})


@bp.get("/media/<path:key>")
def media(key: str):
    storage = storage_from_config(current_app.config)
    try:
        fobj = storage.open(key)
    except StorageError:
        abort(404)
    mimetype = media_type_for_key(key)
    resp = send_file(
        fobj,
        mimetype=mimetype or "application/octet-stream",
        as_attachment=mimetype is None,
        download_name=key.rsplit("/", 1)[-1],
        max_age=3600,
    )
    resp.headers["X-Content-Type-Options"] = "nosniff"
    resp.headers["Content-Security-Policy"] = "default-src 'none'; sandbox"
    return resp


@bp.get("/settings/appearance")
@require_role(*PLATFORM_ROLES)
def appearance_get():
    return render_template("account/appearance.html", themes=THEME_PREFERENCES)


@bp.post("/settings/appearance")
@require_role(*PLATFORM_ROLES)
def appearance_post():
    from app.duxa.modules.users.service import update_user_theme

    s = db_session()
    user = g.current_user
    try:
        update_user_theme(s, user, (request.form.get("theme") or "").strip())
    except ServiceError as e:
        flash(str(e), "danger")
        return redirect(url_for("routes.appearance_get"))
    s.commit()
    log_system_event_safe(
        actor=user,
        event_type="USER_PREFERENCE",
        message=f"Theme preference set to {user.theme_preference}",
    )
    flash("Appearance saved.", "success")
    return redirect(url_for("routes.appearance_get"))
