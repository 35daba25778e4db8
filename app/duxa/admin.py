import csv
import io
from datetime import date

from flask import Blueprint, flash, g, redirect, render_template, request, send_file, url_for
from sqlalchemy import func

from app.duxa.audit import query_system_logs, record_event
from app.duxa.constants import LOG_SEVERITIES, TENANT_STATUSES
from app.duxa.db import db_session
from app.duxa.models import SystemLog, User
from app.duxa.rbac import require_permission
from app.duxa.security import get_security_settings, parse_security_settings_form, update_security_settings

bp = Blueprint("admin", __name__)

LOGS_PER_PAGE = 50


def _parse_date(s: str) -> date | None:
    s = (s or "").strip()
    if not s:
        return None
    try:
        return date.fromisoformat(s)
    except ValueError:
        return None


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


@bp.get("/dashboard")
@require_permission("console.view")
def console_home():
    from app.duxa.modules.billing.models import Subscription
    from app.duxa.modules.inventory.service import inventory_stats
    from app.duxa.modules.tenants.models import Tenant

    s = db_session()
    by_status = dict(s.query(Tenant.status, func.count(Tenant.id)).group_by(Tenant.status).all())
    tenant_counts = {status: int(by_status.get(status, 0)) for status in TENANT_STATUSES}
    tenant_counts["total"] = sum(int(n) for n in by_status.values())
    today = date.today()
    active_subscriptions = (
        s.query(Subscription)
        .filter(
            Subscription.payment_status.notin_(("cancelled", "refunded")),
            Subscription.contract_start_date <= today,
            (Subscription.contract_end_date.is_(None)) | (Subscription.contract_end_date >= today),
        )
        .count()
    )
    latest_logs = s.query(SystemLog).order_by(SystemLog.created_at.desc(), SystemLog.id.desc()).limit(10).all()
    return render_template(
        "super_admin/dashboard.html",
        tenant_counts=tenant_counts,
        active_subscriptions=active_subscriptions,
        inventory=inventory_stats(s),
        latest_logs=latest_logs,
    )


@bp.get("/settings")
@require_permission("settings.manage")
def settings_index():
    return render_template("super_admin/settings/index.html")


@bp.get("/settings/security")
@require_permission("settings.manage")
def security_get():
    s = db_session()
    return render_template("super_admin/settings/security.html", settings=get_security_settings(s))


@bp.post("/settings/security")
@require_permission("settings.manage")
def security_post():
    s = db_session()
    payload, errors = parse_security_settings_form(request.form)
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("admin.security_get"))
    update_security_settings(s, payload, _current_user())
    s.commit()
    flash("Security settings saved.", "success")
    return redirect(url_for("admin.security_get"))


def _log_filters() -> dict:
    filters = {
        "event_type": (request.args.get("event_type") or "").strip(),
        "severity": (request.args.get("severity") or "").strip().upper(),
        "user_email": (request.args.get("user_email") or "").strip(),
        "tenant_id": None,
        "date_from": _parse_date(request.args.get("date_from") or ""),
        "date_to": _parse_date(request.args.get("date_to") or ""),
    }
    if filters["severity"] not in LOG_SEVERITIES:
        filters["severity"] = ""
    raw_tenant = (request.args.get("tenant_id") or "").strip()
    if raw_tenant.isdigit():
        filters["tenant_id"] = int(raw_tenant)
    return filters


@bp.get("/settings/system-logs")
@require_permission("logs.view")
def system_logs_list():
    s = db_session()
    filters = _log_filters()
    if (request.args.get("date_from") or "").strip() and not filters["date_from"]:
        flash("date_from must be YYYY-MM-DD", "danger")
    if (request.args.get("date_to") or "").strip() and not filters["date_to"]:
        flash("date_to must be YYYY-MM-DD", "danger")
    try:
        page = max(1, int(request.args.get("page") or 1))
    except ValueError:
        page = 1

    q = query_system_logs(s, filters)
    total = q.count()
    logs = q.offset((page - 1) * LOGS_PER_PAGE).limit(LOGS_PER_PAGE).all()
    event_types = [t for (t,) in s.query(SystemLog.event_type).distinct().order_by(SystemLog.event_type).all()]

    filters_for_urls = {
        k: (v.isoformat() if isinstance(v, date) else v) for k, v in filters.items() if v not in (None, "")
    }
    prev_url = url_for("admin.system_logs_list", page=page - 1, **filters_for_urls) if page > 1 else None
    next_url = (
        url_for("admin.system_logs_list", page=page + 1, **filters_for_urls) if page * LOGS_PER_PAGE < total else None
    )
    return render_template(
        "super_admin/settings/system_logs.html",
        logs=logs,
        total=total,
        filters=filters_for_urls,
        event_types=event_types,
        severities=LOG_SEVERITIES,
        export_url=url_for("admin.system_logs_export", **filters_for_urls),
        prev_url=prev_url,
        next_url=next_url,
    )


@bp.get("/settings/system-logs/export")
@require_permission("logs.view")
def system_logs_export():
    s = db_session()
    u = _current_user()
    filters = _log_filters()
    logs = query_system_logs(s, filters).all()

    out = io.StringIO()
    w = csv.writer(out)
    w.writerow(["Created At", "Severity", "Event Type", "Message", "User Email", "Tenant ID", "IP Address", "Request ID"])
    for ev in logs:
        w.writerow(
            [
                ev.created_at.isoformat(sep=" ", timespec="seconds"),
                ev.severity,
                ev.event_type,
                ev.message,
                ev.user_email or "",
                ev.tenant_id or "",
                ev.ip_address or "",
                ev.request_id or "",
            ]
        )

    record_event(
        s,
        actor=u,
        event_type="DATA_EXPORT",
        message="System logs exported",
        metadata={"row_count": len(logs)},
    )
    s.commit()

    data = out.getvalue().encode("utf-8")
    filename = f"system_logs_{date.today().strftime('%Y%m%d')}.csv"
    return send_file(
        io.BytesIO(data),
        mimetype="text/csv",
        as_attachment=True,
        download_name=filename,
        max_age=0,
    )
