from __future__ import annotations

from flask import Blueprint, current_app, flash, g, jsonify, redirect, render_template, request, url_for

from app.duxa.constants import CURRENCIES, I18N_LANGUAGES, LANGUAGE_NAMES, WEEKDAYS
from app.duxa.db import db_session, get_or_404
from app.duxa.models import User
from app.duxa.modules.tenant_settings.service import (
    SOCIAL_NETWORKS,
    business_hours,
    parse_business_hours,
    tenant_settings,
    update_business_hours,
    update_business_identity,
    update_general_settings,
    update_tenant_theme,
)
from app.duxa.modules.tenants.models import Tenant
from app.duxa.modules.tenants.service import check_slug_availability, is_valid_slug
from app.duxa.modules.themes.service import list_themes
from app.duxa.rbac import current_tenant_id, require_permission, user_has_permission
from app.duxa.storage import StorageError, discard_replaced, storage_from_config, store_image

bp = Blueprint("tenant_settings", __name__)

_GENERAL_FIELDS = (
    "business_name",
    "currency",
    "system_language",
    "subdomain",
    "website",
    "address",
    "latitude",
    "longitude",
    "online_menu_enabled",
    "seo_indexing_enabled",
) + SOCIAL_NETWORKS


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _tenant(s) -> Tenant:
    return get_or_404(s, Tenant, current_tenant_id())


def _language_choices():
    return [(code, LANGUAGE_NAMES.get(code, code.upper())) for code in I18N_LANGUAGES]


@bp.get("/settings")
@require_permission("dashboard.view")
def settings_index():
    s = db_session()
    return render_template(
        "dashboard/settings/index.html",
        tenant=_tenant(s),
        can_manage=user_has_permission(_current_user(), "tenant_settings.manage"),
    )


@bp.get("/settings/general")
@require_permission("dashboard.view")
def general_get():
    s = db_session()
    tenant = _tenant(s)
    return render_template(
        "dashboard/settings/general.html",
        tenant=tenant,
        settings=tenant_settings(tenant),
        currencies=CURRENCIES,
        languages=_language_choices(),
        social_networks=SOCIAL_NETWORKS,
        can_edit=user_has_permission(_current_user(), "tenant_settings.manage"),
    )


@bp.post("/settings/general")
@require_permission("tenant_settings.manage")
def general_post():
    s = db_session()
    tenant = _tenant(s)
    payload = {k: request.form.get(k) for k in _GENERAL_FIELDS}
    payload["menu_languages"] = request.form.getlist("menu_languages")
    errors = update_general_settings(s, tenant, payload, _current_user())
    if errors:
        s.rollback()
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("tenant_settings.general_get"))
    s.commit()
    flash("Settings saved.", "success")
    return redirect(url_for("tenant_settings.general_get"))


@bp.get("/settings/subdomain-check")
@require_permission("dashboard.view")
def subdomain_check():
    s = db_session()
    subdomain = (request.args.get("subdomain") or "").strip().lower()
    if not is_valid_slug(subdomain):
        return jsonify({"available": False, "suggestion": None})
    available, suggestion = check_slug_availability(s, subdomain, exclude_tenant_id=current_tenant_id())
    return jsonify({"available": available, "suggestion": suggestion})


@bp.get("/settings/business-identity")
@require_permission("tenant_settings.manage")
def business_identity_get():
    s = db_session()
    tenant = _tenant(s)
    return render_template(
        "dashboard/settings/business_identity.html",
        tenant=tenant,
        settings=tenant_settings(tenant),
        currencies=CURRENCIES,
        languages=_language_choices(),
    )


@bp.post("/settings/business-identity")
@require_permission("tenant_settings.manage")
def business_identity_post():
    s = db_session()
    tenant = _tenant(s)
    old_logo = (tenant.settings or {}).get("logo_key")
    logo_key = None
    upload = request.files.get("logo")
    if upload and upload.filename:
        try:
            logo_key = store_image(storage_from_config(current_app.config), f"tenants/{tenant.id}/logo", upload)
        except StorageError as e:
            flash(str(e), "danger")
            return redirect(url_for("tenant_settings.business_identity_get"))
    payload = {k: request.form.get(k) for k in ("business_name", "currency", "system_language")}
    errors = update_business_identity(s, tenant, payload, _current_user(), logo_key=logo_key)
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("tenant_settings.business_identity_get"))
    s.commit()
    try:
        discard_replaced(storage_from_config(current_app.config), old_logo, logo_key)
    except StorageError:
        current_app.logger.warning("Could not remove replaced logo %s", old_logo)
    flash("Business identity saved.", "success")
    return redirect(url_for("tenant_settings.business_identity_get"))


@bp.get("/settings/hours")
@require_permission("tenant_settings.manage")
def hours_get():
    s = db_session()
    tenant = _tenant(s)
    return render_template("dashboard/settings/hours.html", tenant=tenant, hours=business_hours(tenant), weekdays=WEEKDAYS)


@bp.post("/settings/hours")
@require_permission("tenant_settings.manage")
def hours_post():
    s = db_session()
    tenant = _tenant(s)
    hours, errors = parse_business_hours(request.form)
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("tenant_settings.hours_get"))
    update_business_hours(s, tenant, hours, _current_user())
    s.commit()
    flash("Opening hours saved.", "success")
    return redirect(url_for("tenant_settings.hours_get"))


@bp.get("/design")
@require_permission("design.manage")
def design_get():
    s = db_session()
    tenant = _tenant(s)
    return render_template(
        "dashboard/design.html",
        tenant=tenant,
        themes=list_themes(s),
        current_theme=tenant_settings(tenant).get("theme_id"),
    )


@bp.post("/design")
@require_permission("design.manage")
def design_post():
    s = db_session()
    tenant = _tenant(s)
    errors = update_tenant_theme(s, tenant, request.form.get("theme_id") or "", _current_user())
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("tenant_settings.design_get"))
    s.commit()
    flash("Theme applied.", "success")
    return redirect(url_for("tenant_settings.design_get"))
