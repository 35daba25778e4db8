from __future__ import annotations

from datetime import date

from flask import Blueprint, flash, g, jsonify, redirect, render_template, request, url_for
from sqlalchemy import or_

from app.duxa.audit import log_system_event_safe
from app.duxa.constants import TENANT_PLANS, TENANT_STATUSES
from app.duxa.db import db_session, get_or_404
from app.duxa.models import User
from app.duxa.modules.billing.models import Invoice, Subscription
from app.duxa.modules.catalog.models import Product
from app.duxa.modules.inventory.models import HardwareInventoryItem
from app.duxa.modules.tenants.models import Tenant
from app.duxa.modules.tenants.service import (
    TenantCreationError,
    check_slug_availability,
    create_tenant,
    generate_slug,
    reset_tenant_password,
    toggle_tenant_status,
    update_tenant_general_info,
    update_tenant_settings,
    validate_tenant_create_payload,
)
from app.duxa.rbac import require_permission
from app.duxa.utils import ServiceError

bp = Blueprint("tenants", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


# ---------- List ----------
@bp.get("")
@require_permission("tenants.view")
def tenants_list():
    s = db_session()
    search = (request.args.get("q") or "").strip()
    status_filter = (request.args.get("status") or "").strip()
    try:
        page = max(1, int(request.args.get("page") or 1))
    except ValueError:
        page = 1
    per_page = 25

    q = s.query(Tenant)
    if search:
        like = f"%{search}%"
        q = q.filter(or_(Tenant.name.ilike(like), Tenant.slug.ilike(like), Tenant.contact_email.ilike(like)))
    if status_filter in TENANT_STATUSES:
        q = q.filter(Tenant.status == status_filter)

    total = q.count()
    tenants = q.order_by(Tenant.created_at.desc(), Tenant.id.desc()).offset((page - 1) * per_page).limit(per_page).all()
    has_prev = page > 1
    has_next = page * per_page < total
    filters_for_urls = {k: v for k, v in {"q": search, "status": status_filter}.items() if v}
    prev_url = url_for("tenants.tenants_list", page=page - 1, **filters_for_urls) if has_prev else None
    next_url = url_for("tenants.tenants_list", page=page + 1, **filters_for_urls) if has_next else None

    return render_template(
        "super_admin/tenants/list.html",
        tenants=tenants,
        search=search,
        status_filter=status_filter,
        statuses=TENANT_STATUSES,
        total=total,
        page=page,
        prev_url=prev_url,
        next_url=next_url,
    )


# ---------- New ----------
@bp.get("/new")
@require_permission("tenants.manage")
def tenants_new_get():
    return render_template("super_admin/tenants/new.html", plans=TENANT_PLANS)


@bp.get("/slug-check")
@require_permission("tenants.manage")
def tenants_slug_check():
    raw = (request.args.get("slug") or "").strip()
    slug = generate_slug(raw)
    if not slug:
        return jsonify({"slug": "", "available": False, "suggestion": None})
    available, suggestion = check_slug_availability(db_session(), slug)
    return jsonify({"slug": slug, "available": available, "suggestion": suggestion})


@bp.post("/new")
@require_permission("tenants.manage")
def tenants_new_post():
    s = db_session()
    u = _current_user()

    payload = {
        "name": request.form.get("name"),
        "commercial_name": request.form.get("commercial_name"),
        "slug": (request.form.get("slug") or "").strip() or generate_slug(request.form.get("name") or ""),
        "plan": request.form.get("plan"),
        "contact_phone": request.form.get("contact_phone"),
        "admin_full_name": request.form.get("admin_full_name"),
        "admin_email": request.form.get("admin_email"),
        "admin_password": request.form.get("admin_password"),
    }

    errors = validate_tenant_create_payload(payload)
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("tenants.tenants_new_get"))

    try:
        tenant = create_tenant(s, payload, u)
        s.commit()
    except ServiceError as e:
        s.rollback()
        flash(str(e), "danger")
        return redirect(url_for("tenants.tenants_new_get"))
    except TenantCreationError as e:
        s.rollback()
        log_system_event_safe(
            actor=u,
            event_type="TENANT_CREATE_FAILED",
            severity="ERROR",
            message=str(e),
            metadata={"slug": payload["slug"], "admin_email": (payload["admin_email"] or "").strip().lower()},
        )
        flash("Restaurant could not be created. No partial data was kept.", "danger")
        return redirect(url_for("tenants.tenants_new_get"))

    from flask import current_app
    from app.duxa.mail import send_tenant_welcome_email

    ok, detail = send_tenant_welcome_email(
        tenant.contact_email,
        tenant_name=tenant.display_name,
        admin_name=(payload["admin_full_name"] or "").strip(),
        login_url=f"{current_app.config['SITE_URL']}{url_for('auth.login_get')}",
    )
    if not ok:
        current_app.logger.warning("Welcome mail for tenant_id=%s not delivered: %s", tenant.id, detail)

    flash(f"Restaurant '{tenant.name}' created.", "success")
    return redirect(url_for("tenants.tenant_detail", tenant_id=tenant.id))


# ---------- Detail ----------
@bp.get("/<int:tenant_id>")
@require_permission("tenants.view")
def tenant_detail(tenant_id: int):
    s = db_session()
    tenant = get_or_404(s, Tenant, tenant_id)

    subscriptions = (
        s.query(Subscription)
        .filter(Subscription.tenant_id == tenant.id)
        .order_by(Subscription.contract_start_date.desc(), Subscription.id.desc())
        .all()
    )
    hardware = (
        s.query(HardwareInventoryItem)
        .filter(HardwareInventoryItem.tenant_id == tenant.id)
        .order_by(HardwareInventoryItem.assignment_date.desc())
        .all()
    )
    invoices = s.query(Invoice).filter(Invoice.tenant_id == tenant.id).order_by(Invoice.issue_date.desc()).all()
    subscription_products = (
        s.query(Product).filter(Product.type == "subscription", Product.is_active.is_(True)).order_by(Product.name).all()
    )
    hardware_products = (
        s.query(Product).filter(Product.type == "hardware", Product.is_active.is_(True)).order_by(Product.name).all()
    )
    in_stock = (
        s.query(HardwareInventoryItem)
        .filter(HardwareInventoryItem.status == "in_stock")
        .order_by(HardwareInventoryItem.serial_number)
        .all()
    )

    return render_template(
        "super_admin/tenants/detail.html",
        tenant=tenant,
        subscriptions=subscriptions,
        hardware=hardware,
        invoices=invoices,
        subscription_products=subscription_products,
        hardware_products=hardware_products,
        in_stock=in_stock,
        today=date.today(),
    )


# ---------- Edits ----------
@bp.post("/<int:tenant_id>/general")
@require_permission("tenants.manage")
def tenant_general_post(tenant_id: int):
    s = db_session()
    u = _current_user()
    tenant = get_or_404(s, Tenant, tenant_id)
    payload = {
        k: request.form.get(k)
        for k in (
            "name",
            "commercial_name",
            "contact_phone",
            "contact_email",
            "contact_address",
            "address",
            "country_code",
            "legal_name",
            "tax_id",
        )
    }
    errors = update_tenant_general_info(s, tenant, payload, u)
    if errors:
        s.rollback()
        for e in errors:
            flash(e, "danger")
    else:
        s.commit()
        flash("Restaurant information updated.", "success")
    return redirect(url_for("tenants.tenant_detail", tenant_id=tenant_id))


@bp.post("/<int:tenant_id>/toggle-status")
@require_permission("tenants.manage")
def tenant_toggle_status(tenant_id: int):
    s = db_session()
    u = _current_user()
    tenant = get_or_404(s, Tenant, tenant_id)
    new_status = toggle_tenant_status(s, tenant, u)
    s.commit()
    flash(f"Restaurant is now {new_status}.", "success")
    return redirect(url_for("tenants.tenant_detail", tenant_id=tenant_id))


@bp.post("/<int:tenant_id>/settings")
@require_permission("tenants.manage")
def tenant_settings_post(tenant_id: int):
    s = db_session()
    u = _current_user()
    tenant = get_or_404(s, Tenant, tenant_id)
    errors = update_tenant_settings(
        s, tenant, {"slug": request.form.get("slug"), "is_online": request.form.get("is_online")}, u
    )
    if errors:
        s.rollback()
        for e in errors:
            flash(e, "danger")
    else:
        s.commit()
        flash("Restaurant settings updated.", "success")
    return redirect(url_for("tenants.tenant_detail", tenant_id=tenant_id))


@bp.post("/<int:tenant_id>/reset-password")
@require_permission("tenants.manage")
def tenant_reset_password(tenant_id: int):
    s = db_session()
    u = _current_user()
    tenant = get_or_404(s, Tenant, tenant_id)
    try:
        ok, detail = reset_tenant_password(s, tenant, u)
    except ServiceError as e:
        flash(str(e), "danger")
        return redirect(url_for("tenants.tenant_detail", tenant_id=tenant_id))
    if ok:
        flash(f"Password reset link sent to {tenant.contact_email}.", "success")
    else:
        flash(f"Reset link created but the email could not be sent: {detail}", "warning")
    return redirect(url_for("tenants.tenant_detail", tenant_id=tenant_id))
