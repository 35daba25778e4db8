from __future__ import annotations

from flask import Blueprint, flash, g, redirect, render_template, request, url_for

from app.duxa.db import db_session, get_or_404
from app.duxa.models import User
from app.duxa.modules.billing.models import Subscription
from app.duxa.modules.billing.service import (
    assign_hardware,
    create_invoice,
    create_subscription,
    current_subscription,
    list_tenant_invoices,
    return_hardware,
    update_subscription,
    validate_subscription_payload,
)
from app.duxa.modules.inventory.models import HardwareInventoryItem
from app.duxa.modules.tenants.models import Tenant
from app.duxa.rbac import current_tenant_id, require_permission
from app.duxa.utils import ServiceError

bp = Blueprint("billing", __name__)

_SUBSCRIPTION_FIELDS = ("product_id", "contract_price", "contract_start_date", "contract_end_date", "renewal_period")


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _back_to_tenant(tenant_id: int):
    return redirect(url_for("tenants.tenant_detail", tenant_id=tenant_id))


# ---------- Super-admin: subscriptions ----------
@bp.post("/super-admin/tenants/<int:tenant_id>/subscriptions")
@require_permission("billing.manage")
def subscription_create(tenant_id: int):
    s = db_session()
    u = _current_user()
    tenant = get_or_404(s, Tenant, tenant_id)
    payload = {k: request.form.get(k) for k in _SUBSCRIPTION_FIELDS}
    errors = validate_subscription_payload(s, payload)
    if errors:
        for e in errors:
            flash(e, "danger")
        return _back_to_tenant(tenant_id)
    create_subscription(s, tenant, payload, u)
    s.commit()
    flash("Subscription created.", "success")
    return _back_to_tenant(tenant_id)


@bp.post("/super-admin/subscriptions/<int:subscription_id>/edit")
@require_permission("billing.manage")
def subscription_edit(subscription_id: int):
    s = db_session()
    u = _current_user()
    sub = get_or_404(s, Subscription, subscription_id)
    payload = {
        k: request.form.get(k)
        for k in ("contract_price", "contract_start_date", "contract_end_date", "payment_status")
        if k in request.form
    }
    errors = update_subscription(s, sub, payload, u)
    if errors:
        for e in errors:
            flash(e, "danger")
    else:
        s.commit()
        flash("Subscription updated.", "success")
    return _back_to_tenant(sub.tenant_id)


# ---------- Super-admin: hardware ----------
@bp.post("/super-admin/tenants/<int:tenant_id>/hardware")
@require_permission("billing.manage")
def hardware_assign(tenant_id: int):
    s = db_session()
    u = _current_user()
    tenant = get_or_404(s, Tenant, tenant_id)
    payload = {
        "product_id": request.form.get("product_id"),
        "serial_number": request.form.get("serial_number"),
        "addon_ids": request.form.getlist("addon_ids"),
    }
    try:
        item = assign_hardware(s, tenant, payload, u)
    except ServiceError as e:
        s.rollback()
        flash(str(e), "danger")
        return _back_to_tenant(tenant_id)
    s.commit()
    flash(f"Device {item.serial_number} assigned.", "success")
    return _back_to_tenant(tenant_id)


@bp.post("/super-admin/hardware/<int:item_id>/return")
@require_permission("billing.manage")
def hardware_return(item_id: int):
    s = db_session()
    u = _current_user()
    item = get_or_404(s, HardwareInventoryItem, item_id)
    tenant_id = item.tenant_id
    try:
        return_hardware(s, item, u)
    except ServiceError as e:
        flash(str(e), "danger")
    else:
        s.commit()
        flash(f"Device {item.serial_number} returned to stock.", "success")
    if tenant_id:
        return _back_to_tenant(tenant_id)
    return redirect(url_for("inventory.inventory_list"))


# ---------- Super-admin: invoices ----------
@bp.post("/super-admin/tenants/<int:tenant_id>/invoices")
@require_permission("billing.manage")
def invoice_create(tenant_id: int):
    s = db_session()
    u = _current_user()
    tenant = get_or_404(s, Tenant, tenant_id)
    payload = {k: request.form.get(k) for k in ("amount", "status", "due_date", "subscription_id", "description")}
    try:
        invoice = create_invoice(s, tenant, payload, u)
    except ServiceError as e:
        flash(str(e), "danger")
        return _back_to_tenant(tenant_id)
    s.commit()
    flash(f"Invoice {invoice.invoice_number} issued.", "success")
    return _back_to_tenant(tenant_id)


# ---------- Tenant dashboard ----------
@bp.get("/dashboard/billing")
@require_permission("billing.view")
def tenant_billing():
    s = db_session()
    tenant_id = current_tenant_id()
    subscriptions = (
        s.query(Subscription)
        .filter(Subscription.tenant_id == tenant_id)
        .order_by(Subscription.contract_start_date.desc())
        .all()
    )
    devices = (
        s.query(HardwareInventoryItem)
        .filter(HardwareInventoryItem.tenant_id == tenant_id)
        .order_by(HardwareInventoryItem.assignment_date.desc())
        .all()
    )
    return render_template(
        "dashboard/billing.html",
        current=current_subscription(s, tenant_id),
        subscriptions=subscriptions,
        devices=devices,
    )


@bp.get("/dashboard/settings/invoices")
@require_permission("billing.view")
def tenant_invoices():
    s = db_session()
    invoices = list_tenant_invoices(s, current_tenant_id())
    return render_template("dashboard/settings/invoices.html", invoices=invoices)
