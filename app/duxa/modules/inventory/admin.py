from __future__ import annotations

from flask import Blueprint, flash, g, redirect, render_template, request, url_for

from app.duxa.constants import HARDWARE_STATUSES
from app.duxa.db import db_session, get_or_404
from app.duxa.models import User
from app.duxa.modules.inventory.models import HardwareInventoryItem
from app.duxa.modules.inventory.service import (
    create_item,
    inventory_stats,
    query_inventory,
    update_item,
    validate_item_payload,
)
from app.duxa.rbac import require_permission
from app.duxa.utils import ServiceError

bp = Blueprint("inventory", __name__)

_ITEM_FIELDS = ("serial_number", "device_type", "model", "manufacturer", "status", "purchase_date", "notes")


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


@bp.get("")
@require_permission("inventory.manage")
def inventory_list():
    s = db_session()
    status_filter = (request.args.get("status") or "").strip()
    search = (request.args.get("q") or "").strip()
    try:
        page = max(1, int(request.args.get("page") or 1))
    except ValueError:
        page = 1
    per_page = 50

    q = query_inventory(s, status=status_filter, search=search)
    total = q.count()
    items = (
        q.order_by(HardwareInventoryItem.created_at.desc(), HardwareInventoryItem.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )
    filters_for_urls = {k: v for k, v in {"status": status_filter, "q": search}.items() if v}
    prev_url = url_for("inventory.inventory_list", page=page - 1, **filters_for_urls) if page > 1 else None
    next_url = url_for("inventory.inventory_list", page=page + 1, **filters_for_urls) if page * per_page < total else None

    return render_template(
        "super_admin/inventory/list.html",
        items=items,
        stats=inventory_stats(s),
        statuses=HARDWARE_STATUSES,
        status_filter=status_filter,
        search=search,
        total=total,
        prev_url=prev_url,
        next_url=next_url,
    )


@bp.post("/new")
@require_permission("inventory.manage")
def inventory_new_post():
    s = db_session()
    u = _current_user()
    payload = {k: request.form.get(k) for k in _ITEM_FIELDS}
    errors = validate_item_payload(payload, is_create=True)
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("inventory.inventory_list"))
    try:
        item = create_item(s, payload, u)
    except ServiceError as e:
        flash(str(e), "danger")
        return redirect(url_for("inventory.inventory_list"))
    s.commit()
    flash(f"Device {item.serial_number} added.", "success")
    return redirect(url_for("inventory.inventory_list"))


@bp.get("/<int:item_id>")
@require_permission("inventory.manage")
def inventory_detail(item_id: int):
    s = db_session()
    item = get_or_404(s, HardwareInventoryItem, item_id)
    return render_template("super_admin/inventory/detail.html", item=item, statuses=HARDWARE_STATUSES)


@bp.post("/<int:item_id>/edit")
@require_permission("inventory.manage")
def inventory_edit_post(item_id: int):
    s = db_session()
    u = _current_user()
    item = get_or_404(s, HardwareInventoryItem, item_id)
    payload = {k: request.form.get(k) for k in _ITEM_FIELDS if k in request.form and k != "serial_number"}
    if payload.get("status") == item.status:
        payload.pop("status")
    errors = validate_item_payload(payload, is_create=False)
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("inventory.inventory_detail", item_id=item_id))
    update_item(s, item, payload, u)
    s.commit()
    flash("Device updated.", "success")
    return redirect(url_for("inventory.inventory_detail", item_id=item_id))
