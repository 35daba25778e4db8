from __future__ import annotations

from flask import Blueprint, flash, g, redirect, render_template, request, url_for

from app.duxa.db import db_session, tenant_row_or_404
from app.duxa.models import User
from app.duxa.modules.menu.service import list_menu_products
from app.duxa.modules.orders.models import Order
from app.duxa.modules.orders.service import (
    NEXT_STATUS,
    ORDER_CHANNELS,
    ORDER_STATUSES,
    advance_order_status,
    create_order,
    list_orders,
)
from app.duxa.rbac import current_tenant_id, require_permission
from app.duxa.utils import ServiceError

bp = Blueprint("orders", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


@bp.get("")
@require_permission("orders.manage")
def orders_list():
    s = db_session()
    tenant_id = current_tenant_id()
    status_filter = (request.args.get("status") or "").strip()
    if status_filter not in ORDER_STATUSES:
        status_filter = ""
    try:
        page = max(1, int(request.args.get("page") or 1))
    except ValueError:
        page = 1
    per_page = 50

    q = list_orders(s, tenant_id, status_filter or None)
    total = q.count()
    orders = q.offset((page - 1) * per_page).limit(per_page).all()
    filters_for_urls = {"status": status_filter} if status_filter else {}
    prev_url = url_for("orders.orders_list", page=page - 1, **filters_for_urls) if page > 1 else None
    next_url = url_for("orders.orders_list", page=page + 1, **filters_for_urls) if page * per_page < total else None

    return render_template(
        "dashboard/orders.html",
        orders=orders,
        statuses=ORDER_STATUSES,
        channels=ORDER_CHANNELS,
        next_status=NEXT_STATUS,
        status_filter=status_filter,
        products=[p for p in list_menu_products(s, tenant_id) if p.is_active],
        total=total,
        prev_url=prev_url,
        next_url=next_url,
    )


@bp.post("/new")
@require_permission("orders.manage")
def order_new():
    s = db_session()
    tenant_id = current_tenant_id()
    items = [
        {"menu_product_id": pid, "quantity": qty}
        for pid, qty in zip(request.form.getlist("menu_product_id"), request.form.getlist("quantity"))
        if pid
    ]
    payload = {
        "channel": request.form.get("channel"),
        "customer_name": request.form.get("customer_name"),
        "table_label": request.form.get("table_label"),
        "notes": request.form.get("notes"),
        "items": items,
    }
    try:
        order = create_order(s, tenant_id, payload, _current_user())
    except ServiceError as e:
        s.rollback()
        flash(str(e), "danger")
        return redirect(url_for("orders.orders_list"))
    s.commit()
    flash(f"Order #{order.order_number} created.", "success")
    return redirect(url_for("orders.orders_list"))


@bp.post("/<int:order_id>/status")
@require_permission("orders.manage")
def order_status(order_id: int):
    s = db_session()
    order = tenant_row_or_404(s, Order, order_id, current_tenant_id())
    target = (request.form.get("status") or "").strip()
    try:
        advance_order_status(s, order, target, _current_user())
    except ServiceError as e:
        flash(str(e), "danger")
        return redirect(url_for("orders.orders_list", status=request.form.get("filter") or None))
    s.commit()
    flash(f"Order #{order.order_number} is now {target}.", "success")
    return redirect(url_for("orders.orders_list", status=request.form.get("filter") or None))
