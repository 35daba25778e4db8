from __future__ import annotations

from flask import Blueprint, abort, flash, g, redirect, render_template, request, url_for

from app.duxa.constants import BILLING_CYCLES, PRODUCT_TYPES
from app.duxa.db import db_session, get_or_404
from app.duxa.models import User
from app.duxa.modules.catalog.models import Product, ProductOption
from app.duxa.modules.catalog.service import (
    add_product_option,
    create_product,
    delete_product,
    list_products_with_sales,
    remove_product_option,
    total_sales,
    update_product,
    validate_product_payload,
)
from app.duxa.rbac import require_permission
from app.duxa.utils import ServiceError

bp = Blueprint("catalog", __name__)

_PRODUCT_FIELDS = (
    "name",
    "description",
    "image_url",
    "type",
    "billing_cycle",
    "base_price",
    "min_sales_price",
    "tax_rate",
    "current_stock",
)
_PRODUCT_FLAGS = ("stock_track", "is_public", "is_active")


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _product_payload() -> dict:
    payload = {k: request.form.get(k) for k in _PRODUCT_FIELDS}
    # unchecked checkboxes are absent from the form; the hidden "<flag>_present" marks them as submitted
    for flag in _PRODUCT_FLAGS:
        if f"{flag}_present" in request.form or flag in request.form:
            payload[flag] = request.form.get(flag) or "0"
    return payload


@bp.get("")
@require_permission("catalog.manage")
def catalog_list():
    s = db_session()
    show_archived = request.args.get("archived") == "1"
    rows = list_products_with_sales(s, include_inactive=show_archived)
    return render_template(
        "super_admin/catalog/list.html",
        rows=rows,
        show_archived=show_archived,
        product_types=PRODUCT_TYPES,
        billing_cycles=BILLING_CYCLES,
    )


@bp.post("/new")
@require_permission("catalog.manage")
def catalog_new_post():
    s = db_session()
    u = _current_user()
    payload = _product_payload()
    errors = validate_product_payload(payload)
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("catalog.catalog_list"))
    product = create_product(s, payload, u)
    s.commit()
    flash(f"Product '{product.name}' created.", "success")
    return redirect(url_for("catalog.product_detail", product_id=product.id))


@bp.get("/<int:product_id>")
@require_permission("catalog.manage")
def product_detail(product_id: int):
    s = db_session()
    product = get_or_404(s, Product, product_id)
    option_ids = {o.child_product_id for o in product.options}
    candidates = (
        s.query(Product)
        .filter(Product.id != product.id, Product.is_active.is_(True))
        .order_by(Product.name)
        .all()
    )
    return render_template(
        "super_admin/catalog/detail.html",
        product=product,
        sold=total_sales(s, product.id),
        option_candidates=[p for p in candidates if p.id not in option_ids],
        product_types=PRODUCT_TYPES,
        billing_cycles=BILLING_CYCLES,
    )


@bp.post("/<int:product_id>/edit")
@require_permission("catalog.manage")
def product_edit_post(product_id: int):
    s = db_session()
    u = _current_user()
    product = get_or_404(s, Product, product_id)
    payload = _product_payload()
    errors = validate_product_payload(payload, current=product)
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("catalog.product_detail", product_id=product_id))
    update_product(s, product, payload, u)
    s.commit()
    flash("Product updated.", "success")
    return redirect(url_for("catalog.product_detail", product_id=product_id))


@bp.post("/<int:product_id>/delete")
@require_permission("catalog.manage")
def product_delete(product_id: int):
    s = db_session()
    u = _current_user()
    product = get_or_404(s, Product, product_id)
    name = product.name
    outcome = delete_product(s, product, u)
    s.commit()
    if outcome == "archived":
        flash(f"'{name}' has sales history and was archived instead of deleted.", "warning")
    else:
        flash(f"'{name}' deleted.", "success")
    return redirect(url_for("catalog.catalog_list"))


@bp.post("/<int:product_id>/options")
@require_permission("catalog.manage")
def product_option_add(product_id: int):
    s = db_session()
    u = _current_user()
    product = get_or_404(s, Product, product_id)
    try:
        child_id = int(request.form.get("child_product_id") or 0)
    except ValueError:
        child_id = 0
    try:
        add_product_option(s, product, child_id, request.form.get("is_required") == "1", u)
    except ServiceError as e:
        s.rollback()
        flash(str(e), "danger")
        return redirect(url_for("catalog.product_detail", product_id=product_id))
    s.commit()
    flash("Option added.", "success")
    return redirect(url_for("catalog.product_detail", product_id=product_id))


@bp.post("/<int:product_id>/options/<int:option_id>/delete")
@require_permission("catalog.manage")
def product_option_remove(product_id: int, option_id: int):
    s = db_session()
    u = _current_user()
    option = get_or_404(s, ProductOption, option_id)
    if option.parent_product_id != product_id:
        abort(404)
    remove_product_option(s, option, u)
    s.commit()
    flash("Option removed.", "success")
    return redirect(url_for("catalog.product_detail", product_id=product_id))
