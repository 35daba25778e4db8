from __future__ import annotations

from flask import Blueprint, current_app, flash, g, redirect, render_template, request, url_for

from app.duxa.db import db_session, tenant_row_or_404
from app.duxa.models import User
from app.duxa.modules.menu.models import MenuCategory, MenuProduct, ProductModifier
from app.duxa.modules.menu.service import (
    MODIFIER_TYPES,
    create_category,
    create_menu_product,
    create_modifier,
    delete_category,
    delete_menu_product,
    delete_modifier,
    list_categories,
    list_menu_products,
    list_modifiers,
    parse_modifier_options,
    toggle_category,
    toggle_menu_product,
    update_category,
    update_menu_product,
    update_modifier,
    validate_category_payload,
    validate_menu_product_payload,
    validate_modifier_payload,
)
from app.duxa.rbac import current_tenant_id, require_permission
from app.duxa.storage import StorageError, discard_replaced, storage_from_config, store_image
from app.duxa.utils import ServiceError

bp = Blueprint("menu", __name__)

_CATEGORY_FIELDS = ("name", "description", "sort_order", "is_active")
_PRODUCT_FIELDS = ("name", "description", "price", "category_id", "modifier_id", "sort_order", "is_active")
_TABS = ("categories", "products", "modifiers")


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _back(tab: str):
    return redirect(url_for("menu.menu_index", tab=tab))


def _upload_image(tenant_id: int, folder: str) -> tuple[str | None, str | None]:
    """Store the optional "image" upload. Returns (key, error)."""
    upload = request.files.get("image")
    if not upload or not upload.filename:
        return None, None
    try:
        key = store_image(storage_from_config(current_app.config), f"tenants/{tenant_id}/{folder}", upload)
    except StorageError as e:
        return None, str(e)
    return key, None


def _flash_errors(errors: list[str]) -> None:
    for e in errors:
        flash(e, "danger")


def _drop_old_image(old_key: str | None, new_key: str | None) -> None:
    try:
        discard_replaced(storage_from_config(current_app.config), old_key, new_key)
    except StorageError:
        current_app.logger.warning("Could not remove replaced image %s", old_key)


@bp.get("")
@require_permission("menu.manage")
def menu_index():
    s = db_session()
    tenant_id = current_tenant_id()
    tab = request.args.get("tab") or "categories"
    if tab not in _TABS:
        tab = "categories"
    try:
        category_filter = int(request.args.get("category_id") or 0) or None
    except ValueError:
        category_filter = None
    return render_template(
        "dashboard/menu.html",
        tab=tab,
        categories=list_categories(s, tenant_id),
        products=list_menu_products(s, tenant_id, category_filter),
        modifiers=list_modifiers(s, tenant_id),
        category_filter=category_filter,
        modifier_types=MODIFIER_TYPES,
    )


# ---------- Categories ----------
@bp.post("/categories/new")
@require_permission("menu.manage")
def category_new():
    s = db_session()
    tenant_id = current_tenant_id()
    payload = {k: request.form.get(k) for k in _CATEGORY_FIELDS}
    payload["is_active"] = payload.get("is_active") or "0"
    errors = validate_category_payload(payload)
    image_key, image_error = _upload_image(tenant_id, "categories")
    if image_error:
        errors.append(image_error)
    if errors:
        _flash_errors(errors)
        return _back("categories")
    category = create_category(s, tenant_id, payload, _current_user(), image_key=image_key)
    s.commit()
    flash(f"Category '{category.name}' created.", "success")
    return _back("categories")


@bp.post("/categories/<int:category_id>/edit")
@require_permission("menu.manage")
def category_edit(category_id: int):
    s = db_session()
    tenant_id = current_tenant_id()
    category = tenant_row_or_404(s, MenuCategory, category_id, tenant_id)
    old_image = category.image_key
    payload = {k: request.form.get(k) for k in _CATEGORY_FIELDS}
    errors = validate_category_payload(payload)
    image_key, image_error = _upload_image(tenant_id, "categories")
    if image_error:
        errors.append(image_error)
    if errors:
        _flash_errors(errors)
        return _back("categories")
    update_category(s, category, payload, _current_user(), image_key=image_key)
    s.commit()
    _drop_old_image(old_image, image_key)
    flash("Category updated.", "success")
    return _back("categories")


@bp.post("/categories/<int:category_id>/toggle")
@require_permission("menu.manage")
def category_toggle(category_id: int):
    s = db_session()
    category = tenant_row_or_404(s, MenuCategory, category_id, current_tenant_id())
    toggle_category(s, category, _current_user())
    s.commit()
    return _back("categories")


@bp.post("/categories/<int:category_id>/delete")
@require_permission("menu.manage")
def category_delete(category_id: int):
    s = db_session()
    category = tenant_row_or_404(s, MenuCategory, category_id, current_tenant_id())
    try:
        delete_category(s, category, _current_user())
    except ServiceError as e:
        s.rollback()
        flash(str(e), "danger")
        return _back("categories")
    s.commit()
    flash("Category deleted.", "success")
    return _back("categories")


# ---------- Products ----------
@bp.post("/products/new")
@require_permission("menu.manage")
def product_new():
    s = db_session()
    tenant_id = current_tenant_id()
    payload = {k: request.form.get(k) for k in _PRODUCT_FIELDS}
    payload["is_active"] = payload.get("is_active") or "0"
    errors = validate_menu_product_payload(s, tenant_id, payload)
    image_key, image_error = _upload_image(tenant_id, "products")
    if image_error:
        errors.append(image_error)
    if errors:
        _flash_errors(errors)
        return _back("products")
    product = create_menu_product(s, tenant_id, payload, _current_user(), image_key=image_key)
    s.commit()
    flash(f"Product '{product.name}' created.", "success")
    return _back("products")


@bp.post("/products/<int:product_id>/edit")
@require_permission("menu.manage")
def product_edit(product_id: int):
    s = db_session()
    tenant_id = current_tenant_id()
    product = tenant_row_or_404(s, MenuProduct, product_id, tenant_id)
    old_image = product.image_key
    payload = {k: request.form.get(k) for k in _PRODUCT_FIELDS}
    errors = validate_menu_product_payload(s, tenant_id, payload)
    image_key, image_error = _upload_image(tenant_id, "products")
    if image_error:
        errors.append(image_error)
    if errors:
        _flash_errors(errors)
        return _back("products")
    update_menu_product(s, product, payload, _current_user(), image_key=image_key)
    s.commit()
    _drop_old_image(old_image, image_key)
    flash("Product updated.", "success")
    return _back("products")


@bp.post("/products/<int:product_id>/toggle")
@require_permission("menu.manage")
def product_toggle(product_id: int):
    s = db_session()
    product = tenant_row_or_404(s, MenuProduct, product_id, current_tenant_id())
    toggle_menu_product(s, product, _current_user())
    s.commit()
    return _back("products")


@bp.post("/products/<int:product_id>/delete")
@require_permission("menu.manage")
def product_delete(product_id: int):
    s = db_session()
    product = tenant_row_or_404(s, MenuProduct, product_id, current_tenant_id())
    delete_menu_product(s, product, _current_user())
    s.commit()
    flash("Product deleted.", "success")
    return _back("products")


# ---------- Modifiers ----------
def _modifier_payload() -> tuple[dict, list[str]]:
    options, errors = parse_modifier_options(
        request.form.getlist("option_name"),
        request.form.getlist("option_price"),
    )
    payload = {
        "name": request.form.get("name"),
        "type": request.form.get("type"),
        "is_required": request.form.get("is_required"),
        "options": options,
    }
    return payload, errors + validate_modifier_payload(payload)


@bp.post("/modifiers/new")
@require_permission("menu.manage")
def modifier_new():
    s = db_session()
    tenant_id = current_tenant_id()
    payload, errors = _modifier_payload()
    if errors:
        _flash_errors(errors)
        return _back("modifiers")
    modifier = create_modifier(s, tenant_id, payload, _current_user())
    s.commit()
    flash(f"Modifier '{modifier.name}' created.", "success")
    return _back("modifiers")


@bp.post("/modifiers/<int:modifier_id>/edit")
@require_permission("menu.manage")
def modifier_edit(modifier_id: int):
    s = db_session()
    modifier = tenant_row_or_404(s, ProductModifier, modifier_id, current_tenant_id())
    payload, errors = _modifier_payload()
    if errors:
        _flash_errors(errors)
        return _back("modifiers")
    update_modifier(s, modifier, payload, _current_user())
    s.commit()
    flash("Modifier updated.", "success")
    return _back("modifiers")


@bp.post("/modifiers/<int:modifier_id>/delete")
@require_permission("menu.manage")
def modifier_delete(modifier_id: int):
    s = db_session()
    modifier = tenant_row_or_404(s, ProductModifier, modifier_id, current_tenant_id())
    delete_modifier(s, modifier, _current_user())
    s.commit()
    flash("Modifier deleted.", "success")
    return _back("modifiers")
