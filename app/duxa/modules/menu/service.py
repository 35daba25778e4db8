from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from app.duxa.audit import record_event
from app.duxa.db import tenant_row
from app.duxa.utils import ServiceError, clean, major_to_minor, parse_bool, parse_int

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.duxa.models import User
    from app.duxa.modules.menu.models import MenuCategory, MenuProduct, ProductModifier

MODIFIER_TYPES = ("single", "multiple")


def _log(s: "Session", actor: "User", tenant_id: int, message: str, metadata: dict) -> None:
    record_event(s, actor=actor, event_type="DATA_MUTATION", message=message, tenant_id=tenant_id, metadata=metadata)


# ---------- Categories ----------
def list_categories(s: "Session", tenant_id: int) -> list["MenuCategory"]:
    from app.duxa.modules.menu.models import MenuCategory

    return (
        s.query(MenuCategory)
        .filter(MenuCategory.tenant_id == tenant_id)
        .order_by(MenuCategory.sort_order.asc(), MenuCategory.id.asc())
        .all()
    )


def validate_category_payload(payload: dict) -> list[str]:
    errors = []
    if not clean(payload.get("name")):
        errors.append("Category name is required.")
    try:
        order = parse_int(payload.get("sort_order"))
        if order is not None and order < 0:
            errors.append("Sort order cannot be negative.")
    except ValueError:
        errors.append("Sort order must be a whole number.")
    return errors


def create_category(s: "Session", tenant_id: int, payload: dict, actor: "User", *, image_key: str | None = None) -> "MenuCategory":
    from app.duxa.modules.menu.models import MenuCategory

    category = MenuCategory(
        tenant_id=tenant_id,
        name=clean(payload.get("name")),
        description=clean(payload.get("description")),
        image_key=image_key,
        sort_order=parse_int(payload.get("sort_order")) or 0,
        is_active=parse_bool(payload.get("is_active", "1")),
    )
    s.add(category)
    s.flush()
    _log(s, actor, tenant_id, f"Menu category '{category.name}' created", {"category_id": category.id})
    return category


def update_category(s: "Session", category: "MenuCategory", payload: dict, actor: "User", *, image_key: str | None = None) -> None:
    category.name = clean(payload.get("name"))
    category.description = clean(payload.get("description"))
    category.sort_order = parse_int(payload.get("sort_order")) or 0
    if image_key:
        category.image_key = image_key
    _log(s, actor, category.tenant_id, f"Menu category '{category.name}' updated", {"category_id": category.id})


def toggle_category(s: "Session", category: "MenuCategory", actor: "User") -> bool:
    category.is_active = not category.is_active
    _log(
        s,
        actor,
        category.tenant_id,
        f"Menu category '{category.name}' {'activated' if category.is_active else 'hidden'}",
        {"category_id": category.id, "is_active": category.is_active},
    )
    return category.is_active


def delete_category(s: "Session", category: "MenuCategory", actor: "User") -> None:
    from app.duxa.modules.menu.models import MenuProduct

    in_use = s.query(MenuProduct.id).filter(MenuProduct.category_id == category.id).count()
    if in_use:
        raise ServiceError(f"'{category.name}' still has {in_use} product(s). Move or delete them first.")
    _log(s, actor, category.tenant_id, f"Menu category '{category.name}' deleted", {"category_id": category.id})
    s.delete(category)


# ---------- Products ----------
def list_menu_products(s: "Session", tenant_id: int, category_id: int | None = None) -> list["MenuProduct"]:
    from app.duxa.modules.menu.models import MenuProduct

    q = s.query(MenuProduct).filter(MenuProduct.tenant_id == tenant_id)
    if category_id:
        q = q.filter(MenuProduct.category_id == category_id)
    return q.order_by(MenuProduct.sort_order.asc(), MenuProduct.id.asc()).all()


def validate_menu_product_payload(s: "Session", tenant_id: int, payload: dict) -> list[str]:
    from app.duxa.modules.menu.models import MenuCategory, ProductModifier

    errors = []
    if not clean(payload.get("name")):
        errors.append("Product name is required.")
    try:
        price = major_to_minor(payload.get("price"))
        if price is None:
            errors.append("Price is required.")
        elif price < 0:
            errors.append("Price cannot be negative.")
    except ValueError:
        errors.append("Price must be a number.")
    try:
        category_id = parse_int(payload.get("category_id"))
    except ValueError:
        category_id = None
    if not category_id or tenant_row(s, MenuCategory, category_id, tenant_id) is None:
        errors.append("Choose a category.")
    try:
        modifier_id = parse_int(payload.get("modifier_id"))
    except ValueError:
        modifier_id = -1
    if modifier_id is not None and tenant_row(s, ProductModifier, modifier_id, tenant_id) is None:
        errors.append("Unknown modifier group.")
    try:
        parse_int(payload.get("sort_order"))
    except ValueError:
        errors.append("Sort order must be a whole number.")
    return errors


def create_menu_product(s: "Session", tenant_id: int, payload: dict, actor: "User", *, image_key: str | None = None) -> "MenuProduct":
    from app.duxa.modules.menu.models import MenuProduct

    now = datetime.utcnow()
    product = MenuProduct(
        tenant_id=tenant_id,
        category_id=parse_int(payload.get("category_id")),
        modifier_id=parse_int(payload.get("modifier_id")),
        name=clean(payload.get("name")),
        description=clean(payload.get("description")),
        price=major_to_minor(payload.get("price")),
        image_key=image_key,
        sort_order=parse_int(payload.get("sort_order")) or 0,
        is_active=parse_bool(payload.get("is_active", "1")),
        created_at=now,
        updated_at=now,
    )
    s.add(product)
    s.flush()
    _log(s, actor, tenant_id, f"Menu product '{product.name}' created", {"product_id": product.id, "price": product.price})
    return product


def update_menu_product(s: "Session", product: "MenuProduct", payload: dict, actor: "User", *, image_key: str | None = None) -> None:
    changes = {}
    fields = {
        "category_id": parse_int(payload.get("category_id")),
        "modifier_id": parse_int(payload.get("modifier_id")),
        "name": clean(payload.get("name")),
        "description": clean(payload.get("description")),
        "price": major_to_minor(payload.get("price")),
        "sort_order": parse_int(payload.get("sort_order")) or 0,
    }
    if image_key:
        fields["image_key"] = image_key
    for field, new in fields.items():
        old = getattr(product, field)
        if new != old:
            changes[field] = {"old": old, "new": new}
            setattr(product, field, new)
    product.updated_at = datetime.utcnow()
    _log(s, actor, product.tenant_id, f"Menu product '{product.name}' updated", {"product_id": product.id, "changes": changes})


def toggle_menu_product(s: "Session", product: "MenuProduct", actor: "User") -> bool:
    product.is_active = not product.is_active
    product.updated_at = datetime.utcnow()
    _log(
        s,
        actor,
        product.tenant_id,
        f"Menu product '{product.name}' {'activated' if product.is_active else 'hidden'}",
        {"product_id": product.id, "is_active": product.is_active},
    )
    return product.is_active


def delete_menu_product(s: "Session", product: "MenuProduct", actor: "User") -> None:
    _log(s, actor, product.tenant_id, f"Menu product '{product.name}' deleted", {"product_id": product.id})
    s.delete(product)


# ---------- Modifiers ----------
def list_modifiers(s: "Session", tenant_id: int) -> list["ProductModifier"]:
    from app.duxa.modules.menu.models import ProductModifier

    return s.query(ProductModifier).filter(ProductModifier.tenant_id == tenant_id).order_by(ProductModifier.name).all()


def parse_modifier_options(names: list[str], prices: list[str]) -> tuple[list[dict], list[str]]:
    """Pair the repeated option_name/option_price form fields. Blank names are skipped."""
    options: list[dict] = []
    errors: list[str] = []
    for i, raw_name in enumerate(names):
        name = clean(raw_name)
        if not name:
            continue
        raw_price = prices[i] if i < len(prices) else None
        try:
            price = major_to_minor(raw_price) or 0
        except ValueError:
            errors.append(f"Price for option '{name}' must be a number.")
            continue
        if price < 0:
            errors.append(f"Price for option '{name}' cannot be negative.")
            continue
        options.append({"name": name, "price": price})
    return options, errors


def validate_modifier_payload(payload: dict) -> list[str]:
    errors = []
    if not clean(payload.get("name")):
        errors.append("Modifier name is required.")
    if payload.get("type") not in MODIFIER_TYPES:
        errors.append(f"Modifier type must be one of: {', '.join(MODIFIER_TYPES)}")
    if not payload.get("options"):
        errors.append("Add at least one option.")
    return errors


def create_modifier(s: "Session", tenant_id: int, payload: dict, actor: "User") -> "ProductModifier":
    from app.duxa.modules.menu.models import ProductModifier

    modifier = ProductModifier(
        tenant_id=tenant_id,
        name=clean(payload.get("name")),
        type=payload["type"],
        is_required=parse_bool(payload.get("is_required")),
        options=list(payload["options"]),
    )
    s.add(modifier)
    s.flush()
    _log(s, actor, tenant_id, f"Modifier '{modifier.name}' created", {"modifier_id": modifier.id})
    return modifier


def update_modifier(s: "Session", modifier: "ProductModifier", payload: dict, actor: "User") -> None:
    modifier.name = clean(payload.get("name"))
    modifier.type = payload["type"]
    modifier.is_required = parse_bool(payload.get("is_required"))
    modifier.options = list(payload["options"])
    _log(s, actor, modifier.tenant_id, f"Modifier '{modifier.name}' updated", {"modifier_id": modifier.id})


def delete_modifier(s: "Session", modifier: "ProductModifier", actor: "User") -> None:
    from app.duxa.modules.menu.models import MenuProduct

    s.query(MenuProduct).filter(MenuProduct.modifier_id == modifier.id).update(
        {MenuProduct.modifier_id: None}, synchronize_session=False
    )
    _log(s, actor, modifier.tenant_id, f"Modifier '{modifier.name}' deleted", {"modifier_id": modifier.id})
    s.delete(modifier)
