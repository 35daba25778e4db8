from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import func

from app.duxa.audit import record_event
from app.duxa.constants import BILLING_CYCLES, PRODUCT_TYPES
from app.duxa.utils import ServiceError, clean, parse_bool, parse_decimal, parse_int

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.duxa.models import User
    from app.duxa.modules.catalog.models import Product, ProductOption


def _decimal_field(payload: dict, key: str, label: str, errors: list[str]) -> Decimal | None:
    try:
        return parse_decimal(payload.get(key))
    except ValueError:
        errors.append(f"{label} must be a number.")
        return None


def validate_product_payload(payload: dict, current: "Product | None" = None) -> list[str]:
    """
    Validate product create/update payload. For partial updates, fields missing from
    the payload fall back to `current` when checking cross-field rules.
    """
    errors: list[str] = []
    name = clean(payload.get("name"))
    if current is None and not name:
        errors.append("Name is required.")
    if "name" in payload and current is not None and not name:
        errors.append("Name cannot be empty.")

    ptype = clean(payload.get("type")) or (current.type if current else None)
    if not ptype:
        errors.append("Type is required.")
    elif ptype not in PRODUCT_TYPES:
        errors.append(f"Invalid type. Must be one of: {', '.join(PRODUCT_TYPES)}")

    cycle = clean(payload.get("billing_cycle"))
    if cycle and cycle not in BILLING_CYCLES:
        errors.append(f"Invalid billing cycle. Must be one of: {', '.join(BILLING_CYCLES)}")

    base = _decimal_field(payload, "base_price", "Base price", errors)
    min_price = _decimal_field(payload, "min_sales_price", "Minimum sales price", errors)
    tax = _decimal_field(payload, "tax_rate", "Tax rate", errors)
    if base is None and current is not None:
        base = current.base_price
    if min_price is None and current is not None:
        min_price = current.min_sales_price
    if base is not None and base < 0:
        errors.append("Base price cannot be negative.")
    if min_price is not None and min_price < 0:
        errors.append("Minimum sales price cannot be negative.")
    if base is not None and min_price is not None and min_price > base:
        errors.append("Minimum sales price cannot exceed the base price.")
    if tax is not None and (tax < 0 or tax > 100):
        errors.append("Tax rate must be between 0 and 100.")

    stock_track = parse_bool(payload["stock_track"]) if "stock_track" in payload else (current.stock_track if current else False)
    if ptype == "subscription" and stock_track:
        errors.append("Subscription products cannot track stock.")
    if stock_track:
        try:
            stock = parse_int(payload.get("current_stock"))
        except ValueError:
            errors.append("Current stock must be a whole number.")
        else:
            if stock is not None and stock < 0:
                errors.append("Current stock cannot be negative.")
    return errors


def _apply_stock(product: "Product", payload: dict) -> None:
    if "stock_track" in payload:
        product.stock_track = parse_bool(payload.get("stock_track"))
    if product.type == "subscription":
        product.stock_track = False
    if product.stock_track:
        stock = parse_int(payload.get("current_stock"))
        if stock is not None:
            product.current_stock = stock
        elif product.current_stock is None:
            product.current_stock = 0
    else:
        product.current_stock = None


def create_product(s: "Session", payload: dict, user: "User") -> "Product":
    from app.duxa.modules.catalog.models import Product

    now = datetime.utcnow()
    product = Product(
        name=clean(payload.get("name")),
        description=clean(payload.get("description")),
        image_url=clean(payload.get("image_url")),
        type=clean(payload.get("type")),
        billing_cycle=clean(payload.get("billing_cycle")) or "one_time",
        base_price=parse_decimal(payload.get("base_price")) or Decimal("0"),
        min_sales_price=parse_decimal(payload.get("min_sales_price")) or Decimal("0"),
        tax_rate=parse_decimal(payload.get("tax_rate")) if clean(payload.get("tax_rate")) else Decimal("20"),
        is_public=parse_bool(payload.get("is_public", True)),
        is_active=parse_bool(payload.get("is_active", True)),
        created_at=now,
        updated_at=now,
        created_by_user_id=user.id,
    )
    _apply_stock(product, payload)
    s.add(product)
    s.flush()
    record_event(
        s,
        actor=user,
        event_type="DATA_MUTATION",
        message=f"Product '{product.name}' created",
        metadata={"product_id": product.id, "type": product.type},
    )
    return product


def update_product(s: "Session", product: "Product", payload: dict, user: "User") -> "Product":
    """Partial update: only keys present in `payload` are applied."""
    changes = {}

    def _set(field: str, new) -> None:
        old = getattr(product, field)
        if new != old:
            changes[field] = {"old": str(old) if old is not None else None, "new": str(new) if new is not None else None}
            setattr(product, field, new)

    if "name" in payload:
        _set("name", clean(payload.get("name")))
    for field in ("description", "image_url"):
        if field in payload:
            _set(field, clean(payload.get(field)))
    if clean(payload.get("type")):
        _set("type", clean(payload.get("type")))
    if clean(payload.get("billing_cycle")):
        _set("billing_cycle", clean(payload.get("billing_cycle")))
    for field in ("base_price", "min_sales_price", "tax_rate"):
        value = parse_decimal(payload.get(field))
        if value is not None:
            _set(field, value)
    for field in ("is_public", "is_active"):
        if field in payload:
            _set(field, parse_bool(payload.get(field)))

    old_stock = (product.stock_track, product.current_stock)
    _apply_stock(product, payload)
    if (product.stock_track, product.current_stock) != old_stock:
        changes["stock"] = {"old": list(old_stock), "new": [product.stock_track, product.current_stock]}

    product.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        event_type="DATA_MUTATION",
        message=f"Product '{product.name}' updated",
        metadata={"product_id": product.id, "changes": changes},
    )
    return product


def total_sales(s: "Session", product_id: int) -> int:
    from app.duxa.modules.catalog.models import ProductSale

    return int(s.query(func.coalesce(func.sum(ProductSale.quantity), 0)).filter(ProductSale.product_id == product_id).scalar() or 0)


def delete_product(s: "Session", product: "Product", user: "User") -> str:
    """
    Products with sales history are archived (is_active=False) instead of deleted.
    Returns "archived" or "deleted".
    """
    from app.duxa.modules.billing.models import Subscription

    in_use = total_sales(s, product.id) > 0 or (
        s.query(Subscription.id).filter(Subscription.product_id == product.id).first() is not None
    )
    if in_use:
        product.is_active = False
        product.updated_at = datetime.utcnow()
        outcome = "archived"
    else:
        s.delete(product)
        outcome = "deleted"
    record_event(
        s,
        actor=user,
        event_type="DATA_MUTATION",
        severity="WARNING",
        message=f"Product '{product.name}' {outcome}",
        metadata={"product_id": product.id, "outcome": outcome},
    )
    return outcome


def add_product_option(s: "Session", parent: "Product", child_id: int, is_required: bool, user: "User") -> "ProductOption":
    from app.duxa.modules.catalog.models import Product, ProductOption

    if parent.id == child_id:
        raise ServiceError("A product cannot be an option of itself.")
    child = s.get(Product, child_id)
    if child is None:
        raise ServiceError("Option product not found.")
    if any(o.child_product_id == child_id for o in parent.options):
        raise ServiceError(f"'{child.name}' is already an option of this product.")
    option = ProductOption(parent_product_id=parent.id, child_product_id=child_id, is_required=is_required)
    parent.options.append(option)
    s.flush()
    record_event(
        s,
        actor=user,
        event_type="DATA_MUTATION",
        message=f"Option '{child.name}' added to '{parent.name}'",
        metadata={"parent_id": parent.id, "child_id": child_id, "is_required": is_required},
    )
    return option


def remove_product_option(s: "Session", option: "ProductOption", user: "User") -> None:
    parent_id, child_id = option.parent_product_id, option.child_product_id
    s.delete(option)
    record_event(
        s,
        actor=user,
        event_type="DATA_MUTATION",
        message="Product option removed",
        metadata={"parent_id": parent_id, "child_id": child_id},
    )


def list_products_with_sales(s: "Session", include_inactive: bool = False) -> list[tuple["Product", int]]:
    from app.duxa.modules.catalog.models import Product, ProductSale

    sold = (
        s.query(ProductSale.product_id, func.sum(ProductSale.quantity).label("qty"))
        .group_by(ProductSale.product_id)
        .subquery()
    )
    q = s.query(Product, func.coalesce(sold.c.qty, 0)).outerjoin(sold, sold.c.product_id == Product.id)
    if not include_inactive:
        q = q.filter(Product.is_active.is_(True))
    return [(p, int(qty or 0)) for p, qty in q.order_by(Product.type, Product.name).all()]
