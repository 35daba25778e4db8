from __future__ import annotations

from datetime import date, datetime, time, timedelta
from typing import TYPE_CHECKING

from sqlalchemy import func

from app.duxa.audit import record_event
from app.duxa.utils import ServiceError, clean

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.duxa.models import User
    from app.duxa.modules.orders.models import Order

ORDER_CHANNELS = ("dine_in", "takeaway", "delivery", "kiosk", "online")
ORDER_STATUSES = ("pending", "preparing", "ready", "completed", "cancelled")
ACTIVE_STATUSES = ("pending", "preparing", "ready")
FINAL_STATUSES = ("completed", "cancelled")

# Forward-only kitchen flow; cancellation is handled separately.
NEXT_STATUS = {
    "pending": "preparing",
    "preparing": "ready",
    "ready": "completed",
}


def next_order_number(s: "Session", tenant_id: int) -> int:
    from app.duxa.modules.orders.models import Order

    current = s.query(func.max(Order.order_number)).filter(Order.tenant_id == tenant_id).scalar()
    return int(current or 0) + 1


def create_order(s: "Session", tenant_id: int, payload: dict, actor: "User | None") -> "Order":
    """
    payload["items"]: [{"menu_product_id": int, "quantity": int}, ...]
    Prices come from the tenant's active menu products, never from the client.
    """
    from app.duxa.modules.menu.models import MenuProduct
    from app.duxa.modules.orders.models import Order, OrderItem

    channel = clean(payload.get("channel")) or "dine_in"
    if channel not in ORDER_CHANNELS:
        raise ServiceError(f"Channel must be one of: {', '.join(ORDER_CHANNELS)}")

    lines = []
    for raw in payload.get("items") or []:
        try:
            product_id = int(raw.get("menu_product_id"))
            quantity = int(raw.get("quantity") or 1)
        except (TypeError, ValueError):
            raise ServiceError("Order lines need a product and a whole-number quantity.")
        if quantity <= 0:
            continue
        product = s.get(MenuProduct, product_id)
        if product is None or product.tenant_id != tenant_id or not product.is_active:
            raise ServiceError("One of the products is not available.")
        lines.append((product, quantity))
    if not lines:
        raise ServiceError("An order needs at least one item.")

    now = datetime.utcnow()
    order = Order(
        tenant_id=tenant_id,
        order_number=next_order_number(s, tenant_id),
        channel=channel,
        status="pending",
        customer_name=clean(payload.get("customer_name")),
        table_label=clean(payload.get("table_label")),
        notes=clean(payload.get("notes")),
        created_at=now,
        updated_at=now,
        created_by_user_id=actor.id if actor else None,
    )
    total = 0
    for product, quantity in lines:
        line_total = product.price * quantity
        total += line_total
        order.items.append(
            OrderItem(
                menu_product_id=product.id,
                name=product.name,
                unit_price=product.price,
                quantity=quantity,
                line_total=line_total,
            )
        )
    order.total_amount = total
    s.add(order)
    s.flush()
    record_event(
        s,
        actor=actor,
        event_type="DATA_MUTATION",
        message=f"Order #{order.order_number} created",
        tenant_id=tenant_id,
        metadata={"order_id": order.id, "total_amount": total, "channel": channel},
    )
    return order


def advance_order_status(s: "Session", order: "Order", target: str, actor: "User") -> "Order":
    current = order.status
    if target == "cancelled":
        if current in FINAL_STATUSES:
            raise ServiceError(f"A {current} order cannot be cancelled.")
    elif NEXT_STATUS.get(current) != target:
        raise ServiceError(f"Cannot move an order from {current} to {target}.")
    order.status = target
    order.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=actor,
        event_type="DATA_MUTATION",
        severity="WARNING" if target == "cancelled" else "INFO",
        message=f"Order #{order.order_number} {current} -> {target}",
        tenant_id=order.tenant_id,
        metadata={"order_id": order.id, "from": current, "to": target},
    )
    return order


def list_orders(s: "Session", tenant_id: int, status: str | None = None):
    from app.duxa.modules.orders.models import Order

    q = s.query(Order).filter(Order.tenant_id == tenant_id)
    if status:
        q = q.filter(Order.status == status)
    return q.order_by(Order.created_at.desc(), Order.id.desc())


def daily_stats(s: "Session", tenant_id: int, today: date | None = None) -> dict:
    from app.duxa.modules.orders.models import Order

    today = today or datetime.utcnow().date()
    start = datetime.combine(today, time.min)
    end = start + timedelta(days=1)
    base = s.query(Order).filter(Order.tenant_id == tenant_id)
    todays = base.filter(Order.created_at >= start, Order.created_at < end)
    revenue = (
        todays.filter(Order.status != "cancelled")
        .with_entities(func.coalesce(func.sum(Order.total_amount), 0))
        .scalar()
    )
    return {
        "revenue": int(revenue or 0),
        "orders_today": todays.count(),
        "active_orders": base.filter(Order.status.in_(ACTIVE_STATUSES)).count(),
        "completed_today": todays.filter(Order.status == "completed").count(),
    }


def weekly_sales(s: "Session", tenant_id: int, today: date | None = None, days: int = 7) -> list[dict]:
    """Completed-order totals per day, oldest first, with zeros for quiet days."""
    from app.duxa.modules.orders.models import Order

    today = today or datetime.utcnow().date()
    first = today - timedelta(days=days - 1)
    rows = (
        s.query(Order.created_at, Order.total_amount)
        .filter(
            Order.tenant_id == tenant_id,
            Order.status == "completed",
            Order.created_at >= datetime.combine(first, time.min),
            Order.created_at < datetime.combine(today + timedelta(days=1), time.min),
        )
        .all()
    )
    totals: dict[date, int] = {}
    for created_at, amount in rows:
        totals[created_at.date()] = totals.get(created_at.date(), 0) + int(amount or 0)
    series = []
    for i in range(days):
        day = first + timedelta(days=i)
        series.append({"date": day, "total": totals.get(day, 0)})
    return series
