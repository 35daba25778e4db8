from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from app.duxa.audit import record_event
from app.duxa.constants import INVOICE_STATUSES, PAYMENT_STATUSES, RENEWAL_PERIODS
from app.duxa.utils import ServiceError, clean, parse_date, parse_decimal

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.duxa.models import User
    from app.duxa.modules.billing.models import Invoice, Subscription
    from app.duxa.modules.inventory.models import HardwareInventoryItem
    from app.duxa.modules.tenants.models import Tenant


def _parse_dates(payload: dict, errors: list[str]) -> tuple[date | None, date | None]:
    start = end = None
    try:
        start = parse_date(payload.get("contract_start_date"))
    except ValueError:
        errors.append("Start date must be YYYY-MM-DD.")
    try:
        end = parse_date(payload.get("contract_end_date"))
    except ValueError:
        errors.append("End date must be YYYY-MM-DD.")
    return start, end


def _parse_price(payload: dict, errors: list[str]) -> Decimal | None:
    try:
        price = parse_decimal(payload.get("contract_price"))
    except ValueError:
        errors.append("Contract price must be a number.")
        return None
    if price is not None and price < 0:
        errors.append("Contract price cannot be negative.")
    return price


def validate_subscription_payload(s: "Session", payload: dict) -> list[str]:
    from app.duxa.modules.catalog.models import Product

    errors: list[str] = []
    product_id = clean(payload.get("product_id"))
    product = s.get(Product, int(product_id)) if product_id and product_id.isdigit() else None
    if product is None:
        errors.append("Select a subscription product.")
    elif product.type != "subscription" or not product.is_active:
        errors.append("The selected product is not an active subscription plan.")

    _parse_price(payload, errors)
    if clean(payload.get("contract_price")) is None:
        errors.append("Contract price is required.")
    start, end = _parse_dates(payload, errors)
    if clean(payload.get("contract_start_date")) is None:
        errors.append("Start date is required.")
    if start and end and end < start:
        errors.append("End date cannot be before the start date.")
    renewal = clean(payload.get("renewal_period")) or "monthly"
    if renewal not in RENEWAL_PERIODS:
        errors.append(f"Renewal period must be one of: {', '.join(RENEWAL_PERIODS)}")
    return errors


def create_subscription(s: "Session", tenant: "Tenant", payload: dict, user: "User") -> "Subscription":
    from app.duxa.modules.billing.models import Subscription

    now = datetime.utcnow()
    sub = Subscription(
        tenant_id=tenant.id,
        product_id=int(payload["product_id"]),
        contract_price=parse_decimal(payload.get("contract_price")),
        contract_date=date.today(),
        contract_start_date=parse_date(payload.get("contract_start_date")),
        contract_end_date=parse_date(payload.get("contract_end_date")),
        renewal_period=clean(payload.get("renewal_period")) or "monthly",
        payment_status="pending",
        created_at=now,
        updated_at=now,
        created_by_user_id=user.id,
    )
    s.add(sub)
    s.flush()
    record_event(
        s,
        actor=user,
        event_type="DATA_MUTATION",
        message=f"Subscription created for '{tenant.name}'",
        tenant_id=tenant.id,
        metadata={"subscription_id": sub.id, "product_id": sub.product_id, "price": str(sub.contract_price)},
    )
    return sub


def update_subscription(s: "Session", sub: "Subscription", payload: dict, user: "User") -> list[str]:
    """Partial update of dates, price and payment status. Returns validation errors."""
    errors: list[str] = []
    price = _parse_price(payload, errors)
    start, end = _parse_dates(payload, errors)
    status = clean(payload.get("payment_status"))
    if status and status not in PAYMENT_STATUSES:
        errors.append(f"Payment status must be one of: {', '.join(PAYMENT_STATUSES)}")
    effective_start = start or sub.contract_start_date
    effective_end = end if "contract_end_date" in payload else sub.contract_end_date
    if effective_start and effective_end and effective_end < effective_start:
        errors.append("End date cannot be before the start date.")
    if errors:
        return errors

    changes = {}
    if price is not None and price != sub.contract_price:
        changes["contract_price"] = {"old": str(sub.contract_price), "new": str(price)}
        sub.contract_price = price
    if start is not None and start != sub.contract_start_date:
        changes["contract_start_date"] = {"old": str(sub.contract_start_date), "new": str(start)}
        sub.contract_start_date = start
    if "contract_end_date" in payload and effective_end != sub.contract_end_date:
        changes["contract_end_date"] = {"old": str(sub.contract_end_date), "new": str(effective_end)}
        sub.contract_end_date = effective_end
    if status and status != sub.payment_status:
        changes["payment_status"] = {"old": sub.payment_status, "new": status}
        sub.payment_status = status
    sub.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        event_type="DATA_MUTATION",
        message="Subscription updated",
        tenant_id=sub.tenant_id,
        metadata={"subscription_id": sub.id, "changes": changes},
    )
    return []


def assign_hardware(s: "Session", tenant: "Tenant", payload: dict, user: "User") -> "HardwareInventoryItem":
    """
    Rent a device from stock to a restaurant. The serial must be in stock and the
    product must be an active hardware product. Optional add-ons are recorded as sales.
    """
    from app.duxa.modules.catalog.models import Product, ProductSale
    from app.duxa.modules.inventory.models import HardwareInventoryItem

    product_id = clean(payload.get("product_id"))
    product = s.get(Product, int(product_id)) if product_id and product_id.isdigit() else None
    if product is None or product.type != "hardware" or not product.is_active:
        raise ServiceError("Select an active hardware product.")

    serial = clean(payload.get("serial_number"))
    if not serial:
        raise ServiceError("Serial number is required.")
    item = s.query(HardwareInventoryItem).filter(HardwareInventoryItem.serial_number == serial).one_or_none()
    if item is None:
        raise ServiceError(f"Serial number {serial} is not in inventory.")
    if item.status != "in_stock":
        raise ServiceError(f"Device {serial} is already assigned or unavailable ({item.status}).")

    allowed_addons = {o.child_product_id: o.child for o in product.options}
    addon_ids = [int(a) for a in payload.get("addon_ids") or [] if str(a).isdigit()]
    for addon_id in addon_ids:
        if addon_id not in allowed_addons:
            raise ServiceError("An add-on was selected that does not belong to this product.")

    item.status = "rented"
    item.tenant_id = tenant.id
    item.product_id = product.id
    item.assignment_date = date.today()
    item.updated_at = datetime.utcnow()

    s.add(ProductSale(product_id=product.id, tenant_id=tenant.id, quantity=1, unit_price=product.base_price))
    for addon_id in addon_ids:
        addon = allowed_addons[addon_id]
        s.add(ProductSale(product_id=addon.id, tenant_id=tenant.id, quantity=1, unit_price=addon.base_price))
    if product.stock_track and product.current_stock:
        product.current_stock -= 1

    record_event(
        s,
        actor=user,
        event_type="DATA_MUTATION",
        message=f"Hardware {serial} assigned to '{tenant.name}'",
        tenant_id=tenant.id,
        metadata={"item_id": item.id, "product_id": product.id, "addon_ids": addon_ids},
    )
    return item


def return_hardware(s: "Session", item: "HardwareInventoryItem", user: "User") -> None:
    if item.status != "rented":
        raise ServiceError(f"Device {item.serial_number} is not rented.")
    tenant_id = item.tenant_id
    item.status = "in_stock"
    item.tenant_id = None
    item.assignment_date = None
    item.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        event_type="DATA_MUTATION",
        message=f"Hardware {item.serial_number} returned to stock",
        tenant_id=tenant_id,
        metadata={"item_id": item.id},
    )


def next_invoice_number(s: "Session", issue_date: date) -> str:
    from app.duxa.modules.billing.models import Invoice

    prefix = f"INV-{issue_date.year}-"
    count = s.query(Invoice.id).filter(Invoice.invoice_number.like(f"{prefix}%")).count()
    return f"{prefix}{count + 1:05d}"


def create_invoice(s: "Session", tenant: "Tenant", payload: dict, user: "User") -> "Invoice":
    from app.duxa.modules.billing.models import Invoice, Subscription

    errors: list[str] = []
    amount = None
    if clean(payload.get("amount")) is None:
        errors.append("Amount is required.")
    else:
        try:
            amount = parse_decimal(payload.get("amount"))
        except ValueError:
            errors.append("Amount must be a number.")
    if amount is not None and amount < 0:
        errors.append("Amount cannot be negative.")
    status = clean(payload.get("status")) or "pending"
    if status not in INVOICE_STATUSES:
        errors.append(f"Status must be one of: {', '.join(INVOICE_STATUSES)}")
    try:
        due = parse_date(payload.get("due_date"))
    except ValueError:
        due = None
        errors.append("Due date must be YYYY-MM-DD.")
    sub_id = clean(payload.get("subscription_id"))
    if sub_id:
        sub = s.get(Subscription, int(sub_id)) if sub_id.isdigit() else None
        if sub is None or sub.tenant_id != tenant.id:
            errors.append("Subscription does not belong to this restaurant.")
    if errors:
        raise ServiceError(" ".join(errors))

    today = date.today()
    invoice = Invoice(
        tenant_id=tenant.id,
        subscription_id=int(sub_id) if sub_id else None,
        invoice_number=next_invoice_number(s, today),
        amount=amount,
        currency=tenant.currency or "TRY",
        status=status,
        description=clean(payload.get("description")),
        issue_date=today,
        due_date=due,
        created_by_user_id=user.id,
    )
    s.add(invoice)
    s.flush()
    record_event(
        s,
        actor=user,
        event_type="DATA_MUTATION",
        message=f"Invoice {invoice.invoice_number} issued to '{tenant.name}'",
        tenant_id=tenant.id,
        metadata={"invoice_id": invoice.id, "amount": str(amount)},
    )
    return invoice


def list_tenant_invoices(s: "Session", tenant_id: int) -> list["Invoice"]:
    from app.duxa.modules.billing.models import Invoice

    return (
        s.query(Invoice)
        .filter(Invoice.tenant_id == tenant_id)
        .order_by(Invoice.issue_date.desc(), Invoice.id.desc())
        .all()
    )


def current_subscription(s: "Session", tenant_id: int) -> "Subscription | None":
    from app.duxa.modules.billing.models import Subscription

    subs = (
        s.query(Subscription)
        .filter(Subscription.tenant_id == tenant_id)
        .order_by(Subscription.contract_start_date.desc())
        .all()
    )
    return next((sub for sub in subs if sub.is_current()), None)
