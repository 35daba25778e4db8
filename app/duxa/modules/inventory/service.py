from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import func, or_

from app.duxa.audit import record_event
from app.duxa.constants import HARDWARE_STATUSES
from app.duxa.utils import ServiceError, clean, parse_date

if TYPE_CHECKING:
    from sqlalchemy.orm import Query, Session
    from app.duxa.models import User
    from app.duxa.modules.inventory.models import HardwareInventoryItem


def inventory_stats(s: "Session") -> dict[str, int]:
    from app.duxa.modules.inventory.models import HardwareInventoryItem

    counts = dict(
        s.query(HardwareInventoryItem.status, func.count(HardwareInventoryItem.id))
        .group_by(HardwareInventoryItem.status)
        .all()
    )
    return {
        "in_stock": int(counts.get("in_stock", 0)),
        "rented": int(counts.get("rented", 0)),
        "under_repair": int(counts.get("under_repair", 0)),
        "total": int(sum(counts.values())),
    }


def query_inventory(s: "Session", *, status: str | None = None, search: str | None = None) -> "Query":
    from app.duxa.modules.inventory.models import HardwareInventoryItem

    q = s.query(HardwareInventoryItem)
    if status and status in HARDWARE_STATUSES:
        q = q.filter(HardwareInventoryItem.status == status)
    if search:
        like = f"%{search}%"
        q = q.filter(
            or_(
                HardwareInventoryItem.serial_number.ilike(like),
                HardwareInventoryItem.model.ilike(like),
                HardwareInventoryItem.manufacturer.ilike(like),
                HardwareInventoryItem.device_type.ilike(like),
            )
        )
    return q


def validate_item_payload(payload: dict, *, is_create: bool) -> list[str]:
    errors = []
    if is_create and not clean(payload.get("serial_number")):
        errors.append("Serial number is required.")
    if is_create and not clean(payload.get("device_type")):
        errors.append("Device type is required.")
    status = clean(payload.get("status"))
    if status and status not in HARDWARE_STATUSES:
        errors.append(f"Invalid status. Must be one of: {', '.join(HARDWARE_STATUSES)}")
    if status == "rented":
        errors.append("Devices become rented only by assigning them to a restaurant.")
    try:
        parse_date(payload.get("purchase_date"))
    except ValueError:
        errors.append("Purchase date must be YYYY-MM-DD.")
    return errors


def create_item(s: "Session", payload: dict, user: "User") -> "HardwareInventoryItem":
    from app.duxa.modules.inventory.models import HardwareInventoryItem

    serial = clean(payload.get("serial_number"))
    if s.query(HardwareInventoryItem.id).filter(HardwareInventoryItem.serial_number == serial).first():
        raise ServiceError(f"Serial number {serial} already exists.")
    now = datetime.utcnow()
    item = HardwareInventoryItem(
        serial_number=serial,
        device_type=clean(payload.get("device_type")),
        model=clean(payload.get("model")),
        manufacturer=clean(payload.get("manufacturer")),
        status=clean(payload.get("status")) or "in_stock",
        purchase_date=parse_date(payload.get("purchase_date")),
        notes=clean(payload.get("notes")),
        created_at=now,
        updated_at=now,
    )
    s.add(item)
    s.flush()
    record_event(
        s,
        actor=user,
        event_type="DATA_MUTATION",
        message=f"Hardware {item.serial_number} added to inventory",
        metadata={"item_id": item.id, "device_type": item.device_type},
    )
    return item


def update_item(s: "Session", item: "HardwareInventoryItem", payload: dict, user: "User") -> "HardwareInventoryItem":
    changes = {}
    for field in ("device_type", "model", "manufacturer", "notes"):
        if field in payload:
            new = clean(payload.get(field))
            if field == "device_type" and not new:
                continue
            if new != getattr(item, field):
                changes[field] = {"old": getattr(item, field), "new": new}
                setattr(item, field, new)
    if "purchase_date" in payload:
        new_date = parse_date(payload.get("purchase_date"))
        if new_date != item.purchase_date:
            changes["purchase_date"] = {"old": str(item.purchase_date), "new": str(new_date)}
            item.purchase_date = new_date

    new_status = clean(payload.get("status"))
    if new_status and new_status != item.status:
        changes["status"] = {"old": item.status, "new": new_status}
        if item.status == "rented":
            # leaving rental releases the device from its restaurant
            changes["tenant_id"] = {"old": item.tenant_id, "new": None}
            item.tenant_id = None
            item.assignment_date = None
        item.status = new_status

    item.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=user,
        event_type="DATA_MUTATION",
        message=f"Hardware {item.serial_number} updated",
        metadata={"item_id": item.id, "changes": changes},
    )
    return item
