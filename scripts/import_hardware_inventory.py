#!/usr/bin/env python3
"""
Bulk import of POS / kiosk / printer devices from an Excel sheet.

Usage:
    python scripts/import_hardware_inventory.py "Hardware Inventory.xlsx"

The first row is the header; column names are matched loosely
("Serial No", "serial", "S/N", ...). Idempotent: rows whose serial number
already exists are skipped.
"""
from __future__ import annotations

import os
import sys
from datetime import date, datetime
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from openpyxl import load_workbook
from sqlalchemy.orm import Session

from app.duxa.constants import HARDWARE_STATUSES
from app.duxa.models import User
from app.duxa.modules.inventory.models import HardwareInventoryItem
from app.duxa.modules.inventory.service import create_item, validate_item_payload
from scripts._db_utils import script_database_url, script_session

HEADER_MAPPINGS = {
    "serial_number": ["serial number", "serial no", "serial", "serial_number", "s/n", "sn"],
    "device_type": ["device type", "device", "type", "device_type", "category"],
    "model": ["model", "model no", "model number"],
    "manufacturer": ["manufacturer", "brand", "make", "mfg"],
    "status": ["status", "state"],
    "purchase_date": ["purchase date", "purchased", "purchase_date", "date"],
    "notes": ["notes", "comments", "remarks"],
}

# Spreadsheet wording -> inventory status
_STATUS_ALIASES = {
    "stock": "in_stock",
    "in stock": "in_stock",
    "available": "in_stock",
    "repair": "under_repair",
    "under repair": "under_repair",
    "broken": "under_repair",
    "sold": "sold",
    "retired": "retired",
    "scrapped": "retired",
}


def _normalize_text(val) -> str:
    if val is None:
        return ""
    if isinstance(val, float) and val.is_integer():
        val = int(val)
    return str(val).strip()


def _parse_date(val) -> str | None:
    """Excel cells arrive as datetime or text; the service expects YYYY-MM-DD."""
    if val is None:
        return None
    if isinstance(val, datetime):
        return val.date().isoformat()
    if isinstance(val, date):
        return val.isoformat()
    s = str(val).strip()
    if not s:
        return None
    for fmt in ("%Y-%m-%d", "%d.%m.%Y", "%d/%m/%Y", "%m/%d/%Y"):
        try:
            return datetime.strptime(s, fmt).date().isoformat()
        except ValueError:
            continue
    return None


def _normalize_status(val) -> str:
    raw = _normalize_text(val).lower().replace("-", " ")
    if not raw:
        return "in_stock"
    if raw.replace(" ", "_") in HARDWARE_STATUSES and raw.replace(" ", "_") != "rented":
        return raw.replace(" ", "_")
    return _STATUS_ALIASES.get(raw, "in_stock")


def map_headers(headers: list) -> dict[str, int]:
    col_map: dict[str, int] = {}
    for i, h in enumerate(headers):
        if h is None:
            continue
        h_lower = str(h).strip().lower()
        for field, options in HEADER_MAPPINGS.items():
            if field not in col_map and h_lower in options:
                col_map[field] = i
                break
    return col_map


def import_hardware_from_excel(filepath: str, s: Session, user: User) -> dict:
    if not os.path.exists(filepath):
        return {"error": f"File not found: {filepath}"}

    wb = load_workbook(filepath, data_only=True, read_only=True)
    ws = wb.active
    rows = ws.iter_rows(values_only=True)
    try:
        headers = list(next(rows))
    except StopIteration:
        return {"error": "Sheet is empty"}

    col_map = map_headers(headers)
    if "serial_number" not in col_map:
        return {"error": "Could not find a serial number column in the header row"}

    existing = {serial for (serial,) in s.query(HardwareInventoryItem.serial_number).all()}
    created = 0
    skipped = 0
    errors: list[str] = []

    for row_no, vals in enumerate(rows, start=2):
        def get_val(field):
            idx = col_map.get(field)
            return vals[idx] if idx is not None and idx < len(vals) else None

        serial = _normalize_text(get_val("serial_number"))
        if not serial:
            continue
        if serial in existing:
            skipped += 1
            continue
        payload = {
            "serial_number": serial,
            "device_type": _normalize_text(get_val("device_type")) or "POS",
            "model": _normalize_text(get_val("model")) or None,
            "manufacturer": _normalize_text(get_val("manufacturer")) or None,
            "status": _normalize_status(get_val("status")),
            "purchase_date": _parse_date(get_val("purchase_date")),
            "notes": _normalize_text(get_val("notes")) or None,
        }
        problems = validate_item_payload(payload, is_create=True)
        if problems:
            errors.append(f"Row {row_no}: {'; '.join(problems)}")
            continue
        create_item(s, payload, user)
        existing.add(serial)
        created += 1

    wb.close()
    s.flush()
    return {"created": created, "skipped": skipped, "errors": errors}


def main() -> None:
    database_url = script_database_url()
    admin_email = (os.environ.get("ADMIN_EMAIL") or "admin@duxa.local").strip().lower()
    filepath = sys.argv[1] if len(sys.argv) > 1 else "Hardware Inventory.xlsx"

    with script_session(database_url) as s:
        admin_user = s.query(User).filter(User.email == admin_email).one_or_none()
        if not admin_user:
            print(f"ERROR: Admin user '{admin_email}' not found. Run scripts/init_db.py first.")
            return

        print(f"Importing hardware from: {filepath}")
        result = import_hardware_from_excel(filepath, s, admin_user)
        if "error" in result:
            print(f"  ERROR: {result['error']}")
            return
        print(f"  Devices: created={result['created']}, skipped={result['skipped']}")
        for err in result["errors"][:10]:
            print(f"    {err}")
    print("Import complete. Changes committed.")


if __name__ == "__main__":
    main()
