from __future__ import annotations

from datetime import date
from decimal import Decimal, InvalidOperation


class ServiceError(ValueError):
    """A business rule rejected the action; the message is safe to show to the user."""


def clean(value: str | None) -> str | None:
    """Strip form input; empty becomes None."""
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def parse_date(s: str | None) -> date | None:
    """Parse YYYY-MM-DD date string. Raises ValueError on malformed input."""
    if not s:
        return None
    s = s.strip()
    if not s:
        return None
    return date.fromisoformat(s)


def parse_decimal(raw: str | None) -> Decimal | None:
    if raw is None or str(raw).strip() == "":
        return None
    try:
        return Decimal(str(raw).strip().replace(",", "."))
    except InvalidOperation as e:
        raise ValueError(f"Not a number: {raw}") from e


def parse_int(raw: str | None) -> int | None:
    if raw is None or str(raw).strip() == "":
        return None
    return int(str(raw).strip())


def parse_bool(raw) -> bool:
    if isinstance(raw, bool):
        return raw
    return str(raw or "").strip().lower() in ("1", "true", "on", "yes")


def minor_to_major(amount: int | None) -> Decimal:
    """Order amounts are stored in minor units (kuruş / cents)."""
    return (Decimal(amount or 0) / Decimal(100)).quantize(Decimal("0.01"))


def major_to_minor(raw: str | None) -> int | None:
    value = parse_decimal(raw)
    if value is None:
        return None
    return int((value * 100).quantize(Decimal("1")))
