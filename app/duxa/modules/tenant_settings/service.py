from __future__ import annotations

import re
from datetime import datetime
from typing import TYPE_CHECKING
from urllib.parse import urlparse

from app.duxa.audit import record_event
from app.duxa.constants import CURRENCIES, I18N_LANGUAGES, WEEKDAYS
from app.duxa.modules.tenants.service import check_slug_availability, is_valid_slug
from app.duxa.utils import clean, parse_bool

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.duxa.models import User
    from app.duxa.modules.tenants.models import Tenant

SOCIAL_NETWORKS = ("instagram", "facebook", "twitter", "tripadvisor")
HH_MM = re.compile(r"^(?:[01]\d|2[0-3]):[0-5]\d$")
DEFAULT_SYSTEM_LANGUAGE = "tr"


def tenant_settings(tenant: "Tenant") -> dict:
    """Copy of tenant.settings; assign the result back so the JSON column is flagged dirty."""
    return dict(tenant.settings or {})


def _save_settings(s: "Session", tenant: "Tenant", settings: dict, actor: "User", message: str, changed: list[str]) -> None:
    tenant.settings = settings
    tenant.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=actor,
        event_type="DATA_MUTATION",
        message=message,
        tenant_id=tenant.id,
        metadata={"fields": changed},
    )


def _parse_coordinate(raw, label: str, limit: float, errors: list[str]) -> float | None:
    raw = clean(raw)
    if raw is None:
        return None
    try:
        value = float(raw.replace(",", "."))
    except ValueError:
        errors.append(f"{label} must be a number.")
        return None
    if not -limit <= value <= limit:
        errors.append(f"{label} must be between -{limit:g} and {limit:g}.")
        return None
    return value


def _is_valid_url(raw: str) -> bool:
    parsed = urlparse(raw)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def update_general_settings(s: "Session", tenant: "Tenant", payload: dict, actor: "User") -> list[str]:
    """Returns validation errors; the tenant is untouched when any are returned."""
    errors: list[str] = []
    name = clean(payload.get("business_name"))
    if not name:
        errors.append("Business name is required.")
    currency = clean(payload.get("currency"))
    if currency not in CURRENCIES:
        errors.append(f"Currency must be one of: {', '.join(CURRENCIES)}")
    system_language = clean(payload.get("system_language"))
    if system_language not in I18N_LANGUAGES:
        errors.append("Choose a system language.")
    subdomain = (clean(payload.get("subdomain")) or "").lower()
    if not subdomain:
        errors.append("Subdomain is required.")
    elif not is_valid_slug(subdomain):
        errors.append("Subdomain may only contain lowercase letters, numbers and dashes.")
    elif subdomain != tenant.slug:
        available, suggestion = check_slug_availability(s, subdomain, exclude_tenant_id=tenant.id)
        if not available:
            errors.append(f"This address is taken. Suggestion: {suggestion or subdomain + '-2'}")
    website = clean(payload.get("website"))
    if website and not _is_valid_url(website):
        errors.append("Website must be a full http(s) URL.")
    latitude = _parse_coordinate(payload.get("latitude"), "Latitude", 90, errors)
    longitude = _parse_coordinate(payload.get("longitude"), "Longitude", 180, errors)
    menu_languages = [c for c in (payload.get("menu_languages") or []) if c]
    unknown = [c for c in menu_languages if c not in I18N_LANGUAGES]
    if unknown:
        errors.append(f"Unknown menu language(s): {', '.join(unknown)}")
    if errors:
        return errors

    settings = tenant_settings(tenant)
    settings.update(
        {
            "system_language": system_language,
            "social": {k: clean(payload.get(k)) for k in SOCIAL_NETWORKS},
            "website": website,
            "latitude": latitude,
            "longitude": longitude,
            "online_menu_enabled": parse_bool(payload.get("online_menu_enabled")),
            "seo_indexing_enabled": parse_bool(payload.get("seo_indexing_enabled")),
            "menu_languages": menu_languages,
        }
    )
    changed = ["settings"]
    if name != tenant.name:
        tenant.name = name
        changed.append("name")
    if currency != tenant.currency:
        tenant.currency = currency
        changed.append("currency")
    if subdomain != tenant.slug:
        tenant.slug = subdomain
        changed.append("slug")
    address = clean(payload.get("address"))
    if address != tenant.address:
        tenant.address = address
        changed.append("address")
    tenant.is_online = settings["online_menu_enabled"]
    _save_settings(s, tenant, settings, actor, f"General settings updated for '{tenant.name}'", changed)
    return []


def update_business_identity(
    s: "Session",
    tenant: "Tenant",
    payload: dict,
    actor: "User",
    *,
    logo_key: str | None = None,
) -> list[str]:
    errors: list[str] = []
    name = clean(payload.get("business_name"))
    if not name:
        errors.append("Business name is required.")
    currency = clean(payload.get("currency"))
    if currency not in CURRENCIES:
        errors.append(f"Currency must be one of: {', '.join(CURRENCIES)}")
    system_language = clean(payload.get("system_language"))
    if system_language not in I18N_LANGUAGES:
        errors.append("Choose a system language.")
    if errors:
        return errors

    settings = tenant_settings(tenant)
    settings["system_language"] = system_language
    changed = ["system_language"]
    if logo_key:
        settings["logo_key"] = logo_key
        changed.append("logo_key")
    tenant.name = name
    tenant.currency = currency
    _save_settings(s, tenant, settings, actor, f"Business identity updated for '{tenant.name}'", changed)
    return []


def default_business_hours() -> dict:
    return {day: {"is_open": day != "sunday", "open_time": "09:00", "close_time": "22:00"} for day in WEEKDAYS}


def parse_business_hours(form) -> tuple[dict, list[str]]:
    """Form fields: <day>_is_open, <day>_open_time, <day>_close_time."""
    hours: dict = {}
    errors: list[str] = []
    for day in WEEKDAYS:
        is_open = parse_bool(form.get(f"{day}_is_open"))
        open_time = clean(form.get(f"{day}_open_time"))
        close_time = clean(form.get(f"{day}_close_time"))
        label = day.capitalize()
        for value in (open_time, close_time):
            if value and not HH_MM.match(value):
                errors.append(f"{label}: times must use HH:MM.")
                break
        else:
            # zero-padded HH:MM compares correctly as text
            if open_time and close_time and close_time <= open_time:
                errors.append(f"{label}: closing time must be after opening time.")
        hours[day] = {"is_open": is_open, "open_time": open_time, "close_time": close_time}
    return hours, errors


def update_business_hours(s: "Session", tenant: "Tenant", hours: dict, actor: "User") -> None:
    settings = tenant_settings(tenant)
    settings["business_hours"] = hours
    _save_settings(s, tenant, settings, actor, f"Business hours updated for '{tenant.name}'", ["business_hours"])


def business_hours(tenant: "Tenant") -> dict:
    stored = (tenant.settings or {}).get("business_hours") or {}
    hours = default_business_hours()
    for day in WEEKDAYS:
        if isinstance(stored.get(day), dict):
            hours[day].update(stored[day])
    return hours


def update_tenant_theme(s: "Session", tenant: "Tenant", theme_slug: str, actor: "User") -> list[str]:
    from app.duxa.modules.themes.models import Theme

    theme_slug = clean(theme_slug) or ""
    if s.query(Theme.id).filter(Theme.slug == theme_slug).first() is None:
        return ["Unknown theme."]
    settings = tenant_settings(tenant)
    settings["theme_id"] = theme_slug
    _save_settings(s, tenant, settings, actor, f"Theme set to {theme_slug} for '{tenant.name}'", ["theme_id"])
    return []
