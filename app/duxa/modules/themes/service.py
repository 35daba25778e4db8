from __future__ import annotations

import copy
import re
from datetime import datetime
from typing import TYPE_CHECKING

from app.duxa.audit import record_event
from app.duxa.utils import clean, parse_bool

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.duxa.models import User
    from app.duxa.modules.themes.models import Theme

HEX_COLOR = re.compile(r"^#(?:[0-9a-fA-F]{3}|[0-9a-fA-F]{6})$")

BUTTON_STYLES = ("flat", "rounded", "glass")
CARD_SHADOWS = ("none", "sm", "md", "lg")
CATEGORY_SCROLLS = ("horizontal", "vertical")

COLOR_KEYS = (
    "primary",
    "accent",
    "background",
    "text",
    "secondary_text",
    "border",
    "card_background",
    "success",
    "warning",
    "error",
)
TYPOGRAPHY_INT_KEYS = (
    "base_font_size",
    "heading_font_size",
    "secondary_font_size",
    "font_weight_bold",
    "font_weight_medium",
)
LAYOUT_INT_KEYS = ("border_radius", "card_padding", "container_gap", "kiosk_header_height")

DEFAULT_THEME = {
    "colors": {
        "primary": "#18181b",
        "accent": "#3f3f46",
        "background": "#ffffff",
        "text": "#09090b",
        "secondary_text": "#71717a",
        "border": "#e4e4e7",
        "card_background": "#ffffff",
        "success": "#16a34a",
        "warning": "#f59e0b",
        "error": "#dc2626",
    },
    "typography": {
        "font_family": "Inter",
        "base_font_size": 16,
        "heading_font_size": 24,
        "secondary_font_size": 14,
        "font_weight_bold": 700,
        "font_weight_medium": 500,
    },
    "layout": {
        "border_radius": 12,
        "card_padding": 16,
        "container_gap": 16,
        "kiosk_header_height": 80,
    },
    "components": {
        "button_style": "rounded",
        "card_shadow": "sm",
        "show_icons": True,
        "category_scroll": "horizontal",
    },
}

# slug -> (name, description, color overrides, component overrides)
_SYSTEM_THEMES = {
    "theme-1": ("Classic", "Clean light layout with neutral tones.", {}, {}),
    "theme-2": (
        "Modern",
        "Dark surfaces with high contrast cards.",
        {"primary": "#fafafa", "background": "#09090b", "text": "#fafafa", "card_background": "#18181b", "border": "#27272a"},
        {"button_style": "flat", "card_shadow": "none"},
    ),
    "theme-3": (
        "Vivid",
        "Warm accent colours for busy menus.",
        {"primary": "#ea580c", "accent": "#eab308", "background": "#fffbeb"},
        {"card_shadow": "md", "category_scroll": "vertical"},
    ),
    "theme-4": (
        "Minimal",
        "Glass buttons and soft emerald accents.",
        {"primary": "#064e3b", "accent": "#10b981", "background": "#f0fdf4"},
        {"button_style": "glass", "card_shadow": "lg", "show_icons": False},
    ),
}


def build_theme_tokens(color_overrides: dict | None = None, component_overrides: dict | None = None) -> dict:
    tokens = copy.deepcopy(DEFAULT_THEME)
    tokens["colors"].update(color_overrides or {})
    tokens["components"].update(component_overrides or {})
    return tokens


def seed_default_themes(s: "Session") -> int:
    """Insert missing system themes; existing rows are left untouched. Returns the number created."""
    from app.duxa.modules.themes.models import Theme

    existing = {slug for (slug,) in s.query(Theme.slug).all()}
    created = 0
    now = datetime.utcnow()
    for slug, (name, description, colors, components) in _SYSTEM_THEMES.items():
        if slug in existing:
            continue
        tokens = build_theme_tokens(colors, components)
        s.add(
            Theme(
                slug=slug,
                name=name,
                description=description,
                colors=tokens["colors"],
                typography=tokens["typography"],
                layout=tokens["layout"],
                components=tokens["components"],
                is_system=True,
                created_at=now,
                updated_at=now,
            )
        )
        created += 1
    if created:
        s.flush()
    return created


def list_themes(s: "Session") -> list["Theme"]:
    from app.duxa.modules.themes.models import Theme

    return s.query(Theme).order_by(Theme.created_at.asc(), Theme.id.asc()).all()


def _positive_int(raw, label: str, errors: list[str]) -> int | None:
    try:
        value = int(str(raw).strip())
    except (TypeError, ValueError):
        errors.append(f"{label} must be a whole number.")
        return None
    if value <= 0:
        errors.append(f"{label} must be greater than zero.")
        return None
    return value


def parse_theme_form(form, theme: "Theme") -> tuple[dict, list[str]]:
    """Turn the flat edit form (colors.primary, layout.card_padding, ...) into token groups."""
    errors: list[str] = []
    payload: dict = {
        "name": clean(form.get("name")),
        "description": clean(form.get("description")),
    }
    if not payload["name"]:
        errors.append("Theme name is required.")

    colors = dict(theme.colors or {})
    for key in COLOR_KEYS:
        raw = clean(form.get(f"colors.{key}"))
        if raw is None:
            continue
        if not HEX_COLOR.match(raw):
            errors.append(f"Color '{key}' must be a hex value like #1a2b3c.")
            continue
        colors[key] = raw
    payload["colors"] = colors

    typography = dict(theme.typography or {})
    font_family = clean(form.get("typography.font_family"))
    if font_family:
        typography["font_family"] = font_family
    for key in TYPOGRAPHY_INT_KEYS:
        raw = form.get(f"typography.{key}")
        if raw is None or str(raw).strip() == "":
            continue
        value = _positive_int(raw, key.replace("_", " ").capitalize(), errors)
        if value is not None:
            typography[key] = value
    payload["typography"] = typography

    layout = dict(theme.layout or {})
    for key in LAYOUT_INT_KEYS:
        raw = form.get(f"layout.{key}")
        if raw is None or str(raw).strip() == "":
            continue
        value = _positive_int(raw, key.replace("_", " ").capitalize(), errors)
        if value is not None:
            layout[key] = value
    payload["layout"] = layout

    components = dict(theme.components or {})
    for key, allowed in (
        ("button_style", BUTTON_STYLES),
        ("card_shadow", CARD_SHADOWS),
        ("category_scroll", CATEGORY_SCROLLS),
    ):
        raw = clean(form.get(f"components.{key}"))
        if raw is None:
            continue
        if raw not in allowed:
            errors.append(f"{key.replace('_', ' ').capitalize()} must be one of: {', '.join(allowed)}")
            continue
        components[key] = raw
    if "components.show_icons_present" in form or "components.show_icons" in form:
        components["show_icons"] = parse_bool(form.get("components.show_icons"))
    payload["components"] = components
    return payload, errors


def update_theme(s: "Session", theme: "Theme", payload: dict, actor: "User") -> "Theme":
    changed = []
    for field in ("name", "description", "colors", "typography", "layout", "components"):
        if field not in payload:
            continue
        if payload[field] != getattr(theme, field):
            setattr(theme, field, payload[field])
            changed.append(field)
    theme.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=actor,
        event_type="SYSTEM_CHANGE",
        message=f"Theme {theme.slug} updated",
        metadata={"theme_id": theme.id, "fields": changed},
    )
    return theme
