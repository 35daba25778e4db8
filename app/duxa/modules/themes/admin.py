from __future__ import annotations

from flask import Blueprint, flash, g, redirect, render_template, request, url_for

from app.duxa.db import db_session, get_or_404
from app.duxa.models import User
from app.duxa.modules.themes.models import Theme
from app.duxa.modules.themes.service import (
    BUTTON_STYLES,
    CARD_SHADOWS,
    CATEGORY_SCROLLS,
    COLOR_KEYS,
    LAYOUT_INT_KEYS,
    TYPOGRAPHY_INT_KEYS,
    list_themes,
    parse_theme_form,
    update_theme,
)
from app.duxa.rbac import require_permission

bp = Blueprint("themes", __name__)


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


@bp.get("")
@require_permission("themes.manage")
def themes_list():
    s = db_session()
    return render_template("super_admin/themes/list.html", themes=list_themes(s))


@bp.get("/<int:theme_id>/edit")
@require_permission("themes.manage")
def theme_edit_get(theme_id: int):
    s = db_session()
    theme = get_or_404(s, Theme, theme_id)
    return render_template(
        "super_admin/themes/edit.html",
        theme=theme,
        color_keys=COLOR_KEYS,
        typography_keys=TYPOGRAPHY_INT_KEYS,
        layout_keys=LAYOUT_INT_KEYS,
        button_styles=BUTTON_STYLES,
        card_shadows=CARD_SHADOWS,
        category_scrolls=CATEGORY_SCROLLS,
    )


@bp.post("/<int:theme_id>/edit")
@require_permission("themes.manage")
def theme_edit_post(theme_id: int):
    s = db_session()
    u = _current_user()
    theme = get_or_404(s, Theme, theme_id)
    payload, errors = parse_theme_form(request.form, theme)
    if errors:
        for e in errors:
            flash(e, "danger")
        return redirect(url_for("themes.theme_edit_get", theme_id=theme_id))
    update_theme(s, theme, payload, u)
    s.commit()
    flash(f"Theme '{theme.name}' saved.", "success")
    return redirect(url_for("themes.themes_list"))
