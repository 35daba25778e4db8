from __future__ import annotations

from flask import Blueprint, current_app, flash, g, redirect, render_template, request, url_for

from app.duxa.db import db_session, get_or_404
from app.duxa.models import User
from app.duxa.modules.translations.models import SupportedLanguage
from app.duxa.modules.translations.service import (
    LANGUAGE_FLAGS,
    get_sync_status,
    list_languages,
    pull_incremental,
    push_files_to_db,
    remove_language_from_db,
    save_translation,
    sync_language_to_db,
    update_language_settings,
)
from app.duxa.modules.translations.utils import (
    flatten,
    is_valid_language_code,
    missing_keys,
    read_translation_file,
)
from app.duxa.rbac import require_permission
from app.duxa.utils import ServiceError

bp = Blueprint("translations", __name__)

SOURCE_LANGUAGE = "en"


def _current_user() -> User:
    u = getattr(g, "current_user", None)
    if not u:
        raise RuntimeError("No current user")
    return u


def _i18n_dir() -> str:
    return current_app.config["I18N_DIR"]


@bp.get("")
@require_permission("translations.manage")
def translations_index():
    s = db_session()
    languages = list_languages(s)
    lang = (request.args.get("lang") or "").strip()
    search = (request.args.get("q") or "").strip().lower()
    only_missing = request.args.get("missing") == "1"

    rows = []
    missing = []
    if lang and is_valid_language_code(lang):
        source = read_translation_file(_i18n_dir(), SOURCE_LANGUAGE)
        target = read_translation_file(_i18n_dir(), lang)
        missing = missing_keys(source, target)
        flat_source = flatten(source)
        flat_target = flatten(target)
        missing_set = set(missing)
        for key, source_value in flat_source.items():
            if only_missing and key not in missing_set:
                continue
            if search and search not in key.lower() and search not in source_value.lower():
                continue
            rows.append({"key": key, "source": source_value, "value": flat_target.get(key, "")})
    else:
        lang = ""

    return render_template(
        "super_admin/translations/index.html",
        languages=languages,
        sync_status=get_sync_status(s, _i18n_dir()),
        lang=lang,
        rows=rows,
        missing_count=len(missing),
        search=search,
        only_missing=only_missing,
        source_language=SOURCE_LANGUAGE,
        language_flags=LANGUAGE_FLAGS,
    )


@bp.post("/languages/<code>/sync")
@require_permission("translations.manage")
def language_sync(code: str):
    if not is_valid_language_code(code):
        flash("Invalid language code.", "danger")
        return redirect(url_for("translations.translations_index"))
    s = db_session()
    sync_language_to_db(s, code, _current_user())
    s.commit()
    flash(f"Language {code} added.", "success")
    return redirect(url_for("translations.translations_index"))


@bp.post("/languages/<code>/remove")
@require_permission("translations.manage")
def language_remove(code: str):
    s = db_session()
    if remove_language_from_db(s, code, _current_user()):
        s.commit()
        flash(f"Language {code} removed.", "success")
    else:
        flash(f"Language {code} is not registered.", "warning")
    return redirect(url_for("translations.translations_index"))


@bp.post("/languages/<int:language_id>/settings")
@require_permission("translations.manage")
def language_settings(language_id: int):
    s = db_session()
    lang = get_or_404(s, SupportedLanguage, language_id)
    payload = {flag: request.form.get(flag) or "0" for flag in LANGUAGE_FLAGS}
    payload["name"] = request.form.get("name")
    update_language_settings(s, lang, payload, _current_user())
    s.commit()
    flash(f"Settings saved for {lang.code}.", "success")
    return redirect(url_for("translations.translations_index"))


@bp.post("/<code>/save")
@require_permission("translations.manage")
def translation_save(code: str):
    if not is_valid_language_code(code):
        flash("Invalid language code.", "danger")
        return redirect(url_for("translations.translations_index"))
    s = db_session()
    try:
        save_translation(
            s,
            _i18n_dir(),
            code,
            request.form.get("key") or "",
            request.form.get("value") or "",
            _current_user(),
        )
    except ServiceError as e:
        s.rollback()
        flash(str(e), "danger")
        return redirect(url_for("translations.translations_index", lang=code))
    s.commit()
    flash("Translation saved.", "success")
    return redirect(url_for("translations.translations_index", lang=code, q=request.form.get("q") or None))


@bp.post("/push")
@require_permission("translations.manage")
def translations_push():
    s = db_session()
    counts = push_files_to_db(s, _i18n_dir())
    s.commit()
    flash(f"Imported {sum(counts.values())} changed keys from files.", "success")
    return redirect(url_for("translations.translations_index"))


@bp.post("/pull")
@require_permission("translations.manage")
def translations_pull():
    s = db_session()
    counts = pull_incremental(s, _i18n_dir())
    changed = {code: n for code, n in counts.items() if n}
    if changed:
        flash("Updated files: " + ", ".join(f"{code} ({n})" for code, n in changed.items()), "success")
    else:
        flash("Files are already up to date.", "info")
    return redirect(url_for("translations.translations_index"))
