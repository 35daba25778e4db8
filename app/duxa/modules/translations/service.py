from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Iterable

from app.duxa.audit import record_event
from app.duxa.constants import LANGUAGE_NAMES
from app.duxa.modules.translations.utils import (
    flatten,
    get_path,
    list_file_languages,
    meta_path,
    read_last_sync,
    read_translation_file,
    set_path,
    write_last_sync,
    write_translation_file,
)
from app.duxa.utils import ServiceError, parse_bool

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.duxa.models import User
    from app.duxa.modules.translations.models import SupportedLanguage

logger = logging.getLogger(__name__)

LANGUAGE_FLAGS = ("is_active", "show_in_admin", "show_in_marketing", "show_in_online_menu")


def list_languages(s: "Session") -> list["SupportedLanguage"]:
    from app.duxa.modules.translations.models import SupportedLanguage

    return s.query(SupportedLanguage).order_by(SupportedLanguage.name).all()


def get_sync_status(s: "Session", i18n_dir: str) -> dict[str, list[str]]:
    """Compare language files on disk with supported_languages rows."""
    from app.duxa.modules.translations.models import SupportedLanguage

    db_codes = {code for (code,) in s.query(SupportedLanguage.code).all()}
    file_codes = set(list_file_languages(i18n_dir))
    return {
        "missing_in_db": sorted(file_codes - db_codes),
        "missing_in_file": sorted(db_codes - file_codes),
    }


def sync_language_to_db(s: "Session", code: str, actor: "User | None" = None) -> "SupportedLanguage":
    from app.duxa.modules.translations.models import SupportedLanguage

    lang = s.query(SupportedLanguage).filter(SupportedLanguage.code == code).one_or_none()
    if lang is not None:
        return lang
    lang = SupportedLanguage(code=code, name=LANGUAGE_NAMES.get(code, code.upper()), is_active=True)
    s.add(lang)
    s.flush()
    if actor is not None:
        record_event(
            s,
            actor=actor,
            event_type="SYSTEM_CHANGE",
            message=f"Language {code} added",
            metadata={"language_code": code},
        )
    return lang


def remove_language_from_db(s: "Session", code: str, actor: "User | None" = None) -> bool:
    from app.duxa.modules.translations.models import SupportedLanguage

    deleted = s.query(SupportedLanguage).filter(SupportedLanguage.code == code).delete(synchronize_session=False)
    if deleted and actor is not None:
        record_event(
            s,
            actor=actor,
            event_type="SYSTEM_CHANGE",
            severity="WARNING",
            message=f"Language {code} removed",
            metadata={"language_code": code},
        )
    return bool(deleted)


def update_language_settings(s: "Session", lang: "SupportedLanguage", payload: dict, actor: "User") -> None:
    changes = {}
    for flag in LANGUAGE_FLAGS:
        if flag not in payload:
            continue
        new = parse_bool(payload[flag])
        if new != getattr(lang, flag):
            changes[flag] = {"old": getattr(lang, flag), "new": new}
            setattr(lang, flag, new)
    name = (payload.get("name") or "").strip()
    if name and name != lang.name:
        changes["name"] = {"old": lang.name, "new": name}
        lang.name = name
    if changes:
        record_event(
            s,
            actor=actor,
            event_type="SYSTEM_CHANGE",
            message=f"Language {lang.code} settings updated",
            metadata={"language_code": lang.code, "changes": changes},
        )


def push_files_to_db(s: "Session", i18n_dir: str, languages: Iterable[str] | None = None) -> dict[str, int]:
    """Upsert every flattened key of each language file. Returns rows written per language."""
    from app.duxa.modules.translations.models import Translation

    codes = list(languages) if languages is not None else list_file_languages(i18n_dir)
    now = datetime.utcnow()
    counts: dict[str, int] = {}
    for code in codes:
        flat = flatten(read_translation_file(i18n_dir, code))
        if not flat:
            logger.info("No translation data for %s; skipped", code)
            counts[code] = 0
            continue
        existing = {t.key: t for t in s.query(Translation).filter(Translation.language_code == code).all()}
        written = 0
        for key, value in flat.items():
            row = existing.get(key)
            if row is None:
                s.add(Translation(key=key, language_code=code, value=value, updated_at=now))
                written += 1
            elif row.value != value:
                row.value = value
                row.updated_at = now
                written += 1
        s.flush()
        counts[code] = written
        logger.info("Pushed %s: %d of %d keys changed", code, written, len(flat))
    return counts


def pull_db_to_files(
    s: "Session",
    i18n_dir: str,
    languages: Iterable[str] | None = None,
    since: datetime | None = None,
) -> dict[str, int]:
    """Apply rows updated after `since` into the JSON files.

    Files are rewritten only when at least one value actually changed.
    Returns the number of changed keys per language.
    """
    from app.duxa.modules.translations.models import Translation

    q = s.query(Translation)
    if since is not None:
        q = q.filter(Translation.updated_at > since)
    codes = set(languages) if languages is not None else None
    if codes is not None:
        q = q.filter(Translation.language_code.in_(codes))
    rows = q.order_by(Translation.updated_at.asc(), Translation.id.asc()).all()

    by_lang: dict[str, list] = {}
    for row in rows:
        by_lang.setdefault(row.language_code, []).append(row)

    counts: dict[str, int] = {}
    for code, lang_rows in sorted(by_lang.items()):
        data = read_translation_file(i18n_dir, code)
        updated = 0
        for row in lang_rows:
            if row.value is None:
                continue
            if get_path(data, row.key) != row.value:
                set_path(data, row.key, row.value)
                updated += 1
        if updated:
            write_translation_file(i18n_dir, code, data)
            logger.info("Wrote %d updates to %s.json", updated, code)
        counts[code] = updated
    return counts


def pull_incremental(s: "Session", i18n_dir: str, languages: Iterable[str] | None = None) -> dict[str, int]:
    """Pull everything changed since the last recorded sync, then advance the meta timestamp."""
    path = meta_path(i18n_dir)
    since = read_last_sync(path)
    started = datetime.utcnow()
    counts = pull_db_to_files(s, i18n_dir, languages, since=since)
    write_last_sync(path, started)
    return counts


def save_translation(s: "Session", i18n_dir: str, code: str, key: str, value: str, actor: "User") -> None:
    """Editor save: upsert the DB row and mirror the value into the language file."""
    from app.duxa.modules.translations.models import Translation

    key = (key or "").strip()
    if not key or key.startswith(".") or key.endswith(".") or ".." in key:
        raise ServiceError("Translation key is invalid.")
    row = (
        s.query(Translation)
        .filter(Translation.key == key, Translation.language_code == code)
        .one_or_none()
    )
    now = datetime.utcnow()
    if row is None:
        s.add(Translation(key=key, language_code=code, value=value, updated_at=now))
    else:
        row.value = value
        row.updated_at = now
    data = read_translation_file(i18n_dir, code)
    set_path(data, key, value)
    write_translation_file(i18n_dir, code, data)
    record_event(
        s,
        actor=actor,
        event_type="DATA_MUTATION",
        message=f"Translation {code}:{key} saved",
        metadata={"language_code": code, "key": key},
    )
