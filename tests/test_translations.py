import json
import os
from datetime import datetime, timedelta

import pytest

from app.duxa.db import session_scope
from app.duxa.models import User
from app.duxa.modules.translations.models import SupportedLanguage, Translation
from app.duxa.modules.translations.service import (
    get_sync_status,
    pull_db_to_files,
    pull_incremental,
    push_files_to_db,
    save_translation,
    sync_language_to_db,
)
from app.duxa.modules.translations.utils import (
    flatten,
    is_valid_language_code,
    meta_path,
    missing_keys,
    read_last_sync,
    read_translation_file,
    unflatten,
)
from app.duxa.utils import ServiceError
from scripts import migrate_translations, pull_translations, validate_translation_keys

CSRF = {"csrf_token": "test-token"}


def _i18n(app) -> str:
    return app.config["I18N_DIR"]


def test_flatten_and_unflatten():
    nested = {"nav": {"login": "Log in", "menu": {"title": "Menu"}}, "count": 3}
    flat = flatten(nested)
    assert flat == {"nav.login": "Log in", "nav.menu.title": "Menu", "count": "3"}
    assert unflatten({"nav.login": "Log in", "nav.menu.title": "Menu"}) == {"nav": {"login": "Log in", "menu": {"title": "Menu"}}}


def test_missing_keys_and_codes():
    source = {"nav": {"login": "Log in", "logout": "Log out"}, "common": {"save": "Save"}}
    target = {"nav": {"login": "Giriş yap"}}
    assert missing_keys(source, target) == ["nav.logout", "common.save"]
    assert is_valid_language_code("tr")
    assert is_valid_language_code("pt-BR")
    assert not is_valid_language_code("../etc")
    assert not is_valid_language_code("")


def test_read_last_sync_defaults_to_epoch(tmp_path):
    assert read_last_sync(str(tmp_path / "missing.json")) == datetime(1970, 1, 1)
    corrupt = tmp_path / "corrupt.json"
    corrupt.write_text("{oops", encoding="utf-8")
    assert read_last_sync(str(corrupt)) == datetime(1970, 1, 1)


def test_push_is_idempotent(app):
    with session_scope(app) as s:
        assert push_files_to_db(s, _i18n(app)) == {"en": 3, "tr": 2}
    with session_scope(app) as s:
        assert push_files_to_db(s, _i18n(app)) == {"en": 0, "tr": 0}
        assert s.query(Translation).filter(Translation.language_code == "tr").count() == 2


def test_pull_applies_only_newer_rows(app):
    with session_scope(app) as s:
        push_files_to_db(s, _i18n(app))
    cutoff = datetime.utcnow()
    with session_scope(app) as s:
        row = s.query(Translation).filter(Translation.key == "nav.login", Translation.language_code == "tr").one()
        row.value = "Oturum aç"
        row.updated_at = cutoff + timedelta(seconds=5)
        s.add(Translation(key="nav.logout", language_code="tr", value="Çıkış", updated_at=cutoff + timedelta(seconds=5)))

    with session_scope(app) as s:
        assert pull_db_to_files(s, _i18n(app), since=cutoff) == {"tr": 2}
    data = read_translation_file(_i18n(app), "tr")
    assert data["nav"] == {"login": "Oturum aç", "logout": "Çıkış"}
    # unchanged values leave the file alone
    with session_scope(app) as s:
        assert pull_db_to_files(s, _i18n(app), since=cutoff) == {"tr": 0}


def test_pull_incremental_advances_meta(app):
    with session_scope(app) as s:
        push_files_to_db(s, _i18n(app))
        pull_incremental(s, _i18n(app))
    path = meta_path(_i18n(app))
    assert os.path.exists(path)
    first = read_last_sync(path)
    assert first > datetime(1970, 1, 1)

    with session_scope(app) as s:
        # rows older than the recorded sync are not reapplied
        row = s.query(Translation).filter(Translation.key == "common.save", Translation.language_code == "tr").one()
        row.value = "Sakla"
        row.updated_at = first - timedelta(minutes=1)
    with session_scope(app) as s:
        assert pull_incremental(s, _i18n(app)) == {}
    assert read_translation_file(_i18n(app), "tr")["common"]["save"] == "Kaydet"


def test_save_translation_updates_db_and_file(app, make_user):
    actor_id = make_user("admin@example.com")
    with session_scope(app) as s:
        save_translation(s, _i18n(app), "tr", "nav.logout", "Çıkış yap", s.get(User, actor_id))
        for bad in ("", ".nav", "nav.", "nav..login"):
            with pytest.raises(ServiceError, match="Translation key is invalid."):
                save_translation(s, _i18n(app), "tr", bad, "x", s.get(User, actor_id))
    with session_scope(app) as s:
        row = s.query(Translation).filter(Translation.key == "nav.logout", Translation.language_code == "tr").one()
        assert row.value == "Çıkış yap"
    assert read_translation_file(_i18n(app), "tr")["nav"]["logout"] == "Çıkış yap"


def test_sync_status(app):
    with session_scope(app) as s:
        sync_language_to_db(s, "tr")
        sync_language_to_db(s, "de")
        assert get_sync_status(s, _i18n(app)) == {"missing_in_db": ["en"], "missing_in_file": ["de"]}
        assert s.query(SupportedLanguage).filter(SupportedLanguage.code == "tr").one().name == "Türkçe"


def test_translation_console(app, client, super_admin):
    r = client.get("/super-admin/settings/translations")
    assert r.status_code == 200

    client.post("/super-admin/settings/translations/languages/tr/sync", data=CSRF)
    with session_scope(app) as s:
        lang = s.query(SupportedLanguage).filter(SupportedLanguage.code == "tr").one()

    client.post(
        f"/super-admin/settings/translations/languages/{lang.id}/settings",
        data={**CSRF, "is_active": "1", "show_in_admin": "1", "name": "Turkish"},
    )
    with session_scope(app) as s:
        lang = s.get(SupportedLanguage, lang.id)
        assert lang.name == "Turkish"
        assert lang.show_in_marketing is False

    r = client.get("/super-admin/settings/translations?lang=tr")
    assert r.status_code == 200
    assert b"nav.logout" in r.data

    r = client.post(
        "/super-admin/settings/translations/tr/save",
        data={**CSRF, "key": "nav.logout", "value": "Çıkış"},
        follow_redirects=True,
    )
    assert b"Translation saved." in r.data
    assert read_translation_file(_i18n(app), "tr")["nav"]["logout"] == "Çıkış"

    r = client.post("/super-admin/settings/translations/push", data=CSRF, follow_redirects=True)
    assert b"changed keys from files." in r.data

    r = client.post("/super-admin/settings/translations/languages/tr/remove", data=CSRF, follow_redirects=True)
    assert b"Language tr removed." in r.data
    r = client.post("/super-admin/settings/translations/languages/tr/remove", data=CSRF, follow_redirects=True)
    assert b"Language tr is not registered." in r.data


def test_validate_keys_script(app, capsys):
    assert validate_translation_keys.find_missing(_i18n(app)) == {"tr": ["nav.logout"]}
    assert validate_translation_keys.main([]) == 0
    assert validate_translation_keys.main(["--strict"]) == 1
    out = capsys.readouterr().out
    assert "tr: 1 missing" in out
    assert "nav.logout" in out


def test_migrate_and_pull_scripts(app, capsys):
    assert migrate_translations.main(["xx"]) == 1
    assert migrate_translations.main([]) == 0
    with session_scope(app) as s:
        assert s.query(SupportedLanguage).count() == 2
        assert s.query(Translation).count() == 5
        row = s.query(Translation).filter(Translation.key == "common.save", Translation.language_code == "tr").one()
        row.value = "Sakla"
        row.updated_at = datetime.utcnow()

    assert pull_translations.main(["--full"]) == 0
    assert read_translation_file(_i18n(app), "tr")["common"]["save"] == "Sakla"
    with open(meta_path(_i18n(app)), encoding="utf-8") as f:
        assert "last_sync" in json.load(f)
    assert "tr: 1 keys updated" in capsys.readouterr().out
