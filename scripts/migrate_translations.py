#!/usr/bin/env python3
"""
Push i18n/<code>.json files into the translations table (files -> DB).

Usage:
    python scripts/migrate_translations.py            # every language file
    python scripts/migrate_translations.py tr de      # selected languages

Idempotent: rows are upserted by (key, language_code).
"""
from __future__ import annotations

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.duxa.modules.translations.service import push_files_to_db, sync_language_to_db
from app.duxa.modules.translations.utils import list_file_languages
from scripts._db_utils import script_database_url, script_i18n_dir, script_session


def main(argv: list[str] | None = None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    database_url = script_database_url()
    i18n_dir = script_i18n_dir()

    available = list_file_languages(i18n_dir)
    languages = argv or available
    unknown = [code for code in languages if code not in available]
    if unknown:
        print(f"ERROR: no language file for: {', '.join(unknown)} (in {i18n_dir})")
        return 1

    with script_session(database_url) as s:
        for code in languages:
            sync_language_to_db(s, code)
        counts = push_files_to_db(s, i18n_dir, languages)

    for code in languages:
        print(f"  {code}: {counts.get(code, 0)} keys written")
    print("Translations migrated.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
