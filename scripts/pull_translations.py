#!/usr/bin/env python3
"""
Pull translation edits from the database into i18n/<code>.json (DB -> files).

Only rows updated since the last run are applied; the timestamp lives in
.translation_sync_meta.json next to the i18n directory.

Usage:
    python scripts/pull_translations.py           # incremental
    python scripts/pull_translations.py --full    # ignore the last sync time
    python scripts/pull_translations.py tr        # selected languages
"""
from __future__ import annotations

import sys
from datetime import datetime
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.duxa.modules.translations.service import pull_db_to_files, pull_incremental
from app.duxa.modules.translations.utils import meta_path, read_last_sync, write_last_sync
from scripts._db_utils import script_database_url, script_i18n_dir, script_session


def main(argv: list[str] | None = None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    full = "--full" in argv
    languages = [a for a in argv if not a.startswith("--")] or None
    database_url = script_database_url()
    i18n_dir = script_i18n_dir()

    with script_session(database_url) as s:
        if full:
            started = datetime.utcnow()
            counts = pull_db_to_files(s, i18n_dir, languages)
            write_last_sync(meta_path(i18n_dir), started)
        else:
            print(f"Last sync: {read_last_sync(meta_path(i18n_dir)).isoformat()}")
            counts = pull_incremental(s, i18n_dir, languages)

    if not any(counts.values()):
        print("No changes.")
        return 0
    for code, n in sorted(counts.items()):
        if n:
            print(f"  {code}: {n} keys updated")
    return 0


if __name__ == "__main__":
    sys.exit(main())
