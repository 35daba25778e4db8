"""
Release phase for a Duxa deploy, run before the web process starts.

Steps:
- check DATABASE_URL (never let production fall back to SQLite)
- alembic upgrade head
- seed the super admin, system themes, base languages and security settings
- report translation keys missing from the non-English files

Usage:
  python scripts/release.py
"""

from __future__ import annotations

import os
import sys
from pathlib import Path


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def _say(msg: str) -> None:
    print(msg, flush=True)


def release_database_url() -> str:
    db_url = (os.environ.get("DATABASE_URL") or "").strip()
    if not db_url:
        raise RuntimeError(
            "Missing required environment variable DATABASE_URL. "
            "Set it in the app's environment settings before deploying."
        )
    env = (os.environ.get("ENV") or "").strip().lower()
    if env in ("prod", "production") and db_url.startswith("sqlite"):
        raise RuntimeError("Refusing to run release on sqlite DATABASE_URL in production. Point DATABASE_URL at Postgres.")
    return db_url


def migrate(db_url: str) -> None:
    from alembic import command
    from alembic.config import Config

    cfg = Config(str(ROOT / "alembic.ini"))
    cfg.set_main_option("script_location", str(ROOT / "migrations"))
    cfg.set_main_option("sqlalchemy.url", db_url)
    command.upgrade(cfg, "head")


def report_translations() -> int:
    """Warn about incomplete language files. Never fails the release."""
    from scripts._db_utils import script_i18n_dir
    from scripts.validate_translation_keys import find_missing

    incomplete = {code: keys for code, keys in find_missing(script_i18n_dir()).items() if keys}
    for code, keys in sorted(incomplete.items()):
        _say(f"WARNING: {code}.json is missing {len(keys)} key(s), e.g. {keys[0]}")
    return len(incomplete)


def run_release() -> None:
    db_url = release_database_url()
    _say("=== Duxa release start ===")

    _say("Running Alembic migrations...")
    migrate(db_url)

    _say("Seeding admin, themes, languages and security settings...")
    from scripts import init_db

    init_db.seed_only(database_url=db_url)

    report_translations()
    _say("=== Duxa release done ===")


if __name__ == "__main__":
    run_release()
