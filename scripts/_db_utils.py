from __future__ import annotations

import os
from contextlib import contextmanager
from collections.abc import Generator
from pathlib import Path

from sqlalchemy.orm import Session

from app.duxa.db import build_engine, make_sessionmaker

ROOT = Path(__file__).resolve().parents[1]


def script_database_url(database_url: str | None = None) -> str:
    return (database_url or os.environ.get("DATABASE_URL") or "sqlite:///duxa.db").strip()


def script_i18n_dir() -> str:
    return os.environ.get("I18N_DIR") or str(ROOT / "i18n")


@contextmanager
def script_session(db_url: str) -> Generator[Session, None, None]:
    """Commit-on-success session for one-off scripts; the engine is disposed afterwards."""
    engine = build_engine(db_url)
    s = make_sessionmaker(engine)()
    try:
        yield s
        s.commit()
    except Exception:
        s.rollback()
        raise
    finally:
        s.close()
        engine.dispose()
