from __future__ import annotations

from contextlib import contextmanager
from collections.abc import Generator
from typing import TypeVar

from flask import Flask, abort, current_app, g
from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import Session, sessionmaker

T = TypeVar("T")


def engine_options(db_url: str) -> dict[str, object]:
    opts: dict[str, object] = {"future": True, "pool_pre_ping": True}
    if db_url.startswith("postgres"):
        # Managed Postgres drops idle connections; keep the pool small and recycled.
        opts.update(pool_recycle=1800, pool_size=5, max_overflow=10, pool_timeout=30)
    return opts


def build_engine(db_url: str) -> Engine:
    engine = create_engine(db_url, **engine_options(db_url))
    if db_url.startswith("sqlite"):
        # ON DELETE CASCADE from tenants down to menu/orders needs this per connection.
        @event.listens_for(engine, "connect")
        def _sqlite_fk_pragma(dbapi_connection, connection_record):  # type: ignore[no-redef]
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()
    return engine


def make_sessionmaker(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, class_=Session, autoflush=False, expire_on_commit=False, future=True)


def init_db(app: Flask) -> None:
    engine = build_engine(app.config["DATABASE_URL"])
    app.extensions["sqlalchemy_engine"] = engine
    app.extensions["sqlalchemy_sessionmaker"] = make_sessionmaker(engine)


def db_session(app: Flask | None = None) -> Session:
    """Request-scoped session, opened lazily and closed on teardown."""
    s: Session | None = getattr(g, "db_session", None)
    if s is None:
        sm = (app or current_app).extensions["sqlalchemy_sessionmaker"]
        s = g.db_session = sm()
    return s


def teardown_db_session(exc: BaseException | None) -> None:
    s: Session | None = g.pop("db_session", None)
    if s is None:
        return
    if exc is not None:
        s.rollback()
    s.close()


def get_or_404(s: Session, model: type[T], pk: int) -> T:
    obj = s.get(model, pk)
    if obj is None:
        abort(404)
    return obj


def tenant_row(s: Session, model: type[T], pk: int, tenant_id: int | None) -> T | None:
    """Load a row only if it belongs to the tenant."""
    obj = s.get(model, pk)
    if obj is None or tenant_id is None or getattr(obj, "tenant_id", None) != tenant_id:
        return None
    return obj


def tenant_row_or_404(s: Session, model: type[T], pk: int, tenant_id: int | None) -> T:
    # Rows of other tenants look exactly like missing rows.
    obj = tenant_row(s, model, pk, tenant_id)
    if obj is None:
        abort(404)
    return obj


@contextmanager
def session_scope(app: Flask) -> Generator[Session, None, None]:
    """
    Session for scripts and tests outside a request: commits on success,
    rolls back and re-raises on error.
    """
    s: Session = app.extensions["sqlalchemy_sessionmaker"]()
    try:
        yield s
        s.commit()
    except Exception:
        s.rollback()
        raise
    finally:
        s.close()
