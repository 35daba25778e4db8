from __future__ import annotations

import logging
from typing import Any

from flask import current_app, g, has_request_context, request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.duxa.constants import LOG_SEVERITIES
from app.duxa.models import SystemLog, User

logger = logging.getLogger(__name__)


def client_ip() -> str | None:
    """First hop of X-Forwarded-For, then X-Real-IP, then the socket address."""
    if not has_request_context():
        return None
    forwarded = request.headers.get("X-Forwarded-For") or ""
    if forwarded.strip():
        return forwarded.split(",")[0].strip()
    real_ip = (request.headers.get("X-Real-IP") or "").strip()
    if real_ip:
        return real_ip
    return request.remote_addr


def _coerce_tenant_id(value: Any, metadata: dict[str, Any]) -> int | None:
    if value is None or value == "":
        return None
    try:
        tid = int(value)
    except (TypeError, ValueError):
        metadata["invalid_tenant_id_attempt"] = str(value)
        return None
    if tid <= 0:
        metadata["invalid_tenant_id_attempt"] = str(value)
        return None
    return tid


def record_event(
    s: Session,
    *,
    actor: User | None,
    event_type: str,
    message: str,
    severity: str = "INFO",
    metadata: dict[str, Any] | None = None,
    tenant_id: Any = None,
    user_id: int | None = None,
    request_id: str | None = None,
) -> SystemLog:
    """
    Append-only system log helper. The caller owns the commit.
    """
    meta = dict(metadata or {})
    severity = (severity or "INFO").strip().upper()
    if severity not in LOG_SEVERITIES:
        meta["original_severity"] = severity
        severity = "INFO"

    rid = request_id
    user_agent = None
    if has_request_context():
        rid = rid or getattr(g, "request_id", None)
        user_agent = (request.headers.get("User-Agent") or "")[:512] or None

    if tenant_id is None and actor is not None:
        tenant_id = actor.tenant_id

    ev = SystemLog(
        request_id=rid,
        event_type=event_type,
        severity=severity,
        message=message,
        user_id=user_id if user_id is not None else (actor.id if actor else None),
        user_email=actor.email if actor else None,
        tenant_id=_coerce_tenant_id(tenant_id, meta),
        ip_address=client_ip(),
        user_agent=user_agent,
        metadata_json=meta or None,
    )
    s.add(ev)
    return ev


def log_system_event_safe(**kwargs: Any) -> bool:
    """
    Write one event in its own session so it survives a rolled-back request.
    Never raises; returns False when the write failed.
    """
    try:
        sm = current_app.extensions["sqlalchemy_sessionmaker"]
    except (RuntimeError, KeyError):
        logger.warning("log_system_event_safe called without an app: %s", kwargs.get("event_type"))
        return False
    s: Session = sm()
    try:
        record_event(s, **kwargs)
        s.commit()
        return True
    except SQLAlchemyError:
        s.rollback()
        logger.exception("Failed to write system log event_type=%s", kwargs.get("event_type"))
        return False
    finally:
        s.close()


def query_system_logs(s: Session, filters: dict[str, Any]):
    """
    Filters: event_type, severity, user_email (contains), tenant_id,
    date_from / date_to (date objects, inclusive). Newest first.
    """
    from datetime import datetime, time, timedelta

    q = s.query(SystemLog)
    if filters.get("event_type"):
        q = q.filter(SystemLog.event_type == filters["event_type"])
    if filters.get("severity"):
        q = q.filter(SystemLog.severity == filters["severity"])
    if filters.get("user_email"):
        q = q.filter(SystemLog.user_email.ilike(f"%{filters['user_email'].lower()}%"))
    if filters.get("tenant_id"):
        q = q.filter(SystemLog.tenant_id == filters["tenant_id"])
    if filters.get("date_from"):
        q = q.filter(SystemLog.created_at >= datetime.combine(filters["date_from"], time.min))
    if filters.get("date_to"):
        # inclusive end-date (treat as whole day)
        q = q.filter(SystemLog.created_at < datetime.combine(filters["date_to"] + timedelta(days=1), time.min))
    return q.order_by(SystemLog.created_at.desc(), SystemLog.id.desc())
