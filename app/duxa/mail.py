from __future__ import annotations

import logging
import smtplib
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from flask import current_app, render_template

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OutgoingMail:
    to: str
    subject: str
    text: str
    html: str | None = None


def send_email(to: str, subject: str, body: str, *, html: str | None = None) -> tuple[bool, str]:
    """
    Send an email using SMTP configuration from app.config.

    Returns (success, detail). Misconfiguration and SMTP failures are reported,
    not raised, so the calling action can still complete.
    With MAIL_SUPPRESS_SEND set the message is appended to
    app.extensions["mail_outbox"] instead of being delivered.
    """
    cfg = current_app.config
    msg_record = OutgoingMail(to=to, subject=subject, text=body, html=html)
    if cfg.get("MAIL_SUPPRESS_SEND"):
        current_app.extensions.setdefault("mail_outbox", []).append(msg_record)
        return True, "suppressed"

    smtp_server = (cfg.get("SMTP_SERVER") or "").strip()
    smtp_port = cfg.get("SMTP_PORT")
    email_from = (cfg.get("EMAIL_FROM") or "").strip()
    if not smtp_server:
        logger.warning("Email to %s not sent: SMTP_SERVER is not configured", to)
        return False, "SMTP server not configured (SMTP_SERVER environment variable missing)"
    if not email_from:
        logger.warning("Email to %s not sent: EMAIL_FROM is not configured", to)
        return False, "Email from address not configured (EMAIL_FROM environment variable missing)"

    if html:
        msg = MIMEMultipart("alternative")
        msg.attach(MIMEText(body, "plain", "utf-8"))
        msg.attach(MIMEText(html, "html", "utf-8"))
    else:
        msg = MIMEText(body, "plain", "utf-8")
    msg["Subject"] = subject
    msg["From"] = email_from
    msg["To"] = to

    try:
        with smtplib.SMTP(smtp_server, int(smtp_port or 587), timeout=15) as server:
            if cfg.get("SMTP_USE_TLS", True):
                server.starttls()
            username = (cfg.get("SMTP_USERNAME") or "").strip()
            password = (cfg.get("SMTP_PASSWORD") or "").strip()
            if username and password:
                server.login(username, password)
            server.send_message(msg)
    except smtplib.SMTPAuthenticationError as e:
        logger.error("SMTP authentication failed sending to %s: %s", to, e)
        return False, f"SMTP authentication failed: {e}"
    except (smtplib.SMTPException, OSError) as e:
        logger.error("SMTP error sending to %s: %s", to, e)
        return False, f"SMTP error: {e}"

    logger.info("Sent email to %s subject=%r", to, subject)
    return True, "sent"


def _send_template(to: str, subject: str, template: str, **ctx) -> tuple[bool, str]:
    html = render_template(f"emails/{template}.html", **ctx)
    text = render_template(f"emails/{template}.txt", **ctx)
    return send_email(to, subject, text, html=html)


def send_password_reset_email(to: str, reset_url: str) -> tuple[bool, str]:
    return _send_template(to, "Reset your Duxa password", "password_reset", reset_url=reset_url)


def send_tenant_welcome_email(to: str, *, tenant_name: str, admin_name: str, login_url: str) -> tuple[bool, str]:
    return _send_template(
        to,
        f"Welcome to Duxa, {tenant_name}",
        "tenant_welcome",
        tenant_name=tenant_name,
        admin_name=admin_name,
        login_url=login_url,
    )


def send_waitlist_welcome_email(to: str, *, language: str) -> tuple[bool, str]:
    return _send_template(to, "You're on the Duxa waitlist", "waitlist_welcome", language=language)


def send_waitlist_admin_notification(to: str, *, subscriber_email: str, language: str) -> tuple[bool, str]:
    return _send_template(
        to,
        f"New waitlist signup: {subscriber_email}",
        "waitlist_admin",
        subscriber_email=subscriber_email,
        language=language,
    )
