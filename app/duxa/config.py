import os
from dataclasses import asdict, dataclass
from datetime import timedelta


@dataclass(frozen=True)
class Settings:
    """Environment-driven settings. Each field becomes an upper-case Flask config key."""

    secret_key: str
    env: str
    database_url: str
    site_url: str

    storage_backend: str
    local_storage_root: str
    s3_endpoint: str
    s3_region: str
    s3_bucket: str
    s3_access_key_id: str
    s3_secret_access_key: str

    smtp_server: str
    smtp_port: int
    smtp_use_tls: bool
    smtp_username: str
    smtp_password: str
    email_from: str
    admin_notify_email: str
    mail_suppress_send: bool

    i18n_dir: str
    session_lifetime_hours: int

    @property
    def is_production(self) -> bool:
        return self.env in ("prod", "production")


def _getenv(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def _getenv_int(name: str, default: int) -> int:
    raw = _getenv(name)
    return int(raw) if raw.isdigit() else default


def _getenv_bool(name: str, default: bool) -> bool:
    raw = _getenv(name).lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "on")


def load_settings() -> Settings:
    return Settings(
        secret_key=_getenv("SECRET_KEY", "change-me"),
        env=_getenv("ENV", "development").lower(),
        database_url=_getenv("DATABASE_URL", "sqlite:///duxa.db"),
        site_url=_getenv("SITE_URL", "http://localhost:8080").rstrip("/"),
        storage_backend=_getenv("STORAGE_BACKEND", "local").lower(),
        local_storage_root=_getenv("LOCAL_STORAGE_ROOT"),
        s3_endpoint=_getenv("S3_ENDPOINT"),
        s3_region=_getenv("S3_REGION", "fra1"),
        s3_bucket=_getenv("S3_BUCKET"),
        s3_access_key_id=_getenv("S3_ACCESS_KEY_ID"),
        s3_secret_access_key=_getenv("S3_SECRET_ACCESS_KEY"),
        smtp_server=_getenv("SMTP_SERVER"),
        smtp_port=_getenv_int("SMTP_PORT", 587),
        smtp_use_tls=_getenv_bool("SMTP_USE_TLS", True),
        smtp_username=_getenv("SMTP_USERNAME"),
        smtp_password=_getenv("SMTP_PASSWORD"),
        email_from=_getenv("EMAIL_FROM", "Duxa <no-reply@duxa.local>"),
        admin_notify_email=_getenv("ADMIN_NOTIFY_EMAIL"),
        mail_suppress_send=_getenv_bool("MAIL_SUPPRESS_SEND", False),
        i18n_dir=_getenv("I18N_DIR", "i18n"),
        session_lifetime_hours=_getenv_int("SESSION_LIFETIME_HOURS", 12),
    )


def load_config() -> dict:
    s = load_settings()
    config = {key.upper(): value for key, value in asdict(s).items()}
    config.update(
        PERMANENT_SESSION_LIFETIME=timedelta(hours=s.session_lifetime_hours),
        SESSION_REFRESH_EACH_REQUEST=True,
        SESSION_COOKIE_HTTPONLY=True,
        SESSION_COOKIE_SAMESITE="Lax",
        SESSION_COOKIE_SECURE=s.is_production,
        # logo and menu image uploads
        MAX_CONTENT_LENGTH=5 * 1024 * 1024,
    )
    return config


def production_errors(config: dict) -> list[str]:
    """Settings that make a production boot unsafe. Empty outside production."""
    if config.get("ENV") not in ("prod", "production"):
        return []
    errors = []
    db_url = str(config.get("DATABASE_URL") or "")
    if not db_url:
        errors.append("DATABASE_URL is required in production.")
    elif db_url.startswith("sqlite"):
        errors.append("DATABASE_URL must be Postgres in production (not sqlite).")
    if str(config.get("SECRET_KEY") or "") in ("", "change-me"):
        errors.append("SECRET_KEY must be set to a strong value in production (not default).")
    return errors


def missing_s3_settings(config: dict) -> list[str]:
    if config.get("STORAGE_BACKEND") != "s3":
        return []
    return [k for k in ("S3_ENDPOINT", "S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY") if not config.get(k)]
