import os
import sys
from datetime import datetime
from pathlib import Path

from werkzeug.security import generate_password_hash

# Ensure repo root is on sys.path when running as a script (Windows-friendly).
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.duxa.constants import ROLE_SUPER_ADMIN
from app.duxa.models import SystemSetting, User
from app.duxa.modules.themes.service import seed_default_themes
from app.duxa.modules.translations.service import sync_language_to_db
from app.duxa.security import DEFAULT_SECURITY_SETTINGS, SECURITY_SETTINGS_KEY
from scripts._db_utils import script_database_url, script_session

SEED_LANGUAGES = ("en", "tr", "de")


def seed_only(*, database_url: str | None = None) -> None:
    """
    Seed the super admin, system themes, base languages and security settings.
    Idempotent. Does NOT overwrite an existing admin user's password.
    """
    admin_email = (os.environ.get("ADMIN_EMAIL") or "admin@duxa.local").strip().lower()
    admin_password = os.environ.get("ADMIN_PASSWORD") or "change-me"

    db_url = script_database_url(database_url)

    # Direct engine/session so this can run in release without importing app.wsgi (avoids recursion).
    with script_session(db_url) as s:
        user = s.query(User).filter(User.email == admin_email).one_or_none()
        if not user:
            now = datetime.utcnow()
            user = User(
                email=admin_email,
                password_hash=generate_password_hash(admin_password),
                full_name="Platform Admin",
                role=ROLE_SUPER_ADMIN,
                is_active=True,
                created_at=now,
                updated_at=now,
            )
            s.add(user)
        elif user.role != ROLE_SUPER_ADMIN:
            user.role = ROLE_SUPER_ADMIN

        created_themes = seed_default_themes(s)

        for code in SEED_LANGUAGES:
            sync_language_to_db(s, code)

        if s.get(SystemSetting, SECURITY_SETTINGS_KEY) is None:
            s.add(SystemSetting(key=SECURITY_SETTINGS_KEY, value=dict(DEFAULT_SECURITY_SETTINGS), updated_at=datetime.utcnow()))

    print("Initialized database (seed_only).")
    print(f"Admin email: {admin_email}")
    print("Admin password: (from ADMIN_PASSWORD)")
    print(f"System themes created: {created_themes}")


def main() -> None:
    seed_only(database_url=None)


if __name__ == "__main__":
    main()
