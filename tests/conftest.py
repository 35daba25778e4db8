import json

import pytest
from werkzeug.security import generate_password_hash

from app.duxa import auth as auth_module
from app.duxa import create_app
from app.duxa.db import session_scope
from app.duxa.models import Base, User
from app.duxa.modules.tenants.models import Tenant, TenantUser

PASSWORD = "Passw0rd!"


def _write_i18n(i18n_dir):
    i18n_dir.mkdir()
    (i18n_dir / "en.json").write_text(
        json.dumps({"nav": {"login": "Log in", "logout": "Log out"}, "common": {"save": "Save"}}),
        encoding="utf-8",
    )
    (i18n_dir / "tr.json").write_text(
        json.dumps({"nav": {"login": "Giriş yap"}, "common": {"save": "Kaydet"}}),
        encoding="utf-8",
    )


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    monkeypatch.setenv("LOCAL_STORAGE_ROOT", str(tmp_path / "storage"))
    monkeypatch.setenv("MAIL_SUPPRESS_SEND", "1")
    monkeypatch.setenv("I18N_DIR", str(tmp_path / "i18n"))
    for k in ("S3_ENDPOINT", "S3_REGION", "S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY", "SMTP_SERVER"):
        monkeypatch.delenv(k, raising=False)
    _write_i18n(tmp_path / "i18n")
    auth_module._login_attempts.clear()

    app = create_app()
    app.config["TESTING"] = True
    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)
    return app


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def make_tenant(app):
    def _make(name="Köfte House", slug="kofte-house", **fields) -> int:
        with session_scope(app) as s:
            tenant = Tenant(name=name, slug=slug, status="active", plan="trial", settings={}, **fields)
            s.add(tenant)
            s.flush()
            return tenant.id

    return _make


@pytest.fixture()
def make_user(app):
    def _make(email, role="super_admin", tenant_id=None, membership_role=None, password=PASSWORD, **fields) -> int:
        with session_scope(app) as s:
            user = User(
                email=email,
                password_hash=generate_password_hash(password),
                full_name=fields.pop("full_name", email.split("@")[0].title()),
                role=role,
                tenant_id=tenant_id,
                is_active=fields.pop("is_active", True),
                **fields,
            )
            s.add(user)
            s.flush()
            if tenant_id and membership_role:
                s.add(TenantUser(tenant_id=tenant_id, user_id=user.id, role=membership_role, is_active=True))
            return user.id

    return _make


@pytest.fixture()
def login(client):
    """Log in and pin the CSRF token so tests can post forms with csrf_token=test-token."""

    def _login(email, password=PASSWORD, follow_redirects=False):
        r = client.post("/login", data={"email": email, "password": password}, follow_redirects=follow_redirects)
        with client.session_transaction() as sess:
            sess["csrf_token"] = "test-token"
        return r

    return _login


@pytest.fixture()
def super_admin(make_user, login):
    user_id = make_user("admin@example.com", role="super_admin")
    login("admin@example.com")
    return user_id


@pytest.fixture()
def tenant_admin(make_tenant, make_user, login):
    """Logged-in restaurant owner; returns (tenant_id, user_id)."""
    tenant_id = make_tenant()
    user_id = make_user("owner@example.com", role="tenant_admin", tenant_id=tenant_id, membership_role="owner")
    login("owner@example.com")
    return tenant_id, user_id
