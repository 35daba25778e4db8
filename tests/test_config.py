from datetime import timedelta

from app.duxa.config import load_config, missing_s3_settings, production_errors


def test_load_config_maps_settings(monkeypatch):
    monkeypatch.setenv("ENV", "Production")
    monkeypatch.setenv("SMTP_PORT", "2525")
    monkeypatch.setenv("SESSION_LIFETIME_HOURS", "abc")
    monkeypatch.setenv("SITE_URL", "https://duxa.example.com/")
    config = load_config()
    assert config["ENV"] == "production"
    assert config["SMTP_PORT"] == 2525
    assert config["SITE_URL"] == "https://duxa.example.com"
    assert config["PERMANENT_SESSION_LIFETIME"] == timedelta(hours=12)
    assert config["SESSION_COOKIE_SECURE"] is True


def test_production_errors():
    assert production_errors({"ENV": "development", "DATABASE_URL": "sqlite:///x.db"}) == []
    assert production_errors({"ENV": "production", "DATABASE_URL": "sqlite:///x.db", "SECRET_KEY": "change-me"}) == [
        "DATABASE_URL must be Postgres in production (not sqlite).",
        "SECRET_KEY must be set to a strong value in production (not default).",
    ]
    assert production_errors({"ENV": "prod", "DATABASE_URL": "postgresql://db/duxa", "SECRET_KEY": "s3cret"}) == []


def test_missing_s3_settings():
    assert missing_s3_settings({"STORAGE_BACKEND": "local"}) == []
    assert missing_s3_settings({"STORAGE_BACKEND": "s3", "S3_ENDPOINT": "fra1.example.com", "S3_BUCKET": "duxa"}) == [
        "S3_ACCESS_KEY_ID",
        "S3_SECRET_ACCESS_KEY",
    ]
