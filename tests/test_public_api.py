from app.duxa.db import session_scope
from app.duxa.models import NewsletterSubscriber, SystemLog, User


def test_i18n_serves_language_file(client):
    r = client.get("/api/i18n/tr")
    assert r.status_code == 200
    assert r.json["nav"]["login"] == "Giriş yap"
    assert "max-age=3600" in r.headers["Cache-Control"]


def test_i18n_rejects_unknown_and_missing_languages(client):
    r = client.get("/api/i18n/xx")
    assert r.status_code == 400
    assert r.json["error"] == "Invalid language code"
    # supported code without a file on disk
    r = client.get("/api/i18n/de")
    assert r.status_code == 404


def test_i18n_corrupt_file_is_server_error(app, client):
    with open(f"{app.config['I18N_DIR']}/en.json", "w", encoding="utf-8") as f:
        f.write("{not json")
    r = client.get("/api/i18n/en")
    assert r.status_code == 500


def test_api_logs_records_event(app, client):
    r = client.post(
        "/api/logs",
        json={"event_type": "CLIENT_ERROR", "message": "Menu failed to render", "severity": "error", "metadata": {"page": "/m/kofte"}},
    )
    assert r.status_code == 200
    assert r.json == {"success": True}
    with session_scope(app) as s:
        ev = s.query(SystemLog).filter(SystemLog.event_type == "CLIENT_ERROR").one()
        assert ev.severity == "ERROR"
        assert ev.metadata_json["page"] == "/m/kofte"
        assert ev.user_id is None


def test_api_logs_validates_body(client):
    assert client.post("/api/logs", data="nope", content_type="text/plain").status_code == 400
    r = client.post("/api/logs", json={"event_type": "X"})
    assert r.status_code == 400
    assert "required" in r.json["error"]
    r = client.post("/api/logs", json={"event_type": "X", "message": "m", "severity": "LOUD"})
    assert r.status_code == 400
    assert "severity must be one of" in r.json["error"]


def test_api_logs_keeps_non_numeric_user_id_in_metadata(app, client):
    r = client.post("/api/logs", json={"event_type": "CLIENT_ERROR", "message": "m", "user_id": "abc-123"})
    assert r.status_code == 200
    with session_scope(app) as s:
        ev = s.query(SystemLog).filter(SystemLog.event_type == "CLIENT_ERROR").one()
        assert ev.user_id is None
        assert ev.metadata_json["raw_user_id"] == "abc-123"


def test_waitlist_signup_sends_welcome(app, client):
    with client.session_transaction() as sess:
        sess["csrf_token"] = "test-token"
    r = client.post(
        "/waitlist",
        data={"csrf_token": "test-token", "email": "Chef@Example.com", "language": "tr"},
        follow_redirects=True,
    )
    assert r.status_code == 200
    with session_scope(app) as s:
        sub = s.query(NewsletterSubscriber).one()
        assert sub.email == "chef@example.com"
        assert sub.language == "tr"
    assert [m.to for m in app.extensions["mail_outbox"]] == ["chef@example.com"]


def test_public_pages_render(client):
    assert client.get("/").status_code == 200
    assert client.get("/legal/privacy").status_code == 200
    assert client.get("/legal/unknown").status_code == 404


def test_appearance_preference(app, client, super_admin):
    assert client.get("/settings/appearance").status_code == 200
    r = client.post("/settings/appearance", data={"csrf_token": "test-token", "theme": "dark"}, follow_redirects=True)
    assert b"Appearance saved." in r.data
    r = client.post("/settings/appearance", data={"csrf_token": "test-token", "theme": "neon"}, follow_redirects=True)
    assert b"Theme must be one of" in r.data
    with session_scope(app) as s:
        assert s.get(User, super_admin).theme_preference == "dark"
