from datetime import datetime

import pytest
from openpyxl import Workbook
from werkzeug.security import check_password_hash

from app.duxa.db import session_scope
from app.duxa.models import SystemSetting, User
from app.duxa.modules.inventory.models import HardwareInventoryItem
from app.duxa.modules.themes.models import Theme
from app.duxa.modules.translations.models import SupportedLanguage
from scripts import init_db, release
from scripts.import_hardware_inventory import import_hardware_from_excel, map_headers
from scripts.start import gunicorn_argv, resolve_port


def test_resolve_port():
    assert resolve_port(None) == "8080"
    assert resolve_port(" 5000 ") == "5000"
    for bad in ("abc", "0", "70000"):
        with pytest.raises(ValueError, match="Must be integer 1-65535"):
            resolve_port(bad)


def test_gunicorn_argv():
    argv = gunicorn_argv("5000", " 4 ")
    assert argv[:2] == ["gunicorn", "app.wsgi:app"]
    assert argv[argv.index("--bind") + 1] == "0.0.0.0:5000"
    assert argv[argv.index("--workers") + 1] == "4"
    assert gunicorn_argv("8080")[argv.index("--workers") + 1] == "2"


def test_seed_only_is_idempotent(app, monkeypatch):
    monkeypatch.setenv("ADMIN_EMAIL", "Root@Example.com")
    monkeypatch.setenv("ADMIN_PASSWORD", "first-password")
    init_db.seed_only(database_url=app.config["DATABASE_URL"])

    monkeypatch.setenv("ADMIN_PASSWORD", "second-password")
    init_db.seed_only(database_url=app.config["DATABASE_URL"])

    with session_scope(app) as s:
        admin = s.query(User).filter(User.email == "root@example.com").one()
        assert admin.role == "super_admin"
        assert check_password_hash(admin.password_hash, "first-password")
        assert s.query(Theme).count() == 4
        assert sorted(code for (code,) in s.query(SupportedLanguage.code).all()) == ["de", "en", "tr"]
        assert s.get(SystemSetting, "security").value["max_login_attempts"] == 5


def test_release_refuses_sqlite_in_production(monkeypatch):
    monkeypatch.setenv("ENV", "production")
    monkeypatch.setenv("DATABASE_URL", "sqlite:///prod.db")
    with pytest.raises(RuntimeError, match="Refusing to run release on sqlite"):
        release.run_release()
    monkeypatch.delenv("DATABASE_URL")
    with pytest.raises(RuntimeError, match="Missing required environment variable DATABASE_URL"):
        release.run_release()


def test_release_reports_incomplete_translations(app, capsys):
    assert release.report_translations() == 1
    assert "WARNING: tr.json is missing 1 key(s), e.g. nav.logout" in capsys.readouterr().out


def test_map_headers_matches_loosely():
    assert map_headers(["S/N", "Brand", None, "Device Type", "Purchased"]) == {
        "serial_number": 0,
        "manufacturer": 1,
        "device_type": 3,
        "purchase_date": 4,
    }


def test_import_hardware_from_excel(app, tmp_path, make_user):
    admin_id = make_user("admin@example.com")
    with session_scope(app) as s:
        s.add(HardwareInventoryItem(serial_number="SN-OLD", device_type="POS"))

    wb = Workbook()
    ws = wb.active
    ws.append(["Serial No", "Device", "Model", "Brand", "Status", "Purchase Date", "Notes"])
    ws.append(["SN-100", "Kiosk", "K10", "Acme", "available", datetime(2025, 3, 1), None])
    ws.append([200.0, "Printer", None, None, "broken", "15.04.2025", "paper jam"])
    ws.append(["SN-OLD", "POS", None, None, None, None, None])
    ws.append([None, "POS", None, None, None, None, None])
    path = tmp_path / "hardware.xlsx"
    wb.save(path)

    with session_scope(app) as s:
        result = import_hardware_from_excel(str(path), s, s.get(User, admin_id))
    assert result == {"created": 2, "skipped": 1, "errors": []}

    with session_scope(app) as s:
        kiosk = s.query(HardwareInventoryItem).filter(HardwareInventoryItem.serial_number == "SN-100").one()
        assert kiosk.status == "in_stock"
        assert kiosk.purchase_date.isoformat() == "2025-03-01"
        printer = s.query(HardwareInventoryItem).filter(HardwareInventoryItem.serial_number == "200").one()
        assert printer.status == "under_repair"
        assert printer.purchase_date.isoformat() == "2025-04-15"

    with session_scope(app) as s:
        assert import_hardware_from_excel(str(tmp_path / "missing.xlsx"), s, s.get(User, admin_id)) == {
            "error": f"File not found: {tmp_path / 'missing.xlsx'}"
        }
