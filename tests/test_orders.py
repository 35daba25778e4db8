from datetime import datetime, timedelta

import pytest

from app.duxa.dashboard import onboarding_checklist
from app.duxa.db import session_scope
from app.duxa.models import User
from app.duxa.modules.menu.models import MenuCategory, MenuProduct
from app.duxa.modules.orders.models import Order
from app.duxa.modules.orders.service import (
    advance_order_status,
    create_order,
    daily_stats,
    weekly_sales,
)
from app.duxa.modules.tenants.models import Tenant
from app.duxa.utils import ServiceError

CSRF = {"csrf_token": "test-token"}


@pytest.fixture()
def kitchen(app, tenant_admin):
    tenant_id, user_id = tenant_admin
    with session_scope(app) as s:
        category = MenuCategory(tenant_id=tenant_id, name="Pideler")
        s.add(category)
        s.flush()
        kiymali = MenuProduct(tenant_id=tenant_id, category_id=category.id, name="Kıymalı Pide", price=18000)
        ayran = MenuProduct(tenant_id=tenant_id, category_id=category.id, name="Ayran", price=2500)
        hidden = MenuProduct(tenant_id=tenant_id, category_id=category.id, name="Seasonal", price=9900, is_active=False)
        s.add_all([kiymali, ayran, hidden])
        s.flush()
        return {"tenant_id": tenant_id, "user_id": user_id, "pide": kiymali.id, "ayran": ayran.id, "hidden": hidden.id}


def _order(app, kitchen, **fields) -> int:
    defaults = {"tenant_id": kitchen["tenant_id"], "order_number": 1, "status": "pending", "total_amount": 1000}
    defaults.update(fields)
    with session_scope(app) as s:
        order = Order(**defaults)
        s.add(order)
        s.flush()
        return order.id


def test_create_order_prices_from_menu(app, kitchen):
    with session_scope(app) as s:
        actor = s.get(User, kitchen["user_id"])
        order = create_order(
            s,
            kitchen["tenant_id"],
            {
                "channel": "takeaway",
                "customer_name": "Zeynep",
                "items": [
                    {"menu_product_id": str(kitchen["pide"]), "quantity": "2", "unit_price": "1"},
                    {"menu_product_id": str(kitchen["ayran"]), "quantity": "0"},
                ],
            },
            actor,
        )
        assert order.order_number == 1
        assert order.total_amount == 36000
        assert [(i.name, i.quantity, i.line_total) for i in order.items] == [("Kıymalı Pide", 2, 36000)]

        second = create_order(s, kitchen["tenant_id"], {"items": [{"menu_product_id": kitchen["ayran"]}]}, actor)
        assert second.order_number == 2
        assert second.channel == "dine_in"


@pytest.mark.parametrize(
    "payload, message",
    [
        ({"items": []}, "An order needs at least one item."),
        ({"channel": "drone", "items": [{"menu_product_id": 1}]}, "Channel must be one of"),
        ({"items": [{"menu_product_id": "x"}]}, "whole-number quantity"),
        ({"items": [{"menu_product_id": "hidden"}]}, "One of the products is not available."),
    ],
)
def test_create_order_rejections(app, kitchen, payload, message):
    for item in payload["items"]:
        if item["menu_product_id"] == "hidden":
            item["menu_product_id"] = kitchen["hidden"]
    with session_scope(app) as s:
        with pytest.raises(ServiceError) as exc:
            create_order(s, kitchen["tenant_id"], payload, s.get(User, kitchen["user_id"]))
        assert message in str(exc.value)


def test_status_moves_forward_only(app, kitchen):
    order_id = _order(app, kitchen)
    with session_scope(app) as s:
        actor = s.get(User, kitchen["user_id"])
        order = s.get(Order, order_id)
        with pytest.raises(ServiceError, match="Cannot move an order from pending to ready."):
            advance_order_status(s, order, "ready", actor)
        for target in ("preparing", "ready", "completed"):
            advance_order_status(s, order, target, actor)
        assert order.status == "completed"
        with pytest.raises(ServiceError, match="A completed order cannot be cancelled."):
            advance_order_status(s, order, "cancelled", actor)


def test_daily_stats_and_weekly_sales(app, kitchen):
    now = datetime.utcnow()
    _order(app, kitchen, order_number=1, status="completed", total_amount=5000, created_at=now)
    _order(app, kitchen, order_number=2, status="preparing", total_amount=3000, created_at=now)
    _order(app, kitchen, order_number=3, status="cancelled", total_amount=9999, created_at=now)
    _order(app, kitchen, order_number=4, status="completed", total_amount=7000, created_at=now - timedelta(days=2))
    _order(app, kitchen, order_number=5, status="completed", total_amount=1111, created_at=now - timedelta(days=10))

    with session_scope(app) as s:
        stats = daily_stats(s, kitchen["tenant_id"], today=now.date())
        assert stats == {"revenue": 8000, "orders_today": 3, "active_orders": 1, "completed_today": 1}

        series = weekly_sales(s, kitchen["tenant_id"], today=now.date())
        assert len(series) == 7
        assert series[-1] == {"date": now.date(), "total": 5000}
        assert series[-3]["total"] == 7000
        assert sum(d["total"] for d in series) == 12000
        assert series[0]["date"] == now.date() - timedelta(days=6)


def test_order_routes(app, client, kitchen):
    r = client.post(
        "/dashboard/orders/new",
        data={
            **CSRF,
            "channel": "dine_in",
            "table_label": "T4",
            "menu_product_id": [str(kitchen["pide"]), str(kitchen["ayran"]), ""],
            "quantity": ["1", "3", "1"],
        },
        follow_redirects=True,
    )
    assert b"Order #1 created." in r.data
    with session_scope(app) as s:
        order = s.query(Order).one()
        assert order.total_amount == 18000 + 3 * 2500
        assert order.table_label == "T4"

    r = client.post(f"/dashboard/orders/{order.id}/status", data={**CSRF, "status": "completed"}, follow_redirects=True)
    assert b"Cannot move an order from pending to completed." in r.data

    r = client.post(
        f"/dashboard/orders/{order.id}/status",
        data={**CSRF, "status": "preparing", "filter": "pending"},
    )
    assert r.headers["Location"].endswith("/dashboard/orders?status=pending")
    with session_scope(app) as s:
        assert s.get(Order, order.id).status == "preparing"

    r = client.get("/dashboard/orders?status=preparing")
    assert r.status_code == 200
    assert b"T4" in r.data


def test_foreign_order_is_not_found(app, client, kitchen, make_tenant):
    other_id = make_tenant(name="Other", slug="other")
    with session_scope(app) as s:
        order = Order(tenant_id=other_id, order_number=1)
        s.add(order)
        s.flush()
        order_id = order.id
    r = client.post(f"/dashboard/orders/{order_id}/status", data={**CSRF, "status": "preparing"})
    assert r.status_code == 404


def test_dashboard_home(app, client, kitchen):
    _order(app, kitchen, order_number=7, status="completed", total_amount=4200, created_at=datetime.utcnow())
    r = client.get("/dashboard")
    assert r.status_code == 200
    assert b"Create your first menu category" in r.data
    assert b"<td>7</td>" in r.data

    with session_scope(app) as s:
        tenant = s.get(Tenant, kitchen["tenant_id"])
        tenant.address = "Kadıköy, İstanbul"
        tenant.settings = {"theme_id": "theme-2"}
    with session_scope(app) as s:
        checklist = onboarding_checklist(s, s.get(Tenant, kitchen["tenant_id"]))
        assert all(item["done"] for item in checklist)
