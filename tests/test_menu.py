import io

import pytest

from app.duxa.db import session_scope, tenant_row
from app.duxa.modules.menu.models import MenuCategory, MenuProduct, ProductModifier
from app.duxa.modules.menu.service import parse_modifier_options, validate_menu_product_payload

CSRF = {"csrf_token": "test-token"}
PNG = b"\x89PNG\r\n\x1a\n"


@pytest.fixture()
def menu(app, tenant_admin):
    """One category with a product and a modifier group for the logged-in tenant."""
    tenant_id, _ = tenant_admin
    with session_scope(app) as s:
        category = MenuCategory(tenant_id=tenant_id, name="Kebaplar")
        modifier = ProductModifier(
            tenant_id=tenant_id, name="Portion", type="single", options=[{"name": "Large", "price": 1500}]
        )
        s.add_all([category, modifier])
        s.flush()
        product = MenuProduct(
            tenant_id=tenant_id, category_id=category.id, modifier_id=modifier.id, name="Adana Kebap", price=32000
        )
        s.add(product)
        s.flush()
        return {"tenant_id": tenant_id, "category": category.id, "modifier": modifier.id, "product": product.id}


@pytest.fixture()
def foreign_menu(app, make_tenant):
    other_id = make_tenant(name="Other", slug="other")
    with session_scope(app) as s:
        category = MenuCategory(tenant_id=other_id, name="Pizzas")
        s.add(category)
        s.flush()
        product = MenuProduct(tenant_id=other_id, category_id=category.id, name="Margherita", price=25000)
        s.add(product)
        s.flush()
        return {"tenant_id": other_id, "category": category.id, "product": product.id}


def test_parse_modifier_options():
    options, errors = parse_modifier_options(["Small", "", "Large", "Huge"], ["0", "5", "15,50", "abc"])
    assert options == [{"name": "Small", "price": 0}, {"name": "Large", "price": 1550}]
    assert errors == ["Price for option 'Huge' must be a number."]


def test_product_payload_scoped_to_tenant(app, menu, foreign_menu):
    with session_scope(app) as s:
        errors = validate_menu_product_payload(
            s, menu["tenant_id"], {"name": "Pide", "price": "120", "category_id": str(foreign_menu["category"])}
        )
        assert errors == ["Choose a category."]
        errors = validate_menu_product_payload(
            s, menu["tenant_id"], {"name": "", "price": "-1", "category_id": str(menu["category"]), "modifier_id": "999"}
        )
        assert errors == ["Product name is required.", "Price cannot be negative.", "Unknown modifier group."]
        assert tenant_row(s, MenuProduct, foreign_menu["product"], menu["tenant_id"]) is None


def test_menu_page_lists_only_own_rows(client, menu, foreign_menu):
    r = client.get("/dashboard/menu?tab=products")
    assert r.status_code == 200
    assert b"Adana Kebap" in r.data
    assert b"Margherita" not in r.data


def test_category_lifecycle(app, client, menu):
    r = client.post(
        "/dashboard/menu/categories/new",
        data={**CSRF, "name": "Tatlılar", "sort_order": "2", "is_active": "1"},
        follow_redirects=True,
    )
    assert "Tatlılar".encode() in r.data
    with session_scope(app) as s:
        dessert = s.query(MenuCategory).filter(MenuCategory.name == "Tatlılar").one()
        assert dessert.tenant_id == menu["tenant_id"]
        assert dessert.sort_order == 2

    client.post(f"/dashboard/menu/categories/{dessert.id}/toggle", data=CSRF)
    with session_scope(app) as s:
        assert s.get(MenuCategory, dessert.id).is_active is False

    r = client.post(f"/dashboard/menu/categories/{menu['category']}/delete", data=CSRF, follow_redirects=True)
    assert b"still has 1 product(s)" in r.data

    r = client.post(f"/dashboard/menu/categories/{dessert.id}/delete", data=CSRF, follow_redirects=True)
    assert b"Category deleted." in r.data
    with session_scope(app) as s:
        assert s.get(MenuCategory, dessert.id) is None


def test_category_image_upload(app, client, menu, tmp_path):
    r = client.post(
        "/dashboard/menu/categories/new",
        data={**CSRF, "name": "Çorbalar", "image": (io.BytesIO(PNG + b"fake"), "soup.png")},
        content_type="multipart/form-data",
        follow_redirects=True,
    )
    assert r.status_code == 200
    with session_scope(app) as s:
        soup = s.query(MenuCategory).filter(MenuCategory.name == "Çorbalar").one()
        assert soup.image_key.startswith(f"tenants/{menu['tenant_id']}/categories/")
        assert soup.image_key.endswith("_soup.png")
    assert (tmp_path / "storage" / soup.image_key).read_bytes() == PNG + b"fake"

    r = client.post(
        "/dashboard/menu/categories/new",
        data={**CSRF, "name": "Notes", "image": (io.BytesIO(b"hello"), "notes.txt")},
        content_type="multipart/form-data",
        follow_redirects=True,
    )
    assert b"Only PNG, JPEG or WEBP images are allowed." in r.data

    # a new upload replaces the stored file
    client.post(
        f"/dashboard/menu/categories/{soup.id}/edit",
        data={**CSRF, "name": "Çorbalar", "image": (io.BytesIO(PNG + b"new"), "soup2.png")},
        content_type="multipart/form-data",
    )
    with session_scope(app) as s:
        new_key = s.get(MenuCategory, soup.id).image_key
    assert new_key != soup.image_key
    assert (tmp_path / "storage" / new_key).read_bytes() == PNG + b"new"
    assert not (tmp_path / "storage" / soup.image_key).exists()
    assert client.get(f"/media/{new_key}").data == PNG + b"new"


def test_image_type_comes_from_file_contents(app, client, menu, tmp_path):
    for filename in ("x.html", "x.png", "x.svg"):
        r = client.post(
            "/dashboard/menu/categories/new",
            data={**CSRF, "name": "Sneaky", "image": (io.BytesIO(b"<script>alert(1)</script>"), filename, "image/png")},
            content_type="multipart/form-data",
            follow_redirects=True,
        )
        assert b"Only PNG, JPEG or WEBP images are allowed." in r.data
    with session_scope(app) as s:
        assert s.query(MenuCategory).filter(MenuCategory.name == "Sneaky").count() == 0

    client.post(
        "/dashboard/menu/categories/new",
        data={**CSRF, "name": "Photos", "image": (io.BytesIO(b"\xff\xd8\xff\xe0 jpeg"), "photo.html", "text/html")},
        content_type="multipart/form-data",
    )
    with session_scope(app) as s:
        key = s.query(MenuCategory).filter(MenuCategory.name == "Photos").one().image_key
    assert key.endswith("_photo.jpg")

    client.get("/logout")
    r = client.get(f"/media/{key}")
    assert r.status_code == 200
    assert r.mimetype == "image/jpeg"
    assert r.headers["X-Content-Type-Options"] == "nosniff"

    # files stored before the contents check are never rendered inline
    legacy = tmp_path / "storage" / "tenants" / str(menu["tenant_id"]) / "categories" / "old_x.html"
    legacy.write_bytes(b"<script>alert(1)</script>")
    r = client.get(f"/media/tenants/{menu['tenant_id']}/categories/old_x.html")
    assert r.mimetype == "application/octet-stream"
    assert r.headers["Content-Disposition"].startswith("attachment")
    assert r.headers["X-Content-Type-Options"] == "nosniff"


def test_product_create_edit_toggle_delete(app, client, menu):
    r = client.post(
        "/dashboard/menu/products/new",
        data={**CSRF, "name": "Lahmacun", "price": "85,50", "category_id": str(menu["category"]), "modifier_id": str(menu["modifier"]), "is_active": "1"},
        follow_redirects=True,
    )
    assert r.status_code == 200
    with session_scope(app) as s:
        product = s.query(MenuProduct).filter(MenuProduct.name == "Lahmacun").one()
        assert product.price == 8550
        assert product.modifier_id == menu["modifier"]

    client.post(
        f"/dashboard/menu/products/{product.id}/edit",
        data={**CSRF, "name": "Lahmacun", "price": "90", "category_id": str(menu["category"]), "modifier_id": ""},
    )
    with session_scope(app) as s:
        product = s.get(MenuProduct, product.id)
        assert product.price == 9000
        assert product.modifier_id is None

    client.post(f"/dashboard/menu/products/{product.id}/toggle", data=CSRF)
    with session_scope(app) as s:
        assert s.get(MenuProduct, product.id).is_active is False

    client.post(f"/dashboard/menu/products/{product.id}/delete", data=CSRF)
    with session_scope(app) as s:
        assert s.get(MenuProduct, product.id) is None


def test_modifier_lifecycle(app, client, menu):
    r = client.post(
        "/dashboard/menu/modifiers/new",
        data={
            **CSRF,
            "name": "Extras",
            "type": "multiple",
            "is_required": "",
            "option_name": ["Cheese", "Onion"],
            "option_price": ["10", "0"],
        },
        follow_redirects=True,
    )
    assert b"Extras" in r.data
    with session_scope(app) as s:
        extras = s.query(ProductModifier).filter(ProductModifier.name == "Extras").one()
        assert extras.options == [{"name": "Cheese", "price": 1000}, {"name": "Onion", "price": 0}]
        assert extras.is_required is False

    r = client.post(
        f"/dashboard/menu/modifiers/{extras.id}/edit",
        data={**CSRF, "name": "Extras", "type": "combo", "option_name": [""], "option_price": [""]},
        follow_redirects=True,
    )
    assert b"Modifier type must be one of: single, multiple" in r.data
    assert b"Add at least one option." in r.data

    # deleting a group detaches it from products
    client.post(f"/dashboard/menu/modifiers/{menu['modifier']}/delete", data=CSRF)
    with session_scope(app) as s:
        assert s.get(ProductModifier, menu["modifier"]) is None
        assert s.get(MenuProduct, menu["product"]).modifier_id is None


def test_foreign_rows_are_not_found(client, menu, foreign_menu):
    assert client.post(f"/dashboard/menu/products/{foreign_menu['product']}/delete", data=CSRF).status_code == 404
    assert client.post(f"/dashboard/menu/categories/{foreign_menu['category']}/toggle", data=CSRF).status_code == 404


def test_super_admin_has_no_tenant_menu(client, super_admin):
    r = client.get("/dashboard/menu")
    assert r.status_code in (302, 403)
