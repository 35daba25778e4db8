from flask import Blueprint, render_template

from app.duxa.db import db_session, get_or_404
from app.duxa.modules.menu.models import MenuCategory, MenuProduct
from app.duxa.modules.orders.service import daily_stats, list_orders, weekly_sales
from app.duxa.modules.tenants.models import Tenant
from app.duxa.rbac import current_tenant_id, require_permission

bp = Blueprint("dashboard", __name__)


def onboarding_checklist(s, tenant: Tenant) -> list[dict]:
    settings = tenant.settings or {}
    has_category = s.query(MenuCategory.id).filter(MenuCategory.tenant_id == tenant.id).first() is not None
    has_product = s.query(MenuProduct.id).filter(MenuProduct.tenant_id == tenant.id).first() is not None
    return [
        {
            "key": "business_info",
            "label": "Complete your business information",
            "done": bool(tenant.address or tenant.contact_phone or settings.get("logo_key")),
            "endpoint": "tenant_settings.general_get",
        },
        {
            "key": "first_category",
            "label": "Create your first menu category",
            "done": has_category,
            "endpoint": "menu.menu_index",
        },
        {
            "key": "first_product",
            "label": "Add your first product",
            "done": has_product,
            "endpoint": "menu.menu_index",
        },
        {
            "key": "theme",
            "label": "Choose a theme for your menu",
            "done": bool(settings.get("theme_id")),
            "endpoint": "tenant_settings.design_get",
        },
    ]


@bp.get("")
@require_permission("dashboard.view")
def home():
    s = db_session()
    tenant = get_or_404(s, Tenant, current_tenant_id())
    checklist = onboarding_checklist(s, tenant)
    sales = weekly_sales(s, tenant.id)
    return render_template(
        "dashboard/home.html",
        tenant=tenant,
        stats=daily_stats(s, tenant.id),
        sales=sales,
        sales_max=max((d["total"] for d in sales), default=0),
        recent_orders=list_orders(s, tenant.id).limit(5).all(),
        checklist=checklist,
        onboarding_done=all(item["done"] for item in checklist),
    )
