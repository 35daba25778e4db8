"""initial schema: tenants, accounts, catalog, billing, menu, orders, i18n

Revision ID: a0b1c2d3e4f5
Revises:
Create Date: 2026-10-19

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect


# revision identifiers, used by Alembic.
revision: str = "a0b1c2d3e4f5"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at",
        sa.DateTime(timezone=False),
        nullable=False,
        server_default=sa.func.current_timestamp(),
    )


def _updated_at() -> sa.Column:
    return sa.Column(
        "updated_at",
        sa.DateTime(timezone=False),
        nullable=False,
        server_default=sa.func.current_timestamp(),
    )


def upgrade() -> None:
    bind = op.get_bind()
    insp = inspect(bind)
    existing_tables = set(insp.get_table_names())

    if "tenants" not in existing_tables:
        op.create_table(
            "tenants",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("slug", sa.String(length=64), nullable=False, unique=True),
            sa.Column("status", sa.String(length=32), nullable=False, server_default="active"),
            sa.Column("plan", sa.String(length=32), nullable=False, server_default="trial"),
            sa.Column("commercial_name", sa.String(length=255), nullable=True),
            sa.Column("legal_name", sa.String(length=255), nullable=True),
            sa.Column("tax_id", sa.String(length=64), nullable=True),
            sa.Column("contact_email", sa.String(length=320), nullable=True),
            sa.Column("contact_phone", sa.String(length=64), nullable=True),
            sa.Column("contact_address", sa.Text(), nullable=True),
            sa.Column("address", sa.Text(), nullable=True),
            sa.Column("country_code", sa.String(length=2), nullable=True),
            sa.Column("currency", sa.String(length=3), nullable=False, server_default="TRY"),
            sa.Column("is_online", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("onboarding_completed", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("settings", sa.JSON(), nullable=False),
            _created_at(),
            _updated_at(),
        )
        op.create_index("idx_tenants_status", "tenants", ["status"])
        op.create_index("idx_tenants_name", "tenants", ["name"])

    if "users" not in existing_tables:
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("email", sa.String(length=320), nullable=False, unique=True),
            sa.Column("password_hash", sa.String(length=255), nullable=False),
            sa.Column("full_name", sa.String(length=255), nullable=True),
            sa.Column("phone", sa.String(length=64), nullable=True),
            sa.Column("role", sa.String(length=32), nullable=False, server_default="user"),
            sa.Column("tenant_id", sa.Integer(), sa.ForeignKey("tenants.id", ondelete="SET NULL"), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("must_change_password", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("is_2fa_required", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("totp_secret", sa.String(length=64), nullable=True),
            sa.Column("totp_confirmed_at", sa.DateTime(timezone=False), nullable=True),
            sa.Column("failed_login_attempts", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("locked_until", sa.DateTime(timezone=False), nullable=True),
            sa.Column("last_login_at", sa.DateTime(timezone=False), nullable=True),
            sa.Column("theme_preference", sa.String(length=16), nullable=False, server_default="system"),
            _created_at(),
            _updated_at(),
        )
        op.create_index("idx_users_role", "users", ["role"])
        op.create_index("idx_users_tenant", "users", ["tenant_id"])

    if "tenant_users" not in existing_tables:
        op.create_table(
            "tenant_users",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("tenant_id", sa.Integer(), sa.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
            sa.Column("role", sa.String(length=32), nullable=False, server_default="staff"),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            _created_at(),
            sa.UniqueConstraint("tenant_id", "user_id", name="uq_tenant_users_tenant_user"),
        )
        op.create_index("idx_tenant_users_user", "tenant_users", ["user_id"])

    if "system_logs" not in existing_tables:
        op.create_table(
            "system_logs",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            _created_at(),
            sa.Column("request_id", sa.String(length=64), nullable=True),
            sa.Column("event_type", sa.String(length=64), nullable=False),
            sa.Column("severity", sa.String(length=16), nullable=False, server_default="INFO"),
            sa.Column("message", sa.Text(), nullable=False),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
            sa.Column("user_email", sa.String(length=320), nullable=True),
            sa.Column("tenant_id", sa.Integer(), sa.ForeignKey("tenants.id", ondelete="SET NULL"), nullable=True),
            sa.Column("ip_address", sa.String(length=64), nullable=True),
            sa.Column("user_agent", sa.String(length=512), nullable=True),
            sa.Column("metadata_json", sa.JSON(), nullable=True),
        )
        op.create_index("idx_system_logs_created", "system_logs", ["created_at"])
        op.create_index("idx_system_logs_event_type", "system_logs", ["event_type"])
        op.create_index("idx_system_logs_severity", "system_logs", ["severity"])
        op.create_index("idx_system_logs_tenant", "system_logs", ["tenant_id"])

    if "system_settings" not in existing_tables:
        op.create_table(
            "system_settings",
            sa.Column("key", sa.String(length=64), primary_key=True, nullable=False),
            sa.Column("value", sa.JSON(), nullable=False),
            _updated_at(),
            sa.Column("updated_by_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        )

    if "password_reset_tokens" not in existing_tables:
        op.create_table(
            "password_reset_tokens",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
            sa.Column("token_hash", sa.String(length=64), nullable=False, unique=True),
            sa.Column("expires_at", sa.DateTime(timezone=False), nullable=False),
            sa.Column("used_at", sa.DateTime(timezone=False), nullable=True),
            _created_at(),
        )

    if "newsletter_subscribers" not in existing_tables:
        op.create_table(
            "newsletter_subscribers",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("email", sa.String(length=320), nullable=False, unique=True),
            sa.Column("language", sa.String(length=8), nullable=False, server_default="en"),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            _created_at(),
            _updated_at(),
        )

    if "products" not in existing_tables:
        op.create_table(
            "products",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("image_url", sa.String(length=1024), nullable=True),
            sa.Column("type", sa.String(length=32), nullable=False),
            sa.Column("billing_cycle", sa.String(length=16), nullable=False, server_default="one_time"),
            sa.Column("base_price", sa.Numeric(12, 2), nullable=False, server_default="0"),
            sa.Column("min_sales_price", sa.Numeric(12, 2), nullable=False, server_default="0"),
            sa.Column("tax_rate", sa.Numeric(5, 2), nullable=False, server_default="20"),
            sa.Column("stock_track", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("current_stock", sa.Integer(), nullable=True),
            sa.Column("is_public", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            _created_at(),
            _updated_at(),
            sa.Column("created_by_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        )
        op.create_index("idx_products_type", "products", ["type"])
        op.create_index("idx_products_active", "products", ["is_active"])

    if "product_options" not in existing_tables:
        op.create_table(
            "product_options",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("parent_product_id", sa.Integer(), sa.ForeignKey("products.id", ondelete="CASCADE"), nullable=False),
            sa.Column("child_product_id", sa.Integer(), sa.ForeignKey("products.id", ondelete="CASCADE"), nullable=False),
            sa.Column("is_required", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.UniqueConstraint("parent_product_id", "child_product_id", name="uq_product_options_pair"),
        )

    if "product_sales" not in existing_tables:
        op.create_table(
            "product_sales",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id", ondelete="RESTRICT"), nullable=False),
            sa.Column("tenant_id", sa.Integer(), sa.ForeignKey("tenants.id", ondelete="SET NULL"), nullable=True),
            sa.Column("quantity", sa.Integer(), nullable=False, server_default="1"),
            sa.Column("unit_price", sa.Numeric(12, 2), nullable=False, server_default="0"),
            sa.Column("sold_at", sa.DateTime(timezone=False), nullable=False, server_default=sa.func.current_timestamp()),
        )
        op.create_index("idx_product_sales_product", "product_sales", ["product_id"])
        op.create_index("idx_product_sales_tenant", "product_sales", ["tenant_id"])

    if "hardware_inventory" not in existing_tables:
        op.create_table(
            "hardware_inventory",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("serial_number", sa.String(length=128), nullable=False, unique=True),
            sa.Column("device_type", sa.String(length=64), nullable=False),
            sa.Column("model", sa.String(length=128), nullable=True),
            sa.Column("manufacturer", sa.String(length=128), nullable=True),
            sa.Column("status", sa.String(length=32), nullable=False, server_default="in_stock"),
            sa.Column("tenant_id", sa.Integer(), sa.ForeignKey("tenants.id", ondelete="SET NULL"), nullable=True),
            sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id", ondelete="SET NULL"), nullable=True),
            sa.Column("assignment_date", sa.Date(), nullable=True),
            sa.Column("purchase_date", sa.Date(), nullable=True),
            sa.Column("notes", sa.Text(), nullable=True),
            _created_at(),
            _updated_at(),
        )
        op.create_index("idx_hardware_inventory_status", "hardware_inventory", ["status"])
        op.create_index("idx_hardware_inventory_tenant", "hardware_inventory", ["tenant_id"])

    if "subscriptions" not in existing_tables:
        op.create_table(
            "subscriptions",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("tenant_id", sa.Integer(), sa.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False),
            sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id", ondelete="RESTRICT"), nullable=False),
            sa.Column("contract_price", sa.Numeric(12, 2), nullable=False),
            sa.Column("contract_date", sa.Date(), nullable=False, server_default=sa.func.current_date()),
            sa.Column("contract_start_date", sa.Date(), nullable=False),
            sa.Column("contract_end_date", sa.Date(), nullable=True),
            sa.Column("renewal_period", sa.String(length=16), nullable=False, server_default="monthly"),
            sa.Column("payment_status", sa.String(length=16), nullable=False, server_default="pending"),
            _created_at(),
            _updated_at(),
            sa.Column("created_by_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        )
        op.create_index("idx_subscriptions_tenant", "subscriptions", ["tenant_id"])
        op.create_index("idx_subscriptions_payment_status", "subscriptions", ["payment_status"])

    if "invoices" not in existing_tables:
        op.create_table(
            "invoices",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("tenant_id", sa.Integer(), sa.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False),
            sa.Column(
                "subscription_id", sa.Integer(), sa.ForeignKey("subscriptions.id", ondelete="SET NULL"), nullable=True
            ),
            sa.Column("invoice_number", sa.String(length=64), nullable=False, unique=True),
            sa.Column("amount", sa.Numeric(12, 2), nullable=False),
            sa.Column("currency", sa.String(length=3), nullable=False, server_default="TRY"),
            sa.Column("status", sa.String(length=16), nullable=False, server_default="pending"),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("issue_date", sa.Date(), nullable=False, server_default=sa.func.current_date()),
            sa.Column("due_date", sa.Date(), nullable=True),
            _created_at(),
            sa.Column("created_by_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        )
        op.create_index("idx_invoices_tenant", "invoices", ["tenant_id"])

    if "themes" not in existing_tables:
        op.create_table(
            "themes",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("slug", sa.String(length=64), nullable=False, unique=True),
            sa.Column("name", sa.String(length=128), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("thumbnail_url", sa.String(length=1024), nullable=True),
            sa.Column("colors", sa.JSON(), nullable=False),
            sa.Column("typography", sa.JSON(), nullable=False),
            sa.Column("layout", sa.JSON(), nullable=False),
            sa.Column("components", sa.JSON(), nullable=False),
            sa.Column("is_system", sa.Boolean(), nullable=False, server_default=sa.false()),
            _created_at(),
            _updated_at(),
        )

    if "supported_languages" not in existing_tables:
        op.create_table(
            "supported_languages",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("code", sa.String(length=8), nullable=False, unique=True),
            sa.Column("name", sa.String(length=64), nullable=False),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("show_in_admin", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("show_in_marketing", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("show_in_online_menu", sa.Boolean(), nullable=False, server_default=sa.true()),
            _created_at(),
        )

    if "translations" not in existing_tables:
        op.create_table(
            "translations",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("key", sa.String(length=255), nullable=False),
            sa.Column("language_code", sa.String(length=8), nullable=False),
            sa.Column("value", sa.Text(), nullable=False, server_default=""),
            _updated_at(),
            sa.UniqueConstraint("key", "language_code", name="uq_translations_key_lang"),
        )
        op.create_index("idx_translations_updated", "translations", ["updated_at"])
        op.create_index("idx_translations_lang", "translations", ["language_code"])

    if "menu_categories" not in existing_tables:
        op.create_table(
            "menu_categories",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("tenant_id", sa.Integer(), sa.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("image_key", sa.String(length=512), nullable=True),
            sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            _created_at(),
        )
        op.create_index("idx_menu_categories_tenant", "menu_categories", ["tenant_id"])

    if "product_modifiers" not in existing_tables:
        op.create_table(
            "product_modifiers",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("tenant_id", sa.Integer(), sa.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("type", sa.String(length=16), nullable=False, server_default="single"),
            sa.Column("is_required", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("options", sa.JSON(), nullable=False),
            _created_at(),
        )
        op.create_index("idx_product_modifiers_tenant", "product_modifiers", ["tenant_id"])

    if "menu_products" not in existing_tables:
        op.create_table(
            "menu_products",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("tenant_id", sa.Integer(), sa.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False),
            sa.Column(
                "category_id", sa.Integer(), sa.ForeignKey("menu_categories.id", ondelete="RESTRICT"), nullable=False
            ),
            sa.Column(
                "modifier_id", sa.Integer(), sa.ForeignKey("product_modifiers.id", ondelete="SET NULL"), nullable=True
            ),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("price", sa.Integer(), nullable=False),
            sa.Column("image_key", sa.String(length=512), nullable=True),
            sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            _created_at(),
            _updated_at(),
        )
        op.create_index("idx_menu_products_tenant", "menu_products", ["tenant_id"])
        op.create_index("idx_menu_products_category", "menu_products", ["category_id"])

    if "orders" not in existing_tables:
        op.create_table(
            "orders",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("tenant_id", sa.Integer(), sa.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False),
            sa.Column("order_number", sa.Integer(), nullable=False),
            sa.Column("channel", sa.String(length=16), nullable=False, server_default="dine_in"),
            sa.Column("status", sa.String(length=16), nullable=False, server_default="pending"),
            sa.Column("total_amount", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("customer_name", sa.String(length=255), nullable=True),
            sa.Column("table_label", sa.String(length=32), nullable=True),
            sa.Column("notes", sa.Text(), nullable=True),
            _created_at(),
            _updated_at(),
            sa.Column("created_by_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
            sa.UniqueConstraint("tenant_id", "order_number", name="uq_orders_tenant_number"),
        )
        op.create_index("idx_orders_tenant_created", "orders", ["tenant_id", "created_at"])
        op.create_index("idx_orders_status", "orders", ["status"])

    if "order_items" not in existing_tables:
        op.create_table(
            "order_items",
            sa.Column("id", sa.Integer(), primary_key=True, nullable=False),
            sa.Column("order_id", sa.Integer(), sa.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False),
            sa.Column(
                "menu_product_id", sa.Integer(), sa.ForeignKey("menu_products.id", ondelete="SET NULL"), nullable=True
            ),
            sa.Column("name", sa.String(length=255), nullable=False),
            sa.Column("unit_price", sa.Integer(), nullable=False),
            sa.Column("quantity", sa.Integer(), nullable=False, server_default="1"),
            sa.Column("line_total", sa.Integer(), nullable=False),
        )


def downgrade() -> None:
    for table in (
        "order_items",
        "orders",
        "menu_products",
        "product_modifiers",
        "menu_categories",
        "translations",
        "supported_languages",
        "themes",
        "invoices",
        "subscriptions",
        "hardware_inventory",
        "product_sales",
        "product_options",
        "products",
        "newsletter_subscribers",
        "password_reset_tokens",
        "system_settings",
        "system_logs",
        "tenant_users",
        "users",
        "tenants",
    ):
        op.drop_table(table)
