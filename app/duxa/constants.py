"""
Central constants for the Duxa platform.
"""
from __future__ import annotations

# Platform roles stored on users.role (compared trimmed + lower-cased)
ROLE_SUPER_ADMIN = "super_admin"
ROLE_TENANT_ADMIN = "tenant_admin"
ROLE_STAFF = "staff"
ROLE_USER = "user"
PLATFORM_ROLES = (ROLE_SUPER_ADMIN, ROLE_TENANT_ADMIN, ROLE_STAFF, ROLE_USER)
DASHBOARD_ROLES = frozenset({ROLE_TENANT_ADMIN, ROLE_STAFF})
CONSOLE_USER_ROLES = (ROLE_SUPER_ADMIN, ROLE_TENANT_ADMIN, ROLE_STAFF)

# Restaurant job roles stored on tenant_users.role
MEMBERSHIP_OWNER = "owner"
TENANT_MEMBER_ROLES = (MEMBERSHIP_OWNER, "manager", "staff", "kitchen", "courier")
TENANT_ADMIN_ASSIGNABLE_ROLES = ("manager", "staff", "kitchen", "courier")

ROLE_PERMISSIONS: dict[str, frozenset[str]] = {
    ROLE_SUPER_ADMIN: frozenset(
        {
            "console.view",
            "tenants.view",
            "tenants.manage",
            "billing.manage",
            "catalog.manage",
            "inventory.manage",
            "users.manage",
            "themes.manage",
            "translations.manage",
            "settings.manage",
            "logs.view",
            "meeting_tasks.manage",
        }
    ),
    ROLE_TENANT_ADMIN: frozenset(
        {
            "dashboard.view",
            "menu.manage",
            "orders.manage",
            "design.manage",
            "staff.manage",
            "tenant_settings.manage",
            "billing.view",
        }
    ),
    ROLE_STAFF: frozenset(
        {
            "dashboard.view",
            "menu.manage",
            "orders.manage",
            "design.manage",
        }
    ),
    ROLE_USER: frozenset(),
}

TENANT_STATUSES = ("active", "passive", "suspended")
TENANT_PLANS = ("trial", "standard", "pro")
SLUG_PATTERN = r"^[a-z0-9-]+$"

PAYMENT_STATUSES = ("paid", "pending", "overdue", "cancelled", "refunded")
RENEWAL_PERIODS = ("monthly", "yearly")
INVOICE_STATUSES = ("paid", "pending", "overdue", "cancelled")

PRODUCT_TYPES = ("subscription", "hardware", "addon", "service")
BILLING_CYCLES = ("monthly", "yearly", "one_time")

HARDWARE_STATUSES = ("in_stock", "rented", "sold", "under_repair", "retired")

CURRENCIES = ("TRY", "USD", "EUR", "GBP")
THEME_PREFERENCES = ("light", "dark", "system")
TENANT_THEME_IDS = ("theme-1", "theme-2", "theme-3", "theme-4")

LOG_SEVERITIES = ("INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL")

# Languages the public i18n endpoint will serve
I18N_LANGUAGES = ("en", "de", "fr", "lb", "tr", "me", "mt", "ru")
LANGUAGE_NAMES = {
    "en": "English",
    "tr": "Türkçe",
    "de": "Deutsch",
    "fr": "Français",
    "lb": "Lëtzebuergesch",
    "me": "Crnogorski",
    "mt": "Malti",
    "ru": "Русский",
    "es": "Español",
    "it": "Italiano",
    "ar": "العربية",
}

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")
