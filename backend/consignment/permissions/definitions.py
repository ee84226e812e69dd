# Overview: All permission definitions organized by category.
# Each permission is defined as: (code, name, description, category)

from .categories import PermissionCategory


# -- ORGANIZATION / USERS --

ORGANIZATION_PERMISSIONS = [
    (
        "MANAGE_ORGANIZATION",
        "Manage Organization",
        "Edit shop settings (tax rate, shipping, default split, storefront)",
        PermissionCategory.ORGANIZATION,
    ),
]

USER_PERMISSIONS = [
    (
        "VIEW_USERS",
        "View Users",
        "View staff accounts",
        PermissionCategory.USERS,
    ),
    (
        "MANAGE_USERS",
        "Manage Users",
        "Create, edit and deactivate staff accounts",
        PermissionCategory.USERS,
    ),
]


# -- CONSIGNMENT --

PROVIDER_PERMISSIONS = [
    (
        "VIEW_PROVIDERS",
        "View Providers",
        "View consignors and their balances",
        PermissionCategory.PROVIDERS,
    ),
    (
        "MANAGE_PROVIDERS",
        "Manage Providers",
        "Create, edit, approve and deactivate consignors",
        PermissionCategory.PROVIDERS,
    ),
]

INVENTORY_PERMISSIONS = [
    (
        "VIEW_ITEMS",
        "View Items",
        "View consigned items",
        PermissionCategory.INVENTORY,
    ),
    (
        "MANAGE_ITEMS",
        "Manage Items",
        "Intake, edit, remove items and manage photos",
        PermissionCategory.INVENTORY,
    ),
]

SALES_PERMISSIONS = [
    (
        "VIEW_TRANSACTIONS",
        "View Transactions",
        "View consignment sales",
        PermissionCategory.SALES,
    ),
    (
        "RECORD_SALE",
        "Record Sale",
        "Record an in-store sale of a consigned item",
        PermissionCategory.SALES,
    ),
    (
        "VOID_TRANSACTION",
        "Void Transaction",
        "Void a sale that has not been paid out",
        PermissionCategory.SALES,
    ),
]

PAYOUT_PERMISSIONS = [
    (
        "VIEW_PAYOUTS",
        "View Payouts",
        "View payout reports and batches",
        PermissionCategory.PAYOUTS,
    ),
    (
        "MANAGE_PAYOUTS",
        "Manage Payouts",
        "Create, pay and cancel payout batches",
        PermissionCategory.PAYOUTS,
    ),
]

STATEMENT_PERMISSIONS = [
    (
        "VIEW_STATEMENTS",
        "View Statements",
        "View provider monthly statements",
        PermissionCategory.STATEMENTS,
    ),
    (
        "GENERATE_STATEMENTS",
        "Generate Statements",
        "Generate and regenerate provider statements",
        PermissionCategory.STATEMENTS,
    ),
]

REPORT_PERMISSIONS = [
    (
        "VIEW_REPORTS",
        "View Reports",
        "View sales, aging, reconciliation and payout reports",
        PermissionCategory.REPORTS,
    ),
]

ORDER_PERMISSIONS = [
    (
        "VIEW_ORDERS",
        "View Orders",
        "View online storefront orders",
        PermissionCategory.ORDERS,
    ),
    (
        "MANAGE_ORDERS",
        "Manage Orders",
        "Update fulfillment status and cancel online orders",
        PermissionCategory.ORDERS,
    ),
]

ACCOUNTING_PERMISSIONS = [
    (
        "SYNC_ACCOUNTING",
        "Sync Accounting",
        "Push transactions and payouts to the accounting system",
        PermissionCategory.ACCOUNTING,
    ),
]


# -- EXTERNAL USERS --

PORTAL_PERMISSIONS = [
    (
        "VIEW_OWN_CONSIGNMENTS",
        "View Own Consignments",
        "Consignor portal: own items, sales, payouts and statements",
        PermissionCategory.PORTAL,
    ),
]

STOREFRONT_PERMISSIONS = [
    (
        "SHOP_CHECKOUT",
        "Shop Checkout",
        "Place and view own storefront orders",
        PermissionCategory.STOREFRONT,
    ),
]

SYSTEM_PERMISSIONS = [
    (
        "VIEW_SECURITY_EVENTS",
        "View Security Events",
        "View the security audit log for the organization",
        PermissionCategory.SYSTEM,
    ),
]


PERMISSION_DEFINITIONS = (
    ORGANIZATION_PERMISSIONS
    + USER_PERMISSIONS
    + PROVIDER_PERMISSIONS
    + INVENTORY_PERMISSIONS
    + SALES_PERMISSIONS
    + PAYOUT_PERMISSIONS
    + STATEMENT_PERMISSIONS
    + REPORT_PERMISSIONS
    + ORDER_PERMISSIONS
    + ACCOUNTING_PERMISSIONS
    + PORTAL_PERMISSIONS
    + STOREFRONT_PERMISSIONS
    + SYSTEM_PERMISSIONS
)
