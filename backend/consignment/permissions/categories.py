# Overview: Permission category constants for grouping related permissions.


class PermissionCategory:
    """Permission categories for organization and UI display."""
    ORGANIZATION = "ORGANIZATION"
    USERS = "USERS"
    PROVIDERS = "PROVIDERS"
    INVENTORY = "INVENTORY"
    SALES = "SALES"
    PAYOUTS = "PAYOUTS"
    STATEMENTS = "STATEMENTS"
    REPORTS = "REPORTS"
    ORDERS = "ORDERS"
    ACCOUNTING = "ACCOUNTING"
    PORTAL = "PORTAL"
    STOREFRONT = "STOREFRONT"
    SYSTEM = "SYSTEM"
