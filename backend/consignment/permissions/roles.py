# Overview: Static role to permission mapping.

from .definitions import PERMISSION_DEFINITIONS


_STAFF_CODES = [
    perm[0]
    for perm in PERMISSION_DEFINITIONS
    if perm[0] not in ("VIEW_OWN_CONSIGNMENTS", "SHOP_CHECKOUT")
]


DEFAULT_ROLE_PERMISSIONS = {
    # Shop owner: everything staff can do
    "OWNER": list(_STAFF_CODES),
    "MANAGER": [
        code for code in _STAFF_CODES
        if code not in ("MANAGE_ORGANIZATION", "VIEW_SECURITY_EVENTS")
    ],
    # Front counter
    "CLERK": [
        "VIEW_PROVIDERS",
        "VIEW_ITEMS",
        "MANAGE_ITEMS",
        "VIEW_TRANSACTIONS",
        "RECORD_SALE",
        "VIEW_ORDERS",
    ],
    # Bookkeeping
    "ACCOUNTANT": [
        "VIEW_PROVIDERS",
        "VIEW_ITEMS",
        "VIEW_TRANSACTIONS",
        "VIEW_PAYOUTS",
        "MANAGE_PAYOUTS",
        "VIEW_STATEMENTS",
        "GENERATE_STATEMENTS",
        "VIEW_REPORTS",
        "VIEW_ORDERS",
        "SYNC_ACCOUNTING",
    ],
    "CONSIGNOR": ["VIEW_OWN_CONSIGNMENTS"],
    "SHOPPER": ["SHOP_CHECKOUT"],
}
