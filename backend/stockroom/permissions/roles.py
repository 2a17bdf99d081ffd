# Overview: Closed set of staff roles and the role -> capability table.

from enum import Enum

from .definitions import PERMISSION_DEFINITIONS


class Role(str, Enum):
    BUSINESS_OWNER = "Business Owner"
    MANAGER = "Manager"
    ACCOUNTANT = "Accountant"
    CASHIER = "Cashier"
    STAFF = "Staff"


DEFAULT_ROLE_PERMISSIONS = {
    # Owner holds every capability
    Role.BUSINESS_OWNER: [perm[0] for perm in PERMISSION_DEFINITIONS],

    Role.MANAGER: [
        "VIEW_FORECASTS",
        "VIEW_PROCUREMENT",
        "CREATE_SUPPLIER_REQUEST",
        "CANCEL_SUPPLIER_REQUEST",
        "MANAGE_PURCHASE_ORDERS",
        "APPROVE_PURCHASE_ORDERS",
        "RECEIVE_GOODS",
        "CONFIRM_GOODS_RECEIVED",
        "MANAGE_SUPPLIER_INVOICES",
        "MANAGE_SUPPLIERS",
        "MANAGE_INVENTORY",
        "IMPORT_INVENTORY",
        "RECORD_SALES",
    ],

    Role.ACCOUNTANT: [
        "VIEW_FORECASTS",
        "VIEW_PROCUREMENT",
        "MANAGE_SUPPLIER_INVOICES",
        "APPROVE_SUPPLIER_INVOICES",
        "PAY_SUPPLIER_INVOICES",
        "VIEW_PAYABLES",
        "ACCESS_ALL_BRANCHES",
    ],

    Role.CASHIER: [
        "VIEW_PROCUREMENT",
        "RECORD_SALES",
    ],

    Role.STAFF: [
        "VIEW_FORECASTS",
        "VIEW_PROCUREMENT",
        "CREATE_SUPPLIER_REQUEST",
        "RECEIVE_GOODS",
        "RECORD_SALES",
    ],
}


def parse_role(value) -> Role:
    """Map a stored role string onto the enum. Raises ValueError if unknown."""
    if isinstance(value, Role):
        return value
    return Role(str(value).strip())
