# Overview: All permission definitions organized by category.
# Each permission is defined as: (code, name, description, category)

from .categories import PermissionCategory


# -- FORECASTING --

FORECASTING_PERMISSIONS = [
    (
        "VIEW_FORECASTS",
        "View Forecasts",
        "View reorder forecasts, stock status and velocity reports",
        PermissionCategory.FORECASTING,
    ),
    (
        "CONFIGURE_FORECASTING",
        "Configure Forecasting",
        "Set lead times and forecasting policy",
        PermissionCategory.FORECASTING,
    ),
]


# -- PROCUREMENT --

PROCUREMENT_PERMISSIONS = [
    (
        "VIEW_PROCUREMENT",
        "View Procurement",
        "View supplier requests, purchase orders and goods received notes",
        PermissionCategory.PROCUREMENT,
    ),
    (
        "CREATE_SUPPLIER_REQUEST",
        "Create Supplier Request",
        "Send low-stock requests to suppliers",
        PermissionCategory.PROCUREMENT,
    ),
    (
        "CONVERT_SUPPLIER_REQUEST",
        "Convert Supplier Request",
        "Convert a supplier request into a purchase order",
        PermissionCategory.PROCUREMENT,
    ),
    (
        "CANCEL_SUPPLIER_REQUEST",
        "Cancel Supplier Request",
        "Cancel an open supplier request",
        PermissionCategory.PROCUREMENT,
    ),
    (
        "DELETE_ANY_SUPPLIER_REQUEST",
        "Delete Any Supplier Request",
        "Delete supplier requests created by other staff",
        PermissionCategory.PROCUREMENT,
    ),
    (
        "MANAGE_PURCHASE_ORDERS",
        "Manage Purchase Orders",
        "Create, edit, send and cancel purchase orders",
        PermissionCategory.PROCUREMENT,
    ),
    (
        "APPROVE_PURCHASE_ORDERS",
        "Approve Purchase Orders",
        "Record supplier approval of a sent purchase order",
        PermissionCategory.PROCUREMENT,
    ),
    (
        "RECEIVE_GOODS",
        "Receive Goods",
        "Create and edit draft goods received notes",
        PermissionCategory.PROCUREMENT,
    ),
    (
        "CONFIRM_GOODS_RECEIVED",
        "Confirm Goods Received",
        "Confirm a goods received note and add stock",
        PermissionCategory.PROCUREMENT,
    ),
    (
        "MANAGE_SUPPLIERS",
        "Manage Suppliers",
        "Create, edit and deactivate suppliers",
        PermissionCategory.PROCUREMENT,
    ),
]


# -- PAYABLES --

PAYABLES_PERMISSIONS = [
    (
        "MANAGE_SUPPLIER_INVOICES",
        "Manage Supplier Invoices",
        "Create and edit draft supplier invoices",
        PermissionCategory.PAYABLES,
    ),
    (
        "APPROVE_SUPPLIER_INVOICES",
        "Approve Supplier Invoices",
        "Approve supplier invoices (creates an expense)",
        PermissionCategory.PAYABLES,
    ),
    (
        "PAY_SUPPLIER_INVOICES",
        "Pay Supplier Invoices",
        "Mark approved supplier invoices as paid",
        PermissionCategory.PAYABLES,
    ),
    (
        "VIEW_PAYABLES",
        "View Payables",
        "View outstanding supplier payables",
        PermissionCategory.PAYABLES,
    ),
]


# -- INVENTORY --

INVENTORY_PERMISSIONS = [
    (
        "MANAGE_INVENTORY",
        "Manage Inventory",
        "Create products and adjust stock",
        PermissionCategory.INVENTORY,
    ),
    (
        "IMPORT_INVENTORY",
        "Import Inventory",
        "Import and export products from spreadsheets",
        PermissionCategory.INVENTORY,
    ),
]


# -- SALES --

SALES_PERMISSIONS = [
    (
        "RECORD_SALES",
        "Record Sales",
        "Record completed sales",
        PermissionCategory.SALES,
    ),
]


# -- ORGANIZATION --

ORGANIZATION_PERMISSIONS = [
    (
        "ACCESS_ALL_BRANCHES",
        "Access All Branches",
        "Act on any branch of the business, not only the home branch",
        PermissionCategory.ORGANIZATION,
    ),
]


PERMISSION_DEFINITIONS = (
    FORECASTING_PERMISSIONS
    + PROCUREMENT_PERMISSIONS
    + PAYABLES_PERMISSIONS
    + INVENTORY_PERMISSIONS
    + SALES_PERMISSIONS
    + ORGANIZATION_PERMISSIONS
)
