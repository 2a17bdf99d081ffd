# Overview: Permission system package.
# Re-exports all public APIs.

from .categories import PermissionCategory
from .definitions import (
    PERMISSION_DEFINITIONS,
    FORECASTING_PERMISSIONS,
    PROCUREMENT_PERMISSIONS,
    PAYABLES_PERMISSIONS,
    INVENTORY_PERMISSIONS,
    SALES_PERMISSIONS,
    ORGANIZATION_PERMISSIONS,
)
from .roles import Role, DEFAULT_ROLE_PERMISSIONS, parse_role
from .helpers import (
    get_all_permission_codes,
    get_permissions_by_category,
    get_permission_definition,
    validate_permission_code,
    get_role_permissions,
)

__all__ = [
    "PermissionCategory",
    "PERMISSION_DEFINITIONS",
    "FORECASTING_PERMISSIONS",
    "PROCUREMENT_PERMISSIONS",
    "PAYABLES_PERMISSIONS",
    "INVENTORY_PERMISSIONS",
    "SALES_PERMISSIONS",
    "ORGANIZATION_PERMISSIONS",
    "Role",
    "DEFAULT_ROLE_PERMISSIONS",
    "parse_role",
    "get_all_permission_codes",
    "get_permissions_by_category",
    "get_permission_definition",
    "validate_permission_code",
    "get_role_permissions",
]
