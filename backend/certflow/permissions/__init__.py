# Overview: Permission system package.
# Re-exports the permission catalogue and built-in role mappings.

from .categories import PermissionCategory
from .definitions import (
    PERMISSION_DEFINITIONS,
    REQUEST_PERMISSIONS,
    REQUISITION_PERMISSIONS,
    INVOICE_PERMISSIONS,
    FINANCE_PERMISSIONS,
    CERTIFICATE_PERMISSIONS,
    USER_PERMISSIONS,
    SYSTEM_PERMISSIONS,
)
from .helpers import (
    get_all_permission_codes,
    permission_catalogue,
    permission_categories,
    validate_permission_code,
)
from .roles import DEFAULT_ROLE_PERMISSIONS, ADMIN_PERMISSION_IDENTIFIERS

__all__ = [
    "PermissionCategory",
    "PERMISSION_DEFINITIONS",
    "REQUEST_PERMISSIONS",
    "REQUISITION_PERMISSIONS",
    "INVOICE_PERMISSIONS",
    "FINANCE_PERMISSIONS",
    "CERTIFICATE_PERMISSIONS",
    "USER_PERMISSIONS",
    "SYSTEM_PERMISSIONS",
    "DEFAULT_ROLE_PERMISSIONS",
    "ADMIN_PERMISSION_IDENTIFIERS",
    "get_all_permission_codes",
    "permission_catalogue",
    "permission_categories",
    "validate_permission_code",
]
