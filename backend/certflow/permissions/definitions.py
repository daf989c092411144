# Overview: All permission definitions organized by category.
# Each permission is defined as: (code, name, description, category)
# Codes are "<resource>:<action>" strings.

from .categories import PermissionCategory


# -- REQUESTS --

REQUEST_PERMISSIONS = [
    (
        "requests:create",
        "Create Requests",
        "Submit certificate requests and resubmit rejected ones",
        PermissionCategory.REQUESTS,
    ),
    (
        "requests:read_own",
        "View Own Requests",
        "View requests the caller submitted",
        PermissionCategory.REQUESTS,
    ),
    (
        "requests:read_all",
        "View All Requests",
        "View every certificate request",
        PermissionCategory.REQUESTS,
    ),
    (
        "requests:approve",
        "Approve Requests",
        "Assign, review, and approve certificate requests",
        PermissionCategory.REQUESTS,
    ),
    (
        "requests:reject",
        "Reject Requests",
        "Reject certificate requests",
        PermissionCategory.REQUESTS,
    ),
    (
        "requests:add_comment",
        "Comment on Requests",
        "Add comments to certificate requests",
        PermissionCategory.REQUESTS,
    ),
]


# -- REQUISITIONS --

REQUISITION_PERMISSIONS = [
    (
        "requisitions:create",
        "Create Requisitions",
        "Draft and submit requisitions",
        PermissionCategory.REQUISITIONS,
    ),
    (
        "requisitions:read_own",
        "View Own Requisitions",
        "View requisitions the caller created",
        PermissionCategory.REQUISITIONS,
    ),
    (
        "requisitions:read_all",
        "View All Requisitions",
        "View every requisition",
        PermissionCategory.REQUISITIONS,
    ),
    (
        "requisitions:approve",
        "Approve Requisitions",
        "Approve pending requisitions",
        PermissionCategory.REQUISITIONS,
    ),
    (
        "requisitions:reject",
        "Reject Requisitions",
        "Reject pending requisitions",
        PermissionCategory.REQUISITIONS,
    ),
    (
        "requisitions:fulfill",
        "Fulfill Requisitions",
        "Mark approved requisitions as (partially) fulfilled",
        PermissionCategory.REQUISITIONS,
    ),
]


# -- INVOICES --

INVOICE_PERMISSIONS = [
    (
        "invoices:create",
        "Create Invoices",
        "Create draft invoices",
        PermissionCategory.INVOICES,
    ),
    (
        "invoices:read",
        "View Invoices",
        "View invoices and their payments",
        PermissionCategory.INVOICES,
    ),
    (
        "invoices:send",
        "Send Invoices",
        "Send draft invoices to clients",
        PermissionCategory.INVOICES,
    ),
    (
        "invoices:record_payment",
        "Record Payments",
        "Record invoice payments and mark invoices overdue",
        PermissionCategory.INVOICES,
    ),
    (
        "invoices:cancel",
        "Cancel Invoices",
        "Cancel unpaid invoices",
        PermissionCategory.INVOICES,
    ),
]


# -- FINANCE --

FINANCE_PERMISSIONS = [
    (
        "expenses:create",
        "Record Transactions",
        "Record income and expense transactions",
        PermissionCategory.FINANCE,
    ),
    (
        "expenses:read",
        "View Finances",
        "View transactions and the balance dashboard",
        PermissionCategory.FINANCE,
    ),
]


# -- CERTIFICATES --

CERTIFICATE_PERMISSIONS = [
    (
        "certificates:read",
        "View Certificates",
        "View issued certificates",
        PermissionCategory.CERTIFICATES,
    ),
    (
        "leaderboards:read",
        "View Leaderboards",
        "View the monthly QA leaderboard",
        PermissionCategory.CERTIFICATES,
    ),
]


# -- USERS --

USER_PERMISSIONS = [
    (
        "users:read",
        "View Users",
        "View user accounts and roles",
        PermissionCategory.USERS,
    ),
    (
        "users:create",
        "Create Users",
        "Create new user accounts",
        PermissionCategory.USERS,
    ),
    (
        "users:delete",
        "Delete Users",
        "Delete user accounts",
        PermissionCategory.USERS,
    ),
    (
        "roles:manage",
        "Manage Roles",
        "Create roles and edit their permission lists",
        PermissionCategory.USERS,
    ),
]


# -- SYSTEM --

SYSTEM_PERMISSIONS = [
    (
        "admin:read",
        "Admin Access",
        "Access administrative dashboards",
        PermissionCategory.SYSTEM,
    ),
    (
        "tasks:manage",
        "Manage Tasks",
        "Create tasks and mark them complete",
        PermissionCategory.SYSTEM,
    ),
]


PERMISSION_DEFINITIONS = (
    REQUEST_PERMISSIONS
    + REQUISITION_PERMISSIONS
    + INVOICE_PERMISSIONS
    + FINANCE_PERMISSIONS
    + CERTIFICATE_PERMISSIONS
    + USER_PERMISSIONS
    + SYSTEM_PERMISSIONS
)
