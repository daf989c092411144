# Overview: Built-in role names and their default permission sets.
# Role rows stored in the database override these by canonical key.

from .helpers import get_all_permission_codes


DEFAULT_ROLE_PERMISSIONS = {
    # Admin has all permissions
    "admin": get_all_permission_codes(),

    "qa_tester": [
        "requests:read_all",
        "requests:approve",
        "requests:reject",
        "requests:add_comment",
        "certificates:read",
        "leaderboards:read",
    ],

    "senior_qa": [
        "requests:read_all",
        "requests:approve",
        "requests:reject",
        "requests:add_comment",
        "certificates:read",
        "leaderboards:read",
        "tasks:manage",
    ],

    "requester": [
        "requests:create",
        "requests:read_own",
        "requests:add_comment",
        "requisitions:create",
        "requisitions:read_own",
        "certificates:read",
    ],

    "developer": [
        "requests:create",
        "requests:read_own",
        "requests:add_comment",
        "requisitions:create",
        "requisitions:read_own",
        "certificates:read",
        "leaderboards:read",
        "tasks:manage",
    ],

    "manager": [
        "requests:read_all",
        "requisitions:create",
        "requisitions:read_all",
        "requisitions:approve",
        "requisitions:reject",
        "invoices:read",
        "expenses:read",
        "leaderboards:read",
        "tasks:manage",
    ],

    "hr_admin": [
        "users:read",
        "users:create",
        "requisitions:read_all",
        "requisitions:fulfill",
        "expenses:create",
        "expenses:read",
        "invoices:create",
        "invoices:read",
        "invoices:send",
        "invoices:record_payment",
        "invoices:cancel",
    ],

    "project_manager": [
        "requests:create",
        "requests:read_all",
        "requisitions:create",
        "requisitions:read_all",
        "requisitions:approve",
        "requisitions:reject",
        "leaderboards:read",
        "tasks:manage",
    ],
}


# Holding any of these marks the caller as an administrator
ADMIN_PERMISSION_IDENTIFIERS = frozenset({
    "admin:read",
    "users:create",
    "users:delete",
    "roles:manage",
})
