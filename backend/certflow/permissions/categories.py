# Overview: Permission category constants for grouping related permissions.


class PermissionCategory:
    """Permission categories for organization and UI display."""
    REQUESTS = "REQUESTS"
    REQUISITIONS = "REQUISITIONS"
    INVOICES = "INVOICES"
    FINANCE = "FINANCE"
    CERTIFICATES = "CERTIFICATES"
    USERS = "USERS"
    SYSTEM = "SYSTEM"
