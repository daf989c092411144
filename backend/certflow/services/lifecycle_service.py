# Overview: Static status transition tables for every workflow entity kind.

"""
CertFlow Status Lifecycle

================================================================================
PURPOSE: Single source of truth for which status changes are legal
================================================================================

STATE MACHINES:

    request:
        pending        -> assigned, approved, rejected
        assigned       -> in_review, approved, rejected
        in_review      -> needs_revision, approved, rejected
        needs_revision -> pending, assigned
        rejected       -> pending                 (resubmit)
        approved       (terminal)

    requisition:
        draft               -> pending, cancelled
        pending             -> approved, rejected, cancelled
        approved            -> partially_fulfilled, fulfilled
        partially_fulfilled -> fulfilled
        rejected            -> pending            (resubmit)
        fulfilled, cancelled (terminal)

    invoice:
        draft          -> sent, cancelled
        sent           -> overdue, partially_paid, paid, cancelled
        overdue        -> partially_paid, paid, cancelled
        partially_paid -> paid
        paid, cancelled (terminal)

RULES:
1. A same-status "transition" is never legal.
2. Unknown kinds or statuses are input errors, not illegal transitions.
3. The tables are data; nothing here touches the database.
================================================================================
"""

from __future__ import annotations

from ..validation import ValidationError


ENTITY_KINDS = ("request", "requisition", "invoice")

TRANSITIONS: dict[str, dict[str, tuple[str, ...]]] = {
    "request": {
        "pending": ("assigned", "approved", "rejected"),
        "assigned": ("in_review", "approved", "rejected"),
        "in_review": ("needs_revision", "approved", "rejected"),
        "needs_revision": ("pending", "assigned"),
        "approved": (),
        "rejected": ("pending",),
    },
    "requisition": {
        "draft": ("pending", "cancelled"),
        "pending": ("approved", "rejected", "cancelled"),
        "approved": ("partially_fulfilled", "fulfilled"),
        "partially_fulfilled": ("fulfilled",),
        "rejected": ("pending",),
        "fulfilled": (),
        "cancelled": (),
    },
    "invoice": {
        "draft": ("sent", "cancelled"),
        "sent": ("overdue", "partially_paid", "paid", "cancelled"),
        "overdue": ("partially_paid", "paid", "cancelled"),
        "partially_paid": ("paid",),
        "paid": (),
        "cancelled": (),
    },
}

# Status every new entity of a kind starts in
INITIAL_STATUS = {
    "request": "pending",
    "requisition": "draft",
    "invoice": "draft",
}

STATUS_LABELS = {
    "pending": "Pending",
    "assigned": "Assigned",
    "in_review": "In Review",
    "needs_revision": "Needs Revision",
    "approved": "Approved",
    "rejected": "Rejected",
    "draft": "Draft",
    "partially_fulfilled": "Partially Fulfilled",
    "fulfilled": "Fulfilled",
    "cancelled": "Cancelled",
    "sent": "Sent",
    "overdue": "Overdue",
    "partially_paid": "Partially Paid",
    "paid": "Paid",
}


def validate_kind(kind: str) -> None:
    if kind not in TRANSITIONS:
        raise ValidationError(
            f"Invalid entity kind '{kind}'. Must be one of: {', '.join(ENTITY_KINDS)}"
        )


def validate_status(kind: str, status: str) -> None:
    """
    Validate that a status value is one of the kind's allowed states.

    Raises:
        ValidationError: If kind is unknown or status is not in its enum
    """
    validate_kind(kind)
    if status not in TRANSITIONS[kind]:
        raise ValidationError(
            f"Invalid {kind} status '{status}'. Must be one of: {', '.join(TRANSITIONS[kind])}"
        )


def is_valid_transition(kind: str, current_status: str, new_status: str) -> bool:
    """
    Check if current_status -> new_status is an edge in the kind's table.

    Same-status pairs always return False.
    """
    validate_status(kind, current_status)
    validate_status(kind, new_status)

    if current_status == new_status:
        return False

    return new_status in TRANSITIONS[kind][current_status]


def allowed_next_statuses(kind: str, current_status: str) -> tuple[str, ...]:
    validate_status(kind, current_status)
    return TRANSITIONS[kind][current_status]


def is_terminal(kind: str, status: str) -> bool:
    return not allowed_next_statuses(kind, status)


def status_label(status: str) -> str:
    """Display label, e.g. "in_review" -> "In Review"."""
    return STATUS_LABELS.get(status, status.replace("_", " ").title())
