# Overview: Pure allow/deny decision for status changes plus history-entry construction.

"""
Workflow Engine

attempt_transition() is a pure function over immutable snapshots. It never
touches the database, never raises for a business-rule denial, and never
mutates its input. Persisting an accepted result (and any notification) is
the caller's job; see transition_service.

Decision order:
    1. already_in_state    new_status == entity.status
    2. illegal_transition  edge missing from the lifecycle table
    3. permission_denied   elevated permission missing, or an owner-only
                           edge (resubmit, submit, cancel) attempted by
                           someone other than the original requester
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Iterable, Optional

from .lifecycle_service import is_valid_transition, status_label, validate_status
from certflow.time_utils import utcnow


ALREADY_IN_STATE = "already_in_state"
ILLEGAL_TRANSITION = "illegal_transition"
PERMISSION_DENIED = "permission_denied"

KIND_LABELS = {
    "request": "Request",
    "requisition": "Requisition",
    "invoice": "Invoice",
}

# Permission a caller needs to move an entity INTO the target status
ELEVATED_PERMISSIONS: dict[tuple[str, str], str] = {
    ("request", "assigned"): "requests:approve",
    ("request", "in_review"): "requests:approve",
    ("request", "needs_revision"): "requests:approve",
    ("request", "approved"): "requests:approve",
    ("request", "rejected"): "requests:reject",
    ("requisition", "approved"): "requisitions:approve",
    ("requisition", "rejected"): "requisitions:reject",
    ("requisition", "partially_fulfilled"): "requisitions:fulfill",
    ("requisition", "fulfilled"): "requisitions:fulfill",
    ("invoice", "sent"): "invoices:send",
    ("invoice", "cancelled"): "invoices:cancel",
    ("invoice", "overdue"): "invoices:record_payment",
    ("invoice", "partially_paid"): "invoices:record_payment",
    ("invoice", "paid"): "invoices:record_payment",
}

# Edges only the original requester may take, as (kind, from, to).
# None as from-status matches any current status.
OWNER_ONLY_EDGES = frozenset({
    ("request", "rejected", "pending"),
    ("request", "needs_revision", "pending"),
    ("requisition", "rejected", "pending"),
    ("requisition", "draft", "pending"),
    ("requisition", None, "cancelled"),
})

PERMISSION_MESSAGES = {
    ("request", "assigned"): "You do not have permission to assign requests",
    ("request", "approved"): "You do not have permission to approve or reject requests",
    ("request", "rejected"): "You do not have permission to approve or reject requests",
}


@dataclass(frozen=True)
class StatusHistoryEntry:
    status: str
    changed_at: datetime
    changed_by_id: str
    changed_by_name: str
    previous_status: Optional[str] = None
    reason: Optional[str] = None


@dataclass(frozen=True)
class WorkflowEntity:
    """
    Snapshot of a request, requisition or invoice as the engine sees it.

    owner_id is the requester (requests, requisitions) or creator (invoices).
    history is ordered oldest first.
    """
    kind: str
    id: Optional[int]
    status: str
    owner_id: str
    history: tuple[StatusHistoryEntry, ...] = field(default_factory=tuple)
    updated_at: Optional[datetime] = None

    def with_entry(self, entry: StatusHistoryEntry) -> "WorkflowEntity":
        return replace(
            self,
            status=entry.status,
            history=self.history + (entry,),
            updated_at=entry.changed_at,
        )


@dataclass(frozen=True)
class TransitionResult:
    entity: WorkflowEntity
    entry: Optional[StatusHistoryEntry] = None
    denial: Optional[str] = None
    message: Optional[str] = None

    @property
    def allowed(self) -> bool:
        return self.denial is None


def required_permission(kind: str, new_status: str) -> Optional[str]:
    return ELEVATED_PERMISSIONS.get((kind, new_status))


def is_owner_only(kind: str, current_status: str, new_status: str) -> bool:
    return (
        (kind, current_status, new_status) in OWNER_ONLY_EDGES
        or (kind, None, new_status) in OWNER_ONLY_EDGES
    )


def _deny(entity: WorkflowEntity, denial: str, message: str) -> TransitionResult:
    return TransitionResult(entity=entity, denial=denial, message=message)


def _permission_message(kind: str, new_status: str, permission: str) -> str:
    message = PERMISSION_MESSAGES.get((kind, new_status))
    if message:
        return message
    return f"You do not have permission to move this {kind} to {status_label(new_status)} ({permission})"


def attempt_transition(
    entity: WorkflowEntity,
    new_status: str,
    caller,
    permissions: Iterable[str],
    reason: Optional[str] = None,
    now: Optional[datetime] = None,
) -> TransitionResult:
    """
    Decide whether caller may move entity to new_status.

    Args:
        entity: current snapshot (never mutated)
        new_status: requested status; unknown values raise ValidationError
        caller: object with .id and .name
        permissions: caller's resolved permission codes
        reason: optional free text stored on the history entry
        now: timestamp for the entry (defaults to utcnow())

    Returns:
        TransitionResult with either an updated entity copy and the new
        history entry, or a denial code and user-facing message.
    """
    validate_status(entity.kind, new_status)
    kind_label = KIND_LABELS.get(entity.kind, entity.kind.title())

    if new_status == entity.status:
        return _deny(entity, ALREADY_IN_STATE, f"{kind_label} is already in this status")

    if not is_valid_transition(entity.kind, entity.status, new_status):
        return _deny(
            entity,
            ILLEGAL_TRANSITION,
            f"Cannot transition from {status_label(entity.status)} to {status_label(new_status)}",
        )

    granted = frozenset(permissions or ())
    permission = required_permission(entity.kind, new_status)
    if permission and permission not in granted:
        return _deny(entity, PERMISSION_DENIED, _permission_message(entity.kind, new_status, permission))

    if is_owner_only(entity.kind, entity.status, new_status) and caller.id != entity.owner_id:
        return _deny(
            entity,
            PERMISSION_DENIED,
            f"Only the original requester can move this {entity.kind} to {status_label(new_status)}",
        )

    entry = StatusHistoryEntry(
        status=new_status,
        changed_at=now or utcnow(),
        changed_by_id=caller.id,
        changed_by_name=getattr(caller, "name", "") or caller.id,
        previous_status=entity.status,
        reason=reason,
    )
    return TransitionResult(entity=entity.with_entry(entry), entry=entry)
