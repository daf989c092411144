# Overview: Requisition drafting, item totals, listing and status changes.

from __future__ import annotations

from ..extensions import db
from ..models import Requisition, RequisitionItem
from ..validation import (
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    enforce_amount_cents,
    enforce_positive_quantity,
    validate_payload,
)
from .concurrency import commit_or_raise
from .lifecycle_service import INITIAL_STATUS, validate_status
from .reporting_service import DEFAULT_RATES
from .transition_service import append_history, apply_transition, history_for
from .workflow_service import StatusHistoryEntry
from certflow.time_utils import utcnow


REQUISITION_POLICY = ModelValidationPolicy(
    writable_fields={"title", "justification", "department", "currency"},
    required_on_create={"title"},
)


def _build_items(raw_items) -> list[RequisitionItem]:
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("items must be a non-empty list")

    items = []
    for index, raw in enumerate(raw_items):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{index}] must be an object")
        name = str(raw.get("name") or "").strip()
        if not name:
            raise ValidationError(f"items[{index}].name is required")
        items.append(RequisitionItem(
            name=name[:255],
            quantity=enforce_positive_quantity(f"items[{index}].quantity", raw.get("quantity")),
            estimated_unit_cost_cents=enforce_amount_cents(
                f"items[{index}].estimated_unit_cost_cents",
                raw.get("estimated_unit_cost_cents", 0),
                allow_zero=True,
            ),
        ))
    return items


def create_requisition(payload: dict, caller) -> Requisition:
    """Create a draft requisition; the requester submits it separately."""
    payload = dict(payload or {})
    raw_items = payload.pop("items", None)
    patch = validate_payload(model=Requisition, payload=payload, policy=REQUISITION_POLICY)
    items = _build_items(raw_items)

    currency = (patch.get("currency") or "NGN").upper()
    if currency not in DEFAULT_RATES:
        raise ValidationError(f"Unsupported currency: {currency}")
    patch["currency"] = currency

    now = utcnow()
    requisition = Requisition(
        requester_id=caller.id,
        requester_name=caller.name or caller.id,
        status=INITIAL_STATUS["requisition"],
        estimated_total_cents=sum(i.quantity * i.estimated_unit_cost_cents for i in items),
        created_at=now,
        updated_at=now,
        **patch,
    )
    requisition.items.extend(items)
    db.session.add(requisition)
    db.session.flush()

    append_history("requisition", requisition.id, StatusHistoryEntry(
        status=requisition.status,
        changed_at=now,
        changed_by_id=caller.id,
        changed_by_name=caller.name or caller.id,
    ))
    commit_or_raise()
    return requisition


def get_requisition(requisition_id: int) -> Requisition:
    requisition = db.session.get(Requisition, requisition_id)
    if requisition is None:
        raise NotFoundError("Requisition not found")
    return requisition


def can_view(requisition: Requisition, caller, permissions) -> bool:
    return "requisitions:read_all" in permissions or requisition.requester_id == caller.id


def list_requisitions(caller, permissions, *, status: str | None = None) -> list[Requisition]:
    query = db.session.query(Requisition)
    if "requisitions:read_all" not in permissions:
        query = query.filter(Requisition.requester_id == caller.id)
    if status:
        validate_status("requisition", status)
        query = query.filter(Requisition.status == status)
    return query.order_by(Requisition.id.desc()).all()


def requisition_history(requisition_id: int) -> list[dict]:
    get_requisition(requisition_id)
    return [row.to_dict() for row in history_for("requisition", requisition_id)]


def transition_requisition(
    requisition_id: int,
    new_status: str,
    caller,
    *,
    reason: str | None = None,
    resource: str | None = None,
    role_table=None,
):
    """
    Move a requisition through its lifecycle.

    Submitting (draft -> pending), resubmitting and cancelling are reserved
    for the requester; approving, rejecting and fulfilling need the matching
    requisitions:* permission. Rejections must carry a reason.
    """
    def _validate(requisition: Requisition, result):
        if new_status == "rejected" and not (reason or "").strip():
            raise ValidationError("A reason is required to reject a requisition")

    def _before_commit(requisition: Requisition, result):
        requisition.updated_at = result.entry.changed_at
        if new_status == "rejected":
            requisition.rejection_reason = reason.strip()
        elif new_status == "pending":
            requisition.rejection_reason = None

    return apply_transition(
        Requisition,
        requisition_id,
        new_status,
        caller,
        reason=reason,
        role_table=role_table,
        validate=_validate,
        before_commit=_before_commit,
        resource=resource,
    )
