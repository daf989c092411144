# Overview: Applies workflow-engine decisions to stored entities and emits notifications.

from __future__ import annotations

from typing import Callable

from ..extensions import db
from ..models import StatusHistory
from ..validation import NotFoundError
from .concurrency import commit_or_raise, lock_for_update, run_unit_of_work
from .notification_service import emit_event
from .permission_service import RoleTable, load_role_table, log_audit_event, resolve_permissions
from .workflow_service import (
    PERMISSION_DENIED,
    StatusHistoryEntry,
    TransitionResult,
    WorkflowEntity,
    attempt_transition,
)


def history_for(kind: str, entity_id: int) -> list[StatusHistory]:
    return (
        db.session.query(StatusHistory)
        .filter_by(entity_kind=kind, entity_id=entity_id)
        .order_by(StatusHistory.id.asc())
        .all()
    )


def snapshot(model) -> WorkflowEntity:
    """Immutable engine view of a stored request, requisition or invoice."""
    kind = model.ENTITY_KIND
    entries = tuple(
        StatusHistoryEntry(
            status=row.status,
            changed_at=row.changed_at,
            changed_by_id=row.changed_by_id,
            changed_by_name=row.changed_by_name,
            previous_status=row.previous_status,
            reason=row.reason,
        )
        for row in history_for(kind, model.id)
    )
    return WorkflowEntity(
        kind=kind,
        id=model.id,
        status=model.status,
        owner_id=model.owner_id,
        history=entries,
        updated_at=model.updated_at,
    )


def append_history(kind: str, entity_id: int, entry: StatusHistoryEntry) -> StatusHistory:
    row = StatusHistory(
        entity_kind=kind,
        entity_id=entity_id,
        status=entry.status,
        previous_status=entry.previous_status,
        reason=entry.reason,
        changed_by_id=entry.changed_by_id,
        changed_by_name=entry.changed_by_name,
        changed_at=entry.changed_at,
    )
    db.session.add(row)
    return row


def notify_status(model, actor_id: str | None, reason: str | None = None) -> bool:
    payload = {"reason": reason} if reason else {}
    return emit_event(
        entity_kind=model.ENTITY_KIND,
        entity_id=model.id,
        entity_status=model.status,
        actor_id=actor_id,
        payload=payload,
    )


def apply_transition(
    model_cls,
    entity_id: int,
    new_status: str,
    caller,
    *,
    reason: str | None = None,
    role_table: RoleTable | None = None,
    validate: Callable | None = None,
    before_commit: Callable | None = None,
    resource: str | None = None,
) -> tuple[object, TransitionResult]:
    """
    Lock the row, ask the engine, and on success persist status + history.

    validate(model, result) runs only after the engine allowed the move;
    whatever it raises rolls the unit of work back and propagates.
    before_commit(model, result) lets the calling service set kind-specific
    fields (approved_at, rejection_reason, ...) in the same transaction.
    Denials are returned, not raised; permission denials are audited.
    The notification is emitted only after the entity commit succeeded.
    """
    kind = model_cls.ENTITY_KIND
    table = role_table if role_table is not None else load_role_table()
    permissions = resolve_permissions(caller.roles, table)

    def _op():
        model = lock_for_update(db.session.query(model_cls).filter_by(id=entity_id)).first()
        if model is None:
            raise NotFoundError(f"{kind.title()} not found")

        result = attempt_transition(snapshot(model), new_status, caller, permissions, reason=reason)
        if not result.allowed:
            db.session.rollback()
            return model, result

        try:
            if validate is not None:
                validate(model, result)
            model.status = result.entry.status
            append_history(kind, model.id, result.entry)
            if before_commit is not None:
                before_commit(model, result)
            commit_or_raise()
        except Exception:
            db.session.rollback()
            raise
        return model, result

    model, result = run_unit_of_work(_op)

    if result.denial == PERMISSION_DENIED:
        log_audit_event(
            user_id=caller.id,
            event_type="TRANSITION_DENIED",
            success=False,
            resource=resource or f"{kind}/{entity_id}",
            action=new_status,
            reason=result.message,
        )
    elif result.allowed:
        notify_status(model, caller.id, reason)

    return model, result
