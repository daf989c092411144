# Overview: Certificate requests: creation, listing, status changes, resubmission, comments and follow-ups.

from __future__ import annotations

from datetime import timedelta

from ..extensions import db
from ..models import CertificateRequest, RequestComment, User
from ..validation import ModelValidationPolicy, NotFoundError, ValidationError, validate_payload
from .concurrency import commit_or_raise
from .document_service import next_document_number
from .lifecycle_service import INITIAL_STATUS, validate_status
from .notification_service import EVENT_REQUEST_COMMENT, EVENT_REQUEST_FOLLOWUP, emit_event
from .transition_service import append_history, apply_transition, history_for, notify_status
from .workflow_service import StatusHistoryEntry
from certflow.time_utils import utcnow


REQUEST_POLICY = ModelValidationPolicy(
    writable_fields={"task_title", "associated_team", "associated_project", "description", "task_link"},
    required_on_create={"task_title", "associated_team", "associated_project", "description"},
)


def create_request(payload: dict, caller, *, commit: bool = True) -> CertificateRequest:
    """
    File a new request in pending and record the initial history entry.

    With commit=False the caller owns the transaction (and the notification).
    """
    patch = validate_payload(model=CertificateRequest, payload=payload, policy=REQUEST_POLICY)

    now = utcnow()
    req = CertificateRequest(
        requester_id=caller.id,
        requester_name=caller.name or caller.id,
        requester_email=caller.email,
        status=INITIAL_STATUS["request"],
        created_at=now,
        updated_at=now,
        **patch,
    )
    db.session.add(req)
    db.session.flush()

    append_history("request", req.id, StatusHistoryEntry(
        status=req.status,
        changed_at=now,
        changed_by_id=caller.id,
        changed_by_name=caller.name or caller.id,
    ))

    if commit:
        commit_or_raise()
        notify_status(req, caller.id)
    return req


def get_request(request_id: int) -> CertificateRequest:
    req = db.session.get(CertificateRequest, request_id)
    if req is None:
        raise NotFoundError("Request not found")
    return req


def can_view(req: CertificateRequest, caller, permissions) -> bool:
    if "requests:read_all" in permissions:
        return True
    return req.requester_id == caller.id or req.qa_tester_id == caller.id


def list_requests(caller, permissions, *, status: str | None = None) -> list[CertificateRequest]:
    query = db.session.query(CertificateRequest)
    if "requests:read_all" not in permissions:
        query = query.filter(
            (CertificateRequest.requester_id == caller.id)
            | (CertificateRequest.qa_tester_id == caller.id)
        )
    if status:
        validate_status("request", status)
        query = query.filter(CertificateRequest.status == status)
    return query.order_by(CertificateRequest.id.desc()).all()


def request_history(request_id: int) -> list[dict]:
    get_request(request_id)
    return [row.to_dict() for row in history_for("request", request_id)]


def transition_request(
    request_id: int,
    new_status: str,
    caller,
    *,
    reason: str | None = None,
    qa_tester_id: str | None = None,
    resource: str | None = None,
    role_table=None,
):
    """
    Move a request to new_status through the workflow engine.

    - assigned: qa_tester_id (default: caller) becomes the reviewing tester
    - approved: stamps approved_at and issues a certificate number
    - rejected: reason is required and kept as rejection_reason
    - pending (resubmit): clears the previous rejection reason
    """
    tester = None

    def _validate(req: CertificateRequest, result):
        nonlocal tester
        if new_status == "rejected" and not (reason or "").strip():
            raise ValidationError("A reason is required to reject a request")
        if new_status == "assigned" and qa_tester_id and qa_tester_id != caller.id:
            tester = db.session.get(User, qa_tester_id)
            if tester is None:
                raise ValidationError("qa_tester_id does not match a known user")

    def _before_commit(req: CertificateRequest, result):
        req.updated_at = result.entry.changed_at
        if new_status == "assigned":
            req.qa_tester_id = tester.id if tester else caller.id
            req.qa_tester_name = (tester.name if tester else caller.name) or req.qa_tester_id
        elif new_status == "approved":
            if not req.qa_tester_id:
                req.qa_tester_id = caller.id
                req.qa_tester_name = caller.name or caller.id
            req.approved_at = result.entry.changed_at
            req.certificate_id = next_document_number(document_type="CERTIFICATE", prefix="CERT")
        elif new_status == "rejected":
            req.rejection_reason = reason.strip()
        elif new_status == "pending":
            req.rejection_reason = None

    return apply_transition(
        CertificateRequest,
        request_id,
        new_status,
        caller,
        reason=reason,
        role_table=role_table,
        validate=_validate,
        before_commit=_before_commit,
        resource=resource,
    )


def resubmit_request(request_id: int, caller, payload: dict | None = None, *, resource: str | None = None, role_table=None):
    """
    Send a rejected (or needs-revision) request back to pending.

    Optional payload edits the request fields in the same transaction; they
    are applied only if the engine accepts the resubmission.
    """
    payload = dict(payload or {})
    reason = payload.pop("reason", None)
    patch = {}

    def _validate(req: CertificateRequest, result):
        patch.update(validate_payload(model=CertificateRequest, payload=payload, policy=REQUEST_POLICY, partial=True))

    def _before_commit(req: CertificateRequest, result):
        for key, value in patch.items():
            setattr(req, key, value)
        req.rejection_reason = None
        req.updated_at = result.entry.changed_at

    return apply_transition(
        CertificateRequest,
        request_id,
        "pending",
        caller,
        reason=reason,
        role_table=role_table,
        validate=_validate,
        before_commit=_before_commit,
        resource=resource,
    )


# =============================================================================
# COMMENTS
# =============================================================================

MAX_COMMENT_LENGTH = 5000


def list_comments(request_id: int) -> list[RequestComment]:
    get_request(request_id)
    return (
        db.session.query(RequestComment)
        .filter_by(request_id=request_id)
        .order_by(RequestComment.id.asc())
        .all()
    )


def add_comment(request_id: int, caller, text) -> RequestComment:
    """
    Append a comment and notify the other side of the conversation.

    The notification is best-effort and emitted after the comment commits.
    """
    req = get_request(request_id)
    if text is not None and not isinstance(text, str):
        raise ValidationError("text must be a string")
    text = (text or "").strip()
    if not text:
        raise ValidationError("Comment text is required")
    if len(text) > MAX_COMMENT_LENGTH:
        raise ValidationError(f"Comment text exceeds max length {MAX_COMMENT_LENGTH}")

    comment = RequestComment(
        request_id=req.id,
        author_id=caller.id,
        author_name=caller.name or caller.id,
        text=text,
        created_at=utcnow(),
    )
    db.session.add(comment)
    commit_or_raise()

    emit_event(
        entity_kind="request",
        entity_id=req.id,
        entity_status=req.status,
        actor_id=caller.id,
        payload={"comment_id": comment.id, "author_name": comment.author_name, "text": text},
        event_type=EVENT_REQUEST_COMMENT,
    )
    return comment


# =============================================================================
# FOLLOW-UP REMINDERS
# =============================================================================

def send_pending_followups(*, now=None, days: int = 3) -> list[CertificateRequest]:
    """
    Remind approvers once about every request pending for more than `days`.

    Requests that already had their reminder are skipped. Returns the
    requests reminded in this run.
    """
    now = now or utcnow()
    cutoff = now - timedelta(days=days)

    due = (
        db.session.query(CertificateRequest)
        .filter(
            CertificateRequest.status == "pending",
            CertificateRequest.created_at <= cutoff,
            CertificateRequest.first_reminder_sent_at.is_(None),
        )
        .order_by(CertificateRequest.id.asc())
        .all()
    )
    if not due:
        return []

    for req in due:
        req.first_reminder_sent_at = now
        req.reminder_count = (req.reminder_count or 0) + 1
    commit_or_raise()

    for req in due:
        emit_event(
            entity_kind="request",
            entity_id=req.id,
            entity_status=req.status,
            payload={"days": days},
            event_type=EVENT_REQUEST_FOLLOWUP,
        )
    return due
