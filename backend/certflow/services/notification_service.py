# Overview: Best-effort notification outbox, the delivery worker that drains it, and SMTP mail.

"""
Notification Dispatcher

Workflow services call emit_event() AFTER their own commit. Emission writes
one outbox row in a separate transaction; if that write fails the failure is
logged and reported as False, and the entity change stays committed.

Comments and the reminder commands (flask requests followup, flask invoices
remind) emit through the same outbox with their own event types.

deliver_pending_notifications() (flask notifications deliver) drains the
outbox independently:
- resolves recipients from the event's entity and the role table
- writes one in-app Notification per recipient user and commits them
- emails recipients through Mailer when SMTP is configured, committing each
  sent address on the event so a retry skips it

A failing event gets its attempts counter bumped and is marked FAILED once
attempts reaches NOTIFICATION_MAX_ATTEMPTS.
"""

from __future__ import annotations

import logging
import re
import smtplib
from email.message import EmailMessage

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import (
    CertificateRequest,
    Invoice,
    Notification,
    NotificationEvent,
    Requisition,
    User,
)
from .lifecycle_service import status_label
from .permission_service import has_permission, load_role_table
from certflow.time_utils import utcnow


logger = logging.getLogger(__name__)

_EMAIL_RE = re.compile(r"^[^@\s\r\n]+@[^@\s\r\n]+\.[^@\s\r\n]+$")

STATUS_PENDING = "PENDING"
STATUS_DELIVERED = "DELIVERED"
STATUS_FAILED = "FAILED"

ENTITY_MODELS = {
    "request": CertificateRequest,
    "requisition": Requisition,
    "invoice": Invoice,
}

ENTITY_LINKS = {
    "request": "/requests/{id}",
    "requisition": "/requisitions/{id}",
    "invoice": "/invoices/{id}",
}

# Statuses that are announced to everyone holding a permission rather than
# to one person.
BROADCAST_PERMISSIONS = {
    ("request", "pending"): "requests:approve",
    ("requisition", "pending"): "requisitions:approve",
}

EVENT_REQUEST_COMMENT = "request-comment"
EVENT_REQUEST_FOLLOWUP = "request-followup"
EVENT_INVOICE_REMINDER = "invoice-reminder"


class Mailer:
    """SMTP delivery. Disabled (send() returns False) while no host is set."""

    def __init__(
        self,
        host: str = "",
        port: int = 25,
        sender: str = "noreply@certflow.local",
        username: str = "",
        password: str = "",
        starttls: bool = False,
    ):
        self.host = host
        self.port = port
        self.sender = sender
        self.username = username
        self.password = password
        self.starttls = starttls

    @classmethod
    def from_config(cls, config) -> "Mailer":
        return cls(
            host=config.get("SMTP_HOST", ""),
            port=int(config.get("SMTP_PORT", 25)),
            sender=config.get("SMTP_SENDER", "noreply@certflow.local"),
            username=config.get("SMTP_USERNAME", ""),
            password=config.get("SMTP_PASSWORD", ""),
            starttls=bool(config.get("SMTP_STARTTLS", False)),
        )

    @property
    def enabled(self) -> bool:
        return bool(self.host)

    def send(self, recipient: str, subject: str, body: str) -> bool:
        if not self.enabled:
            return False
        if not recipient or not _EMAIL_RE.match(recipient):
            logger.warning("Invalid email recipient skipped: %s", recipient)
            return False
        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = recipient
        message["Subject"] = f"[CertFlow] {subject}"
        message.set_content(body)

        with smtplib.SMTP(self.host, self.port, timeout=10) as smtp:
            if self.starttls:
                smtp.starttls()
            if self.username:
                smtp.login(self.username, self.password)
            smtp.send_message(message)
        return True


def event_type_for(kind: str, status: str) -> str:
    """new-request, request-approved, requisition-pending, invoice-sent, ..."""
    if kind == "request" and status == "pending":
        return "new-request"
    return f"{kind}-{status.replace('_', '-')}"


# =============================================================================
# Emission (called by workflow services after their commit)
# =============================================================================

def emit_event(
    *,
    entity_kind: str,
    entity_id: int,
    entity_status: str,
    actor_id: str | None = None,
    payload: dict | None = None,
    event_type: str | None = None,
) -> bool:
    """
    Write one outbox row. Returns False (and logs) instead of raising.

    event_type defaults to the status-change type for the entity.
    """
    try:
        event = NotificationEvent(
            event_type=event_type or event_type_for(entity_kind, entity_status),
            entity_kind=entity_kind,
            entity_id=entity_id,
            entity_status=entity_status,
            actor_id=actor_id,
            payload=payload or {},
            status=STATUS_PENDING,
            attempts=0,
            created_at=utcnow(),
        )
        db.session.add(event)
        db.session.commit()
        return True
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception(
            "Failed to emit notification for %s %s -> %s",
            entity_kind, entity_id, entity_status,
        )
        return False


# =============================================================================
# Delivery worker
# =============================================================================

def _users_with_permission(permission: str) -> list[User]:
    table = load_role_table()
    users = db.session.query(User).filter_by(is_active=True).order_by(User.id.asc()).all()
    return [u for u in users if has_permission(u.role_names(), permission, table)]


def _active_user(user_id: str | None) -> list[User]:
    if not user_id:
        return []
    user = db.session.get(User, user_id)
    return [user] if user is not None and user.is_active else []


def resolve_recipients(event: NotificationEvent, entity) -> tuple[list[User], list[str]]:
    """
    Recipients for one event as (users, extra email addresses).

    The actor who caused the change is never notified about it.
    """
    kind, status = event.entity_kind, event.entity_status
    extra_emails: list[str] = []

    broadcast = BROADCAST_PERMISSIONS.get((kind, status))
    if event.event_type == EVENT_REQUEST_COMMENT:
        # requester comments reach the assigned tester, everyone else's reach the requester
        target = entity.qa_tester_id if event.actor_id == entity.owner_id else entity.owner_id
        users = _active_user(target)
    elif event.event_type == EVENT_REQUEST_FOLLOWUP:
        users = _users_with_permission("requests:approve")
    elif event.event_type == EVENT_INVOICE_REMINDER:
        users = _active_user(entity.owner_id)
        if entity.client_email:
            extra_emails.append(entity.client_email)
    elif broadcast:
        users = _users_with_permission(broadcast)
    elif kind == "request" and status == "assigned":
        users = _active_user(entity.qa_tester_id)
    elif kind == "invoice" and status == "sent":
        users = []
        if entity.client_email:
            extra_emails.append(entity.client_email)
    else:
        users = _active_user(entity.owner_id)

    users = [u for u in users if u.id != event.actor_id]
    return users, extra_emails


def _subject_for(entity) -> str:
    if isinstance(entity, CertificateRequest):
        return entity.task_title
    if isinstance(entity, Invoice):
        return entity.invoice_number
    return entity.title


def _format_cents(amount_cents: int, currency: str) -> str:
    return f"{currency} {amount_cents / 100:,.2f}"


def build_message(event: NotificationEvent, entity) -> tuple[str, str]:
    payload = event.payload or {}

    if event.event_type == EVENT_REQUEST_COMMENT:
        author = payload.get("author_name") or event.actor_id
        return "New Comment", f'{author} commented on "{entity.task_title}":\n\n{payload.get("text", "")}'

    if event.event_type == EVENT_REQUEST_FOLLOWUP:
        days = payload.get("days")
        return (
            "Pending Request Reminder",
            f'"{entity.task_title}" from {entity.requester_name} has been pending for more than '
            f"{days} days. Please review it.",
        )

    if event.event_type == EVENT_INVOICE_REMINDER:
        return (
            f"Payment Reminder: Invoice {entity.invoice_number}",
            f"Invoice {entity.invoice_number} for {entity.client_name} is past due with "
            f"{_format_cents(entity.outstanding_cents, entity.currency)} outstanding.",
        )

    label = status_label(event.entity_status)
    title = f"{event.entity_kind.title()} {label}"
    body = f'"{_subject_for(entity)}" is now {label}.'
    reason = (event.payload or {}).get("reason")
    if reason:
        body += f"\n\nReason: {reason}"
    return title, body


def _deliver_one(event: NotificationEvent, mailer: Mailer) -> int:
    model = ENTITY_MODELS.get(event.entity_kind)
    if model is None:
        raise ValueError(f"Unknown entity kind: {event.entity_kind}")
    entity = db.session.get(model, event.entity_id)
    if entity is None:
        raise ValueError(f"{event.entity_kind} {event.entity_id} not found")

    users, extra_emails = resolve_recipients(event, entity)
    title, body = build_message(event, entity)
    link = ENTITY_LINKS[event.entity_kind].format(id=event.entity_id)

    if event.inbox_written_at is None:
        for user in users:
            db.session.add(Notification(
                event_id=event.id,
                user_id=user.id,
                title=title,
                body=body,
                link=link,
                created_at=utcnow(),
            ))
        event.inbox_written_at = utcnow()
        db.session.commit()

    if mailer.enabled:
        emailed = list(event.emailed_to or [])
        emails = [u.email for u in users if u.email] + extra_emails
        for address in emails:
            if address in emailed:
                continue
            if mailer.send(address, title, body):
                emailed = emailed + [address]
                event.emailed_to = emailed
                db.session.commit()

    event.status = STATUS_DELIVERED
    event.delivered_at = utcnow()
    db.session.commit()
    return len(users) + len(extra_emails)


def deliver_pending_notifications(
    *,
    mailer: Mailer | None = None,
    limit: int = 100,
    max_attempts: int | None = None,
) -> dict:
    """
    Drain up to limit PENDING outbox rows, oldest first.

    Returns counts: processed, delivered, retrying, failed.
    """
    if mailer is None:
        mailer = Mailer.from_config(current_app.config)
    if max_attempts is None:
        max_attempts = int(current_app.config.get("NOTIFICATION_MAX_ATTEMPTS", 5))

    event_ids = [
        row.id
        for row in db.session.query(NotificationEvent.id)
        .filter_by(status=STATUS_PENDING)
        .order_by(NotificationEvent.id.asc())
        .limit(limit)
        .all()
    ]

    summary = {"processed": 0, "delivered": 0, "retrying": 0, "failed": 0}

    for event_id in event_ids:
        event = db.session.get(NotificationEvent, event_id)
        summary["processed"] += 1
        try:
            _deliver_one(event, mailer)
            summary["delivered"] += 1
        except (SQLAlchemyError, smtplib.SMTPException, OSError, ValueError) as exc:
            db.session.rollback()
            logger.exception("Failed to deliver notification event %s", event_id)

            event = db.session.get(NotificationEvent, event_id)
            event.attempts = (event.attempts or 0) + 1
            event.last_error = str(exc)[:1000]
            if event.attempts >= max_attempts:
                event.status = STATUS_FAILED
                summary["failed"] += 1
            else:
                summary["retrying"] += 1
            db.session.commit()

    return summary


# =============================================================================
# In-app inbox
# =============================================================================

def list_notifications(user_id: str, *, unread_only: bool = False, limit: int = 50) -> list[Notification]:
    query = db.session.query(Notification).filter_by(user_id=user_id)
    if unread_only:
        query = query.filter_by(is_read=False)
    return query.order_by(Notification.id.desc()).limit(limit).all()


def mark_read(notification_id: int, user_id: str) -> Notification | None:
    """Mark one of user_id's notifications read; None if it is not theirs."""
    notification = (
        db.session.query(Notification)
        .filter_by(id=notification_id, user_id=user_id)
        .first()
    )
    if notification is None:
        return None
    if not notification.is_read:
        notification.is_read = True
        notification.read_at = utcnow()
        db.session.commit()
    return notification
