from __future__ import annotations

from ..extensions import db
from certflow.time_utils import to_utc_z


class Task(db.Model):
    """
    Project task assigned to a team member.

    Completing a task files a certificate request for it in the same
    transaction; certificate_request_id links the two.
    """
    __tablename__ = "tasks"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    doc_url = db.Column(db.String(512), nullable=True)
    associated_team = db.Column(db.String(128), nullable=True)
    associated_project = db.Column(db.String(128), nullable=True)

    status = db.Column(db.String(16), nullable=False, default="to_do", index=True)  # to_do, in_progress, done

    created_by_id = db.Column(db.String(128), nullable=False)
    assignee_id = db.Column(db.String(128), db.ForeignKey("users.id"), nullable=True, index=True)
    assignee_name = db.Column(db.String(255), nullable=True)

    certificate_request_id = db.Column(db.Integer, db.ForeignKey("certificate_requests.id"), nullable=True)

    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    certificate_request = db.relationship("CertificateRequest")

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "doc_url": self.doc_url,
            "associated_team": self.associated_team,
            "associated_project": self.associated_project,
            "status": self.status,
            "created_by_id": self.created_by_id,
            "assignee_id": self.assignee_id,
            "assignee_name": self.assignee_name,
            "certificate_request_id": self.certificate_request_id,
            "completed_at": to_utc_z(self.completed_at),
            "created_at": to_utc_z(self.created_at),
        }


class NotificationEvent(db.Model):
    """
    Outbox row written after a workflow change, comment or reminder commits.

    The delivery worker drains PENDING rows; a row that keeps failing is
    marked FAILED once attempts reaches NOTIFICATION_MAX_ATTEMPTS.
    """
    __tablename__ = "notification_events"
    __table_args__ = (
        db.Index("ix_notification_events_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    event_type = db.Column(db.String(64), nullable=False)  # request-approved, invoice-sent, ...
    entity_kind = db.Column(db.String(16), nullable=False)
    entity_id = db.Column(db.Integer, nullable=False)
    entity_status = db.Column(db.String(32), nullable=False)
    actor_id = db.Column(db.String(128), nullable=True)
    payload = db.Column(db.JSON, nullable=False, default=dict)

    status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)  # PENDING, DELIVERED, FAILED
    attempts = db.Column(db.Integer, nullable=False, default=0)
    last_error = db.Column(db.Text, nullable=True)

    # Progress kept across retries so nothing is delivered twice
    inbox_written_at = db.Column(db.DateTime(timezone=True), nullable=True)
    emailed_to = db.Column(db.JSON, nullable=False, default=list)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    delivered_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self):
        return {
            "id": self.id,
            "event_type": self.event_type,
            "entity_kind": self.entity_kind,
            "entity_id": self.entity_id,
            "entity_status": self.entity_status,
            "actor_id": self.actor_id,
            "payload": self.payload or {},
            "status": self.status,
            "attempts": self.attempts,
            "last_error": self.last_error,
            "emailed_to": list(self.emailed_to or []),
            "created_at": to_utc_z(self.created_at),
            "delivered_at": to_utc_z(self.delivered_at),
        }


class Notification(db.Model):
    """In-app inbox entry for one recipient."""
    __tablename__ = "notifications"
    __table_args__ = (
        db.Index("ix_notifications_user_read", "user_id", "is_read"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    event_id = db.Column(db.Integer, db.ForeignKey("notification_events.id"), nullable=True, index=True)
    user_id = db.Column(db.String(128), db.ForeignKey("users.id"), nullable=False)

    title = db.Column(db.String(255), nullable=False)
    body = db.Column(db.Text, nullable=False)
    link = db.Column(db.String(255), nullable=True)

    is_read = db.Column(db.Boolean, nullable=False, default=False)
    read_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self):
        return {
            "id": self.id,
            "event_id": self.event_id,
            "user_id": self.user_id,
            "title": self.title,
            "body": self.body,
            "link": self.link,
            "is_read": self.is_read,
            "read_at": to_utc_z(self.read_at),
            "created_at": to_utc_z(self.created_at),
        }
