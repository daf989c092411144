from __future__ import annotations

from ..extensions import db
from certflow.time_utils import to_utc_z


class CertificateRequest(db.Model):
    """
    QA certificate request.

    A requester asks a QA tester to review a finished task; approval issues a
    certificate id. Status only changes through the workflow engine, every
    accepted change appends a StatusHistory row.
    """
    ENTITY_KIND = "request"

    __tablename__ = "certificate_requests"
    __table_args__ = (
        db.Index("ix_certificate_requests_status_updated", "status", "updated_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    task_title = db.Column(db.String(255), nullable=False)
    associated_team = db.Column(db.String(128), nullable=False)
    associated_project = db.Column(db.String(128), nullable=False)
    description = db.Column(db.Text, nullable=False)
    task_link = db.Column(db.String(512), nullable=True)

    # Requester (the only caller allowed to resubmit)
    requester_id = db.Column(db.String(128), db.ForeignKey("users.id"), nullable=False, index=True)
    requester_name = db.Column(db.String(255), nullable=False, default="")
    requester_email = db.Column(db.String(255), nullable=True)

    # Lifecycle status
    status = db.Column(db.String(32), nullable=False, default="pending", index=True)

    qa_tester_id = db.Column(db.String(128), db.ForeignKey("users.id"), nullable=True, index=True)
    qa_tester_name = db.Column(db.String(255), nullable=True)

    rejection_reason = db.Column(db.Text, nullable=True)
    certificate_id = db.Column(db.String(64), nullable=True, unique=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Pending-request follow-up reminders
    first_reminder_sent_at = db.Column(db.DateTime(timezone=True), nullable=True)
    reminder_count = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def owner_id(self) -> str:
        return self.requester_id

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "task_title": self.task_title,
            "associated_team": self.associated_team,
            "associated_project": self.associated_project,
            "description": self.description,
            "task_link": self.task_link,
            "requester_id": self.requester_id,
            "requester_name": self.requester_name,
            "requester_email": self.requester_email,
            "status": self.status,
            "qa_tester_id": self.qa_tester_id,
            "qa_tester_name": self.qa_tester_name,
            "rejection_reason": self.rejection_reason,
            "certificate_id": self.certificate_id,
            "approved_at": to_utc_z(self.approved_at) if self.approved_at else None,
            "reminder_count": self.reminder_count or 0,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }


class RequestComment(db.Model):
    """Discussion entry on a certificate request. Append-only."""
    __tablename__ = "request_comments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    request_id = db.Column(db.Integer, db.ForeignKey("certificate_requests.id"), nullable=False, index=True)

    author_id = db.Column(db.String(128), db.ForeignKey("users.id"), nullable=False)
    author_name = db.Column(db.String(255), nullable=False, default="")
    text = db.Column(db.Text, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "request_id": self.request_id,
            "author_id": self.author_id,
            "author_name": self.author_name,
            "text": self.text,
            "created_at": to_utc_z(self.created_at),
        }
