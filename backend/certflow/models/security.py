from __future__ import annotations

from ..extensions import db
from certflow.time_utils import to_utc_z


class AuditEvent(db.Model):
    """
    Audit log of permission decisions.

    Only denials are written by require_permission; grants are not logged.

    IMMUTABLE: Never update or delete. Append-only for audit integrity.
    """
    __tablename__ = "audit_events"
    __table_args__ = (
        db.Index("ix_audit_events_user_type", "user_id", "event_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    user_id = db.Column(db.String(128), nullable=True, index=True)  # Nullable for anonymous

    event_type = db.Column(db.String(64), nullable=False, index=True)  # PERMISSION_DENIED, TRANSITION_DENIED
    resource = db.Column(db.String(128), nullable=True)  # e.g., "/api/requests/4/transition"
    action = db.Column(db.String(64), nullable=True)     # e.g., "requests:approve"

    success = db.Column(db.Boolean, nullable=False, default=False)
    reason = db.Column(db.Text, nullable=True)

    ip_address = db.Column(db.String(45), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "event_type": self.event_type,
            "resource": self.resource,
            "action": self.action,
            "success": self.success,
            "reason": self.reason,
            "ip_address": self.ip_address,
            "occurred_at": to_utc_z(self.occurred_at),
        }
