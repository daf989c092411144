from __future__ import annotations

from ..extensions import db
from certflow.time_utils import to_utc_z


class StatusHistory(db.Model):
    """
    Append-only status trail shared by requests, requisitions and invoices.

    One row per accepted transition, keyed by (entity_kind, entity_id).
    Rows are never edited or removed; ordering is by id (insertion order).
    """
    __tablename__ = "status_history"
    __table_args__ = (
        db.Index("ix_status_history_entity", "entity_kind", "entity_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    entity_kind = db.Column(db.String(16), nullable=False)  # request, requisition, invoice
    entity_id = db.Column(db.Integer, nullable=False)

    status = db.Column(db.String(32), nullable=False)
    previous_status = db.Column(db.String(32), nullable=True)
    reason = db.Column(db.Text, nullable=True)

    changed_by_id = db.Column(db.String(128), nullable=False)
    changed_by_name = db.Column(db.String(255), nullable=False, default="")
    changed_at = db.Column(db.DateTime(timezone=True), nullable=False)

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "previous_status": self.previous_status,
            "reason": self.reason,
            "changed_by_id": self.changed_by_id,
            "changed_by_name": self.changed_by_name,
            "changed_at": to_utc_z(self.changed_at),
        }
