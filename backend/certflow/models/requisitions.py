from __future__ import annotations

from ..extensions import db
from certflow.time_utils import to_utc_z


class Requisition(db.Model):
    """Purchase requisition raised by staff and approved by a manager."""
    ENTITY_KIND = "requisition"

    __tablename__ = "requisitions"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)

    title = db.Column(db.String(255), nullable=False)
    justification = db.Column(db.Text, nullable=True)
    department = db.Column(db.String(128), nullable=True)
    currency = db.Column(db.String(3), nullable=False, default="NGN")

    requester_id = db.Column(db.String(128), db.ForeignKey("users.id"), nullable=False, index=True)
    requester_name = db.Column(db.String(255), nullable=False, default="")

    # Lifecycle status
    status = db.Column(db.String(32), nullable=False, default="draft", index=True)

    # Sum of quantity * estimated_unit_cost_cents over items
    estimated_total_cents = db.Column(db.Integer, nullable=False, default=0)

    rejection_reason = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    items = db.relationship(
        "RequisitionItem",
        backref="requisition",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="RequisitionItem.id",
    )

    @property
    def owner_id(self) -> str:
        return self.requester_id

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "justification": self.justification,
            "department": self.department,
            "currency": self.currency,
            "requester_id": self.requester_id,
            "requester_name": self.requester_name,
            "status": self.status,
            "estimated_total_cents": self.estimated_total_cents,
            "rejection_reason": self.rejection_reason,
            "items": [item.to_dict() for item in self.items],
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }


class RequisitionItem(db.Model):
    """Individual line on a requisition."""
    __tablename__ = "requisition_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    requisition_id = db.Column(db.Integer, db.ForeignKey("requisitions.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    estimated_unit_cost_cents = db.Column(db.Integer, nullable=False, default=0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "requisition_id": self.requisition_id,
            "name": self.name,
            "quantity": self.quantity,
            "estimated_unit_cost_cents": self.estimated_unit_cost_cents,
        }
