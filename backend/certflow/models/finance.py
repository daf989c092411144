from __future__ import annotations

from ..extensions import db
from certflow.time_utils import to_utc_z


class FinanceTransaction(db.Model):
    """Income or expense entry feeding the balance dashboard."""
    __tablename__ = "finance_transactions"
    __table_args__ = (
        db.Index("ix_finance_transactions_type_occurred", "type", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    type = db.Column(db.String(16), nullable=False)  # income, expense
    amount_cents = db.Column(db.Integer, nullable=False)
    currency = db.Column(db.String(3), nullable=False, default="NGN")

    category = db.Column(db.String(64), nullable=True)
    description = db.Column(db.Text, nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=True, index=True)

    created_by_id = db.Column(db.String(128), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "amount_cents": self.amount_cents,
            "currency": self.currency,
            "category": self.category,
            "description": self.description,
            "occurred_at": to_utc_z(self.occurred_at) if self.occurred_at else None,
            "created_by_id": self.created_by_id,
            "created_at": to_utc_z(self.created_at),
        }
