from __future__ import annotations

from ..extensions import db
from certflow.time_utils import to_utc_z


class Invoice(db.Model):
    """
    Client invoice.

    Money is stored in integer cents. outstanding_cents is always
    total_cents - paid_cents and is recomputed whenever a payment is recorded.
    """
    ENTITY_KIND = "invoice"

    __tablename__ = "invoices"
    __table_args__ = (
        db.Index("ix_invoices_status_due", "status", "due_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable number (e.g., "INV-2025-001")
    invoice_number = db.Column(db.String(32), nullable=False, unique=True)

    client_name = db.Column(db.String(255), nullable=False)
    client_email = db.Column(db.String(255), nullable=True)
    currency = db.Column(db.String(3), nullable=False, default="NGN")
    notes = db.Column(db.Text, nullable=True)

    created_by_id = db.Column(db.String(128), db.ForeignKey("users.id"), nullable=False, index=True)
    created_by_name = db.Column(db.String(255), nullable=False, default="")

    # Lifecycle status
    status = db.Column(db.String(32), nullable=False, default="draft", index=True)

    issue_date = db.Column(db.DateTime(timezone=True), nullable=True)
    due_date = db.Column(db.DateTime(timezone=True), nullable=True)

    # Totals (all amounts in cents)
    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)
    paid_cents = db.Column(db.Integer, nullable=False, default=0)
    outstanding_cents = db.Column(db.Integer, nullable=False, default=0)

    last_reminder_sent_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    line_items = db.relationship(
        "InvoiceLineItem",
        backref="invoice",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="InvoiceLineItem.id",
    )
    payments = db.relationship(
        "InvoicePayment",
        backref="invoice",
        lazy=True,
        order_by="InvoicePayment.id",
    )

    @property
    def owner_id(self) -> str:
        return self.created_by_id

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "invoice_number": self.invoice_number,
            "client_name": self.client_name,
            "client_email": self.client_email,
            "currency": self.currency,
            "notes": self.notes,
            "created_by_id": self.created_by_id,
            "created_by_name": self.created_by_name,
            "status": self.status,
            "issue_date": to_utc_z(self.issue_date) if self.issue_date else None,
            "due_date": to_utc_z(self.due_date) if self.due_date else None,
            "subtotal_cents": self.subtotal_cents,
            "discount_cents": self.discount_cents,
            "tax_cents": self.tax_cents,
            "total_cents": self.total_cents,
            "paid_cents": self.paid_cents,
            "outstanding_cents": self.outstanding_cents,
            "last_reminder_sent_at": to_utc_z(self.last_reminder_sent_at) if self.last_reminder_sent_at else None,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
        if include_lines:
            data["line_items"] = [line.to_dict() for line in self.line_items]
            data["payments"] = [payment.to_dict() for payment in self.payments]
        return data


class InvoiceLineItem(db.Model):
    """Individual line item on an invoice."""
    __tablename__ = "invoice_line_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=False, index=True)

    description = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    # Basis points: 750 = 7.5%
    tax_rate_bps = db.Column(db.Integer, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_id": self.invoice_id,
            "description": self.description,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "tax_rate_bps": self.tax_rate_bps,
            "discount_cents": self.discount_cents,
        }


class InvoicePayment(db.Model):
    """
    Payment received against an invoice.

    IMMUTABLE: payments are appended, never edited.
    """
    __tablename__ = "invoice_payments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id"), nullable=False, index=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    payment_date = db.Column(db.DateTime(timezone=True), nullable=False)
    reference_number = db.Column(db.String(128), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    recorded_by_id = db.Column(db.String(128), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_id": self.invoice_id,
            "amount_cents": self.amount_cents,
            "payment_date": to_utc_z(self.payment_date),
            "reference_number": self.reference_number,
            "notes": self.notes,
            "recorded_by_id": self.recorded_by_id,
            "created_at": to_utc_z(self.created_at),
        }
