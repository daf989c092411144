# Overview: Invoice creation, numbering, status changes, reminders and payment recording.

"""
Invoice Service

WHY: Invoices bill clients for delivered work. Totals are derived from line
items (never typed in), payments are append-only, and status follows money:
recording a payment moves the invoice to partially_paid or paid through the
same workflow engine every other status change uses.

DESIGN PRINCIPLES:
- All amounts in integer cents
- outstanding_cents == total_cents - paid_cents after every payment
- Over-payment is rejected; the outstanding balance never goes negative
- Payments only against sent, overdue or partially paid invoices
"""

from __future__ import annotations

from datetime import datetime, timedelta

from sqlalchemy import or_

from ..extensions import db
from ..models import Invoice, InvoiceLineItem, InvoicePayment
from ..validation import (
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    enforce_amount_cents,
    enforce_positive_quantity,
    validate_payload,
)
from .concurrency import commit_or_raise, lock_for_update, run_unit_of_work
from .document_service import next_document_number
from .lifecycle_service import INITIAL_STATUS
from .notification_service import EVENT_INVOICE_REMINDER, emit_event
from .permission_service import RoleTable, default_role_table, load_role_table, resolve_permissions
from .reporting_service import (
    DEFAULT_RATES,
    calculate_invoice_totals,
    calculate_payment_totals,
    determine_invoice_status,
)
from .transition_service import append_history, apply_transition, history_for, notify_status, snapshot
from .workflow_service import StatusHistoryEntry, attempt_transition
from .identity_service import Caller
from certflow.time_utils import parse_iso_datetime, utcnow


class PaymentError(Exception):
    """Raised for payment operation errors."""
    pass


PAYABLE_STATUSES = ("sent", "overdue", "partially_paid")

INVOICE_POLICY = ModelValidationPolicy(
    writable_fields={"client_name", "client_email", "currency", "notes", "issue_date", "due_date"},
    required_on_create={"client_name"},
)

# Actor used by scheduled jobs (flask invoices mark-overdue)
SYSTEM_CALLER = Caller(id="system", name="System", roles=("admin",))


# =============================================================================
# CREATION
# =============================================================================

def _build_line_items(raw_items) -> list[InvoiceLineItem]:
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("line_items must be a non-empty list")

    lines = []
    for index, raw in enumerate(raw_items):
        if not isinstance(raw, dict):
            raise ValidationError(f"line_items[{index}] must be an object")
        description = str(raw.get("description") or "").strip()
        if not description:
            raise ValidationError(f"line_items[{index}].description is required")
        lines.append(InvoiceLineItem(
            description=description[:255],
            quantity=enforce_positive_quantity(f"line_items[{index}].quantity", raw.get("quantity")),
            unit_price_cents=enforce_amount_cents(
                f"line_items[{index}].unit_price_cents", raw.get("unit_price_cents"), allow_zero=True,
            ),
            tax_rate_bps=enforce_amount_cents(
                f"line_items[{index}].tax_rate_bps", raw.get("tax_rate_bps", 0), allow_zero=True,
            ),
            discount_cents=enforce_amount_cents(
                f"line_items[{index}].discount_cents", raw.get("discount_cents", 0), allow_zero=True,
            ),
        ))
    return lines


def create_invoice(payload: dict, caller) -> Invoice:
    """
    Create a draft invoice with an INV-YYYY-### number.

    Totals are computed from line_items; number allocation and the insert
    share one transaction so a failed insert does not burn a number.
    """
    payload = dict(payload or {})
    raw_lines = payload.pop("line_items", None)
    patch = validate_payload(model=Invoice, payload=payload, policy=INVOICE_POLICY)
    lines = _build_line_items(raw_lines)
    totals = calculate_invoice_totals(lines)

    currency = (patch.get("currency") or "NGN").upper()
    if currency not in DEFAULT_RATES:
        raise ValidationError(f"Unsupported currency: {currency}")
    patch["currency"] = currency

    if patch.get("issue_date") and patch.get("due_date") and patch["due_date"] < patch["issue_date"]:
        raise ValidationError("due_date cannot be before issue_date")

    now = utcnow()
    invoice = Invoice(
        invoice_number=next_document_number(document_type="INVOICE", prefix="INV", year=now.year),
        created_by_id=caller.id,
        created_by_name=caller.name or caller.id,
        status=INITIAL_STATUS["invoice"],
        subtotal_cents=totals["subtotal_cents"],
        discount_cents=totals["discount_cents"],
        tax_cents=totals["tax_cents"],
        total_cents=totals["total_cents"],
        paid_cents=0,
        outstanding_cents=totals["total_cents"],
        created_at=now,
        updated_at=now,
        **patch,
    )
    invoice.line_items.extend(lines)
    db.session.add(invoice)
    db.session.flush()

    append_history("invoice", invoice.id, StatusHistoryEntry(
        status=invoice.status,
        changed_at=now,
        changed_by_id=caller.id,
        changed_by_name=caller.name or caller.id,
    ))
    commit_or_raise()
    return invoice


def get_invoice(invoice_id: int) -> Invoice:
    invoice = db.session.get(Invoice, invoice_id)
    if invoice is None:
        raise NotFoundError("Invoice not found")
    return invoice


def list_invoices(*, status: str | None = None) -> list[Invoice]:
    query = db.session.query(Invoice)
    if status:
        query = query.filter(Invoice.status == status)
    return query.order_by(Invoice.id.desc()).all()


def invoice_history(invoice_id: int) -> list[dict]:
    get_invoice(invoice_id)
    return [row.to_dict() for row in history_for("invoice", invoice_id)]


# =============================================================================
# STATUS CHANGES
# =============================================================================

def transition_invoice(
    invoice_id: int,
    new_status: str,
    caller,
    *,
    reason: str | None = None,
    resource: str | None = None,
    role_table: RoleTable | None = None,
):
    """
    Explicit status change (send, cancel, mark overdue).

    partially_paid and paid are normally reached by record_payment(); an
    explicit move to paid is refused while money is still outstanding.
    """
    def _validate(invoice: Invoice, result):
        if new_status in ("partially_paid", "paid"):
            expected = determine_invoice_status(
                invoice.status, invoice.total_cents, invoice.paid_cents, invoice.due_date,
            )
            if expected != new_status:
                raise PaymentError(f"Invoice payments do not support status {new_status}")

    def _before_commit(invoice: Invoice, result):
        invoice.updated_at = result.entry.changed_at
        if new_status == "sent" and invoice.issue_date is None:
            invoice.issue_date = result.entry.changed_at

    return apply_transition(
        Invoice,
        invoice_id,
        new_status,
        caller,
        reason=reason,
        role_table=role_table,
        validate=_validate,
        before_commit=_before_commit,
        resource=resource,
    )


def mark_overdue_invoices(*, now: datetime | None = None, caller=None) -> list[Invoice]:
    """
    Move every sent invoice whose due date has passed to overdue.

    Returns the invoices that changed.
    """
    now = now or utcnow()
    caller = caller or SYSTEM_CALLER
    table = default_role_table() if caller is SYSTEM_CALLER else None

    candidates = (
        db.session.query(Invoice.id)
        .filter(Invoice.status == "sent", Invoice.due_date.isnot(None), Invoice.due_date < now)
        .order_by(Invoice.id.asc())
        .all()
    )

    changed = []
    for row in candidates:
        invoice, result = transition_invoice(
            row.id, "overdue", caller, reason="Past due date", role_table=table,
        )
        if result.allowed:
            changed.append(invoice)
    return changed


REMINDABLE_STATUSES = ("sent", "overdue", "partially_paid")


def send_invoice_reminders(*, now: datetime | None = None, interval_days: int = 7) -> list[Invoice]:
    """
    Queue a payment reminder for every past-due invoice with money outstanding.

    An invoice is reminded again only after interval_days have passed since
    its previous reminder. Returns the invoices reminded in this run.
    """
    now = now or utcnow()
    cutoff = now - timedelta(days=interval_days)

    due = (
        db.session.query(Invoice)
        .filter(
            Invoice.status.in_(REMINDABLE_STATUSES),
            Invoice.outstanding_cents > 0,
            Invoice.due_date.isnot(None),
            Invoice.due_date < now,
            or_(Invoice.last_reminder_sent_at.is_(None), Invoice.last_reminder_sent_at <= cutoff),
        )
        .order_by(Invoice.id.asc())
        .all()
    )
    if not due:
        return []

    for invoice in due:
        invoice.last_reminder_sent_at = now
    commit_or_raise()

    for invoice in due:
        emit_event(
            entity_kind="invoice",
            entity_id=invoice.id,
            entity_status=invoice.status,
            actor_id=SYSTEM_CALLER.id,
            event_type=EVENT_INVOICE_REMINDER,
        )
    return due

# =============================================================================
# PAYMENTS
# =============================================================================

def record_payment(
    invoice_id: int,
    caller,
    *,
    amount_cents: int,
    payment_date: str | datetime | None = None,
    reference_number: str | None = None,
    notes: str | None = None,
    role_table: RoleTable | None = None,
) -> tuple[Invoice, InvoicePayment]:
    """
    Append a payment and recompute paid/outstanding/status.

    Raises:
        PaymentError: invoice not payable, amount exceeds outstanding,
            or the caller may not record payments
    """
    try:
        amount_cents = enforce_amount_cents("amount_cents", amount_cents)
    except ValidationError as exc:
        raise PaymentError(str(exc))

    if isinstance(payment_date, str):
        try:
            payment_date = parse_iso_datetime(payment_date)
        except ValueError:
            raise PaymentError("payment_date must be an ISO-8601 datetime")

    table = role_table if role_table is not None else load_role_table()
    permissions = resolve_permissions(caller.roles, table)
    if "invoices:record_payment" not in permissions:
        raise PaymentError("You do not have permission to record payments")

    def _op():
        invoice = lock_for_update(db.session.query(Invoice).filter_by(id=invoice_id)).first()
        if invoice is None:
            raise NotFoundError("Invoice not found")

        if invoice.status not in PAYABLE_STATUSES:
            raise PaymentError(f"Cannot record payment on a {invoice.status} invoice")
        if amount_cents > invoice.outstanding_cents:
            raise PaymentError(
                f"Payment of {amount_cents} exceeds outstanding balance of {invoice.outstanding_cents}"
            )

        now = utcnow()
        payment = InvoicePayment(
            amount_cents=amount_cents,
            payment_date=payment_date or now,
            reference_number=(reference_number or "").strip() or None,
            notes=notes,
            recorded_by_id=caller.id,
            created_at=now,
        )
        invoice.payments.append(payment)
        db.session.flush()

        recorded = db.session.query(InvoicePayment).filter_by(invoice_id=invoice.id).all()
        paid = calculate_payment_totals(recorded)["paid_cents"]
        invoice.paid_cents = paid
        invoice.outstanding_cents = invoice.total_cents - paid
        invoice.updated_at = now

        new_status = determine_invoice_status(
            invoice.status, invoice.total_cents, paid, invoice.due_date, now,
        )
        status_changed = False
        if new_status != invoice.status:
            result = attempt_transition(
                snapshot(invoice), new_status, caller, permissions,
                reason=f"Payment {payment.reference_number or payment.id}", now=now,
            )
            if not result.allowed:
                raise PaymentError(result.message)
            invoice.status = new_status
            append_history("invoice", invoice.id, result.entry)
            status_changed = True

        commit_or_raise()
        return invoice, payment, status_changed

    try:
        invoice, payment, status_changed = run_unit_of_work(_op)
    except PaymentError:
        db.session.rollback()
        raise

    if status_changed:
        notify_status(invoice, caller.id)
    return invoice, payment
