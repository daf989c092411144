# Overview: Money aggregation helpers and the balance / leaderboard reports built on them.

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Iterable, Mapping

from flask import current_app

from ..extensions import db
from ..models import CertificateRequest, FinanceTransaction
from ..validation import ValidationError
from certflow import time_utils
from certflow.time_utils import parse_iso_datetime, utcnow, to_utc_z


# Illustrative fixed rates into the base currency (NGN). Callers may pass
# their own table.
DEFAULT_RATES: dict[str, int] = {
    "NGN": 1,
    "USD": 1500,
    "EUR": 1600,
}

TRANSACTION_TYPES = ("income", "expense")


class ReportError(Exception):
    """Raised when report generation fails."""
    pass


def _get(item: Any, name: str):
    if isinstance(item, Mapping):
        return item.get(name)
    return getattr(item, name, None)


def _as_datetime(value) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.replace(tzinfo=None) if value.tzinfo else value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    return parse_iso_datetime(str(value))


def _round_cents(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


# =============================================================================
# Pure helpers
# =============================================================================

def convert_amount(amount_cents: int, currency: str | None, rates: Mapping[str, int] | None = None) -> int:
    """Convert amount_cents in currency to base-currency cents."""
    table = rates if rates is not None else DEFAULT_RATES
    code = (currency or "NGN").upper()
    if code not in table:
        raise ReportError(f"No conversion rate for currency {code}")
    return int(amount_cents or 0) * table[code]


def sum_by_type(
    transactions: Iterable[Any],
    type: str,
    rates: Mapping[str, int] | None = None,
) -> int:
    """Sum of converted amounts over transactions whose type matches."""
    total = 0
    for tx in transactions:
        if _get(tx, "type") != type:
            continue
        total += convert_amount(_get(tx, "amount_cents"), _get(tx, "currency"), rates)
    return total


def bucket_by_month(
    items: Iterable[Any],
    date_field: str,
    month_start: datetime,
    month_end: datetime,
) -> list:
    """
    Items whose date_field falls within [month_start, month_end].

    Both bounds are inclusive. Items without a value for date_field are
    skipped, never counted.
    """
    selected = []
    for item in items:
        when = _as_datetime(_get(item, date_field))
        if when is None:
            continue
        if month_start <= when <= month_end:
            selected.append(item)
    return selected


def month_bounds(day: date) -> tuple[datetime, datetime]:
    return time_utils.month_start(day), time_utils.month_end(day)


def balance_summary(
    transactions: Iterable[Any],
    selected_date: date,
    rates: Mapping[str, int] | None = None,
    date_field: str = "occurred_at",
) -> dict:
    transactions = list(transactions)
    start, end = month_bounds(selected_date)
    monthly = bucket_by_month(transactions, date_field, start, end)

    total_income = sum_by_type(transactions, "income", rates)
    total_expenses = sum_by_type(transactions, "expense", rates)

    return {
        "total_income": total_income,
        "total_expenses": total_expenses,
        "total_balance": total_income - total_expenses,
        "monthly_income": sum_by_type(monthly, "income", rates),
        "monthly_expenses": sum_by_type(monthly, "expense", rates),
    }


def calculate_invoice_totals(line_items: Iterable[Any]) -> dict:
    """
    Invoice totals in cents.

    Per line: subtotal = quantity * unit_price_cents, discount is taken off
    that subtotal, tax = discounted subtotal * tax_rate_bps / 10000 rounded
    half-up to a whole cent. total = subtotal - discount + tax.
    """
    subtotal = 0
    discount = 0
    tax = 0

    for item in line_items:
        quantity = int(_get(item, "quantity") or 0)
        unit_price = int(_get(item, "unit_price_cents") or 0)
        line_discount = int(_get(item, "discount_cents") or 0)
        tax_rate_bps = int(_get(item, "tax_rate_bps") or 0)

        line_subtotal = quantity * unit_price
        if line_discount < 0 or line_discount > line_subtotal:
            raise ValidationError("discount_cents must be between 0 and the line subtotal")
        if tax_rate_bps < 0:
            raise ValidationError("tax_rate_bps must be >= 0")

        after_discount = line_subtotal - line_discount
        line_tax = _round_cents(Decimal(after_discount) * Decimal(tax_rate_bps) / Decimal(10000))

        subtotal += line_subtotal
        discount += line_discount
        tax += line_tax

    return {
        "subtotal_cents": subtotal,
        "discount_cents": discount,
        "tax_cents": tax,
        "total_cents": subtotal - discount + tax,
    }


def calculate_payment_totals(payments: Iterable[Any]) -> dict:
    return {"paid_cents": sum(int(_get(p, "amount_cents") or 0) for p in payments)}


def determine_invoice_status(
    current_status: str,
    total_cents: int,
    paid_cents: int,
    due_date: datetime | None,
    now: datetime | None = None,
) -> str:
    """
    Status an invoice should hold given its payments and due date.

    draft and cancelled are never changed here; those moves are explicit.
    """
    if current_status in ("draft", "cancelled"):
        return current_status

    now = now or utcnow()

    if paid_cents >= total_cents:
        return "paid"
    if paid_cents > 0:
        return "partially_paid"
    if due_date is not None and now > _as_datetime(due_date):
        return "overdue"
    if current_status in ("sent", "overdue"):
        return current_status
    return "sent"


def qa_leaderboard(
    requests: Iterable[Any],
    month_start: datetime,
    month_end: datetime,
    limit: int = 10,
) -> list[dict]:
    """
    Approved-request counts per QA tester within the month, best first.

    Requests approved outside the month, or without a QA tester, are ignored.
    Ties are broken by tester name.
    """
    approved = [r for r in requests if _get(r, "status") == "approved" and _get(r, "qa_tester_id")]
    in_month = bucket_by_month(approved, "approved_at", month_start, month_end)

    counts: dict[str, dict] = {}
    for req in in_month:
        tester_id = _get(req, "qa_tester_id")
        row = counts.setdefault(tester_id, {
            "qa_tester_id": tester_id,
            "qa_tester_name": _get(req, "qa_tester_name") or tester_id,
            "approved_count": 0,
        })
        row["approved_count"] += 1

    ranked = sorted(counts.values(), key=lambda r: (-r["approved_count"], r["qa_tester_name"]))
    for position, row in enumerate(ranked[:limit], start=1):
        row["rank"] = position
    return ranked[:limit]


# =============================================================================
# Reports
# =============================================================================

def balance_report(*, selected_date: date | None = None, rates: Mapping[str, int] | None = None) -> dict:
    selected_date = selected_date or utcnow().date()
    transactions = db.session.query(FinanceTransaction).all()
    start, end = month_bounds(selected_date)

    summary = balance_summary(transactions, selected_date, rates)
    summary.update({
        "month_start": to_utc_z(start),
        "month_end": to_utc_z(end),
        "transaction_count": len(transactions),
        "currency": current_app.config.get("BASE_CURRENCY", "NGN"),
    })
    return summary


def leaderboard_report(*, month: date | None = None, limit: int = 10) -> dict:
    if limit < 1 or limit > 100:
        raise ReportError("limit must be between 1 and 100")

    month = month or utcnow().date()
    start, end = month_bounds(month)

    approved = (
        db.session.query(CertificateRequest)
        .filter(
            CertificateRequest.status == "approved",
            CertificateRequest.approved_at >= start,
            CertificateRequest.approved_at <= end,
        )
        .all()
    )

    return {
        "month_start": to_utc_z(start),
        "month_end": to_utc_z(end),
        "leaders": qa_leaderboard(approved, start, end, limit),
    }
