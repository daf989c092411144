# Overview: Recording income and expense transactions for the balance dashboard.

from __future__ import annotations

from ..extensions import db
from ..models import FinanceTransaction
from ..validation import ModelValidationPolicy, ValidationError, enforce_amount_cents, validate_payload
from .concurrency import commit_or_raise
from .reporting_service import DEFAULT_RATES, TRANSACTION_TYPES


TRANSACTION_POLICY = ModelValidationPolicy(
    writable_fields={"type", "amount_cents", "currency", "category", "description", "occurred_at"},
    required_on_create={"type", "amount_cents"},
)


def record_transaction(payload: dict, *, created_by_id: str) -> FinanceTransaction:
    patch = validate_payload(model=FinanceTransaction, payload=payload, policy=TRANSACTION_POLICY)

    if patch["type"] not in TRANSACTION_TYPES:
        raise ValidationError("type must be income or expense")
    enforce_amount_cents("amount_cents", patch["amount_cents"])

    currency = (patch.get("currency") or "NGN").upper()
    if currency not in DEFAULT_RATES:
        raise ValidationError(f"Unsupported currency: {currency}")
    patch["currency"] = currency

    tx = FinanceTransaction(created_by_id=created_by_id, **patch)
    db.session.add(tx)
    commit_or_raise()
    return tx
