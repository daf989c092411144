from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, Integer, String, Text
from sqlalchemy.orm import DeclarativeMeta

from certflow.time_utils import parse_iso_datetime


# 9,999,999.99 in any currency
MAX_AMOUNT_CENTS = 999_999_999


class ValidationError(ValueError):
    """400-level input problem."""


class ConflictError(ValueError):
    """409-level conflict with the current state (e.g. task already done)."""


class NotFoundError(LookupError):
    """404-level: referenced entity does not exist."""


class PersistenceError(RuntimeError):
    """500-level: the store rejected a write; the session was rolled back."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Which columns a client may set on a model, and which a create must carry.
    """
    writable_fields: set[str]
    required_on_create: set[str] = field(default_factory=set)


def _parse_int(key: str, value: Any) -> int:
    if isinstance(value, bool) or isinstance(value, float):
        raise ValidationError(f"{key} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    raise ValidationError(f"{key} must be an integer")


def _parse_datetime(key: str, value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            parsed = parse_iso_datetime(value)
        except ValueError:
            parsed = None
        if parsed is not None:
            return parsed
    raise ValidationError(f"{key} must be an ISO-8601 date or datetime")


def _coerce(col, value: Any):
    """Bring a JSON value into the column's Python type."""
    if isinstance(col.type, Integer):
        return _parse_int(col.key, value)
    if isinstance(col.type, DateTime):
        return _parse_datetime(col.key, value)
    if isinstance(col.type, (String, Text)):
        if isinstance(value, (dict, list)):
            raise ValidationError(f"{col.key} must be a string")
        return str(value).strip()
    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool = False,
) -> dict:
    """
    Clean a JSON body against the model's columns and the policy.

    Unknown or non-writable keys are rejected, values are coerced to the
    column type, NOT NULL columns refuse null and blank strings, and
    String(n) lengths are enforced. partial=False also requires every
    field in required_on_create. Returns the cleaned patch.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    if not partial:
        missing = sorted(f for f in policy.required_on_create if f not in payload)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    columns = {c.key: c for c in model.__mapper__.columns}
    patch: dict = {}

    for key, raw in payload.items():
        if key not in policy.writable_fields or key not in columns:
            raise ValidationError(f"Field not allowed: {key}")
        col = columns[key]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{key} cannot be null")
            patch[key] = None
            continue

        value = _coerce(col, raw)

        if isinstance(value, str):
            if value == "" and not col.nullable:
                raise ValidationError(f"{key} cannot be blank")
            length = getattr(col.type, "length", None)
            if length and len(value) > length:
                raise ValidationError(f"{key} exceeds max length {length}")

        patch[key] = value

    return patch


def enforce_amount_cents(name: str, value: Any, *, allow_zero: bool = False) -> int:
    """Range check shared by every money field."""
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValidationError(f"{name} must be an integer")
    if value < 0 or (value == 0 and not allow_zero):
        raise ValidationError(f"{name} must be {'>= 0' if allow_zero else '> 0'}")
    if value > MAX_AMOUNT_CENTS:
        raise ValidationError(f"{name} cannot exceed {MAX_AMOUNT_CENTS}")
    return value


def enforce_positive_quantity(name: str, value: Any) -> int:
    if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
        raise ValidationError(f"{name} must be a positive integer")
    return value
