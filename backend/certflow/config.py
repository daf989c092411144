# backend/certflow/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: str = "false") -> bool:
    return os.environ.get(name, default).strip().lower() in {"1", "true", "yes"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/certflow.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///certflow.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Aggregations convert every amount into this currency
    BASE_CURRENCY = os.environ.get("BASE_CURRENCY", "NGN")

    # Outbound email; delivery is disabled while SMTP_HOST is empty
    SMTP_HOST = os.environ.get("SMTP_HOST", "")
    SMTP_PORT = int(os.environ.get("SMTP_PORT", "25"))
    SMTP_SENDER = os.environ.get("SMTP_SENDER", "noreply@certflow.local")
    SMTP_USERNAME = os.environ.get("SMTP_USERNAME", "")
    SMTP_PASSWORD = os.environ.get("SMTP_PASSWORD", "")
    SMTP_STARTTLS = _env_bool("SMTP_STARTTLS")

    # Pending requests older than this many days remind the approvers once
    REQUEST_FOLLOWUP_DAYS = int(os.environ.get("REQUEST_FOLLOWUP_DAYS", "3"))

    # Minimum gap between payment reminders for one past-due invoice
    INVOICE_REMINDER_INTERVAL_DAYS = int(os.environ.get("INVOICE_REMINDER_INTERVAL_DAYS", "7"))

    # Outbox events are marked failed after this many delivery attempts
    NOTIFICATION_MAX_ATTEMPTS = int(os.environ.get("NOTIFICATION_MAX_ATTEMPTS", "5"))

    CORS_ALLOWED_ORIGINS = {
        origin.strip()
        for origin in os.environ.get(
            "CORS_ALLOWED_ORIGINS",
            "http://localhost:3000,http://127.0.0.1:3000",
        ).split(",")
        if origin.strip()
    }
