from flask import Blueprint, jsonify, request, g, current_app

from certflow.decorators import require_auth, require_permission
from certflow.services import finance_service, reporting_service
from certflow.time_utils import parse_iso_datetime, parse_month
from certflow.validation import ValidationError, PersistenceError


reports_bp = Blueprint("reports", __name__, url_prefix="/api")


@reports_bp.post("/transactions")
@require_auth
@require_permission("expenses:create")
def create_transaction_route():
    try:
        tx = finance_service.record_transaction(request.get_json(silent=True) or {}, created_by_id=g.caller.id)
        return jsonify({"transaction": tx.to_dict()}), 201
    except ValidationError as exc:
        return jsonify({"error": str(exc)}), 400
    except PersistenceError as exc:
        return jsonify({"error": str(exc)}), 500
    except Exception:
        current_app.logger.exception("Failed to record transaction")
        return jsonify({"error": "Internal server error"}), 500


@reports_bp.get("/reports/balance")
@require_auth
@require_permission("expenses:read")
def balance_report():
    """?date=YYYY-MM-DD selects the month for the monthly figures."""
    try:
        selected = parse_iso_datetime(request.args.get("date"))
    except ValueError:
        return jsonify({"error": "date must be an ISO-8601 date"}), 400

    try:
        report = reporting_service.balance_report(selected_date=selected.date() if selected else None)
        return jsonify(report), 200
    except reporting_service.ReportError as exc:
        return jsonify({"error": str(exc)}), 400


@reports_bp.get("/reports/leaderboard")
@require_auth
@require_permission("leaderboards:read")
def leaderboard_report():
    """?month=YYYY-MM (default: current month), ?limit=10"""
    try:
        month = parse_month(request.args.get("month"))
    except ValueError:
        return jsonify({"error": "month must be YYYY-MM"}), 400

    limit = request.args.get("limit", 10, type=int)

    try:
        report = reporting_service.leaderboard_report(month=month, limit=limit)
        return jsonify(report), 200
    except reporting_service.ReportError as exc:
        return jsonify({"error": str(exc)}), 400
