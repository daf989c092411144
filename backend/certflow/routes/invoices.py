# Overview: Flask API routes for invoices and invoice payments.

# backend/certflow/routes/invoices.py
"""
Invoice API Routes

- POST /api/invoices                   - Create a draft invoice (INV-YYYY-###)
- GET  /api/invoices                   - List invoices
- GET  /api/invoices/:id               - Detail with line items, payments, history
- POST /api/invoices/:id/transition    - Send / cancel / mark overdue
- POST /api/invoices/:id/payments      - Record a payment

DESIGN:
- Totals are computed server-side from line items
- Payments recompute paid/outstanding and move status to partially_paid/paid
- Over-payment is rejected with 400
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import invoice_service
from ..services.invoice_service import PaymentError
from ..validation import ValidationError, NotFoundError, PersistenceError
from ..decorators import require_auth, require_permission
from ..responses import transition_response


invoices_bp = Blueprint("invoices", __name__, url_prefix="/api/invoices")


@invoices_bp.post("")
@require_auth
@require_permission("invoices:create")
def create_invoice_route():
    """
    Request body:
    {
        "client_name": "Acme Ltd",
        "client_email": "billing@acme.test",
        "currency": "NGN",
        "due_date": "2025-07-31",
        "line_items": [
            {"description": "QA audit", "quantity": 1, "unit_price_cents": 100000,
             "tax_rate_bps": 750, "discount_cents": 0}
        ]
    }
    """
    try:
        invoice = invoice_service.create_invoice(request.get_json(silent=True) or {}, g.caller)
        return jsonify({"invoice": invoice.to_dict()}), 201
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except PersistenceError as e:
        return jsonify({"error": str(e)}), 500
    except Exception:
        current_app.logger.exception("Failed to create invoice")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.get("")
@require_auth
@require_permission("invoices:read")
def list_invoices_route():
    invoices = invoice_service.list_invoices(status=request.args.get("status"))
    return jsonify({"invoices": [i.to_dict(include_lines=False) for i in invoices]}), 200


@invoices_bp.get("/<int:invoice_id>")
@require_auth
@require_permission("invoices:read")
def get_invoice_route(invoice_id: int):
    try:
        invoice = invoice_service.get_invoice(invoice_id)
        return jsonify({
            "invoice": invoice.to_dict(),
            "history": invoice_service.invoice_history(invoice_id),
        }), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404


@invoices_bp.post("/<int:invoice_id>/transition")
@require_auth
def transition_invoice_route(invoice_id: int):
    data = request.get_json(silent=True) or {}
    new_status = (data.get("status") or "").strip()
    if not new_status:
        return jsonify({"error": "status is required"}), 400

    try:
        invoice, result = invoice_service.transition_invoice(
            invoice_id,
            new_status,
            g.caller,
            reason=data.get("reason"),
            resource=request.path,
            role_table=g.role_table,
        )
        return transition_response("invoice", invoice, result)
    except (ValidationError, PaymentError) as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except PersistenceError as e:
        return jsonify({"error": str(e)}), 500
    except Exception:
        current_app.logger.exception("Failed to transition invoice")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.post("/<int:invoice_id>/payments")
@require_auth
@require_permission("invoices:record_payment")
def record_payment_route(invoice_id: int):
    """
    Request body:
    {
        "amount_cents": 40000,
        "payment_date": "2025-06-02",   (optional, defaults to now)
        "reference_number": "TRX-123",  (optional)
        "notes": "..."                  (optional)
    }

    Returns:
        201: Payment recorded, invoice totals/status updated
        400: Invalid amount, over-payment, or invoice not payable
        404: Invoice not found
    """
    data = request.get_json(silent=True) or {}
    try:
        invoice, payment = invoice_service.record_payment(
            invoice_id,
            g.caller,
            amount_cents=data.get("amount_cents"),
            payment_date=data.get("payment_date"),
            reference_number=data.get("reference_number"),
            notes=data.get("notes"),
            role_table=g.role_table,
        )
        return jsonify({"invoice": invoice.to_dict(), "payment": payment.to_dict()}), 201
    except PaymentError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except PersistenceError as e:
        return jsonify({"error": str(e)}), 500
    except Exception:
        current_app.logger.exception("Failed to record invoice payment")
        return jsonify({"error": "Internal server error"}), 500
