# backend/certflow/routes/requisitions.py
"""
Requisition API Routes

- POST /api/requisitions                  - Draft a requisition with items
- GET  /api/requisitions                  - List visible requisitions
- GET  /api/requisitions/:id              - Detail with status history
- POST /api/requisitions/:id/transition   - Submit / approve / reject / fulfill / cancel

SECURITY:
- Submitting, resubmitting and cancelling are reserved for the requester
- Approve/reject/fulfill need requisitions:approve|reject|fulfill
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import requisition_service
from ..validation import ValidationError, NotFoundError, PersistenceError
from ..decorators import require_auth, require_permission, require_any_permission
from ..responses import transition_response


requisitions_bp = Blueprint("requisitions", __name__, url_prefix="/api/requisitions")


@requisitions_bp.post("")
@require_auth
@require_permission("requisitions:create")
def create_requisition_route():
    """
    Request body:
    {
        "title": "Laptops for QA",
        "justification": "...",
        "currency": "NGN",
        "items": [{"name": "Laptop", "quantity": 2, "estimated_unit_cost_cents": 45000000}]
    }
    """
    try:
        requisition = requisition_service.create_requisition(request.get_json(silent=True) or {}, g.caller)
        return jsonify({"requisition": requisition.to_dict()}), 201
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except PersistenceError as e:
        return jsonify({"error": str(e)}), 500
    except Exception:
        current_app.logger.exception("Failed to create requisition")
        return jsonify({"error": "Internal server error"}), 500


@requisitions_bp.get("")
@require_auth
@require_any_permission("requisitions:read_all", "requisitions:read_own")
def list_requisitions_route():
    try:
        rows = requisition_service.list_requisitions(g.caller, g.permissions, status=request.args.get("status"))
        return jsonify({"requisitions": [r.to_dict() for r in rows]}), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400


@requisitions_bp.get("/<int:requisition_id>")
@require_auth
@require_any_permission("requisitions:read_all", "requisitions:read_own")
def get_requisition_route(requisition_id: int):
    try:
        requisition = requisition_service.get_requisition(requisition_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404

    if not requisition_service.can_view(requisition, g.caller, g.permissions):
        return jsonify({"error": "Requisition not found"}), 404

    return jsonify({
        "requisition": requisition.to_dict(),
        "history": requisition_service.requisition_history(requisition_id),
    }), 200


@requisitions_bp.post("/<int:requisition_id>/transition")
@require_auth
def transition_requisition_route(requisition_id: int):
    data = request.get_json(silent=True) or {}
    new_status = (data.get("status") or "").strip()
    if not new_status:
        return jsonify({"error": "status is required"}), 400

    try:
        requisition, result = requisition_service.transition_requisition(
            requisition_id,
            new_status,
            g.caller,
            reason=data.get("reason"),
            resource=request.path,
            role_table=g.role_table,
        )
        return transition_response("requisition", requisition, result)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except PersistenceError as e:
        return jsonify({"error": str(e)}), 500
    except Exception:
        current_app.logger.exception("Failed to transition requisition")
        return jsonify({"error": "Internal server error"}), 500
