# backend/certflow/routes/requests.py
"""
Certificate Request API Routes

- POST /api/requests                   - File a request (pending)
- GET  /api/requests                   - List visible requests
- GET  /api/requests/:id               - Request detail with status history
- POST /api/requests/:id/transition    - Assign / review / approve / reject
- POST /api/requests/:id/resubmit      - Requester sends a rejected request back
- GET  /api/requests/:id/comments      - Discussion on a request
- POST /api/requests/:id/comments      - Add a comment (notifies the other side)

SECURITY:
- All routes require an upstream identity (X-User-* headers)
- The acting user is always g.caller, never a body field
- Elevated transitions are checked by the workflow engine, which answers
  403 for permission denials and 409 for illegal or no-op transitions
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import request_service
from ..validation import ValidationError, NotFoundError, PersistenceError
from ..decorators import require_auth, require_permission, require_any_permission
from ..responses import transition_response


requests_bp = Blueprint("requests", __name__, url_prefix="/api/requests")


@requests_bp.post("")
@require_auth
@require_permission("requests:create")
def create_request_route():
    try:
        req = request_service.create_request(request.get_json(silent=True) or {}, g.caller)
        return jsonify({"request": req.to_dict()}), 201
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except PersistenceError as e:
        return jsonify({"error": str(e)}), 500
    except Exception:
        current_app.logger.exception("Failed to create request")
        return jsonify({"error": "Internal server error"}), 500


@requests_bp.get("")
@require_auth
@require_any_permission("requests:read_all", "requests:read_own")
def list_requests_route():
    try:
        rows = request_service.list_requests(g.caller, g.permissions, status=request.args.get("status"))
        return jsonify({"requests": [r.to_dict() for r in rows]}), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400


@requests_bp.get("/<int:request_id>")
@require_auth
@require_any_permission("requests:read_all", "requests:read_own")
def get_request_route(request_id: int):
    try:
        req = request_service.get_request(request_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404

    if not request_service.can_view(req, g.caller, g.permissions):
        return jsonify({"error": "Request not found"}), 404

    return jsonify({
        "request": req.to_dict(),
        "history": request_service.request_history(request_id),
    }), 200


@requests_bp.post("/<int:request_id>/transition")
@require_auth
def transition_request_route(request_id: int):
    """
    Request body:
        {"status": "approved", "reason": "optional", "qa_tester_id": "optional"}

    Error responses:
        400: Missing/unknown status, rejection without reason
        403: Caller lacks the permission for this move
        404: Request not found
        409: Already in that status, or move not allowed from current status
    """
    data = request.get_json(silent=True) or {}
    new_status = (data.get("status") or "").strip()
    if not new_status:
        return jsonify({"error": "status is required"}), 400

    try:
        req, result = request_service.transition_request(
            request_id,
            new_status,
            g.caller,
            reason=data.get("reason"),
            qa_tester_id=data.get("qa_tester_id"),
            resource=request.path,
            role_table=g.role_table,
        )
        return transition_response("request", req, result)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except PersistenceError as e:
        return jsonify({"error": str(e)}), 500
    except Exception:
        current_app.logger.exception("Failed to transition request")
        return jsonify({"error": "Internal server error"}), 500


@requests_bp.post("/<int:request_id>/resubmit")
@require_auth
@require_permission("requests:create")
def resubmit_request_route(request_id: int):
    """
    Only the original requester may resubmit. Body fields (task_title,
    description, ...) optionally revise the request; "reason" is kept on the
    history entry.
    """
    try:
        req, result = request_service.resubmit_request(
            request_id,
            g.caller,
            request.get_json(silent=True) or {},
            resource=request.path,
            role_table=g.role_table,
        )
        return transition_response("request", req, result)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except PersistenceError as e:
        return jsonify({"error": str(e)}), 500
    except Exception:
        current_app.logger.exception("Failed to resubmit request")
        return jsonify({"error": "Internal server error"}), 500


@requests_bp.get("/<int:request_id>/comments")
@require_auth
@require_any_permission("requests:read_all", "requests:read_own")
def list_comments_route(request_id: int):
    try:
        req = request_service.get_request(request_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404

    if not request_service.can_view(req, g.caller, g.permissions):
        return jsonify({"error": "Request not found"}), 404

    comments = request_service.list_comments(request_id)
    return jsonify({"comments": [c.to_dict() for c in comments]}), 200


@requests_bp.post("/<int:request_id>/comments")
@require_auth
@require_permission("requests:add_comment")
def add_comment_route(request_id: int):
    """Body: {"text": "..."}. Only callers who can see the request may comment."""
    try:
        req = request_service.get_request(request_id)
        if not request_service.can_view(req, g.caller, g.permissions):
            return jsonify({"error": "Request not found"}), 404

        data = request.get_json(silent=True) or {}
        comment = request_service.add_comment(request_id, g.caller, data.get("text"))
        return jsonify({"comment": comment.to_dict()}), 201
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except PersistenceError as e:
        return jsonify({"error": str(e)}), 500
    except Exception:
        current_app.logger.exception("Failed to add comment")
        return jsonify({"error": "Internal server error"}), 500
