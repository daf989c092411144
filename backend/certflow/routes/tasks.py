# backend/certflow/routes/tasks.py
"""
Task API Routes

- POST /api/tasks                - Create a task
- GET  /api/tasks                - List tasks (filters: assignee_id, status)
- POST /api/tasks/:id/complete   - Mark done and file its certificate request
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import task_service
from ..validation import ValidationError, ConflictError, NotFoundError, PersistenceError
from ..decorators import require_auth, require_permission


tasks_bp = Blueprint("tasks", __name__, url_prefix="/api/tasks")


@tasks_bp.post("")
@require_auth
@require_permission("tasks:manage")
def create_task_route():
    try:
        task = task_service.create_task(request.get_json(silent=True) or {}, g.caller)
        return jsonify({"task": task.to_dict()}), 201
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except PersistenceError as e:
        return jsonify({"error": str(e)}), 500
    except Exception:
        current_app.logger.exception("Failed to create task")
        return jsonify({"error": "Internal server error"}), 500


@tasks_bp.get("")
@require_auth
def list_tasks_route():
    tasks = task_service.list_tasks(
        assignee_id=request.args.get("assignee_id"),
        status=request.args.get("status"),
    )
    return jsonify({"tasks": [t.to_dict() for t in tasks]}), 200


@tasks_bp.post("/<int:task_id>/complete")
@require_auth
@require_permission("requests:create")
def complete_task_route(task_id: int):
    """
    Marks the task done and creates the linked certificate request in the
    same transaction. Body may supply associated_team, associated_project
    and description when the task lacks them.
    """
    try:
        task, req = task_service.complete_task(task_id, g.caller, request.get_json(silent=True) or {})
        return jsonify({"task": task.to_dict(), "request": req.to_dict()}), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except PersistenceError as e:
        return jsonify({"error": str(e)}), 500
    except Exception:
        current_app.logger.exception("Failed to complete task")
        return jsonify({"error": "Internal server error"}), 500
