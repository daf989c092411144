# Overview: JSON shapes shared by the workflow routes.

from flask import jsonify

from .services.workflow_service import ALREADY_IN_STATE, ILLEGAL_TRANSITION, PERMISSION_DENIED


DENIAL_STATUS_CODES = {
    ALREADY_IN_STATE: 409,
    ILLEGAL_TRANSITION: 409,
    PERMISSION_DENIED: 403,
}


def transition_response(key: str, model, result):
    """
    200 with the updated entity, or the denial as {"error", "reason"}.
    """
    if not result.allowed:
        return jsonify({
            "error": result.message,
            "reason": result.denial,
        }), DENIAL_STATUS_CODES[result.denial]

    return jsonify({
        key: model.to_dict(),
        "history_entry": {
            "status": result.entry.status,
            "previous_status": result.entry.previous_status,
            "changed_by_id": result.entry.changed_by_id,
            "changed_by_name": result.entry.changed_by_name,
            "reason": result.entry.reason,
        },
    }), 200
