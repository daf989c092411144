from flask import Blueprint, jsonify, request, g

from certflow.decorators import require_auth
from certflow.services import notification_service


notifications_bp = Blueprint("notifications", __name__, url_prefix="/api/notifications")


@notifications_bp.get("")
@require_auth
def list_notifications():
    unread_only = request.args.get("unread", "false").lower() == "true"
    rows = notification_service.list_notifications(g.caller.id, unread_only=unread_only)
    return jsonify({"notifications": [n.to_dict() for n in rows]}), 200


@notifications_bp.post("/<int:notification_id>/read")
@require_auth
def mark_notification_read(notification_id: int):
    notification = notification_service.mark_read(notification_id, g.caller.id)
    if notification is None:
        return jsonify({"error": "Notification not found"}), 404
    return jsonify({"notification": notification.to_dict()}), 200
