# Overview: Flask API routes for role and permission administration.

# backend/certflow/routes/admin.py
"""
Admin routes for role management.

- GET  /api/admin/roles        - Effective role table (built-in + stored)
- POST /api/admin/roles        - Create or replace a stored role
- GET  /api/admin/permissions  - Permission catalogue grouped by category

Stored roles override the built-in role with the same canonical key.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..extensions import db
from ..models import Role
from ..services import permission_service
from ..validation import ValidationError
from ..decorators import require_auth, require_permission, require_any_permission
from ..permissions import permission_catalogue, permission_categories

admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


@admin_bp.get("/roles")
@require_auth
@require_any_permission("roles:manage", "admin:read")
def list_roles():
    stored_keys = {key for (key,) in db.session.query(Role.canonical_key).all()}
    table = g.role_table

    roles = []
    for key in table.keys():
        roles.append({
            "key": key,
            "name": table.display_name(key),
            "permissions": sorted(table.permissions_for(key)),
            "source": "database" if key in stored_keys else "built_in",
        })

    return jsonify({"roles": roles, "count": len(roles)})


@admin_bp.post("/roles")
@require_auth
@require_permission("roles:manage")
def save_role():
    """
    Request body:
    {
        "name": "QA Lead",
        "permissions": ["requests:read_all", "requests:approve"],
        "description": "optional"
    }
    """
    data = request.get_json(silent=True) or {}
    permissions = data.get("permissions")
    if not isinstance(permissions, list):
        return jsonify({"error": "permissions must be a list"}), 400

    try:
        role = permission_service.save_role(
            data.get("name") or "",
            permissions,
            description=data.get("description"),
        )
        return jsonify({"role": role.to_dict()}), 201
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to save role")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.get("/permissions")
@require_auth
@require_any_permission("roles:manage", "admin:read")
def list_permissions():
    return jsonify({
        "categories": permission_categories(),
        "permissions": permission_catalogue(),
        "is_admin": permission_service.is_admin(g.permissions),
    })
