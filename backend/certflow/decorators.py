# Overview: Caller identity and permission decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .services import identity_service, permission_service
from .services.permission_service import PermissionDeniedError


def _is_authenticated() -> bool:
    return hasattr(g, 'caller') and hasattr(g, 'permissions')


def require_auth(f):
    """
    Require an upstream identity and resolve the caller's permissions.

    Sets the following Flask g attributes:
    - g.caller: Caller built from X-User-* headers
    - g.role_table: role table (built-in roles overlaid with stored roles)
    - g.permissions: frozenset of permission codes granted to the caller

    SECURITY: Returns 401 if X-User-Id is missing. Identity is taken from the
    gateway headers only, never from the request body.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        caller = identity_service.caller_from_headers(request.headers)
        if caller is None:
            return jsonify({"error": "Authentication required"}), 401

        identity_service.sync_user(caller)

        g.caller = caller
        g.role_table = permission_service.load_role_table()
        g.permissions = permission_service.resolve_permissions(caller.roles, g.role_table)

        return f(*args, **kwargs)

    return decorated_function


def require_permission(permission_code: str):
    """Require a specific permission; denials are written to audit_events."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                return jsonify({"error": "Authentication required"}), 401

            try:
                permission_service.require_permission(
                    g.caller,
                    permission_code,
                    resource=request.path,
                    ip_address=request.remote_addr,
                    role_table=g.role_table,
                )
            except PermissionDeniedError as e:
                return jsonify({
                    "error": "Permission denied",
                    "required_permission": permission_code,
                    "message": str(e)
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator


def require_any_permission(*permission_codes):
    """Require any of the specified permissions."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                return jsonify({"error": "Authentication required"}), 401

            if not any(code in g.permissions for code in permission_codes):
                permission_service.log_audit_event(
                    user_id=g.caller.id,
                    event_type="PERMISSION_DENIED",
                    success=False,
                    resource=request.path,
                    action=f"ANY_OF:{','.join(permission_codes)}",
                    reason=f"Missing any of: {', '.join(permission_codes)}",
                    ip_address=request.remote_addr,
                )
                return jsonify({
                    "error": "Permission denied",
                    "required_permissions": list(permission_codes),
                    "message": f"Requires any of: {', '.join(permission_codes)}"
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator
