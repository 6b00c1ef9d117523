# Overview: Request decorators for API routes.

from functools import wraps

from flask import g, jsonify, request

from .services import session_service


def require_auth(f):
    """
    Require a bearer token and establish the request principal.

    MULTI-TENANT: Sets g.principal to the closed-union principal built from
    the session's user. Every service call receives it explicitly.

    SECURITY: Returns 401 if:
    - No Authorization header
    - Invalid, expired or revoked token
    - User deactivated or without a valid scope
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"error": "Authentication required"}), 401

        token = auth_header.split(" ", 1)[1].strip()

        principal = session_service.validate_session(token)
        if principal is None:
            return jsonify({"error": "Invalid or expired token"}), 401

        g.principal = principal
        return f(*args, **kwargs)

    return decorated_function


def require_scope(*scope_types: str):
    """Restrict a route to principals of the given scope types (403 otherwise)."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            principal = getattr(g, "principal", None)
            if principal is None:
                return jsonify({"error": "Authentication required"}), 401

            if principal.scope_type not in scope_types:
                return jsonify({
                    "error": "Access denied",
                    "required_scopes": list(scope_types),
                }), 403

            return f(*args, **kwargs)

        return decorated_function

    return decorator
