# Overview: Request authentication and role decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .services import session_service


def _bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1].strip() or None


def require_auth(f):
    """
    Require a valid bearer session.

    Sets g.principal (user_id, role, store_id). Returns 401 when the header
    is missing, or the token is unknown, revoked or expired, or its user has
    been deactivated.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = _bearer_token()
        if not token:
            return jsonify({"error": "Authentication required"}), 401

        principal = session_service.validate_session(token)
        if not principal:
            return jsonify({"error": "Invalid or expired token"}), 401

        g.principal = principal
        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles):
    """
    Require one of the given roles and a store-bound session.

    Must be applied after @require_auth.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            principal = getattr(g, "principal", None)
            if principal is None:
                return jsonify({"error": "Authentication required"}), 401

            if roles and principal.role not in roles:
                return jsonify({
                    "error": "Permission denied",
                    "required_roles": list(roles),
                }), 403

            if principal.store_id is None:
                return jsonify({"error": "Session is not bound to a store"}), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator
