# Overview: Request and role decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .extensions import db
from .models import User


def _is_authenticated() -> bool:
    return hasattr(g, 'current_user')


def require_auth(f):
    """
    Require an acting user.

    Credentials are handled by the external auth layer, which forwards the
    resolved user id in the X-User-Id header. Sets g.current_user.

    Returns 401 if:
    - No X-User-Id header
    - Header is not an integer id
    - User unknown or deactivated
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        raw_user_id = request.headers.get("X-User-Id", "").strip()
        if not raw_user_id:
            return jsonify({"error": "Authentication required"}), 401
        if not raw_user_id.isdigit():
            return jsonify({"error": "Invalid user id"}), 401

        user = db.session.query(User).filter_by(id=int(raw_user_id)).first()
        if user is None or not user.is_active:
            return jsonify({"error": "Unknown or inactive user"}), 401

        g.current_user = user
        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: str):
    """
    Restrict a route to the given roles. Must be applied after @require_auth.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                return jsonify({"error": "Authentication required"}), 401

            if g.current_user.role not in roles:
                return jsonify({
                    "error": "Permission denied",
                    "required_roles": list(roles),
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator
