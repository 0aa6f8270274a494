# Overview: Request authentication and role decorators for API routes.

from functools import wraps

from flask import current_app, g, jsonify, request

from .services import session_service
from .services.tenant_service import Principal


def require_auth(f):
    """
    Require a valid bearer token and establish the request principal.

    Sets:
    - g.current_user: the authenticated User
    - g.principal: detached Principal used for tenant scoping
    - g.auth_token: the raw token (for logout)
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")
        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"success": False, "message": "Authentication required"}), 401

        token = auth_header.split(" ", 1)[1].strip()
        user = session_service.validate_session(token)
        if user is None:
            return jsonify({"success": False, "message": "Invalid or expired token"}), 401

        g.current_user = user
        g.principal = Principal.from_user(user)
        g.auth_token = token
        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: str):
    """Allow only principals whose role is in `roles`. Use after @require_auth."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            principal = getattr(g, "principal", None)
            if principal is None:
                return jsonify({"success": False, "message": "Authentication required"}), 401
            if principal.role not in roles:
                current_app.logger.warning(
                    "Role denied: user=%s role=%s path=%s required=%s",
                    principal.user_id, principal.role, request.path, ",".join(roles),
                )
                return jsonify({
                    "success": False,
                    "message": "Permission denied",
                    "errors": [f"Requires one of: {', '.join(roles)}"],
                }), 403
            return f(*args, **kwargs)

        return decorated_function
    return decorator
