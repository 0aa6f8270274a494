# Overview: Login and logout endpoints.

from flask import Blueprint, current_app, g, request

from ..decorators import require_auth
from ..responses import fail, internal_error, ok
from ..services import auth_service, session_service
from ..errors import ServiceError, UnauthorizedError

auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login():
    """Exchange username/password for a bearer token."""
    try:
        data = request.get_json(silent=True) or {}
        user = auth_service.authenticate(data.get("username"), data.get("password"))
        if user is None:
            raise UnauthorizedError("Invalid username or password")
        _, token = session_service.create_session(user.id)
        return ok({"token": token, "user": user.to_dict()}, message="Login successful")
    except ServiceError as e:
        return fail(e)
    except Exception:
        current_app.logger.exception("Failed to log in")
        return internal_error()


@auth_bp.post("/logout")
@require_auth
def logout():
    session_service.revoke_session(g.auth_token)
    return ok(message="Logged out")


@auth_bp.get("/me")
@require_auth
def me():
    return ok(g.current_user.to_dict())
