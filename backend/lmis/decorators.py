# Overview: Request and role decorators for API routes.

from functools import wraps
from flask import current_app, request, jsonify, g

from .services import session_service


def _is_authenticated() -> bool:
    return hasattr(g, "actor")


def bearer_token() -> str | None:
    """The token from "Authorization: Bearer <token>", or None."""
    scheme, _, token = (request.headers.get("Authorization") or "").partition(" ")
    if scheme != "Bearer" or not token.strip():
        return None
    return token.strip()


def require_auth(f):
    """
    Require a bearer session and establish the actor context.

    Sets the following Flask g attributes:
    - g.current_user: The authenticated User object
    - g.actor: Actor(id, role, facility_id) consumed by the services
    - g.session_context: The full SessionContext object

    Returns 401 if the header is missing, or the token is invalid, expired,
    revoked or belongs to a deactivated user.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = bearer_token()
        if token is None:
            return jsonify({"message": "Missing or invalid Authorization header"}), 401

        context = session_service.validate_session(token)

        if not context:
            return jsonify({"message": "Invalid or expired token"}), 401

        g.current_user = context.user
        g.actor = context.actor
        g.session_context = context

        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: str):
    """Coarse role gate for admin and management endpoints."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            # Ensure @require_auth was called first
            if not _is_authenticated():
                return jsonify({"message": "Authentication required"}), 401

            if g.actor.role not in roles:
                current_app.logger.warning(
                    "Role gate denied %s %s for user %s (role %s)",
                    request.method, request.path, g.actor.id, g.actor.role,
                )
                return jsonify({
                    "message": "Forbidden",
                    "error": "FORBIDDEN",
                    "details": {"requiredRoles": list(roles)},
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator
