# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

# backend/lmis/routes/auth.py
"""
Authentication API routes

- Login issues an opaque bearer token (only its hash is stored)
- Logout revokes the presented token
- /api/me returns the actor the transfer engine will see
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..extensions import db
from ..models import Facility
from ..services import auth_service
from ..services import session_service
from ..decorators import bearer_token, require_auth


auth_bp = Blueprint("auth", __name__, url_prefix="/api")


@auth_bp.post("/auth/login")
def login_route():
    """
    Authenticate user and create session token.

    Token must be included in Authorization header for protected routes.
    """
    try:
        data = request.get_json(silent=True) or {}
        email = data.get("email")
        password = data.get("password")

        if not all([email, password]):
            return jsonify({"message": "email and password are required"}), 400

        user = auth_service.authenticate(email, password)

        if not user:
            current_app.logger.warning("Failed login for %s", str(email).strip().lower())
            return jsonify({"message": "Invalid credentials"}), 401

        # Persists last_login_at; create_session commits its own row
        db.session.commit()

        session, token = session_service.create_session(
            user_id=user.id,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )

        return jsonify({
            "message": "Login successful",
            "token": token,
            "user": user.to_dict(),
            "session": session.to_dict(),
        }), 200

    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to login user")
        return jsonify({"message": "Internal server error"}), 500


@auth_bp.post("/auth/logout")
def logout_route():
    """
    Revoke session token (logout).

    Expects Authorization header: Bearer <token>
    """
    try:
        token = bearer_token()
        if token is None:
            return jsonify({"message": "Authorization header required"}), 401

        if not session_service.revoke_session(token):
            return jsonify({"message": "Invalid or expired token"}), 401

        return jsonify({"message": "Logout successful"}), 200

    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to logout user")
        return jsonify({"message": "Internal server error"}), 500


@auth_bp.get("/me")
@require_auth
def me_route():
    """Current user, their actor identity and facility summary."""
    user = g.current_user
    facility = db.session.get(Facility, user.facility_id) if user.facility_id else None

    return jsonify({
        "user": user.to_dict(),
        "actor": g.actor.to_dict(),
        "facility": facility.summary() if facility else None,
    }), 200
