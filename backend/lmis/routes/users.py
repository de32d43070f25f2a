# Overview: Flask API routes for user administration; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, current_app, g

from ..extensions import db
from ..decorators import require_auth, require_role
from ..permissions import Role
from ..services import auth_service
from ..validation import LmisError, require_fields


users_bp = Blueprint("users", __name__, url_prefix="/api/admin")


@users_bp.post("/users")
@require_auth
@require_role(Role.SUPER_ADMIN)
def create_user():
    """
    Create a new user.

    Request body:
    - email: str (required)
    - fullName: str (required)
    - password: str (required)
    - role: str (required)
    - facilityCode: str (required unless role is SUPER_ADMIN)
    """
    try:
        data = require_fields(request.get_json(silent=True), "email", "fullName", "password", "role")

        user = auth_service.create_user(
            email=data["email"],
            full_name=data["fullName"],
            password=data["password"],
            role=str(data["role"]).strip().upper(),
            facility_code=data.get("facilityCode"),
        )
        db.session.commit()

        current_app.logger.info("User %s created by %s with role %s", user.id, g.actor.id, user.role)
        return jsonify({"message": "User created", "user": user.to_dict()}), 201

    except LmisError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create user")
        return jsonify({"message": "Internal server error"}), 500
