# Overview: Flask API routes for the facility directory; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, current_app, g

from ..extensions import db
from ..decorators import require_auth, require_role
from ..models import FacilityType
from ..permissions import Role
from ..services import facility_service
from ..validation import AuthorizationError, LmisError, ValidationError, require_fields


facilities_bp = Blueprint("facilities", __name__, url_prefix="/api/facilities")


@facilities_bp.post("")
@require_auth
@require_role(Role.SUPER_ADMIN)
def create_facility_route():
    """
    Create a facility.

    Request body:
    {
        "code": str,
        "name": str,
        "type": "WAREHOUSE" | "FACILITY" (default FACILITY),
        "warehouseId": int | str (optional, FACILITY only)
    }
    """
    try:
        data = require_fields(request.get_json(silent=True), "code", "name")

        facility = facility_service.create_facility(
            code=data["code"],
            name=data["name"],
            facility_type=data.get("type"),
            warehouse_id=data.get("warehouseId"),
        )
        db.session.commit()

        return jsonify({"message": "Facility created", "facility": facility.to_dict()}), 201

    except LmisError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to create facility")
        return jsonify({"message": "Internal server error"}), 500


@facilities_bp.get("")
@require_auth
def list_facilities_route():
    """
    Facilities visible to the caller.

    Query params:
    - type: WAREHOUSE | FACILITY (optional)
    """
    try:
        facilities = facility_service.visible_facilities(g.actor, request.args.get("type"))
        return jsonify({"facilities": [f.to_dict() for f in facilities]}), 200

    except LmisError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list facilities")
        return jsonify({"message": "Internal server error"}), 500


@facilities_bp.get("/me")
@require_auth
def my_facility_route():
    """The caller's facility and the warehouse that owns it."""
    try:
        if not g.actor.facility_id:
            return jsonify({"facility": None, "warehouse": None}), 200

        facility = facility_service.find_by_id_or_code(g.actor.facility_id)
        if facility is None:
            return jsonify({"facility": None, "warehouse": None}), 200

        warehouse = facility_service.owning_warehouse(facility.id)
        return jsonify({
            "facility": facility.to_dict(),
            "warehouse": warehouse.to_dict() if warehouse else None,
        }), 200

    except LmisError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load own facility")
        return jsonify({"message": "Internal server error"}), 500


@facilities_bp.get("/<facility_ref>/children")
@require_auth
def facility_children_route(facility_ref: str):
    """Facilities owned by a warehouse. Warehouse officers may only list their own."""
    try:
        warehouse = facility_service.assert_exists(facility_ref, label="Warehouse")
        if warehouse.type != FacilityType.WAREHOUSE:
            raise ValidationError(f"{warehouse.code} is not a WAREHOUSE")

        if not g.actor.is_admin and g.actor.facility_id != warehouse.id:
            raise AuthorizationError("You can only list facilities under your own warehouse")

        children = facility_service.facilities_owned_by(warehouse.id)
        return jsonify({
            "warehouse": warehouse.summary(),
            "facilities": [f.to_dict() for f in children],
        }), 200

    except LmisError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list child facilities")
        return jsonify({"message": "Internal server error"}), 500


@facilities_bp.put("/<facility_ref>/warehouse")
@require_auth
@require_role(Role.SUPER_ADMIN)
def link_warehouse_route(facility_ref: str):
    """
    Point one FACILITY at its owning warehouse.

    Request body: {"warehouseId": int | str}
    """
    try:
        data = require_fields(request.get_json(silent=True), "warehouseId")

        facility = facility_service.link_to_warehouse(facility_ref, data["warehouseId"])
        db.session.commit()

        return jsonify({"message": "Facility linked to warehouse", "facility": facility.to_dict()}), 200

    except LmisError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to link facility to warehouse")
        return jsonify({"message": "Internal server error"}), 500


@facilities_bp.post("/link-warehouse")
@require_auth
@require_role(Role.SUPER_ADMIN)
def link_many_route():
    """
    Bulk link facilities to a warehouse by code (all-or-nothing).

    Request body: {"warehouseCode": str, "facilityCodes": [str, ...]}
    """
    try:
        data = require_fields(request.get_json(silent=True), "warehouseCode", "facilityCodes")

        facilities = facility_service.link_many_by_code(data["warehouseCode"], data["facilityCodes"])
        db.session.commit()

        return jsonify({
            "message": "Facilities linked to warehouse",
            "count": len(facilities),
            "facilities": [f.to_dict() for f in facilities],
        }), 200

    except LmisError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to link facilities to warehouse")
        return jsonify({"message": "Internal server error"}), 500
