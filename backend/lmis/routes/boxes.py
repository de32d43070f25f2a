# Overview: Flask API routes for label-first box generation and box lookup.

from flask import Blueprint, request, jsonify, current_app, g

from ..extensions import db
from ..decorators import require_auth, require_role
from ..permissions import Role
from ..services import box_service
from ..validation import LmisError, require_fields


boxes_bp = Blueprint("boxes", __name__, url_prefix="/api/boxes")


@boxes_bp.post("/generate")
@require_auth
@require_role(Role.SUPER_ADMIN, Role.WAREHOUSE_OFFICER)
def generate_created_route():
    """
    Generate boxes in CREATED state, awaiting warehouse receive.

    Request body:
    {
        "orderNumber": str,
        "productCode": str,
        "productName": str (optional),
        "batchNo": str,
        "expiryDate": "YYYY-MM-DD",
        "quantity": int
    }
    """
    try:
        data = require_fields(
            request.get_json(silent=True),
            "orderNumber", "productCode", "batchNo", "expiryDate", "quantity",
        )

        result = box_service.generate_created(
            g.actor,
            order_number=data["orderNumber"],
            product_code=data["productCode"],
            product_name=data.get("productName"),
            batch_no=data["batchNo"],
            expiry_date=data["expiryDate"],
            quantity=data["quantity"],
            max_quantity=current_app.config["GENERATE_MAX_QUANTITY"],
        )
        db.session.commit()

        current_app.logger.info(
            "Generated %s CREATED boxes for order %s by user %s",
            result.created_count, result.order.order_number, g.actor.id,
        )
        return jsonify(result.to_dict()), 201

    except LmisError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to generate boxes")
        return jsonify({"message": "Internal server error"}), 500


@boxes_bp.get("/<path:box_uid>")
@require_auth
def box_lookup_route(box_uid: str):
    """Box detail plus its most recent ledger events (newest first)."""
    try:
        limit = current_app.config["BOX_HISTORY_LIMIT"]
        return jsonify(box_service.box_lookup(box_uid, limit=limit)), 200

    except LmisError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to look up box")
        return jsonify({"message": "Internal server error"}), 500
