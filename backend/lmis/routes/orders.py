# Overview: Flask API routes for orders and warehouse-centric box generation.

from flask import Blueprint, request, jsonify, current_app, g

from ..extensions import db
from ..decorators import require_auth, require_role
from ..permissions import Role
from ..services import box_service, order_service
from ..validation import LmisError, require_fields


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.post("")
@require_auth
@require_role(Role.SUPER_ADMIN, Role.WAREHOUSE_OFFICER)
def upsert_order_route():
    """
    Create an order, or return the existing one.

    Request body: {"orderNumber": str, "donorName": str (optional)}

    Returns:
        201: Order created
        200: Order already existed (donorName filled if it was empty)
    """
    try:
        data = require_fields(request.get_json(silent=True), "orderNumber")

        order, created = order_service.upsert_order(data["orderNumber"], data.get("donorName"))
        db.session.commit()

        if created:
            return jsonify({"message": "Order created", "order": order.to_dict()}), 201
        return jsonify({"message": "Order already exists", "order": order.to_dict()}), 200

    except LmisError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to upsert order")
        return jsonify({"message": "Internal server error"}), 500


@orders_bp.post("/<order_id>/boxes/generate")
@require_auth
@require_role(Role.SUPER_ADMIN, Role.WAREHOUSE_OFFICER)
def generate_boxes_route(order_id: str):
    """
    Generate boxes straight into a warehouse.

    Request body:
    {
        "productCode": str,
        "productName": str,
        "batchNo": str,
        "expiryDate": "YYYY-MM-DD",
        "quantity": int,
        "warehouseFacilityId": int | str,
        "donorName": str (optional)
    }

    Box UIDs are {orderNumber}-{n}, continuing from the order's counter.
    """
    try:
        data = require_fields(
            request.get_json(silent=True),
            "productCode", "productName", "batchNo", "expiryDate", "quantity", "warehouseFacilityId",
        )

        result = box_service.generate_at_warehouse(
            g.actor,
            order_id=order_id,
            product_code=data["productCode"],
            product_name=data["productName"],
            batch_no=data["batchNo"],
            expiry_date=data["expiryDate"],
            quantity=data["quantity"],
            warehouse_ref=data["warehouseFacilityId"],
            donor_name=data.get("donorName"),
            max_quantity=current_app.config["GENERATE_MAX_QUANTITY"],
        )
        db.session.commit()

        current_app.logger.info(
            "Generated %s boxes for order %s at %s by user %s",
            result.created_count, result.order.order_number, result.warehouse.code, g.actor.id,
        )
        return jsonify(result.to_dict()), 201

    except LmisError as e:
        db.session.rollback()
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to generate boxes")
        return jsonify({"message": "Internal server error"}), 500


@orders_bp.get("/<order_id>/boxes")
@require_auth
def order_boxes_route(order_id: str):
    """Order with its boxes in sequence order."""
    try:
        return jsonify(box_service.order_with_boxes(order_id)), 200

    except LmisError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list order boxes")
        return jsonify({"message": "Internal server error"}), 500
