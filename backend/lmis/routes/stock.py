# Overview: Flask API routes for facility stock rollups.

from flask import Blueprint, jsonify, current_app, g

from ..decorators import require_auth
from ..services import stock_service
from ..validation import LmisError


stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")


@stock_bp.get("/facility/<facility_ref>")
@require_auth
def facility_stock_route(facility_ref: str):
    """
    On-hand box counts at a facility by product, batch, expiry and status.

    Non-admin callers may only query their own facility.
    """
    try:
        return jsonify(stock_service.facility_stock(g.actor, facility_ref)), 200

    except LmisError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load facility stock")
        return jsonify({"message": "Internal server error"}), 500
