# backend/lmis/routes/transactions.py
"""
Box transfer API routes.

Each request is one transaction: the service validates every box, then
mutates; the route commits once on success and rolls back on any error,
so no partial batch is ever persisted. Role and facility checks live in
the transfer policy, not in route decorators.
"""
from flask import Blueprint, request, jsonify, current_app, g

from ..extensions import db
from ..decorators import require_auth
from ..services import transfer_service
from ..validation import AuthorizationError, LmisError


transactions_bp = Blueprint("transactions", __name__, url_prefix="/api/transactions")


def _payload() -> dict:
    return request.get_json(silent=True) or {}


def _error(e: LmisError, operation: str):
    db.session.rollback()
    if isinstance(e, AuthorizationError):
        current_app.logger.warning(
            "Transfer denied: %s by user %s (role %s): %s",
            operation, g.actor.id, g.actor.role, e.message,
        )
    return jsonify(e.to_dict()), e.status_code


def _unexpected(operation: str):
    db.session.rollback()
    current_app.logger.exception("Failed to %s", operation)
    return jsonify({"message": "Internal server error"}), 500


def _log_done(result: transfer_service.TransferResult) -> None:
    current_app.logger.info(
        "%s by user %s: %s updated, %s skipped",
        result.operation, g.actor.id, len(result.updated), len(result.skipped),
    )


@transactions_bp.post("/warehouse-receive")
@require_auth
def warehouse_receive_route():
    """
    Receive CREATED boxes into the caller's warehouse.

    Request body: {"boxUids": [str, ...], "note": str (optional)}

    Boxes already in the caller's warehouse are reported as skipped.
    """
    try:
        data = _payload()
        result = transfer_service.warehouse_receive(g.actor, data.get("boxUids"), data.get("note"))
        db.session.commit()
        _log_done(result)

        return jsonify({
            "message": "Warehouse receive complete",
            "updatedCount": len(result.updated),
            "skippedCount": len(result.skipped),
            "updated": result.updated,
            "skipped": result.skipped,
        }), 200

    except LmisError as e:
        return _error(e, "warehouse-receive")
    except Exception:
        return _unexpected("warehouse-receive")


@transactions_bp.post("/dispatch")
@require_auth
def dispatch_route():
    """
    Dispatch boxes from the caller's warehouse to a facility.

    Request body: {"boxUids": [str, ...], "toFacilityCode": str, "note": str (optional)}
    """
    try:
        data = _payload()
        result = transfer_service.dispatch(
            g.actor, data.get("boxUids"), data.get("toFacilityCode"), data.get("note")
        )
        db.session.commit()
        _log_done(result)

        return jsonify({
            "message": "Dispatch complete",
            "count": result.count,
            "fromWarehouse": result.source.code,
            "toFacility": result.destination.code,
        }), 200

    except LmisError as e:
        return _error(e, "dispatch")
    except Exception:
        return _unexpected("dispatch")


@transactions_bp.post("/facility-receive")
@require_auth
def facility_receive_route():
    """
    Receive dispatched boxes at the caller's facility.

    Request body: {"boxUids": [str, ...], "note": str (optional)}
    """
    try:
        data = _payload()
        result = transfer_service.facility_receive(g.actor, data.get("boxUids"), data.get("note"))
        db.session.commit()
        _log_done(result)

        return jsonify({
            "message": "Facility receive complete",
            "count": result.count,
            "facility": result.destination.code,
        }), 200

    except LmisError as e:
        return _error(e, "facility-receive")
    except Exception:
        return _unexpected("facility-receive")


@transactions_bp.post("/dispense")
@require_auth
def dispense_route():
    """
    Dispense one box at the caller's facility.

    Request body: {"boxUid": str, "note": str (optional)}
    """
    try:
        data = _payload()
        result = transfer_service.dispense(g.actor, data.get("boxUid"), data.get("note"))
        db.session.commit()
        _log_done(result)

        return jsonify({
            "message": "Dispensed",
            "boxUid": result.updated[0],
            "facility": result.source.code,
        }), 200

    except LmisError as e:
        return _error(e, "dispense")
    except Exception:
        return _unexpected("dispense")


@transactions_bp.post("/void")
@require_auth
def void_route():
    """
    Administrative adjustment: void boxes that are still in circulation.

    Request body: {"boxUids": [str, ...], "note": str (required)}
    """
    try:
        data = _payload()
        result = transfer_service.void_boxes(g.actor, data.get("boxUids"), data.get("note"))
        db.session.commit()
        _log_done(result)

        return jsonify({
            "message": "Boxes voided",
            "count": result.count,
            "voided": result.updated,
        }), 200

    except LmisError as e:
        return _error(e, "void")
    except Exception:
        return _unexpected("void")
