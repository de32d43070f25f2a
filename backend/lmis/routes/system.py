# backend/lmis/routes/system.py
"""
Health endpoint for load balancers and the scanner app.

A few row counts prove the database answers; boxes in transit are reported
so operators can spot stalled shipments at a glance.
"""

import time

from flask import Blueprint, current_app
from sqlalchemy import func

from ..extensions import db
from ..models import Box, BoxEvent, BoxStatus, Facility
from ..time_utils import utcnow

system_bp = Blueprint("system", __name__, url_prefix="/api")


def _count(column, *criteria) -> int:
    return db.session.query(func.count(column)).filter(*criteria).scalar()


def database_check() -> dict:
    started = time.perf_counter()
    try:
        details = {
            "facilities": _count(Facility.id),
            "boxes": _count(Box.id),
            "boxEvents": _count(BoxEvent.id),
            "inTransit": _count(Box.id, Box.status == BoxStatus.IN_TRANSIT),
        }
        status = "healthy"
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Database health check failed")
        details = None
        status = "unhealthy"

    check = {
        "status": status,
        "latency_ms": round((time.perf_counter() - started) * 1000, 2),
    }
    if details is None:
        check["error"] = "Database error"
    else:
        check["details"] = details
    return check


@system_bp.get("/health")
def health():
    """200 when the database answers, 503 otherwise."""
    database = database_check()
    return {
        "status": database["status"],
        "timestamp": utcnow().isoformat() + "Z",
        "checks": {"database": database},
    }, 200 if database["status"] == "healthy" else 503
