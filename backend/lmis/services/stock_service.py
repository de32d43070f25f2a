# Overview: Read-only stock rollup per facility, derived from the box projection.

from __future__ import annotations

from sqlalchemy import func

from ..extensions import db
from ..models import Box, Product
from ..permissions import Actor
from ..time_utils import to_iso_date
from ..validation import AuthorizationError
from . import facility_service


def facility_stock(actor: Actor, facility_ref) -> dict:
    """
    Counts of boxes currently at a facility grouped by
    (product, batch, expiry, status).

    Grouping runs in SQL; product codes and names are hydrated afterwards in
    one lookup. Non-admin actors may only query their own facility.
    """
    facility = facility_service.assert_exists(facility_ref)

    if not actor.is_admin and actor.facility_id != facility.id:
        raise AuthorizationError(
            "You can only view stock for your own facility",
            details={"facility": facility.code},
        )

    grouped = (
        db.session.query(
            Box.product_id,
            Box.batch_no,
            Box.expiry_date,
            Box.status,
            func.count(Box.id).label("count"),
        )
        .filter(Box.current_facility_id == facility.id)
        .group_by(Box.product_id, Box.batch_no, Box.expiry_date, Box.status)
        .all()
    )

    product_ids = {row.product_id for row in grouped}
    products = (
        {p.id: p for p in db.session.query(Product).filter(Product.id.in_(product_ids)).all()}
        if product_ids
        else {}
    )

    rows = []
    for row in grouped:
        product = products.get(row.product_id)
        rows.append({
            "productId": row.product_id,
            "productCode": product.code if product else None,
            "productName": product.name if product else None,
            "batchNo": row.batch_no,
            "expiryDate": to_iso_date(row.expiry_date),
            "status": row.status,
            "count": row.count,
        })

    rows.sort(key=lambda r: (r["productCode"] or "", r["batchNo"], r["expiryDate"] or "", r["status"]))

    return {
        "message": "OK",
        "facility": facility.summary(),
        "rows": rows,
        "total": sum(r["count"] for r in rows),
    }
