# Overview: Box registry; bulk generation with sequential UIDs, box resolution and lookups.

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date

from sqlalchemy.orm import joinedload

from ..extensions import db
from ..models import Box, BoxEventType, BoxStatus, Facility, FacilityType, Order, Product
from ..permissions import Actor, TransferOperation, authorize
from ..validation import (
    NotFoundError,
    ValidationError,
    parse_calendar_date,
    parse_positive_int,
)
from . import facility_service, ledger_service, order_service
from .concurrency import lock_for_update

SAMPLE_SIZE = 10


@dataclass
class GenerationResult:
    order: Order
    product: Product
    box_uids: list[str] = field(default_factory=list)
    warehouse: Facility | None = None

    @property
    def created_count(self) -> int:
        return len(self.box_uids)

    def to_dict(self) -> dict:
        body = {
            "message": "Boxes generated",
            "orderNumber": self.order.order_number,
            "donorName": self.order.donor_name,
            "productCode": self.product.code,
            "createdCount": self.created_count,
            "sample": self.box_uids[:SAMPLE_SIZE],
        }
        if self.warehouse is not None:
            body["warehouse"] = self.warehouse.summary()
        return body


def build_box_uid(order_number: str, sequence_number: int) -> str:
    return f"{order_number}-{sequence_number}"


def _clean_batch(batch_no) -> str:
    batch_no = (str(batch_no) if batch_no is not None else "").strip()
    if not batch_no:
        raise ValidationError("batchNo is required")
    if len(batch_no) > 64:
        raise ValidationError("batchNo exceeds max length 64")
    return batch_no


def _create_boxes(
    *,
    order: Order,
    product: Product,
    batch_no: str,
    expiry_date: date,
    quantity: int,
    status: str,
    facility_id: int | None,
) -> list[Box]:
    start = order_service.allocate_box_numbers(order.id, quantity)

    boxes = [
        Box(
            box_uid=build_box_uid(order.order_number, seq),
            sequence_number=seq,
            order_id=order.id,
            product_id=product.id,
            batch_no=batch_no,
            expiry_date=expiry_date,
            status=status,
            current_facility_id=facility_id,
        )
        for seq in range(start, start + quantity)
    ]
    db.session.add_all(boxes)
    db.session.flush()
    return boxes


def generate_at_warehouse(
    actor: Actor,
    *,
    order_id,
    product_code: str,
    product_name: str,
    batch_no,
    expiry_date,
    quantity,
    warehouse_ref,
    donor_name: str | None = None,
    max_quantity: int | None = None,
) -> GenerationResult:
    """
    Warehouse-centric generation.

    Boxes start IN_WAREHOUSE at the given warehouse; each gets a QR_CREATED
    and a WAREHOUSE_RECEIVE event. UIDs continue from the order's counter.
    """
    qty = parse_positive_int(quantity, "quantity", maximum=max_quantity)
    expiry = parse_calendar_date(expiry_date, "expiryDate")
    batch_no = _clean_batch(batch_no)

    order = order_service.get_order(order_id)
    warehouse = facility_service.assert_exists(warehouse_ref, label="Warehouse facility")
    if warehouse.type != FacilityType.WAREHOUSE:
        raise ValidationError("warehouseFacilityId must be a WAREHOUSE")

    authorize(TransferOperation.GENERATE, actor, target_facility=warehouse)

    order_service.apply_donor(order, donor_name)
    product = order_service.upsert_product(product_code, product_name)

    boxes = _create_boxes(
        order=order,
        product=product,
        batch_no=batch_no,
        expiry_date=expiry,
        quantity=qty,
        status=BoxStatus.IN_WAREHOUSE,
        facility_id=warehouse.id,
    )

    rows = []
    for box in boxes:
        rows.append({
            "box_id": box.id,
            "event_type": BoxEventType.QR_CREATED,
            "performed_by_user_id": actor.id,
            "to_facility_id": warehouse.id,
            "note": f"QR created for order {order.order_number}",
        })
        rows.append({
            "box_id": box.id,
            "event_type": BoxEventType.WAREHOUSE_RECEIVE,
            "performed_by_user_id": actor.id,
            "to_facility_id": warehouse.id,
            "note": f"Received into warehouse ({warehouse.code})",
        })
    ledger_service.append_events(rows)

    return GenerationResult(
        order=order,
        product=product,
        box_uids=[b.box_uid for b in boxes],
        warehouse=warehouse,
    )


def generate_created(
    actor: Actor,
    *,
    order_number: str,
    product_code: str,
    product_name: str | None,
    batch_no,
    expiry_date,
    quantity,
    max_quantity: int | None = None,
) -> GenerationResult:
    """
    Label-first generation.

    The order is upserted; boxes start CREATED with no location and one
    QR_CREATED event each, awaiting warehouse receive.
    """
    qty = parse_positive_int(quantity, "quantity", maximum=max_quantity)
    expiry = parse_calendar_date(expiry_date, "expiryDate")
    batch_no = _clean_batch(batch_no)

    authorize(TransferOperation.GENERATE, actor)

    order, _ = order_service.upsert_order(order_number)
    product = order_service.upsert_product(product_code, product_name)

    boxes = _create_boxes(
        order=order,
        product=product,
        batch_no=batch_no,
        expiry_date=expiry,
        quantity=qty,
        status=BoxStatus.CREATED,
        facility_id=None,
    )

    ledger_service.append_events(
        {
            "box_id": box.id,
            "event_type": BoxEventType.QR_CREATED,
            "performed_by_user_id": actor.id,
            "note": f"QR generated for {box.box_uid}",
        }
        for box in boxes
    )

    return GenerationResult(order=order, product=product, box_uids=[b.box_uid for b in boxes])


def resolve_boxes(box_uids: list[str], lock: bool = True) -> list[Box]:
    """
    Load every box in one query, in the order the UIDs were given.

    Unknown UIDs fail the whole batch with a 400 NotFoundError listing each
    missing identifier. With lock=True the rows are selected FOR UPDATE.
    """
    query = db.session.query(Box).filter(Box.box_uid.in_(box_uids))
    if lock:
        query = lock_for_update(query)
    found = {b.box_uid: b for b in query.all()}

    missing = [uid for uid in box_uids if uid not in found]
    if missing:
        raise NotFoundError(
            "Some boxUids not found",
            details={"missing": missing},
            status_code=400,
        )
    return [found[uid] for uid in box_uids]


def get_box_by_uid(box_uid: str) -> Box:
    box_uid = (box_uid or "").strip()
    box = db.session.query(Box).filter_by(box_uid=box_uid).first() if box_uid else None
    if box is None:
        raise NotFoundError(f"Box not found: {box_uid}")
    return box


def box_lookup(box_uid: str, limit: int = 20) -> dict:
    """Box with order/product/location detail plus its newest events."""
    box = get_box_by_uid(box_uid)
    return {
        "box": box.to_detail_dict(),
        "events": ledger_service.box_history(box.id, limit=limit),
    }


def order_with_boxes(order_id) -> dict:
    order = order_service.get_order(order_id)
    boxes = (
        db.session.query(Box)
        .options(joinedload(Box.product), joinedload(Box.current_facility))
        .filter(Box.order_id == order.id)
        .order_by(Box.sequence_number.asc())
        .all()
    )
    return {
        **order.to_dict(),
        "boxes": [b.to_detail_dict() for b in boxes],
    }
