# Overview: Orders and products (reference data) plus the per-order box number allocator.

from __future__ import annotations

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Box, BoxEvent, Order, OrderBoxSequence, Product
from ..validation import NotFoundError, ValidationError


def upsert_order(order_number: str, donor_name: str | None = None) -> tuple[Order, bool]:
    """
    Find or create an order by number.

    Returns (order, created). An existing order only gains a donor name if
    it had none.
    """
    order_number = (order_number or "").strip()
    if not order_number:
        raise ValidationError("orderNumber is required")
    donor_name = (donor_name or "").strip() or None

    order = db.session.query(Order).filter_by(order_number=order_number).first()
    if order:
        if donor_name and not order.donor_name:
            order.donor_name = donor_name
            db.session.flush()
        return order, False

    order = Order(order_number=order_number, donor_name=donor_name)
    db.session.add(order)
    db.session.flush()
    return order, True


def get_order(order_id) -> Order:
    order = None
    if order_id is not None and str(order_id).strip().isdigit():
        order = db.session.get(Order, int(order_id))
    if order is None:
        raise NotFoundError("Order not found")
    return order


def get_order_by_number(order_number: str) -> Order | None:
    return db.session.query(Order).filter_by(order_number=(order_number or "").strip()).first()


def apply_donor(order: Order, donor_name: str | None) -> None:
    """Set the donor on an order once; a different donor is rejected."""
    donor_name = (donor_name or "").strip() or None
    if not donor_name:
        return
    if order.donor_name and order.donor_name != donor_name:
        raise ValidationError(
            f'Order already has donorName="{order.donor_name}". You sent "{donor_name}".'
        )
    if not order.donor_name:
        order.donor_name = donor_name


def upsert_product(code: str, name: str | None = None) -> Product:
    """Find or create a product by code; a supplied name refreshes the display name."""
    code = (code or "").strip()
    if not code:
        raise ValidationError("productCode is required")
    name = (name or "").strip() or None

    product = db.session.query(Product).filter_by(code=code).first()
    if product:
        if name and product.name != name:
            product.name = name
        return product

    product = Product(code=code, name=name or code)
    db.session.add(product)
    db.session.flush()
    return product


def allocate_box_numbers(order_id: int, count: int) -> int:
    """
    Atomically reserve `count` consecutive box numbers for an order.

    Returns the first reserved number. Uses a single
    UPDATE ... SET next_number = next_number + count on the order's counter
    row, so concurrent generators never overlap. The first allocation
    inserts the row inside a savepoint and falls back to the update if a
    concurrent request inserted it first.
    """
    if count <= 0:
        raise ValidationError("count must be positive")

    stmt = (
        update(OrderBoxSequence)
        .where(OrderBoxSequence.order_id == order_id)
        .values(next_number=OrderBoxSequence.next_number + count)
    )

    def _reserved_start() -> int:
        current = (
            db.session.query(OrderBoxSequence.next_number)
            .filter_by(order_id=order_id)
            .scalar()
        )
        return current - count

    result = db.session.execute(stmt)
    if result.rowcount:
        return _reserved_start()

    # Orders with boxes from before the counter existed continue after the highest number
    highest = (
        db.session.query(func.max(Box.sequence_number))
        .filter(Box.order_id == order_id)
        .scalar()
    ) or 0
    start = highest + 1

    try:
        with db.session.begin_nested():
            db.session.add(OrderBoxSequence(order_id=order_id, next_number=start + count))
        return start
    except IntegrityError:
        result = db.session.execute(stmt)
        if not result.rowcount:
            raise
        return _reserved_start()


def reset_order(order_number: str, donor_name: str | None = None) -> dict:
    """
    Administrative purge of one order's boxes and their events.

    The only path that deletes ledger rows. The box counter restarts at 1.
    """
    order = get_order_by_number(order_number)
    if order is None:
        raise NotFoundError(f"Order not found: {order_number}")

    if donor_name:
        order.donor_name = donor_name.strip()

    box_ids = select(Box.id).where(Box.order_id == order.id)

    deleted_events = (
        db.session.query(BoxEvent)
        .filter(BoxEvent.box_id.in_(box_ids))
        .delete(synchronize_session=False)
    )
    deleted_boxes = (
        db.session.query(Box)
        .filter(Box.order_id == order.id)
        .delete(synchronize_session=False)
    )
    db.session.query(OrderBoxSequence).filter_by(order_id=order.id).delete(synchronize_session=False)
    db.session.flush()

    return {
        "orderNumber": order.order_number,
        "deletedEvents": deleted_events,
        "deletedBoxes": deleted_boxes,
    }
