from __future__ import annotations

from ..extensions import db
from lmis.time_utils import to_utc_z, to_iso_date


class BoxStatus:
    """
    Box lifecycle states.

    Forward only: CREATED -> IN_WAREHOUSE -> IN_TRANSIT -> IN_FACILITY -> DISPENSED.
    VOID is terminal and reachable only through an administrative adjustment.
    """
    CREATED = "CREATED"
    IN_WAREHOUSE = "IN_WAREHOUSE"
    IN_TRANSIT = "IN_TRANSIT"
    IN_FACILITY = "IN_FACILITY"
    DISPENSED = "DISPENSED"
    VOID = "VOID"

    ALL = (CREATED, IN_WAREHOUSE, IN_TRANSIT, IN_FACILITY, DISPENSED, VOID)
    TERMINAL = (DISPENSED, VOID)


class BoxEventType:
    QR_CREATED = "QR_CREATED"
    WAREHOUSE_RECEIVE = "WAREHOUSE_RECEIVE"
    DISPATCH = "DISPATCH"
    FACILITY_RECEIVE = "FACILITY_RECEIVE"
    DISPENSE = "DISPENSE"
    ADJUSTMENT = "ADJUSTMENT"

    ALL = (QR_CREATED, WAREHOUSE_RECEIVE, DISPATCH, FACILITY_RECEIVE, DISPENSE, ADJUSTMENT)


class Order(db.Model):
    """Purchase order. Upserted by order_number before boxes are generated."""
    __tablename__ = "orders"
    __table_args__ = ({"sqlite_autoincrement": True},)

    id = db.Column(db.Integer, primary_key=True)
    order_number = db.Column(db.String(128), nullable=False, unique=True, index=True)
    donor_name = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<Order id={self.id} order_number={self.order_number!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "orderNumber": self.order_number,
            "donorName": self.donor_name,
            "createdAt": to_utc_z(self.created_at),
        }


class Product(db.Model):
    """Catalog item. Upserted by code."""
    __tablename__ = "products"
    __table_args__ = ({"sqlite_autoincrement": True},)

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(64), nullable=False, unique=True, index=True)
    name = db.Column(db.String(255), nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
        }


class OrderBoxSequence(db.Model):
    """
    Atomic per-order box counter.

    WHY: Box UIDs are {order_number}-{n}. Allocating n by counting existing
    boxes races under concurrent generation; one counter row per order,
    advanced with UPDATE ... SET next_number = next_number + k, does not.
    """
    __tablename__ = "order_box_sequences"
    __table_args__ = (
        db.UniqueConstraint("order_id", name="uq_order_box_sequences_order"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    order = db.relationship("Order", backref=db.backref("box_sequence", uselist=False, lazy=True))


class Box(db.Model):
    """
    A trackable physical unit.

    status/current_facility_id is a projection of the latest event in
    box_events and is only mutated by the transfer engine, inside the same
    transaction as the event append.

    current_facility_id is null exactly when the box is IN_TRANSIT or
    CREATED (not yet received). DISPENSED and VOID boxes keep the facility
    where they left circulation.

    version_id enables optimistic locking: a concurrent writer that lost the
    race gets StaleDataError on flush instead of silently overwriting.
    """
    __tablename__ = "boxes"
    __table_args__ = (
        db.Index("ix_boxes_facility_status", "current_facility_id", "status"),
        db.Index("ix_boxes_order_sequence", "order_id", "sequence_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    box_uid = db.Column(db.String(191), nullable=False, unique=True, index=True)
    sequence_number = db.Column(db.Integer, nullable=False)

    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    batch_no = db.Column(db.String(64), nullable=False, index=True)
    expiry_date = db.Column(db.Date, nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default=BoxStatus.CREATED, index=True)
    current_facility_id = db.Column(
        db.Integer,
        db.ForeignKey("facilities.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    order = db.relationship("Order", backref=db.backref("boxes", lazy=True, order_by="Box.sequence_number"))
    product = db.relationship("Product")
    current_facility = db.relationship("Facility")

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Box id={self.id} box_uid={self.box_uid!r} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "boxUid": self.box_uid,
            "orderId": self.order_id,
            "productId": self.product_id,
            "batchNo": self.batch_no,
            "expiryDate": to_iso_date(self.expiry_date),
            "status": self.status,
            "currentFacilityId": self.current_facility_id,
            "createdAt": to_utc_z(self.created_at),
            "updatedAt": to_utc_z(self.updated_at),
        }

    def to_detail_dict(self) -> dict:
        return {
            **self.to_dict(),
            "orderNumber": self.order.order_number if self.order else None,
            "product": self.product.to_dict() if self.product else None,
            "currentFacility": self.current_facility.summary() if self.current_facility else None,
        }


class BoxEvent(db.Model):
    """
    Append-only box ledger.

    - One row per state transition; never updated or deleted (the order
      reset utility is the only purge path).
    - id is strictly increasing, so "latest" orders by (created_at, id).
    """
    __tablename__ = "box_events"
    __table_args__ = (
        db.Index("ix_box_events_box_type_created", "box_id", "type", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    box_id = db.Column(db.Integer, db.ForeignKey("boxes.id"), nullable=False, index=True)
    type = db.Column(db.String(32), nullable=False, index=True)

    performed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    from_facility_id = db.Column(db.Integer, db.ForeignKey("facilities.id", ondelete="SET NULL"), nullable=True, index=True)
    to_facility_id = db.Column(db.Integer, db.ForeignKey("facilities.id", ondelete="SET NULL"), nullable=True, index=True)

    note = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    box = db.relationship("Box", backref=db.backref("events", lazy="dynamic"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "boxId": self.box_id,
            "type": self.type,
            "performedByUserId": self.performed_by_user_id,
            "fromFacilityId": self.from_facility_id,
            "toFacilityId": self.to_facility_id,
            "note": self.note,
            "createdAt": to_utc_z(self.created_at),
        }
