from __future__ import annotations

from ..extensions import db
from lmis.time_utils import to_utc_z


class FacilityType:
    """Facility types. Fixed at creation."""
    WAREHOUSE = "WAREHOUSE"
    FACILITY = "FACILITY"

    ALL = (WAREHOUSE, FACILITY)


class Facility(db.Model):
    """
    A location node in the supply chain.

    HIERARCHY:
    - WAREHOUSE: upstream, dispatch-capable. Never linked to another warehouse.
    - FACILITY: downstream, receive/dispense-capable. Owned by one warehouse
      via warehouse_id (may be null only until an admin links it).

    type is immutable; warehouse_id is the only mutable hierarchy field.
    """
    __tablename__ = "facilities"
    __table_args__ = (
        db.CheckConstraint(
            "type = 'FACILITY' OR warehouse_id IS NULL",
            name="ck_facilities_warehouse_has_no_parent",
        ),
        db.Index("ix_facilities_type_name", "type", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(64), nullable=False, unique=True, index=True)
    name = db.Column(db.String(255), nullable=False)
    type = db.Column(db.String(16), nullable=False, default=FacilityType.FACILITY, index=True)

    # Owning warehouse (FACILITY rows only)
    warehouse_id = db.Column(db.Integer, db.ForeignKey("facilities.id"), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    warehouse = db.relationship("Facility", remote_side=[id], backref=db.backref("child_facilities", lazy=True))

    @property
    def is_warehouse(self) -> bool:
        return self.type == FacilityType.WAREHOUSE

    def __repr__(self) -> str:
        return f"<Facility id={self.id} code={self.code!r} type={self.type}>"

    def summary(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "type": self.type,
        }

    def to_dict(self) -> dict:
        return {
            **self.summary(),
            "warehouseId": self.warehouse_id,
            "createdAt": to_utc_z(self.created_at),
            "updatedAt": to_utc_z(self.updated_at),
        }
