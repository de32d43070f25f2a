# Overview: Facility directory; resolves transfer endpoints and maintains the warehouse hierarchy.

from __future__ import annotations

from sqlalchemy import or_

from ..extensions import db
from ..models import Facility, FacilityType
from ..permissions import Actor, Role
from ..validation import AuthorizationError, ConflictError, NotFoundError, ValidationError, clean_codes
from .concurrency import lock_for_update


def normalize_type(value: str | None) -> str:
    """Anything other than WAREHOUSE is a FACILITY."""
    if not value:
        return FacilityType.FACILITY
    return FacilityType.WAREHOUSE if str(value).strip().upper() == FacilityType.WAREHOUSE else FacilityType.FACILITY


def find_by_id_or_code(value) -> Facility | None:
    """Resolve a facility by integer id or by code."""
    if value is None:
        return None
    if isinstance(value, int) and not isinstance(value, bool):
        return db.session.get(Facility, value)

    s = str(value).strip()
    if not s:
        return None
    facility = db.session.query(Facility).filter_by(code=s).first()
    if facility is None and s.isdigit():
        facility = db.session.get(Facility, int(s))
    return facility


def assert_exists(value, label: str = "Facility") -> Facility:
    facility = find_by_id_or_code(value)
    if facility is None:
        raise NotFoundError(f"{label} not found", details={"missing": [str(value)]})
    return facility


def get_actor_facility(actor: Actor) -> Facility:
    """The facility the actor operates from."""
    if not actor.facility_id:
        raise AuthorizationError("Your user has no facility assigned")
    facility = db.session.get(Facility, actor.facility_id)
    if facility is None:
        raise NotFoundError("Your assigned facility does not exist")
    return facility


def create_facility(
    *,
    code: str,
    name: str,
    facility_type: str | None = None,
    warehouse_id=None,
) -> Facility:
    """
    Create a facility.

    warehouse_id is honoured only for FACILITY rows and must reference a
    WAREHOUSE; a WAREHOUSE is never linked to another warehouse.
    """
    code = (code or "").strip()
    name = (name or "").strip()
    if not code or not name:
        raise ValidationError("code and name are required")

    facility_type = normalize_type(facility_type)

    if db.session.query(Facility).filter_by(code=code).first():
        raise ConflictError(f"Facility code {code} already exists")

    warehouse = None
    if facility_type == FacilityType.FACILITY and warehouse_id:
        warehouse = find_by_id_or_code(warehouse_id)
        if warehouse is None:
            raise ValidationError("warehouseId not found")
        if warehouse.type != FacilityType.WAREHOUSE:
            raise ValidationError("warehouseId must reference a WAREHOUSE facility")

    facility = Facility(
        code=code,
        name=name,
        type=facility_type,
        warehouse_id=warehouse.id if warehouse else None,
    )
    db.session.add(facility)
    db.session.flush()
    return facility


def facilities_owned_by(warehouse_id: int) -> list[Facility]:
    return (
        db.session.query(Facility)
        .filter_by(type=FacilityType.FACILITY, warehouse_id=warehouse_id)
        .order_by(Facility.name.asc())
        .all()
    )


def owning_warehouse(facility_id: int) -> Facility | None:
    """The warehouse that owns a facility; a warehouse owns itself."""
    facility = db.session.get(Facility, facility_id)
    if facility is None:
        raise NotFoundError("Facility not found")
    if facility.type == FacilityType.WAREHOUSE:
        return facility
    return facility.warehouse


def _require_link_pair(facility: Facility, warehouse: Facility) -> None:
    if facility.type != FacilityType.FACILITY:
        raise ValidationError(f"{facility.code} is a WAREHOUSE and cannot be linked to a warehouse")
    if warehouse.type != FacilityType.WAREHOUSE:
        raise ValidationError(f"{warehouse.code} is not a WAREHOUSE")


def link_to_warehouse(facility_ref, warehouse_ref) -> Facility:
    """Point one FACILITY at its owning warehouse."""
    facility = assert_exists(facility_ref)
    warehouse = assert_exists(warehouse_ref, label="Warehouse")
    facility = lock_for_update(db.session.query(Facility).filter_by(id=facility.id)).one()
    _require_link_pair(facility, warehouse)

    facility.warehouse_id = warehouse.id
    db.session.flush()
    return facility


def link_many_by_code(warehouse_code: str, facility_codes) -> list[Facility]:
    """
    Link several facilities to one warehouse by code.

    All-or-nothing: unknown codes or a WAREHOUSE among the targets fail the
    whole request before anything is changed.
    """
    warehouse = assert_exists(warehouse_code, label="Warehouse")
    if warehouse.type != FacilityType.WAREHOUSE:
        raise ValidationError(f"{warehouse.code} is not a WAREHOUSE")

    codes = clean_codes(facility_codes, "facilityCodes")
    facilities = lock_for_update(
        db.session.query(Facility).filter(Facility.code.in_(codes))
    ).all()

    found = {f.code for f in facilities}
    missing = [c for c in codes if c not in found]
    if missing:
        raise NotFoundError("Some facility codes not found", details={"missing": missing})

    invalid = [f.code for f in facilities if f.type != FacilityType.FACILITY]
    if invalid:
        raise ValidationError("Warehouses cannot be linked to a warehouse", details={"invalid": invalid})

    for facility in facilities:
        facility.warehouse_id = warehouse.id
    db.session.flush()
    return sorted(facilities, key=lambda f: codes.index(f.code))


def backfill_unlinked(warehouse_code: str) -> int:
    """Link every FACILITY without a warehouse to `warehouse_code`. Returns the count."""
    warehouse = assert_exists(warehouse_code, label="Warehouse")
    if warehouse.type != FacilityType.WAREHOUSE:
        raise ValidationError(f"{warehouse.code} is not a WAREHOUSE")

    count = (
        db.session.query(Facility)
        .filter(Facility.type == FacilityType.FACILITY, Facility.warehouse_id.is_(None))
        .update({Facility.warehouse_id: warehouse.id}, synchronize_session=False)
    )
    db.session.flush()
    return count


def visible_facilities(actor: Actor, facility_type: str | None = None) -> list[Facility]:
    """
    Facilities the actor may list.

    - SUPER_ADMIN: all
    - WAREHOUSE_OFFICER: own warehouse + facilities under it
    - everyone else: only their own facility
    """
    wanted = normalize_type(facility_type) if facility_type else None
    query = db.session.query(Facility)

    if actor.is_admin:
        if wanted:
            query = query.filter_by(type=wanted)
        return query.order_by(Facility.type.asc(), Facility.name.asc()).all()

    if actor.role == Role.WAREHOUSE_OFFICER:
        warehouse = get_actor_facility(actor)
        if warehouse.type != FacilityType.WAREHOUSE:
            raise ValidationError("Your facilityId must point to a WAREHOUSE facility")

        if wanted == FacilityType.WAREHOUSE:
            return [warehouse]
        if wanted == FacilityType.FACILITY:
            return facilities_owned_by(warehouse.id)

        return (
            query.filter(or_(Facility.id == warehouse.id, Facility.warehouse_id == warehouse.id))
            .order_by(Facility.type.asc(), Facility.name.asc())
            .all()
        )

    if not actor.facility_id:
        return []
    own = db.session.get(Facility, actor.facility_id)
    if own is None or (wanted and own.type != wanted):
        return []
    return [own]
