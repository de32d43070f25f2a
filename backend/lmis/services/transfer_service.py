# Overview: Transfer engine; validated box state transitions with atomic projection + ledger writes.

"""
Box transfer engine.

LIFECYCLE:
1. CREATED: label printed, not yet on a shelf
2. IN_WAREHOUSE: received at a warehouse (currentFacility = warehouse)
3. IN_TRANSIT: dispatched, currentFacility cleared
4. IN_FACILITY: received at the dispatch destination
5. DISPENSED: handed to a beneficiary (terminal)
VOID is terminal and only reachable through an administrative adjustment.

Every operation follows the same shape:
- authorize once against TRANSFER_POLICY,
- resolve every box in one locked lookup (unknown UIDs fail the batch),
- check every box's precondition before touching any of them,
- mutate projections and append one event per changed box, then flush.
Nothing commits here; the route commits once, or rolls back on any error,
so a batch is applied to all of its boxes or to none.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from ..extensions import db
from ..models import Box, BoxEventType, BoxStatus, Facility
from ..permissions import Actor, TransferOperation, authorize
from ..validation import (
    NotFoundError,
    PreconditionError,
    ValidationError,
    clean_note,
    normalize_box_uids,
)
from . import box_service, facility_service, ledger_service
from .concurrency import flush_or_conflict, lock_for_update


@dataclass
class TransferResult:
    operation: str
    updated: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    source: Facility | None = None
    destination: Facility | None = None

    @property
    def count(self) -> int:
        return len(self.updated)


def _actor_facility(actor: Actor) -> Facility | None:
    """The actor's facility, or None when no facility is assigned."""
    if not actor.facility_id:
        return None
    return facility_service.get_actor_facility(actor)


def _fail_first(message_for, offenders: list[Box], key: str = "invalid") -> None:
    """Raise PreconditionError naming the first offender and listing all of them."""
    if not offenders:
        return
    raise PreconditionError(
        message_for(offenders[0]),
        details={key: [b.box_uid for b in offenders]},
    )


def _set_projection(box: Box, status: str, facility_id: int | None) -> None:
    box.status = status
    box.current_facility_id = facility_id


def warehouse_receive(actor: Actor, box_uids, note=None) -> TransferResult:
    """
    CREATED -> IN_WAREHOUSE at the actor's warehouse.

    Boxes already IN_WAREHOUSE at the same warehouse are reported as skipped
    and get no new event, so duplicate scans are harmless.
    """
    uids = normalize_box_uids(box_uids)
    note = clean_note(note)

    warehouse = _actor_facility(actor)
    authorize(TransferOperation.WAREHOUSE_RECEIVE, actor, actor_facility=warehouse)

    boxes = box_service.resolve_boxes(uids)

    to_update: list[Box] = []
    skipped: list[Box] = []
    invalid: list[Box] = []
    for box in boxes:
        if box.status == BoxStatus.IN_WAREHOUSE and box.current_facility_id == warehouse.id:
            skipped.append(box)
        elif box.status == BoxStatus.CREATED:
            to_update.append(box)
        else:
            invalid.append(box)

    _fail_first(
        lambda b: f"Box {b.box_uid} is not in CREATED state (current: {b.status})",
        invalid,
    )

    for box in to_update:
        _set_projection(box, BoxStatus.IN_WAREHOUSE, warehouse.id)
    flush_or_conflict()

    ledger_service.append_events(
        {
            "box_id": box.id,
            "event_type": BoxEventType.WAREHOUSE_RECEIVE,
            "performed_by_user_id": actor.id,
            "to_facility_id": warehouse.id,
            "note": note,
        }
        for box in to_update
    )

    return TransferResult(
        operation=TransferOperation.WAREHOUSE_RECEIVE,
        updated=[b.box_uid for b in to_update],
        skipped=[b.box_uid for b in skipped],
        destination=warehouse,
    )


def dispatch(actor: Actor, box_uids, to_facility_code, note=None) -> TransferResult:
    """
    IN_WAREHOUSE (at the actor's warehouse) -> IN_TRANSIT toward a FACILITY.

    currentFacility is cleared so the boxes leave the warehouse's stock.
    Non-admin actors may only dispatch to facilities owned by their warehouse.
    """
    uids = normalize_box_uids(box_uids)
    note = clean_note(note)
    to_facility_code = (str(to_facility_code) if to_facility_code is not None else "").strip()
    if not to_facility_code:
        raise ValidationError("toFacilityCode is required")

    source = _actor_facility(actor)
    destination = db.session.query(Facility).filter_by(code=to_facility_code).first()
    if destination is None:
        raise NotFoundError("Destination facility not found", details={"missing": [to_facility_code]})
    if source is not None and destination.id == source.id:
        raise ValidationError("Cannot dispatch to the same facility")

    authorize(TransferOperation.DISPATCH, actor, actor_facility=source, target_facility=destination)

    boxes = box_service.resolve_boxes(uids)

    invalid = [
        b for b in boxes
        if b.status != BoxStatus.IN_WAREHOUSE or b.current_facility_id != source.id
    ]
    _fail_first(lambda b: f"Box {b.box_uid} is not IN_WAREHOUSE in your warehouse", invalid)

    for box in boxes:
        _set_projection(box, BoxStatus.IN_TRANSIT, None)
    flush_or_conflict()

    ledger_service.append_events(
        {
            "box_id": box.id,
            "event_type": BoxEventType.DISPATCH,
            "performed_by_user_id": actor.id,
            "from_facility_id": source.id,
            "to_facility_id": destination.id,
            "note": note,
        }
        for box in boxes
    )

    return TransferResult(
        operation=TransferOperation.DISPATCH,
        updated=[b.box_uid for b in boxes],
        source=source,
        destination=destination,
    )


def facility_receive(actor: Actor, box_uids, note=None) -> TransferResult:
    """
    IN_TRANSIT -> IN_FACILITY at the actor's facility.

    The latest DISPATCH event of each box must name the receiving facility;
    administrators bypass that destination check but still need a dispatch
    record.
    """
    uids = normalize_box_uids(box_uids)
    note = clean_note(note)

    facility = _actor_facility(actor)
    authorize(TransferOperation.FACILITY_RECEIVE, actor, actor_facility=facility)

    boxes = box_service.resolve_boxes(uids)

    not_in_transit = [b for b in boxes if b.status != BoxStatus.IN_TRANSIT]
    _fail_first(lambda b: f"Box {b.box_uid} is not IN_TRANSIT (current: {b.status})", not_in_transit)

    last_dispatch = ledger_service.latest_events_by_box(
        [b.id for b in boxes], BoxEventType.DISPATCH
    )

    no_dispatch = [b for b in boxes if b.id not in last_dispatch]
    _fail_first(lambda b: f"Box {b.box_uid} has no DISPATCH record (cannot receive)", no_dispatch)

    if not actor.is_admin:
        wrong_destination = [
            b for b in boxes if last_dispatch[b.id].to_facility_id != facility.id
        ]
        _fail_first(
            lambda b: f"Box {b.box_uid} was dispatched to a different facility (duplicate/route mismatch)",
            wrong_destination,
            key="wrongDestination",
        )

    for box in boxes:
        _set_projection(box, BoxStatus.IN_FACILITY, facility.id)
    flush_or_conflict()

    ledger_service.append_events(
        {
            "box_id": box.id,
            "event_type": BoxEventType.FACILITY_RECEIVE,
            "performed_by_user_id": actor.id,
            "from_facility_id": last_dispatch[box.id].from_facility_id,
            "to_facility_id": facility.id,
            "note": note,
        }
        for box in boxes
    )

    return TransferResult(
        operation=TransferOperation.FACILITY_RECEIVE,
        updated=[b.box_uid for b in boxes],
        destination=facility,
    )


def dispense(actor: Actor, box_uid, note=None) -> TransferResult:
    """IN_FACILITY (at the actor's facility) -> DISPENSED. One box per call."""
    box_uid = (str(box_uid) if box_uid is not None else "").strip()
    if not box_uid:
        raise ValidationError("boxUid is required")
    note = clean_note(note)

    facility = _actor_facility(actor)
    authorize(TransferOperation.DISPENSE, actor, actor_facility=facility)

    box = lock_for_update(db.session.query(Box).filter_by(box_uid=box_uid)).first()
    if box is None:
        raise NotFoundError("Box not found", details={"missing": [box_uid]})

    if box.status != BoxStatus.IN_FACILITY or box.current_facility_id != facility.id:
        raise PreconditionError(
            "Box is not available in your facility to dispense",
            details={"invalid": [box.box_uid]},
        )

    # Location is kept: the box left circulation at this facility
    box.status = BoxStatus.DISPENSED
    flush_or_conflict()

    ledger_service.append_event(
        box_id=box.id,
        event_type=BoxEventType.DISPENSE,
        performed_by_user_id=actor.id,
        from_facility_id=facility.id,
        note=note,
    )

    return TransferResult(
        operation=TransferOperation.DISPENSE,
        updated=[box.box_uid],
        source=facility,
    )


def void_boxes(actor: Actor, box_uids, note) -> TransferResult:
    """
    Administrative adjustment: any non-terminal box -> VOID.

    A note is mandatory. Location is kept; one ADJUSTMENT event per box.
    """
    uids = normalize_box_uids(box_uids)
    note = clean_note(note)
    if not note:
        raise ValidationError("note is required for an adjustment")

    authorize(TransferOperation.VOID, actor)

    boxes = box_service.resolve_boxes(uids)

    terminal = [b for b in boxes if b.status in BoxStatus.TERMINAL]
    _fail_first(lambda b: f"Box {b.box_uid} is already {b.status} and cannot be voided", terminal)

    for box in boxes:
        box.status = BoxStatus.VOID
    flush_or_conflict()

    ledger_service.append_events(
        {
            "box_id": box.id,
            "event_type": BoxEventType.ADJUSTMENT,
            "performed_by_user_id": actor.id,
            "from_facility_id": box.current_facility_id,
            "note": note,
        }
        for box in boxes
    )

    return TransferResult(
        operation=TransferOperation.VOID,
        updated=[b.box_uid for b in boxes],
    )
