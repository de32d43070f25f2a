# Overview: Pytest coverage for the box transfer engine (state machine, atomicity, destination checks).

"""
Transfer engine tests.

Verifies:
- Forward-only lifecycle CREATED -> IN_WAREHOUSE -> IN_TRANSIT -> IN_FACILITY -> DISPENSED
- All-or-nothing batches: a single bad box leaves every box and the ledger untouched
- Duplicate warehouse scans are skipped, not failed
- Facility receive honours the latest DISPATCH destination (admins bypass)
- Exactly one event per changed box with the right actor and facilities
"""

import pytest

from lmis.models import Box, BoxEvent, BoxEventType, BoxStatus
from lmis.services import box_service, order_service, transfer_service
from lmis.services.concurrency import flush_or_conflict
from lmis.validation import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    PreconditionError,
    ValidationError,
)


def _box(db_session, uid):
    return db_session.query(Box).filter_by(box_uid=uid).one()


def _events(db_session, uid, event_type=None):
    query = db_session.query(BoxEvent).join(Box).filter(Box.box_uid == uid)
    if event_type:
        query = query.filter(BoxEvent.type == event_type)
    return query.order_by(BoxEvent.id).all()


@pytest.fixture
def stocked(db_session, as_actor, warehouse_officer, warehouse):
    """Scenario A: ORD-1-1..3 IN_WAREHOUSE at WH-01."""
    order, _ = order_service.upsert_order("ORD-1")
    box_service.generate_at_warehouse(
        as_actor(warehouse_officer),
        order_id=order.id,
        product_code="RUTF-01",
        product_name="Ready-to-use food",
        batch_no="B-2027",
        expiry_date="2027-04-30",
        quantity=3,
        warehouse_ref=warehouse.id,
    )
    db_session.commit()
    return ["ORD-1-1", "ORD-1-2", "ORD-1-3"]


@pytest.fixture
def labelled(db_session, as_actor, warehouse_officer):
    """ORD-7-1..3 in CREATED, not yet received."""
    box_service.generate_created(
        as_actor(warehouse_officer),
        order_number="ORD-7",
        product_code="LNS-01",
        product_name="Lipid nutrient supplement",
        batch_no="L1",
        expiry_date="2028-01-31",
        quantity=3,
    )
    db_session.commit()
    return ["ORD-7-1", "ORD-7-2", "ORD-7-3"]


@pytest.fixture
def dispatched(db_session, as_actor, warehouse_officer, facility, stocked):
    """Scenario B: ORD-1-1 dispatched WH-01 -> FAC-01."""
    transfer_service.dispatch(as_actor(warehouse_officer), ["ORD-1-1"], "FAC-01")
    db_session.commit()
    return "ORD-1-1"


class TestWarehouseReceive:

    def test_created_boxes_move_into_warehouse(
        self, db_session, as_actor, warehouse_officer, warehouse, labelled
    ):
        result = transfer_service.warehouse_receive(as_actor(warehouse_officer), labelled, note="dock 2")
        db_session.commit()

        assert result.updated == labelled
        assert result.skipped == []
        for uid in labelled:
            box = _box(db_session, uid)
            assert (box.status, box.current_facility_id) == (BoxStatus.IN_WAREHOUSE, warehouse.id)
            [ev] = _events(db_session, uid, BoxEventType.WAREHOUSE_RECEIVE)
            assert ev.to_facility_id == warehouse.id
            assert ev.performed_by_user_id == warehouse_officer.id
            assert ev.note == "dock 2"

    def test_duplicate_scan_is_skipped_not_failed(self, db_session, as_actor, warehouse_officer, labelled):
        actor = as_actor(warehouse_officer)
        transfer_service.warehouse_receive(actor, labelled[:2])
        db_session.commit()

        result = transfer_service.warehouse_receive(actor, labelled)
        db_session.commit()

        assert result.updated == ["ORD-7-3"]
        assert result.skipped == ["ORD-7-1", "ORD-7-2"]
        for uid in labelled:
            assert len(_events(db_session, uid, BoxEventType.WAREHOUSE_RECEIVE)) == 1

    def test_box_in_another_warehouse_fails_whole_batch(
        self, db_session, as_actor, make_user, other_warehouse, labelled, stocked
    ):
        officer_2 = make_user("WAREHOUSE_OFFICER", other_warehouse)

        with pytest.raises(PreconditionError) as exc:
            transfer_service.warehouse_receive(as_actor(officer_2), ["ORD-7-1", "ORD-1-1", "ORD-7-2"])
        db_session.rollback()

        assert "ORD-1-1" in exc.value.message
        assert exc.value.details == {"invalid": ["ORD-1-1"]}
        assert _box(db_session, "ORD-7-1").status == BoxStatus.CREATED
        assert _events(db_session, "ORD-7-1", BoxEventType.WAREHOUSE_RECEIVE) == []

    def test_facility_actor_is_denied(self, db_session, as_actor, make_user, facility, labelled):
        admin_at_facility = make_user("SUPER_ADMIN", facility)
        with pytest.raises(AuthorizationError, match="WAREHOUSE"):
            transfer_service.warehouse_receive(as_actor(admin_at_facility), labelled)

    def test_unknown_uids_are_listed(self, db_session, as_actor, warehouse_officer, labelled):
        with pytest.raises(NotFoundError) as exc:
            transfer_service.warehouse_receive(as_actor(warehouse_officer), ["ORD-7-1", "GHOST-1", "GHOST-2"])
        assert exc.value.details == {"missing": ["GHOST-1", "GHOST-2"]}
        assert exc.value.status_code == 400

    def test_empty_list(self, db_session, as_actor, warehouse_officer, warehouse):
        with pytest.raises(ValidationError):
            transfer_service.warehouse_receive(as_actor(warehouse_officer), [" ", ""])


class TestDispatch:

    def test_scenario_b(self, db_session, as_actor, warehouse_officer, warehouse, facility, stocked):
        result = transfer_service.dispatch(as_actor(warehouse_officer), ["ORD-1-1"], "FAC-01", note="truck 4")
        db_session.commit()

        assert result.count == 1
        assert (result.source.code, result.destination.code) == ("WH-01", "FAC-01")

        box = _box(db_session, "ORD-1-1")
        assert box.status == BoxStatus.IN_TRANSIT
        assert box.current_facility_id is None

        [ev] = _events(db_session, "ORD-1-1", BoxEventType.DISPATCH)
        assert (ev.from_facility_id, ev.to_facility_id) == (warehouse.id, facility.id)
        assert ev.performed_by_user_id == warehouse_officer.id

        # Untouched boxes stay put
        assert _box(db_session, "ORD-1-2").status == BoxStatus.IN_WAREHOUSE

    def test_one_bad_box_rolls_back_everything(
        self, db_session, as_actor, warehouse_officer, facility, stocked, dispatched
    ):
        events_before = db_session.query(BoxEvent).count()

        with pytest.raises(PreconditionError, match="ORD-1-1 is not IN_WAREHOUSE"):
            transfer_service.dispatch(as_actor(warehouse_officer), ["ORD-1-2", "ORD-1-1", "ORD-1-3"], "FAC-01")
        db_session.rollback()

        assert db_session.query(BoxEvent).count() == events_before
        assert _box(db_session, "ORD-1-2").status == BoxStatus.IN_WAREHOUSE
        assert _box(db_session, "ORD-1-3").status == BoxStatus.IN_WAREHOUSE

    def test_destination_outside_hierarchy(self, db_session, as_actor, warehouse_officer, foreign_facility, stocked):
        with pytest.raises(AuthorizationError, match="warehouseId mismatch"):
            transfer_service.dispatch(as_actor(warehouse_officer), stocked, "FAC-09")

    def test_admin_may_dispatch_outside_hierarchy(
        self, db_session, as_actor, make_user, warehouse, foreign_facility, stocked
    ):
        admin_at_wh = make_user("SUPER_ADMIN", warehouse)
        result = transfer_service.dispatch(as_actor(admin_at_wh), ["ORD-1-3"], "FAC-09")
        assert result.destination.code == "FAC-09"

    def test_destination_must_be_facility(self, db_session, as_actor, warehouse_officer, other_warehouse, stocked):
        with pytest.raises(AuthorizationError, match="Target must be a FACILITY"):
            transfer_service.dispatch(as_actor(warehouse_officer), stocked, "WH-02")

    def test_same_facility_refused(self, db_session, as_actor, warehouse_officer, stocked):
        with pytest.raises(ValidationError, match="same facility"):
            transfer_service.dispatch(as_actor(warehouse_officer), stocked, "WH-01")

    def test_unknown_destination(self, db_session, as_actor, warehouse_officer, stocked):
        with pytest.raises(NotFoundError, match="Destination facility not found"):
            transfer_service.dispatch(as_actor(warehouse_officer), stocked, "FAC-404")

    def test_destination_required(self, db_session, as_actor, warehouse_officer, stocked):
        with pytest.raises(ValidationError, match="toFacilityCode"):
            transfer_service.dispatch(as_actor(warehouse_officer), stocked, "")

    def test_created_box_cannot_skip_warehouse(
        self, db_session, as_actor, warehouse_officer, facility, labelled
    ):
        with pytest.raises(PreconditionError):
            transfer_service.dispatch(as_actor(warehouse_officer), ["ORD-7-1"], "FAC-01")


class TestFacilityReceive:

    def test_scenario_c(self, db_session, as_actor, facility_officer, warehouse, facility, dispatched):
        result = transfer_service.facility_receive(as_actor(facility_officer), [dispatched])
        db_session.commit()

        assert result.destination.code == "FAC-01"
        box = _box(db_session, dispatched)
        assert (box.status, box.current_facility_id) == (BoxStatus.IN_FACILITY, facility.id)

        [ev] = _events(db_session, dispatched, BoxEventType.FACILITY_RECEIVE)
        assert (ev.from_facility_id, ev.to_facility_id) == (warehouse.id, facility.id)
        assert ev.performed_by_user_id == facility_officer.id

    def test_scenario_d_wrong_facility(self, db_session, as_actor, facility_officer_2, dispatched):
        with pytest.raises(PreconditionError, match="dispatched to a different facility") as exc:
            transfer_service.facility_receive(as_actor(facility_officer_2), [dispatched])
        db_session.rollback()

        assert exc.value.details == {"wrongDestination": [dispatched]}
        box = _box(db_session, dispatched)
        assert (box.status, box.current_facility_id) == (BoxStatus.IN_TRANSIT, None)
        assert _events(db_session, dispatched, BoxEventType.FACILITY_RECEIVE) == []

    def test_admin_bypasses_destination_check(
        self, db_session, as_actor, make_user, facility_2, dispatched
    ):
        admin_at_fac2 = make_user("SUPER_ADMIN", facility_2)
        transfer_service.facility_receive(as_actor(admin_at_fac2), [dispatched])
        db_session.commit()

        assert _box(db_session, dispatched).current_facility_id == facility_2.id

    def test_latest_dispatch_wins(
        self, db_session, as_actor, make_user, warehouse, facility, facility_2, facility_officer, dispatched
    ):
        # Return the box to the warehouse via an admin receive, then redirect it
        box = _box(db_session, dispatched)
        box.status = BoxStatus.IN_WAREHOUSE
        box.current_facility_id = warehouse.id
        db_session.commit()

        admin_at_wh = make_user("SUPER_ADMIN", warehouse)
        transfer_service.dispatch(as_actor(admin_at_wh), [dispatched], "FAC-02")
        db_session.commit()

        with pytest.raises(PreconditionError):
            transfer_service.facility_receive(as_actor(facility_officer), [dispatched])
        db_session.rollback()

        officer_2 = make_user("FACILITY_OFFICER", facility_2)
        transfer_service.facility_receive(as_actor(officer_2), [dispatched])
        db_session.commit()
        assert _box(db_session, dispatched).current_facility_id == facility_2.id

    def test_box_not_in_transit(self, db_session, as_actor, facility_officer, facility, stocked):
        with pytest.raises(PreconditionError, match="not IN_TRANSIT"):
            transfer_service.facility_receive(as_actor(facility_officer), ["ORD-1-2"])

    def test_in_transit_without_dispatch_record(self, db_session, as_actor, make_user, facility, stocked):
        box = _box(db_session, "ORD-1-2")
        box.status = BoxStatus.IN_TRANSIT
        box.current_facility_id = None
        db_session.commit()

        admin_at_fac = make_user("SUPER_ADMIN", facility)
        with pytest.raises(PreconditionError, match="no DISPATCH record"):
            transfer_service.facility_receive(as_actor(admin_at_fac), ["ORD-1-2"])

    def test_warehouse_actor_is_denied(self, db_session, as_actor, make_user, warehouse, dispatched):
        admin_at_wh = make_user("SUPER_ADMIN", warehouse)
        with pytest.raises(AuthorizationError):
            transfer_service.facility_receive(as_actor(admin_at_wh), [dispatched])


class TestDispense:

    @pytest.fixture
    def received(self, db_session, as_actor, facility_officer, dispatched):
        transfer_service.facility_receive(as_actor(facility_officer), [dispatched])
        db_session.commit()
        return dispatched

    def test_scenario_e(self, db_session, as_actor, clinician, facility, received):
        result = transfer_service.dispense(as_actor(clinician), received, note="child 0042")
        db_session.commit()

        assert result.updated == [received]
        box = _box(db_session, received)
        assert box.status == BoxStatus.DISPENSED
        assert box.current_facility_id == facility.id

        [ev] = _events(db_session, received, BoxEventType.DISPENSE)
        assert ev.from_facility_id == facility.id
        assert ev.to_facility_id is None
        assert ev.performed_by_user_id == clinician.id

        with pytest.raises(PreconditionError, match="not available"):
            transfer_service.dispense(as_actor(clinician), received)

    def test_box_at_another_facility(self, db_session, as_actor, make_user, facility_2, received):
        clinician_2 = make_user("CLINICIAN", facility_2)
        with pytest.raises(PreconditionError, match="not available"):
            transfer_service.dispense(as_actor(clinician_2), received)

    def test_unknown_box(self, db_session, as_actor, clinician, received):
        with pytest.raises(NotFoundError):
            transfer_service.dispense(as_actor(clinician), "ORD-1-404")

    def test_officer_role_cannot_dispense(self, db_session, as_actor, facility_officer, received):
        with pytest.raises(AuthorizationError):
            transfer_service.dispense(as_actor(facility_officer), received)


class TestVoid:

    def test_admin_voids_with_note(self, db_session, as_actor, admin, warehouse, stocked):
        result = transfer_service.void_boxes(as_actor(admin), ["ORD-1-1", "ORD-1-2"], "water damage")
        db_session.commit()

        assert result.count == 2
        box = _box(db_session, "ORD-1-1")
        assert (box.status, box.current_facility_id) == (BoxStatus.VOID, warehouse.id)
        [ev] = _events(db_session, "ORD-1-1", BoxEventType.ADJUSTMENT)
        assert ev.note == "water damage"
        assert ev.from_facility_id == warehouse.id

    def test_note_required(self, db_session, as_actor, admin, stocked):
        with pytest.raises(ValidationError, match="note is required"):
            transfer_service.void_boxes(as_actor(admin), stocked, "  ")

    def test_terminal_boxes_cannot_be_voided(self, db_session, as_actor, admin, stocked):
        transfer_service.void_boxes(as_actor(admin), ["ORD-1-1"], "damaged")
        db_session.commit()

        with pytest.raises(PreconditionError, match="already VOID"):
            transfer_service.void_boxes(as_actor(admin), ["ORD-1-2", "ORD-1-1"], "again")
        db_session.rollback()
        assert _box(db_session, "ORD-1-2").status == BoxStatus.IN_WAREHOUSE

    def test_only_admin(self, db_session, as_actor, warehouse_officer, stocked):
        with pytest.raises(AuthorizationError):
            transfer_service.void_boxes(as_actor(warehouse_officer), stocked, "nope")

    def test_void_box_cannot_move_again(self, db_session, as_actor, admin, warehouse_officer, facility, stocked):
        transfer_service.void_boxes(as_actor(admin), ["ORD-1-1"], "expired")
        db_session.commit()

        with pytest.raises(PreconditionError):
            transfer_service.dispatch(as_actor(warehouse_officer), ["ORD-1-1"], "FAC-01")


class TestLifecycle:

    def test_full_path_appends_one_event_per_transition(
        self, db_session, as_actor, warehouse_officer, facility_officer, clinician, facility, labelled
    ):
        uid = labelled[0]
        transfer_service.warehouse_receive(as_actor(warehouse_officer), [uid])
        transfer_service.dispatch(as_actor(warehouse_officer), [uid], "FAC-01")
        transfer_service.facility_receive(as_actor(facility_officer), [uid])
        transfer_service.dispense(as_actor(clinician), uid)
        db_session.commit()

        assert [e.type for e in _events(db_session, uid)] == [
            BoxEventType.QR_CREATED,
            BoxEventType.WAREHOUSE_RECEIVE,
            BoxEventType.DISPATCH,
            BoxEventType.FACILITY_RECEIVE,
            BoxEventType.DISPENSE,
        ]
        assert _box(db_session, uid).status == BoxStatus.DISPENSED

    def test_dispensed_box_never_moves_backwards(
        self, db_session, as_actor, warehouse_officer, facility_officer, clinician, facility, dispatched
    ):
        transfer_service.facility_receive(as_actor(facility_officer), [dispatched])
        transfer_service.dispense(as_actor(clinician), dispatched)
        db_session.commit()

        with pytest.raises(PreconditionError):
            transfer_service.warehouse_receive(as_actor(warehouse_officer), [dispatched])
        db_session.rollback()
        with pytest.raises(PreconditionError):
            transfer_service.facility_receive(as_actor(facility_officer), [dispatched])
        db_session.rollback()
        with pytest.raises(PreconditionError):
            transfer_service.dispatch(as_actor(warehouse_officer), [dispatched], "FAC-01")


class TestConcurrentModification:

    def _bump_version_behind_session(self, db_session, uid):
        # Core UPDATE: the ORM identity map keeps the old version_id
        table = Box.__table__
        db_session.execute(
            table.update()
            .where(table.c.box_uid == uid)
            .values(version_id=table.c.version_id + 1)
        )

    def test_flush_advances_version(self, db_session, stocked):
        box = _box(db_session, "ORD-1-1")
        before = box.version_id
        box.status = BoxStatus.IN_TRANSIT
        flush_or_conflict()
        assert box.version_id == before + 1

    def test_lost_race_surfaces_as_conflict(self, db_session, stocked):
        box = _box(db_session, "ORD-1-1")
        self._bump_version_behind_session(db_session, "ORD-1-1")

        box.status = BoxStatus.IN_TRANSIT
        with pytest.raises(ConflictError) as exc:
            flush_or_conflict()
        db_session.rollback()

        assert exc.value.status_code == 409
        assert "resubmit" in exc.value.message
        assert _box(db_session, "ORD-1-1").status == BoxStatus.IN_WAREHOUSE
