# Overview: Pytest coverage for per-facility stock rollups.

import pytest

from lmis.models import BoxStatus
from lmis.services import box_service, order_service, stock_service, transfer_service
from lmis.validation import AuthorizationError, NotFoundError


@pytest.fixture
def stock(db_session, as_actor, warehouse_officer, warehouse):
    actor = as_actor(warehouse_officer)
    order, _ = order_service.upsert_order("ORD-3")
    for product_code, batch_no, quantity in (("RUTF-01", "B2", 2), ("RUTF-01", "B1", 3), ("LNS-01", "L1", 1)):
        box_service.generate_at_warehouse(
            actor,
            order_id=order.id,
            product_code=product_code,
            product_name=None,
            batch_no=batch_no,
            expiry_date="2027-12-31",
            quantity=quantity,
            warehouse_ref=warehouse.id,
        )
    db_session.commit()


def test_groups_by_product_batch_expiry_status(db_session, as_actor, warehouse_officer, stock):
    body = stock_service.facility_stock(as_actor(warehouse_officer), "WH-01")

    assert body["facility"]["code"] == "WH-01"
    assert body["total"] == 6
    assert [(r["productCode"], r["batchNo"], r["count"]) for r in body["rows"]] == [
        ("LNS-01", "L1", 1),
        ("RUTF-01", "B1", 3),
        ("RUTF-01", "B2", 2),
    ]
    assert all(r["status"] == BoxStatus.IN_WAREHOUSE for r in body["rows"])
    assert body["rows"][0]["expiryDate"] == "2027-12-31"


def test_in_transit_boxes_leave_warehouse_stock(
    db_session, as_actor, warehouse_officer, facility_officer, facility, stock
):
    transfer_service.dispatch(as_actor(warehouse_officer), ["ORD-3-1", "ORD-3-2"], "FAC-01")
    db_session.commit()

    assert stock_service.facility_stock(as_actor(warehouse_officer), "WH-01")["total"] == 4
    assert stock_service.facility_stock(as_actor(facility_officer), "FAC-01")["total"] == 0

    transfer_service.facility_receive(as_actor(facility_officer), ["ORD-3-1", "ORD-3-2"])
    db_session.commit()

    body = stock_service.facility_stock(as_actor(facility_officer), facility.id)
    assert body["total"] == 2
    assert body["rows"][0]["status"] == BoxStatus.IN_FACILITY


def test_dispensed_boxes_are_counted_by_status(
    db_session, as_actor, warehouse_officer, facility_officer, clinician, facility, stock
):
    transfer_service.dispatch(as_actor(warehouse_officer), ["ORD-3-1", "ORD-3-2"], "FAC-01")
    transfer_service.facility_receive(as_actor(facility_officer), ["ORD-3-1", "ORD-3-2"])
    transfer_service.dispense(as_actor(clinician), "ORD-3-1")
    db_session.commit()

    rows = stock_service.facility_stock(as_actor(clinician), "FAC-01")["rows"]
    assert sorted((r["status"], r["count"]) for r in rows) == [
        (BoxStatus.DISPENSED, 1),
        (BoxStatus.IN_FACILITY, 1),
    ]


def test_other_facility_is_forbidden(db_session, as_actor, facility_officer, warehouse):
    with pytest.raises(AuthorizationError, match="your own facility"):
        stock_service.facility_stock(as_actor(facility_officer), "WH-01")


def test_admin_sees_any_facility(db_session, as_actor, admin, facility):
    body = stock_service.facility_stock(as_actor(admin), "FAC-01")
    assert body == {"message": "OK", "facility": facility.summary(), "rows": [], "total": 0}


def test_unknown_facility(db_session, as_actor, admin):
    with pytest.raises(NotFoundError):
        stock_service.facility_stock(as_actor(admin), "NOPE")
