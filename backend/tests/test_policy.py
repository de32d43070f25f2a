# Overview: Pytest coverage for the declarative transfer policy.

import pytest

from lmis.models import FacilityType
from lmis.permissions import (
    TRANSFER_POLICY,
    Actor,
    Role,
    TransferOperation,
    authorize,
    get_rule,
)
from lmis.validation import AuthorizationError


class TestPolicyTable:

    def test_every_operation_has_one_rule(self):
        operations = [
            TransferOperation.GENERATE,
            TransferOperation.WAREHOUSE_RECEIVE,
            TransferOperation.DISPATCH,
            TransferOperation.FACILITY_RECEIVE,
            TransferOperation.DISPENSE,
            TransferOperation.VOID,
        ]
        assert sorted(TRANSFER_POLICY) == sorted(operations)
        for op in operations:
            assert get_rule(op).operation == op

    def test_unknown_operation(self):
        with pytest.raises(KeyError):
            get_rule("TELEPORT")

    def test_facility_type_requirements(self):
        assert get_rule(TransferOperation.WAREHOUSE_RECEIVE).actor_facility_type == FacilityType.WAREHOUSE
        assert get_rule(TransferOperation.DISPATCH).actor_facility_type == FacilityType.WAREHOUSE
        assert get_rule(TransferOperation.DISPATCH).target_facility_type == FacilityType.FACILITY
        assert get_rule(TransferOperation.FACILITY_RECEIVE).actor_facility_type == FacilityType.FACILITY
        assert get_rule(TransferOperation.DISPENSE).actor_facility_type == FacilityType.FACILITY
        assert get_rule(TransferOperation.VOID).roles == frozenset({Role.SUPER_ADMIN})


class TestAuthorize:

    def test_role_not_allowed(self, db_session, warehouse):
        actor = Actor(id=1, role=Role.CLINICIAN, facility_id=warehouse.id)
        with pytest.raises(AuthorizationError, match="may not perform dispatch"):
            authorize(TransferOperation.DISPATCH, actor, actor_facility=warehouse)

    def test_missing_facility(self, db_session):
        actor = Actor(id=1, role=Role.WAREHOUSE_OFFICER)
        with pytest.raises(AuthorizationError, match="no facility assigned"):
            authorize(TransferOperation.WAREHOUSE_RECEIVE, actor)

    def test_wrong_actor_facility_type(self, db_session, facility):
        actor = Actor(id=1, role=Role.SUPER_ADMIN, facility_id=facility.id)
        with pytest.raises(AuthorizationError, match="WAREHOUSE"):
            authorize(TransferOperation.WAREHOUSE_RECEIVE, actor, actor_facility=facility)

    def test_dispatch_target_must_be_facility(self, db_session, warehouse, other_warehouse):
        actor = Actor(id=1, role=Role.SUPER_ADMIN, facility_id=warehouse.id)
        with pytest.raises(AuthorizationError, match="Target must be a FACILITY"):
            authorize(
                TransferOperation.DISPATCH, actor,
                actor_facility=warehouse, target_facility=other_warehouse,
            )

    def test_non_admin_limited_to_own_children(self, db_session, warehouse, facility, foreign_facility):
        actor = Actor(id=1, role=Role.WAREHOUSE_OFFICER, facility_id=warehouse.id)

        rule = authorize(TransferOperation.DISPATCH, actor, actor_facility=warehouse, target_facility=facility)
        assert rule.operation == TransferOperation.DISPATCH

        with pytest.raises(AuthorizationError, match="warehouseId mismatch"):
            authorize(
                TransferOperation.DISPATCH, actor,
                actor_facility=warehouse, target_facility=foreign_facility,
            )

    def test_admin_may_dispatch_outside_hierarchy(self, db_session, warehouse, foreign_facility):
        actor = Actor(id=1, role=Role.SUPER_ADMIN, facility_id=warehouse.id)
        authorize(TransferOperation.DISPATCH, actor, actor_facility=warehouse, target_facility=foreign_facility)

    def test_void_needs_no_facility(self, db_session):
        authorize(TransferOperation.VOID, Actor(id=1, role=Role.SUPER_ADMIN))
        with pytest.raises(AuthorizationError):
            authorize(TransferOperation.VOID, Actor(id=2, role=Role.WAREHOUSE_OFFICER))
