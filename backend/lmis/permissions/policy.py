# Overview: Declarative authorization table for box transfer operations.

"""
Transfer policy.

Each operation has exactly one rule, keyed by operation, naming:
- the roles allowed to run it,
- the facility type the actor must operate from (None: no facility needed),
- the facility type the target must have (dispatch destination, generation
  warehouse),
- whether non-admin actors are limited to facilities owned by their warehouse.

authorize() evaluates the rule once, before any box is read for mutation.
"""

from __future__ import annotations

from dataclasses import dataclass

from ..models import Facility, FacilityType
from ..validation import AuthorizationError
from .roles import Actor, Role


class TransferOperation:
    GENERATE = "GENERATE"
    WAREHOUSE_RECEIVE = "WAREHOUSE_RECEIVE"
    DISPATCH = "DISPATCH"
    FACILITY_RECEIVE = "FACILITY_RECEIVE"
    DISPENSE = "DISPENSE"
    VOID = "VOID"


@dataclass(frozen=True)
class TransferRule:
    operation: str
    roles: frozenset[str]
    actor_facility_type: str | None
    target_facility_type: str | None = None
    child_facilities_only: bool = False


TRANSFER_POLICY: dict[str, TransferRule] = {
    TransferOperation.GENERATE: TransferRule(
        operation=TransferOperation.GENERATE,
        roles=frozenset({Role.SUPER_ADMIN, Role.WAREHOUSE_OFFICER}),
        actor_facility_type=None,
        target_facility_type=FacilityType.WAREHOUSE,
    ),
    TransferOperation.WAREHOUSE_RECEIVE: TransferRule(
        operation=TransferOperation.WAREHOUSE_RECEIVE,
        roles=frozenset({Role.SUPER_ADMIN, Role.WAREHOUSE_OFFICER}),
        actor_facility_type=FacilityType.WAREHOUSE,
    ),
    TransferOperation.DISPATCH: TransferRule(
        operation=TransferOperation.DISPATCH,
        roles=frozenset({Role.SUPER_ADMIN, Role.WAREHOUSE_OFFICER}),
        actor_facility_type=FacilityType.WAREHOUSE,
        target_facility_type=FacilityType.FACILITY,
        child_facilities_only=True,
    ),
    TransferOperation.FACILITY_RECEIVE: TransferRule(
        operation=TransferOperation.FACILITY_RECEIVE,
        roles=frozenset({Role.SUPER_ADMIN, Role.FACILITY_OFFICER}),
        actor_facility_type=FacilityType.FACILITY,
    ),
    TransferOperation.DISPENSE: TransferRule(
        operation=TransferOperation.DISPENSE,
        roles=frozenset({Role.SUPER_ADMIN, Role.CLINICIAN}),
        actor_facility_type=FacilityType.FACILITY,
    ),
    TransferOperation.VOID: TransferRule(
        operation=TransferOperation.VOID,
        roles=frozenset({Role.SUPER_ADMIN}),
        actor_facility_type=None,
    ),
}


def get_rule(operation: str) -> TransferRule:
    rule = TRANSFER_POLICY.get(operation)
    if rule is None:
        raise KeyError(f"No transfer rule for operation {operation}")
    return rule


def authorize(
    operation: str,
    actor: Actor,
    actor_facility: Facility | None = None,
    target_facility: Facility | None = None,
) -> TransferRule:
    """
    Raise AuthorizationError unless the rule for `operation` admits the actor.

    Target facility *existence* is the caller's concern (NotFoundError); this
    only judges whether the actor may act on it.
    """
    rule = get_rule(operation)
    label = operation.lower().replace("_", "-")

    if actor.role not in rule.roles:
        raise AuthorizationError(
            f"Role {actor.role} may not perform {label}",
            details={"operation": operation, "allowedRoles": sorted(rule.roles)},
        )

    if rule.actor_facility_type is not None:
        if actor_facility is None:
            raise AuthorizationError("Your user has no facility assigned")
        if actor_facility.type != rule.actor_facility_type:
            raise AuthorizationError(
                f"You must be assigned to a {rule.actor_facility_type} to {label}",
                details={"operation": operation, "yourFacility": actor_facility.code},
            )

    if rule.target_facility_type is not None and target_facility is not None:
        if target_facility.type != rule.target_facility_type:
            raise AuthorizationError(
                f"Target must be a {rule.target_facility_type} (got {target_facility.type})",
                details={"operation": operation, "target": target_facility.code},
            )

    if rule.child_facilities_only and not actor.is_admin and target_facility is not None:
        if actor_facility is None or target_facility.warehouse_id != actor_facility.id:
            raise AuthorizationError(
                "This facility is not under your warehouse (warehouseId mismatch)",
                details={
                    "yourWarehouse": actor_facility.code if actor_facility else None,
                    "toFacility": target_facility.code,
                },
            )

    return rule
