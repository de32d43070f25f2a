# Overview: Role constants and the authenticated actor identity.

from __future__ import annotations

from dataclasses import dataclass


class Role:
    """User roles. SUPER_ADMIN is the only administrative role."""
    SUPER_ADMIN = "SUPER_ADMIN"
    WAREHOUSE_OFFICER = "WAREHOUSE_OFFICER"
    FACILITY_OFFICER = "FACILITY_OFFICER"
    CLINICIAN = "CLINICIAN"
    VIEWER = "VIEWER"

    ALL = (SUPER_ADMIN, WAREHOUSE_OFFICER, FACILITY_OFFICER, CLINICIAN, VIEWER)


ADMIN_ROLES = frozenset({Role.SUPER_ADMIN})


def is_admin_role(role: str | None) -> bool:
    return role in ADMIN_ROLES


@dataclass(frozen=True)
class Actor:
    """
    Authenticated identity injected by require_auth.

    This is all the core needs from authentication: who, in which role,
    operating from which facility.
    """
    id: int
    role: str
    facility_id: int | None = None

    @property
    def is_admin(self) -> bool:
        return is_admin_role(self.role)

    def to_dict(self) -> dict:
        return {"id": self.id, "role": self.role, "facilityId": self.facility_id}
