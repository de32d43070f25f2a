# Overview: Permission system package.
# Re-exports all public APIs for short imports.

from .roles import Role, ADMIN_ROLES, Actor, is_admin_role
from .policy import TransferOperation, TransferRule, TRANSFER_POLICY, get_rule, authorize

__all__ = [
    "Role",
    "ADMIN_ROLES",
    "Actor",
    "is_admin_role",
    "TransferOperation",
    "TransferRule",
    "TRANSFER_POLICY",
    "get_rule",
    "authorize",
]
