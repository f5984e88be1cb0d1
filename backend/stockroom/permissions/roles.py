# Overview: Closed set of principal roles and their ordering.

from __future__ import annotations

from enum import Enum


class Role(str, Enum):
    """
    The four principal roles.

    WHY an Enum: a role string that is not one of these cannot be
    constructed, so the capability table never sees an unknown role.
    """
    SUPER_ADMIN = "super_admin"
    COMPANY_OWNER = "company_owner"
    DEPARTMENT_MANAGER = "department_manager"
    STAFF = "staff"

    @classmethod
    def parse(cls, value) -> "Role":
        """Role from its wire value; raises ValueError for anything else."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise ValueError(f"unknown role: {value!r}") from None

    @property
    def rank(self) -> int:
        return ROLE_RANK[self]

    @property
    def is_tenant_bound(self) -> bool:
        """Every role except super_admin must belong to a company."""
        return self is not Role.SUPER_ADMIN


# Higher rank outranks lower. Nobody may assign a role above their own.
ROLE_RANK = {
    Role.STAFF: 1,
    Role.DEPARTMENT_MANAGER: 2,
    Role.COMPANY_OWNER: 3,
    Role.SUPER_ADMIN: 4,
}

# Roles allowed to run bulk stock operations, CSV imports and product creation
MODIFY_ROLES = frozenset({Role.SUPER_ADMIN, Role.COMPANY_OWNER, Role.DEPARTMENT_MANAGER})
