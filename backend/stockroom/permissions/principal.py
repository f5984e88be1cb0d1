# Overview: The acting principal passed explicitly into every policy and ledger call.

from __future__ import annotations

from dataclasses import dataclass

from .roles import Role


@dataclass(frozen=True)
class Principal:
    """
    Authenticated actor evaluated by the policy engine.

    WHY explicit: services never consult request globals, so the policy
    engine and the ledger can be exercised without an HTTP request.

    INVARIANT: every role except super_admin carries a company_id.
    """
    user_id: int
    role: Role
    company_id: int | None = None
    department_id: int | None = None

    def __post_init__(self):
        if not isinstance(self.role, Role):
            object.__setattr__(self, "role", Role.parse(self.role))
        if self.role.is_tenant_bound and self.company_id is None:
            raise ValueError(f"{self.role.value} principal requires a company_id")

    @classmethod
    def from_profile(cls, profile) -> "Principal":
        return cls(
            user_id=profile.id,
            role=Role.parse(profile.role),
            company_id=profile.company_id,
            department_id=profile.department_id,
        )

    @property
    def is_super_admin(self) -> bool:
        return self.role is Role.SUPER_ADMIN
