# Overview: Lookups over the capability table.

from __future__ import annotations

from .definitions import CAPABILITY_TABLE
from .entities import Action, Entity
from .roles import MODIFY_ROLES, Role


def capabilities_for(role: Role) -> dict[Entity, frozenset[Action]]:
    """Full capability map for a role. Raises KeyError for a role missing from the table."""
    return CAPABILITY_TABLE[role]


def allowed_actions(role: Role, entity: Entity) -> frozenset[Action]:
    return capabilities_for(role)[entity]


def can_modify_role(role: Role) -> bool:
    return role in MODIFY_ROLES


def describe_role(role: Role) -> dict:
    """Serializable capability summary (used by the profile 'me' endpoint)."""
    caps = capabilities_for(role)
    return {
        "role": role.value,
        "can_modify": can_modify_role(role),
        "capabilities": {
            entity.value: sorted(action.value for action in actions)
            for entity, actions in caps.items()
            if actions
        },
    }


def validate_table() -> None:
    """Raise if any role or entity is missing from the capability table."""
    missing_roles = set(Role) - set(CAPABILITY_TABLE)
    if missing_roles:
        raise RuntimeError(f"capability table missing roles: {sorted(r.value for r in missing_roles)}")
    for role, caps in CAPABILITY_TABLE.items():
        missing = set(Entity) - set(caps)
        if missing:
            raise RuntimeError(
                f"capability table for {role.value} missing entities: {sorted(e.value for e in missing)}"
            )
