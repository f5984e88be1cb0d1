# Overview: Authorization vocabulary package.
# Re-exports roles, actions, entities, the capability table and Principal.

from .roles import Role, ROLE_RANK, MODIFY_ROLES
from .entities import Action, Entity
from .definitions import CAPABILITY_TABLE
from .principal import Principal
from .helpers import (
    allowed_actions,
    can_modify_role,
    capabilities_for,
    describe_role,
    validate_table,
)

validate_table()

__all__ = [
    "Role",
    "ROLE_RANK",
    "MODIFY_ROLES",
    "Action",
    "Entity",
    "CAPABILITY_TABLE",
    "Principal",
    "allowed_actions",
    "can_modify_role",
    "capabilities_for",
    "describe_role",
    "validate_table",
]
