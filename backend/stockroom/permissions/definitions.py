# Overview: Role capability table.
# Each role maps every Entity to the set of Actions it may perform within
# its scope (own company for tenant-bound roles, everything for super_admin).

from __future__ import annotations

from .entities import Action, Entity
from .roles import Role


ALL = frozenset(Action)
NONE: frozenset[Action] = frozenset()
READ = frozenset({Action.READ})
READ_UPDATE = frozenset({Action.READ, Action.UPDATE})
READ_CREATE = frozenset({Action.READ, Action.CREATE})
READ_CREATE_UPDATE = frozenset({Action.READ, Action.CREATE, Action.UPDATE})


SUPER_ADMIN_CAPABILITIES = {entity: ALL for entity in Entity}

COMPANY_OWNER_CAPABILITIES = {
    # The company row is the tenant itself: creating or deleting one is
    # reserved to super_admin.
    Entity.COMPANY: READ_UPDATE,
    Entity.DEPARTMENT: ALL,
    Entity.PROFILE: ALL,
    Entity.PRODUCT: ALL,
    Entity.SUPPLIER: ALL,
    Entity.SUPPLIER_QUOTE: ALL,
    Entity.STOCK_MOVEMENT: ALL,
    Entity.PURCHASE_ORDER: ALL,
    Entity.INVITE: ALL,
    Entity.IMPORT_BATCH: ALL,
}

DEPARTMENT_MANAGER_CAPABILITIES = {
    Entity.COMPANY: READ,
    Entity.DEPARTMENT: READ_UPDATE,
    Entity.PROFILE: READ_UPDATE,
    Entity.PRODUCT: READ_CREATE_UPDATE,
    Entity.SUPPLIER: READ_CREATE_UPDATE,
    Entity.SUPPLIER_QUOTE: READ_CREATE_UPDATE,
    Entity.STOCK_MOVEMENT: READ_CREATE_UPDATE,
    Entity.PURCHASE_ORDER: READ_CREATE_UPDATE,
    Entity.INVITE: READ_CREATE,
    Entity.IMPORT_BATCH: READ_CREATE,
}

STAFF_CAPABILITIES = {
    Entity.COMPANY: READ,
    Entity.DEPARTMENT: READ,
    Entity.PROFILE: NONE,
    Entity.PRODUCT: READ,
    Entity.SUPPLIER: READ,
    Entity.SUPPLIER_QUOTE: READ,
    Entity.STOCK_MOVEMENT: READ_CREATE,
    Entity.PURCHASE_ORDER: READ,
    Entity.INVITE: NONE,
    Entity.IMPORT_BATCH: NONE,
}

CAPABILITY_TABLE: dict[Role, dict[Entity, frozenset[Action]]] = {
    Role.SUPER_ADMIN: SUPER_ADMIN_CAPABILITIES,
    Role.COMPANY_OWNER: COMPANY_OWNER_CAPABILITIES,
    Role.DEPARTMENT_MANAGER: DEPARTMENT_MANAGER_CAPABILITIES,
    Role.STAFF: STAFF_CAPABILITIES,
}
