# Overview: Actions and target entity kinds evaluated by the policy engine.

from enum import Enum


class Action(str, Enum):
    READ = "read"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class Entity(str, Enum):
    """Entity kinds a principal can act on."""
    COMPANY = "company"
    DEPARTMENT = "department"
    PROFILE = "profile"
    PRODUCT = "product"
    SUPPLIER = "supplier"
    SUPPLIER_QUOTE = "supplier_quote"
    STOCK_MOVEMENT = "stock_movement"
    PURCHASE_ORDER = "purchase_order"
    INVITE = "invite"
    IMPORT_BATCH = "import_batch"
