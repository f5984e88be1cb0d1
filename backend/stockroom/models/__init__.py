from .tenancy import Company, Department, DEFAULT_DEPARTMENTS, SUBSCRIPTION_PLANS
from .auth import Profile, SessionToken, Invite
from .security import SecurityEvent
from .inventory import Product, StockMovement, format_cents
from .suppliers import Supplier, SupplierQuote
from .purchasing import PurchaseOrder, PurchaseOrderItem, PO_STATUSES
from .documents import DocumentSequence
from .imports import ImportBatch, IMPORT_TYPES

__all__ = [
    'Company', 'Department', 'DEFAULT_DEPARTMENTS', 'SUBSCRIPTION_PLANS',
    'Profile', 'SessionToken', 'Invite',
    'SecurityEvent',
    'Product', 'StockMovement', 'format_cents',
    'Supplier', 'SupplierQuote',
    'PurchaseOrder', 'PurchaseOrderItem', 'PO_STATUSES',
    'DocumentSequence',
    'ImportBatch', 'IMPORT_TYPES',
]
