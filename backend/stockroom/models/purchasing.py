from __future__ import annotations

from ..extensions import db
from stockroom.time_utils import to_utc_z
from .inventory import format_cents


PO_STATUSES = ("pending", "approved", "sent", "received", "cancelled")


class PurchaseOrder(db.Model):
    """
    Purchase order to a supplier.

    LIFECYCLE: pending -> approved -> sent -> received
               pending | approved | sent -> cancelled

    INVARIANTS:
    - po_number is allocated once from the global sequence and never changes
    - total_amount_cents is the sum of the items' totals at creation time
      (a snapshot, never recomputed)
    - receiving emits one 'in' movement per item under receipt_batch_id,
      atomically with the status change
    """
    __tablename__ = "purchase_orders"
    __table_args__ = (
        db.UniqueConstraint("po_number", name="uq_purchase_orders_po_number"),
        db.Index("ix_purchase_orders_company_status", "company_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    po_number = db.Column(db.String(32), nullable=False)

    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("profiles.id"), nullable=True)

    status = db.Column(db.String(16), nullable=False, default="pending")
    total_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    expected_delivery = db.Column(db.Date, nullable=True)
    notes = db.Column(db.Text, nullable=True)

    received_at = db.Column(db.DateTime(timezone=True), nullable=True)
    receipt_batch_id = db.Column(db.String(32), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    supplier = db.relationship("Supplier", backref=db.backref("purchase_orders", lazy=True))
    items = db.relationship(
        "PurchaseOrderItem",
        backref="purchase_order",
        lazy=True,
        order_by="PurchaseOrderItem.id",
    )

    def to_dict(self, *, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "company_id": self.company_id,
            "po_number": self.po_number,
            "supplier_id": self.supplier_id,
            "supplier_name": self.supplier.name if self.supplier else None,
            "user_id": self.user_id,
            "status": self.status,
            "total_amount_cents": self.total_amount_cents,
            "total_amount": format_cents(self.total_amount_cents),
            "expected_delivery": self.expected_delivery.isoformat() if self.expected_delivery else None,
            "notes": self.notes,
            "received_at": to_utc_z(self.received_at),
            "receipt_batch_id": self.receipt_batch_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class PurchaseOrderItem(db.Model):
    """Line of a purchase order. Immutable after the order is created."""
    __tablename__ = "purchase_order_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_po_items_quantity_positive"),
        db.CheckConstraint("unit_price_cents >= 0", name="ck_po_items_price_nonnegative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    purchase_order_id = db.Column(db.Integer, db.ForeignKey("purchase_orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    total_price_cents = db.Column(db.Integer, nullable=False)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "purchase_order_id": self.purchase_order_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "unit_price": format_cents(self.unit_price_cents),
            "total_price_cents": self.total_price_cents,
            "total_price": format_cents(self.total_price_cents),
        }
