from __future__ import annotations

from sqlalchemy.ext.hybrid import hybrid_property

from ..extensions import db
from stockroom.time_utils import to_utc_z


def format_cents(cents: int | None) -> str | None:
    if cents is None:
        return None
    sign = "-" if cents < 0 else ""
    cents = abs(cents)
    return f"{sign}{cents // 100}.{cents % 100:02d}"


class Product(db.Model):
    """
    Catalog item tracked by the stock ledger.

    MULTI-TENANT: scoped by company_id; SKU is unique within a company.

    current_stock is a cached projection of the product's StockMovements.
    It is only written by the ledger service in the same transaction as the
    movement it reflects; no payload may set it.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("company_id", "sku", name="uq_products_company_sku"),
        db.Index("ix_products_company_category", "company_id", "category"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    sku = db.Column(db.String(64), nullable=False, index=True)
    category = db.Column(db.String(128), nullable=True)
    description = db.Column(db.Text, nullable=True)

    current_stock = db.Column(db.Integer, nullable=False, default=0)
    reorder_level = db.Column(db.Integer, nullable=False, default=0)
    unit_price_cents = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    company = db.relationship("Company", backref=db.backref("products", lazy=True))

    @hybrid_property
    def is_low_stock(self):
        # Single low-stock predicate, inclusive. Works in Python and in SQL filters.
        return self.current_stock <= self.reorder_level

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} stock={self.current_stock}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "name": self.name,
            "sku": self.sku,
            "category": self.category,
            "description": self.description,
            "current_stock": self.current_stock,
            "reorder_level": self.reorder_level,
            "unit_price_cents": self.unit_price_cents,
            "unit_price": format_cents(self.unit_price_cents),
            "is_low_stock": self.is_low_stock,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StockMovement(db.Model):
    """
    Ledger event: one stock-in or stock-out for a product.

    APPEND-ONLY: the system of record for stock. Rows are never updated.
    The only delete path is the compensating rollback of a failed bulk
    operation, keyed by batch_id.

    MULTI-TENANT: company_id is copied from the product at insert time so
    history queries never have to join through products to scope.

    IDEMPOTENCY: a retried insert carrying the same idempotency_key resolves
    to the original row (unique per company).
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.UniqueConstraint("company_id", "idempotency_key", name="uq_stock_movements_company_idem"),
        db.CheckConstraint("quantity > 0", name="ck_stock_movements_quantity_positive"),
        db.CheckConstraint("type IN ('in', 'out')", name="ck_stock_movements_type"),
        db.Index("ix_stock_movements_product_created", "product_id", "created_at"),
        db.Index("ix_stock_movements_company_created", "company_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    type = db.Column(db.String(8), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    notes = db.Column(db.Text, nullable=True)

    user_id = db.Column(db.Integer, db.ForeignKey("profiles.id"), nullable=True, index=True)

    # Correlation id shared by all rows of one bulk operation / PO receipt
    batch_id = db.Column(db.String(32), nullable=True, index=True)
    purchase_order_id = db.Column(db.Integer, db.ForeignKey("purchase_orders.id"), nullable=True, index=True)
    idempotency_key = db.Column(db.String(128), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product", backref=db.backref("movements", lazy="dynamic"))

    @property
    def signed_quantity(self) -> int:
        return self.quantity if self.type == "in" else -self.quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "product_sku": self.product.sku if self.product else None,
            "type": self.type,
            "quantity": self.quantity,
            "notes": self.notes,
            "user_id": self.user_id,
            "batch_id": self.batch_id,
            "purchase_order_id": self.purchase_order_id,
            "created_at": to_utc_z(self.created_at),
        }
