from __future__ import annotations

from ..extensions import db
from stockroom.time_utils import to_utc_z
from .inventory import format_cents


class Supplier(db.Model):
    """
    Vendor a company buys from.

    contact_info is a small structured object {email, phone, address};
    product_types is a sorted list of category strings.
    rating is 1-5 or unset.
    """
    __tablename__ = "suppliers"
    __table_args__ = (
        db.CheckConstraint("rating IS NULL OR (rating >= 1 AND rating <= 5)", name="ck_suppliers_rating"),
        db.Index("ix_suppliers_company_name", "company_id", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    contact_info = db.Column(db.JSON, nullable=False, default=dict)
    product_types = db.Column(db.JSON, nullable=False, default=list)
    rating = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "name": self.name,
            "contact_info": dict(self.contact_info or {}),
            "product_types": list(self.product_types or []),
            "rating": self.rating,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class SupplierQuote(db.Model):
    """
    Point-in-time price observation for a product from a supplier.

    IMMUTABLE once created: a newer price is a new quote.
    """
    __tablename__ = "supplier_quotes"
    __table_args__ = (
        db.Index("ix_supplier_quotes_product_created", "product_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=False, index=True)
    price_cents = db.Column(db.Integer, nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey("profiles.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    supplier = db.relationship("Supplier", backref=db.backref("quotes", lazy=True))
    product = db.relationship("Product", backref=db.backref("quotes", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "product_id": self.product_id,
            "supplier_id": self.supplier_id,
            "supplier_name": self.supplier.name if self.supplier else None,
            "price_cents": self.price_cents,
            "price": format_cents(self.price_cents),
            "user_id": self.user_id,
            "created_at": to_utc_z(self.created_at),
        }
