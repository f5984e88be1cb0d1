from __future__ import annotations

from ..extensions import db
from stockroom.time_utils import to_utc_z


SUBSCRIPTION_PLANS = ("free", "premium", "enterprise")

# Seeded for every new company (name, description)
DEFAULT_DEPARTMENTS = (
    ("Warehouse", "Inventory and stock management"),
    ("Procurement", "Purchasing and supplier management"),
    ("Finance", "Financial operations and accounting"),
    ("Operations", "General business operations"),
)


class Company(db.Model):
    """
    Multi-tenant root: every tenant is a Company.

    WHY: Shared-database multi-tenancy with strict isolation. Departments,
    profiles, products, suppliers and purchase orders all carry company_id
    and are never read or written across that boundary except by super_admin.

    LIFECYCLE:
    - Created by a super_admin (with the predefined departments)
    - Deleting is a soft deactivation (is_active=False) that cascades to
      profiles; ledger rows are never removed
    """
    __tablename__ = "companies"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    industry = db.Column(db.String(128), nullable=True)
    address = db.Column(db.Text, nullable=True)
    phone = db.Column(db.String(64), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    website = db.Column(db.String(255), nullable=True)

    subscription_plan = db.Column(db.String(16), nullable=False, default="free")
    max_users = db.Column(db.Integer, nullable=False, default=50)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Company id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "industry": self.industry,
            "address": self.address,
            "phone": self.phone,
            "email": self.email,
            "website": self.website,
            "subscription_plan": self.subscription_plan,
            "max_users": self.max_users,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Department(db.Model):
    """
    Sub-division of a company.

    INVARIANT: a profile's department must belong to the profile's company.
    Names are unique within a company.
    """
    __tablename__ = "departments"
    __table_args__ = (
        db.UniqueConstraint("company_id", "name", name="uq_departments_company_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    name = db.Column(db.String(128), nullable=False)
    description = db.Column(db.Text, nullable=True)
    is_predefined = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    company = db.relationship("Company", backref=db.backref("departments", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "name": self.name,
            "description": self.description,
            "is_predefined": self.is_predefined,
            "created_at": to_utc_z(self.created_at),
        }
