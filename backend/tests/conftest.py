"""
Pytest fixtures for stockroom backend tests.

Provides an in-memory database, two tenant companies, one profile per role,
principals for direct service calls and bearer headers for the HTTP API.
"""

import pytest

from stockroom import create_app
from stockroom.extensions import db
from stockroom.models import Company, Department, Product, Profile, Supplier
from stockroom.permissions import Principal
from stockroom.services.session_service import create_session


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'INVITE_BASE_URL': 'http://stockroom.test',
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function', autouse=True)
def db_session(app):
    """Fresh data for each test (schema is kept)."""
    with app.app_context():
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        db.session.rollback()


def _company(name: str) -> Company:
    company = Company(name=name, industry="Retail", is_active=True)
    db.session.add(company)
    db.session.flush()
    db.session.add(Department(company_id=company.id, name="Warehouse", is_predefined=True))
    db.session.add(Department(company_id=company.id, name="Procurement", is_predefined=True))
    db.session.commit()
    return company


def _department(company: Company, name: str) -> Department:
    return db.session.query(Department).filter_by(company_id=company.id, name=name).one()


def _profile(email: str, role: str, company=None, department=None) -> Profile:
    profile = Profile(
        email=email,
        full_name=email.split("@")[0].replace(".", " ").title(),
        role=role,
        company_id=company.id if company else None,
        department_id=department.id if department else None,
        is_active=True,
    )
    db.session.add(profile)
    db.session.commit()
    return profile


@pytest.fixture
def company_a(db_session):
    """Company A (first tenant)."""
    return _company("Acme Corp")


@pytest.fixture
def company_b(db_session):
    """Company B (second tenant)."""
    return _company("Beta Inc")


@pytest.fixture
def warehouse_a(company_a):
    return _department(company_a, "Warehouse")


@pytest.fixture
def procurement_a(company_a):
    return _department(company_a, "Procurement")


@pytest.fixture
def super_admin(db_session):
    return _profile("root@platform.test", "super_admin")


@pytest.fixture
def owner_a(company_a):
    return _profile("owner@acme.test", "company_owner", company_a)


@pytest.fixture
def manager_a(company_a, warehouse_a):
    return _profile("manager@acme.test", "department_manager", company_a, warehouse_a)


@pytest.fixture
def staff_a(company_a, warehouse_a):
    return _profile("staff@acme.test", "staff", company_a, warehouse_a)


@pytest.fixture
def owner_b(company_b):
    return _profile("owner@beta.test", "company_owner", company_b)


@pytest.fixture
def as_principal():
    """Principal.from_profile, as a fixture so tests read naturally."""
    return Principal.from_profile


@pytest.fixture
def headers_for():
    """Open a session for a profile and return its bearer headers."""
    def _headers(profile: Profile) -> dict:
        _session, token = create_session(profile.id)
        return auth_headers(token)
    return _headers


@pytest.fixture
def product_a(company_a):
    """Product in Company A, stock 0, reorder level 10."""
    product = Product(
        company_id=company_a.id,
        name="Widget",
        sku="WID-001",
        category="Hardware",
        reorder_level=10,
        unit_price_cents=2599,
        current_stock=0,
    )
    db.session.add(product)
    db.session.commit()
    return product


@pytest.fixture
def product_b(company_b):
    """Product in Company B."""
    product = Product(
        company_id=company_b.id,
        name="Gadget",
        sku="GAD-001",
        category="Hardware",
        reorder_level=5,
        unit_price_cents=1000,
        current_stock=0,
    )
    db.session.add(product)
    db.session.commit()
    return product


@pytest.fixture
def supplier_a(company_a):
    supplier = Supplier(
        company_id=company_a.id,
        name="Acme Supply Co",
        contact_info={"email": "sales@supply.test"},
        product_types=["Hardware"],
        rating=4,
    )
    db.session.add(supplier)
    db.session.commit()
    return supplier


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}
