# Overview: Pytest coverage for the Flask CLI command groups.

from datetime import timedelta

from stockroom.extensions import db
from stockroom.models import Company, Department, Invite, Product, Profile, SecurityEvent, SessionToken
from stockroom.services.session_service import create_session
from stockroom.time_utils import utcnow


def test_create_super_admin(app):
    runner = app.test_cli_runner()
    result = runner.invoke(args=["system", "create-super-admin", "--email", "Root@Platform.test", "--name", "Root"])
    assert result.exit_code == 0, result.output
    profile = db.session.query(Profile).filter_by(email="root@platform.test").one()
    assert profile.role == "super_admin"
    assert profile.company_id is None


def test_create_super_admin_refuses_existing_tenant_user(app, owner_a):
    result = app.test_cli_runner().invoke(args=["system", "create-super-admin", "--email", owner_a.email])
    assert result.exit_code != 0
    assert "already exists" in result.output


def test_companies_create_requires_super_admin(app):
    result = app.test_cli_runner().invoke(args=["companies", "create", "--name", "Gamma LLC"])
    assert result.exit_code != 0
    assert "create-super-admin" in result.output


def test_companies_create_with_owner_invite(app, super_admin):
    result = app.test_cli_runner().invoke(
        args=["companies", "create", "--name", "Gamma LLC", "--owner-email", "boss@gamma.test"]
    )
    assert result.exit_code == 0, result.output
    company = db.session.query(Company).filter_by(name="Gamma LLC").one()
    assert db.session.query(Department).filter_by(company_id=company.id).count() == 4
    invite = db.session.query(Invite).filter_by(email="boss@gamma.test").one()
    assert invite.token in result.output


def test_companies_list(app, company_a, company_b):
    result = app.test_cli_runner().invoke(args=["companies", "list"])
    assert result.exit_code == 0
    assert "Acme Corp" in result.output
    assert "Beta Inc" in result.output


def test_reconcile_stock_repairs_drift(app, super_admin, product_a):
    db.session.get(Product, product_a.id).current_stock = 42
    db.session.commit()

    result = app.test_cli_runner().invoke(args=["maintenance", "reconcile-stock"])
    assert result.exit_code == 0, result.output
    assert f"FIXED product {product_a.id}: 42 -> 0" in result.output
    db.session.refresh(product_a)
    assert product_a.current_stock == 0

    again = app.test_cli_runner().invoke(args=["maintenance", "reconcile-stock"])
    assert "All stock caches match" in again.output


def test_cleanup_sessions(app, owner_a):
    live, _ = create_session(owner_a.id)
    expired, _ = create_session(owner_a.id)
    expired.expires_at = utcnow() - timedelta(hours=1)
    db.session.commit()

    result = app.test_cli_runner().invoke(args=["maintenance", "cleanup-sessions"])
    assert result.exit_code == 0
    assert "Deleted 1" in result.output
    assert [s.id for s in db.session.query(SessionToken).all()] == [live.id]


def test_cleanup_security_events(app):
    db.session.add(SecurityEvent(event_type="INVALID_TOKEN", success=False, occurred_at=utcnow() - timedelta(days=120)))
    db.session.add(SecurityEvent(event_type="INVALID_TOKEN", success=False, occurred_at=utcnow()))
    db.session.commit()

    result = app.test_cli_runner().invoke(args=["maintenance", "cleanup-security-events", "--retention-days", "90"])
    assert result.exit_code == 0
    assert db.session.query(SecurityEvent).count() == 1
