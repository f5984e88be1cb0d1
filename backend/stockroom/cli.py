# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/stockroom/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables that do not exist yet (use `flask db upgrade` for migrations).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system create-super-admin --email root@example.com --name "Platform Admin"
#   Create (or reactivate) a super_admin profile.
# - python -m flask system issue-token --email owner@acme.test [--hours 24]
#   DEV/TEST only: open a session for a profile and print the bearer token.
#
# Company management (MULTI-TENANT):
# - python -m flask companies list
#   List all companies with active user counts.
# - python -m flask companies create --name "Acme Corp" [--owner-email owner@acme.test]
#   Create a company with default departments; optionally invite its owner.
#
# Maintenance:
# - python -m flask maintenance cleanup-security-events --retention-days 90
#   Delete security events older than the retention window.
# - python -m flask maintenance cleanup-sessions
#   Delete expired and revoked session tokens.
# - python -m flask maintenance reconcile-stock
#   Rewrite drifted current_stock caches from the movement ledger.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Company, Profile
from .permissions import Principal, Role
from .services import company_service, ledger_service, maintenance_service, session_service
from .validation import ConflictError, ValidationError


def _acting_super_admin() -> Principal:
    profile = (
        db.session.query(Profile)
        .filter(Profile.role == Role.SUPER_ADMIN.value, Profile.is_active.is_(True))
        .order_by(Profile.id.asc())
        .first()
    )
    if profile is None:
        raise click.ClickException("No active super_admin. Run 'flask system create-super-admin' first.")
    return Principal.from_profile(profile)


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create missing tables."""
    db.create_all()
    click.echo("PASS Tables created.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete. Run 'python -m flask system create-super-admin' next.")


@system_group.command('create-super-admin')
@click.option('--email', prompt=True, help='Email address')
@click.option('--name', 'full_name', default=None, help='Full name')
@with_appcontext
def create_super_admin(email, full_name):
    """Create a platform-wide super_admin profile (no company)."""
    email = email.strip().lower()
    profile = db.session.query(Profile).filter_by(email=email).first()
    if profile is not None:
        if profile.role != Role.SUPER_ADMIN.value:
            raise click.ClickException(f"{email} already exists with role {profile.role}")
        profile.is_active = True
        db.session.commit()
        click.echo(f"PASS {email} is already a super_admin (ID: {profile.id}); ensured active.")
        return

    profile = Profile(email=email, full_name=full_name, role=Role.SUPER_ADMIN.value, company_id=None, is_active=True)
    db.session.add(profile)
    db.session.commit()
    click.echo(f"PASS Created super_admin {email} (ID: {profile.id})")


@system_group.command('issue-token')
@click.option('--email', required=True, help='Profile email')
@click.option('--hours', type=int, default=None, help='Session lifetime (defaults to SESSION_TTL_HOURS)')
@with_appcontext
def issue_token(email, hours):
    """DEV/TEST: open a session and print its bearer token."""
    profile = db.session.query(Profile).filter_by(email=email.strip().lower()).first()
    if profile is None:
        raise click.ClickException(f"No profile with email {email}")
    try:
        _session, token = session_service.create_session(profile.id, ttl_hours=hours)
    except ValueError as exc:
        raise click.ClickException(str(exc))
    click.echo(token)


@click.group('companies')
def companies_group():
    """Company (tenant) management commands."""


@companies_group.command('list')
@with_appcontext
def list_companies():
    """List all companies."""
    companies = db.session.query(Company).order_by(Company.id.asc()).all()

    if not companies:
        click.echo("No companies found.")
        return

    counts = company_service.company_user_counts([c.id for c in companies])

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Name':<30} {'Plan':<12} {'Active':<8} {'Users'}")
    click.echo("="*80)

    for company in companies:
        active_str = "Yes" if company.is_active else "No"
        click.echo(f"{company.id:<5} {company.name:<30} {company.subscription_plan:<12} {active_str:<8} {counts.get(company.id, 0)}")

    click.echo("="*80 + "\n")


@companies_group.command('create')
@click.option('--name', required=True, help='Company name')
@click.option('--industry', default=None, help='Industry')
@click.option('--owner-email', default=None, help='Invite this address as company_owner')
@with_appcontext
def create_company_cli(name, industry, owner_email):
    """Create a new company (tenant) with its default departments."""
    principal = _acting_super_admin()
    payload = {"name": name}
    if industry:
        payload["industry"] = industry
    try:
        company, invite = company_service.create_company(principal, payload, owner_email=owner_email)
    except (ValidationError, ConflictError) as exc:
        raise click.ClickException(str(exc))

    click.echo(f"PASS Created company: {company.name} (ID: {company.id})")
    if invite is not None:
        from .services.invite_service import accept_url

        click.echo(f"PASS Owner invite for {invite.email}: {accept_url(invite)}")


@click.group('maintenance')
def maintenance_group():
    """Housekeeping commands."""


@maintenance_group.command('cleanup-security-events')
@click.option('--retention-days', type=int, default=90, show_default=True)
@with_appcontext
def cleanup_security_events_cli(retention_days):
    """
    Cleanup old security events.

    Default retention: 90 days.
    """
    deleted = maintenance_service.cleanup_security_events(retention_days=retention_days)
    click.echo(f"Deleted {deleted} security events older than {retention_days} days.")


@maintenance_group.command('cleanup-sessions')
@with_appcontext
def cleanup_sessions_cli():
    deleted = maintenance_service.cleanup_sessions()
    click.echo(f"Deleted {deleted} expired or revoked sessions.")


@maintenance_group.command('reconcile-stock')
@with_appcontext
def reconcile_stock_cli():
    """Rewrite drifted stock caches from the ledger, across all companies."""
    principal = _acting_super_admin()
    repairs = ledger_service.reconcile_stock(principal)
    if not repairs:
        click.echo("PASS All stock caches match the ledger.")
        return
    for repair in repairs:
        click.echo(f"FIXED product {repair['product_id']}: {repair['cached']} -> {repair['projected']}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(companies_group)
    app.cli.add_command(maintenance_group)
