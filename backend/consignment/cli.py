# Overview: Flask CLI command groups for bootstrap, scheduled jobs, and maintenance.

# backend/consignment/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init [--org "Demo Consignment"] [--slug demo]
#   Idempotent bootstrap: creates tables, a default organization and its owner.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Organization management (MULTI-TENANT):
# - python -m flask orgs list
# - python -m flask orgs create --name "Second Hand Rose" --slug second-hand-rose --owner-email owner@shr.local
#
# Users:
# - python -m flask users list --org-slug demo
# - python -m flask users create --org-slug demo --email clerk@demo.local --role CLERK
#
# Scheduled jobs (invoke from cron or any external scheduler):
# - python -m flask statements run-monthly
#   Generate statements for the previous calendar month for every active provider.
# - python -m flask statements generate --year 2026 --month 9 [--org-slug demo]
# - python -m flask carts cleanup-expired
# - python -m flask sessions cleanup --older-than-days 30

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Organization, User
from .models.auth import STAFF_ROLES
from .services import auth_service, cart_service, session_service, statement_service
from .validation import ConflictError, ValidationError


def _org_by_slug(slug: str) -> Organization:
    org = db.session.query(Organization).filter_by(slug=(slug or "").strip().lower()).first()
    if not org:
        raise click.ClickException(f"Organization '{slug}' not found")
    return org


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--org', 'org_name', default='Demo Consignment', help='Organization name')
@click.option('--slug', default='demo', help='Organization slug (storefront key)')
@click.option('--owner-email', default='owner@consignment.local', help='Owner login email')
@click.option('--owner-password', default='Password123!', help='Owner password')
@with_appcontext
def init_system(org_name, slug, owner_email, owner_password):
    """
    Create tables and a default organization with an OWNER account.

    SECURITY: Change the default password immediately in production!
    """
    click.echo("START Initializing consignment system...")
    db.create_all()

    org = db.session.query(Organization).filter_by(slug=slug).first()
    if org:
        click.echo(f"PASS Using existing organization: {org.name} (ID: {org.id})")
        return

    try:
        org, owner = auth_service.register_organization(
            name=org_name,
            slug=slug,
            owner_email=owner_email,
            owner_password=owner_password,
        )
    except (ValidationError, ConflictError) as e:
        raise click.ClickException(str(e))

    click.echo(f"PASS Created organization: {org.name} (ID: {org.id}, slug: {org.slug})")
    click.echo(f"PASS Created owner: {owner.email}")
    click.echo("\nSECURITY WARNING: change the default owner password in production!")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Confirm destructive reset')
@with_appcontext
def reset_db(yes):
    """DEV/TEST only: drop and recreate all tables."""
    if not yes:
        raise click.ClickException("Refusing to reset without --yes")
    db.drop_all()
    db.create_all()
    click.echo("PASS Database reset")


@click.group('orgs')
def orgs_group():
    """Organization (tenant) management."""


@orgs_group.command('list')
@with_appcontext
def list_orgs():
    orgs = db.session.query(Organization).order_by(Organization.id).all()
    if not orgs:
        click.echo("No organizations found.")
        return
    for org in orgs:
        status = "active" if org.is_active else "inactive"
        click.echo(f"{org.id:>4}  {org.slug:<24} {org.name} ({status})")


@orgs_group.command('create')
@click.option('--name', prompt=True, help='Organization name')
@click.option('--slug', prompt=True, help='Unique slug')
@click.option('--owner-email', prompt=True, help='Owner email')
@click.option('--owner-password', prompt=True, hide_input=True, confirmation_prompt=True, help='Owner password')
@with_appcontext
def create_org(name, slug, owner_email, owner_password):
    """Create a new organization and its OWNER account."""
    try:
        org, owner = auth_service.register_organization(
            name=name, slug=slug, owner_email=owner_email, owner_password=owner_password,
        )
    except (ValidationError, ConflictError) as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Created organization {org.slug} (ID: {org.id}) with owner {owner.email}")


@click.group('users')
def users_group():
    """User inspection and bootstrap."""


@users_group.command('list')
@click.option('--org-slug', required=True, help='Organization slug')
@with_appcontext
def list_users(org_slug):
    org = _org_by_slug(org_slug)
    users = db.session.query(User).filter_by(org_id=org.id).order_by(User.email).all()
    for user in users:
        status = "active" if user.is_active else "inactive"
        click.echo(f"{user.id:>4}  {user.email:<32} {user.role:<12} {status}")


@users_group.command('create')
@click.option('--org-slug', required=True, help='Organization slug')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(sorted(STAFF_ROLES)), prompt=True, help='Staff role')
@click.option('--first-name', default=None)
@click.option('--last-name', default=None)
@with_appcontext
def create_user_cli(org_slug, email, password, role, first_name, last_name):
    """
    Create a staff user inside an organization.

    Password must meet strength requirements:
    - Minimum 8 characters
    - At least one uppercase letter, lowercase letter, digit and special character
    """
    org = _org_by_slug(org_slug)
    try:
        user = auth_service.create_user(
            org_id=org.id,
            email=email,
            password=password,
            role=role,
            first_name=first_name,
            last_name=last_name,
        )
    except (ValidationError, ConflictError) as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Created user {user.email} with role {user.role} in {org.slug}")


@click.group('statements')
def statements_group():
    """Monthly consignor statements."""


def _echo_run(result) -> None:
    click.echo(
        f"Statements {result.year:04d}-{result.month:02d}: "
        f"{len(result.generated)} generated, {len(result.existing)} already existed, "
        f"{len(result.errors)} failed"
    )
    for error in result.errors:
        click.echo(f"FAIL org {error['org_id']} provider {error['provider_id']}: {error['error']}")


@statements_group.command('generate')
@click.option('--year', type=int, required=True)
@click.option('--month', type=int, required=True)
@click.option('--org-slug', default=None, help='Limit to one organization')
@with_appcontext
def generate_statements(year, month, org_slug):
    org_id = _org_by_slug(org_slug).id if org_slug else None
    try:
        result = statement_service.generate_statements_for_month(year, month, org_id=org_id)
    except ValidationError as e:
        raise click.ClickException(str(e))
    _echo_run(result)


@statements_group.command('run-monthly')
@with_appcontext
def run_monthly():
    """Scheduler entry point: statements for the previous calendar month."""
    result = statement_service.run_monthly_statement_job()
    _echo_run(result)
    if result.errors:
        raise SystemExit(1)


@click.group('carts')
def carts_group():
    """Storefront cart maintenance."""


@carts_group.command('cleanup-expired')
@with_appcontext
def cleanup_expired_carts():
    deleted = cart_service.cleanup_expired_carts()
    click.echo(f"PASS Deleted {deleted} expired carts")


@click.group('sessions')
def sessions_group():
    """Session token maintenance."""


@sessions_group.command('cleanup')
@click.option('--older-than-days', type=int, default=30, show_default=True)
@with_appcontext
def cleanup_sessions(older_than_days):
    deleted = session_service.cleanup_expired_sessions(older_than_days=older_than_days)
    click.echo(f"PASS Deleted {deleted} expired or revoked sessions")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(orgs_group)
    app.cli.add_command(users_group)
    app.cli.add_command(statements_group)
    app.cli.add_command(carts_group)
    app.cli.add_command(sessions_group)
