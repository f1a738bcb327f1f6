# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--email admin@buildstock.local] [--password "Password123!"]
#   Create all tables and a super admin (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# User inspection/bootstrap:
# - python -m flask users list [--role SITE_ENGINEER]
#   List users with role, location, and active status.
# - python -m flask users create --email m@x.com --name "Mia" --password "Password123!" --role STORE_MANAGER [--location-id 1]
#   Create a user (prompts if options are omitted).
#
# Maintenance:
# - python -m flask maintenance cleanup-sessions --retention-days 30
#   Delete expired/revoked sessions older than the retention window.

import click
from flask.cli import with_appcontext

from .errors import ServiceError
from .extensions import db
from .models import User
from .models.auth import ROLE_SUPER_ADMIN, VALID_ROLES
from .services import auth_service, session_service


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--email', default='admin@buildstock.local', help='Super admin email')
@click.option('--name', default='Super Admin', help='Super admin display name')
@click.option('--password', default='Password123!', help='Super admin password')
@with_appcontext
def init_system(email, name, password):
    """
    Create the schema and a super admin account.

    SECURITY: Change the default password immediately in production!
    """
    click.echo("START Initializing BuildStock...")
    db.create_all()
    click.echo("PASS Schema ready")

    existing = db.session.query(User).filter_by(email=email.lower()).first()
    if existing:
        click.echo(f"WARN  User '{email}' already exists, skipping...")
        return

    try:
        user = auth_service.create_user(
            db.session, email=email, password=password, name=name, role=ROLE_SUPER_ADMIN,
        )
    except ServiceError as e:
        raise click.ClickException(f"Failed to create super admin: {e.message}")

    click.echo(f"PASS Created super admin: {user.email} (ID: {user.id})")
    click.echo("\nSECURITY WARNING: change the default password immediately in production!")


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
    click.echo("PASS Database reset complete")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('list')
@click.option('--role', type=click.Choice(sorted(VALID_ROLES)), default=None, help='Filter by role')
@with_appcontext
def list_users(role):
    """List users with role, location, and active status."""
    query = db.session.query(User)
    if role:
        query = query.filter(User.role == role)
    users = query.order_by(User.id.asc()).all()
    if not users:
        click.echo("No users found")
        return

    for user in users:
        status = "active" if user.is_active else "INACTIVE"
        location = user.location_id if user.location_id is not None else "-"
        click.echo(f"{user.id:>4}  {user.email:<32} {user.role:<14} location={location}  {status}")


@users_group.command('create')
@click.option('--email', prompt=True)
@click.option('--name', prompt=True)
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
@click.option('--role', type=click.Choice(sorted(VALID_ROLES)), prompt=True)
@click.option('--location-id', type=int, default=None, help='Assign to an existing store/site')
@with_appcontext
def create_user_command(email, name, password, role, location_id):
    """Create a user, optionally assigned to a location."""
    try:
        user = auth_service.create_user(
            db.session,
            email=email,
            password=password,
            name=name,
            role=role,
            location_id=location_id,
        )
    except ServiceError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Created user: {user.email} (ID: {user.id}) with role '{user.role}'")


@click.group('maintenance')
def maintenance_group():
    """Housekeeping commands."""


@maintenance_group.command('cleanup-sessions')
@click.option('--retention-days', type=int, default=30, show_default=True)
@with_appcontext
def cleanup_sessions(retention_days):
    """Delete expired or revoked sessions older than the retention window."""
    deleted = session_service.cleanup_expired_sessions(db.session, retention_days=retention_days)
    click.echo(f"PASS Deleted {deleted} session(s)")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(maintenance_group)
