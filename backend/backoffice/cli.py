# Overview: Flask CLI command groups for bootstrap and user management.

# backend/backoffice/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables that do not exist yet (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system seed-demo
#   Create a demo organization, client, company (with default site),
#   customer, order and two users, and print their bearer tokens.
#
# Users:
# - python -m flask users list [--organization-id 1]
# - python -m flask users create --email admin@example.com --scope ORGANIZATION --organization-id 1
# - python -m flask users issue-token --email admin@example.com [--ttl-hours 24]

import click
from flask.cli import with_appcontext

from .errors import ServiceError
from .extensions import db
from .models import Client, Customer, Order, Organization, User
from .models.auth import ALL_SCOPES, SCOPE_COMPANY, SCOPE_ORGANIZATION
from .services import company_service, session_service
from .services.code_service import generate_entity_code
from .services.scope_service import principal_from_user


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables (existing tables are left untouched)."""
    db.create_all()
    click.echo("PASS Database tables created")


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


@system_group.command('seed-demo')
@click.option('--org', 'org_name', default='Demo Organization', help='Organization name')
@click.option('--org-code', default='DEMOORG', help='Organization code')
@with_appcontext
def seed_demo(org_name, org_code):
    """
    Seed a demo tenant tree.

    Creates:
    - Organization -> Client -> Company (+ default site)
    - One customer with one order
    - admin@<org-code>.local (ORGANIZATION scope)
    - manager@<org-code>.local (COMPANY scope)
    """
    click.echo("START Seeding demo data...")
    db.create_all()

    org = db.session.query(Organization).filter_by(code=org_code).first()
    if org:
        click.echo(f"WARN  Organization '{org_code}' already exists (ID: {org.id}), nothing to do")
        return

    org = Organization(name=org_name, code=org_code, is_active=True)
    db.session.add(org)
    db.session.flush()

    client = Client(
        organization_id=org.id,
        name=f"{org_name} Client",
        code=generate_entity_code(f"{org_name} Client"),
        status="ACTIVE",
    )
    db.session.add(client)
    db.session.flush()

    admin = User(
        email=f"admin@{org_code.lower()}.local",
        display_name="Demo Admin",
        scope_type=SCOPE_ORGANIZATION,
        organization_id=org.id,
        is_active=True,
    )
    db.session.add(admin)
    db.session.commit()
    click.echo(f"PASS Created organization {org.name} (ID: {org.id}) and client {client.name} (ID: {client.id})")

    company = company_service.create_company(
        principal_from_user(admin),
        name="Demo Store",
        client_id=client.id,
    )
    click.echo(f"PASS Created company {company.name} (ID: {company.id}, Code: {company.code})")

    customer = Customer(company_id=company.id, email="customer@example.com", name="Demo Customer")
    db.session.add(customer)
    db.session.flush()
    order = Order(
        company_id=company.id,
        customer_id=customer.id,
        order_number="ORD-0001",
        status="COMPLETED",
        total_cents=4999,
        currency=company.currency,
    )
    db.session.add(order)

    manager = User(
        email=f"manager@{org_code.lower()}.local",
        display_name="Demo Manager",
        scope_type=SCOPE_COMPANY,
        organization_id=org.id,
        client_id=client.id,
        company_id=company.id,
        is_active=True,
    )
    db.session.add(manager)
    db.session.commit()
    click.echo(f"PASS Created customer {customer.id} with order {order.order_number} (ID: {order.id})")

    click.echo("\nTOKENS (valid for SESSION_TTL_HOURS):")
    for user in (admin, manager):
        _, token = session_service.create_session(user.id)
        click.echo(f"   {user.email:<32} {user.scope_type:<13} {token}")
    click.echo("")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('list')
@click.option('--organization-id', type=int, default=None, help='Filter by organization')
@with_appcontext
def list_users(organization_id):
    query = db.session.query(User)
    if organization_id is not None:
        query = query.filter(User.organization_id == organization_id)

    users = query.order_by(User.id.asc()).all()
    if not users:
        click.echo("No users found")
        return

    for user in users:
        status = "active" if user.is_active else "inactive"
        click.echo(
            f"{user.id:>4}  {user.email:<32} {user.scope_type:<13} "
            f"org={user.organization_id} client={user.client_id} "
            f"company={user.company_id} dept={user.department_id} ({status})"
        )


@users_group.command('create')
@click.option('--email', prompt=True, help='Email address (unique)')
@click.option('--display-name', default=None)
@click.option('--scope', 'scope_type', type=click.Choice(ALL_SCOPES), prompt=True)
@click.option('--organization-id', type=int, default=None)
@click.option('--client-id', type=int, default=None)
@click.option('--company-id', type=int, default=None)
@click.option('--department-id', type=int, default=None)
@with_appcontext
def create_user_command(email, display_name, scope_type, organization_id, client_id, company_id, department_id):
    """Create a user; the ids required by the scope must be given."""
    if db.session.query(User).filter_by(email=email).first():
        raise click.ClickException(f"User '{email}' already exists")

    user = User(
        email=email,
        display_name=display_name,
        scope_type=scope_type,
        organization_id=organization_id,
        client_id=client_id,
        company_id=company_id,
        department_id=department_id,
        is_active=True,
    )

    try:
        principal_from_user(user)
    except ServiceError as e:
        raise click.ClickException(str(e))

    db.session.add(user)
    db.session.commit()
    click.echo(f"PASS Created user {user.email} (ID: {user.id}, scope: {user.scope_type})")


@users_group.command('issue-token')
@click.option('--email', required=True)
@click.option('--ttl-hours', type=int, default=None, help='Defaults to SESSION_TTL_HOURS')
@with_appcontext
def issue_token(email, ttl_hours):
    """Issue a bearer token for a user and print it once."""
    user = db.session.query(User).filter_by(email=email).first()
    if not user:
        raise click.ClickException(f"User '{email}' not found")

    try:
        session, token = session_service.create_session(user.id, ttl_hours=ttl_hours)
    except ServiceError as e:
        raise click.ClickException(str(e))

    click.echo(f"PASS Token for {user.email} (expires {session.expires_at.isoformat()}Z):")
    click.echo(token)


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
