# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/rentdesk/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to rentdesk (PowerShell: $env:FLASK_APP="rentdesk").
# - Use: python -m flask <group> <command> [options]
#
# System:
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system wipe --yes
#   Delete orders, bookings and payments; keep organizations, tokens and products.
#
# Organization management (MULTI-TENANT):
# - python -m flask orgs list
#   List all organizations.
# - python -m flask orgs create --name "Acme Rentals" --code "ACME"
#   Create a new organization (tenant).
# - python -m flask orgs issue-token --org-id 1 --label "front-desk"
#   Issue an API token; the plaintext is printed once.
# - python -m flask orgs revoke-token --org-id 1 --token-id 3
#   Revoke an API token.
#
# Catalog:
# - python -m flask products create --org-id 1 --code CAM-01 --title "Camera body" --rent-cents 150000 [--category "Cameras"]
#   Create a rentable product (category created on first use).
# - python -m flask products list --org-id 1 [--all]
#   List products (use --all to include inactive).

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Organization, ApiToken, Category, Product, Order, Booking, BookingPayment
from .services import tenant_service, products_service
from .errors import NotFoundError, RentalError
from .validation import ValidationError


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


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

    click.echo("PASS Database reset complete. Run 'python -m flask orgs create' to add a tenant.")


@system_group.command('wipe')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def wipe_data(yes):
    """Clear rental data (orders, bookings, payments) for every organization."""
    if not yes:
        click.confirm("WARN This will DELETE all orders, bookings and payments. Are you sure?", abort=True)

    # Children first
    payments = db.session.query(BookingPayment).delete()
    bookings = db.session.query(Booking).delete()
    orders = db.session.query(Order).delete()
    db.session.commit()

    click.echo(f"PASS Deleted {orders} orders, {bookings} bookings, {payments} payments")


@click.group('orgs')
def orgs_group():
    """Organization (tenant) management commands."""


@orgs_group.command('list')
@with_appcontext
def list_orgs():
    """List all organizations."""
    orgs = db.session.query(Organization).all()

    if not orgs:
        click.echo("No organizations found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Name':<30} {'Code':<15} {'Active':<8} {'Products':<10} {'Tokens'}")
    click.echo("="*80)

    for org in orgs:
        product_count = db.session.query(Product).filter_by(org_id=org.id).count()
        token_count = db.session.query(ApiToken).filter_by(org_id=org.id, is_active=True).count()
        active_str = "Yes" if org.is_active else "No"

        click.echo(f"{org.id:<5} {org.name:<30} {org.code or '-':<15} {active_str:<8} {product_count:<10} {token_count}")

    click.echo("="*80 + "\n")


@orgs_group.command('create')
@click.option('--name', required=True, help='Organization name')
@click.option('--code', required=True, help='Short code (unique)')
@with_appcontext
def create_org_cli(name, code):
    """Create a new organization (tenant)."""
    try:
        org = tenant_service.create_organization(name, code)
    except ValidationError as e:
        click.echo(f"FAIL {e}")
        return

    click.echo(f"PASS Created organization: {org.name} (ID: {org.id}, Code: {org.code})")


@orgs_group.command('issue-token')
@click.option('--org-id', type=int, required=True, help='Organization ID')
@click.option('--label', required=True, help='Token label (recorded as the actor on payments)')
@with_appcontext
def issue_token_cli(org_id, label):
    """Issue an API token. The plaintext is shown only once."""
    try:
        token, plaintext = tenant_service.issue_token(org_id, label)
    except (ValidationError, NotFoundError) as e:
        click.echo(f"FAIL {e}")
        return

    click.echo(f"PASS Issued token ID {token.id} for org {org_id} ({token.label})")
    click.echo(f"TOKEN {plaintext}")


@orgs_group.command('revoke-token')
@click.option('--org-id', type=int, required=True, help='Organization ID')
@click.option('--token-id', type=int, required=True, help='Token ID')
@with_appcontext
def revoke_token_cli(org_id, token_id):
    """Revoke an API token."""
    try:
        token = tenant_service.revoke_token(token_id, org_id)
    except NotFoundError as e:
        click.echo(f"FAIL {e}")
        return

    click.echo(f"PASS Revoked token ID {token.id} ({token.label})")


@click.group('products')
def products_group():
    """Catalog bootstrap commands."""


@products_group.command('create')
@click.option('--org-id', type=int, required=True, help='Organization ID')
@click.option('--code', required=True, help='Product code (unique within org)')
@click.option('--title', required=True, help='Product title')
@click.option('--rent-cents', type=int, required=True, help='Default rent in cents')
@click.option('--category', 'category_name', help='Category name (created if missing)')
@with_appcontext
def create_product_cli(org_id, code, title, rent_cents, category_name):
    """Create a rentable product (and its category on first use) in one commit."""
    created_category = None
    try:
        tenant_service.require_active_org(org_id)

        category_id = None
        if category_name:
            category = db.session.query(Category).filter_by(org_id=org_id, name=category_name.strip()).first()
            if not category:
                category = created_category = products_service.add_category(org_id, category_name)
            category_id = category.id

        product = products_service.create_product(
            patch={
                "code": code.strip(),
                "title": title.strip(),
                "default_rent_cents": rent_cents,
                "category_id": category_id,
            },
            org_id=org_id,
        )
    except (ValidationError, RentalError) as e:
        db.session.rollback()
        click.echo(f"FAIL {e}")
        return

    if created_category is not None:
        click.echo(f"PASS Created category: {created_category.name} (ID: {created_category.id})")
    click.echo(f"PASS Created product: {product.code} - {product.title} (ID: {product.id})")


@products_group.command('list')
@click.option('--org-id', type=int, required=True, help='Organization ID')
@click.option('--all', 'include_inactive', is_flag=True, help='Include inactive products')
@with_appcontext
def list_products_cli(org_id, include_inactive):
    """List products of an organization."""
    result = products_service.list_products(org_id, include_inactive=include_inactive)
    items = result["items"]

    if not items:
        click.echo("No products found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Code':<15} {'Title':<35} {'Rent':>12} {'Active':>8}")
    click.echo("="*80)

    for p in items:
        rent = f"{p['default_rent_cents'] / 100:,.2f}"
        active_str = "Yes" if p["is_active"] else "No"
        click.echo(f"{p['id']:<5} {p['code']:<15} {p['title'][:35]:<35} {rent:>12} {active_str:>8}")

    click.echo("="*80 + "\n")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(orgs_group)  # Multi-tenant organization management
    app.cli.add_command(products_group)
