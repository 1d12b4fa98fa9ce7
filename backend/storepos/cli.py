# Overview: Flask CLI command groups for bootstrap and store data setup.

# backend/storepos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables (use "flask db upgrade" for migrated deployments).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Stores:
# - python -m flask stores create --name "Main Store" --code MAIN --timezone Asia/Jakarta
# - python -m flask stores list
#
# Users and sessions:
# - python -m flask users create --store-code MAIN --username kasir1 --name "Kasir 1" --role CASHIER
# - python -m flask users issue-token kasir1 [--hours 24]
#   Print a bearer token for API calls (sign-in screens live elsewhere).
# - python -m flask users list [--store-code MAIN]
#
# Members and products:
# - python -m flask members create --store-code MAIN --name "Umum" --general
# - python -m flask products create --store-code MAIN --sku SKU-1 --name "Kopi" --price 15000 --stock 10

import click
from datetime import timedelta
from flask.cli import with_appcontext

from .extensions import db
from .models import Member, Product, Store, User
from .models.auth import ROLES
from .services import session_service


def _store_by_code(code: str) -> Store | None:
    return db.session.query(Store).filter_by(code=code).first()


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database tables created.")


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

    click.echo("PASS Database reset complete.")


@click.group('stores')
def stores_group():
    """Store (tenant) management commands."""


@stores_group.command('create')
@click.option('--name', prompt=True, help='Store name')
@click.option('--code', prompt=True, help='Unique store code')
@click.option('--timezone', 'tz_name', default='UTC', show_default=True,
              help='IANA timezone; defines the business day for invoice numbers')
@with_appcontext
def create_store(name, code, tz_name):
    """Create a store."""
    if _store_by_code(code):
        click.echo(f"FAIL Store code '{code}' already exists")
        return

    store = Store(name=name, code=code, timezone=tz_name, is_active=True)
    db.session.add(store)
    db.session.commit()
    click.echo(f"PASS Created store: {store.name} (ID: {store.id}, Code: {store.code}, TZ: {store.timezone})")


@stores_group.command('list')
@with_appcontext
def list_stores():
    """List all stores."""
    stores = db.session.query(Store).order_by(Store.id).all()
    if not stores:
        click.echo("No stores found.")
        return

    for store in stores:
        status = "active" if store.is_active else "inactive"
        click.echo(f"  [{store.id}] {store.code:<10} {store.name} ({store.timezone}, {status})")


@click.group('users')
def users_group():
    """User and session token commands."""


@users_group.command('create')
@click.option('--store-code', prompt=True, help='Store code the user belongs to')
@click.option('--username', prompt=True, help='Username')
@click.option('--name', prompt=True, help='Display name')
@click.option('--code', default=None, help='Staff code shown on receipts')
@click.option('--role', type=click.Choice(ROLES, case_sensitive=False), prompt=True, help='Role')
@with_appcontext
def create_user_cli(store_code, username, name, code, role):
    """Create a staff user bound to a store."""
    store = _store_by_code(store_code)
    if not store:
        click.echo(f"FAIL Store code '{store_code}' not found")
        return

    if db.session.query(User).filter_by(username=username).first():
        click.echo(f"FAIL Username '{username}' already exists")
        return

    user = User(
        store_id=store.id,
        username=username,
        name=name,
        code=code,
        role=role.upper(),
        is_active=True,
    )
    db.session.add(user)
    db.session.commit()
    click.echo(f"PASS Created user: {username} (ID: {user.id}) with role '{user.role}' in store {store.code}")


@users_group.command('issue-token')
@click.argument('username')
@click.option('--hours', type=int, default=24, show_default=True, help='Token lifetime in hours')
@with_appcontext
def issue_token_cli(username, hours):
    """Issue a bearer session token for a user."""
    user = db.session.query(User).filter_by(username=username).first()
    if not user:
        click.echo(f"FAIL User '{username}' not found")
        return

    try:
        token = session_service.issue_token(user.id, ttl=timedelta(hours=hours))
    except ValueError as e:
        click.echo(f"FAIL {e}")
        return

    click.echo(token)


@users_group.command('list')
@click.option('--store-code', default=None, help='Only users of this store')
@with_appcontext
def list_users(store_code):
    """List users with role and active status."""
    query = db.session.query(User).order_by(User.id)
    if store_code:
        store = _store_by_code(store_code)
        if not store:
            click.echo(f"FAIL Store code '{store_code}' not found")
            return
        query = query.filter_by(store_id=store.id)

    users = query.all()
    if not users:
        click.echo("No users found.")
        return

    for user in users:
        status = "active" if user.is_active else "inactive"
        click.echo(f"  [{user.id}] {user.username:<16} {user.role:<10} store={user.store_id} ({status})")


@click.group('members')
def members_group():
    """Customer member commands."""


@members_group.command('create')
@click.option('--store-code', prompt=True, help='Store code')
@click.option('--name', prompt=True, help='Member name')
@click.option('--code', default=None, help='Member code')
@click.option('--phone', default=None, help='Phone number')
@click.option('--general', is_flag=True, help='Shared walk-in member (cannot take credit)')
@with_appcontext
def create_member(store_code, name, code, phone, general):
    """Create a member in a store."""
    store = _store_by_code(store_code)
    if not store:
        click.echo(f"FAIL Store code '{store_code}' not found")
        return

    member = Member(store_id=store.id, name=name, code=code, phone=phone, is_general=general)
    db.session.add(member)
    db.session.commit()
    click.echo(f"PASS Created member: {member.name} (ID: {member.id}) in store {store.code}")


@click.group('products')
def products_group():
    """Product and stock commands."""


@products_group.command('create')
@click.option('--store-code', prompt=True, help='Store code')
@click.option('--sku', prompt=True, help='SKU (unique within the store)')
@click.option('--name', prompt=True, help='Product name')
@click.option('--price', type=int, prompt=True, help='Unit price in whole currency units')
@click.option('--stock', type=click.IntRange(min=0), default=0, show_default=True, help='Opening stock')
@with_appcontext
def create_product(store_code, sku, name, price, stock):
    """Create a product with opening stock."""
    store = _store_by_code(store_code)
    if not store:
        click.echo(f"FAIL Store code '{store_code}' not found")
        return

    if db.session.query(Product).filter_by(store_id=store.id, sku=sku).first():
        click.echo(f"FAIL SKU '{sku}' already exists in store {store.code}")
        return

    product = Product(store_id=store.id, sku=sku, name=name, price=price, stock=stock, is_active=True)
    db.session.add(product)
    db.session.commit()
    click.echo(f"PASS Created product: {product.name} (ID: {product.id}, SKU: {sku}, stock {stock})")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(stores_group)
    app.cli.add_command(users_group)
    app.cli.add_command(members_group)
    app.cli.add_command(products_group)
