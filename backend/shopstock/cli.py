# Overview: Flask CLI command groups for bootstrap and stock inspection.

# backend/shopstock/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables (use `flask db upgrade` for migration-managed databases).
# - python -m flask system seed
#   Idempotently create one user per role and a demo shop.
#
# Stock inspection:
# - python -m flask stock reconcile [--product-id 1]
#   Check movement history against stored stock (all active products by default).
# - python -m flask stock movements --product-id 1 --limit 20
#   Print recent movements, newest first.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Product, Shop, User
from .models.auth import ROLES
from .services import inventory_service


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database tables created.")


@system_group.command('seed')
@with_appcontext
def seed():
    """
    Create one user per role (username = role in lower case) and a demo shop
    owned by the seller. Existing rows are left untouched.
    """
    for role in ROLES:
        username = role.lower()
        if db.session.query(User).filter_by(username=username).first():
            click.echo(f"WARN  User '{username}' already exists, skipping...")
            continue
        db.session.add(User(username=username, email=f"{username}@shopstock.local", role=role))
        click.echo(f"PASS Created user: {username} ({role})")
    db.session.commit()

    seller = db.session.query(User).filter_by(username="seller").first()
    if not db.session.query(Shop).filter_by(owner_id=seller.id).first():
        shop = Shop(name="Demo Shop", owner_id=seller.id)
        db.session.add(shop)
        db.session.commit()
        click.echo(f"PASS Created shop: {shop.name} (ID: {shop.id})")


@click.group('stock')
def stock_group():
    """Stock ledger inspection commands."""


@stock_group.command('reconcile')
@click.option('--product-id', type=int, help='Reconcile a single product')
@with_appcontext
def reconcile(product_id):
    """Compare each product's movement chain with its stored stock."""
    if product_id is not None:
        product_ids = [product_id]
    else:
        product_ids = [
            row.id for row in
            db.session.query(Product.id).filter(Product.is_active.is_(True)).order_by(Product.id).all()
        ]

    problems = 0
    for pid in product_ids:
        report = inventory_service.reconcile_product(pid)
        if report["is_consistent"]:
            click.echo(f"PASS {report['sku']:<20} stock={report['stock']:<8} movements={report['movement_count']}")
            continue

        problems += 1
        click.echo(f"FAIL {report['sku']:<20} stock={report['stock']:<8} movements={report['movement_count']}")
        for violation in report["arithmetic_violations"]:
            click.echo(f"     arithmetic: {violation}")
        for brk in report["chain_breaks"]:
            click.echo(f"     chain break: {brk}")
        if report["final_mismatch"]:
            click.echo(f"     final mismatch: {report['final_mismatch']}")
        for drift in report["mirror_drift"]:
            click.echo(f"     mirror drift: {drift}")

    click.echo(f"\n{len(product_ids)} product(s) checked, {problems} with issues.")
    if problems:
        raise SystemExit(1)


@stock_group.command('movements')
@click.option('--product-id', type=int, help='Filter by product')
@click.option('--shop-id', type=int, help='Filter by shop')
@click.option('--limit', type=int, default=20, show_default=True)
@with_appcontext
def movements(product_id, shop_id, limit):
    """Print recent stock movements, newest first."""
    rows = inventory_service.list_stock_movements(product_id=product_id, shop_id=shop_id, limit=limit)
    if not rows:
        click.echo("No movements found.")
        return

    click.echo(f"{'ID':<6} {'PRODUCT':<8} {'TYPE':<11} {'QTY':>6} {'PREV':>6} {'NEW':>6}  {'REFERENCE':<16} REASON")
    for m in rows:
        click.echo(
            f"{m.id:<6} {m.product_id:<8} {m.type:<11} {m.quantity:>6} "
            f"{m.previous_stock:>6} {m.new_stock:>6}  {m.reference or '-':<16} {m.reason}"
        )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(stock_group)
