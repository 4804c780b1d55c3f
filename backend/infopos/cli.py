# Overview: Flask CLI command groups for bootstrap, demo data and event delivery.

# backend/infopos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create any missing tables (use `flask db upgrade` for migrated databases).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Demo data:
# - python -m flask products seed --tenant t1
#   Insert a small demo catalogue for a tenant (skips SKUs that already exist).
#
# Event delivery:
# - python -m flask events pending
#   Show queued messages per channel.
# - python -m flask events drain [--channel sales] [--limit 100]
#   Deliver queued messages to the registered consumers.

import click
from flask.cli import with_appcontext

from .extensions import db, event_bus
from .events.envelope import Channel
from .services import products_service
from .tenant_context import tenant_scope


DEMO_CATALOGUE = (
    {"sku": "COF-250", "name": "Coffee Beans 250g", "category": "Grocery", "price_cents": 899, "stock_quantity": 40, "alert_threshold": 10},
    {"sku": "TEA-100", "name": "Green Tea 100 bags", "category": "Grocery", "price_cents": 549, "stock_quantity": 25},
    {"sku": "MUG-01", "name": "Ceramic Mug", "category": "Homeware", "price_cents": 1299, "stock_quantity": 12},
    {"sku": "BAG-01", "name": "Canvas Tote Bag", "category": "Accessories", "price_cents": 1999, "stock_quantity": 3},
)


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


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


@click.group('products')
def products_group():
    """Product catalogue commands."""


@products_group.command('seed')
@click.option('--tenant', 'tenant_id', default='public', show_default=True, help='Tenant to seed')
@with_appcontext
def seed_products(tenant_id):
    """Insert the demo catalogue for a tenant."""
    created = 0
    with tenant_scope(tenant_id):
        existing = {
            p["sku"] for p in products_service.list_products(tenant_id)["items"] if p["sku"]
        }
        for entry in DEMO_CATALOGUE:
            if entry["sku"] in existing:
                click.echo(f"SKIP  {entry['sku']} already exists")
                continue
            products_service.create_product(patch=dict(entry), tenant_id=tenant_id)
            created += 1
    click.echo(f"PASS Seeded {created} product(s) for tenant {tenant_id}.")


@click.group('events')
def events_group():
    """Event bus inspection and delivery."""


@events_group.command('pending')
@with_appcontext
def pending_events():
    """Show queued messages per channel."""
    for channel in Channel:
        click.echo(f"{channel.value:<10} {event_bus.pending(channel)}")


@events_group.command('drain')
@click.option('--channel', type=click.Choice([c.value for c in Channel]), default=None, help='Only this channel')
@click.option('--limit', type=int, default=None, help='Stop after this many messages')
@with_appcontext
def drain_events(channel, limit):
    """Deliver queued messages to the registered consumers."""
    delivered = event_bus.dispatch_pending(channel, limit=limit)
    click.echo(f"PASS Delivered {delivered} message(s).")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(products_group)
    app.cli.add_command(events_group)
