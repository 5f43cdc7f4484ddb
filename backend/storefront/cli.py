# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/storefront/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Flask discovers create_app() in the storefront package: python -m flask --app storefront <group> <command>
#
# System bootstrap/repair:
# - python -m flask --app storefront system init-db
#   Create missing tables and seed default settings (idempotent).
# - python -m flask --app storefront system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Settings inspection:
# - python -m flask --app storefront settings show
#   Print notification settings (secrets masked) and payment gateway toggles.
# - python -m flask --app storefront settings seed
#   Write default settings rows that are missing.
#
# Orders:
# - python -m flask --app storefront orders list [--status pending] [--email a@b.c]
#   List orders, newest first.
# - python -m flask --app storefront orders set-status ORD-1732000000000 shipped [--no-notify]
#   Change an order's status (notifies the customer unless --no-notify).
#
# Notifications:
# - python -m flask --app storefront notifications test "+91 98765 43210"
#   Send a test message on every enabled channel and report per-channel success.

import json

import click
from flask.cli import with_appcontext

from .errors import StorefrontError
from .extensions import db
from .services import notification_service, order_service, settings_service
from .services.pricing_service import format_amount
from .time_utils import to_utc_z


class _NoopNotifier:
    def notify(self, event, order):
        return None


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create tables and seed default settings."""
    click.echo("BUILD  Creating tables...")
    db.create_all()
    added = settings_service.seed_defaults()
    click.echo(f"PASS Database ready ({added} settings rows seeded).")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL ORDERS!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()
    settings_service.seed_defaults()

    click.echo("PASS Database reset complete.")


@click.group('settings')
def settings_group():
    """Storefront settings inspection."""


@settings_group.command('show')
@with_appcontext
def show_settings():
    """Print notification and payment gateway settings."""
    notification = settings_service.get_notification_settings()
    click.echo("Notification settings:")
    click.echo(json.dumps(notification.to_dict(include_secrets=False), indent=2, ensure_ascii=False))

    click.echo("\nPayment gateways:")
    for gateway in settings_service.get_payment_gateways():
        state = "enabled" if gateway.enabled else "disabled"
        click.echo(f"  {gateway.id:<10} {gateway.name:<12} {state}")


@settings_group.command('seed')
@with_appcontext
def seed_settings():
    """Write default settings rows that are missing."""
    added = settings_service.seed_defaults()
    click.echo(f"PASS {added} settings rows added.")


@click.group('orders')
def orders_group():
    """Order inspection and status changes."""


@orders_group.command('list')
@click.option('--status', default=None, help='Filter by order status')
@click.option('--email', default=None, help='Only orders for this customer email')
@with_appcontext
def list_orders(status, email):
    """List orders."""
    try:
        if email:
            orders = order_service.list_orders_by_customer_email(email)
            if status:
                orders = [o for o in orders if o.status == status]
        else:
            orders = order_service.list_orders(status=status)
    except StorefrontError as exc:
        raise click.ClickException(str(exc))

    if not orders:
        click.echo("No orders found.")
        return

    click.echo("\n" + "="*100)
    click.echo(f"{'ID':<20} {'Created':<28} {'Customer':<24} {'Total':>10} {'Status':<11} {'Payment'}")
    click.echo("="*100)
    for order in orders:
        total = format_amount(order.total_amount)
        click.echo(
            f"{order.id:<20} {to_utc_z(order.created_at):<28} {order.customer_name[:24]:<24} "
            f"{total:>10} {order.status:<11} {order.payment_method} ({order.payment_status})"
        )
    click.echo("="*100 + "\n")


@orders_group.command('set-status')
@click.argument('order_id')
@click.argument('status')
@click.option('--no-notify', is_flag=True, help='Do not message the customer')
@with_appcontext
def set_order_status(order_id, status, no_notify):
    """Change an order's status."""
    notifier = _NoopNotifier() if no_notify else None
    try:
        order = order_service.update_order_status(order_id, status, notifier=notifier)
    except StorefrontError as exc:
        raise click.ClickException(str(exc))
    click.echo(f"PASS Order {order.id} is now {order.status}.")
    if not no_notify and not notification_service.wait_for_pending(timeout=30):
        click.echo("WARN Customer notification still sending; see logs.")


@click.group('notifications')
def notifications_group():
    """Notification channel checks."""


@notifications_group.command('test')
@click.argument('phone')
@with_appcontext
def test_notification(phone):
    """Send a test message on every enabled channel."""
    channels = notification_service.send_test_notification(phone)
    if not channels:
        click.echo("WARN No notification channel is enabled and configured.")
        return
    for channel, ok in channels.items():
        click.echo(f"{'PASS' if ok else 'FAIL'} {channel}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(settings_group)
    app.cli.add_command(orders_group)
    app.cli.add_command(notifications_group)
