# Overview: Flask CLI command groups for bootstrap, scheduled jobs and currency utilities.

# backend/teomarket/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init
#   Idempotent bootstrap: creates the RON/EUR/USD currencies and the B2C/B2B_STANDARD customer groups.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Scheduled jobs (run daily from cron; each holds a named job lock so runs never overlap):
# - python -m flask carts cleanup --days 30
#   Delete converted carts not updated within the retention window.
# - python -m flask currencies update-rates --file nbrfxrates.xml
#   Apply a downloaded national bank rate feed to the configured currencies.
#
# Currency utilities:
# - python -m flask currencies convert 100 EUR RON
#   Convert an amount using the stored rates.

import click
from decimal import Decimal
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .models import Currency, CustomerGroup
from .services import currency_service, maintenance_service
from .services.maintenance_service import JobAlreadyRunning
from .validation import TeomarketError, coerce_decimal


DEFAULT_CURRENCIES = [
    # code, value (RON per unit), symbol_left, symbol_right
    ("RON", Decimal("1"), None, " lei"),
    ("EUR", Decimal("4.9700"), "€", None),
    ("USD", Decimal("4.5800"), "$", None),
]

DEFAULT_CUSTOMER_GROUPS = [
    ("B2C", "Retail customers"),
    ("B2B_STANDARD", "Business customers"),
]


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """
    Initialize reference data the order core depends on.

    Creates (skipping rows that already exist):
    - Currencies: RON (base, rate 1), EUR, USD
    - Customer groups: B2C (default for anonymous visitors), B2B_STANDARD
    """
    click.echo("START Initializing Teomarket reference data...")

    for code, value, symbol_left, symbol_right in DEFAULT_CURRENCIES:
        existing = db.session.query(Currency).filter_by(code=code).first()
        if existing:
            click.echo(f"WARN  Currency {code} already exists, skipping...")
            continue
        db.session.add(Currency(code=code, value=value, symbol_left=symbol_left, symbol_right=symbol_right, is_active=True))
        click.echo(f"PASS Created currency {code} (1 {code} = {value} RON)")

    for code, name in DEFAULT_CUSTOMER_GROUPS:
        existing = db.session.query(CustomerGroup).filter_by(code=code).first()
        if existing:
            click.echo(f"WARN  Customer group {code} already exists, skipping...")
            continue
        db.session.add(CustomerGroup(code=code, name=name))
        click.echo(f"PASS Created customer group {code}")

    db.session.commit()
    click.echo("\nDONE System initialized.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    Only use in development/testing.
    """
    if not yes:
        click.confirm("This will DELETE ALL DATA. Continue?", abort=True)
    db.drop_all()
    db.create_all()
    click.echo("PASS Database reset. Run 'flask system init' to seed reference data.")


@click.group('carts')
def carts_group():
    """Cart maintenance commands."""


@carts_group.command('cleanup')
@click.option('--days', 'retention_days', type=int, default=None,
              help='Retention window in days (default: CART_RETENTION_DAYS)')
@with_appcontext
def cleanup_carts_cli(retention_days):
    """Delete converted carts older than the retention window."""
    if retention_days is None:
        retention_days = current_app.config["CART_RETENTION_DAYS"]
    if retention_days < 1:
        raise click.BadParameter("must be >= 1", param_hint="--days")

    try:
        with maintenance_service.job_lock("carts:cleanup"):
            deleted = maintenance_service.cleanup_converted_carts(retention_days=retention_days)
    except JobAlreadyRunning as e:
        click.echo(f"SKIP {e.message}")
        return
    click.echo(f"PASS Deleted {deleted} converted carts older than {retention_days} days.")


@click.group('currencies')
def currencies_group():
    """Exchange rate commands."""


@currencies_group.command('update-rates')
@click.option('--file', 'feed_file', type=click.File('rb'), required=True,
              help='Downloaded nbrfxrates.xml feed')
@with_appcontext
def update_rates_cli(feed_file):
    """Apply the national bank daily rates to configured currencies."""
    try:
        with maintenance_service.job_lock("currencies:update-rates"):
            rate_date, rates = currency_service.parse_bnr_rates(feed_file.read())
            updated = currency_service.apply_exchange_rates(rates)
    except JobAlreadyRunning as e:
        click.echo(f"SKIP {e.message}")
        return
    except TeomarketError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Rates of {rate_date.isoformat()} applied: {updated} currencies updated ({len(rates)} in feed).")


@currencies_group.command('convert')
@click.argument('amount')
@click.argument('from_code')
@click.argument('to_code')
@click.option('--precision', type=int, default=2, show_default=True)
@with_appcontext
def convert_cli(amount, from_code, to_code, precision):
    """Convert AMOUNT from FROM_CODE to TO_CODE using stored rates."""
    try:
        value = coerce_decimal(amount, "amount")
        result = currency_service.convert(value, from_code, to_code, precision)
        target = currency_service.get_currency(to_code, active_only=False)
    except TeomarketError as e:
        raise click.ClickException(e.message)
    click.echo(f"{value} {from_code.upper()} = {currency_service.format_amount(result, target, precision)}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(carts_group)
    app.cli.add_command(currencies_group)
