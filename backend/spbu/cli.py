# Overview: Flask CLI command groups for bootstrap, closing, and maintenance.

# backend/spbu/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables (use `flask db upgrade` for migrated deployments).
# - python -m flask system seed-demo
#   Idempotent demo data: owner, administrator, staff for every role, one station,
#   a product with a tank, and the base accounts (Kas, Bank, sales revenue).
#
# Monthly closing:
# - python -m flask closing run-all [--date 2026-03-01]
#   Close the month before --date (default: today) for every active station.
# - python -m flask closing close --station-id 1 [--date 2026-03-01]
#   Close one station; attributed to its owner's administrator (else the owner).
#
# Repair:
# - python -m flask repair delivered-volume [--station-id 1]
#   Recompute purchase delivered_volume from approved unloads. Safe to rerun.
#
# Chart of accounts:
# - python -m flask coa balances --station-id 1
#   Print derived balances (approved entries only).

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .models import GasStation, User
from .models.accounting import CATEGORY_ASSET, CATEGORY_EXPENSE, CATEGORY_REVENUE
from .permissions import roles
from .services import closing_service, coa_service, unload_service
from .services.auth_service import PasswordValidationError, create_user
from .services.station_service import assign_user, create_gas_station, create_product, create_tank
from .time_utils import parse_iso_datetime, utcnow
from .validation import DomainError


def _parse_date(value):
    if not value:
        return utcnow()
    try:
        return parse_iso_datetime(value)
    except ValueError:
        raise click.BadParameter(f"'{value}' is not an ISO date")


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables from the model metadata."""
    db.create_all()
    click.echo("PASS Tables created")


@system_group.command('seed-demo')
@click.option('--password', default='Password123!', help='Password for every demo user')
@with_appcontext
def seed_demo(password):
    """
    Seed one owner with a station and a user for every role.

    Safe to rerun: existing users and the demo station are reused.
    """
    click.echo("START Seeding demo data...")

    owner = db.session.query(User).filter_by(username="owner").first()
    if owner is None:
        try:
            owner = create_user(
                db.session,
                username="owner",
                email="owner@spbu.local",
                password=password,
                role=roles.OWNER,
            )
        except PasswordValidationError as e:
            click.echo(f"FAIL Password validation failed: {e}")
            return
        click.echo(f"PASS Created owner (ID: {owner.id})")

    station = db.session.query(GasStation).filter_by(owner_id=owner.id, name="SPBU Demo").first()
    if station is None:
        station = create_gas_station(db.session, owner=owner, name="SPBU Demo", code="DEMO-01")
        product = create_product(
            db.session, gas_station_id=station.id, name="Pertalite", purchase_price=9000, selling_price=10000
        )
        create_tank(db.session, gas_station_id=station.id, product_id=product.id, name="Tank 1", capacity=20000)
        click.echo(f"PASS Created station {station.name} (ID: {station.id}) with product and tank")

    staff_roles = [
        roles.ADMINISTRATOR,
        roles.OWNER_GROUP,
        roles.MANAGER,
        roles.OPERATOR,
        roles.UNLOADER,
        roles.FINANCE,
        roles.ACCOUNTING,
    ]
    for role in staff_roles:
        username = role.lower()
        user = db.session.query(User).filter_by(username=username).first()
        if user is not None:
            click.echo(f"WARN  User '{username}' already exists, skipping...")
            continue
        user = create_user(
            db.session,
            username=username,
            email=f"{username}@spbu.local",
            password=password,
            role=role,
            owner_id=owner.id,
        )
        if role not in roles.OWNER_SCOPED_ROLES:
            assign_user(db.session, user=user, gas_station_id=station.id)
        click.echo(f"PASS Created user: {username} ({role})")

    base_accounts = [
        (coa_service.CASH_COA_NAME, CATEGORY_ASSET),
        (coa_service.BANK_COA_NAME, CATEGORY_ASSET),
        ("Pendapatan Penjualan BBM", CATEGORY_REVENUE),
        ("Beban Operasional", CATEGORY_EXPENSE),
    ]
    for name, category in base_accounts:
        coa_service.get_or_create_coa(
            db.session, gas_station_id=station.id, name=name, category=category, created_by_id=owner.id
        )
    db.session.commit()
    click.echo("PASS Base accounts ready")

    click.echo("\nDONE Demo data seeded. Default password: " + password)


@click.group('closing')
def closing_group():
    """Monthly closing commands."""


@closing_group.command('run-all')
@click.option('--date', 'date_str', default=None, help='Closing date (ISO); closes the previous month')
@with_appcontext
def closing_run_all(date_str):
    """Close the previous month for every active station."""
    now = _parse_date(date_str)
    summary = closing_service.auto_close_all(
        db.session,
        now=now,
        retained_earnings_name=current_app.config["RETAINED_EARNINGS_COA_NAME"],
    )

    click.echo(f"\nMonthly closing {summary['month_name']}")
    click.echo("=" * 60)
    for result in summary["results"]:
        status = "PASS" if result["success"] else "FAIL"
        click.echo(f"{status} [{result['gas_station_id']}] {result['gas_station_name']}: {result['message']}")
    click.echo("=" * 60)
    click.echo(f"{summary['success_count']} succeeded, {summary['fail_count']} failed")


@closing_group.command('close')
@click.option('--station-id', type=int, required=True, help='Gas station ID')
@click.option('--date', 'date_str', default=None, help='Closing date (ISO); closes the previous month')
@with_appcontext
def closing_close(station_id, date_str):
    """Close the previous month for one station."""
    closing_date = _parse_date(date_str)
    try:
        station = coa_service.get_gas_station(db.session, station_id)
        performer = closing_service.closing_performer(db.session, station)
        outcome = closing_service.create_closing(
            db.session,
            station.id,
            closing_date,
            performer,
            retained_earnings_name=current_app.config["RETAINED_EARNINGS_COA_NAME"],
        )
    except DomainError as e:
        click.echo(f"FAIL {e}")
        raise SystemExit(1)

    kind = "profit" if outcome["is_profit"] else "loss"
    click.echo(
        f"PASS Closed {outcome['month_name']} for station {station.id}: "
        f"net {kind} {abs(outcome['balance']):,} (transaction {outcome['transaction'].id})"
    )


@click.group('repair')
def repair_group():
    """Idempotent repair commands."""


@repair_group.command('delivered-volume')
@click.option('--station-id', type=int, default=None, help='Limit to one gas station')
@with_appcontext
def repair_delivered_volume(station_id):
    """Recompute delivered_volume of fuel purchases from approved unloads."""
    report = unload_service.repair_delivered_volumes(db.session, station_id)
    for fix in report["fixes"]:
        click.echo(
            f"FIX  purchase {fix['transaction_id']} (station {fix['gas_station_id']}): "
            f"{fix['old_delivered_volume']} -> {fix['new_delivered_volume']}"
        )
    click.echo(f"PASS Checked {report['checked']} purchase(s), fixed {report['fixed']}")


@click.group('coa')
def coa_group():
    """Chart of accounts inspection."""


@coa_group.command('balances')
@click.option('--station-id', type=int, required=True, help='Gas station ID')
@click.option('--all', 'include_inactive', is_flag=True, help='Include inactive accounts')
@with_appcontext
def coa_balances(station_id, include_inactive):
    """Print derived balances of a station's accounts."""
    try:
        coas = coa_service.list_coas_with_balance(
            db.session, station_id, include_inactive=include_inactive
        )
    except DomainError as e:
        click.echo(f"FAIL {e}")
        raise SystemExit(1)

    if not coas:
        click.echo("No accounts found.")
        return

    click.echo("\n" + "=" * 90)
    click.echo(f"{'ID':<5} {'Category':<10} {'Name':<40} {'Status':<9} {'Balance':>20}")
    click.echo("=" * 90)
    for coa in coas:
        click.echo(
            f"{coa['id']:<5} {coa['category']:<10} {coa['name'][:40]:<40} "
            f"{coa['status']:<9} {coa['balance']:>20,}"
        )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(closing_group)
    app.cli.add_command(repair_group)
    app.cli.add_command(coa_group)
