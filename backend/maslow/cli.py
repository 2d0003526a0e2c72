# Overview: Flask CLI command groups for bootstrap, inventory, credits and ledger maintenance.

# backend/maslow/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to maslow (PowerShell: $env:FLASK_APP="maslow").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables that do not exist yet (use `flask db upgrade` for migrations).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Inventory:
# - python -m flask locations create --name "Union Square" --address "1 Union Sq"
# - python -m flask locations list
# - python -m flask suites create --location-id 1 --number "S-01" --shower --bidet --sample lavender-soap
# - python -m flask suites list --location-id 1
#
# Credits:
# - python -m flask credits grant --user-id u-123 --amount 5 [--expires-in-days 90]
#   Issue a grant (the seam a settled purchase calls).
# - python -m flask credits balance --user-id u-123
# - python -m flask credits expire
#   Mark grants past their expiry as expired.
#
# Sessions:
# - python -m flask sessions issue --user-id u-123 [--staff]
#   Print a bearer token for the user (shown once).
#
# Ledger:
# - python -m flask ledger reconcile
#   Report orphan bookings, stuck suites, missing refunds and ledger drift.
# - python -m flask ledger settle-refund 42
#   Complete a refund left pending by a failed cancellation.

from datetime import timedelta

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Location, Suite
from .services import availability_service, credit_ledger_service, session_service
from .services import booking_service, reconciliation_service
from .services.availability_service import AvailabilityError
from .services.booking_service import BookingError
from .services.credit_ledger_service import LedgerError
from .time_utils import utcnow


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create any missing tables."""
    db.create_all()
    click.echo("PASS Database tables created")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Confirm destructive reset')
@with_appcontext
def reset_db(yes):
    """DEV/TEST only: drop and recreate all tables."""
    if not yes:
        click.echo("FAIL Refusing to reset without --yes")
        raise SystemExit(1)
    db.drop_all()
    db.create_all()
    click.echo("PASS Database reset")


# =============================================================================
# INVENTORY
# =============================================================================

@click.group('locations')
def locations_group():
    """Location management."""


@locations_group.command('create')
@click.option('--name', required=True, help='Location name')
@click.option('--address', default=None, help='Street address')
@with_appcontext
def create_location(name, address):
    try:
        location = availability_service.create_location(name, address)
    except AvailabilityError as e:
        click.echo(f"FAIL {e}")
        raise SystemExit(1)
    click.echo(f"PASS Created location: {location.name} (ID: {location.id})")


@locations_group.command('list')
@with_appcontext
def list_locations():
    locations = db.session.query(Location).order_by(Location.id.asc()).all()
    if not locations:
        click.echo("No locations")
        return
    for location in locations:
        state = "active" if location.is_active else "inactive"
        click.echo(f"{location.id:>4}  {location.name:<30} {state}")


@click.group('suites')
def suites_group():
    """Suite inventory management."""


@suites_group.command('create')
@click.option('--location-id', required=True, type=int)
@click.option('--number', 'suite_number', required=True, help='Suite number, unique per location')
@click.option('--shower', is_flag=True)
@click.option('--bidet', is_flag=True)
@click.option('--heated-seat', is_flag=True)
@click.option('--vanity', is_flag=True)
@click.option('--changing-table', is_flag=True)
@click.option('--max-occupancy', default=1, type=click.IntRange(min=1))
@click.option('--sample', 'samples', multiple=True, help='Sample stocked in the suite (repeatable)')
@with_appcontext
def create_suite(location_id, suite_number, shower, bidet, heated_seat, vanity, changing_table, max_occupancy, samples):
    try:
        suite = availability_service.create_suite(
            location_id,
            suite_number,
            has_shower=shower,
            has_bidet=bidet,
            has_heated_seat=heated_seat,
            has_vanity=vanity,
            has_changing_table=changing_table,
            max_occupancy=max_occupancy,
            available_samples=list(dict.fromkeys(samples)),
        )
    except AvailabilityError as e:
        click.echo(f"FAIL {e}")
        raise SystemExit(1)
    click.echo(f"PASS Created suite {suite.suite_number} (ID: {suite.id}) at location {location_id}")


@suites_group.command('list')
@click.option('--location-id', required=True, type=int)
@with_appcontext
def list_suites(location_id):
    suites = (
        db.session.query(Suite)
        .filter(Suite.location_id == location_id)
        .order_by(Suite.suite_number.asc())
        .all()
    )
    for suite in suites:
        if not suite.is_operational:
            state = "out of service"
        elif suite.is_available:
            state = "available"
        else:
            state = "reserved"
        click.echo(f"{suite.id:>4}  {suite.suite_number:<10} {state}")


# =============================================================================
# CREDITS / SESSIONS
# =============================================================================

@click.group('credits')
def credits_group():
    """Credit ledger commands."""


@credits_group.command('grant')
@click.option('--user-id', required=True)
@click.option('--amount', required=True, type=click.IntRange(min=1))
@click.option('--expires-in-days', default=None, type=click.IntRange(min=1))
@click.option('--description', default=None)
@with_appcontext
def grant_credits(user_id, amount, expires_in_days, description):
    """Issue a credit grant."""
    expires_at = utcnow() + timedelta(days=expires_in_days) if expires_in_days else None
    try:
        grant = credit_ledger_service.issue_grant(
            user_id, amount, expires_at=expires_at, description=description
        )
    except LedgerError as e:
        click.echo(f"FAIL {e}")
        raise SystemExit(1)
    click.echo(f"PASS Granted {amount} credit(s) to {user_id} (grant ID: {grant.id})")
    click.echo(f"     Balance: {credit_ledger_service.available_balance(user_id)}")


@credits_group.command('balance')
@click.option('--user-id', required=True)
@with_appcontext
def show_balance(user_id):
    click.echo(f"{user_id}: {credit_ledger_service.available_balance(user_id)} credit(s)")


@credits_group.command('expire')
@with_appcontext
def expire_credits():
    """Mark grants past their expiry as expired."""
    count = credit_ledger_service.expire_grants()
    click.echo(f"PASS Expired {count} grant(s)")


@click.group('sessions')
def sessions_group():
    """Session issuance (stands in for the identity provider)."""


@sessions_group.command('issue')
@click.option('--user-id', required=True)
@click.option('--staff', is_flag=True, help='Issue a staff session')
@with_appcontext
def issue_session(user_id, staff):
    session, token = session_service.create_session(user_id, is_staff=staff)
    click.echo(f"PASS Session {session.id} for {user_id} expires {session.expires_at.isoformat()}Z")
    click.echo(token)


# =============================================================================
# LEDGER MAINTENANCE
# =============================================================================

@click.group('ledger')
def ledger_group():
    """Consistency checks and support actions."""


@ledger_group.command('reconcile')
@with_appcontext
def reconcile():
    """Report inconsistencies between bookings, suites and credits."""
    report = reconciliation_service.run_reconciliation()
    for check in ("orphan_bookings", "stuck_suites", "missing_refunds", "ledger_drift"):
        findings = report[check]
        status = "PASS" if not findings else "FAIL"
        click.echo(f"{status} {check}: {len(findings)}")
        for finding in findings:
            click.echo(f"     {finding}")
    if not report["ok"]:
        raise SystemExit(1)


@ledger_group.command('settle-refund')
@click.argument('booking_id', type=int)
@with_appcontext
def settle_refund(booking_id):
    """Complete a pending refund for a cancelled booking."""
    try:
        result = booking_service.settle_pending_refund(booking_id)
    except BookingError as e:
        click.echo(f"FAIL {e}")
        raise SystemExit(1)
    click.echo(f"PASS Booking {booking_id}: {result.refunded_credits} credit(s) refunded")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(locations_group)
    app.cli.add_command(suites_group)
    app.cli.add_command(credits_group)
    app.cli.add_command(sessions_group)
    app.cli.add_command(ledger_group)
