# Overview: Flask CLI command groups for terminal bootstrap, inspection, and seat maintenance.

# backend/buspos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System:
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Terminal inspection/bootstrap:
# - python -m flask terminals create --identifier "DAVID-01" --location "Terminal David, Ventanilla 1"
#   Create a new POS terminal (closed, empty drawer).
# - python -m flask terminals list [--all]
#   List terminals (use --all to include inactive).
# - python -m flask terminals sessions --terminal-id 1 --status OPEN --limit 20
#   List recent cash sessions with optional filters.
#
# Seats:
# - python -m flask seats generate --trip-id 1 --rows 10 --columns 4
#   Create a rectangular seat map for a trip.
# - python -m flask locks sweep
#   Delete expired seat-lock rows (housekeeping; availability never depends on it).

import click
from flask.cli import with_appcontext

from .extensions import db
from .errors import POSError


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

    click.echo("PASS Database reset complete.")


@click.group('terminals')
def terminals_group():
    """Terminal inspection and bootstrap commands."""


@terminals_group.command('create')
@click.option('--identifier', required=True, help='Terminal identifier (e.g. DAVID-01)')
@click.option('--location', required=True, help='Physical location')
@click.option('--location-code', help='Station/location code')
@click.option('--assigned-user-id', type=int, help='Default operator user ID')
@with_appcontext
def create_terminal_cli(identifier, location, location_code, assigned_user_id):
    """
    Create a new POS terminal.

    Example:
        flask terminals create --identifier DAVID-01 --location "Terminal David, Ventanilla 1"
    """
    from .services import register_service

    try:
        terminal = register_service.create_terminal(
            terminal_identifier=identifier,
            physical_location=location,
            location_code=location_code,
            assigned_user_id=assigned_user_id,
        )

        click.echo(f"PASS Created terminal: {terminal.terminal_identifier}")
        click.echo(f"   Location: {terminal.physical_location}")
        click.echo(f"   Terminal ID: {terminal.id}")

    except POSError as e:
        click.echo(f"FAIL Error: {str(e)}")


@terminals_group.command('list')
@click.option('--all', 'show_all', is_flag=True, help='Show inactive terminals too')
@with_appcontext
def list_terminals_cli(show_all):
    """
    List all terminals.

    Example:
        flask terminals list
        flask terminals list --all
    """
    from .models import POSTerminal

    query = db.session.query(POSTerminal)

    if not show_all:
        query = query.filter_by(is_active=True)

    terminals = query.order_by(POSTerminal.terminal_identifier).all()

    if not terminals:
        click.echo("No terminals found.")
        return

    click.echo("\n" + "="*100)
    click.echo(f"{'ID':<5} {'Identifier':<14} {'Location':<35} {'Active':<8} {'Status':<8} {'Drawer'}")
    click.echo("="*100)

    for terminal in terminals:
        status = "OPEN" if terminal.is_open else "CLOSED"
        active_str = "Yes" if terminal.is_active else "No"
        drawer = f"${terminal.current_cash_cents / 100:.2f}"

        click.echo(f"{terminal.id:<5} {terminal.terminal_identifier:<14} {terminal.physical_location[:35]:<35} "
                   f"{active_str:<8} {status:<8} {drawer}")

    click.echo("="*100 + "\n")


@terminals_group.command('sessions')
@click.option('--terminal-id', type=int, help='Filter by terminal ID')
@click.option('--status', type=click.Choice(['OPEN', 'CLOSED']), help='Filter by status')
@click.option('--limit', type=int, default=20, help='Max sessions to show')
@with_appcontext
def list_sessions_cli(terminal_id, status, limit):
    """
    List cash sessions.

    Example:
        flask terminals sessions
        flask terminals sessions --terminal-id 1
        flask terminals sessions --status OPEN
    """
    from .services import register_service

    sessions = register_service.list_sessions(
        terminal_id,
        status=status.lower() if status else None,
        limit=limit,
    )

    if not sessions:
        click.echo("No sessions found.")
        return

    click.echo("\n" + "="*120)
    click.echo(f"{'ID':<5} {'Terminal':<14} {'User':<8} {'Status':<8} {'Type':<5} {'Opened':<20} "
               f"{'Sales':<12} {'Difference':<12} {'Notes'}")
    click.echo("="*120)

    for session in sessions:
        terminal_ident = session.terminal.terminal_identifier if session.terminal else "Unknown"
        status_str = "OPEN" if session.is_open else "CLOSED"

        difference_str = "-"
        if session.difference_cents is not None:
            difference_str = f"${session.difference_cents / 100:+.2f}"

        sales_str = f"${session.total_sales_cents / 100:.2f}"
        notes = session.discrepancy_notes[:30] if session.discrepancy_notes else "-"

        click.echo(f"{session.id:<5} {terminal_ident:<14} {session.opened_by_user_id:<8} {status_str:<8} "
                   f"{session.closure_type or '-':<5} {str(session.opened_at)[:19]:<20} "
                   f"{sales_str:<12} {difference_str:<12} {notes}")

    click.echo("="*120 + "\n")


@click.group('seats')
def seats_group():
    """Seat map commands."""


@seats_group.command('generate')
@click.option('--trip-id', type=int, required=True, help='Trip ID')
@click.option('--rows', type=int, required=True, help='Number of seat rows')
@click.option('--columns', type=int, default=4, show_default=True, help='Seats per row')
@click.option('--floor', type=int, default=1, show_default=True, help='Deck (double-decker buses)')
@with_appcontext
def generate_seats_cli(trip_id, rows, columns, floor):
    """
    Create a rectangular seat map for a trip.

    Example:
        flask seats generate --trip-id 1 --rows 10 --columns 4
    """
    from .services import seat_lock_service

    try:
        seats = seat_lock_service.create_trip_seats(trip_id, rows, columns, floor=floor)
        click.echo(f"PASS Created {len(seats)} seats for trip {trip_id}")
    except POSError as e:
        click.echo(f"FAIL Error: {str(e)}")


@click.group('locks')
def locks_group():
    """Seat lock maintenance commands."""


@locks_group.command('sweep')
@with_appcontext
def sweep_locks_cli():
    """Delete expired seat-lock rows."""
    from .services import seat_lock_service

    deleted = seat_lock_service.sweep_expired_locks()
    click.echo(f"PASS Removed {deleted} expired seat locks")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(terminals_group)
    app.cli.add_command(seats_group)
    app.cli.add_command(locks_group)
