# Overview: Flask CLI command groups for bootstrap, ledger inspection and settlement follow-up.

# backend/pawnops/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init [--admin-username admin] [--admin-password "ChangeMe123"]
#   Create missing tables and a default admin account (idempotent).
#
# Branch directory:
# - python -m flask branches list
# - python -m flask branches create --name "Main" --code "MAIN" --city "Cebu" --lat 10.3 --lng 123.9
#
# Accounts:
# - python -m flask accounts create --username driver1 --role logistics --password "..." [--branch-id 1]
#
# Capital ledger:
# - python -m flask ledger balance --branch-id 1
# - python -m flask ledger verify --branch-id 1
#   Replay the ledger from zero; exits non-zero if any running balance disagrees.
#
# Settlement reconciliation:
# - python -m flask settlement issues [--all]

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Account, Branch
from .roles import ALL_ROLES, ROLE_ADMIN
from .services import branch_service, ledger_service, settlement_service
from .services.auth_service import create_account
from .validation import ConflictError, NotFoundError, ValidationError, format_cents


DEFAULT_ADMIN_PASSWORD = "ChangeMe123"


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init')
@click.option('--admin-username', default='admin', help='Username of the default admin')
@click.option('--admin-password', default=DEFAULT_ADMIN_PASSWORD, help='Password of the default admin')
@with_appcontext
def init_system(admin_username, admin_password):
    """
    Create missing tables and a default admin account.

    SECURITY: Change the default password immediately in production!
    """
    click.echo("START Initializing pawnops...")

    db.create_all()
    click.echo("PASS Tables ready")

    existing = db.session.query(Account).filter_by(username=admin_username).first()
    if existing:
        click.echo(f"WARN  Account '{admin_username}' already exists, skipping...")
    else:
        try:
            account = create_account(admin_username, admin_password, ROLE_ADMIN, full_name="Administrator")
            click.echo(f"PASS Created admin: {account.username} (ID: {account.id})")
        except (ValidationError, ConflictError) as e:
            db.session.rollback()
            click.echo(f"FAIL Failed to create admin: {e}")
            return

    click.echo("DONE System initialized")


@click.group('branches')
def branches_group():
    """Branch directory commands."""


@branches_group.command('list')
@with_appcontext
def list_branches_cli():
    branches = branch_service.list_branches()
    if not branches:
        click.echo("No branches found.")
        return
    for branch in branches:
        capital = format_cents(ledger_service.get_current_capital_cents(branch.id))
        click.echo(f"{branch.id:>4}  {branch.code or '-':<10} {branch.name:<30} capital={capital}")


@branches_group.command('create')
@click.option('--name', required=True, help='Branch name (unique)')
@click.option('--code', help='Short code (unique)')
@click.option('--address', help='Street address')
@click.option('--city', help='City')
@click.option('--region', help='Region')
@click.option('--lat', 'latitude', type=float, help='Latitude')
@click.option('--lng', 'longitude', type=float, help='Longitude')
@with_appcontext
def create_branch_cli(name, code, address, city, region, latitude, longitude):
    try:
        branch = branch_service.create_branch(
            name, code,
            address=address, city=city, region=region,
            latitude=latitude, longitude=longitude,
        )
    except (ValidationError, ConflictError) as e:
        db.session.rollback()
        raise click.ClickException(str(e))
    click.echo(f"PASS Created branch: {branch.name} (ID: {branch.id})")


@click.group('accounts')
def accounts_group():
    """Account bootstrap commands."""


@accounts_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(list(ALL_ROLES)), prompt=True, help='Role')
@click.option('--full-name', help='Display name')
@click.option('--branch-id', type=int, help='Home branch')
@with_appcontext
def create_account_cli(username, password, role, full_name, branch_id):
    try:
        account = create_account(username, password, role, full_name=full_name, branch_id=branch_id)
    except (ValidationError, ConflictError, NotFoundError) as e:
        db.session.rollback()
        raise click.ClickException(str(e))
    click.echo(f"PASS Created account: {account.username} with role '{account.role}' (ID: {account.id})")


@click.group('ledger')
def ledger_group():
    """Branch capital ledger inspection."""


def _require_branch(branch_id: int) -> Branch:
    try:
        return branch_service.get_branch(branch_id)
    except NotFoundError as e:
        raise click.ClickException(str(e))


@ledger_group.command('balance')
@click.option('--branch-id', type=int, required=True, help='Branch ID')
@with_appcontext
def ledger_balance(branch_id):
    branch = _require_branch(branch_id)
    click.echo(f"{branch.name}: {ledger_service.get_current_capital(branch_id)}")


@ledger_group.command('verify')
@click.option('--branch-id', type=int, required=True, help='Branch ID')
@with_appcontext
def ledger_verify(branch_id):
    branch = _require_branch(branch_id)
    discrepancies = ledger_service.verify_branch_ledger(branch_id)
    if not discrepancies:
        click.echo(f"PASS Ledger for {branch.name} replays cleanly")
        return
    for d in discrepancies:
        click.echo(
            f"FAIL entry {d.entry_id}: expected {format_cents(d.expected_balance_cents)}, "
            f"stored {format_cents(d.stored_balance_cents)}"
        )
    raise click.exceptions.Exit(1)


@click.group('settlement')
def settlement_group():
    """Settlement reconciliation follow-up."""


@settlement_group.command('issues')
@click.option('--all', 'include_resolved', is_flag=True, help='Include resolved issues')
@with_appcontext
def settlement_issues(include_resolved):
    issues = settlement_service.list_issues(unresolved_only=not include_resolved)
    if not issues:
        click.echo("No settlement issues.")
        return
    for issue in issues:
        state = "resolved" if issue.resolved_at else "OPEN"
        click.echo(
            f"#{issue.id} assignment={issue.assignment_id} stage={issue.stage} "
            f"branch={issue.branch_id} amount={format_cents(issue.amount_cents)} [{state}] {issue.error}"
        )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(branches_group)
    app.cli.add_command(accounts_group)
    app.cli.add_command(ledger_group)
    app.cli.add_command(settlement_group)
