# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/certflow/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables that do not exist yet.
# - python -m flask system init-roles
#   Store the built-in roles so they can be edited (idempotent).
#
# Role inspection:
# - python -m flask roles list
#   Effective role table (built-in roles overlaid with stored roles).
# - python -m flask roles check "QA Tester" requests:approve
#   Check whether a role name grants a permission.
#
# Workers:
# - python -m flask notifications deliver --limit 100
#   Drain pending notification events (in-app + email).
# - python -m flask invoices mark-overdue
#   Move sent invoices past their due date to overdue.
# - python -m flask invoices remind
#   Queue payment reminders for past-due invoices (at most one per interval).
# - python -m flask requests followup --days 3
#   Remind approvers once about requests pending longer than --days.

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .models import Role
from .permissions import validate_permission_code
from .services import permission_service
from .services import notification_service
from .services import invoice_service
from .services import request_service
from .time_utils import utcnow


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create database tables."""
    db.create_all()
    click.echo("PASS Database tables created")


@system_group.command('init-roles')
@with_appcontext
def init_roles():
    """Store the built-in roles (skips roles that already exist)."""
    click.echo("LIST Storing default roles...")
    created = permission_service.initialize_roles()
    total = db.session.query(Role).count()
    click.echo(f"PASS Created {created} roles ({total} stored)")


@click.group('roles')
def roles_group():
    """Role inspection commands."""


@roles_group.command('list')
@with_appcontext
def list_roles():
    """Show every role and the permissions it grants."""
    table = permission_service.load_role_table()
    stored_keys = {key for (key,) in db.session.query(Role.canonical_key).all()}

    if not len(table):
        click.echo("No roles found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'Key':<20} {'Name':<25} {'Source':<10} {'Permissions'}")
    click.echo("="*80)
    for key in table.keys():
        source = "stored" if key in stored_keys else "built-in"
        count = len(table.permissions_for(key))
        click.echo(f"{key:<20} {table.display_name(key):<25} {source:<10} {count}")
    click.echo("="*80 + "\n")


@roles_group.command('check')
@click.argument('role_name')
@click.argument('permission_code')
@with_appcontext
def check_role(role_name, permission_code):
    """Check whether ROLE_NAME grants PERMISSION_CODE."""
    if not validate_permission_code(permission_code):
        click.echo(f"WARN  '{permission_code}' is not a known permission code")

    table = permission_service.load_role_table()
    key = permission_service.canonical_role_key(role_name)
    if role_name not in table:
        click.echo(f"FAIL Role '{role_name}' (key '{key}') not found")
        return

    if permission_service.has_permission([role_name], permission_code, table):
        click.echo(f"PASS '{role_name}' (key '{key}') HAS {permission_code}")
    else:
        click.echo(f"FAIL '{role_name}' (key '{key}') does NOT have {permission_code}")


@click.group('notifications')
def notifications_group():
    """Notification worker commands."""


@notifications_group.command('deliver')
@click.option('--limit', type=int, default=100, show_default=True, help='Maximum events to process')
@with_appcontext
def deliver(limit):
    """Deliver pending notification events."""
    summary = notification_service.deliver_pending_notifications(limit=limit)
    click.echo(
        f"PASS Processed {summary['processed']} events: "
        f"{summary['delivered']} delivered, {summary['retrying']} retrying, "
        f"{summary['failed']} failed"
    )


@click.group('invoices')
def invoices_group():
    """Invoice maintenance commands."""


@invoices_group.command('mark-overdue')
@with_appcontext
def mark_overdue():
    """Move sent invoices past their due date to overdue."""
    changed = invoice_service.mark_overdue_invoices(now=utcnow())
    if not changed:
        click.echo("PASS No overdue invoices")
        return
    for invoice in changed:
        click.echo(f"  OVERDUE {invoice.invoice_number} ({invoice.client_name})")
    click.echo(f"PASS Marked {len(changed)} invoices overdue")


@invoices_group.command('remind')
@with_appcontext
def remind_invoices():
    """Queue payment reminders for past-due invoices."""
    interval = current_app.config.get("INVOICE_REMINDER_INTERVAL_DAYS", 7)
    reminded = invoice_service.send_invoice_reminders(now=utcnow(), interval_days=interval)
    for invoice in reminded:
        click.echo(f"  REMIND {invoice.invoice_number} ({invoice.client_name})")
    click.echo(f"PASS Queued {len(reminded)} invoice reminders")


@click.group('requests')
def requests_group():
    """Certificate request maintenance commands."""


@requests_group.command('followup')
@click.option('--days', type=int, default=None, help='Pending age threshold (default: REQUEST_FOLLOWUP_DAYS)')
@with_appcontext
def followup(days):
    """Remind approvers about requests pending too long."""
    if days is None:
        days = current_app.config.get("REQUEST_FOLLOWUP_DAYS", 3)
    reminded = request_service.send_pending_followups(now=utcnow(), days=days)
    if not reminded:
        click.echo("PASS No pending requests past the follow-up threshold")
        return
    for req in reminded:
        click.echo(f"  FOLLOWUP #{req.id} {req.task_title} ({req.requester_name})")
    click.echo(f"PASS Queued follow-ups for {len(reminded)} requests")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(roles_group)
    app.cli.add_command(notifications_group)
    app.cli.add_command(invoices_group)
    app.cli.add_command(requests_group)
