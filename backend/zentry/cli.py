# Overview: Flask CLI command groups for bootstrap, inspection and the demo scenario.

# backend/zentry/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Create all tables (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Super admins:
# - python -m flask admins create-super-admin --username root --password "Password123!"
#   Create a super-admin identity (signs in via /api/auth/login/super-admin).
#
# Businesses:
# - python -m flask businesses list [--all]
# - python -m flask businesses register --company "Acme Grill" --type restaurant --owner "Jane Doe" --email jane@acme.test --password "Password123!"
# - python -m flask businesses stats
#
# Staff and property access:
# - python -m flask staff list --business-id BIZ...
# - python -m flask staff grant AMMG0042 DOWCAF123
# - python -m flask staff revoke AMMG0042 DOWCAF123
#
# Backup and storage migration:
# - python -m flask data export BIZ... --output-dir backups
#   Write umbrella-backup-<business ID>-<timestamp>.json.
# - python -m flask data migrate [--dry-run] [--overwrite]
#   Copy key-value records into the document store (safe to rerun).
#
# Maintenance:
# - python -m flask maintenance cleanup-security-events --retention-days 90
#
# Demo:
# - python -m flask demo seed
#   Register a demo business, add a property, create a manager and grant access.

import json
import os

import click
from flask.cli import with_appcontext

from .errors import ZentryError
from .extensions import db
from .repository import DocumentRepository, KeyValueRepository
from .runtime import CACHE_NAMESPACE, get_runtime
from .services import maintenance_service
from .services.business_service import backup_filename
from .services.context_service import SessionManager
from .services.switch_service import ContextSwitcher
from .stores.documents import SqlDocumentStore
from .stores.keyvalue import MemoryKeyValueStore, SqlKeyValueStore

DEMO_PASSWORD = "Password123!"


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """Create all tables. Safe to run repeatedly."""
    db.create_all()
    click.echo("PASS Tables ready.")


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


@click.group('admins')
def admins_group():
    """Super-admin account commands."""


@admins_group.command('create-super-admin')
@click.option('--username', prompt=True, help='Super-admin login')
@click.option('--email', default=None, help='Contact email')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@with_appcontext
def create_super_admin(username, email, password):
    """Create a super-admin identity. Its sessions are never persisted."""
    try:
        identity = get_runtime().identity.create_identity(
            login=username.strip(),
            secret=password,
            role_claim="super_admin",
            email=email,
        )
    except ZentryError as exc:
        click.echo(f"FAIL {exc.message}")
        return
    click.echo(f"PASS Created super admin {identity.login} (uid {identity.uid})")


@click.group('businesses')
def businesses_group():
    """Business (tenant) management commands."""


@businesses_group.command('list')
@click.option('--all', 'include_inactive', is_flag=True, help='Include deactivated businesses')
@with_appcontext
def list_businesses_cli(include_inactive):
    """List businesses in storage order."""
    runtime = get_runtime()
    businesses = runtime.businesses.list_businesses(include_inactive=include_inactive)

    if not businesses:
        click.echo("No businesses found.")
        return

    click.echo("\n" + "="*100)
    click.echo(f"{'Business ID':<24} {'Code':<9} {'Name':<30} {'Type':<11} {'Active':<7} {'Props':<6} {'Staff'}")
    click.echo("="*100)

    for business in businesses:
        staff_count = len(runtime.staff.list_staff(business.business_id))
        active_str = "Yes" if business.is_active else "No"
        click.echo(
            f"{business.business_id:<24} {business.business_code:<9} {business.company_name[:30]:<30} "
            f"{business.business_type:<11} {active_str:<7} {len(business.property_codes):<6} {staff_count}"
        )

    click.echo("="*100 + "\n")


@businesses_group.command('register')
@click.option('--company', 'company_name', required=True, help='Company name')
@click.option('--type', 'business_type', default='restaurant', help='Business type')
@click.option('--owner', 'owner_name', required=True, help='Owner full name')
@click.option('--email', required=True, help='Company email')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Owner password')
@click.option('--property', 'property_name', default=None, help='Main property name (defaults to company name)')
@with_appcontext
def register_business_cli(company_name, business_type, owner_name, email, password, property_name):
    """Register a business with its main property and owner account."""
    try:
        result = get_runtime().businesses.register_business(
            company_name=company_name,
            business_type=business_type,
            owner_name=owner_name,
            email=email,
            password=password,
            property_name=property_name,
        )
    except ZentryError as exc:
        click.echo(f"FAIL {exc.message}")
        return

    click.echo(f"PASS Registered {result.business.company_name}")
    click.echo(f"   Business code: {result.business.business_code}")
    click.echo(f"   Business ID:   {result.business.business_id}  (owner login)")
    click.echo(f"   Owner staff:   {result.owner.staff_id}")
    click.echo(f"   Main property: {result.main_property.property_code} (connect code {result.main_property.connection_code})")


@businesses_group.command('stats')
@with_appcontext
def business_stats_cli():
    """System-wide totals and distributions."""
    stats = get_runtime().businesses.system_stats()
    for key in ("total_businesses", "active_businesses", "total_properties", "active_properties",
                "total_staff", "active_staff", "pending_staff"):
        click.echo(f"{key:<20} {stats[key]}")
    click.echo("business types: " + (", ".join(f"{k}={v}" for k, v in stats["business_types"].items()) or "-"))
    click.echo("roles:          " + (", ".join(f"{k}={v}" for k, v in stats["roles"].items()) or "-"))


@click.group('staff')
def staff_group():
    """Staff and property access commands."""


@staff_group.command('list')
@click.option('--business-id', required=True, help='Business ID')
@with_appcontext
def list_staff_cli(business_id):
    """List staff of a business with their property access."""
    staff = get_runtime().staff.list_staff(business_id)
    if not staff:
        click.echo("No staff found.")
        return

    for member in staff:
        status = "active" if member.is_active else "inactive"
        if not member.is_approved:
            status = "pending"
        access = ", ".join(member.property_access) or "-"
        click.echo(f"{member.staff_id:<10} {member.full_name[:28]:<28} {member.role:<18} {status:<9} {access}")


@staff_group.command('grant')
@click.argument('staff_id')
@click.argument('property_code')
@with_appcontext
def grant_access_cli(staff_id, property_code):
    """Grant a staff member access to a property."""
    try:
        get_runtime().access.grant_property_access(staff_id.upper(), property_code.upper())
    except ZentryError as exc:
        click.echo(f"FAIL {exc.message}")
        return
    click.echo(f"PASS {staff_id.upper()} can access {property_code.upper()}")


@staff_group.command('revoke')
@click.argument('staff_id')
@click.argument('property_code')
@with_appcontext
def revoke_access_cli(staff_id, property_code):
    """Revoke a staff member's access to a property."""
    try:
        revoked = get_runtime().access.revoke_property_access(staff_id.upper(), property_code.upper())
    except ZentryError as exc:
        click.echo(f"FAIL {exc.message}")
        return
    if revoked:
        click.echo(f"PASS Revoked {property_code.upper()} from {staff_id.upper()}")
    else:
        click.echo(f"PASS {staff_id.upper()} had no access to {property_code.upper()}")


@click.group('demo')
def demo_group():
    """Demo data."""


@demo_group.command('seed')
@with_appcontext
def seed_demo():
    """
    Walk through the umbrella-account scenario:
    register a business, add a cafe, create a manager, grant access, then
    show that switching to another business's property is refused.
    """
    runtime = get_runtime()
    try:
        result = runtime.businesses.register_business(
            company_name="Demo Restaurant Group",
            business_type="restaurant",
            owner_name="Dana Owner",
            email="owner@demo-restaurants.test",
            password=DEMO_PASSWORD,
        )
        business = result.business
        click.echo(f"PASS Business {business.business_code} / {business.business_id}")

        cafe = runtime.businesses.add_property(
            business.business_id,
            "Downtown Café",
            business_type="cafe",
            created_by=result.owner.staff_id,
        )
        click.echo(f"PASS Property {cafe.property_code} (connect code {cafe.connection_code})")

        alice = runtime.staff.create_staff(
            business.business_id,
            "Alice Manager",
            "manager",
            DEMO_PASSWORD,
            email="alice@demo-restaurants.test",
        )
        runtime.access.grant_property_access(alice.staff_id, cafe.property_code)
        accessible = [p.property_code for p in runtime.access.get_accessible_properties(alice.staff_id)]
        click.echo(f"PASS Staff {alice.staff_id} can access {', '.join(accessible)}")

        other = runtime.businesses.register_business(
            company_name="Harbor Bistro",
            business_type="restaurant",
            owner_name="Omar Other",
            email="owner@harbor-bistro.test",
            password=DEMO_PASSWORD,
        )

        manager = SessionManager(
            storage=MemoryKeyValueStore(),
            identity_provider=runtime.identity,
            repo=runtime.repo,
            access=runtime.access,
            wait_timeout=runtime.wait_timeout,
        )
        manager.login_staff(alice.staff_id, DEMO_PASSWORD)
        switcher = ContextSwitcher(manager, runtime.access)
        before = manager.context.current_property.property_code if manager.context.current_property else None
        ok = switcher.switch_property(other.main_property.property_code)
        after = manager.context.current_property.property_code if manager.context.current_property else None
        click.echo(f"PASS Switch to {other.main_property.property_code} refused={not ok} ({switcher.last_error}); property stays {after}")
        if before != after:
            click.echo("FAIL Current property changed after a refused switch")
        manager.logout()
    except ZentryError as exc:
        click.echo(f"FAIL {exc.message}")
        return

    click.echo(f"\nDemo logins (password {DEMO_PASSWORD}):")
    click.echo(f"   owner   -> {business.business_id}")
    click.echo(f"   manager -> {alice.staff_id}")


@click.group('data')
def data_group():
    """Backup and storage migration commands."""


@data_group.command('export')
@click.argument('business_id')
@click.option('--output-dir', default='.', show_default=True, type=click.Path(file_okay=False), help='Directory for the backup file')
@click.option('--by', 'exported_by', default='cli', show_default=True, help='Recorded as exported_by')
@with_appcontext
def export_business_cli(business_id, output_dir, exported_by):
    """Write an umbrella-account backup of one business as JSON."""
    try:
        snapshot = get_runtime().businesses.export_business(business_id, exported_by=exported_by)
    except ZentryError as exc:
        click.echo(f"FAIL {exc.message}")
        return

    business = snapshot["business"]
    os.makedirs(output_dir, exist_ok=True)
    path = os.path.join(output_dir, backup_filename(business["business_id"], snapshot["exported_at"]))
    with open(path, "w", encoding="utf-8") as fh:
        json.dump(snapshot, fh, indent=2, ensure_ascii=False)

    click.echo(f"PASS Exported {business['company_name']} to {path}")
    click.echo(f"   {len(snapshot['properties'])} properties, {len(snapshot['staff'])} staff")


@data_group.command('migrate')
@click.option('--namespace', default=CACHE_NAMESPACE, show_default=True, help='Key-value namespace holding the legacy records')
@click.option('--overwrite', is_flag=True, help='Replace records the document store already holds')
@click.option('--dry-run', is_flag=True, help='Count what would be copied without writing')
@with_appcontext
def migrate_data_cli(namespace, overwrite, dry_run):
    """
    Copy businesses, properties and staff from the key-value layout into
    the document store. Safe to rerun.
    """
    kv = SqlKeyValueStore(namespace)
    source = KeyValueRepository(kv)
    target = DocumentRepository(SqlDocumentStore(), kv)
    try:
        report = maintenance_service.migrate_repository(source, target, overwrite=overwrite, dry_run=dry_run)
    except ZentryError as exc:
        click.echo(f"FAIL {exc.message}")
        return

    verb = "Would migrate" if dry_run else "Migrated"
    for label in ("businesses", "properties", "staff"):
        click.echo(f"{label:<11} {report.migrated[label]:>5} {verb.lower()}, {report.skipped[label]:>5} skipped")
    click.echo(f"PASS {verb} {report.total_migrated} records.")


@click.group('maintenance')
def maintenance_group():
    """Maintenance commands."""


@maintenance_group.command('cleanup-security-events')
@click.option('--retention-days', type=int, default=90, show_default=True)
@with_appcontext
def cleanup_security_events_cli(retention_days):
    """
    Cleanup old sign-in security events.

    Default retention: 90 days.
    """
    try:
        deleted = maintenance_service.cleanup_security_events(retention_days=retention_days)
    except ZentryError as exc:
        click.echo(f"FAIL {exc.message}")
        return
    click.echo(f"Deleted {deleted} security events older than {retention_days} days.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(admins_group)
    app.cli.add_command(businesses_group)
    app.cli.add_command(staff_group)
    app.cli.add_command(data_group)
    app.cli.add_command(maintenance_group)
    app.cli.add_command(demo_group)
