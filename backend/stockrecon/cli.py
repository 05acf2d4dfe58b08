# Overview: Flask CLI command groups for bootstrap, integrity checks, and unit maintenance.

# backend/stockrecon/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to stockrecon (PowerShell: $env:FLASK_APP="stockrecon").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create any missing tables (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Integrity:
# - python -m flask integrity check [--json]
#   Run all integrity passes and print the report. Exit code 1 when drift is found.
# - python -m flask integrity repair
#   Auto-repair stock mismatches and sold units without a completed sale.
#
# Units:
# - python -m flask units backfill-barcodes
#   Assign barcodes to units that have none.
# - python -m flask units validate-barcodes [--product-id 1]
#   Validate stored unit barcodes.

import json

import click
from flask.cli import with_appcontext

from .extensions import db
from .services import current_services


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database schema is up to date.")


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


@click.group('integrity')
def integrity_group():
    """Inventory integrity checks and auto-repair."""


def _print_section(title, rows, columns):
    if not rows:
        return
    click.echo(f"\n{title} ({len(rows)})")
    click.echo("-" * 100)
    for row in rows:
        click.echo("  " + "  ".join(f"{key}={row[key]}" for key in columns))


@integrity_group.command('check')
@click.option('--json', 'as_json', is_flag=True, help='Print the report as JSON')
@with_appcontext
def integrity_check(as_json):
    """
    Run the integrity checker.

    Example:
        flask integrity check
        flask integrity check --json
    """
    report = current_services().integrity.run_check()
    data = report.to_dict()

    if as_json:
        click.echo(json.dumps(data, indent=2))
    else:
        click.echo("\n" + "="*100)
        click.echo(f"Integrity report  {data['generated_at']}")
        click.echo("="*100)
        _print_section("Stock mismatches", data["stock_mismatches"],
                       ("product_id", "product_name", "stored_stock", "calculated_stock", "difference"))
        _print_section("Inconsistent statuses", data["inconsistent_statuses"],
                       ("unit_id", "product_id", "serial_number", "status", "issue"))
        _print_section("Orphaned units", data["orphaned_units"],
                       ("unit_id", "product_id", "serial_number", "reason"))
        _print_section("Invalid serial sales", data["invalid_serial_sales"],
                       ("sale_number", "product_id", "serial_number", "issue"))
        for error in data["pass_errors"]:
            click.echo(f"FAIL {error}")
        click.echo("")
        for suggestion in data["suggestions"]:
            click.echo(f"- {suggestion}")
        click.echo("="*100 + "\n")

    if not report.is_clean:
        raise SystemExit(1)


@integrity_group.command('repair')
@with_appcontext
def integrity_repair():
    """Auto-repair what has a single correct value; report the rest."""
    services = current_services()
    result = services.repair.auto_repair()

    click.echo(f"PASS Repaired {result.repaired} issue(s).")
    for error in result.errors:
        click.echo(f"FAIL {error}")

    remaining = services.integrity.run_check()
    if remaining.is_clean:
        click.echo("PASS Inventory is consistent.")
    else:
        click.echo(f"WARN {remaining.issue_count} issue(s) need manual review. Run 'flask integrity check'.")


@click.group('units')
def units_group():
    """Product unit maintenance commands."""


@units_group.command('backfill-barcodes')
@with_appcontext
def backfill_barcodes():
    """Assign barcodes to every unit that has none."""
    result = current_services().lifecycle.backfill_missing_barcodes()
    click.echo(f"PASS Assigned {result['updated']} barcode(s).")
    for error in result["errors"]:
        click.echo(f"FAIL {error}")


@units_group.command('validate-barcodes')
@click.option('--product-id', type=int, help='Only check units of this product')
@with_appcontext
def validate_barcodes(product_id):
    """
    Validate stored unit barcodes.

    Example:
        flask units validate-barcodes
        flask units validate-barcodes --product-id 3
    """
    result = current_services().lifecycle.validate_unit_barcodes(product_id)
    click.echo(f"Valid: {result['valid']}")
    click.echo(f"Missing: {len(result['missing'])}")
    for serial in result["missing"]:
        click.echo(f"  - {serial}")
    click.echo(f"Invalid: {len(result['invalid'])}")
    for problem in result["invalid"]:
        click.echo(f"  - {problem}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(integrity_group)
    app.cli.add_command(units_group)
