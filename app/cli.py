"""
Custom Flask CLI commands.

These commands are registered with the app via ``register_commands()``
in the application factory. Run them with ``flask <command_name>``.

Usage::

    flask db-check                      # Verify connectivity and list tables
    flask seed-admin                    # Create the default admin if missing
    flask backup-export [PATH]          # Write a backup archive to disk
    flask backup-import ARCHIVE.zip     # Restore from a backup archive
"""

import os

import click
from flask import current_app
from flask.cli import with_appcontext
from sqlalchemy import inspect

from app.extensions import db
from app.services.backup_transforms import DEFAULT_RESTORE_ORDER as SCHEMA_TABLES


@click.command("db-check")
@with_appcontext
def db_check_command():
    """
    Verify database connectivity and confirm the application tables exist.

    Runs a trivial query, then lists every expected table with its row
    count.  Missing tables usually mean ``flask db upgrade`` has not
    been run yet.
    """
    click.echo("=" * 60)
    click.echo("  AssetSO Database Connectivity Check")
    click.echo("=" * 60)

    engine = db.engine
    click.echo(f"\n  Connection string: {engine.url.render_as_string(hide_password=True)}\n")

    # -- Step 1: Basic connectivity ----------------------------------------
    click.echo("[1/2] Testing connection...")
    try:
        row = db.session.execute(db.text("SELECT 1")).fetchone()
        if row and row[0] == 1:
            click.secho(f"      ✓ Connected ({engine.dialect.name}).", fg="green")
        else:
            click.secho("      ✗ Unexpected result from test query.", fg="red")
            return
    except Exception as exc:  # pylint: disable=broad-exception-caught
        click.secho(f"      ✗ Connection failed: {exc}", fg="red")
        click.echo("\n  Troubleshooting tips:")
        click.echo("    - Is the database server running?")
        click.echo("    - Does your .env DATABASE_URL match your server config?")
        return

    # -- Step 2: Tables and row counts -------------------------------------
    click.echo("[2/2] Checking tables...\n")
    existing = set(inspect(engine).get_table_names())
    missing = [name for name in SCHEMA_TABLES if name not in existing]

    for name in SCHEMA_TABLES:
        if name not in existing:
            click.secho(f"      {name:>22}  missing", fg="red")
            continue
        table = db.metadata.tables[name]
        count = db.session.execute(
            db.select(db.func.count()).select_from(table)
        ).scalar()
        click.echo(f"      {name:>22}  {count} row(s)")

    click.echo("\n" + "=" * 60)
    if missing:
        click.secho(
            f"  {len(missing)} table(s) missing. Run 'flask db upgrade'.",
            fg="yellow",
            bold=True,
        )
    else:
        click.secho("  All checks passed. Database is ready.", fg="green", bold=True)
    click.echo("=" * 60)


@click.command("seed-admin")
@with_appcontext
def seed_admin_command():
    """Create the default admin account when no admin exists."""
    from app.services import auth_service

    admin = auth_service.ensure_default_admin()
    click.echo(f"Admin account: {admin.email}")


@click.command("backup-export")
@click.argument("path", required=False)
@with_appcontext
def backup_export_command(path):
    """Write a backup archive to PATH (defaults to the generated name)."""
    from app.services import backup_service

    buffer, archive_name = backup_service.export_backup()
    target = path or os.path.join(os.getcwd(), archive_name)
    with open(target, "wb") as handle:
        handle.write(buffer.getvalue())
    click.secho(f"Backup written to {target}", fg="green")


@click.command("backup-import")
@click.argument("archive", type=click.Path(exists=True, dir_okay=False))
@with_appcontext
def backup_import_command(archive):
    """Restore the database and images from ARCHIVE."""
    from app.exceptions import ServiceError
    from app.services import backup_service

    click.echo(f"Restoring {archive}...")
    try:
        result = backup_service.restore_archive(archive)
    except ServiceError as exc:
        click.secho(f"Restore failed: {exc.message}", fg="red")
        for name, message in getattr(exc, "engine_errors", {}).items():
            click.secho(f"  {name}: {message}", fg="red")
        raise SystemExit(1) from exc

    click.echo(
        f"Engine: {result['engine']}  "
        f"Tables: {len(result['importedTables'])}  "
        f"Records: {result['totalRestored']}  "
        f"Images: {result['imagesRestored']} restored, "
        f"{result['imagesFailed']} failed"
    )
    for warning in result.get("engineErrors", []):
        click.secho(f"Warning: {warning}", fg="yellow")
    current_app.logger.info("Backup restored from CLI: %s", archive)


def register_commands(app):
    """Register all custom CLI commands with the Flask application."""
    app.cli.add_command(db_check_command)
    app.cli.add_command(seed_admin_command)
    app.cli.add_command(backup_export_command)
    app.cli.add_command(backup_import_command)
