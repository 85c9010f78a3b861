"""
Flask CLI commands.

Commands:
- flask init-db: Create the database tables
- flask import-products FILE: Bulk import products from a CSV export
"""

import click
from app.database import create_tables, get_session
from app.exceptions import PosError
from app.services.catalog_service import import_products, parse_csv


def init_cli_commands(app):
    """Register CLI commands with Flask app."""

    @app.cli.command('init-db')
    def init_db_command():
        """Create all tables for the configured database."""
        create_tables()
        click.echo(click.style('Database tables created.', fg='green'))

    @app.cli.command('import-products')
    @click.argument('csv_file', type=click.File('rb'))
    def import_products_command(csv_file):
        """Merge products from CSV_FILE into the catalog (existing codes are overwritten)."""
        records = parse_csv(csv_file)
        if not records:
            click.echo(click.style('No rows found in file.', fg='yellow'))
            return

        try:
            result = import_products(records, get_session())
        except PosError as e:
            click.echo(click.style(f'Import failed: {e.message}', fg='red'))
            raise SystemExit(1)

        click.echo(click.style(
            f"Imported {len(records)} rows: {result['created']} created, {result['updated']} updated.",
            fg='green', bold=True
        ))
