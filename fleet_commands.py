"""
Fleet management commands

Usage:
    flask --app main fleet init-db
    flask --app main fleet mark-overdue --as-of 2024-07-31
"""

import logging

import click
from flask.cli import AppGroup

from app import db

logger = logging.getLogger(__name__)

fleet_cli = AppGroup('fleet', help='Fleet database and billing maintenance.')


@fleet_cli.command('init-db')
def init_db():
    """Create all tables."""
    import models  # noqa: F401
    db.create_all()
    click.echo('Database tables created')


@fleet_cli.command('mark-overdue')
@click.option('--as-of', 'as_of', type=click.DateTime(formats=['%Y-%m-%d']), default=None,
              help='Reference date (YYYY-MM-DD); defaults to today in the app timezone.')
def mark_overdue(as_of):
    """Move Pending invoices past their due date to Overdue."""
    from services import InvoiceService

    invoices = InvoiceService(db.session).mark_overdue(as_of.date() if as_of else None)
    for invoice in invoices:
        click.echo(f"{invoice.invoice_number}: due {invoice.due_date.isoformat()} -> Overdue")
    click.echo(f"{len(invoices)} invoice(s) marked overdue")
