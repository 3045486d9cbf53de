# Overview: Flask CLI commands for bulk catalog uploads.

# backend/marketplace/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# - python -m flask bulk-upload init-db
#   DEV only: create all tables (use "flask db upgrade" elsewhere).
# - python -m flask bulk-upload template products.xlsx
#   Write the blank upload template.
# - python -m flask bulk-upload run products.xlsx --shop-id 1 --user-id 1
#   Process a local spreadsheet as a bulk upload for a shop.
# - python -m flask bulk-upload report 12 errors.xlsx --shop-id 1
#   Write the error report of a finished upload.

import os
import shutil
import uuid

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .models import Shop, User
from .services import import_service
from .services.workbook_service import template_bytes
from .validation import NotFoundError


@click.group('bulk-upload')
def bulk_upload_group():
    """Bulk catalog upload commands."""


@bulk_upload_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables for local development."""
    db.create_all()
    click.echo("OK Tables created")


@bulk_upload_group.command('template')
@click.argument('output', type=click.Path(dir_okay=False, writable=True))
def write_template(output):
    """Write the upload template workbook to OUTPUT."""
    with open(output, "wb") as handle:
        handle.write(template_bytes())
    click.echo(f"OK Template written to {output}")


@bulk_upload_group.command('run')
@click.argument('source', type=click.Path(exists=True, dir_okay=False))
@click.option('--shop-id', type=int, required=True, help='Shop that owns the upload')
@click.option('--user-id', type=int, required=True, help='User recorded as uploader')
@with_appcontext
def run_upload(source, shop_id, user_id):
    """
    Process SOURCE as a bulk upload.

    The pipeline deletes its input, so SOURCE is copied into the upload
    folder first and left untouched.
    """
    shop = db.session.get(Shop, shop_id)
    if not shop or not shop.is_active:
        raise click.ClickException(f"Shop {shop_id} not found or inactive")
    user = db.session.get(User, user_id)
    if not user or user.shop_id != shop.id:
        raise click.ClickException(f"User {user_id} does not belong to shop {shop_id}")

    upload_folder = current_app.config["UPLOAD_FOLDER"]
    os.makedirs(upload_folder, exist_ok=True)
    file_name = os.path.basename(source)
    path = os.path.join(upload_folder, f"{uuid.uuid4().hex}-{file_name}")
    shutil.copyfile(source, path)

    upload = import_service.create_bulk_upload(
        shop_id=shop.id,
        user_id=user.id,
        file_path=path,
        file_name=file_name,
    )
    upload = import_service.process_bulk_upload(upload.id, path)

    click.echo(f"Upload {upload.id}: {upload.status}")
    click.echo(
        f"  rows={upload.total_rows} success={upload.success_count} "
        f"failed={upload.failed_count} warnings={len(upload.warnings or [])}"
    )
    for error in upload.errors or []:
        click.echo(f"  row {error['row']} [{error['field']}] {error['message']}")


@bulk_upload_group.command('report')
@click.argument('job_id', type=int)
@click.argument('output', type=click.Path(dir_okay=False, writable=True))
@click.option('--shop-id', type=int, required=True, help='Shop that owns the upload')
@with_appcontext
def write_report(job_id, output, shop_id):
    """Write the error report of upload JOB_ID to OUTPUT."""
    try:
        _, content = import_service.error_report(job_id, shop_id)
    except NotFoundError as exc:
        raise click.ClickException(str(exc))
    with open(output, "wb") as handle:
        handle.write(content)
    click.echo(f"OK Error report written to {output}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(bulk_upload_group)
