"""
Flask CLI commands.

    flask --app api create-admin admin@example.com --password 'change-me-now' --name Admin
"""
import click
from flask import current_app
from flask.cli import with_appcontext
from marshmallow import ValidationError

from models.schemas.user import AdminCreateSchema
from utils.security import hash_password

admin_create_schema = AdminCreateSchema()


@click.command("create-admin")
@click.argument("email")
@click.option("--password", prompt=True, hide_input=True, confirmation_prompt=True)
@click.option("--name", default=None)
@click.option("--role", default="ADMIN", show_default=True)
@with_appcontext
def create_admin(email, password, name, role):
    """Create a user who can log in (ADMIN by default)."""
    try:
        data = admin_create_schema.load({"email": email, "password": password, "name": name, "role": role})
    except ValidationError as err:
        raise click.UsageError(str(err.messages))

    store = current_app.extensions["auth"].store
    try:
        principal = store.create_principal(
            data["email"], hash_password(data["password"]), role=data["role"], name=data.get("name")
        )
    except ValueError as err:
        raise click.ClickException(str(err))
    click.echo(f"Created {principal.role} {principal.email} ({principal.id})")


def register_commands(app):
    app.cli.add_command(create_admin)
