"""
Account management commands:

  flask --app api admin create-super --email a@b.c --username boss --password 'Secret1!'
  flask --app api admin create-user  --email a@b.c --username joe  --password 'Secret1!'
  flask --app api admin delete-user  --id 12
"""
import click
from flask import current_app
from flask.cli import AppGroup
from marshmallow import ValidationError

from models import storage
from models.user import User
from models.schemas.common import normalize_email, validate_username
from utils.decorators import ADMIN_ROLE, USER_ROLE
from utils.errors import AppError
from utils.security import hash_password

admin_cli = AppGroup("admin", help="Management of users")


def _create(email: str, username: str, password: str, role: str) -> User:
    email = normalize_email(email)
    try:
        validate_username(username)
    except ValidationError as exc:
        raise click.BadParameter(str(exc.messages[0]), param_hint="--username")
    try:
        current_app.extensions["password_policy"].validate(password)
    except AppError as exc:
        errors = (exc.details or {}).get("validation", {}).get("errors", [])
        raise click.BadParameter("; ".join(e["message"] for e in errors), param_hint="--password")

    session = storage.get_session()
    if session.query(User).filter((User.email == email) | (User.username == username)).first():
        raise click.ClickException("a user with that email or username already exists")

    user = User(
        email=email,
        username=username,
        password_hash=hash_password(password),
        role=role,
        active=True,
        email_verified=role == ADMIN_ROLE,
    )
    storage.new(user)
    storage.save()
    return user


@admin_cli.command("create-super")
@click.option("--email", "-e", required=True, help="The email address for the new account.")
@click.option("--username", "-u", required=True, help="Username for the new account.")
@click.option("--password", "-p", required=True, help="The password for the new account.")
def create_super(email, username, password):
    """Create a super admin."""
    user = _create(email, username, password, ADMIN_ROLE)
    click.echo(f"created admin {user.username} (id={user.id})")


@admin_cli.command("create-user")
@click.option("--email", "-e", required=True, help="The email address for the new account.")
@click.option("--username", "-u", required=True, help="Username for the new account.")
@click.option("--password", "-p", required=True, help="The password for the new account.")
def create_user(email, username, password):
    """Create a regular user."""
    user = _create(email, username, password, USER_ROLE)
    click.echo(f"created user {user.username} (id={user.id})")


@admin_cli.command("delete-user")
@click.option("--id", "user_id", type=int, required=True, help="The id of the user to delete.")
def delete_user(user_id):
    """Delete the user with the given id."""
    user = storage.get(User, user_id)
    if not user:
        raise click.ClickException(f"user {user_id} not found")
    user.delete()
    storage.save()
    click.echo(f"deleted user {user_id}")


def register_cli(app):
    app.cli.add_command(admin_cli)
