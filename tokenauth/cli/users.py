"""Flask CLI commands for development account management."""

from __future__ import annotations

import logging
from datetime import UTC, datetime

import click
from flask.cli import with_appcontext
from sqlalchemy.exc import IntegrityError

from tokenauth.api.deps import build_token_store
from tokenauth.core.extensions import db
from tokenauth.uow import SQLAlchemyUnitOfWork

LOGGER = logging.getLogger(__name__)


def _state(record, now: datetime) -> str:
    if record.is_revoked():
        return "revoked"
    if record.is_expired(now):
        return "expired"
    return "active"


@click.group("users")
def users_cli() -> None:
    """User accounts and their refresh tokens."""


@users_cli.command("create")
@click.option("--email", required=True, help="Login email (stored lower-cased).")
@click.option("--password", prompt=True, hide_input=True, confirmation_prompt=True)
@click.option("--first-name", default=None)
@click.option("--last-name", default=None)
@with_appcontext
def create_command(
    email: str, password: str, first_name: str | None, last_name: str | None
) -> None:
    """Create a user account."""
    try:
        with SQLAlchemyUnitOfWork() as uow:
            user = uow.users.create(
                email=email, password=password, first_name=first_name, last_name=last_name
            )
            user_id = user.id
    except ValueError as exc:
        raise click.BadParameter(str(exc)) from exc
    except IntegrityError as exc:
        db.session.rollback()
        raise click.ClickException(f"A user with email {email!r} already exists.") from exc
    LOGGER.info("User created", extra={"event": "users.created", "user_id": user_id})
    click.echo(f"Created user {user_id} <{email.strip().lower()}>")


@users_cli.command("list-tokens")
@click.argument("email")
@with_appcontext
def list_tokens_command(email: str) -> None:
    """Show a user's refresh-token records (never the token values)."""
    store = build_token_store()
    user = store.find_user_by_email(email)
    if user is None:
        raise click.ClickException(f"No user with email {email!r}.")
    now = datetime.now(UTC)
    records = store.list_refresh_tokens(user)
    if not records:
        click.echo("  (no refresh tokens)")
        return
    for record in records:
        revoked = record.revoked_at.isoformat() if record.revoked_at else "-"
        click.echo(
            f"  {_state(record, now):<8} created={record.created_at.isoformat()} "
            f"expires={record.expires_at.isoformat()} revoked={revoked}"
        )
