"""Relational token store on the Flask-SQLAlchemy session."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from tokenauth.models import RefreshToken, User
from tokenauth.services._shared.errors import IntegrityFaultError, StoreUnavailableError
from tokenauth.services._shared.ports import (
    RefreshTokenRecord,
    TokenStore,
    UserAccount,
    UserDirectory,
)
from tokenauth.uow import SQLAlchemyUnitOfWork


def _utc(dt: datetime | None) -> datetime | None:
    # SQLite hands back naive values; everything is stored as UTC.
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def to_account(user: User) -> UserAccount:
    return UserAccount(
        id=user.id,
        email=user.email,
        first_name=user.first_name,
        last_name=user.last_name,
        password_hash=user.password_hash,
    )


def to_record(row: RefreshToken) -> RefreshTokenRecord:
    return RefreshTokenRecord(
        value=row.value,
        user_id=row.user_id,
        created_at=_utc(row.created_at),
        expires_at=_utc(row.expires_at),
        revoked_at=_utc(row.revoked_at),
    )


class SQLAlchemyUserDirectory(UserDirectory):
    """Read-only user lookup over the ``users`` table."""

    def __init__(self, session: Session | None = None) -> None:
        self._session = session

    @contextmanager
    def _transaction(self) -> Iterator[SQLAlchemyUnitOfWork]:
        """
        Open a unit of work and translate driver failures.

        :raises StoreUnavailableError: On connection-level failures.
        :raises IntegrityFaultError: On constraint violations.
        """
        try:
            with SQLAlchemyUnitOfWork(self._session) as uow:
                yield uow
        except OperationalError as exc:
            raise StoreUnavailableError(str(exc.orig)) from exc
        except IntegrityError as exc:
            raise IntegrityFaultError("Refresh token constraint violated.") from exc

    def find_user_by_email(self, email: str) -> UserAccount | None:
        with self._transaction() as uow:
            user = uow.users.get_by_email(email)
            return to_account(user) if user is not None else None

    def find_user_by_id(self, user_id: int) -> UserAccount | None:
        with self._transaction() as uow:
            user = uow.users.get(user_id)
            return to_account(user) if user is not None else None


class SQLAlchemyTokenStore(SQLAlchemyUserDirectory, TokenStore):
    """
    Token store backed by the ``refresh_tokens`` table.

    Every method runs in its own unit of work and commits before returning,
    so writes are durable once the call completes. Revocation is a
    conditional ``UPDATE ... WHERE revoked_at IS NULL``; its rowcount tells
    the caller whether it won a concurrent race.
    """

    def append_refresh_token(self, user: UserAccount, record: RefreshTokenRecord) -> None:
        with self._transaction() as uow:
            uow.refresh_tokens.add(_new_row(user, record))

    def mark_revoked(self, record: RefreshTokenRecord, when: datetime) -> bool:
        with self._transaction() as uow:
            return uow.refresh_tokens.revoke_if_active(
                user_id=record.user_id, value=record.value, when=_utc(when)
            )

    def find_active_refresh_token(
        self, user: UserAccount, value: str, now: datetime
    ) -> RefreshTokenRecord | None:
        with self._transaction() as uow:
            rows = uow.refresh_tokens.list_active_by_value(
                user_id=user.id, value=value, now=_utc(now)
            )
            if len(rows) > 1:
                raise IntegrityFaultError(f"{len(rows)} active records share one value.")
            return to_record(rows[0]) if rows else None

    def rotate(
        self,
        user: UserAccount,
        old: RefreshTokenRecord,
        new: RefreshTokenRecord,
        when: datetime,
    ) -> bool:
        with self._transaction() as uow:
            # Revoke first; the insert only happens if this call flipped the row.
            if not uow.refresh_tokens.revoke_if_active(
                user_id=old.user_id, value=old.value, when=_utc(when), unexpired=True
            ):
                return False
            uow.refresh_tokens.add(_new_row(user, new))
            return True

    def list_refresh_tokens(self, user: UserAccount) -> list[RefreshTokenRecord]:
        with self._transaction() as uow:
            return [to_record(row) for row in uow.refresh_tokens.list_for_user(user.id)]


def _new_row(user: UserAccount, record: RefreshTokenRecord) -> RefreshToken:
    return RefreshToken(
        user_id=user.id,
        value=record.value,
        created_at=_utc(record.created_at),
        expires_at=_utc(record.expires_at),
        revoked_at=_utc(record.revoked_at),
    )
