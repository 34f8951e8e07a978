from __future__ import annotations

import threading
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Protocol

from tokenauth.services._shared.errors import IntegrityFaultError


@dataclass(frozen=True, slots=True)
class UserAccount:
    """
    Read-model of a user as seen by the token engine.

    :ivar id: User identifier (JWT subject).
    :ivar email: Login email, stored lower-cased.
    :ivar first_name: Given name (profile field echoed to clients).
    :ivar last_name: Family name (profile field echoed to clients).
    :ivar password_hash: Credential hash, opaque to everything but the
        credential verifier.
    """

    id: int
    email: str
    first_name: str | None
    last_name: str | None
    password_hash: str = field(repr=False)


@dataclass(frozen=True, slots=True)
class RefreshTokenRecord:
    """
    One issued refresh credential.

    ``value`` is the bearer secret itself and is excluded from ``repr`` so it
    never lands in logs or tracebacks.
    """

    value: str = field(repr=False)
    user_id: int
    created_at: datetime
    expires_at: datetime
    revoked_at: datetime | None = None

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at

    def is_revoked(self) -> bool:
        return self.revoked_at is not None

    def is_active(self, now: datetime) -> bool:
        return not self.is_revoked() and not self.is_expired(now)

    def revoked(self, when: datetime) -> RefreshTokenRecord:
        """Return a revoked copy; an already revoked record is returned unchanged."""
        if self.revoked_at is not None:
            return self
        return replace(self, revoked_at=when)


class UserDirectory(Protocol):
    """Lookup of user accounts (owned by account management, read-only here)."""

    def find_user_by_email(self, email: str) -> UserAccount | None: ...

    def find_user_by_id(self, user_id: int) -> UserAccount | None: ...


class TokenStore(UserDirectory, Protocol):
    """
    Persistence contract for users' refresh-token collections.

    Every write MUST be durable when the call returns. ``rotate`` MUST be a
    single unit of work: the old record is revoked (only if still unrevoked)
    before the new one is appended, and either both land or neither does.
    """

    def append_refresh_token(self, user: UserAccount, record: RefreshTokenRecord) -> None:
        """
        Add ``record`` to the user's collection.

        :raises IntegrityFaultError: If the value already exists.
        """

    def mark_revoked(self, record: RefreshTokenRecord, when: datetime) -> bool:
        """
        Set ``revoked_at`` on a not-yet-revoked record.

        :returns: ``True`` if this call performed the transition.
        """

    def find_active_refresh_token(
        self, user: UserAccount, value: str, now: datetime
    ) -> RefreshTokenRecord | None:
        """
        Return the user's single active record carrying ``value``.

        :raises IntegrityFaultError: If more than one active record matches.
        """

    def rotate(
        self,
        user: UserAccount,
        old: RefreshTokenRecord,
        new: RefreshTokenRecord,
        when: datetime,
    ) -> bool:
        """
        Revoke ``old`` and append ``new`` atomically.

        :returns: ``False`` (and no write) when ``old`` is no longer active
            at ``when``: a concurrent redemption revoked it first, or it
            expired after it was looked up.
        """

    def list_refresh_tokens(self, user: UserAccount) -> list[RefreshTokenRecord]:
        """Return the user's whole record set, oldest first."""


class InMemoryUserDirectory(UserDirectory):
    """Dictionary-backed user lookup used by unit tests and local wiring."""

    def __init__(self) -> None:
        self._users: dict[int, UserAccount] = {}

    def add_user(self, user: UserAccount) -> UserAccount:
        stored = replace(user, email=user.email.strip().lower())
        self._users[stored.id] = stored
        return stored

    def find_user_by_email(self, email: str) -> UserAccount | None:
        needle = email.strip().lower()
        for user in self._users.values():
            if user.email == needle:
                return user
        return None

    def find_user_by_id(self, user_id: int) -> UserAccount | None:
        return self._users.get(user_id)


class InMemoryTokenStore(InMemoryUserDirectory, TokenStore):
    """
    In-memory token store with serialised writes.

    .. note::
       A single lock guards every read-modify-write, which gives the same
       "exactly one concurrent redeemer wins" guarantee as the SQL and Redis
       adapters.
    """

    def __init__(self) -> None:
        super().__init__()
        self._records: dict[int, list[RefreshTokenRecord]] = {}
        self._lock = threading.Lock()

    # ------------------------- helpers -------------------------

    def _value_taken(self, value: str) -> bool:
        return any(r.value == value for records in self._records.values() for r in records)

    def _replace(self, record: RefreshTokenRecord, updated: RefreshTokenRecord) -> None:
        records = self._records.get(record.user_id, [])
        for i, existing in enumerate(records):
            if existing.value == record.value:
                records[i] = updated
                return

    def _current(self, record: RefreshTokenRecord) -> RefreshTokenRecord | None:
        for existing in self._records.get(record.user_id, []):
            if existing.value == record.value:
                return existing
        return None

    # -------------------------- API ----------------------------

    def append_refresh_token(self, user: UserAccount, record: RefreshTokenRecord) -> None:
        with self._lock:
            if self._value_taken(record.value):
                raise IntegrityFaultError("Refresh token value already exists.")
            self._records.setdefault(user.id, []).append(replace(record, user_id=user.id))

    def mark_revoked(self, record: RefreshTokenRecord, when: datetime) -> bool:
        with self._lock:
            current = self._current(record)
            if current is None or current.is_revoked():
                return False
            self._replace(current, current.revoked(when))
            return True

    def find_active_refresh_token(
        self, user: UserAccount, value: str, now: datetime
    ) -> RefreshTokenRecord | None:
        with self._lock:
            matches = [
                r for r in self._records.get(user.id, []) if r.value == value and r.is_active(now)
            ]
        if len(matches) > 1:
            raise IntegrityFaultError(f"{len(matches)} active records share one value.")
        return matches[0] if matches else None

    def rotate(
        self,
        user: UserAccount,
        old: RefreshTokenRecord,
        new: RefreshTokenRecord,
        when: datetime,
    ) -> bool:
        with self._lock:
            current = self._current(old)
            if current is None or not current.is_active(when):
                return False
            if self._value_taken(new.value):
                raise IntegrityFaultError("Refresh token value already exists.")
            self._replace(current, current.revoked(when))
            self._records.setdefault(user.id, []).append(replace(new, user_id=user.id))
            return True

    def list_refresh_tokens(self, user: UserAccount) -> list[RefreshTokenRecord]:
        with self._lock:
            return sorted(self._records.get(user.id, []), key=lambda r: r.created_at)
