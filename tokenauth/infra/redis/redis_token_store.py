# comments in English; reST docstrings
from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

import redis
from redis.exceptions import RedisError, WatchError

from tokenauth.services._shared.errors import IntegrityFaultError, StoreUnavailableError
from tokenauth.services._shared.ports import (
    RefreshTokenRecord,
    TokenStore,
    UserAccount,
    UserDirectory,
)


@dataclass(slots=True)
class RedisTokenStore(TokenStore):
    """
    Redis-backed refresh token store.

    Layout:

    - ``rt:t:{value}``: hash with ``user_id``, ``created_at``, ``expires_at`` and
      ``revoked_at`` (ISO-8601 UTC, empty while active).
    - ``rt:u:{user_id}``: set of the user's token values.

    Values come from clients, so the two families get distinct prefixes and
    no value can address an index set.

    Keying records by value makes duplicates impossible to store silently.
    Revocation and rotation use WATCH/MULTI/EXEC; a :class:`WatchError` means
    another client touched the record first, so the call reports a lost race.
    Keys carry no TTL: pruning old records is housekeeping outside the
    token lifecycle.

    :param r: A Redis client (already connected).
    :param users: Directory the user lookups are delegated to.
    """

    r: redis.Redis
    users: UserDirectory

    # -------------------- helpers --------------------

    @staticmethod
    def _k(value: str) -> str:
        return f"rt:t:{value}"

    @staticmethod
    def _ku(user_id: int) -> str:
        return f"rt:u:{user_id}"

    @staticmethod
    def _ts(dt: datetime | None) -> str:
        if dt is None:
            return ""
        if dt.tzinfo is None:
            dt = dt.replace(tzinfo=UTC)
        return dt.astimezone(UTC).isoformat()

    @staticmethod
    def _s(raw: Any) -> str:
        if raw is None:
            return ""
        return raw.decode() if isinstance(raw, bytes | bytearray) else str(raw)

    def _mapping(self, user: UserAccount, record: RefreshTokenRecord) -> dict[str, str]:
        return {
            "user_id": str(user.id),
            "created_at": self._ts(record.created_at),
            "expires_at": self._ts(record.expires_at),
            "revoked_at": self._ts(record.revoked_at),
        }

    def _decode(self, value: str, h: dict[Any, Any]) -> RefreshTokenRecord | None:
        if not h:
            return None
        fields = {self._s(k): self._s(v) for k, v in h.items()}
        revoked = fields.get("revoked_at", "")
        return RefreshTokenRecord(
            value=value,
            user_id=int(fields["user_id"]),
            created_at=datetime.fromisoformat(fields["created_at"]),
            expires_at=datetime.fromisoformat(fields["expires_at"]),
            revoked_at=datetime.fromisoformat(revoked) if revoked else None,
        )

    @contextmanager
    def _guard(self) -> Iterator[None]:
        try:
            yield
        except RedisError as exc:
            raise StoreUnavailableError(str(exc)) from exc

    # -------------------- users ----------------------

    def find_user_by_email(self, email: str) -> UserAccount | None:
        return self.users.find_user_by_email(email)

    def find_user_by_id(self, user_id: int) -> UserAccount | None:
        return self.users.find_user_by_id(user_id)

    # -------------------- API ------------------------

    def append_refresh_token(self, user: UserAccount, record: RefreshTokenRecord) -> None:
        key = self._k(record.value)
        with self._guard():
            try:
                with self.r.pipeline() as p:
                    p.watch(key)
                    if p.exists(key):
                        p.unwatch()
                        raise IntegrityFaultError("Refresh token value already exists.")
                    p.multi()
                    p.hset(key, mapping=self._mapping(user, record))
                    p.sadd(self._ku(user.id), record.value)
                    p.execute()
            except WatchError as exc:
                # Someone wrote the same key between WATCH and EXEC.
                raise IntegrityFaultError("Refresh token value already exists.") from exc

    def mark_revoked(self, record: RefreshTokenRecord, when: datetime) -> bool:
        key = self._k(record.value)
        with self._guard():
            try:
                with self.r.pipeline() as p:
                    p.watch(key)
                    current = self._decode(record.value, p.hgetall(key))
                    if current is None or current.is_revoked():
                        p.unwatch()
                        return False
                    p.multi()
                    p.hset(key, "revoked_at", self._ts(when))
                    p.execute()
                    return True
            except WatchError:
                return False

    def find_active_refresh_token(
        self, user: UserAccount, value: str, now: datetime
    ) -> RefreshTokenRecord | None:
        with self._guard():
            record = self._decode(value, self.r.hgetall(self._k(value)))
        if record is None or record.user_id != user.id:
            return None
        return record if record.is_active(now) else None

    def rotate(
        self,
        user: UserAccount,
        old: RefreshTokenRecord,
        new: RefreshTokenRecord,
        when: datetime,
    ) -> bool:
        """
        Revoke ``old`` and store ``new`` in one MULTI/EXEC block.

        The revocation is queued before the insert; Redis applies the whole
        block or nothing.
        """
        k_old = self._k(old.value)
        k_new = self._k(new.value)
        with self._guard():
            try:
                with self.r.pipeline() as p:
                    p.watch(k_old, k_new)
                    current = self._decode(old.value, p.hgetall(k_old))
                    if current is None or not current.is_active(when):
                        p.unwatch()
                        return False
                    if p.exists(k_new):
                        p.unwatch()
                        raise IntegrityFaultError("Refresh token value already exists.")
                    p.multi()
                    p.hset(k_old, "revoked_at", self._ts(when))
                    p.hset(k_new, mapping=self._mapping(user, new))
                    p.sadd(self._ku(user.id), new.value)
                    p.execute()
                    return True
            except WatchError:
                return False

    def list_refresh_tokens(self, user: UserAccount) -> list[RefreshTokenRecord]:
        with self._guard():
            values = sorted(self._s(v) for v in self.r.smembers(self._ku(user.id)))
            records = []
            for value in values:
                record = self._decode(value, self.r.hgetall(self._k(value)))
                if record is not None:
                    records.append(record)
        return sorted(records, key=lambda r: r.created_at)
