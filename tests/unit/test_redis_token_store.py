# tests/unit/test_redis_token_store.py
"""
Unit tests for :class:`RedisTokenStore` using fakeredis.

These tests exercise the main flows:
- append + find_active (owner scoping, expiry)
- duplicate values
- mark_revoked and rotate (including lost WATCH races and expiry rechecks)
- client-chosen values never reach the per-user index sets
- list_refresh_tokens ordering
- RedisError translation
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import fakeredis
import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from tokenauth.infra.redis import RedisTokenStore
from tokenauth.infra.security import PasswordHashVerifier
from tokenauth.services._shared.errors import IntegrityFaultError, StoreUnavailableError
from tokenauth.services._shared.ports import (
    InMemoryUserDirectory,
    RefreshTokenRecord,
    UserAccount,
)
from tokenauth.services.auth import AuthFailure, RefreshIn, TokenLifecycleService

T0 = datetime(2026, 2, 1, 8, 0, tzinfo=UTC)


def _record(value: str, user_id: int = 1, *, at: datetime = T0) -> RefreshTokenRecord:
    return RefreshTokenRecord(
        value=value, user_id=user_id, created_at=at, expires_at=at + timedelta(days=14)
    )


@pytest.fixture
def server() -> fakeredis.FakeServer:
    return fakeredis.FakeServer()


@pytest.fixture
def fake_redis(server):
    """Provide a fresh FakeRedis instance for each test."""
    r = fakeredis.FakeRedis(server=server)
    r.flushall()
    return r


@pytest.fixture
def rival(server, users) -> RedisTokenStore:
    """A second client on the same server, racing the store under test."""
    return RedisTokenStore(r=fakeredis.FakeRedis(server=server), users=users)


@pytest.fixture
def users() -> InMemoryUserDirectory:
    directory = InMemoryUserDirectory()
    directory.add_user(UserAccount(1, "a@x.com", "Ada", None, "hash"))
    directory.add_user(UserAccount(2, "b@x.com", "Bob", None, "hash"))
    return directory


@pytest.fixture
def store(fake_redis, users):
    return RedisTokenStore(r=fake_redis, users=users)


@pytest.fixture
def ada(users) -> UserAccount:
    return users.find_user_by_id(1)


def test_user_lookups_are_delegated(store) -> None:
    assert store.find_user_by_email("A@X.com").id == 1
    assert store.find_user_by_id(2).first_name == "Bob"
    assert store.find_user_by_id(3) is None


def test_append_and_find_active(store, ada) -> None:
    store.append_refresh_token(ada, _record("v1"))

    found = store.find_active_refresh_token(ada, "v1", T0)

    assert found == _record("v1")
    assert store.find_active_refresh_token(ada, "v1", T0 + timedelta(days=14)) is None


def test_find_active_is_owner_scoped(store, ada, users) -> None:
    store.append_refresh_token(ada, _record("v1"))

    assert store.find_active_refresh_token(users.find_user_by_id(2), "v1", T0) is None


def test_duplicate_value_is_an_integrity_fault(store, ada, users) -> None:
    store.append_refresh_token(ada, _record("v1"))

    with pytest.raises(IntegrityFaultError):
        store.append_refresh_token(users.find_user_by_id(2), _record("v1", 2))


def test_mark_revoked_is_one_way(store, ada) -> None:
    store.append_refresh_token(ada, _record("v1"))
    rec = store.find_active_refresh_token(ada, "v1", T0)

    assert store.mark_revoked(rec, T0 + timedelta(minutes=1)) is True
    assert store.mark_revoked(rec, T0 + timedelta(minutes=2)) is False

    (stored,) = store.list_refresh_tokens(ada)
    assert stored.revoked_at == T0 + timedelta(minutes=1)
    assert store.find_active_refresh_token(ada, "v1", T0) is None


def test_mark_revoked_of_unknown_record_is_false(store) -> None:
    assert store.mark_revoked(_record("ghost"), T0) is False


def test_rotate_revokes_old_and_stores_new(store, ada) -> None:
    store.append_refresh_token(ada, _record("old"))
    old = store.find_active_refresh_token(ada, "old", T0)

    assert store.rotate(ada, old, _record("new", at=T0 + timedelta(hours=1)), T0) is True

    records = {r.value: r for r in store.list_refresh_tokens(ada)}
    assert records["old"].revoked_at == T0
    assert records["new"].revoked_at is None


def test_rotate_after_revocation_writes_nothing(store, ada, fake_redis) -> None:
    store.append_refresh_token(ada, _record("old"))
    old = store.find_active_refresh_token(ada, "old", T0)
    assert store.rotate(ada, old, _record("new-1"), T0) is True

    assert store.rotate(ada, old, _record("new-2"), T0) is False
    assert not fake_redis.exists("rt:t:new-2")


def test_rotate_onto_existing_value_is_an_integrity_fault(store, ada) -> None:
    store.append_refresh_token(ada, _record("old"))
    store.append_refresh_token(ada, _record("taken"))
    old = store.find_active_refresh_token(ada, "old", T0)

    with pytest.raises(IntegrityFaultError):
        store.rotate(ada, old, _record("taken"), T0)
    assert store.find_active_refresh_token(ada, "old", T0) is not None


def test_rotate_of_record_that_expired_since_lookup_writes_nothing(
    store, ada, fake_redis
) -> None:
    store.append_refresh_token(ada, _record("old"))
    old = store.find_active_refresh_token(ada, "old", T0)

    assert store.rotate(ada, old, _record("new"), old.expires_at) is False

    assert not fake_redis.exists("rt:t:new")
    (only,) = store.list_refresh_tokens(ada)
    assert only.revoked_at is None


# ------------------------- lost WATCH races -------------------------------- #
def _interleave(r, monkeypatch, action) -> None:
    """Run ``action`` once, right after the store's first watched read."""
    original = r.pipeline
    pending = [action]

    def pipeline(*args, **kwargs):
        p = original(*args, **kwargs)
        watched_read = p.hgetall

        def hgetall(name):
            result = watched_read(name)
            if pending:
                pending.pop()()
            return result

        p.hgetall = hgetall
        return p

    monkeypatch.setattr(r, "pipeline", pipeline)


def test_rotate_loses_to_a_concurrent_rotation(
    store, rival, ada, fake_redis, monkeypatch
) -> None:
    store.append_refresh_token(ada, _record("old"))
    old = store.find_active_refresh_token(ada, "old", T0)
    _interleave(
        fake_redis, monkeypatch, lambda: rival.rotate(ada, old, _record("theirs"), T0)
    )

    assert store.rotate(ada, old, _record("ours"), T0 + timedelta(seconds=1)) is False

    assert not fake_redis.exists("rt:t:ours")
    records = {r.value: r for r in store.list_refresh_tokens(ada)}
    assert set(records) == {"old", "theirs"}
    assert records["old"].revoked_at == T0
    assert records["theirs"].is_active(T0)


def test_mark_revoked_loses_to_a_concurrent_revocation(
    store, rival, ada, fake_redis, monkeypatch
) -> None:
    store.append_refresh_token(ada, _record("v1"))
    rec = store.find_active_refresh_token(ada, "v1", T0)
    _interleave(fake_redis, monkeypatch, lambda: rival.mark_revoked(rec, T0))

    assert store.mark_revoked(rec, T0 + timedelta(minutes=5)) is False

    (stored,) = store.list_refresh_tokens(ada)
    assert stored.revoked_at == T0


# --------------------- client-chosen values -------------------------------- #
def test_index_key_as_value_is_just_an_unknown_token(store, ada, users) -> None:
    bob = users.find_user_by_id(2)
    store.append_refresh_token(bob, _record("bobs", 2))
    forged = _record("u:2")

    assert store.find_active_refresh_token(ada, "u:2", T0) is None
    assert store.find_active_refresh_token(ada, "u:3", T0) is None
    assert store.mark_revoked(forged, T0) is False
    assert store.rotate(ada, forged, _record("new"), T0) is False
    assert [r.value for r in store.list_refresh_tokens(bob)] == ["bobs"]


@pytest.mark.parametrize("value", ["u:2", "u:3", "t:u:2"])
def test_refresh_with_index_shaped_value_fails_opaquely(
    store, users, codec, clock, value
) -> None:
    store.append_refresh_token(users.find_user_by_id(2), _record("bobs", 2))
    service = TokenLifecycleService(
        token_store=store, credentials=PasswordHashVerifier(), codec=codec, clock=clock
    )
    access = codec.issue(1, clock())

    result = service.refresh(RefreshIn(access_token=access.token, refresh_token=value))

    assert result.failure is AuthFailure.INVALID_TOKEN


def test_list_is_oldest_first(store, ada) -> None:
    store.append_refresh_token(ada, _record("b", at=T0 + timedelta(hours=2)))
    store.append_refresh_token(ada, _record("a", at=T0 + timedelta(hours=3)))
    store.append_refresh_token(ada, _record("c", at=T0))

    assert [r.value for r in store.list_refresh_tokens(ada)] == ["c", "b", "a"]


def test_redis_errors_become_store_unavailable(users, ada, monkeypatch) -> None:
    r = fakeredis.FakeRedis()

    def boom(*args, **kwargs):
        raise RedisConnectionError("connection refused")

    monkeypatch.setattr(r, "hgetall", boom)
    store = RedisTokenStore(r=r, users=users)

    with pytest.raises(StoreUnavailableError):
        store.find_active_refresh_token(ada, "v1", T0)
