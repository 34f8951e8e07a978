# tests/unit/test_token_lifecycle_service.py
"""
Unit tests for :class:`TokenLifecycleService` wired to in-memory doubles.

The store is an :class:`InMemoryTokenStore` that counts calls, the clock is
frozen and moved explicitly, and passwords go through the real werkzeug
verifier.
"""

from __future__ import annotations

import logging
import threading
from datetime import timedelta

import pytest
from werkzeug.security import generate_password_hash

from tokenauth.infra.security import PasswordHashVerifier
from tokenauth.services._shared.errors import StoreUnavailableError
from tokenauth.services._shared.ports import RefreshTokenRecord, UserAccount
from tokenauth.services.auth import (
    AuthFailure,
    AuthResult,
    AuthTokenConfig,
    LoginIn,
    LogoutIn,
    RefreshIn,
    TokenLifecycleService,
)
from tests.helpers.stores import CountingTokenStore, UnavailableTokenStore

PASSWORD = "correct"
PASSWORD_HASH = generate_password_hash(PASSWORD, method="pbkdf2:sha256:1000")


# ------------------------------ Fixtures ---------------------------------- #
@pytest.fixture(scope="module")
def verifier() -> PasswordHashVerifier:
    return PasswordHashVerifier()


@pytest.fixture()
def store() -> CountingTokenStore:
    s = CountingTokenStore()
    s.add_user(UserAccount(1, "a@x.com", "Ada", "Lovelace", PASSWORD_HASH))
    s.add_user(UserAccount(2, "b@x.com", "Bob", "Builder", PASSWORD_HASH))
    return s


def _service(store, verifier, codec, clock, *, allow_expired: bool = True):
    return TokenLifecycleService(
        token_store=store,
        credentials=verifier,
        codec=codec,
        cfg=AuthTokenConfig(allow_expired_access_on_refresh=allow_expired),
        clock=clock,
    )


@pytest.fixture()
def service(store, verifier, codec, clock) -> TokenLifecycleService:
    return _service(store, verifier, codec, clock)


def _login(service, email: str = "a@x.com"):
    result = service.login(LoginIn(email=email, password=PASSWORD))
    assert result.ok
    return result.pair


def _refresh(service, pair) -> AuthResult:
    return service.refresh(RefreshIn(access_token=pair.token, refresh_token=pair.refresh_token))


def _records(store, user_id: int = 1) -> dict[str, RefreshTokenRecord]:
    user = store.find_user_by_id(user_id)
    return {r.value: r for r in store.list_refresh_tokens(user)}


# -------------------------------- Login ----------------------------------- #
def test_login_issues_pair_and_stores_record(service, store, codec, clock) -> None:
    pair = _login(service)

    assert pair.id == 1
    assert (pair.email, pair.first_name, pair.last_name) == ("a@x.com", "Ada", "Lovelace")
    assert pair.expires_in == 900
    assert pair.refresh_token_expiration == clock.now + timedelta(days=14)
    assert codec.validate(pair.token, clock.now) == "1"

    record = _records(store)[pair.refresh_token]
    assert record.created_at == clock.now
    assert record.is_active(clock.now)


def test_login_email_is_case_insensitive(service) -> None:
    assert service.login(LoginIn(email="A@X.COM", password=PASSWORD)).ok


def test_login_failures_are_indistinguishable(service, store) -> None:
    unknown = service.login(LoginIn(email="nobody@x.com", password=PASSWORD))
    wrong = service.login(LoginIn(email="a@x.com", password="nope"))

    assert unknown == wrong == AuthResult.failed(AuthFailure.INVALID_CREDENTIALS)
    assert unknown.pair is None
    assert store.calls["append_refresh_token"] == 0
    assert _records(store) == {}


def test_each_login_adds_a_separate_record(service, store) -> None:
    first = _login(service)
    second = _login(service)

    assert first.refresh_token != second.refresh_token
    assert len(_records(store)) == 2


# ------------------------------- Refresh ---------------------------------- #
def test_login_refresh_replay_scenario(service, store, clock) -> None:
    p1 = _login(service)
    clock.advance(minutes=1)

    result = _refresh(service, p1)

    assert result.ok
    p2 = result.pair
    assert p2 != p1
    assert p2.refresh_token != p1.refresh_token
    assert p2.token != p1.token
    assert p2.refresh_token_expiration == clock.now + timedelta(days=14)

    records = _records(store)
    assert records[p1.refresh_token].revoked_at == clock.now
    assert records[p2.refresh_token].is_active(clock.now)

    assert _refresh(service, p1) == AuthResult.failed(AuthFailure.INVALID_TOKEN)


def test_old_pair_stays_dead_after_further_rotations(service, clock) -> None:
    p1 = _login(service)
    p2 = _refresh(service, p1).pair
    _refresh(service, p2)

    for _ in range(3):
        clock.advance(seconds=30)
        assert not _refresh(service, p1).ok
        assert not _refresh(service, p2).ok


def test_refresh_leaves_other_records_untouched(service, store) -> None:
    phone = _login(service)
    laptop = _login(service)

    assert _refresh(service, phone).ok

    records = _records(store)
    assert records[phone.refresh_token].is_revoked()
    assert records[laptop.refresh_token].is_active(service.now_utc())
    assert _refresh(service, laptop).ok


def test_tampered_access_token_fails_without_store_calls(service, store) -> None:
    pair = _login(service)
    header, payload, signature = pair.token.split(".")
    tampered = ".".join([header, payload, ("A" if signature[0] != "A" else "B") + signature[1:]])
    store.calls.clear()

    result = service.refresh(RefreshIn(access_token=tampered, refresh_token=pair.refresh_token))

    assert result == AuthResult.failed(AuthFailure.INVALID_TOKEN)
    assert store.total_calls == 0


def test_non_numeric_subject_fails_without_store_calls(service, store, codec, clock) -> None:
    pair = _login(service)
    foreign = codec.issue("admin", clock.now)
    store.calls.clear()

    result = service.refresh(RefreshIn(access_token=foreign.token, refresh_token=pair.refresh_token))

    assert not result.ok
    assert store.total_calls == 0


def test_unknown_subject_fails(service, codec, clock) -> None:
    pair = _login(service)
    ghost = codec.issue(999, clock.now)

    assert not service.refresh(
        RefreshIn(access_token=ghost.token, refresh_token=pair.refresh_token)
    ).ok


def test_refresh_token_of_another_user_fails(service, store) -> None:
    ada = _login(service, "a@x.com")
    bob = _login(service, "b@x.com")

    result = service.refresh(RefreshIn(access_token=ada.token, refresh_token=bob.refresh_token))

    assert not result.ok
    assert _records(store, 2)[bob.refresh_token].is_active(service.now_utc())


def test_unknown_refresh_value_fails(service) -> None:
    pair = _login(service)

    assert not service.refresh(RefreshIn(access_token=pair.token, refresh_token="made-up")).ok


def test_expired_refresh_token_fails(service, clock) -> None:
    pair = _login(service)
    clock.advance(days=14)

    assert not _refresh(service, pair).ok


def test_all_refresh_failures_share_one_shape(service, codec, clock) -> None:
    pair = _login(service)
    outcomes = [
        service.refresh(RefreshIn(access_token="garbage", refresh_token=pair.refresh_token)),
        service.refresh(
            RefreshIn(access_token=codec.issue(999, clock.now).token, refresh_token="x")
        ),
        service.refresh(RefreshIn(access_token=pair.token, refresh_token="made-up")),
    ]

    assert len(set(outcomes)) == 1
    assert outcomes[0].failure is AuthFailure.INVALID_TOKEN


# ----------------------- Expired access token policy ----------------------- #
def test_expired_access_token_accepted_when_allowed(store, verifier, codec, clock) -> None:
    service = _service(store, verifier, codec, clock, allow_expired=True)
    pair = _login(service)
    clock.advance(hours=2)

    assert _refresh(service, pair).ok


def test_expired_access_token_rejected_when_not_allowed(store, verifier, codec, clock) -> None:
    service = _service(store, verifier, codec, clock, allow_expired=False)
    pair = _login(service)
    clock.advance(seconds=900)  # exactly at expiry

    assert _refresh(service, pair) == AuthResult.failed(AuthFailure.INVALID_TOKEN)
    # The refresh token was not consumed by the rejected attempt.
    assert _records(store)[pair.refresh_token].is_active(clock.now)


def test_unexpired_access_token_works_when_expiry_enforced(store, verifier, codec, clock) -> None:
    service = _service(store, verifier, codec, clock, allow_expired=False)
    pair = _login(service)
    clock.advance(seconds=899)

    assert _refresh(service, pair).ok


# ----------------------- Integrity and concurrency ------------------------- #
def test_duplicate_active_records_fail_opaquely_and_log(service, store, clock, caplog) -> None:
    pair = _login(service)
    dup = RefreshTokenRecord(
        value=pair.refresh_token,
        user_id=1,
        created_at=clock.now,
        expires_at=clock.now + timedelta(days=1),
    )
    store._records[1].append(dup)  # state the public API refuses to create

    with caplog.at_level(logging.ERROR, logger="tokenauth.services.auth.service"):
        result = _refresh(service, pair)

    assert result == AuthResult.failed(AuthFailure.INVALID_TOKEN)
    assert any(getattr(r, "event", None) == "auth.integrity_fault" for r in caplog.records)


def test_lost_rotation_race_fails(service, store, monkeypatch) -> None:
    pair = _login(service)
    monkeypatch.setattr(store, "rotate", lambda *a, **k: False)

    assert _refresh(service, pair) == AuthResult.failed(AuthFailure.INVALID_TOKEN)


def test_concurrent_redemptions_have_one_winner(service, store) -> None:
    pair = _login(service)
    barrier = threading.Barrier(6)
    results: list[AuthResult] = []

    def redeem() -> None:
        barrier.wait()
        results.append(_refresh(service, pair))

    threads = [threading.Thread(target=redeem) for _ in range(6)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sum(r.ok for r in results) == 1
    assert len(_records(store)) == 2


# ------------------------- Collaborator faults ----------------------------- #
def test_store_outage_propagates(verifier, codec, clock) -> None:
    service = _service(UnavailableTokenStore(), verifier, codec, clock)
    token = codec.issue(1, clock.now).token

    with pytest.raises(StoreUnavailableError):
        service.login(LoginIn(email="a@x.com", password=PASSWORD))
    with pytest.raises(StoreUnavailableError):
        service.refresh(RefreshIn(access_token=token, refresh_token="x"))


# ------------------------------- Logging ----------------------------------- #
def test_logs_never_contain_token_values(service, caplog) -> None:
    with caplog.at_level(logging.DEBUG):
        pair = _login(service)
        _refresh(service, pair)
        _refresh(service, pair)

    dumped = " ".join(f"{r.getMessage()} {r.__dict__}" for r in caplog.records)
    assert pair.refresh_token not in dumped
    assert pair.token not in dumped
    assert PASSWORD_HASH not in dumped


def test_rejection_reason_is_logged(service, caplog) -> None:
    pair = _login(service)

    with caplog.at_level(logging.INFO, logger="tokenauth.services.auth.service"):
        service.refresh(RefreshIn(access_token=pair.token, refresh_token="made-up"))

    reasons = [getattr(r, "reason", None) for r in caplog.records]
    assert "no_active_refresh_token" in reasons


# ---------------------------- Logout / profile ----------------------------- #
def test_revoke_own_token(service, store) -> None:
    keep = _login(service)
    drop = _login(service)

    assert service.revoke(LogoutIn(user_id=1, refresh_token=drop.refresh_token)) is True
    assert service.revoke(LogoutIn(user_id=1, refresh_token=drop.refresh_token)) is False

    records = _records(store)
    assert records[drop.refresh_token].is_revoked()
    assert records[keep.refresh_token].is_active(service.now_utc())
    assert not _refresh(service, drop).ok


def test_revoke_someone_elses_token_is_refused(service, store) -> None:
    bob = _login(service, "b@x.com")

    assert service.revoke(LogoutIn(user_id=1, refresh_token=bob.refresh_token)) is False
    assert _records(store, 2)[bob.refresh_token].is_active(service.now_utc())


def test_profile(service) -> None:
    profile = service.profile(2)

    assert (profile.id, profile.email, profile.first_name) == (2, "b@x.com", "Bob")
    assert service.profile(404) is None
