"""Unit tests for :class:`RefreshTokenGenerator`."""

from __future__ import annotations

import base64

import pytest

from tokenauth.services.auth.generator import MIN_ENTROPY_BYTES, RefreshTokenGenerator


def test_ten_thousand_values_are_unique() -> None:
    gen = RefreshTokenGenerator()

    values = [gen.generate() for _ in range(10_000)]

    assert len(set(values)) == len(values)


def test_value_carries_at_least_64_random_bytes() -> None:
    value = RefreshTokenGenerator().generate()
    padded = value + "=" * (-len(value) % 4)

    assert len(base64.urlsafe_b64decode(padded)) >= MIN_ENTROPY_BYTES


def test_value_is_url_safe_text() -> None:
    value = RefreshTokenGenerator().generate()

    assert value.isascii()
    assert not set(value) - set(
        "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-_"
    )


def test_larger_entropy_gives_longer_values() -> None:
    assert len(RefreshTokenGenerator(96).generate()) > len(RefreshTokenGenerator(64).generate())


def test_rejects_less_than_64_bytes() -> None:
    with pytest.raises(ValueError):
        RefreshTokenGenerator(32)
