# tokenauth/infra/jwt/signed_token_codec.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import uuid4

import jwt

from tokenauth.services._shared.ports import AccessTokenCodec, IssuedAccessToken

ACCESS_TOKEN_TYPE = "access"


@dataclass(slots=True)
class JWTAccessTokenCodec(AccessTokenCodec):
    """
    HMAC-signed JWT access tokens (PyJWT).

    Claims follow the layout ``flask-jwt-extended`` expects (``sub``,
    ``type``, ``fresh``, ``jti``), so the tokens minted here also pass
    ``verify_jwt_in_request`` on protected routes that share the key.

    :param secret: Symmetric signing key.
    :param lifetime: Access-token lifetime (whole seconds are used).
    :param algorithm: HMAC algorithm name.
    """

    secret: str = field(repr=False)
    lifetime: timedelta
    algorithm: str = "HS256"

    def __post_init__(self) -> None:
        if not self.secret:
            raise ValueError("Signing key must not be empty.")
        if int(self.lifetime.total_seconds()) <= 0:
            raise ValueError("Access token lifetime must be at least one second.")
        if not self.algorithm.upper().startswith("HS"):
            raise ValueError("Only symmetric HMAC algorithms are supported.")

    @property
    def lifetime_seconds(self) -> int:
        return int(self.lifetime.total_seconds())

    def issue(self, subject_id: int | str, issued_at: datetime) -> IssuedAccessToken:
        issued = _as_utc(issued_at)
        expires_at = issued + timedelta(seconds=self.lifetime_seconds)
        # NumericDate may be fractional; truncating would end the token early.
        claims: dict[str, Any] = {
            "sub": str(subject_id),
            "iat": issued.timestamp(),
            "exp": expires_at.timestamp(),
            "jti": uuid4().hex,
            "type": ACCESS_TOKEN_TYPE,
            "fresh": False,
        }
        token = jwt.encode(claims, self.secret, algorithm=self.algorithm)
        return IssuedAccessToken(
            token=token,
            expires_in=self.lifetime_seconds,
            expires_at=expires_at,
        )

    def validate(
        self, token: str, now: datetime, *, allow_expired: bool = False
    ) -> str | None:
        # Signature and structure first. Time checks are ours (against the
        # injected ``now``), so PyJWT's wall-clock checks are switched off.
        try:
            claims = jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                options={
                    "require": ["exp", "sub"],
                    "verify_exp": False,
                    "verify_iat": False,
                    "verify_nbf": False,
                },
            )
        except jwt.PyJWTError:
            return None

        if claims.get("type", ACCESS_TOKEN_TYPE) != ACCESS_TOKEN_TYPE:
            return None

        exp = claims.get("exp")
        if not isinstance(exp, int | float) or isinstance(exp, bool):
            return None
        # Zero tolerance: a token is dead at the instant of its expiry.
        if not allow_expired and exp <= _as_utc(now).timestamp():
            return None

        subject = claims.get("sub")
        if not isinstance(subject, str) or not subject:
            return None
        return subject


def _as_utc(dt: datetime) -> datetime:
    """Label naive datetimes as UTC; convert aware ones."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)
