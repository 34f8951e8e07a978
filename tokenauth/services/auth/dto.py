# tokenauth/services/auth/dto.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum

# ---------------------------- Input DTOs ---------------------------------- #


@dataclass(frozen=True, slots=True)
class LoginIn:
    """
    Input DTO for login.

    :param email: User email (any case).
    :type email: str
    :param password: Raw password (to be verified).
    :type password: str
    """

    email: str
    password: str = field(repr=False)


@dataclass(frozen=True, slots=True)
class RefreshIn:
    """
    Input DTO for token refresh.

    :param access_token: Signed access token (may be expired, see config).
    :type access_token: str
    :param refresh_token: Opaque refresh-token value.
    :type refresh_token: str
    """

    access_token: str = field(repr=False)
    refresh_token: str = field(repr=False)


@dataclass(frozen=True, slots=True)
class LogoutIn:
    """
    Input DTO for logout.

    :param user_id: Authenticated caller (from the bearer access token).
    :type user_id: int
    :param refresh_token: Refresh-token value to revoke.
    :type refresh_token: str
    """

    user_id: int
    refresh_token: str = field(repr=False)


# --------------------------- Output DTOs ---------------------------------- #


@dataclass(frozen=True, slots=True)
class UserProfileOut:
    """Minimal identity fields echoed to clients."""

    id: int
    email: str
    first_name: str | None
    last_name: str | None


@dataclass(frozen=True, slots=True)
class TokenPairOut:
    """
    Output DTO with both tokens and the caller's profile.

    :param token: Signed access token.
    :param expires_in: Access-token lifetime in seconds.
    :param refresh_token: Opaque refresh-token value.
    :param refresh_token_expiration: Absolute refresh-token expiry (UTC).
    """

    id: int
    email: str
    first_name: str | None
    last_name: str | None
    token: str = field(repr=False)
    expires_in: int
    refresh_token: str = field(repr=False)
    refresh_token_expiration: datetime


class AuthFailure(Enum):
    """The one failure variant per operation."""

    INVALID_CREDENTIALS = "invalid_credentials"
    INVALID_TOKEN = "invalid_token"


@dataclass(frozen=True, slots=True)
class AuthResult:
    """
    Tagged outcome of ``login`` / ``refresh``.

    Exactly one of ``pair`` and ``failure`` is set. A failure carries no
    detail beyond its variant.
    """

    pair: TokenPairOut | None = None
    failure: AuthFailure | None = None

    @property
    def ok(self) -> bool:
        return self.pair is not None

    @classmethod
    def success(cls, pair: TokenPairOut) -> AuthResult:
        return cls(pair=pair)

    @classmethod
    def failed(cls, failure: AuthFailure) -> AuthResult:
        return cls(failure=failure)


# ------------------------------ Config DTO -------------------------------- #


@dataclass(frozen=True, slots=True)
class AuthTokenConfig:
    """
    Token emission configuration.

    :param refresh_expires: Refresh-token lifetime.
    :type refresh_expires: timedelta
    :param allow_expired_access_on_refresh: Accept a correctly signed but
        expired access token as the identity hint on refresh.
    :type allow_expired_access_on_refresh: bool
    """

    refresh_expires: timedelta = timedelta(days=14)
    allow_expired_access_on_refresh: bool = True
