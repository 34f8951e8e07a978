"""
tokenauth.services._shared.ports
================================

*Ports* (hexagonal interfaces) the token lifecycle service depends on.

Modules
-------
- :mod:`token_codec`:
    :class:`~.AccessTokenCodec` — signing and validation of access tokens.
- :mod:`token_store`:
    :class:`~.TokenStore`, :class:`~.UserDirectory` and the read-models
    :class:`~.UserAccount` / :class:`~.RefreshTokenRecord`, plus the
    in-memory adapters used by unit tests.
- :mod:`credential_verifier`:
    :class:`~.CredentialVerifier` — password checks.

Concrete adapters (SQLAlchemy, Redis, PyJWT, werkzeug) live under
``tokenauth.infra``.
"""

from __future__ import annotations

from .credential_verifier import CredentialVerifier
from .token_codec import AccessTokenCodec, IssuedAccessToken
from .token_store import (
    InMemoryTokenStore,
    InMemoryUserDirectory,
    RefreshTokenRecord,
    TokenStore,
    UserAccount,
    UserDirectory,
)

__all__ = [
    "AccessTokenCodec",
    "CredentialVerifier",
    "InMemoryTokenStore",
    "InMemoryUserDirectory",
    "IssuedAccessToken",
    "RefreshTokenRecord",
    "TokenStore",
    "UserAccount",
    "UserDirectory",
]
