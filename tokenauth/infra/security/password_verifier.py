"""Credential verification against werkzeug password hashes."""

from __future__ import annotations

import logging

from werkzeug.security import check_password_hash, generate_password_hash

from tokenauth.services._shared.ports import CredentialVerifier, UserAccount

log = logging.getLogger(__name__)


class PasswordHashVerifier(CredentialVerifier):
    """
    Verify passwords with :func:`werkzeug.security.check_password_hash`.

    Unknown users are checked against a throw-away hash so the "no such
    email" path costs about as much as the "wrong password" path.
    """

    def __init__(self) -> None:
        self._dummy_hash = generate_password_hash("tokenauth-dummy-credential")

    def verify(self, user: UserAccount | None, password: str) -> bool:
        if user is None:
            check_password_hash(self._dummy_hash, password)
            return False
        if not user.password_hash:
            return False
        try:
            return bool(check_password_hash(user.password_hash, password))
        except ValueError:
            log.warning(
                "credentials.malformed_hash",
                extra={"event": "credentials.malformed_hash", "user_id": user.id},
            )
            return False
