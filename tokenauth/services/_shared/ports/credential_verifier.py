from __future__ import annotations

from typing import Protocol

from .token_store import UserAccount


class CredentialVerifier(Protocol):
    """
    Port for password verification.

    ``user`` may be ``None`` (unknown email); implementations should still do
    comparable work and return ``False`` so both rejection paths look alike.
    """

    def verify(self, user: UserAccount | None, password: str) -> bool: ...
