from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol


@dataclass(frozen=True, slots=True)
class IssuedAccessToken:
    """
    Result of signing an access token.

    :ivar token: Encoded, signed token string.
    :ivar expires_in: Lifetime in whole seconds.
    :ivar expires_at: Absolute expiry embedded in the token (UTC).
    """

    token: str = field(repr=False)
    expires_in: int
    expires_at: datetime


class AccessTokenCodec(Protocol):
    """Port for issuing and validating signed access tokens."""

    def issue(self, subject_id: int | str, issued_at: datetime) -> IssuedAccessToken: ...

    def validate(
        self, token: str, now: datetime, *, allow_expired: bool = False
    ) -> str | None:
        """
        Return the subject claim, or ``None`` for *any* failure.

        Callers cannot tell a bad signature from an expired or malformed
        token; that indistinguishability is part of the contract.
        """
