"""Opaque refresh-token values."""

from __future__ import annotations

import secrets

MIN_ENTROPY_BYTES = 64


class RefreshTokenGenerator:
    """
    Produce unguessable refresh-token strings.

    Values are ``nbytes`` from :mod:`secrets` encoded as unpadded base64url
    (86 characters for the default 64 bytes). They carry no structure: holding
    the string is the whole credential.

    :param nbytes: Random bytes per value; at least 64.
    :raises ValueError: If ``nbytes`` is below the minimum.
    """

    def __init__(self, nbytes: int = MIN_ENTROPY_BYTES) -> None:
        if nbytes < MIN_ENTROPY_BYTES:
            raise ValueError(f"Refresh tokens need at least {MIN_ENTROPY_BYTES} bytes of entropy.")
        self.nbytes = nbytes

    def generate(self) -> str:
        return secrets.token_urlsafe(self.nbytes)
