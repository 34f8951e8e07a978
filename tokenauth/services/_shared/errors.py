"""
Domain-level exceptions used within the service layer.

These exceptions are **framework-agnostic** and never import Flask or HTTP
helpers. Authentication failures are *not* exceptions: the lifecycle service
returns them as :class:`~tokenauth.services.auth.dto.AuthResult` values so the
outward shape stays identical whatever check failed.

The translation to HTTP responses (RFC 7807) is handled by
``tokenauth/core/errors.py``.
"""

from __future__ import annotations

from dataclasses import dataclass


class ServiceError(Exception):
    """
    Base class for all service-level errors.

    Notes
    -----
    - These are *not* HTTP errors.
    - They can be safely raised from stores, adapters or domain logic.
    """

    pass


class IntegrityFaultError(ServiceError):
    """
    Raised when a store returns state that must be impossible.

    Examples: two active records sharing one token value, or an insert that
    collides with an existing value. The lifecycle service logs it and answers
    with the same opaque failure as any other rejected request.
    """

    pass


@dataclass(slots=True, eq=False)
class CollaboratorUnavailableError(ServiceError):
    """
    Raised when an external collaborator cannot serve the request.

    Carries no user-security information, so it is surfaced distinctly
    (503) instead of being folded into the authentication failure.

    :param collaborator: Short collaborator name (e.g. ``"token_store"``).
    :type collaborator: str
    :param detail: Operator-facing description.
    :type detail: str
    """

    collaborator: str
    detail: str

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.collaborator} unavailable: {self.detail}"


class StoreUnavailableError(CollaboratorUnavailableError):
    """The token store (database or Redis) is unreachable."""

    def __init__(self, detail: str) -> None:
        super().__init__("token_store", detail)
