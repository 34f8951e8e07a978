# tokenauth/services/_shared/base.py
from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Return the current wall-clock time as an aware UTC datetime."""
    return datetime.now(UTC)


@dataclass(slots=True)
class ServiceContext:
    """
    Carry cross-cutting request-scoped data.

    :param request_id: Correlation id for logging/tracing.
    :param actor_id: Authenticated user identifier, when known.
    """

    request_id: str | None = None
    actor_id: int | None = None


class BaseService:
    """
    Base class for application services.

    Responsibilities
    ----------------
    * Own the time source, so every decision in one call sees one ``now``.
    * Carry the request-scoped :class:`ServiceContext`.
    * Keep services thin, orchestration-only, no web/ORM leakage.
    """

    def __init__(self, *, clock: Clock | None = None, ctx: ServiceContext | None = None) -> None:
        """
        Initialize the base service.

        :param clock: Zero-argument callable returning an aware datetime.
        :type clock: Callable[[], datetime] | None
        :param ctx: Optional request-scoped context.
        :type ctx: ServiceContext | None
        """
        self._clock = clock or utc_now
        self.ctx = ctx or ServiceContext()

    def now_utc(self) -> datetime:
        """
        Read the clock, labelling naive values as UTC.

        :returns: Aware UTC datetime.
        :rtype: datetime
        """
        now = self._clock()
        if now.tzinfo is None:
            return now.replace(tzinfo=UTC)
        return now.astimezone(UTC)
