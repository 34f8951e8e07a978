"""Column mixins for the token service models (typed 2.0)."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Integer, func
from sqlalchemy.orm import Mapped, mapped_column


class PKMixin:
    """Integer surrogate key ``id``."""

    id: Mapped[int] = mapped_column(Integer, primary_key=True)


class CreatedAtMixin:
    """Database-stamped, timezone-aware ``created_at``.

    Only for rows the token engine never times: refresh tokens carry their
    own ``created_at`` from the service clock.
    """

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


class ReprMixin:
    """``<Class id=N>`` repr that never includes column values."""

    def __repr__(self) -> str:
        return f"<{type(self).__name__} id={getattr(self, 'id', None)}>"
