"""Refresh token records owned by users."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tokenauth.core.extensions import db

from .base import PKMixin

if TYPE_CHECKING:
    from .user import User


class RefreshToken(PKMixin, db.Model):
    """
    One issued refresh credential.

    ``value`` is unique across all users. Rows are never deleted by the
    token lifecycle; ``revoked_at`` moves from NULL to a timestamp once and
    never back.
    """

    __tablename__ = "refresh_tokens"

    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    value: Mapped[str] = mapped_column(String(128), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    revoked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    user: Mapped[User] = relationship(back_populates="refresh_tokens")

    __table_args__ = (
        UniqueConstraint("value", name="uq_refresh_tokens_value"),
        Index("ix_refresh_tokens_user_id", "user_id"),
    )

    def __repr__(self) -> str:
        # Never render the token value.
        revoked = self.revoked_at is not None
        return f"<RefreshToken id={self.id} user_id={self.user_id} revoked={revoked}>"
