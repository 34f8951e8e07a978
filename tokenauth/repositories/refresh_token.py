"""Refresh token repository."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import select, update

from tokenauth.models.refresh_token import RefreshToken
from tokenauth.repositories.base import BaseRepository


class RefreshTokenRepository(BaseRepository[RefreshToken]):
    """Persistence-only repository for :class:`RefreshToken`."""

    model = RefreshToken

    def _filterable_fields(self):
        return {"user_id": RefreshToken.user_id, "value": RefreshToken.value}

    def list_active_by_value(
        self, *, user_id: int, value: str, now: datetime
    ) -> list[RefreshToken]:
        """Return every unrevoked, unexpired row of ``user_id`` carrying ``value``.

        More than one row is an integrity fault the caller must handle.
        """
        stmt = select(RefreshToken).where(
            RefreshToken.user_id == user_id,
            RefreshToken.value == value,
            RefreshToken.revoked_at.is_(None),
            RefreshToken.expires_at > now,
        )
        return list(self.session.execute(stmt).scalars().all())

    def revoke_if_active(
        self, *, user_id: int, value: str, when: datetime, unexpired: bool = False
    ) -> bool:
        """Set ``revoked_at`` only where it is still NULL.

        :param unexpired: Also require ``expires_at > when``, so a row that
            lapsed since it was read is left alone.
        :returns: ``True`` when exactly this statement flipped the row.
        :rtype: bool
        """
        conditions = [
            RefreshToken.user_id == user_id,
            RefreshToken.value == value,
            RefreshToken.revoked_at.is_(None),
        ]
        if unexpired:
            conditions.append(RefreshToken.expires_at > when)
        stmt = (
            update(RefreshToken)
            .where(*conditions)
            .values(revoked_at=when)
            .execution_options(synchronize_session=False)
        )
        result = self.session.execute(stmt)
        return result.rowcount == 1

    def list_for_user(self, user_id: int) -> list[RefreshToken]:
        """Return the user's whole record set, oldest first."""
        stmt = (
            select(RefreshToken)
            .where(RefreshToken.user_id == user_id)
            .order_by(RefreshToken.created_at.asc(), RefreshToken.id.asc())
        )
        return list(self.session.execute(stmt).scalars().all())
