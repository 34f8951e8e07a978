"""User repository (read side used by the token engine, write side by the CLI)."""

from __future__ import annotations

from typing import cast

from sqlalchemy import select

from tokenauth.models.user import User
from tokenauth.repositories.base import BaseRepository


class UserRepository(BaseRepository[User]):
    """Persistence-only repository for :class:`User`.

    It NEVER handles tokens or password checks; those live in the services
    and the credential verifier.
    """

    model = User

    def _filterable_fields(self):
        return {"email": User.email}

    def get_by_email(self, email: str) -> User | None:
        """Fetch a user by email (case-insensitive).

        :param email: Email address to normalise and search.
        :type email: str
        :returns: User instance or ``None`` when not found.
        :rtype: User | None
        """
        stmt = select(User).where(User.email == email.lower().strip())
        result = self.session.execute(stmt).scalars().first()
        return cast(User | None, result)

    def create(
        self,
        *,
        email: str,
        password: str,
        first_name: str | None = None,
        last_name: str | None = None,
    ) -> User:
        """Create and flush a new user with a hashed password."""
        user = User(email=email, first_name=first_name, last_name=last_name)
        user.password = password
        return self.add(user)
