"""Generic repository base for SQLAlchemy 2.x.

Repositories stay thin and persistence-focused:

- They never implement use cases or domain policies.
- They never call commit/rollback; the Unit of Work owns the transaction.
- Equality filters honour a per-repository whitelist.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any, Generic, TypeVar, cast

from sqlalchemy import Select, and_, select
from sqlalchemy.orm import InstrumentedAttribute, Session

from tokenauth.core.extensions import db

E = TypeVar("E")  # SQLAlchemy mapped entity type


class BaseRepository(Generic[E]):
    """Generic persistence-only repository.

    Subclasses must set ``model`` and may override ``_filterable_fields``.

    :param session: SQLAlchemy session (defaults to ``db.session``).
    :type session: Session | None
    """

    model: type[E]

    def __init__(self, session: Session | None = None) -> None:
        self.session: Session = session or db.session

    # ------------------------------ Hooks --------------------------------

    def _filterable_fields(self) -> Mapping[str, InstrumentedAttribute[Any]]:
        """Whitelist of public keys usable in equality filters."""
        return {}

    def _apply_equality_filters(
        self, stmt: Select[Any], filters: Mapping[str, Any] | None
    ) -> Select[Any]:
        """Apply whitelisted equality filters; unknown keys raise.

        :raises ValueError: If a key is not in the whitelist.
        """
        if not filters:
            return stmt
        allowed = self._filterable_fields()
        clauses: list[Any] = []
        for k, v in filters.items():
            col = allowed.get(k)
            if not isinstance(col, InstrumentedAttribute):
                raise ValueError(f"Unknown or non-filterable field: {k}")
            clauses.append(col == v)
        return stmt.where(and_(*clauses))

    # ------------------------------- CRUD --------------------------------

    def add(self, instance: E) -> E:
        """Stage a new entity for persistence and flush to materialize the PK.

        :param instance: New entity instance.
        :type instance: E
        :returns: The same instance after ``flush()``.
        :rtype: E
        """
        self.session.add(instance)
        self.flush()
        return instance

    def get(self, entity_id: Any) -> E | None:
        """Retrieve a single entity by primary key."""
        return cast(E | None, self.session.get(self.model, entity_id))

    def find_one(self, **filters: Any) -> E | None:
        """Find a single entity by whitelisted equality filters."""
        stmt: Select[Any] = select(self.model)
        stmt = self._apply_equality_filters(stmt, filters)
        result = self.session.execute(stmt).scalars().first()
        return cast(E | None, result)

    def flush(self) -> None:
        """Flush pending changes to the database without committing."""
        self.session.flush()
