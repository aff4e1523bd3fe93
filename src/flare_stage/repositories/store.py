"""Entity store: thin data access layer over a SQLAlchemy session."""
from __future__ import annotations

from collections.abc import Sequence
from typing import Any, TypeVar

from sqlalchemy import delete as sa_delete
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from flare_stage.db.session import Base

__all__ = ["EntityStore"]

ModelT = TypeVar("ModelT", bound=Base)


class EntityStore:
    """Generic get/put/delete/list_by access for ORM entities.

    The store flushes but never commits; transaction boundaries belong to the
    caller (services and the toggle engine).
    """

    def __init__(self, session: Session) -> None:
        """Initialize the store with a SQLAlchemy session."""
        self.session = session

    def get(self, model: type[ModelT], entity_id: Any, *, for_update: bool = False) -> ModelT | None:
        """Return an entity by primary key.

        Args:
            model: Mapped class to load.
            entity_id: Primary key value.
            for_update: Lock the row until the transaction ends (no-op on SQLite).
        """
        stmt = select(model).where(model.id == entity_id)  # type: ignore[attr-defined]
        if for_update:
            stmt = stmt.with_for_update()
        return self.session.execute(stmt).scalars().first()

    def put(self, entity: ModelT) -> ModelT:
        """Insert or update an entity and flush it so generated keys are populated."""
        self.session.add(entity)
        self.session.flush()
        return entity

    def delete(self, entity: Base) -> None:
        """Remove an entity."""
        self.session.delete(entity)
        self.session.flush()

    def list_by(
        self,
        model: type[ModelT],
        *criteria: Any,
        order_by: Sequence[Any] = (),
        limit: int | None = None,
        offset: int | None = None,
    ) -> list[ModelT]:
        """Return entities matching every criterion."""
        stmt = select(model).where(*criteria)
        if order_by:
            stmt = stmt.order_by(*order_by)
        if offset:
            stmt = stmt.offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)
        return list(self.session.execute(stmt).scalars())

    def count_by(self, model: type[Base], *criteria: Any) -> int:
        """Return the number of rows matching every criterion."""
        stmt = select(func.count()).select_from(model).where(*criteria)
        return int(self.session.execute(stmt).scalar_one())

    def exists(self, model: type[Base], *criteria: Any) -> bool:
        """Return True if at least one row matches."""
        stmt = select(select(model).where(*criteria).exists())
        return bool(self.session.execute(stmt).scalar())

    def remove_by(self, model: type[Base], *criteria: Any) -> int:
        """Bulk-delete matching rows and return how many were removed."""
        result = self.session.execute(sa_delete(model).where(*criteria))
        return int(result.rowcount or 0)
