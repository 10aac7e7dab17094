"""
Base Repository Pattern

Purpose
-------
Type-safe, generic data access for SQLAlchemy 2.0 async sessions.
Repositories never open, commit or roll back transactions; they run inside
the session handed to them by a service.

Design Notes
------------
- Primary-key lookups go through ``session.get`` so composite and string
  keys work without an ``id`` column.
- ``for_update=True`` adds ``SELECT ... FOR UPDATE`` (a no-op on SQLite,
  where the transaction already holds the write lock) and refreshes any
  stale copy in the identity map.

Usage
-----
    class QuestRepository(BaseRepository[Quest]):
        async def for_day(self, session, account_id, day):
            return await self.find_many_where(
                session, Quest.account_id == account_id, Quest.day == day
            )
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Generic, List, Optional, Sequence, Type, TypeVar

from sqlalchemy import delete, func, select

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy import ColumnElement
    from sqlalchemy.ext.asyncio import AsyncSession

T = TypeVar("T")


class BaseRepository(Generic[T]):
    """
    Generic base repository.

    Type Parameters:
        T: The SQLAlchemy model class this repository manages
    """

    def __init__(self, model_class: Type[T], logger: Logger) -> None:
        self.model_class = model_class
        self.log = logger

    async def get(
        self,
        session: AsyncSession,
        id_value: Any,
        *,
        for_update: bool = False,
    ) -> Optional[T]:
        """Get a single record by primary key."""
        if for_update:
            instance = await session.get(
                self.model_class,
                id_value,
                with_for_update=True,
                populate_existing=True,
            )
        else:
            instance = await session.get(self.model_class, id_value)

        self.log.debug(
            f"Repository.get: {self.model_class.__name__}",
            extra={
                "model": self.model_class.__name__,
                "id": id_value,
                "found": instance is not None,
                "locked": for_update,
            },
        )
        return instance

    async def find_many_where(
        self,
        session: AsyncSession,
        *conditions: ColumnElement[bool],
        order_by: Optional[Sequence[Any]] = None,
        limit: Optional[int] = None,
        for_update: bool = False,
    ) -> List[T]:
        """Find every record matching all conditions."""
        stmt = select(self.model_class).where(*conditions)
        if order_by:
            stmt = stmt.order_by(*order_by)
        if limit is not None:
            stmt = stmt.limit(limit)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)

        result = await session.execute(stmt)
        instances = list(result.scalars().all())

        self.log.debug(
            f"Repository.find_many_where: {self.model_class.__name__}",
            extra={
                "model": self.model_class.__name__,
                "found_count": len(instances),
                "locked": for_update,
            },
        )
        return instances

    async def exists(self, session: AsyncSession, *conditions: ColumnElement[bool]) -> bool:
        return await self.count(session, *conditions) > 0

    async def count(self, session: AsyncSession, *conditions: ColumnElement[bool]) -> int:
        stmt = select(func.count()).select_from(self.model_class).where(*conditions)
        result = await session.execute(stmt)
        return int(result.scalar_one())

    def add(self, session: AsyncSession, instance: T) -> T:
        session.add(instance)
        return instance

    async def delete(self, session: AsyncSession, instance: T) -> None:
        await session.delete(instance)

    async def delete_where(
        self,
        session: AsyncSession,
        *conditions: ColumnElement[bool],
    ) -> int:
        """Bulk delete; returns the number of rows removed."""
        result = await session.execute(
            delete(self.model_class)
            .where(*conditions)
            .execution_options(synchronize_session="fetch")
        )
        return int(result.rowcount or 0)

    async def flush(self, session: AsyncSession) -> None:
        await session.flush()
