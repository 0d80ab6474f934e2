"""Generic repository over an :class:`AsyncSession`.

One :class:`Repository` wraps one mapped entity class and translates
generic CRUD / query calls into SQLAlchemy ``select`` statements and
session operations. Nothing is flushed or committed here; that is the
job of :class:`tqkit.uow.unit_of_work.UnitOfWork`.

Predicates are SQLAlchemy boolean column expressions::

    repo = Repository(session, User)
    ada = await repo.first_or_default(User.name == "ada")
    items, total = await repo.get_paged(2, 20, User.active.is_(True), User.name)
"""

from __future__ import annotations

import logging
from typing import (
    Any,
    Callable,
    Generic,
    Iterable,
    Protocol,
    TypeVar,
    runtime_checkable,
)

from sqlalchemy import ColumnElement, Select, asc, desc, func, inspect, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import make_transient_to_detached
from sqlalchemy.orm.attributes import flag_modified

from tqkit.core.errors import DataAccessError

from .paging import Page, page_bounds

logger = logging.getLogger(__name__)

T = TypeVar("T")

Predicate = ColumnElement[bool]
OrderBy = Callable[[Select[Any]], Select[Any]]

# Execution option carried by statements built with ``as_no_tracking``
NO_TRACKING_OPTION = "tqkit_no_tracking"


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


@runtime_checkable
class IRepository(Protocol[T]):
    """Per-entity data access contract."""

    async def get_by_id(self, id: Any) -> T | None:
        """Return the entity with primary key *id*, or ``None``."""
        ...

    async def get_all(self) -> list[T]:
        """Return every entity."""
        ...

    async def first_or_default(self, predicate: Predicate) -> T | None:
        """Return the first entity matching *predicate*, or ``None``."""
        ...

    async def get_paged(
        self,
        page_index: int,
        page_size: int,
        predicate: Predicate | None = None,
        order_by: Any = None,
        ascending: bool = True,
    ) -> Page[T]:
        """Return one page of entities and the filtered total count."""
        ...

    async def get_paged_as(
        self,
        page_index: int,
        page_size: int,
        predicate: Predicate | None = None,
        order_by: OrderBy | None = None,
        selector: Any = None,
    ) -> Page[Any]:
        """Return one page of projected rows and the filtered total count."""
        ...

    async def add(self, entity: T) -> None:
        ...

    async def add_range(self, entities: Iterable[T]) -> None:
        ...

    async def update(self, entity: T) -> T:
        ...

    async def update_range(self, entities: Iterable[T]) -> list[T]:
        ...

    async def delete(self, id: Any) -> None:
        ...

    async def delete_where(self, predicate: Predicate) -> None:
        ...

    async def delete_range(self, entities: Iterable[T]) -> None:
        ...

    async def exists(self, predicate: Predicate) -> bool:
        ...

    async def count(self, predicate: Predicate | None = None) -> int:
        ...

    def as_no_tracking(self) -> Select[Any]:
        ...

    def where(self, predicate: Predicate) -> Select[Any]:
        ...


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class Repository(Generic[T]):
    """SQLAlchemy implementation of :class:`IRepository`."""

    def __init__(self, session: AsyncSession, entity: type[T]) -> None:
        self._session = session
        self._entity = entity

    @property
    def entity(self) -> type[T]:
        return self._entity

    @property
    def session(self) -> AsyncSession:
        return self._session

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_by_id(self, id: Any) -> T | None:
        return await self._session.get(self._entity, id)

    async def get_all(self) -> list[T]:
        result = await self._session.execute(select(self._entity))
        return list(result.scalars().all())

    async def first_or_default(self, predicate: Predicate) -> T | None:
        stmt = select(self._entity).where(predicate).limit(1)
        result = await self._session.execute(stmt)
        return result.scalars().first()

    async def get_paged(
        self,
        page_index: int,
        page_size: int,
        predicate: Predicate | None = None,
        order_by: Any = None,
        ascending: bool = True,
    ) -> Page[T]:
        """Return page *page_index* (1-based) of at most *page_size* entities.

        Args:
            page_index: 1-based page number; values below 1 mean page 1.
            page_size: Rows per page; values below 1 mean 1.
            predicate: Optional filter applied before counting.
            order_by: Column (or column expression) to sort by.
            ascending: Sort direction for *order_by*.

        Returns:
            :class:`Page` with the items and the total count of the
            filtered query, computed before paging.
        """
        stmt = select(self._entity)
        if predicate is not None:
            stmt = stmt.where(predicate)

        total = await self._count_of(stmt)

        if order_by is not None:
            stmt = stmt.order_by(asc(order_by) if ascending else desc(order_by))

        offset, limit = page_bounds(page_index, page_size)
        result = await self._session.execute(stmt.offset(offset).limit(limit))
        return Page(list(result.scalars().all()), total)

    async def get_paged_as(
        self,
        page_index: int,
        page_size: int,
        predicate: Predicate | None = None,
        order_by: OrderBy | None = None,
        selector: Any = None,
    ) -> Page[Any]:
        """Paged query with caller-supplied ordering and projection.

        *order_by* receives the filtered ``Select`` and returns it ordered,
        e.g. ``lambda q: q.order_by(User.name, User.id.desc())``.

        *selector* is a column expression or a tuple/list of them. A single
        column yields scalar values, several columns yield ``Row`` tuples.
        Without a selector the entities themselves are returned.
        """
        stmt = select(self._entity)
        if predicate is not None:
            stmt = stmt.where(predicate)

        total = await self._count_of(stmt)

        if order_by is not None:
            stmt = order_by(stmt)

        offset, limit = page_bounds(page_index, page_size)
        stmt = stmt.offset(offset).limit(limit)

        if selector is None:
            result = await self._session.execute(stmt)
            return Page(list(result.scalars().all()), total)

        columns = tuple(selector) if isinstance(selector, (tuple, list)) else (selector,)
        result = await self._session.execute(stmt.with_only_columns(*columns))
        if len(columns) == 1:
            return Page(list(result.scalars().all()), total)
        return Page(list(result.all()), total)

    async def exists(self, predicate: Predicate) -> bool:
        stmt = select(select(self._entity).where(predicate).exists())
        return bool(await self._session.scalar(stmt))

    async def count(self, predicate: Predicate | None = None) -> int:
        stmt = select(func.count()).select_from(self._entity)
        if predicate is not None:
            stmt = stmt.where(predicate)
        result = await self._session.execute(stmt)
        return int(result.scalar_one())

    # ------------------------------------------------------------------
    # Composable queries
    # ------------------------------------------------------------------

    def as_no_tracking(self) -> Select[Any]:
        """Return a ``Select`` whose results :meth:`fetch` detaches."""
        return select(self._entity).execution_options(**{NO_TRACKING_OPTION: True})

    def where(self, predicate: Predicate) -> Select[Any]:
        return select(self._entity).where(predicate)

    async def fetch(self, stmt: Select[Any]) -> list[T]:
        """Execute a statement built from :meth:`where` / :meth:`as_no_tracking`.

        For no-tracking statements, entities loaded by this query are
        expunged from the session. Entities the session was already
        tracking before the query stay attached.
        """
        no_tracking = stmt.get_execution_options().get(NO_TRACKING_OPTION, False)
        tracked_before = set(self._session.identity_map.keys()) if no_tracking else set()

        result = await self._session.execute(stmt)
        items = list(result.scalars().all())

        if no_tracking:
            for item in items:
                if inspect(item).identity_key not in tracked_before:
                    self._session.expunge(item)
        return items

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def add(self, entity: T) -> None:
        self._session.add(entity)

    async def add_range(self, entities: Iterable[T]) -> None:
        self._session.add_all(list(entities))

    async def update(self, entity: T) -> T:
        """Attach *entity* and mark every loaded column as modified.

        A transient instance must carry its primary key; it is attached as
        if it had been loaded, so the next flush emits an UPDATE. No row is
        inserted: when the key matches nothing the flush raises
        :class:`~sqlalchemy.orm.exc.StaleDataError`.

        Raises:
            DataAccessError: If a transient *entity* has no primary key.
        """
        if entity not in self._session:
            state = inspect(entity)
            if state.transient:
                identity = state.mapper.primary_key_from_instance(entity)
                if any(value is None for value in identity):
                    raise DataAccessError(
                        f"Cannot update {self._entity.__name__} without a primary key"
                    )
                make_transient_to_detached(entity)
            self._session.add(entity)
        _mark_modified(entity)
        return entity

    async def update_range(self, entities: Iterable[T]) -> list[T]:
        return [await self.update(entity) for entity in entities]

    async def delete(self, id: Any) -> None:
        entity = await self._session.get(self._entity, id)
        if entity is None:
            return
        await self._session.delete(entity)

    async def delete_where(self, predicate: Predicate) -> None:
        result = await self._session.execute(select(self._entity).where(predicate))
        entities = result.scalars().all()
        for entity in entities:
            await self._session.delete(entity)
        if entities:
            logger.debug(
                "Staged %d %s rows for delete", len(entities), self._entity.__name__,
            )

    async def delete_range(self, entities: Iterable[T]) -> None:
        for entity in entities:
            await self._session.delete(entity)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _count_of(self, stmt: Select[Any]) -> int:
        count_stmt = select(func.count()).select_from(stmt.order_by(None).subquery())
        result = await self._session.execute(count_stmt)
        return int(result.scalar_one())

    def __repr__(self) -> str:
        return f"Repository({self._entity.__name__})"


def _mark_modified(instance: Any) -> None:
    """Flag all loaded non-key column attributes of *instance* as changed."""
    state = inspect(instance)
    primary_keys = {
        state.mapper.get_property_by_column(col).key
        for col in state.mapper.primary_key
    }
    for attr in state.mapper.column_attrs:
        if attr.key in primary_keys or attr.key not in state.dict:
            continue
        flag_modified(instance, attr.key)
