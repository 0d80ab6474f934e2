"""Unit of work: one :class:`AsyncSession`, its transaction and its repositories.

Begin / commit / rollback delegate to the session's transaction API.
Repositories handed out by :meth:`UnitOfWork.get_repository` share the
session, so everything they stage is written by one :meth:`commit`.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Protocol, TypeVar, runtime_checkable

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, AsyncSessionTransaction

from tqkit.core.errors import TransactionError

from .repository import IRepository, Repository

logger = logging.getLogger(__name__)

T = TypeVar("T")


@runtime_checkable
class IUnitOfWork(Protocol):
    """Transaction boundary over a set of repositories."""

    async def begin_transaction(self) -> None: ...

    async def commit(self) -> int: ...

    async def commit_transaction(self) -> None: ...

    async def rollback(self) -> None: ...

    async def rollback_transaction(self) -> None: ...

    def get_repository(self, entity: type[T]) -> IRepository[T]: ...

    async def execute_sql(
        self, sql: str, params: Mapping[str, Any] | None = None
    ) -> int: ...

    def clear_change_tracker(self) -> None: ...

    async def close(self) -> None: ...


class UnitOfWork:
    """SQLAlchemy implementation of :class:`IUnitOfWork`.

    Usage::

        async with UnitOfWork(session) as uow:
            await uow.begin_transaction()
            await uow.get_repository(Order).add(order)
            await uow.get_repository(AuditEntry).add(entry)
            await uow.commit_transaction()

    Without :meth:`begin_transaction`, each :meth:`commit` flushes and
    commits on its own.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._repositories: dict[type, Repository[Any]] = {}
        self._transaction: AsyncSessionTransaction | None = None

    @property
    def session(self) -> AsyncSession:
        return self._session

    @property
    def in_transaction(self) -> bool:
        """True between :meth:`begin_transaction` and its commit/rollback."""
        return self._transaction is not None

    # ------------------------------------------------------------------
    # Repositories
    # ------------------------------------------------------------------

    def get_repository(self, entity: type[T]) -> Repository[T]:
        """Return the repository for *entity*, creating it on first use."""
        repo = self._repositories.get(entity)
        if repo is None:
            repo = Repository(self._session, entity)
            self._repositories[entity] = repo
        return repo

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    async def begin_transaction(self) -> None:
        """Start an explicit transaction.

        If the session already auto-began a transaction (because a query
        ran first), that transaction becomes the explicit one.

        Raises:
            TransactionError: If an explicit transaction is already active.
        """
        if self._transaction is not None:
            raise TransactionError("A transaction is already active on this unit of work.")

        current = self._session.get_transaction()
        if current is not None:
            self._transaction = current
        else:
            self._transaction = await self._session.begin()
        logger.debug("Transaction started")

    async def commit(self) -> int:
        """Write pending changes and return the number of entities written.

        Inside an explicit transaction only a flush happens; the data is
        made durable by :meth:`commit_transaction`.
        """
        written = (
            len(self._session.new)
            + len(self._session.deleted)
            + sum(1 for obj in self._session.dirty if self._session.is_modified(obj))
        )
        await self._session.flush()
        if self._transaction is None:
            await self._session.commit()
        logger.debug("Committed %d entities (explicit_tx=%s)", written, self.in_transaction)
        return written

    async def commit_transaction(self) -> None:
        """Flush and commit the explicit transaction.

        If the flush or commit fails the transaction is rolled back and the
        storage error propagates.

        Raises:
            TransactionError: If no explicit transaction is active.
        """
        transaction = self._require_transaction("commit")
        try:
            await self._session.flush()
            await transaction.commit()
        except Exception:
            await transaction.rollback()
            raise
        finally:
            self._transaction = None
        logger.debug("Transaction committed")

    async def rollback(self) -> None:
        """Discard all uncommitted work in the session."""
        await self._session.rollback()
        self._transaction = None
        logger.debug("Session rolled back")

    async def rollback_transaction(self) -> None:
        """Roll back the explicit transaction.

        Raises:
            TransactionError: If no explicit transaction is active.
        """
        transaction = self._require_transaction("roll back")
        try:
            await transaction.rollback()
        finally:
            self._transaction = None
        logger.debug("Transaction rolled back")

    # ------------------------------------------------------------------
    # Misc
    # ------------------------------------------------------------------

    async def execute_sql(self, sql: str, params: Mapping[str, Any] | None = None) -> int:
        """Run raw SQL with named parameters; return the affected row count."""
        result = await self._session.execute(text(sql), dict(params or {}))
        return result.rowcount

    def clear_change_tracker(self) -> None:
        """Detach every entity currently tracked by the session."""
        self._session.expunge_all()

    async def close(self) -> None:
        self._repositories.clear()
        self._transaction = None
        await self._session.close()

    async def __aenter__(self) -> UnitOfWork:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        try:
            if exc_type is not None:
                await self._session.rollback()
        finally:
            await self.close()

    def _require_transaction(self, action: str) -> AsyncSessionTransaction:
        if self._transaction is None:
            raise TransactionError(f"No active transaction to {action}.")
        return self._transaction
