"""UnitOfWork transactions, repository cache and raw SQL."""

from __future__ import annotations

import pytest
from sqlalchemy.exc import IntegrityError

from tqkit.core.errors import TransactionError
from tqkit.uow import IUnitOfWork, Repository, UnitOfWork

from tests.models import Post, User


async def _count_users(session_factory) -> int:
    async with session_factory() as s:
        return await Repository(s, User).count()


class TestRepositories:
    @pytest.mark.asyncio
    async def test_repository_is_cached_per_entity(self, session):
        uow = UnitOfWork(session)
        users = uow.get_repository(User)
        assert uow.get_repository(User) is users
        assert uow.get_repository(Post) is not users
        assert users.entity is User
        assert users.session is session

    @pytest.mark.asyncio
    async def test_satisfies_protocol(self, session):
        assert isinstance(UnitOfWork(session), IUnitOfWork)


class TestCommit:
    @pytest.mark.asyncio
    async def test_commit_returns_number_of_written_entities(self, session, session_factory):
        uow = UnitOfWork(session)
        await uow.get_repository(User).add_range([User(name="a"), User(name="b")])
        assert await uow.commit() == 2
        assert await _count_users(session_factory) == 2

    @pytest.mark.asyncio
    async def test_commit_counts_updates_and_deletes(self, seeded_session):
        uow = UnitOfWork(seeded_session)
        users = uow.get_repository(User)
        first = await users.get_by_id(1)
        await users.delete(2)
        first.email = "changed@example.com"
        assert await uow.commit() == 2

    @pytest.mark.asyncio
    async def test_commit_with_nothing_pending(self, session):
        assert await UnitOfWork(session).commit() == 0


class TestExplicitTransactions:
    @pytest.mark.asyncio
    async def test_commit_transaction_persists(self, session, session_factory):
        uow = UnitOfWork(session)
        await uow.begin_transaction()
        assert uow.in_transaction
        await uow.get_repository(User).add(User(name="kept"))
        await uow.commit_transaction()
        assert not uow.in_transaction
        assert await _count_users(session_factory) == 1

    @pytest.mark.asyncio
    async def test_commit_inside_transaction_only_flushes(self, session, session_factory):
        uow = UnitOfWork(session)
        await uow.begin_transaction()
        await uow.get_repository(User).add(User(name="flushed"))
        assert await uow.commit() == 1
        assert uow.in_transaction
        await uow.rollback_transaction()
        assert not uow.in_transaction
        assert await _count_users(session_factory) == 0

    @pytest.mark.asyncio
    async def test_begin_after_autobegin(self, seeded_session):
        uow = UnitOfWork(seeded_session)
        assert await uow.get_repository(User).count() == 25
        await uow.begin_transaction()
        assert uow.in_transaction
        await uow.rollback_transaction()

    @pytest.mark.asyncio
    async def test_begin_twice_raises(self, session):
        uow = UnitOfWork(session)
        await uow.begin_transaction()
        with pytest.raises(TransactionError, match="already active"):
            await uow.begin_transaction()

    @pytest.mark.asyncio
    async def test_commit_transaction_without_begin_raises(self, session):
        with pytest.raises(TransactionError, match="commit"):
            await UnitOfWork(session).commit_transaction()

    @pytest.mark.asyncio
    async def test_rollback_transaction_without_begin_raises(self, session):
        with pytest.raises(TransactionError, match="roll back"):
            await UnitOfWork(session).rollback_transaction()

    @pytest.mark.asyncio
    async def test_failed_commit_rolls_back_and_propagates(self, seeded_session, session_factory):
        uow = UnitOfWork(seeded_session)
        await uow.begin_transaction()
        await uow.get_repository(User).add(User(name="user-00"))  # duplicate
        with pytest.raises(IntegrityError):
            await uow.commit_transaction()
        assert not uow.in_transaction
        assert await _count_users(session_factory) == 25


class TestRollback:
    @pytest.mark.asyncio
    async def test_rollback_discards_pending(self, seeded_session, session_factory):
        uow = UnitOfWork(seeded_session)
        await uow.get_repository(User).add(User(name="discarded"))
        await uow.rollback()
        assert await _count_users(session_factory) == 25

    @pytest.mark.asyncio
    async def test_rollback_clears_explicit_transaction(self, session):
        uow = UnitOfWork(session)
        await uow.begin_transaction()
        await uow.rollback()
        assert not uow.in_transaction


class TestMisc:
    @pytest.mark.asyncio
    async def test_execute_sql_returns_rowcount(self, seeded_session):
        uow = UnitOfWork(seeded_session)
        affected = await uow.execute_sql(
            "UPDATE users SET active = :active WHERE id <= :max_id",
            {"active": False, "max_id": 5},
        )
        assert affected == 5
        assert await uow.get_repository(User).count(User.active.is_(False)) == 12

    @pytest.mark.asyncio
    async def test_clear_change_tracker(self, seeded_session):
        uow = UnitOfWork(seeded_session)
        user = await uow.get_repository(User).get_by_id(1)
        assert user in seeded_session
        uow.clear_change_tracker()
        assert user not in seeded_session

    @pytest.mark.asyncio
    async def test_context_manager_rolls_back_on_error(self, session_factory):
        with pytest.raises(RuntimeError, match="boom"):
            async with UnitOfWork(session_factory()) as uow:
                await uow.get_repository(User).add(User(name="lost"))
                await uow.session.flush()
                raise RuntimeError("boom")
        assert await _count_users(session_factory) == 0

    @pytest.mark.asyncio
    async def test_context_manager_closes_session(self, session_factory):
        async with UnitOfWork(session_factory()) as uow:
            await uow.get_repository(User).add(User(name="kept"))
            await uow.commit()
        assert await _count_users(session_factory) == 1
