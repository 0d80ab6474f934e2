"""Repository CRUD, paging and query composition against in-memory SQLite."""

from __future__ import annotations

import pytest
from sqlalchemy import Select, select
from sqlalchemy.orm.exc import StaleDataError

from tqkit.core.errors import DataAccessError
from tqkit.uow import IRepository, Page, Repository

from tests.models import User


def _repo(session) -> Repository[User]:
    return Repository(session, User)


class TestReads:
    @pytest.mark.asyncio
    async def test_get_by_id(self, seeded_session):
        user = await _repo(seeded_session).get_by_id(1)
        assert user is not None
        assert user.name == "user-00"

    @pytest.mark.asyncio
    async def test_get_by_id_missing(self, seeded_session):
        assert await _repo(seeded_session).get_by_id(999) is None

    @pytest.mark.asyncio
    async def test_get_all(self, seeded_session):
        users = await _repo(seeded_session).get_all()
        assert len(users) == 25

    @pytest.mark.asyncio
    async def test_first_or_default(self, seeded_session):
        user = await _repo(seeded_session).first_or_default(User.name == "user-05")
        assert user is not None
        assert user.id == 6

    @pytest.mark.asyncio
    async def test_first_or_default_no_match(self, seeded_session):
        assert await _repo(seeded_session).first_or_default(User.name == "nobody") is None

    @pytest.mark.asyncio
    async def test_exists(self, seeded_session):
        repo = _repo(seeded_session)
        assert await repo.exists(User.name == "user-01") is True
        assert await repo.exists(User.name == "nobody") is False

    @pytest.mark.asyncio
    async def test_count(self, seeded_session):
        repo = _repo(seeded_session)
        assert await repo.count() == 25
        assert await repo.count(User.active.is_(False)) == 9

    @pytest.mark.asyncio
    async def test_satisfies_protocol(self, session):
        assert isinstance(_repo(session), IRepository)


class TestGetPaged:
    @pytest.mark.asyncio
    async def test_first_page(self, seeded_session):
        page = await _repo(seeded_session).get_paged(1, 10, order_by=User.id)
        assert isinstance(page, Page)
        assert [u.id for u in page.items] == list(range(1, 11))
        assert page.total_count == 25

    @pytest.mark.asyncio
    async def test_last_partial_page(self, seeded_session):
        items, total = await _repo(seeded_session).get_paged(3, 10, order_by=User.id)
        assert [u.id for u in items] == [21, 22, 23, 24, 25]
        assert total == 25

    @pytest.mark.asyncio
    async def test_page_past_the_end_is_empty(self, seeded_session):
        items, total = await _repo(seeded_session).get_paged(10, 10)
        assert items == []
        assert total == 25

    @pytest.mark.asyncio
    async def test_total_counts_filtered_rows_before_paging(self, seeded_session):
        items, total = await _repo(seeded_session).get_paged(
            1, 5, User.active.is_(True), User.name, ascending=False,
        )
        assert total == 16
        assert [u.name for u in items] == [
            "user-23", "user-22", "user-20", "user-19", "user-17",
        ]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("index,size", [(0, 0), (-3, -1), (1, 0), (0, 1)])
    async def test_non_positive_values_clamp_to_one(self, seeded_session, index, size):
        items, total = await _repo(seeded_session).get_paged(index, size, order_by=User.id)
        assert [u.id for u in items] == [1]
        assert total == 25


class TestGetPagedAs:
    @pytest.mark.asyncio
    async def test_single_column_projection(self, seeded_session):
        items, total = await _repo(seeded_session).get_paged_as(
            2, 3,
            order_by=lambda q: q.order_by(User.id),
            selector=User.name,
        )
        assert items == ["user-03", "user-04", "user-05"]
        assert total == 25

    @pytest.mark.asyncio
    async def test_multi_column_projection_with_filter(self, seeded_session):
        items, total = await _repo(seeded_session).get_paged_as(
            1, 2,
            predicate=User.active.is_(False),
            order_by=lambda q: q.order_by(User.id.desc()),
            selector=(User.id, User.name),
        )
        assert total == 9
        assert [tuple(row) for row in items] == [(25, "user-24"), (22, "user-21")]

    @pytest.mark.asyncio
    async def test_without_selector_returns_entities(self, seeded_session):
        items, _ = await _repo(seeded_session).get_paged_as(
            1, 2, order_by=lambda q: q.order_by(User.id),
        )
        assert all(isinstance(u, User) for u in items)
        assert [u.id for u in items] == [1, 2]


class TestComposableQueries:
    @pytest.mark.asyncio
    async def test_where_returns_select(self, seeded_session):
        repo = _repo(seeded_session)
        stmt = repo.where(User.id <= 3)
        assert isinstance(stmt, Select)
        users = await repo.fetch(stmt.order_by(User.id))
        assert [u.id for u in users] == [1, 2, 3]
        assert all(u in seeded_session for u in users)

    @pytest.mark.asyncio
    async def test_as_no_tracking_detaches_results(self, seeded_session):
        repo = _repo(seeded_session)
        users = await repo.fetch(repo.as_no_tracking().where(User.id <= 3))
        assert len(users) == 3
        assert all(u not in seeded_session for u in users)
        assert users[0].name.startswith("user-")

    @pytest.mark.asyncio
    async def test_as_no_tracking_keeps_already_tracked(self, seeded_session):
        repo = _repo(seeded_session)
        tracked = await repo.get_by_id(1)
        users = await repo.fetch(repo.as_no_tracking().where(User.id <= 2).order_by(User.id))
        assert users[0] is tracked
        assert tracked in seeded_session
        assert users[1] not in seeded_session


class TestWrites:
    @pytest.mark.asyncio
    async def test_add_and_add_range(self, session):
        repo = _repo(session)
        await repo.add(User(name="ada"))
        await repo.add_range([User(name="bob"), User(name="cy")])
        assert await repo.count() == 3

    @pytest.mark.asyncio
    async def test_update_detached_entity(self, seeded_session, session_factory):
        repo = _repo(seeded_session)
        detached = User(id=1, name="renamed", email="new@example.com", active=False)
        attached = await repo.update(detached)
        assert attached is detached
        assert attached in seeded_session
        await seeded_session.commit()

        async with session_factory() as check:
            user = await check.get(User, 1)
            assert user.name == "renamed"
            assert user.email == "new@example.com"
            assert user.active is False

    @pytest.mark.asyncio
    async def test_update_marks_unchanged_entity_modified(self, seeded_session):
        repo = _repo(seeded_session)
        user = await repo.get_by_id(2)
        assert not seeded_session.is_modified(user)
        same = await repo.update(user)
        assert same is user
        assert seeded_session.is_modified(user)
        assert user in seeded_session.dirty

    @pytest.mark.asyncio
    async def test_update_range(self, seeded_session, session_factory):
        repo = _repo(seeded_session)
        updated = await repo.update_range([
            User(id=2, name="two", active=True),
            User(id=3, name="three", active=True),
        ])
        assert len(updated) == 2
        await seeded_session.commit()

        async with session_factory() as check:
            names = {u.id: u.name for u in await Repository(check, User).get_all()}
            assert names[2] == "two"
            assert names[3] == "three"

    @pytest.mark.asyncio
    async def test_update_missing_row_is_not_inserted(self, seeded_session, session_factory):
        repo = _repo(seeded_session)
        ghost = User(id=999, name="ghost")
        assert await repo.update(ghost) is ghost
        with pytest.raises(StaleDataError):
            await seeded_session.commit()
        await seeded_session.rollback()

        async with session_factory() as check:
            assert await check.get(User, 999) is None
            assert await Repository(check, User).count() == 25

    @pytest.mark.asyncio
    async def test_update_without_primary_key(self, seeded_session):
        with pytest.raises(DataAccessError, match="primary key"):
            await _repo(seeded_session).update(User(name="keyless"))

    @pytest.mark.asyncio
    async def test_delete_by_id(self, seeded_session):
        repo = _repo(seeded_session)
        await repo.delete(5)
        await seeded_session.flush()
        assert await repo.get_by_id(5) is None
        assert await repo.count() == 24

    @pytest.mark.asyncio
    async def test_delete_missing_id_is_noop(self, seeded_session):
        repo = _repo(seeded_session)
        await repo.delete(999)
        assert await repo.count() == 25

    @pytest.mark.asyncio
    async def test_delete_where(self, seeded_session):
        repo = _repo(seeded_session)
        await repo.delete_where(User.active.is_(False))
        assert await repo.count() == 16
        assert await repo.exists(User.active.is_(False)) is False

    @pytest.mark.asyncio
    async def test_delete_where_without_matches(self, seeded_session):
        repo = _repo(seeded_session)
        await repo.delete_where(User.name == "nobody")
        assert await repo.count() == 25

    @pytest.mark.asyncio
    async def test_delete_range(self, seeded_session):
        repo = _repo(seeded_session)
        users = await repo.fetch(select(User).where(User.id.in_([1, 2, 3])))
        await repo.delete_range(users)
        assert await repo.count() == 22

