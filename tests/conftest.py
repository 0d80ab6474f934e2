"""Shared fixtures for the tqkit test suite."""

from __future__ import annotations

from pathlib import Path

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tqkit.packages import PackOptions
from tqkit.uow import create_all, create_engine

from .models import Base, make_users

FIXTURES_DIR = Path(__file__).parent / "fixtures"
PACKS_DIR = FIXTURES_DIR / "packs"
SHARED_ROOT = FIXTURES_DIR / "shared"


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------

@pytest_asyncio.fixture
async def engine():
    """In-memory SQLite engine with the test schema."""
    eng = create_engine("sqlite+aiosqlite:///:memory:")
    await create_all(Base.metadata, eng)
    yield eng
    await eng.dispose()


@pytest_asyncio.fixture
async def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as s:
        yield s


@pytest_asyncio.fixture
async def seeded_session(session_factory):
    """Session over a database holding 25 users."""
    async with session_factory() as s:
        s.add_all(make_users(25))
        await s.commit()
    async with session_factory() as s:
        yield s


# ---------------------------------------------------------------------------
# Packs
# ---------------------------------------------------------------------------

@pytest.fixture
def pack_options() -> PackOptions:
    """Options pointing at the fixture packs, entry points disabled."""
    return PackOptions(
        pack_dirs=[PACKS_DIR],
        entry_point_group=None,
        shared_resources_root=SHARED_ROOT,
    )
