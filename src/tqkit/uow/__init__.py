"""Generic repository / unit of work over SQLAlchemy's asyncio ORM.

Public API
----------
::

    from tqkit.uow import (
        IRepository,
        IUnitOfWork,
        Page,
        Repository,
        UnitOfWork,
        page_bounds,
    )

Usage::

    async with unit_of_work() as uow:
        users = uow.get_repository(User)
        await users.add(User(name="ada"))
        await uow.commit()
"""

from __future__ import annotations

from tqkit.uow.connection import (
    create_all,
    create_engine,
    dispose,
    get_engine,
    get_session,
    get_session_factory,
    init_engine,
    unit_of_work,
)
from tqkit.uow.paging import Page, page_bounds
from tqkit.uow.repository import IRepository, Repository
from tqkit.uow.unit_of_work import IUnitOfWork, UnitOfWork

__all__ = [
    "IRepository",
    "IUnitOfWork",
    "Page",
    "Repository",
    "UnitOfWork",
    "create_all",
    "create_engine",
    "dispose",
    "get_engine",
    "get_session",
    "get_session_factory",
    "init_engine",
    "page_bounds",
    "unit_of_work",
]
