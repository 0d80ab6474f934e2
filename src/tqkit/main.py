"""Application bootstrap.

Wires settings, logging, the database engine and discovered packs into a
FastAPI app.
"""

from __future__ import annotations

from typing import Any, Callable

from fastapi import FastAPI
from sqlalchemy import MetaData

from .core.config import Settings, load_settings
from .observability.logger import get_logger, setup_logging
from .packages import AppBuilder, PackOptions, add_packages, use_packages
from .uow import UnitOfWork, connection


def create_app(
    config_path: str | None = None,
    overrides: dict[str, Any] | None = None,
    configure_packs: Callable[[PackOptions], None] | None = None,
    settings: Settings | None = None,
    metadata: MetaData | None = None,
) -> FastAPI:
    """Build the application. Load config, set up logging, register packs.

    The engine is opened on startup and disposed on shutdown. Each request
    can inject a :class:`UnitOfWork` bound to its own session. With
    ``database.create_tables`` set, the tables of *metadata* are created
    on startup.
    """

    # 1. Load settings
    settings = settings or load_settings(config_path=config_path, overrides=overrides)

    # 2. Set up logging
    setup_logging(
        level=settings.observability.log_level,
        format=settings.observability.log_format,
    )

    # 3. Core services
    builder = AppBuilder(settings)
    builder.services.add_scoped(
        UnitOfWork,
        factory=lambda _: UnitOfWork(connection.get_session_factory()()),
    )
    builder.on_startup(lambda: connection.init_engine(settings.database, metadata))
    builder.on_shutdown(connection.dispose)

    # 4. Packs
    manager = add_packages(builder, configure_packs)

    # 5. App + routes
    app = builder.build()
    use_packages(app)

    get_logger(__name__).info(
        "app_ready",
        packs=[p.name for p in manager.get_packs()],
        localizer=manager.get_pack_options().enable_localizer,
    )
    return app
