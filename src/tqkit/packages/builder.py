"""Application builder and the pack registration entry points.

Two-phase startup, mirroring how packs contribute to an app::

    builder = AppBuilder(settings)
    add_packages(builder, lambda opts: opts.add_pack_dir("packs"))
    app = builder.build()
    use_packages(app)

``add_packages`` runs before the app exists: packs register services.
``use_packages`` runs on the built app: localization middleware is
installed and packs mount their routes.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Awaitable, Callable

from fastapi import APIRouter, FastAPI

from tqkit.core.config import Settings
from tqkit.core.errors import PackageNotRegistered
from tqkit.observability.middleware import RequestIdMiddleware

from .configuration import PackConfiguration
from .loader import load_pack, use_packs
from .localization import LocalizationResourceManager, ModuleStringLocalizerFactory
from .manager import PackageManager
from .middleware import RequestLocalizationMiddleware, RequestLocalizationOptions
from .options import PackOptions
from .services import ServiceCollection, ServiceProvider, get_provider

logger = logging.getLogger(__name__)

Hook = Callable[[], Awaitable[Any]]


class AppBuilder:
    """Collects settings, services and lifecycle hooks before the app exists."""

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or Settings()
        self.services = ServiceCollection()
        self.services.add_singleton(Settings, instance=self.settings)
        self._startup: list[Hook] = []
        self._shutdown: list[Hook] = []

    def on_startup(self, hook: Hook) -> AppBuilder:
        self._startup.append(hook)
        return self

    def on_shutdown(self, hook: Hook) -> AppBuilder:
        self._shutdown.append(hook)
        return self

    def build(self, **fastapi_kwargs: Any) -> FastAPI:
        """Create the FastAPI app with the service provider on ``app.state``.

        Startup hooks run in registration order, shutdown hooks in reverse;
        singletons created by the provider are closed last.
        """
        provider = self.services.build_provider()
        startup = list(self._startup)
        shutdown = list(self._shutdown)

        @asynccontextmanager
        async def lifespan(app: FastAPI) -> AsyncIterator[None]:
            for hook in startup:
                await hook()
            try:
                yield
            finally:
                for hook in reversed(shutdown):
                    await hook()
                await provider.aclose()

        fastapi_kwargs.setdefault("title", self.settings.server.title)
        app = FastAPI(lifespan=lifespan, **fastapi_kwargs)
        app.state.service_provider = provider
        app.state.settings = self.settings
        app.add_middleware(RequestIdMiddleware)
        logger.info("Built app %r with %d service registrations", app.title, len(self.services))
        return app


def add_packages(
    builder: AppBuilder,
    configure: Callable[[PackOptions], None] | None = None,
) -> PackageManager:
    """Discover packs and let each register its services.

    Options start from ``settings.packages`` and may be adjusted by
    *configure*. The :class:`PackageManager` is registered as a singleton
    and :class:`PackConfiguration` as a scoped service.
    """
    options = PackOptions.from_config(builder.settings.packages)
    if configure is not None:
        configure(options)

    manager = PackageManager(options)
    builder.services.add_singleton(PackageManager, instance=manager)
    builder.services.add_scoped(PackConfiguration)

    for package in manager.get_packs():
        load_pack(builder, package)

    if options.enable_localizer:
        add_module_localization(builder.services, options)
    return manager


def use_packages(
    app: FastAPI,
    routes: APIRouter | FastAPI | None = None,
    provider: ServiceProvider | None = None,
    localizer_setup: Callable[[RequestLocalizationOptions], None] | None = None,
) -> None:
    """Install localization (if enabled) and mount every pack's routes.

    Routes go on *app* unless a separate *routes* router is given; such a
    router is included into *app* once all packs have been mapped.

    Raises:
        PackageNotRegistered: If the app was built without ``add_packages``.
    """
    provider = provider or get_provider(app)
    manager = provider.get_service(PackageManager)
    if manager is None:
        raise PackageNotRegistered(
            "No PackageManager registered; call add_packages() before build()."
        )

    if manager.get_pack_options().enable_localizer:
        use_module_localization(app, provider, manager, localizer_setup)

    target = routes if routes is not None else app
    use_packs(app, provider, target, manager.get_packs())
    if isinstance(target, APIRouter):
        app.include_router(target)


def add_module_localization(services: ServiceCollection, options: PackOptions) -> ServiceCollection:
    """Register the resource manager and localizer factory singletons."""
    services.add_singleton(
        LocalizationResourceManager,
        factory=lambda _: LocalizationResourceManager(
            options.resources_dirname, options.localization.default_culture,
        ),
    )
    services.add_singleton(ModuleStringLocalizerFactory)
    return services


def use_module_localization(
    app: FastAPI,
    provider: ServiceProvider,
    manager: PackageManager,
    setup: Callable[[RequestLocalizationOptions], None] | None = None,
) -> RequestLocalizationOptions:
    """Load module and shared resources and add the localization middleware."""
    resources = provider.get_required_service(LocalizationResourceManager)
    for package in manager.get_packs():
        resources.load_module_resources(package)

    pack_options = manager.get_pack_options()
    root = pack_options.shared_resources_root or Path.cwd()
    resources.load_shared_resources(root)

    options = RequestLocalizationOptions.from_config(pack_options.localization)
    if setup is not None:
        setup(options)
    resources.default_culture = options.default_request_culture.ui_culture

    app.add_middleware(RequestLocalizationMiddleware, options=options)
    logger.info(
        "Request localization enabled (cultures=%s, default=%s)",
        ", ".join(options.supported_cultures),
        options.default_culture,
    )
    return options
