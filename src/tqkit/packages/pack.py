"""Base class for plugin packs.

A pack is a unit of server functionality: services it registers, routes
it serves, and the resource files it ships. Subclass :class:`Pack` in a
module the :class:`~tqkit.packages.manager.PackageManager` can find::

    router = APIRouter()

    class OrdersPack(Pack):
        name = "orders"
        router = router

        def configure_services(self, services, settings):
            services.add_scoped(OrderService)
"""

from __future__ import annotations

from typing import TYPE_CHECKING, ClassVar

from fastapi import APIRouter, FastAPI

if TYPE_CHECKING:
    from tqkit.core.config import Settings

    from .services import ServiceCollection, ServiceProvider


class Pack:
    """Base class every pack derives from."""

    name: ClassVar[str] = ""
    order: ClassVar[int] = 0  # Lower loads first
    router: ClassVar[APIRouter | None] = None
    route_prefix: ClassVar[str | None] = None  # Defaults to "/<name>"

    def configure_services(self, services: ServiceCollection, settings: Settings) -> None:
        """Register this pack's services. Called while the app is being built."""

    def configure(self, app: FastAPI, provider: ServiceProvider) -> None:
        """App-level setup (middleware, exception handlers, state)."""

    def map_routes(self, routes: APIRouter | FastAPI) -> None:
        """Mount this pack's endpoints; by default includes :attr:`router`."""
        if self.router is None:
            return
        prefix = self.route_prefix if self.route_prefix is not None else f"/{self.name}"
        routes.include_router(self.router, prefix=prefix, tags=[self.name])

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, order={self.order})"
