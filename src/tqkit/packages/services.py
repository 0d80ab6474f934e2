"""Service registration and resolution for packs.

FastAPI has no service container of its own, so packs register their
services on a :class:`ServiceCollection` while the app is being built and
endpoints pull them out with :func:`Inject`::

    class NotesPack(Pack):
        name = "notes"

        def configure_services(self, services, settings):
            services.add_singleton(NoteStore)
            services.add_scoped(NoteService)

    @router.get("/")
    async def list_notes(notes: NoteService = Inject(NoteService)):
        ...

Lifetimes:
  * singleton: one instance per provider, created on first use
  * scoped: one instance per request (per :class:`ServiceScope`)
  * transient: a new instance on every resolution

Class implementations get constructor arguments injected by type
annotation; parameters with defaults are left alone when their type is not
registered.
"""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, AsyncIterator, Callable, Iterator, TypeVar, get_type_hints

from fastapi import Depends, FastAPI, Request

from tqkit.core.errors import ServiceResolutionError

logger = logging.getLogger(__name__)

S = TypeVar("S")


class Lifetime(str, Enum):
    SINGLETON = "singleton"
    SCOPED = "scoped"
    TRANSIENT = "transient"


@dataclass(frozen=True)
class ServiceDescriptor:
    service_type: type
    lifetime: Lifetime
    implementation: type | None = None
    factory: Callable[[Any], Any] | None = None
    instance: Any = None


# ---------------------------------------------------------------------------
# Collection
# ---------------------------------------------------------------------------


class ServiceCollection:
    """Mutable set of service registrations; the last one per type wins."""

    def __init__(self) -> None:
        self._descriptors: dict[type, ServiceDescriptor] = {}

    def add(self, descriptor: ServiceDescriptor) -> ServiceCollection:
        if descriptor.service_type in self._descriptors:
            logger.debug(
                "Replacing registration for %s", descriptor.service_type.__qualname__,
            )
        self._descriptors[descriptor.service_type] = descriptor
        return self

    def add_singleton(
        self,
        service_type: type,
        implementation: type | None = None,
        *,
        factory: Callable[[Any], Any] | None = None,
        instance: Any = None,
    ) -> ServiceCollection:
        return self.add(_describe(service_type, Lifetime.SINGLETON, implementation, factory, instance))

    def add_scoped(
        self,
        service_type: type,
        implementation: type | None = None,
        *,
        factory: Callable[[Any], Any] | None = None,
    ) -> ServiceCollection:
        return self.add(_describe(service_type, Lifetime.SCOPED, implementation, factory, None))

    def add_transient(
        self,
        service_type: type,
        implementation: type | None = None,
        *,
        factory: Callable[[Any], Any] | None = None,
    ) -> ServiceCollection:
        return self.add(_describe(service_type, Lifetime.TRANSIENT, implementation, factory, None))

    def get(self, service_type: type) -> ServiceDescriptor | None:
        return self._descriptors.get(service_type)

    def build_provider(self) -> ServiceProvider:
        return ServiceProvider(self._descriptors.values())

    def __contains__(self, service_type: object) -> bool:
        return service_type in self._descriptors

    def __iter__(self) -> Iterator[ServiceDescriptor]:
        return iter(self._descriptors.values())

    def __len__(self) -> int:
        return len(self._descriptors)


def _describe(
    service_type: type,
    lifetime: Lifetime,
    implementation: type | None,
    factory: Callable[[Any], Any] | None,
    instance: Any,
) -> ServiceDescriptor:
    given = sum(x is not None for x in (implementation, factory, instance))
    if given > 1:
        raise ValueError(
            "Pass at most one of implementation, factory or instance "
            f"for {service_type.__qualname__}"
        )
    return ServiceDescriptor(
        service_type=service_type,
        lifetime=lifetime,
        implementation=implementation,
        factory=factory,
        instance=instance,
    )


# ---------------------------------------------------------------------------
# Provider / scope
# ---------------------------------------------------------------------------


class ServiceProvider:
    """Resolves registered services; owns singleton instances."""

    def __init__(self, descriptors: Any) -> None:
        self._descriptors: dict[type, ServiceDescriptor] = {
            d.service_type: d for d in descriptors
        }
        self._singletons: dict[type, Any] = {}

    def is_registered(self, service_type: type) -> bool:
        return service_type in self._descriptors

    def get_service(self, service_type: type[S]) -> S | None:
        """Return the service, or ``None`` if it is not registered."""
        if not self.is_registered(service_type) and service_type is not ServiceProvider:
            return None
        return self.resolve(service_type, None)

    def get_required_service(self, service_type: type[S]) -> S:
        return self.resolve(service_type, None)

    def create_scope(self) -> ServiceScope:
        return ServiceScope(self)

    def resolve(self, service_type: type[S], scope: ServiceScope | None) -> S:
        if service_type is ServiceProvider:
            return self  # type: ignore[return-value]

        descriptor = self._descriptors.get(service_type)
        if descriptor is None:
            raise ServiceResolutionError(service_type)

        if descriptor.lifetime is Lifetime.SINGLETON:
            if service_type not in self._singletons:
                self._singletons[service_type] = self._create(descriptor, None)
            return self._singletons[service_type]

        if descriptor.lifetime is Lifetime.SCOPED:
            if scope is None:
                raise ServiceResolutionError(
                    service_type, "scoped service requested outside a scope",
                )
            return scope._get_or_create(descriptor)

        return self._create(descriptor, scope)

    def _create(self, descriptor: ServiceDescriptor, scope: ServiceScope | None) -> Any:
        if descriptor.instance is not None:
            return descriptor.instance
        resolver: ServiceProvider | ServiceScope = scope if scope is not None else self
        if descriptor.factory is not None:
            return descriptor.factory(resolver)
        return self._construct(descriptor.implementation or descriptor.service_type, resolver)

    def _construct(self, cls: type, resolver: ServiceProvider | ServiceScope) -> Any:
        try:
            hints = get_type_hints(cls.__init__)
        except (NameError, TypeError) as exc:
            raise ServiceResolutionError(cls, f"unresolvable annotations ({exc})") from exc

        kwargs: dict[str, Any] = {}
        for name, param in inspect.signature(cls).parameters.items():
            if param.kind in (param.VAR_POSITIONAL, param.VAR_KEYWORD):
                continue
            annotation = hints.get(name)
            if annotation is not None and (
                annotation in self._descriptors or annotation is ServiceProvider
            ):
                kwargs[name] = resolver.get_required_service(annotation)
            elif param.default is param.empty:
                raise ServiceResolutionError(
                    cls, f"no registration for constructor parameter '{name}'",
                )
        return cls(**kwargs)

    async def aclose(self) -> None:
        """Close singletons this provider created, newest first."""
        instances = [
            obj for t, obj in self._singletons.items()
            if self._descriptors[t].instance is None
        ]
        self._singletons.clear()
        await _close_all(instances)


class ServiceScope:
    """Per-request resolution scope; closes its scoped instances on exit."""

    def __init__(self, root: ServiceProvider) -> None:
        self._root = root
        self._instances: dict[type, Any] = {}
        self._closed = False

    @property
    def provider(self) -> ServiceProvider:
        return self._root

    def get_service(self, service_type: type[S]) -> S | None:
        if not self._root.is_registered(service_type):
            return None
        return self._root.resolve(service_type, self)

    def get_required_service(self, service_type: type[S]) -> S:
        return self._root.resolve(service_type, self)

    def _get_or_create(self, descriptor: ServiceDescriptor) -> Any:
        if self._closed:
            raise ServiceResolutionError(descriptor.service_type, "scope is closed")
        if descriptor.service_type not in self._instances:
            self._instances[descriptor.service_type] = self._root._create(descriptor, self)
        return self._instances[descriptor.service_type]

    async def aclose(self) -> None:
        self._closed = True
        instances = list(self._instances.values())
        self._instances.clear()
        await _close_all(instances)

    async def __aenter__(self) -> ServiceScope:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()


async def _close_all(instances: list[Any]) -> None:
    for obj in reversed(instances):
        closer = getattr(obj, "aclose", None) or getattr(obj, "close", None)
        if closer is None:
            continue
        result = closer()
        if inspect.isawaitable(result):
            await result


# ---------------------------------------------------------------------------
# FastAPI integration
# ---------------------------------------------------------------------------


def get_provider(app: FastAPI) -> ServiceProvider:
    """Return the provider attached to *app* by :class:`AppBuilder`."""
    provider = getattr(app.state, "service_provider", None)
    if provider is None:
        raise ServiceResolutionError(
            ServiceProvider, "the application was not built with AppBuilder",
        )
    return provider


async def get_service_scope(request: Request) -> AsyncIterator[ServiceScope]:
    """FastAPI dependency: one :class:`ServiceScope` per request."""
    scope = get_provider(request.app).create_scope()
    try:
        yield scope
    finally:
        await scope.aclose()


def Inject(service_type: type[S]) -> Any:
    """FastAPI dependency marker resolving *service_type* for the request."""

    async def _resolve(scope: ServiceScope = Depends(get_service_scope)) -> Any:
        return scope.get_required_service(service_type)

    return Depends(_resolve)
