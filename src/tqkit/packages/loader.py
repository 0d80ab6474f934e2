"""Hands each discovered pack to the app under construction."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Iterable

from fastapi import APIRouter, FastAPI

from .manager import PackageInfo
from .services import ServiceProvider

if TYPE_CHECKING:
    from .builder import AppBuilder

logger = logging.getLogger(__name__)


def load_pack(builder: AppBuilder, package: PackageInfo) -> None:
    """Let *package* register its services on the builder."""
    before = len(builder.services)
    package.pack.configure_services(builder.services, builder.settings)
    logger.info(
        "Loaded pack %s from %s (%d new registrations)",
        package.name,
        package.module.__name__,
        len(builder.services) - before,
    )


def use_packs(
    app: FastAPI,
    provider: ServiceProvider,
    routes: APIRouter | FastAPI,
    packages: Iterable[PackageInfo],
) -> None:
    """Run each pack's app-level setup, then mount its routes on *routes*."""
    for package in packages:
        package.pack.configure(app, provider)
        package.pack.map_routes(routes)
        logger.debug("Mapped routes for pack %s", package.name)
