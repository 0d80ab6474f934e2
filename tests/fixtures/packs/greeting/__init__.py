"""Greeting pack: a package-style pack with resources and a scoped service."""

from __future__ import annotations

from fastapi import APIRouter, Request
from pydantic import BaseModel

from tqkit.packages import (
    Inject,
    Localizer,
    ModuleStringLocalizer,
    Pack,
    PackConfig,
)

from .service import GreetingCounter, GreetingService

router = APIRouter()


class GreetingConfig(BaseModel):
    punctuation: str = "."


@router.get("/hello/{name}")
async def hello(
    name: str,
    service: GreetingService = Inject(GreetingService),
    localizer: ModuleStringLocalizer = Localizer("greeting"),
) -> dict:
    return {"message": service.greet(localizer, name), "culture": localizer.culture}


@router.get("/config")
async def config(settings: GreetingConfig = PackConfig(GreetingConfig, "greeting")) -> dict:
    return settings.model_dump()


@router.get("/count")
async def count(counter: GreetingCounter = Inject(GreetingCounter)) -> dict:
    return {"count": counter.count}


@router.get("/configured")
async def configured(request: Request) -> dict:
    return {"configured": getattr(request.app.state, "greeting_configured", False)}


class GreetingPack(Pack):
    name = "greeting"
    order = 10
    router = router

    def configure_services(self, services, settings):
        services.add_singleton(GreetingCounter)
        services.add_scoped(GreetingService)

    def configure(self, app, provider):
        app.state.greeting_configured = True
