"""Request localization middleware.

Picks a culture per request from, in order: the query string
(``?culture=en-US``), the culture cookie, then ``Accept-Language``.
A candidate is accepted when it, or its parent culture, is supported;
otherwise the default culture applies.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from tqkit.core.config import LocalizationConfig

from .localization import (
    RequestCulture,
    parent_culture,
    reset_request_culture,
    set_request_culture,
)

logger = logging.getLogger(__name__)


@dataclass
class RequestLocalizationOptions:
    """Supported cultures and how a request selects one."""

    supported_cultures: list[str] = field(default_factory=list)
    supported_ui_cultures: list[str] = field(default_factory=list)
    default_culture: str = "en-US"
    default_ui_culture: str | None = None
    query_parameter: str = "culture"
    cookie_name: str = "tqkit.culture"
    set_content_language: bool = True

    @classmethod
    def from_config(cls, config: LocalizationConfig) -> RequestLocalizationOptions:
        return (
            cls(query_parameter=config.query_parameter, cookie_name=config.cookie_name)
            .add_supported_cultures(*config.supported_cultures)
            .add_supported_ui_cultures(*config.supported_cultures)
            .set_default_culture(config.default_culture)
        )

    def add_supported_cultures(self, *cultures: str) -> RequestLocalizationOptions:
        for culture in cultures:
            if _find(culture, self.supported_cultures) is None:
                self.supported_cultures.append(culture)
        return self

    def add_supported_ui_cultures(self, *cultures: str) -> RequestLocalizationOptions:
        for culture in cultures:
            if _find(culture, self.supported_ui_cultures) is None:
                self.supported_ui_cultures.append(culture)
        return self

    def set_default_culture(self, culture: str) -> RequestLocalizationOptions:
        self.default_culture = culture
        self.default_ui_culture = culture
        return self

    @property
    def default_request_culture(self) -> RequestCulture:
        return RequestCulture(self.default_culture, self.default_ui_culture or self.default_culture)

    def select(self, candidates: list[str]) -> RequestCulture:
        """First candidate supported as culture or UI culture, else the default."""
        default = self.default_request_culture
        ui_supported = self.supported_ui_cultures or self.supported_cultures
        for candidate in candidates:
            culture = _match(candidate, self.supported_cultures)
            ui_culture = _match(candidate, ui_supported)
            if culture or ui_culture:
                return RequestCulture(culture or default.culture, ui_culture or default.ui_culture)
        return default

    def candidates(self, request: Request) -> list[str]:
        found: list[str] = []
        query_value = request.query_params.get(self.query_parameter)
        if query_value:
            found.append(query_value)
        cookie_value = request.cookies.get(self.cookie_name)
        if cookie_value:
            found.append(cookie_value)
        header = request.headers.get("accept-language")
        if header:
            found.extend(parse_accept_language(header))
        return found


def parse_accept_language(header: str) -> list[str]:
    """Language tags of an ``Accept-Language`` header, highest quality first."""
    weighted: list[tuple[float, int, str]] = []
    for position, part in enumerate(header.split(",")):
        tag, _, params = part.strip().partition(";")
        tag = tag.strip()
        if not tag or tag == "*":
            continue
        quality = 1.0
        for param in params.split(";"):
            name, _, value = param.strip().partition("=")
            if name == "q":
                try:
                    quality = float(value)
                except ValueError:
                    quality = 0.0
        if quality > 0:
            weighted.append((quality, -position, tag))
    return [tag for _, _, tag in sorted(weighted, reverse=True)]


def _find(culture: str, supported: list[str]) -> str | None:
    lowered = culture.lower()
    for item in supported:
        if item.lower() == lowered:
            return item
    return None


def _match(candidate: str, supported: list[str]) -> str | None:
    exact = _find(candidate, supported)
    if exact is not None:
        return exact
    parent = parent_culture(candidate)
    return _find(parent, supported) if parent else None


class RequestLocalizationMiddleware(BaseHTTPMiddleware):
    """Sets the request culture for localizers downstream."""

    def __init__(self, app: ASGIApp, options: RequestLocalizationOptions) -> None:
        super().__init__(app)
        self.options = options

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        culture = self.options.select(self.options.candidates(request))
        request.state.culture = culture
        token = set_request_culture(culture)
        try:
            response = await call_next(request)
        finally:
            reset_request_culture(token)
        if self.options.set_content_language:
            response.headers["Content-Language"] = culture.ui_culture
        return response
